import os
import shutil
import sqlite3
import tempfile
import unittest

from numpy import testing
import numpy as np

import report
from test_windowstats import write_map_file, FLAT_A, FLAT_G, GCG


class TestReport(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.prefix = os.path.join(self.tmpdir, 'site')
        write_map_file(self.prefix + '_1.map', [FLAT_A, FLAT_A])
        write_map_file(self.prefix + '_2.map', [GCG, FLAT_G])
        write_map_file(self.prefix + '_3.map', [FLAT_A, FLAT_A])
        self.outgroup = os.path.join(self.tmpdir, 'outgroup.txt')
        with open(self.outgroup, 'w') as fout:
            fout.write('b\n')
        self.params = os.path.join(self.tmpdir, 'gtr.txt')
        with open(self.params, 'w') as fout:
            fout.write('0.25 0.25 0.25 0.25\n1 1 1 1 1 1\n')

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def get_argv(self, *options):
        positional = [
                '1', '3', '2', self.prefix, self.outgroup, self.params]
        return positional + ['--outdir', self.tmpdir] + list(options)

    def out(self, name):
        return os.path.join(self.tmpdir, name + '1_3.txt')

    def test_outputs(self):
        self.assertEqual(report.run(self.get_argv()), 0)

        # two branches with six states and two draws
        props = np.loadtxt(self.out('PropState'))
        self.assertEqual(props.shape, (12, 2))
        counts = np.loadtxt(self.out('NumChange'))
        self.assertEqual(counts.shape, (36, 2))
        self.assertEqual(counts.sum(), 2)
        roots = np.loadtxt(self.out('RootState'))
        testing.assert_array_equal(roots, [[1, 1], [0, 0], [0, 0], [0, 0]])

        # the outgroup taxon b is numbered first
        testing.assert_array_equal(counts[18:20, 0], [1, 1])

        # a single line of weights
        with open(self.out('GTRweight')) as fin:
            lines = fin.read().splitlines()
        self.assertEqual(len(lines), 1)
        weights = [float(x) for x in lines[0].split()]
        expected = 2 * np.log(0.25) - 0.25 * 0.7 - 0.25 * 0.3
        testing.assert_allclose(weights, [expected, 0.0])

    def test_reduced_and_database(self):
        db = os.path.join(self.tmpdir, 'll.db')
        argv = self.get_argv('--reduced', '--outfile', db)
        self.assertEqual(report.run(argv), 0)
        self.assertEqual(np.loadtxt(self.out('GTRNumChange')).shape, (24, 2))
        self.assertEqual(np.loadtxt(self.out('CpGNumChange')).shape, (18, 2))
        self.assertEqual(np.loadtxt(self.out('CpGPropState')).shape, (6, 2))
        conn = sqlite3.connect(db)
        cursor = conn.cursor()
        cursor.execute(
                'select history, log_likelihood from log_likelihoods '
                'order by history')
        rows = list(cursor)
        conn.close()
        self.assertEqual([r[0] for r in rows], [0, 1])

    def test_root_term(self):
        self.assertEqual(report.run(self.get_argv('--root-term')), 0)
        weights = np.loadtxt(self.out('GTRweight'))
        testing.assert_allclose(weights[1], np.log(0.25))

    def test_wrong_argument_count(self):
        with self.assertRaises(SystemExit) as cm:
            report.run(['1', '3', '2', self.prefix, self.outgroup])
        self.assertEqual(cm.exception.code, 2)
        self.assertFalse(os.path.exists(self.out('GTRweight')))

    def test_malformed_parameters(self):
        with open(self.params, 'w') as fout:
            fout.write('0.2 0.2 0.2 0.2 0.2\n1 1 1 1 1 1\n')
        self.assertEqual(report.run(self.get_argv()), 1)
        self.assertFalse(os.path.exists(self.out('GTRweight')))


if __name__ == '__main__':
    unittest.main()
