import io
import math
import unittest

from numpy import testing
import numpy as np

import gtr
import sufficient
from cpgmaputil import FormatError
from sufficient import ReducedStats


GTR_ORIGIN = sufficient.GROUPINGS[sufficient.GTR].origin


def uniform_parameters():
    return gtr.GTRParameters(np.ones(4) / 4, np.ones(6))


def gtr_stats(counts, props):
    return ReducedStats(
            sufficient.GTR, np.asarray(counts), np.asarray(props), GTR_ORIGIN)


class TestDirectedRates(unittest.TestCase):

    def test_uniform(self):
        params = uniform_parameters()
        mu = gtr.get_directed_rates(params.distn, params.exchangeability)
        testing.assert_allclose(mu, 0.25 * np.ones(12))

    def test_reversibility(self):
        distn = np.array([0.1, 0.2, 0.3, 0.4])
        R = np.array([1.0, 2.0, 3.0, 4.0, 5.0, 6.0])
        mu = gtr.get_directed_rates(distn, R)

        # rate matrix in G, C, T, A order from the gtr type order
        Q = np.zeros((4, 4))
        for k, (a, b) in enumerate((
                (0, 1), (0, 2), (0, 3),
                (1, 0), (1, 2), (1, 3),
                (2, 0), (2, 1), (2, 3),
                (3, 0), (3, 1), (3, 2))):
            Q[a, b] = mu[k]
        S = (Q.T * distn).T
        testing.assert_allclose(S, S.T)

        # A->G uses the G<->A exchangeability
        testing.assert_allclose(mu[9], 3.0 * 0.1)
        testing.assert_allclose(mu[10], 5.0 * 0.2)


class TestLogLikelihoods(unittest.TestCase):

    def test_known_value(self):

        # one G->C and one C->G on a unit branch spending 0.7 in G
        counts = np.zeros((1, 12, 1), dtype=int)
        counts[0, 0, 0] = 1
        counts[0, 3, 0] = 1
        props = np.zeros((1, 4, 1))
        props[0, 0, 0] = 0.7
        props[0, 1, 0] = 0.3
        ll = gtr.get_log_likelihoods(
                uniform_parameters(), gtr_stats(counts, props), [1.0])
        expected = 2 * math.log(0.25) - 0.25 * 0.7 - 0.25 * 0.3
        testing.assert_allclose(ll, [expected])

    def test_branch_length_scales_rates(self):
        counts = np.zeros((1, 12, 1), dtype=int)
        counts[0, 6, 0] = 2
        props = np.zeros((1, 4, 1))
        props[0, 2, 0] = 1.0
        ll = gtr.get_log_likelihoods(
                uniform_parameters(), gtr_stats(counts, props), [2.0])
        testing.assert_allclose(ll, [2 * math.log(0.5) - 0.5])

    def test_zero_counts_contribute_nothing(self):
        np.random.seed(2)
        counts = np.zeros((2, 12, 3), dtype=int)
        counts[1] = np.random.randint(1, 4, size=(12, 3))
        props = np.random.dirichlet(np.ones(4), size=(2, 3)).transpose(0, 2, 1)
        stats = gtr_stats(counts, props)
        ll = gtr.get_log_likelihoods(uniform_parameters(), stats, [0.3, 0.9])

        # only the second branch contributes
        only = gtr_stats(counts[1:], props[1:])
        expected = gtr.get_log_likelihoods(uniform_parameters(), only, [0.9])
        testing.assert_allclose(ll, expected)

        # no counts at all gives exactly zero
        empty = gtr_stats(np.zeros_like(counts), props)
        ll = gtr.get_log_likelihoods(uniform_parameters(), empty, [0.3, 0.9])
        testing.assert_array_equal(ll, np.zeros(3))

    def test_zero_proportion_skips_term(self):
        counts = np.zeros((1, 12, 1), dtype=int)
        counts[0, 0, 0] = 4
        props = np.zeros((1, 4, 1))
        props[0, 2, 0] = 1.0
        ll = gtr.get_log_likelihoods(
                uniform_parameters(), gtr_stats(counts, props), [1.0])
        testing.assert_array_equal(ll, [0.0])

    def test_root_term(self):
        counts = np.zeros((1, 12, 2), dtype=int)
        props = np.zeros((1, 4, 2))
        root_counts = np.array([[2, 0], [0, 0], [0, 1], [0, 0]])
        params = gtr.GTRParameters(
                np.array([0.1, 0.2, 0.3, 0.4]), np.ones(6))
        stats = gtr_stats(counts, props)
        without = gtr.get_log_likelihoods(params, stats, [1.0])
        testing.assert_array_equal(without, [0.0, 0.0])
        ll = gtr.get_log_likelihoods(params, stats, [1.0], root_counts)
        testing.assert_allclose(ll, [2 * math.log(0.1), math.log(0.3)])

    def test_deterministic(self):
        np.random.seed(3)
        counts = np.random.randint(0, 5, size=(4, 12, 5))
        props = np.random.dirichlet(np.ones(4), size=(4, 5)).transpose(0, 2, 1)
        params = gtr.GTRParameters(
                np.array([0.3, 0.2, 0.25, 0.25]),
                np.array([0.5, 1.0, 2.0, 1.5, 0.7, 1.1]))
        stats = gtr_stats(counts, props)
        blens = [0.1, 0.2, 0.3, 0.4]
        a = gtr.get_log_likelihoods(params, stats, blens)
        b = gtr.get_log_likelihoods(params, stats, blens)
        testing.assert_array_equal(a, b)
        self.assertEqual(a.shape, (5,))

    def test_requires_gtr_statistics(self):
        stats = ReducedStats(
                sufficient.CPG, np.zeros((1, 9, 1)), np.zeros((1, 3, 1)),
                sufficient.GROUPINGS[sufficient.CPG].origin)
        with self.assertRaises(ValueError):
            gtr.get_log_likelihoods(uniform_parameters(), stats, [1.0])


class TestReadParameters(unittest.TestCase):

    def test_read(self):
        fin = io.StringIO('0.1 0.2 0.3 0.4\n1 2 3 4 5 6\n')
        params = gtr.read_gtr_parameters(fin)
        testing.assert_allclose(params.distn, [0.1, 0.2, 0.3, 0.4])
        testing.assert_allclose(params.exchangeability, [1, 2, 3, 4, 5, 6])

    def test_five_frequencies(self):
        fin = io.StringIO('0.2 0.2 0.2 0.2 0.2\n1 1 1 1 1 1\n')
        with self.assertRaises(FormatError):
            gtr.read_gtr_parameters(fin)

    def test_five_exchangeabilities(self):
        fin = io.StringIO('0.25 0.25 0.25 0.25\n1 1 1 1 1\n')
        with self.assertRaises(FormatError):
            gtr.read_gtr_parameters(fin)

    def test_non_numeric(self):
        fin = io.StringIO('0.25 0.25 0.25 x\n1 1 1 1 1 1\n')
        with self.assertRaises(FormatError):
            gtr.read_gtr_parameters(fin)

    def test_frequencies_sum_to_one(self):
        fin = io.StringIO('0.5 0.5 0.5 0.5\n1 1 1 1 1 1\n')
        with self.assertRaises(FormatError):
            gtr.read_gtr_parameters(fin)

    def test_missing_line(self):
        fin = io.StringIO('0.25 0.25 0.25 0.25\n')
        with self.assertRaises(FormatError):
            gtr.read_gtr_parameters(fin)


if __name__ == '__main__':
    unittest.main()
