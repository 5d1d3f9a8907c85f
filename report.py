"""
Summarize stochastic mappings of an alignment and weigh them by a GTR model.

The mappings of sites start through end are read from files
named like prefix_17.map, using sliding windows of three sites.
Four whitespace separated files are written,
each with one column per posterior draw.
PropState: dwell proportions, a row for each branch and raw state.
NumChange: substitution counts, a row for each branch and raw type.
RootState: root state tallies, a row for each of G, C, T, A.
GTRweight: a single row of GTR log likelihoods.
"""

import os
import sys
import argparse
import logging
import sqlite3

import numpy as np

import cpgmaputil
import timeline
import mappingtree
import windowstats
import sufficient
import gtr
from cpgmaputil import FormatError


logger = logging.getLogger(__name__)


def write_matrix(filename, M, fmt):
    """
    Write one row per leading index and one column per draw.
    @param filename: output filename
    @param M: array whose last axis is the draw
    @param fmt: numeric format of a single entry
    """
    M = np.asarray(M)
    M = M.reshape(-1, M.shape[-1])
    with open(filename, 'w') as fout:
        np.savetxt(fout, M, fmt=fmt, delimiter=' ')


def write_log_likelihoods_db(filename, log_likelihoods):
    """
    Write the log likelihoods into an sqlite3 table.
    """
    conn = sqlite3.connect(filename)
    cursor = conn.cursor()

    # initialize the log likelihoods table
    s = (
            'create table if not exists log_likelihoods ('
            'history integer, '
            'log_likelihood real, '
            'primary key (history))')
    cursor.execute(s)
    conn.commit()

    # write the log likelihoods into the table
    for history, ll in enumerate(log_likelihoods):
        s = 'insert or replace into log_likelihoods values (?, ?)'
        cursor.execute(s, (history, float(ll)))
    conn.commit()

    conn.close()


def write_outputs(outdir, start, end, raw, log_likelihoods, reduced=()):
    suffix = '%d_%d.txt' % (start, end)
    def out(name):
        return os.path.join(outdir, name + suffix)
    write_matrix(out('PropState'), raw.props, '%.17g')
    write_matrix(out('NumChange'), raw.counts, '%d')
    write_matrix(out('RootState'), raw.root_counts, '%d')
    write_matrix(out('GTRweight'), log_likelihoods[np.newaxis], '%.17g')
    for r in reduced:
        name = 'GTR' if r.variant == sufficient.GTR else 'CpG'
        write_matrix(out(name + 'NumChange'), r.counts, '%d')
        write_matrix(out(name + 'PropState'), r.props, '%.17g')


def main(args):

    # read the fixed rate model
    with open(args.gtr_params) as fin:
        params = gtr.read_gtr_parameters(fin)

    # read the outgroup taxa
    with open(args.outgroup) as fin:
        outgroup = mappingtree.read_outgroup(fin)

    # accumulate the raw statistics over the windows
    if args.single_site:
        strategy = timeline.SINGLE_SITE
    else:
        strategy = timeline.TRIPLET
    raw = windowstats.accumulate(
            args.prefix, args.start, args.end, args.ndraws,
            outgroup, strategy)

    # weigh each draw by the gtr model
    gtr_stats = sufficient.reduce_statistics(raw, sufficient.GTR)
    root_counts = raw.root_counts if args.root_term else None
    log_likelihoods = gtr.get_log_likelihoods(
            params, gtr_stats, raw.blens, root_counts)
    for c, ll in enumerate(log_likelihoods):
        logger.info('GTR weight logL[%d] = %s', c, ll)

    # write the output files
    reduced = []
    if args.reduced:
        reduced.append(gtr_stats)
        reduced.append(sufficient.reduce_statistics(raw, sufficient.CPG))
    write_outputs(
            args.outdir, args.start, args.end, raw, log_likelihoods, reduced)
    if args.outfile:
        write_log_likelihoods_db(args.outfile, log_likelihoods)


def get_parser():
    parser = argparse.ArgumentParser(description=__doc__,
            formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument('start', type=cpgmaputil.nonneg_int,
            help='index of the first site')
    parser.add_argument('end', type=cpgmaputil.nonneg_int,
            help='windows start before end - 1')
    parser.add_argument('ndraws', type=cpgmaputil.pos_int,
            help='number of posterior draws in each mapping file')
    parser.add_argument('prefix',
            help='prefix of the mapping filenames')
    parser.add_argument('outgroup',
            help='file with the outgroup taxon names')
    parser.add_argument('gtr_params',
            help='file with the GTR frequencies and exchangeabilities')
    parser.add_argument('-v', '--verbose', action='store_true',
            help='spam more text')
    parser.add_argument('--single-site', action='store_true',
            help='use single site windows without CpG context')
    parser.add_argument('--root-term', action='store_true',
            help='include the root state frequencies in the GTR weights')
    parser.add_argument('--reduced', action='store_true',
            help='also write the gtr and cpg sufficient statistics')
    parser.add_argument('--outdir', default='.',
            help='directory of the output files')
    parser.add_argument('--outfile',
            help='also write the GTR weights in sqlite3 format')
    return parser


def run(argv=None):
    args = get_parser().parse_args(argv)
    if args.verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format='%(message)s')
    try:
        main(args)
    except (OSError, FormatError) as e:
        logger.error('%s', e)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(run())
