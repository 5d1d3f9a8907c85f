"""
Accumulate raw sufficient statistics over windows of neighboring sites.

The sampler writes one file of stochastic mappings per site,
named by a prefix and the index of the site, for example
prefix_17.map
Each file contains one record per posterior draw,
and each record is three lines:
the mapping used here, a second mapping of the same iteration
which is read and ignored, and an empty line.
.
A window of sites slides along the alignment one site at a time.
For each window and each draw the mappings of the sites of the window
are merged branch by branch and the substitution counts,
dwell times and dwell proportions of the focus site are added
to the totals for that branch and draw.
The root state of the focus site is tallied once per window and draw.
.
Accumulation is best effort.
A window whose files cannot be opened is skipped,
and a record that cannot be read or parsed adds nothing for that draw.
Both are reported through the logger.
"""

import logging
from contextlib import ExitStack
from collections import namedtuple

import numpy as np

import timeline
import mappingtree
from cpgmaputil import FormatError


logger = logging.getLogger(__name__)

RawStats = namedtuple('RawStats', 'counts times props blens root_counts')

# Per-window statistics for every branch of a single draw.
WindowStats = namedtuple('WindowStats', 'counts times props blens root_state')

RECORD_NLINES = 3

UNDECODABLE = '\ufffd'


def get_map_filename(prefix, site):
    return '%s_%d.map' % (prefix, site)


def open_map_file(prefix, site):
    """
    Undecodable bytes are replaced so that they fail the record they are in.
    """
    return open(get_map_filename(prefix, site), errors='replace')


def get_window_starts(start, end, strategy):
    """
    The sites from start to end inclusive are covered by the windows.
    @param start: index of the first site
    @param end: index of the last site
    @param strategy: a timeline.WindowStrategy
    @return: range of first site indices of the windows
    """
    return range(start, end - strategy.width + 2)


def merge_branch(trees, branch, strategy):
    """
    Merge the path histories of all sites of a window along one branch.
    The branch length of the focus site is used for the whole window.
    @param trees: a parsed mapping tree for each site of the window
    @param branch: branch index
    @param strategy: a timeline.WindowStrategy
    @return: a timeline.CompositeTimeline
    """
    paths = [mappingtree.get_site_path(tree, branch) for tree in trees]
    blen = sum(paths[strategy.focus].dwells)
    return timeline.merge_paths(paths, blen)


def get_window_stats(trees, strategy):
    """
    Compute the statistics of one window for one draw.
    @param trees: a parsed mapping tree for each site of the window
    @param strategy: a timeline.WindowStrategy
    @return: a WindowStats
    """
    nbranches = mappingtree.get_nbranches(trees[strategy.focus])
    for tree in trees:
        if mappingtree.get_nbranches(tree) != nbranches:
            raise FormatError('the sites of a window disagree on the tree')
    counts = np.zeros((nbranches, timeline.NCHANGE_TYPES), dtype=int)
    times = np.zeros((nbranches, timeline.NSTATE_TYPES))
    blens = np.zeros(nbranches)
    for j in range(nbranches):
        path = merge_branch(trees, j, strategy)
        counts[j] = timeline.count_changes(path, strategy.focus)
        times[j] = timeline.dwell_times(path, strategy.focus)
        blens[j] = sum(path.dwells)
    props = np.zeros_like(times)
    np.divide(times, blens[:, np.newaxis], out=props,
            where=blens[:, np.newaxis] > 0)
    root_state = mappingtree.get_root_state(trees[strategy.focus])
    return WindowStats(counts, times, props, blens, root_state)


def read_record(fin):
    """
    Read the three lines of a single draw.
    @param fin: open mapping file
    @return: the mapping string of the draw
    """
    lines = [fin.readline() for i in range(RECORD_NLINES)]
    if not lines[0].strip():
        raise FormatError('expected a mapping at the start of a record')
    if UNDECODABLE in lines[0]:
        raise FormatError('undecodable bytes in the record')
    return lines[0]


def get_nbranches(prefix, site, outgroup):
    """
    Read the number of branches from the first record of a mapping file.
    """
    with open_map_file(prefix, site) as fin:
        G = mappingtree.parse_mapping_tree(read_record(fin), outgroup)
    mappingtree.check_outgroup(G, outgroup)
    return mappingtree.get_nbranches(G)


def accumulate(prefix, start, end, ndraws, outgroup=None,
        strategy=timeline.TRIPLET):
    """
    Scan the windows and accumulate the raw statistics.
    @param prefix: mapping filename prefix
    @param start: index of the first site
    @param end: index of the last site
    @param ndraws: number of posterior draws in each mapping file
    @param outgroup: a collection of outgroup taxon names
    @param strategy: a timeline.WindowStrategy
    @return: a RawStats
    """
    outgroup = list(outgroup or [])
    nbranches = get_nbranches(prefix, start, outgroup)

    # initialize the totals
    counts = np.zeros((nbranches, timeline.NCHANGE_TYPES, ndraws), dtype=int)
    times = np.zeros((nbranches, timeline.NSTATE_TYPES, ndraws))
    props = np.zeros((nbranches, timeline.NSTATE_TYPES, ndraws))
    root_counts = np.zeros((len(timeline.NUCLEOTIDES), ndraws), dtype=int)
    blens = None

    nskipped_windows = 0
    nskipped_records = 0
    logger.info('scanning %s windows', strategy.name)
    for i in get_window_starts(start, end, strategy):
        logger.info('window starting at site %d', i)
        sites = range(i, i + strategy.width)
        with ExitStack() as stack:
            try:
                fins = [stack.enter_context(open_map_file(prefix, s))
                        for s in sites]
            except OSError as e:
                logger.error('skipping the window at site %d: %s', i, e)
                nskipped_windows += 1
                continue
            for c in range(ndraws):

                # read the records of all files before parsing any of them
                # so that the files stay aligned on the draws
                records = []
                for s, fin in zip(sites, fins):
                    try:
                        records.append(read_record(fin))
                    except (OSError, FormatError) as e:
                        logger.error('site %d draw %d: %s', s, c, e)
                        records.append(None)
                if None in records:
                    nskipped_records += 1
                    continue

                # compute the contribution of this window to this draw
                try:
                    trees = [mappingtree.parse_mapping_tree(r, outgroup)
                            for r in records]
                    w = get_window_stats(trees, strategy)
                    if len(w.blens) != nbranches:
                        raise FormatError(
                                'expected %d branches but found %d' % (
                                    nbranches, len(w.blens)))
                except FormatError as e:
                    logger.error('window %d draw %d: %s', i, c, e)
                    nskipped_records += 1
                    continue

                # add the contribution
                if blens is None:
                    blens = w.blens
                counts[:, :, c] += w.counts
                times[:, :, c] += w.times
                props[:, :, c] += w.props
                if w.root_state in timeline.NUCLEOTIDES:
                    l = timeline.NUCLEOTIDES.index(w.root_state)
                    root_counts[l, c] += 1

    if nskipped_windows or nskipped_records:
        logger.warning(
                'skipped %d windows and %d window records',
                nskipped_windows, nskipped_records)
    if blens is None:
        blens = np.zeros(nbranches)
    return RawStats(counts, times, props, blens, root_counts)
