"""
Merge the sampled histories of neighboring sites into joint timelines.

Each site of an alignment has an independently sampled path history
along each branch of the tree.
For a window of neighboring sites the histories along a branch
are merged into a single path whose states are strings
with one character per site of the window.
The state of the focus site of the window,
together with whether it is currently in a CpG dinucleotide,
defines the substitution types and the dwell states
whose counts and times are the sufficient statistics.
.
Substitution types of the focus site (raw 18 type table).
non-CpG context:
0 G->C, 1 C->G, 2 G->T, 3 C->A, 4 T->A, 5 A->T,
6 T->G, 7 A->C, 8 G->A, 9 C->T, 10 A->G, 11 T->C
CpG context:
12 G->C, 13 C->G, 14 G->T, 15 C->A, 16 G->A, 17 C->T
.
Dwell states of the focus site (raw 6 state table).
0 G, 1 C, 2 T, 3 A in non-CpG context, 4 G, 5 C in CpG context.
"""

from collections import namedtuple

import numpy as np

from cpgmaputil import pairwise
from cpgmaputil import cumulative_times


NUCLEOTIDES = 'GCTA'

NCHANGE_TYPES = 18

NSTATE_TYPES = 6

CPG = 'CG'

# (context is CpG, source, sink) -> raw substitution type
CHANGE_TYPE = {
        (False, 'G', 'C') : 0,
        (False, 'C', 'G') : 1,
        (False, 'G', 'T') : 2,
        (False, 'C', 'A') : 3,
        (False, 'T', 'A') : 4,
        (False, 'A', 'T') : 5,
        (False, 'T', 'G') : 6,
        (False, 'A', 'C') : 7,
        (False, 'G', 'A') : 8,
        (False, 'C', 'T') : 9,
        (False, 'A', 'G') : 10,
        (False, 'T', 'C') : 11,
        (True, 'G', 'C') : 12,
        (True, 'C', 'G') : 13,
        (True, 'G', 'T') : 14,
        (True, 'C', 'A') : 15,
        (True, 'G', 'A') : 16,
        (True, 'C', 'T') : 17,
        }

# (context is CpG, state) -> raw dwell state
STATE_TYPE = {
        (False, 'G') : 0,
        (False, 'C') : 1,
        (False, 'T') : 2,
        (False, 'A') : 3,
        (True, 'G') : 4,
        (True, 'C') : 5,
        }


# ordered states from the parent end to the child end of a branch,
# and the time spent in each of these states
SitePath = namedtuple('SitePath', 'states dwells')

# the merged path of a window along a branch;
# the trailing state has no dwell and is the state at the child node
CompositeTimeline = namedtuple('CompositeTimeline', 'states dwells')

# the number of sites in the window and the position of the focus site
WindowStrategy = namedtuple('WindowStrategy', 'name width focus')

TRIPLET = WindowStrategy('triplet', 3, 1)

SINGLE_SITE = WindowStrategy('single-site', 1, 0)


def merge_paths(paths, blen):
    """
    Merge the path histories of a few sites along a single branch.
    Substitution times that coincide across sites are visited
    in order of site position.
    @param paths: a SitePath for each site of the window
    @param blen: the canonical length of the branch
    @return: a CompositeTimeline
    """

    # Tag each substitution time with the position of its site.
    # The final cumulative time of each site is the branch length
    # and does not correspond to a substitution.
    events = []
    for position, path in enumerate(paths):
        times = cumulative_times(path.dwells)
        for t in times[:-1]:
            events.append((t, position))
    events.sort()

    # walk the substitution events in order of time
    indices = [0] * len(paths)
    current = [path.states[0] for path in paths]
    states = [''.join(current)]
    dwells = []
    previous = 0.0
    for t, position in events:
        dwells.append(t - previous)
        previous = t
        indices[position] += 1
        current[position] = paths[position].states[indices[position]]
        states.append(''.join(current))

    # the remainder of the branch and the state at the child node
    dwells.append(blen - previous)
    states.append(''.join(path.states[-1] for path in paths))

    return CompositeTimeline(states, dwells)


def is_cpg_context(composite):
    return CPG in composite


def count_changes(timeline, focus):
    """
    Count the substitutions of the focus site along a merged timeline.
    Transitions at which only a neighboring site changes are ignored.
    @param timeline: a CompositeTimeline
    @param focus: position of the focus site within the composite states
    @return: numpy integer array of raw substitution type counts
    """
    counts = np.zeros(NCHANGE_TYPES, dtype=int)
    for a, b in pairwise(timeline.states):
        source = a[focus]
        sink = b[focus]
        if source != sink:
            k = CHANGE_TYPE.get((is_cpg_context(a), source, sink))
            if k is not None:
                counts[k] += 1
    return counts


def dwell_times(timeline, focus):
    """
    Total the time spent by the focus site in each raw dwell state.
    @param timeline: a CompositeTimeline
    @param focus: position of the focus site within the composite states
    @return: numpy float array of raw dwell state times
    """
    times = np.zeros(NSTATE_TYPES)
    for composite, dwell in zip(timeline.states, timeline.dwells):
        l = STATE_TYPE.get((is_cpg_context(composite), composite[focus]))
        if l is not None:
            times[l] += dwell
    return times
