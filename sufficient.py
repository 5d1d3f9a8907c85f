"""
Reduce the raw statistics to the sufficient statistics of a model.

The raw statistics distinguish 18 substitution types
and 6 dwell states of the focus site (see the timeline module).
Two groupings of these are used.
.
The gtr grouping ignores the CpG context.
It has 12 directed substitution types
G->C, G->T, G->A, C->G, C->T, C->A, T->G, T->C, T->A, A->G, A->C, A->T
and 4 states G, C, T, A.
.
The cpg grouping pools the strand symmetric substitution types.
It has 9 types
non-CpG G<->C, non-CpG G->T C->A, non-CpG T<->A, non-CpG T->G A->C,
non-CpG G->A C->T, non-CpG A->G T->C,
CpG G<->C, CpG G->T C->A, CpG G->A C->T
and 3 states non-CpG G or C, non-CpG T or A, CpG.
.
Each reduced type has an originating state
whose dwell proportion enters the likelihood.
"""

from collections import namedtuple

import numpy as np


ReducedStats = namedtuple('ReducedStats', 'variant counts props origin')

Grouping = namedtuple('Grouping', 'change_groups state_groups origin')

GTR = 'gtr'

CPG = 'cpg'

GROUPINGS = {
        GTR : Grouping(
            change_groups=(
                (0, 12), (2, 14), (8, 16),
                (1, 13), (9, 17), (3, 15),
                (6,), (11,), (4,),
                (10,), (7,), (5,)),
            state_groups=((0, 4), (1, 5), (2,), (3,)),
            origin=(0, 0, 0, 1, 1, 1, 2, 2, 2, 3, 3, 3)),
        CPG : Grouping(
            change_groups=(
                (0, 1), (2, 3), (4, 5),
                (6, 7), (8, 9), (10, 11),
                (12, 13), (14, 15), (16, 17)),
            state_groups=((0, 1), (2, 3), (4, 5)),
            origin=(0, 0, 1, 1, 0, 1, 2, 2, 2)),
        }


def collapse(M, groups):
    """
    Sum groups of rows along the second axis.
    @param M: array with shape (nbranches, nraw, ndraws)
    @param groups: a tuple of raw indices for each reduced index
    @return: array with shape (nbranches, len(groups), ndraws)
    """
    return np.stack([M[:, list(g), :].sum(axis=1) for g in groups], axis=1)


def reduce_statistics(raw, variant):
    """
    @param raw: a windowstats.RawStats
    @param variant: 'gtr' or 'cpg'
    @return: a ReducedStats
    """
    if variant not in GROUPINGS:
        raise ValueError('unknown variant %s' % variant)
    grouping = GROUPINGS[variant]
    counts = collapse(raw.counts, grouping.change_groups)
    props = collapse(raw.props, grouping.state_groups)
    return ReducedStats(variant, counts, props, grouping.origin)
