"""
Weigh each posterior draw by a fixed general time-reversible rate model.

For a draw c the log likelihood of the mapped histories is
sum over branches j and substitution types k of
N[j,k,c] log(mu[k] t[j]) - mu[k] t[j] phi[j,b(k),c]
where N is the number of substitutions of type k on branch j,
t is the branch length, phi is the proportion of the branch spent
in the originating state b(k) of type k, and mu is the directed rate.
This does not require matrix exponentials.
A term is skipped entirely if its count or its dwell proportion is zero.
.
Parameter file format.
The first line has the equilibrium frequencies of G, C, T, A.
The second line has the exchangeabilities GC, GT, GA, CT, CA, TA.
"""

from collections import namedtuple

import numpy as np

import cpgmaputil
from cpgmaputil import FormatError
import sufficient


GTRParameters = namedtuple('GTRParameters', 'distn exchangeability')

NSTATES = 4

NEXCHANGEABILITIES = 6

# (exchangeability index, destination state index) for each directed rate
# in the order of the gtr substitution types
RATE_FACTORS = (
        (0, 1), (1, 2), (2, 3),
        (0, 0), (3, 2), (4, 3),
        (1, 0), (3, 1), (5, 3),
        (2, 0), (4, 1), (5, 2),
        )


def _parse_floats(line, n, name):
    elements = line.split()
    if len(elements) != n:
        raise FormatError(
                'expected %d values for %s but found %d' % (
                    n, name, len(elements)))
    try:
        return np.array([float(x) for x in elements])
    except ValueError as e:
        raise FormatError('non-numeric value for %s' % name) from e


def read_gtr_parameters(fin):
    """
    @param fin: open parameter file
    @return: a GTRParameters
    """
    lines = fin.read().splitlines()
    if len(lines) < 2:
        raise FormatError('expected two lines of parameter values')
    distn = _parse_floats(lines[0], NSTATES, 'the frequencies')
    R = _parse_floats(lines[1], NEXCHANGEABILITIES, 'the exchangeabilities')
    cpgmaputil.assert_stochastic_vector(distn)
    if np.any(R < 0):
        raise FormatError('exchangeabilities should be non-negative')
    return GTRParameters(distn, R)


def get_directed_rates(distn, R):
    """
    @param distn: equilibrium frequencies of G, C, T, A
    @param R: exchangeabilities GC, GT, GA, CT, CA, TA
    @return: the 12 directed rates in order of the gtr substitution types
    """
    return np.array([R[r] * distn[s] for r, s in RATE_FACTORS])


def get_log_likelihoods(params, reduced, blens, root_counts=None):
    """
    Compute the log likelihood of each draw.
    The root state term is included only if root counts are given.
    @param params: a GTRParameters
    @param reduced: a sufficient.ReducedStats of the gtr variant
    @param blens: branch lengths
    @param root_counts: array with shape (4, ndraws) or None
    @return: array with one log likelihood per draw
    """
    if reduced.variant != sufficient.GTR:
        raise ValueError('expected the gtr sufficient statistics')
    N = reduced.counts
    phi = reduced.props[:, list(reduced.origin), :]
    mu = get_directed_rates(params.distn, params.exchangeability)
    blens = np.asarray(blens, dtype=float)

    # expected number of substitutions of each type along each branch
    mut = np.outer(blens, mu)[:, :, np.newaxis]

    # skip the terms without support
    mask = (N != 0) & (phi != 0)
    with np.errstate(divide='ignore', invalid='ignore'):
        terms = N * np.log(mut) - mut * phi
    terms = np.where(mask, terms, 0.0)
    log_likelihoods = terms.sum(axis=(0, 1))

    # optionally add the contribution of the root states
    if root_counts is not None:
        root_counts = np.asarray(root_counts)
        with np.errstate(divide='ignore', invalid='ignore'):
            root_terms = root_counts * np.log(params.distn)[:, np.newaxis]
        root_terms = np.where(root_counts != 0, root_terms, 0.0)
        log_likelihoods = log_likelihoods + root_terms.sum(axis=0)

    return log_likelihoods
