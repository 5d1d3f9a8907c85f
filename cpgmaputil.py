"""
This is a module for miscellaneous reusable functions.
"""

import itertools
import argparse

import numpy as np


class FormatError(Exception):
    """
    An input file does not have the expected layout.
    """


###############################################################################
# Standard itertools recipes.

def pairwise(iterable):
    """
    This is an itertools recipe.
    s -> (s0,s1), (s1,s2), (s2, s3), ...
    """
    a, b = itertools.tee(iterable)
    next(b, None)
    return zip(a, b)


###############################################################################
# Extra types for argparse.

def nonneg_int(x):
    x = int(x)
    if x < 0:
        raise argparse.ArgumentTypeError(
                'value must be a non-negative integer')
    return x

def pos_int(x):
    x = int(x)
    if x < 1:
        raise argparse.ArgumentTypeError(
                'value must be a positive integer')
    return x


###############################################################################
# Validation of invariants related to stochastic processes.

def assert_stochastic_vector(v):
    v = np.asarray(v)
    if np.any(v < 0) or np.any(1 < v):
        raise FormatError(
                'entries of a finite distribution vector should be in '
                'the inclusive interval [0, 1] '
                'min: %s  max: %s' % (min(v), max(v)))
    if not np.allclose(np.sum(v), 1):
        raise FormatError(
                'entries of a finite distribution vector should sum to 1')


###############################################################################
# Functions for lists of durations.

def cumulative_times(durations):
    """
    Convert consecutive durations into the times at which they end.
    e.g. given [1, 2, 3] this returns [1, 3, 6]
    @param durations: sequence of non-negative durations
    @return: list of python floats
    """
    return list(itertools.accumulate(float(d) for d in durations))
