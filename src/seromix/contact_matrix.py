"""
===========================================================
contact_matrix.py
Author: Veronica Scerra
Last Updated: 2026-03-02
===========================================================

Description:
    Group-to-group transmission matrix for heterogeneous mixing.

        beta[i, j] = (1 - eps) * a_i * a_j / sum_k(N * f_k * a_k)
                     + eps * a_i / (N * f_i) * [i == j]

    a = relative activity per group, f = population fraction,
    eps = assortativity (0 = proportionate mixing, 1 = contacts
    confined to one's own group).

Notes:
    - Unscaled: the overall level is fixed later by the R0
      calibration in reproduction.py.
    - Called inside the optimizer loop, so it is fully vectorized.
-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations
from typing import Sequence

import numpy as np

from .errors import InvalidParameter


def validate_mixing_inputs(values: Sequence[float], population_fraction: Sequence[float],
                           N: float, epsilon: float, name: str = "activities"):
    """Shared input checks; returns float arrays (values, fractions)."""
    a = np.asarray(values, dtype=float)
    f = np.asarray(population_fraction, dtype=float)
    if a.ndim != 1 or f.ndim != 1 or a.size != f.size or a.size == 0:
        raise InvalidParameter(f"{name} and population_fraction must be 1-D of equal length")
    if np.any(f <= 0) or not np.all(np.isfinite(f)):
        raise InvalidParameter("population fractions must be positive")
    if not np.all(np.isfinite(a)) or np.any(a <= 0):
        raise InvalidParameter(f"{name} must be positive")
    if not N > 0:
        raise InvalidParameter("population N must be positive")
    if not 0.0 <= epsilon <= 1.0:
        raise InvalidParameter(f"assortativity epsilon must be in [0, 1], got {epsilon}")
    return a, f


def build_contact_matrix(activities: Sequence[float], population_fraction: Sequence[float],
                         N: float, epsilon: float) -> np.ndarray:
    """Unscaled (G, G) transmission matrix; symmetric when epsilon == 0."""
    a, f = validate_mixing_inputs(activities, population_fraction, N, epsilon)
    group_sizes = N * f
    proportionate = np.outer(a, a) / np.dot(group_sizes, a)
    assortative = np.diag(a / group_sizes)
    return (1.0 - epsilon) * proportionate + epsilon * assortative
