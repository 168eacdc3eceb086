"""
===========================================================
reproduction.py
Author: Veronica Scerra
Last Updated: 2026-03-03
===========================================================

Description:
    Next-generation matrix (NGM) and R0 calibration for the
    multi-group SEIR model.

        M[i, j] = N * f_i * beta[i, j] / gamma_j

    M[i, j] is the expected number of infections in group i caused
    by one infectious individual of group j in a fully susceptible
    population. Its dominant eigenvalue is R0.

API:
    next_generation_matrix(beta, gamma, f, N) -> (G, G) array
    dominant_eigenvalue(M) -> float (or array for stacked M)
    calibrate_r0(beta, gamma, f, N, r0_target) -> scaling factor s
    scale_matrix(beta, s) -> beta / s

Notes:
    - beta-derived matrices are non-negative, so by Perron-Frobenius
      the eigenvalue with the largest real part is real and equals
      the spectral radius. We select it explicitly rather than
      relying on the solver's ordering, and reject it if it comes
      back complex or non-positive.
    - M is not symmetric in general (eps > 0, unequal f), so the
      general eigen-solver is used, never eigvalsh.
-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations
from typing import Sequence, Union

import numpy as np

from .errors import DegenerateSpectrum, InvalidParameter

IMAG_TOL = 1e-8


def next_generation_matrix(beta: np.ndarray, gamma: Union[float, Sequence[float]],
                           population_fraction: Sequence[float], N: float) -> np.ndarray:
    beta = np.asarray(beta, dtype=float)
    f = np.asarray(population_fraction, dtype=float)
    gamma = np.broadcast_to(np.asarray(gamma, dtype=float), f.shape)
    if beta.shape != (f.size, f.size):
        raise InvalidParameter(f"beta has shape {beta.shape}, expected ({f.size}, {f.size})")
    if np.any(gamma <= 0):
        raise InvalidParameter("recovery rate gamma must be positive")
    if not N > 0:
        raise InvalidParameter("population N must be positive")
    return (N * f)[:, None] * beta / gamma[None, :]


def dominant_eigenvalue(M: np.ndarray) -> Union[float, np.ndarray]:
    """
    Perron root of M, or of each matrix in a stacked (..., G, G) array.

    Raises DegenerateSpectrum if the selected eigenvalue is not finite,
    has a non-negligible imaginary part, or is not strictly positive.
    """
    M = np.asarray(M, dtype=float)
    if not np.all(np.isfinite(M)):
        raise DegenerateSpectrum("matrix contains non-finite entries")
    eig = np.linalg.eigvals(M)
    lead = np.take_along_axis(eig, np.argmax(eig.real, axis=-1)[..., None], axis=-1)[..., 0]
    scale = np.maximum(1.0, np.abs(lead))
    if np.any(np.abs(lead.imag) > IMAG_TOL * scale):
        bad = lead[np.abs(lead.imag) > IMAG_TOL * scale].flat[0]
        raise DegenerateSpectrum(f"dominant eigenvalue {bad} is not real", eigenvalue=bad)
    values = lead.real
    if np.any(values <= 0):
        bad = values[values <= 0].flat[0]
        raise DegenerateSpectrum(f"dominant eigenvalue {bad} is not positive", eigenvalue=bad)
    return float(values) if values.ndim == 0 else values


def basic_reproduction_number(beta: np.ndarray, gamma: Union[float, Sequence[float]],
                              population_fraction: Sequence[float], N: float) -> float:
    return dominant_eigenvalue(next_generation_matrix(beta, gamma, population_fraction, N))


def calibrate_r0(beta: np.ndarray, gamma: Union[float, Sequence[float]],
                 population_fraction: Sequence[float], N: float, r0_target: float) -> float:
    """Scaling factor s such that beta / s has basic reproduction number r0_target."""
    if not r0_target > 0:
        raise InvalidParameter(f"target R0 must be positive, got {r0_target}")
    lam = basic_reproduction_number(beta, gamma, population_fraction, N)
    return lam / r0_target


def scale_matrix(beta: np.ndarray, scaling_factor: float) -> np.ndarray:
    if not scaling_factor > 0:
        raise InvalidParameter("scaling factor must be positive")
    return np.asarray(beta, dtype=float) / scaling_factor
