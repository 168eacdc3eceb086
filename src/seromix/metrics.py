"""
===========================================================
metrics.py
Author: Veronica Scerra
Last Updated: 2026-03-05
===========================================================

Description:
    Summary statistics derived from a completed multi-group
    trajectory: final epidemic size, the effective reproduction
    number Rt(t), and the herd immunity threshold (HIT).

    Rt(t) is the dominant eigenvalue of
        diag(S(t)) @ beta_unscaled / s / gamma
    i.e. the next-generation matrix with the current susceptible
    pool in place of the initial population.

    The HIT is read at the sampled point whose Rt is the largest
    value not exceeding 1, which for a declining Rt is the first
    point at or past the threshold.

Example Usage:
    from seromix.metrics import compute_metrics
    summary = compute_metrics(traj, beta, s, gamma, N, f)
    summary.final_size, summary.hit_overall
-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple, Union

import numpy as np

from .errors import InvalidParameter, ThresholdNotReached
from .reproduction import dominant_eigenvalue
from .seir_groups import Trajectory
from .utils.logging import log_call


@dataclass
class EpidemicSummary:
    final_size: float
    final_size_per_group: np.ndarray
    rt_series: np.ndarray
    hit_overall: float
    hit_per_group: np.ndarray
    hit_time: float
    hit_index: int
    peak_time: float
    peak_prevalence: float

    def to_dict(self) -> Dict[str, Union[float, np.ndarray]]:
        return {
            "final_size": self.final_size,
            "rt_series": self.rt_series,
            "hit_overall": self.hit_overall,
            "hit_per_group": self.hit_per_group,
        }


def homogeneous_hit(r0: float) -> float:
    """Classical single-group threshold 1 - 1/R0, for comparison."""
    return max(0.0, 1.0 - 1.0 / r0)


def final_size(trajectory: Trajectory, N: float) -> float:
    return float(trajectory.R[-1].sum() / N)


def effective_reproduction_series(trajectory: Trajectory, beta_unscaled: np.ndarray,
                                  scaling_factor: float,
                                  gamma: Union[float, Sequence[float]]) -> np.ndarray:
    """Rt at every time point of the trajectory (one stacked eigen-solve)."""
    beta = np.asarray(beta_unscaled, dtype=float)
    G = trajectory.n_groups
    if beta.shape != (G, G):
        raise InvalidParameter(f"beta has shape {beta.shape}, expected ({G}, {G})")
    if not scaling_factor > 0:
        raise InvalidParameter("scaling factor must be positive")
    gamma = np.broadcast_to(np.asarray(gamma, dtype=float), (G,))
    base = beta / scaling_factor / gamma[None, :]
    ngm = trajectory.S[:, :, None] * base[None, :, :]
    return np.atleast_1d(dominant_eigenvalue(ngm))


def herd_immunity_threshold(trajectory: Trajectory, rt_series: np.ndarray,
                            N: float, population_fraction: Sequence[float]
                            ) -> Tuple[float, np.ndarray, int]:
    """
    (overall HIT, per-group HIT, index of the selected time point).

    Raises ThresholdNotReached if Rt never falls to 1 or below.
    """
    rt = np.asarray(rt_series, dtype=float)
    f = np.asarray(population_fraction, dtype=float)
    if f.shape != (trajectory.n_groups,):
        raise InvalidParameter("population_fraction needs one entry per group")
    if rt.shape != trajectory.t.shape:
        raise InvalidParameter("rt_series must have one value per time point")
    below = rt <= 1.0
    if not below.any():
        raise ThresholdNotReached(last_rt=float(rt[-1]), t_end=float(trajectory.t[-1]))
    # argmax returns the earliest index among ties
    k = int(np.argmax(np.where(below, rt, -np.inf)))
    S = trajectory.S[k]
    sizes = N * f
    overall = 1.0 - S.sum() / N
    per_group = 1.0 - S / sizes
    return float(overall), per_group, k


@log_call
def compute_metrics(trajectory: Trajectory, beta_unscaled: np.ndarray, scaling_factor: float,
                    gamma: Union[float, Sequence[float]], N: float,
                    population_fraction: Sequence[float]) -> EpidemicSummary:
    """All trajectory-derived metrics in one pass."""
    if not N > 0:
        raise InvalidParameter("population N must be positive")
    rt = effective_reproduction_series(trajectory, beta_unscaled, scaling_factor, gamma)
    hit, hit_groups, k = herd_immunity_threshold(trajectory, rt, N, population_fraction)

    sizes = N * np.asarray(population_fraction, dtype=float)
    prevalence = trajectory.I.sum(axis=1) / N
    peak = int(np.argmax(prevalence))
    return EpidemicSummary(
        final_size=final_size(trajectory, N),
        final_size_per_group=trajectory.R[-1] / sizes,
        rt_series=rt,
        hit_overall=hit,
        hit_per_group=hit_groups,
        hit_time=float(trajectory.t[k]),
        hit_index=k,
        peak_time=float(trajectory.t[peak]),
        peak_prevalence=float(prevalence[peak]),
    )
