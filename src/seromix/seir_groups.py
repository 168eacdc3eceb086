"""
===========================================================
seir_groups.py
Author: Veronica Scerra
Last Updated: 2026-03-04
===========================================================

Description:
    Multi-group deterministic SEIR model integrated with scipy.

    Each group i follows S -> E -> I -> R with force of infection
        lambda_i = sum_j beta[i, j] * I_j

        dS_i = -lambda_i * S_i
        dE_i =  lambda_i * S_i - r * E_i
        dI_i =  r * E_i - gamma * I_i
        dR_i =  gamma * I_i

API:
    integrate(initial_state, r, gamma, beta_scaled, time_grid, settings=None)
        -> Trajectory

Notes:
    - r: progression rate E->I  [1/r = mean latent period]
    - gamma: removal rate       [1/gamma = mean infectious period]
    - r and gamma may be scalars or per-group arrays.
    - Default solver is LSODA, which switches between non-stiff and
      stiff methods on its own; an analytic Jacobian is supplied.
-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations
import logging
import warnings
from dataclasses import dataclass, field
from typing import Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.integrate import solve_ivp

from .errors import IntegrationDivergence, InvalidParameter, PhysicalInvariantViolation
from .utils.logging import log_call

logger = logging.getLogger(__name__)

COMPARTMENTS = ("S", "E", "I", "R")
IMPLICIT_METHODS = ("LSODA", "BDF", "Radau")

Rate = Union[float, np.ndarray]


@dataclass(frozen=True)
class SolverSettings:
    """Numerical settings for one integration.

    method: any solve_ivp method name; LSODA handles the stiff tail of the
        epidemic without user intervention.
    min_step: LSODA only. The solver reports failure instead of shrinking
        the step below this value.
    negative_tolerance: compartments down to -negative_tolerance * N_i are
        treated as roundoff and clamped to zero.
    """
    method: str = "LSODA"
    rtol: float = 1e-8
    atol: float = 1e-6
    max_step: float = np.inf
    min_step: float = 0.0
    negative_tolerance: float = 1e-6

    def solver_options(self) -> dict:
        options = {"rtol": self.rtol, "atol": self.atol, "max_step": self.max_step}
        if self.method == "LSODA" and self.min_step > 0:
            options["min_step"] = self.min_step
        return options


@dataclass(frozen=True)
class CompartmentState:
    """S, E, I, R counts per group at one instant."""
    S: np.ndarray
    E: np.ndarray
    I: np.ndarray
    R: np.ndarray

    def __post_init__(self):
        arrays = [np.atleast_1d(np.asarray(getattr(self, c), dtype=float)) for c in COMPARTMENTS]
        if len({a.shape for a in arrays}) != 1 or arrays[0].ndim != 1:
            raise InvalidParameter("S, E, I, R must be 1-D arrays of equal length")
        if any(np.any(a < 0) for a in arrays):
            raise InvalidParameter("compartment counts must be non-negative")
        for name, arr in zip(COMPARTMENTS, arrays):
            object.__setattr__(self, name, arr)

    @property
    def n_groups(self) -> int:
        return self.S.size

    @property
    def total(self) -> np.ndarray:
        """Group sizes N_i = S_i + E_i + I_i + R_i."""
        return self.S + self.E + self.I + self.R

    def to_vector(self) -> np.ndarray:
        return np.concatenate([self.S, self.E, self.I, self.R])

    @classmethod
    def from_vector(cls, y: np.ndarray) -> "CompartmentState":
        S, E, I, R = np.split(np.asarray(y, dtype=float), 4)
        return cls(S=S, E=E, I=I, R=R)


@dataclass(frozen=True)
class Trajectory:
    """Compartment counts on a time grid; each compartment has shape (len(t), G)."""
    t: np.ndarray
    S: np.ndarray
    E: np.ndarray
    I: np.ndarray
    R: np.ndarray
    group_names: Tuple[str, ...] = field(default=())

    def __post_init__(self):
        if not self.group_names:
            names = tuple(f"group_{i}" for i in range(self.S.shape[1]))
            object.__setattr__(self, "group_names", names)

    @property
    def n_groups(self) -> int:
        return self.S.shape[1]

    @property
    def group_sizes(self) -> np.ndarray:
        return self.totals()[0]

    def totals(self) -> np.ndarray:
        """Per time point, per group population (should be constant in t)."""
        return self.S + self.E + self.I + self.R

    def state_at(self, k: int) -> CompartmentState:
        return CompartmentState(S=self.S[k], E=self.E[k], I=self.I[k], R=self.R[k])

    def to_dataframe(self) -> pd.DataFrame:
        """Tidy long table (t, group, compartment, count) for plotting and reports."""
        frames = []
        for comp in COMPARTMENTS:
            wide = pd.DataFrame(getattr(self, comp), columns=list(self.group_names))
            wide["t"] = self.t
            long = wide.melt(id_vars="t", var_name="group", value_name="count")
            long["compartment"] = comp
            frames.append(long)
        df = pd.concat(frames, ignore_index=True)
        return df[["t", "group", "compartment", "count"]]


def _rhs(t: float, y: np.ndarray, beta: np.ndarray, r: np.ndarray, gamma: np.ndarray) -> np.ndarray:
    S, E, I, R = np.split(y, 4)
    force = beta @ I                 # force of infection per group
    new_inf = force * S
    dS = -new_inf
    dE = new_inf - r * E
    dI = r * E - gamma * I
    dR = gamma * I
    return np.concatenate([dS, dE, dI, dR])


def _jacobian(t: float, y: np.ndarray, beta: np.ndarray, r: np.ndarray, gamma: np.ndarray) -> np.ndarray:
    G = beta.shape[0]
    S, _, I, _ = np.split(y, 4)
    force = beta @ I
    s, e, i, rec = (np.arange(G) + k * G for k in range(4))
    J = np.zeros((4 * G, 4 * G))
    J[s, s] = -force
    J[s[:, None], i] = -beta * S[:, None]
    J[e, s] = force
    J[e, e] = -r
    J[e[:, None], i] = beta * S[:, None]
    J[i, e] = r
    J[i, i] = -gamma
    J[rec, i] = gamma
    return J


def _check_grid(time_grid: Sequence[float]) -> np.ndarray:
    t = np.asarray(time_grid, dtype=float)
    if t.ndim != 1 or t.size < 2:
        raise InvalidParameter("time grid must be 1-D with at least two points")
    if not np.all(np.isfinite(t)) or np.any(np.diff(t) <= 0):
        raise InvalidParameter("time grid must be finite and strictly increasing")
    return t


def _as_rate(value: Rate, G: int, name: str) -> np.ndarray:
    arr = np.broadcast_to(np.asarray(value, dtype=float), (G,)).copy()
    if np.any(arr <= 0) or not np.all(np.isfinite(arr)):
        raise InvalidParameter(f"{name} must be positive and finite")
    return arr


def _enforce_nonnegative(t: np.ndarray, y: np.ndarray, sizes: np.ndarray, tol: float) -> np.ndarray:
    """Clamp roundoff-level negatives to 0; raise on anything larger."""
    G = sizes.size
    floor = -tol * np.tile(sizes, 4)
    bad = np.argwhere(y < floor[:, None])
    if bad.size:
        row, col = bad[np.argmin(bad[:, 1])]
        raise PhysicalInvariantViolation(
            time=float(t[col]), group=int(row % G),
            compartment=COMPARTMENTS[row // G], value=float(y[row, col]),
        )
    if np.any(y < 0):
        warnings.warn(
            f"clamping {int(np.sum(y < 0))} roundoff-level negative compartment values "
            f"(min {y.min():.3g}) to zero",
            RuntimeWarning,
        )
        y = np.maximum(y, 0.0)
    return y


@log_call
def integrate(
        initial_state: CompartmentState,
        r: Rate,
        gamma: Rate,
        beta_scaled: np.ndarray,
        time_grid: Sequence[float],
        settings: SolverSettings | None = None,
        group_names: Sequence[str] = (),
) -> Trajectory:
    """
    Integrate the multi-group SEIR system over ``time_grid``.

    Args:
        initial_state: compartment counts at time_grid[0].
        r, gamma: progression and removal rates (scalar or per group).
        beta_scaled: (G, G) transmission matrix, already divided by the
            R0 scaling factor.
        time_grid: strictly increasing output times.
        settings: solver tolerances and limits; SolverSettings() if None.

    Returns:
        Trajectory sampled at every point of time_grid.

    Raises:
        InvalidParameter: inconsistent shapes, bad rates or time grid.
        IntegrationDivergence: solver could not keep its error tolerance.
        PhysicalInvariantViolation: a compartment went negative beyond roundoff.
    """
    settings = settings or SolverSettings()
    t = _check_grid(time_grid)
    beta = np.asarray(beta_scaled, dtype=float)
    G = initial_state.n_groups
    if beta.shape != (G, G):
        raise InvalidParameter(f"beta has shape {beta.shape}, expected ({G}, {G})")
    if np.any(beta < 0) or not np.all(np.isfinite(beta)):
        raise InvalidParameter("beta must be finite and non-negative")
    r_vec = _as_rate(r, G, "r")
    gamma_vec = _as_rate(gamma, G, "gamma")

    options = settings.solver_options()
    if settings.method in IMPLICIT_METHODS:
        options["jac"] = _jacobian
    solution = solve_ivp(
        fun=_rhs,
        t_span=(t[0], t[-1]),
        y0=initial_state.to_vector(),
        method=settings.method,
        t_eval=t,
        args=(beta, r_vec, gamma_vec),
        **options,
    )
    if not solution.success or solution.y.shape[1] != t.size:
        last = float(solution.t[-1]) if solution.t.size else float(t[0])
        raise IntegrationDivergence(solution.message, last_time=last)
    logger.debug("%s finished with %d rhs evaluations", settings.method, solution.nfev)

    y = _enforce_nonnegative(t, solution.y, initial_state.total, settings.negative_tolerance)
    S, E, I, R = (block.T for block in np.split(y, 4))
    return Trajectory(t=t, S=S, E=E, I=I, R=R, group_names=tuple(group_names))
