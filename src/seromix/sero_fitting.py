"""
===========================================================
sero_fitting.py
Author: Veronica Scerra
Last Updated: 2026-03-09
===========================================================
Serosurvey calibration for the multi-group SEIR model
======================================================

Fits one positive multiplier per demographic group by maximum
likelihood against cross-sectional seroprevalence:

    NLL(x) = -sum_i log Binom(positive_i; tested_i, R_i(T) / N_i)

where R_i(T) comes from building the contact matrix at x,
integrating the SEIR system from the scenario's initial state to
the survey time T, and reading off the removed compartment.

Modes:
    "activity"        x replaces the group activities in the
                      contact matrix (contact_matrix.py)
    "susceptibility"  x feeds a caller-supplied matrix builder

Notes:
    - The matrix is used unscaled (scaling factor 1) by default.
      Cross-sectional seroprevalence cannot separate R0 from the
      overall activity level, so the raw scale of x absorbs it.
    - The fitted vector is divided by its first entry before it is
      reported, so the reference group is exactly 1. This is a
      reporting convention; it does not make the scale identifiable.
    - Numerical failures at a trial point (degenerate spectrum,
      solver divergence, negative compartments) score a large
      penalty instead of aborting the search.
-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations
import logging
import warnings
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import minimize
from scipy.stats import binom

from .contact_matrix import build_contact_matrix
from .errors import (DegenerateSpectrum, IntegrationDivergence, InvalidParameter,
                     ModelNotRecognized, PhysicalInvariantViolation)
from .reproduction import calibrate_r0, scale_matrix
from .scenario import PopulationContext, SeroObservation
from .seir_groups import SolverSettings, integrate
from .utils.logging import log_call

logger = logging.getLogger(__name__)

MatrixBuilder = Callable[[np.ndarray, np.ndarray, float, float], np.ndarray]

MODES = ("activity", "susceptibility")
DEFAULT_BOUNDS = (1e-4, 20.0)
PENALTY = 1e10
PROB_CLIP = 1e-12


@dataclass
class CalibrationResult:
    parameters: np.ndarray          # normalized, parameters[0] == 1
    raw_parameters: np.ndarray      # optimizer scale
    converged: bool
    neg_log_likelihood: float
    aic: float
    bic: float
    n_evaluations: int
    message: str
    mode: str

    def to_dict(self) -> dict:
        return {"parameters": self.parameters, "converged": self.converged}


class SeroCalibrationEngine:
    """
    Maximum-likelihood fit of per-group multipliers to serosurvey counts.

    The engine holds only immutable inputs; every objective evaluation
    rebuilds the contact matrix and trajectory from its arguments.
    """

    def __init__(
            self,
            population_context: PopulationContext,
            observation: SeroObservation,
            r: float,
            gamma: float,
            epsilon: float,
            survey_time: float,
            mode: str = "activity",
            matrix_builder: Optional[MatrixBuilder] = None,
            r0_target: Optional[float] = None,
            settings: Optional[SolverSettings] = None,
    ):
        if mode not in MODES:
            raise ModelNotRecognized(mode)
        if mode == "susceptibility" and matrix_builder is None:
            raise InvalidParameter(
                "susceptibility mode needs a matrix_builder(values, population_fraction, N, epsilon)"
            )
        if observation.n_groups != population_context.n_groups:
            raise InvalidParameter("observation and population context have different group counts")
        if not survey_time > 0:
            raise InvalidParameter("survey time must be positive")
        if not 0.0 <= epsilon <= 1.0:
            raise InvalidParameter(f"assortativity epsilon must be in [0, 1], got {epsilon}")

        self.context = population_context
        self.observation = observation
        self.r = r
        self.gamma = gamma
        self.epsilon = epsilon
        self.survey_time = float(survey_time)
        self.mode = mode
        self.matrix_builder = matrix_builder or build_contact_matrix
        self.r0_target = r0_target
        self.settings = settings or SolverSettings()

        self._f = population_context.population_fraction
        self._N = population_context.total_population
        self._sizes = population_context.group_sizes
        self._y0 = population_context.initial_state()
        self._k = observation.positive
        self._n = observation.tested

    def transmission_matrix(self, values: np.ndarray) -> np.ndarray:
        """Matrix actually integrated at a trial point (R0-scaled if a target was given)."""
        beta = self.matrix_builder(np.asarray(values, dtype=float), self._f, self._N, self.epsilon)
        if self.r0_target is None:
            return beta
        s = calibrate_r0(beta, self.gamma, self._f, self._N, self.r0_target)
        return scale_matrix(beta, s)

    def predicted_seroprevalence(self, values: Sequence[float]) -> np.ndarray:
        """Model R_i(T) / N_i at the survey time."""
        beta = self.transmission_matrix(values)
        traj = integrate(self._y0, self.r, self.gamma, beta,
                         [0.0, self.survey_time], settings=self.settings)
        return traj.R[-1] / self._sizes

    def negative_log_likelihood(self, values: np.ndarray) -> float:
        try:
            p = self.predicted_seroprevalence(values)
        except (DegenerateSpectrum, IntegrationDivergence, PhysicalInvariantViolation) as e:
            logger.debug("penalising trial point %s: %s", np.asarray(values), e)
            return PENALTY
        p = np.clip(p, PROB_CLIP, 1.0 - PROB_CLIP)
        return float(-binom.logpmf(self._k, self._n, p).sum())

    def _optimizer_options(self, method: str, max_iterations: int, max_evaluations: int) -> dict:
        if method == "Nelder-Mead":
            return {"maxiter": max_iterations, "maxfev": max_evaluations,
                    "xatol": 1e-6, "fatol": 1e-7, "adaptive": True}
        if method == "Powell":
            return {"maxiter": max_iterations, "maxfev": max_evaluations, "xtol": 1e-6, "ftol": 1e-10}
        if method == "L-BFGS-B":
            return {"maxiter": max_iterations, "maxfun": max_evaluations}
        if method == "TNC":
            return {"maxfun": max_evaluations}
        raise InvalidParameter(
            f"unsupported optimizer {method!r}; use Nelder-Mead, Powell, L-BFGS-B or TNC"
        )

    @log_call
    def fit(
            self,
            initial_guess: Optional[Sequence[float]] = None,
            bounds: Optional[Sequence[Tuple[float, float]]] = None,
            method: str = "Nelder-Mead",
            max_iterations: int = 5000,
            max_evaluations: int = 10000,
    ) -> CalibrationResult:
        """
        Run the bounded optimizer.

        Args:
            initial_guess: starting vector (defaults to ones).
            bounds: per-parameter (low, high); defaults to (1e-4, 20) each.
            method: scipy.optimize.minimize method with bound support.
            max_iterations, max_evaluations: hard caps on the search.

        Returns:
            CalibrationResult; converged=False (with a warning) if the
            optimizer stopped before meeting its tolerance.
        """
        G = self.context.n_groups
        x0 = np.ones(G) if initial_guess is None else np.asarray(initial_guess, dtype=float)
        if bounds is None:
            bounds = [DEFAULT_BOUNDS] * G
        bounds = [(float(lo), float(hi)) for lo, hi in bounds]
        if x0.shape != (G,) or len(bounds) != G:
            raise InvalidParameter("initial guess and bounds need one entry per group")
        lo, hi = np.array(bounds).T
        if np.any(lo <= 0) or np.any(hi <= lo):
            raise InvalidParameter("bounds must be strictly positive intervals")
        if np.any(x0 < lo) or np.any(x0 > hi):
            raise InvalidParameter("initial guess lies outside the bounds")

        options = self._optimizer_options(method, max_iterations, max_evaluations)
        best = {"x": x0.copy(), "fun": np.inf}

        def objective(x: np.ndarray) -> float:
            val = self.negative_log_likelihood(x)
            if val < best["fun"]:
                best["x"], best["fun"] = np.array(x, dtype=float), val
                logger.debug("new best NLL %.6f at %s", val, best["x"])
            return val

        result = minimize(objective, x0=x0, method=method, bounds=bounds, options=options)

        raw = np.asarray(result.x, dtype=float)
        nll = float(result.fun)
        if best["fun"] < nll:
            raw, nll = best["x"], float(best["fun"])
        converged = bool(result.success) and nll < PENALTY
        if not converged:
            warnings.warn(f"calibration did not converge: {result.message}", RuntimeWarning)

        k = G
        n_data = self.observation.n_groups
        result_info = CalibrationResult(
            parameters=raw / raw[0],
            raw_parameters=raw,
            converged=converged,
            neg_log_likelihood=nll,
            aic=2 * k + 2 * nll,
            bic=k * np.log(n_data) + 2 * nll,
            n_evaluations=int(getattr(result, "nfev", 0)),
            message=str(result.message),
            mode=self.mode,
        )
        logger.info("calibration (%s) finished: converged=%s NLL=%.4f after %d evaluations",
                    self.mode, converged, nll, result_info.n_evaluations)
        return result_info


def fit_parameters(
        population_context: PopulationContext,
        observation: SeroObservation,
        r: float,
        gamma: float,
        epsilon: float,
        survey_time: float,
        mode: str = "activity",
        initial_guess: Optional[Sequence[float]] = None,
        bounds: Optional[Sequence[Tuple[float, float]]] = None,
        **kwargs,
) -> CalibrationResult:
    """
    Functional entry point for SeroCalibrationEngine.

    Extra keyword arguments go to the engine (matrix_builder, r0_target,
    settings) or to fit() (method, max_iterations, max_evaluations).
    """
    engine_keys = {"matrix_builder", "r0_target", "settings"}
    engine_kwargs = {k: v for k, v in kwargs.items() if k in engine_keys}
    fit_kwargs = {k: v for k, v in kwargs.items() if k not in engine_keys}
    engine = SeroCalibrationEngine(
        population_context, observation, r=r, gamma=gamma, epsilon=epsilon,
        survey_time=survey_time, mode=mode, **engine_kwargs,
    )
    return engine.fit(initial_guess=initial_guess, bounds=bounds, **fit_kwargs)
