"""
===========================================================
experiments.py
Author: Veronica Scerra
Last Updated: 2026-03-10
===========================================================

Description:
    End-to-end scenario runs and parameter sweeps for the
    multi-group SEIR model: build the contact matrix, calibrate
    it to R0, integrate, and summarise. Sweeps return tidy
    pandas DataFrames, one row per parameter value.

Example Usage:
    from seromix.experiments import run_scenario, assortativity_sweep
    run = run_scenario(context, params)
    df = assortativity_sweep(context, params, epsilons=[0, 0.25, 0.5])

Notes:
    - Rendering is left to the caller; these helpers only compute.
    - run_scenario doubles the horizon when Rt has not yet fallen
      to 1 (ThresholdNotReached), up to max_extensions times.
-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from .contact_matrix import build_contact_matrix
from .errors import ThresholdNotReached
from .metrics import EpidemicSummary, compute_metrics, homogeneous_hit
from .reproduction import calibrate_r0, scale_matrix
from .scenario import EpidemicParameters, PopulationContext
from .seir_groups import SolverSettings, Trajectory, integrate

logger = logging.getLogger(__name__)


@dataclass
class ScenarioRun:
    beta_unscaled: np.ndarray
    scaling_factor: float
    trajectory: Trajectory
    summary: EpidemicSummary


def run_scenario(
        context: PopulationContext,
        params: EpidemicParameters,
        t_max: float = 365.0,
        dt: float = 0.1,
        settings: Optional[SolverSettings] = None,
        max_extensions: int = 3,
) -> ScenarioRun:
    """Simulate a scenario at its current activities, R0-calibrated, and summarise it."""
    N = context.total_population
    f = context.population_fraction
    beta = build_contact_matrix(context.activities, f, N, params.assortativity)
    s = calibrate_r0(beta, params.gamma, f, N, params.r0)

    horizon = float(t_max)
    for attempt in range(max_extensions + 1):
        t = np.linspace(0.0, horizon, int(round(horizon / dt)) + 1)
        traj = integrate(context.initial_state(), params.r, params.gamma,
                         scale_matrix(beta, s), t,
                         settings=settings, group_names=context.names)
        try:
            summary = compute_metrics(traj, beta, s, params.gamma, N, f)
        except ThresholdNotReached as e:
            if attempt == max_extensions:
                raise
            logger.info("%s; retrying with horizon %.0f", e, 2 * horizon)
            horizon *= 2
            continue
        return ScenarioRun(beta_unscaled=beta, scaling_factor=s, trajectory=traj, summary=summary)


def group_summary(context: PopulationContext, summary: EpidemicSummary) -> pd.DataFrame:
    """Per-group table: size, activity, HIT and final attack rate."""
    return pd.DataFrame({
        "group": context.names,
        "population_fraction": context.population_fraction,
        "activity": context.activities,
        "hit": summary.hit_per_group,
        "final_attack_rate": summary.final_size_per_group,
    })


def _summarize_one(context, params, t_max, dt, settings):
    run = run_scenario(context, params, t_max=t_max, dt=dt, settings=settings)
    s = run.summary
    return {
        "epsilon": params.assortativity,
        "R0": params.r0,
        "final_size": s.final_size,
        "hit": s.hit_overall,
        "hit_homogeneous": homogeneous_hit(params.r0),
        "hit_time": s.hit_time,
        "peak_time": s.peak_time,
        "peak_prevalence": s.peak_prevalence,
    }


def assortativity_sweep(
        context: PopulationContext,
        params: EpidemicParameters,
        epsilons: Sequence[float],
        t_max: float = 365.0,
        dt: float = 0.1,
        settings: Optional[SolverSettings] = None,
) -> pd.DataFrame:
    """Final size and HIT as assortativity varies, other parameters fixed."""
    records = []
    for eps in epsilons:
        p = EpidemicParameters(latent_period=params.latent_period,
                               infectious_period=params.infectious_period,
                               r0=params.r0, assortativity=float(eps))
        records.append(_summarize_one(context, p, t_max, dt, settings))
    df = pd.DataFrame.from_records(records)
    return df.sort_values("epsilon").reset_index(drop=True)


def r0_sweep(
        context: PopulationContext,
        params: EpidemicParameters,
        r0_values: Sequence[float],
        t_max: float = 365.0,
        dt: float = 0.1,
        settings: Optional[SolverSettings] = None,
) -> pd.DataFrame:
    """Final size and HIT as R0 varies, next to the homogeneous-mixing HIT."""
    records = []
    for r0 in r0_values:
        p = EpidemicParameters(latent_period=params.latent_period,
                               infectious_period=params.infectious_period,
                               r0=float(r0), assortativity=params.assortativity)
        records.append(_summarize_one(context, p, t_max, dt, settings))
    df = pd.DataFrame.from_records(records)
    return df.sort_values("R0").reset_index(drop=True)
