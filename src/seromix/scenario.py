"""
===============================================================================
scenario.py
Author: Veronica Scerra
Last Updated: 2026-03-06
===============================================================================
Scenario inputs for the stratified SEIR engine

Typed containers handed to the engine by whatever loads census and
serosurvey tables, plus the epidemiological parameter set and the
reference Long Island scenario.

All rates are per day.

References:
    - Long Island serosurvey (NY State antibody testing, spring 2020),
      stratified by race/ethnicity
--------------------------------------------------------------------------------
License: MIT
================================================================================
"""
from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidParameter
from .seir_groups import CompartmentState

FRACTION_TOL = 1e-2  # census tables are rounded to three decimals


@dataclass(frozen=True)
class DemographicGroup:
    name: str
    population_fraction: float
    activity: float = 1.0
    initial_infected: float = 0.0


@dataclass(frozen=True)
class PopulationContext:
    """Total population plus its demographic groups; read-only once built."""
    total_population: float
    groups: Tuple[DemographicGroup, ...]

    def __post_init__(self):
        object.__setattr__(self, "groups", tuple(self.groups))
        if not self.total_population > 0:
            raise InvalidParameter("total population must be positive")
        if not self.groups:
            raise InvalidParameter("at least one demographic group is required")
        f = self.population_fraction
        # a single group legitimately holds the whole population
        too_large = np.any(f > 1.0) if f.size == 1 else np.any(f >= 1.0)
        if np.any(f <= 0) or too_large:
            raise InvalidParameter("population fractions must lie in (0, 1)")
        if abs(f.sum() - 1.0) > FRACTION_TOL:
            raise InvalidParameter(f"population fractions sum to {f.sum():.6f}, not 1")
        if np.any(self.activities <= 0):
            raise InvalidParameter("activities must be positive")
        seeds = self.initial_infected
        if np.any(seeds < 0) or np.any(seeds > self.group_sizes):
            raise InvalidParameter("initial infected must be between 0 and the group size")

    @classmethod
    def from_arrays(cls, total_population: float, population_fraction: Sequence[float],
                    activities: Optional[Sequence[float]] = None,
                    initial_infected: Optional[Sequence[float]] = None,
                    names: Optional[Sequence[str]] = None) -> "PopulationContext":
        f = np.asarray(population_fraction, dtype=float)
        G = f.size
        a = np.ones(G) if activities is None else np.asarray(activities, dtype=float)
        seeds = np.zeros(G) if initial_infected is None else np.asarray(initial_infected, dtype=float)
        names = list(names) if names is not None else [f"group_{i}" for i in range(G)]
        if not (a.size == seeds.size == len(names) == G):
            raise InvalidParameter("group vectors must all have the same length")
        groups = tuple(
            DemographicGroup(name=str(n), population_fraction=float(fi),
                             activity=float(ai), initial_infected=float(si))
            for n, fi, ai, si in zip(names, f, a, seeds)
        )
        return cls(total_population=float(total_population), groups=groups)

    @property
    def n_groups(self) -> int:
        return len(self.groups)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(g.name for g in self.groups)

    @property
    def population_fraction(self) -> np.ndarray:
        return np.array([g.population_fraction for g in self.groups], dtype=float)

    @property
    def activities(self) -> np.ndarray:
        return np.array([g.activity for g in self.groups], dtype=float)

    @property
    def initial_infected(self) -> np.ndarray:
        return np.array([g.initial_infected for g in self.groups], dtype=float)

    @property
    def group_sizes(self) -> np.ndarray:
        return self.total_population * self.population_fraction

    def initial_state(self) -> CompartmentState:
        """Everyone susceptible except the seeded infectious individuals."""
        seeds = self.initial_infected
        zeros = np.zeros(self.n_groups)
        return CompartmentState(S=self.group_sizes - seeds, E=zeros, I=seeds, R=zeros.copy())

    def with_activities(self, activities: Sequence[float]) -> "PopulationContext":
        a = np.asarray(activities, dtype=float)
        if a.size != self.n_groups:
            raise InvalidParameter("activities must have one entry per group")
        groups = tuple(replace(g, activity=float(v)) for g, v in zip(self.groups, a))
        return replace(self, groups=groups)


@dataclass(frozen=True)
class SeroObservation:
    """Serosurvey sample sizes and seropositive fractions per group."""
    tested: np.ndarray
    seropositive_fraction: np.ndarray

    def __post_init__(self):
        raw = np.asarray(self.tested, dtype=float)
        frac = np.asarray(self.seropositive_fraction, dtype=float)
        if raw.ndim != 1 or raw.shape != frac.shape:
            raise InvalidParameter("tested and seropositive_fraction must be 1-D of equal length")
        if not np.all(np.isfinite(raw)) or np.any(raw != np.round(raw)):
            raise InvalidParameter("sample sizes must be whole numbers")
        tested = raw.astype(int)
        if np.any(tested <= 0):
            raise InvalidParameter("sample sizes must be positive")
        if np.any(frac < 0) or np.any(frac > 1):
            raise InvalidParameter("seropositive fractions must lie in [0, 1]")
        object.__setattr__(self, "tested", tested)
        object.__setattr__(self, "seropositive_fraction", frac)

    @property
    def positive(self) -> np.ndarray:
        # round half up, not numpy's banker's rounding
        return np.floor(self.seropositive_fraction * self.tested + 0.5).astype(int)

    @property
    def n_groups(self) -> int:
        return self.tested.size


@dataclass
class EpidemicParameters:
    """
    Natural history and mixing parameters for one scenario.

    Rates r and gamma are derived from the mean periods in __post_init__.
    """
    latent_period: float = 3.0      # days in E
    infectious_period: float = 4.0  # days in I
    r0: float = 3.0
    assortativity: float = 0.0      # epsilon

    r: float = field(init=False)
    gamma: float = field(init=False)

    def __post_init__(self):
        if self.latent_period <= 0 or self.infectious_period <= 0:
            raise InvalidParameter("latent and infectious periods must be positive")
        if self.r0 <= 0:
            raise InvalidParameter("R0 must be positive")
        if not 0.0 <= self.assortativity <= 1.0:
            raise InvalidParameter("assortativity must be in [0, 1]")
        self.r = 1.0 / self.latent_period
        self.gamma = 1.0 / self.infectious_period

    def to_dict(self) -> Dict[str, float]:
        return {
            'latent_period_days': self.latent_period,
            'infectious_period_days': self.infectious_period,
            'R0': self.r0,
            'epsilon': self.assortativity,
            'r': self.r,
            'gamma': self.gamma,
        }


@dataclass(frozen=True)
class ReferenceScenario:
    context: PopulationContext
    observation: SeroObservation
    params: EpidemicParameters
    survey_time: float


LONG_ISLAND_GROUPS = ("White", "Black", "Hispanic", "Asian", "Other")


def long_island_scenario(activities: Optional[Sequence[float]] = None,
                         initial_infected: float = 10.0,
                         survey_time: float = 100.0) -> ReferenceScenario:
    """
    Five-group Long Island scenario with its serosurvey.

    The seed of ``initial_infected`` is split across groups by population
    fraction. Activities default to 1 (to be calibrated).
    """
    f = np.array([0.632, 0.186, 0.093, 0.068, 0.022])
    context = PopulationContext.from_arrays(
        total_population=2839436,
        population_fraction=f,
        activities=activities,
        initial_infected=initial_infected * f,
        names=LONG_ISLAND_GROUPS,
    )
    observation = SeroObservation(
        tested=np.array([1599, 301, 111, 50, 50]),
        seropositive_fraction=np.array([0.087, 0.320, 0.158, 0.084, 0.207]),
    )
    params = EpidemicParameters(latent_period=3.0, infectious_period=4.0, r0=3.0, assortativity=0.0)
    return ReferenceScenario(context=context, observation=observation,
                             params=params, survey_time=survey_time)
