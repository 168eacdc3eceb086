"""Stratified SEIR engine with serosurvey calibration."""

from .contact_matrix import build_contact_matrix
from .errors import (
    DegenerateSpectrum,
    IntegrationDivergence,
    InvalidParameter,
    ModelNotRecognized,
    PhysicalInvariantViolation,
    SeromixError,
    ThresholdNotReached,
)
from .metrics import EpidemicSummary, compute_metrics
from .reproduction import calibrate_r0, dominant_eigenvalue, next_generation_matrix
from .scenario import (
    DemographicGroup,
    EpidemicParameters,
    PopulationContext,
    SeroObservation,
    long_island_scenario,
)
from .seir_groups import CompartmentState, SolverSettings, Trajectory, integrate
from .sero_fitting import CalibrationResult, SeroCalibrationEngine, fit_parameters

__version__ = "0.1.0"

__all__ = [
    "build_contact_matrix",
    "calibrate_r0",
    "dominant_eigenvalue",
    "next_generation_matrix",
    "integrate",
    "compute_metrics",
    "fit_parameters",
    "CalibrationResult",
    "CompartmentState",
    "DemographicGroup",
    "EpidemicParameters",
    "EpidemicSummary",
    "PopulationContext",
    "SeroCalibrationEngine",
    "SeroObservation",
    "SolverSettings",
    "Trajectory",
    "long_island_scenario",
    "SeromixError",
    "InvalidParameter",
    "DegenerateSpectrum",
    "IntegrationDivergence",
    "PhysicalInvariantViolation",
    "ThresholdNotReached",
    "ModelNotRecognized",
]
