"""
===========================================================
errors.py
Author: Veronica Scerra
Last Updated: 2026-03-02
===========================================================

Description:
    Exception hierarchy for the stratified SEIR engine.

    Each error also derives from the builtin exception the rest of
    the codebase already raises for the same situation (ValueError
    for bad inputs, RuntimeError for solver failures), so callers
    written against those keep working.

Notes:
    - ThresholdNotReached is recoverable: extend the horizon and rerun.
    - Optimizer non-convergence is not an exception; see
      CalibrationResult.converged.
-----------------------------------------------------------
License: MIT
===========================================================
"""
from __future__ import annotations
from typing import Optional


class SeromixError(Exception):
    """Base class for all engine errors."""


class InvalidParameter(SeromixError, ValueError):
    """Malformed scenario input (fractions, population, assortativity, ...)."""


class ModelNotRecognized(SeromixError, ValueError):
    """Unknown calibration mode."""

    def __init__(self, mode: str):
        super().__init__(f"mode must be 'activity' or 'susceptibility', got {mode!r}")
        self.mode = mode


class DegenerateSpectrum(SeromixError, ArithmeticError):
    """Dominant eigenvalue of a next-generation matrix is not real and positive."""

    def __init__(self, message: str, eigenvalue: Optional[complex] = None):
        super().__init__(message)
        self.eigenvalue = eigenvalue


class IntegrationDivergence(SeromixError, RuntimeError):
    """The ODE solver gave up before reaching the end of the time grid."""

    def __init__(self, message: str, last_time: float):
        super().__init__(f"ODE solver failed at t={last_time:.4g}: {message}")
        self.solver_message = message
        self.last_time = last_time


class PhysicalInvariantViolation(SeromixError, RuntimeError):
    """A compartment went negative beyond roundoff."""

    def __init__(self, time: float, group: int, compartment: str, value: float):
        super().__init__(
            f"compartment {compartment} of group {group} reached {value:.4g} at t={time:.4g}"
        )
        self.time = time
        self.group = group
        self.compartment = compartment
        self.value = value


class ThresholdNotReached(SeromixError):
    """Rt never dropped to 1 within the trajectory."""

    def __init__(self, last_rt: float, t_end: float):
        super().__init__(
            f"Rt stayed above 1 through t={t_end:.4g} (last Rt={last_rt:.4f}); "
            "extend the time horizon"
        )
        self.last_rt = last_rt
        self.t_end = t_end
