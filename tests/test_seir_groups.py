"""
Tests for the multi-group SEIR integrator.
"""

from types import SimpleNamespace

import numpy as np
import pytest

import seromix.seir_groups as seir_groups
from seromix.contact_matrix import build_contact_matrix
from seromix.errors import IntegrationDivergence, InvalidParameter, PhysicalInvariantViolation
from seromix.reproduction import calibrate_r0
from seromix.seir_groups import (
    CompartmentState,
    SolverSettings,
    Trajectory,
    _jacobian,
    _rhs,
    integrate,
)


def _scaled_beta(ctx, r0, gamma=0.25, eps=0.0):
    N, f = ctx.total_population, ctx.population_fraction
    beta = build_contact_matrix(ctx.activities, f, N, eps)
    return beta / calibrate_r0(beta, gamma, f, N, r0)


@pytest.fixture
def three_group_run(three_groups):
    beta = _scaled_beta(three_groups, r0=2.5, eps=0.3)
    t = np.linspace(0, 200, 401)
    return integrate(three_groups.initial_state(), 1 / 3, 0.25, beta, t,
                     group_names=three_groups.names), three_groups


def test_mass_is_conserved(three_group_run):
    traj, ctx = three_group_run
    totals = traj.totals()
    np.testing.assert_allclose(totals, np.broadcast_to(ctx.group_sizes, totals.shape), rtol=1e-3)
    np.testing.assert_allclose(totals.sum(axis=1), ctx.total_population, rtol=1e-3)


def test_susceptibles_fall_and_removed_rise(three_group_run):
    traj, ctx = three_group_run
    slack = 1e-6 * ctx.group_sizes
    assert np.all(np.diff(traj.S, axis=0) <= slack)
    assert np.all(np.diff(traj.R, axis=0) >= -slack)


def test_compartments_stay_nonnegative(three_group_run):
    traj, _ = three_group_run
    for comp in (traj.S, traj.E, traj.I, traj.R):
        assert np.all(comp >= 0)


def test_trajectory_covers_grid(three_group_run):
    traj, ctx = three_group_run
    assert traj.t.shape == (401,)
    assert traj.S.shape == (401, 3)
    assert traj.group_names == ctx.names
    np.testing.assert_allclose(traj.state_at(0).S, ctx.initial_state().S)


def test_single_group_final_size_matches_final_size_equation():
    # z = 1 - exp(-R0 z) for R0 = 2
    N = 1e6
    state = CompartmentState(S=[N - 1.0], E=[0.0], I=[1.0], R=[0.0])
    gamma = 0.25
    beta = np.array([[2.0 * gamma / N]])
    traj = integrate(state, 0.5, gamma, beta, np.linspace(0, 600, 601))
    assert traj.R[-1, 0] / N == pytest.approx(0.7968121, abs=1e-3)


def test_no_infection_is_a_fixed_point():
    state = CompartmentState(S=[100.0, 200.0], E=[0.0, 0.0], I=[0.0, 0.0], R=[0.0, 0.0])
    beta = np.full((2, 2), 1e-3)
    traj = integrate(state, 0.3, 0.2, beta, np.linspace(0, 50, 11))
    np.testing.assert_allclose(traj.S, [[100.0, 200.0]] * 11)
    assert np.all(traj.I == 0)


@pytest.mark.parametrize("method", ["BDF", "Radau", "RK45"])
def test_methods_agree_with_lsoda(three_groups, method):
    beta = _scaled_beta(three_groups, r0=2.0)
    t = np.linspace(0, 150, 31)
    y0 = three_groups.initial_state()
    reference = integrate(y0, 1 / 3, 0.25, beta, t)
    other = integrate(y0, 1 / 3, 0.25, beta, t, settings=SolverSettings(method=method))
    np.testing.assert_allclose(other.R, reference.R, rtol=1e-3, atol=1.0)


def test_jacobian_matches_finite_differences(rng):
    G = 3
    beta = rng.uniform(0, 1e-3, size=(G, G))
    r = np.array([0.3, 0.4, 0.5])
    gamma = np.array([0.2, 0.25, 0.3])
    y = rng.uniform(10, 1000, size=4 * G)
    J = _jacobian(0.0, y, beta, r, gamma)
    h = 1e-2
    numeric = np.empty_like(J)
    for k in range(4 * G):
        dy = np.zeros(4 * G)
        dy[k] = h
        numeric[:, k] = (_rhs(0.0, y + dy, beta, r, gamma) - _rhs(0.0, y - dy, beta, r, gamma)) / (2 * h)
    np.testing.assert_allclose(J, numeric, rtol=1e-6, atol=1e-7)


def test_per_group_rates_accepted(three_groups):
    beta = _scaled_beta(three_groups, r0=2.0)
    traj = integrate(three_groups.initial_state(), [0.3, 0.35, 0.4], [0.2, 0.25, 0.3], beta,
                     np.linspace(0, 100, 21))
    assert traj.R.shape == (21, 3)


@pytest.mark.parametrize("grid", [[0.0], [0.0, 1.0, 1.0], [5.0, 1.0], [[0.0, 1.0]]])
def test_bad_time_grid_rejected(three_groups, grid):
    beta = _scaled_beta(three_groups, r0=2.0)
    with pytest.raises(InvalidParameter):
        integrate(three_groups.initial_state(), 0.3, 0.25, beta, grid)


def test_beta_shape_mismatch_rejected(three_groups):
    with pytest.raises(InvalidParameter):
        integrate(three_groups.initial_state(), 0.3, 0.25, np.ones((2, 2)), [0.0, 1.0])


def test_nonpositive_rate_rejected(three_groups):
    beta = _scaled_beta(three_groups, r0=2.0)
    with pytest.raises(InvalidParameter):
        integrate(three_groups.initial_state(), 0.0, 0.25, beta, [0.0, 1.0])


def test_solver_failure_raises_divergence(three_groups, monkeypatch):
    def failing_solver(*args, **kwargs):
        return SimpleNamespace(success=False, message="Required step size is less than spacing",
                               t=np.array([0.0, 12.5]), y=np.zeros((12, 2)), nfev=10)

    monkeypatch.setattr(seir_groups, "solve_ivp", failing_solver)
    beta = _scaled_beta(three_groups, r0=2.0)
    with pytest.raises(IntegrationDivergence) as excinfo:
        integrate(three_groups.initial_state(), 0.3, 0.25, beta, [0.0, 10.0, 20.0])
    assert excinfo.value.last_time == pytest.approx(12.5)
    assert isinstance(excinfo.value, RuntimeError)


def _fake_solution(y0, t, row, value):
    y = np.repeat(y0[:, None], t.size, axis=1)
    y[row, -1] = value
    return SimpleNamespace(success=True, message="ok", t=t, y=y, nfev=1)


def test_roundoff_negatives_are_clamped_with_warning(three_groups, monkeypatch):
    y0 = three_groups.initial_state()
    t = np.array([0.0, 1.0, 2.0])
    monkeypatch.setattr(seir_groups, "solve_ivp",
                        lambda *a, **k: _fake_solution(y0.to_vector(), t, row=4, value=-1e-9))
    beta = _scaled_beta(three_groups, r0=2.0)
    with pytest.warns(RuntimeWarning, match="clamping"):
        traj = integrate(y0, 0.3, 0.25, beta, t)
    assert traj.E[-1, 1] == 0.0


def test_large_negatives_violate_invariant(three_groups, monkeypatch):
    y0 = three_groups.initial_state()
    t = np.array([0.0, 1.0, 2.0])
    # row 7 is I of group 1
    monkeypatch.setattr(seir_groups, "solve_ivp",
                        lambda *a, **k: _fake_solution(y0.to_vector(), t, row=7, value=-500.0))
    beta = _scaled_beta(three_groups, r0=2.0)
    with pytest.raises(PhysicalInvariantViolation) as excinfo:
        integrate(y0, 0.3, 0.25, beta, t)
    err = excinfo.value
    assert (err.group, err.compartment, err.time) == (1, "I", 2.0)


def test_compartment_state_validation():
    with pytest.raises(InvalidParameter):
        CompartmentState(S=[1.0, 2.0], E=[0.0], I=[0.0], R=[0.0])
    with pytest.raises(InvalidParameter):
        CompartmentState(S=[-1.0], E=[0.0], I=[0.0], R=[0.0])


def test_compartment_state_vector_roundtrip():
    state = CompartmentState(S=[5.0, 6.0], E=[1.0, 0.0], I=[2.0, 1.0], R=[0.0, 3.0])
    again = CompartmentState.from_vector(state.to_vector())
    np.testing.assert_array_equal(again.total, [8.0, 10.0])


def test_trajectory_to_dataframe(three_group_run):
    traj, _ = three_group_run
    df = traj.to_dataframe()
    assert list(df.columns) == ["t", "group", "compartment", "count"]
    assert len(df) == traj.t.size * traj.n_groups * 4
    final_r = df[(df.t == traj.t[-1]) & (df.compartment == "R") & (df.group == "high")]["count"]
    assert final_r.iloc[0] == pytest.approx(traj.R[-1, 1])


def test_default_group_names():
    traj = Trajectory(t=np.array([0.0, 1.0]), S=np.ones((2, 2)), E=np.zeros((2, 2)),
                      I=np.zeros((2, 2)), R=np.zeros((2, 2)))
    assert traj.group_names == ("group_0", "group_1")
