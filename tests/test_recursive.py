"""Tests for the recursive barycenter.

Covers init state, the hand-computed first two updates (including the
zeta term being absent on iteration 1), sigma = 0 stationarity, weight
total positivity and decay bounds, invariance to a constant cost
offset, underflow handling, seeding, eager/scan agreement, scan reuse,
and the error paths.
"""

import math
import warnings

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from conftest import CountingOracle, constant_oracle, failing_oracle, offset_quadratic, vector_oracle
from expbary.errors import (
    DimensionMismatch,
    InvalidArgument,
    InvalidOracle,
    NumericalDegeneracyWarning,
)
from expbary.oracles import Rastrigin, sum_of_squares
from expbary.recursive import (
    bary_recursive,
    fold,
    init,
    make_scan,
    propose,
    resolve_key,
    run,
    run_scan,
    step,
)
from expbary.types import RecursiveConfig, RecursiveState
from expbary.weights import TOTAL_FLOOR


@pytest.fixture
def key():
    return jax.random.PRNGKey(42)


# ---------------------------------------------------------------------------
# Init
# ---------------------------------------------------------------------------

class TestInit:
    def test_initial_state(self):
        state = init([1.0, 1.0])
        assert float(state.weight_total) == 0.0
        np.testing.assert_array_equal(state.estimate, [1.0, 1.0])
        np.testing.assert_array_equal(state.prev_step, [0.0, 0.0])
        assert int(state.step) == 0
        assert state.estimate.dtype == jnp.float64

    def test_state_is_pytree(self):
        leaves = jax.tree.leaves(init([1.0, 2.0, 3.0]))
        assert len(leaves) == 4

    @pytest.mark.parametrize("x0", [[], [[1.0, 2.0]], 3.0, [1.0, float("nan")]])
    def test_bad_x0(self, x0):
        with pytest.raises(InvalidArgument):
            init(x0)


# ---------------------------------------------------------------------------
# Update rule, checked against a hand computation
# ---------------------------------------------------------------------------

class TestUpdateRule:
    def test_first_two_iterations(self, key):
        config = RecursiveConfig(nu=3.0, sigma=0.8, zeta=0.5, lambda_=0.9, iterations=2)
        x0 = jnp.array([1.0, -0.5])
        state = run(sum_of_squares, x0, config, key=key)

        # Iteration 1: no history, so curiosity is pure noise.
        c0 = 0.8 * jax.random.normal(jax.random.fold_in(key, 0), (2,), dtype=jnp.float64)
        w0 = math.exp(-3.0 * float(jnp.sum((x0 + c0) ** 2)))
        m1 = 0.9 * 0.0 + w0
        s0 = c0 * w0 / m1
        x1 = x0 + s0

        # Iteration 2: zeta damps against the previous step.
        n1 = 0.8 * jax.random.normal(jax.random.fold_in(key, 1), (2,), dtype=jnp.float64)
        c1 = n1 - 0.5 * s0
        w1 = math.exp(-3.0 * float(jnp.sum((x1 + c1) ** 2)))
        m2 = 0.9 * m1 + w1
        s1 = c1 * w1 / m2
        x2 = x1 + s1

        assert float(state.weight_total) == pytest.approx(m2, rel=1e-10)
        np.testing.assert_allclose(state.estimate, x2, rtol=1e-10, atol=1e-12)
        np.testing.assert_allclose(state.prev_step, s1, rtol=1e-10, atol=1e-12)
        assert int(state.step) == 2

    def test_first_step_jumps_to_probe(self, key):
        """With no prior weight, w / m' = 1 and the estimate lands on the probe."""
        config = RecursiveConfig(sigma=0.5, iterations=1)
        state0 = init([0.0, 0.0])
        curiosity, probe = propose(jax.random.fold_in(key, 0), state0, config)
        state = run(sum_of_squares, [0.0, 0.0], config, key=key)
        np.testing.assert_allclose(state.estimate, probe, rtol=1e-12)
        np.testing.assert_allclose(state.prev_step, curiosity, rtol=1e-12)

    def test_zeta_ignored_on_first_iteration(self, key):
        state0 = init([0.0, 0.0])._replace(prev_step=jnp.array([100.0, -100.0]))
        c_plain, _ = propose(key, state0, RecursiveConfig(zeta=0.0))
        c_damped, _ = propose(key, state0, RecursiveConfig(zeta=0.7))
        np.testing.assert_array_equal(c_plain, c_damped)

    def test_zeta_applied_after_first_iteration(self, key):
        state = init([0.0, 0.0])._replace(
            prev_step=jnp.array([1.0, -2.0]), step=jnp.array(3, dtype=jnp.int32),
        )
        c_plain, _ = propose(key, state, RecursiveConfig(zeta=0.0))
        c_damped, _ = propose(key, state, RecursiveConfig(zeta=0.5))
        np.testing.assert_allclose(c_plain - c_damped, [0.5, -1.0], rtol=1e-12)

    def test_fold_info(self):
        state = init([1.0, 1.0])
        config = RecursiveConfig(nu=2.0, lambda_=0.5)
        new_state, info = fold(state, jnp.array([0.1, 0.2]), 0.25, config)
        assert float(info["weight"]) == pytest.approx(math.exp(-0.5))
        assert float(info["raw_total"]) == pytest.approx(math.exp(-0.5))
        assert not bool(info["clamped"])
        assert int(new_state.step) == 1


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

class TestProperties:
    @pytest.mark.parametrize("runner", [run, run_scan])
    def test_sigma_zero_stationary(self, runner, key):
        config = RecursiveConfig(sigma=0.0, zeta=0.3, iterations=50)
        state = runner(sum_of_squares, [1.0, 1.0], config, key=key)
        np.testing.assert_array_equal(state.estimate, [1.0, 1.0])
        assert float(state.weight_total) == pytest.approx(50 * math.exp(-6.0), rel=1e-10)

    def test_weight_total_positive_after_one_iteration(self, key):
        config = RecursiveConfig(sigma=1.0, iterations=1)
        state = run(sum_of_squares, [1.0, 1.0], config, key=key)
        assert float(state.weight_total) > 0.0

    def test_decay_bounds_weight_total(self, key):
        """Costs >= 0 give weights <= 1, so lambda_ = 0.5 caps m at 2."""
        config = RecursiveConfig(sigma=0.5, lambda_=0.5, iterations=300)
        state = run_scan(sum_of_squares, [0.1, -0.1], config, key=key)
        assert 0.0 < float(state.weight_total) <= 2.0

    def test_lambda_zero_keeps_last_weight(self, key):
        config = RecursiveConfig(sigma=0.5, lambda_=0.0, iterations=2)
        state = init([0.3, 0.3])
        for t in range(2):
            state, info = step(jax.random.fold_in(key, t), state, sum_of_squares, config)
        assert float(state.weight_total) == pytest.approx(float(info["weight"]))

    def test_exact_iteration_count(self, key):
        oracle = CountingOracle()
        config = RecursiveConfig(sigma=0.3, iterations=17)
        state = run(oracle, [1.0, 0.0], config, key=key)
        assert oracle.calls == 17
        assert int(state.step) == 17

    def test_estimate_finite(self, key):
        config = RecursiveConfig(sigma=2.0, zeta=0.9, lambda_=0.95, iterations=500)
        state = run_scan(sum_of_squares, [1.0, -1.0, 0.5], config, key=key)
        assert jnp.all(jnp.isfinite(state.estimate))
        assert math.isfinite(float(state.weight_total))

    def test_improves_on_start(self):
        """Median final cost over a few seeds beats the starting cost of 2."""
        costs = []
        for seed in range(5):
            _, xhat = bary_recursive(
                sum_of_squares, [1.0, 1.0], nu=3.0, sigma=1.0, iterations=2000,
                seed=seed, jit=True,
            )
            costs.append(float(sum_of_squares(xhat)))
        assert float(np.median(costs)) < 2.0


# ---------------------------------------------------------------------------
# Randomness
# ---------------------------------------------------------------------------

class TestRandomness:
    def test_same_seed_same_result(self):
        a = bary_recursive(sum_of_squares, [1.0, 1.0], sigma=1.0, iterations=50, seed=3)
        b = bary_recursive(sum_of_squares, [1.0, 1.0], sigma=1.0, iterations=50, seed=3)
        assert a[0] == b[0]
        np.testing.assert_array_equal(a[1], b[1])

    def test_different_seeds_differ(self):
        _, a = bary_recursive(sum_of_squares, [1.0, 1.0], sigma=1.0, iterations=50, seed=3)
        _, b = bary_recursive(sum_of_squares, [1.0, 1.0], sigma=1.0, iterations=50, seed=4)
        assert not np.allclose(a, b)

    def test_key_overrides_seed(self, key):
        _, a = bary_recursive(sum_of_squares, [1.0, 1.0], iterations=20, key=key, seed=1)
        _, b = bary_recursive(sum_of_squares, [1.0, 1.0], iterations=20, key=key, seed=2)
        np.testing.assert_array_equal(a, b)

    def test_unseeded_runs_use_fresh_keys(self):
        k1, k2 = resolve_key(), resolve_key()
        assert not np.array_equal(np.asarray(k1), np.asarray(k2))

    def test_resolve_key_passthrough(self, key):
        assert resolve_key(key) is key

    def test_scan_matches_loop(self, key):
        config = RecursiveConfig(nu=3.0, sigma=0.7, zeta=0.4, lambda_=0.98, iterations=200)
        eager = run(sum_of_squares, [1.0, -1.0], config, key=key)
        scanned = run_scan(sum_of_squares, [1.0, -1.0], config, key=key)
        np.testing.assert_allclose(scanned.estimate, eager.estimate, rtol=1e-8, atol=1e-10)
        assert float(scanned.weight_total) == pytest.approx(float(eager.weight_total), rel=1e-8)
        assert int(scanned.step) == 200


# ---------------------------------------------------------------------------
# Failure modes
# ---------------------------------------------------------------------------

class TestErrors:
    @pytest.mark.parametrize("iterations", [0, -5])
    def test_non_positive_iterations(self, iterations):
        with pytest.raises(InvalidArgument, match="positive"):
            bary_recursive(sum_of_squares, [1.0, 1.0], 3.0, 1.0, 0.0, 1.0, iterations)

    @pytest.mark.parametrize("kwargs", [
        {"sigma": -0.1},
        {"lambda_": -1.0},
        {"nu": float("inf")},
        {"zeta": float("nan")},
        {"iterations": 2.5},
        {"iterations": True},
    ])
    def test_bad_config(self, kwargs):
        with pytest.raises(InvalidArgument):
            RecursiveConfig(**kwargs)

    def test_prev_step_length_mismatch(self, key):
        state = RecursiveState(
            weight_total=jnp.array(1.0),
            estimate=jnp.zeros(3),
            prev_step=jnp.zeros(2),
            step=jnp.array(1, dtype=jnp.int32),
        )
        with pytest.raises(DimensionMismatch, match="same size"):
            propose(key, state, RecursiveConfig())

    def test_dimension_mismatch_is_invalid_argument(self):
        assert issubclass(DimensionMismatch, InvalidArgument)

    def test_oracle_exception_propagates(self, key):
        with pytest.raises(RuntimeError, match="oracle exploded"):
            run(failing_oracle, [1.0, 1.0], RecursiveConfig(iterations=3), key=key)

    @pytest.mark.parametrize("runner", [run, run_scan])
    def test_nan_cost_rejected(self, runner, key):
        with pytest.raises(InvalidOracle):
            runner(constant_oracle(float("nan")), [1.0, 1.0], RecursiveConfig(iterations=5), key=key)

    @pytest.mark.parametrize("runner", [run, run_scan])
    def test_vector_cost_rejected(self, runner, key):
        with pytest.raises(InvalidOracle, match="scalar value"):
            runner(vector_oracle, [1.0, 1.0], RecursiveConfig(iterations=5), key=key)

    @pytest.mark.parametrize("runner", [run, run_scan])
    def test_overflow_rejected(self, runner, key):
        with pytest.raises(InvalidOracle):
            runner(constant_oracle(-1000.0), [1.0, 1.0], RecursiveConfig(iterations=5), key=key)


# ---------------------------------------------------------------------------
# Small and underflowing weights
# ---------------------------------------------------------------------------

class TestSmallWeights:
    """Weights far below 1e-10 are valid: only the ratio w / m' matters."""

    @pytest.mark.parametrize("runner", [run, run_scan])
    @pytest.mark.parametrize("lambda_", [1.0, 0.9])
    def test_cost_offset_leaves_trajectory_unchanged(self, runner, lambda_, key):
        config = RecursiveConfig(nu=3.0, sigma=0.5, lambda_=lambda_, iterations=50)
        base = runner(sum_of_squares, [1.0, 1.0], config, key=key)
        with warnings.catch_warnings():
            warnings.simplefilter("error", NumericalDegeneracyWarning)
            shifted = runner(offset_quadratic(10.0), [1.0, 1.0], config, key=key)
        np.testing.assert_allclose(shifted.estimate, base.estimate, rtol=1e-8, atol=1e-12)
        assert float(shifted.weight_total) == pytest.approx(
            float(base.weight_total) * math.exp(-30.0), rel=1e-8,
        )

    def test_first_step_lands_on_probe_for_large_cost(self, key):
        """Cost ~10 gives w ~ 1e-13, still w / m' = 1 on the first iteration."""
        config = RecursiveConfig(nu=3.0, sigma=0.5, iterations=1)
        oracle = offset_quadratic(10.0)
        _, probe = propose(jax.random.fold_in(key, 0), init([0.0, 0.0]), config)
        with warnings.catch_warnings():
            warnings.simplefilter("error", NumericalDegeneracyWarning)
            state = run(oracle, [0.0, 0.0], config, key=key)
        np.testing.assert_allclose(state.estimate, probe, rtol=1e-12)
        assert float(state.weight_total) == pytest.approx(math.exp(-3.0 * float(oracle(probe))))

    def test_rastrigin_moves_off_start(self, key):
        x0 = [2.5, 2.5]   # cost 52.5, weight ~ 1e-68
        config = RecursiveConfig(nu=3.0, sigma=0.5, iterations=20)
        state = run_scan(Rastrigin(), x0, config, key=key)
        assert not np.allclose(state.estimate, x0)
        assert jnp.all(jnp.isfinite(state.estimate))

    @pytest.mark.parametrize("runner", [run, run_scan])
    def test_underflow_warns_and_stays_positive(self, runner, key):
        oracle = offset_quadratic(1000.0)   # exp(-3000) underflows to 0
        config = RecursiveConfig(sigma=0.5, iterations=10)
        with pytest.warns(NumericalDegeneracyWarning, match="weight_total"):
            state = runner(oracle, [1.0, 1.0], config, key=key)
        assert float(state.weight_total) == TOTAL_FLOOR
        assert float(state.weight_total) > 0.0
        np.testing.assert_array_equal(state.estimate, [1.0, 1.0])

    def test_clamped_flag(self):
        state = init([1.0, 1.0])
        _, info = fold(state, jnp.array([0.1, 0.1]), 500.0, RecursiveConfig())
        assert bool(info["clamped"])

    def test_tiny_total_not_clamped(self):
        state = init([1.0, 1.0])
        new_state, info = fold(state, jnp.array([0.1, 0.1]), 20.0, RecursiveConfig())
        assert not bool(info["clamped"])
        assert float(new_state.weight_total) == pytest.approx(math.exp(-60.0))
        np.testing.assert_allclose(new_state.prev_step, [0.1, 0.1], rtol=1e-12)


# ---------------------------------------------------------------------------
# Scan reuse
# ---------------------------------------------------------------------------

class TestMakeScan:
    def test_prebuilt_scan_matches_fresh(self, key):
        config = RecursiveConfig(sigma=0.7, zeta=0.2, iterations=100)
        scan = make_scan(sum_of_squares, config)
        fresh = run_scan(sum_of_squares, [1.0, -1.0], config, key=key)
        reused = run_scan(sum_of_squares, [1.0, -1.0], config, key=key, scan=scan)
        np.testing.assert_array_equal(reused.estimate, fresh.estimate)

    def test_one_scan_serves_many_seeds(self):
        config = RecursiveConfig(sigma=0.7, iterations=100)
        scan = make_scan(sum_of_squares, config)
        for seed in range(3):
            reused = run_scan(sum_of_squares, [1.0, 1.0], config, seed=seed, scan=scan)
            eager = run(sum_of_squares, [1.0, 1.0], config, seed=seed)
            np.testing.assert_allclose(reused.estimate, eager.estimate, rtol=1e-8, atol=1e-10)
