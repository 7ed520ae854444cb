import pytest
import numpy as np
import scipy.sparse as sps
import scipy.sparse.linalg as spsla

from itersolve.algebra.solvers.cg import conjugate_gradient, CgSolver
from itersolve.algebra.solver import SolverResult, InvalidOperatorError, SolverError
from itersolve.algebra.preconditioners import JacobiPreconditioner
from itersolve.common.flog import get_global_logger

def create_random_spd(n, seed=42):
    rng = np.random.default_rng(seed)
    a   = rng.standard_normal((n, n))
    return a @ a.T / n + np.eye(n)

def create_2d_laplacian(L):
    """
    2D Laplacian on an LxL grid with Dirichlet boundary conditions, N = L*L.
    """
    N           = L * L
    diag        = 4.0 * np.ones(N)
    off_diag_1  = -1.0 * np.ones(N - 1)
    off_diag_L  = -1.0 * np.ones(N - L)
    for i in range(1, L):
        off_diag_1[i*L - 1] = 0.0
    return np.diag(diag) + np.diag(off_diag_1, k=1) + np.diag(off_diag_1, k=-1) + \
        np.diag(off_diag_L, k=L) + np.diag(off_diag_L, k=-L)

class _Abort(Exception):
    pass

# -----------------------------------------------------------------------------

class TestConjugateGradient:

    def test_diagonal_scenario(self):
        a = np.diag([1.0, 2.0, 3.0])
        b = np.ones(3)
        x = conjugate_gradient(None, a, b, np.zeros(3), nsteps=3, tol=1e-10)
        np.testing.assert_allclose(x, [1.0, 0.5, 1.0 / 3.0], atol=1e-8)

    def test_defaults(self):
        a = np.diag([1.0, 2.0, 3.0])
        x = conjugate_gradient(None, a, np.ones(3))
        np.testing.assert_allclose(x, [1.0, 0.5, 1.0 / 3.0], atol=1e-6)

    def test_spd_convergence(self):
        n       = 30
        a       = create_random_spd(n)
        b       = np.random.default_rng(1).standard_normal(n)
        x       = conjugate_gradient(None, a, b, nsteps=5 * n, tol=1e-20)
        assert np.linalg.norm(a @ x - b) < 1e-6

    def test_preconditioned_matches_plain_accuracy(self):
        a       = create_2d_laplacian(8)
        n       = a.shape[0]
        b       = np.random.default_rng(2).standard_normal(n)
        x_plain = conjugate_gradient(None, a, b, nsteps=4 * n, tol=1e-20)
        x_jac   = conjugate_gradient(JacobiPreconditioner(a), a, b, nsteps=4 * n, tol=1e-20)
        x_ref   = np.linalg.solve(a, b)
        np.testing.assert_allclose(x_plain, x_ref, atol=1e-6)
        np.testing.assert_allclose(x_jac, x_ref, atol=1e-6)

    def test_matrix_preconditioner_is_solved(self):
        # M = A: one step solves the system
        a       = create_random_spd(10)
        b       = np.ones(10)
        x, hist = conjugate_gradient(a, a, b, nsteps=10, tol=1e-20, hist=["i"])
        np.testing.assert_allclose(a @ x, b, atol=1e-8)
        assert len(hist) <= 3

    def test_operator_variants(self):
        a_dense = np.diag([1.0, 2.0, 3.0, 4.0])
        b       = np.ones(4)
        ref     = 1.0 / np.diag(a_dense)
        for a in (sps.csr_matrix(a_dense), lambda v: a_dense @ v, spsla.aslinearoperator(a_dense)):
            x = conjugate_gradient(None, a, b, tol=1e-20)
            np.testing.assert_allclose(x, ref, atol=1e-8)

    def test_complex_hermitian(self):
        rng     = np.random.default_rng(3)
        n       = 12
        c       = rng.standard_normal((n, n)) + 1j * rng.standard_normal((n, n))
        a       = c @ c.conj().T / n + np.eye(n)
        b       = rng.standard_normal(n) + 1j * rng.standard_normal(n)
        x       = conjugate_gradient(None, a, b, nsteps=5 * n, tol=1e-20)
        assert np.linalg.norm(a @ x - b) < 1e-6

    def test_integer_rhs_is_promoted(self):
        x = conjugate_gradient(None, np.diag([1.0, 2.0]), np.array([1, 1]), tol=1e-20)
        np.testing.assert_allclose(x, [1.0, 0.5], atol=1e-10)

    def test_early_exit_returns_initial_guess(self):
        a       = np.diag([1.0, 2.0, 3.0])
        b       = np.ones(3)
        x0      = np.array([1.0, 0.5, 1.0 / 3.0])
        calls   = []
        x, hist = conjugate_gradient(None, a, b, x0, tol=1e-10, hist=["i", "res"],
                                    callback=lambda i, x, res: calls.append(i))
        np.testing.assert_array_equal(x, x0)
        assert calls == []
        assert [h["i"] for h in hist] == [0]

    def test_zero_budget(self):
        a       = np.diag([1.0, 2.0])
        x0      = np.array([0.3, 0.3])
        x       = conjugate_gradient(None, a, np.ones(2), x0, nsteps=0)
        np.testing.assert_array_equal(x, x0)

    def test_idempotent(self):
        a   = create_random_spd(15)
        b   = np.linspace(-1, 1, 15)
        x1  = conjugate_gradient(None, a, b, nsteps=7, tol=1e-12)
        x2  = conjugate_gradient(None, a, b, nsteps=7, tol=1e-12)
        np.testing.assert_array_equal(x1, x2)

# -----------------------------------------------------------------------------

class TestConjugateGradientHooks:

    def test_history_length_and_order(self):
        a       = create_random_spd(30)
        b       = np.ones(30)
        nsteps  = 10
        _, hist = conjugate_gradient(None, a, b, nsteps=nsteps, tol=0.0, hist=["i", "res", "t"], histmod=3)
        iters   = [h["i"] for h in hist]
        assert iters == [0, 3, 6, 9]
        assert len(hist) == 1 + nsteps // 3
        times   = [h["t"] for h in hist]
        assert all(t1 <= t2 for t1, t2 in zip(times, times[1:]))
        assert set(hist[0].keys()) == {"i", "res", "t"}

    def test_history_every_iteration(self):
        a       = np.diag([1.0, 2.0, 3.0])
        _, hist = conjugate_gradient(None, a, np.ones(3), nsteps=3, tol=1e-10, hist="iteration")
        assert [h["i"] for h in hist] == [0, 1, 2, 3]

    def test_best_iterate_is_minimal(self):
        a       = create_2d_laplacian(6)
        b       = np.random.default_rng(5).standard_normal(a.shape[0])
        x, hist = conjugate_gradient(None, a, b, nsteps=8, tol=0.0, hist=["x", "res", "r", "p"])
        res     = [h["res"] for h in hist]
        best    = int(np.argmin(res))
        np.testing.assert_array_equal(x, hist[best]["x"])
        assert all(res[best] <= value for value in res)
        # residual vectors are consistent with the iterates
        for h in hist:
            np.testing.assert_allclose(h["r"], b - a @ h["x"], atol=1e-8)
        assert hist[0]["p"].shape == b.shape

    def test_callback_sees_every_iteration(self):
        a       = np.diag([1.0, 2.0, 3.0, 4.0, 5.0])
        seen    = []
        conjugate_gradient(None, a, np.ones(5), nsteps=5, tol=1e-14,
                        callback=lambda i, x, res: seen.append((i, x.shape, res)))
        assert [s[0] for s in seen] == list(range(1, len(seen) + 1))
        assert all(isinstance(s[2], float) for s in seen)
        assert seen[-1][2] < 1e-14

    def test_callback_exception_aborts(self):
        def stop(i, x, res):
            if i == 2:
                raise _Abort("stop here")

        with pytest.raises(_Abort):
            conjugate_gradient(None, create_random_spd(10), np.ones(10), nsteps=10, tol=0.0, callback=stop)

    def test_nan_initial_residual_raises(self):
        a = np.diag([1.0, 2.0])
        with pytest.raises(InvalidOperatorError) as err:
            conjugate_gradient(lambda r: r * np.nan, a, np.ones(2))
        assert isinstance(err.value, SolverError)

        with pytest.raises(InvalidOperatorError):
            conjugate_gradient(None, a, np.array([np.nan, 1.0]))

    def test_invalid_arguments(self):
        a = np.diag([1.0, 2.0])
        with pytest.raises(ValueError):
            conjugate_gradient(None, a, np.ones(2), histmod=0)
        with pytest.raises(ValueError):
            conjugate_gradient(None, a, np.ones(2), hist=["i"], histmod=0)
        with pytest.raises(ValueError):
            conjugate_gradient(None, a, np.ones(2), nsteps=-1)
        with pytest.raises(ValueError):
            conjugate_gradient(None, a, np.ones(2), np.zeros(3))
        with pytest.raises(ValueError):
            conjugate_gradient(None, a, np.ones(2), hist=["nonsense"])

    def test_progress_does_not_change_result(self):
        a   = create_random_spd(12)
        b   = np.ones(12)
        x1  = conjugate_gradient(None, a, b, nsteps=6, tol=1e-12)
        x2  = conjugate_gradient(None, a, b, nsteps=6, tol=1e-12, progress="CG test")
        x3  = conjugate_gradient(None, a, b, nsteps=6, tol=1e-12, progress=True)
        np.testing.assert_array_equal(x1, x2)
        np.testing.assert_array_equal(x1, x3)

    def test_budget_exhaustion_is_logged(self, monkeypatch):
        logger  = get_global_logger()
        calls   = []
        monkeypatch.setattr(logger, "warning", lambda msg, *args, **kwargs: calls.append(msg))
        conjugate_gradient(None, create_random_spd(20), np.ones(20), nsteps=2, tol=0.0)
        assert len(calls) == 1
        assert "exhausted" in calls[0]
        assert " ms" in calls[0]

    def test_zero_tolerance_with_progress(self):
        a   = np.diag([1.0, 2.0, 3.0, 4.0])
        x1  = conjugate_gradient(None, a, np.ones(4), nsteps=2, tol=0.0)
        x2  = conjugate_gradient(None, a, np.ones(4), nsteps=2, tol=0.0, progress=True)
        np.testing.assert_array_equal(x1, x2)

# -----------------------------------------------------------------------------

class TestCgSolver:

    def test_static_solve(self):
        a       = np.diag([1.0, 2.0, 3.0])
        result  = CgSolver.solve(lambda v: a @ v, np.ones(3), None, tol=1e-10, maxiter=3)
        assert isinstance(result, SolverResult)
        assert result.converged
        assert result.iterations <= 3
        assert result.residual_norm < 1e-10
        assert result.history is None
        np.testing.assert_allclose(result.x, [1.0, 0.5, 1.0 / 3.0], atol=1e-8)

    def test_static_solve_not_converged(self):
        a       = create_random_spd(20)
        result  = CgSolver.solve(a, np.ones(20), np.zeros(20), tol=0.0, maxiter=3,
                                precond_apply=None, backend_module=np, hist=["res"], histmod=1)
        assert not result.converged
        assert result.iterations == 3
        assert len(result.history) == 4
        assert result.residual_norm == min(h["res"] for h in result.history)

    def test_instance_solve(self):
        a       = create_2d_laplacian(5)
        b       = np.ones(a.shape[0])
        solver  = CgSolver(backend="numpy", a=a, eps=1e-20, maxiter=200, default_precond=JacobiPreconditioner(a))
        result  = solver.solve_instance(b)
        np.testing.assert_allclose(a @ result.x, b, atol=1e-8)
        assert solver.solution is result.x
        assert solver.iterations == result.iterations
        assert solver.converged == result.converged
        assert "CG" in repr(solver)

    def test_instance_solve_with_strided_history(self):
        a       = create_random_spd(10)
        solver  = CgSolver(backend="numpy", a=a, maxiter=5)
        result  = solver.solve_instance(np.ones(10), tol=0.0, hist=["i", "res", "x"], histmod=2)
        assert result.iterations == 5
        assert [h["i"] for h in result.history] == [0, 2, 4]
        assert solver.history is result.history
        assert result.residual_norm <= min(h["res"] for h in result.history)

    def test_instance_without_operator_raises(self):
        with pytest.raises(SolverError):
            CgSolver(backend="numpy").solve_instance(np.ones(3))

# -----------------------------------------------------------------------------

class TestCgJax:

    def test_jax_arrays(self):
        jax = pytest.importorskip("jax")
        jnp = pytest.importorskip("jax.numpy")
        a   = jnp.diag(jnp.array([1.0, 2.0, 3.0]))
        b   = jnp.ones(3)
        x   = conjugate_gradient(None, a, b, nsteps=3, tol=1e-8)
        assert isinstance(x, jax.Array)
        np.testing.assert_allclose(np.asarray(x), [1.0, 0.5, 1.0 / 3.0], atol=1e-5)
