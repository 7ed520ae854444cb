import pytest
import numpy as np

from itersolve.algebra.solvers import choose_solver, CgSolver, KrylovSolver
from itersolve.algebra.solver import (
    Solver, SolverType, SolverError, SolverErrorMsg, InvalidOperatorError,
)

class TestSolverTypes:

    def test_gmres_is_krylov_alias(self):
        assert SolverType['GMRES'] is SolverType.KRYLOV
        assert SolverType(1) is SolverType.CG

    def test_error_formatting(self):
        err = SolverError(SolverErrorMsg.DIM_MISMATCH, "b and x0 differ")
        assert str(err) == "[SolverError DIM_MISMATCH (106)]: b and x0 differ"
        assert str(SolverErrorMsg.CONV_FAILED) == "Conv Failed"

    def test_invalid_operator_error(self):
        err = InvalidOperatorError()
        assert err.code is SolverErrorMsg.INVALID_OPERATOR
        assert err.message == "Invalid Operator"
        assert isinstance(err, SolverError)

class TestChooseSolver:

    @pytest.mark.parametrize("solver_id, cls", [
        ("cg",                  CgSolver),
        ("CG",                  CgSolver),
        ("krylov",              KrylovSolver),
        ("gmres",               KrylovSolver),
        (SolverType.KRYLOV,     KrylovSolver),
        (1,                     CgSolver),
        (CgSolver,              CgSolver),
    ])
    def test_dispatch(self, solver_id, cls):
        solver = choose_solver(solver_id, backend="numpy")
        assert isinstance(solver, cls)
        assert solver.backend_str == "numpy"

    def test_instance_passthrough(self):
        solver = CgSolver(backend="numpy")
        assert choose_solver(solver) is solver

    def test_unknown_identifiers(self):
        with pytest.raises(ValueError):
            choose_solver("minres")
        with pytest.raises(TypeError):
            choose_solver(2.5)

    def test_configured_solver(self):
        a       = np.diag([1.0, 2.0, 3.0])
        solver  = choose_solver("cg", backend="numpy", a=a, eps=1e-12, maxiter=3, unused_option=True)
        result  = solver.solve_instance(np.ones(3))
        assert result.converged
        np.testing.assert_allclose(result.x, [1.0, 0.5, 1.0 / 3.0], atol=1e-8)
        assert solver.default_eps == 1e-12
        assert solver.solver_type is SolverType.CG

    def test_sigma_shift_and_matvec_precedence(self):
        a       = np.diag([1.0, 2.0, 3.0])
        solver  = choose_solver("krylov", backend="numpy", a=a, sigma=1.0)
        result  = solver.solve_instance(np.ones(3), maxiter=3)
        np.testing.assert_allclose(result.x, [0.5, 1.0 / 3.0, 0.25], rtol=1e-10)

        solver  = choose_solver("krylov", backend="numpy", a=a, matvec_func=lambda v: 2.0 * v)
        result  = solver.solve_instance(np.ones(3), maxiter=1)
        np.testing.assert_allclose(result.x, 0.5 * np.ones(3), rtol=1e-12)

    def test_shape_mismatch(self):
        solver = choose_solver("cg", backend="numpy", a=np.eye(3))
        with pytest.raises(SolverError) as err:
            solver.solve_instance(np.ones(3), np.zeros(2))
        assert err.value.code is SolverErrorMsg.DIM_MISMATCH

    def test_abstract_base(self):
        with pytest.raises(TypeError):
            Solver()
