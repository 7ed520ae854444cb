'''
General tests for import behavior of the itersolve package.

Ensures that submodules are lazily imported and key exports are available.

Tests:
- Lazy loading of subpackages
- Key class/function exports
- Package metadata presence

File        : tests/test_imports.py
'''

import importlib
import types

# -------------------------------------------------------------------

def test_root_imports_lazy():
    import itersolve as its
    # Accessing attribute should trigger lazy import
    algebra = its.algebra
    assert isinstance(algebra, types.ModuleType)
    assert isinstance(its.common, types.ModuleType)

# -------------------------------------------------------------------

def test_algebra_exports():
    from itersolve import algebra
    assert callable(algebra.conjugate_gradient)
    assert callable(algebra.krylov_solve)
    assert algebra.gmres is algebra.krylov_solve
    assert issubclass(algebra.InvalidOperatorError, algebra.SolverError)
    assert callable(algebra.choose_solver)
    for name in algebra.__all__:
        assert getattr(algebra, name) is not None

def test_solvers_lazy_classes():
    solvers = importlib.import_module("itersolve.algebra.solvers")
    assert solvers.CgSolver.__name__ == "CgSolver"
    assert solvers.KrylovSolver.__name__ == "KrylovSolver"

def test_common_exports():
    from itersolve.common import Logger, Timer, get_global_logger
    assert isinstance(get_global_logger(), Logger)
    assert Timer().elapsed_ns() == 0

# -------------------------------------------------------------------

def test_package_metadata():
    import itersolve as its
    assert hasattr(its, "__version__")
    assert "algebra" in its.list_available_modules()

# -------------------------------------------------------------------
#! End of file
# -------------------------------------------------------------------
