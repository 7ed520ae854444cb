'''
Iterative solvers for linear systems Ax = b.

Exports the solver classes, the functional entry points and the
`choose_solver` factory. Solver modules are imported lazily.
----------------------------------------------------------------
File        : itersolve/algebra/solvers/__init__.py
Description : Factory choosing and instantiating a solver from a name, an
              integer code, a SolverType member or a Solver subclass.
----------------------------------------------------------------
'''

import inspect
import importlib
from typing import Union, Optional, Any, Type

from ..solver           import Solver, SolverResult, SolverError, SolverErrorMsg, SolverType, InvalidOperatorError

# -----------------------------------------------------------------------------
# Lazy Loading Configuration
# -----------------------------------------------------------------------------

_LAZY_MODULES = {
    'CgSolver'                  : '.cg',
    'conjugate_gradient'        : '.cg',
    'KrylovSolver'              : '.krylov',
    'krylov_solve'              : '.krylov',
    'krylov_matrix'             : '.krylov',
    'gmres'                     : '.krylov',
}

_SOLVER_CLASSES = {
    SolverType.CG               : ('.cg', 'CgSolver'),
    SolverType.KRYLOV           : ('.krylov', 'KrylovSolver'),
}

# -----------------------------------------------------------------------------

def _resolve_solver_type(solver_id: Union[str, int, SolverType]) -> SolverType:
    '''
    Name (case-insensitive, 'gmres' included), integer value or member -> SolverType.
    '''
    if isinstance(solver_id, SolverType):
        return solver_id
    if isinstance(solver_id, str):
        name = solver_id.strip().upper().replace('-', '_')
        if name in SolverType.__members__:
            return SolverType[name]
        raise ValueError(f"Unknown solver identifier: {solver_id}")
    if isinstance(solver_id, int):
        return SolverType(solver_id)
    raise TypeError(f"Unsupported solver identifier type: {type(solver_id)}")

def choose_solver(solver_id     : Union[str, int, SolverType, Type[Solver], Solver],
                backend         : str                       = "default",
                *,
                sigma           : Optional[float]           = None,
                default_precond : Optional[Any]             = None,
                **kwargs) -> Solver:
    """
    Factory function to select and instantiate a solver based on identifier.

    Parameters
    ----------
    solver_id : Union[str, int, SolverType, Type[Solver], Solver]
        Identifier for the solver: a name ('cg', 'krylov', 'gmres'), an integer
        code, a SolverType member, a Solver subclass, or an instance (returned as is).
    backend : str, optional
        Numerical backend ("numpy", "jax", "default").
    sigma : Optional[float], optional
        Diagonal shift used when the solver builds its matvec from a matrix.
    default_precond : optional
        Preconditioner used by `solve_instance` unless overridden.
    **kwargs
        Further constructor arguments (a, matvec_func, eps, maxiter, dtype).
        Arguments the constructor does not take are dropped.

    Returns
    -------
    Solver
        An instance of the selected solver class.

    Examples
    --------
    >>> solver = choose_solver("cg", backend="numpy", a=A)
    >>> result = solver.solve_instance(b, tol=1e-10)
    >>> solver = choose_solver(SolverType.KRYLOV, maxiter=5)
    """

    # 1. Handle Instance Passthrough
    if isinstance(solver_id, Solver):
        return solver_id

    # 2. Resolve the class
    if isinstance(solver_id, type) and issubclass(solver_id, Solver):
        target_class = solver_id
    else:
        solver_type             = _resolve_solver_type(solver_id)
        module_path, cls_name   = _SOLVER_CLASSES[solver_type]
        module                  = importlib.import_module(module_path, package=__name__)
        target_class            = getattr(module, cls_name)

    # 3. Instantiate with the arguments the constructor accepts
    init_kwargs = kwargs.copy()
    init_kwargs.update({
        'sigma'             : sigma,
        'default_precond'   : default_precond,
        'backend'           : backend
    })
    valid_params    = inspect.signature(target_class.__init__).parameters
    has_varkw       = any(p.kind == inspect.Parameter.VAR_KEYWORD for p in valid_params.values())
    filtered_kwargs = {k: v for k, v in init_kwargs.items() if k in valid_params or has_varkw}
    return target_class(**filtered_kwargs)

# -----------------------------------------------------------------------------
# Module-level __getattr__ for Lazy Imports
# -----------------------------------------------------------------------------

def __getattr__(name):
    """
    Lazy import of solver classes when accessed directly (e.g. solvers.CgSolver).
    """
    if name in _LAZY_MODULES:
        module = importlib.import_module(_LAZY_MODULES[name], package=__name__)
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = [
    'Solver', 'SolverResult', 'SolverError', 'SolverErrorMsg', 'SolverType', 'InvalidOperatorError',
    'choose_solver',
    'CgSolver', 'conjugate_gradient',
    'KrylovSolver', 'krylov_solve', 'krylov_matrix', 'gmres',
]

# -----------------------------------------------------------------------------
#! EOF
# -----------------------------------------------------------------------------
