"""
Linear algebra for the iterative solvers: the operator contract, preconditioners,
history and progress plumbing, and the solvers themselves.

Key functionalities provided include:
    - Operators wrapping dense, sparse, matrix-free and JAX-resident maps.
    - Preconditioners (identity, Jacobi, Cholesky, incomplete LU, factorized, wrapped inverse).
    - Preconditioned conjugate gradient with best-iterate tracking and history.
    - A least-squares solver over a raw Krylov sequence.

This module uses lazy imports; submodules are only loaded when accessed.

# -----------------------------------------------------------------------------------------------
Description     : Algebra module of itersolve with lazy imports
# -----------------------------------------------------------------------------------------------
"""

from typing import TYPE_CHECKING
import importlib

# -----------------------------------------------------------------------------------------------
# Lazy Import Configuration
# -----------------------------------------------------------------------------------------------

# Mapping of attribute names to their module paths and actual attribute names
_LAZY_IMPORTS = {
    # Operator contract
    'LinearOperator'                : ('.operators', 'LinearOperator'),
    'MatrixOperator'                : ('.operators', 'MatrixOperator'),
    'FunctionOperator'              : ('.operators', 'FunctionOperator'),
    'as_operator'                   : ('.operators', 'as_operator'),
    'apply'                         : ('.operators', 'apply'),
    'solve'                         : ('.operators', 'solve'),
    'inner'                         : ('.operators', 'inner'),
    'norm_like'                     : ('.operators', 'norm_like'),
    # Preconditioners
    'Preconditioner'                : ('.preconditioners', 'Preconditioner'),
    'IdentityPreconditioner'        : ('.preconditioners', 'IdentityPreconditioner'),
    'JacobiPreconditioner'          : ('.preconditioners', 'JacobiPreconditioner'),
    'CholeskyPreconditioner'        : ('.preconditioners', 'CholeskyPreconditioner'),
    'IncompleteLUPreconditioner'    : ('.preconditioners', 'IncompleteLUPreconditioner'),
    'FactorizedPreconditioner'      : ('.preconditioners', 'FactorizedPreconditioner'),
    'InverseOperatorPreconditioner' : ('.preconditioners', 'InverseOperatorPreconditioner'),
    'choose_precond'                : ('.preconditioners', 'choose_precond'),
    'as_preconditioner'             : ('.preconditioners', 'as_preconditioner'),
    # History / progress
    'HistoryField'                  : ('.history', 'HistoryField'),
    'HistoryRecorder'               : ('.history', 'HistoryRecorder'),
    'SolverProgress'                : ('.progress', 'SolverProgress'),
    # Solvers
    'SolverType'                    : ('.solver', 'SolverType'),
    'SolverError'                   : ('.solver', 'SolverError'),
    'SolverErrorMsg'                : ('.solver', 'SolverErrorMsg'),
    'InvalidOperatorError'          : ('.solver', 'InvalidOperatorError'),
    'SolverResult'                  : ('.solver', 'SolverResult'),
    'choose_solver'                 : ('.solvers', 'choose_solver'),
    'CgSolver'                      : ('.solvers.cg', 'CgSolver'),
    'conjugate_gradient'            : ('.solvers.cg', 'conjugate_gradient'),
    'KrylovSolver'                  : ('.solvers.krylov', 'KrylovSolver'),
    'krylov_solve'                  : ('.solvers.krylov', 'krylov_solve'),
    'gmres'                         : ('.solvers.krylov', 'gmres'),
    # Backend utilities
    'get_backend'                   : ('.utils', 'get_backend'),
    'JAX_AVAILABLE'                 : ('.utils', 'JAX_AVAILABLE'),
    'get_logger'                    : ('..common.flog', 'get_global_logger'),
    # Submodules
    'solvers'                       : ('.solvers', None),
}

_LAZY_CACHE = {}

if TYPE_CHECKING:
    from .operators         import LinearOperator, MatrixOperator, FunctionOperator, as_operator, apply, solve, inner, norm_like
    from .preconditioners   import (Preconditioner, IdentityPreconditioner, JacobiPreconditioner, CholeskyPreconditioner,
                                    IncompleteLUPreconditioner, FactorizedPreconditioner, InverseOperatorPreconditioner,
                                    choose_precond, as_preconditioner)
    from .history           import HistoryField, HistoryRecorder
    from .progress          import SolverProgress
    from .solver            import SolverType, SolverError, SolverErrorMsg, InvalidOperatorError, SolverResult
    from .solvers           import choose_solver
    from .solvers.cg        import CgSolver, conjugate_gradient
    from .solvers.krylov    import KrylovSolver, krylov_solve, gmres

# -----------------------------------------------------------------------------------------------
# Lazy Import Implementation
# -----------------------------------------------------------------------------------------------

def _lazy_import(name: str):
    """
    Lazily import a module or attribute based on _LAZY_IMPORTS configuration.

    Parameters
    ----------
    name : str
        The name of the attribute to import lazily.

    Returns
    -------
    The imported module or attribute.
    """
    if name in _LAZY_CACHE:
        return _LAZY_CACHE[name]

    if name not in _LAZY_IMPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module_path, attr_name  = _LAZY_IMPORTS[name]
    module                  = importlib.import_module(module_path, package=__name__)
    result                  = module if attr_name is None else getattr(module, attr_name)
    _LAZY_CACHE[name]       = result
    return result

def __getattr__(name: str):
    """
    Module-level __getattr__ for lazy imports.
    """
    return _lazy_import(name)

def __dir__():
    return sorted(list(globals().keys()) + list(_LAZY_IMPORTS.keys()))

__all__ = list(_LAZY_IMPORTS.keys())

# -----------------------------------------------------------------------------------------------
#! EOF
# -----------------------------------------------------------------------------------------------
