# itersolve/__init__.py

"""
itersolve - generic iterative solvers for linear systems Ax = b.

The solvers only need a small capability contract from the operator (apply A,
apply M^{-1}, inner product), so dense NumPy arrays, SciPy sparse matrices,
matrix-free callables and JAX arrays all work.

Modules:
--------
- algebra   : operator contract, preconditioners, CG and Krylov solvers, history, progress
- common    : logging and timing

Examples:
---------
>>> import numpy as np
>>> from itersolve.algebra import conjugate_gradient, krylov_solve
>>> A = np.diag([1.0, 2.0, 3.0])
>>> b = np.ones(3)
>>> x = conjugate_gradient(None, A, b, tol=1e-10)
>>> y = krylov_solve(A, b, 3)

File    : itersolve/__init__.py
Version : 0.1.0
"""

import importlib

# Package metadata
__version__         = "0.1.0"
__license__         = "MIT"

MODULE_DESCRIPTION  = "Generic preconditioned CG and Krylov least-squares solvers with history and progress reporting."

# List of available modules (not imported by default)
__all__             = ["algebra", "common"]

def get_module_description(module_name):
    """
    Get the description of a specific module in the itersolve package.

    Parameters
    ----------
    module_name : str
        The name of the module.

    Returns
    -------
    str
        The description of the module.
    """
    descriptions = {
        "algebra"   : "Operator contract, preconditioners, CG and Krylov solvers with NumPy/JAX support.",
        "common"    : "Logging and timing utilities.",
    }
    return descriptions.get(module_name, "Module not found.")

def list_available_modules():
    """
    List all available modules in the itersolve package.
    """
    return __all__

# Lazy import subpackages on attribute access (PEP 562)
def __getattr__(name):
    if name in __all__:
        return importlib.import_module(f".{name}", __name__)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")

def __dir__():
    return sorted(list(globals().keys()) + __all__)

# ---------------------------------------------------------------------
#! EOF
# ---------------------------------------------------------------------
