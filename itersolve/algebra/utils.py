# file        :   itersolve/algebra/utils.py

'''
Backend utilities for the generic solvers.

The solvers never import a concrete array library for their arithmetic; they ask
this module which module (NumPy or, when installed, `jax.numpy`) owns the vectors
they were handed and use that module's `vdot`, `zeros_like`, `stack`, ...

Provides:
- `JAX_AVAILABLE` and the `Array` type alias.
- `get_backend`: resolve a backend specifier ("numpy", "jax", "default", a module)
    to the numpy-like module and, optionally, the scipy-like module.
- `backend_of`: the numpy-like module owning a given array.
- `is_jax_array`, `default_tolerance`.

Environment:
- PY_BACKEND : "numpy" (default) or "jax"; the backend returned for "default".
'''

import os
from typing import Union, TypeAlias, Tuple, Any, Optional

import numpy as np
import scipy as sp
import scipy.linalg

# ---------------------------------------------------------------------
#! Environment variable names
# ---------------------------------------------------------------------

PY_BACKEND_STR          : str               = "PY_BACKEND"
DEFAULT_BACKEND         : str               = "numpy"
PY_BACKEND              : str               = os.environ.get(PY_BACKEND_STR, DEFAULT_BACKEND).lower()

# ---------------------------------------------------------------------
#! Backend Detection
# ---------------------------------------------------------------------

try:
    import jax
    import jax.numpy as jnp
    import jax.scipy as jsp
    JAX_AVAILABLE       = True
except ImportError:
    jax                 = None
    jnp                 = None
    jsp                 = None
    JAX_AVAILABLE       = False

PREFER_JAX              : bool              = JAX_AVAILABLE and PY_BACKEND in ("jax", "jnp")

if JAX_AVAILABLE:
    Array       : TypeAlias = Union[np.ndarray, jnp.ndarray]
else:
    Array       : TypeAlias = np.ndarray

# ---------------------------------------------------------------------

def is_jax_array(x: Any) -> bool:
    '''
    Checks if an object is a JAX array (including traced values).
    '''
    if not JAX_AVAILABLE:
        return False
    return isinstance(x, jax.Array)

# ---------------------------------------------------------------------

def get_backend(backend_spec: Union[str, Any, None] = None, scipy: bool = False) -> Union[Any, Tuple[Any, Any]]:
    """
    Return backend modules based on the provided specifier.

    Parameters
    ----------
    backend_spec : str or module or None, optional
        "numpy"/"np", "jax"/"jnp", "default" (or None) for the configured default,
        or the module itself (`np`, `jnp`).
    scipy : bool, optional
        If True, also return the associated SciPy module.

    Returns
    -------
    module or tuple
        The numpy-like module, or (numpy-like, scipy-like) if `scipy` is True.

    Raises
    ------
    ValueError
        For unknown specifiers, or when JAX is requested but not installed.
    """
    if backend_spec is None or (isinstance(backend_spec, str) and backend_spec.lower() == "default"):
        backend_spec = "jax" if PREFER_JAX else "numpy"

    if backend_spec is np or (isinstance(backend_spec, str) and backend_spec.lower() in ("numpy", "np")):
        return (np, sp) if scipy else np

    if (jnp is not None and backend_spec is jnp) or (isinstance(backend_spec, str) and backend_spec.lower() in ("jax", "jnp")):
        if not JAX_AVAILABLE:
            raise ValueError("JAX backend requested but JAX is not installed.")
        return (jnp, jsp) if scipy else jnp

    raise ValueError(f"Unsupported backend specifier: {backend_spec!r}")

def backend_of(x: Any) -> Any:
    '''
    The numpy-like module owning `x`: `jax.numpy` for JAX arrays, NumPy otherwise.
    '''
    return jnp if is_jax_array(x) else np

def backend_name(backend_module: Any) -> str:
    ''' Short name of a numpy-like module. '''
    return "jax" if (jnp is not None and backend_module is jnp) else "numpy"

# ---------------------------------------------------------------------

def default_tolerance(dtype: Optional[Any] = None) -> float:
    '''
    Square root of the machine epsilon of `dtype` (float64 by default).
    '''
    dtype = np.float64 if dtype is None else dtype
    try:
        eps = np.finfo(dtype).eps
    except ValueError:
        # integer right-hand sides are promoted to float64 by the arithmetic
        eps = np.finfo(np.float64).eps
    return float(np.sqrt(eps))

# ---------------------------------------------------------------------
#! EOF
# ---------------------------------------------------------------------
