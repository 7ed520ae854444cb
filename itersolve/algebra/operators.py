'''
file:       itersolve/algebra/operators.py

The operator contract consumed by the solvers.

The solvers never look inside `A` or `M`; all they need is

    apply(A, v)     -> A v              (linear, no side effects on v)
    solve(M, r)     -> M^{-1} r         (approximate inverse, identity allowed)
    inner(a, b)     -> <a, b>           (sum conj(a_i) b_i)
    norm_like(s)    -> real float       (convergence scalars)

`as_operator` turns the usual suspects (dense NumPy/JAX arrays, SciPy sparse
matrices, `scipy.sparse.linalg.LinearOperator`, plain callables) into a
`LinearOperator`. The contract defines no errors of its own: whatever the
concrete operator raises propagates unchanged.
'''

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Tuple

import numpy as np
import scipy.sparse as sps
import scipy.sparse.linalg as spsla

import numba

from .utils import Array, JAX_AVAILABLE, backend_of, is_jax_array

if JAX_AVAILABLE:
    import jax

# v -> A v
MatVecFunc = Callable[[Array], Array]

# ---------------------------------------------------------------------
#! Compiled kernels
# ---------------------------------------------------------------------

_NUMBA_DTYPES = (np.float32, np.float64, np.complex64, np.complex128)

@numba.njit
def _dense_matvec_nb(a, v):
    return np.dot(a, v)

# ---------------------------------------------------------------------
#! Operators
# ---------------------------------------------------------------------

class LinearOperator(ABC):
    """
    Abstract linear map v -> A v.

    Subclasses implement `apply`. `A @ v` and `A(v)` are shorthands for
    `A.apply(v)`.
    """

    def __init__(self, shape: Optional[Tuple[int, int]] = None, dtype: Optional[Any] = None):
        self._shape = None if shape is None else tuple(shape)
        self._dtype = dtype

    @property
    def shape(self) -> Optional[Tuple[int, int]]:
        return self._shape

    @property
    def dtype(self) -> Optional[Any]:
        return self._dtype

    @abstractmethod
    def apply(self, v: Array) -> Array:
        ''' Returns A v. '''
        raise NotImplementedError

    def __matmul__(self, v: Array) -> Array:
        return self.apply(v)

    def __call__(self, v: Array) -> Array:
        return self.apply(v)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(shape={self._shape}, dtype={self._dtype})"

class MatrixOperator(LinearOperator):
    """
    Explicit matrix: dense NumPy/JAX array or SciPy sparse matrix.

    Args:
        a:
            The matrix.
        sigma (float, optional):
            Diagonal shift, the operator is A + sigma*I.
        compile (bool):
            Compile the dense matvec (numba for NumPy, `jax.jit` for JAX).
            The numba kernel is used only when v has the matrix dtype.
    """

    def __init__(self, a: Any, sigma: Optional[float] = None, compile: bool = False):
        if a.ndim != 2:
            raise ValueError(f"MatrixOperator needs a 2D matrix, got ndim={a.ndim}.")
        super().__init__(shape=a.shape, dtype=a.dtype)
        self._sparse    = sps.issparse(a)
        self._backend   = np if self._sparse else backend_of(a)
        mat             = a if self._sparse else self._backend.asarray(a)

        if sigma is not None and sigma != 0:
            if self._sparse:
                mat     = mat + sigma * sps.identity(a.shape[0], dtype=a.dtype, format=a.format)
            else:
                mat     = mat + sigma * self._backend.eye(a.shape[0], dtype=mat.dtype)
        self._a         = mat
        self._sigma     = sigma
        self._matvec    = self._build_matvec(compile)

    def _build_matvec(self, compile: bool) -> MatVecFunc:
        a = self._a
        if self._sparse:
            return lambda v: a @ v

        if self._backend is not np:
            def matvec(v: Array) -> Array:
                return self._backend.dot(a, v)
            return jax.jit(matvec) if compile else matvec

        if compile and a.dtype in _NUMBA_DTYPES:
            a_c = np.ascontiguousarray(a)
            def matvec(v: Array) -> Array:
                if isinstance(v, np.ndarray) and v.dtype == a_c.dtype and v.ndim == 1:
                    return _dense_matvec_nb(a_c, np.ascontiguousarray(v))
                return np.dot(a_c, v)
            return matvec
        return lambda v: np.dot(a, v)

    @property
    def matrix(self) -> Any:
        return self._a

    @property
    def sigma(self) -> Optional[float]:
        return self._sigma

    def apply(self, v: Array) -> Array:
        return self._matvec(v)

class FunctionOperator(LinearOperator):
    """
    Matrix-free operator given by a function v -> A v.
    """

    def __init__(self, matvec: MatVecFunc, shape: Optional[Tuple[int, int]] = None, dtype: Optional[Any] = None):
        if not callable(matvec):
            raise TypeError(f"matvec must be callable, got {type(matvec)}.")
        super().__init__(shape=shape, dtype=dtype)
        self._matvec = matvec

    def apply(self, v: Array) -> Array:
        return self._matvec(v)

class _ScipyOperator(LinearOperator):
    ''' Adapter for `scipy.sparse.linalg.LinearOperator`. '''

    def __init__(self, op: spsla.LinearOperator):
        super().__init__(shape=op.shape, dtype=op.dtype)
        self._op = op

    def apply(self, v: Array) -> Array:
        return self._op.matvec(v)

# ---------------------------------------------------------------------
#! Coercion
# ---------------------------------------------------------------------

def as_operator(obj: Any) -> LinearOperator:
    '''
    Coerce `obj` into a LinearOperator.

    - LinearOperator                    -> itself
    - scipy.sparse.linalg.LinearOperator -> adapter calling `matvec`
    - SciPy sparse / 2D NumPy or JAX array -> MatrixOperator
    - callable                          -> FunctionOperator

    Raises:
        TypeError: for anything else.
    '''
    if isinstance(obj, LinearOperator):
        return obj
    if isinstance(obj, spsla.LinearOperator):
        return _ScipyOperator(obj)
    if sps.issparse(obj) or isinstance(obj, np.ndarray) or is_jax_array(obj):
        return MatrixOperator(obj)
    if callable(obj):
        return FunctionOperator(obj)
    raise TypeError(f"Cannot interpret object of type {type(obj)} as a linear operator.")

# ---------------------------------------------------------------------
#! The contract
# ---------------------------------------------------------------------

def apply(a: Any, v: Array) -> Array:
    '''
    A v for any operator accepted by `as_operator`.
    '''
    return as_operator(a).apply(v)

def solve(m: Any, r: Array) -> Array:
    '''
    M^{-1} r for any preconditioner accepted by `as_preconditioner`;
    `solve(None, r)` is r.
    '''
    from .preconditioners import as_preconditioner
    return as_preconditioner(m).solve(r)

def inner(a: Array, b: Array) -> Any:
    '''
    Inner product <a, b> = sum conj(a_i) b_i on the backend of `a`.
    '''
    return backend_of(a).vdot(a, b)

def norm_like(s: Any) -> float:
    '''
    Real part of a convergence scalar as a Python float.
    '''
    return float(np.real(np.asarray(s)))

# ---------------------------------------------------------------------
#! EOF
# ---------------------------------------------------------------------
