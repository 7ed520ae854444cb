'''
file:       itersolve/algebra/preconditioners.py

Preconditioners for the iterative solvers of linear systems Ax = b.

A preconditioner M approximates A (equivalently, its `solve` approximates A^{-1}):
the solvers only ever call

    z = M.solve(r)      # z ~ A^{-1} r

which must be cheap compared to solving the original system. The identity is a
valid preconditioner and the default everywhere.

Setup follows a two-step pattern: construct, then `set(a, sigma)` computes the
precomputed data of M = A + sigma*I (diagonal, factors, ...) once; `solve(r)`
then only runs the static apply kernel on that data. Passing `a` to the
constructor runs `set` immediately.
'''

# Import the required modules
from abc import ABC, abstractmethod
from typing import Union, Callable, Optional, Any, Type, Tuple, Dict
from enum import Enum, unique
import inspect
import numpy as np

import scipy.sparse as sps
import scipy.sparse.linalg as spsla

from .utils import get_backend, backend_of, backend_name, Array
from ..common.flog import get_global_logger, Logger

# ---------------------------------------------------------------------

# r -> M^{-1} r
PreconditionerApplyFun  = Callable[[Array], Array]

_TOLERANCE_SMALL        = 1e-13
_TOLERANCE_BIG          = 1e13

@unique
class PreconditionersTypeSym(Enum):
    """
    Preconditioners suitable for symmetric positive definite operators (CG).
    """
    IDENTITY            = 0
    JACOBI              = 1
    COMPLETE_CHOLESKY   = 3

@unique
class PreconditionersTypeNoSym(Enum):
    """
    Preconditioners for general (possibly non-symmetric) operators.
    """
    INCOMPLETE_LU       = 11
    FACTORIZED          = 12

# ---------------------------------------------------------------------
#! Preconditioners
# ---------------------------------------------------------------------

class Preconditioner(ABC):
    """
    Abstract base class for preconditioners M used in iterative solvers.

    Concrete classes provide two static kernels:
        `_setup_kernel(a, sigma, backend_mod, **kwargs) -> dict`
            computes the precomputed data of M = A + sigma*I,
        `_apply_kernel(r, backend_mod, **precomputed) -> Array`
            applies M^{-1} to r.

    Attributes:
        sigma (float):
            Regularization added to the diagonal during setup.
        backend_str (str):
            Name of the backend the precomputed data lives on ('numpy', 'jax').
        type (Enum):
            The specific preconditioner type. Set by subclasses.
    """

    _type : Optional[Union[PreconditionersTypeSym, PreconditionersTypeNoSym]] = None
    _name : str = "General Preconditioner"
    _dcol : str = "yellow"
    _needs_setup : bool = True

    # -----------------------------------------------------------------

    def __init__(self,
                a           : Optional[Any] = None,
                sigma       : float         = 0.0,
                backend     : str           = 'default',
                **setup_kwargs):
        """
        Initialize the preconditioner.

        Parameters:
            a (Array, optional):
                Matrix M is built from. If given, `set(a, sigma)` is called.
            sigma (float):
                Regularization parameter, M = A + sigma*I.
            backend (str):
                'numpy', 'jax' or 'default'. With 'default' the backend follows
                the array passed to `set`.
            **setup_kwargs:
                Forwarded to `set`.
        """
        self._logger : Logger           = get_global_logger()
        self._backend_spec              = backend
        self._backend                   = get_backend(backend) if backend != 'default' else np
        self._sigma                     = sigma
        self._precomputed               : Optional[Dict[str, Any]] = None
        if a is not None:
            self.set(a, sigma=sigma, **setup_kwargs)

    # -----------------------------------------------------------------
    #! Logging
    # -----------------------------------------------------------------

    def log(self, msg : str, log : Union[int, str] = 'info', lvl : int = 0, color : str = "white"):
        """
        Log a message prefixed with the preconditioner name.
        """
        self._logger.say(f"[{self._name}] {msg}", log=log, lvl=lvl, color=color)

    # -----------------------------------------------------------------
    #! Properties
    # -----------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def type(self) -> Optional[Union[PreconditionersTypeSym, PreconditionersTypeNoSym]]:
        return self._type

    @property
    def sigma(self) -> float:
        return self._sigma

    @property
    def backend(self) -> Any:
        return self._backend

    @property
    def backend_str(self) -> str:
        return backend_name(self._backend)

    @property
    def is_set(self) -> bool:
        return self._precomputed is not None or not self._needs_setup

    @property
    def precomputed_data(self) -> Dict[str, Any]:
        if self._precomputed is None:
            raise RuntimeError(f"Preconditioner data not available - ({self._name}) not set up. Call set() first.")
        return self._precomputed

    # -----------------------------------------------------------------
    #! KERNELS
    # -----------------------------------------------------------------

    @staticmethod
    @abstractmethod
    def _setup_kernel(a: Any, sigma: float, backend_mod: Any, **kwargs) -> Dict[str, Any]:
        """Static Kernel: Computes precond data dict from matrix A."""
        raise NotImplementedError

    @staticmethod
    @abstractmethod
    def _apply_kernel(r: Array, backend_mod: Any, **precomputed_data: Any) -> Array:
        """Static Kernel: Applies M^{-1}r using precomputed data."""
        raise NotImplementedError

    # -----------------------------------------------------------------
    #! Setup / Apply
    # -----------------------------------------------------------------

    def set(self, a: Any, sigma: Optional[float] = None, **kwargs) -> "Preconditioner":
        '''
        Compute the precomputed data of M = A + sigma*I.

        Params:
            a (Array or sparse matrix):
                Square matrix the preconditioner approximates.
            sigma (float, optional):
                Regularization; keeps the current value if None.
            **kwargs:
                Passed to the setup kernel (e.g. tol_small, drop_tol).
        Returns:
            The preconditioner itself.
        '''
        if a.ndim != 2 or a.shape[0] != a.shape[1]:
            raise ValueError(f"{self._name} needs a square matrix, got shape {a.shape}.")
        if self._backend_spec == 'default' and not sps.issparse(a):
            self._backend = backend_of(a)

        self._sigma         = self._sigma if sigma is None else sigma
        a_be                = a if sps.issparse(a) else self._backend.asarray(a)
        self.log(f"Setting up with sigma={self._sigma} on backend='{self.backend_str}', n={a.shape[0]}.", log='debug', lvl=1, color=self._dcol)
        self._precomputed   = self.__class__._setup_kernel(a_be, self._sigma, self._backend, **kwargs)
        return self

    def solve(self, r: Array) -> Array:
        """
        Apply M^{-1} to the vector r.
        """
        return self.__class__._apply_kernel(r, self._backend, **self.precomputed_data)

    def __call__(self, r: Array) -> Array:
        return self.solve(r)

    # -----------------------------------------------------------------

    def __repr__(self) -> str:
        return f"{self._name}(sigma={self._sigma}, backend='{self.backend_str}', type={self._type}, set={self.is_set})"

    def __str__(self) -> str:
        return self.__repr__()

# ---------------------------------------------------------------------
#! Identity
# ---------------------------------------------------------------------

class IdentityPreconditioner(Preconditioner):
    """
    Identity preconditioner, M = I: `solve(r)` returns r unchanged.
    """
    _name           = "Identity Preconditioner"
    _type           = PreconditionersTypeSym.IDENTITY
    _needs_setup    = False

    @staticmethod
    def _setup_kernel(a: Any, sigma: float, backend_mod: Any, **kwargs) -> Dict[str, Any]:
        return {}

    @staticmethod
    def _apply_kernel(r: Array, backend_mod: Any, **precomputed_data: Any) -> Array:
        return r

    def solve(self, r: Array) -> Array:
        return r

# ---------------------------------------------------------------------
#! Jacobi
# ---------------------------------------------------------------------

class JacobiPreconditioner(Preconditioner):
    """
    Jacobi (Diagonal) Preconditioner. M = diag(A + sigma*I).

    Math:
        M^{-1}r = [1 / (A_ii + sigma)] * r_i

    Diagonal entries smaller than `tol_small` in magnitude are treated as zero
    and the corresponding component of M^{-1}r is set to zero.

    References:
        - Saad, Y. (2003). Iterative Methods for Sparse Linear Systems (2nd ed.). SIAM. Chapter 10.
    """
    _name = "Jacobi Preconditioner"
    _type = PreconditionersTypeSym.JACOBI

    @staticmethod
    def _static_compute_inv_diag(diag_a         : Array,
                                sigma           : float,
                                backend_mod     : Any,
                                tol_small       : float,
                                zero_replacement: float) -> Array:
        """
        Inverse of the regularized diagonal, safe against (near-)zero entries.
        """
        be              = backend_mod
        reg_diag        = diag_a + sigma
        is_small        = be.abs(reg_diag) < tol_small
        safe_diag       = be.where(is_small, zero_replacement, reg_diag)
        return be.where(is_small, 0.0, 1.0 / safe_diag)

    @staticmethod
    def _setup_kernel(a: Any, sigma: float, backend_mod: Any, **kwargs) -> Dict[str, Any]:
        tol_small           = kwargs.get('tol_small', _TOLERANCE_SMALL)
        zero_replacement    = kwargs.get('zero_replacement', _TOLERANCE_BIG)
        diag_a              = np.asarray(a.diagonal()) if sps.issparse(a) else backend_mod.diag(a)
        inv_diag            = JacobiPreconditioner._static_compute_inv_diag(
            backend_mod.asarray(diag_a), sigma, backend_mod, tol_small, zero_replacement
        )
        return {'inv_diag': inv_diag}

    @staticmethod
    def _apply_kernel(r: Array, backend_mod: Any, **precomputed_data: Any) -> Array:
        inv_diag = precomputed_data['inv_diag']
        if r.shape[0] != inv_diag.shape[0]:
            raise ValueError(f"Shape mismatch in Jacobi apply: r={r.shape}, inv_diag={inv_diag.shape}")
        return inv_diag * r

# ---------------------------------------------------------------------
#! Cholesky
# ---------------------------------------------------------------------

class CholeskyPreconditioner(Preconditioner):
    """
    Complete Cholesky Preconditioner for dense SPD matrices.

    Factorizes M = A + sigma*I = L L^H once; `solve` runs the two triangular
    solves. With M = A this is an exact solve and CG converges in one step,
    which makes it mostly useful with an M that only approximates A.
    """
    _name = "Cholesky Preconditioner"
    _type = PreconditionersTypeSym.COMPLETE_CHOLESKY

    @staticmethod
    def _setup_kernel(a: Any, sigma: float, backend_mod: Any, **kwargs) -> Dict[str, Any]:
        _, backend_sp   = get_backend(backend_mod, scipy=True)
        a_dense         = backend_mod.asarray(a.toarray()) if sps.issparse(a) else a
        if sigma != 0.0:
            a_dense     = a_dense + sigma * backend_mod.eye(a_dense.shape[0], dtype=a_dense.dtype)
        c, lower        = backend_sp.linalg.cho_factor(a_dense, lower=True)
        return {'factor': (c, lower), 'backend_sp': backend_sp}

    @staticmethod
    def _apply_kernel(r: Array, backend_mod: Any, **precomputed_data: Any) -> Array:
        backend_sp = precomputed_data['backend_sp']
        return backend_sp.linalg.cho_solve(precomputed_data['factor'], r)

# ---------------------------------------------------------------------
#! LU based
# ---------------------------------------------------------------------

class FactorizedPreconditioner(Preconditioner):
    """
    Exact solve with a matrix M approximating A: `solve(r) = M \\ r`.

    Dense matrices use an LU factorization of the backend's scipy module,
    SciPy sparse matrices use SuperLU (`splu`).
    """
    _name = "Factorized Preconditioner"
    _type = PreconditionersTypeNoSym.FACTORIZED

    @staticmethod
    def _setup_kernel(a: Any, sigma: float, backend_mod: Any, **kwargs) -> Dict[str, Any]:
        if sps.issparse(a):
            a_csc       = sps.csc_matrix(a)
            if sigma != 0.0:
                a_csc   = a_csc + sigma * sps.identity(a.shape[0], dtype=a.dtype, format='csc')
            return {'splu': spsla.splu(a_csc)}

        _, backend_sp   = get_backend(backend_mod, scipy=True)
        if sigma != 0.0:
            a           = a + sigma * backend_mod.eye(a.shape[0], dtype=a.dtype)
        return {'lu': backend_sp.linalg.lu_factor(a), 'backend_sp': backend_sp}

    @staticmethod
    def _apply_kernel(r: Array, backend_mod: Any, **precomputed_data: Any) -> Array:
        if 'splu' in precomputed_data:
            return precomputed_data['splu'].solve(np.asarray(r))
        return precomputed_data['backend_sp'].linalg.lu_solve(precomputed_data['lu'], r)

class IncompleteLUPreconditioner(Preconditioner):
    """
    Incomplete LU Preconditioner (SciPy `spilu`), NumPy backend only.

    Dense input is converted to CSC. `drop_tol` and `fill_factor` control the
    sparsity of the factors.
    """
    _name = "Incomplete LU Preconditioner"
    _type = PreconditionersTypeNoSym.INCOMPLETE_LU

    @staticmethod
    def _setup_kernel(a: Any, sigma: float, backend_mod: Any, **kwargs) -> Dict[str, Any]:
        if backend_mod is not np:
            raise RuntimeError("IncompleteLUPreconditioner requires the NumPy backend.")
        a_csc           = sps.csc_matrix(a)
        if sigma != 0.0:
            a_csc       = a_csc + sigma * sps.identity(a.shape[0], dtype=a_csc.dtype, format='csc')
        ilu             = spsla.spilu(a_csc,
                                    drop_tol    = kwargs.get('drop_tol', 1e-4),
                                    fill_factor = kwargs.get('fill_factor', 10))
        return {'ilu': ilu}

    @staticmethod
    def _apply_kernel(r: Array, backend_mod: Any, **precomputed_data: Any) -> Array:
        return precomputed_data['ilu'].solve(np.asarray(r))

# ---------------------------------------------------------------------
#! Wrapped approximate inverse
# ---------------------------------------------------------------------

class InverseOperatorPreconditioner(Preconditioner):
    """
    Wraps anything that already applies an approximation of A^{-1}:
    a callable `r -> M^{-1} r`, a `LinearOperator`, or a
    `scipy.sparse.linalg.LinearOperator` (SciPy's convention for `M`).
    """
    _name           = "Inverse Operator Preconditioner"
    _needs_setup    = False

    def __init__(self, op: Any, backend: str = 'default'):
        from .operators import as_operator
        super().__init__(backend=backend)
        self._op            = as_operator(op)
        self._precomputed   = {'op': self._op}

    @staticmethod
    def _setup_kernel(a: Any, sigma: float, backend_mod: Any, **kwargs) -> Dict[str, Any]:
        return {}

    def set(self, a: Any, sigma: Optional[float] = None, **kwargs) -> "Preconditioner":
        ''' The wrapped operator does not depend on `a`; only `sigma` is updated. '''
        self._sigma = self._sigma if sigma is None else sigma
        return self

    @staticmethod
    def _apply_kernel(r: Array, backend_mod: Any, **precomputed_data: Any) -> Array:
        return precomputed_data['op'].apply(r)

# =====================================================================
#! Coercion used by the solvers
# =====================================================================

def as_preconditioner(m: Any) -> Preconditioner:
    '''
    Turn a solver's `M` argument into a Preconditioner.

    - None                                  -> IdentityPreconditioner
    - Preconditioner                        -> itself
    - dense / sparse matrix (M approximates A) -> FactorizedPreconditioner, solve is M \\ r
    - callable, LinearOperator              -> InverseOperatorPreconditioner (applies M^{-1})

    Raises:
        TypeError: for anything else.
    '''
    from .operators import LinearOperator

    if m is None:
        return IdentityPreconditioner()
    if isinstance(m, Preconditioner):
        return m
    if isinstance(m, (LinearOperator, spsla.LinearOperator)) or callable(m):
        return InverseOperatorPreconditioner(m)
    if sps.issparse(m) or getattr(m, 'ndim', 0) == 2:
        return FactorizedPreconditioner(m)
    raise TypeError(f"Invalid preconditioner type: {type(m)}. Expected Preconditioner, matrix, callable or None.")

# =====================================================================
#! Choose wisely
# =====================================================================

def _resolve_precond_type(precond_id: Any) -> Union[PreconditionersTypeSym, PreconditionersTypeNoSym]:
    """
    Convert a string/int/Enum identifier to an Enum member.

    Raises:
        ValueError: If the id is not recognized.
        TypeError:  If the id is of an unsupported type.
    """
    if isinstance(precond_id, (PreconditionersTypeSym, PreconditionersTypeNoSym)):
        return precond_id

    if isinstance(precond_id, str):
        name = precond_id.strip().replace('-', '_').replace(' ', '_').upper()
        aliases = {'NONE': 'IDENTITY', 'CHOLESKY': 'COMPLETE_CHOLESKY', 'ILU': 'INCOMPLETE_LU', 'LU': 'FACTORIZED', 'DIAGONAL': 'JACOBI'}
        name = aliases.get(name, name)
        if name in PreconditionersTypeSym.__members__:
            return PreconditionersTypeSym[name]
        if name in PreconditionersTypeNoSym.__members__:
            return PreconditionersTypeNoSym[name]
        raise ValueError(f"Unknown preconditioner name: '{precond_id}'.")

    if isinstance(precond_id, int):
        for enum_cls in (PreconditionersTypeSym, PreconditionersTypeNoSym):
            try:
                return enum_cls(precond_id)
            except ValueError:
                continue
        raise ValueError(f"Unknown preconditioner value: {precond_id}.")

    raise TypeError(f"Unsupported type for precond_id: {type(precond_id)}. Expected Enum, str, or int.")

_PRECOND_CLASSES : Dict[Any, Type[Preconditioner]] = {
    PreconditionersTypeSym.IDENTITY             : IdentityPreconditioner,
    PreconditionersTypeSym.JACOBI               : JacobiPreconditioner,
    PreconditionersTypeSym.COMPLETE_CHOLESKY    : CholeskyPreconditioner,
    PreconditionersTypeNoSym.INCOMPLETE_LU      : IncompleteLUPreconditioner,
    PreconditionersTypeNoSym.FACTORIZED         : FactorizedPreconditioner,
}

def choose_precond(precond_id: Any, a: Optional[Any] = None, **kwargs) -> Optional[Preconditioner]:
    """
    Factory function to select and instantiate a preconditioner.

    Args:
        precond_id (Any):
            Identifier (instance, Enum, str such as 'jacobi' or 'ilu', int).
        a (Array, optional):
            Matrix to set the preconditioner up with.
        **kwargs:
            Constructor / setup arguments (e.g. sigma=0.1, backend='jax', drop_tol=1e-3).

    Returns:
        Preconditioner: An instance of the selected preconditioner, None for None.
    """
    if precond_id is None:
        return None

    if isinstance(precond_id, Preconditioner):
        if kwargs or a is not None:
            precond_id.log(f"Instance provided; ignoring arguments: {sorted(kwargs)}", log='warning')
        return precond_id

    precond_type    = _resolve_precond_type(precond_id)
    target_class    = _PRECOND_CLASSES[precond_type]
    valid_args      = inspect.signature(Preconditioner.__init__).parameters
    init_kwargs     = {k: v for k, v in kwargs.items() if k in valid_args}
    setup_kwargs    = {k: v for k, v in kwargs.items() if k not in valid_args}
    return target_class(a, **init_kwargs, **setup_kwargs)

# =====================================================================
#! End of File
# =====================================================================
