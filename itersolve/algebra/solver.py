'''
file:       itersolve/algebra/solver.py

Defines the abstract interface and helper structures for solving linear systems

$$
Ax = b,
$$

with an optional preconditioner M, applied as z = M^{-1} r.

Concrete algorithms live in `itersolve.algebra.solvers` and implement the
static `Solver.solve(matvec, b, x0, *, tol, maxiter, precond_apply, ...)`.
A configured `Solver` instance (matrix or matvec, defaults for tolerance,
budget and preconditioner) wraps that static call in `solve_instance` and
keeps the last result.
'''

import scipy.sparse as sps
from typing import Optional, Callable, Union, Any, NamedTuple, Type, List, Dict
from abc import ABC, abstractmethod
from enum import Enum

# -----------------------------------------------------------------------------

from .utils import get_backend, backend_name, default_tolerance, Array
from .operators import MatrixOperator, MatVecFunc
from .preconditioners import Preconditioner, as_preconditioner
from ..common.flog import get_global_logger, Logger

# -----------------------------------------------------------------------------
#! Type hints
# -----------------------------------------------------------------------------

StaticSolverFunc    = Callable[..., 'SolverResult']

# -----------------------------------------------------------------------------

class SolverType(Enum):
    """
    Enumeration class for the different types of solvers.
    """
    CG              = 1 # Preconditioned conjugate gradient
    KRYLOV          = 2 # Least squares over a raw Krylov sequence
    GMRES           = 2 # alias of KRYLOV

# -----------------------------------------------------------------------------
#! Errors
# -----------------------------------------------------------------------------

class SolverErrorMsg(Enum):
    '''
    Enumeration class for solver error messages.
    '''
    MATVEC_FUNC_NOT_SET = 101
    CONV_FAILED         = 105
    DIM_MISMATCH        = 106
    METHOD_NOT_IMPL     = 109
    PRECOND_INVALID     = 110
    INVALID_INPUT       = 112
    INVALID_OPERATOR    = 114

    def __str__(self):
        return self.name.replace('_', ' ').title()

    def __repr__(self):
        return f"<{self.__class__.__name__}.{self.name}: '{str(self)}'>"

class SolverError(Exception):
    '''
    Base class for exceptions in the solver module.
    '''
    def __init__(self, code: SolverErrorMsg, message: Optional[str] = None):
        self.code       = code
        self.message    = message if message else str(code)
        super().__init__(self.message)

    def __str__(self):
        return f"[SolverError {self.code.name} ({self.code.value})]: {self.message}"

    def __repr__(self):
        return self.__str__()

class InvalidOperatorError(SolverError):
    '''
    The operator / preconditioner pair produced a degenerate (NaN) initial
    convergence scalar <r, M^{-1} r>.
    '''
    def __init__(self, message: Optional[str] = None):
        super().__init__(SolverErrorMsg.INVALID_OPERATOR, message)

class SolverResult(NamedTuple):
    '''
    Stores the result of a solver's static execution.

    Attributes:
        x (Array):
            The computed solution vector.
        converged (bool):
            Whether the solver reached the desired tolerance.
        iterations (int):
            The number of iterations performed.
        residual_norm (Optional[float]):
            CG: the convergence scalar <r, M^{-1} r> of `x`.
            Krylov: the true residual norm ||b - Ax||.
        history (Optional[List[dict]]):
            Recorded snapshots, if history was requested.
    '''
    x               : Array
    converged       : bool
    iterations      : int
    residual_norm   : Optional[float]
    history         : Optional[List[Dict[str, Any]]] = None

# -----------------------------------------------------------------------------
#! General Solver Abstract Base Class
# -----------------------------------------------------------------------------

class Solver(ABC):
    '''
    Abstract base class for linear system solvers

    $$
    Ax = b.
    $$

    Primarily defines the static interface `solve` that concrete algorithm
    implementations (CG, Krylov) must provide. The instance side is a
    convenience: it holds a matrix or a matvec function plus defaults and
    calls the static `solve` through `solve_instance`.
    '''
    _solver_type : Optional[SolverType] = None # To be set by concrete subclasses

    def __init__(self,
                backend         : str                             = 'default',
                dtype           : Optional[Type]                  = None,
                # Default parameters
                eps             : Optional[float]                 = None,
                maxiter         : Optional[int]                   = None,
                default_precond : Optional[Any]                   = None,
                # Configuration for instance setup (optional)
                a               : Optional[Array]                 = None,
                matvec_func     : Optional[MatVecFunc]            = None,
                sigma           : Optional[float]                 = None
                ):
        '''
        Initializes solver metadata and optionally pre-configures for instance usage.

        Args:
            backend (str):
                Preferred backend ('numpy', 'jax', 'default').
            dtype (Type, optional):
                Data type b and x0 are cast to. Kept as given if None.
            eps (float, optional):
                Default tolerance; sqrt of the machine epsilon if None.
            maxiter (int, optional):
                Default iteration budget; the dimension of b if None.
            default_precond (optional):
                Preconditioner used when `solve_instance` gets precond='default'.
            a (Array, optional):
                Explicit matrix A for instance setup.
            matvec_func (Callable, optional):
                Explicit matvec function, takes precedence over `a`.
            sigma (float, optional):
                Default diagonal shift used when building the matvec from `a`.
        '''
        self._logger                    : Logger = get_global_logger()
        self._backend_str               : str
        self._backend                   : Any  # numpy-like module
        self._backend_sp                : Any  # scipy-like module
        self._set_backend(backend)

        self._dtype                     = dtype

        # Store defaults / config
        self._default_eps               = eps
        self._default_maxiter           = maxiter
        self._default_precond           = default_precond
        self._conf_a                    = a
        self._conf_matvec_func          = matvec_func
        self._conf_sigma                = sigma

        # Store results from last instance solve call
        self._last_solution             : Optional[Array]   = None
        self._last_converged            : Optional[bool]    = None
        self._last_iterations           : Optional[int]     = None
        self._last_residual_norm        : Optional[float]   = None
        self._last_history              : Optional[list]    = None

    # -------------------------------------------------------------------------

    def _set_backend(self, backend: str):
        """
        Internal method to set backend attributes.
        """
        self._backend, self._backend_sp = get_backend(backend, scipy=True)
        self._backend_str               = backend_name(self._backend)

    def log(self, msg: str, log: Union[int, str] = 'info', lvl: int = 0, color: str = "white"):
        ''' Log a message prefixed with the solver class name. '''
        self._logger.say(f"[{self.__class__.__name__}] {msg}", log=log, lvl=lvl, color=color)

    # -------------------------------------------------------------------------
    #! Static Solve Interface (Core Requirement)
    # -------------------------------------------------------------------------

    @staticmethod
    @abstractmethod
    def solve(
            # Core Problem Definition
            matvec          : MatVecFunc,
            b               : Array,
            x0              : Optional[Array],
            # Solver Parameters
            *,              # Enforce keyword arguments
            tol             : Optional[float],
            maxiter         : Optional[int],
            # Optional Preconditioner, This is the function r -> M^{-1}r
            precond_apply   : Optional[Callable[[Array], Array]] = None,
            # Backend Specification
            backend_module  : Any = None,
            # Solver Specific Arguments
            **kwargs        : Any
            ) -> SolverResult:
        """
        Abstract Static:
            Solves the linear system Ax = b using a specific algorithm.

        Args:
            matvec:
                Function implementing the matrix-vector product A @ x.
            b:
                Right-hand side vector.
            x0:
                Initial guess vector (zeros if None, where the method uses one).
            tol:
                Convergence tolerance, algorithm specific.
            maxiter:
                Iteration budget.
            precond_apply:
                Function applying the preconditioner, r -> M^{-1}r (optional).
            backend_module:
                The numerical backend module (e.g., `numpy` or `jax.numpy`).
            **kwargs:
                Additional solver-specific keyword arguments.

        Returns:
            SolverResult:
                Named tuple with solution, convergence status, iterations, residual norm, history.
        """
        raise NotImplementedError(str(SolverErrorMsg.METHOD_NOT_IMPL))

    # -------------------------------------------------------------------------
    #! Static Helpers for Creating MatVec Functions
    # -------------------------------------------------------------------------

    @staticmethod
    def create_matvec_from_matrix(
            a               : Array,
            sigma           : Optional[float]   = None,
            backend_module  : Any               = None,
            compile_func    : bool              = False) -> MatVecFunc:
        """
        Static Helper:
            Creates matvec function `x -> (A + sigma*I) @ x`.

        Args:
            a (np.ndarray, jnp.ndarray, sparse):
                The matrix.
            sigma (float):
                Optional regularization parameter.
            backend_module:
                The backend (np, jnp) dense matrices are moved to; kept as is if None.
            compile_func (bool):
                Compile the product (numba for NumPy, jax.jit for JAX).

        Returns:
            Callable[[Array], Array]:
                The matrix-vector product function.
        """
        if backend_module is not None and not sps.issparse(a):
            a = backend_module.asarray(a)
        return MatrixOperator(a, sigma=sigma, compile=compile_func).apply

    # -------------------------------------------------------------------------
    #! Convenience Instance Method (Wrapper around Static Solve)
    # -------------------------------------------------------------------------

    def _check_precond_solve(self, precond) -> Optional[Callable[[Array], Array]]:
        """
        Resolve the preconditioner of an instance solve to r -> M^{-1}r.

        Args:
            precond:
                'default' for the instance default, None for no preconditioning,
                or anything `as_preconditioner` accepts.
        Raises:
            TypeError:
                If the provided preconditioner is not of a valid type.
        """
        source = self._default_precond if (isinstance(precond, str) and precond == 'default') else precond
        if source is None:
            return None
        if isinstance(source, Preconditioner) and source.backend_str != self.backend_str:
            self.log(f"Preconditioner backend '{source.backend_str}' differs from solver backend '{self.backend_str}'.",
                    log='warning', lvl=1)
        return as_preconditioner(source).solve

    def _check_matvec_solve(self, current_sigma: Optional[float], compile_matvec: bool) -> MatVecFunc:
        """
        Internal: Determines the matvec function based on instance config.
        """
        if self._conf_matvec_func is not None:
            return self._conf_matvec_func
        if self._conf_a is not None:
            return self.create_matvec_from_matrix(self._conf_a, current_sigma, self._backend, compile_func=compile_matvec)
        raise SolverError(SolverErrorMsg.MATVEC_FUNC_NOT_SET, "Instance needs matvec func or matrix.")

    def solve_instance(self,
                    b               : Array,
                    x0              : Optional[Array]   = None,
                    *,
                    # Overrides for this call
                    tol             : Optional[float]   = None,
                    maxiter         : Optional[int]     = None,
                    precond         : Any               = 'default',
                    sigma           : Optional[float]   = None,
                    compile_matvec  : bool              = False,
                    # Kwargs for the static solver
                    **kwargs) -> SolverResult:
        """
        Convenience instance method to run the solver.

        Sets up `matvec` and `precond_apply` from the instance configuration,
        calls the static `solve` of this solver's class and stores the result.

        Args:
            b (Array):
                Right-hand side vector.
            x0 (Optional[Array]):
                Initial guess. Defaults to zeros.
            tol (Optional[float]):
                Tolerance override. Uses instance default if None.
            maxiter (Optional[int]):
                Iteration budget override. Uses instance default if None.
            precond:
                Preconditioner for this solve; 'default' uses the instance default.
            sigma (Optional[float]):
                Diagonal shift for the matvec built from the instance matrix.
            compile_matvec (bool):
                Compile the matvec built from the instance matrix.
            **kwargs:
                Additional arguments passed directly to the static `solve`.

        Returns:
            SolverResult:
                Result from the static solve method.
        """
        current_tol                     = tol if tol is not None else self._default_eps
        current_maxiter                 = maxiter if maxiter is not None else self._default_maxiter
        current_backend_mod             = self._backend

        current_sigma                   = sigma if sigma is not None else self._conf_sigma
        matvec_func : MatVecFunc        = self._check_matvec_solve(current_sigma, compile_matvec)
        precond_apply_func              = self._check_precond_solve(precond)

        # Prepare b and x0
        b_be                            = current_backend_mod.asarray(b, dtype=self._dtype)
        x0_be                           = None
        if x0 is not None:
            x0_be                       = current_backend_mod.asarray(x0, dtype=self._dtype)
            if x0_be.shape != b_be.shape:
                raise SolverError(SolverErrorMsg.DIM_MISMATCH, f"Shape mismatch: b={b_be.shape}, x0={x0_be.shape}")

        self.log(f"Calling static solve with backend={self.backend_str}, tol={current_tol}, maxiter={current_maxiter}.", log='debug', lvl=1)
        result = self.__class__.solve(
            matvec          = matvec_func,
            b               = b_be,
            x0              = x0_be,
            tol             = current_tol,
            maxiter         = current_maxiter,
            precond_apply   = precond_apply_func,
            backend_module  = current_backend_mod,
            **kwargs
        )

        # Store results in instance
        self._last_solution             = result.x
        self._last_converged            = result.converged
        self._last_iterations           = result.iterations
        self._last_residual_norm        = result.residual_norm
        self._last_history              = result.history
        return result

    # -------------------------------------------------------------------------
    #! Properties for Last Result
    # -------------------------------------------------------------------------

    @property
    def solution(self) -> Optional[Array]:
        ''' What is the last solution? '''
        return self._last_solution

    @property
    def converged(self) -> Optional[bool]:
        ''' Is it converged solution? '''
        return self._last_converged

    @property
    def iterations(self) -> Optional[int]:
        ''' How many iterations? '''
        return self._last_iterations

    @property
    def residual_norm(self) -> Optional[float]:
        ''' What is the quality of the last result? '''
        return self._last_residual_norm

    @property
    def history(self) -> Optional[list]:
        return self._last_history

    # -------------------------------------------------------------------------
    #! Properties for Configuration (Read-only access)
    # -------------------------------------------------------------------------

    @property
    def solver_type(self) -> Optional[SolverType]:
        return self._solver_type

    @property
    def backend_str(self) -> str:
        ''' Default backend string '''
        return self._backend_str

    @property
    def dtype(self) -> Optional[Type]:
        return self._dtype

    @property
    def default_eps(self) -> float:
        ''' Default tolerance '''
        return self._default_eps if self._default_eps is not None else default_tolerance(self._dtype)

    @property
    def default_maxiter(self) -> Optional[int]:
        return self._default_maxiter

    # -------------------------------------------------------------------------

    def __repr__(self) -> str:
        ''' Returns the name and configuration of the solver. '''
        return f"{self.__class__.__name__}(type={self._solver_type.name if self._solver_type else 'Unknown'}, backend='{self.backend_str}')"

    def __str__(self) -> str:
        return self.__repr__()

# -----------------------------------------------------------------------------
#! EOF
# -----------------------------------------------------------------------------
