r'''
file:       itersolve/algebra/solvers/krylov.py

GMRES-style solver over a raw (non-orthogonalized) Krylov sequence.

Given an operator :math:`A`, a right-hand side :math:`b` and a left
preconditioner :math:`P_l \approx A^{-1}`, build the :math:`n \times (m+1)` matrix

.. math::

    K_{:,0} = P_l b, \qquad K_{:,j} = P_l A K_{:,j-1}, \quad j = 1, \dots, m,

solve the least-squares problem

.. math::

    \alpha = \arg\min_\alpha \| K_{:,1:m+1} \alpha - K_{:,0} \|_2

with a QR factorization and return :math:`x = K_{:,0:m} \alpha`. Since
:math:`K_{:,1:m+1} = P_l A K_{:,0:m}`, this minimizes the preconditioned
residual :math:`\|P_l (A x - b)\|` over the Krylov space.

The columns are powers of :math:`P_l A` applied to :math:`P_l b`: no Arnoldi
step orthogonalizes them, so they become nearly linearly dependent as `m`
grows. Memory is :math:`O(n m)`. Only small budgets are intended; with
:math:`m = n` and a well-conditioned :math:`A` the sequence spans the whole
space and the solve is exact up to rounding.

On NumPy the least-squares step uses a column-pivoted QR
(`scipy.linalg.qr(..., pivoting=True)`) and drops the columns beyond the
numerical rank; on JAX a plain `jnp.linalg.qr` is used.
'''

from typing import Optional, Callable, Any, Tuple

import numpy as np
import scipy.linalg as sla

from ..solver           import Solver, SolverResult, SolverType, MatVecFunc, Array
from ..operators        import as_operator
from ..preconditioners  import as_preconditioner
from ..utils            import backend_of, default_tolerance, jnp, jsp
from ...common.flog     import get_global_logger

# -----------------------------------------------------------------------------
#! Least squares
# -----------------------------------------------------------------------------

def _lstsq_qr_np(k_mat: np.ndarray, rhs: np.ndarray) -> Tuple[np.ndarray, int]:
    '''
    min ||k_mat alpha - rhs|| by rank-revealing QR. Returns (alpha, rank).
    '''
    n, m        = k_mat.shape
    dtype       = np.result_type(k_mat.dtype, rhs.dtype)
    q, r, piv   = sla.qr(k_mat, mode='economic', pivoting=True)
    diag_r      = np.abs(np.diag(r))
    alpha       = np.zeros(m, dtype=dtype)
    if diag_r.size == 0 or diag_r[0] == 0.0:
        return alpha, 0

    cutoff      = max(n, m) * np.finfo(diag_r.dtype).eps * diag_r[0]
    rank        = int(np.count_nonzero(diag_r > cutoff))
    y           = sla.solve_triangular(r[:rank, :rank], q[:, :rank].conj().T @ rhs)
    alpha[piv[:rank]] = y
    return alpha, rank

def _lstsq_qr_jax(k_mat, rhs):
    q, r = jnp.linalg.qr(k_mat)
    return jsp.linalg.solve_triangular(r, q.conj().T @ rhs), k_mat.shape[1]

# -----------------------------------------------------------------------------
#! Functional interface
# -----------------------------------------------------------------------------

def krylov_matrix(A: Any, b: Array, maxiter: int, *, Pl: Any = None) -> Array:
    '''
    The n x (maxiter + 1) matrix [Pl b, (Pl A) Pl b, ..., (Pl A)^maxiter Pl b].
    '''
    if maxiter < 1:
        raise ValueError(f"maxiter must be >= 1, got {maxiter}.")
    op      = as_operator(A)
    pl      = as_preconditioner(Pl)
    be      = backend_of(b)
    cols    = [pl.solve(b)]
    for _ in range(maxiter):
        cols.append(pl.solve(op.apply(cols[-1])))
    return be.stack(cols, axis=1)

def krylov_solve(A: Any, b: Array, maxiter: int, *, Pl: Any = None) -> Array:
    """
    Approximate solution of A x = b in the Krylov space of dimension `maxiter`.

    Args:
        A:
            Operator (matrix, sparse matrix, LinearOperator or callable).
        b (Array):
            Right-hand side.
        maxiter (int):
            Number of Krylov vectors m (>= 1).
        Pl:
            Left preconditioner approximating A^{-1}, identity if None. Takes
            the same forms as the CG preconditioner.

    Returns:
        Array: x = K[:, :m] alpha.

    Raises:
        ValueError: if maxiter < 1.
    """
    be      = backend_of(b)
    b       = be.asarray(b)
    if not be.issubdtype(b.dtype, be.inexact):
        b   = b.astype(be.float64)

    k_mat   = krylov_matrix(A, b, maxiter, Pl=Pl)
    if be is np:
        alpha, rank = _lstsq_qr_np(k_mat[:, 1:], k_mat[:, 0])
    else:
        alpha, rank = _lstsq_qr_jax(k_mat[:, 1:], k_mat[:, 0])

    if rank < maxiter:
        get_global_logger().debug(f"[Krylov] sequence numerically rank deficient: rank {rank} of {maxiter} vectors.", lvl=1)
    return k_mat[:, :maxiter] @ alpha

gmres = krylov_solve

# -----------------------------------------------------------------------------
#! Solver class
# -----------------------------------------------------------------------------

class KrylovSolver(Solver):
    '''
    Least-squares solver over a raw Krylov sequence. `maxiter` is the number
    of Krylov vectors, `precond_apply` the left preconditioner, and `x0` is
    not used (the sequence always starts from b).
    '''
    _solver_type    = SolverType.KRYLOV

    @staticmethod
    def solve(
            matvec          : MatVecFunc,
            b               : Array,
            x0              : Optional[Array]                   = None,
            *,
            tol             : Optional[float]                   = None,
            maxiter         : Optional[int]                     = None,
            precond_apply   : Optional[Callable[[Array], Array]] = None,
            backend_module  : Any                               = None,
            **kwargs        : Any) -> SolverResult:
        '''
        Static Krylov solve. `converged` is ||b - A x|| <= tol * ||b||.
        '''
        be          = backend_module if backend_module is not None else backend_of(b)
        b           = be.asarray(b)
        maxiter     = b.shape[0] if maxiter is None else maxiter
        tol         = default_tolerance() if tol is None else tol
        op          = as_operator(matvec)

        x           = krylov_solve(op, b, maxiter, Pl=precond_apply)
        rnorm       = float(be.linalg.norm(b - op.apply(x)))
        bnorm       = float(be.linalg.norm(b))
        converged   = rnorm <= tol * bnorm
        get_global_logger().debug(f"[Krylov] m={maxiter}, ||b - Ax||={rnorm:.3e}", lvl=1)
        return SolverResult(x=x, converged=converged, iterations=maxiter, residual_norm=rnorm)

# -----------------------------------------------------------------------------
#! EOF
# -----------------------------------------------------------------------------
