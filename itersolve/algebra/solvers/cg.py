r'''
file:       itersolve/algebra/solvers/cg.py

Implements the preconditioned Conjugate Gradient (CG) algorithm for linear systems
:math:`Ax = b` with a symmetric (Hermitian) positive-definite operator :math:`A`.

This file provides:
    1. `conjugate_gradient(M, A, b, x0, ...)`, the functional entry point working
        with any operator / preconditioner accepted by the operator contract.
    2. A concrete `CgSolver` class inheriting from the base `Solver`.

Mathematical Formulation (Preconditioned CG):
-------------------------------------------
Given an SPD operator :math:`A`, a right-hand side :math:`b`, an initial guess
:math:`x_0` and a preconditioner :math:`M \approx A`:

1.  Initialize (iteration 0):
    *   :math:`r_0 = b - Ax_0`
    *   :math:`z_0 = M^{-1}r_0`
    *   :math:`p_0 = z_0`
    *   :math:`\rho_0 = \langle r_0, z_0 \rangle`, must not be NaN

2.  Iterate :math:`k = 1, \dots, n_{steps}`:
    *   :math:`\alpha = \rho_{k-1} / \langle p_{k-1}, A p_{k-1} \rangle`
    *   :math:`x_k = x_{k-1} + \alpha p_{k-1}`
    *   :math:`r_k = r_{k-1} - \alpha A p_{k-1}`
    *   :math:`z_k = M^{-1} r_k`
    *   :math:`\rho_k = \langle r_k, z_k \rangle`
    *   :math:`p_k = z_k + (\rho_k / \rho_{k-1}) p_{k-1}`
    *   stop as soon as :math:`\rho_k < tol`

The convergence scalar `res` is :math:`\mathrm{Re}\,\rho_k`. The returned vector is
the iterate with the smallest `res` seen, the initial guess included, which need
not be the last one.

References:
-----------
    - Hestenes, M. R., & Stiefel, E. (1952). Methods of Conjugate Gradients for
        Solving Linear Systems. Journal of Research of the National Bureau of Standards, 49(6), 409.
    - Saad, Y. (2003). Iterative Methods for Sparse Linear Systems (2nd ed.). SIAM. Chapter 6.
    - Shewchuk, J. R. (1994). An Introduction to the Conjugate Gradient Method
        Without the Agonizing Pain. Carnegie Mellon University Technical Report CS-94-125.
'''

import math
from typing import Optional, Callable, Any, Tuple, Union, List, Dict

from ..solver           import Solver, SolverResult, SolverType, InvalidOperatorError, MatVecFunc, Array
from ..operators        import as_operator, inner, norm_like
from ..preconditioners  import as_preconditioner
from ..history          import HistoryRecorder
from ..progress         import SolverProgress, progress_estimate
from ..utils            import backend_of, default_tolerance
from ...common.flog     import get_global_logger
from ...common.timer    import Timer

# callback(i, x, res)
CgCallback = Callable[[int, Array, float], Any]

# -----------------------------------------------------------------------------
#! Core loop
# -----------------------------------------------------------------------------

def _prepare_vectors(b: Array, x0: Optional[Array]) -> Tuple[Array, Array, Any]:
    '''
    Right-hand side promoted to an inexact dtype and the initial guess.
    '''
    be = backend_of(b)
    b  = be.asarray(b)
    if not be.issubdtype(b.dtype, be.inexact):
        b = b.astype(be.float64)
    if x0 is None:
        return b, be.zeros_like(b), be
    x0 = be.asarray(x0)
    if x0.shape != b.shape:
        raise ValueError(f"Shape mismatch: b={b.shape}, x0={x0.shape}")
    return b, x0, be

def _cg_logic(matvec        : MatVecFunc,
            precond_apply   : Callable[[Array], Array],
            b               : Array,
            x0              : Array,
            tol             : float,
            nsteps          : int,
            callback        : Optional[CgCallback]      = None,
            recorder        : Optional[HistoryRecorder] = None,
            meter           : Optional[SolverProgress]  = None,
            timer           : Optional[Timer]           = None) -> Tuple[Array, float, int, bool, float]:
    '''
    Preconditioned CG with best-iterate tracking.

    Returns:
        (bestx, bestres, iterations, converged, res)
    '''
    timer       = (timer if timer is not None else Timer("cg")).start()
    x           = x0
    r           = b - matvec(x)
    z           = precond_apply(r)
    p           = z
    rho         = inner(r, z)
    res         = norm_like(rho)
    if math.isnan(res):
        raise InvalidOperatorError("Initial <r, M^{-1} r> is NaN, the operator/preconditioner pair is degenerate.")

    res0                = res
    bestres, bestx      = res, x
    if recorder is not None:
        recorder.record_first(i=0, x=x, r=r, res=res, t=timer.elapsed_s(), p=p)

    converged   = res < tol
    i           = 0
    while not converged and i < nsteps:
        i      += 1
        ap      = matvec(p)
        alpha   = rho / inner(p, ap)
        x       = x + alpha * p
        r       = r - alpha * ap
        z       = precond_apply(r)
        rho_new = inner(r, z)
        p       = z + (rho_new / rho) * p
        rho     = rho_new
        res     = norm_like(rho)

        if res < bestres:
            bestres, bestx = res, x

        if callback is not None:
            callback(i, x, res)

        if recorder is not None and recorder.should_record(i):
            recorder.record(i, i=i, x=x, r=r, res=res, t=timer.elapsed_s(), p=p)

        if res < tol:
            converged = True
        elif meter is not None:
            meter.update(progress_estimate(i, nsteps, res, res0, tol))

    timer.stop()
    return bestx, bestres, i, converged, res

def _run(matvec, precond_apply, b, x0, *, tol, nsteps, callback, hist, histmod, progress):
    '''
    Shared driver of `conjugate_gradient` and `CgSolver.solve`: defaults,
    validation, history, progress and logging around `_cg_logic`.
    '''
    logger          = get_global_logger()
    b, x0, be       = _prepare_vectors(b, x0)
    nsteps          = b.shape[0] if nsteps is None else int(nsteps)
    tol             = default_tolerance() if tol is None else tol
    if nsteps < 0:
        raise ValueError(f"nsteps must be non-negative, got {nsteps}.")
    if histmod < 1:
        raise ValueError(f"histmod must be >= 1, got {histmod}.")
    recorder        = HistoryRecorder(hist, stride=histmod) if hist is not None else None

    logger.debug(f"[CG] n={b.shape[0]}, nsteps={nsteps}, tol={tol:.3e}, history={recorder}", lvl=1)
    timer           = Timer("cg", unit="ms")
    with SolverProgress(progress, default_label="CG") as meter:
        bestx, bestres, iters, converged, res = _cg_logic(matvec, precond_apply, b, x0, tol, nsteps,
                                                        callback=callback, recorder=recorder,
                                                        meter=meter if meter.enabled else None, timer=timer)
        if converged:
            meter.finish()

    if converged:
        logger.info(f"[CG] converged after {iters} iterations in {timer.format_elapsed()}, res={res:.3e}", lvl=1)
    else:
        logger.warning(f"[CG] budget of {nsteps} iterations exhausted in {timer.format_elapsed()}, best res={bestres:.3e} >= tol={tol:.3e}", lvl=1)
    return bestx, bestres, iters, converged, recorder

# -----------------------------------------------------------------------------
#! Functional interface
# -----------------------------------------------------------------------------

def conjugate_gradient(M        : Any,
                    A           : Any,
                    b           : Array,
                    x0          : Optional[Array]       = None,
                    *,
                    nsteps      : Optional[int]         = None,
                    tol         : Optional[float]       = None,
                    callback    : Optional[CgCallback]  = None,
                    hist        : Optional[Any]         = None,
                    histmod     : int                   = 1,
                    progress    : Union[bool, str]      = False
                    ) -> Union[Array, Tuple[Array, List[Dict[str, Any]]]]:
    """
    Solve A x = b with preconditioned conjugate gradient.

    Args:
        M:
            Preconditioner: None (identity), a Preconditioner, a callable
            r -> M^{-1} r, or a matrix approximating A (solved with M \\ r).
        A:
            Symmetric positive-definite operator (matrix, sparse matrix,
            LinearOperator or callable v -> A v).
        b (Array):
            Right-hand side.
        x0 (Array, optional):
            Initial guess, zeros by default.
        nsteps (int, optional):
            Iteration budget, len(b) by default.
        tol (float, optional):
            Target of the convergence scalar <r, M^{-1} r>, sqrt(eps) by default.
        callback (Callable, optional):
            Called as callback(i, x, res) after every iteration. Exceptions
            propagate and abort the solve. The initial guess is iteration 0,
            so the first call gets i = 1; callbacks written against a
            1-based count of states (initial guess = 1) see every index
            shifted down by one.
        hist (optional):
            History fields to record ('i', 'x', 'r', 'res', 't', 'p' or their
            long names). Changes the return value to (x, history).
        histmod (int):
            Record every `histmod`-th iteration; the initial state is always recorded.
        progress (bool | str):
            Show a progress bar, a string is used as its label.

    Returns:
        The best iterate, or (best iterate, list of snapshots) when `hist` is given.

    Raises:
        InvalidOperatorError:
            If the initial convergence scalar is NaN.
        ValueError:
            For histmod < 1, nsteps < 0, unknown history fields or a mismatched x0.

    Example:
        >>> x = conjugate_gradient(None, np.diag([1., 2., 3.]), np.ones(3), tol=1e-10)
        >>> x
        array([1.        , 0.5       , 0.33333333])
    """
    op      = as_operator(A)
    pre     = as_preconditioner(M)
    bestx, _, _, _, recorder = _run(op.apply, pre.solve, b, x0,
                                    tol=tol, nsteps=nsteps, callback=callback,
                                    hist=hist, histmod=histmod, progress=progress)
    if recorder is not None:
        return bestx, recorder.snapshots
    return bestx

# -----------------------------------------------------------------------------
#! Solver class
# -----------------------------------------------------------------------------

class CgSolver(Solver):
    '''
    Preconditioned Conjugate Gradient solver for symmetric positive-definite systems.

    `solve` returns the best iterate in `SolverResult.x` and its convergence
    scalar in `SolverResult.residual_norm`.
    '''
    _solver_type    = SolverType.CG

    # -------------------------------------------------------------------------

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
            callback        : Optional[CgCallback]              = None,
            hist            : Optional[Any]                     = None,
            histmod         : int                               = 1,
            progress        : Union[bool, str]                  = False,
            **kwargs        : Any) -> SolverResult:
        '''
        Static CG solve.

        Args:
            matvec:
                Function x -> A x (or anything `as_operator` accepts).
            b, x0:
                Right-hand side and initial guess (zeros if None).
            tol, maxiter:
                Convergence-scalar target and iteration budget.
            precond_apply:
                r -> M^{-1} r, identity if None.
            backend_module:
                Backend `b` is converted to, if given.
            callback, hist, histmod, progress:
                As in `conjugate_gradient`.
        '''
        if backend_module is not None:
            b   = backend_module.asarray(b)
            x0  = None if x0 is None else backend_module.asarray(x0)
        op      = as_operator(matvec)
        pre     = as_preconditioner(precond_apply)
        bestx, bestres, iters, converged, recorder = _run(op.apply, pre.solve, b, x0,
                                                        tol=tol, nsteps=maxiter, callback=callback,
                                                        hist=hist, histmod=histmod, progress=progress)
        return SolverResult(
            x               = bestx,
            converged       = converged,
            iterations      = iters,
            residual_norm   = bestres,
            history         = None if recorder is None else recorder.snapshots)

# -----------------------------------------------------------------------------
#! EOF
# -----------------------------------------------------------------------------
