import numpy as np
import warnings

from numpy.typing import ArrayLike, NDArray
from typing import Callable, Literal, Protocol, Sequence

from logitfit._irls import compute_working_quantities
from logitfit._linalg import DAMPING_RTOL, damped_newton_direction, newton_direction
from logitfit._utils import (
    LassoResult,
    NewtonResult,
    TraceRecord,
    check_design,
    check_stopping,
)
from logitfit.exceptions import (
    DampingSearchExhaustedError,
    DegenerateCoordinateWarning,
    SingularHessianError,
)


class _Quantities(Protocol):
    loglik: float
    gradient: NDArray[np.float64]
    hessian: NDArray[np.float64]


def _newton_loop(
    compute_quantities: Callable[[NDArray[np.float64]], _Quantities],
    start: ArrayLike,
    max_iter: int,
    tol: float,
    direction: Callable[[_Quantities], tuple[NDArray[np.float64], float]],
    error: type[SingularHessianError] | type[DampingSearchExhaustedError],
) -> NewtonResult:
    check_stopping(max_iter, tol)
    beta = np.array(start, dtype=np.float64, copy=True)
    if not np.all(np.isfinite(beta)):
        raise ValueError("start contains NaN or infinity.")
    q = compute_quantities(beta)
    trace: list[TraceRecord] = []

    for iteration in range(1, max_iter + 1):
        try:
            delta, shift = direction(q)
        except np.linalg.LinAlgError as e:
            trace.append(TraceRecord.snapshot(iteration - 1, beta, q.loglik))
            raise error(
                f"Iteration {iteration}: {e}",
                iteration=iteration,
                beta=beta.copy(),
                trace=tuple(trace),
            ) from e
        trace.append(TraceRecord.snapshot(iteration - 1, beta, q.loglik, shift))

        beta = beta - delta
        q_new = compute_quantities(beta)

        # converged: |loglik_k - loglik_{k-1}| <= tol
        if abs(q_new.loglik - q.loglik) <= tol:
            trace.append(TraceRecord.snapshot(iteration, beta, q_new.loglik))
            return NewtonResult(
                beta=beta,
                loglik=q_new.loglik,
                gradient=q_new.gradient,
                hessian=q_new.hessian,
                n_iter=iteration,
                converged=True,
                trace=tuple(trace),
            )
        q = q_new

    trace.append(TraceRecord.snapshot(max_iter, beta, q.loglik))
    return NewtonResult(
        beta=beta,
        loglik=q.loglik,
        gradient=q.gradient,
        hessian=q.hessian,
        n_iter=max_iter,
        converged=False,
        trace=tuple(trace),
    )


def newton_raphson(
    compute_quantities: Callable[[NDArray[np.float64]], _Quantities],
    start: ArrayLike,
    max_iter: int = 25,
    tol: float = 1e-8,
    singular_rtol: float | None = None,
) -> NewtonResult:
    """
    Undamped Newton-Raphson solver

    Parameters
    ----------
    compute_quantities : Callable[[NDArray], _Quantities]
        Function `callable(beta)` that returns loglik, gradient, and hessian
    start : array-like of shape (n_features,)
        Starting coefficients. Not modified.
    max_iter : int, default=25
        Maximum number of Newton updates
    tol : float, default=1e-8
        Converged once the log-likelihood changes by at most `tol`
    singular_rtol : float, default=None
        Hessian treated as singular when min|eig| <= singular_rtol * max|eig|.
        None uses `n_features * machine epsilon`, the `numpy.linalg.matrix_rank`
        cutoff.

    Returns
    -------
    NewtonResult
        Final iterate and trace. `converged=False` if `max_iter` was reached.

    Raises
    ------
    SingularHessianError
        If the Hessian cannot be inverted at some iterate.
    """

    def direction(q: _Quantities) -> tuple[NDArray[np.float64], float]:
        return newton_direction(q.hessian, q.gradient, rtol=singular_rtol), 0.0

    return _newton_loop(
        compute_quantities, start, max_iter, tol, direction, SingularHessianError
    )


def damped_newton(
    compute_quantities: Callable[[NDArray[np.float64]], _Quantities],
    start: ArrayLike,
    max_iter: int = 25,
    tol: float = 1e-8,
    damping_rtol: float = DAMPING_RTOL,
    max_damping_steps: int = 50,
) -> NewtonResult:
    """
    Newton-Raphson with a diagonal shift whenever the Hessian is not negative
    definite.

    Each update is `beta - (H - shift*I)^{-1} g` with the smallest non-negative
    shift making `H - shift*I` negative definite, so every step ascends the local
    quadratic model of the log-likelihood. The shift used to leave each iterate is
    stored in the trace.

    Parameters
    ----------
    compute_quantities : Callable[[NDArray], _Quantities]
        Function `callable(beta)` that returns loglik, gradient, and hessian
    start : array-like of shape (n_features,)
        Starting coefficients. Not modified.
    max_iter : int, default=25
        Maximum number of Newton updates
    tol : float, default=1e-8
        Converged once the log-likelihood changes by at most `tol`
    damping_rtol : float, default=sqrt(machine epsilon)
        Curvature left in a shifted Hessian, relative to its largest
        eigenvalue magnitude. Hessians that are already negative definite are
        not shifted.
    max_damping_steps : int, default=50
        Maximum number of shift doublings when the Cholesky check fails

    Returns
    -------
    NewtonResult
        Final iterate and trace. `converged=False` if `max_iter` was reached.

    Raises
    ------
    DampingSearchExhaustedError
        If no shift within the search bound yields a negative definite matrix.
    """
    if max_damping_steps < 0:
        raise ValueError(
            f"max_damping_steps must be non-negative, got {max_damping_steps}"
        )

    def direction(q: _Quantities) -> tuple[NDArray[np.float64], float]:
        return damped_newton_direction(
            q.hessian, q.gradient, rtol=damping_rtol, max_steps=max_damping_steps
        )

    return _newton_loop(
        compute_quantities, start, max_iter, tol, direction, DampingSearchExhaustedError
    )


def soft_threshold(v: ArrayLike, gamma: float) -> NDArray[np.float64] | float:
    """
    Proximal operator of the L1 penalty: sign(v) * max(|v| - gamma, 0).

    Works elementwise on arrays; scalars in, scalar out.
    """
    v = np.asarray(v, dtype=np.float64)
    out = np.sign(v) * np.maximum(np.abs(v) - gamma, 0.0)
    return float(out) if out.ndim == 0 else out


def _cd_sweep(
    X: NDArray[np.float64],
    w: NDArray[np.float64],
    residual: NDArray[np.float64],
    beta: NDArray[np.float64],
    alpha: float,
    unpenalized: int,
    degenerate: NDArray[np.bool_],
) -> None:
    """
    One ascending pass of coordinate descent on the weighted least-squares
    surrogate. `beta` and `residual` (z - X @ beta) are updated in place.
    """
    for k in range(X.shape[1]):
        x_k = X[:, k]
        wx = w * x_k
        denom = wx @ x_k
        if denom <= 0.0:
            residual += x_k * beta[k]
            beta[k] = 0.0
            degenerate[k] = True
            continue

        # partial residual excludes feature k
        partial = residual + x_k * beta[k]
        val = wx @ partial
        if k == unpenalized:
            beta[k] = val / denom
        else:
            beta[k] = soft_threshold(val, alpha) / denom
        residual[:] = partial - x_k * beta[k]


def coordinate_descent_lasso(
    X: ArrayLike,
    y: ArrayLike,
    start: ArrayLike,
    alpha: float,
    max_iter: int = 100,
    tol: float = 1e-6,
    eps: float = 1e-5,
    unpenalized: int | None = 0,
    backend: Literal["numpy", "numba"] = "numpy",
) -> LassoResult:
    """
    L1-penalized logistic regression by IRLS with cyclic coordinate descent.

    Every outer cycle linearizes the log-likelihood at the current coefficients
    (working weights `w` and response `z`), then sweeps the coordinates in
    ascending order. Penalized coordinates are updated by
    `soft_threshold(sum(w*x_k*r), alpha) / sum(w*x_k**2)` with `r` the partial
    residual excluding feature k; the `unpenalized` column gets the plain
    weighted least-squares update.

    Parameters
    ----------
    X : array-like of shape (n_samples, n_features)
        Design matrix including the intercept column.
    y : array-like of shape (n_samples,)
        0/1 response.
    start : array-like of shape (n_features,)
        Starting coefficients. Not modified.
    alpha : float
        L1 penalty, non-negative.
    max_iter : int, default=100
        Maximum number of outer IRLS cycles.
    tol : float, default=1e-6
        Converged once the L2 norm of the coefficient change over one cycle
        falls below `tol`.
    eps : float, default=1e-5
        Working weight used when a fitted probability is within `eps` of 0 or 1.
    unpenalized : int or None, default=0
        Column excluded from the penalty (the intercept). None penalizes all.
    backend : {'numpy', 'numba'}, default='numpy'
        Implementation of the working quantities and the sweep.

    Returns
    -------
    LassoResult
        Final coefficients, objective and per-cycle trace (entry 0 is `start`).
    """
    X, y, beta = check_design(X, y, start)
    check_stopping(max_iter, tol)
    n, k = X.shape
    if not np.isfinite(alpha) or alpha < 0:
        raise ValueError(f"alpha must be finite and non-negative, got {alpha}")
    if not 0.0 < eps < 0.25:
        raise ValueError(f"eps must be in (0, 0.25), got {eps}")
    if unpenalized is not None and not 0 <= unpenalized < k:
        raise ValueError(f"unpenalized must be in [0, {k}), got {unpenalized}")
    unpen = -1 if unpenalized is None else int(unpenalized)

    penalty_mask = np.ones(k, dtype=bool)
    if unpen >= 0:
        penalty_mask[unpen] = False

    if backend == "numpy":

        def working(beta):
            q = compute_working_quantities(X, y, beta, eps)
            return q.eta, q.w, q.z

        sweep = _cd_sweep
    elif backend == "numba":
        from logitfit import NUMBA_AVAILABLE

        if not NUMBA_AVAILABLE:
            raise ImportError(
                "backend='numba' requires numba. Install it with "
                "`pip install logitfit[numba]`."
            )
        from logitfit._numba.lasso import cd_sweep, working_quantities

        def working(beta):
            return working_quantities(X, y, beta, eps)

        def sweep(X, w, residual, beta, alpha, unpenalized, degenerate):
            cd_sweep(X, w, residual, beta, float(alpha), unpenalized, degenerate)

    else:
        raise ValueError(f"backend must be 'numpy' or 'numba', got '{backend}'")

    def objective(w, residual, beta):
        return 0.5 / n * np.sum(w * residual**2) + alpha * np.sum(
            np.abs(beta[penalty_mask])
        )

    degenerate = np.zeros(k, dtype=bool)
    eta, w, z = working(beta)
    trace = [TraceRecord.snapshot(0, beta, objective(w, z - eta, beta))]

    converged = False
    obj = trace[0].value
    iteration = 0
    for iteration in range(1, max_iter + 1):
        if iteration > 1:
            eta, w, z = working(beta)
        beta_old = beta.copy()
        residual = z - eta

        sweep(X, w, residual, beta, alpha, unpen, degenerate)

        obj = objective(w, residual, beta)
        trace.append(TraceRecord.snapshot(iteration, beta, obj))

        if np.linalg.norm(beta - beta_old) < tol:
            converged = True
            break

    degenerate_idx = tuple(int(j) for j in np.flatnonzero(degenerate))
    if degenerate_idx:
        warnings.warn(
            f"Columns {list(degenerate_idx)} have zero weighted sum of squares; "
            "their coefficients were set to zero.",
            DegenerateCoordinateWarning,
            stacklevel=2,
        )

    return LassoResult(
        beta=beta,
        objective=float(obj),
        n_iter=iteration,
        converged=converged,
        trace=tuple(trace),
        degenerate=degenerate_idx,
    )


def lasso_path(
    X: ArrayLike,
    y: ArrayLike,
    alphas: Sequence[float],
    start: ArrayLike | None = None,
    **solver_params,
) -> list[LassoResult]:
    """
    Fit `coordinate_descent_lasso` over a decreasing sequence of penalties.

    Each fit is warm-started at the previous solution.

    Parameters
    ----------
    X : array-like of shape (n_samples, n_features)
        Design matrix including the intercept column.
    y : array-like of shape (n_samples,)
        0/1 response.
    alphas : sequence of float
        Penalties. Fitted in descending order.
    start : array-like of shape (n_features,), default=None
        Starting coefficients for the largest penalty. Zeros if None.
    **solver_params
        Passed to `coordinate_descent_lasso`.

    Returns
    -------
    list of LassoResult
        One result per penalty, ordered like `sorted(alphas, reverse=True)`.
    """
    X = np.asarray(X, dtype=np.float64)
    if start is None:
        start = np.zeros(X.shape[1], dtype=np.float64)

    results = []
    beta = np.asarray(start, dtype=np.float64)
    for alpha in sorted(alphas, reverse=True):
        result = coordinate_descent_lasso(X, y, beta, alpha, **solver_params)
        results.append(result)
        beta = result.beta
    return results
