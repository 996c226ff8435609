import numpy as np
import scipy
import warnings

from dataclasses import dataclass
from numpy.typing import ArrayLike, NDArray
from scipy.special import expit
from sklearn.exceptions import ConvergenceWarning
from sklearn.utils.validation import check_is_fitted
from typing import Callable, Literal, Self

from logitfit._base import _BinaryLogisticClassifier
from logitfit._linalg import is_negative_definite, weighted_gram
from logitfit._solvers import damped_newton, newton_raphson


class NewtonLogisticRegression(_BinaryLogisticClassifier):
    """
    Maximum-likelihood logistic regression fitted by Newton-Raphson.

    Two solvers are available. 'newton-raphson' takes full Newton steps and fails
    with `SingularHessianError` when the Hessian cannot be inverted, which is what
    happens on (quasi-)separated or collinear data. 'damped-newton' shifts the
    Hessian by the smallest multiple of the identity that makes it negative
    definite, so every step ascends the local quadratic model and collinear
    columns do not stop the fit.

    Parameters
    ----------
    solver : {'newton-raphson', 'damped-newton'}, default='damped-newton'
        Optimization algorithm.
    max_iter : int, default=25
        Maximum number of Newton updates.
    tol : float, default=1e-8
        Converged once the log-likelihood changes by at most `tol`.
    fit_intercept : bool, default=True
        Whether to fit an intercept. The intercept is the first coefficient of
        the design matrix passed to the solver.
    backend : {'numpy', 'numba'}, default='numpy'
        Implementation of the log-likelihood, gradient and Hessian.

    Attributes
    ----------
    classes_ : ndarray of shape (2,)
        A list of the class labels.
    coef_ : ndarray of shape (n_features,)
        The coefficients of the features.
    intercept_ : float
        Fitted intercept. Set to 0.0 if `fit_intercept=False`.
    loglik_ : float
        Fitted log-likelihood.
    n_iter_ : int
        Number of iterations the solver ran.
    converged_ : bool
        Whether the solver converged within `max_iter`.
    trace_ : tuple of TraceRecord
        Per-iteration coefficients (intercept first), log-likelihood and damping.
    bse_ : ndarray of shape (n_features,)
        Wald standard errors for the coefficient estimates.
    intercept_bse_ : float
        Wald standard error for the intercept.
    pvalues_ : ndarray of shape (n_features,)
        Wald p-values for the coefficients.
    intercept_pvalue_ : float
        Wald p-value for the intercept.
    n_features_in_ : int
        Number of features seen during `fit`.
    feature_names_in_ : ndarray of shape (n_features_in_,)
        Names of features seen during `fit`. Defined only when X has feature names that are all strings.

    Examples
    --------
    >>> import numpy as np
    >>> from logitfit import NewtonLogisticRegression
    >>> rng = np.random.default_rng(0)
    >>> X = rng.standard_normal((200, 2))
    >>> y = (X @ [1.0, -1.0] + rng.standard_normal(200) > 0).astype(int)
    >>> model = NewtonLogisticRegression().fit(X, y)
    >>> model.converged_
    True
    """

    def __init__(
        self,
        solver: Literal["newton-raphson", "damped-newton"] = "damped-newton",
        max_iter: int = 25,
        tol: float = 1e-8,
        fit_intercept: bool = True,
        backend: Literal["numpy", "numba"] = "numpy",
    ) -> None:
        self.solver = solver
        self.max_iter = max_iter
        self.tol = tol
        self.fit_intercept = fit_intercept
        self.backend = backend

    def fit(
        self,
        X: ArrayLike,
        y: ArrayLike,
        start: ArrayLike | None = None,
    ) -> Self:
        """
        Fit the logistic regression model.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Feature matrix.
        y : array-like of shape (n_samples,)
            Target labels.
        start : array-like of shape (n_params,), default=None
            Starting coefficients, intercept first when `fit_intercept=True`.
            Zeros if None.

        Returns
        -------
        self : NewtonLogisticRegression
            Fitted estimator.
        """
        if self.solver not in ("newton-raphson", "damped-newton"):
            raise ValueError(
                f"solver must be 'newton-raphson' or 'damped-newton', "
                f"got '{self.solver}'"
            )
        X, y = self._validate_input(X, y)
        X = self._design(X)
        start = self._start(start, X.shape[1])

        compute_quantities = _quantities_function(X, y, self.backend)
        solve = newton_raphson if self.solver == "newton-raphson" else damped_newton
        result = solve(
            compute_quantities=compute_quantities,
            start=start,
            max_iter=self.max_iter,
            tol=self.tol,
        )

        self._set_coef(result.beta)
        self.loglik_ = result.loglik
        self.n_iter_ = result.n_iter
        self.converged_ = result.converged
        self.trace_ = result.trace

        if not result.converged:
            warnings.warn(
                f"{self.solver} did not converge after {self.max_iter} iterations.",
                ConvergenceWarning,
                stacklevel=2,
            )

        # === Wald ===
        # observed information is the negated Hessian; undefined when singular
        if is_negative_definite(result.hessian):
            cov = scipy.linalg.inv(-result.hessian)
            bse = np.sqrt(np.diag(cov))
        else:
            bse = np.full_like(result.beta, np.nan)

        with np.errstate(divide="ignore", invalid="ignore"):
            z = result.beta / bse
        pvalues = 2 * scipy.stats.norm.sf(np.abs(z))

        if self.fit_intercept:
            self.intercept_bse_ = float(bse[0])
            self.intercept_pvalue_ = float(pvalues[0])
            self.bse_ = bse[1:]
            self.pvalues_ = pvalues[1:]
        else:
            self.intercept_bse_ = np.nan
            self.intercept_pvalue_ = np.nan
            self.bse_ = bse
            self.pvalues_ = pvalues
        return self

    def conf_int(self, alpha: float = 0.05) -> NDArray[np.float64]:
        """
        Wald confidence intervals for the coefficients.

        Parameters
        ----------
        alpha : float, default=0.05
            Significance level (default 0.05 for 95% CI)

        Returns
        -------
        ndarray, shape(n_params, 2)
            Column 0: lower bounds, Column 1: upper bounds.
            Includes the intercept as the first row if `fit_intercept=True`.
        """
        check_is_fitted(self)
        z = scipy.stats.norm.ppf(1 - alpha / 2)
        if self.fit_intercept:
            beta = np.concatenate([[self.intercept_], self.coef_])
            bse = np.concatenate([[self.intercept_bse_], self.bse_])
        else:
            beta = self.coef_
            bse = self.bse_
        lower = beta - z * bse
        upper = beta + z * bse
        return np.column_stack([lower, upper])


@dataclass
class LogisticQuantities:
    """Quantities needed for one Newton-Raphson iteration"""

    loglik: float
    gradient: NDArray[np.float64]  # (n_features,) X'(y - p)
    hessian: NDArray[np.float64]  # (n_features, n_features) -X'WX


def compute_logistic_quantities(
    X: NDArray[np.float64],
    y: NDArray[np.float64],
    beta: NDArray[np.float64],
) -> LogisticQuantities:
    """
    Compute the logistic log-likelihood, its gradient and its Hessian.

    Parameters
    ----------
    X : ndarray of shape (n_samples, n_features)
        Design matrix.
    y : ndarray of shape (n_samples,)
        0/1 response.
    beta : ndarray of shape (n_features,)
        Coefficients.

    Returns
    -------
    LogisticQuantities
    """
    eta = X @ beta
    p = expit(eta)

    # L(β) = Σ [y_i*eta_i - log(1 + exp(eta_i))] = -Σ log(1 + exp(-s_i*eta_i)),
    # s_i = 2*y_i - 1. logaddexp keeps both tails exact without overflow.
    sign = 2.0 * y - 1.0
    loglik = -np.sum(np.logaddexp(0.0, -sign * eta))

    gradient = X.T @ (y - p)

    # W = diag(p * (1-p)); saturated probabilities give zero weight
    w = p * (1.0 - p)
    hessian = -weighted_gram(X, w)

    return LogisticQuantities(
        loglik=float(loglik),
        gradient=gradient,
        hessian=hessian,
    )


def _quantities_function(
    X: NDArray[np.float64],
    y: NDArray[np.float64],
    backend: Literal["numpy", "numba"],
) -> Callable[[NDArray[np.float64]], LogisticQuantities]:
    """Bind (X, y) to the chosen backend's quantities function."""
    if backend == "numpy":

        def compute_quantities(beta):
            return compute_logistic_quantities(X, y, beta)

        return compute_quantities

    from logitfit import NUMBA_AVAILABLE

    if not NUMBA_AVAILABLE:
        raise ImportError(
            "backend='numba' requires numba. Install it with "
            "`pip install logitfit[numba]`."
        )
    from logitfit._numba.logistic import (
        compute_logistic_quantities as compute_logistic_quantities_numba,
    )

    Xc = np.ascontiguousarray(X)
    k = X.shape[1]

    def compute_quantities_numba(beta):
        gradient = np.empty(k, dtype=np.float64)
        hessian = np.empty((k, k), dtype=np.float64)
        loglik = compute_logistic_quantities_numba(
            Xc, y, np.ascontiguousarray(beta), gradient, hessian
        )
        return LogisticQuantities(loglik=loglik, gradient=gradient, hessian=hessian)

    return compute_quantities_numba
