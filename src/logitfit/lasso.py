import numpy as np
import warnings

from numpy.typing import ArrayLike, NDArray
from sklearn.exceptions import ConvergenceWarning
from typing import Literal, Self

from logitfit._base import _BinaryLogisticClassifier
from logitfit._solvers import coordinate_descent_lasso


class LassoLogisticRegression(_BinaryLogisticClassifier):
    """
    L1-penalized logistic regression fitted by IRLS coordinate descent.

    Each outer iteration replaces the log-likelihood by its weighted least-squares
    approximation at the current coefficients and sweeps the coordinates once,
    soft-thresholding every feature coefficient. The intercept is not penalized.

    Parameters
    ----------
    alpha : float, default=1.0
        L1 penalty. Applied to the unscaled weighted correlation
        `sum(w * x_k * r)`, so it grows with the number of samples; see
        `alpha_max` for the smallest value that zeroes every coefficient.
    max_iter : int, default=100
        Maximum number of outer IRLS cycles.
    tol : float, default=1e-6
        Converged once the L2 norm of the coefficient change over one cycle
        falls below `tol`.
    eps : float, default=1e-5
        Working weight used where a fitted probability is within `eps` of 0 or 1.
    fit_intercept : bool, default=True
        Whether to fit an unpenalized intercept.
    backend : {'numpy', 'numba'}, default='numpy'
        Implementation of the coordinate sweep.

    Attributes
    ----------
    classes_ : ndarray of shape (2,)
        A list of the class labels.
    coef_ : ndarray of shape (n_features,)
        The coefficients of the features.
    intercept_ : float
        Fitted intercept. Set to 0.0 if `fit_intercept=False`.
    objective_ : float
        Penalized surrogate objective after the last cycle.
    n_iter_ : int
        Number of outer cycles the solver ran.
    converged_ : bool
        Whether the solver converged within `max_iter`.
    trace_ : tuple of TraceRecord
        Per-cycle coefficients (intercept first) and objective.
    degenerate_ : tuple of int
        Indices into `coef_` of features with zero weighted variance.
    n_features_in_ : int
        Number of features seen during `fit`.
    feature_names_in_ : ndarray of shape (n_features_in_,)
        Names of features seen during `fit`. Defined only when X has feature names that are all strings.
    """

    def __init__(
        self,
        alpha: float = 1.0,
        max_iter: int = 100,
        tol: float = 1e-6,
        eps: float = 1e-5,
        fit_intercept: bool = True,
        backend: Literal["numpy", "numba"] = "numpy",
    ) -> None:
        self.alpha = alpha
        self.max_iter = max_iter
        self.tol = tol
        self.eps = eps
        self.fit_intercept = fit_intercept
        self.backend = backend

    def fit(
        self,
        X: ArrayLike,
        y: ArrayLike,
        start: ArrayLike | None = None,
    ) -> Self:
        """
        Fit the L1-penalized logistic regression model.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Feature matrix, standardized by the caller.
        y : array-like of shape (n_samples,)
            Target labels.
        start : array-like of shape (n_params,), default=None
            Starting coefficients, intercept first when `fit_intercept=True`.
            Zeros if None.

        Returns
        -------
        self : LassoLogisticRegression
            Fitted estimator.
        """
        if not np.isfinite(self.alpha) or self.alpha < 0:
            raise ValueError(
                f"alpha must be finite and non-negative, got {self.alpha}"
            )
        X, y = self._validate_input(X, y)
        X = self._design(X)
        start = self._start(start, X.shape[1])

        result = coordinate_descent_lasso(
            X,
            y,
            start,
            alpha=self.alpha,
            max_iter=self.max_iter,
            tol=self.tol,
            eps=self.eps,
            unpenalized=0 if self.fit_intercept else None,
            backend=self.backend,
        )

        self._set_coef(result.beta)
        self.objective_ = result.objective
        self.n_iter_ = result.n_iter
        self.converged_ = result.converged
        self.trace_ = result.trace
        offset = 1 if self.fit_intercept else 0
        self.degenerate_ = tuple(j - offset for j in result.degenerate if j >= offset)

        if not result.converged:
            warnings.warn(
                f"Coordinate descent did not converge after {self.max_iter} "
                "iterations. Consider increasing max_iter.",
                ConvergenceWarning,
                stacklevel=2,
            )
        return self


def alpha_max(
    X: ArrayLike,
    y: ArrayLike,
    unpenalized: int | None = 0,
) -> float:
    """
    Smallest penalty at which every penalized coefficient is zero.

    At the intercept-only fit the working residual is `(y - ybar) / w`, so the
    weighted correlation of column k is `x_k' (y - ybar)`; soft-thresholding
    zeroes it once `alpha >= |x_k' (y - ybar)|`. Without an unpenalized column
    the reference fit is beta = 0 and `ybar` is replaced by 0.5.

    Parameters
    ----------
    X : array-like of shape (n_samples, n_features)
        Design matrix including the intercept column.
    y : array-like of shape (n_samples,)
        0/1 response.
    unpenalized : int or None, default=0
        Column excluded from the penalty, assumed to be the intercept column of
        ones.

    Returns
    -------
    float
    """
    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    center = 0.5 if unpenalized is None else y.mean()
    corr: NDArray[np.float64] = np.abs(X.T @ (y - center))
    if unpenalized is not None:
        corr = np.delete(corr, unpenalized)
    return float(corr.max()) if corr.size else 0.0
