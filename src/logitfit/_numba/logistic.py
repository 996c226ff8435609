import numpy as np
from numba import njit
from numpy.typing import NDArray

from logitfit._numba._utils import _expit, _log1pexp, symmetrize_lower


@njit(fastmath=True, cache=True)
def compute_logistic_quantities(
    X: NDArray[np.float64],
    y: NDArray[np.float64],
    beta: NDArray[np.float64],
    gradient: NDArray[np.float64],  # (k,) output
    hessian: NDArray[np.float64],  # (k, k) output
) -> float:
    n = X.shape[0]
    k = X.shape[1]

    for j in range(k):
        gradient[j] = 0.0
        for m in range(k):
            hessian[j, m] = 0.0

    loglik = 0.0
    for i in range(n):
        # eta_i = x_i' beta
        eta = 0.0
        for j in range(k):
            eta += X[i, j] * beta[j]
        p = _expit(eta)

        # -log(1 + exp(-s*eta)), s = 2y - 1
        loglik -= _log1pexp(-(2.0 * y[i] - 1.0) * eta)

        r = y[i] - p
        w = p * (1.0 - p)
        for j in range(k):
            x_ij = X[i, j]
            gradient[j] += x_ij * r
            # hessian -= w * x_i x_i', lower triangle
            wx = w * x_ij
            for m in range(j + 1):
                hessian[j, m] -= wx * X[i, m]

    symmetrize_lower(hessian)
    return loglik
