import numpy as np
from numba import njit
from numpy.typing import NDArray

from logitfit._numba._utils import _expit


@njit(fastmath=True, cache=True)
def soft_threshold(v: float, gamma: float) -> float:
    if v > gamma:
        return v - gamma
    if v < -gamma:
        return v + gamma
    return 0.0


@njit(fastmath=True, cache=True)
def working_quantities(
    X: NDArray[np.float64],
    y: NDArray[np.float64],
    beta: NDArray[np.float64],
    eps: float,
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Return eta, w, z of the IRLS linearization at beta."""
    n = X.shape[0]
    k = X.shape[1]
    eta = np.empty(n, dtype=np.float64)
    w = np.empty(n, dtype=np.float64)
    z = np.empty(n, dtype=np.float64)

    for i in range(n):
        total = 0.0
        for j in range(k):
            total += X[i, j] * beta[j]
        eta[i] = total
        p = _expit(total)

        if p < eps or p > 1.0 - eps:
            w_i = eps
        else:
            w_i = p * (1.0 - p)
        w[i] = w_i
        z[i] = total + (y[i] - p) / w_i

    return eta, w, z


@njit(fastmath=True, cache=True)
def cd_sweep(
    X: NDArray[np.float64],
    w: NDArray[np.float64],
    residual: NDArray[np.float64],  # z - X @ beta, updated in place
    beta: NDArray[np.float64],  # updated in place
    alpha: float,
    unpenalized: int,  # -1 penalizes every column
    degenerate: NDArray[np.bool_],  # set for columns with zero weighted variance
) -> None:
    n = X.shape[0]
    k = X.shape[1]

    for j in range(k):
        denom = 0.0
        for i in range(n):
            denom += w[i] * X[i, j] * X[i, j]

        if denom <= 0.0:
            for i in range(n):
                residual[i] += X[i, j] * beta[j]
            beta[j] = 0.0
            degenerate[j] = True
            continue

        # weighted correlation with the partial residual (feature j excluded)
        b_j = beta[j]
        val = 0.0
        for i in range(n):
            val += w[i] * X[i, j] * (residual[i] + X[i, j] * b_j)

        if j == unpenalized:
            b_new = val / denom
        else:
            b_new = soft_threshold(val, alpha) / denom

        delta = b_new - b_j
        if delta != 0.0:
            for i in range(n):
                residual[i] -= X[i, j] * delta
        beta[j] = b_new
