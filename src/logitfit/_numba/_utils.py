import numpy as np
from numba import njit
from numpy.typing import NDArray


@njit(fastmath=True, cache=True)
def _expit(x: float) -> float:
    if x >= 0.0:
        z = np.exp(-x)
        return 1.0 / (1.0 + z)
    z = np.exp(x)
    return z / (1.0 + z)


@njit(fastmath=True, cache=True)
def _log1pexp(x: float) -> float:
    if x > 0.0:
        return x + np.log1p(np.exp(-x))
    return np.log1p(np.exp(x))


@njit(fastmath=True, cache=True)
def symmetrize_lower(A: NDArray[np.float64]) -> None:
    n = A.shape[0]
    for j in range(1, n):
        for i in range(j):
            A[i, j] = A[j, i]
