import numpy as np

from dataclasses import dataclass, field
from numpy.typing import NDArray


@dataclass(frozen=True)
class TraceRecord:
    """One iteration of an optimization run"""

    iteration: int
    beta: NDArray[np.float64]  # (n_features,) read-only snapshot
    value: float  # log-likelihood (Newton) or surrogate objective (lasso)
    damping: float = 0.0  # diagonal shift used to leave this iterate

    @classmethod
    def snapshot(
        cls, iteration: int, beta: NDArray[np.float64], value: float, damping=0.0
    ) -> "TraceRecord":
        beta = np.array(beta, dtype=np.float64, copy=True)
        beta.setflags(write=False)
        return cls(
            iteration=iteration, beta=beta, value=float(value), damping=float(damping)
        )


@dataclass
class NewtonResult:
    """Output from (damped) Newton-Raphson optimization"""

    beta: NDArray[np.float64]  # (n_features,) fitted coefficients
    loglik: float  # log-likelihood at beta
    gradient: NDArray[np.float64]  # (n_features,) score at beta
    hessian: NDArray[np.float64]  # (n_features, n_features) Hessian at beta
    n_iter: int  # number of Newton updates
    converged: bool  # whether |loglik change| <= tol within max_iter
    trace: tuple[TraceRecord, ...] = field(default_factory=tuple)


@dataclass
class LassoResult:
    """Output from IRLS coordinate descent"""

    beta: NDArray[np.float64]  # (n_features,) fitted coefficients
    objective: float  # penalized surrogate objective after the last cycle
    n_iter: int  # number of outer IRLS cycles
    converged: bool  # whether ||beta change|| < tol within max_iter
    trace: tuple[TraceRecord, ...] = field(default_factory=tuple)
    degenerate: tuple[int, ...] = ()  # zeroed columns with no weighted variance


def check_design(
    X: NDArray[np.float64], y: NDArray[np.float64], start: NDArray[np.float64]
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Coerce solver inputs to float64 and check that their shapes agree."""
    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    start = np.array(start, dtype=np.float64, copy=True)

    if X.ndim != 2:
        raise ValueError(f"X must be 2-dimensional, got shape {X.shape}")
    if y.shape != (X.shape[0],):
        raise ValueError(f"y must have shape ({X.shape[0]},), got {y.shape}")
    if start.shape != (X.shape[1],):
        raise ValueError(f"start must have shape ({X.shape[1]},), got {start.shape}")
    if not np.all(np.isfinite(X)):
        raise ValueError("X contains NaN or infinity.")
    if not np.all(np.isfinite(start)):
        raise ValueError("start contains NaN or infinity.")
    if not np.all((y == 0) | (y == 1)):
        raise ValueError("y must contain only 0/1 values.")
    return X, y, start


def check_stopping(max_iter: int, tol: float) -> None:
    if max_iter <= 0:
        raise ValueError(f"max_iter must be positive, got {max_iter}")
    if tol < 0:
        raise ValueError(f"tol must be non-negative, got {tol}")
