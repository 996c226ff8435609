import numpy as np

from numpy.typing import NDArray


class SingularHessianError(np.linalg.LinAlgError):
    """
    Raised by undamped Newton-Raphson when the Hessian cannot be inverted.

    Attributes
    ----------
    iteration : int
        Iteration at which the Hessian was found singular.
    beta : ndarray of shape (n_features,)
        Iterate at which the Hessian was evaluated.
    trace : tuple of TraceRecord
        Iterations completed before the failure.
    """

    def __init__(
        self,
        message: str,
        iteration: int = 0,
        beta: NDArray[np.float64] | None = None,
        trace: tuple = (),
    ) -> None:
        super().__init__(message)
        self.iteration = iteration
        self.beta = beta
        self.trace = trace


class DampingSearchExhaustedError(np.linalg.LinAlgError):
    """
    Raised by damped Newton when no diagonal shift within the search bound makes
    the Hessian negative definite, or the Hessian has non-finite entries.

    Attributes
    ----------
    iteration : int
        Iteration at which the damping search failed.
    beta : ndarray of shape (n_features,)
        Iterate at which the Hessian was evaluated.
    trace : tuple of TraceRecord
        Iterations completed before the failure.
    """

    def __init__(
        self,
        message: str,
        iteration: int = 0,
        beta: NDArray[np.float64] | None = None,
        trace: tuple = (),
    ) -> None:
        super().__init__(message)
        self.iteration = iteration
        self.beta = beta
        self.trace = trace


class DegenerateCoordinateWarning(UserWarning):
    """
    Emitted by coordinate descent when a column has zero weighted sum of squares.
    The affected coefficients are set to zero.
    """
