import numpy as np
import scipy
import warnings

from numpy.typing import NDArray

EPS = float(np.finfo(np.float64).eps)

# margin left below zero by a damping shift, relative to max|eig|
DAMPING_RTOL = float(np.sqrt(EPS))


def _rank_rtol(k: int) -> float:
    # same relative cutoff as numpy.linalg.matrix_rank for a (k, k) matrix
    return k * EPS


def weighted_gram(X: NDArray[np.float64], w: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Return X'WX for diagonal W = diag(w).

    Equivalent to sum_i w_i x_i x_i' without materializing the (n, n) diagonal.
    """
    XtW = X.T * w  # (k, n)
    gram = XtW @ X
    # exact symmetry, BLAS may round the two triangles differently
    return 0.5 * (gram + gram.T)


def is_negative_definite(
    A: NDArray[np.float64], rtol: float | None = None
) -> bool:
    """
    Test whether a symmetric matrix is numerically negative definite.

    A is negative definite when its largest eigenvalue is at most
    `-rtol * max|eigenvalue|`. The default `rtol` is `k * eps`, the cutoff
    `numpy.linalg.matrix_rank` uses, so any matrix of full numerical rank with
    negative eigenvalues passes. The zero matrix is never negative definite.
    """
    if not np.all(np.isfinite(A)):
        return False
    if rtol is None:
        rtol = _rank_rtol(A.shape[0])
    eig = scipy.linalg.eigvalsh(A)
    scale = np.max(np.abs(eig))
    if scale == 0.0:
        return False
    return bool(eig[-1] <= -rtol * scale)


def newton_direction(
    hessian: NDArray[np.float64],
    gradient: NDArray[np.float64],
    rtol: float | None = None,
) -> NDArray[np.float64]:
    """
    Solve H d = g for the undamped Newton direction.

    The Newton update is `beta - d`.

    Raises
    ------
    numpy.linalg.LinAlgError
        If H has non-finite entries, is numerically singular
        (min|eig| <= rtol * max|eig|, default rtol `k * eps`), or the solve
        fails.
    """
    if not np.all(np.isfinite(hessian)):
        raise np.linalg.LinAlgError("Hessian has non-finite entries.")
    if rtol is None:
        rtol = _rank_rtol(hessian.shape[0])

    abs_eig = np.abs(scipy.linalg.eigvalsh(hessian))
    scale = abs_eig.max()
    if scale == 0.0 or abs_eig.min() <= rtol * scale:
        raise np.linalg.LinAlgError(
            f"Hessian is numerically singular (min|eig|={abs_eig.min():.3e}, "
            f"max|eig|={scale:.3e})."
        )

    # promote LAPACK's ill-conditioning warning to a failure
    with warnings.catch_warnings():
        warnings.simplefilter("error", scipy.linalg.LinAlgWarning)
        try:
            direction = scipy.linalg.solve(hessian, gradient, assume_a="sym")
        except scipy.linalg.LinAlgWarning as e:
            raise np.linalg.LinAlgError(str(e)) from None

    if not np.all(np.isfinite(direction)):
        raise np.linalg.LinAlgError("Newton direction is not finite.")
    return direction


def damping_shift(
    hessian: NDArray[np.float64],
    rtol: float = DAMPING_RTOL,
    max_steps: int = 50,
) -> tuple[float, tuple[NDArray[np.float64], bool]]:
    """
    Find the smallest shift making H - shift*I negative definite.

    A Hessian that passes `is_negative_definite` is left unshifted.
    Otherwise the shift is read off the eigenvalues of H: with
    target = rtol * max|eig|, shift = max(eig) + target puts the largest
    eigenvalue of the shifted matrix at -target. Either way the result is
    confirmed by a Cholesky factorization of shift*I - H, doubling the shift on
    failure.

    Parameters
    ----------
    hessian : ndarray of shape (k, k)
        Symmetric Hessian.
    rtol : float
        Curvature left in the shifted matrix, relative to max|eig|.
    max_steps : int
        Maximum number of doublings after the eigenvalue estimate.

    Returns
    -------
    shift : float
        Non-negative diagonal shift.
    cho : tuple
        Cholesky factorization of `shift*I - H` for `scipy.linalg.cho_solve`.

    Raises
    ------
    numpy.linalg.LinAlgError
        If H has non-finite entries or the search is exhausted.
    """
    if not np.all(np.isfinite(hessian)):
        raise np.linalg.LinAlgError("Hessian has non-finite entries.")

    k = hessian.shape[0]
    eig = scipy.linalg.eigvalsh(hessian)
    scale = np.max(np.abs(eig))
    target = rtol * scale if scale > 0.0 else rtol
    # same test as is_negative_definite, reusing the eigenvalues
    if scale > 0.0 and eig[-1] <= -_rank_rtol(k) * scale:
        shift = 0.0
    else:
        shift = max(0.0, float(eig[-1]) + target)

    eye = np.eye(k, dtype=np.float64)
    for _ in range(max_steps + 1):
        try:
            cho = scipy.linalg.cho_factor(shift * eye - hessian, lower=True)
            return shift, cho
        except scipy.linalg.LinAlgError:
            shift = 2.0 * shift if shift > 0.0 else target

    raise np.linalg.LinAlgError(
        f"No shift making the Hessian negative definite after {max_steps} "
        f"doublings (last shift={shift:.3e})."
    )


def damped_newton_direction(
    hessian: NDArray[np.float64],
    gradient: NDArray[np.float64],
    rtol: float = DAMPING_RTOL,
    max_steps: int = 50,
) -> tuple[NDArray[np.float64], float]:
    """
    Solve (H - shift*I) d = g with the smallest shift making it negative definite.

    Returns the direction `d` (update is `beta - d`) and the shift used.
    """
    shift, cho = damping_shift(hessian, rtol=rtol, max_steps=max_steps)
    # (shift*I - H) d' = g  =>  d = -d'
    direction = -scipy.linalg.cho_solve(cho, gradient)
    if not np.all(np.isfinite(direction)):
        raise np.linalg.LinAlgError("Damped Newton direction is not finite.")
    return direction, shift
