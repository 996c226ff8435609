import numpy as np

from dataclasses import dataclass
from numpy.typing import NDArray
from scipy.special import expit


@dataclass(frozen=True)
class WorkingQuantities:
    """IRLS linearization of the logistic log-likelihood at one coefficient vector"""

    eta: NDArray[np.float64]  # (n_samples,) linear predictor X @ beta
    p: NDArray[np.float64]  # (n_samples,) fitted probabilities
    w: NDArray[np.float64]  # (n_samples,) working weights p(1-p), floored
    z: NDArray[np.float64]  # (n_samples,) working response


def compute_working_quantities(
    X: NDArray[np.float64],
    y: NDArray[np.float64],
    beta: NDArray[np.float64],
    eps: float = 1e-5,
) -> WorkingQuantities:
    """
    Compute working weights and response for one IRLS cycle.

    A weighted least-squares fit of `z` on `X` with weights `w` reproduces one
    Newton step of the logistic log-likelihood.

    Parameters
    ----------
    X : ndarray of shape (n_samples, n_features)
        Design matrix.
    y : ndarray of shape (n_samples,)
        0/1 response.
    beta : ndarray of shape (n_features,)
        Current coefficients.
    eps : float, default=1e-5
        Where `p` is within `eps` of 0 or 1, the weight is set to `eps` so that
        `(y - p) / w` stays bounded under (quasi-)separation.

    Returns
    -------
    WorkingQuantities
    """
    eta = X @ beta
    p = expit(eta)

    w = p * (1.0 - p)
    w[(p < eps) | (p > 1.0 - eps)] = eps

    z = eta + (y - p) / w
    return WorkingQuantities(eta=eta, p=p, w=w, z=z)
