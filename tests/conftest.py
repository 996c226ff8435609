import numpy as np
import pytest
from scipy.special import expit


def _with_intercept(X: np.ndarray) -> np.ndarray:
    return np.column_stack([np.ones(X.shape[0]), X])


@pytest.fixture
def logistic_data():
    """Well-conditioned design (intercept first) with true beta [0.5, 1.0, -1.0]."""
    rng = np.random.default_rng(0)
    X = _with_intercept(rng.standard_normal((500, 2)))
    beta = np.array([0.5, 1.0, -1.0])
    y = rng.binomial(1, expit(X @ beta)).astype(np.float64)
    return X, y


@pytest.fixture
def separation_data():
    """
    Two features plus intercept, classes perfectly separated by x1.

    x1 is +1 for every y=1 row and -1 for every y=0 row; x2 takes the same
    values in both classes so the maximum-likelihood direction is x1 alone.
    """
    x2 = np.linspace(-1.0, 1.0, 50)
    x1 = np.concatenate([np.ones(50), -np.ones(50)])
    X = _with_intercept(np.column_stack([x1, np.concatenate([x2, x2])]))
    y = np.concatenate([np.ones(50), np.zeros(50)])
    return X, y


@pytest.fixture
def sparse_data():
    """Three standardized features (intercept first), true beta [0, 0, 2, 0]."""
    rng = np.random.default_rng(1)
    X = _with_intercept(rng.standard_normal((10_000, 3)))
    beta = np.array([0.0, 0.0, 2.0, 0.0])
    y = rng.binomial(1, expit(X @ beta)).astype(np.float64)
    return X, y
