from importlib.util import find_spec

# optional njit kernels, selected with backend="numba"
NUMBA_AVAILABLE = find_spec("numba") is not None

from logitfit._irls import WorkingQuantities, compute_working_quantities  # noqa: E402
from logitfit._solvers import (  # noqa: E402
    coordinate_descent_lasso,
    damped_newton,
    lasso_path,
    newton_raphson,
    soft_threshold,
)
from logitfit._utils import LassoResult, NewtonResult, TraceRecord  # noqa: E402
from logitfit.exceptions import (  # noqa: E402
    DampingSearchExhaustedError,
    DegenerateCoordinateWarning,
    SingularHessianError,
)
from logitfit.lasso import LassoLogisticRegression, alpha_max  # noqa: E402
from logitfit.logistic import (  # noqa: E402
    LogisticQuantities,
    NewtonLogisticRegression,
    compute_logistic_quantities,
)

__all__ = [
    "NUMBA_AVAILABLE",
    "DampingSearchExhaustedError",
    "DegenerateCoordinateWarning",
    "LassoLogisticRegression",
    "LassoResult",
    "LogisticQuantities",
    "NewtonLogisticRegression",
    "NewtonResult",
    "SingularHessianError",
    "TraceRecord",
    "WorkingQuantities",
    "alpha_max",
    "compute_logistic_quantities",
    "compute_working_quantities",
    "coordinate_descent_lasso",
    "damped_newton",
    "lasso_path",
    "newton_raphson",
    "soft_threshold",
]
