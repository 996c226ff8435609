import numpy as np
import pytest
import scipy
from scipy.special import expit
from sklearn.base import clone
from sklearn.exceptions import ConvergenceWarning, NotFittedError
from sklearn.model_selection import cross_val_score
from sklearn.utils.estimator_checks import estimator_checks_generator

from logitfit import (
    DampingSearchExhaustedError,
    NewtonLogisticRegression,
    SingularHessianError,
    compute_logistic_quantities,
    damped_newton,
    newton_raphson,
)


def _quantities(X, y):
    def compute(beta):
        return compute_logistic_quantities(X, y, beta)

    return compute


class TestComputeLogisticQuantities:
    def test_loglik_matches_naive_formula(self, logistic_data):
        X, y = logistic_data
        beta = np.array([0.2, -0.3, 0.4])
        q = compute_logistic_quantities(X, y, beta)

        p = expit(X @ beta)
        expected = np.sum(y * np.log(p) + (1 - y) * np.log(1 - p))
        np.testing.assert_allclose(q.loglik, expected, rtol=1e-12)

    def test_gradient_and_hessian_match_finite_differences(self, logistic_data):
        X, y = logistic_data
        beta = np.array([0.2, -0.3, 0.4])
        q = compute_logistic_quantities(X, y, beta)

        h = 1e-6
        eye = np.eye(3)
        fd_grad = np.array(
            [
                compute_logistic_quantities(X, y, beta + h * e).loglik
                - compute_logistic_quantities(X, y, beta - h * e).loglik
                for e in eye
            ]
        ) / (2 * h)
        fd_hess = np.column_stack(
            [
                compute_logistic_quantities(X, y, beta + h * e).gradient
                - compute_logistic_quantities(X, y, beta - h * e).gradient
                for e in eye
            ]
        ) / (2 * h)

        np.testing.assert_allclose(q.gradient, fd_grad, rtol=1e-5, atol=1e-4)
        np.testing.assert_allclose(q.hessian, fd_hess, rtol=1e-5, atol=1e-4)

    def test_hessian_symmetric_negative_semidefinite(self, logistic_data):
        X, y = logistic_data
        rng = np.random.default_rng(5)
        for _ in range(5):
            beta = rng.standard_normal(3)
            H = compute_logistic_quantities(X, y, beta).hessian
            np.testing.assert_array_equal(H, H.T)
            eig = scipy.linalg.eigvalsh(H)
            assert eig.max() <= 1e-10 * np.abs(eig).max()

    def test_large_linear_predictor_does_not_overflow(self, logistic_data):
        X, y = logistic_data
        beta = np.array([0.0, 800.0, 0.0])

        with np.errstate(over="raise", invalid="raise", divide="raise"):
            q = compute_logistic_quantities(X, y, beta)

        assert np.isfinite(q.loglik)
        assert q.loglik <= 0.0
        assert np.all(np.isfinite(q.gradient))
        assert np.all(np.isfinite(q.hessian))


class TestNewtonRaphson:
    def test_converges_to_score_root(self, logistic_data):
        X, y = logistic_data
        result = newton_raphson(_quantities(X, y), np.zeros(3), tol=1e-10)

        assert result.converged
        assert np.max(np.abs(result.gradient)) < 1e-6
        # truth is [0.5, 1.0, -1.0]
        np.testing.assert_allclose(result.beta, [0.5, 1.0, -1.0], atol=0.3)

    def test_trace(self, logistic_data):
        X, y = logistic_data
        start = np.array([0.1, 0.0, 0.0])
        result = newton_raphson(_quantities(X, y), start, max_iter=25)

        assert len(result.trace) == result.n_iter + 1
        assert [r.iteration for r in result.trace] == list(range(result.n_iter + 1))
        np.testing.assert_array_equal(result.trace[0].beta, start)
        np.testing.assert_array_equal(result.trace[-1].beta, result.beta)
        assert result.trace[-1].value == result.loglik
        assert all(r.damping == 0.0 for r in result.trace)

    def test_trace_is_immutable(self, logistic_data):
        X, y = logistic_data
        result = newton_raphson(_quantities(X, y), np.zeros(3))
        with pytest.raises(ValueError):
            result.trace[0].beta[0] = 1.0

    def test_start_not_modified(self, logistic_data):
        X, y = logistic_data
        start = np.zeros(3)
        newton_raphson(_quantities(X, y), start)
        np.testing.assert_array_equal(start, np.zeros(3))

    @pytest.mark.parametrize("solver", [newton_raphson, damped_newton])
    def test_max_iter_reached(self, logistic_data, solver):
        X, y = logistic_data
        result = solver(_quantities(X, y), np.zeros(3), max_iter=1, tol=0.0)

        assert not result.converged
        assert result.n_iter == 1
        assert len(result.trace) == 2

    @pytest.mark.parametrize("solver", [newton_raphson, damped_newton])
    @pytest.mark.parametrize("max_iter", [1, 2, 3, 10])
    def test_trace_length_bounded(self, logistic_data, solver, max_iter):
        X, y = logistic_data
        result = solver(_quantities(X, y), np.zeros(3), max_iter=max_iter)
        assert len(result.trace) <= max_iter + 1

    @pytest.mark.parametrize("solver", [newton_raphson, damped_newton])
    def test_deterministic(self, logistic_data, solver):
        X, y = logistic_data
        first = solver(_quantities(X, y), np.zeros(3))
        second = solver(_quantities(X, y), np.zeros(3))

        assert len(first.trace) == len(second.trace)
        for a, b in zip(first.trace, second.trace):
            np.testing.assert_array_equal(a.beta, b.beta)
            assert a.value == b.value

    def test_invalid_stopping_parameters(self, logistic_data):
        X, y = logistic_data
        with pytest.raises(ValueError, match="max_iter"):
            newton_raphson(_quantities(X, y), np.zeros(3), max_iter=0)
        with pytest.raises(ValueError, match="tol"):
            newton_raphson(_quantities(X, y), np.zeros(3), tol=-1.0)

    def test_collinear_columns_raise_singular_hessian(self, logistic_data):
        X, y = logistic_data
        X_dup = np.column_stack([X, X[:, 1]])

        with pytest.raises(SingularHessianError) as excinfo:
            newton_raphson(_quantities(X_dup, y), np.zeros(4))

        assert excinfo.value.iteration == 1
        assert len(excinfo.value.trace) == 1
        np.testing.assert_array_equal(excinfo.value.beta, np.zeros(4))

    def test_ill_conditioned_full_rank_converges(self, logistic_data):
        """A badly scaled column leaves the Hessian invertible (cond ~1e8)."""
        X, y = logistic_data
        scale = np.array([1.0, 1.0, 1e4])
        ref = newton_raphson(_quantities(X, y), np.zeros(3), tol=1e-10)

        result = newton_raphson(_quantities(X * scale, y), np.zeros(3), tol=1e-10)

        assert result.converged
        np.testing.assert_allclose(result.beta * scale, ref.beta, rtol=1e-6)

    def test_non_finite_start(self, logistic_data):
        X, y = logistic_data
        with pytest.raises(ValueError, match="start"):
            newton_raphson(_quantities(X, y), np.array([0.0, np.nan, 0.0]))


class TestDampedNewton:
    def test_matches_undamped_when_well_conditioned(self, logistic_data):
        X, y = logistic_data
        ref = newton_raphson(_quantities(X, y), np.zeros(3), tol=1e-10)
        result = damped_newton(_quantities(X, y), np.zeros(3), tol=1e-10)

        assert result.converged
        np.testing.assert_allclose(result.beta, ref.beta, atol=1e-8)
        assert all(r.damping == 0.0 for r in result.trace)

    def test_no_damping_when_ill_conditioned_full_rank(self, logistic_data):
        X, y = logistic_data
        scale = np.array([1.0, 1.0, 1e4])
        ref = newton_raphson(_quantities(X, y), np.zeros(3), tol=1e-10)

        result = damped_newton(_quantities(X * scale, y), np.zeros(3), tol=1e-10)

        assert result.converged
        assert all(r.damping == 0.0 for r in result.trace)
        np.testing.assert_allclose(result.beta * scale, ref.beta, rtol=1e-6)

    def test_non_finite_hessian_exhausts_damping_search(self, logistic_data):
        X, y = logistic_data

        def compute(beta):
            q = compute_logistic_quantities(X, y, beta)
            # corrupt every iterate after the start
            if np.any(beta != 0.0):
                q.hessian[0, 0] = np.nan
            return q

        with pytest.raises(DampingSearchExhaustedError) as excinfo:
            damped_newton(compute, np.zeros(3))

        e = excinfo.value
        assert isinstance(e, np.linalg.LinAlgError)
        assert e.iteration == 2
        assert len(e.trace) == 2
        np.testing.assert_array_equal(e.trace[0].beta, np.zeros(3))
        np.testing.assert_array_equal(e.beta, e.trace[-1].beta)

    def test_negative_max_damping_steps(self, logistic_data):
        X, y = logistic_data
        with pytest.raises(ValueError, match="max_damping_steps"):
            damped_newton(_quantities(X, y), np.zeros(3), max_damping_steps=-1)

    def test_collinear_columns_converge(self, logistic_data):
        X, y = logistic_data
        X_dup = np.column_stack([X, X[:, 1]])
        ref = newton_raphson(_quantities(X, y), np.zeros(3), tol=1e-10)

        result = damped_newton(_quantities(X_dup, y), np.zeros(4), tol=1e-10, max_iter=50)

        assert result.converged
        assert max(r.damping for r in result.trace) > 0.0
        # the duplicated effect is split evenly between the two copies
        np.testing.assert_allclose(result.beta[1], result.beta[3], atol=1e-6)
        np.testing.assert_allclose(result.beta[1] + result.beta[3], ref.beta[1], rtol=1e-6)
        np.testing.assert_allclose(result.beta[[0, 2]], ref.beta[[0, 2]], rtol=1e-6)
        np.testing.assert_allclose(result.loglik, ref.loglik, rtol=1e-9)

    def test_shifted_hessian_negative_definite_at_every_step(self, logistic_data):
        X, y = logistic_data
        X_dup = np.column_stack([X, X[:, 1]])
        compute = _quantities(X_dup, y)
        result = damped_newton(compute, np.zeros(4), tol=1e-10, max_iter=50)

        # last record is the returned iterate, no step was taken from it
        for record in result.trace[:-1]:
            H = compute(record.beta).hessian
            shifted = H - record.damping * np.eye(4)
            assert scipy.linalg.eigvalsh(shifted).max() < 0

    def test_separation(self, separation_data):
        """
        Perfect separation: the MLE does not exist. Undamped Newton pushes the
        coefficients out until the fitted probabilities saturate and the Hessian
        becomes singular; damped Newton shifts the singular Hessian and stops at a
        finite vector.
        """
        X, y = separation_data
        params = dict(max_iter=100, tol=1e-16)

        try:
            result = newton_raphson(_quantities(X, y), np.zeros(3), **params)
        except SingularHessianError as e:
            assert e.iteration > 1
            assert len(e.trace) == e.iteration
        else:
            assert not result.converged

        result = damped_newton(_quantities(X, y), np.zeros(3), **params)
        assert result.converged
        assert np.all(np.isfinite(result.beta))
        assert max(r.damping for r in result.trace) > 0.0
        # separating direction dominates
        assert result.beta[1] > 10.0


class TestNewtonLogisticRegression:
    """Tests for NewtonLogisticRegression."""

    def test_matches_solver(self, logistic_data):
        X, y = logistic_data
        ref = damped_newton(_quantities(X, y), np.zeros(3))

        model = NewtonLogisticRegression().fit(X[:, 1:], y)

        assert model.converged_
        np.testing.assert_allclose(model.intercept_, ref.beta[0], rtol=1e-10)
        np.testing.assert_allclose(model.coef_, ref.beta[1:], rtol=1e-10)
        assert model.loglik_ == pytest.approx(ref.loglik)
        assert len(model.trace_) == model.n_iter_ + 1

    def test_wald_inference(self, logistic_data):
        X, y = logistic_data
        model = NewtonLogisticRegression().fit(X[:, 1:], y)

        assert model.bse_.shape == (2,)
        assert np.all(model.bse_ > 0)
        assert model.intercept_bse_ > 0
        # both true effects are far from zero with n=500
        assert np.all(model.pvalues_ < 1e-6)

        ci = model.conf_int()
        assert ci.shape == (3, 2)
        beta = np.concatenate([[model.intercept_], model.coef_])
        assert np.all(ci[:, 0] < beta)
        assert np.all(beta < ci[:, 1])

    def test_fit_intercept_false(self, logistic_data):
        """Fits without intercept."""
        X, y = logistic_data
        model = NewtonLogisticRegression(fit_intercept=False)
        model.fit(X[:, 1:], y)

        assert model.intercept_ == 0.0
        assert len(model.coef_) == 2
        assert model.conf_int().shape == (2, 2)

    def test_classes_encoded_correctly(self):
        """Handles arbitrary binary labels."""
        rng = np.random.default_rng(0)
        X = rng.standard_normal((50, 2))

        for labels in [(0, 1), (1, 2), (-1, 1)]:
            y = rng.choice(labels, 50)
            model = NewtonLogisticRegression()
            model.fit(X, y)
            np.testing.assert_array_equal(model.classes_, sorted(labels))
            assert set(model.predict(X)) <= set(labels)

    def test_predict_proba(self, logistic_data):
        X, y = logistic_data
        model = NewtonLogisticRegression().fit(X[:, 1:], y)
        proba = model.predict_proba(X[:, 1:])

        assert proba.shape == (500, 2)
        np.testing.assert_allclose(proba.sum(axis=1), 1.0)
        np.testing.assert_allclose(
            np.log(proba), model.predict_log_proba(X[:, 1:]), rtol=1e-12
        )

    def test_undamped_raises_on_collinear(self, logistic_data):
        X, y = logistic_data
        X_dup = np.column_stack([X[:, 1:], X[:, 1]])
        with pytest.raises(SingularHessianError):
            NewtonLogisticRegression(solver="newton-raphson").fit(X_dup, y)

    def test_singular_hessian_has_undefined_standard_errors(self, logistic_data):
        X, y = logistic_data
        X_zero = np.column_stack([X[:, 1:], np.zeros(X.shape[0])])
        model = NewtonLogisticRegression(tol=1e-10, max_iter=50).fit(X_zero, y)

        assert model.converged_
        assert model.coef_[2] == 0.0
        assert np.all(np.isfinite(model.coef_))
        assert np.all(np.isnan(model.bse_))
        assert np.isnan(model.intercept_pvalue_)

    @pytest.mark.parametrize("solver", ["newton-raphson", "damped-newton"])
    def test_ill_conditioned_standard_errors(self, logistic_data, solver):
        X, y = logistic_data
        ref = NewtonLogisticRegression(solver=solver, tol=1e-10).fit(X[:, 1:], y)
        model = NewtonLogisticRegression(solver=solver, tol=1e-10)
        model.fit(X[:, 1:] * [1.0, 1e4], y)

        assert model.converged_
        np.testing.assert_allclose(model.coef_ * [1.0, 1e4], ref.coef_, rtol=1e-6)
        np.testing.assert_allclose(model.bse_ * [1.0, 1e4], ref.bse_, rtol=1e-6)

    def test_convergence_warning(self, logistic_data):
        X, y = logistic_data
        with pytest.warns(ConvergenceWarning):
            model = NewtonLogisticRegression(max_iter=1, tol=0.0).fit(X[:, 1:], y)
        assert not model.converged_

    def test_invalid_parameters(self, logistic_data):
        X, y = logistic_data
        with pytest.raises(ValueError, match="solver"):
            NewtonLogisticRegression(solver="lbfgs").fit(X[:, 1:], y)
        with pytest.raises(ValueError, match="backend"):
            NewtonLogisticRegression(backend="cuda").fit(X[:, 1:], y)
        with pytest.raises(ValueError, match="start"):
            NewtonLogisticRegression().fit(X[:, 1:], y, start=np.zeros(2))

    def test_rejects_multiclass(self):
        X = np.arange(12.0).reshape(6, 2)
        with pytest.raises(ValueError, match="classes"):
            NewtonLogisticRegression().fit(X, [0, 1, 2, 0, 1, 2])

    def test_not_fitted(self):
        with pytest.raises(NotFittedError):
            NewtonLogisticRegression().predict(np.zeros((2, 2)))

    def test_cross_validation(self, logistic_data):
        X, y = logistic_data
        model = clone(NewtonLogisticRegression(tol=1e-10))
        scores = cross_val_score(model, X[:, 1:], y, cv=5)
        assert scores.shape == (5,)
        assert scores.mean() > 0.6

    def test_sklearn_compatible(self):
        """Passes sklearn's estimator checks."""
        for estimator, check in estimator_checks_generator(NewtonLogisticRegression()):
            check(estimator)
