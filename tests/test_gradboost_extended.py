"""
Extended tests for the gradient boosting implementation.

Coverage:
- Loss function values and line searches
- Utility metric functions (compute_metrics_regression, compute_metrics_classification)
- Ensemble invariants after fit (initial_estimate, stages, train_scores)
- Training loss monotonicity under deterministic subsampling
- Subsample stochasticity and reproducibility contracts
- Convergence on controlled toy problems
- Benchmark parity with sklearn GradientBoosting{Regressor,Classifier}
- Staged prediction consistency
- Input-output shape contracts
"""

import sys
from pathlib import Path

import numpy as np
import pytest
from sklearn.datasets import make_classification, make_regression
from sklearn.ensemble import (
    GradientBoostingClassifier as SklearnGBC,
    GradientBoostingRegressor as SklearnGBR,
)
from sklearn.metrics import accuracy_score, r2_score
from sklearn.model_selection import train_test_split

# ---------- path setup ----------
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from gradboost.config import gbdt, gbl
from gradboost.core import Problem
from gradboost.loss import BinomialDeviance, LeastAbsoluteDeviation, LeastSquares
from gradboost.utils import (
    compute_metrics_classification,
    compute_metrics_regression,
    sigmoid,
)


def regression(loss=None, **kwargs):
    return Problem(gbdt(loss or LeastSquares(), **kwargs), "regression")


def classification(**kwargs):
    return Problem(gbdt(BinomialDeviance(), **kwargs), "classification")


# =============================================================================
# Loss function correctness
# =============================================================================


class TestLossFunctions:
    """Verify loss values, region values and line searches."""

    def test_least_squares_known_value(self):
        """Squared error = 0.5 * mean((y - f)²)."""
        y_true = np.array([1.0, 2.0, 3.0])
        assert LeastSquares()(y_true, y_true) == pytest.approx(0.0, abs=1e-15)

        y_pred = np.array([2.0, 2.0, 2.0])
        expected = 0.5 * np.mean((y_true - y_pred) ** 2)
        assert LeastSquares()(y_true, y_pred) == pytest.approx(expected, rel=1e-10)

    def test_binomial_deviance_matches_binary_cross_entropy(self):
        """Binomial deviance must equal sklearn's log_loss on sigmoid(F)."""
        from sklearn.metrics import log_loss as sklearn_log_loss

        rng = np.random.default_rng(7)
        y_true = rng.integers(0, 2, size=80).astype(float)
        raw_scores = rng.standard_normal(80)

        ours = BinomialDeviance()(y_true, raw_scores)
        theirs = sklearn_log_loss(y_true, sigmoid(raw_scores))

        assert ours == pytest.approx(theirs, rel=1e-6)

    def test_binomial_deviance_decreases_with_better_predictions(self):
        y_true = np.array([1.0, 1.0, 0.0, 0.0])
        raw_good = np.array([5.0, 5.0, -5.0, -5.0])
        raw_bad = np.zeros(4)
        loss = BinomialDeviance()
        assert loss(y_true, raw_good) < loss(y_true, raw_bad)

    def test_binomial_region_value_newton_step(self):
        """γ* = Σr_i / Σp_i(1−p_i)."""
        rng = np.random.default_rng(42)
        y_true = rng.integers(0, 2, size=20).astype(float)
        F = rng.standard_normal(20)
        loss = BinomialDeviance()

        residuals = loss.pseudo_residual(y_true, F)
        gamma = loss.region_value(residuals, y_true, F)

        p = sigmoid(F)
        expected = np.sum(residuals) / np.sum(p * (1.0 - p))
        assert gamma == pytest.approx(expected, rel=1e-8)

    def test_binomial_region_value_saturated(self):
        """Saturated scores give a finite, near-zero region value."""
        y_true = np.array([1.0, 1.0])
        raw = np.array([1000.0, 1000.0])
        loss = BinomialDeviance()
        residuals = loss.pseudo_residual(y_true, raw)
        gamma = loss.region_value(residuals, y_true, raw)
        assert np.isfinite(gamma)
        assert gamma == pytest.approx(0.0, abs=1e-6)

    def test_binomial_region_value_saturated_mixed_leaf(self):
        """A mixed region with saturated scores takes no step instead of a huge one."""
        y_true = np.array([0.0, 1.0, 1.0])
        raw = np.array([40.0, 40.0, 40.0])
        loss = BinomialDeviance()
        residuals = loss.pseudo_residual(y_true, raw)
        assert loss.region_value(residuals, y_true, raw) == 0.0

    def test_initial_estimates(self):
        y = np.array([1.0, 2.0, 3.0, 10.0])
        assert LeastSquares().initial_estimate(y) == pytest.approx(4.0)
        assert LeastAbsoluteDeviation().initial_estimate(y) == pytest.approx(2.5)

        labels = np.array([1.0, 1.0, 1.0, 0.0])
        assert BinomialDeviance().initial_estimate(labels) == pytest.approx(np.log(3.0))

    def test_least_squares_line_search_closed_form(self):
        y = np.array([1.0, 2.0, 3.0])
        f = np.zeros(3)
        h = np.array([0.5, 1.0, 1.5])
        # y = 2h exactly
        assert LeastSquares().line_search(y, f, h) == pytest.approx(2.0)

    def test_lad_line_search_weighted_median(self):
        y = np.array([2.0, 4.0, 9.0])
        f = np.zeros(3)
        h = np.ones(3)
        assert LeastAbsoluteDeviation().line_search(y, f, h) == pytest.approx(4.0)

    def test_binomial_line_search_reduces_loss(self):
        rng = np.random.default_rng(3)
        y = rng.integers(0, 2, size=50).astype(float)
        f = np.zeros(50)
        h = y - 0.5
        loss = BinomialDeviance()
        rho = loss.line_search(y, f, h)
        assert rho > 0.0
        assert loss(y, f + rho * h) < loss(y, f)

    def test_line_search_zero_stage_defaults_to_one(self):
        y = np.array([1.0, 0.0])
        f = np.zeros(2)
        h = np.zeros(2)
        for loss in (LeastSquares(), LeastAbsoluteDeviation(), BinomialDeviance()):
            assert loss.line_search(y, f, h) == 1.0


# =============================================================================
# Metric utilities
# =============================================================================


class TestMetricUtilities:
    """compute_metrics_* return correct keys and numerically correct values."""

    def test_regression_metrics_perfect_prediction(self):
        y = np.array([1.0, 2.0, 3.0])
        result = compute_metrics_regression(y, y)
        assert result["mse"] == pytest.approx(0.0, abs=1e-15)
        assert result["rmse"] == pytest.approx(0.0, abs=1e-15)
        assert result["mae"] == pytest.approx(0.0, abs=1e-15)

    def test_regression_metrics_known_values(self):
        y_true = np.array([1.0, 2.0, 3.0])
        y_pred = np.array([2.0, 2.0, 2.0])
        result = compute_metrics_regression(y_true, y_pred)
        expected_mse = np.mean((y_true - y_pred) ** 2)
        assert result["mse"] == pytest.approx(expected_mse, rel=1e-10)
        assert result["rmse"] == pytest.approx(np.sqrt(expected_mse), rel=1e-10)
        assert result["mae"] == pytest.approx(np.mean(np.abs(y_true - y_pred)), rel=1e-10)

    def test_classification_metrics_keys(self):
        y = np.array([0, 1, 0, 1, 1])
        proba = np.array([0.1, 0.9, 0.2, 0.8, 0.7])
        result = compute_metrics_classification(y, proba)
        assert {"log_loss", "accuracy", "error_rate", "roc_auc"}.issubset(result.keys())

    def test_classification_metrics_perfect_prediction(self):
        y = np.array([0, 1, 0, 1])
        proba = np.array([0.01, 0.99, 0.01, 0.99])
        result = compute_metrics_classification(y, proba)
        assert result["accuracy"] == pytest.approx(1.0, abs=1e-9)
        assert result["error_rate"] == pytest.approx(0.0, abs=1e-9)
        assert result["roc_auc"] == pytest.approx(1.0, abs=1e-9)

    def test_classification_metrics_single_class_auc_is_nan(self):
        y = np.array([1, 1, 1])
        proba = np.array([0.6, 0.7, 0.9])
        result = compute_metrics_classification(y, proba)
        assert np.isnan(result["roc_auc"])


# =============================================================================
# Ensemble invariants after fit
# =============================================================================


class TestEnsembleStateAfterFit:
    """Verify the fitted Ensemble."""

    def test_regression_initial_estimate_is_mean(self):
        rng = np.random.default_rng(1)
        X = rng.standard_normal((50, 4))
        y = rng.standard_normal(50)

        fitted = regression(num_iterations=5, random_state=0).fit(X, y)

        assert fitted.ensemble.initial_estimate == pytest.approx(np.mean(y), rel=1e-10)

    def test_lad_initial_estimate_is_median(self):
        rng = np.random.default_rng(1)
        X = rng.standard_normal((51, 4))
        y = rng.standard_normal(51)

        fitted = regression(LeastAbsoluteDeviation(), num_iterations=5, random_state=0).fit(X, y)

        assert fitted.ensemble.initial_estimate == pytest.approx(np.median(y), rel=1e-10)

    def test_classifier_initial_estimate_is_log_odds(self):
        rng = np.random.default_rng(2)
        X = rng.standard_normal((60, 4))
        y = rng.integers(0, 2, size=60).astype(float)

        fitted = classification(num_iterations=5, random_state=0).fit(X, y)

        p = np.mean(y)
        assert fitted.ensemble.initial_estimate == pytest.approx(np.log(p / (1.0 - p)), rel=1e-10)

    @pytest.mark.parametrize("num_iterations", [1, 8, 25])
    def test_stage_count_equals_num_iterations(self, num_iterations):
        X, y = make_regression(n_samples=50, n_features=5, random_state=0)

        fitted = regression(num_iterations=num_iterations, random_state=0).fit(X, y)

        assert len(fitted.ensemble.stages) == num_iterations
        assert len(fitted.ensemble.train_scores) == num_iterations

    def test_linear_stage_count_equals_num_iterations(self):
        X, y = make_regression(n_samples=50, n_features=5, random_state=0)
        fitted = Problem(gbl(LeastAbsoluteDeviation(), num_iterations=7, random_state=0), "regression").fit(X, y)
        assert len(fitted.ensemble.stages) == 7

    def test_val_scores_empty_without_validation_data(self):
        X, y = make_regression(n_samples=50, n_features=5, random_state=0)
        fitted = regression(num_iterations=5, random_state=0).fit(X, y)
        assert fitted.ensemble.val_scores == ()

    def test_predict_does_not_mutate_ensemble(self):
        X, y = make_regression(n_samples=60, n_features=4, random_state=0)
        fitted = regression(num_iterations=10, random_state=0).fit(X, y)

        first = fitted.predict(X)
        second = fitted.predict(X)

        np.testing.assert_array_equal(first, second)
        assert len(fitted.ensemble.stages) == 10


# =============================================================================
# Training loss monotonicity
# =============================================================================


class TestTrainingLossMonotonicity:
    """
    With full-sample deterministic boosting and convex region values the
    training loss must be monotonically non-increasing.
    """

    @pytest.mark.parametrize("loss", [LeastSquares(), LeastAbsoluteDeviation()])
    def test_training_loss_non_increasing(self, loss):
        X, y = make_regression(n_samples=100, n_features=10, random_state=7)
        fitted = regression(
            loss, num_iterations=30, learning_rate=0.3, max_depth=2, sampling_rate=1.0
        ).fit(X, y)
        scores = fitted.ensemble.train_scores
        for i in range(1, len(scores)):
            assert scores[i] <= scores[i - 1] + 1e-10, (
                f"Training loss increased from step {i-1} to {i}: "
                f"{scores[i-1]:.6f} → {scores[i]:.6f}"
            )

    def test_classifier_training_loss_decreases_overall(self):
        X, y = make_classification(n_samples=100, n_features=10, random_state=7)
        fitted = classification(
            num_iterations=30, learning_rate=0.3, max_depth=2, sampling_rate=1.0
        ).fit(X, y)
        initial = BinomialDeviance()(y, np.full(len(y), fitted.ensemble.initial_estimate))
        assert fitted.ensemble.train_scores[-1] < initial


# =============================================================================
# Subsample contracts
# =============================================================================


class TestSubsampleContracts:
    """Stochastic subsampling must differ across random states and be reproducible."""

    def test_subsample_introduces_variability(self):
        X, y = make_regression(n_samples=100, n_features=5, random_state=0)

        pred_a = regression(num_iterations=10, sampling_rate=0.5, random_state=1).fit(X, y).predict(X)
        pred_b = regression(num_iterations=10, sampling_rate=0.5, random_state=2).fit(X, y).predict(X)

        assert not np.allclose(pred_a, pred_b), (
            "Different random seeds with sampling_rate<1 should produce different predictions"
        )

    def test_full_sampling_ignores_seed(self):
        X, y = make_regression(n_samples=100, n_features=5, random_state=0)

        pred_a = regression(num_iterations=10, sampling_rate=1.0, random_state=42).fit(X, y).predict(X)
        pred_b = regression(num_iterations=10, sampling_rate=1.0, random_state=99).fit(X, y).predict(X)

        np.testing.assert_array_equal(pred_a, pred_b)


# =============================================================================
# Convergence on controlled problems
# =============================================================================


class TestConvergenceOnToyProblems:
    """The models must achieve low error on simple controlled datasets."""

    def test_regressor_low_error_on_linear_problem(self):
        rng = np.random.default_rng(10)
        X = rng.standard_normal((200, 3))
        y = 2 * X[:, 0] - 3 * X[:, 1] + 1.5 * X[:, 2]

        fitted = regression(
            num_iterations=100, learning_rate=0.1, max_depth=3, sampling_rate=1.0
        ).fit(X, y)

        train_r2 = r2_score(y, fitted.predict(X))
        assert train_r2 > 0.97, f"Expected R²>0.97 on training, got {train_r2:.4f}"

    def test_classifier_high_accuracy_on_separable_data(self):
        rng = np.random.default_rng(11)
        n = 100
        X = np.vstack([
            rng.standard_normal((n // 2, 2)) + np.array([3.0, 0.0]),
            rng.standard_normal((n // 2, 2)) + np.array([-3.0, 0.0]),
        ])
        y = np.array([1.0] * (n // 2) + [0.0] * (n // 2))

        fitted = classification(
            num_iterations=50, learning_rate=0.1, max_depth=2, sampling_rate=1.0
        ).fit(X, y)
        acc = accuracy_score(y, fitted.predict(X))
        assert acc >= 0.98, f"Expected train accuracy ≥ 0.98, got {acc:.4f}"


# =============================================================================
# Parity with sklearn GradientBoosting{Regressor,Classifier}
# =============================================================================


class TestSklearnParity:
    """
    Our implementation should achieve R²/accuracy within reasonable range of
    sklearn's well-tested implementation on the same problem.
    """

    def test_regressor_r2_within_tolerance(self):
        X, y = make_regression(n_samples=300, n_features=10, n_informative=5, random_state=0)
        X_tr, X_te, y_tr, y_te = train_test_split(X, y, test_size=0.3, random_state=0)

        ours = regression(
            num_iterations=100, learning_rate=0.1, max_depth=3, sampling_rate=1.0
        ).fit(X_tr, y_tr)
        sk = SklearnGBR(
            n_estimators=100, learning_rate=0.1, max_depth=3, subsample=1.0, random_state=0
        ).fit(X_tr, y_tr)

        our_r2 = r2_score(y_te, ours.predict(X_te))
        sk_r2 = r2_score(y_te, sk.predict(X_te))

        assert abs(our_r2 - sk_r2) < 0.10, (
            f"R² gap too large: ours={our_r2:.3f}, sklearn={sk_r2:.3f}"
        )

    def test_classifier_accuracy_within_tolerance(self):
        X, y = make_classification(n_samples=300, n_features=10, n_informative=6, random_state=0)
        X_tr, X_te, y_tr, y_te = train_test_split(X, y, test_size=0.3, random_state=0)

        ours = classification(
            num_iterations=100, learning_rate=0.1, max_depth=3, sampling_rate=1.0
        ).fit(X_tr, y_tr)
        sk = SklearnGBC(
            n_estimators=100, learning_rate=0.1, max_depth=3, subsample=1.0, random_state=0
        ).fit(X_tr, y_tr)

        our_acc = accuracy_score(y_te, ours.predict(X_te))
        sk_acc = accuracy_score(y_te, sk.predict(X_te))

        assert abs(our_acc - sk_acc) < 0.10, (
            f"Accuracy gap too large: ours={our_acc:.3f}, sklearn={sk_acc:.3f}"
        )


# =============================================================================
# Output shape contracts
# =============================================================================


class TestOutputShapeContracts:
    """predict / predict_proba must produce outputs with correct shapes."""

    def test_regressor_predict_shape(self):
        X_tr, y_tr = make_regression(n_samples=50, n_features=5, random_state=0)
        X_te = np.random.default_rng(0).standard_normal((23, 5))

        fitted = regression(num_iterations=5, random_state=0).fit(X_tr, y_tr)
        assert fitted.predict(X_te).shape == (23,)

    def test_classifier_predict_shape(self):
        X_tr, y_tr = make_classification(n_samples=50, n_features=5, random_state=0)
        X_te = np.random.default_rng(0).standard_normal((17, 5))

        fitted = classification(num_iterations=5, random_state=0).fit(X_tr, y_tr)

        assert fitted.predict(X_te).shape == (17,)
        assert fitted.predict_proba(X_te).shape == (17,)

    def test_regressor_1d_feature(self):
        rng = np.random.default_rng(3)
        X = rng.standard_normal((40, 1))
        y = X[:, 0] ** 2 + rng.standard_normal(40) * 0.05
        fitted = regression(num_iterations=10, random_state=0).fit(X, y)
        assert fitted.predict(X).shape == (40,)


# =============================================================================
# Staged prediction consistency
# =============================================================================


class TestStagedPredictionConsistency:
    """
    Scores after k stages of a long run must equal the scores of a run
    trained with only k stages.
    """

    def test_staged_scores_match_partial_model(self):
        X, y = make_regression(n_samples=80, n_features=5, random_state=0)

        full = regression(num_iterations=15, sampling_rate=1.0).fit(X, y)
        staged = list(full.ensemble.staged_decision_function(X))

        partial = regression(num_iterations=7, sampling_rate=1.0).fit(X, y)

        np.testing.assert_allclose(staged[6], partial.predict(X), rtol=1e-8)

    def test_staged_final_matches_predict(self):
        X, y = make_regression(n_samples=80, n_features=5, random_state=0)
        fitted = regression(num_iterations=10, sampling_rate=1.0).fit(X, y)

        staged = list(fitted.ensemble.staged_decision_function(X))

        assert len(staged) == 10
        np.testing.assert_allclose(staged[-1], fitted.predict(X), rtol=1e-12)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
