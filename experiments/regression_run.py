"""
Regression experiment on the Diabetes dataset.

Compares boosted trees and boosted linear models under squared-error and
absolute-deviation losses, each against its constant-predictor baseline, and
plots training/validation loss curves.
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))

import pandas as pd
import matplotlib.pyplot as plt
from sklearn.datasets import load_diabetes

from gradboost import LeastAbsoluteDeviation, LeastSquares, Problem, gbdt, gbl, holdout, run_experiment
from gradboost.utils import baseline_mad, baseline_mse, mad, mse

OUTPUT_DIR = Path(__file__).resolve().parent

# Set style
plt.style.use('seaborn-v0_8-darkgrid')


def load_data():
    """Load the Diabetes dataset."""
    print("Loading Diabetes dataset...")
    data = load_diabetes()
    X, y = data.data, data.target
    print(f"Instances: {X.shape}")
    return X, y


def experiment_losses(X, y, num_experiments=10):
    """Trees vs linear models for both regression losses."""
    print("\n" + "="*60)
    print("Experiment 1: Loss and learner comparison")
    print("="*60)

    settings = [
        ("gbdt", "least_squares", lambda: gbdt(LeastSquares(), 0.6, 0.1, 100), mse, baseline_mse),
        ("gbl", "least_squares", lambda: gbl(LeastSquares(), 0.8, 0.1, 100), mse, baseline_mse),
        ("gbdt", "least_absolute_deviation",
         lambda: gbdt(LeastAbsoluteDeviation(), 0.6, 0.1, 100), mad, baseline_mad),
        ("gbl", "least_absolute_deviation",
         lambda: gbl(LeastAbsoluteDeviation(), 0.8, 0.1, 100), mad, baseline_mad),
    ]

    results = []
    for learner, loss, make_config, score_fn, baseline_fn in settings:
        print(f"\nFitting {learner} with {loss}...")
        result = run_experiment(
            lambda: Problem(make_config(), "regression"),
            score_fn, baseline_fn, X, y,
            num_experiments=num_experiments, random_state=42
        )
        print(f"Mean score: {result.mean_score:.4f} (baseline {result.baseline:.4f})")
        results.append({
            'learner': learner,
            'loss': loss,
            'mean_score': result.mean_score,
            'baseline': result.baseline,
            'beats_baseline': result.beats_baseline
        })

    return pd.DataFrame(results)


def experiment_learning_rate(X, y):
    """Effect of shrinkage on the validation curve."""
    print("\n" + "="*60)
    print("Experiment 2: Effect of learning_rate")
    print("="*60)

    train, test = holdout(len(y), 0.2, random_state=42)
    fig, ax = plt.subplots(figsize=(10, 6))
    results = []

    for lr in [0.01, 0.1, 0.5]:
        fitted = Problem(
            gbdt(LeastSquares(), 0.6, lr, 200, random_state=42), "regression"
        ).fit(X[train], y[train], X_val=X[test], y_val=y[test])

        test_mse = mse(fitted.predict(X[test]), y[test])
        print(f"learning_rate={lr}: test MSE={test_mse:.2f}")
        results.append({'learning_rate': lr, 'test_mse': test_mse})

        ax.plot(fitted.ensemble.val_scores, label=f'ν={lr}', linewidth=2)

    ax.set_xlabel('Iteration')
    ax.set_ylabel('Validation loss (0.5 * MSE)')
    ax.set_title('Effect of learning rate')
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(OUTPUT_DIR / 'regression_learning_rate.png', dpi=150)
    print("\nSaved plot: regression_learning_rate.png")

    return pd.DataFrame(results)


def main():
    """Run all regression experiments."""
    print("="*60)
    print("Gradient Boosting Regression Experiments")
    print("="*60)

    X, y = load_data()

    results_losses = experiment_losses(X, y)
    results_lr = experiment_learning_rate(X, y)

    results_losses.to_csv(OUTPUT_DIR / 'regression_loss_results.csv', index=False)
    results_lr.to_csv(OUTPUT_DIR / 'regression_learning_rate_results.csv', index=False)

    print("\n" + "="*60)
    print("Results Summary")
    print("="*60)
    print(results_losses.to_string(index=False))
    print()
    print(results_lr.to_string(index=False))


if __name__ == "__main__":
    main()
