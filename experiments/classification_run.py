"""
Classification experiment on the Iris dataset (setosa vs rest).

Repeats stochastic gradient tree boosting with binomial deviance over random
80/20 holdout splits, compares the error rate with the majority-class baseline
and plots the training/validation deviance of one run.
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))

import pandas as pd
import matplotlib.pyplot as plt
from sklearn.datasets import load_iris

from gradboost import BinomialDeviance, Problem, gbdt, holdout, run_experiment
from gradboost.utils import baseline_err_rate, compute_metrics_classification, err_rate

OUTPUT_DIR = Path(__file__).resolve().parent

# Set style
plt.style.use('seaborn-v0_8-darkgrid')


def load_data():
    """Load Iris and turn it into a setosa-vs-rest problem."""
    print("Loading Iris dataset...")
    data = load_iris()
    X = data.data.astype(float)
    y = (data.target == 0).astype(float)
    print(f"Instances: {X.shape}, positive proportion: {y.mean():.3f}")
    return X, y


def experiment_holdout(X, y, num_experiments=10):
    """Repeated 80/20 holdout against the majority-class baseline."""
    print("\n" + "="*60)
    print("Experiment 1: Repeated holdout")
    print("="*60)

    def problem_factory():
        return Problem(gbdt(BinomialDeviance(), 0.6, 0.1, 100), "classification")

    result = run_experiment(
        problem_factory, err_rate, baseline_err_rate, X, y,
        num_experiments=num_experiments, random_state=42
    )

    print(f"Mean error rate: {result.mean_score:.4f}")
    print(f"Baseline:        {result.baseline:.4f}")
    print(f"Beats baseline:  {result.beats_baseline}")
    return result.to_frame()


def experiment_sampling_rate(X, y):
    """Effect of the per-stage sampling rate on held-out error."""
    print("\n" + "="*60)
    print("Experiment 2: Effect of sampling_rate")
    print("="*60)

    results = []
    for rate in [0.3, 0.6, 1.0]:
        result = run_experiment(
            lambda: Problem(gbdt(BinomialDeviance(), rate, 0.1, 100), "classification"),
            err_rate, baseline_err_rate, X, y, num_experiments=5, random_state=42
        )
        print(f"sampling_rate={rate}: error={result.mean_score:.4f}")
        results.append({'sampling_rate': rate, 'mean_error_rate': result.mean_score})

    return pd.DataFrame(results)


def learning_curve(X, y):
    """Train/validation deviance of a single run."""
    train, test = holdout(len(y), 0.2, random_state=42)
    fitted = Problem(
        gbdt(BinomialDeviance(), 0.6, 0.1, 100, random_state=42), "classification"
    ).fit(X[train], y[train], X_val=X[test], y_val=y[test])

    metrics = compute_metrics_classification(y[test], fitted.predict_proba(X[test]))
    print(f"\nSingle run: accuracy={metrics['accuracy']:.4f}, log_loss={metrics['log_loss']:.4f}")

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(fitted.ensemble.train_scores, label='Train', linewidth=2)
    ax.plot(fitted.ensemble.val_scores, label='Validation', linewidth=2)
    ax.set_xlabel('Iteration')
    ax.set_ylabel('Binomial deviance')
    ax.set_title('Iris (setosa vs rest)')
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(OUTPUT_DIR / 'classification_learning_curve.png', dpi=150)
    print("Saved plot: classification_learning_curve.png")


def main():
    """Run all classification experiments."""
    print("="*60)
    print("Gradient Boosting Classification Experiments")
    print("="*60)

    X, y = load_data()

    results_holdout = experiment_holdout(X, y)
    results_sampling = experiment_sampling_rate(X, y)
    learning_curve(X, y)

    results_holdout.to_csv(OUTPUT_DIR / 'classification_holdout_results.csv', index=False)
    results_sampling.to_csv(OUTPUT_DIR / 'classification_sampling_results.csv', index=False)

    print("\n" + "="*60)
    print("Results Summary")
    print("="*60)
    print(results_holdout.to_string(index=False))
    print()
    print(results_sampling.to_string(index=False))


if __name__ == "__main__":
    main()
