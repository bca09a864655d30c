"""
Classifier performance measures: ROC curves, working-point efficiencies,
separation and overtraining checks.
"""

import numpy as np
from typing import Dict, Optional, Tuple


def roc_curve(
    labels: np.ndarray,
    scores: np.ndarray,
    weights: Optional[np.ndarray] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Returns (signal efficiency, background rejection) along the ROC curve."""
    from sklearn import metrics

    bkg_eff, sig_eff, _ = metrics.roc_curve(labels, scores, sample_weight=weights)
    return sig_eff, 1.0 - bkg_eff


def roc_integral(
    labels: np.ndarray,
    scores: np.ndarray,
    weights: Optional[np.ndarray] = None,
) -> float:
    """Area under the ROC curve."""
    from sklearn import metrics
    return float(metrics.roc_auc_score(labels, scores, sample_weight=weights))


def signal_efficiency_at(
    labels: np.ndarray,
    scores: np.ndarray,
    background_efficiency: float,
    weights: Optional[np.ndarray] = None,
) -> float:
    """Signal efficiency at the cut that keeps `background_efficiency` of background."""
    from sklearn import metrics

    bkg_eff, sig_eff, _ = metrics.roc_curve(labels, scores, sample_weight=weights)
    return float(np.interp(background_efficiency, bkg_eff, sig_eff))


def separation(
    signal_scores: np.ndarray,
    background_scores: np.ndarray,
    bins: int = 40,
) -> float:
    """
    <S^2> = 1/2 sum (s - b)^2 / (s + b) over unit-normalised histograms.

    0 for identical distributions, 1 for fully disjoint ones.
    """
    lo = min(signal_scores.min(), background_scores.min())
    hi = max(signal_scores.max(), background_scores.max())
    if hi <= lo:
        return 0.0
    s, _ = np.histogram(signal_scores, bins=bins, range=(lo, hi))
    b, _ = np.histogram(background_scores, bins=bins, range=(lo, hi))
    s = s / s.sum()
    b = b / b.sum()
    total = s + b
    mask = total > 0
    return float(0.5 * np.sum((s[mask] - b[mask]) ** 2 / total[mask]))


def overtraining_test(train_scores: np.ndarray, test_scores: np.ndarray) -> float:
    """Kolmogorov-Smirnov probability that train and test scores share a distribution."""
    from scipy import stats
    return float(stats.ks_2samp(train_scores, test_scores).pvalue)


def format_results(all_results: Dict[str, Dict[str, float]]) -> str:
    """Format evaluation results as a table."""
    lines = []
    lines.append("=" * 86)
    lines.append(
        f"{'Method':<14} {'ROC-int':>8} {'@B=0.01':>9} {'@B=0.10':>9} {'@B=0.30':>9} "
        f"{'Separ.':>8} {'KS sig':>9} {'KS bkg':>9} {'Acc':>7}"
    )
    lines.append("=" * 86)

    for name, r in all_results.items():
        lines.append(
            f"{name:<14} {r['roc_integral']:>8.3f} {r['sig_eff_at_0.01']:>9.3f} "
            f"{r['sig_eff_at_0.10']:>9.3f} {r['sig_eff_at_0.30']:>9.3f} "
            f"{r['separation']:>8.3f} {r['ks_signal']:>9.3f} {r['ks_background']:>9.3f} "
            f"{r['test_acc']:>6.2f}%"
        )

    lines.append("=" * 86)
    lines.append("KS: Kolmogorov-Smirnov probability of train vs test scores (overtraining check)")

    return "\n".join(lines)
