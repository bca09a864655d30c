"""
Plotting helpers: per-step profile histograms and ROC curves.
"""

from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from matplotlib.figure import Figure
import matplotlib.pyplot as plt
import numpy as np
import seaborn as sns

from utils.data import DOMAIN


def plot_profile_histograms(
    signal_counts: np.ndarray,
    background_counts: np.ndarray,
    path: Union[str, Path],
) -> Path:
    """
    Draw the histograms of one event, signal on the top row and
    background on the bottom row, one column per time step.
    """
    n_time, n_dim = signal_counts.shape
    edges = np.linspace(DOMAIN[0], DOMAIN[1], n_dim + 1)

    fig, axes = plt.subplots(2, n_time, figsize=(2.2 * n_time, 4.5), sharey=True, squeeze=False)
    for row, (label, counts, color) in enumerate([
        ("signal", signal_counts, "tab:blue"),
        ("background", background_counts, "tab:red"),
    ]):
        for j in range(n_time):
            ax = axes[row][j]
            ax.stairs(counts[j], edges, fill=True, color=color, alpha=0.7)
            ax.set_title(f"{label} t={j}", fontsize=8)
            ax.tick_params(labelsize=6)

    fig.tight_layout()
    path = Path(path)
    fig.savefig(path, dpi=100)
    plt.close(fig)
    return path


def plot_roc_curves(
    curves: Dict[str, Tuple[np.ndarray, np.ndarray, float]],
    path: Optional[Union[str, Path]] = None,
    title: str = "Background rejection versus Signal efficiency",
) -> Figure:
    """
    Plot background rejection against signal efficiency.

    Args:
        curves: method name -> (signal efficiency, background rejection, ROC integral)
        path: Save the figure here when given.
    """
    sns.set_theme(style="whitegrid")
    fig, ax = plt.subplots(figsize=(7, 6))
    palette = sns.color_palette("tab10", n_colors=max(len(curves), 1))

    for color, (name, (sig_eff, bkg_rej, auc)) in zip(palette, curves.items()):
        ax.plot(sig_eff, bkg_rej, color=color, linewidth=2, label=f"{name} ({auc:.3f})")

    ax.plot([0, 1], [1, 0], linestyle="--", color="grey", linewidth=1)
    ax.set_xlim(0, 1)
    ax.set_ylim(0, 1.02)
    ax.set_xlabel("Signal efficiency")
    ax.set_ylabel("Background rejection")
    ax.set_title(title)
    ax.legend(title="MVA method (ROC integral)", loc="lower left")
    fig.tight_layout()

    if path is not None:
        fig.savefig(path, dpi=150)
    return fig
