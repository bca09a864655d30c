"""
Synthetic time-series data for signal/background classification.

Each event is a sequence of n_time steps, each step a vector of n_dim
features. At step j the features are the bin contents of an n_dim-bin
histogram over [0, 10] filled with 1000 Gaussian draws, plus Gaussian
noise (sigma 10). Signal and background use Gaussians whose mean and
width drift in opposite phase along the time axis:

    signal_mean[j]      = 5 + 0.2 sin(pi j / n_time)
    background_mean[j]  = 5 + 0.2 cos(pi j / n_time)
    signal_sigma[j]     = 4 + 0.3 sin(pi j / n_time)
    background_sigma[j] = 4 + 0.3 cos(pi j / n_time)

Datasets are stored in HDF5, one group per class ("sgn", "bkg") and one
dataset per time step ("vars_time{j}", shape (n_events, n_dim)).
"""

import os
from pathlib import Path
from typing import Dict, Iterator, NamedTuple, Optional, Tuple, Union

import h5py
import numpy as np
from rich.console import Console


SIGNAL_GROUP = "sgn"
BACKGROUND_GROUP = "bkg"
DOMAIN = (0.0, 10.0)
POINTS_PER_HISTOGRAM = 1000
NOISE_SIGMA = 10.0
PROGRESS_INTERVAL = 1000


class GenerationParameters(NamedTuple):
    signal_mean: np.ndarray
    background_mean: np.ndarray
    signal_sigma: np.ndarray
    background_sigma: np.ndarray


class _Event(NamedTuple):
    signal_counts: np.ndarray
    background_counts: np.ndarray
    signal: np.ndarray
    background: np.ndarray


def branch_name(step: int) -> str:
    """Name of the branch holding the feature vectors of time step `step`."""
    return f"vars_time{step}"


def dataset_filename(n_time: int, n_dim: int) -> str:
    return f"time_data_t{n_time}_d{n_dim}.h5"


def _check_sizes(**sizes: int) -> None:
    for name, value in sizes.items():
        if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value <= 0:
            raise ValueError(f"{name} must be a positive integer, got {value!r}")


def generation_parameters(n_time: int) -> GenerationParameters:
    """Per-step means and widths of the signal and background profiles."""
    _check_sizes(n_time=n_time)
    phase = np.pi * np.arange(n_time) / float(n_time)
    return GenerationParameters(
        signal_mean=5.0 + 0.2 * np.sin(phase),
        background_mean=5.0 + 0.2 * np.cos(phase),
        signal_sigma=4.0 + 0.3 * np.sin(phase),
        background_sigma=4.0 + 0.3 * np.cos(phase),
    )


def bin_probabilities(
    mean: np.ndarray,
    sigma: np.ndarray,
    n_dim: int,
    domain: Tuple[float, float] = DOMAIN,
) -> np.ndarray:
    """
    Probability of each of the n_dim bins over `domain` under a Gaussian
    truncated to the domain.

    Returns:
        Array of shape (len(mean), n_dim) whose rows sum to 1.
    """
    from scipy import stats

    edges = np.linspace(domain[0], domain[1], n_dim + 1)
    mean = np.atleast_1d(mean)[:, None]
    sigma = np.atleast_1d(sigma)[:, None]
    cdf = stats.norm.cdf(edges[None, :], loc=mean, scale=sigma)
    probs = np.diff(cdf, axis=1)
    return probs / probs.sum(axis=1, keepdims=True)


def sample_profiles(
    probabilities: np.ndarray,
    rng: np.random.Generator,
    n_points: int = POINTS_PER_HISTOGRAM,
) -> np.ndarray:
    """Fill one histogram per row of `probabilities` with `n_points` draws."""
    return rng.multinomial(n_points, probabilities).astype(np.float32)


def _events(
    n_events: int, n_time: int, n_dim: int, rng: np.random.Generator
) -> Iterator[_Event]:
    params = generation_parameters(n_time)
    sig_probs = bin_probabilities(params.signal_mean, params.signal_sigma, n_dim)
    bkg_probs = bin_probabilities(params.background_mean, params.background_sigma, n_dim)

    for _ in range(n_events):
        sig_counts = sample_profiles(sig_probs, rng)
        bkg_counts = sample_profiles(bkg_probs, rng)
        signal = sig_counts + rng.normal(0.0, NOISE_SIGMA, size=(n_time, n_dim))
        background = bkg_counts + rng.normal(0.0, NOISE_SIGMA, size=(n_time, n_dim))
        yield _Event(
            sig_counts, bkg_counts,
            signal.astype(np.float32), background.astype(np.float32),
        )


def generate_time_series(
    n_events: int,
    n_time: int,
    n_dim: int,
    seed: Optional[int] = None,
) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
    """
    Yield (signal, background) pairs of (n_time, n_dim) float32 arrays.

    Args:
        n_events: Number of events per class.
        n_time: Time steps per event.
        n_dim: Features per time step.
        seed: Noise seed. None seeds from system entropy.
    """
    _check_sizes(n_events=n_events, n_time=n_time, n_dim=n_dim)
    rng = np.random.default_rng(seed)
    for event in _events(n_events, n_time, n_dim, rng):
        yield event.signal, event.background


def _write_events(
    target: Path,
    path: Path,
    n_events: int,
    n_time: int,
    n_dim: int,
    rng: np.random.Generator,
    console: Console,
    verbose: bool,
) -> None:
    with h5py.File(target, "w") as f:
        f.attrs.update({"n_events": n_events, "n_time": n_time, "n_dim": n_dim})
        groups = {}
        for group_name in (SIGNAL_GROUP, BACKGROUND_GROUP):
            group = f.create_group(group_name)
            groups[group_name] = [
                group.create_dataset(branch_name(j), shape=(n_events, n_dim), dtype="f4")
                for j in range(n_time)
            ]

        for i, event in enumerate(_events(n_events, n_time, n_dim, rng)):
            if verbose and i % PROGRESS_INTERVAL == 0:
                console.print(f"Generating event ... {i}")

            for j in range(n_time):
                groups[SIGNAL_GROUP][j][i] = event.signal[j]
                groups[BACKGROUND_GROUP][j][i] = event.background[j]

            if n_events == 1:
                from utils.plotting import plot_profile_histograms
                figure_path = path.with_name(path.stem + "_histograms.png")
                plot_profile_histograms(event.signal_counts, event.background_counts, figure_path)


def make_time_data(
    n_events: int,
    n_time: int,
    n_dim: int,
    output_dir: Union[str, Path] = ".",
    seed: Optional[int] = None,
    console: Optional[Console] = None,
    verbose: bool = True,
) -> Path:
    """
    Generate the signal and background datasets and write them to HDF5.

    Events are written one at a time to a temporary file that replaces
    the final file only once every event is written, so an interrupted
    run never leaves a partial dataset behind. With a single event, a
    diagnostic figure of the per-step histograms is saved next to the
    data file.

    Returns:
        Path of the written file.
    """
    _check_sizes(n_events=n_events, n_time=n_time, n_dim=n_dim)
    console = console or Console()
    rng = np.random.default_rng(seed)

    path = Path(output_dir) / dataset_filename(n_time, n_dim)
    path.parent.mkdir(parents=True, exist_ok=True)
    partial = path.with_name(path.name + ".tmp")

    try:
        _write_events(partial, path, n_events, n_time, n_dim, rng, console, verbose)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise
    os.replace(partial, path)

    if verbose:
        for group_name in (SIGNAL_GROUP, BACKGROUND_GROUP):
            console.print(
                f"[green]✓[/green] {group_name}: {n_events} entries, "
                f"{n_time} branches of {n_dim} floats"
            )
        console.print(f"  Written to {path}")

    return path


def load_time_data(path: Union[str, Path]) -> Dict[str, np.ndarray]:
    """
    Read a generated dataset back.

    Returns:
        {"sgn": (N, T, D) array, "bkg": (N, T, D) array}
    """
    with h5py.File(path, "r") as f:
        n_time = int(f.attrs["n_time"])
        return {
            name: np.stack([f[name][branch_name(j)][()] for j in range(n_time)], axis=1)
            for name in (SIGNAL_GROUP, BACKGROUND_GROUP)
        }
