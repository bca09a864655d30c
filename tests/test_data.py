"""Tests for the synthetic time-series generator."""

import h5py
import numpy as np
import pytest

import utils.data as data_module
from utils.data import (
    BACKGROUND_GROUP, SIGNAL_GROUP, bin_probabilities, branch_name, dataset_filename,
    generate_time_series, generation_parameters, load_time_data, make_time_data,
    sample_profiles,
)


def test_generation_parameters_formulas():
    """Means and widths follow the sin/cos drift around (5, 4)."""
    n_time = 10
    params = generation_parameters(n_time)
    j = np.arange(n_time)
    phase = np.pi * j / n_time
    np.testing.assert_allclose(params.signal_mean, 5 + 0.2 * np.sin(phase))
    np.testing.assert_allclose(params.background_mean, 5 + 0.2 * np.cos(phase))
    np.testing.assert_allclose(params.signal_sigma, 4 + 0.3 * np.sin(phase))
    np.testing.assert_allclose(params.background_sigma, 4 + 0.3 * np.cos(phase))

    assert params.signal_mean[0] == pytest.approx(5.0)
    assert params.background_mean[0] == pytest.approx(5.2)
    assert params.background_sigma[0] == pytest.approx(4.3)


def test_mean_sum_oscillates_about_ten():
    params = generation_parameters(200)
    total = params.signal_mean + params.background_mean
    deviation = total - 10.0
    assert np.all(np.abs(deviation) <= 0.2 * np.sqrt(2) + 1e-12)
    assert deviation.max() > 0
    assert deviation.min() < 0


def test_bin_probabilities_are_normalised():
    probs = bin_probabilities(np.array([5.0, 2.0]), np.array([4.0, 1.0]), 30)
    assert probs.shape == (2, 30)
    np.testing.assert_allclose(probs.sum(axis=1), 1.0)
    # symmetric about the domain centre
    np.testing.assert_allclose(probs[0], probs[0][::-1], atol=1e-12)


def test_sample_profiles_keep_all_points_in_domain():
    rng = np.random.default_rng(0)
    probs = bin_probabilities(np.array([5.0, 5.2]), np.array([4.0, 4.3]), 30)
    counts = sample_profiles(probs, rng)
    assert counts.shape == (2, 30)
    np.testing.assert_array_equal(counts.sum(axis=1), [1000, 1000])
    assert np.all(counts >= 0)


def test_generate_shapes():
    pairs = list(generate_time_series(10, 10, 30, seed=1))
    assert len(pairs) == 10
    for signal, background in pairs:
        assert signal.shape == (10, 30)
        assert background.shape == (10, 30)
        assert signal.dtype == np.float32
        assert np.all(np.isfinite(signal)) and np.all(np.isfinite(background))


def test_generate_is_deterministic_with_seed():
    first = list(generate_time_series(3, 5, 8, seed=42))
    second = list(generate_time_series(3, 5, 8, seed=42))
    for (s1, b1), (s2, b2) in zip(first, second):
        np.testing.assert_array_equal(s1, s2)
        np.testing.assert_array_equal(b1, b2)

    other = list(generate_time_series(3, 5, 8, seed=43))
    assert not np.array_equal(first[0][0], other[0][0])


@pytest.mark.parametrize("sizes", [(0, 10, 30), (10, 0, 30), (10, 10, 0), (-1, 10, 30)])
def test_generate_rejects_non_positive_sizes(sizes, tmp_path):
    with pytest.raises(ValueError):
        list(generate_time_series(*sizes))
    with pytest.raises(ValueError):
        make_time_data(*sizes, output_dir=tmp_path, verbose=False)
    assert not any(tmp_path.iterdir())


def test_make_time_data_layout(tmp_path):
    path = make_time_data(10, 10, 30, output_dir=tmp_path, seed=3, verbose=False)
    assert path.name == dataset_filename(10, 30) == "time_data_t10_d30.h5"

    with h5py.File(path, "r") as f:
        assert set(f.keys()) == {SIGNAL_GROUP, BACKGROUND_GROUP}
        for group in (SIGNAL_GROUP, BACKGROUND_GROUP):
            assert sorted(f[group].keys()) == sorted(branch_name(j) for j in range(10))
            for j in range(10):
                assert f[group][branch_name(j)].shape == (10, 30)

    data = load_time_data(path)
    assert data[SIGNAL_GROUP].shape == (10, 10, 30)
    assert data[BACKGROUND_GROUP].shape == (10, 10, 30)
    assert np.all(np.isfinite(data[SIGNAL_GROUP]))


def test_file_matches_generator(tmp_path):
    path = make_time_data(4, 3, 5, output_dir=tmp_path, seed=11, verbose=False)
    data = load_time_data(path)
    for i, (signal, background) in enumerate(generate_time_series(4, 3, 5, seed=11)):
        np.testing.assert_array_equal(data[SIGNAL_GROUP][i], signal)
        np.testing.assert_array_equal(data[BACKGROUND_GROUP][i], background)


def test_single_event_writes_diagnostic_figure(tmp_path):
    path = make_time_data(1, 3, 5, output_dir=tmp_path, seed=5, verbose=False)
    assert path.with_name(path.stem + "_histograms.png").exists()

    data = load_time_data(path)
    (signal, background), = generate_time_series(1, 3, 5, seed=5)
    np.testing.assert_array_equal(data[SIGNAL_GROUP][0], signal)
    np.testing.assert_array_equal(data[BACKGROUND_GROUP][0], background)


def test_classes_differ_on_average():
    """Signal profile is narrower at the start of the sequence than background."""
    pairs = list(generate_time_series(500, 4, 30, seed=0))
    signal = np.mean([s for s, _ in pairs], axis=0)
    background = np.mean([b for _, b in pairs], axis=0)
    # at t=0 signal sigma is 4.0 vs 4.3 for background: more counts in the central bins
    assert signal[0, 13:17].sum() > background[0, 13:17].sum()


def test_progress_output(tmp_path):
    from rich.console import Console
    console = Console(record=True, width=120)
    make_time_data(3, 2, 4, output_dir=tmp_path, seed=0, console=console)
    text = console.export_text()
    assert "Generating event ... 0" in text
    assert "3 entries" in text


def _interrupt_after(n_good):
    original = data_module._events

    def events(*args):
        for i, event in enumerate(original(*args)):
            if i == n_good:
                raise KeyboardInterrupt
            yield event
    return events


def test_interrupted_generation_leaves_no_file(tmp_path, monkeypatch):
    monkeypatch.setattr(data_module, "_events", _interrupt_after(5))
    with pytest.raises(KeyboardInterrupt):
        make_time_data(20, 3, 4, output_dir=tmp_path, seed=0, verbose=False)
    assert list(tmp_path.iterdir()) == []

    monkeypatch.undo()
    path = make_time_data(20, 3, 4, output_dir=tmp_path, seed=0, verbose=False)
    data = load_time_data(path)
    assert not np.any(np.all(data[SIGNAL_GROUP] == 0.0, axis=(1, 2)))
    assert list(tmp_path.iterdir()) == [path]


def test_interrupted_regeneration_keeps_previous_file(tmp_path, monkeypatch):
    path = make_time_data(20, 3, 4, output_dir=tmp_path, seed=0, verbose=False)
    before = load_time_data(path)

    monkeypatch.setattr(data_module, "_events", _interrupt_after(5))
    with pytest.raises(KeyboardInterrupt):
        make_time_data(20, 3, 4, output_dir=tmp_path, seed=1, verbose=False)

    np.testing.assert_array_equal(load_time_data(path)[SIGNAL_GROUP], before[SIGNAL_GROUP])
    assert list(tmp_path.iterdir()) == [path]
