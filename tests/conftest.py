"""Shared fixtures for the test suite."""

import matplotlib
matplotlib.use("Agg")

import h5py
import numpy as np
import pytest

from rnnclf.config import SplitConfig
from rnnclf.dataloader import DatasetLoader
from utils.data import BACKGROUND_GROUP, SIGNAL_GROUP, branch_name, make_time_data


N_EVENTS, N_TIME, N_DIM = 40, 4, 6


@pytest.fixture
def data_file(tmp_path):
    """Small generated dataset on disk."""
    return make_time_data(N_EVENTS, N_TIME, N_DIM, output_dir=tmp_path, seed=7, verbose=False)


@pytest.fixture
def prepared_loader(data_file):
    """Loader with variables declared and an 80/20 random split."""
    loader = DatasetLoader("dataset")
    for j in range(N_TIME):
        loader.add_variables_array(branch_name(j), N_DIM)
    with h5py.File(data_file, "r") as f:
        loader.add_signal_tree(f[SIGNAL_GROUP], 1.0)
        loader.add_background_tree(f[BACKGROUND_GROUP], 1.0)
    loader.prepare_training_and_test_tree(SplitConfig(n_train_signal=32, n_train_background=32))
    return loader


def make_tree(n_events, n_time, n_dim, offset=0.0, seed=0):
    """In-memory branch mapping with the on-disk layout."""
    rng = np.random.default_rng(seed)
    return {
        branch_name(j): (rng.normal(size=(n_events, n_dim)) + offset).astype(np.float32)
        for j in range(n_time)
    }
