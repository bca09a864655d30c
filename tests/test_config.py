"""Tests for the typed configuration objects."""

import os

import pytest
import torch
from pydantic import ValidationError

from rnnclf.config import (
    Activation, DenseLayer, LayerKind, NetworkConfig, OptimizerKind, RecurrentLayer,
    RunConfig, SplitConfig, SplitMode, TrainingConfig, TutorialConfig, WeightInit,
    configure_threads, layer_kinds_for,
)


@pytest.mark.parametrize("use_type, expected", [
    (0, [LayerKind.RNN]),
    (1, [LayerKind.LSTM]),
    (2, [LayerKind.GRU]),
    (3, [LayerKind.RNN, LayerKind.LSTM, LayerKind.GRU]),
    (-1, [LayerKind.RNN, LayerKind.LSTM, LayerKind.GRU]),
])
def test_layer_kinds_for(use_type, expected):
    assert layer_kinds_for(use_type) == expected


def test_training_defaults():
    training = TrainingConfig()
    assert training.learning_rate == 1e-3
    assert training.batch_size == 100
    assert training.max_epochs == 20
    assert training.weight_decay == 1e-2
    assert training.optimizer == OptimizerKind.ADAM
    assert training.validation_size == 0.2


def test_layout_string():
    network = NetworkConfig(n_time=10, n_dim=30, recurrent=RecurrentLayer(kind="LSTM"))
    assert network.layout_string() == "LSTM|10|30|10|0|1,RESHAPE|FLAT,DENSE|64|TANH,LINEAR"
    assert network.input_layout == (10, 30)
    assert network.flat_size == 100
    assert network.weight_init == WeightInit.XAVIERUNIFORM


def test_flat_size_without_sequence():
    network = NetworkConfig(
        n_time=10, n_dim=30,
        recurrent=RecurrentLayer(kind=LayerKind.GRU, units=8, return_sequence=False),
        dense=[DenseLayer(units=16, activation=Activation.RELU)],
    )
    assert network.flat_size == 8
    assert network.layout_string() == "GRU|8|30|10|0|0,RESHAPE|FLAT,DENSE|16|RELU,LINEAR"


def test_unknown_layer_kind_rejected():
    with pytest.raises(ValidationError):
        RecurrentLayer(kind="TRANSFORMER")


@pytest.mark.parametrize("kwargs", [
    {"learning_rate": 0},
    {"batch_size": 0},
    {"max_epochs": -1},
    {"validation_size": 1.0},
    {"optimizer": "LBFGS"},
    {"unknown_option": 1},
])
def test_invalid_training_values(kwargs):
    with pytest.raises(ValidationError):
        TrainingConfig(**kwargs)


def test_validation_error_is_value_error():
    with pytest.raises(ValueError):
        NetworkConfig(n_time=0, n_dim=30, recurrent=RecurrentLayer(kind=LayerKind.RNN))


def test_configs_are_frozen():
    training = TrainingConfig()
    with pytest.raises(ValidationError):
        training.batch_size = 10


def test_split_defaults():
    split = SplitConfig(n_train_signal=8000, n_train_background=8000)
    assert split.split_mode == SplitMode.RANDOM
    assert split.split_seed == 100
    assert split.n_test_signal == 0


def test_tutorial_defaults():
    tutorial = TutorialConfig()
    assert (tutorial.n_time, tutorial.n_dim) == (10, 30)
    assert tutorial.n_train == 8000


def test_tutorial_needs_training_events():
    with pytest.raises(ValidationError):
        TutorialConfig(n_events=1)


def test_run_config_architecture():
    assert RunConfig(use_gpu=False).architecture == "CPU"
    assert RunConfig(use_gpu=False).device == torch.device("cpu")


def test_configure_threads(monkeypatch):
    monkeypatch.setenv("OMP_NUM_THREADS", "")
    previous = torch.get_num_threads()
    try:
        assert configure_threads(RunConfig(n_threads=2)) == 2
        assert os.environ["OMP_NUM_THREADS"] == "2"
        assert configure_threads(RunConfig(n_threads=-1)) == 1
        assert configure_threads(RunConfig(n_threads=0)) == 1
    finally:
        torch.set_num_threads(previous)
