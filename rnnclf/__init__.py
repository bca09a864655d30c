"""
rnnclf - Recurrent-network classification of multivariate time series

Simple RNN, LSTM and GRU classifiers for fixed-length sequences of feature
vectors, with a data loader, a training/evaluation factory and a toy
signal/background time-series generator.

Usage:
    from rnnclf import LayerKind, NetworkConfig, RecurrentLayer, create_classifier

    network = NetworkConfig(n_time=10, n_dim=30, recurrent=RecurrentLayer(kind=LayerKind.LSTM))
    model = create_classifier(network)
"""

from rnnclf.config import (
    LayerKind, NetworkConfig, RecurrentLayer, DenseLayer, TrainingConfig,
    SplitConfig, RunConfig, TutorialConfig, layer_kinds_for,
)
from rnnclf.recurrent import SimpleRNN, LSTM, GRU, RECURRENT_LAYERS
from rnnclf.model import RecurrentClassifier, create_classifier
from rnnclf.dataloader import DatasetLoader
from rnnclf.factory import Factory

__version__ = "0.1.0"
__all__ = [
    "LayerKind",
    "NetworkConfig",
    "RecurrentLayer",
    "DenseLayer",
    "TrainingConfig",
    "SplitConfig",
    "RunConfig",
    "TutorialConfig",
    "layer_kinds_for",
    "SimpleRNN",
    "LSTM",
    "GRU",
    "RECURRENT_LAYERS",
    "RecurrentClassifier",
    "create_classifier",
    "DatasetLoader",
    "Factory",
]
