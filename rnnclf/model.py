"""
Recurrent classifier for fixed-length multivariate time series.

Layout:  x (batch, n_time, n_dim)
      -> recurrent layer (RNN / LSTM / GRU), all hidden states
      -> reshape to (batch, n_time * units)
      -> dense layers (64 units, tanh by default)
      -> single linear output (logit)

The output is linear because the sigmoid is applied by the loss
(BCEWithLogitsLoss) and by `predict_proba`.
"""

import torch
import torch.nn as nn
from typing import Tuple
from torch import Tensor

from rnnclf.config import Activation, NetworkConfig
from rnnclf.recurrent import create_recurrent_layer, init_weight_


_ACTIVATIONS = {
    Activation.TANH: nn.Tanh,
    Activation.RELU: nn.ReLU,
    Activation.SIGMOID: nn.Sigmoid,
    Activation.LINEAR: nn.Identity,
}


class RecurrentClassifier(nn.Module):
    """
    Binary signal/background classifier built from a `NetworkConfig`.

    Args:
        network: Layout of the input, recurrent layer and dense stack.
    """

    def __init__(self, network: NetworkConfig):
        super().__init__()
        self.network = network

        self.recurrent = create_recurrent_layer(
            network.recurrent, network.n_dim, weight_init=network.weight_init
        )

        layers = []
        in_features = network.flat_size
        for dense in network.dense:
            layers.append(nn.Linear(in_features, dense.units))
            layers.append(_ACTIVATIONS[dense.activation]())
            in_features = dense.units
        self.dense = nn.Sequential(*layers)
        self.output = nn.Linear(in_features, 1)

        self._init_weights()

    def _init_weights(self):
        for module in list(self.dense) + [self.output]:
            if isinstance(module, nn.Linear):
                init_weight_(module.weight, self.network.weight_init)
                nn.init.zeros_(module.bias)

    @property
    def input_layout(self) -> Tuple[int, int]:
        return self.network.input_layout

    def forward(self, x: Tensor) -> Tensor:
        """
        Args:
            x: (batch, n_time, n_dim) feature sequences.

        Returns:
            Logits of shape (batch,).
        """
        if x.dim() != 3 or tuple(x.shape[1:]) != self.input_layout:
            raise ValueError(
                f"Expected input of shape (batch, {self.network.n_time}, "
                f"{self.network.n_dim}), got {tuple(x.shape)}"
            )
        states = self.recurrent(x)
        if not self.network.recurrent.return_sequence:
            states = states[:, -1]
        flat = states.reshape(x.size(0), -1)
        return self.output(self.dense(flat)).squeeze(-1)

    @torch.no_grad()
    def predict_proba(self, x: Tensor) -> Tensor:
        """Signal probability for each sequence."""
        return torch.sigmoid(self.forward(x))

    def extra_repr(self) -> str:
        return f"layout={self.network.layout_string()}"


def create_classifier(
    network: NetworkConfig,
    device: str = "cuda" if torch.cuda.is_available() else "cpu",
) -> RecurrentClassifier:
    """Create a recurrent classifier and move it to `device`."""
    return RecurrentClassifier(network).to(device)
