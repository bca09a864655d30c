"""
Recurrent layers (Simple RNN, LSTM, GRU) for feature sequences.

All layers share the same structure:
- Input projections are pre-computed for the whole sequence outside the loop
- The recurrence itself runs in a JIT-compiled function
- Every hidden state is returned, shape (batch, n_time, units)
- Optional state memory across calls (remember_state)
"""

import torch
import torch.nn as nn
from typing import Optional, Tuple
from torch import Tensor

from rnnclf.config import LayerKind, RecurrentLayer, WeightInit


# =============================================================================
# JIT-COMPILED RECURRENCE FUNCTIONS
# =============================================================================


@torch.jit.script
def _rnn_recurrence(x_seq: Tensor, h: Tensor, W_h_weight: Tensor) -> Tuple[Tensor, Tensor]:
    """Simple RNN recurrence returning (all states, final state)."""
    batch_size, seq_len = x_seq.size(0), x_seq.size(1)
    all_states = torch.zeros(batch_size, seq_len, h.size(1), device=h.device, dtype=h.dtype)
    for t in range(seq_len):
        h = torch.tanh(x_seq[:, t] + torch.mm(h, W_h_weight))
        all_states[:, t] = h
    return all_states, h


@torch.jit.script
def _lstm_recurrence(
    gate_x_seq: Tensor, h: Tensor, c: Tensor,
    gate_h_weight: Tensor, hidden_size: int,
) -> Tuple[Tensor, Tensor, Tensor]:
    """LSTM recurrence returning (all states, final h, final c)."""
    batch_size, seq_len = gate_x_seq.size(0), gate_x_seq.size(1)
    all_states = torch.zeros(batch_size, seq_len, hidden_size, device=h.device, dtype=h.dtype)
    for t in range(seq_len):
        gates = gate_x_seq[:, t] + torch.mm(h, gate_h_weight)
        i = torch.sigmoid(gates[:, :hidden_size])
        f = torch.sigmoid(gates[:, hidden_size:2*hidden_size])
        g = torch.tanh(gates[:, 2*hidden_size:3*hidden_size])
        o = torch.sigmoid(gates[:, 3*hidden_size:])
        c = f * c + i * g
        h = o * torch.tanh(c)
        all_states[:, t] = h
    return all_states, h, c


@torch.jit.script
def _gru_recurrence(
    gate_x_seq: Tensor, cand_x_seq: Tensor, h: Tensor,
    gate_h_weight: Tensor, cand_h_weight: Tensor, hidden_size: int,
) -> Tuple[Tensor, Tensor]:
    """GRU recurrence returning (all states, final state)."""
    batch_size, seq_len = gate_x_seq.size(0), gate_x_seq.size(1)
    all_states = torch.zeros(batch_size, seq_len, hidden_size, device=h.device, dtype=h.dtype)
    for t in range(seq_len):
        gates = torch.sigmoid(gate_x_seq[:, t] + torch.mm(h, gate_h_weight))
        z = gates[:, :hidden_size]
        r = gates[:, hidden_size:]
        h_tilde = torch.tanh(cand_x_seq[:, t] + torch.mm(r * h, cand_h_weight))
        h = (1 - z) * h_tilde + z * h
        all_states[:, t] = h
    return all_states, h


# =============================================================================
# WEIGHT INITIALISATION
# =============================================================================


def init_weight_(param: Tensor, scheme: WeightInit) -> None:
    """Initialise a weight matrix in place with the given scheme."""
    if scheme == WeightInit.XAVIER:
        nn.init.xavier_normal_(param)
    elif scheme == WeightInit.XAVIERUNIFORM:
        nn.init.xavier_uniform_(param)
    elif scheme == WeightInit.GAUSS:
        nn.init.normal_(param, mean=0.0, std=0.1)
    elif scheme == WeightInit.UNIFORM:
        nn.init.uniform_(param, -0.1, 0.1)
    elif scheme == WeightInit.ORTHOGONAL:
        nn.init.orthogonal_(param)
    else:
        raise ValueError(f"Unknown weight initialisation: {scheme}")


class _RecurrentBase(nn.Module):
    """Shared bookkeeping: sizes, initialisation and remembered state."""

    def __init__(
        self,
        input_size: int,
        hidden_size: int = 10,
        remember_state: bool = False,
        weight_init: WeightInit = WeightInit.XAVIERUNIFORM,
    ):
        super().__init__()
        self.input_size = input_size
        self.hidden_size = hidden_size
        self.remember_state = remember_state
        self.weight_init = weight_init
        self._state = None

    def _init_weights(self):
        for name, param in self.named_parameters():
            if 'weight' in name and param.dim() >= 2:
                init_weight_(param, self.weight_init)
            elif 'bias' in name:
                nn.init.zeros_(param)

    def reset_state(self):
        """Forget any hidden state remembered from a previous call."""
        self._state = None

    def _initial_state(self, batch_size: int, device: torch.device, dtype: torch.dtype):
        if self.remember_state and self._state is not None:
            state = self._state
            if state[0].size(0) == batch_size:
                return state
        return tuple(
            torch.zeros(batch_size, self.hidden_size, device=device, dtype=dtype)
            for _ in range(self._n_states)
        )

    def _keep(self, *state: Tensor):
        if self.remember_state:
            self._state = tuple(s.detach() for s in state)

    def extra_repr(self) -> str:
        return (
            f"input_size={self.input_size}, hidden_size={self.hidden_size}, "
            f"remember_state={self.remember_state}, init={self.weight_init.value}"
        )


# =============================================================================
# SIMPLE RNN
# =============================================================================


class SimpleRNN(_RecurrentBase):
    """
    Elman recurrent layer.

    h_t = tanh(W_x * x_t + W_h * h_{t-1} + b)
    """
    _n_states = 1

    def __init__(self, input_size: int, hidden_size: int = 10, **kwargs):
        super().__init__(input_size, hidden_size, **kwargs)
        self.W_x = nn.Linear(input_size, hidden_size, bias=True)
        self.W_h = nn.Linear(hidden_size, hidden_size, bias=False)
        self._init_weights()

    def forward(self, x: Tensor) -> Tensor:
        (h,) = self._initial_state(x.size(0), x.device, x.dtype)
        all_states, h = _rnn_recurrence(self.W_x(x), h, self.W_h.weight.t())
        self._keep(h)
        return all_states


# =============================================================================
# LSTM
# =============================================================================


class LSTM(_RecurrentBase):
    """
    LSTM layer.

    c_t = f_t * c_{t-1} + i_t * g_t
    h_t = o_t * tanh(c_t)
    """
    _n_states = 2

    def __init__(self, input_size: int, hidden_size: int = 10, **kwargs):
        super().__init__(input_size, hidden_size, **kwargs)
        self.gate_x_proj = nn.Linear(input_size, hidden_size * 4, bias=True)
        self.gate_h_proj = nn.Linear(hidden_size, hidden_size * 4, bias=False)
        self._init_weights()

    def _init_weights(self):
        super()._init_weights()
        with torch.no_grad():
            H = self.hidden_size
            self.gate_x_proj.bias[H:2*H].fill_(1.0)

    def forward(self, x: Tensor) -> Tensor:
        h, c = self._initial_state(x.size(0), x.device, x.dtype)
        all_states, h, c = _lstm_recurrence(
            self.gate_x_proj(x), h, c, self.gate_h_proj.weight.t(), self.hidden_size
        )
        self._keep(h, c)
        return all_states


# =============================================================================
# GRU
# =============================================================================


class GRU(_RecurrentBase):
    """
    GRU layer.

    h_t = (1 - z_t) * h_tilde + z_t * h_{t-1}
    where h_tilde = tanh(W_cx * x_t + W_ch * (r_t ⊙ h_{t-1}))
    """
    _n_states = 1

    def __init__(self, input_size: int, hidden_size: int = 10, **kwargs):
        super().__init__(input_size, hidden_size, **kwargs)
        self.gate_x_proj = nn.Linear(input_size, hidden_size * 2, bias=True)
        self.cand_x_proj = nn.Linear(input_size, hidden_size, bias=True)
        self.gate_h_proj = nn.Linear(hidden_size, hidden_size * 2, bias=False)
        self.cand_h_proj = nn.Linear(hidden_size, hidden_size, bias=False)
        self._init_weights()

    def _init_weights(self):
        super()._init_weights()
        with torch.no_grad():
            self.gate_x_proj.bias[:self.hidden_size].fill_(1.0)

    def forward(self, x: Tensor) -> Tensor:
        (h,) = self._initial_state(x.size(0), x.device, x.dtype)
        all_states, h = _gru_recurrence(
            self.gate_x_proj(x), self.cand_x_proj(x), h,
            self.gate_h_proj.weight.t(), self.cand_h_proj.weight.t(), self.hidden_size,
        )
        self._keep(h)
        return all_states


RECURRENT_LAYERS = {LayerKind.RNN: SimpleRNN, LayerKind.LSTM: LSTM, LayerKind.GRU: GRU}


def create_recurrent_layer(
    layer: RecurrentLayer,
    input_size: int,
    weight_init: WeightInit = WeightInit.XAVIERUNIFORM,
) -> _RecurrentBase:
    """Build the recurrent layer described by `layer`."""
    cls = RECURRENT_LAYERS[layer.kind]
    return cls(
        input_size,
        layer.units,
        remember_state=layer.remember_state,
        weight_init=weight_init,
    )
