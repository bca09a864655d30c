"""
Typed configuration for recurrent time-series classification.

Network layouts, training strategies and data splits are plain pydantic
models validated on construction. A run-wide `RunConfig` carries the
settings (threads, device, verbosity, output location) that are passed
explicitly to every step of a run.
"""

import os
from enum import Enum
from pathlib import Path
from typing import List, Tuple

import torch
from pydantic import BaseModel, ConfigDict, Field, PositiveInt, model_validator


class LayerKind(str, Enum):
    """Recurrent cell types. RNN is the simple (Elman) recurrent cell."""
    RNN = "RNN"
    LSTM = "LSTM"
    GRU = "GRU"


class Activation(str, Enum):
    TANH = "TANH"
    RELU = "RELU"
    SIGMOID = "SIGMOID"
    LINEAR = "LINEAR"


class WeightInit(str, Enum):
    XAVIER = "XAVIER"
    XAVIERUNIFORM = "XAVIERUNIFORM"
    GAUSS = "GAUSS"
    UNIFORM = "UNIFORM"
    ORTHOGONAL = "ORTHOGONAL"


class OptimizerKind(str, Enum):
    SGD = "SGD"
    ADAM = "ADAM"
    ADAGRAD = "ADAGRAD"
    RMSPROP = "RMSPROP"
    ADADELTA = "ADADELTA"


class ErrorStrategy(str, Enum):
    CROSSENTROPY = "CROSSENTROPY"
    SUMOFSQUARES = "SUMOFSQUARES"


class SplitMode(str, Enum):
    RANDOM = "Random"
    ALTERNATE = "Alternate"
    BLOCK = "Block"


class NormMode(str, Enum):
    NUM_EVENTS = "NumEvents"
    EQUAL_NUM_EVENTS = "EqualNumEvents"
    NONE = "None"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# =============================================================================
# NETWORK LAYOUT
# =============================================================================


class RecurrentLayer(_Frozen):
    """
    Recurrent layer settings.

    Args:
        kind: Cell type (RNN, LSTM or GRU).
        units: Hidden state size.
        remember_state: Carry the last hidden state over to the next batch.
        return_sequence: Emit the hidden state of every time step.
    """
    kind: LayerKind
    units: PositiveInt = 10
    remember_state: bool = False
    return_sequence: bool = True


class DenseLayer(_Frozen):
    units: PositiveInt = 64
    activation: Activation = Activation.TANH


class NetworkConfig(_Frozen):
    """
    Full classifier layout: input (n_time x n_dim) -> recurrent layer ->
    flatten -> dense stack -> single linear output.
    """
    n_time: PositiveInt
    n_dim: PositiveInt
    recurrent: RecurrentLayer
    dense: List[DenseLayer] = Field(default_factory=lambda: [DenseLayer()])
    weight_init: WeightInit = WeightInit.XAVIERUNIFORM

    @property
    def input_layout(self) -> Tuple[int, int]:
        return (self.n_time, self.n_dim)

    @property
    def flat_size(self) -> int:
        """Width of the flattened recurrent output fed to the dense stack."""
        if self.recurrent.return_sequence:
            return self.n_time * self.recurrent.units
        return self.recurrent.units

    def layout_string(self) -> str:
        """Render the layout in the toolkit's compact `Layout=` notation."""
        rnn = self.recurrent
        parts = [
            f"{rnn.kind.value}|{rnn.units}|{self.n_dim}|{self.n_time}|"
            f"{int(rnn.remember_state)}|{int(rnn.return_sequence)}",
            "RESHAPE|FLAT",
        ]
        parts += [f"DENSE|{d.units}|{d.activation.value}" for d in self.dense]
        parts.append("LINEAR")
        return ",".join(parts)


# =============================================================================
# TRAINING STRATEGY
# =============================================================================


class TrainingConfig(_Frozen):
    """
    Training strategy for one booked method.

    convergence_steps is the number of validations without improvement
    after which training stops; test_repetitions is the epoch interval
    between validations.
    """
    learning_rate: float = Field(default=1e-3, gt=0)
    momentum: float = Field(default=0.0, ge=0, lt=1)
    batch_size: PositiveInt = 100
    max_epochs: PositiveInt = 20
    convergence_steps: PositiveInt = 5
    test_repetitions: PositiveInt = 1
    weight_decay: float = Field(default=1e-2, ge=0)
    optimizer: OptimizerKind = OptimizerKind.ADAM
    error_strategy: ErrorStrategy = ErrorStrategy.CROSSENTROPY
    validation_size: float = Field(default=0.2, ge=0, lt=1)
    random_seed: int = 1234
    max_grad_norm: float = Field(default=1.0, gt=0)


# =============================================================================
# DATA SPLIT
# =============================================================================


class SplitConfig(_Frozen):
    """Per-class train/test partition. A zero test count takes all remaining events."""
    n_train_signal: PositiveInt
    n_train_background: PositiveInt
    n_test_signal: int = Field(default=0, ge=0)
    n_test_background: int = Field(default=0, ge=0)
    split_mode: SplitMode = SplitMode.RANDOM
    split_seed: int = 100
    norm_mode: NormMode = NormMode.NUM_EVENTS


# =============================================================================
# RUN SETTINGS
# =============================================================================


class RunConfig(_Frozen):
    """
    Settings shared by every step of a run.

    n_threads: 0 uses all available threads, a positive value pins the
    pool size, a negative value forces single-threaded execution.
    """
    n_threads: int = 0
    use_gpu: bool = True
    verbose: bool = True
    silent: bool = False
    write_output_file: bool = True
    model_persistence: bool = True
    output_dir: Path = Path(".")

    @property
    def architecture(self) -> str:
        return "GPU" if self.use_gpu and torch.cuda.is_available() else "CPU"

    @property
    def device(self) -> torch.device:
        return torch.device("cuda" if self.architecture == "GPU" else "cpu")


class TutorialConfig(_Frozen):
    """Constants of the tutorial: data shape, sample size and training length."""
    n_dim: PositiveInt = 30
    n_time: PositiveInt = 10
    n_events: PositiveInt = 10000
    batch_size: PositiveInt = 100
    max_epochs: PositiveInt = 20
    train_fraction: float = Field(default=0.8, gt=0, lt=1)

    @model_validator(mode="after")
    def _check_split(self):
        if int(self.train_fraction * self.n_events) < 1:
            raise ValueError("train_fraction leaves no training events")
        return self

    @property
    def n_train(self) -> int:
        return int(self.train_fraction * self.n_events)


def layer_kinds_for(use_type: int) -> List[LayerKind]:
    """
    Map the tutorial's integer selector to the cell types to book.

    0 -> RNN, 1 -> LSTM, 2 -> GRU, anything else -> all three.
    """
    kinds = list(LayerKind)
    if 0 <= use_type < len(kinds):
        return [kinds[use_type]]
    return kinds


def configure_threads(run: RunConfig) -> int:
    """Apply the run's thread setting to torch and return the pool size."""
    if run.n_threads > 0:
        torch.set_num_threads(run.n_threads)
        os.environ["OMP_NUM_THREADS"] = str(run.n_threads)
    elif run.n_threads < 0:
        torch.set_num_threads(1)
        os.environ["OMP_NUM_THREADS"] = "1"
    return torch.get_num_threads()
