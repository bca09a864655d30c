"""
Loss functions and optimizers selected by a `TrainingConfig`.
"""

import torch
import torch.nn as nn
import torch.optim as optim

from rnnclf.config import ErrorStrategy, OptimizerKind, TrainingConfig


class WeightedLoss(nn.Module):
    """Per-event weighted loss on single-logit outputs."""

    def __init__(self, error_strategy: ErrorStrategy = ErrorStrategy.CROSSENTROPY):
        super().__init__()
        self.error_strategy = error_strategy
        if error_strategy == ErrorStrategy.CROSSENTROPY:
            self._loss = nn.BCEWithLogitsLoss(reduction='none')
        else:
            self._loss = nn.MSELoss(reduction='none')

    def forward(self, logits: torch.Tensor, target: torch.Tensor, weight: torch.Tensor) -> torch.Tensor:
        if self.error_strategy == ErrorStrategy.SUMOFSQUARES:
            per_event = self._loss(torch.sigmoid(logits), target)
        else:
            per_event = self._loss(logits, target)
        return (per_event * weight).sum() / weight.sum()


def build_criterion(training: TrainingConfig) -> WeightedLoss:
    return WeightedLoss(training.error_strategy)


def build_optimizer(model: nn.Module, training: TrainingConfig) -> optim.Optimizer:
    """Create the optimizer named in the training strategy."""
    params = model.parameters()
    lr, wd = training.learning_rate, training.weight_decay
    if training.optimizer == OptimizerKind.ADAM:
        return optim.Adam(params, lr=lr, weight_decay=wd)
    if training.optimizer == OptimizerKind.SGD:
        return optim.SGD(params, lr=lr, momentum=training.momentum, weight_decay=wd)
    if training.optimizer == OptimizerKind.ADAGRAD:
        return optim.Adagrad(params, lr=lr, weight_decay=wd)
    if training.optimizer == OptimizerKind.RMSPROP:
        return optim.RMSprop(params, lr=lr, momentum=training.momentum, weight_decay=wd)
    if training.optimizer == OptimizerKind.ADADELTA:
        return optim.Adadelta(params, lr=lr, weight_decay=wd)
    raise ValueError(f"Unknown optimizer: {training.optimizer}")
