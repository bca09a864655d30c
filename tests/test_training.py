"""Tests for the training loops and optimizer/loss selection."""

import pytest
import torch
from torch.utils.data import DataLoader, TensorDataset

from rnnclf.config import (
    ErrorStrategy, LayerKind, NetworkConfig, OptimizerKind, RecurrentLayer, TrainingConfig,
)
from rnnclf.model import RecurrentClassifier
from rnnclf.optimization import WeightedLoss, build_criterion, build_optimizer
from utils.training import count_parameters, evaluate, predict_scores, train_epoch, train_model


def _separable_dataset(n=64, n_time=4, n_dim=3, seed=0):
    g = torch.Generator().manual_seed(seed)
    y = (torch.arange(n) % 2).float()
    x = torch.randn(n, n_time, n_dim, generator=g) + (2 * y - 1).view(-1, 1, 1)
    return TensorDataset(x, y, torch.ones(n))


def _model(kind=LayerKind.GRU):
    torch.manual_seed(0)
    network = NetworkConfig(n_time=4, n_dim=3, recurrent=RecurrentLayer(kind=kind, units=4))
    return RecurrentClassifier(network)


def test_weighted_loss_matches_bce():
    logits = torch.tensor([0.5, -1.0, 2.0])
    target = torch.tensor([1.0, 0.0, 0.0])
    loss = WeightedLoss()(logits, target, torch.ones(3))
    expected = torch.nn.functional.binary_cross_entropy_with_logits(logits, target)
    torch.testing.assert_close(loss, expected)


def test_weighted_loss_uses_weights():
    logits = torch.tensor([5.0, 5.0])
    target = torch.tensor([1.0, 0.0])
    loss_fn = WeightedLoss()
    low = loss_fn(logits, target, torch.tensor([1.0, 0.0]))
    high = loss_fn(logits, target, torch.tensor([0.0, 1.0]))
    assert low < high


def test_sum_of_squares():
    loss_fn = build_criterion(TrainingConfig(error_strategy=ErrorStrategy.SUMOFSQUARES))
    loss = loss_fn(torch.tensor([0.0]), torch.tensor([1.0]), torch.ones(1))
    assert loss.item() == pytest.approx(0.25)


@pytest.mark.parametrize("kind, cls", [
    (OptimizerKind.ADAM, torch.optim.Adam),
    (OptimizerKind.SGD, torch.optim.SGD),
    (OptimizerKind.ADAGRAD, torch.optim.Adagrad),
    (OptimizerKind.RMSPROP, torch.optim.RMSprop),
    (OptimizerKind.ADADELTA, torch.optim.Adadelta),
])
def test_build_optimizer(kind, cls):
    optimizer = build_optimizer(_model(), TrainingConfig(optimizer=kind, weight_decay=1e-2))
    assert isinstance(optimizer, cls)
    assert optimizer.defaults['weight_decay'] == 1e-2


def test_train_epoch_reduces_loss():
    model = _model()
    dataset = _separable_dataset()
    loader = DataLoader(dataset, batch_size=16)
    criterion = WeightedLoss()
    optimizer = torch.optim.Adam(model.parameters(), lr=1e-2)

    before, _ = evaluate(model, loader, criterion, torch.device('cpu'))
    for _ in range(10):
        train_epoch(model, loader, criterion, optimizer, torch.device('cpu'), max_grad_norm=1.0)
    after, acc = evaluate(model, loader, criterion, torch.device('cpu'))
    assert after < before
    assert acc > 80.0


def test_train_model_early_stopping_and_history():
    model = _model(LayerKind.LSTM)
    training = TrainingConfig(
        learning_rate=1e-2, batch_size=16, max_epochs=6, convergence_steps=2, validation_size=0.25
    )
    history = train_model(
        model, _separable_dataset(), training,
        build_criterion(training), build_optimizer(model, training),
        device=torch.device('cpu'), verbose=False,
    )
    assert 1 <= history['epochs'] <= 6
    assert len(history['train_losses']) == history['epochs']
    assert len(history['val_losses']) == history['epochs']
    assert history['best_val_loss'] == min(history['val_losses'])
    assert history['params'] == count_parameters(model)


def test_train_model_stops_when_not_improving():
    model = _model(LayerKind.RNN)
    training = TrainingConfig(
        learning_rate=1e-12, optimizer=OptimizerKind.SGD, batch_size=16,
        max_epochs=50, convergence_steps=1, validation_size=0.25,
    )
    history = train_model(
        model, _separable_dataset(), training,
        build_criterion(training), build_optimizer(model, training),
        device=torch.device('cpu'), verbose=False,
    )
    assert history['epochs'] < 50


def test_test_repetitions():
    model = _model()
    training = TrainingConfig(batch_size=16, max_epochs=4, test_repetitions=2, convergence_steps=5)
    history = train_model(
        model, _separable_dataset(), training,
        build_criterion(training), build_optimizer(model, training),
        device=torch.device('cpu'), verbose=False,
    )
    assert len(history['train_losses']) == 4
    assert len(history['val_losses']) == 2


def test_predict_scores_order_and_range():
    model = _model()
    dataset = _separable_dataset(n=10)
    scores = predict_scores(model, dataset, torch.device('cpu'), batch_size=3)
    assert scores.shape == (10,)
    assert ((scores >= 0) & (scores <= 1)).all()
    expected = model.predict_proba(dataset.tensors[0]).numpy()
    assert scores == pytest.approx(expected, abs=1e-6)
