"""
Training utilities for the recurrent classifiers.

Batches are (x, label, weight) triples; losses are weighted per event.
"""

import copy
import time
import numpy as np
import torch
import torch.nn as nn
import torch.optim as optim
from torch.utils.data import DataLoader, Dataset, random_split
from typing import Dict, Optional, Tuple
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TimeElapsedColumn


def train_epoch(
    model: nn.Module,
    loader: DataLoader,
    criterion: nn.Module,
    optimizer: optim.Optimizer,
    device: torch.device,
    max_grad_norm: float = None
) -> Tuple[float, float]:
    """Train for one epoch. Returns (loss, accuracy)."""
    model.train()
    total_loss = 0
    correct = 0
    total = 0

    for batch_x, batch_y, batch_w in loader:
        batch_x, batch_y, batch_w = batch_x.to(device), batch_y.to(device), batch_w.to(device)

        optimizer.zero_grad()
        output = model(batch_x)
        loss = criterion(output, batch_y, batch_w)
        loss.backward()

        if max_grad_norm is not None:
            nn.utils.clip_grad_norm_(model.parameters(), max_norm=max_grad_norm)

        optimizer.step()

        total_loss += loss.item() * batch_y.size(0)
        predicted = (output > 0).float()
        correct += predicted.eq(batch_y).sum().item()
        total += batch_y.size(0)

    return total_loss / total, 100. * correct / total


def evaluate(
    model: nn.Module,
    loader: DataLoader,
    criterion: nn.Module,
    device: torch.device
) -> Tuple[float, float]:
    """Evaluate model. Returns (loss, accuracy)."""
    model.eval()
    total_loss = 0
    correct = 0
    total = 0

    with torch.no_grad():
        for batch_x, batch_y, batch_w in loader:
            batch_x, batch_y, batch_w = batch_x.to(device), batch_y.to(device), batch_w.to(device)
            output = model(batch_x)
            loss = criterion(output, batch_y, batch_w)

            total_loss += loss.item() * batch_y.size(0)
            predicted = (output > 0).float()
            correct += predicted.eq(batch_y).sum().item()
            total += batch_y.size(0)

    return total_loss / total, 100. * correct / total


def predict_scores(
    model: nn.Module,
    dataset: Dataset,
    device: torch.device,
    batch_size: int = 1024
) -> np.ndarray:
    """Signal probability for every event of `dataset`, in dataset order."""
    model.eval()
    scores = []
    with torch.no_grad():
        for batch in DataLoader(dataset, batch_size=batch_size):
            output = model(batch[0].to(device))
            scores.append(torch.sigmoid(output).cpu())
    return torch.cat(scores).numpy()


def print_sample_predictions(
    model: nn.Module,
    dataset: Dataset,
    device: torch.device,
    console: Console,
    num_samples: int = 5,
    class_names: tuple = ("Background", "Signal"),
    scores: Optional[np.ndarray] = None
) -> None:
    """
    Print the first few predictions on `dataset` and the overall accuracy.

    `scores` are reused when already computed; otherwise the model is run.
    """
    if scores is None:
        scores = predict_scores(model, dataset, device)
    labels = np.array([int(dataset[i][1].item()) for i in range(len(dataset))])
    predicted = (scores > 0.5).astype(int)

    # spread the shown samples over both classes
    shown = np.linspace(0, len(dataset) - 1, num=min(num_samples, len(dataset))).astype(int)
    for n, i in enumerate(shown, start=1):
        status = "✓" if labels[i] == predicted[i] else "✗"
        console.print(
            f"  {status} Sample {n}: True={class_names[labels[i]]}, "
            f"Pred={class_names[predicted[i]]}, Score={scores[i]:.3f}"
        )

    correct = int((labels == predicted).sum())
    console.print(f"\nOverall Test Accuracy: {100. * correct / len(labels):.2f}% ({correct}/{len(labels)})")


def train_model(
    model: nn.Module,
    train_dataset: Dataset,
    training,
    criterion: nn.Module,
    optimizer: optim.Optimizer,
    device: torch.device = None,
    console: Optional[Console] = None,
    name: str = "model",
    verbose: bool = True
) -> Dict:
    """
    Train a model with early stopping on a held-out validation fraction.

    `training` supplies batch_size, max_epochs, validation_size,
    test_repetitions, convergence_steps, max_grad_norm and random_seed
    (see rnnclf.config.TrainingConfig). Training stops after
    `convergence_steps` validations without an improvement of the
    validation loss; the best weights are restored.

    Returns:
        Dict with: best_val_loss, epochs, train_losses, val_losses, val_accs,
        train_time, params
    """
    if device is None:
        device = torch.device('cuda' if torch.cuda.is_available() else 'cpu')
    console = console or Console()

    torch.manual_seed(training.random_seed)
    generator = torch.Generator().manual_seed(training.random_seed)

    n_total = len(train_dataset)
    val_size = int(training.validation_size * n_total)
    if 0 < val_size < n_total:
        fit_dataset, val_dataset = random_split(
            train_dataset, [n_total - val_size, val_size], generator=generator
        )
    else:
        fit_dataset, val_dataset = train_dataset, None

    train_loader = DataLoader(fit_dataset, batch_size=training.batch_size, shuffle=True, generator=generator)
    val_loader = DataLoader(val_dataset, batch_size=training.batch_size) if val_dataset is not None else None

    model = model.to(device)

    best_val_loss = float('inf')
    best_model_state = None
    patience_counter = 0
    train_losses, val_losses, val_accs = [], [], []
    epoch = 0

    start_time = time.time()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
        disable=not verbose
    ) as progress:
        task = progress.add_task(f"[cyan]{name}", total=training.max_epochs)

        for epoch in range(1, training.max_epochs + 1):
            train_loss, train_acc = train_epoch(
                model, train_loader, criterion, optimizer, device, max_grad_norm=training.max_grad_norm
            )
            train_losses.append(train_loss)

            if epoch % training.test_repetitions == 0:
                if val_loader is not None:
                    val_loss, val_acc = evaluate(model, val_loader, criterion, device)
                else:
                    val_loss, val_acc = train_loss, train_acc
                val_losses.append(val_loss)
                val_accs.append(val_acc)

                if val_loss < best_val_loss:
                    best_val_loss = val_loss
                    best_model_state = copy.deepcopy(model.state_dict())
                    patience_counter = 0
                else:
                    patience_counter += 1

            progress.update(
                task, advance=1,
                description=f"[cyan]{name} - Epoch {epoch} - Train: {train_acc:.1f}% "
                            f"Loss: {train_loss:.4f} (Best val: {best_val_loss:.4f})"
            )

            if patience_counter >= training.convergence_steps:
                if verbose:
                    console.print(f"[yellow]{name}: converged, stopping at epoch {epoch}[/yellow]")
                break

    train_time = time.time() - start_time

    if best_model_state is not None:
        model.load_state_dict(best_model_state)

    return {
        'best_val_loss': best_val_loss,
        'epochs': epoch,
        'train_losses': train_losses,
        'val_losses': val_losses,
        'val_accs': val_accs,
        'train_time': train_time,
        'params': count_parameters(model)
    }


def count_parameters(model: nn.Module) -> int:
    """Count trainable parameters."""
    return sum(p.numel() for p in model.parameters() if p.requires_grad)
