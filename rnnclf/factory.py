"""
Factory: books classification methods on a data loader, then trains,
tests and evaluates them and draws their ROC curves.

Calls must follow the order book -> train -> test -> evaluate.
"""

import json
from pathlib import Path
from typing import Dict, List, Optional

import h5py
import numpy as np
import torch
from matplotlib.figure import Figure
from rich.console import Console
from rich.table import Table

from rnnclf.config import NetworkConfig, RunConfig, TrainingConfig
from rnnclf.dataloader import DatasetLoader
from rnnclf.model import RecurrentClassifier, create_classifier
from rnnclf.optimization import build_criterion, build_optimizer
from utils import stats
from utils.plotting import plot_roc_curves
from utils.training import count_parameters, predict_scores, print_sample_predictions, train_model


WORKING_POINTS = (0.01, 0.10, 0.30)


class BookedMethod:
    """A classifier booked on a data loader, with its training and test outcome."""

    def __init__(
        self,
        name: str,
        loader: DatasetLoader,
        network: NetworkConfig,
        training: TrainingConfig,
        model: RecurrentClassifier,
    ):
        self.name = name
        self.loader = loader
        self.network = network
        self.training = training
        self.model = model
        self.history: Optional[Dict] = None
        self.train_scores: Optional[np.ndarray] = None
        self.test_scores: Optional[np.ndarray] = None
        self.weights_path: Optional[Path] = None

    @property
    def is_trained(self) -> bool:
        return self.history is not None

    @property
    def is_tested(self) -> bool:
        return self.test_scores is not None


class Factory:
    """
    Drives a classification job.

    Args:
        job_name: Prefix of the weight files and output file entries.
        run: Run-wide settings (device, verbosity, output location).
        console: Rich console for progress output.
    """

    def __init__(self, job_name: str, run: RunConfig = RunConfig(), console: Optional[Console] = None):
        self.job_name = job_name
        self.run = run
        self.console = console or Console(quiet=run.silent)
        self.device = run.device
        self.methods: Dict[str, BookedMethod] = {}
        self.results: Dict[str, Dict] = {}

    def _print(self, *args, **kwargs):
        if self.run.verbose:
            self.console.print(*args, **kwargs)

    def _require(self, check, message: str) -> List[BookedMethod]:
        if not self.methods:
            raise RuntimeError("No methods booked")
        missing = [m.name for m in self.methods.values() if not check(m)]
        if missing:
            raise RuntimeError(f"{message}: {', '.join(missing)}")
        return list(self.methods.values())

    # ------------------------------------------------------------------ booking

    def book_method(
        self,
        loader: DatasetLoader,
        name: str,
        network: NetworkConfig,
        training: TrainingConfig = TrainingConfig(),
    ) -> BookedMethod:
        """Book a recurrent classifier under `name`."""
        if name in self.methods:
            raise ValueError(f"Method {name} already booked")
        if network.input_layout != loader.input_layout:
            raise ValueError(
                f"Network input layout {network.input_layout} does not match "
                f"the loader's variables {loader.input_layout}"
            )

        torch.manual_seed(training.random_seed)
        model = create_classifier(network, device=self.device)
        method = BookedMethod(name, loader, network, training, model)
        self.methods[name] = method

        self._print(f"\n[bold cyan]Booked {name}[/bold cyan]")
        self._print(f"[green]Layout:[/green] {network.layout_string()}")
        self._print(f"[yellow]Parameters:[/yellow] {count_parameters(model):,}")
        return method

    # ------------------------------------------------------------------ training

    def train_all_methods(self) -> None:
        """Train every booked method and persist its weights."""
        for method in self._require(lambda m: m.loader.is_prepared, "Data not prepared for"):
            self._print(f"\n[bold cyan]Training {method.name}[/bold cyan] on {self.run.architecture}")
            method.history = train_model(
                method.model,
                method.loader.train_dataset,
                method.training,
                build_criterion(method.training),
                build_optimizer(method.model, method.training),
                device=self.device,
                console=self.console,
                name=method.name,
                verbose=self.run.verbose,
            )
            self._print(
                f"[green]✓[/green] {method.name} trained - {method.history['epochs']} epochs, "
                f"best validation loss {method.history['best_val_loss']:.4f}, "
                f"{method.history['train_time']:.1f}s"
            )
            if self.run.model_persistence:
                method.weights_path = self._save_weights(method)

    def _save_weights(self, method: BookedMethod) -> Path:
        weights_dir = Path(self.run.output_dir) / method.loader.name / "weights"
        weights_dir.mkdir(parents=True, exist_ok=True)
        path = weights_dir / f"{self.job_name}_{method.name}.pt"
        torch.save({
            'state_dict': method.model.state_dict(),
            'network': json.loads(method.network.model_dump_json()),
            'training': json.loads(method.training.model_dump_json()),
        }, path)
        self._print(f"  Weights written to {path}")
        return path

    # ------------------------------------------------------------------ testing

    def test_all_methods(self) -> None:
        """Score the training and test sets with every trained method."""
        for method in self._require(lambda m: m.is_trained, "Methods not trained"):
            method.train_scores = predict_scores(method.model, method.loader.train_dataset, self.device)
            method.test_scores = predict_scores(method.model, method.loader.test_dataset, self.device)
            if self.run.verbose:
                self.console.print(f"\n[bold yellow]Testing {method.name} on the test sample...[/bold yellow]")
                print_sample_predictions(
                    method.model, method.loader.test_dataset, self.device, self.console,
                    scores=method.test_scores,
                )

    # ------------------------------------------------------------------ evaluation

    def evaluate_all_methods(self) -> Dict[str, Dict]:
        """Compute ROC integral, working-point efficiencies, separation and overtraining tests."""
        for method in self._require(lambda m: m.is_tested, "Methods not tested"):
            test = method.loader.test_dataset.tensors
            train = method.loader.train_dataset.tensors
            y_test, w_test = test[1].numpy(), test[2].numpy()
            y_train = train[1].numpy()
            s_test, s_train = method.test_scores, method.train_scores

            result = {
                'roc_integral': stats.roc_integral(y_test, s_test, w_test),
                'separation': stats.separation(s_test[y_test == 1], s_test[y_test == 0]),
                'ks_signal': stats.overtraining_test(s_train[y_train == 1], s_test[y_test == 1]),
                'ks_background': stats.overtraining_test(s_train[y_train == 0], s_test[y_test == 0]),
                'test_acc': 100. * float(((s_test > 0.5) == (y_test == 1)).mean()),
                'params': count_parameters(method.model),
                'epochs': method.history['epochs'],
                'train_time': method.history['train_time'],
            }
            for point in WORKING_POINTS:
                result[f'sig_eff_at_{point:.2f}'] = stats.signal_efficiency_at(y_test, s_test, point, w_test)
            self.results[method.name] = result

        if self.run.verbose:
            self._print_results()
        return self.results

    def _print_results(self):
        table = Table(title="Evaluation results (test sample)", show_header=True, header_style="bold magenta")
        table.add_column("Method", style="cyan")
        table.add_column("Parameters", justify="right", style="green")
        table.add_column("ROC integral", justify="right", style="blue")
        for point in WORKING_POINTS:
            table.add_column(f"εS @ εB={point:.2f}", justify="right", style="blue")
        table.add_column("Separation", justify="right")
        table.add_column("KS sig / bkg", justify="right", style="yellow")
        table.add_column("Train Time", justify="right", style="yellow")

        for name, r in self.results.items():
            table.add_row(
                name,
                f"{r['params']:,}",
                f"{r['roc_integral']:.3f}",
                *[f"{r[f'sig_eff_at_{p:.2f}']:.3f}" for p in WORKING_POINTS],
                f"{r['separation']:.3f}",
                f"{r['ks_signal']:.3f} / {r['ks_background']:.3f}",
                f"{r['train_time']:.1f}s",
            )
        self.console.print(table)

        winner = max(self.results.items(), key=lambda x: x[1]['roc_integral'])
        self.console.print(f"\n[bold green]Best ROC integral: {winner[0]} ({winner[1]['roc_integral']:.3f})[/bold green]")

    # ------------------------------------------------------------------ output

    def get_roc_curve(self, loader: DatasetLoader, path=None) -> Figure:
        """ROC curves of all tested methods booked on `loader`."""
        methods = [m for m in self.methods.values() if m.loader is loader]
        if not methods:
            raise ValueError(f"No methods booked on loader {loader.name}")
        curves = {}
        for method in methods:
            if not method.is_tested:
                raise RuntimeError(f"Method {method.name} not tested")
            _, y, w = method.loader.test_dataset.tensors
            y, w = y.numpy(), w.numpy()
            sig_eff, bkg_rej = stats.roc_curve(y, method.test_scores, w)
            curves[method.name] = (sig_eff, bkg_rej, stats.roc_integral(y, method.test_scores, w))
        return plot_roc_curves(curves, path=path, title=f"ROC curves - {loader.name}")

    def write_output(self, path) -> Optional[Path]:
        """Store class ids, weights and per-method scores of the train and test samples."""
        if not self.run.write_output_file:
            return None
        methods = self._require(lambda m: m.is_tested, "Methods not tested")
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with h5py.File(path, "w") as f:
            for method in methods:
                group = f.require_group(method.loader.name)
                for tree_name, dataset, scores in (
                    ("TrainTree", method.loader.train_dataset, method.train_scores),
                    ("TestTree", method.loader.test_dataset, method.test_scores),
                ):
                    tree = group.require_group(tree_name)
                    _, y, w = dataset.tensors
                    if "classID" not in tree:
                        # signal is class 0, as in the toolkit's trees
                        tree.create_dataset("classID", data=(1 - y.numpy()).astype(np.int32))
                        tree.create_dataset("weight", data=w.numpy())
                    tree.create_dataset(method.name, data=scores.astype(np.float32))
        self._print(f"  Output written to {path}")
        return path
