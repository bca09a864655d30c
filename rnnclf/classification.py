"""
Recurrent-network classification of the synthetic time-series dataset.

Generates the dataset if needed, declares one array variable per time
step, books one classifier per selected cell type (RNN, LSTM, GRU), then
trains, tests and evaluates them and draws the ROC curves.
"""

from pathlib import Path
from typing import Dict, Optional

import h5py
import matplotlib.pyplot as plt
from rich.console import Console

from rnnclf.config import (
    DenseLayer, LayerKind, NetworkConfig, RecurrentLayer, RunConfig,
    SplitConfig, TrainingConfig, TutorialConfig, WeightInit,
    configure_threads, layer_kinds_for,
)
from rnnclf.dataloader import BACKGROUND, SIGNAL, DatasetLoader
from rnnclf.factory import Factory
from utils.data import BACKGROUND_GROUP, SIGNAL_GROUP, branch_name, dataset_filename, make_time_data
from utils.stats import format_results


class DatasetError(RuntimeError):
    """The input dataset could not be created or opened."""


def build_network(kind: LayerKind, tutorial: TutorialConfig) -> NetworkConfig:
    """10-unit recurrent layer, flatten, 64-unit tanh dense layer, linear output."""
    return NetworkConfig(
        n_time=tutorial.n_time,
        n_dim=tutorial.n_dim,
        recurrent=RecurrentLayer(kind=kind, units=10, remember_state=False, return_sequence=True),
        dense=[DenseLayer(units=64)],
        weight_init=WeightInit.XAVIERUNIFORM,
    )


def build_training(tutorial: TutorialConfig) -> TrainingConfig:
    return TrainingConfig(
        learning_rate=1e-3,
        momentum=0.0,
        batch_size=tutorial.batch_size,
        max_epochs=tutorial.max_epochs,
        convergence_steps=5,
        test_repetitions=1,
        weight_decay=1e-2,
        validation_size=0.2,
        random_seed=1234,
    )


def open_dataset(
    tutorial: TutorialConfig,
    run: RunConfig,
    seed: Optional[int] = None,
    console: Optional[Console] = None,
) -> h5py.File:
    """Open the tutorial dataset, generating it first if it does not exist."""
    path = Path(run.output_dir) / dataset_filename(tutorial.n_time, tutorial.n_dim)
    if not path.exists():
        try:
            make_time_data(
                tutorial.n_events, tutorial.n_time, tutorial.n_dim,
                output_dir=run.output_dir, seed=seed, console=console, verbose=run.verbose,
            )
        except OSError as e:
            raise DatasetError(f"Error creating input file {path}: {e}") from e
    try:
        return h5py.File(path, "r")
    except OSError as e:
        raise DatasetError(f"Error opening input file {path}: {e}") from e


def training_events(tutorial: TutorialConfig, loader: DatasetLoader) -> int:
    """
    Training events per class: `train_fraction` of the requested events, or
    of the events actually stored when a reused file holds fewer.
    """
    available = min(loader.n_events(SIGNAL), loader.n_events(BACKGROUND))
    n_train = int(tutorial.train_fraction * min(tutorial.n_events, available))
    if n_train < 1 or n_train >= available:
        raise DatasetError(
            f"Input file holds {available} events per class, too few for a "
            f"{tutorial.train_fraction:.0%} training split"
        )
    return n_train


def run_rnn_classification(
    use_type: int = 1,
    tutorial: TutorialConfig = TutorialConfig(),
    run: RunConfig = RunConfig(),
    seed: Optional[int] = None,
    console: Optional[Console] = None,
) -> Dict[str, Dict]:
    """
    Train and evaluate recurrent classifiers on the time-series dataset.

    Args:
        use_type: 0 = simple RNN, 1 = LSTM, 2 = GRU, 3 = all three.
        tutorial: Data shape, sample size and training length.
        run: Threads, device, verbosity and output location.
        seed: Seed for generating the dataset (None = system entropy).

    Returns:
        Evaluation results per booked method.
    """
    console = console or Console(quiet=run.silent)
    Path(run.output_dir).mkdir(parents=True, exist_ok=True)
    n_threads = configure_threads(run)
    if run.verbose:
        console.print(f"Running with nthreads = {n_threads}")

    input_file = open_dataset(tutorial, run, seed=seed, console=console)
    with input_file:
        if run.verbose:
            console.print(f"--- RNNClassification : Using input file: {input_file.filename}")

        loader = DatasetLoader("dataset")
        for j in range(tutorial.n_time):
            loader.add_variables_array(branch_name(j), tutorial.n_dim)
        try:
            loader.add_signal_tree(input_file[SIGNAL_GROUP], 1.0)
            loader.add_background_tree(input_file[BACKGROUND_GROUP], 1.0)
        except KeyError as e:
            raise DatasetError(f"Input file {input_file.filename} is missing data: {e}") from e

    if run.verbose:
        console.print(f"number of variables is {len(loader.variables)}")

    n_train = training_events(tutorial, loader)
    if run.verbose and n_train != tutorial.n_train:
        console.print(
            f"[yellow]Input file holds fewer than {tutorial.n_events} events per class, "
            f"training on {n_train}[/yellow]"
        )
    loader.prepare_training_and_test_tree(SplitConfig(
        n_train_signal=n_train,
        n_train_background=n_train,
        split_seed=100,
    ))
    if run.verbose:
        console.print(f"prepared DATA LOADER {loader.summary()}")

    factory = Factory("RNNClassification", run, console=console)
    training = build_training(tutorial)
    for kind in layer_kinds_for(use_type):
        factory.book_method(loader, f"DL_{kind.value}", build_network(kind, tutorial), training)

    factory.train_all_methods()
    factory.test_all_methods()
    results = factory.evaluate_all_methods()

    output_dir = Path(run.output_dir)
    fig = factory.get_roc_curve(loader, path=output_dir / f"roc_curve_{run.architecture}.png")
    plt.close(fig)
    factory.write_output(output_dir / f"data_RNN_{run.architecture}.h5")
    (output_dir / f"results_RNN_{run.architecture}.txt").write_text(format_results(results) + "\n")

    return results
