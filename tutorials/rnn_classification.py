#!/usr/bin/env python3
"""
Classification of time series with recurrent neural networks.

Trains a simple RNN, an LSTM or a GRU (or all three) to separate signal
from background on a toy time-series dataset of ntime x ndim features per
event. The dataset is generated on the first run:

    python tutorials/rnn_classification.py --use-type 1

use_type = 0    simple RNN
use_type = 1    LSTM
use_type = 2    GRU
use_type = 3    all three networks
"""

import argparse
import os
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from rnnclf.classification import DatasetError, run_rnn_classification
from rnnclf.config import RunConfig, TutorialConfig, layer_kinds_for

console = Console()

RNN_CONFIG = {
    'n_dim': 30,
    'n_time': 10,
    'n_events': 10000,  # per class
    'batch_size': 100,
    'max_epochs': 20,
}


def main(argv=None):
    parser = argparse.ArgumentParser(description='Time-series classification with recurrent networks')
    parser.add_argument('--use-type', type=int, default=1,
                        help='0 = RNN, 1 = LSTM, 2 = GRU, 3 = all three')
    parser.add_argument('--events', type=int, default=RNN_CONFIG['n_events'],
                        help='Events to generate per class')
    parser.add_argument('--epochs', type=int, default=RNN_CONFIG['max_epochs'], help='Maximum epochs')
    parser.add_argument('--threads', type=int, default=0,
                        help='Thread pool size (0 = all, negative = single thread)')
    parser.add_argument('--seed', type=int, default=None, help='Seed for the generated dataset')
    parser.add_argument('--output-dir', type=Path, default=Path('.'), help='Where data and results go')
    parser.add_argument('--cpu', action='store_true', help='Do not use a GPU even if available')
    args = parser.parse_args(argv)

    tutorial = TutorialConfig(**{**RNN_CONFIG, 'n_events': args.events, 'max_epochs': args.epochs})
    run = RunConfig(n_threads=args.threads, use_gpu=not args.cpu, output_dir=args.output_dir)

    kinds = ", ".join(k.value for k in layer_kinds_for(args.use_type))
    console.print(Panel.fit(
        "[bold cyan]Time-Series Classification with Recurrent Networks[/bold cyan]\n"
        f"[yellow]Networks: {kinds}[/yellow]\n"
        f"[dim]Events: {tutorial.n_events} | Time steps: {tutorial.n_time} | "
        f"Features: {tutorial.n_dim} | Architecture: {run.architecture}[/dim]",
        border_style="blue"
    ))

    try:
        run_rnn_classification(args.use_type, tutorial, run, seed=args.seed, console=console)
    except DatasetError as e:
        console.print(f"[bold red]Error:[/bold red] {e} - exit")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
