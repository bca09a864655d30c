"""
Data loader: declares the input variables, collects the weighted signal
and background samples and partitions them into training and test sets.

Inputs are mappings of branch name -> (n_events, width) arrays, so an
open h5py group from `utils.data.make_time_data` can be passed directly.
"""

import numpy as np
import torch
from typing import Dict, List, Mapping, NamedTuple, Optional, Tuple
from torch.utils.data import TensorDataset

from rnnclf.config import NormMode, SplitConfig, SplitMode


SIGNAL = "Signal"
BACKGROUND = "Background"


class VariableArray(NamedTuple):
    name: str
    width: int


class _ClassInput(NamedTuple):
    data: np.ndarray  # (n_events, n_arrays, width)
    weight: float


class _Partition(NamedTuple):
    x: np.ndarray
    y: np.ndarray
    w: np.ndarray


class DatasetLoader:
    """
    Collects inputs for a two-class (signal/background) training.

    Usage:
        loader = DatasetLoader("dataset")
        for j in range(n_time):
            loader.add_variables_array(f"vars_time{j}", n_dim)
        loader.add_signal_tree(f["sgn"], 1.0)
        loader.add_background_tree(f["bkg"], 1.0)
        loader.prepare_training_and_test_tree(split)
    """

    def __init__(self, name: str = "dataset"):
        self.name = name
        self._arrays: List[VariableArray] = []
        self._inputs: Dict[str, List[_ClassInput]] = {SIGNAL: [], BACKGROUND: []}
        self._train: Optional[_Partition] = None
        self._test: Optional[_Partition] = None
        self._counts: Dict[str, Dict[str, int]] = {}

    # ------------------------------------------------------------------ variables

    def add_variables_array(self, name: str, width: int) -> None:
        """Declare an array-valued input variable of `width` entries."""
        if any(self._inputs.values()):
            raise RuntimeError(f"Cannot declare {name} after inputs have been added")
        if width <= 0:
            raise ValueError(f"Variable array {name} must have positive width, got {width}")
        if any(a.name == name for a in self._arrays):
            raise ValueError(f"Variable array {name} already declared")
        self._arrays.append(VariableArray(name, width))

    @property
    def variable_arrays(self) -> List[VariableArray]:
        return list(self._arrays)

    @property
    def variables(self) -> List[str]:
        """Expanded variable names, e.g. vars_time0[0] ... vars_time9[29]."""
        return [f"{a.name}[{k}]" for a in self._arrays for k in range(a.width)]

    @property
    def input_layout(self) -> Tuple[int, int]:
        """(number of arrays, width) - all arrays must share one width."""
        if not self._arrays:
            raise RuntimeError("No variables declared")
        widths = {a.width for a in self._arrays}
        if len(widths) != 1:
            raise ValueError(f"Variable arrays have differing widths: {sorted(widths)}")
        return (len(self._arrays), widths.pop())

    # ------------------------------------------------------------------ inputs

    def _read(self, tree: Mapping[str, np.ndarray]) -> np.ndarray:
        if not self._arrays:
            raise RuntimeError("Declare variables before adding inputs")
        columns = []
        n_events = None
        for array in self._arrays:
            if array.name not in tree:
                raise KeyError(f"Branch {array.name} not found in input")
            column = np.asarray(tree[array.name][()], dtype=np.float32)
            if column.ndim != 2 or column.shape[1] != array.width:
                raise ValueError(
                    f"Branch {array.name} has shape {column.shape}, expected (n, {array.width})"
                )
            if n_events is not None and column.shape[0] != n_events:
                raise ValueError(f"Branch {array.name} has {column.shape[0]} entries, expected {n_events}")
            n_events = column.shape[0]
            columns.append(column)
        return np.stack(columns, axis=1)

    def _add(self, class_name: str, tree: Mapping[str, np.ndarray], weight: float) -> None:
        if weight <= 0:
            raise ValueError(f"{class_name} weight must be positive, got {weight}")
        self._inputs[class_name].append(_ClassInput(self._read(tree), float(weight)))
        self._train = self._test = None

    def add_signal_tree(self, tree: Mapping[str, np.ndarray], weight: float = 1.0) -> None:
        self._add(SIGNAL, tree, weight)

    def add_background_tree(self, tree: Mapping[str, np.ndarray], weight: float = 1.0) -> None:
        self._add(BACKGROUND, tree, weight)

    def n_events(self, class_name: str) -> int:
        return sum(len(inp.data) for inp in self._inputs[class_name])

    # ------------------------------------------------------------------ split

    @staticmethod
    def _order(n: int, split: SplitConfig, rng: np.random.Generator) -> np.ndarray:
        if split.split_mode == SplitMode.RANDOM:
            return rng.permutation(n)
        if split.split_mode == SplitMode.ALTERNATE:
            # even entries first, so training alternates with testing
            idx = np.arange(n)
            return np.concatenate([idx[0::2], idx[1::2]])
        return np.arange(n)

    def _split_class(self, class_name, n_train, n_test, split, rng):
        inputs = self._inputs[class_name]
        if not inputs:
            raise RuntimeError(f"No {class_name.lower()} input added")
        data = np.concatenate([inp.data for inp in inputs])
        weights = np.concatenate([np.full(len(inp.data), inp.weight, dtype=np.float32) for inp in inputs])

        n_total = len(data)
        if n_test == 0:
            n_test = n_total - n_train
        if n_train + n_test > n_total or n_test <= 0:
            raise ValueError(
                f"Requested {n_train} train + {n_test} test {class_name.lower()} events, "
                f"only {n_total} available"
            )

        order = self._order(n_total, split, rng)
        train_idx = order[:n_train]
        test_idx = order[n_train:n_train + n_test]

        self._counts[class_name] = {"train": n_train, "test": n_test}
        return (data[train_idx], weights[train_idx]), (data[test_idx], weights[test_idx])

    @staticmethod
    def _normalise(sig_w: np.ndarray, bkg_w: np.ndarray, mode: NormMode) -> Tuple[np.ndarray, np.ndarray]:
        if mode == NormMode.NUM_EVENTS:
            return sig_w * (len(sig_w) / sig_w.sum()), bkg_w * (len(bkg_w) / bkg_w.sum())
        if mode == NormMode.EQUAL_NUM_EVENTS:
            sig_w = sig_w * (len(sig_w) / sig_w.sum())
            return sig_w, bkg_w * (sig_w.sum() / bkg_w.sum())
        return sig_w, bkg_w

    def prepare_training_and_test_tree(self, split: SplitConfig) -> None:
        """Partition both classes into training and test sets."""
        rng = np.random.default_rng(split.split_seed)
        (sig_train, sig_train_w), (sig_test, sig_test_w) = self._split_class(
            SIGNAL, split.n_train_signal, split.n_test_signal, split, rng
        )
        (bkg_train, bkg_train_w), (bkg_test, bkg_test_w) = self._split_class(
            BACKGROUND, split.n_train_background, split.n_test_background, split, rng
        )

        sig_train_w, bkg_train_w = self._normalise(sig_train_w, bkg_train_w, split.norm_mode)
        sig_test_w, bkg_test_w = self._normalise(sig_test_w, bkg_test_w, split.norm_mode)

        def partition(sig, sig_w, bkg, bkg_w):
            return _Partition(
                x=np.concatenate([sig, bkg]),
                y=np.concatenate([np.ones(len(sig)), np.zeros(len(bkg))]).astype(np.float32),
                w=np.concatenate([sig_w, bkg_w]).astype(np.float32),
            )

        self._train = partition(sig_train, sig_train_w, bkg_train, bkg_train_w)
        self._test = partition(sig_test, sig_test_w, bkg_test, bkg_test_w)

    @property
    def is_prepared(self) -> bool:
        return self._train is not None

    def _dataset(self, part: Optional[_Partition]) -> TensorDataset:
        if part is None:
            raise RuntimeError("Call prepare_training_and_test_tree() first")
        return TensorDataset(torch.from_numpy(part.x), torch.from_numpy(part.y), torch.from_numpy(part.w))

    @property
    def train_dataset(self) -> TensorDataset:
        """(x, label, weight) with x of shape (n, n_arrays, width); signal label 1."""
        return self._dataset(self._train)

    @property
    def test_dataset(self) -> TensorDataset:
        return self._dataset(self._test)

    def summary(self) -> Dict[str, Dict[str, int]]:
        """Per-class train/test event counts."""
        if not self.is_prepared:
            raise RuntimeError("Call prepare_training_and_test_tree() first")
        return {k: dict(v) for k, v in self._counts.items()}
