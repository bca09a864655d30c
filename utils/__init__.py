"""
Utils Package - Data generation, training utilities, statistics and plotting.
"""

from utils.data import generation_parameters, generate_time_series, make_time_data, load_time_data
from utils.training import train_epoch, evaluate, train_model, predict_scores, count_parameters
from utils.stats import roc_curve, roc_integral, signal_efficiency_at, separation, overtraining_test, format_results

__all__ = [
    "generation_parameters", "generate_time_series", "make_time_data", "load_time_data",
    "train_epoch", "evaluate", "train_model", "predict_scores", "count_parameters",
    "roc_curve", "roc_integral", "signal_efficiency_at", "separation", "overtraining_test", "format_results",
]
