"""
Cost and gradient core for a stacked LSTM encoder-decoder (NumPy, manual backward).
Supports plain, attention and three positional source models; Numba for the scatter kernels.
"""

from .aggregate import EmbeddingGradAccumulator, aggregate_rows
from .cost_grad import CallContext, CostGrad, Gradients, lstm_cost_grad
from .data import Batch, build_batch, build_vocab, load_pairs
from .errors import (
    AggregationOverflowError,
    ConfigurationError,
    MaskError,
    Seq2SeqError,
    ShapeError,
)
from .gradcheck import numerical_grad_check, relative_error
from .params import ordered_param_keys, param_shapes, resolve_params
from .positional import get_positional_model
from .shared import verify_numba_jit

__all__ = [
    "AggregationOverflowError",
    "Batch",
    "CallContext",
    "ConfigurationError",
    "CostGrad",
    "EmbeddingGradAccumulator",
    "Gradients",
    "MaskError",
    "Seq2SeqError",
    "ShapeError",
    "aggregate_rows",
    "build_batch",
    "build_vocab",
    "get_positional_model",
    "load_pairs",
    "lstm_cost_grad",
    "numerical_grad_check",
    "ordered_param_keys",
    "param_shapes",
    "relative_error",
    "resolve_params",
    "verify_numba_jit",
]
