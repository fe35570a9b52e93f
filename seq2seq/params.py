"""
Model parameter layout: resolved call options, explicit ordered parameter keys and shapes.
Keys are "W_emb", "W_src.<layer>", "W_tgt.<layer>", "W_soft", and per mode "W_soft_pos", "W_h".
"""

import numpy as np

from .errors import ConfigurationError
from .positional import get_positional_model

_PRECISIONS = ("float32", "float64")

DEFAULT_PARAMS = {
    "num_layers": 1,
    "hidden_size": 8,
    "positional_mode": 0,
    "attention": False,
    "source_max_len": 50,
    "null_pos_id": 4,
    "eos_pos_id": 5,
    "numeric_precision": "float64",
}


def resolve_params(options: dict) -> dict:
    """Fill defaults and check the per-call options. Raises ConfigurationError on conflicts."""
    params = {**DEFAULT_PARAMS, **options}
    if "vocab_size" not in params:
        raise ConfigurationError("vocab_size is required")
    for key in ("num_layers", "hidden_size", "vocab_size", "source_max_len"):
        if int(params[key]) < 1:
            raise ConfigurationError(f"{key} must be positive, got {params[key]}")
    positional = get_positional_model(params["positional_mode"])
    params["positional_mode"] = positional.mode
    params["attention"] = bool(params["attention"])
    if params["attention"] and positional.mode > 0:
        raise ConfigurationError(
            f"attention and positional mode {positional.name!r} are mutually exclusive"
        )
    if params["numeric_precision"] not in _PRECISIONS:
        raise ConfigurationError(
            f"Unknown numeric_precision: {params['numeric_precision']}. Available: {list(_PRECISIONS)}"
        )
    if positional.mode > 0:
        for key in ("null_pos_id", "eos_pos_id"):
            if not 0 <= params[key] < params["vocab_size"]:
                raise ConfigurationError(f"{key}={params[key]} outside vocabulary of {params['vocab_size']}")
    return params


def resolve_dtype(params: dict) -> type:
    return getattr(np, params.get("numeric_precision", "float64"), np.float64)


def uses_output_projection(params: dict) -> bool:
    """Attention and copy mode combine a source vector with h_t through W_h before the softmax."""
    return params["attention"] or params["positional_mode"] == 3


def param_shapes(params: dict) -> dict[str, tuple[int, ...]]:
    H = params["hidden_size"]
    positional = get_positional_model(params["positional_mode"])
    shapes = {"W_emb": (params["vocab_size"], H)}
    for ll in range(params["num_layers"]):
        shapes[f"W_src.{ll}"] = (4 * H, 2 * H)
    for ll in range(params["num_layers"]):
        in_size = positional.input_size(H) if ll == 0 else H
        shapes[f"W_tgt.{ll}"] = (4 * H, in_size + H)
    shapes["W_soft"] = (params["vocab_size"], H)
    if positional.mode > 0:
        # interior positions, then <p_n>, then <p_eos>
        shapes["W_soft_pos"] = (params["source_max_len"] + 2, H)
    if uses_output_projection(params):
        shapes["W_h"] = (H, 2 * H)
    return shapes


def ordered_param_keys(params: dict) -> list[str]:
    return list(param_shapes(params))


def get_param(model: dict, key: str) -> np.ndarray:
    """Array for a parameter key; "W_src.1" addresses model["W_src"][1]."""
    name, _, layer = key.partition(".")
    if layer:
        return model[name][int(layer)]
    return model[name]
