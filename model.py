"""
Stacked LSTM encoder-decoder parameters: initialization and save/load.
Used by train.py (training) and main.py (scoring).
"""

import json

import numpy as np

from seq2seq.params import get_param, ordered_param_keys, param_shapes, resolve_dtype


# =============================================================================
# Initialization
# =============================================================================

def make_matrix(rng: np.random.Generator, shape: tuple[int, ...], init_range: float, dtype) -> np.ndarray:
    """Uniform random matrix in [-init_range, init_range]."""
    return rng.uniform(-init_range, init_range, size=shape).astype(dtype)


def init_model(params: dict, *, seed: int | None = 42, init_range: float = 0.1) -> dict:
    """Fresh weights for params (see seq2seq.params.param_shapes).
    Layer blocks live in lists: model["W_src"][layer], model["W_tgt"][layer]."""
    rng = np.random.default_rng(seed)
    dtype = resolve_dtype(params)
    model = {"W_src": [], "W_tgt": []}
    for key, shape in param_shapes(params).items():
        mat = make_matrix(rng, shape, init_range, dtype)
        name, _, layer = key.partition(".")
        if layer:
            model[name].append(mat)
        else:
            model[name] = mat
    return model


def num_params(model: dict, params: dict) -> int:
    return sum(get_param(model, k).size for k in ordered_param_keys(params))


# =============================================================================
# Persistence: save/load model, vocabulary and options as JSON
# =============================================================================

def model_to_json(model: dict, params: dict) -> dict:
    """Flat {key: nested lists} so we can serialize to JSON."""
    return {k: get_param(model, k).tolist() for k in ordered_param_keys(params)}


def model_from_json(data: dict, params: dict) -> dict:
    """Inverse of model_to_json; checks every shape."""
    dtype = resolve_dtype(params)
    model = {"W_src": [], "W_tgt": []}
    for key, shape in param_shapes(params).items():
        arr = np.array(data[key], dtype=dtype)
        assert arr.shape == shape, f"{key}: {arr.shape} vs {shape}"
        name, _, layer = key.partition(".")
        if layer:
            model[name].append(arr)
        else:
            model[name] = arr
    return model


def save_model(path: str, model: dict, vocab: list[str], params: dict) -> None:
    """Write one JSON file: vocabulary, options and all weights."""
    payload = {
        "vocab": list(vocab),
        "params": params,
        "weights": model_to_json(model, params),
    }
    with open(path, "w") as f:
        json.dump(payload, f, indent=0)


def load_model(path: str) -> dict:
    """Load JSON; return dict with model, vocab and params."""
    with open(path) as f:
        payload = json.load(f)
    params = payload["params"]
    return {
        "vocab": payload["vocab"],
        "params": params,
        "model": model_from_json(payload["weights"], params),
    }
