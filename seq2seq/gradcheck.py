"""Finite-difference check of the analytic gradients returned by CostGrad."""

import copy

import numpy as np

from .cost_grad import CostGrad
from .data import Batch
from .params import get_param, ordered_param_keys


def relative_error(analytic: float, numeric: float) -> float:
    return abs(analytic - numeric) / max(1e-8, abs(analytic) + abs(numeric))


def numerical_grad_check(
    model: dict,
    batch: Batch,
    params: dict,
    *,
    keys: list[str] | None = None,
    num_checks: int = 5,
    eps: float = 1e-6,
    seed: int = 0,
) -> list[tuple[str, tuple, float, float]]:
    """Compare analytic gradient entries with central differences of costs["total"].

    Returns (key, index, analytic, numeric) for num_checks random entries per key. Embedding
    entries are sampled from rows that received a gradient. The caller's model is not touched.
    """
    cost_grad = CostGrad(params)
    _, grad = cost_grad(model, batch)
    work = copy.deepcopy(model)
    rng = np.random.default_rng(seed)
    vocab_size = cost_grad.params["vocab_size"]

    results = []
    for key in keys or ordered_param_keys(cost_grad.params):
        W = get_param(work, key)
        analytic = grad.get(key, vocab_size)
        for _ in range(num_checks):
            if key == "W_emb" and grad.indices.size:
                idx = (int(rng.choice(grad.indices)), int(rng.integers(0, W.shape[1])))
            else:
                idx = tuple(int(rng.integers(0, s)) for s in W.shape)
            orig = W[idx]
            W[idx] = orig + eps
            plus = cost_grad(work, batch, is_test=True)[0]["total"]
            W[idx] = orig - eps
            minus = cost_grad(work, batch, is_test=True)[0]["total"]
            W[idx] = orig
            results.append((key, idx, float(analytic[idx]), (plus - minus) / (2 * eps)))
    return results
