"""
Shared NumPy helpers (functions only): the elementary LSTM unit, its manual backward,
and the Numba kernels used for index-addressed gradient accumulation.
"""

import numpy as np
from numba import jit

from .errors import ShapeError


# --- Elementary LSTM unit ---

def sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-x))


def lstm_unit_fwd(
    W: np.ndarray,
    x_t: np.ndarray,
    h_prev: np.ndarray,
    c_prev: np.ndarray,
    is_test: bool = False,
) -> tuple[dict, np.ndarray]:
    """One LSTM step for a whole batch. W (4H, nin+H), x_t (nin, B), h_prev/c_prev (H, B).

    Gate rows of W are ordered input, forget, output, candidate. Returns (cache, h_t);
    the cache always holds c_t, and everything backward needs unless is_test.
    """
    H = h_prev.shape[0]
    z = np.concatenate([x_t, h_prev], axis=0)
    if W.shape != (4 * H, z.shape[0]):
        raise ShapeError(f"lstm weights: {W.shape} vs {(4 * H, z.shape[0])}")
    if c_prev.shape != h_prev.shape:
        raise ShapeError(f"previous cell: {c_prev.shape} vs {h_prev.shape}")

    gates = W @ z
    ifo = sigmoid(gates[: 3 * H])
    i_gate = ifo[:H]
    f_gate = ifo[H : 2 * H]
    o_gate = ifo[2 * H :]
    a_signal = np.tanh(gates[3 * H :])
    c_t = i_gate * a_signal + f_gate * c_prev
    f_c_t = np.tanh(c_t)
    h_t = o_gate * f_c_t

    if is_test:
        return {"c_t": c_t}, h_t
    cache = {
        "input": z,
        "c_prev": c_prev,
        "c_t": c_t,
        "i_gate": i_gate,
        "f_gate": f_gate,
        "o_gate": o_gate,
        "a_signal": a_signal,
        "f_c_t": f_c_t,
    }
    return cache, h_t


def lstm_unit_bwd(W: np.ndarray, cache: dict, dc: np.ndarray, dh: np.ndarray) -> dict:
    """Backward of lstm_unit_fwd given upstream grads w.r.t. c_t and h_t.

    Returns {"dc": grad w.r.t. c_prev, "input": grad w.r.t. [x_t; h_prev], "W": grad w.r.t. W}.
    """
    i_gate = cache["i_gate"]
    f_gate = cache["f_gate"]
    o_gate = cache["o_gate"]
    a_signal = cache["a_signal"]
    f_c_t = cache["f_c_t"]

    dc = dc + dh * o_gate * (1.0 - f_c_t * f_c_t)
    d_o = dh * f_c_t
    d_i = dc * a_signal
    d_f = dc * cache["c_prev"]
    d_a = dc * i_gate

    d_gates = np.concatenate(
        [
            d_i * i_gate * (1.0 - i_gate),
            d_f * f_gate * (1.0 - f_gate),
            d_o * o_gate * (1.0 - o_gate),
            d_a * (1.0 - a_signal * a_signal),
        ],
        axis=0,
    )
    return {
        "dc": dc * f_gate,
        "input": W.T @ d_gates,
        "W": d_gates @ cache["input"].T,
    }


def softmax_cols(logits: np.ndarray) -> np.ndarray:
    """Stable softmax over axis 0 (one distribution per batch column)."""
    exps = np.exp(logits - logits.max(axis=0, keepdims=True))
    return exps / exps.sum(axis=0, keepdims=True)


# --- Index-addressed accumulation (Numba) ---

@jit(nopython=True, cache=True)
def _segment_sum_numba(grads: np.ndarray, inverse: np.ndarray, n_unique: int) -> np.ndarray:
    n, d = grads.shape
    out = np.zeros_like(grads[:n_unique])
    for r in range(n):
        k = inverse[r]
        for j in range(d):
            out[k, j] += grads[r, j]
    return out


@jit(nopython=True, cache=True)
def _scatter_columns_numba(buf: np.ndarray, grads: np.ndarray, rows: np.ndarray, cols: np.ndarray) -> None:
    """buf (H, B, N) += grads (H, B) at (row, col) pairs: buf[:, rows[k], cols[k]] += grads[:, rows[k]]."""
    H = buf.shape[0]
    for k in range(rows.shape[0]):
        b = rows[k]
        c = cols[k]
        for h in range(H):
            buf[h, b, c] += grads[h, b]


def segment_sum(grads: np.ndarray, inverse: np.ndarray, n_unique: int) -> np.ndarray:
    """Sum rows of grads (n, d) into n_unique buckets addressed by inverse (n,)."""
    if grads.shape[0] == 0:
        return np.zeros((n_unique, grads.shape[1]), dtype=grads.dtype)
    return _segment_sum_numba(
        np.ascontiguousarray(grads), np.ascontiguousarray(inverse, dtype=np.intp), n_unique
    )


def scatter_columns(buf: np.ndarray, grads: np.ndarray, rows: np.ndarray, cols: np.ndarray) -> None:
    """In-place buf[:, rows, cols] += grads[:, rows] (buf must be C-contiguous)."""
    if len(rows) == 0:
        return
    _scatter_columns_numba(
        buf,
        np.ascontiguousarray(grads, dtype=buf.dtype),
        np.ascontiguousarray(rows, dtype=np.intp),
        np.ascontiguousarray(cols, dtype=np.intp),
    )


def verify_numba_jit() -> tuple[bool, str]:
    """Verify that the Numba kernels compiled. Returns (ok, message)."""
    grads = np.ones((4, 3), dtype=np.float64)
    inverse = np.array([0, 1, 0, 1], dtype=np.intp)
    segment_sum(grads, inverse, 2)
    buf = np.zeros((3, 2, 2), dtype=np.float64)
    scatter_columns(buf, np.ones((3, 2)), np.array([0, 1]), np.array([1, 0]))
    has_segment = len(getattr(_segment_sum_numba, "signatures", [])) > 0
    has_scatter = len(getattr(_scatter_columns_numba, "signatures", [])) > 0
    if has_segment and has_scatter:
        return True, "numba JIT active (segment_sum and scatter_columns compiled)"
    return False, "numba present but JIT not compiled (signatures empty)"
