"""
Cost and gradients of a stacked LSTM encoder-decoder for one batch.

Forward runs timestep-major, layer-minor (a timestep's top hidden state must exist before
the next timestep and before positional/attention lookups); backward mirrors it exactly,
timestep and layer reversed.
"""

import os
from dataclasses import dataclass, field

import numpy as np

from . import shared
from .aggregate import EmbeddingGradAccumulator
from .data import Batch
from .errors import ConfigurationError, MaskError, ShapeError
from .masking import MaskInfo, apply_mask, build_mask_info, mask_columns, source_starts
from .params import param_shapes, resolve_dtype, resolve_params
from .positional import PositionalModel, SideData, get_positional_model
from .softmax import SOFTMAX_SLOTS, SoftmaxLayer


_JIT_VERIFY_DONE = False


@dataclass
class Gradients:
    W_src: list[np.ndarray]
    W_tgt: list[np.ndarray]
    W_emb: np.ndarray  # (len(indices), H) summed rows
    indices: np.ndarray  # unique embedding rows touched, ascending
    W_soft: np.ndarray | None = None
    W_soft_pos: np.ndarray | None = None
    W_h: np.ndarray | None = None

    def dense_emb(self, vocab_size: int) -> np.ndarray:
        out = np.zeros((vocab_size, self.W_emb.shape[1]), dtype=self.W_emb.dtype)
        out[self.indices] = self.W_emb
        return out

    def get(self, key: str, vocab_size: int | None = None) -> np.ndarray:
        """Dense gradient for a parameter key (see params.ordered_param_keys)."""
        name, _, layer = key.partition(".")
        if layer:
            return getattr(self, name)[int(layer)]
        if name == "W_emb":
            if vocab_size is None:
                raise ShapeError("W_emb: vocab_size is needed for the dense embedding gradient")
            return self.dense_emb(vocab_size)
        return getattr(self, name)


@dataclass
class CallContext:
    """Everything one cost/grad call owns. Created by forward, consumed by backward, then dropped."""

    params: dict
    model: dict
    batch: Batch
    positional: PositionalModel
    dtype: type
    is_test: bool
    mask_info: list[MaskInfo]
    src_starts: np.ndarray
    num_src_hid_vecs: int
    zero_state: np.ndarray
    lstm: list[list[dict | None]]
    top_hid: np.ndarray  # (H, B, T)
    src_hid_vecs: np.ndarray | None = None  # (H, B, N) once materialized
    src_pos_vecs: np.ndarray | None = None  # (H, B, tgt_max_len), copy mode only
    side_data: dict[int, SideData] = field(default_factory=dict)
    dh: list[np.ndarray] = field(default_factory=list)
    dc: list[np.ndarray] = field(default_factory=list)
    src_hid_grad: np.ndarray | None = None
    emb_acc: EmbeddingGradAccumulator | None = None

    @property
    def hidden_size(self) -> int:
        return self.params["hidden_size"]

    @property
    def num_layers(self) -> int:
        return self.params["num_layers"]

    @property
    def batch_size(self) -> int:
        return self.batch.batch_size

    @property
    def src_max_len(self) -> int:
        return self.batch.src_max_len

    @property
    def num_timesteps(self) -> int:
        return self.batch.num_timesteps


def _expect_shape(name: str, arr: np.ndarray, shape: tuple) -> None:
    if tuple(arr.shape) != tuple(shape):
        raise ShapeError(f"{name}: {tuple(arr.shape)} vs {tuple(shape)}")


def validate_inputs(model: dict, batch: Batch, params: dict, positional: PositionalModel) -> int:
    """Check every pre-condition before any state is built. Returns the number of source
    hidden vectors kept for attention/positional lookups."""
    if params["attention"] and positional.mode > 0:
        raise ConfigurationError(f"attention and positional mode {positional.name!r} are mutually exclusive")
    src_max_len = batch.src_max_len
    if src_max_len < 2 or batch.tgt_max_len < 1:
        raise ConfigurationError(f"need src_max_len >= 2 and tgt_max_len >= 1, got {src_max_len}, {batch.tgt_max_len}")
    T = batch.num_timesteps
    num_src_hid_vecs = positional.num_src_hid_vecs(src_max_len, params["attention"])
    if num_src_hid_vecs > T:
        raise ConfigurationError(f"num_src_hid_vecs {num_src_hid_vecs} exceeds {T} timesteps")
    if positional.mode > 0 and src_max_len - 2 > params["source_max_len"]:
        raise ConfigurationError(
            f"batch has {src_max_len - 2} source words, positional softmax covers {params['source_max_len']}"
        )

    for key, shape in param_shapes(params).items():
        name, _, layer = key.partition(".")
        if name not in model or (layer and len(model[name]) <= int(layer)):
            raise ShapeError(f"{key}: missing from model")
        arr = model[name][int(layer)] if layer else model[name]
        _expect_shape(key, arr, shape)
    for name in ("W_src", "W_tgt"):
        if len(model[name]) != params["num_layers"]:
            raise ShapeError(f"{name}: {len(model[name])} layers vs {params['num_layers']}")

    B = batch.batch_size
    _expect_shape("input", batch.input, (B, T))
    _expect_shape("input_mask", batch.input_mask, (B, T))
    _expect_shape("tgt_output", batch.tgt_output, (B, batch.tgt_max_len))
    if positional.mode > 0:
        _expect_shape("src_pos", batch.src_pos, (B, batch.tgt_max_len))
    V = params["vocab_size"]
    for name, ids in (("input", batch.input), ("tgt_output", batch.tgt_output)):
        if ids.size and (ids.min() < 0 or ids.max() >= V):
            raise ShapeError(f"{name}: token ids outside vocabulary of {V}")

    t_dec = src_max_len - 1
    if not batch.input_mask[:, t_dec].any():
        raise MaskError(f"first decoder timestep {t_dec} has no real token")
    if (positional.mode > 0 or params["attention"]) and not batch.input_mask[:, t_dec - 1].any():
        raise MaskError(f"source boundary timestep {t_dec - 1} has no real token")
    return num_src_hid_vecs


class CostGrad:
    """Cost/gradient driver for one parameter set. unit_fwd/unit_bwd and output_layer are pluggable."""

    def __init__(
        self,
        params: dict,
        *,
        unit_fwd=shared.lstm_unit_fwd,
        unit_bwd=shared.lstm_unit_bwd,
        output_layer=None,
    ):
        self.params = resolve_params(params)
        self.positional = get_positional_model(self.params["positional_mode"])
        self.dtype = resolve_dtype(self.params)
        self.unit_fwd = unit_fwd
        self.unit_bwd = unit_bwd
        self.output_layer = output_layer or SoftmaxLayer()

    def __call__(self, model: dict, batch: Batch, is_test: bool = False):
        """Returns (costs, grad). With is_test only costs are computed and grad is None."""
        global _JIT_VERIFY_DONE
        if not _JIT_VERIFY_DONE and os.environ.get("SEQ2SEQ_VERIFY_JIT") == "1":
            ok, msg = shared.verify_numba_jit()
            print(f"[seq2seq] JIT check: {msg}")
            _JIT_VERIFY_DONE = True

        ctx = self.forward(model, batch, is_test)
        costs, soft_grads, other = self.output_layer.cost_grad(model, self.params, ctx, is_test)
        if is_test:
            return costs, None
        return costs, self.backward(model, ctx, soft_grads, other)

    def _init_context(self, model: dict, batch: Batch, is_test: bool) -> CallContext:
        num_src_hid_vecs = validate_inputs(model, batch, self.params, self.positional)
        H = self.params["hidden_size"]
        B, T = batch.batch_size, batch.num_timesteps
        ctx = CallContext(
            params=self.params,
            model=model,
            batch=batch,
            positional=self.positional,
            dtype=self.dtype,
            is_test=is_test,
            mask_info=build_mask_info(batch.input_mask),
            src_starts=source_starts(batch.input_mask, batch.src_max_len),
            num_src_hid_vecs=num_src_hid_vecs,
            zero_state=np.zeros((H, B), dtype=self.dtype),
            lstm=[[None] * T for _ in range(self.params["num_layers"])],
            top_hid=np.zeros((H, B, T), dtype=self.dtype),
        )
        if num_src_hid_vecs == 0 and self.positional.uses_src_hid_vecs:
            ctx.src_hid_vecs = np.zeros((H, B, 0), dtype=self.dtype)
        if self.positional.mode == 3:
            ctx.src_pos_vecs = np.zeros((H, B, batch.tgt_max_len), dtype=self.dtype)
        return ctx

    def forward(self, model: dict, batch: Batch, is_test: bool = False) -> CallContext:
        """Run all timesteps and layers; fills the per-(layer, timestep) cache and the top-hidden cache."""
        ctx = self._init_context(model, batch, is_test)
        L = ctx.num_layers
        t_dec = ctx.src_max_len - 1
        N = ctx.num_src_hid_vecs

        # do not swap these loops: lookups need every earlier top hidden state
        for t in range(ctx.num_timesteps):
            info = ctx.mask_info[t]
            for ll in range(L):
                W = model["W_tgt"][ll] if t >= t_dec else model["W_src"][ll]

                if t == 0:
                    h_prev = c_prev = ctx.zero_state
                else:
                    c_prev = ctx.lstm[ll][t - 1]["c_t"]
                    h_prev = ctx.top_hid[:, :, t - 1] if ll == L - 1 else ctx.lstm[ll][t - 1]["h_t"]

                if ll == 0:
                    x_t = model["W_emb"][batch.input[:, t]].T
                    if t >= t_dec:
                        offset = t - t_dec
                        s_t, side = self.positional.extract(t, ctx, info)
                        if side is not None:
                            ctx.side_data[offset] = side
                        x_t = self.positional.attach(x_t, s_t, ctx, offset)
                else:
                    x_t = ctx.lstm[ll - 1][t]["h_t"]

                x_t, h_prev, c_prev = apply_mask(info, x_t, h_prev, c_prev)
                cache, h_t = self.unit_fwd(W, x_t, h_prev, c_prev, is_test)
                ctx.lstm[ll][t] = cache

                if ll == L - 1:
                    ctx.top_hid[:, :, t] = h_t
                    if t == N - 1:
                        ctx.src_hid_vecs = ctx.top_hid[:, :, :N].copy()
                else:
                    cache["h_t"] = h_t
        return ctx

    def _emb_capacity(self, ctx: CallContext, other: dict) -> int:
        mask = ctx.batch.input_mask
        count = int(mask.sum())
        if self.positional.concat:
            count += int(mask[:, ctx.src_max_len - 1 :].sum())
        return count + int(other["emb_indices"].shape[0])

    def backward(self, model: dict, ctx: CallContext, soft_grads: dict, other: dict) -> Gradients:
        """Reverse sweep. soft_grads/other are the output layer's gradients for this call."""
        H = ctx.hidden_size
        L = ctx.num_layers
        t_dec = ctx.src_max_len - 1
        N = ctx.num_src_hid_vecs
        batch = ctx.batch
        d_top = other["ht"]
        # positional models also predict from the last source timestep
        first_signal_t = t_dec - 1 if self.positional.mode > 0 else t_dec

        grad_src = [np.zeros_like(w) for w in model["W_src"]]
        grad_tgt = [np.zeros_like(w) for w in model["W_tgt"]]
        ctx.dh = [ctx.zero_state.copy() for _ in range(L)]
        ctx.dc = [ctx.zero_state.copy() for _ in range(L)]
        if N > 0:
            ctx.src_hid_grad = np.zeros((H, ctx.batch_size, N), dtype=ctx.dtype)
            if other["src_hid_vecs"] is not None:
                ctx.src_hid_grad += other["src_hid_vecs"]
        ctx.emb_acc = EmbeddingGradAccumulator(H, capacity=self._emb_capacity(ctx, other), dtype=ctx.dtype)

        for t in range(ctx.num_timesteps - 1, -1, -1):
            info = ctx.mask_info[t]
            rows = info.unmasked_ids
            for ll in range(L - 1, -1, -1):
                if ll == L - 1:
                    if t >= first_signal_t:
                        ctx.dh[ll] += d_top[:, :, t]
                    if t < N:
                        ctx.dh[ll] += ctx.src_hid_grad[:, :, t]

                W = model["W_tgt"][ll] if t >= t_dec else model["W_src"][ll]
                lstm_grad = self.unit_bwd(W, ctx.lstm[ll][t], ctx.dc[ll], ctx.dh[ll])
                # padded columns were zeroed before the unit: no gradient flows past them
                d_input = lstm_grad["input"]
                mask_columns(info, d_input, lstm_grad["dc"])
                ctx.dc[ll] = lstm_grad["dc"]
                ctx.dh[ll] = d_input[-H:].copy()
                ctx.lstm[ll][t] = None

                if t >= t_dec:
                    grad_tgt[ll] += lstm_grad["W"]
                else:
                    grad_src[ll] += lstm_grad["W"]

                d_x = d_input[:-H]
                if ll == 0:
                    ctx.emb_acc.add(batch.input[rows, t], d_x[:H, rows].T)
                    if t >= t_dec:
                        self.positional.backward(ctx.side_data.get(t - t_dec), d_x, info, ctx)
                else:
                    ctx.dh[ll - 1][:, rows] += d_x[:H, rows]

        ctx.emb_acc.add(other["emb_indices"], other["emb_grads"])
        indices, W_emb = ctx.emb_acc.aggregate()
        grad = Gradients(W_src=grad_src, W_tgt=grad_tgt, W_emb=W_emb, indices=indices)
        for slot in SOFTMAX_SLOTS:
            setattr(grad, slot, soft_grads.get(slot))
        return grad


def lstm_cost_grad(model: dict, batch: Batch, params: dict, is_test: bool = False):
    """Functional entry point: (costs, grad) for one batch."""
    return CostGrad(params)(model, batch, is_test)
