"""
Positional source models: feed explicit source-alignment information into the first
decoder layer. One strategy object per call, selected by positional_mode:

  0 plain             nothing extra
  1 embedding-concat  embedding of the aligned source word, concatenated to the input
  2 pointer           top hidden state of the aligned source word, concatenated to the input
  3 copy              same vector as pointer, kept aside for the output layer

Null-aligned and end-of-sequence-aligned rows use the special <p_n> / <p_eos> embeddings.
"""

from dataclasses import dataclass, field

import numpy as np

from . import shared
from .errors import ConfigurationError

NULL_ALIGN = -1

_EMPTY = np.zeros(0, dtype=np.intp)


@dataclass
class SideData:
    """Index bookkeeping of one decoder offset, needed again by backward and the output layer."""

    offset: int
    emb_indices: np.ndarray = field(default_factory=lambda: _EMPTY)
    null_ids: np.ndarray = field(default_factory=lambda: _EMPTY)
    eos_ids: np.ndarray = field(default_factory=lambda: _EMPTY)
    pos_ids: np.ndarray = field(default_factory=lambda: _EMPTY)
    col_indices: np.ndarray = field(default_factory=lambda: _EMPTY)


def classify_alignment(
    rel_pos: np.ndarray, starts: np.ndarray, src_max_len: int, rows: np.ndarray
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Split rows into null / eos / interior by their sentence-relative source position.

    Returns (null_ids, eos_ids, pos_ids, col_indices) where col_indices are the absolute
    source timesteps of the interior rows. The last source column holds <s_eos>, so a row
    starting at timestep s has (src_max_len - 2) - s source words.
    """
    rows = np.asarray(rows, dtype=np.intp)
    rel = np.asarray(rel_pos, dtype=np.intp)[rows]
    n_words = (src_max_len - 2) - starts[rows]
    is_null = rel < 0
    is_eos = ~is_null & (rel >= n_words)
    is_pos = ~is_null & ~is_eos
    pos_ids = rows[is_pos]
    return rows[is_null], rows[is_eos], pos_ids, starts[pos_ids] + rel[is_pos]


def alignment_classes(
    rel_pos: np.ndarray, starts: np.ndarray, src_max_len: int, source_max_len: int
) -> np.ndarray:
    """Class label per row for position prediction: rel (interior), source_max_len (null), +1 (eos)."""
    rows = np.arange(rel_pos.shape[0])
    null_ids, eos_ids, pos_ids, cols = classify_alignment(rel_pos, starts, src_max_len, rows)
    labels = np.empty(rel_pos.shape[0], dtype=np.intp)
    labels[null_ids] = source_max_len
    labels[eos_ids] = source_max_len + 1
    labels[pos_ids] = cols - starts[pos_ids]
    return labels


class PositionalModel:
    """Plain model: no positional input. Base class for the positional strategies."""

    mode = 0
    name = "plain"
    concat = False
    uses_src_hid_vecs = False

    def input_size(self, hidden_size: int) -> int:
        """Width of the first decoder layer's input (before the hidden-state block)."""
        return 2 * hidden_size if self.concat else hidden_size

    def num_src_hid_vecs(self, src_max_len: int, attention: bool) -> int:
        return src_max_len - 1 if attention else 0

    def extract(self, t: int, ctx, info) -> tuple[np.ndarray | None, SideData | None]:
        return None, None

    def attach(self, x_t: np.ndarray, s_t: np.ndarray | None, ctx, offset: int) -> np.ndarray:
        return x_t

    def backward(self, side: SideData | None, d_x: np.ndarray, info, ctx) -> None:
        """Scatter the positional part of the first decoder layer's input gradient."""


class EmbeddingConcatModel(PositionalModel):
    mode = 1
    name = "embedding-concat"
    concat = True

    def num_src_hid_vecs(self, src_max_len: int, attention: bool) -> int:
        return 0

    def extract(self, t, ctx, info):
        offset = t - (ctx.src_max_len - 1)
        params = ctx.params
        null_ids, eos_ids, pos_ids, cols = classify_alignment(
            ctx.batch.src_pos[:, offset], ctx.src_starts, ctx.src_max_len, info.unmasked_ids
        )
        indices = np.zeros(ctx.batch_size, dtype=np.intp)
        indices[null_ids] = params["null_pos_id"]
        indices[eos_ids] = params["eos_pos_id"]
        indices[pos_ids] = ctx.batch.input[pos_ids, cols]
        s_t = ctx.model["W_emb"][indices].T
        return s_t, SideData(offset, emb_indices=indices[info.unmasked_ids])

    def attach(self, x_t, s_t, ctx, offset):
        return np.concatenate([x_t, s_t], axis=0)

    def backward(self, side, d_x, info, ctx):
        H = ctx.hidden_size
        pos_grad = d_x[H : 2 * H]
        ctx.emb_acc.add(side.emb_indices, pos_grad[:, info.unmasked_ids].T)


class PointerModel(PositionalModel):
    mode = 2
    name = "pointer"
    concat = True
    uses_src_hid_vecs = True

    def num_src_hid_vecs(self, src_max_len: int, attention: bool) -> int:
        # the <s_eos> column is not a pointer target
        return src_max_len - 2

    def extract(self, t, ctx, info):
        offset = t - (ctx.src_max_len - 1)
        null_ids, eos_ids, pos_ids, cols = classify_alignment(
            ctx.batch.src_pos[:, offset], ctx.src_starts, ctx.src_max_len, info.unmasked_ids
        )
        side = SideData(offset, null_ids=null_ids, eos_ids=eos_ids, pos_ids=pos_ids, col_indices=cols)
        W_emb = ctx.model["W_emb"]
        params = ctx.params
        s_t = np.zeros((ctx.hidden_size, ctx.batch_size), dtype=ctx.dtype)
        s_t[:, null_ids] = W_emb[params["null_pos_id"]][:, np.newaxis]
        s_t[:, eos_ids] = W_emb[params["eos_pos_id"]][:, np.newaxis]
        s_t[:, pos_ids] = ctx.src_hid_vecs[:, pos_ids, cols]
        return s_t, side

    def attach(self, x_t, s_t, ctx, offset):
        return np.concatenate([x_t, s_t], axis=0)

    def backward(self, side, d_x, info, ctx):
        H = ctx.hidden_size
        pos_grad = d_x[H : 2 * H]
        scatter_special_rows(side, pos_grad, ctx)
        shared.scatter_columns(ctx.src_hid_grad, pos_grad, side.pos_ids, side.col_indices)


class CopyModel(PointerModel):
    mode = 3
    name = "copy"
    concat = False

    def num_src_hid_vecs(self, src_max_len: int, attention: bool) -> int:
        return src_max_len - 1

    def attach(self, x_t, s_t, ctx, offset):
        ctx.src_pos_vecs[:, :, offset] = s_t
        return x_t

    def backward(self, side, d_x, info, ctx):
        # gradient w.r.t. the copied vectors comes back through the output layer
        return None


def scatter_special_rows(side: SideData, grad: np.ndarray, ctx) -> None:
    """Add grad columns of null/eos rows to the <p_n> / <p_eos> embedding rows."""
    params = ctx.params
    special = np.concatenate([side.null_ids, side.eos_ids])
    indices = np.concatenate([
        np.full(side.null_ids.shape[0], params["null_pos_id"], dtype=np.intp),
        np.full(side.eos_ids.shape[0], params["eos_pos_id"], dtype=np.intp),
    ])
    ctx.emb_acc.add(indices, grad[:, special].T)


_REGISTRY: dict[int, type] = {
    0: PositionalModel,
    1: EmbeddingConcatModel,
    2: PointerModel,
    3: CopyModel,
}
_NAMES = {cls.name: mode for mode, cls in _REGISTRY.items()}


def get_positional_model(mode: int | str) -> PositionalModel:
    """Return the strategy for positional_mode (0-3 or its name). Raises ConfigurationError if unknown."""
    if isinstance(mode, str):
        if mode not in _NAMES:
            raise ConfigurationError(f"Unknown positional mode: {mode}. Available: {list(_NAMES)}")
        mode = _NAMES[mode]
    if isinstance(mode, bool) or mode not in _REGISTRY:
        raise ConfigurationError(f"Unknown positional mode: {mode}. Available: {list(_REGISTRY)}")
    return _REGISTRY[mode]()
