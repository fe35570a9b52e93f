"""Tests for positional strategies: alignment classification and registry."""

import numpy as np
import pytest

from config import model_params
from model import init_model
from seq2seq import CostGrad, build_batch, build_vocab
from seq2seq.data import EOS_POS, NULL_POS
from seq2seq.errors import ConfigurationError
from seq2seq.positional import (
    NULL_ALIGN,
    CopyModel,
    EmbeddingConcatModel,
    PointerModel,
    PositionalModel,
    alignment_classes,
    classify_alignment,
    get_positional_model,
)


def test_registry_by_mode_and_name():
    assert type(get_positional_model(0)) is PositionalModel
    assert type(get_positional_model(1)) is EmbeddingConcatModel
    assert type(get_positional_model("pointer")) is PointerModel
    assert type(get_positional_model(3)) is CopyModel


@pytest.mark.parametrize("mode", [4, -1, "beam", True])
def test_unknown_mode(mode):
    with pytest.raises(ConfigurationError):
        get_positional_model(mode)


def test_source_hidden_vector_counts():
    src_max_len = 6
    assert get_positional_model(0).num_src_hid_vecs(src_max_len, attention=False) == 0
    assert get_positional_model(0).num_src_hid_vecs(src_max_len, attention=True) == 5
    assert get_positional_model(1).num_src_hid_vecs(src_max_len, attention=False) == 0
    assert get_positional_model(2).num_src_hid_vecs(src_max_len, attention=False) == 4
    assert get_positional_model(3).num_src_hid_vecs(src_max_len, attention=False) == 5


def test_first_decoder_input_width():
    assert get_positional_model(0).input_size(8) == 8
    assert get_positional_model(1).input_size(8) == 16
    assert get_positional_model(2).input_size(8) == 16
    assert get_positional_model(3).input_size(8) == 8


def test_classify_alignment():
    # src_max_len 6: source words occupy columns start..3, <s_eos> sits in column 4
    starts = np.array([0, 2, 3, 1])
    rel_pos = np.array([NULL_ALIGN, 1, 1, 2])
    rows = np.array([0, 1, 2, 3])
    null_ids, eos_ids, pos_ids, cols = classify_alignment(rel_pos, starts, 6, rows)
    np.testing.assert_array_equal(null_ids, [0])
    # row 2 has a single source word: position 1 is its end
    np.testing.assert_array_equal(eos_ids, [2])
    np.testing.assert_array_equal(pos_ids, [1, 3])
    np.testing.assert_array_equal(cols, [3, 3])


def test_classify_alignment_only_given_rows():
    starts = np.array([0, 0])
    null_ids, eos_ids, pos_ids, cols = classify_alignment(np.array([0, NULL_ALIGN]), starts, 4, np.array([0]))
    assert null_ids.size == 0 and eos_ids.size == 0
    np.testing.assert_array_equal(pos_ids, [0])


def test_alignment_classes():
    starts = np.array([0, 2, 3])
    labels = alignment_classes(np.array([2, NULL_ALIGN, 1]), starts, 6, source_max_len=10)
    np.testing.assert_array_equal(labels, [2, 10, 11])


def _pointer_case(mode):
    pairs = [(["a", "b"], ["b", "z"]), (["c"], ["c"])]
    vocab = build_vocab(pairs)
    config = {"model": {"num_layers": 1, "hidden_size": 4, "positional_mode": mode, "source_max_len": 6}}
    params = model_params(config, len(vocab))
    model = init_model(params, seed=3, init_range=0.3)
    return model, build_batch(pairs, vocab), params


@pytest.mark.parametrize("mode", [2, 3])
def test_eos_and_null_rows_use_special_embeddings(mode):
    """End-of-source and null alignments feed the <p_eos> / <p_n> rows, not the source buffer."""
    model, batch, params = _pointer_case(mode)
    cost_grad = CostGrad(params)
    ctx = cost_grad.forward(model, batch)
    # offset 1: row 0 aligns "z" to nothing, row 1 aligns <t_eos> to the end of "c"
    side = ctx.side_data[1]
    np.testing.assert_array_equal(side.null_ids, [0])
    np.testing.assert_array_equal(side.eos_ids, [1])
    assert side.pos_ids.size == 0

    _, grad = cost_grad(model, batch)
    assert NULL_POS in grad.indices and EOS_POS in grad.indices
    dense = grad.dense_emb(params["vocab_size"])
    assert np.any(dense[EOS_POS] != 0)
    assert np.any(dense[NULL_POS] != 0)


def test_pointer_buffer_holds_source_states():
    model, batch, params = _pointer_case(2)
    ctx = CostGrad(params).forward(model, batch)
    N = batch.src_max_len - 2
    assert ctx.src_hid_vecs.shape == (params["hidden_size"], 2, N)
    np.testing.assert_array_equal(ctx.src_hid_vecs, ctx.top_hid[:, :, :N])
    # offset 0: row 0 "b" points at its second source word, row 1 "c" at its only word
    side = ctx.side_data[0]
    np.testing.assert_array_equal(side.pos_ids, [0, 1])
    np.testing.assert_array_equal(side.col_indices, [1, 1])


@pytest.mark.parametrize("mode", [2, 3])
def test_special_rows_leave_source_buffer_untouched(mode):
    """A row aligned only to null and end-of-source gets no source-hidden gradient."""
    pairs = [(["a", "b"], ["b", "z"]), (["c"], ["z"])]
    vocab = build_vocab(pairs)
    config = {"model": {"num_layers": 1, "hidden_size": 4, "positional_mode": mode, "source_max_len": 6}}
    params = model_params(config, len(vocab))
    model = init_model(params, seed=3, init_range=0.3)
    batch = build_batch(pairs, vocab)

    cost_grad = CostGrad(params)
    ctx = cost_grad.forward(model, batch)
    # row 1: "z" is null-aligned, <t_eos> aligns to the end of "c"
    np.testing.assert_array_equal(ctx.side_data[0].null_ids, [1])
    np.testing.assert_array_equal(ctx.side_data[1].eos_ids, [1])
    _, soft_grads, other = cost_grad.output_layer.cost_grad(model, cost_grad.params, ctx, False)
    grad = cost_grad.backward(model, ctx, soft_grads, other)

    assert ctx.src_hid_grad.shape[2] == ctx.num_src_hid_vecs
    assert np.all(ctx.src_hid_grad[:, 1, :] == 0)
    # row 0 points "b" at its second source word
    assert np.any(ctx.src_hid_grad[:, 0, 1] != 0)
    dense = grad.dense_emb(params["vocab_size"])
    assert np.any(dense[EOS_POS] != 0)
    assert np.any(dense[NULL_POS] != 0)
