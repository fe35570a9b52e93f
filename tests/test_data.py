"""Tests for corpus loading and batch layout."""

import numpy as np
import pytest

from seq2seq.data import (
    EOS_POS,
    NULL_POS,
    PAD,
    S_EOS,
    SPECIALS,
    T_EOS,
    T_SOS,
    align,
    build_batch,
    build_vocab,
    iter_batches,
    load_pairs,
)
from seq2seq.positional import NULL_ALIGN

PAIRS = [
    (["a", "b", "c"], ["a", "b", "c"]),
    (["d"], ["x", "d"]),
    (["e", "f"], ["f", "e", "y"]),
]


def test_vocab_reserves_specials():
    vocab = build_vocab(PAIRS)
    assert vocab[: len(SPECIALS)] == SPECIALS
    assert vocab[NULL_POS] == "<p_n>"
    assert vocab[EOS_POS] == "<p_eos>"
    assert vocab[len(SPECIALS) :] == sorted(vocab[len(SPECIALS) :])


def test_align_first_match_null_and_end():
    assert align(["a", "b", "a"], ["a", "z"]) == [0, NULL_ALIGN, 3]


def test_batch_layout():
    vocab = build_vocab(PAIRS)
    idx = {w: i for i, w in enumerate(vocab)}
    batch = build_batch(PAIRS, vocab)
    assert batch.src_max_len == 5
    assert batch.tgt_max_len == 4
    assert batch.num_timesteps == 8
    assert batch.input.shape == (3, 8)

    # row 1: source "d" left padded, decoder "<t_sos> x d" right padded
    np.testing.assert_array_equal(batch.input[1], [PAD, PAD, idx["d"], S_EOS, T_SOS, idx["x"], idx["d"], PAD])
    np.testing.assert_array_equal(batch.input_mask[1], [0, 0, 1, 1, 1, 1, 1, 0])
    np.testing.assert_array_equal(batch.tgt_output[1], [idx["x"], idx["d"], T_EOS, PAD])
    np.testing.assert_array_equal(batch.src_pos[1], [NULL_ALIGN, 0, 1, NULL_ALIGN])
    # every row has <s_eos> just before the first decoder step
    assert np.all(batch.input[:, batch.src_max_len - 2] == S_EOS)
    assert batch.num_target_words == 4 + 3 + 4


def test_load_pairs(tmp_path):
    path = tmp_path / "pairs.txt"
    path.write_text("a b ||| b a\n\nc ||| c d\n")
    assert load_pairs(str(path)) == [(["a", "b"], ["b", "a"]), (["c"], ["c", "d"])]


def test_load_pairs_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_pairs(str(tmp_path / "missing.txt"))
    bad = tmp_path / "bad.txt"
    bad.write_text("no separator here\n")
    with pytest.raises(ValueError):
        load_pairs(str(bad))


def test_iter_batches_keeps_order():
    chunks = list(iter_batches(list(range(7)), 3))
    assert chunks == [[0, 1, 2], [3, 4, 5], [6]]
