"""Tests for per-timestep masks and source start detection."""

import numpy as np
import pytest

from seq2seq.errors import ShapeError
from seq2seq.masking import apply_mask, build_mask_info, mask_columns, source_starts


def test_mask_info_per_timestep():
    mask = np.array([[True, False, True], [False, False, True]])
    infos = build_mask_info(mask)
    assert len(infos) == 3
    np.testing.assert_array_equal(infos[0].unmasked_ids, [0])
    np.testing.assert_array_equal(infos[0].masked_ids, [1])
    assert infos[1].num_real == 0
    assert infos[2].masked_ids.size == 0


def test_mask_info_rejects_one_dimensional_mask():
    with pytest.raises(ShapeError):
        build_mask_info(np.array([True, False]))


def test_apply_mask_returns_zeroed_copies():
    info = build_mask_info(np.array([[True], [False], [True]]))[0]
    a = np.ones((2, 3))
    (masked,) = apply_mask(info, a)
    np.testing.assert_array_equal(masked, [[1, 0, 1], [1, 0, 1]])
    assert np.all(a == 1)


def test_mask_columns_in_place():
    info = build_mask_info(np.array([[False], [True]]))[0]
    a = np.ones((2, 2))
    b = np.full((1, 2), 3.0)
    mask_columns(info, a, b)
    np.testing.assert_array_equal(a, [[0, 1], [0, 1]])
    np.testing.assert_array_equal(b, [[0, 3]])


def test_source_starts_left_padded():
    # src_max_len 5: source columns 0..3 (the last one is <s_eos>)
    mask = np.array([
        [True, True, True, True, True, True],
        [False, False, True, True, True, False],
        [False, False, False, False, True, True],
    ])
    np.testing.assert_array_equal(source_starts(mask, 5), [0, 2, 4])
