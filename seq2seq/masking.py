"""Per-timestep padding masks: which batch columns hold real tokens."""

from dataclasses import dataclass

import numpy as np

from .errors import ShapeError


@dataclass(frozen=True)
class MaskInfo:
    mask: np.ndarray  # (B,) bool, True = real token
    unmasked_ids: np.ndarray
    masked_ids: np.ndarray

    @property
    def num_real(self) -> int:
        return int(self.unmasked_ids.size)


def build_mask_info(input_mask: np.ndarray) -> list[MaskInfo]:
    """One MaskInfo per timestep from a (B, T) boolean mask. Shared by every layer of a timestep."""
    if input_mask.ndim != 2:
        raise ShapeError(f"input_mask: expected (B, T), got {input_mask.shape}")
    mask = np.asarray(input_mask, dtype=bool)
    infos = []
    for t in range(mask.shape[1]):
        col = mask[:, t].copy()
        infos.append(MaskInfo(col, np.flatnonzero(col), np.flatnonzero(~col)))
    return infos


def apply_mask(info: MaskInfo, *arrays: np.ndarray) -> tuple[np.ndarray, ...]:
    """Copies of (rows, B) arrays with padded columns zeroed."""
    out = []
    for arr in arrays:
        arr = arr.copy()
        arr[:, info.masked_ids] = 0
        out.append(arr)
    return tuple(out)


def mask_columns(info: MaskInfo, *arrays: np.ndarray) -> None:
    """Zero padded columns in place (backward of apply_mask)."""
    if info.masked_ids.size == 0:
        return
    for arr in arrays:
        arr[:, info.masked_ids] = 0


def source_starts(input_mask: np.ndarray, src_max_len: int) -> np.ndarray:
    """First real source timestep per row (source side is left padded).

    Rows with no real source token get src_max_len - 1.
    """
    src = np.asarray(input_mask[:, : src_max_len - 1], dtype=bool)
    n_src = src.shape[1]
    starts = np.full(src.shape[0], n_src, dtype=np.intp)
    has_real = src.any(axis=1)
    starts[has_real] = src[has_real].argmax(axis=1)
    return starts
