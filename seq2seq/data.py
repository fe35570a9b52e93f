"""
Parallel corpus loading and batch construction.

Layout of one batch row (T = src_max_len + tgt_max_len - 1 timesteps):
  [<pad> ... <pad> x_1 ... x_n <s_eos>] [<t_sos> y_1 ... y_m <pad> ...]
   left-padded source, src_max_len - 1     decoder inputs, tgt_max_len
Decoder outputs are y_1 ... y_m <t_eos>, right padded.
"""

import os
from dataclasses import dataclass

import numpy as np

from .positional import NULL_ALIGN

SPECIALS = ["<pad>", "<s_eos>", "<t_sos>", "<t_eos>", "<p_n>", "<p_eos>", "<unk>"]
PAD, S_EOS, T_SOS, T_EOS, NULL_POS, EOS_POS, UNK = range(len(SPECIALS))


@dataclass
class Batch:
    input: np.ndarray  # (B, T) token ids
    input_mask: np.ndarray  # (B, T) bool
    tgt_output: np.ndarray  # (B, tgt_max_len) token ids
    src_pos: np.ndarray  # (B, tgt_max_len) sentence-relative source position, NULL_ALIGN if none
    src_max_len: int
    tgt_max_len: int

    @property
    def batch_size(self) -> int:
        return self.input.shape[0]

    @property
    def num_timesteps(self) -> int:
        return self.src_max_len + self.tgt_max_len - 1

    @property
    def num_target_words(self) -> int:
        return int(self.input_mask[:, self.src_max_len - 1 :].sum())


def load_pairs(path: str) -> list[tuple[list[str], list[str]]]:
    """Read 'source words ||| target words' lines. Raises FileNotFoundError if missing."""
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Data file not found: {path}")
    pairs = []
    with open(path) as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            if "|||" not in line:
                raise ValueError(f"{path}:{line_no}: expected 'source ||| target'")
            src, tgt = line.split("|||", 1)
            pairs.append((src.split(), tgt.split()))
    return pairs


def build_vocab(pairs: list[tuple[list[str], list[str]]]) -> list[str]:
    """Shared source/target vocabulary: reserved tokens first, then words sorted."""
    words = sorted({w for src, tgt in pairs for w in src + tgt} - set(SPECIALS))
    return SPECIALS + words


def align(src: list[str], tgt: list[str]) -> list[int]:
    """Heuristic alignment per decoder output: first identical source word, else null.
    The closing <t_eos> aligns to the source end (position len(src))."""
    positions = []
    for word in tgt:
        positions.append(src.index(word) if word in src else NULL_ALIGN)
    positions.append(len(src))
    return positions


def build_batch(pairs: list[tuple[list[str], list[str]]], vocab: list[str]) -> Batch:
    index = {w: i for i, w in enumerate(vocab)}
    B = len(pairs)
    src_max_len = max(len(src) for src, _ in pairs) + 2
    tgt_max_len = max(len(tgt) for _, tgt in pairs) + 1
    T = src_max_len + tgt_max_len - 1
    t_dec = src_max_len - 1

    inputs = np.full((B, T), PAD, dtype=np.intp)
    mask = np.zeros((B, T), dtype=bool)
    tgt_output = np.full((B, tgt_max_len), PAD, dtype=np.intp)
    src_pos = np.full((B, tgt_max_len), NULL_ALIGN, dtype=np.intp)

    for b, (src, tgt) in enumerate(pairs):
        src_ids = [index.get(w, UNK) for w in src] + [S_EOS]
        tgt_ids = [index.get(w, UNK) for w in tgt]
        start = t_dec - len(src_ids)
        inputs[b, start:t_dec] = src_ids
        mask[b, start:t_dec] = True
        dec_in = [T_SOS] + tgt_ids
        inputs[b, t_dec : t_dec + len(dec_in)] = dec_in
        mask[b, t_dec : t_dec + len(dec_in)] = True
        tgt_output[b, : len(tgt_ids) + 1] = tgt_ids + [T_EOS]
        src_pos[b, : len(tgt_ids) + 1] = align(src, tgt)

    return Batch(inputs, mask, tgt_output, src_pos, src_max_len, tgt_max_len)


def iter_batches(pairs: list, batch_size: int):
    """Consecutive slices of pairs, in order; the last batch may be smaller."""
    for i in range(0, len(pairs), batch_size):
        yield pairs[i : i + batch_size]
