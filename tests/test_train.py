"""Tests for training and scoring: short runs, SGD update, CLI fail-fast."""

import math
import os
import subprocess
import sys

import numpy as np
import pytest

from config import load_config
from main import score_pairs
from model import init_model, load_model
from seq2seq import CostGrad, build_batch, build_vocab
from seq2seq.params import get_param, ordered_param_keys
from train import _format_eta, load_corpus, run_training, sgd_update

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _short_config(scenario, steps=3):
    config = load_config(scenario)
    config["training"]["num_steps"] = steps
    config["model"]["hidden_size"] = 6
    return config


@pytest.mark.parametrize("scenario", ["toy", "toy_attention", "toy_concat", "toy_pointer", "toy_copy"])
def test_training_runs(scenario):
    result = run_training(_short_config(scenario), "unused.json", show_eta=False, save=False)
    assert len(result["costs"]) == 3
    assert all(math.isfinite(c) and c > 0 for c in result["costs"])


def test_training_lowers_cost():
    config = _short_config("toy", steps=60)
    config["training"]["batch_size"] = 40
    result = run_training(config, "unused.json", show_eta=False, save=False)
    assert result["costs"][-1] < result["costs"][0]


def test_max_steps_and_save(tmp_path):
    path = tmp_path / "toy" / "model.json"
    result = run_training(_short_config("toy_pointer", steps=10), str(path), show_eta=False, max_steps=2)
    assert len(result["costs"]) == 2
    data = load_model(str(path))
    assert data["vocab"] == result["vocab"]
    for key in ordered_param_keys(data["params"]):
        np.testing.assert_allclose(get_param(data["model"], key), get_param(result["model"], key))


def test_sgd_update_touches_only_gradient_rows():
    pairs = [(["a"], ["a"])]
    vocab = build_vocab(pairs)
    params = {"vocab_size": len(vocab), "hidden_size": 4}
    model = init_model(CostGrad(params).params, seed=0)
    before = model["W_emb"].copy()
    batch = build_batch(pairs, vocab)
    _, grad = CostGrad(params)(model, batch)
    norm = sgd_update(model, grad, CostGrad(params).params, lr=0.1, max_grad_norm=5.0, batch_size=1)
    assert norm > 0
    untouched = np.setdiff1d(np.arange(len(vocab)), grad.indices)
    np.testing.assert_array_equal(model["W_emb"][untouched], before[untouched])
    assert np.any(model["W_emb"][grad.indices] != before[grad.indices])


def test_load_corpus_drops_long_sources():
    config = load_config("toy")
    config["model"]["source_max_len"] = 2
    pairs = load_corpus(config)
    assert pairs and all(len(src) <= 2 for src, _ in pairs)


def test_score_pairs():
    config = _short_config("toy_copy")
    result = run_training(config, "unused.json", show_eta=False, save=False)
    pairs = load_corpus(config)
    totals = score_pairs(result, pairs, batch_size=7)
    assert totals["num_words"] == sum(len(tgt) + 1 for _, tgt in pairs)
    assert totals["total"] == pytest.approx(totals["word"] + totals["pos"])


def test_format_eta():
    assert _format_eta(0) == "?"
    assert _format_eta(90) == "1m 30s"
    assert _format_eta(3 * 3600 + 120) == "3h 2m"


def test_scoring_fail_fast_missing_model():
    """Scoring with a non-existent model exits with non-zero and prints error."""
    result = subprocess.run(
        [sys.executable, "main.py", "--model", "/nonexistent/model.json"],
        cwd=ROOT,
        capture_output=True,
        text=True,
    )
    assert result.returncode != 0
    assert "not found" in result.stderr.lower()


def test_train_unknown_scenario():
    result = subprocess.run(
        [sys.executable, "train.py", "--scenario", "no_such_scenario"],
        cwd=ROOT,
        capture_output=True,
        text=True,
    )
    assert result.returncode != 0
    assert "Error" in result.stderr
