"""Tests for model: initialization, configs, save/load."""

import numpy as np
import pytest

from config import list_scenarios, load_config, model_params, resolve_data_path, resolve_model_path
from model import init_model, load_model, num_params, save_model
from seq2seq import ConfigurationError, CostGrad, build_batch, build_vocab, param_shapes


def _params(**options):
    config = {"model": {"num_layers": 2, "hidden_size": 4, "source_max_len": 6, "init_range": 0.2, **options}}
    return model_params(config, 12)


def test_init_model_shapes():
    params = _params(positional_mode=2)
    model = init_model(params, seed=0)
    shapes = param_shapes(params)
    assert model["W_emb"].shape == shapes["W_emb"] == (12, 4)
    assert [w.shape for w in model["W_src"]] == [(16, 8), (16, 8)]
    assert [w.shape for w in model["W_tgt"]] == [(16, 12), (16, 8)]
    assert model["W_soft_pos"].shape == (8, 4)
    assert "W_h" not in model
    assert num_params(model, params) == sum(int(np.prod(s)) for s in shapes.values())


def test_init_range_and_seed():
    params = _params()
    a = init_model(params, seed=5, init_range=0.05)
    b = init_model(params, seed=5, init_range=0.05)
    np.testing.assert_array_equal(a["W_soft"], b["W_soft"])
    assert np.abs(a["W_soft"]).max() <= 0.05


def test_output_projection_only_for_attention_and_copy():
    assert "W_h" in param_shapes(_params(attention=True))
    assert "W_h" in param_shapes(_params(positional_mode=3))
    assert "W_h" not in param_shapes(_params(positional_mode=1))


def test_save_load_roundtrip(tmp_path):
    pairs = [(["a", "b"], ["b", "a"]), (["c"], ["c", "z"])]
    vocab = build_vocab(pairs)
    params = model_params({"model": {"num_layers": 1, "hidden_size": 4, "positional_mode": 3}}, len(vocab))
    model = init_model(params, seed=1)
    path = tmp_path / "model.json"
    save_model(str(path), model, vocab, params)

    data = load_model(str(path))
    assert data["vocab"] == vocab
    assert data["params"] == params
    batch = build_batch(pairs, vocab)
    before = CostGrad(params)(model, batch, is_test=True)[0]["total"]
    after = CostGrad(data["params"])(data["model"], batch, is_test=True)[0]["total"]
    assert after == pytest.approx(before, rel=1e-12)


def test_scenario_configs_resolve():
    names = list_scenarios()
    for name in ("toy", "toy_attention", "toy_concat", "toy_pointer", "toy_copy"):
        assert name in names
        config = load_config(name)
        params = model_params(config, 30)
        assert "init_range" not in params
        assert resolve_data_path(config).endswith(config["data"]["path"])
    assert resolve_model_path("toy").endswith("model.json")


def test_missing_config():
    with pytest.raises(FileNotFoundError):
        load_config("no_such_scenario")


def test_dtype_override():
    config = load_config("toy")
    config["training"]["dtype"] = "float32"
    assert model_params(config, 30)["numeric_precision"] == "float32"


def test_conflicting_model_section():
    config = {"model": {"attention": True, "positional_mode": 2}}
    with pytest.raises(ConfigurationError):
        model_params(config, 30)
