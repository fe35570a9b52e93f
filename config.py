"""
Load scenario configs from configs/<scenario>.json.
Resolve paths relative to project root (directory containing configs/).
"""

import json
import os

from seq2seq.params import resolve_params

# Project root: directory containing configs/
_ROOT = os.path.dirname(os.path.abspath(__file__))


def _config_path(scenario: str) -> str:
    return os.path.join(_ROOT, "configs", f"{scenario}.json")


def load_config(scenario: str) -> dict:
    """Load config for a scenario. Raises FileNotFoundError if config does not exist."""
    path = _config_path(scenario)
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Config not found: {path}")
    with open(path) as f:
        return json.load(f)


def resolve_data_path(config: dict) -> str:
    """Return absolute path for data path in config."""
    return os.path.join(_ROOT, config["data"]["path"])


def resolve_model_path(scenario: str) -> str:
    """Return default model path for a scenario: models/<scenario>/model.json."""
    return os.path.join(_ROOT, "models", scenario, "model.json")


def list_scenarios() -> list[str]:
    """Return list of scenario names that have a config file."""
    configs_dir = os.path.join(_ROOT, "configs")
    if not os.path.isdir(configs_dir):
        return []
    return [
        os.path.splitext(f)[0]
        for f in os.listdir(configs_dir)
        if f.endswith(".json")
    ]


def model_params(config: dict, vocab_size: int) -> dict:
    """Per-call options for the cost/grad core from the "model" section (+ training dtype override).
    Raises ConfigurationError on invalid or conflicting options."""
    model_cfg = dict(config["model"])
    model_cfg.pop("init_range", None)
    dtype = config.get("training", {}).get("dtype")
    if dtype:
        model_cfg["numeric_precision"] = dtype
    return resolve_params({**model_cfg, "vocab_size": vocab_size})
