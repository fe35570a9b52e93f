"""
Finite-difference check of the analytic gradients on one batch of a scenario's corpus.
Always runs in float64 (central differences are meaningless in float32).

Examples:
  python scripts/grad_check.py --scenario toy_pointer
  python scripts/grad_check.py --scenario toy_attention --checks 10 --batch-size 3
"""

import argparse
import os
import sys

_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)

from config import load_config, model_params
from model import init_model
from seq2seq import build_batch, build_vocab, numerical_grad_check, relative_error
from train import load_corpus


def main():
    parser = argparse.ArgumentParser(description="Compare analytic and numerical gradients for a scenario.")
    parser.add_argument("--scenario", "-s", default="toy", help="Scenario name (default: toy)")
    parser.add_argument("--checks", "-n", type=int, default=5, help="Entries checked per parameter (default: 5)")
    parser.add_argument("--batch-size", "-b", type=int, default=4, help="Sentence pairs in the batch (default: 4)")
    parser.add_argument("--tol", type=float, default=1e-5, help="Largest acceptable relative error")
    args = parser.parse_args()

    try:
        config = load_config(args.scenario)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        sys.exit(1)

    config["training"]["dtype"] = "float64"
    pairs = load_corpus(config)
    vocab = build_vocab(pairs)
    params = model_params(config, len(vocab))
    model = init_model(params, seed=config["training"].get("seed", 42), init_range=config["model"].get("init_range", 0.1))
    batch = build_batch(pairs[: args.batch_size], vocab)

    worst = 0.0
    for key, idx, analytic, numeric in numerical_grad_check(model, batch, params, num_checks=args.checks):
        err = relative_error(analytic, numeric)
        worst = max(worst, err)
        flag = "" if err <= args.tol else "  <-- FAIL"
        print(f"{key:12s} {str(idx):12s} analytic {analytic: .6e} numeric {numeric: .6e} rel err {err:.2e}{flag}")
    print(f"max relative error: {worst:.2e}")
    return 0 if worst <= args.tol else 1


if __name__ == "__main__":
    sys.exit(main())
