"""
Run a short training benchmark to measure steps/sec and estimate full-run time.
Uses the same code path as train.py but runs only N steps and does not save the model.

Examples:
  python scripts/benchmark_train.py --scenario toy --steps 5
  python scripts/benchmark_train.py --scenario toy_copy --steps 20 --dtype float32
"""

import argparse
import os
import sys

# Project root
_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)

from train import run_training
from config import load_config, resolve_model_path


def main():
    parser = argparse.ArgumentParser(description="Benchmark training for a scenario (no model saved).")
    parser.add_argument("--scenario", "-s", default="toy", help="Scenario name (default: toy)")
    parser.add_argument("--steps", "-n", type=int, default=5, help="Number of steps to run (default: 5)")
    parser.add_argument("--dtype", choices=("float32", "float64"), help="Override model numeric precision")
    args = parser.parse_args()

    try:
        config = load_config(args.scenario)
    except FileNotFoundError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if args.dtype:
        config["training"]["dtype"] = args.dtype
    output_path = resolve_model_path(args.scenario)
    run_training(
        config,
        output_path,
        show_eta=True,
        show_timing=True,
        max_steps=args.steps,
        save=False,
    )


if __name__ == "__main__":
    main()
