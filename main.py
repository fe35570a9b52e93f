"""
Scoring: load a saved model and report the cost of a parallel corpus (no gradients).
Model can be selected by path (--model) or by scenario (--scenario).
Fails immediately if the model file does not exist.

Run: python main.py --scenario toy
     python main.py --scenario toy --data data/toy/train.txt --batch-size 4
     python main.py --model models/toy_pointer/model.json
"""

import argparse
import math
import os
import sys

from config import load_config, resolve_data_path, resolve_model_path
from model import load_model
from seq2seq import CostGrad, Seq2SeqError, build_batch, load_pairs
from seq2seq.data import iter_batches


def resolve_model_path_from_args(args) -> str:
    """Resolve model path from --model or --scenario. Exits with error if file missing."""
    if args.model:
        path = args.model
    else:
        scenario = args.scenario or "toy"
        try:
            load_config(scenario)  # ensure scenario exists
        except FileNotFoundError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        path = resolve_model_path(scenario)

    if not os.path.isfile(path):
        hint = (
            f"Train first with: python train.py --scenario {args.scenario or 'toy'}"
            if not args.model
            else "Ensure the model file exists or train with: python train.py --scenario <name>"
        )
        print(f"Error: Model not found: {path}\n{hint}", file=sys.stderr)
        sys.exit(1)
    return path


def score_pairs(data: dict, pairs: list, batch_size: int) -> dict:
    """Summed costs over all batches plus the number of scored target words."""
    cost_grad = CostGrad(data["params"])
    totals = {"total": 0.0}
    num_words = 0
    for chunk in iter_batches(pairs, batch_size):
        batch = build_batch(chunk, data["vocab"])
        costs, _ = cost_grad(data["model"], batch, is_test=True)
        for k, v in costs.items():
            totals[k] = totals.get(k, 0.0) + v
        num_words += batch.num_target_words
    totals["num_words"] = num_words
    return totals


def main():
    parser = argparse.ArgumentParser(description="Score a parallel corpus with a trained LSTM encoder-decoder.")
    parser.add_argument("--model", "-m", help="Path to saved model (e.g. models/toy/model.json)")
    parser.add_argument("--scenario", "-s", help="Scenario name → models/<scenario>/model.json (default: toy if no --model)")
    parser.add_argument("--data", "-d", help="Corpus to score (default: the scenario's data path)")
    parser.add_argument("--batch-size", "-b", type=int, default=16, help="Sentence pairs per batch")
    args = parser.parse_args()

    if not args.model and not args.scenario:
        args.scenario = "toy"
    model_path = resolve_model_path_from_args(args)
    data = load_model(model_path)

    if args.data:
        data_path = args.data
    elif args.scenario:
        data_path = resolve_data_path(load_config(args.scenario))
    else:
        print("Error: --data is required with --model", file=sys.stderr)
        sys.exit(1)

    max_src = data["params"]["source_max_len"]
    try:
        pairs = [p for p in load_pairs(data_path) if len(p[0]) <= max_src]
        totals = score_pairs(data, pairs, args.batch_size)
    except (Seq2SeqError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print("--- scoring ---")
    num_words = max(1, totals["num_words"])
    word_cost = totals.get("word", totals["total"])
    print(f"pairs: {len(pairs)} | target words: {totals['num_words']}")
    print(f"total cost: {totals['total']:.4f}")
    if "pos" in totals:
        print(f"word cost: {word_cost:.4f} | pos cost: {totals['pos']:.4f}")
    print(f"per-word cost: {word_cost / num_words:.4f} | perplexity: {math.exp(word_cost / num_words):.3f}")


if __name__ == "__main__":
    main()
