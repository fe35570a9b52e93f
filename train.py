"""
Train the LSTM encoder-decoder by scenario. Loads config from configs/<scenario>.json,
resolves data path, runs training, saves to models/<scenario>/model.json.

Run: python train.py --scenario toy
     python train.py --scenario toy_pointer --timing
     python train.py --config configs/custom.json --output models/custom/model.json
"""

import argparse
import json
import math
import os
import random
import sys
import time

from config import load_config, model_params, resolve_data_path, resolve_model_path
from model import init_model, num_params, save_model
from seq2seq import CostGrad, Gradients, Seq2SeqError, build_batch, build_vocab, load_pairs
from seq2seq.data import iter_batches
from seq2seq.params import get_param, ordered_param_keys


def load_corpus(config: dict) -> list[tuple[list[str], list[str]]]:
    """Load and shuffle sentence pairs. Pairs with more source words than model.source_max_len are dropped."""
    pairs = load_pairs(resolve_data_path(config))
    max_src = config["model"].get("source_max_len")
    if max_src:
        pairs = [p for p in pairs if len(p[0]) <= max_src]
    if not pairs:
        raise ValueError(f"No sentence pairs in {resolve_data_path(config)}")
    random.shuffle(pairs)
    return pairs


def _format_eta(seconds: float) -> str:
    """Format seconds as human-readable ETA (e.g. 26h 23m or 1m 30s)."""
    if seconds <= 0 or not math.isfinite(seconds):
        return "?"
    s = int(round(seconds))
    if s >= 3600:
        h, rest = divmod(s, 3600)
        m = rest // 60
        return f"{h}h {m}m"
    if s >= 60:
        m, sec = divmod(s, 60)
        return f"{m}m {sec}s"
    return f"{s}s"


def grad_norm(grad: Gradients, params: dict, scale: float) -> float:
    total = 0.0
    for key in ordered_param_keys(params):
        g = grad.W_emb if key == "W_emb" else grad.get(key)
        total += float(((g * scale) ** 2).sum())
    return math.sqrt(total)


def sgd_update(
    model: dict, grad: Gradients, params: dict, lr: float, max_grad_norm: float, batch_size: int
) -> float:
    """Plain SGD on batch-normalized gradients, rescaled when the norm exceeds max_grad_norm.
    Embedding rows are updated sparsely. Returns the gradient norm before clipping."""
    scale = 1.0 / batch_size
    norm = grad_norm(grad, params, scale)
    if max_grad_norm and norm > max_grad_norm:
        scale *= max_grad_norm / norm
    for key in ordered_param_keys(params):
        if key == "W_emb":
            model["W_emb"][grad.indices] -= lr * scale * grad.W_emb
        else:
            get_param(model, key)[...] -= lr * scale * grad.get(key)
    return norm


def run_training(
    config: dict,
    output_path: str,
    show_eta: bool = True,
    show_timing: bool = False,
    max_steps: int | None = None,
    save: bool = True,
) -> dict:
    """Run one training run from config and save to output_path.
    If max_steps is set, run at most that many steps. If save is False, do not write the model (for benchmarking).
    Returns {"model", "vocab", "params", "costs"} (costs: per-word cost at every step).
    """
    train_cfg = config["training"]
    seed = train_cfg.get("seed", 42)
    random.seed(seed)
    pairs = load_corpus(config)
    print(f"num pairs: {len(pairs)}")

    vocab = build_vocab(pairs)
    print(f"vocab size: {len(vocab)}")

    params = model_params(config, len(vocab))
    model = init_model(params, seed=seed, init_range=config["model"].get("init_range", 0.1))
    print(f"num params: {num_params(model, params)}")

    batch_size = train_cfg["batch_size"]
    batches = [build_batch(chunk, vocab) for chunk in iter_batches(pairs, batch_size)]
    cost_grad = CostGrad(params)
    lr = train_cfg["learning_rate"]
    max_grad_norm = train_cfg.get("max_grad_norm", 5.0)
    num_steps = train_cfg["num_steps"]

    start_time = time.perf_counter()
    min_steps_for_eta = 2
    steps_limit = num_steps if max_steps is None else min(num_steps, max_steps)
    history = []

    for step in range(steps_limit):
        batch = batches[step % len(batches)]
        t0 = time.perf_counter()
        costs, grad = cost_grad(model, batch)
        t_cost_grad = time.perf_counter() - t0

        t0 = time.perf_counter()
        lr_t = lr * 0.5 * (1 + math.cos(math.pi * step / num_steps))
        norm = sgd_update(model, grad, params, lr_t, max_grad_norm, batch.batch_size)
        t_update = time.perf_counter() - t0

        word_cost = costs.get("word", costs["total"]) / max(1, batch.num_target_words)
        history.append(word_cost)

        if (step + 1) % 100 == 0 or step == 0:
            elapsed = time.perf_counter() - start_time
            steps_done = step + 1
            steps_per_sec = steps_done / elapsed if elapsed > 0 else 0
            remaining = steps_limit - steps_done
            eta_str = _format_eta(remaining / steps_per_sec) if (show_eta and steps_done >= min_steps_for_eta and steps_per_sec > 0) else ""
            line = f"step {steps_done:4d} / {steps_limit:4d} | cost {word_cost:.4f} | grad norm {norm:.3f}"
            if "pos" in costs:
                line += f" | pos {costs['pos'] / max(1, batch.num_target_words):.4f}"
            if steps_per_sec > 0:
                line += f" | {steps_per_sec:.4f} step/s"
            if eta_str:
                line += f" | ETA {eta_str}"
            if show_timing:
                line += f" | cost/grad {t_cost_grad:.2f}s update {t_update:.2f}s"
            print(line)

    result = {"model": model, "vocab": vocab, "params": params, "costs": history}
    elapsed_total = time.perf_counter() - start_time
    if not save:
        steps_per_sec = steps_limit / elapsed_total if elapsed_total > 0 else 0
        full_eta = _format_eta((num_steps - steps_limit) / steps_per_sec) if steps_per_sec > 0 and num_steps > steps_limit else "N/A"
        print(f"Benchmark: {steps_limit} steps in {elapsed_total:.2f}s ({steps_per_sec:.4f} step/s). Full run ({num_steps} steps) would take ~{full_eta}")
        return result

    os.makedirs(os.path.dirname(output_path), exist_ok=True)
    save_model(output_path, model, vocab, params)
    print(f"Saved model to {output_path}")
    return result


def main():
    parser = argparse.ArgumentParser(
        description="Train the LSTM encoder-decoder by scenario.",
        epilog="Scenarios: toy (default), toy_attention, toy_concat, toy_pointer, toy_copy.",
    )
    parser.add_argument("--scenario", "-s", default="toy", help="Scenario name (configs/<scenario>.json)")
    parser.add_argument("--config", "-c", help="Path to config JSON (overrides --scenario)")
    parser.add_argument("--output", "-o", help="Output model path (default: models/<scenario>/model.json)")
    parser.add_argument("--no-eta", action="store_true", help="Do not show ETA in progress")
    parser.add_argument("--timing", action="store_true", help="Show per-step breakdown (cost/grad vs update)")
    parser.add_argument("--steps", type=int, help="Stop after this many steps (default: training.num_steps)")
    parser.add_argument("--dtype", choices=("float32", "float64"), help="Override model numeric precision (default: config)")
    args = parser.parse_args()

    if args.config:
        if not os.path.isfile(args.config):
            print(f"Error: Config file not found: {args.config}", file=sys.stderr)
            sys.exit(1)
        with open(args.config) as f:
            config = json.load(f)
        scenario_name = config.get("name", "custom")
        output_path = args.output or os.path.join(os.path.dirname(os.path.abspath(__file__)), "models", scenario_name, "model.json")
    else:
        try:
            config = load_config(args.scenario)
        except FileNotFoundError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        output_path = args.output or resolve_model_path(args.scenario)

    if args.dtype:
        config["training"]["dtype"] = args.dtype
    try:
        run_training(
            config,
            output_path,
            show_eta=not args.no_eta,
            show_timing=args.timing,
            max_steps=args.steps,
        )
    except (Seq2SeqError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
