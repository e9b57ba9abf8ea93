"""Example driver for batch and recursive barycenters.

Loads a YAML config, builds the oracle, computes the batch barycenter of
the configured candidates, runs the recursive estimator once per seed,
times everything, and saves results.

Usage:
    python -m experiments.run experiments/configs/quadratic_2d.yaml
    python -m experiments.run experiments/configs/quadratic_2d.yaml --debug   # eager loop, no scan
"""

from __future__ import annotations

import argparse
import functools
import json
import os
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import jax
import numpy as np
import yaml
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from expbary.batch import batch_weights
from expbary.oracles import get_oracle
from expbary.recursive import make_scan, run, run_scan
from expbary.types import BatchConfig, RecursiveConfig, as_candidates
from expbary.weights import effective_sample_size
from experiments._display import build_results_table, log_footer, log_header

console = Console()

DEBUG = os.environ.get("EXPBARY_DEBUG", "0") == "1"

_BATCH_FIELDS = ("nu", "allow_zero_cost", "max_workers")
_RECURSIVE_FIELDS = ("nu", "sigma", "zeta", "lambda_", "iterations")


# ---------------------------------------------------------------------------
# Config loading
# ---------------------------------------------------------------------------

def load_config(path: str) -> dict:
    """Load a YAML experiment config from disk.

    Args:
        path: Path to a ``.yaml`` file.

    Returns:
        Parsed config dict with an ``experiment`` top-level key.
    """
    with open(path) as f:
        return yaml.safe_load(f)


def _pick(raw: dict, fields) -> dict:
    # YAML has no way to spell "lambda_" naturally, so accept "lambda" too.
    if "lambda" in raw and "lambda_" not in raw:
        raw = {**raw, "lambda_": raw["lambda"]}
    return {k: raw[k] for k in fields if k in raw}


def build_batch_config(raw: Optional[dict]) -> BatchConfig:
    """Build a :class:`BatchConfig` from the ``batch`` YAML section."""
    return BatchConfig(**_pick(raw or {}, _BATCH_FIELDS))


def build_recursive_config(raw: Optional[dict]) -> RecursiveConfig:
    """Build a :class:`RecursiveConfig` from the ``recursive`` YAML section."""
    return RecursiveConfig(**_pick(raw or {}, _RECURSIVE_FIELDS))


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

def run_experiment(cfg: dict, debug: bool = False) -> Dict[str, Any]:
    """Run the batch and recursive sections of a parsed config.

    Args:
        cfg: Parsed config with an ``experiment`` key.
        debug: Use the eager Python loop for recursive runs even when
            the config asks for ``jit``.

    Returns:
        ``{"batch": row or None, "recursive": [row, ...]}`` where each row
        holds ``label``, ``estimate`` (list), ``cost``, ``weight_total``,
        ``ess`` (effective sample size of the batch weights, ``None`` for
        recursive rows) and ``wall_clock`` (seconds).
    """
    exp = cfg["experiment"]
    oracle_cfg = exp.get("oracle", {"type": "sum_of_squares"})
    oracle = get_oracle(oracle_cfg["type"], **oracle_cfg.get("params", {}))
    seeds: List[int] = exp.get("seeds", [0])

    results: Dict[str, Any] = {"batch": None, "recursive": []}

    batch_raw = exp.get("batch")
    if batch_raw is not None:
        config = build_batch_config(batch_raw)
        t0 = time.perf_counter()
        xs = as_candidates(batch_raw["candidates"])
        w = batch_weights(oracle, xs, config)
        bary = w @ xs
        bary.block_until_ready()
        results["batch"] = {
            "label": "batch",
            "estimate": np.asarray(bary).tolist(),
            "cost": float(oracle(bary)),
            "weight_total": None,
            "ess": effective_sample_size(w),
            "wall_clock": time.perf_counter() - t0,
        }

    rec_raw = exp.get("recursive")
    if rec_raw is not None:
        config = build_recursive_config(rec_raw)
        use_scan = bool(rec_raw.get("jit", True)) and not debug
        if use_scan:
            runner = functools.partial(run_scan, scan=make_scan(oracle, config))
        else:
            runner = run

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task_id = progress.add_task("  recursive", total=len(seeds))
            for seed in seeds:
                t0 = time.perf_counter()
                state = runner(oracle, rec_raw["x0"], config, key=jax.random.PRNGKey(seed))
                state.estimate.block_until_ready()
                results["recursive"].append({
                    "label": f"recursive (seed {seed})",
                    "estimate": np.asarray(state.estimate).tolist(),
                    "cost": float(oracle(state.estimate)),
                    "weight_total": float(state.weight_total),
                    "ess": None,
                    "wall_clock": time.perf_counter() - t0,
                })
                progress.advance(task_id)

    return results


# ---------------------------------------------------------------------------
# Results I/O
# ---------------------------------------------------------------------------

def save_results(out_dir: str, cfg: dict, results: Dict[str, Any]) -> str:
    """Write ``config.yaml`` and ``results.json`` into *out_dir*.

    Returns:
        Output directory path.
    """
    os.makedirs(out_dir, exist_ok=True)

    with open(os.path.join(out_dir, "config.yaml"), "w") as f:
        yaml.dump(cfg, f, default_flow_style=False)

    with open(os.path.join(out_dir, "results.json"), "w") as f:
        json.dump(results, f, indent=2)

    return out_dir


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(
    config_path: Optional[str] = None,
    debug: bool = False,
    output: Optional[str] = None,
) -> Dict[str, Any]:
    """Run an experiment from a YAML config.

    Args:
        config_path: Path to YAML config.  If None, parses from CLI.
        debug: If True, use the eager loop instead of ``lax.scan``.
        output: Results directory.  Defaults to
            ``results/<name>/<timestamp>``.

    Returns:
        Results dict from :func:`run_experiment`.
    """
    if config_path is None:
        parser = argparse.ArgumentParser(description="Barycenter experiment runner")
        parser.add_argument("config", help="Path to YAML config file")
        parser.add_argument("--debug", action="store_true", help="Eager loop, no scan")
        parser.add_argument("--output", default=None, help="Results directory")
        args = parser.parse_args()
        config_path = args.config
        debug = args.debug
        output = args.output

    debug = debug or DEBUG

    cfg = load_config(config_path)
    exp = cfg["experiment"]
    oracle_type = exp.get("oracle", {}).get("type", "sum_of_squares")
    rec_raw = exp.get("recursive") or {}
    batch_raw = exp.get("batch") or {}
    if "x0" in rec_raw:
        dim = len(rec_raw["x0"])
    else:
        dim = len(batch_raw.get("candidates", [[]])[0])

    hparams = {k: rec_raw[k] for k in ("nu", "sigma", "zeta", "lambda_", "iterations") if k in rec_raw}
    log_header(
        console, config_path, oracle_type, dim, len(exp.get("seeds", [0])),
        mode="eager" if debug or not rec_raw.get("jit", True) else "scan",
        hparams=hparams,
    )

    results = run_experiment(cfg, debug=debug)

    rows = ([results["batch"]] if results["batch"] else []) + results["recursive"]
    console.print(build_results_table(rows))

    if output is None:
        timestamp = datetime.now().strftime("%Y-%m-%d_%H%M%S")
        output = os.path.join("results", exp.get("name", "experiment"), timestamp)
    save_results(output, cfg, results)
    log_footer(console, f"{output}/")

    return results


if __name__ == "__main__":
    main()
