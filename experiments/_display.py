"""Shared terminal output helpers for the experiment runner.

Number formatting, header/footer lines, and the Rich results table.
"""

from __future__ import annotations

from math import floor, log10
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from rich import box
from rich.console import Console
from rich.table import Table

# ---------------------------------------------------------------------------
# Number formatting
# ---------------------------------------------------------------------------

def fmt_sigfig(x: float, n: int = 3) -> str:
    """Format a float to *n* significant figures.

    Uses scientific notation when |x| < 0.001 or |x| > 99999.

    Args:
        x: Value to format.
        n: Number of significant figures.

    Returns:
        Formatted string.
    """
    if not np.isfinite(x):
        if np.isnan(x):
            return "NaN"
        return "inf" if x > 0 else "-inf"
    if x == 0:
        return "0"
    magnitude = floor(log10(abs(x)))
    if magnitude < -3 or magnitude > 4:
        return f"{x:.{n - 1}e}"
    precision = max(0, n - 1 - magnitude)
    return f"{x:.{precision}f}"


def fmt_vector(v: Sequence[float], n: int = 4) -> str:
    """Format a vector as ``[a, b, ...]`` with *n* significant figures."""
    return "[" + ", ".join(fmt_sigfig(float(x), n) for x in v) + "]"


def fmt_wallclock(seconds: float) -> str:
    """Format wall-clock seconds as a human-readable string.

    Returns:
        ``"0.004s"``, ``"12.3s"``, ``"2m 34s"``, or ``"1h 12m"``.
    """
    if seconds < 1:
        return f"{seconds:.3f}s"
    if seconds < 60:
        return f"{seconds:.1f}s"
    if seconds < 3600:
        m, s = divmod(int(seconds), 60)
        return f"{m}m {s:02d}s"
    h, rem = divmod(int(seconds), 3600)
    m = rem // 60
    return f"{h}h {m:02d}m"


# ---------------------------------------------------------------------------
# Header / footer
# ---------------------------------------------------------------------------

def log_header(
    console: Console,
    config_path: str,
    oracle_type: str,
    dim: int,
    n_seeds: int,
    mode: str = "scan",
    *,
    hparams: Optional[Dict[str, Any]] = None,
) -> None:
    """Print a standardized header with auto-timestamps.

    Args:
        console: Rich console.
        config_path: Path to the YAML config file.
        oracle_type: Oracle registry name.
        dim: Dimensionality of the problem.
        n_seeds: Number of recursive-mode seeds.
        mode: ``"scan"`` or ``"eager"``.
        hparams: Optional dict of key hyperparameters shown on a dim line.
    """
    console.log(f"Loading config from {config_path}")
    console.log(f"Oracle: {oracle_type}, d={dim}")
    console.log(f"Running batch + {n_seeds} recursive seeds ({mode})")
    if hparams:
        parts = [f"{k}={v}" for k, v in hparams.items()]
        console.print(f"  {'  '.join(parts)}", style="dim")


def log_footer(console: Console, path: str, message: str = "Results saved to") -> None:
    """Print a standardized footer with green checkmark."""
    console.log(f"[green]✓[/green] {message} {path}")


# ---------------------------------------------------------------------------
# Results table
# ---------------------------------------------------------------------------

def build_results_table(rows: List[Dict[str, Any]]) -> Table:
    """Build the per-run results table.

    Args:
        rows: One dict per run with keys ``"label"``, ``"estimate"``,
            ``"cost"``, ``"weight_total"`` (``None`` for batch runs),
            ``"ess"`` (``None`` for recursive runs) and ``"wall_clock"``.

    Returns:
        A Rich :class:`~rich.table.Table`.
    """
    table = Table(title="Barycenters", box=box.ROUNDED, show_lines=False)
    table.add_column("Run", style="bold")
    table.add_column("Estimate")
    table.add_column("Cost", justify="right")
    table.add_column("Weight Total", justify="right")
    table.add_column("ESS", justify="right")
    table.add_column("Wall Clock", justify="right")

    for row in rows:
        wt = row.get("weight_total")
        ess = row.get("ess")
        table.add_row(
            row["label"],
            fmt_vector(row["estimate"]),
            fmt_sigfig(row["cost"]),
            "-" if wt is None else fmt_sigfig(wt),
            "-" if ess is None else fmt_sigfig(ess),
            fmt_wallclock(row["wall_clock"]),
        )
    return table
