#!/usr/bin/env python3
"""CLI launcher comparing the scalar and parallel GBM Monte Carlo backends."""
from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Optional, Sequence
import sys

import matplotlib.pyplot as plt

from gbmbench import (
    BenchmarkRunner,
    SimulationError,
    SimulationParameters,
    summarize_terminal_distribution,
)
from gbmbench.benchmark import DEFAULT_SIZES
from gbmbench.config import build_default_parameters
from gbmbench.history import RunHistory
from gbmbench.runtime import SimulationContext, create_simulation_context, fmt
from gbmbench.visualization import (
    FinalPriceRenderer,
    plot_benchmark,
    plot_sample_paths,
    plot_terminal_distribution,
)

DEFAULTS = build_default_parameters()


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Simulate GBM price paths on a scalar and a data-parallel backend and compare timings.",
    )
    parser.add_argument(
        "--backend",
        choices=("scalar", "parallel", "both"),
        default="both",
        help="Which backend(s) to run for a single simulation.",
    )
    parser.add_argument("--entry-price", type=float, default=DEFAULTS.entry_price, help="Initial asset price.")
    parser.add_argument(
        "--average-return",
        type=float,
        default=DEFAULTS.average_return,
        help="Annualised drift.",
    )
    parser.add_argument("--volatility", type=float, default=DEFAULTS.volatility, help="Annualised volatility.")
    parser.add_argument("--days", type=int, default=DEFAULTS.days, help="Trading days per path.")
    parser.add_argument("--paths", type=int, default=DEFAULTS.path_count, help="Number of Monte Carlo paths.")
    parser.add_argument("--seed", type=int, default=None, help="Optional seed for the scalar backend.")
    parser.add_argument(
        "--device",
        type=str,
        default="auto",
        help="Parallel device: auto, cpu, cuda, or explicit device string.",
    )
    parser.add_argument(
        "--benchmark",
        action="store_true",
        help="Time both backends over --sizes path counts.",
    )
    parser.add_argument(
        "--sizes",
        type=int,
        nargs="+",
        default=list(DEFAULT_SIZES),
        help="Path counts used by --benchmark.",
    )
    parser.add_argument(
        "--map-timeout",
        type=float,
        default=None,
        help="Seconds to wait for device readback before failing the parallel run.",
    )
    parser.add_argument(
        "--max-buffer-mb",
        type=float,
        default=None,
        help="Override the device's maximum buffer size in MiB.",
    )
    parser.add_argument(
        "--plot-paths",
        type=int,
        default=12,
        help="Number of scalar paths to include in the line chart.",
    )
    parser.add_argument(
        "--hist-bins",
        type=int,
        default=60,
        help="Number of bins for the terminal distribution histogram.",
    )
    parser.add_argument(
        "--save-dir",
        type=Path,
        default=Path("figures"),
        help="Directory where plots are saved (if not disabled).",
    )
    parser.add_argument(
        "--no-save",
        action="store_true",
        help="Skip saving plot images to disk.",
    )
    parser.add_argument(
        "--show",
        action="store_true",
        help="Display plots interactively after simulation.",
    )
    parser.add_argument(
        "--interactive",
        action="store_true",
        help="Launch a rich interactive CLI wizard to choose simulation options.",
    )
    return parser.parse_args(argv)


def _max_buffer_bytes(megabytes: Optional[float]) -> Optional[int]:
    if megabytes is None:
        return None
    return int(megabytes * 1024 * 1024)


def execute_simulation(
    args: argparse.Namespace,
    *,
    suppress_output: bool = False,
    context: Optional[SimulationContext] = None,
    history: Optional[RunHistory] = None,
) -> dict:
    messages: list[str] = []
    saved_paths: list[Path] = []

    def log(message: str = "") -> None:
        messages.append(message)
        if not suppress_output:
            print(message)

    if context is None:
        context = create_simulation_context(
            device=args.device,
            seed=args.seed,
            max_buffer_size=_max_buffer_bytes(args.max_buffer_mb),
            map_timeout=args.map_timeout,
            save_dir=args.save_dir,
            history=history,
        )

    params = SimulationParameters(
        entry_price=args.entry_price,
        average_return=args.average_return,
        volatility=args.volatility,
        days=args.days,
        path_count=args.paths,
    )

    scalar = None
    parallel = None
    report = None
    summaries = {}

    log(f"Device: {context.device.label}")
    log(f"Paths: {params.path_count}")
    log(f"Days: {params.days}")
    log(f"Entry price: {fmt(params.entry_price)}")
    log(f"Average return: {fmt(params.average_return)}")
    log(f"Volatility: {fmt(params.volatility)}")

    if args.backend in ("scalar", "both"):
        path_result, scalar_ms = context.scalar_engine.run(params)
        context.history.record("scalar", params.path_count, scalar_ms)
        scalar = (path_result, scalar_ms)
        summaries["scalar"] = summarize_terminal_distribution(path_result.terminal_prices)
        log("")
        log(f"Scalar time: {scalar_ms:.4f} ms")

    if args.backend in ("parallel", "both"):
        final_prices, parallel_ms = asyncio.run(context.parallel_engine.run(context.device, params))
        context.history.record("parallel", params.path_count, parallel_ms)
        parallel = (final_prices, parallel_ms)
        summaries["parallel"] = summarize_terminal_distribution(final_prices.prices)
        log("")
        log(f"Parallel time: {parallel_ms:.4f} ms")

    for backend, summary in summaries.items():
        log("")
        log(f"[{backend}] Terminal mean: {fmt(summary.mean)}")
        log(f"[{backend}] Terminal standard deviation: {fmt(summary.standard_deviation)}")
        log(f"[{backend}] 5th percentile: {fmt(summary.quantile_05)}")
        log(f"[{backend}] 95th percentile: {fmt(summary.quantile_95)}")
        log(
            f"[{backend}] 95% CI for mean: ("
            f"{fmt(summary.confidence_interval[0])}, {fmt(summary.confidence_interval[1])})"
        )

    if args.benchmark:
        runner = BenchmarkRunner(context.scalar_engine, context.parallel_engine, base_parameters=params)
        report = asyncio.run(runner.run(context.device, args.sizes))
        log("")
        log("Benchmark:")
        for record in report.records:
            log(
                f"  {record.path_count:>8} paths  scalar {record.scalar_time_ms:10.2f} ms  "
                f"parallel {record.parallel_time_ms:10.2f} ms  speedup x{record.speedup_ratio:.2f}"
            )
        for failure in report.failures:
            log(f"  {failure.path_count:>8} paths  FAILED on {failure.backend}: {failure.error}")

    figures: list[plt.Figure] = []
    if not args.no_save or args.show:
        named: list[tuple[str, plt.Figure]] = []
        if scalar is not None:
            fig_paths, _ = plot_sample_paths(scalar[0], num_paths=args.plot_paths)
            fig_hist, _ = plot_terminal_distribution(scalar[0].terminal_prices, bins=args.hist_bins)
            named.extend([("gbm_paths.png", fig_paths), ("gbm_terminal_hist.png", fig_hist)])
        if parallel is not None:
            fig_points, _ = FinalPriceRenderer().render(parallel[0], params.path_count)
            named.append(("gbm_parallel_prices.png", fig_points))
        if report is not None and report.records:
            fig_bench, _ = plot_benchmark(report)
            named.append(("gbm_benchmark.png", fig_bench))
        figures.extend(fig for _, fig in named)

        if not args.no_save and named:
            context.save_dir.mkdir(parents=True, exist_ok=True)
            log("")
            log("Saved:")
            for name, fig in named:
                target = context.save_dir / name
                fig.savefig(target, dpi=150, bbox_inches="tight", facecolor=fig.get_facecolor())
                saved_paths.append(target)
                log(f"  {target}")

    if args.show:
        plt.show()
    else:
        for fig in figures:
            plt.close(fig)

    return {
        "context": context,
        "parameters": params,
        "scalar": scalar,
        "parallel": parallel,
        "benchmark": report,
        "summaries": summaries,
        "messages": messages,
        "saved_paths": saved_paths,
        "history": context.history,
    }


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    auto_interactive = argv is None and len(sys.argv) == 1 and sys.stdin.isatty() and sys.stdout.isatty()
    try:
        if args.interactive or auto_interactive:
            from gbmbench.ui.interactive import run_interactive_session

            run_interactive_session(args, runner=execute_simulation)
        else:
            execute_simulation(args)
    except SimulationError as exc:
        raise SystemExit(f"error: {exc}") from exc


if __name__ == "__main__":
    main()
