"""Command line entry point: ``parity-allocator {optimize,backtest,report}``.

Prices are read from a wide CSV (a date column followed by one column per
asset). Every subcommand prints a JSON document on stdout.
"""

from __future__ import annotations

import argparse
import json
import logging
import math
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

import numpy as np
import yaml

from .analytics.compare import compare_strategies
from .analytics.stress import find_worst_period
from .backtest.backtest import RebalancePolicy, run_backtest
from .data.calendars import FREQUENCIES
from .data.series import load_prices_csv
from .estimation import estimate_covariance
from .exceptions import ParityAllocatorError
from .optimizer import OptimizationObjective, SolverConfig, optimize
from .pipeline import PipelineConfig, build_risk_budget_portfolio

logger = logging.getLogger(__name__)

OBJECTIVES = [obj.value for obj in OptimizationObjective]


def _load_run_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        data = yaml.safe_load(text)
    elif suffix == ".json":
        data = json.loads(text)
    else:
        raise ValueError(f"Unsupported config format '{suffix}'; use .yaml, .yml or .json")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("Run config must evaluate to a mapping")
    return {str(key).replace("-", "_"): value for key, value in data.items()}


def _float_list(text: str) -> List[float]:
    try:
        return [float(item) for item in text.split(",") if item.strip()]
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected comma separated numbers, got '{text}'") from exc


def _json_default(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if hasattr(value, "isoformat"):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _scrub(value: Any) -> Any:
    """Replace NaN/inf with ``None`` so the output stays strict JSON."""

    if isinstance(value, np.ndarray):
        return _scrub(value.tolist())
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {key: _scrub(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(item) for item in value]
    return value


def _add_data_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--prices", type=str, default=None, help="Wide CSV of prices (date + one column per asset)")
    parser.add_argument("--dividends", type=str, default=None, help="Optional wide CSV of per-share dividends")


def _add_solver_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--objective", choices=OBJECTIVES, default="risk_parity")
    parser.add_argument("--budget", type=_float_list, default=None, help="Risk budget, e.g. 0.5,0.3,0.2")
    parser.add_argument("--target-return", type=float, default=None)
    parser.add_argument("--risk-free", type=float, default=0.0)
    parser.add_argument("--max-iter", type=int, default=1000)
    parser.add_argument("--tol", type=float, default=1e-6)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--refine", action="store_true", help="Polish GMV/MVO fallbacks with SLSQP")


def _add_policy_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--frequency", choices=list(FREQUENCIES), default="quarterly")
    parser.add_argument("--cost", type=float, default=0.001, help="Proportional transaction cost")
    parser.add_argument("--initial-value", type=float, default=10_000.0)
    parser.add_argument(
        "--no-reinvest",
        dest="reinvest_dividends",
        action="store_false",
        help="Hold dividends as cash and report the reinvestment opportunity cost",
    )


def build_parser() -> argparse.ArgumentParser:
    """Construct the argument parser for the allocator CLI."""

    parser = argparse.ArgumentParser(prog="parity-allocator", description="Risk-budget portfolio toolkit")
    parser.add_argument("--config", type=str, default=None, help="YAML/JSON file containing run parameters")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    opt = sub.add_parser("optimize", help="Estimate covariance and solve for weights")
    _add_data_args(opt)
    _add_solver_args(opt)
    opt.add_argument("--total-return", action="store_true", help="Fold dividends into risk estimates")

    bt = sub.add_parser("backtest", help="Replay weights over the price history")
    _add_data_args(bt)
    _add_solver_args(bt)
    _add_policy_args(bt)
    bt.add_argument("--weights", type=_float_list, default=None, help="Fixed weights; otherwise optimize on the same data")
    bt.add_argument("--compare", action="store_true", help="Also backtest the equal-weight portfolio")
    bt.add_argument("--worst-window", type=int, default=30)
    bt.add_argument("--include-series", action="store_true")

    rep = sub.add_parser("report", help="Fit on the first half, evaluate on the second")
    _add_data_args(rep)
    rep.add_argument("--budget", type=_float_list, default=None, help="Risk budget in percent or fractions")
    rep.add_argument("--target-volatility", type=float, default=None)
    rep.add_argument("--split-fraction", type=float, default=0.5)
    rep.add_argument("--frequency", choices=list(FREQUENCIES), default="quarterly")
    rep.add_argument("--cost", type=float, default=0.001)
    rep.add_argument("--include-series", action="store_true")
    return parser


def _subparser(parser: argparse.ArgumentParser, command: str) -> argparse.ArgumentParser:
    for action in parser._actions:
        if isinstance(action, argparse._SubParsersAction):
            return action.choices[command]
    raise KeyError(command)


def _apply_config(parser: argparse.ArgumentParser, command: str, config: Mapping[str, Any]) -> None:
    target = _subparser(parser, command)
    top_level = {"log_level"}
    known = {action.dest for action in target._actions} | top_level
    unknown = sorted(set(config) - known)
    if unknown:
        parser.error(f"Unknown config keys for '{command}': {', '.join(unknown)}")
    parser.set_defaults(**{key: value for key, value in config.items() if key in top_level})
    target.set_defaults(**{key: value for key, value in config.items() if key not in top_level})


def _solver_config(args: argparse.Namespace) -> SolverConfig:
    return SolverConfig(
        max_iter=args.max_iter,
        tol=args.tol,
        risk_free=args.risk_free,
        seed=args.seed,
        refine=args.refine,
    )


def _solve(args: argparse.Namespace, series, total_return: bool = False):
    estimate = estimate_covariance(series, total_return=total_return)
    result = optimize(
        args.objective,
        estimate.covariance,
        expected_returns=estimate.expected_returns,
        budget=args.budget,
        target_return=args.target_return,
        config=_solver_config(args),
    )
    return estimate, result


def _run_optimize(args: argparse.Namespace) -> Dict[str, Any]:
    series = load_prices_csv(args.prices, args.dividends)
    estimate, result = _solve(args, series, total_return=args.total_return)
    return {
        "assets": list(series.assets),
        "result": result.to_dict(),
        "expected_returns": estimate.expected_returns,
        "correlation_matrix": estimate.correlation,
        "average_correlation": estimate.average_correlation,
    }


def _run_backtest(args: argparse.Namespace) -> Dict[str, Any]:
    series = load_prices_csv(args.prices, args.dividends)
    payload: Dict[str, Any] = {"assets": list(series.assets)}
    if args.weights is not None:
        weights = np.asarray(args.weights, dtype=float)
    else:
        _, result = _solve(args, series)
        weights = result.weights
        payload["optimization"] = result.to_dict()
    policy = RebalancePolicy(frequency=args.frequency, transaction_cost_rate=args.cost)
    backtest = run_backtest(
        series,
        None,
        weights,
        policy,
        initial_value=args.initial_value,
        reinvest_dividends=args.reinvest_dividends,
    )
    payload["backtest"] = backtest.to_dict(include_series=args.include_series)
    worst = find_worst_period(backtest.values, backtest.dates, args.worst_window)
    payload["worst_period"] = {"start": worst.start, "end": worst.end, "loss": worst.loss}
    if args.compare:
        comparison = compare_strategies(
            series,
            None,
            weights,
            policy,
            args.reinvest_dividends,
            initial_value=args.initial_value,
        )
        payload["comparison"] = comparison.to_dict()
    return payload


def _run_report(args: argparse.Namespace) -> Dict[str, Any]:
    series = load_prices_csv(args.prices, args.dividends)
    config = PipelineConfig(
        budget=args.budget,
        target_volatility=args.target_volatility,
        split_fraction=args.split_fraction,
        frequency=args.frequency,
        transaction_cost_rate=args.cost,
    )
    report = build_risk_budget_portfolio(series, config)
    return report.to_dict(include_series=args.include_series)


COMMANDS = {
    "optimize": _run_optimize,
    "backtest": _run_backtest,
    "report": _run_report,
}


def main(args: Optional[Iterable[str]] = None) -> int:
    argv = list(args) if args is not None else sys.argv[1:]
    parser = build_parser()

    preliminary, _ = parser.parse_known_args(args=argv)
    if preliminary.config:
        try:
            config = _load_run_config(Path(preliminary.config))
        except (OSError, ValueError, yaml.YAMLError) as exc:
            parser.error(f"Invalid config: {exc}")
        _apply_config(parser, preliminary.command, config)

    parsed = parser.parse_args(args=argv)
    logging.getLogger("parity_allocator").setLevel(getattr(logging, parsed.log_level))
    if not parsed.prices:
        parser.error("--prices is required (on the command line or in --config)")

    try:
        payload = COMMANDS[parsed.command](parsed)
    except (ParityAllocatorError, ValueError, OSError) as exc:
        logger.error("%s failed: %s", parsed.command, exc)
        print(f"error: {exc}", file=sys.stderr)
        return 2
    print(json.dumps(_scrub(payload), indent=2, default=_json_default))
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
