"""Exposure System CLI

Commands:
    exposure-system run model.json --nsv 1000 --nsu 100 --seed 666
    exposure-system run model.json --evaluator cut --reducers mean,q97.5
    exposure-system demo [--output risk]       # built-in drinking-water model
    exposure-system check model.json           # evaluator self-consistency

Model files are JSON:

    {
      "name": "example",
      "nodes": [
        {"name": "c", "role": "U", "distribution": "lognormal",
         "params": {"meanlog": 0, "sdlog": 1}},
        {"name": "v", "role": "V", "distribution": "truncnorm",
         "params": {"mean": 1, "sd": 0.5, "lower": 0}},
        {"name": "k", "value": 0.5}
      ],
      "output": "k * c * v"
    }
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import numpy as np

from .aggregate import mean_of_reducer, uncertainty_summary
from .config import get_config
from .evaluators import (
    CutLoopEvaluator,
    FullMatrixEvaluator,
    equivalent,
    evaluate_vectorized,
)
from .exceptions import ExposureModelError
from .model import ExposureModel
from .reducers import resolve_reducers
from .report import ExposureReport
from .scenarios import drinking_water_model

logger = logging.getLogger(__name__)


def load_model(path) -> ExposureModel:
    """Read a JSON model definition."""
    with open(Path(path), encoding="utf-8") as f:
        data = json.load(f)
    return ExposureModel.from_dict(data)


def _parse_reducers(text):
    if not text:
        return None
    items = []
    for part in text.split(","):
        part = part.strip()
        try:
            items.append(float(part))
        except ValueError:
            items.append(part)
    return items


def _headline(args):
    """The ``--reducer`` statistic, with a bare probability read as a quantile."""
    return _parse_reducers(args.reducer or "mean")[0]


def _cut_reducers(args) -> list:
    """Cut-loop reducer set, extended with the headline ``--reducer`` if absent."""
    reducers = resolve_reducers(_parse_reducers(args.reducers))
    headline = resolve_reducers(_headline(args))
    if headline[0][0] not in [label for label, _ in reducers]:
        reducers += headline
    return reducers


def run_model(model: ExposureModel, args) -> int:
    kwargs = dict(nsv=args.nsv, nsu=args.nsu, seed=args.seed, seed_mode=args.seed_mode)
    if args.evaluator == "cut":
        result = CutLoopEvaluator(model, reducers=_cut_reducers(args), **kwargs).evaluate()
    else:
        result = FullMatrixEvaluator(model, n_jobs=args.jobs, **kwargs).evaluate()

    if args.json:
        payload = {
            "model": model.name,
            "evaluation": {k: v for k, v in result.to_dict().items()
                           if k not in ("table", "summaries")},
            "estimate": mean_of_reducer(result, _headline(args)).to_dict(),
            "summary": uncertainty_summary(result),
        }
        if args.evaluator == "cut":
            payload["iterations"] = result.to_dict()["summaries"]
        print(json.dumps(payload, indent=2))
    else:
        print(ExposureReport.generate(result, model=model, reducer=_headline(args)))
    return 0


def check_model(model: ExposureModel, args) -> int:
    """Run both evaluators (and the vectorised form) and compare them."""
    kwargs = dict(nsv=args.nsv, nsu=args.nsu, seed=args.seed, seed_mode=args.seed_mode)
    first = FullMatrixEvaluator(model, **kwargs).evaluate()
    second = FullMatrixEvaluator(model, n_jobs=max(2, args.jobs or 2), **kwargs).evaluate()
    cut = CutLoopEvaluator(model, **kwargs).evaluate()

    checks = [
        ("full-matrix runs identical", first == second),
        ("cut-loop summaries match full-matrix", equivalent(first, cut)),
        ("cut-loop peak sample size == nsv", cut.peak_sample_size == first.nsv),
    ]
    if first.seed_mode == "fixed":
        vec = evaluate_vectorized(model, first.nsv, first.nsu, first.seed)
        checks.append((
            "vectorised outer product matches",
            bool(np.allclose(vec.table, first.table, rtol=1e-12, atol=0.0)),
        ))

    ok = True
    for label, passed in checks:
        print(f"  [{'PASS' if passed else 'FAIL'}] {label}")
        ok = ok and passed
    print()
    print(ExposureReport.comparison(first, cut))
    return 0 if ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="exposure-system",
        description="Two-dimensional Monte Carlo exposure assessment",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Model files", 1)[0],
    )
    parser.add_argument("--log-level", default=None,
                        help="Logging level (default: EXPOSURE_LOG_LEVEL or INFO)")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--nsv", type=int, default=None, help="Variability sample size")
    common.add_argument("--nsu", type=int, default=None, help="Uncertainty sample size")
    common.add_argument("--seed", "-s", type=int, default=None, help="Random seed")
    common.add_argument("--seed-mode", choices=["fixed", "per_iteration"], default=None,
                        help="Variability seeding across uncertainty iterations")
    common.add_argument("--jobs", "-j", type=int, default=None,
                        help="Worker threads for the full-matrix evaluator")
    common.add_argument("--evaluator", "-e", choices=["full", "cut"], default="full")
    common.add_argument("--reducers", default=None,
                        help="Comma-separated cut-loop reducers, e.g. mean,median,0.975")
    common.add_argument("--reducer", default="mean",
                        help="Statistic reported as the point estimate (default: mean)")
    common.add_argument("--json", action="store_true", help="Emit JSON instead of text")

    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", parents=[common], help="Evaluate a JSON model file")
    run.add_argument("model", help="Path to a JSON model definition")

    demo = sub.add_parser("demo", parents=[common], help="Evaluate the built-in model")
    demo.add_argument("--output", choices=["dose", "risk"], default="dose")

    check = sub.add_parser("check", parents=[common],
                           help="Cross-check evaluators on a model (built-in if omitted)")
    check.add_argument("model", nargs="?", default=None)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=(args.log_level or get_config().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.command == "run":
            return run_model(load_model(args.model), args)
        if args.command == "demo":
            return run_model(drinking_water_model(args.output), args)
        if args.command == "check":
            model = load_model(args.model) if args.model else drinking_water_model()
            return check_model(model, args)
    except (ExposureModelError, OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
