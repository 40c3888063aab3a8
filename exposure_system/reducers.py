"""
Per-iteration reducers.

A reducer maps one ``nsv``-length sample to a number. A reducer set is an
ordered list of ``(label, function)`` pairs and fixes the summary schema
shared by both evaluators.
"""

from typing import Callable, List, Tuple

import numpy as np

from .config import get_config


def _sd(sample: np.ndarray) -> float:
    return float(np.std(sample, ddof=1)) if sample.size > 1 else 0.0


REDUCERS = {
    "mean": np.mean,
    "median": np.median,
    "sd": _sd,
    "min": np.min,
    "max": np.max,
}


def quantile_label(p: float) -> str:
    """0.025 → 'q2.5', 0.5 → 'q50'."""
    return f"q{100 * float(p):g}"


def _quantile(p: float) -> Callable:
    def reducer(sample):
        return np.quantile(sample, p)
    return reducer


def resolve_reducers(spec=None) -> List[Tuple[str, Callable]]:
    """
    Normalise a reducer specification.

    Items may be reducer names (``"mean"``), quantile labels (``"q97.5"``),
    quantile probabilities (``0.975``) or ``(label, callable)`` pairs.
    ``None`` gives mean, sd and the configured quantiles.
    """
    if spec is None:
        spec = ["mean", "sd"] + list(get_config().quantiles)
    if isinstance(spec, (str, float, int)) or callable(spec):
        spec = [spec]

    resolved = []
    for item in spec:
        if isinstance(item, tuple):
            label, fn = item
            resolved.append((str(label), fn))
        elif isinstance(item, str) and item in REDUCERS:
            resolved.append((item, REDUCERS[item]))
        elif isinstance(item, str) and item.startswith("q"):
            try:
                p = float(item[1:]) / 100.0
            except ValueError:
                raise ValueError(f"Unknown reducer '{item}'")
            if not 0.0 <= p <= 1.0:
                raise ValueError(f"Quantile reducer '{item}' outside q0..q100")
            resolved.append((quantile_label(p), _quantile(p)))
        elif isinstance(item, (float, int)) and not isinstance(item, bool):
            if not 0.0 <= item <= 1.0:
                raise ValueError(f"Quantile probability {item} outside [0, 1]")
            resolved.append((quantile_label(item), _quantile(float(item))))
        elif callable(item):
            resolved.append((getattr(item, "__name__", "reducer"), item))
        else:
            raise ValueError(
                f"Unknown reducer {item!r}. Choose from: {list(REDUCERS)} or quantiles"
            )

    labels = [label for label, _ in resolved]
    if len(set(labels)) != len(labels):
        raise ValueError(f"Duplicate reducer labels in {labels}")
    return resolved


def summarize(sample: np.ndarray, reducers) -> np.ndarray:
    """Apply every reducer to ``sample``; fixed-size output."""
    return np.array([float(fn(sample)) for _, fn in reducers], dtype=float)
