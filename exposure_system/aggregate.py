"""
Aggregation of evaluation results into point estimates, nested-uncertainty
confidence intervals and empirical distribution functions.

Works on either result form: a Full-Matrix table is reduced column by column,
a Cut-Loop result already carries its per-iteration reductions.
"""

from collections import OrderedDict
from dataclasses import dataclass

import numpy as np

from .evaluators import CutLoopResult, FullMatrixResult
from .reducers import quantile_label, resolve_reducers

CI_PROBS = (0.025, 0.5, 0.975)


# ═══════════════════════════════════════════════════════════════════════
# §1  POINT ESTIMATES WITH UNCERTAINTY INTERVALS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class ReducedEstimate:
    """A reducer applied per uncertainty iteration, then summarised across them."""
    reducer: str
    mean: float
    median: float
    lower: float      # 2.5 %
    upper: float      # 97.5 %
    values: np.ndarray

    def to_dict(self) -> dict:
        return {
            "reducer": self.reducer,
            "mean": self.mean,
            "q2.5": self.lower,
            "q50": self.median,
            "q97.5": self.upper,
            "n": int(self.values.size),
        }


def reduced_values(result, reducer="mean") -> tuple:
    """(label, per-iteration values) of ``reducer`` for either result form."""
    label, fn = resolve_reducers(reducer)[0]
    if isinstance(result, FullMatrixResult):
        return label, result.reduce_columns([(label, fn)])[:, 0]
    if isinstance(result, CutLoopResult):
        return label, np.asarray(result.column(label))
    raise TypeError(f"Cannot aggregate a {type(result).__name__}")


def mean_of_reducer(result, reducer="mean") -> ReducedEstimate:
    """
    Apply ``reducer`` (mean, median, a quantile, ...) to every uncertainty
    iteration and report the mean and the 2.5/50/97.5 % quantiles of the
    nsu reduced values.
    """
    label, values = reduced_values(result, reducer)
    values = np.array(values, dtype=float)
    values.setflags(write=False)
    lower, median, upper = np.quantile(values, CI_PROBS)
    return ReducedEstimate(label, float(np.mean(values)), float(median),
                           float(lower), float(upper), values)


def uncertainty_summary(result, reducers=None) -> "OrderedDict[str, dict]":
    """
    Every reducer's central value and 95 % uncertainty interval.

    For each variability statistic (mean, sd, quantiles ...) gives the
    median, mean, 2.5 % and 97.5 % quantiles across the uncertainty
    dimension.
    """
    if isinstance(result, CutLoopResult) and reducers is None:
        labels, table = result.labels, result.summaries
    elif isinstance(result, FullMatrixResult):
        resolved = resolve_reducers(reducers)
        labels = tuple(label for label, _ in resolved)
        table = result.reduce_columns(resolved)
    else:
        labels = tuple(label for label, _ in resolve_reducers(reducers))
        table = np.column_stack([result.column(label) for label in labels])

    summary = OrderedDict()
    for k, label in enumerate(labels):
        column = table[:, k]
        lower, median, upper = np.quantile(column, CI_PROBS)
        summary[label] = {
            "median": float(median),
            "mean": float(np.mean(column)),
            quantile_label(CI_PROBS[0]): float(lower),
            quantile_label(CI_PROBS[2]): float(upper),
        }
    return summary


# ═══════════════════════════════════════════════════════════════════════
# §2  EMPIRICAL DISTRIBUTION FUNCTIONS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class EmpiricalDistribution:
    """
    Right-continuous step function F over the sorted unique sample values.

    ``F(x)`` is the fraction of the sample ≤ x: 0 below the minimum,
    non-decreasing, and exactly 1 from the maximum on.
    """
    x: np.ndarray
    F: np.ndarray
    n: int

    def __call__(self, q):
        q = np.asarray(q, dtype=float)
        idx = np.searchsorted(self.x, q, side="right")
        out = np.where(idx > 0, self.F[np.maximum(idx - 1, 0)], 0.0)
        return float(out) if out.ndim == 0 else out

    def quantile(self, p: float) -> float:
        """Smallest x with F(x) ≥ p."""
        if not 0.0 <= p <= 1.0:
            raise ValueError(f"p must lie in [0, 1], got {p}")
        idx = int(np.searchsorted(self.F, p, side="left"))
        return float(self.x[min(idx, self.x.size - 1)])

    def steps(self) -> list:
        return list(zip(self.x.tolist(), self.F.tolist()))


def ecdf(values) -> EmpiricalDistribution:
    """Empirical CDF of a finite, non-empty sample."""
    data = np.asarray(values, dtype=float).reshape(-1)
    if data.size == 0:
        raise ValueError("ECDF needs at least one value")
    if not np.all(np.isfinite(data)):
        raise ValueError("ECDF input must be finite")
    x, counts = np.unique(data, return_counts=True)
    F = np.cumsum(counts) / data.size
    x.setflags(write=False)
    F.setflags(write=False)
    return EmpiricalDistribution(x, F, int(data.size))


def quantile_ecdfs(result, labels=None) -> "OrderedDict[str, EmpiricalDistribution]":
    """
    ECDF across uncertainty iterations of each per-iteration statistic,
    for comparing e.g. the median or the 97.5 % quantile between runs.
    """
    if isinstance(result, CutLoopResult):
        labels = labels or result.labels
        return OrderedDict((label, ecdf(result.column(label))) for label in labels)
    resolved = resolve_reducers(labels)
    table = result.reduce_columns(resolved)
    return OrderedDict(
        (label, ecdf(table[:, k])) for k, (label, _) in enumerate(resolved)
    )


def column_ecdfs(result: FullMatrixResult, columns=None) -> list:
    """Variability ECDF of selected uncertainty columns of a full table."""
    columns = range(result.nsu) if columns is None else columns
    return [ecdf(result.column(j)) for j in columns]
