"""
Text reports for two-dimensional exposure results.
"""

from typing import Optional

import numpy as np

from .aggregate import mean_of_reducer, uncertainty_summary
from .evaluators import CutLoopResult, FullMatrixResult
from .model import ExposureModel


class ExposureReport:
    """Generates formatted summary reports for exposure evaluations."""

    @staticmethod
    def _hline(width=72):
        return "─" * width

    @staticmethod
    def _dline(width=72):
        return "═" * width

    @classmethod
    def generate(cls, result, model: Optional[ExposureModel] = None,
                 reducer: str = "mean", title: str = "") -> str:
        """
        Report a Full-Matrix or Cut-Loop result: evaluation settings, the
        model definition (when given), every per-iteration statistic with its
        95 % uncertainty interval, and the headline estimate.
        """
        form = "Full-Matrix" if isinstance(result, FullMatrixResult) else "Cut-Loop"
        estimate = mean_of_reducer(result, reducer)
        summary = uncertainty_summary(result)

        lines = []
        w = 72

        # ── Header ──
        lines.append(cls._dline(w))
        t = title or f"EXPOSURE ASSESSMENT: {model.name if model else 'output'}"
        lines.append(f"  {t}")
        lines.append(cls._dline(w))
        lines.append("")

        # ── Evaluation ──
        lines.append("  EVALUATION")
        lines.append(cls._hline(w))
        lines.append(f"    Evaluator:          {form}")
        lines.append(f"    Variability  nsv:   {result.nsv}")
        lines.append(f"    Uncertainty  nsu:   {result.nsu}")
        lines.append(f"    Seed:               {result.seed} ({result.seed_mode})")
        lines.append(f"    Output role:        {result.role.label}")
        if isinstance(result, CutLoopResult):
            lines.append(f"    Peak sample size:   {result.peak_sample_size}")
        lines.append("")

        # ── Model ──
        if model is not None:
            lines.append("  MODEL NODES")
            lines.append(cls._hline(w))
            header = f"  {'Node':<14} {'Role':<6} {'Kind':<11} {'Definition'}"
            lines.append(header)
            lines.append("  " + "-" * 68)
            for row in model.describe():
                lines.append(
                    f"  {row['name']:<14} {row['role']:<6} {row['kind']:<11} "
                    f"{row['definition']}"
                )
            lines.append("")

        # ── Statistics across the uncertainty dimension ──
        lines.append("  VARIABILITY STATISTICS (median [95% uncertainty interval])")
        lines.append(cls._hline(w))
        header = f"  {'Statistic':<10} {'Median':>14} {'2.5%':>14} {'97.5%':>14} {'Mean':>14}"
        lines.append(header)
        lines.append("  " + "-" * 68)
        for label, row in summary.items():
            lines.append(
                f"  {label:<10} {row['median']:>14.5g} {row['q2.5']:>14.5g} "
                f"{row['q97.5']:>14.5g} {row['mean']:>14.5g}"
            )
        lines.append("")

        # ── Headline ──
        lines.append("  RESULT")
        lines.append(cls._dline(w))
        lines.append(f"    Point estimate ({estimate.reducer}):   {estimate.mean:.6g}")
        lines.append(f"    Median across nsu:        {estimate.median:.6g}")
        lines.append(
            f"    95% uncertainty interval: [{estimate.lower:.6g}, {estimate.upper:.6g}]"
        )
        if np.isfinite(estimate.mean) and estimate.mean != 0:
            spread = (estimate.upper - estimate.lower) / abs(estimate.mean)
            lines.append(f"    Relative CI width:        {spread * 100:.2f}%")
        lines.append(cls._dline(w))

        return "\n".join(lines)

    @classmethod
    def comparison(cls, full: FullMatrixResult, cut: CutLoopResult,
                   reducer: str = "mean") -> str:
        """Side-by-side headline estimates from the two evaluators."""
        a = mean_of_reducer(full, reducer)
        b = mean_of_reducer(cut, reducer)
        lines = [
            f"  {'':<12} {'Full-Matrix':>16} {'Cut-Loop':>16}",
            f"  {'mean':<12} {a.mean:>16.8g} {b.mean:>16.8g}",
            f"  {'q2.5':<12} {a.lower:>16.8g} {b.lower:>16.8g}",
            f"  {'q50':<12} {a.median:>16.8g} {b.median:>16.8g}",
            f"  {'q97.5':<12} {a.upper:>16.8g} {b.upper:>16.8g}",
        ]
        return "\n".join(lines)
