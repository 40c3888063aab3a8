"""
╔══════════════════════════════════════════════════════════════════════╗
║  Two-dimensional Monte Carlo evaluators                              ║
║                                                                      ║
║  FullMatrixEvaluator   materializes the whole nsv × nsu table        ║
║                        (memory O(nsv · nsu))                         ║
║  CutLoopEvaluator      walks the uncertainty dimension one           ║
║                        iteration at a time and keeps only a          ║
║                        fixed-size summary per iteration (O(nsv))     ║
║                                                                      ║
║  Given the same model, seed and sizes, reducing the full table       ║
║  column by column gives exactly the cut-loop summaries.              ║
╚══════════════════════════════════════════════════════════════════════╝
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .compose import broadcast_table
from .config import SEED_MODES, get_config, resolve
from .exceptions import UnknownReducerError
from .model import ExposureModel
from .node import Role, StochasticNode
from .reducers import resolve_reducers, summarize
from .sampler import SamplerContext

logger = logging.getLogger(__name__)

C, V, U = Role.CONSTANT, Role.VARIABILITY, Role.UNCERTAINTY


# ═══════════════════════════════════════════════════════════════════════
# §1  RESULT STRUCTURES
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class FullMatrixResult:
    """Dense nsv × nsu output table plus its {nsv, nsu, role} metadata."""
    table: np.ndarray
    nsv: int
    nsu: int
    role: Role
    seed: Optional[int] = None
    seed_mode: str = "fixed"

    def __post_init__(self):
        table = np.asarray(self.table, dtype=float)
        if table.shape != (self.nsv, self.nsu):
            raise ValueError(
                f"Result table has shape {table.shape}, expected {(self.nsv, self.nsu)}"
            )
        table.setflags(write=False)
        object.__setattr__(self, "table", table)
        object.__setattr__(self, "role", Role.parse(self.role))

    def identical(self, other) -> bool:
        """Exact equality of the numeric payload and the metadata."""
        return (
            isinstance(other, FullMatrixResult)
            and self.nsv == other.nsv
            and self.nsu == other.nsu
            and self.role is other.role
            and np.array_equal(self.table, other.table, equal_nan=True)
        )

    def __eq__(self, other):
        if not isinstance(other, FullMatrixResult):
            return NotImplemented
        return self.identical(other)

    __hash__ = None

    def column(self, j: int) -> np.ndarray:
        """Contiguous copy of uncertainty column ``j`` (one nsv sample)."""
        return np.ascontiguousarray(self.table[:, j])

    def reduce_columns(self, reducers=None) -> np.ndarray:
        """Apply a reducer set to each column; shape nsu × k."""
        reducers = resolve_reducers(reducers)
        return np.vstack([summarize(self.column(j), reducers) for j in range(self.nsu)])

    def as_node(self) -> StochasticNode:
        return StochasticNode.vu(self.table, name="output")

    def to_dict(self) -> dict:
        return {
            "form": "full-matrix",
            "nsv": self.nsv,
            "nsu": self.nsu,
            "role": self.role.value,
            "seed": self.seed,
            "seed_mode": self.seed_mode,
            "table": self.table.tolist(),
        }


@dataclass(frozen=True)
class IterationSummary:
    """Reducer outputs for one uncertainty iteration."""
    index: int
    values: dict

    def __getitem__(self, label):
        return self.values[label]


@dataclass(frozen=True, eq=False)
class CutLoopResult:
    """nsu summary records sharing one reducer schema."""
    summaries: np.ndarray
    labels: tuple
    nsv: int
    nsu: int
    role: Role
    seed: Optional[int] = None
    seed_mode: str = "fixed"
    peak_sample_size: int = 0

    def __post_init__(self):
        summaries = np.asarray(self.summaries, dtype=float)
        if summaries.shape != (self.nsu, len(self.labels)):
            raise ValueError(
                f"Summaries have shape {summaries.shape}, "
                f"expected {(self.nsu, len(self.labels))}"
            )
        summaries.setflags(write=False)
        object.__setattr__(self, "summaries", summaries)
        object.__setattr__(self, "labels", tuple(self.labels))
        object.__setattr__(self, "role", Role.parse(self.role))

    def column(self, label: str) -> np.ndarray:
        """One reducer's value on every uncertainty iteration."""
        try:
            k = self.labels.index(label)
        except ValueError:
            raise UnknownReducerError(label, self.labels)
        return self.summaries[:, k]

    def records(self) -> list:
        return [
            IterationSummary(j, dict(zip(self.labels, self.summaries[j].tolist())))
            for j in range(self.nsu)
        ]

    def __iter__(self):
        return iter(self.records())

    def __len__(self):
        return self.nsu

    def to_dict(self) -> dict:
        return {
            "form": "cut-loop",
            "nsv": self.nsv,
            "nsu": self.nsu,
            "role": self.role.value,
            "seed": self.seed,
            "seed_mode": self.seed_mode,
            "labels": list(self.labels),
            "summaries": self.summaries.tolist(),
        }


@dataclass(frozen=True)
class RealizedInputs:
    """Nodes realized by the cut-loop initialization phase."""
    context: SamplerContext
    nodes: dict


def _column_sample(node: StochasticNode, nsv: int) -> np.ndarray:
    """An iteration's output as a fresh contiguous length-nsv array."""
    return np.array(np.broadcast_to(node.values, (nsv,)), dtype=float)


def _check_sizes(nsv, nsu, seed_mode):
    for label, size in (("nsv", nsv), ("nsu", nsu)):
        if isinstance(size, bool) or not isinstance(size, (int, np.integer)) or size < 1:
            raise ValueError(f"{label} must be a positive integer, got {size!r}")
    if seed_mode not in SEED_MODES:
        raise ValueError(f"seed_mode must be one of {sorted(SEED_MODES)}, got '{seed_mode}'")


# ═══════════════════════════════════════════════════════════════════════
# §2  FULL-MATRIX EVALUATOR
# ═══════════════════════════════════════════════════════════════════════

class FullMatrixEvaluator:
    """
    Materializes every uncertainty column of the output.

    Uncertainty nodes are drawn once, as length-nsu vectors, before the loop.
    For each iteration ``j`` the variability nodes are drawn again: with the
    evaluation seed in "fixed" mode (identical draws on every column) or
    with ``seed + j`` in "per_iteration" mode.
    """

    def __init__(self, model: ExposureModel, nsv: int = None, nsu: int = None,
                 seed: int = None, seed_mode: str = None, n_jobs: int = None):
        self.model = model
        self.nsv, self.nsu, self.seed, self.seed_mode = resolve(nsv, nsu, seed, seed_mode)
        self.n_jobs = n_jobs if n_jobs is not None else get_config().n_jobs
        _check_sizes(self.nsv, self.nsu, self.seed_mode)

    def _variability_context(self, context: SamplerContext, j: int) -> SamplerContext:
        return context if self.seed_mode == "fixed" else context.derive(j)

    def compute_column(self, j: int, context: SamplerContext, fixed: dict) -> np.ndarray:
        """Output sample of uncertainty iteration ``j``."""
        realized = {name: node.at_uncertainty(j) for name, node in fixed.items()}
        realized.update(self.model.realize_inputs(
            self.nsv, self.nsu, self._variability_context(context, j), roles=(V,)
        ))
        return _column_sample(self.model.compose(realized), self.nsv)

    def _fill(self, table: np.ndarray, j: int, context, fixed):
        table[:, j] = self.compute_column(j, context, fixed)

    def evaluate(self) -> FullMatrixResult:
        start = time.perf_counter()
        logger.info(
            "full-matrix evaluation of '%s': nsv=%d nsu=%d seed=%d mode=%s jobs=%d",
            self.model.name, self.nsv, self.nsu, self.seed, self.seed_mode, self.n_jobs,
        )
        context = SamplerContext(self.seed)
        try:
            fixed = self.model.realize_inputs(self.nsv, self.nsu, context, roles=(C, U))
            table = np.empty((self.nsv, self.nsu), dtype=float)
            if self.n_jobs <= 1:
                for j in range(self.nsu):
                    self._fill(table, j, context, fixed)
            else:
                # each task owns exactly one column of the table
                with ThreadPoolExecutor(max_workers=self.n_jobs) as executor:
                    futures = [
                        executor.submit(self._fill, table, j, context, fixed)
                        for j in range(self.nsu)
                    ]
                    for future in as_completed(futures):
                        future.result()
        except Exception:
            logger.error("full-matrix evaluation of '%s' aborted", self.model.name)
            raise

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("full-matrix evaluation done in %.1f ms", elapsed_ms)
        return FullMatrixResult(table, self.nsv, self.nsu, self.model.output_role(),
                                seed=self.seed, seed_mode=self.seed_mode)


# ═══════════════════════════════════════════════════════════════════════
# §3  CUT-LOOP EVALUATOR
# ═══════════════════════════════════════════════════════════════════════

class CutLoopEvaluator:
    """
    Memory-bounded evaluation in three phases:

      1. ``initialize()``           realize constant, uncertainty and (in
                                    "fixed" mode) variability nodes once
      2. ``compose_iteration(j)``   build iteration j's nsv-length sample
      3. ``summarize_iteration()``  reduce it to a fixed-size vector

    Phases 2-3 repeat nsu times; only the summaries are kept.
    """

    def __init__(self, model: ExposureModel, nsv: int = None, nsu: int = None,
                 seed: int = None, seed_mode: str = None, reducers=None):
        self.model = model
        self.nsv, self.nsu, self.seed, self.seed_mode = resolve(nsv, nsu, seed, seed_mode)
        _check_sizes(self.nsv, self.nsu, self.seed_mode)
        self.reducers = resolve_reducers(reducers)

    @property
    def labels(self) -> tuple:
        return tuple(label for label, _ in self.reducers)

    def initialize(self) -> RealizedInputs:
        context = SamplerContext(self.seed)
        # in "fixed" mode every iteration would redraw identical variability
        roles = (C, U, V) if self.seed_mode == "fixed" else (C, U)
        nodes = self.model.realize_inputs(self.nsv, self.nsu, context, roles=roles)
        return RealizedInputs(context, nodes)

    def compose_iteration(self, j: int, realized: RealizedInputs) -> np.ndarray:
        env = {name: node.at_uncertainty(j) for name, node in realized.nodes.items()}
        if self.seed_mode == "per_iteration":
            env.update(self.model.realize_inputs(
                self.nsv, self.nsu, realized.context.derive(j), roles=(V,)
            ))
        return _column_sample(self.model.compose(env), self.nsv)

    def summarize_iteration(self, sample: np.ndarray) -> np.ndarray:
        return summarize(sample, self.reducers)

    def evaluate(self) -> CutLoopResult:
        start = time.perf_counter()
        logger.info(
            "cut-loop evaluation of '%s': nsv=%d nsu=%d seed=%d mode=%s reducers=%s",
            self.model.name, self.nsv, self.nsu, self.seed, self.seed_mode,
            ",".join(self.labels),
        )
        summaries = np.empty((self.nsu, len(self.reducers)), dtype=float)
        peak = 0
        try:
            realized = self.initialize()
            for j in range(self.nsu):
                sample = self.compose_iteration(j, realized)
                peak = max(peak, sample.size)
                summaries[j] = self.summarize_iteration(sample)
        except Exception:
            logger.error("cut-loop evaluation of '%s' aborted", self.model.name)
            raise

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("cut-loop evaluation done in %.1f ms", elapsed_ms)
        return CutLoopResult(summaries, self.labels, self.nsv, self.nsu,
                             self.model.output_role(), seed=self.seed,
                             seed_mode=self.seed_mode, peak_sample_size=peak)


# ═══════════════════════════════════════════════════════════════════════
# §4  CONVENIENCE
# ═══════════════════════════════════════════════════════════════════════

def evaluate_vectorized(model: ExposureModel, nsv: int = None, nsu: int = None,
                        seed: int = None) -> FullMatrixResult:
    """
    Realize every input once and compose the output as one outer-product
    node. Matches the "fixed" seed mode of the Full-Matrix evaluator up to
    floating-point rounding of vectorised transcendental functions.
    """
    nsv, nsu, seed, _ = resolve(nsv, nsu, seed, "fixed")
    _check_sizes(nsv, nsu, "fixed")
    node = model.evaluate(nsv, nsu, seed)
    table = np.array(broadcast_table(node, nsv, nsu), dtype=float)
    return FullMatrixResult(table, nsv, nsu, model.output_role(), seed=seed)


def evaluate(model: ExposureModel, method: str = "full", **kwargs):
    """Run ``model`` with the "full" or "cut" evaluator."""
    if method == "full":
        return FullMatrixEvaluator(model, **kwargs).evaluate()
    if method == "cut":
        return CutLoopEvaluator(model, **kwargs).evaluate()
    raise ValueError(f"Unknown evaluator '{method}'. Choose from: ['full', 'cut']")


def equivalent(full: FullMatrixResult, cut: CutLoopResult,
               rtol: float = 0.0, atol: float = 0.0) -> bool:
    """
    True when reducing ``full`` with ``cut``'s schema reproduces ``cut``.

    Default tolerances demand exact equality, which holds whenever both
    results came from the same model, seed, sizes and seed mode.
    """
    if (full.nsv, full.nsu, full.role) != (cut.nsv, cut.nsu, cut.role):
        return False
    reduced = full.reduce_columns(list(cut.labels))
    return bool(np.allclose(reduced, cut.summaries, rtol=rtol, atol=atol, equal_nan=True))
