"""
╔══════════════════════════════════════════════════════════════════════╗
║  ExposureSystem — Two-Dimensional Monte Carlo Exposure Assessment    ║
║                                                                      ║
║  Supports:                                                           ║
║    • Reproducible seeded sampling of model inputs                    ║
║    • Variability / uncertainty roles with broadcasting arithmetic    ║
║    • Full-matrix (nsv × nsu) and memory-bounded cut-loop evaluation  ║
║    • Point estimates with nested uncertainty intervals and ECDFs     ║
╚══════════════════════════════════════════════════════════════════════╝
"""

from .aggregate import (
    EmpiricalDistribution,
    ReducedEstimate,
    ecdf,
    mean_of_reducer,
    quantile_ecdfs,
    uncertainty_summary,
)
from .compose import apply, combine, infer_role
from .config import SimulationConfig, get_config, reset_config, set_config
from .evaluators import (
    CutLoopEvaluator,
    CutLoopResult,
    FullMatrixEvaluator,
    FullMatrixResult,
    equivalent,
    evaluate,
    evaluate_vectorized,
)
from .exceptions import (
    DistributionParamError,
    ExposureModelError,
    ShapeMismatchError,
    UndefinedNodeReferenceError,
    UnknownReducerError,
)
from .model import ExposureModel, NodeSpec
from .node import Role, StochasticNode
from .report import ExposureReport
from .sampler import Distribution, SamplerContext, draw

__all__ = [
    "Distribution",
    "SamplerContext",
    "draw",
    "Role",
    "StochasticNode",
    "combine",
    "apply",
    "infer_role",
    "NodeSpec",
    "ExposureModel",
    "FullMatrixEvaluator",
    "FullMatrixResult",
    "CutLoopEvaluator",
    "CutLoopResult",
    "evaluate",
    "evaluate_vectorized",
    "equivalent",
    "mean_of_reducer",
    "uncertainty_summary",
    "ecdf",
    "quantile_ecdfs",
    "EmpiricalDistribution",
    "ReducedEstimate",
    "ExposureReport",
    "SimulationConfig",
    "get_config",
    "set_config",
    "reset_config",
    "ExposureModelError",
    "DistributionParamError",
    "ShapeMismatchError",
    "UndefinedNodeReferenceError",
    "UnknownReducerError",
]

__version__ = "0.1.0"
