"""
╔══════════════════════════════════════════════════════════════════════╗
║  Seeded Sampler — reproducible draws from parametric distributions   ║
║                                                                      ║
║  Every draw rebuilds its pseudo-random stream from the seed it is    ║
║  given, so identical calls return bit-identical samples no matter    ║
║  how many other draws happened in between.                           ║
║                                                                      ║
║  Families:                                                           ║
║    • lognormal   (meanlog, sdlog)                                    ║
║    • truncnorm   (mean, sd, lower)   left-truncated, inverse-CDF     ║
║    • empirical   (values, probabilities)                             ║
║    • normal      (mean, sd)                                          ║
║    • uniform     (min, max)                                          ║
║    • triangular  (min, mode, max)                                    ║
║    • pert        (min, mode, max)                                    ║
╚══════════════════════════════════════════════════════════════════════╝
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
from scipy.stats import norm

from .exceptions import DistributionParamError

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# §1  DISTRIBUTION SPECIFICATIONS
# ═══════════════════════════════════════════════════════════════════════

# family → required parameter names
FAMILIES = {
    "lognormal": ("meanlog", "sdlog"),
    "truncnorm": ("mean", "sd", "lower"),
    "empirical": ("values", "probabilities"),
    "normal": ("mean", "sd"),
    "uniform": ("min", "max"),
    "triangular": ("min", "mode", "max"),
    "pert": ("min", "mode", "max"),
}

_ALIASES = {
    "lower bound": "lower",
    "lower_bound": "lower",
    "probs": "probabilities",
    "prob": "probabilities",
}


def _finite(family: str, name: str, value) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise DistributionParamError(family, f"'{name}' must be numeric, got {value!r}")
    if not np.isfinite(value):
        raise DistributionParamError(family, f"'{name}' must be finite, got {value}")
    return value


@dataclass(frozen=True)
class Distribution:
    """A sampler identity plus its parameters."""
    family: str
    params: dict = field(default_factory=dict)

    def __post_init__(self):
        family = str(self.family).lower()
        object.__setattr__(self, "family", family)
        object.__setattr__(
            self, "params",
            {_ALIASES.get(k, k): v for k, v in dict(self.params).items()},
        )
        self.validate()

    def validate(self):
        """Raise DistributionParamError when a parameter is out of domain."""
        family = self.family
        if family not in FAMILIES:
            raise DistributionParamError(
                family, f"unknown distribution family. Choose from: {sorted(FAMILIES)}"
            )

        p = self.params
        required = FAMILIES[family]
        # probabilities may be omitted for an equiprobable empirical law
        missing = [k for k in required if k not in p and k != "probabilities"]
        if missing:
            raise DistributionParamError(family, f"missing parameter(s) {missing}")
        unknown = sorted(set(p) - set(required))
        if unknown:
            raise DistributionParamError(family, f"unexpected parameter(s) {unknown}")

        if family in ("lognormal",):
            _finite(family, "meanlog", p["meanlog"])
            if _finite(family, "sdlog", p["sdlog"]) <= 0:
                raise DistributionParamError(family, f"sdlog must be > 0, got {p['sdlog']}")

        elif family in ("normal", "truncnorm"):
            _finite(family, "mean", p["mean"])
            if _finite(family, "sd", p["sd"]) <= 0:
                raise DistributionParamError(family, f"sd must be > 0, got {p['sd']}")
            if family == "truncnorm":
                lower = _finite(family, "lower", p["lower"])
                a = (lower - float(p["mean"])) / float(p["sd"])
                if norm.sf(a) <= 0:
                    raise DistributionParamError(
                        family, f"lower bound {lower} leaves no probability mass"
                    )

        elif family == "uniform":
            lo = _finite(family, "min", p["min"])
            hi = _finite(family, "max", p["max"])
            if not lo < hi:
                raise DistributionParamError(family, f"requires min < max, got {lo}, {hi}")

        elif family in ("triangular", "pert"):
            lo = _finite(family, "min", p["min"])
            mode = _finite(family, "mode", p["mode"])
            hi = _finite(family, "max", p["max"])
            if not (lo <= mode <= hi and lo < hi):
                raise DistributionParamError(
                    family, f"requires min <= mode <= max and min < max, got {lo}, {mode}, {hi}"
                )

        elif family == "empirical":
            self._empirical_support()

    def _empirical_support(self):
        """Validated (values, normalised probabilities) of an empirical law."""
        family = self.family
        try:
            values = np.asarray(self.params["values"], dtype=float)
        except (TypeError, ValueError):
            raise DistributionParamError(family, "values must be numeric")
        if values.ndim != 1 or values.size == 0:
            raise DistributionParamError(family, "values must be a non-empty 1-D sequence")
        if not np.all(np.isfinite(values)):
            raise DistributionParamError(family, "values must be finite")

        probs = self.params.get("probabilities")
        if probs is None:
            probs = np.ones_like(values)
        else:
            try:
                probs = np.asarray(probs, dtype=float)
            except (TypeError, ValueError):
                raise DistributionParamError(family, "probabilities must be numeric")
        if probs.shape != values.shape:
            raise DistributionParamError(
                family,
                f"{probs.size} probabilities given for {values.size} values",
            )
        if not np.all(np.isfinite(probs)) or np.any(probs < 0):
            raise DistributionParamError(family, "probabilities must be finite and non-negative")
        total = probs.sum()
        if total <= 0:
            raise DistributionParamError(family, "probabilities must sum to a positive value")
        return values, probs / total

    def describe(self) -> str:
        args = ", ".join(
            f"{k}={v}" for k, v in self.params.items() if k != "values" and k != "probabilities"
        )
        if self.family == "empirical":
            args = f"{len(self.params['values'])} values"
        return f"{self.family}({args})"


# ═══════════════════════════════════════════════════════════════════════
# §2  SAMPLER CONTEXT
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SamplerContext:
    """
    Explicit seeding context handed to every draw.

    There is no process-wide random state: each call to ``draw`` builds a
    fresh ``numpy.random.Generator`` from ``seed``. ``derive(offset)`` gives
    the context for a per-iteration seed (``seed + offset``).

    ``stream`` selects an independent sub-stream of the same seed (a node's
    ``seed_offset``). Stream 0 is the plain seed; any other stream is mixed
    with the seed through ``numpy.random.SeedSequence``, so stream k at seed
    s never coincides with stream 0 at seed s + k.
    """
    seed: int
    stream: int = 0

    def __post_init__(self):
        if isinstance(self.seed, bool) or not isinstance(self.seed, (int, np.integer)):
            raise ValueError(f"seed must be an integer, got {self.seed!r}")
        if self.seed < 0:
            raise ValueError(f"seed must be non-negative, got {self.seed}")
        if (isinstance(self.stream, bool) or not isinstance(self.stream, (int, np.integer))
                or self.stream < 0):
            raise ValueError(f"stream must be a non-negative integer, got {self.stream!r}")

    def derive(self, offset: int) -> "SamplerContext":
        return SamplerContext(int(self.seed) + int(offset), self.stream)

    def substream(self, stream: int) -> "SamplerContext":
        return SamplerContext(self.seed, int(stream))

    def generator(self) -> np.random.Generator:
        if not self.stream:
            return np.random.default_rng(int(self.seed))
        return np.random.default_rng(np.random.SeedSequence([int(self.seed), int(self.stream)]))

    def draw(self, distribution: Distribution, count: int) -> np.ndarray:
        """
        Draw ``count`` values from ``distribution``.

        Parameters
        ----------
        distribution : Distribution
            Validated sampler identity and parameters.
        count : int
            Number of values (``nsv`` for variability, ``nsu`` for uncertainty).
        """
        if isinstance(count, bool) or not isinstance(count, (int, np.integer)) or count < 1:
            raise DistributionParamError(
                distribution.family, f"count must be a positive integer, got {count!r}"
            )
        count = int(count)
        rng = self.generator()
        p = distribution.params
        family = distribution.family

        if family == "lognormal":
            out = rng.lognormal(float(p["meanlog"]), float(p["sdlog"]), count)
        elif family == "normal":
            out = rng.normal(float(p["mean"]), float(p["sd"]), count)
        elif family == "truncnorm":
            out = _truncnorm_icdf(rng, float(p["mean"]), float(p["sd"]),
                                  float(p["lower"]), count)
        elif family == "uniform":
            out = rng.uniform(float(p["min"]), float(p["max"]), count)
        elif family == "triangular":
            out = rng.triangular(float(p["min"]), float(p["mode"]), float(p["max"]), count)
        elif family == "pert":
            lo, mode, hi = float(p["min"]), float(p["mode"]), float(p["max"])
            alpha = 1.0 + 4.0 * (mode - lo) / (hi - lo)
            beta = 1.0 + 4.0 * (hi - mode) / (hi - lo)
            out = lo + (hi - lo) * rng.beta(alpha, beta, count)
        elif family == "empirical":
            values, probs = distribution._empirical_support()
            out = rng.choice(values, size=count, replace=True, p=probs)
        else:
            raise DistributionParamError(family, "no sampler registered")

        logger.debug("drew %d from %s with seed %d", count, distribution.describe(), self.seed)
        return np.asarray(out, dtype=float)


def _truncnorm_icdf(rng: np.random.Generator, mean: float, sd: float,
                    lower: float, count: int) -> np.ndarray:
    """
    Inverse-CDF sampling of N(mean, sd) restricted to [lower, inf).

    A uniform draw is mapped into the upper-tail mass beyond ``lower`` and
    pushed back through the survival function, which stays accurate when
    ``lower`` sits far in the right tail.
    """
    a = (lower - mean) / sd
    tail = norm.sf(a)
    u = 1.0 - rng.random(count)          # (0, 1]
    x = mean + sd * norm.isf(u * tail)
    return np.maximum(x, lower)


# ═══════════════════════════════════════════════════════════════════════
# §3  CONTRACT-FORM ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════

def draw(distribution, params: Optional[dict], count: int, seed: int) -> np.ndarray:
    """
    ``draw(distribution, params, count, seed) -> array[count]``.

    ``distribution`` is a family name (with ``params``) or a ready
    ``Distribution`` (``params`` then ignored). The stream is reset to
    ``seed`` before drawing.
    """
    if not isinstance(distribution, Distribution):
        distribution = Distribution(distribution, params or {})
    return SamplerContext(seed).draw(distribution, count)
