"""
Simulation configuration.

Defaults for the evaluation parameters (nsv, nsu, seed, seed mode, summary
quantiles, worker count) and the log level. Every field can be overridden
through an ``EXPOSURE_`` environment variable, e.g. ``EXPOSURE_NSV=5000`` or
``EXPOSURE_QUANTILES=0.05,0.5,0.95``.

Example:
    >>> from exposure_system.config import get_config, set_config, reset_config
    >>> cfg = get_config()
    >>> cfg.nsv, cfg.nsu
    (1000, 100)
    >>> set_config(SimulationConfig(nsv=200, nsu=20))
    >>> reset_config()  # teardown
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

logger = logging.getLogger(__name__)

_ENV_PREFIX = "EXPOSURE_"

_VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

#: "fixed" redraws variability with the evaluation seed on every uncertainty
#: iteration; "per_iteration" uses seed + j.
SEED_MODES = frozenset({"fixed", "per_iteration"})

DEFAULT_QUANTILES: Tuple[float, ...] = (0.025, 0.25, 0.5, 0.75, 0.975)


@dataclass
class SimulationConfig:
    """Evaluation defaults shared by the evaluators and the CLI."""

    nsv: int = 1000
    nsu: int = 100
    seed: int = 666
    seed_mode: str = "fixed"
    quantiles: Tuple[float, ...] = field(default=DEFAULT_QUANTILES)
    n_jobs: int = 1
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        errors: list = []

        if not isinstance(self.nsv, int) or self.nsv < 1:
            errors.append(f"nsv must be a positive integer, got {self.nsv!r}")
        if not isinstance(self.nsu, int) or self.nsu < 1:
            errors.append(f"nsu must be a positive integer, got {self.nsu!r}")
        if not isinstance(self.seed, int) or self.seed < 0:
            errors.append(
                f"seed must be a non-negative integer, got {self.seed!r}"
            )
        if self.seed_mode not in SEED_MODES:
            errors.append(
                f"seed_mode must be one of {sorted(SEED_MODES)}, "
                f"got '{self.seed_mode}'"
            )
        self.quantiles = tuple(float(q) for q in self.quantiles)
        if any(not 0.0 <= q <= 1.0 for q in self.quantiles):
            errors.append(f"quantiles must lie in [0, 1], got {self.quantiles}")
        if not isinstance(self.n_jobs, int) or self.n_jobs < 1:
            errors.append(f"n_jobs must be >= 1, got {self.n_jobs!r}")

        normalised_log = str(self.log_level).upper()
        if normalised_log not in _VALID_LOG_LEVELS:
            errors.append(
                f"log_level must be one of {sorted(_VALID_LOG_LEVELS)}, "
                f"got '{self.log_level}'"
            )
        else:
            self.log_level = normalised_log

        if errors:
            raise ValueError(
                "Invalid SimulationConfig: " + "; ".join(errors)
            )

    @classmethod
    def from_env(cls) -> SimulationConfig:
        """Build a SimulationConfig from ``EXPOSURE_*`` environment variables.

        Malformed values fall back to the class default and log a warning.
        """
        prefix = _ENV_PREFIX

        def _env(name: str) -> Optional[str]:
            return os.environ.get(f"{prefix}{name}")

        def _int(name: str, default: int) -> int:
            val = _env(name)
            if val is None:
                return default
            try:
                return int(val.strip())
            except ValueError:
                logger.warning(
                    "Invalid integer for %s%s=%r, using default %d",
                    prefix, name, val, default,
                )
                return default

        def _str(name: str, default: str) -> str:
            val = _env(name)
            if val is None:
                return default
            return val.strip()

        def _floats(name: str, default: Tuple[float, ...]) -> Tuple[float, ...]:
            val = _env(name)
            if val is None:
                return default
            try:
                return tuple(float(p) for p in val.split(",") if p.strip())
            except ValueError:
                logger.warning(
                    "Invalid float list for %s%s=%r, using default %s",
                    prefix, name, val, default,
                )
                return default

        return cls(
            nsv=_int("NSV", cls.nsv),
            nsu=_int("NSU", cls.nsu),
            seed=_int("SEED", cls.seed),
            seed_mode=_str("SEED_MODE", cls.seed_mode),
            quantiles=_floats("QUANTILES", DEFAULT_QUANTILES),
            n_jobs=_int("N_JOBS", cls.n_jobs),
            log_level=_str("LOG_LEVEL", cls.log_level),
        )

    def to_dict(self) -> dict:
        return {
            "nsv": self.nsv,
            "nsu": self.nsu,
            "seed": self.seed,
            "seed_mode": self.seed_mode,
            "quantiles": list(self.quantiles),
            "n_jobs": self.n_jobs,
            "log_level": self.log_level,
        }


# ---------------------------------------------------------------------------
# Thread-safe singleton accessor
# ---------------------------------------------------------------------------

_config_instance: Optional[SimulationConfig] = None
_config_lock = threading.Lock()


def get_config() -> SimulationConfig:
    """Return the singleton SimulationConfig, creating it from env if needed."""
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = SimulationConfig.from_env()
    return _config_instance


def set_config(config: SimulationConfig) -> None:
    """Replace the singleton SimulationConfig (tests, dependency injection)."""
    global _config_instance
    with _config_lock:
        _config_instance = config
    logger.info(
        "SimulationConfig replaced programmatically: nsv=%d, nsu=%d, "
        "seed=%d, seed_mode=%s, n_jobs=%d",
        config.nsv, config.nsu, config.seed, config.seed_mode, config.n_jobs,
    )


def reset_config() -> None:
    """Drop the singleton; the next get_config() re-reads the environment."""
    global _config_instance
    with _config_lock:
        _config_instance = None
    logger.debug("SimulationConfig singleton reset")


def _coerce(value: Any, default: Any) -> Any:
    return default if value is None else value


def resolve(nsv: Optional[int] = None, nsu: Optional[int] = None,
            seed: Optional[int] = None,
            seed_mode: Optional[str] = None) -> Tuple[int, int, int, str]:
    """Fill unspecified evaluation parameters from the active config."""
    cfg = get_config()
    return (
        _coerce(nsv, cfg.nsv),
        _coerce(nsu, cfg.nsu),
        _coerce(seed, cfg.seed),
        _coerce(seed_mode, cfg.seed_mode),
    )


__all__ = [
    "SimulationConfig",
    "SEED_MODES",
    "DEFAULT_QUANTILES",
    "get_config",
    "set_config",
    "reset_config",
    "resolve",
]
