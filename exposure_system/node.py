"""
Stochastic nodes: realized values tagged with their dimensional role.

A node is one of four variants:

    Constant                  1-D, length 1
    Variability (V)           1-D, length nsv
    Uncertainty (U)           1-D, length nsu
    VariabilityUncertainty    2-D, nsv × nsu

Shape invariants are checked when the node is built, and its value array is
made read-only so a node is never mutated after creation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from .exceptions import ShapeMismatchError
from .sampler import Distribution, SamplerContext


class Role(Enum):
    CONSTANT = "0"
    VARIABILITY = "V"
    UNCERTAINTY = "U"
    VARIABILITY_UNCERTAINTY = "VU"

    @classmethod
    def parse(cls, value) -> "Role":
        """Accept a Role, its code ("0", "V", "U", "VU") or its long name."""
        if isinstance(value, Role):
            return value
        key = "".join(c for c in str(value).lower() if c.isalnum())
        for role in cls:
            if key in (role.value.lower(), role.label.lower()):
                return role
        raise ValueError(
            f"Unknown role '{value}'. Choose from: {[r.value for r in cls]}"
        )

    @property
    def label(self) -> str:
        return {
            "0": "Constant",
            "V": "Variability",
            "U": "Uncertainty",
            "VU": "VariabilityUncertainty",
        }[self.value]


@dataclass(frozen=True, eq=False)
class StochasticNode:
    """A named quantity holding realized or derived values for one role."""
    name: str
    role: Role
    values: np.ndarray
    distribution: Optional[Distribution] = None
    seed: Optional[int] = None

    def __post_init__(self):
        role = Role.parse(self.role)
        values = np.array(self.values, dtype=float)
        if role is Role.CONSTANT:
            values = values.reshape(-1)
            if values.size != 1:
                raise ShapeMismatchError(
                    f"Constant node '{self.name}' must hold exactly one value, "
                    f"got {values.size}"
                )
        elif role is Role.VARIABILITY_UNCERTAINTY:
            if values.ndim != 2 or 0 in values.shape:
                raise ShapeMismatchError(
                    f"VU node '{self.name}' must be a non-empty nsv × nsu table, "
                    f"got shape {values.shape}"
                )
        elif values.ndim != 1 or values.size == 0:
            raise ShapeMismatchError(
                f"{role.label} node '{self.name}' must be a non-empty 1-D sequence, "
                f"got shape {values.shape}"
            )
        values.setflags(write=False)
        object.__setattr__(self, "role", role)
        object.__setattr__(self, "values", values)

    # ── constructors ──

    @classmethod
    def constant(cls, value: float, name: str = "") -> "StochasticNode":
        return cls(name or f"{float(value):g}", Role.CONSTANT, [value])

    @classmethod
    def variability(cls, values, name: str = "") -> "StochasticNode":
        return cls(name, Role.VARIABILITY, values)

    @classmethod
    def uncertainty(cls, values, name: str = "") -> "StochasticNode":
        return cls(name, Role.UNCERTAINTY, values)

    @classmethod
    def vu(cls, table, name: str = "") -> "StochasticNode":
        return cls(name, Role.VARIABILITY_UNCERTAINTY, table)

    @classmethod
    def sample(cls, distribution: Distribution, role, count: int,
               context: SamplerContext, name: str = "") -> "StochasticNode":
        """
        Realize a node by drawing ``count`` values.

        ``count`` is ``nsv`` for a Variability node and ``nsu`` for an
        Uncertainty node. Other roles cannot be sampled directly.
        """
        role = Role.parse(role)
        if role not in (Role.VARIABILITY, Role.UNCERTAINTY):
            raise ValueError(
                f"Only Variability or Uncertainty nodes are sampled, got {role.label}"
            )
        values = context.draw(distribution, count)
        return cls(name or distribution.family, role, values,
                   distribution=distribution, seed=context.seed)

    # ── shape accessors ──

    @property
    def nsv(self) -> Optional[int]:
        if self.role is Role.VARIABILITY:
            return self.values.shape[0]
        if self.role is Role.VARIABILITY_UNCERTAINTY:
            return self.values.shape[0]
        return None

    @property
    def nsu(self) -> Optional[int]:
        if self.role is Role.UNCERTAINTY:
            return self.values.shape[0]
        if self.role is Role.VARIABILITY_UNCERTAINTY:
            return self.values.shape[1]
        return None

    @property
    def shape(self) -> tuple:
        return self.values.shape

    @property
    def scalar(self) -> float:
        if self.role is not Role.CONSTANT:
            raise TypeError(f"{self.role.label} node '{self.name}' is not a scalar")
        return float(self.values[0])

    def at_uncertainty(self, j: int) -> "StochasticNode":
        """The slice of this node seen by uncertainty iteration ``j``."""
        if self.role is Role.UNCERTAINTY:
            return StochasticNode(self.name, Role.CONSTANT, [self.values[j]],
                                  self.distribution, self.seed)
        if self.role is Role.VARIABILITY_UNCERTAINTY:
            return StochasticNode(self.name, Role.VARIABILITY, self.values[:, j],
                                  self.distribution, self.seed)
        return self

    def summary(self, probs=(0.025, 0.25, 0.5, 0.75, 0.975)) -> dict:
        """Mean, standard deviation and quantiles over all held values."""
        flat = self.values.reshape(-1)
        out = {
            "node": self.name,
            "role": self.role.value,
            "n": int(flat.size),
            "mean": float(np.mean(flat)),
            "sd": float(np.std(flat, ddof=1)) if flat.size > 1 else 0.0,
        }
        for p, q in zip(probs, np.quantile(flat, probs)):
            out[f"q{100 * p:g}"] = float(q)
        return out

    # ── arithmetic (delegates to the composition engine) ──

    def _combine(self, other, op, reverse=False):
        from .compose import combine
        if reverse:
            return combine(other, self, op)
        return combine(self, other, op)

    def __add__(self, other):
        return self._combine(other, "+")

    def __radd__(self, other):
        return self._combine(other, "+", reverse=True)

    def __sub__(self, other):
        return self._combine(other, "-")

    def __rsub__(self, other):
        return self._combine(other, "-", reverse=True)

    def __mul__(self, other):
        return self._combine(other, "*")

    def __rmul__(self, other):
        return self._combine(other, "*", reverse=True)

    def __truediv__(self, other):
        return self._combine(other, "/")

    def __rtruediv__(self, other):
        return self._combine(other, "/", reverse=True)

    def __pow__(self, other):
        return self._combine(other, "**")

    def __rpow__(self, other):
        return self._combine(other, "**", reverse=True)

    def __neg__(self):
        from .compose import apply
        return apply("neg", self)

    def __repr__(self):
        return (f"StochasticNode({self.name!r}, role={self.role.value}, "
                f"shape={self.values.shape})")
