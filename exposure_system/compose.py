"""
Composition engine: arithmetic over stochastic nodes.

The result role follows the broadcasting table (symmetric in its operands):

    Constant  ∘ Constant     → Constant       scalar op
    Constant  ∘ X            → X              scalar broadcast over X
    V ∘ V  /  U ∘ U          → same role      elementwise, equal lengths
    V ∘ U                    → VU             outer: r[i, j] = v[i] ∘ u[j]
    VU ∘ any                 → VU             missing axis broadcast, elementwise

Variability always runs down the rows (axis 0) and uncertainty across the
columns (axis 1) of a VU table. The engine never samples: every operand must
already hold realized values.
"""


import numpy as np

from .exceptions import ShapeMismatchError
from .node import Role, StochasticNode

OPERATORS = {
    "+": np.add,
    "-": np.subtract,
    "*": np.multiply,
    "/": np.divide,
    "**": np.power,
}

UNARY = {
    "exp": np.exp,
    "log": np.log,
    "sqrt": np.sqrt,
    "neg": np.negative,
}

C, V, U, VU = (Role.CONSTANT, Role.VARIABILITY, Role.UNCERTAINTY,
               Role.VARIABILITY_UNCERTAINTY)


def as_node(value) -> StochasticNode:
    """Wrap plain numbers as Constant nodes."""
    if isinstance(value, StochasticNode):
        return value
    if isinstance(value, (int, float, np.integer, np.floating)):
        return StochasticNode.constant(float(value))
    raise TypeError(f"Cannot compose a {type(value).__name__} with a stochastic node")


def infer_role(a: Role, b: Role) -> Role:
    """Role of ``a ∘ b`` for any binary operator."""
    if VU in (a, b):
        return VU
    if {a, b} == {V, U}:
        return VU
    if a is C:
        return b
    return a


def _mismatch(a: StochasticNode, b: StochasticNode, op: str, detail: str):
    return ShapeMismatchError(
        f"Cannot compute '{a.name} {op} {b.name}': {detail}",
        left=a.name, right=b.name, op=op,
    )


def _as_table(node: StochasticNode, other: StochasticNode, shape: tuple,
              op: str) -> np.ndarray:
    """Broadcastable 2-D view of ``node`` on an ``nsv × nsu`` grid."""
    nsv, nsu = shape
    if node.role is VU:
        if node.values.shape != (nsv, nsu):
            raise _mismatch(node, other, op, (
                f"VU tables of shape {node.values.shape} and {(nsv, nsu)}"
            ))
        return node.values
    if node.role is V:
        if node.values.shape[0] != nsv:
            raise _mismatch(node, other, op, (
                f"Variability length {node.values.shape[0]} against nsv={nsv}"
            ))
        return node.values[:, np.newaxis]
    if node.role is U:
        if node.values.shape[0] != nsu:
            raise _mismatch(node, other, op, (
                f"Uncertainty length {node.values.shape[0]} against nsu={nsu}"
            ))
        return node.values[np.newaxis, :]
    return node.values.reshape(1, 1)


def combine(a, b, op: str, name: str = "") -> StochasticNode:
    """
    Combine two nodes with a binary operator.

    Parameters
    ----------
    a, b : StochasticNode or number
        Operands; numbers become Constant nodes.
    op : str
        One of ``+ - * / **``.
    name : str
        Name of the resulting node (defaults to the written expression).

    Raises
    ------
    ShapeMismatchError
        When two operands sharing an axis disagree on its length.
    """
    if op not in OPERATORS:
        raise ValueError(f"Unknown operator '{op}'. Choose from: {list(OPERATORS)}")
    a, b = as_node(a), as_node(b)
    fn = OPERATORS[op]
    role = infer_role(a.role, b.role)

    if role is VU:
        if a.role is VU or b.role is VU:
            shape = (a if a.role is VU else b).values.shape
            values = fn(_as_table(a, b, shape, op), _as_table(b, a, shape, op))
        elif a.role is V:
            values = fn(a.values[:, np.newaxis], b.values[np.newaxis, :])
        else:
            values = fn(a.values[np.newaxis, :], b.values[:, np.newaxis])
    else:
        if a.role is b.role and a.role is not C and a.values.shape != b.values.shape:
            raise _mismatch(a, b, op, (
                f"{a.role.label} lengths {a.values.shape[0]} and {b.values.shape[0]}"
            ))
        values = fn(a.values, b.values)

    return StochasticNode(name or f"({a.name} {op} {b.name})", role, values)


def apply(func: str, node, name: str = "") -> StochasticNode:
    """Apply a role-preserving elementwise function (exp, log, sqrt, neg)."""
    if func not in UNARY:
        raise ValueError(f"Unknown function '{func}'. Choose from: {list(UNARY)}")
    node = as_node(node)
    values = UNARY[func](node.values)
    return StochasticNode(name or f"{func}({node.name})", node.role, values)


def broadcast_table(node, nsv: int, nsu: int) -> np.ndarray:
    """Spread any node over the full ``nsv × nsu`` grid (read-only view)."""
    node = as_node(node)
    return np.broadcast_to(_as_table(node, node, (nsv, nsu), "broadcast"), (nsv, nsu))
