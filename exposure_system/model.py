"""
╔══════════════════════════════════════════════════════════════════════╗
║  ExposureModel — declarative registry of named stochastic nodes      ║
║                                                                      ║
║  A model is an ordered list of node specifications:                  ║
║    • constants               (role "0")                              ║
║    • stochastic inputs       (role "V" or "U", with a distribution)  ║
║    • derived quantities      (an expression over earlier names)      ║
║  plus one output expression, the composite exposure estimate.        ║
║                                                                      ║
║  Expressions are parsed with sympy and evaluated by walking the      ║
║  expression tree through the composition engine.                     ║
╚══════════════════════════════════════════════════════════════════════╝
"""

import keyword
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from functools import reduce
from tokenize import TokenError
from typing import Optional

import sympy as sp
from sympy.parsing.sympy_parser import convert_xor, parse_expr, standard_transformations

from .compose import apply, combine, infer_role
from .exceptions import ExposureModelError, UndefinedNodeReferenceError
from .node import Role, StochasticNode
from .sampler import Distribution, SamplerContext

logger = logging.getLogger(__name__)

OUTPUT = "output"

_SUPPORTED_FUNCTIONS = {sp.exp: "exp", sp.log: "log"}

# the only names an expression may call
_CALLABLE = {"exp": sp.exp, "log": sp.log, "sqrt": sp.sqrt}

# everything else an expression names is a Symbol, never a sympy builtin
_PARSE_GLOBALS = {
    "Symbol": sp.Symbol,
    "Integer": sp.Integer,
    "Float": sp.Float,
    "Rational": sp.Rational,
    **_CALLABLE,
}

_TRANSFORMATIONS = standard_transformations + (convert_xor,)

_IDENTIFIER = re.compile(r"(?<![\w.])([A-Za-z_]\w*)(\s*\()?")


# ═══════════════════════════════════════════════════════════════════════
# §1  NODE SPECIFICATIONS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class NodeSpec:
    """
    Declaration of one model node, before any sampling.

    ``seed_offset`` (non-negative) picks an independent random stream for a
    stochastic node; 0 draws from the evaluation seed itself. Streams are
    mixed with the seed rather than added to it, so offsets never alias the
    per-iteration seeds ``seed + j``.
    """
    name: str
    role: Optional[Role] = None
    distribution: Optional[Distribution] = None
    value: Optional[float] = None
    expression: Optional[str] = None
    seed_offset: int = 0

    @property
    def kind(self) -> str:
        if self.expression is not None:
            return "derived"
        if self.distribution is not None:
            return "stochastic"
        return "constant"

    def describe(self) -> str:
        if self.kind == "derived":
            return self.expression
        if self.kind == "stochastic":
            return self.distribution.describe()
        return f"{self.value:g}"


def _parse_role(name, role) -> Role:
    try:
        return Role.parse(role)
    except ValueError as exc:
        raise ExposureModelError(f"Node '{name}': {exc}")


def _spec_from_definition(definition) -> NodeSpec:
    if len(definition) == 3:
        name, role, payload = definition
        params = None
    elif len(definition) == 4:
        name, role, payload, params = definition
    else:
        raise ExposureModelError(
            f"Node definition must be (name, role, distribution-or-constant[, params]), "
            f"got {definition!r}"
        )

    if role is None or str(role).lower() in ("derived", "expression"):
        return NodeSpec(name, expression=str(payload))

    role = _parse_role(name, role)
    if role is Role.CONSTANT:
        return NodeSpec(name, Role.CONSTANT, value=float(payload))
    if role is Role.VARIABILITY_UNCERTAINTY:
        raise ExposureModelError(
            f"Node '{name}': VU nodes are composed from V and U nodes, not declared"
        )
    if not isinstance(payload, Distribution):
        payload = Distribution(payload, params or {})
    return NodeSpec(name, role, distribution=payload)


# ═══════════════════════════════════════════════════════════════════════
# §2  MODEL REGISTRY
# ═══════════════════════════════════════════════════════════════════════

class ExposureModel:
    """
    Ordered mapping from name to node specification, plus the output.

    Construction validates the whole definition: duplicate names, forward
    or unknown references in expressions, and distribution parameters are
    all reported before anything is sampled.
    """

    def __init__(self, specs, output: str, name: str = "exposure"):
        self.name = name
        self.specs = OrderedDict()
        self.sym_vars = {}
        self._exprs = OrderedDict()

        for spec in specs:
            if spec.name in self.specs or spec.name == OUTPUT or spec.name in _PARSE_GLOBALS:
                raise ExposureModelError(f"Duplicate or reserved node name '{spec.name}'")
            if not str(spec.name).isidentifier() or keyword.iskeyword(spec.name):
                raise ExposureModelError(f"Node name '{spec.name}' is not an identifier")
            if spec.kind == "stochastic" and spec.role not in (Role.VARIABILITY, Role.UNCERTAINTY):
                raise ExposureModelError(
                    f"Stochastic node '{spec.name}' must have role V or U, got {spec.role}"
                )
            if (isinstance(spec.seed_offset, bool) or not isinstance(spec.seed_offset, int)
                    or spec.seed_offset < 0):
                raise ExposureModelError(
                    f"Node '{spec.name}': seed_offset must be a non-negative integer, "
                    f"got {spec.seed_offset!r}"
                )
            if spec.kind == "derived":
                self._exprs[spec.name] = self._parse(spec.expression, spec.name)
            self.specs[spec.name] = spec
            self.sym_vars[spec.name] = sp.Symbol(spec.name)

        self.output_expression = output
        self._exprs[OUTPUT] = self._parse(output, OUTPUT)
        logger.debug("model '%s' defined with %d nodes", name, len(self.specs))

    @classmethod
    def from_definitions(cls, definitions, output: str, name: str = "exposure"):
        """Build from ``(name, role, distribution-or-constant, params)`` tuples."""
        return cls([_spec_from_definition(d) for d in definitions], output, name)

    @classmethod
    def from_dict(cls, data: dict) -> "ExposureModel":
        """Build from a JSON-style mapping (see the CLI model file format)."""
        specs = []
        for entry in data.get("nodes", []):
            try:
                node_name = entry["name"]
            except KeyError:
                raise ExposureModelError(f"Node entry without a name: {entry!r}")
            offset = int(entry.get("seed_offset", 0))
            if "expression" in entry:
                specs.append(NodeSpec(node_name, expression=entry["expression"]))
            elif "distribution" in entry:
                specs.append(NodeSpec(
                    node_name, _parse_role(node_name, entry.get("role", "V")),
                    distribution=Distribution(entry["distribution"], entry.get("params", {})),
                    seed_offset=offset,
                ))
            elif "value" in entry:
                specs.append(NodeSpec(node_name, Role.CONSTANT, value=float(entry["value"])))
            else:
                raise ExposureModelError(
                    f"Node '{node_name}' needs one of 'value', 'distribution' or 'expression'"
                )
        if "output" not in data:
            raise ExposureModelError("Model definition has no 'output' expression")
        return cls(specs, data["output"], data.get("name", "exposure"))

    def _parse(self, text: str, owner: str) -> sp.Expr:
        """
        Parse ``text`` against the names declared so far.

        Every identifier becomes a Symbol (so ``E``, ``pi`` or ``beta`` are
        node references, not sympy constants); only exp, log and sqrt may be
        called.
        """
        text = str(text)
        local = {}
        for match in _IDENTIFIER.finditer(text):
            ident, call = match.groups()
            if call and ident not in _CALLABLE:
                raise ExposureModelError(
                    f"Unsupported function '{ident}' in expression of '{owner}'"
                )
            if not call:
                local[ident] = sp.Symbol(ident)
        local.update(self.sym_vars)
        try:
            expr = parse_expr(text, local_dict=local, global_dict=dict(_PARSE_GLOBALS),
                              transformations=_TRANSFORMATIONS)
        except (sp.SympifyError, SyntaxError, TypeError, ValueError, NameError,
                TokenError) as exc:
            raise ExposureModelError(f"Cannot parse expression of '{owner}': {text!r} ({exc})")

        for sym in sorted(expr.free_symbols, key=str):
            if str(sym) not in self.sym_vars:
                raise UndefinedNodeReferenceError(str(sym), f"expression of '{owner}'")
        self._check_supported(expr, owner)
        return expr

    def _check_supported(self, expr, owner: str):
        if expr.is_Symbol or expr.is_number:
            return
        if expr.func in _SUPPORTED_FUNCTIONS or expr.is_Add or expr.is_Mul or expr.is_Pow:
            for arg in expr.args:
                self._check_supported(arg, owner)
            return
        raise ExposureModelError(
            f"Unsupported operation '{expr.func.__name__}' in expression of '{owner}'"
        )

    # ── static inspection ──

    def __contains__(self, name):
        return name in self.specs

    def __iter__(self):
        return iter(self.specs.values())

    def __len__(self):
        return len(self.specs)

    def role_of(self, name: str) -> Role:
        """Dimensional role of a node (or of the output) without sampling."""
        if name == OUTPUT or (name in self.specs and self.specs[name].kind == "derived"):
            roles = [self.role_of(str(s)) for s in self._exprs[name].free_symbols]
            return reduce(infer_role, roles, Role.CONSTANT)
        if name not in self.specs:
            raise UndefinedNodeReferenceError(name, f"model '{self.name}'")
        spec = self.specs[name]
        return spec.role if spec.kind == "stochastic" else Role.CONSTANT

    def output_role(self) -> Role:
        return self.role_of(OUTPUT)

    def stochastic_nodes(self, role) -> list:
        role = Role.parse(role)
        return [s for s in self.specs.values() if s.kind == "stochastic" and s.role is role]

    def derived_nodes(self) -> list:
        return [s for s in self.specs.values() if s.kind == "derived"]

    # ── realization ──

    def realize_node(self, name: str, nsv: int, nsu: int,
                     context: SamplerContext) -> StochasticNode:
        """Sample (or wrap) one constant or stochastic node."""
        spec = self.specs[name]
        if spec.kind == "constant":
            return StochasticNode(name, Role.CONSTANT, [spec.value])
        if spec.kind == "derived":
            raise ExposureModelError(f"Derived node '{name}' is composed, not realized")
        count = nsv if spec.role is Role.VARIABILITY else nsu
        return StochasticNode.sample(spec.distribution, spec.role, count,
                                     context.substream(spec.seed_offset), name=name)

    def realize_inputs(self, nsv: int, nsu: int, context: SamplerContext,
                       roles=(Role.CONSTANT, Role.VARIABILITY, Role.UNCERTAINTY)) -> dict:
        realized = OrderedDict()
        for spec in self.specs.values():
            if spec.kind == "derived":
                continue
            role = spec.role if spec.kind == "stochastic" else Role.CONSTANT
            if role in roles:
                realized[spec.name] = self.realize_node(spec.name, nsv, nsu, context)
        return realized

    # ── composition ──

    def compose(self, realized: dict) -> StochasticNode:
        """
        Compose every derived node and then the output from ``realized``.

        ``realized`` must map each constant and stochastic name to a node;
        it is not modified.
        """
        env = dict(realized)
        for name, expr in self._exprs.items():
            env[name] = _compose(expr, env, name)
        out = env[OUTPUT]
        return StochasticNode(OUTPUT, out.role, out.values)

    def evaluate(self, nsv: int, nsu: int, seed: int) -> StochasticNode:
        """
        Vectorised evaluation: realize every input once and compose the
        output directly as an ``nsv × nsu`` outer-product node.
        """
        realized = self.realize_inputs(nsv, nsu, SamplerContext(seed))
        return self.compose(realized)

    def describe(self) -> list:
        rows = []
        for spec in self.specs.values():
            role = self.role_of(spec.name)
            rows.append({"name": spec.name, "kind": spec.kind, "role": role.value,
                         "definition": spec.describe()})
        rows.append({"name": OUTPUT, "kind": "derived", "role": self.output_role().value,
                     "definition": self.output_expression})
        return rows


def _compose(expr, env: dict, owner: str) -> StochasticNode:
    """Walk a sympy expression, combining realized nodes."""
    if expr.is_Symbol:
        name = str(expr)
        if name not in env:
            raise UndefinedNodeReferenceError(name, f"composition of '{owner}'")
        return env[name]
    if expr.is_number:
        return StochasticNode.constant(float(expr))
    if expr.func in _SUPPORTED_FUNCTIONS:
        return apply(_SUPPORTED_FUNCTIONS[expr.func], _compose(expr.args[0], env, owner))
    if expr.is_Add:
        terms = list(expr.args)
        result = _compose(terms[0], env, owner)
        for term in terms[1:]:
            coeff, _ = term.as_coeff_Mul()
            if coeff.is_number and coeff < 0:
                result = combine(result, _compose(-term, env, owner), "-")
            else:
                result = combine(result, _compose(term, env, owner), "+")
        return result

    numer, denom = sp.fraction(expr)
    if denom != 1:
        return combine(_compose(numer, env, owner), _compose(denom, env, owner), "/")
    if expr.is_Mul:
        factors = [_compose(arg, env, owner) for arg in expr.args]
        return reduce(lambda x, y: combine(x, y, "*"), factors)
    if expr.is_Pow:
        base, exponent = expr.args
        return combine(_compose(base, env, owner), _compose(exponent, env, owner), "**")
    raise ExposureModelError(f"Unsupported operation '{expr.func.__name__}' in '{owner}'")
