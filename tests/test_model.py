"""Tests for the model registry and expression composition."""

import numpy as np
import pytest

from exposure_system.exceptions import (
    DistributionParamError,
    ExposureModelError,
    UndefinedNodeReferenceError,
)
from exposure_system.model import ExposureModel, NodeSpec
from exposure_system.node import Role, StochasticNode
from exposure_system.sampler import Distribution, SamplerContext


def _normal():
    return Distribution("normal", {"mean": 0.0, "sd": 1.0})


def _model(output, extra=()):
    return ExposureModel.from_definitions([
        ("v", "V", "lognormal", {"meanlog": 0.0, "sdlog": 1.0}),
        ("u", "U", "uniform", {"min": 1.0, "max": 2.0}),
        ("k", "0", 4.0),
    ] + list(extra), output)


class TestDefinition:
    """Model construction validates the whole definition up front."""

    def test_roles(self, simple_model):
        assert simple_model.role_of("intake") is Role.VARIABILITY
        assert simple_model.role_of("conc") is Role.UNCERTAINTY
        assert simple_model.role_of("k") is Role.CONSTANT
        assert simple_model.output_role() is Role.VARIABILITY_UNCERTAINTY

    def test_output_role_without_uncertainty(self):
        assert _model("k * v").output_role() is Role.VARIABILITY
        assert _model("k + 1").output_role() is Role.CONSTANT

    def test_derived_role(self):
        model = _model("w", extra=[("w", "derived", "u * k")])
        assert model.role_of("w") is Role.UNCERTAINTY

    def test_forward_reference_detected_at_construction(self):
        with pytest.raises(UndefinedNodeReferenceError) as exc:
            ExposureModel.from_definitions([
                ("dose", "derived", "v * 2"),
                ("v", "V", "lognormal", {"meanlog": 0.0, "sdlog": 1.0}),
            ], "dose")
        assert exc.value.name == "v"

    def test_undefined_output_reference(self):
        with pytest.raises(UndefinedNodeReferenceError):
            _model("v * missing")

    def test_self_reference(self):
        with pytest.raises(UndefinedNodeReferenceError):
            _model("w", extra=[("w", "derived", "w + 1")])

    def test_duplicate_name(self):
        with pytest.raises(ExposureModelError):
            _model("v", extra=[("v", "0", 1.0)])

    def test_reserved_output_name(self):
        with pytest.raises(ExposureModelError):
            _model("v", extra=[("output", "0", 1.0)])

    def test_bad_distribution_parameters_reported_early(self):
        with pytest.raises(DistributionParamError):
            ExposureModel.from_definitions(
                [("v", "V", "normal", {"mean": 0.0, "sd": 0.0})], "v"
            )

    def test_unsupported_function(self):
        with pytest.raises(ExposureModelError):
            _model("sin(v)")

    def test_unparseable_expression(self):
        with pytest.raises(ExposureModelError):
            _model("v * (u")

    def test_vu_nodes_cannot_be_declared(self):
        with pytest.raises(ExposureModelError):
            ExposureModel.from_definitions(
                [("x", "VU", "normal", {"mean": 0, "sd": 1})], "x"
            )

    def test_unknown_role(self):
        with pytest.raises(ExposureModelError, match="'x'"):
            ExposureModel.from_definitions(
                [("x", "W", "normal", {"mean": 0, "sd": 1})], "x"
            )

    def test_names_shadowing_sympy_builtins(self):
        model = ExposureModel.from_definitions([
            ("E", "V", "uniform", {"min": 0.0, "max": 1.0}),
            ("beta", "0", 2.0),
        ], "E * beta")
        assert model.output_role() is Role.VARIABILITY

    def test_declared_constant_named_like_sympy_constant(self):
        model = _model("v * E", extra=[("E", "0", 10.0)])
        out = model.compose({
            "v": StochasticNode.variability([1.0, 2.0]),
            "u": StochasticNode.uncertainty([1.0]),
            "k": StochasticNode.constant(4.0),
            "E": StochasticNode.constant(10.0),
        })
        assert out.values.tolist() == [10.0, 20.0]

    @pytest.mark.parametrize("name", ["E", "pi", "I", "N", "S", "beta", "gamma", "oo"])
    def test_undeclared_sympy_names_are_undefined_references(self, name):
        with pytest.raises(UndefinedNodeReferenceError) as exc:
            _model(f"v * {name}")
        assert exc.value.name == name

    def test_forward_reference_to_sympy_name(self):
        with pytest.raises(UndefinedNodeReferenceError) as exc:
            _model("d", extra=[("d", "derived", "v * E"), ("E", "0", 10.0)])
        assert exc.value.name == "E"

    @pytest.mark.parametrize("text", ["abs(v)", "max(v, u)", "gamma(v)", "exp(v) * sin(u)"])
    def test_only_exp_log_sqrt_may_be_called(self, text):
        with pytest.raises(ExposureModelError, match="Unsupported function"):
            _model(text)

    def test_keyword_name_rejected(self):
        with pytest.raises(ExposureModelError):
            _model("v", extra=[("lambda", "0", 1.0)])

    @pytest.mark.parametrize("name", ["Integer", "Float", "exp"])
    def test_parser_names_reserved(self, name):
        with pytest.raises(ExposureModelError, match="reserved"):
            _model("v", extra=[(name, "0", 1.0)])

    def test_negative_seed_offset_rejected(self):
        with pytest.raises(ExposureModelError):
            ExposureModel([NodeSpec("a", Role.VARIABILITY, distribution=_normal(),
                                    seed_offset=-1)], "a")

    def test_from_dict(self):
        model = ExposureModel.from_dict({
            "name": "json",
            "nodes": [
                {"name": "c", "role": "U", "distribution": "lognormal",
                 "params": {"meanlog": 0, "sdlog": 1}},
                {"name": "v", "role": "V", "distribution": "truncnorm",
                 "params": {"mean": 1, "sd": 0.5, "lower": 0}, "seed_offset": 3},
                {"name": "k", "value": 0.5},
                {"name": "d", "expression": "k * c"},
            ],
            "output": "d * v",
        })
        assert model.name == "json"
        assert len(model) == 4
        assert model.specs["v"].seed_offset == 3
        assert model.output_role() is Role.VARIABILITY_UNCERTAINTY

    def test_from_dict_requires_output(self):
        with pytest.raises(ExposureModelError):
            ExposureModel.from_dict({"nodes": [{"name": "k", "value": 1}]})

    def test_describe(self, simple_model):
        rows = simple_model.describe()
        assert [r["name"] for r in rows] == ["intake", "conc", "k", "output"]
        assert rows[-1]["role"] == "VU"


class TestComposition:
    """Expressions are evaluated through the composition engine."""

    def test_outer_product_from_expression(self):
        model = _model("v * u")
        out = model.compose({
            "v": StochasticNode.variability([1.0, 2.0]),
            "u": StochasticNode.uncertainty([10.0, 20.0]),
            "k": StochasticNode.constant(4.0),
        })
        assert out.name == "output"
        assert out.values.tolist() == [[10.0, 20.0], [20.0, 40.0]]

    def test_subtraction_and_division(self):
        v = np.array([1.0, 2.0, 4.0])
        u = np.array([3.0, 5.0])
        realized = {
            "v": StochasticNode.variability(v),
            "u": StochasticNode.uncertainty(u),
            "k": StochasticNode.constant(4.0),
        }
        out = _model("(u - v) / k").compose(realized)
        np.testing.assert_allclose(out.values, (u[None, :] - v[:, None]) / 4.0)
        out = _model("k / v - u").compose(realized)
        np.testing.assert_allclose(out.values, 4.0 / v[:, None] - u[None, :])

    def test_dose_response_chain(self):
        model = _model("1 - exp(-k * dose)", extra=[("dose", "derived", "v * u / 10")])
        v = np.array([0.5, 1.5])
        u = np.array([2.0, 3.0, 7.0])
        out = model.compose({
            "v": StochasticNode.variability(v),
            "u": StochasticNode.uncertainty(u),
            "k": StochasticNode.constant(4.0),
        })
        dose = v[:, None] * u[None, :] / 10
        np.testing.assert_allclose(out.values, 1 - np.exp(-4.0 * dose))

    def test_power_and_root(self):
        out = _model("sqrt(v) + v**2").compose({
            "v": StochasticNode.variability([4.0, 9.0]),
            "u": StochasticNode.uncertainty([1.0]),
            "k": StochasticNode.constant(4.0),
        })
        np.testing.assert_allclose(out.values, [18.0, 84.0])

    def test_caret_is_power_and_scientific_notation(self):
        out = _model("v^2 * 1e-3").compose({
            "v": StochasticNode.variability([10.0, 20.0]),
            "u": StochasticNode.uncertainty([1.0]),
            "k": StochasticNode.constant(4.0),
        })
        np.testing.assert_allclose(out.values, [0.1, 0.4])

    def test_missing_realized_node(self):
        with pytest.raises(UndefinedNodeReferenceError):
            _model("v * u").compose({"v": StochasticNode.variability([1.0])})

    def test_realize_inputs_sizes(self, simple_model):
        realized = simple_model.realize_inputs(7, 3, SamplerContext(1))
        assert realized["intake"].shape == (7,)
        assert realized["conc"].shape == (3,)
        assert realized["k"].role is Role.CONSTANT

    def test_realize_inputs_role_filter(self, simple_model):
        realized = simple_model.realize_inputs(7, 3, SamplerContext(1),
                                               roles=(Role.UNCERTAINTY,))
        assert list(realized) == ["conc"]

    def test_seed_offset_changes_draw(self):
        model = ExposureModel([
            NodeSpec("a", Role.VARIABILITY, distribution=_normal()),
            NodeSpec("b", Role.VARIABILITY, distribution=_normal(), seed_offset=1),
        ], "a - b")
        realized = model.realize_inputs(10, 2, SamplerContext(5))
        assert not np.array_equal(realized["a"].values, realized["b"].values)

    def test_seed_offset_does_not_alias_next_iteration(self):
        model = ExposureModel([
            NodeSpec("a", Role.VARIABILITY, distribution=_normal()),
            NodeSpec("b", Role.VARIABILITY, distribution=_normal(), seed_offset=1),
        ], "a - b")
        iteration_0 = model.realize_inputs(10, 2, SamplerContext(5))
        iteration_1 = model.realize_inputs(10, 2, SamplerContext(5).derive(1))
        assert not np.array_equal(iteration_0["b"].values, iteration_1["a"].values)
        assert not np.array_equal(iteration_0["b"].values, iteration_1["b"].values)

    def test_shared_seed_by_default(self):
        model = ExposureModel([
            NodeSpec("a", Role.VARIABILITY, distribution=_normal()),
            NodeSpec("b", Role.VARIABILITY, distribution=_normal()),
        ], "a - b")
        realized = model.realize_inputs(10, 2, SamplerContext(5))
        assert np.array_equal(realized["a"].values, realized["b"].values)

    def test_vectorised_evaluate(self, simple_model):
        out = simple_model.evaluate(6, 4, 2)
        assert out.role is Role.VARIABILITY_UNCERTAINTY
        assert out.shape == (6, 4)
