from __future__ import annotations

import math
from typing import Any

import numpy as np
import pytest
from scipy import stats

import scipfa
from scipfa import CompileOptions
from scipfa.exceptions import InvalidCutoffsError, UnsupportedFamilyError
from scipfa.pfa import types

from reference_engine import evaluate


def _compile(state: dict[str, Any], **options: Any) -> Any:
    return scipfa.compile_model(state, CompileOptions(**options))


def _logistic(eta: float) -> float:
    return 1.0 / (1.0 + math.exp(-eta))


def _stump(feature: int, threshold: float, left: float, right: float) -> dict:
    return {
        "split_feature": [feature, -1, -1],
        "split_threshold": [threshold, np.nan, np.nan],
        "left_child": [1, -1, -1],
        "right_child": [2, -1, -1],
        "leaf_value": [np.nan, left, right],
    }


def _two_level_tree() -> dict:
    # x0 < 1.0 ? (x1 < 0.0 ? -1.0 : 0.5) : 2.0
    return {
        "split_feature": [0, 1, -1, -1, -1],
        "split_threshold": [1.0, 0.0, np.nan, np.nan, np.nan],
        "left_child": [1, 3, -1, -1, -1],
        "right_child": [2, 4, -1, -1, -1],
        "leaf_value": [np.nan, np.nan, 2.0, -1.0, 0.5],
    }


LINEAR_STATE = {
    "model_class": "linear",
    "coefficients": {"(Intercept)": 3.0, "X1": -5.0},
}

BINOMIAL_STATE = {
    "model_class": "glm",
    "family": "binomial",
    "coefficients": {"(Intercept)": -0.5, "age": 0.04, "sexmale": 0.8},
    "factor_levels": {"sex": ["female", "male"]},
    "classes": ["died", "survived"],
}

MULTINOMIAL_STATE = {
    "model_class": "glm",
    "family": "multinomial",
    "classes": ["A", "B", "C"],
    "coefficients": {
        "B": {"(Intercept)": math.log(3.0), "x": 1.0},
        "C": {"(Intercept)": math.log(6.0), "x": -2.0},
    },
}


def test_linear_model_scores_intercept_plus_slope() -> None:
    doc = _compile(LINEAR_STATE)
    assert doc.input == types.avro_record("Input", [("X1", types.DOUBLE)])
    assert doc.output == types.DOUBLE
    assert evaluate(doc, {"X1": 0.5}) == pytest.approx(0.5)
    assert doc.metadata["model_class"] == "linear"
    assert doc.metadata["pred_type"] == "response"


def test_linear_model_rejects_class_predictions() -> None:
    with pytest.raises(UnsupportedFamilyError, match="classifying family"):
        _compile(LINEAR_STATE, pred_type="class")
    with pytest.raises(UnsupportedFamilyError):
        _compile(LINEAR_STATE, pred_type="probability")


def test_unsupported_glm_family() -> None:
    with pytest.raises(UnsupportedFamilyError):
        _compile({"model_class": "glm", "family": "tweedie", "coefficients": {}})


def test_options_reject_unknown_pred_type() -> None:
    with pytest.raises(ValueError, match="Unknown pred_type"):
        CompileOptions(pred_type="odds")


@pytest.mark.parametrize("age, sex", [(30.0, "male"), (62.0, "female")])
def test_binomial_glm_link_and_response(age: float, sex: str) -> None:
    eta = -0.5 + 0.04 * age + (0.8 if sex == "male" else 0.0)
    datum = {"age": age, "sex": sex}
    assert evaluate(_compile(BINOMIAL_STATE, pred_type="link"), datum) == pytest.approx(
        eta
    )
    response = _compile(BINOMIAL_STATE)
    assert response.input.field_type("sex") == types.STRING
    assert evaluate(response, datum) == pytest.approx(_logistic(eta))
    assert evaluate(_compile(BINOMIAL_STATE, pred_type="probability"), datum) == (
        pytest.approx(_logistic(eta))
    )


def test_binomial_glm_class_threshold() -> None:
    datum = {"age": 30.0, "sex": "male"}  # p ~= 0.818
    doc = _compile(BINOMIAL_STATE, pred_type="class")
    assert doc.output == types.STRING
    assert evaluate(doc, datum) == "survived"

    strict = _compile(BINOMIAL_STATE, pred_type="class", cutoffs={"positive": 0.9})
    assert evaluate(strict, datum) == "died"
    named = _compile(BINOMIAL_STATE, pred_type="class", cutoffs={"survived": 0.8})
    assert evaluate(named, datum) == "survived"


def test_binomial_glm_class_ratio_rule_when_both_cutoffs_given() -> None:
    datum = {"age": 30.0, "sex": "male"}
    p = _logistic(-0.5 + 0.04 * 30.0 + 0.8)

    # p / 0.9 < (1 - p) / 0.1
    doc = _compile(
        BINOMIAL_STATE, pred_type="class", cutoffs={"died": 0.1, "survived": 0.9}
    )
    assert p / 0.9 < (1 - p) / 0.1
    assert evaluate(doc, datum) == "died"
    assert doc.to_json()["cells"]["cutoffs"]["init"] == [0.1, 0.9]


@pytest.mark.parametrize(
    "link, inverse",
    [
        ("probit", stats.norm.cdf),
        ("cloglog", lambda eta: 1.0 - math.exp(-math.exp(eta))),
        ("cauchit", stats.cauchy.cdf),
    ],
)
def test_binomial_glm_alternative_links(link: str, inverse: Any) -> None:
    state = dict(BINOMIAL_STATE, link=link)
    eta = -0.5 + 0.04 * 50.0
    assert evaluate(_compile(state), {"age": 50.0, "sex": "female"}) == pytest.approx(
        float(inverse(eta)), rel=1e-6
    )


@pytest.mark.parametrize(
    "family, link, inverse",
    [
        ("poisson", None, math.exp),
        ("Gamma", None, lambda eta: 1.0 / eta),
        ("inverse.gaussian", None, lambda eta: 1.0 / math.sqrt(eta)),
        ("gaussian", "log", math.exp),
        ("quasipoisson", "sqrt", lambda eta: eta**2),
    ],
)
def test_glm_families(family: str, link: Any, inverse: Any) -> None:
    state = {
        "model_class": "glm",
        "family": family,
        "coefficients": [0.3, 0.2],
        "term_names": ["x", "x:z"],
        "intercept": 1.0,
    }
    if link is not None:
        state["link"] = link
    eta = 1.0 + 0.3 * 2.0 + 0.2 * 2.0 * 0.5
    assert evaluate(_compile(state), {"x": 2.0, "z": 0.5}) == pytest.approx(
        inverse(eta)
    )


def test_multinomial_glm_probabilities() -> None:
    doc = _compile(MULTINOMIAL_STATE)
    assert doc.output == types.avro_map(types.DOUBLE)
    assert "models" in doc.pools
    assert evaluate(doc, {"x": 0.0}) == pytest.approx({"A": 0.1, "B": 0.3, "C": 0.6})

    eta = np.array([0.0, math.log(3.0) + 0.5, math.log(6.0) - 1.0])
    expected = np.exp(eta) / np.exp(eta).sum()
    assert evaluate(doc, {"x": 0.5}) == pytest.approx(dict(zip("ABC", expected)))
    assert evaluate(_compile(MULTINOMIAL_STATE, pred_type="link"), {"x": 0.5}) == (
        pytest.approx(dict(zip("ABC", eta)))
    )


def test_multinomial_glm_class_uses_cutoff_ratio() -> None:
    # Probabilities are {A: .1, B: .3, C: .6} at x = 0
    plain = _compile(MULTINOMIAL_STATE, pred_type="class")
    assert evaluate(plain, {"x": 0.0}) == "C"
    weighted = _compile(
        MULTINOMIAL_STATE, pred_type="class", cutoffs={"A": 0.1, "B": 0.2, "C": 0.7}
    )
    assert evaluate(weighted, {"x": 0.0}) == "B"


def test_multinomial_unnamed_cutoffs_default_to_uniform() -> None:
    doc = _compile(MULTINOMIAL_STATE, pred_type="class", cutoffs={"C": 0.9})
    assert doc.to_json()["cells"]["cutoffs"]["init"] == pytest.approx(
        [1 / 3, 1 / 3, 0.9]
    )
    # Ratios at x = 0 are 0.3, 0.9, and 0.667
    assert evaluate(doc, {"x": 0.0}) == "B"


@pytest.mark.parametrize(
    "cutoffs, message",
    [
        ({"D": 0.5}, "unknown class 'D'"),
        ({"A": 0.0}, "positive and finite"),
        ({"A": "high"}, "not a number"),
    ],
)
def test_invalid_cutoffs(cutoffs: dict, message: str) -> None:
    with pytest.raises(InvalidCutoffsError, match=message):
        _compile(MULTINOMIAL_STATE, pred_type="class", cutoffs=cutoffs)


ELASTIC_NET_STATE = {
    "model_class": "elastic_net",
    "family": "multinomial",
    "lambda": [0.2, 0.1],
    "beta": [np.zeros((1, 2)), np.array([[0.5, 1.0]]), np.array([[-0.5, -1.0]])],
    "a0": [[0.0, 0.0], [0.1, 0.2], [-0.1, -0.2]],
    "feature_names": ["x"],
    "classes": ["a", "b", "c"],
}

MULTI_RESPONSE_STATE = {
    "model_class": "elastic_net",
    "family": "mgaussian",
    "lambda": [0.1],
    "beta": [np.array([[1.0]]), np.array([[-2.0]])],
    "a0": [[0.5], [1.0]],
    "feature_names": ["x"],
    "responses": ["height", "weight"],
}

BOOSTING_STATE = {
    "model_class": "gradient_boosting",
    "distribution": "bernoulli",
    "trees": [_stump(0, 0.0, -1.0, 1.0)],
    "feature_names": ["x"],
    "learning_rate": 0.5,
    "init_score": 0.0,
}

POISSON_STATE = {
    "model_class": "glm",
    "family": "poisson",
    "coefficients": {"(Intercept)": 0.5, "x": 0.25},
}

FOREST_STATE = {
    "model_class": "random_forest",
    "type": "classification",
    "trees": [_stump(0, 0.5, 0.0, 1.0), _stump(0, 0.3, 1.0, 0.0)],
    "feature_names": ["x"],
    "classes": ["a", "b"],
}

FOREST_REGRESSION_STATE = {
    "model_class": "random_forest",
    "type": "regression",
    "trees": [_stump(0, 0.5, 2.0, 4.0)],
    "feature_names": ["x"],
}

ALL_PRED_TYPES = ("response", "link", "probability", "class")
CONTINUOUS_PRED_TYPES = ("response", "link")


@pytest.mark.parametrize(
    "state, pred_types",
    [
        (LINEAR_STATE, CONTINUOUS_PRED_TYPES),
        (BINOMIAL_STATE, ALL_PRED_TYPES),
        (MULTINOMIAL_STATE, ALL_PRED_TYPES),
        (POISSON_STATE, CONTINUOUS_PRED_TYPES),
        (ELASTIC_NET_STATE, ALL_PRED_TYPES),
        (MULTI_RESPONSE_STATE, CONTINUOUS_PRED_TYPES),
        (BOOSTING_STATE, ALL_PRED_TYPES),
        (dict(BOOSTING_STATE, distribution="poisson"), CONTINUOUS_PRED_TYPES),
        (FOREST_STATE, ALL_PRED_TYPES),
        (FOREST_REGRESSION_STATE, CONTINUOUS_PRED_TYPES),
    ],
    ids=[
        "linear",
        "binomial",
        "multinomial",
        "poisson",
        "elastic-net-multinomial",
        "elastic-net-mgaussian",
        "boosting-bernoulli",
        "boosting-poisson",
        "forest-classification",
        "forest-regression",
    ],
)
def test_declared_output_type_matches_action(
    state: dict[str, Any], pred_types: tuple[str, ...]
) -> None:
    for pred_type in pred_types:
        doc = _compile(state, pred_type=pred_type)
        assert doc.infer_output_type() == doc.output


def test_elastic_net_gaussian_selected_lambda() -> None:
    state = {
        "model_class": "elastic_net",
        "family": "gaussian",
        "lambda": [1.0, 0.1, 0.01],
        "beta": np.array([[0.0, 0.5, 0.7], [0.0, -1.0, -1.2]]),
        "a0": [2.0, 1.5, 1.0],
        "feature_names": ["u", "v"],
    }
    with pytest.warns(UserWarning, match="not on the fitted path"):
        doc = _compile(state, lambda_=0.07)
    assert doc.metadata["lambda"] == "0.1"
    assert evaluate(doc, {"u": 2.0, "v": 1.0}) == pytest.approx(1.5 + 1.0 - 1.0)

    # "best" is the least regularized fit without a cross-validated choice
    assert evaluate(_compile(state), {"u": 2.0, "v": 1.0}) == pytest.approx(
        1.0 + 1.4 - 1.2
    )


def test_elastic_net_binomial_and_cox() -> None:
    base = {
        "lambda": [0.5, 0.05],
        "beta": np.array([[0.0, 2.0]]),
        "feature_names": ["x"],
        "lambda_min": 0.05,
    }
    binomial = dict(base, model_class="elastic_net", family="binomial", a0=[0.0, -1.0])
    assert evaluate(_compile(binomial), {"x": 0.25}) == pytest.approx(_logistic(-0.5))
    assert evaluate(_compile(binomial, pred_type="class"), {"x": 0.25}) == "0"

    cox = dict(base, model_class="elastic_net", family="cox")
    assert evaluate(_compile(cox), {"x": 0.25}) == pytest.approx(math.exp(0.5))
    assert evaluate(_compile(cox, pred_type="link"), {"x": 0.25}) == pytest.approx(0.5)


def test_elastic_net_multi_response_gaussian() -> None:
    state = {
        "model_class": "elastic_net",
        "family": "mgaussian",
        "lambda": [0.1],
        "beta": [np.array([[1.0]]), np.array([[-2.0]])],
        "a0": [[0.5], [1.0]],
        "feature_names": ["x"],
        "responses": ["height", "weight"],
    }
    doc = _compile(state)
    assert doc.output == types.avro_map(types.DOUBLE)
    assert evaluate(doc, {"x": 3.0}) == pytest.approx({"height": 3.5, "weight": -5.0})
    with pytest.raises(UnsupportedFamilyError):
        _compile(state, pred_type="class")


def test_gradient_boosting_gaussian() -> None:
    state = {
        "model_class": "gradient_boosting",
        "distribution": "gaussian",
        "trees": [_two_level_tree(), _stump(1, 0.25, 0.1, 0.2)],
        "feature_names": ["x0", "x1"],
        "learning_rate": 0.1,
        "init_score": 10.0,
    }
    doc = _compile(state)
    for x0, x1, expected in [
        (0.5, -1.0, 10.0 + 0.1 * (-1.0 + 0.1)),
        (0.5, 1.0, 10.0 + 0.1 * (0.5 + 0.2)),
        (1.5, 0.0, 10.0 + 0.1 * (2.0 + 0.1)),
    ]:
        assert evaluate(doc, {"x0": x0, "x1": x1}) == pytest.approx(expected)


def test_gradient_boosting_split_operator() -> None:
    state = {
        "model_class": "gradient_boosting",
        "distribution": "gaussian",
        "trees": [_stump(0, 1.0, -1.0, 1.0)],
        "feature_names": ["x"],
        "learning_rate": 1.0,
    }
    assert evaluate(_compile(state), {"x": 1.0}) == pytest.approx(1.0)
    inclusive = dict(state, split_operator="<=")
    assert evaluate(_compile(inclusive), {"x": 1.0}) == pytest.approx(-1.0)


@pytest.mark.parametrize(
    "distribution, transform",
    [
        ("bernoulli", _logistic),
        ("adaboost", lambda f: _logistic(2.0 * f)),
        ("poisson", math.exp),
    ],
)
def test_gradient_boosting_transforms(distribution: str, transform: Any) -> None:
    state = {
        "model_class": "gradient_boosting",
        "distribution": distribution,
        "trees": [_stump(0, 0.0, -0.4, 0.6), _stump(0, 1.0, 0.2, -0.2)],
        "feature_names": ["x"],
        "learning_rate": 0.5,
        "init_score": 0.1,
    }
    score = 0.1 + 0.5 * (0.6 + 0.2)
    assert evaluate(_compile(state, pred_type="link"), {"x": 0.5}) == pytest.approx(
        score
    )
    assert evaluate(_compile(state), {"x": 0.5}) == pytest.approx(transform(score))


def test_gradient_boosting_binary_class() -> None:
    state = {
        "model_class": "gradient_boosting",
        "distribution": "bernoulli",
        "trees": [_stump(0, 0.0, -2.0, 2.0)],
        "feature_names": ["x"],
        "learning_rate": 1.0,
        "classes": ["neg", "pos"],
    }
    doc = _compile(state, pred_type="class")
    assert evaluate(doc, {"x": -1.0}) == "neg"
    assert evaluate(doc, {"x": 1.0}) == "pos"


def test_gradient_boosting_multinomial() -> None:
    trees = [
        _stump(0, 0.0, 1.0, -1.0),  # class a
        _stump(0, 0.0, 0.0, 0.5),  # class b
        _stump(0, 0.0, -1.0, 1.0),  # class c
        _stump(0, 2.0, 0.2, 0.0),  # class a
        _stump(0, 2.0, 0.1, 0.0),  # class b
        _stump(0, 2.0, 0.0, 0.3),  # class c
    ]
    state = {
        "model_class": "gradient_boosting",
        "distribution": "multinomial",
        "trees": trees,
        "feature_names": ["x"],
        "learning_rate": 0.5,
        "init_score": [0.1, 0.0, -0.1],
        "classes": ["a", "b", "c"],
    }
    scores = np.array([0.1 + 0.5 * (-1.0 + 0.2), 0.5 * (0.5 + 0.1), -0.1 + 0.5 * 1.0])
    expected = np.exp(scores) / np.exp(scores).sum()
    datum = {"x": 1.0}
    assert evaluate(_compile(state), datum) == pytest.approx(dict(zip("abc", expected)))
    assert evaluate(_compile(state, pred_type="link"), datum) == pytest.approx(
        dict(zip("abc", scores))
    )
    assert evaluate(_compile(state, pred_type="class"), datum) == "c"


def test_random_forest_regression_averages_trees() -> None:
    state = {
        "model_class": "random_forest",
        "type": "regression",
        "trees": [_two_level_tree(), _stump(0, 0.0, 4.0, 8.0)],
        "feature_names": ["x0", "x1"],
    }
    doc = _compile(state)
    assert evaluate(doc, {"x0": 0.5, "x1": 1.0}) == pytest.approx((0.5 + 8.0) / 2)
    assert evaluate(_compile(state, pred_type="link"), {"x0": 0.5, "x1": 1.0}) == (
        pytest.approx(4.25)
    )


def test_random_forest_classification_votes() -> None:
    state = {
        "model_class": "random_forest",
        "type": "classification",
        "trees": [
            _stump(0, 0.5, 0.0, 1.0),
            _stump(0, 0.3, 1.0, 0.0),
            _stump(0, 0.7, 1.0, 2.0),
        ],
        "feature_names": ["x"],
        "classes": ["a", "b", "c"],
    }
    datum = {"x": 0.2}
    assert evaluate(_compile(state), datum) == pytest.approx(
        {"a": 1 / 3, "b": 2 / 3, "c": 0.0}
    )
    assert evaluate(_compile(state, pred_type="class"), datum) == "b"
    weighted = _compile(state, pred_type="class", cutoffs={"b": 0.9})
    assert evaluate(weighted, datum) == "a"


def test_forest_tree_dispatch_matches_native_walk() -> None:
    state = {
        "model_class": "random_forest",
        "type": "regression",
        "trees": [_two_level_tree()],
        "feature_names": ["x0", "x1"],
    }
    params = scipfa.extraction.extract(state)
    doc = _compile(state)
    rng = np.random.default_rng(1)
    for x0, x1 in rng.uniform(-2.0, 2.0, size=(20, 2)):
        native = params.trees[0].predict([float(x0), float(x1)])
        datum = {"x0": float(x0), "x1": float(x1)}
        assert evaluate(doc, datum) == pytest.approx(native)
