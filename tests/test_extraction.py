from __future__ import annotations

import types as pytypes
import warnings

import numpy as np
import pandas as pd
import pytest
from scipy import sparse

from scipfa.exceptions import UnsupportedFamilyError, UnsupportedModelStateError
from scipfa.extraction import extract, select_lambda
from scipfa.extraction.linear import build_terms
from scipfa.extraction.params import TermComponent
from scipfa.extraction.trees import extract_tree_table
from scipfa.pfa import types


def _stump(feature: int, threshold: float, left: float, right: float) -> dict:
    return {
        "split_feature": [feature, -1, -1],
        "split_threshold": [threshold, np.nan, np.nan],
        "left_child": [1, -1, -1],
        "right_child": [2, -1, -1],
        "leaf_value": [np.nan, left, right],
    }


def test_unknown_model_class() -> None:
    with pytest.raises(UnsupportedFamilyError, match="model class 'svm'"):
        extract({"model_class": "svm"})


def test_stripped_state_is_reported() -> None:
    with pytest.raises(UnsupportedModelStateError, match="no 'coefficients' entry"):
        extract({"model_class": "linear"})
    with pytest.raises(UnsupportedModelStateError, match="model_class"):
        extract({})


def test_state_read_from_attributes() -> None:
    state = pytypes.SimpleNamespace(
        model_class="glm",
        family="poisson",
        coefficients={"(Intercept)": 0.5, "x": 0.25},
    )
    params = extract(state)
    assert params.link == "log"
    assert params.coefficients.tolist() == [[0.25]]
    assert params.intercepts.tolist() == [0.5]


def test_unsupported_glm_family() -> None:
    with pytest.raises(UnsupportedFamilyError, match="tweedie"):
        extract({"model_class": "glm", "family": "tweedie", "coefficients": {}})


def test_build_terms_decodes_factors_and_interactions() -> None:
    terms = build_terms(
        ["X1", "colorred", "X1:colorblue"], {"color": ["green", "red", "blue"]}
    )
    assert terms[0].components == (TermComponent("X1"),)
    assert terms[1].components == (TermComponent("color", "red"),)
    assert terms[2].is_interaction
    assert terms[2].components == (
        TermComponent("X1"),
        TermComponent("color", "blue"),
    )
    with pytest.raises(UnsupportedModelStateError, match="Cannot decode"):
        build_terms(["poly(X1, 2)"], None)


def test_glm_input_fields_follow_term_types() -> None:
    params = extract(
        {
            "model_class": "glm",
            "family": "binomial",
            "coefficients": {"(Intercept)": -1.0, "age": 0.1, "sexmale": 0.4},
            "factor_levels": {"sex": ["female", "male"]},
            "feature_names": ["age", "sex", "unused"],
        }
    )
    assert params.classes == ("0", "1")
    assert params.input_fields == [
        ("age", types.DOUBLE),
        ("sex", types.STRING),
        ("unused", types.DOUBLE),
    ]


def test_nan_coefficients_are_zeroed_with_warning() -> None:
    with pytest.warns(UserWarning, match="treated as zero"):
        params = extract(
            {
                "model_class": "linear",
                "coefficients": [1.0, np.nan],
                "term_names": ["a", "b"],
                "intercept": 2.0,
            }
        )
    assert params.coefficients.tolist() == [[1.0, 0.0]]


def test_multinomial_glm_adds_reference_row() -> None:
    params = extract(
        {
            "model_class": "glm",
            "family": "multinomial",
            "classes": ["A", "B", "C"],
            "coefficients": {
                "B": {"(Intercept)": 1.0, "x": 2.0},
                "C": {"(Intercept)": -1.0, "x": 0.5},
            },
        }
    )
    assert params.labels == ("A", "B", "C")
    assert params.coefficients.tolist() == [[0.0], [2.0], [0.5]]
    assert params.intercepts.tolist() == [0.0, 1.0, -1.0]


def test_select_lambda_exact_match_does_not_warn() -> None:
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        assert select_lambda(np.array([0.1, 0.05, 0.01]), 0.05) == 1


def test_select_lambda_rounds_up_with_warning() -> None:
    with pytest.warns(UserWarning, match="not on the fitted path"):
        assert select_lambda(np.array([0.1, 0.05, 0.01]), 0.07) == 0


def test_select_lambda_above_path_uses_largest() -> None:
    with pytest.warns(UserWarning, match="above the fitted path"):
        assert select_lambda(np.array([0.1, 0.05, 0.01]), 5.0) == 0


def test_select_lambda_tiny_values_are_not_matched_absolutely() -> None:
    lambdas = np.array([1e-3, 5e-9, 1e-9])
    with pytest.warns(UserWarning, match="not on the fitted path"):
        assert select_lambda(lambdas, 6e-9) == 0
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        assert select_lambda(lambdas, 5e-9) == 1


def test_select_lambda_best() -> None:
    lambdas = np.array([0.1, 0.05, 0.01])
    assert select_lambda(lambdas, "best") == 2
    assert select_lambda(lambdas, "best", lambda_min=0.05) == 1
    with pytest.raises(ValueError):
        select_lambda(lambdas, "worst")


def test_elastic_net_sparse_path() -> None:
    beta = sparse.csc_matrix(np.array([[0.0, 1.0, 2.0], [0.0, 0.0, -1.0]]))
    params = extract(
        {
            "model_class": "elastic_net",
            "family": "gaussian",
            "lambda": [1.0, 0.5, 0.1],
            "beta": beta,
            "a0": [3.0, 2.0, 1.0],
            "feature_names": ["u", "v"],
        },
        lambda_=0.5,
    )
    assert params.coefficients.tolist() == [[1.0, 0.0]]
    assert params.intercepts.tolist() == [2.0]
    assert params.lambda_ == 0.5


def test_elastic_net_multinomial_per_class_paths() -> None:
    betas = [np.zeros((1, 2)), np.array([[0.5, 1.0]]), np.array([[-0.5, -1.0]])]
    params = extract(
        {
            "model_class": "elastic_net",
            "family": "multinomial",
            "lambda": [0.2, 0.1],
            "beta": betas,
            "a0": np.array([[0.0, 0.0], [0.1, 0.2], [-0.1, -0.2]]),
            "feature_names": ["x"],
            "classes": ["a", "b", "c"],
        }
    )
    assert params.classes == ("a", "b", "c")
    assert params.coefficients.tolist() == [[0.0], [1.0], [-1.0]]
    assert params.intercepts.tolist() == [0.0, 0.2, -0.2]


def test_binomial_elastic_net_needs_two_classes() -> None:
    with pytest.raises(UnsupportedModelStateError, match="exactly two classes"):
        extract(
            {
                "model_class": "elastic_net",
                "family": "binomial",
                "lambda": [0.1],
                "beta": np.array([[1.0]]),
                "a0": [0.0],
                "feature_names": ["x"],
                "classes": ["a", "b", "c"],
            }
        )


def test_tree_table_with_node_ids_and_frame() -> None:
    frame = pd.DataFrame(
        {
            "node_id": [10, 11, 12],
            "split_feature": [0, -1, -1],
            "split_threshold": [0.5, np.nan, np.nan],
            "left_child": [11, np.nan, np.nan],
            "right_child": [12, np.nan, np.nan],
            "leaf_value": [np.nan, 1.0, 2.0],
        }
    )
    tree = extract_tree_table(frame, n_features=1)
    assert tree.left_child.tolist()[0] == 1
    assert tree.predict([0.2]) == 1.0
    assert tree.predict([0.9]) == 2.0


def test_tree_table_rejects_cycles_and_dangling_children() -> None:
    cyclic = _stump(0, 0.5, 1.0, 2.0)
    cyclic["split_feature"][1] = 0
    cyclic["split_threshold"][1] = 0.1
    cyclic["left_child"][1], cyclic["right_child"][1] = 0, 2
    with pytest.raises(UnsupportedModelStateError, match="reached twice"):
        extract_tree_table(cyclic, n_features=1)

    dangling = _stump(0, 0.5, 1.0, 2.0)
    dangling["right_child"][0] = 7
    with pytest.raises(UnsupportedModelStateError, match="missing child 7"):
        extract_tree_table(dangling, n_features=1)

    with pytest.raises(UnsupportedModelStateError, match="only 1 features"):
        extract_tree_table(_stump(3, 0.5, 1.0, 2.0), n_features=1)


def test_multinomial_boosting_assigns_trees_round_robin() -> None:
    params = extract(
        {
            "model_class": "gradient_boosting",
            "distribution": "multinomial",
            "trees": [_stump(0, 0.5, float(i), -float(i)) for i in range(6)],
            "feature_names": ["x"],
            "learning_rate": 0.1,
            "init_score": 0.0,
            "classes": ["a", "b", "c"],
        }
    )
    assert params.tree_outputs.tolist() == [0, 1, 2, 0, 1, 2]
    assert params.init_score.tolist() == [0.0, 0.0, 0.0]


def test_unsupported_boosting_distribution() -> None:
    with pytest.raises(UnsupportedFamilyError, match="huberized"):
        extract(
            {
                "model_class": "gradient_boosting",
                "distribution": "huberized",
                "trees": [],
                "feature_names": [],
                "learning_rate": 0.1,
            }
        )


def test_forest_leaves_must_be_class_indexes() -> None:
    with pytest.raises(UnsupportedModelStateError, match="class indexes below 2"):
        extract(
            {
                "model_class": "random_forest",
                "type": "classification",
                "trees": [_stump(0, 0.5, 0.0, 2.0)],
                "feature_names": ["x"],
                "classes": ["no", "yes"],
            }
        )
