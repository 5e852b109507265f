# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Extraction of gradient-boosted and random-forest tree ensembles.

Each tree is given as a node table: parallel arrays (or DataFrame columns)
``split_feature``, ``split_threshold``, ``left_child``, ``right_child``, and
``leaf_value``, plus an optional ``node_id`` column. Without ``node_id`` children
refer to row positions; with it, children refer to node ids. The root is always the
first row, and leaves have a negative ``split_feature``.

Tables are normalized to :py:class:`~scipfa.extraction.params.TreeTable` objects
indexed by row position, after checking that every internal node reachable from
the root tests a known feature and that the reachable nodes form a tree (no cycles,
no node with two parents, no dangling children).
"""

from __future__ import annotations

from typing import Any

import numpy as np
import numpy.typing as npt

from scipfa import utils
from scipfa.exceptions import UnsupportedFamilyError, UnsupportedModelStateError
from scipfa.extraction.linear import DEFAULT_BINARY_CLASSES
from scipfa.extraction.params import TreeEnsembleParams, TreeTable
from scipfa.extraction.state import StateView

TREE_COLUMNS: tuple[str, ...] = (
    "split_feature",
    "split_threshold",
    "left_child",
    "right_child",
    "leaf_value",
)

BOOSTING_DISTRIBUTIONS: tuple[str, ...] = (
    "gaussian",
    "laplace",
    "tdist",
    "quantile",
    "bernoulli",
    "adaboost",
    "poisson",
    "coxph",
    "multinomial",
)
"""Supported gradient-boosting distributions."""

BINARY_DISTRIBUTIONS: tuple[str, ...] = ("bernoulli", "adaboost")
FOREST_TYPES: tuple[str, ...] = ("regression", "classification")
SPLIT_OPERATORS: tuple[str, ...] = ("<", "<=")


def _integer_array(values: Any, name: str) -> npt.NDArray[np.integer]:
    """Convert a column to integers; missing entries (NaN) become -1."""
    array = np.asarray(values, dtype=np.float64).reshape(-1)
    array = np.where(np.isnan(array), -1.0, array)
    if not np.all(array == np.round(array)):
        raise UnsupportedModelStateError(f"'{name}' must hold integers")
    return array.astype(int)


def extract_tree_table(table: Any, n_features: int, label: str = "tree") -> TreeTable:
    """Normalize one node table.

    :param table: Mapping, DataFrame, or object exposing the node columns
    :type table: Any
    :param n_features: Number of features ``split_feature`` may index
    :type n_features: int
    :param label: Description of the tree used in error messages. Defaults to
        "tree".
    :type label: str

    :returns: The tree, indexed by row position
    :rtype: TreeTable

    :raises UnsupportedModelStateError: If a column is missing, columns differ in
        length, or the nodes do not form a tree
    """
    view = StateView(table, label=label)
    columns = {name: view.require(name) for name in TREE_COLUMNS}
    features = _integer_array(columns["split_feature"], "split_feature")
    thresholds = np.asarray(columns["split_threshold"], dtype=np.float64).reshape(-1)
    left = _integer_array(columns["left_child"], "left_child")
    right = _integer_array(columns["right_child"], "right_child")
    leaves = np.asarray(columns["leaf_value"], dtype=np.float64).reshape(-1)
    n_nodes = len(features)
    if n_nodes == 0:
        raise UnsupportedModelStateError(f"The {label} has no nodes")
    if any(len(column) != n_nodes for column in (thresholds, left, right, leaves)):
        raise UnsupportedModelStateError(f"The columns of the {label} differ in length")

    # Children refer to node ids when ids are given
    if view.has("node_id"):
        ids = _integer_array(view.get("node_id"), "node_id")
        if len(ids) != n_nodes or len(set(ids.tolist())) != n_nodes:
            raise UnsupportedModelStateError(
                f"The node ids of the {label} are not unique"
            )
        row_of = {node_id: row for row, node_id in enumerate(ids.tolist())}
    else:
        row_of = {row: row for row in range(n_nodes)}

    # Walk from the root, remapping children and checking the structure
    left_rows = np.full(n_nodes, -1)
    right_rows = np.full(n_nodes, -1)
    visited = np.zeros(n_nodes, dtype=bool)
    stack = [0]
    while stack:
        row = stack.pop()
        if visited[row]:
            raise UnsupportedModelStateError(
                f"Node {row} of the {label} is reached twice; the nodes contain a cycle"
                " or a shared subtree"
            )
        visited[row] = True

        if features[row] < 0:
            if not np.isfinite(leaves[row]):
                raise UnsupportedModelStateError(
                    f"Leaf {row} of the {label} has a non-finite value"
                )
            continue
        if features[row] >= n_features:
            raise UnsupportedModelStateError(
                f"Node {row} of the {label} splits on feature {features[row]},"
                f" but there are only {n_features} features"
            )
        if not np.isfinite(thresholds[row]):
            raise UnsupportedModelStateError(
                f"Node {row} of the {label} has a non-finite threshold"
            )
        for child, rows in ((left[row], left_rows), (right[row], right_rows)):
            if child not in row_of:
                raise UnsupportedModelStateError(
                    f"Node {row} of the {label} refers to missing child {child}"
                )
            rows[row] = row_of[child]
            stack.append(row_of[child])

    return TreeTable(features, thresholds, left_rows, right_rows, leaves)


def _extract_trees(view: StateView, n_features: int) -> list[TreeTable]:
    return [
        extract_tree_table(table, n_features, label=f"tree {i}")
        for i, table in enumerate(view.require("trees"))
    ]


def _split_operator(view: StateView) -> str:
    operator = str(view.get("split_operator", "<"))
    if operator not in SPLIT_OPERATORS:
        raise UnsupportedModelStateError(
            f"Unsupported split operator '{operator}'. Use one of {SPLIT_OPERATORS}"
        )
    return operator


def extract_gradient_boosting(view: StateView) -> TreeEnsembleParams:
    """Extract a gradient-boosted ensemble.

    Multiclass ensembles hold one tree per class per boosting iteration, ordered
    iteration-major, so tree ``i`` contributes to class ``i % n_classes``.

    :param view: View over the fitted model's state
    :type view: StateView

    :returns: Extracted ensemble
    :rtype: TreeEnsembleParams

    :raises UnsupportedModelStateError: If required entries are absent or malformed
    :raises UnsupportedFamilyError: If the distribution is not supported
    """
    distribution = str(view.require("distribution"))
    if distribution not in BOOSTING_DISTRIBUTIONS:
        raise UnsupportedFamilyError(
            f"No producer for boosting distribution '{distribution}'. Supported"
            f" distributions are {list(BOOSTING_DISTRIBUTIONS)}"
        )
    feature_names = [str(name) for name in view.require("feature_names")]
    trees = _extract_trees(view, len(feature_names))
    learning_rate = float(view.require("learning_rate"))
    init_score = utils.as_float_array(view.get("init_score", 0.0))

    classes = tree_outputs = None
    if distribution == "multinomial":
        classes = [str(c) for c in view.require("classes")]
        n_classes = len(classes)
        if n_classes < 2 or len(trees) % n_classes != 0:
            raise UnsupportedModelStateError(
                f"A multinomial ensemble of {len(trees)} trees cannot be split evenly"
                f" between {n_classes} classes"
            )
        tree_outputs = np.arange(len(trees)) % n_classes
        if init_score.size == 1:
            init_score = np.repeat(init_score, n_classes)
    elif distribution in BINARY_DISTRIBUTIONS:
        classes = [str(c) for c in view.get("classes", DEFAULT_BINARY_CLASSES)]
        if len(classes) != 2:
            raise UnsupportedModelStateError(
                f"A {distribution} ensemble needs exactly two classes, got {classes}"
            )
    if init_score.size != (len(classes) if distribution == "multinomial" else 1):
        raise UnsupportedModelStateError(
            f"Got {init_score.size} initial scores for a {distribution} ensemble"
        )

    return TreeEnsembleParams(
        view.model_class,
        distribution,
        trees,
        feature_names,
        aggregation="sum",
        classes=classes,
        learning_rate=learning_rate,
        init_score=init_score,
        tree_outputs=tree_outputs,
        split_operator=_split_operator(view),
    )


def extract_random_forest(view: StateView) -> TreeEnsembleParams:
    """Extract a random-forest ensemble.

    Leaves of classification forests hold zero-based indexes into ``classes``.

    :param view: View over the fitted model's state
    :type view: StateView

    :returns: Extracted ensemble
    :rtype: TreeEnsembleParams

    :raises UnsupportedModelStateError: If required entries are absent, the forest
        is empty, or a leaf names an unknown class
    :raises UnsupportedFamilyError: If the forest type is not supported
    """
    forest_type = str(view.require("type"))
    if forest_type not in FOREST_TYPES:
        raise UnsupportedFamilyError(
            f"No producer for random forest type '{forest_type}'. Supported types are"
            f" {list(FOREST_TYPES)}"
        )
    feature_names = [str(name) for name in view.require("feature_names")]
    trees = _extract_trees(view, len(feature_names))
    if len(trees) == 0:
        raise UnsupportedModelStateError("The random forest has no trees")

    classes = None
    if forest_type == "classification":
        classes = [str(c) for c in view.require("classes")]
        for i, tree in enumerate(trees):
            leaf_values = tree.leaf_value[tree.split_feature < 0]
            if not np.all(
                (leaf_values == np.round(leaf_values))
                & (leaf_values >= 0)
                & (leaf_values < len(classes))
            ):
                raise UnsupportedModelStateError(
                    f"Leaves of tree {i} must hold class indexes below {len(classes)}"
                )

    return TreeEnsembleParams(
        view.model_class,
        forest_type,
        trees,
        feature_names,
        aggregation="majority_vote" if forest_type == "classification" else "mean",
        classes=classes,
        split_operator=_split_operator(view),
    )
