# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Producers for gradient-boosted and random-forest tree ensembles.

Every tree becomes a nest of split tests on the input record's fields that bottoms
out at leaf literals. The trees of an ensemble are collected into an array literal
and aggregated:

    - Boosting adds ``init_score + learning_rate * sum(trees)`` per output, then
      maps the score to the response scale of the distribution (identity,
      logistic, exponential, or soft-max for multinomial ensembles).
    - Regression forests average their trees.
    - Classification forests collect each tree's class index into ``votes`` and
      report the fraction of votes per class. Predicted classes follow the
      cutoff-ratio rule over those fractions.
"""

from __future__ import annotations

from typing import Callable

import numpy as np

from scipfa.extraction.params import TreeEnsembleParams, TreeTable
from scipfa.pfa import expressions as ex
from scipfa.pfa import types
from scipfa.producers import links
from scipfa.producers.options import CompileOptions


def tree_expression(
    tree: TreeTable,
    feature_names: tuple[str, ...],
    leaf: Callable[[float], ex.Expression],
    operator: str = "<",
) -> ex.Expression:
    """Build the nested split tests of one tree.

    :param tree: Tree to translate
    :type tree: TreeTable
    :param feature_names: Input field tested for each feature index
    :type feature_names: tuple[str, ...]
    :param leaf: Builds the literal returned at a leaf from its value
    :type leaf: Callable[[float], ex.Expression]
    :param operator: Comparison taking the left branch. Defaults to "<".
    :type operator: str

    :returns: Expression evaluating to the tree's leaf value
    :rtype: ex.Expression
    """

    def build(row: int) -> ex.Expression:
        if tree.is_leaf(row):
            return leaf(float(tree.leaf_value[row]))
        return ex.split_test(
            ex.input_field(feature_names[tree.split_feature[row]]),
            float(tree.split_threshold[row]),
            build(int(tree.left_child[row])),
            build(int(tree.right_child[row])),
            operator,
        )

    return build(0)


def _trees_array(
    params: TreeEnsembleParams,
    trees: list[TreeTable],
    leaf: Callable[[float], ex.Expression],
    leaf_type: types.AvroType,
) -> ex.ArrayLit:
    return ex.ArrayLit(
        [
            tree_expression(tree, params.feature_names, leaf, params.split_operator)
            for tree in trees
        ],
        leaf_type,
    )


def produce_gradient_boosting(
    params: TreeEnsembleParams, options: CompileOptions
) -> tuple:
    """Build the document fragments of a gradient-boosted ensemble.

    :param params: Extracted ensemble
    :type params: TreeEnsembleParams
    :param options: Compilation options
    :type options: CompileOptions

    :returns: ``(input_type, output_type, cells, pools, action)``
    :rtype: tuple

    :raises UnsupportedFamilyError: If the distribution has no transform
    :raises InvalidCutoffsError: If the cutoffs do not match the model's classes
    """
    input_type = types.avro_record(options.input_name, params.input_fields)

    # Raw score of each output
    scores = []
    for output in range(params.n_outputs):
        trees = [
            tree
            for tree, tree_output in zip(params.trees, params.tree_outputs)
            if tree_output == output
        ]
        total = ex.call("a.sum", _trees_array(params, trees, ex.double, types.DOUBLE))
        scaled = ex.call("*", ex.double(params.learning_rate), total)
        scores.append(ex.call("+", ex.double(params.init_score[output]), scaled))

    # Multinomial ensembles have one score per class
    if params.family == "multinomial":
        classes = params.classes
        action: list[ex.Expression] = [
            ex.Let({"scores": ex.ArrayLit(scores, types.DOUBLE)})
        ]
        if options.pred_type == "link":
            action.append(links.label_map("scores", classes))
            return input_type, types.AvroMap(types.DOUBLE), [], [], action
        action.append(ex.Let({"probs": ex.softmax("scores")}))
        if options.pred_type != "class":
            action.append(links.label_map("probs", classes))
            return input_type, types.AvroMap(types.DOUBLE), [], [], action
        cells, decision = links.ratio_rule("probs", classes, options.cutoffs)
        return input_type, types.STRING, cells, [], action + [decision]

    action = [ex.Let({"score": scores[0]})]
    if options.pred_type == "link":
        return input_type, types.DOUBLE, [], [], action + [ex.VarRef("score")]
    response = links.boosting_transform(params.family, "score")
    if options.pred_type != "class":
        return input_type, types.DOUBLE, [], [], action + [response]

    # Binary decision on the probability of the second class
    cells, statements = links.binary_decision(
        response, params.classes, options.cutoffs
    )
    return input_type, types.STRING, cells, [], action + statements


def _class_leaf(value: float) -> ex.Literal:
    return ex.Literal(types.INT, int(np.round(value)))


def produce_random_forest(
    params: TreeEnsembleParams, options: CompileOptions
) -> tuple:
    """Build the document fragments of a random-forest ensemble.

    Forests have no link scale, so ``link`` predictions equal ``response``
    predictions.

    :param params: Extracted ensemble
    :type params: TreeEnsembleParams
    :param options: Compilation options
    :type options: CompileOptions

    :returns: ``(input_type, output_type, cells, pools, action)``
    :rtype: tuple

    :raises InvalidCutoffsError: If the cutoffs do not match the model's classes
    """
    input_type = types.avro_record(options.input_name, params.input_fields)
    if not params.is_classifier:
        mean = ex.call(
            "a.mean", _trees_array(params, list(params.trees), ex.double, types.DOUBLE)
        )
        return input_type, types.DOUBLE, [], [], [mean]

    # Vote fractions per class
    classes = params.classes
    n_trees = len(params.trees)
    votes = _trees_array(params, list(params.trees), _class_leaf, types.INT)
    fractions = ex.ArrayLit(
        [
            ex.call("/", ex.call("a.count", "votes", k), ex.double(n_trees))
            for k in range(len(classes))
        ],
        types.DOUBLE,
    )
    action: list[ex.Expression] = [
        ex.Let({"votes": votes}),
        ex.Let({"probs": fractions}),
    ]
    if options.pred_type != "class":
        action.append(links.label_map("probs", classes))
        return input_type, types.AvroMap(types.DOUBLE), [], [], action

    cells, decision = links.ratio_rule("probs", classes, options.cutoffs)
    return input_type, types.STRING, cells, [], action + [decision]
