# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Producer for linear, generalized-linear, and elastic-net models.

The generated action first builds the model-matrix row of the input as an array
variable ``x``, one element per term: numeric fields are read directly, factor
levels become ``1.0``/``0.0`` indicators of string fields, and interactions are
products of their components. Coefficients live in document storage as
``{coeff, const}`` records consumed by ``model.reg.linear``:

    - Single-output models keep one record in the ``model`` cell.
    - Multiclass and multi-response models keep one record per class (or
      response) in the ``models`` pool, keyed by label. The linear predictors are
      collected into the array ``eta``, aligned with the labels.

The linear predictor is then mapped to the requested prediction type with the
inverse links and decision rules of :py:mod:`scipfa.producers.links`.
"""

from __future__ import annotations

from functools import reduce

from scipfa.defaults import (
    DEFAULT_MODEL_CELL,
    DEFAULT_MODEL_POOL,
    DEFAULT_REGRESSION_RECORD_NAME,
)
from scipfa.exceptions import UnsupportedFamilyError
from scipfa.extraction.params import GlmParams, Term, TermComponent
from scipfa.pfa import expressions as ex
from scipfa.pfa import types
from scipfa.pfa.document import Cell, Pool
from scipfa.producers import links
from scipfa.producers.options import CompileOptions


def regression_record() -> types.AvroRecord:
    """The ``{coeff: array<double>, const: double}`` type of one linear model."""
    return types.avro_record(
        DEFAULT_REGRESSION_RECORD_NAME,
        [("coeff", types.AvroArray(types.DOUBLE)), ("const", types.DOUBLE)],
    )


def component_expression(component: TermComponent) -> ex.Expression:
    """Read one term component from the input record as a double."""
    value = ex.input_field(component.field)
    if component.is_indicator:
        return ex.If(
            ex.call("==", value, ex.string(component.level)),
            ex.double(1.0),
            ex.double(0.0),
        )
    return value


def term_expression(term: Term) -> ex.Expression:
    """The value of a term: the product of its components."""
    return reduce(
        lambda product, comp: ex.call("*", product, component_expression(comp)),
        term.components[1:],
        component_expression(term.components[0]),
    )


def produce_glm(params: GlmParams, options: CompileOptions) -> tuple:
    """Build the document fragments of a (generalized) linear model.

    :param params: Extracted coefficients
    :type params: GlmParams
    :param options: Compilation options
    :type options: CompileOptions

    :returns: ``(input_type, output_type, cells, pools, action)``
    :rtype: tuple

    :raises UnsupportedFamilyError: If the link has no inverse or the family does
        not support the requested prediction type
    :raises InvalidCutoffsError: If the cutoffs do not match the model's classes
    """
    input_type = types.avro_record(options.input_name, params.input_fields)
    x = ex.ArrayLit([term_expression(term) for term in params.terms], types.DOUBLE)
    action: list[ex.Expression] = [ex.Let({"x": x})]
    if params.labels is None:
        return _produce_single(params, options, input_type, action)
    return _produce_multiple(params, options, input_type, action)


def _produce_single(
    params: GlmParams,
    options: CompileOptions,
    input_type: types.AvroType,
    action: list[ex.Expression],
) -> tuple:
    """One linear predictor held in a cell."""
    cells = [
        Cell(
            DEFAULT_MODEL_CELL,
            regression_record(),
            {"coeff": params.coefficients[0], "const": params.intercepts[0]},
        )
    ]
    eta = ex.call("model.reg.linear", "x", ex.CellRef(DEFAULT_MODEL_CELL))
    if options.pred_type == "link":
        return input_type, types.DOUBLE, cells, [], action + [eta]

    response = links.inverse_link(params.link, eta)
    if options.pred_type != "class":
        return input_type, types.DOUBLE, cells, [], action + [response]

    # Binary decision on the probability of the second class
    extra_cells, statements = links.binary_decision(
        response, params.classes, options.cutoffs
    )
    return input_type, types.STRING, cells + extra_cells, [], action + statements


def _produce_multiple(
    params: GlmParams,
    options: CompileOptions,
    input_type: types.AvroType,
    action: list[ex.Expression],
) -> tuple:
    """One linear predictor per class or response, held in a pool."""
    pools = [
        Pool(
            DEFAULT_MODEL_POOL,
            regression_record(),
            {
                label: {"coeff": coeff, "const": const}
                for label, coeff, const in zip(
                    params.labels, params.coefficients, params.intercepts
                )
            },
        )
    ]
    eta = ex.ArrayLit(
        [
            ex.call("model.reg.linear", "x", ex.PoolRef(DEFAULT_MODEL_POOL, [label]))
            for label in params.labels
        ],
        types.DOUBLE,
    )
    action.append(ex.Let({"eta": eta}))
    map_type = types.AvroMap(types.DOUBLE)
    if options.pred_type == "link" or not params.is_classifier:
        if params.link != "identity" and options.pred_type != "link":
            raise UnsupportedFamilyError(
                f"No multi-response transform for link '{params.link}'"
            )
        action.append(links.label_map("eta", params.labels))
        return input_type, map_type, [], pools, action

    # Multiclass probabilities are the soft-max of the linear predictors
    if params.link != "logit":
        raise UnsupportedFamilyError(
            f"Multiclass models require the logit link, got '{params.link}'"
        )
    action.append(ex.Let({"probs": ex.softmax("eta")}))
    if options.pred_type != "class":
        action.append(links.label_map("probs", params.labels))
        return input_type, map_type, [], pools, action

    cells, decision = links.ratio_rule("probs", params.classes, options.cutoffs)
    return input_type, types.STRING, cells, pools, action + [decision]
