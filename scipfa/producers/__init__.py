# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Model producers turning extracted parameters into document fragments.

A producer returns ``(input_type, output_type, cells, pools, action)``, ready to be
handed to :py:func:`scipfa.pfa.document.assemble`. Producers are selected from a
closed table keyed by the ``model_class`` of the extracted parameters.
"""

from __future__ import annotations

from typing import Callable

from scipfa.exceptions import UnsupportedFamilyError
from scipfa.extraction.params import ExtractedParams
from scipfa.producers.linear import produce_glm
from scipfa.producers.options import CompileOptions
from scipfa.producers.trees import produce_gradient_boosting, produce_random_forest

PRODUCERS: dict[str, Callable[[ExtractedParams, CompileOptions], tuple]] = {
    "linear": produce_glm,
    "glm": produce_glm,
    "elastic_net": produce_glm,
    "gradient_boosting": produce_gradient_boosting,
    "random_forest": produce_random_forest,
}
"""Producer for each supported ``model_class``."""

CLASSIFIER_PRED_TYPES: tuple[str, ...] = ("probability", "class")


def produce(params: ExtractedParams, options: CompileOptions) -> tuple:
    """Build the document fragments of an extracted model.

    :param params: Extracted parameters
    :type params: ExtractedParams
    :param options: Compilation options
    :type options: CompileOptions

    :returns: ``(input_type, output_type, cells, pools, action)``
    :rtype: tuple

    :raises UnsupportedFamilyError: If no producer exists for the model class, or
        a class prediction is requested from a family that does not classify
    :raises InvalidCutoffsError: If the cutoffs do not match the model's classes
    """
    if params.model_class not in PRODUCERS:
        raise UnsupportedFamilyError(
            f"No producer for model class '{params.model_class}'"
        )
    if options.pred_type in CLASSIFIER_PRED_TYPES and not params.is_classifier:
        raise UnsupportedFamilyError(
            f"pred_type '{options.pred_type}' requires a classifying family, but"
            f" the {params.model_class} model has family '{params.family}'"
        )
    return PRODUCERS[params.model_class](params, options)
