# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Parameter extraction from fitted-model state.

The ``model_class`` entry of a fitted model's state selects one extractor from a
closed table. Each extractor turns the opaque state into a neutral parameter record
(:py:class:`~scipfa.extraction.params.GlmParams` or
:py:class:`~scipfa.extraction.params.TreeEnsembleParams`).
"""

from __future__ import annotations

from typing import Any, Callable, TYPE_CHECKING

from scipfa.defaults import DEFAULT_LAMBDA
from scipfa.exceptions import UnsupportedFamilyError
from scipfa.extraction.elastic_net import extract_elastic_net, select_lambda
from scipfa.extraction.linear import extract_glm
from scipfa.extraction.params import ExtractedParams, GlmParams, TreeEnsembleParams
from scipfa.extraction.state import StateView
from scipfa.extraction.trees import extract_gradient_boosting, extract_random_forest

if TYPE_CHECKING:
    from scipfa import custom_types

EXTRACTORS: dict[str, Callable[[StateView], ExtractedParams]] = {
    "linear": extract_glm,
    "glm": extract_glm,
    "elastic_net": extract_elastic_net,
    "gradient_boosting": extract_gradient_boosting,
    "random_forest": extract_random_forest,
}
"""Extractor for each supported ``model_class``."""


def extract(
    fitted_model: Any, lambda_: "custom_types.LambdaSpec" = DEFAULT_LAMBDA
) -> ExtractedParams:
    """Extract the parameters of a fitted model.

    :param fitted_model: Fitted model state, as a mapping or an object
    :type fitted_model: custom_types.ModelState
    :param lambda_: Regularization strength to select for elastic-net fits.
        Defaults to "best".
    :type lambda_: custom_types.LambdaSpec

    :returns: Neutral parameter record
    :rtype: ExtractedParams

    :raises UnsupportedFamilyError: If no extractor exists for the model class
    :raises UnsupportedModelStateError: If the state lacks required entries
    """
    view = StateView(fitted_model)
    if (model_class := view.model_class) not in EXTRACTORS:
        raise UnsupportedFamilyError(
            f"No producer for model class '{model_class}'. Supported classes are"
            f" {sorted(EXTRACTORS)}"
        )
    if model_class == "elastic_net":
        return extract_elastic_net(view, lambda_)
    return EXTRACTORS[model_class](view)
