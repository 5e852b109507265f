# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Configuration record passed explicitly into compilation.

There is no package-level configuration state: every choice that alters a compiled
document is carried by a :py:class:`CompileOptions` instance, whose defaults are
the named constants of :py:mod:`scipfa.defaults`.
"""

from __future__ import annotations

import math

from typing import Any, Mapping, Optional, TYPE_CHECKING

from scipfa import utils
from scipfa.defaults import (
    DEFAULT_INPUT_NAME,
    DEFAULT_LAMBDA,
    DEFAULT_PRED_TYPE,
    PRED_TYPES,
)

if TYPE_CHECKING:
    from scipfa import custom_types


class CompileOptions:
    """Options selecting what a compiled document predicts.

    :param pred_type: What the document outputs: ``response`` applies the inverse
        link, ``link`` returns the linear predictor (or raw ensemble score),
        ``probability`` returns class probabilities, and ``class`` returns the
        predicted class label. Defaults to "response".
    :type pred_type: custom_types.PredType
    :param cutoffs: Per-class cutoffs for the class decision. A binary model
        given a cutoff for its positive class only predicts that class when its
        probability exceeds the cutoff; otherwise the class maximizing
        ``probability / cutoff`` is predicted, with unnamed classes defaulting to
        ``1 / n_classes``. Defaults to None.
    :type cutoffs: Optional[custom_types.Cutoffs]
    :param lambda_: Regularization strength to compile from an elastic-net path,
        or ``"best"``. Defaults to "best".
    :type lambda_: custom_types.LambdaSpec
    :param name: Name written into the document. Defaults to None.
    :type name: Optional[str]
    :param doc: Documentation string written into the document. Defaults to None.
    :type doc: Optional[str]
    :param input_name: Name of the generated input record type. Defaults to
        "Input".
    :type input_name: str

    :raises ValueError: If ``pred_type`` is not recognized or ``lambda_`` is
        neither ``"best"`` nor a non-negative number
    """

    def __init__(
        self,
        pred_type: str = DEFAULT_PRED_TYPE,
        cutoffs: Optional[Mapping[str, Any]] = None,
        lambda_: "custom_types.LambdaSpec" = DEFAULT_LAMBDA,
        name: Optional[str] = None,
        doc: Optional[str] = None,
        input_name: str = DEFAULT_INPUT_NAME,
    ):
        if pred_type not in PRED_TYPES:
            raise ValueError(
                f"Unknown pred_type '{pred_type}'. Choose one of {list(PRED_TYPES)}"
            )
        if isinstance(lambda_, str):
            if lambda_ != DEFAULT_LAMBDA:
                raise ValueError(f"lambda_ must be a number or 'best', got '{lambda_}'")
        elif not (math.isfinite(lambda_) and lambda_ >= 0):
            raise ValueError(f"lambda_ must be non-negative and finite, got {lambda_}")
        if not utils.is_valid_type_name(input_name):
            raise ValueError(f"'{input_name}' is not a valid record name")

        self.pred_type = pred_type
        self.cutoffs = (
            None if cutoffs is None else {str(k): v for k, v in cutoffs.items()}
        )
        self.lambda_ = lambda_ if isinstance(lambda_, str) else float(lambda_)
        self.name = name
        self.doc = doc
        self.input_name = input_name

    def __repr__(self) -> str:
        return (
            f"CompileOptions(pred_type={self.pred_type!r}, cutoffs={self.cutoffs!r},"
            f" lambda_={self.lambda_!r})"
        )
