# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Extraction of linear and generalized-linear model parameters.

Fitted linear models store coefficients keyed by term name, with the intercept under
``(Intercept)`` (or ``intercept``). Term names are decoded into
:py:class:`~scipfa.extraction.params.Term` objects:

    - ``X1`` is the numeric input field ``X1``
    - ``colorred`` is the indicator of level ``red`` of the factor ``color`` when
      ``color`` is listed in the model's ``factor_levels`` (treatment coding, the
      first level is the baseline and has no term)
    - ``X1:colorred`` is the product of its components

Coefficients that the fit could not estimate (aliased terms, stored as NaN) do not
contribute to predictions and are replaced by zero with a warning.
"""

from __future__ import annotations

import warnings

from typing import Any, Mapping, Optional, Sequence

import numpy as np
import numpy.typing as npt

from scipfa import utils
from scipfa.defaults import INTERACTION_SEPARATOR, INTERCEPT_NAMES
from scipfa.exceptions import UnsupportedFamilyError, UnsupportedModelStateError
from scipfa.extraction.params import GlmParams, Term, TermComponent
from scipfa.extraction.state import StateView

GLM_DEFAULT_LINKS: dict[str, str] = {
    "gaussian": "identity",
    "binomial": "logit",
    "quasibinomial": "logit",
    "poisson": "log",
    "quasipoisson": "log",
    "Gamma": "inverse",
    "inverse.gaussian": "1/mu^2",
    "multinomial": "logit",
}
"""Supported GLM families and the link each uses unless the fit names another."""

BINOMIAL_FAMILIES: tuple[str, ...] = ("binomial", "quasibinomial")
DEFAULT_BINARY_CLASSES: tuple[str, str] = ("0", "1")


def build_terms(
    names: Sequence[str], factor_levels: Optional[Mapping[str, Sequence[Any]]] = None
) -> list[Term]:
    """Decode coefficient names into terms.

    :param names: Coefficient names, excluding the intercept
    :type names: Sequence[str]
    :param factor_levels: Ordered levels of each categorical predictor. Defaults to
        None.
    :type factor_levels: Optional[Mapping[str, Sequence[Any]]]

    :returns: One term per name, in order
    :rtype: list[Term]

    :raises UnsupportedModelStateError: If a name cannot be decoded
    """
    # Every "<factor><level>" dummy name maps back to its factor and level
    dummies: dict[str, tuple[str, str]] = {}
    for factor, levels in (factor_levels or {}).items():
        for level in levels:
            dummies[f"{factor}{level}"] = (str(factor), str(level))

    terms = []
    for name in names:
        components = []
        for part in str(name).split(INTERACTION_SEPARATOR):
            if part in dummies:
                components.append(TermComponent(*dummies[part]))
            elif utils.is_valid_symbol(part):
                components.append(TermComponent(part))
            else:
                raise UnsupportedModelStateError(
                    f"Cannot decode model term '{name}': '{part}' is neither an input"
                    " field nor a level of a known factor"
                )
        terms.append(Term(str(name), components))
    if len({term.name for term in terms}) != len(terms):
        raise UnsupportedModelStateError(f"Duplicate model terms in {list(names)}")
    return terms


def _replace_missing(values: npt.NDArray[np.floating], what: str) -> npt.NDArray:
    """Zero out NaN coefficients, warning about each affected model."""
    if (missing := np.isnan(values)).any():
        warnings.warn(
            f"{int(missing.sum())} {what} could not be estimated by the fit (NaN) and"
            " are treated as zero."
        )
        values = np.where(missing, 0.0, values)
    return values


def split_coefficients(
    view: StateView, coefficients: Any
) -> tuple[list[str], npt.NDArray[np.floating], float]:
    """Split one coefficient set into term names, term coefficients, and intercept.

    :param view: View over the fitted model, consulted for ``term_names`` and
        ``intercept`` when the coefficients are not keyed by name
    :type view: StateView
    :param coefficients: Mapping from term name to value, or a sequence aligned with
        ``term_names``
    :type coefficients: Any

    :returns: Term names, coefficient values, and intercept
    :rtype: tuple[list[str], npt.NDArray[np.floating], float]
    """
    if isinstance(coefficients, Mapping):
        names = [k for k in coefficients if k not in INTERCEPT_NAMES]
        values = np.array([coefficients[k] for k in names], dtype=np.float64)
        intercepts = [coefficients[k] for k in INTERCEPT_NAMES if k in coefficients]
        intercept = intercepts[0] if intercepts else view.get("intercept", 0.0)
    else:
        names = [str(name) for name in view.require("term_names")]
        values = utils.as_float_array(coefficients)
        intercept = view.get("intercept", 0.0)
        if values.size != len(names):
            raise UnsupportedModelStateError(
                f"Got {values.size} coefficients for {len(names)} term names"
            )
    intercept = np.asarray(intercept, dtype=np.float64)
    if intercept.size != 1:
        raise UnsupportedModelStateError("Expected a single intercept")
    return names, values, float(intercept.reshape(-1)[0])


def _multinomial_rows(
    view: StateView, classes: Sequence[str]
) -> tuple[list[str], npt.NDArray[np.floating], npt.NDArray[np.floating]]:
    """Coefficient rows of a reference-class multinomial fit, reference row first."""
    coefficients = view.require("coefficients")
    others = list(classes[1:])

    # Keyed by class label
    if isinstance(coefficients, Mapping):
        if set(map(str, coefficients)) != set(others):
            raise UnsupportedModelStateError(
                f"Multinomial coefficients must be given for classes {others}, got"
                f" {list(coefficients)}"
            )
        by_label = {str(label): value for label, value in coefficients.items()}
        names: Optional[list[str]] = None
        rows, intercepts = [], []
        for label in others:
            row_names, row, intercept = split_coefficients(view, by_label[label])
            if names is not None and row_names != names:
                raise UnsupportedModelStateError(
                    f"Class '{label}' has terms {row_names}, expected {names}"
                )
            names = row_names
            rows.append(row)
            intercepts.append(intercept)
        matrix, intercept_vec = np.vstack(rows), np.array(intercepts)

    # Matrix aligned with the non-reference classes
    else:
        names = [str(name) for name in view.require("term_names")]
        matrix = utils.as_float_array(coefficients, ndim=2)
        intercept_vec = utils.as_float_array(
            view.get("intercept", np.zeros(len(others)))
        )
        if matrix.shape != (len(others), len(names)) or intercept_vec.shape != (
            len(others),
        ):
            raise UnsupportedModelStateError(
                f"Expected a {len(others)}x{len(names)} coefficient matrix and"
                f" {len(others)} intercepts, got shapes {matrix.shape} and"
                f" {intercept_vec.shape}"
            )

    # The reference class has an identically zero linear predictor
    matrix = np.vstack([np.zeros((1, matrix.shape[1])), matrix])
    intercept_vec = np.concatenate([[0.0], intercept_vec])
    return names, matrix, intercept_vec


def extract_glm(view: StateView) -> GlmParams:
    """Extract the parameters of a ``linear`` or ``glm`` fitted model.

    :param view: View over the fitted model's state
    :type view: StateView

    :returns: Extracted parameters
    :rtype: GlmParams

    :raises UnsupportedModelStateError: If required entries are absent or
        malformed
    :raises UnsupportedFamilyError: If the family is not supported
    """
    model_class = view.model_class
    if model_class == "linear":
        family, link = "gaussian", "identity"
    else:
        family = str(view.require("family"))
        if family not in GLM_DEFAULT_LINKS:
            raise UnsupportedFamilyError(
                f"No producer for GLM family '{family}'. Supported families are"
                f" {sorted(GLM_DEFAULT_LINKS)}"
            )
        link = str(view.get("link", GLM_DEFAULT_LINKS[family]))

    factor_levels = view.get("factor_levels")
    feature_names = view.get("feature_names")
    feature_names = None if feature_names is None else [str(f) for f in feature_names]

    # Multiclass fits have one coefficient row per class
    if family == "multinomial":
        classes = [str(c) for c in view.require("classes")]
        if len(classes) < 2:
            raise UnsupportedModelStateError("A multinomial model needs two classes")
        names, matrix, intercepts = _multinomial_rows(view, classes)
        return GlmParams(
            model_class,
            family,
            link,
            build_terms(names, factor_levels),
            _replace_missing(matrix, "coefficients"),
            intercepts,
            labels=classes,
            classes=classes,
            feature_names=feature_names,
        )

    names, values, intercept = split_coefficients(view, view.require("coefficients"))
    classes = None
    if family in BINOMIAL_FAMILIES:
        classes = [str(c) for c in view.get("classes", DEFAULT_BINARY_CLASSES)]
        if len(classes) != 2:
            raise UnsupportedModelStateError(
                f"A binomial model needs exactly two classes, got {classes}"
            )
    return GlmParams(
        model_class,
        family,
        link,
        build_terms(names, factor_levels),
        _replace_missing(values, "coefficients")[np.newaxis, :],
        np.array([intercept]),
        classes=classes,
        feature_names=feature_names,
    )
