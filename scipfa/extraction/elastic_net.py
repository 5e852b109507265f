# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Extraction of a single fit from an elastic-net regularization path.

An elastic-net fit stores coefficients for a whole, decreasing path of
regularization strengths (``lambda``). Compilation selects one entry of the path:

    - An entry equal to the requested strength (within :py:func:`numpy.isclose`)
      is used directly.
    - Otherwise the smallest strength at least as large as the request is used,
      the earlier path entry winning ties, and a warning names the substitution.
    - A request above the whole path uses the largest strength, with a warning.
    - ``"best"`` uses the cross-validated ``lambda_min`` when the fit carries one,
      and the last (least regularized) entry of the path otherwise.

Coefficient matrices are commonly stored sparse; they are densified with
:py:mod:`scipy.sparse` before the selected column is taken.
"""

from __future__ import annotations

import warnings

from typing import Any, Optional, TYPE_CHECKING

import numpy as np
import numpy.typing as npt

from scipy import sparse

from scipfa import utils
from scipfa.defaults import DEFAULT_LAMBDA, LAMBDA_MATCH_RTOL
from scipfa.exceptions import UnsupportedFamilyError, UnsupportedModelStateError
from scipfa.extraction.linear import DEFAULT_BINARY_CLASSES, build_terms
from scipfa.extraction.params import GlmParams
from scipfa.extraction.state import StateView

if TYPE_CHECKING:
    from scipfa import custom_types

ELASTIC_NET_LINKS: dict[str, str] = {
    "gaussian": "identity",
    "binomial": "logit",
    "poisson": "log",
    "cox": "log",
    "multinomial": "logit",
    "mgaussian": "identity",
}
"""Supported elastic-net families and their links."""

MULTI_OUTPUT_FAMILIES: tuple[str, ...] = ("multinomial", "mgaussian")


def select_lambda(
    lambdas: npt.NDArray[np.floating],
    requested: "custom_types.LambdaSpec" = DEFAULT_LAMBDA,
    lambda_min: Optional["custom_types.Float"] = None,
) -> int:
    """Choose the path index to compile for a requested regularization strength.

    :param lambdas: Regularization strengths of the fitted path
    :type lambdas: npt.NDArray[np.floating]
    :param requested: A strength, or ``"best"``. Defaults to "best".
    :type requested: custom_types.LambdaSpec
    :param lambda_min: Cross-validated best strength, used for ``"best"``.
        Defaults to None.
    :type lambda_min: Optional[custom_types.Float]

    :returns: Index into the path
    :rtype: int

    :raises UnsupportedModelStateError: If the path is empty
    :raises ValueError: If the request is neither a positive number nor ``"best"``

    Example:
        >>> select_lambda(np.array([0.1, 0.05, 0.01]), 0.07)  # warns
        0
    """
    if lambdas.size == 0:
        raise UnsupportedModelStateError("The fitted regularization path is empty")

    if isinstance(requested, str):
        if requested != "best":
            raise ValueError(f"Lambda must be a number or 'best', got '{requested}'")
        if lambda_min is None:
            return int(lambdas.size - 1)
        requested = lambda_min
    requested = float(requested)
    if not np.isfinite(requested) or requested < 0:
        raise ValueError(f"Lambda must be a non-negative number, got {requested}")

    # Exact matches win
    matches = np.isclose(lambdas, requested, rtol=LAMBDA_MATCH_RTOL, atol=0.0)
    if (exact := np.flatnonzero(matches)).size > 0:
        return int(exact[0])

    # Otherwise the smallest lambda at least as large as requested
    above = np.flatnonzero(lambdas >= requested)
    if above.size == 0:
        index = int(np.argmax(lambdas))
        warnings.warn(
            f"Requested lambda {requested} is above the fitted path; using the largest"
            f" lambda, {lambdas[index]}."
        )
        return index
    index = int(above[np.argmin(lambdas[above])])
    warnings.warn(
        f"Requested lambda {requested} is not on the fitted path; using lambda"
        f" {lambdas[index]} instead."
    )
    return index


def _column(matrix: Any, index: int, n_rows: int) -> npt.NDArray[np.floating]:
    """Take one path column from a dense or sparse rows-by-path matrix."""
    if sparse.issparse(matrix):
        matrix = sparse.csc_matrix(matrix)[:, index]
    dense = utils.as_float_array(matrix, ndim=2)
    if dense.shape[0] != n_rows:
        raise UnsupportedModelStateError(
            f"Expected a coefficient matrix with {n_rows} rows, got shape {dense.shape}"
        )
    if dense.shape[1] == 1:
        return dense[:, 0]
    return dense[:, index]


def _per_output(beta: Any) -> list[Any]:
    """Split a multi-output ``beta`` into one rows-by-path matrix per output."""
    if isinstance(beta, (list, tuple)):
        return list(beta)
    if isinstance(beta, np.ndarray) and beta.ndim == 3:
        return list(beta)
    raise UnsupportedModelStateError(
        "Multi-output elastic-net coefficients must be a list of matrices or a 3D array"
    )


def extract_elastic_net(
    view: StateView, lambda_: "custom_types.LambdaSpec" = DEFAULT_LAMBDA
) -> GlmParams:
    """Extract the coefficients of one elastic-net fit from a regularization path.

    :param view: View over the fitted model's state
    :type view: StateView
    :param lambda_: Requested strength or ``"best"``. Defaults to "best".
    :type lambda_: custom_types.LambdaSpec

    :returns: Coefficients selected at the chosen path entry
    :rtype: GlmParams

    :raises UnsupportedModelStateError: If required entries are absent or shapes
        disagree
    :raises UnsupportedFamilyError: If the family is not supported
    """
    family = str(view.require("family"))
    if family not in ELASTIC_NET_LINKS:
        raise UnsupportedFamilyError(
            f"No producer for elastic-net family '{family}'. Supported families are"
            f" {sorted(ELASTIC_NET_LINKS)}"
        )

    lambdas = utils.as_float_array(view.require("lambda"))
    lambda_min = view.get("lambda_min")
    index = select_lambda(
        lambdas, lambda_, None if lambda_min is None else float(lambda_min)
    )

    feature_names = [str(name) for name in view.require("feature_names")]
    terms = build_terms(feature_names, view.get("factor_levels"))
    n_terms = len(terms)
    beta = view.require("beta")

    # One coefficient row per class or response
    labels = classes = None
    if family in MULTI_OUTPUT_FAMILIES:
        key = "classes" if family == "multinomial" else "responses"
        labels = [str(label) for label in view.require(key)]
        matrices = _per_output(beta)
        if len(matrices) != len(labels):
            raise UnsupportedModelStateError(
                f"Got {len(matrices)} coefficient matrices for {len(labels)} outputs"
            )
        coefficients = np.vstack([_column(m, index, n_terms) for m in matrices])
        a0 = utils.as_float_array(view.require("a0"), ndim=2)
        if a0.shape[0] == 1 and len(labels) > 1:
            a0 = a0.T
        if a0.shape[0] != len(labels):
            raise UnsupportedModelStateError(
                f"Expected intercepts for {len(labels)} outputs, got shape {a0.shape}"
            )
        intercepts = a0[:, index] if a0.shape[1] > 1 else a0[:, 0]
        if family == "multinomial":
            classes = labels
    else:
        coefficients = _column(beta, index, n_terms)[np.newaxis, :]
        if family == "cox":
            intercepts = np.zeros(1)
        else:
            a0 = utils.as_float_array(view.require("a0"))
            intercepts = a0[[index if a0.size > 1 else 0]]
        if family == "binomial":
            classes = [str(c) for c in view.get("classes", DEFAULT_BINARY_CLASSES)]
            if len(classes) != 2:
                raise UnsupportedModelStateError(
                    f"A binomial elastic net needs exactly two classes, got {classes}"
                )

    return GlmParams(
        view.model_class,
        family,
        ELASTIC_NET_LINKS[family],
        terms,
        coefficients,
        intercepts,
        labels=labels,
        classes=classes,
        lambda_=float(lambdas[index]),
    )
