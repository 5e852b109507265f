# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Inverse links, score transforms, and class-decision rules shared by producers.

Inverse links map a linear predictor to the response scale:

=================  ====================================
Link               Response expression
=================  ====================================
``identity``       ``eta``
``logit``          ``1 / (1 + exp(-eta))``
``probit``         standard normal CDF of ``eta``
``cloglog``        ``1 - exp(-exp(eta))``
``loglog``         ``exp(-exp(-eta))``
``cauchit``        standard Cauchy CDF of ``eta``
``log``            ``exp(eta)``
``inverse``        ``1 / eta``
``sqrt``           ``eta ** 2``
``1/mu^2``         ``1 / sqrt(eta)``
=================  ====================================

Class decisions follow one of two rules. A binary model with no cutoffs, or with a
cutoff for its positive class only, predicts the positive class when its probability
exceeds the cutoff. Every other classifier predicts the class maximizing
``probability / cutoff`` (the cutoff-ratio rule), the lowest class index winning
ties. Class labels and ratio cutoffs are stored in cells.
"""

from __future__ import annotations

import math

from typing import Any, Callable, Mapping, Optional, Sequence

from scipfa.defaults import (
    DEFAULT_BINARY_CUTOFF,
    DEFAULT_CLASSES_CELL,
    DEFAULT_CUTOFFS_CELL,
)
from scipfa.exceptions import InvalidCutoffsError, UnsupportedFamilyError
from scipfa.pfa import expressions as ex
from scipfa.pfa import types
from scipfa.pfa.document import Cell

INVERSE_LINKS: dict[str, Callable[[ex.Expression], ex.Expression]] = {
    "identity": lambda eta: eta,
    "logit": ex.logistic,
    "probit": lambda eta: ex.call("m.link.probit", eta),
    "cloglog": lambda eta: ex.call("m.link.cloglog", eta),
    "loglog": lambda eta: ex.call("m.link.loglog", eta),
    "cauchit": lambda eta: ex.call("m.link.cauchit", eta),
    "log": lambda eta: ex.call("m.exp", eta),
    "inverse": lambda eta: ex.call("/", ex.double(1.0), eta),
    "sqrt": lambda eta: ex.call("**", eta, ex.double(2.0)),
    "1/mu^2": lambda eta: ex.call("/", ex.double(1.0), ex.call("m.sqrt", eta)),
}
"""Builder of the inverse-link expression for each supported link."""

BOOSTING_TRANSFORMS: dict[str, Callable[[ex.Expression], ex.Expression]] = {
    "gaussian": INVERSE_LINKS["identity"],
    "laplace": INVERSE_LINKS["identity"],
    "tdist": INVERSE_LINKS["identity"],
    "quantile": INVERSE_LINKS["identity"],
    "bernoulli": INVERSE_LINKS["logit"],
    "adaboost": lambda f: ex.logistic(ex.call("*", ex.double(2.0), f)),
    "poisson": INVERSE_LINKS["log"],
    "coxph": INVERSE_LINKS["log"],
}
"""Transform from the raw boosted score to the response for single-output
distributions."""

POSITIVE_ALIAS = "positive"


def inverse_link(link: str, eta: Any) -> ex.Expression:
    """Apply an inverse link to a linear predictor.

    :param link: Link name
    :type link: str
    :param eta: Linear predictor expression
    :type eta: custom_types.ExpressionLike

    :returns: Expression on the response scale
    :rtype: ex.Expression

    :raises UnsupportedFamilyError: If the link is not supported
    """
    if link not in INVERSE_LINKS:
        raise UnsupportedFamilyError(
            f"Unsupported link '{link}'. Supported links are {list(INVERSE_LINKS)}"
        )
    return INVERSE_LINKS[link](ex.as_expression(eta))


def boosting_transform(distribution: str, score: Any) -> ex.Expression:
    """Map a raw boosted score to the response scale of its distribution.

    :raises UnsupportedFamilyError: If the distribution has no single-output
        transform
    """
    if distribution not in BOOSTING_TRANSFORMS:
        raise UnsupportedFamilyError(
            f"No response transform for boosting distribution '{distribution}'"
        )
    return BOOSTING_TRANSFORMS[distribution](ex.as_expression(score))


def validate_cutoffs(
    cutoffs: Optional[Mapping[str, Any]], classes: Sequence[str]
) -> dict[str, float]:
    """Check cutoffs against a model's classes.

    For binary models the key ``"positive"`` names the second class unless a class
    is literally called that.

    :param cutoffs: Mapping from class label to cutoff, or None
    :type cutoffs: Optional[Mapping[str, Any]]
    :param classes: Ordered class labels of the model
    :type classes: Sequence[str]

    :returns: Cutoffs keyed by class label
    :rtype: dict[str, float]

    :raises InvalidCutoffsError: If a cutoff names an unknown class or is not a
        positive, finite number
    """
    validated: dict[str, float] = {}
    for label, value in (cutoffs or {}).items():
        if label == POSITIVE_ALIAS and label not in classes and len(classes) == 2:
            label = classes[1]
        if label not in classes:
            raise InvalidCutoffsError(
                f"Cutoff given for unknown class '{label}'. Classes are {list(classes)}"
            )
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            try:
                value = float(value)
            except (TypeError, ValueError) as e:
                raise InvalidCutoffsError(
                    f"Cutoff for class '{label}' is not a number: {value!r}"
                ) from e
        if not (math.isfinite(value) and value > 0):
            raise InvalidCutoffsError(
                f"Cutoff for class '{label}' must be positive and finite, got {value}"
            )
        validated[label] = float(value)
    return validated


def binary_threshold(
    cutoffs: Optional[Mapping[str, Any]], classes: Sequence[str]
) -> Optional[float]:
    """The probability threshold of a binary decision, or None to use the ratio rule.

    :raises InvalidCutoffsError: If the cutoffs are invalid
    """
    validated = validate_cutoffs(cutoffs, classes)
    if not validated:
        return DEFAULT_BINARY_CUTOFF
    if set(validated) == {classes[1]}:
        return validated[classes[1]]
    return None


def ratio_cutoffs(
    cutoffs: Optional[Mapping[str, Any]], classes: Sequence[str]
) -> list[float]:
    """Cutoffs aligned with the classes; unnamed classes get ``1 / n_classes``.

    :raises InvalidCutoffsError: If the cutoffs are invalid
    """
    validated = validate_cutoffs(cutoffs, classes)
    return [validated.get(label, 1.0 / len(classes)) for label in classes]


def decision_cells(classes: Sequence[str], cutoffs: Sequence[float]) -> list[Cell]:
    """Cells holding the class labels and the aligned ratio cutoffs."""
    return [
        Cell(DEFAULT_CLASSES_CELL, types.AvroArray(types.STRING), list(classes)),
        Cell(DEFAULT_CUTOFFS_CELL, types.AvroArray(types.DOUBLE), list(cutoffs)),
    ]


def threshold_decision(
    probability: Any, threshold: float, classes: Sequence[str]
) -> ex.If:
    """``classes[1]`` if the probability exceeds the threshold, else ``classes[0]``."""
    return ex.If(
        ex.call(">", probability, ex.double(threshold)),
        ex.string(classes[1]),
        ex.string(classes[0]),
    )


def ratio_decision(probabilities: str, n_classes: int) -> ex.CellRef:
    """The class label maximizing ``probability_k / cutoff_k``.

    :param probabilities: Name of the variable holding class probabilities (or
        vote fractions) aligned with the ``classes`` cell
    :type probabilities: str
    :param n_classes: Number of classes
    :type n_classes: int

    :returns: Expression evaluating to the predicted class label
    :rtype: ex.CellRef
    """
    ratios = ex.ArrayLit(
        [
            ex.call(
                "/",
                ex.Attr(probabilities, [k]),
                ex.CellRef(DEFAULT_CUTOFFS_CELL, [k]),
            )
            for k in range(n_classes)
        ],
        types.DOUBLE,
    )
    return ex.CellRef(DEFAULT_CLASSES_CELL, [ex.call("a.argmax", ratios)])


def label_map(values: str, labels: Sequence[str]) -> ex.MapLit:
    """A map from each label to the aligned element of an array variable."""
    return ex.MapLit(
        {label: ex.Attr(values, [k]) for k, label in enumerate(labels)}, types.DOUBLE
    )


def ratio_rule(
    probabilities: str,
    classes: Sequence[str],
    cutoffs: Optional[Mapping[str, Any]],
) -> tuple[list[Cell], ex.Expression]:
    """Cells and final expression of a cutoff-ratio class decision.

    :param probabilities: Name of the variable holding class probabilities
    :type probabilities: str
    :param classes: Ordered class labels
    :type classes: Sequence[str]
    :param cutoffs: Caller's cutoffs, or None
    :type cutoffs: Optional[Mapping[str, Any]]

    :returns: The ``classes`` and ``cutoffs`` cells, and the decision expression
    :rtype: tuple[list[Cell], ex.Expression]

    :raises InvalidCutoffsError: If the cutoffs are invalid
    """
    cells = decision_cells(classes, ratio_cutoffs(cutoffs, classes))
    return cells, ratio_decision(probabilities, len(classes))


def binary_decision(
    probability: ex.Expression,
    classes: Sequence[str],
    cutoffs: Optional[Mapping[str, Any]],
) -> tuple[list[Cell], list[ex.Expression]]:
    """Cells and statements deciding between the two classes of a binary model.

    :param probability: Probability of the second (positive) class
    :type probability: ex.Expression
    :param classes: The negative and positive class labels
    :type classes: Sequence[str]
    :param cutoffs: Caller's cutoffs, or None
    :type cutoffs: Optional[Mapping[str, Any]]

    :returns: Cells needed by the decision, and the statements ending with the
        predicted class label
    :rtype: tuple[list[Cell], list[ex.Expression]]

    :raises InvalidCutoffsError: If the cutoffs are invalid
    """
    statements: list[ex.Expression] = [ex.Let({"p": probability})]
    if (threshold := binary_threshold(cutoffs, classes)) is not None:
        return [], statements + [threshold_decision("p", threshold, classes)]

    probs = ex.ArrayLit([ex.call("-", ex.double(1.0), "p"), "p"], types.DOUBLE)
    cells, decision = ratio_rule("probs", classes, cutoffs)
    return cells, statements + [ex.Let({"probs": probs}), decision]
