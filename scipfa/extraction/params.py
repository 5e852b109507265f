# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Neutral intermediate form of extracted model parameters.

Extraction normalizes each fitting library's internal layout into one of a closed
set of parameter records, tagged by the ``model_class`` they came from:

    - :py:class:`GlmParams` for ``linear``, ``glm``, and ``elastic_net`` models
    - :py:class:`TreeEnsembleParams` for ``gradient_boosting`` and
      ``random_forest`` models

Parameter records are created once by an extractor, consumed once by the matching
producer, and then discarded. They hold NumPy arrays but are never mutated after
construction.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Sequence

import numpy as np
import numpy.typing as npt

from scipfa.exceptions import UnsupportedModelStateError
from scipfa.pfa import types


class TermComponent:
    """One factor of a model term: a numeric input field or a factor-level indicator.

    :param field: Name of the input field
    :type field: str
    :param level: Factor level for indicator components, or None for numeric
        components. Defaults to None.
    :type level: Optional[str]
    """

    def __init__(self, field: str, level: Optional[str] = None):
        self.field = field
        self.level = level

    @property
    def is_indicator(self) -> bool:
        return self.level is not None

    @property
    def field_type(self) -> types.AvroType:
        """Indicator components read string fields, numeric components doubles."""
        return types.STRING if self.is_indicator else types.DOUBLE

    def __eq__(self, other):
        if not isinstance(other, TermComponent):
            return NotImplemented
        return (self.field, self.level) == (other.field, other.level)

    def __hash__(self) -> int:
        return hash((self.field, self.level))

    def __repr__(self) -> str:
        if self.is_indicator:
            return f"TermComponent({self.field!r}, level={self.level!r})"
        return f"TermComponent({self.field!r})"


class Term:
    """A model term: the product of one or more components.

    :param name: Term name as found in the fitted model (e.g. ``"X1:colorred"``)
    :type name: str
    :param components: Components multiplied together to form the term
    :type components: Sequence[TermComponent]
    """

    def __init__(self, name: str, components: Sequence[TermComponent]):
        if len(components) == 0:
            raise UnsupportedModelStateError(f"Term '{name}' has no components")
        self.name = name
        self.components = tuple(components)

    @property
    def is_interaction(self) -> bool:
        return len(self.components) > 1

    def __repr__(self) -> str:
        return f"Term({self.name!r}, {list(self.components)!r})"


class ExtractedParams(ABC):
    """Base class of the neutral parameter records.

    :param model_class: Family tag the parameters were extracted from
    :type model_class: str
    :param family: Response distribution family
    :type family: str
    :param classes: Ordered class labels for classifying families, else None.
        Defaults to None.
    :type classes: Optional[Sequence[str]]
    """

    def __init__(
        self,
        model_class: str,
        family: str,
        classes: Optional[Sequence[str]] = None,
    ):
        self.model_class = model_class
        self.family = family
        self.classes = None if classes is None else tuple(str(c) for c in classes)
        if self.classes is not None and len(set(self.classes)) != len(self.classes):
            raise UnsupportedModelStateError(f"Duplicate class labels: {self.classes}")

    @property
    @abstractmethod
    def input_fields(self) -> list[tuple[str, types.AvroType]]:
        """Ordered fields of the input record the document reads."""

    @property
    def is_classifier(self) -> bool:
        return self.classes is not None


class GlmParams(ExtractedParams):
    """Coefficients of a (generalized) linear model or a selected elastic-net fit.

    Single-output models have one row of coefficients. Multiclass models have one
    row per class, with an all-zero row for the reference class where the fit used a
    reference-class parameterization; multi-response models have one row per
    response.

    :param model_class: One of ``linear``, ``glm``, or ``elastic_net``
    :type model_class: str
    :param family: Response family, e.g. ``gaussian`` or ``multinomial``
    :type family: str
    :param link: Link function name
    :type link: str
    :param terms: Ordered terms aligned with the coefficient columns
    :type terms: Sequence[Term]
    :param coefficients: Array of shape (n_outputs, n_terms)
    :type coefficients: npt.NDArray[np.floating]
    :param intercepts: Array of shape (n_outputs,)
    :type intercepts: npt.NDArray[np.floating]
    :param labels: Labels of the output rows when there is more than one. Defaults
        to None.
    :type labels: Optional[Sequence[str]]
    :param classes: Ordered class labels for classifying families. Defaults to None.
    :type classes: Optional[Sequence[str]]
    :param feature_names: Input field order to use. Fields used by the terms but not
        listed are appended in order of first use. Defaults to None.
    :type feature_names: Optional[Sequence[str]]
    :param lambda_: The regularization strength the coefficients were selected at,
        for elastic-net fits. Defaults to None.
    :type lambda_: Optional[float]
    """

    def __init__(
        self,
        model_class: str,
        family: str,
        link: str,
        terms: Sequence[Term],
        coefficients: npt.NDArray[np.floating],
        intercepts: npt.NDArray[np.floating],
        labels: Optional[Sequence[str]] = None,
        classes: Optional[Sequence[str]] = None,
        feature_names: Optional[Sequence[str]] = None,
        lambda_: Optional[float] = None,
    ):
        super().__init__(model_class, family, classes)
        self.link = link
        self.terms = tuple(terms)
        self.coefficients = np.atleast_2d(np.asarray(coefficients, dtype=np.float64))
        self.intercepts = np.atleast_1d(np.asarray(intercepts, dtype=np.float64))
        self.labels = None if labels is None else tuple(str(l) for l in labels)
        self.feature_names = None if feature_names is None else tuple(feature_names)
        self.lambda_ = lambda_

        # Shapes must agree
        n_outputs, n_terms = self.coefficients.shape
        if n_terms != len(self.terms):
            raise UnsupportedModelStateError(
                f"Got {n_terms} coefficients for {len(self.terms)} terms"
            )
        if self.intercepts.shape != (n_outputs,):
            raise UnsupportedModelStateError(
                f"Got {self.intercepts.size} intercepts for {n_outputs} outputs"
            )
        if n_outputs > 1 and (self.labels is None or len(self.labels) != n_outputs):
            raise UnsupportedModelStateError(
                f"A model with {n_outputs} outputs needs one label per output"
            )
        if not (
            np.all(np.isfinite(self.coefficients))
            and np.all(np.isfinite(self.intercepts))
        ):
            raise UnsupportedModelStateError("Coefficients must be finite")

    @property
    def n_outputs(self) -> int:
        return int(self.coefficients.shape[0])

    @property
    def input_fields(self) -> list[tuple[str, types.AvroType]]:
        field_types: dict[str, types.AvroType] = {}
        for term in self.terms:
            for component in term.components:
                known = field_types.setdefault(component.field, component.field_type)
                if known != component.field_type:
                    raise UnsupportedModelStateError(
                        f"Field '{component.field}' is used both as a number and as a"
                        " factor"
                    )

        # Listed features come first; unused ones are still declared as doubles
        ordered = list(self.feature_names or ())
        ordered += [field for field in field_types if field not in ordered]
        return [(field, field_types.get(field, types.DOUBLE)) for field in ordered]


class TreeTable:
    """One decision tree as parallel node arrays indexed by row position.

    Row 0 is the root. Leaves have a negative ``split_feature``; their children
    entries are ignored.

    :param split_feature: Feature index tested at each node
    :type split_feature: npt.NDArray[np.integer]
    :param split_threshold: Threshold tested at each node
    :type split_threshold: npt.NDArray[np.floating]
    :param left_child: Row of the child taken when the test holds
    :type left_child: npt.NDArray[np.integer]
    :param right_child: Row of the child taken otherwise
    :type right_child: npt.NDArray[np.integer]
    :param leaf_value: Prediction at each leaf (class index for classification
        forests)
    :type leaf_value: npt.NDArray[np.floating]
    """

    def __init__(
        self,
        split_feature: npt.NDArray[np.integer],
        split_threshold: npt.NDArray[np.floating],
        left_child: npt.NDArray[np.integer],
        right_child: npt.NDArray[np.integer],
        leaf_value: npt.NDArray[np.floating],
    ):
        self.split_feature = split_feature
        self.split_threshold = split_threshold
        self.left_child = left_child
        self.right_child = right_child
        self.leaf_value = leaf_value

    def is_leaf(self, row: int) -> bool:
        return bool(self.split_feature[row] < 0)

    def predict(self, x: Sequence[float], operator: str = "<") -> float:
        """Walk the tree for one feature vector. Used to compute native predictions."""
        row = 0
        while not self.is_leaf(row):
            value = x[self.split_feature[row]]
            threshold = self.split_threshold[row]
            goes_left = value < threshold if operator == "<" else value <= threshold
            row = int(self.left_child[row] if goes_left else self.right_child[row])
        return float(self.leaf_value[row])


class TreeEnsembleParams(ExtractedParams):
    """Trees of a gradient-boosted or random-forest ensemble.

    :param model_class: ``gradient_boosting`` or ``random_forest``
    :type model_class: str
    :param family: Boosting distribution, or ``regression``/``classification`` for
        forests
    :type family: str
    :param trees: Ordered trees
    :type trees: Sequence[TreeTable]
    :param feature_names: Names of the features indexed by ``split_feature``
    :type feature_names: Sequence[str]
    :param aggregation: ``sum`` for boosting, ``mean`` for regression forests, and
        ``majority_vote`` for classification forests
    :type aggregation: str
    :param classes: Ordered class labels. Defaults to None.
    :type classes: Optional[Sequence[str]]
    :param learning_rate: Scale applied to each boosted tree. Defaults to 1.0.
    :type learning_rate: float
    :param init_score: Base score per output (one entry unless the ensemble is
        multiclass boosting). Defaults to None, meaning zero.
    :type init_score: Optional[npt.NDArray[np.floating]]
    :param tree_outputs: Output index each tree contributes to. Defaults to None,
        meaning all trees contribute to output 0.
    :type tree_outputs: Optional[npt.NDArray[np.integer]]
    :param split_operator: Comparison taking the left branch, ``<`` or ``<=``.
        Defaults to "<".
    :type split_operator: str
    """

    def __init__(
        self,
        model_class: str,
        family: str,
        trees: Sequence[TreeTable],
        feature_names: Sequence[str],
        aggregation: str,
        classes: Optional[Sequence[str]] = None,
        learning_rate: float = 1.0,
        init_score: Optional[npt.NDArray[np.floating]] = None,
        tree_outputs: Optional[npt.NDArray[np.integer]] = None,
        split_operator: str = "<",
    ):
        super().__init__(model_class, family, classes)
        self.trees = tuple(trees)
        self.feature_names = tuple(feature_names)
        self.aggregation = aggregation
        self.learning_rate = learning_rate
        self.init_score = (
            np.zeros(1)
            if init_score is None
            else np.atleast_1d(init_score).astype(float)
        )
        self.tree_outputs = (
            np.zeros(len(self.trees), dtype=int)
            if tree_outputs is None
            else np.asarray(tree_outputs, dtype=int)
        )
        self.split_operator = split_operator
        if len(self.tree_outputs) != len(self.trees):
            raise UnsupportedModelStateError("Every tree must be assigned an output")

    @property
    def n_outputs(self) -> int:
        return int(self.init_score.size)

    @property
    def input_fields(self) -> list[tuple[str, types.AvroType]]:
        return [(name, types.DOUBLE) for name in self.feature_names]
