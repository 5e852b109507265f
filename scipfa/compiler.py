# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Top-level entry points compiling fitted models into PFA documents.

Compilation runs in three stages, each a pure transformation of its input:

    1. :py:func:`scipfa.extraction.extract` normalizes the fitted model's
       internal state into a neutral parameter record.
    2. :py:func:`scipfa.producers.produce` builds the input and output types,
       storage, and action for the requested prediction type.
    3. :py:func:`scipfa.pfa.document.assemble` checks the fragments for
       consistency and freezes them into a document.

When a scoring engine is supplied, the assembled document is additionally checked
against the native model by :py:func:`scipfa.validation.validate`. Validation is
advisory: a cancelled run returns the unvalidated document with a warning, and a
mismatch error carries the document so that it is never lost.

Example:
    >>> import scipfa
    >>> state = {
    ...     "model_class": "linear",
    ...     "coefficients": {"(Intercept)": 3.0, "X1": -5.0},
    ... }
    >>> doc = scipfa.compile_model(state)
    >>> text = scipfa.to_text(doc)
"""

from __future__ import annotations

import threading
import warnings

from typing import Any, Optional, TYPE_CHECKING

from scipfa import extraction, producers
from scipfa.defaults import DEFAULT_VALIDATION_RTOL
from scipfa.exceptions import ValidationCancelledError, ValidationMismatchError
from scipfa.extraction.params import ExtractedParams, GlmParams
from scipfa.pfa import serializer
from scipfa.pfa.document import PfaDocument, assemble
from scipfa.producers.options import CompileOptions

if TYPE_CHECKING:
    from scipfa import custom_types
    from scipfa.validation import ScoringEngine


def document_metadata(
    params: ExtractedParams, options: CompileOptions
) -> dict[str, str]:
    """String metadata describing where a document came from."""
    metadata = {
        "model_class": params.model_class,
        "family": params.family,
        "pred_type": options.pred_type,
    }
    if isinstance(params, GlmParams):
        metadata["link"] = params.link
        if params.lambda_ is not None:
            metadata["lambda"] = repr(float(params.lambda_))
    return metadata


def compile_model(
    fitted_model: "custom_types.ModelState",
    options: Optional[CompileOptions] = None,
    *,
    engine: Optional["ScoringEngine"] = None,
    sample_inputs: Any = None,
    reference_model: Any = None,
    cancel_event: Optional[threading.Event] = None,
    tolerance: float = DEFAULT_VALIDATION_RTOL,
) -> PfaDocument:
    """Compile a fitted model into a PFA document.

    :param fitted_model: Internal state of the fitted model, as a mapping or an
        object exposing the same names as attributes
    :type fitted_model: custom_types.ModelState
    :param options: Compilation options. Defaults to None, meaning
        ``CompileOptions()``.
    :type options: Optional[CompileOptions]
    :param engine: External scoring engine used to validate the document. No
        validation is run when None. Defaults to None.
    :type engine: Optional[ScoringEngine]
    :param sample_inputs: Inputs to validate on. Required with ``engine``.
    :type sample_inputs: Optional[Union[Sequence[Mapping[str, Any]], pd.DataFrame]]
    :param reference_model: Native predictions for ``sample_inputs``, or a
        callable producing one prediction per input. Required with ``engine``.
    :type reference_model: Optional[Union[Callable, Sequence]]
    :param cancel_event: Event that cancels validation when set. Defaults to None.
    :type cancel_event: Optional[threading.Event]
    :param tolerance: Relative tolerance of validation comparisons. Defaults to
        1e-4.
    :type tolerance: float

    :returns: The assembled document
    :rtype: PfaDocument

    :raises UnsupportedFamilyError: If the model class, family, or link has no
        producer, or the prediction type is meaningless for the family
    :raises UnsupportedModelStateError: If the fitted state lacks required entries
    :raises InvalidCutoffsError: If the cutoffs do not match the model's classes
    :raises DocumentConsistencyError: If the produced fragments are inconsistent
    :raises ValidationMismatchError: If validation finds outputs that differ from
        the reference predictions. The document is attached to the error.
    :raises ValueError: If ``engine`` is given without sample inputs and
        reference predictions
    """
    options = options or CompileOptions()
    params = extraction.extract(fitted_model, options.lambda_)
    input_type, output_type, cells, pools, action = producers.produce(
        params, options
    )
    document = assemble(
        input_type,
        output_type,
        cells,
        pools,
        action,
        name=options.name,
        doc=options.doc,
        metadata=document_metadata(params, options),
    )
    if engine is None:
        return document

    if sample_inputs is None or reference_model is None:
        raise ValueError(
            "Validation requires both `sample_inputs` and `reference_model`"
        )
    from scipfa.validation import validate  # pylint: disable=import-outside-toplevel

    try:
        validate(
            document,
            sample_inputs,
            reference_model,
            engine,
            tolerance=tolerance,
            cancel_event=cancel_event,
        )
    except ValidationCancelledError:
        warnings.warn("Validation was cancelled; returning the unvalidated document")
    except ValidationMismatchError as error:
        error.document = document
        raise
    return document


def to_text(document: PfaDocument) -> str:
    """Serialize a document to compact PFA JSON text."""
    return serializer.write(document)


def from_text(source: Any, timeout: Optional[float] = None) -> PfaDocument:
    """Read a document from JSON text, a path, a URL, or a stream.

    See :py:func:`scipfa.pfa.serializer.read`.
    """
    return serializer.read(source, timeout)
