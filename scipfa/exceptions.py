# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Custom exception classes for the SciPFA package.

This module defines the hierarchy of exceptions raised while building, compiling,
serializing, and validating PFA documents. All custom exceptions inherit from the
base :py:class:`SciPFAError` class so that callers can handle any package-specific
failure with a single except clause.

Errors are raised at the point of detection and are never retried internally.
Construction-time errors (:py:class:`TypeDefinitionError`,
:py:class:`ExpressionShapeError`, :py:class:`UnknownFunctionError`) keep malformed
fragments from ever entering a document, while :py:class:`DocumentConsistencyError`
is the single consistency gate applied when a document is assembled.
"""

from __future__ import annotations

from typing import Any, Optional


class SciPFAError(Exception):
    """Base class for all exceptions in the SciPFA package.

    Example:
        >>> try:
        ...     doc = scipfa.compile_model(state)
        ... except SciPFAError as e:
        ...     print(f"Compilation failed: {e}")
    """


class TypeDefinitionError(SciPFAError, ValueError):
    """Raised when an Avro type constructor is given a structurally invalid definition.

    Examples include records with duplicate field names, enums with no symbols or
    duplicate symbols, unions with repeated member tags, and invalid type names.
    The message names the violated constraint.
    """


class ExpressionShapeError(SciPFAError, ValueError):
    """Raised when an expression node is built with the wrong arity or shape.

    This covers calls with too few or too many arguments, empty ``let`` or ``cond``
    forms, invalid symbol names, and statement-like nodes (``let``, ``foreach``, or
    ``if`` without ``else``) used where a value is required.
    """


class UnknownFunctionError(SciPFAError, LookupError):
    """Raised when a call names a function absent from the fixed function registry."""


class UnsupportedModelStateError(SciPFAError, ValueError):
    """Raised when a fitted model's internal state lacks fields needed for extraction.

    This typically means that the model object was stripped of its post-fit state
    before being handed to the compiler, or that the state uses a layout (for
    example, an unrecognized coefficient term) that cannot be normalized.
    """


class UnsupportedFamilyError(SciPFAError, ValueError):
    """Raised when no producer or transform exists for a model class or family.

    Also raised when a requested prediction type has no meaning for the family,
    such as asking for a predicted class from a gaussian regression.
    """


class InvalidCutoffsError(SciPFAError, ValueError):
    """Raised when cutoffs name an unknown class or contain a non-positive value."""


class DocumentConsistencyError(SciPFAError):
    """Raised when an assembled document fails its consistency checks.

    The message names the first unresolved cell, pool, or variable reference, or
    the first mismatch between the action's inferred type and the declared output
    type.
    """


class MalformedDocumentError(SciPFAError, ValueError):
    """Raised when text is not JSON or does not have the shape of a PFA document."""


class SourceUnavailableError(SciPFAError, OSError):
    """Raised when a document source cannot be opened or read before its timeout."""


class ScoringEngineError(SciPFAError):
    """Raised when the external scoring engine fails or returns unreadable output."""


class ValidationCancelledError(SciPFAError):
    """Raised when a validation run is cancelled before it completes."""


class ValidationMismatchError(SciPFAError):
    """Raised when engine outputs differ from reference predictions beyond tolerance.

    :param message: Summary of the failure
    :type message: str
    :param mismatches: One record per offending input with the keys ``input``,
        ``expected``, ``actual``, and ``deviation``
    :type mismatches: list[dict[str, Any]]
    :param document: The validated document. Validation never blocks document
        creation, so the document remains available to the caller.
    :type document: Optional[Any]
    """

    def __init__(
        self,
        message: str,
        mismatches: list[dict[str, Any]],
        document: Optional[Any] = None,
    ):
        super().__init__(message)
        self.mismatches = mismatches
        self.document = document
