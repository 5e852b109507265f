# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Reading and writing PFA documents as JSON text.

The serializer is the only place where the dynamic JSON shape of a document is
handled. Writing produces canonical, minimal JSON: no whitespace is inserted beyond
what JSON syntax requires, so the text contains no whitespace characters outside of
string values. Reading accepts any of the following sources and always returns the
same :py:class:`~scipfa.pfa.document.PfaDocument` for the same document:

    - a literal JSON string
    - a path to a local file (``str`` or :py:class:`os.PathLike`)
    - a URL (``http``, ``https``, or ``file``), read with a bounded timeout
    - a readable byte or character stream
    - an already-parsed nested mapping

Example:
    >>> text = write(document)
    >>> assert read(text) == document
    >>> assert " " not in minify('{"input": "double", "output": "double", ...}')
"""

from __future__ import annotations

import json
import os.path
import urllib.error
import urllib.request

from typing import Any, Mapping, Optional, Union

from scipfa.defaults import (
    DEFAULT_JSON_SEPARATORS,
    DEFAULT_METHOD,
    DEFAULT_READ_TIMEOUT,
    URL_SCHEMES,
)
from scipfa.exceptions import (
    ExpressionShapeError,
    MalformedDocumentError,
    SourceUnavailableError,
    TypeDefinitionError,
    UnknownFunctionError,
)
from scipfa.pfa import document, expressions, types

REQUIRED_FIELDS: tuple[str, ...] = ("input", "output", "action")
OPTIONAL_FIELDS: tuple[str, ...] = (
    "name",
    "method",
    "cells",
    "pools",
    "doc",
    "metadata",
)


def _dumps(data: Any) -> str:
    """Encode JSON-native data without inserted whitespace."""
    try:
        return json.dumps(
            data,
            separators=DEFAULT_JSON_SEPARATORS,
            ensure_ascii=False,
            allow_nan=False,
        )
    except ValueError as e:
        raise MalformedDocumentError(
            f"Document contains a non-finite number: {e}"
        ) from e


def _reject_constant(constant: str) -> Any:
    raise MalformedDocumentError(f"'{constant}' is not valid JSON")


def _decode(payload: Any) -> str:
    """Decode raw document bytes as UTF-8."""
    if isinstance(payload, str):
        return payload
    if not isinstance(payload, (bytes, bytearray)):
        raise MalformedDocumentError(
            f"Cannot read a document from {type(payload).__name__} content"
        )
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedDocumentError(f"Document is not valid UTF-8: {e}") from e


def _loads(text: str) -> Any:
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        raise MalformedDocumentError(f"Invalid JSON: {e}") from e


def write(doc: document.PfaDocument) -> str:
    """Write a document as compact JSON text.

    :param doc: Document to write
    :type doc: document.PfaDocument

    :returns: JSON text with no whitespace outside string values
    :rtype: str
    """
    return _dumps(doc.to_json())


def write_file(doc: document.PfaDocument, path: Union[str, os.PathLike]) -> None:
    """Write a document as compact JSON text to a file.

    :param doc: Document to write
    :type doc: document.PfaDocument
    :param path: Destination file path
    :type path: Union[str, os.PathLike]
    """
    with open(path, "w", encoding="utf-8") as f:
        f.write(write(doc))


def minify(text: str) -> str:
    """Strip all incidental whitespace from JSON text.

    This is a representation change only: the parsed value is unchanged.

    :param text: Any JSON text
    :type text: str

    :returns: Equivalent JSON text without whitespace outside string values
    :rtype: str

    :raises MalformedDocumentError: If the text is not valid JSON
    """
    return _dumps(_loads(text))


def _read_url(url: str, timeout: float) -> str:
    """Fetch a document from a URL, failing rather than blocking past the timeout."""
    try:
        with urllib.request.urlopen(url, timeout=timeout) as response:
            payload = response.read()
    except (urllib.error.URLError, TimeoutError, OSError) as e:
        raise SourceUnavailableError(f"Could not read document from {url}: {e}") from e
    return _decode(payload)


def _read_path(path: Union[str, os.PathLike]) -> str:
    try:
        with open(path, "rb") as f:
            payload = f.read()
    except OSError as e:
        raise SourceUnavailableError(f"Could not read document from {path}: {e}") from e
    return _decode(payload)


def read_json(source: Any, timeout: float = DEFAULT_READ_TIMEOUT) -> Any:
    """Load a document source into its parsed JSON form without interpreting it.

    :param source: JSON text, file path, URL, readable stream, parsed mapping, or
        document
    :type source: Any
    :param timeout: Timeout in seconds for network sources. Defaults to 10.0.
    :type timeout: float

    :returns: Parsed JSON value
    :rtype: Any

    :raises MalformedDocumentError: If the source does not contain valid JSON
    :raises SourceUnavailableError: If a file or URL cannot be read in time
    """
    # Already parsed
    if isinstance(source, document.PfaDocument):
        return source.to_json()
    if isinstance(source, Mapping):
        return dict(source)

    # Streams and paths
    if isinstance(source, os.PathLike):
        return _loads(_read_path(source))
    if hasattr(source, "read"):
        try:
            payload = source.read()
        except OSError as e:
            raise SourceUnavailableError(f"Could not read document stream: {e}") from e
        return read_json(_decode(payload), timeout)
    if isinstance(source, bytes):
        return _loads(_decode(source))

    # Strings are JSON text, URLs, or file paths
    if isinstance(source, str):
        stripped = source.strip()
        if stripped.startswith(("{", "[")):
            return _loads(stripped)
        if stripped.startswith(URL_SCHEMES):
            return _loads(_read_url(stripped, timeout))
        if os.path.isfile(stripped):
            return _loads(_read_path(stripped))
        return _loads(stripped)

    raise MalformedDocumentError(f"Cannot read a document from {type(source).__name__}")


def document_from_json(data: Any) -> document.PfaDocument:
    """Interpret a parsed JSON value as a document and validate it.

    :param data: Parsed JSON value
    :type data: Any

    :returns: The document
    :rtype: document.PfaDocument

    :raises MalformedDocumentError: If required fields are missing, unexpected
        fields are present, or a type or expression is malformed
    :raises DocumentConsistencyError: If the parsed document fails assembly checks
    """
    if not isinstance(data, Mapping):
        raise MalformedDocumentError(
            f"A PFA document must be a JSON object, not {type(data).__name__}"
        )
    if missing := [field for field in REQUIRED_FIELDS if field not in data]:
        raise MalformedDocumentError(
            f"Missing top-level field(s): {', '.join(missing)}"
        )
    if unexpected := sorted(set(data) - set(REQUIRED_FIELDS) - set(OPTIONAL_FIELDS)):
        raise MalformedDocumentError(
            f"Unsupported top-level field(s): {', '.join(unexpected)}"
        )
    if data.get("method", DEFAULT_METHOD) != DEFAULT_METHOD:
        raise MalformedDocumentError(
            f"Only the '{DEFAULT_METHOD}' method is supported, got {data['method']!r}"
        )
    for field in ("name", "doc"):
        if not isinstance(data.get(field, ""), str):
            raise MalformedDocumentError(f"Top-level '{field}' must be a string")

    # Types are read in document order so that later by-name references resolve
    names: dict[str, types.AvroType] = {}
    try:
        input_type = types.avro_type_from_json(data["input"], names)
        output_type = types.avro_type_from_json(data["output"], names)
        cells = [
            document.Cell(
                name,
                types.avro_type_from_json(_storage_field(spec, "type", name), names),
                _storage_field(spec, "init", name),
                shared=bool(spec.get("shared", False)),
            )
            for name, spec in _storage_map(data.get("cells"), "cells").items()
        ]
        pools = [
            document.Pool(
                name,
                types.avro_type_from_json(_storage_field(spec, "type", name), names),
                _pool_init(spec, name),
                shared=bool(spec.get("shared", False)),
            )
            for name, spec in _storage_map(data.get("pools"), "pools").items()
        ]
        action = expressions.expressions_from_json(data["action"], names)
    except (TypeDefinitionError, ExpressionShapeError, UnknownFunctionError) as e:
        raise MalformedDocumentError(f"Malformed document: {e}") from e

    metadata = data.get("metadata")
    if metadata is not None and not (
        isinstance(metadata, Mapping)
        and all(isinstance(value, str) for value in metadata.values())
    ):
        raise MalformedDocumentError("Document metadata must map strings to strings")

    return document.assemble(
        input_type,
        output_type,
        cells,
        pools,
        action,
        name=data.get("name"),
        doc=data.get("doc"),
        metadata=metadata,
    )


def _storage_map(section: Any, label: str) -> Mapping[str, Any]:
    if section is None:
        return {}
    if not isinstance(section, Mapping) or not all(
        isinstance(spec, Mapping) for spec in section.values()
    ):
        raise MalformedDocumentError(f"'{label}' must map names to objects")
    return section


def _storage_field(spec: Mapping[str, Any], field: str, name: str) -> Any:
    if field not in spec:
        raise MalformedDocumentError(f"Storage '{name}' is missing its '{field}'")
    return spec[field]


def _pool_init(spec: Mapping[str, Any], name: str) -> Any:
    init = _storage_field(spec, "init", name)
    if not isinstance(init, Mapping):
        raise MalformedDocumentError(
            f"The init of pool '{name}' must map item names to values"
        )
    return init


def read(
    source: Any, timeout: Optional[float] = DEFAULT_READ_TIMEOUT
) -> document.PfaDocument:
    """Read a document from any supported source.

    :param source: JSON text, file path, URL, readable stream, or parsed mapping
    :type source: Any
    :param timeout: Timeout in seconds for network sources. Defaults to 10.0.
    :type timeout: Optional[float]

    :returns: The document, identical regardless of the source's origin
    :rtype: document.PfaDocument

    :raises MalformedDocumentError: On invalid JSON or a JSON value that is not a
        PFA document
    :raises SourceUnavailableError: If a file or URL cannot be read in time
    :raises DocumentConsistencyError: If the document fails assembly checks
    """
    if isinstance(source, document.PfaDocument):
        return source
    return document_from_json(
        read_json(source, DEFAULT_READ_TIMEOUT if timeout is None else timeout)
    )
