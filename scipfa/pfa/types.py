# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Avro-compatible type descriptors for PFA documents.

This module is the type builder of SciPFA. It provides immutable value objects for
every Avro type kind used to declare PFA input schemas, output schemas, and cell or
pool types:

    - :py:class:`AvroPrimitive` (``null``, ``boolean``, ``int``, ``long``,
      ``float``, ``double``, ``bytes``, ``string``)
    - :py:class:`AvroRecord`, :py:class:`AvroEnum`, and :py:class:`AvroFixed`
      (named types)
    - :py:class:`AvroArray`, :py:class:`AvroMap`, and :py:class:`AvroUnion`
    - :py:class:`AvroReference`, the named indirection through which a record may
      refer to itself

Every constructor validates its own structural constraints and raises
:py:class:`~scipfa.exceptions.TypeDefinitionError` naming the violated constraint.
Two types are equal if and only if they are structurally identical; field order is
significant for records and symbol order is significant for enums.

The module also reads Avro type JSON back into type objects and derives input
records from :py:class:`pandas.DataFrame` column dtypes.

Example:
    >>> from scipfa.pfa import types
    >>> input_type = types.avro_record(
    ...     "Input", [("X1", types.DOUBLE), ("color", types.STRING)]
    ... )
    >>> input_type.to_json()
    {'type': 'record', 'name': 'Input', 'fields': [{'name': 'X1', 'type': 'double'},
     {'name': 'color', 'type': 'string'}]}
"""

from __future__ import annotations

import json

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Sequence, TYPE_CHECKING, Union

import numpy as np
import pandas as pd

from scipfa import utils
from scipfa.defaults import DEFAULT_INPUT_NAME
from scipfa.exceptions import TypeDefinitionError

if TYPE_CHECKING:
    from scipfa import custom_types

PRIMITIVE_NAMES: tuple[str, ...] = (
    "null",
    "boolean",
    "int",
    "long",
    "float",
    "double",
    "bytes",
    "string",
)

# Numeric primitives in widening order
NUMERIC_NAMES: tuple[str, ...] = ("int", "long", "float", "double")

INT_RANGE = (-(2**31), 2**31 - 1)
LONG_RANGE = (-(2**63), 2**63 - 1)


class AvroType(ABC):
    """Abstract base class for all Avro type descriptors.

    Instances are immutable value objects. Subclasses implement
    :py:meth:`to_json` and :py:meth:`conforms`; equality and hashing are derived
    from the JSON form.

    :cvar KIND: Avro kind of the type (``"record"``, ``"array"``, a primitive
        name, ...)
    """

    KIND: str = ""

    @abstractmethod
    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        """Build the Avro JSON representation of this type.

        :param seen_names: Names of the named types already written in the enclosing
            document. A named type whose name is in this set is written by name
            only; otherwise its full definition is written and its name added.
            Defaults to None, which starts a fresh set.
        :type seen_names: Optional[set[str]]

        :returns: JSON-native Avro schema
        :rtype: Any
        """

    @abstractmethod
    def conforms(self, value: Any) -> bool:
        """Check whether a JSON-native value is a valid instance of this type.

        :param value: JSON-encoded value, as it would appear as a cell ``init``
        :type value: Any

        :returns: Whether the value conforms
        :rtype: bool
        """

    @property
    def tag(self) -> str:
        """Tag identifying this type among the members of a union.

        :returns: The full name for named types, the kind otherwise
        :rtype: str
        """
        return self.KIND

    @property
    def is_numeric(self) -> bool:
        """Whether this is one of the numeric primitives."""
        return self.KIND in NUMERIC_NAMES

    def accepts(self, other: "AvroType") -> bool:
        """Check whether values of ``other`` may be used where this type is declared.

        Identical types are always accepted. Numeric primitives accept narrower
        numeric primitives (``int`` < ``long`` < ``float`` < ``double``), unions
        accept any of their members, and arrays and maps accept covariantly.

        :param other: Candidate type
        :type other: AvroType

        :returns: Whether ``other`` is assignable to this type
        :rtype: bool
        """
        return self == other

    def __eq__(self, other: Any):
        if not isinstance(other, AvroType):
            return NotImplemented
        return self.to_json() == other.to_json()

    def __hash__(self) -> int:
        return hash(json.dumps(self.to_json(), sort_keys=True))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({json.dumps(self.to_json())})"


class AvroPrimitive(AvroType):
    """A primitive Avro type.

    :param name: One of ``null``, ``boolean``, ``int``, ``long``, ``float``,
        ``double``, ``bytes``, or ``string``
    :type name: str

    :raises TypeDefinitionError: If the name is not a primitive type name
    """

    def __init__(self, name: str):
        if name not in PRIMITIVE_NAMES:
            raise TypeDefinitionError(
                f"'{name}' is not a primitive type; expected one of {PRIMITIVE_NAMES}"
            )
        self.KIND = name

    @property
    def name(self) -> str:
        """Primitive type name."""
        return self.KIND

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        return self.KIND

    def accepts(self, other: AvroType) -> bool:
        if self.is_numeric and other.is_numeric:
            return NUMERIC_NAMES.index(other.KIND) <= NUMERIC_NAMES.index(self.KIND)
        return super().accepts(other)

    def conforms(self, value: Any) -> bool:
        if self.KIND == "null":
            return value is None
        if self.KIND == "boolean":
            return isinstance(value, bool)
        if isinstance(value, bool):
            return False
        if self.KIND == "int":
            return isinstance(value, int) and INT_RANGE[0] <= value <= INT_RANGE[1]
        if self.KIND == "long":
            return isinstance(value, int) and LONG_RANGE[0] <= value <= LONG_RANGE[1]
        if self.KIND in ("float", "double"):
            return isinstance(value, (int, float))
        return isinstance(value, str)


class NamedAvroType(AvroType):
    """Base class for named types (records, enums, and fixed types).

    :param name: Type name, optionally dotted with a namespace
    :type name: str
    :param namespace: Optional namespace. Defaults to None.
    :type namespace: Optional[str]

    :raises TypeDefinitionError: If the name or namespace is not a valid Avro name
    """

    def __init__(self, name: str, namespace: Optional[str] = None):
        if not utils.is_valid_type_name(name):
            raise TypeDefinitionError(f"'{name}' is not a valid {self.KIND} name")
        if namespace is not None and not utils.is_valid_type_name(namespace):
            raise TypeDefinitionError(f"'{namespace}' is not a valid namespace")
        self.name = name
        self.namespace = namespace

    @property
    def fullname(self) -> str:
        """Name qualified by the namespace, if any."""
        if self.namespace is None or "." in self.name:
            return self.name
        return f"{self.namespace}.{self.name}"

    @property
    def tag(self) -> str:
        return self.fullname

    def _named_json(self, body: dict[str, Any]) -> dict[str, Any]:
        """Combine the common header with a kind-specific body."""
        out: dict[str, Any] = {"type": self.KIND, "name": self.name}
        if self.namespace is not None:
            out["namespace"] = self.namespace
        out.update(body)
        return out

    def _check_seen(self, seen_names: Optional[set[str]]) -> Optional[str]:
        """Return the name if already written, registering it otherwise."""
        if seen_names is None:
            return None
        if self.fullname in seen_names:
            return self.fullname
        seen_names.add(self.fullname)
        return None


class AvroRecord(NamedAvroType):
    """A record type with ordered, uniquely named fields.

    :param name: Record name
    :type name: str
    :param fields: Ordered ``(field_name, field_type)`` pairs, or a mapping from
        field name to field type
    :type fields: Union[Sequence[tuple[str, custom_types.TypeLike]],
        Mapping[str, custom_types.TypeLike]]
    :param namespace: Optional namespace. Defaults to None.
    :type namespace: Optional[str]
    :param doc: Optional documentation string. Defaults to None.
    :type doc: Optional[str]

    :raises TypeDefinitionError: If a field name is invalid or repeated
    """

    KIND = "record"

    def __init__(
        self,
        name: str,
        fields: Union[Sequence[tuple[str, Any]], Mapping[str, Any]],
        namespace: Optional[str] = None,
        doc: Optional[str] = None,
    ):
        super().__init__(name, namespace)

        # Normalize to ordered pairs and check names
        pairs = list(fields.items()) if isinstance(fields, Mapping) else list(fields)
        seen: set[str] = set()
        for field_name, _ in pairs:
            if not utils.is_valid_symbol(field_name):
                raise TypeDefinitionError(
                    f"'{field_name}' is not a valid field name in record '{name}'"
                )
            if field_name in seen:
                raise TypeDefinitionError(
                    f"Duplicate field name '{field_name}' in record '{name}'"
                )
            seen.add(field_name)

        self.fields: tuple[tuple[str, AvroType], ...] = tuple(
            (field_name, as_avro_type(field_type)) for field_name, field_type in pairs
        )
        self.doc = doc

    @property
    def field_names(self) -> tuple[str, ...]:
        """Ordered field names."""
        return tuple(field_name for field_name, _ in self.fields)

    def field_type(self, field_name: str) -> Optional[AvroType]:
        """Look up the type of a field.

        :param field_name: Name of the field
        :type field_name: str

        :returns: The field's type, or None if the record has no such field
        :rtype: Optional[AvroType]
        """
        return dict(self.fields).get(field_name)

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        seen_names = set() if seen_names is None else seen_names
        if (written := self._check_seen(seen_names)) is not None:
            return written
        body: dict[str, Any] = {
            "fields": [
                {"name": field_name, "type": field_type.to_json(seen_names)}
                for field_name, field_type in self.fields
            ]
        }
        if self.doc is not None:
            body["doc"] = self.doc
        return self._named_json(body)

    def conforms(self, value: Any) -> bool:
        return (
            isinstance(value, dict)
            and set(value) == set(self.field_names)
            and all(
                field_type.conforms(value[field_name])
                for field_name, field_type in self.fields
            )
        )


class AvroEnum(NamedAvroType):
    """An enumeration of ordered, unique symbols.

    :param name: Enum name
    :type name: str
    :param symbols: Ordered symbols
    :type symbols: Sequence[str]
    :param namespace: Optional namespace. Defaults to None.
    :type namespace: Optional[str]

    :raises TypeDefinitionError: If there are no symbols, a symbol is repeated, or
        a symbol is not a valid name
    """

    KIND = "enum"

    def __init__(
        self, name: str, symbols: Sequence[str], namespace: Optional[str] = None
    ):
        super().__init__(name, namespace)
        symbols = tuple(symbols)
        if len(symbols) == 0:
            raise TypeDefinitionError(f"Enum '{name}' must have at least one symbol")
        if len(set(symbols)) != len(symbols):
            raise TypeDefinitionError(f"Enum '{name}' has duplicate symbols")
        for symbol in symbols:
            if not utils.is_valid_symbol(symbol):
                raise TypeDefinitionError(
                    f"'{symbol}' is not a valid symbol in enum '{name}'"
                )
        self.symbols: tuple[str, ...] = symbols

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        seen_names = set() if seen_names is None else seen_names
        if (written := self._check_seen(seen_names)) is not None:
            return written
        return self._named_json({"symbols": list(self.symbols)})

    def conforms(self, value: Any) -> bool:
        return isinstance(value, str) and value in self.symbols


class AvroFixed(NamedAvroType):
    """A fixed-size byte sequence.

    :param name: Type name
    :type name: str
    :param size: Number of bytes, at least 1
    :type size: custom_types.Integer
    :param namespace: Optional namespace. Defaults to None.
    :type namespace: Optional[str]

    :raises TypeDefinitionError: If the size is not a positive integer
    """

    KIND = "fixed"

    def __init__(
        self,
        name: str,
        size: "custom_types.Integer",
        namespace: Optional[str] = None,
    ):
        super().__init__(name, namespace)
        is_integer = isinstance(size, (int, np.integer)) and not isinstance(size, bool)
        if not is_integer or size < 1:
            raise TypeDefinitionError(
                f"Fixed type '{name}' must have a positive integer size, got {size!r}"
            )
        self.size = int(size)

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        seen_names = set() if seen_names is None else seen_names
        if (written := self._check_seen(seen_names)) is not None:
            return written
        return self._named_json({"size": self.size})

    def conforms(self, value: Any) -> bool:
        return isinstance(value, str) and len(value) == self.size


class AvroReference(AvroType):
    """A reference to a named type by name.

    References are the only way for a record to refer to itself: the recursive
    occurrence is written by name instead of being unrolled.

    :param name: Full name of the referenced type
    :type name: str

    :raises TypeDefinitionError: If the name is not a valid Avro name
    """

    KIND = "reference"

    def __init__(self, name: str):
        if not utils.is_valid_type_name(name) or name in PRIMITIVE_NAMES:
            raise TypeDefinitionError(f"'{name}' is not a valid named-type reference")
        self.name = name

    @property
    def tag(self) -> str:
        return self.name

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        return self.name

    def accepts(self, other: AvroType) -> bool:
        return other.tag == self.name

    def conforms(self, value: Any) -> bool:
        # The definition is not reachable from the reference itself
        return True


class AvroArray(AvroType):
    """An array of values of a single item type.

    :param items: Type of the array elements
    :type items: custom_types.TypeLike
    """

    KIND = "array"

    def __init__(self, items: Any):
        self.items = as_avro_type(items)

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        seen_names = set() if seen_names is None else seen_names
        return {"type": "array", "items": self.items.to_json(seen_names)}

    def accepts(self, other: AvroType) -> bool:
        return isinstance(other, AvroArray) and self.items.accepts(other.items)

    def conforms(self, value: Any) -> bool:
        return isinstance(value, list) and all(self.items.conforms(el) for el in value)


class AvroMap(AvroType):
    """A map from strings to values of a single value type.

    :param values: Type of the map values
    :type values: custom_types.TypeLike
    """

    KIND = "map"

    def __init__(self, values: Any):
        self.values = as_avro_type(values)

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        seen_names = set() if seen_names is None else seen_names
        return {"type": "map", "values": self.values.to_json(seen_names)}

    def accepts(self, other: AvroType) -> bool:
        return isinstance(other, AvroMap) and self.values.accepts(other.values)

    def conforms(self, value: Any) -> bool:
        return isinstance(value, dict) and all(
            isinstance(key, str) and self.values.conforms(val)
            for key, val in value.items()
        )


class AvroUnion(AvroType):
    """A union of alternative member types.

    :param members: Ordered member types
    :type members: Sequence[custom_types.TypeLike]

    :raises TypeDefinitionError: If there are no members, a member is itself a
        union, or two members share a tag
    """

    KIND = "union"

    def __init__(self, members: Sequence[Any]):
        members = tuple(as_avro_type(member) for member in members)
        if len(members) == 0:
            raise TypeDefinitionError("A union must have at least one member")
        tags = [member.tag for member in members]
        if "union" in tags:
            raise TypeDefinitionError("A union may not directly contain another union")
        if len(set(tags)) != len(tags):
            raise TypeDefinitionError(
                f"Union members must have unique tags, got {tags}"
            )
        self.members: tuple[AvroType, ...] = members

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        seen_names = set() if seen_names is None else seen_names
        return [member.to_json(seen_names) for member in self.members]

    def accepts(self, other: AvroType) -> bool:
        if isinstance(other, AvroUnion):
            return all(self.accepts(member) for member in other.members)
        return any(member.accepts(other) for member in self.members)

    def conforms(self, value: Any) -> bool:
        # Avro JSON encoding: null is bare, other branches are tagged
        if value is None:
            return any(member.KIND == "null" for member in self.members)
        if not isinstance(value, dict) or len(value) != 1:
            return False
        (tag, inner), = value.items()
        return any(
            member.tag == tag and member.conforms(inner) for member in self.members
        )


# Primitive singletons
NULL = AvroPrimitive("null")
BOOLEAN = AvroPrimitive("boolean")
INT = AvroPrimitive("int")
LONG = AvroPrimitive("long")
FLOAT = AvroPrimitive("float")
DOUBLE = AvroPrimitive("double")
BYTES = AvroPrimitive("bytes")
STRING = AvroPrimitive("string")


def as_avro_type(type_like: Any) -> AvroType:
    """Convert a type or a primitive type name to an :py:class:`AvroType`.

    :param type_like: An AvroType, or the name of a primitive type
    :type type_like: custom_types.TypeLike

    :returns: The corresponding type
    :rtype: AvroType

    :raises TypeDefinitionError: If the value is neither a type nor a primitive name
    """
    if isinstance(type_like, AvroType):
        return type_like
    if isinstance(type_like, str):
        return AvroPrimitive(type_like)
    raise TypeDefinitionError(f"Cannot interpret {type_like!r} as an Avro type")


def avro_primitive(name: str) -> AvroPrimitive:
    """Build a primitive type. See :py:class:`AvroPrimitive`."""
    return AvroPrimitive(name)


def avro_record(
    name: str,
    fields: Union[Sequence[tuple[str, Any]], Mapping[str, Any]],
    namespace: Optional[str] = None,
    doc: Optional[str] = None,
) -> AvroRecord:
    """Build a record type. See :py:class:`AvroRecord`."""
    return AvroRecord(name, fields, namespace=namespace, doc=doc)


def avro_array(items: Any) -> AvroArray:
    """Build an array type. See :py:class:`AvroArray`."""
    return AvroArray(items)


def avro_map(values: Any) -> AvroMap:
    """Build a map type. See :py:class:`AvroMap`."""
    return AvroMap(values)


def avro_enum(
    name: str, symbols: Sequence[str], namespace: Optional[str] = None
) -> AvroEnum:
    """Build an enum type. See :py:class:`AvroEnum`."""
    return AvroEnum(name, symbols, namespace=namespace)


def avro_union(*members: Any) -> AvroUnion:
    """Build a union type from its members. See :py:class:`AvroUnion`."""
    return AvroUnion(members)


def avro_fixed(
    name: str, size: "custom_types.Integer", namespace: Optional[str] = None
) -> AvroFixed:
    """Build a fixed type. See :py:class:`AvroFixed`."""
    return AvroFixed(name, size, namespace=namespace)


def avro_reference(name: str) -> AvroReference:
    """Build a by-name reference to a named type. See :py:class:`AvroReference`."""
    return AvroReference(name)


def numeric_promotion(*avro_types: AvroType) -> Optional[AvroType]:
    """Find the widest numeric primitive among the given types.

    :param avro_types: Types to promote
    :type avro_types: AvroType

    :returns: The widest numeric type, or None if any type is not numeric
    :rtype: Optional[AvroType]
    """
    if len(avro_types) == 0 or not all(t.is_numeric for t in avro_types):
        return None
    return max(avro_types, key=lambda t: NUMERIC_NAMES.index(t.KIND))


def unify(first: AvroType, second: AvroType) -> AvroType:
    """Find the narrowest type accepting values of both types.

    Numeric primitives are promoted; otherwise a union of the two is built
    (flattening existing unions).

    :param first: First type
    :type first: AvroType
    :param second: Second type
    :type second: AvroType

    :returns: The unified type
    :rtype: AvroType
    """
    if first.accepts(second):
        return first
    if second.accepts(first):
        return second
    if (promoted := numeric_promotion(first, second)) is not None:
        return promoted
    members: list[AvroType] = []
    for candidate in (first, second):
        candidates = (
            candidate.members if isinstance(candidate, AvroUnion) else (candidate,)
        )
        for member in candidates:
            if all(member.tag != existing.tag for existing in members):
                members.append(member)
    return AvroUnion(members)


def avro_type_from_json(
    data: Any,
    names: Optional[dict[str, AvroType]] = None,
    _pending: Optional[set[str]] = None,
) -> AvroType:
    """Read Avro type JSON into a type object.

    Named types are registered in ``names`` as they are defined so that later
    by-name occurrences resolve to the same definition. A name used inside its own
    definition becomes an :py:class:`AvroReference`.

    :param data: JSON-native Avro schema
    :type data: Any
    :param names: Registry of named types defined so far; updated in place.
        Defaults to None, which starts an empty registry.
    :type names: Optional[dict[str, AvroType]]

    :returns: The parsed type
    :rtype: AvroType

    :raises TypeDefinitionError: If the schema is malformed or references an
        undefined name
    """
    names = {} if names is None else names
    pending = set() if _pending is None else _pending

    # Names: primitives, already defined types, or recursive references
    if isinstance(data, str):
        if data in PRIMITIVE_NAMES:
            return AvroPrimitive(data)
        if data in names:
            return names[data]
        if data in pending:
            return AvroReference(data)
        raise TypeDefinitionError(f"Reference to undefined type name '{data}'")

    # Unions
    if isinstance(data, list):
        return AvroUnion(
            [avro_type_from_json(member, names, pending) for member in data]
        )

    if not isinstance(data, dict) or "type" not in data:
        raise TypeDefinitionError(f"Cannot read an Avro type from {data!r}")

    kind = data["type"]
    if not isinstance(kind, (str, list, dict)):
        raise TypeDefinitionError(f"Cannot read an Avro type from {data!r}")
    if kind == "array":
        return AvroArray(avro_type_from_json(data.get("items"), names, pending))
    if kind == "map":
        return AvroMap(avro_type_from_json(data.get("values"), names, pending))
    if kind in ("record", "enum", "fixed"):
        return _named_type_from_json(data, names, pending)
    if isinstance(kind, (list, dict)) or (
        isinstance(kind, str) and kind not in PRIMITIVE_NAMES
    ):
        return avro_type_from_json(kind, names, pending)
    return AvroPrimitive(kind)


def _json_string(value: Any, label: str, optional: bool = False) -> Optional[str]:
    """Check that a schema entry read from JSON is a string."""
    if (value is None and optional) or isinstance(value, str):
        return value
    raise TypeDefinitionError(f"The {label} must be a string, got {value!r}")


def _named_type_from_json(
    data: dict[str, Any], names: dict[str, AvroType], pending: set[str]
) -> AvroType:
    """Read and register a record, enum, or fixed definition."""
    kind = data["type"]
    if "name" not in data:
        raise TypeDefinitionError(f"A {kind} definition requires a name")
    name = _json_string(data["name"], f"{kind} name")
    namespace = _json_string(data.get("namespace"), "namespace", optional=True)

    # Fields of records may refer to the record itself
    if kind == "record":
        if not isinstance(data.get("fields"), list):
            raise TypeDefinitionError(f"Record '{name}' requires a list of fields")
        pending.add(name)
        try:
            fields = []
            for field in data["fields"]:
                if not isinstance(field, dict) or not {"name", "type"} <= set(field):
                    raise TypeDefinitionError(
                        f"Malformed field {field!r} in record '{name}'"
                    )
                field_name = _json_string(field["name"], f"field name in '{name}'")
                fields.append(
                    (field_name, avro_type_from_json(field["type"], names, pending))
                )
        finally:
            pending.discard(name)
        defined: NamedAvroType = AvroRecord(
            name,
            fields,
            namespace=namespace,
            doc=_json_string(data.get("doc"), "record doc", optional=True),
        )
    elif kind == "enum":
        symbols = data.get("symbols", [])
        if not isinstance(symbols, list) or not all(
            isinstance(symbol, str) for symbol in symbols
        ):
            raise TypeDefinitionError(f"Enum '{name}' requires a list of strings")
        defined = AvroEnum(name, symbols, namespace=namespace)
    else:
        size = data.get("size")
        if isinstance(size, bool) or not isinstance(size, int):
            raise TypeDefinitionError(f"Fixed '{name}' requires an integer size")
        defined = AvroFixed(name, size, namespace=namespace)

    # Redefinition is only allowed if structurally identical
    if defined.fullname in names and names[defined.fullname] != defined:
        raise TypeDefinitionError(f"Type '{defined.fullname}' is defined twice")
    names[defined.fullname] = defined
    names[defined.name] = defined
    return defined


def avro_record_from_frame(
    frame: pd.DataFrame,
    name: str = DEFAULT_INPUT_NAME,
    namespace: Optional[str] = None,
) -> AvroRecord:
    """Derive a record type from the column dtypes of a DataFrame.

    Integer columns become ``int`` (or ``long`` if 64-bit values exceed the int
    range), floating columns ``double``, boolean columns ``boolean``, and object,
    string, and categorical columns ``string``.

    :param frame: Example data whose columns become record fields
    :type frame: pd.DataFrame
    :param name: Name of the record. Defaults to "Input".
    :type name: str
    :param namespace: Optional namespace. Defaults to None.
    :type namespace: Optional[str]

    :returns: Record with one field per column, in column order
    :rtype: AvroRecord

    :raises TypeDefinitionError: If a column name is not a valid field name or a
        dtype has no Avro counterpart
    """
    fields = []
    for column in frame.columns:
        dtype = frame[column].dtype
        if pd.api.types.is_bool_dtype(dtype):
            field_type = BOOLEAN
        elif pd.api.types.is_integer_dtype(dtype):
            values = frame[column]
            in_range = len(values) == 0 or (
                values.min() >= INT_RANGE[0] and values.max() <= INT_RANGE[1]
            )
            field_type = INT if in_range else LONG
        elif pd.api.types.is_float_dtype(dtype):
            field_type = DOUBLE
        elif (
            pd.api.types.is_object_dtype(dtype)
            or pd.api.types.is_string_dtype(dtype)
            or isinstance(dtype, pd.CategoricalDtype)
        ):
            field_type = STRING
        else:
            raise TypeDefinitionError(
                f"Column '{column}' has dtype {dtype} with no Avro equivalent"
            )
        fields.append((str(column), field_type))
    return AvroRecord(name, fields, namespace=namespace)
