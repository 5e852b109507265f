# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""PFA documents and their assembly.

This module provides the in-memory document model of SciPFA:

    - :py:class:`Cell` -- a named, typed constant
    - :py:class:`Pool` -- a named, typed collection of constants indexed by string key
    - :py:class:`PfaDocument` -- input and output types, storage, and action

and the document assembler, :py:func:`assemble`, which is the single consistency
gate between model producers and serialization. Assembly checks that every cell and
pool reference in the action is declared, that every storage ``init`` value conforms
to its declared type, and that the action's inferred type agrees with the declared
output type. Documents are immutable once assembled.
"""

from __future__ import annotations

import json

from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence, Union

from scipfa import utils
from scipfa.defaults import DEFAULT_METHOD
from scipfa.exceptions import DocumentConsistencyError, TypeDefinitionError
from scipfa.pfa import expressions, inference, types


class Cell:
    """A named, typed constant stored at document scope.

    :param name: Cell name
    :type name: str
    :param avro_type: Declared type of the cell
    :type avro_type: custom_types.TypeLike
    :param init: Initial value, converted to JSON-native types
    :type init: Any
    :param shared: Whether the cell is shared across engine instances. Defaults
        to False.
    :type shared: bool

    :raises TypeDefinitionError: If the name is not a valid symbol
    """

    def __init__(self, name: str, avro_type: Any, init: Any, shared: bool = False):
        if not utils.is_valid_symbol(name):
            raise TypeDefinitionError(f"'{name}' is not a valid storage name")
        self.name = name
        self.type = types.as_avro_type(avro_type)
        self.init = utils.to_json_value(init)
        self.shared = shared

    def conforms(self) -> bool:
        """Whether the initial value conforms to the declared type."""
        return self.type.conforms(self.init)

    def to_json(self, seen_names: Optional[set[str]] = None) -> dict[str, Any]:
        """Build the ``{"type": ..., "init": ...}`` encoding of the cell."""
        out = {"type": self.type.to_json(seen_names), "init": self.init}
        if self.shared:
            out["shared"] = True
        return out

    def __eq__(self, other: Any):
        if not isinstance(other, Cell):
            return NotImplemented
        return (self.name, self.to_json()) == (other.name, other.to_json())

    def __hash__(self) -> int:
        return hash((self.name, json.dumps(self.to_json(), sort_keys=True)))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r}, {self.type!r})"


class Pool(Cell):
    """A named collection of constants of one type, indexed by string key.

    :param name: Pool name
    :type name: str
    :param avro_type: Type of each entry in the pool
    :type avro_type: custom_types.TypeLike
    :param init: Mapping from key to initial entry value
    :type init: Mapping[str, Any]
    :param shared: Whether the pool is shared across engine instances. Defaults
        to False.
    :type shared: bool

    :raises TypeDefinitionError: If the initial value is not a mapping
    """

    def __init__(
        self, name: str, avro_type: Any, init: Mapping[str, Any], shared: bool = False
    ):
        super().__init__(name, avro_type, init, shared)

    def conforms(self) -> bool:
        return isinstance(self.init, dict) and all(
            self.type.conforms(value) for value in self.init.values()
        )


StorageSpec = Union[Mapping[str, Cell], Sequence[Cell]]


def _as_storage(storage: Any, kind: type) -> MappingProxyType:
    """Normalize a sequence or mapping of cells (or pools) into a read-only mapping."""
    if storage is None:
        return MappingProxyType({})
    items = list(storage.values()) if isinstance(storage, Mapping) else list(storage)
    out: dict[str, Cell] = {}
    for item in items:
        if not isinstance(item, kind):
            raise DocumentConsistencyError(
                f"Expected {kind.__name__} objects, got {type(item).__name__}"
            )
        if item.name in out:
            raise DocumentConsistencyError(
                f"{kind.__name__} '{item.name}' is declared twice"
            )
        out[item.name] = item
    if isinstance(storage, Mapping) and set(storage) != set(out):
        raise DocumentConsistencyError(
            f"{kind.__name__} mapping keys do not match the"
            f" {kind.__name__.lower()} names"
        )
    return MappingProxyType(out)


class PfaDocument:
    """An immutable PFA document.

    Documents are normally created by :py:func:`assemble`, which validates them,
    or read with :py:func:`scipfa.pfa.serializer.read`.

    :param input_type: Declared input type
    :type input_type: types.AvroType
    :param output_type: Declared output type
    :type output_type: types.AvroType
    :param action: Ordered, non-empty sequence of expressions
    :type action: Sequence[expressions.Expression]
    :param cells: Cells by name, or a sequence of cells. Defaults to None.
    :type cells: Optional[StorageSpec]
    :param pools: Pools by name, or a sequence of pools. Defaults to None.
    :type pools: Optional[StorageSpec]
    :param name: Optional engine name. Defaults to None.
    :type name: Optional[str]
    :param method: Execution method. Defaults to "map".
    :type method: str
    :param doc: Optional documentation string. Defaults to None.
    :type doc: Optional[str]
    :param metadata: Optional string-to-string metadata. Defaults to None.
    :type metadata: Optional[Mapping[str, str]]

    :raises DocumentConsistencyError: If the action is empty
    """

    def __init__(
        self,
        input_type: types.AvroType,
        output_type: types.AvroType,
        action: Sequence[expressions.Expression],
        cells: Optional[StorageSpec] = None,
        pools: Optional[StorageSpec] = None,
        name: Optional[str] = None,
        method: str = DEFAULT_METHOD,
        doc: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
    ):
        self.input = input_type
        self.output = output_type
        self.action: tuple[expressions.Expression, ...] = tuple(action)
        if len(self.action) == 0:
            raise DocumentConsistencyError("A document action must not be empty")
        self.cells = _as_storage(cells, Cell)
        self.pools = _as_storage(pools, Pool)
        self.name = name
        self.method = method
        self.doc = doc
        self.metadata = MappingProxyType(dict(metadata or {}))

    def to_json(self) -> dict[str, Any]:
        """Build the JSON-native nested mapping representation of the document.

        Named types are fully defined at their first occurrence, in the order
        input, output, cells, pools, action, and written by name afterwards.

        :returns: The document as nested dictionaries and lists
        :rtype: dict[str, Any]
        """
        seen_names: set[str] = set()
        out: dict[str, Any] = {}
        if self.name is not None:
            out["name"] = self.name
        out["method"] = self.method
        out["input"] = self.input.to_json(seen_names)
        out["output"] = self.output.to_json(seen_names)
        if self.cells:
            out["cells"] = {
                name: cell.to_json(seen_names) for name, cell in self.cells.items()
            }
        if self.pools:
            out["pools"] = {
                name: pool.to_json(seen_names) for name, pool in self.pools.items()
            }
        out["action"] = [expr.to_json(seen_names) for expr in self.action]
        if self.doc is not None:
            out["doc"] = self.doc
        if self.metadata:
            out["metadata"] = dict(self.metadata)
        return out

    def infer_output_type(self) -> types.AvroType:
        """Infer the type of the action's final expression.

        :returns: The inferred type
        :rtype: types.AvroType

        :raises DocumentConsistencyError: On unresolved references or type mismatches
        """
        return inference.infer_action_type(
            self.action,
            self.input,
            {name: cell.type for name, cell in self.cells.items()},
            {name: pool.type for name, pool in self.pools.items()},
        )

    def __eq__(self, other: Any):
        if not isinstance(other, PfaDocument):
            return NotImplemented
        return self.to_json() == other.to_json()

    def __hash__(self) -> int:
        return hash(json.dumps(self.to_json(), sort_keys=True))

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(input={self.input!r}, output={self.output!r},"
            f" cells={list(self.cells)}, pools={list(self.pools)},"
            f" action=<{len(self.action)} expression(s)>)"
        )


def assemble(
    input_type: types.AvroType,
    output_type: types.AvroType,
    cells: Optional[StorageSpec],
    pools: Optional[StorageSpec],
    action: Union[expressions.Expression, Sequence[expressions.Expression]],
    *,
    name: Optional[str] = None,
    doc: Optional[str] = None,
    metadata: Optional[Mapping[str, str]] = None,
) -> PfaDocument:
    """Merge producer output into a validated document.

    :param input_type: Declared input type
    :type input_type: types.AvroType
    :param output_type: Declared output type
    :type output_type: types.AvroType
    :param cells: Cells by name, a sequence of cells, or None
    :type cells: Optional[StorageSpec]
    :param pools: Pools by name, a sequence of pools, or None
    :type pools: Optional[StorageSpec]
    :param action: A single expression or an ordered sequence of them
    :type action: Union[expressions.Expression, Sequence[expressions.Expression]]
    :param name: Optional engine name. Defaults to None.
    :type name: Optional[str]
    :param doc: Optional documentation string. Defaults to None.
    :type doc: Optional[str]
    :param metadata: Optional string-to-string metadata. Defaults to None.
    :type metadata: Optional[Mapping[str, str]]

    :returns: The assembled document
    :rtype: PfaDocument

    :raises DocumentConsistencyError: If storage is declared twice, an ``init``
        value does not conform to its type, a reference in the action is
        unresolved, or the action's type does not agree with ``output_type``

    Example:
        >>> from scipfa.pfa import expressions as ex, types
        >>> doc = assemble(
        ...     types.DOUBLE, types.DOUBLE, None, None,
        ...     ex.call("+", "input", 10.0),
        ... )
    """
    if isinstance(action, expressions.Expression):
        action = [action]
    document = PfaDocument(
        input_type,
        output_type,
        action,
        cells=cells,
        pools=pools,
        name=name,
        doc=doc,
        metadata=metadata,
    )

    # Storage values must match their declared types
    for storage in (document.cells, document.pools):
        for item in storage.values():
            if not item.conforms():
                raise DocumentConsistencyError(
                    f"Initial value of {type(item).__name__.lower()} '{item.name}' does"
                    f" not conform to its type {item.type.to_json()!r}"
                )

    # The action must type-check and agree with the declared output
    inferred = document.infer_output_type()
    if not output_type.accepts(inferred):
        raise DocumentConsistencyError(
            f"Action produces {inferred.to_json()!r} but the declared output type is"
            f" {output_type.to_json()!r}"
        )
    return document
