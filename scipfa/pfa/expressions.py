# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""PFA action-language expression nodes.

This module is the expression builder of SciPFA. Each class represents one form of
the PFA action language and knows how to write itself in the canonical JSON encoding,
where every special form is a single-key object (``{"+": ["input", 10]}``):

    - :py:class:`Literal` -- typed constant values
    - :py:class:`VarRef` and :py:class:`Attr` -- variable references and
      record/array/map extraction
    - :py:class:`CellRef` and :py:class:`PoolRef` -- references to document storage
    - :py:class:`Let` -- variable declarations
    - :py:class:`If` and :py:class:`Cond` -- conditionals
    - :py:class:`Call` -- calls to registered library functions
    - :py:class:`ForEach` -- loops over arrays
    - :py:class:`ArrayLit` and :py:class:`MapLit` -- array and map constructors

Nodes are immutable and validate their arity and shape at construction, raising
:py:class:`~scipfa.exceptions.ExpressionShapeError` (or
:py:class:`~scipfa.exceptions.UnknownFunctionError` for unregistered functions). In
particular, statement-like nodes (``let``, ``foreach``, and ``if`` without ``else``)
cannot be used where a value is required. The builder never evaluates anything; it
only assembles a tree for execution by an external engine.

The module also provides combinators used by the model producers (weighted sums,
split tests for tree dispatch, inverse links) and a reader turning expression JSON
back into nodes.
"""

from __future__ import annotations

import json

from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Sequence, TYPE_CHECKING, Union

import numpy as np

from scipfa import utils
from scipfa.exceptions import ExpressionShapeError
from scipfa.pfa import library, types

if TYPE_CHECKING:
    from scipfa import custom_types

# Keys of the special forms that are not function calls
SPECIAL_FORM_KEYS: frozenset[str] = frozenset(
    {
        "int",
        "long",
        "float",
        "double",
        "string",
        "type",
        "value",
        "let",
        "if",
        "then",
        "else",
        "cond",
        "foreach",
        "in",
        "do",
        "seq",
        "new",
        "attr",
        "path",
        "cell",
        "pool",
    }
)


class Expression(ABC):
    """Abstract base class for all expression nodes.

    Equality is structural and derived from the JSON encoding.
    """

    @abstractmethod
    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        """Build the canonical PFA JSON encoding of this expression.

        :param seen_names: Named Avro types already written in the enclosing
            document. Defaults to None.
        :type seen_names: Optional[set[str]]

        :returns: JSON-native encoding
        :rtype: Any
        """

    @property
    def yields_value(self) -> bool:
        """Whether the expression produces a value usable as an argument."""
        return True

    def children(self) -> tuple["Expression", ...]:
        """Direct sub-expressions, in evaluation order."""
        return ()

    def walk(self):
        """Yield this expression and all nested expressions depth-first.

        :yields: Expressions in left-to-right, depth-first order
        :rtype: Generator[Expression, None, None]
        """
        yield self
        for child in self.children():
            yield from child.walk()

    def __eq__(self, other: Any):
        if not isinstance(other, Expression):
            return NotImplemented
        return self.to_json() == other.to_json()

    def __hash__(self) -> int:
        return hash(json.dumps(self.to_json(), sort_keys=True))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({json.dumps(self.to_json())})"


def as_expression(value: Any) -> Expression:
    """Wrap a Python value as an expression.

    Expressions are returned unchanged. ``None``, booleans, integers, and floats
    (including NumPy scalars) become literals; strings become variable references,
    following the PFA convention that bare strings are symbols. Use
    :py:func:`string` for string literals.

    :param value: Value to wrap
    :type value: custom_types.ExpressionLike

    :returns: The corresponding expression
    :rtype: Expression

    :raises ExpressionShapeError: If the value cannot be used as an expression
    """
    if isinstance(value, Expression):
        return value
    if isinstance(value, str):
        return VarRef(value)
    if value is None:
        return Literal(types.NULL, None)
    if isinstance(value, (bool, np.bool_)):
        return Literal(types.BOOLEAN, bool(value))
    if isinstance(value, (int, np.integer)):
        value = int(value)
        in_int_range = types.INT_RANGE[0] <= value <= types.INT_RANGE[1]
        return Literal(types.INT if in_int_range else types.LONG, value)
    if isinstance(value, (float, np.floating)):
        return Literal(types.DOUBLE, float(value))
    raise ExpressionShapeError(f"Cannot use {value!r} as an expression")


def _require_value(expression: Expression, context: str) -> Expression:
    """Raise if a statement-like expression is used where a value is needed."""
    if not expression.yields_value:
        raise ExpressionShapeError(
            f"{expression.__class__.__name__} does not produce a value and cannot be"
            f" used as {context}"
        )
    return expression


def _as_block(body: Any, context: str) -> tuple[Expression, ...]:
    """Normalize a single expression or a sequence of them into a non-empty block."""
    if isinstance(body, (list, tuple)):
        block = tuple(as_expression(el) for el in body)
    else:
        block = (as_expression(body),)
    if len(block) == 0:
        raise ExpressionShapeError(f"{context} must contain at least one expression")
    return block


def _block_json(block: tuple[Expression, ...], seen_names: Optional[set[str]]) -> list:
    return [el.to_json(seen_names) for el in block]


def _as_path(path: Sequence[Any]) -> tuple[Expression, ...]:
    """Path items: strings are keys (string literals), integers are indexes."""
    items = []
    for item in path:
        if isinstance(item, str):
            items.append(string(item))
        else:
            items.append(_require_value(as_expression(item), "a path element"))
    return tuple(items)


class Literal(Expression):
    """A constant of a declared type.

    :param avro_type: Type of the constant
    :type avro_type: custom_types.TypeLike
    :param value: JSON-native value conforming to the type
    :type value: Any

    :raises ExpressionShapeError: If the value does not conform to the type
    """

    def __init__(self, avro_type: Any, value: Any):
        self.type = types.as_avro_type(avro_type)
        value = utils.to_json_value(value)
        if self.type.KIND in ("float", "double") and isinstance(value, int):
            value = float(value)
        if not self.type.conforms(value):
            raise ExpressionShapeError(
                f"Literal value {value!r} does not conform to type"
                f" {self.type.to_json()!r}"
            )
        self.value = value

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        kind = self.type.KIND
        if kind in ("null", "boolean", "int", "double"):
            return self.value
        if kind in ("long", "float", "string"):
            return {kind: self.value}
        return {"type": self.type.to_json(seen_names), "value": self.value}


class VarRef(Expression):
    """A reference to a variable (``input`` or a ``let``/``foreach`` binding).

    :param name: Variable name
    :type name: str

    :raises ExpressionShapeError: If the name is not a valid symbol
    """

    def __init__(self, name: str):
        if not utils.is_valid_symbol(name):
            raise ExpressionShapeError(f"'{name}' is not a valid variable name")
        self.name = name

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        return self.name


class Attr(Expression):
    """Extraction from a record, array, or map by a path of keys and indexes.

    :param expr: Expression producing the container
    :type expr: custom_types.ExpressionLike
    :param path: Non-empty sequence of field names, map keys (strings), or array
        indexes (integers or integer-valued expressions)
    :type path: Sequence[Any]

    :raises ExpressionShapeError: If the path is empty
    """

    def __init__(self, expr: Any, path: Sequence[Any]):
        self.expr = _require_value(as_expression(expr), "an attribute source")
        self.path = _as_path(path)
        if len(self.path) == 0:
            raise ExpressionShapeError("An attribute path must not be empty")

    def children(self) -> tuple[Expression, ...]:
        return (self.expr,) + self.path

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        return {
            "attr": self.expr.to_json(seen_names),
            "path": [el.to_json(seen_names) for el in self.path],
        }


class CellRef(Expression):
    """A reference to a cell, optionally extracting along a path.

    :param name: Cell name
    :type name: str
    :param path: Optional path into the cell's value. Defaults to ().
    :type path: Sequence[Any]
    """

    STORAGE = "cell"

    def __init__(self, name: str, path: Sequence[Any] = ()):
        if not utils.is_valid_symbol(name):
            raise ExpressionShapeError(f"'{name}' is not a valid {self.STORAGE} name")
        self.name = name
        self.path = _as_path(path)

    def children(self) -> tuple[Expression, ...]:
        return self.path

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        out: dict[str, Any] = {self.STORAGE: self.name}
        if self.path:
            out["path"] = [el.to_json(seen_names) for el in self.path]
        return out


class PoolRef(CellRef):
    """A reference to a pool entry. The first path element is the entry's key.

    :param name: Pool name
    :type name: str
    :param path: Non-empty path whose first element selects the pool entry
    :type path: Sequence[Any]

    :raises ExpressionShapeError: If the path is empty
    """

    STORAGE = "pool"

    def __init__(self, name: str, path: Sequence[Any]):
        super().__init__(name, path)
        if len(self.path) == 0:
            raise ExpressionShapeError(f"Pool reference '{name}' requires a key path")


class Let(Expression):
    """Declaration of one or more new variables.

    The variables are visible to the expressions that follow in the same block.
    A ``let`` does not produce a value.

    :param bindings: Ordered ``(name, expression)`` pairs or a mapping
    :type bindings: Union[Sequence[tuple[str, Any]], Mapping[str, Any]]

    :raises ExpressionShapeError: If there are no bindings, a name is invalid or
        repeated, or a bound expression does not produce a value
    """

    def __init__(self, bindings: Union[Sequence[tuple[str, Any]], Mapping[str, Any]]):
        items = bindings.items() if isinstance(bindings, Mapping) else bindings
        pairs = list(items)
        if len(pairs) == 0:
            raise ExpressionShapeError("A let must declare at least one variable")
        names = [name for name, _ in pairs]
        if len(set(names)) != len(names):
            raise ExpressionShapeError(f"Duplicate variable names in let: {names}")
        self.bindings: tuple[tuple[str, Expression], ...] = tuple(
            (
                VarRef(name).name,
                _require_value(as_expression(value), f"the value of '{name}'"),
            )
            for name, value in pairs
        )

    @property
    def yields_value(self) -> bool:
        return False

    def children(self) -> tuple[Expression, ...]:
        return tuple(value for _, value in self.bindings)

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        return {
            "let": {name: value.to_json(seen_names) for name, value in self.bindings}
        }


class If(Expression):
    """A two-way conditional.

    Without an ``else`` block the conditional does not produce a value and may only
    be used as a statement.

    :param cond: Boolean condition
    :type cond: custom_types.ExpressionLike
    :param then: Expression or block evaluated when the condition holds
    :type then: Any
    :param else_: Expression or block evaluated otherwise. Defaults to None.
    :type else_: Any
    """

    def __init__(self, cond: Any, then: Any, else_: Any = None):
        self.cond = _require_value(as_expression(cond), "a condition")
        self.then = _as_block(then, "A then block")
        self.else_ = None if else_ is None else _as_block(else_, "An else block")

    @property
    def yields_value(self) -> bool:
        return self.else_ is not None

    def children(self) -> tuple[Expression, ...]:
        return (self.cond,) + self.then + (self.else_ or ())

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        out = {
            "if": self.cond.to_json(seen_names),
            "then": _block_json(self.then, seen_names),
        }
        if self.else_ is not None:
            out["else"] = _block_json(self.else_, seen_names)
        return out


class Cond(Expression):
    """A chain of conditions checked in order, with an optional final ``else``.

    :param clauses: Ordered ``(condition, block)`` pairs
    :type clauses: Sequence[tuple[Any, Any]]
    :param else_: Block evaluated when no condition holds. Defaults to None, in
        which case the form does not produce a value.
    :type else_: Any

    :raises ExpressionShapeError: If there are no clauses
    """

    def __init__(self, clauses: Sequence[tuple[Any, Any]], else_: Any = None):
        if len(clauses) == 0:
            raise ExpressionShapeError("A cond must have at least one clause")
        self.clauses: tuple[tuple[Expression, tuple[Expression, ...]], ...] = tuple(
            (
                _require_value(as_expression(cond), "a condition"),
                _as_block(then, "A cond clause"),
            )
            for cond, then in clauses
        )
        self.else_ = None if else_ is None else _as_block(else_, "An else block")

    @property
    def yields_value(self) -> bool:
        return self.else_ is not None

    def children(self) -> tuple[Expression, ...]:
        out: tuple[Expression, ...] = ()
        for cond, then in self.clauses:
            out += (cond,) + then
        return out + (self.else_ or ())

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        out: dict[str, Any] = {
            "cond": [
                {"if": cond.to_json(seen_names), "then": _block_json(then, seen_names)}
                for cond, then in self.clauses
            ]
        }
        if self.else_ is not None:
            out["else"] = _block_json(self.else_, seen_names)
        return out


class Call(Expression):
    """A call to a registered library function.

    :param function_name: Registered PFA function name
    :type function_name: str
    :param args: Ordered arguments
    :type args: Sequence[custom_types.ExpressionLike]

    :raises UnknownFunctionError: If the function is not registered
    :raises ExpressionShapeError: If the number of arguments is wrong or an
        argument does not produce a value
    """

    def __init__(self, function_name: str, args: Sequence[Any]):
        self.signature = library.lookup(function_name)
        self.function_name = function_name
        self.args = tuple(
            _require_value(as_expression(arg), f"an argument of '{function_name}'")
            for arg in args
        )
        self.signature.check_arity(len(self.args))

    def children(self) -> tuple[Expression, ...]:
        return self.args

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        return {self.function_name: [arg.to_json(seen_names) for arg in self.args]}


class ForEach(Expression):
    """A loop binding each element of an array to a new variable.

    The loop does not produce a value.

    :param var: Loop variable name
    :type var: str
    :param collection: Expression producing an array
    :type collection: custom_types.ExpressionLike
    :param body: Expression or block evaluated for each element
    :type body: Any
    :param seq: Whether iterations must run sequentially. Defaults to True.
    :type seq: bool
    """

    def __init__(self, var: str, collection: Any, body: Any, seq: bool = True):
        self.var = VarRef(var).name
        self.collection = _require_value(as_expression(collection), "a loop collection")
        self.body = _as_block(body, "A loop body")
        self.seq = seq

    @property
    def yields_value(self) -> bool:
        return False

    def children(self) -> tuple[Expression, ...]:
        return (self.collection,) + self.body

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        return {
            "foreach": self.var,
            "in": self.collection.to_json(seen_names),
            "do": _block_json(self.body, seen_names),
            "seq": self.seq,
        }


class ArrayLit(Expression):
    """A new array built from expressions.

    :param items: Ordered element expressions
    :type items: Sequence[custom_types.ExpressionLike]
    :param items_type: Declared element type
    :type items_type: custom_types.TypeLike
    """

    def __init__(self, items: Sequence[Any], items_type: Any):
        self.items = tuple(
            _require_value(as_expression(item), "an array element") for item in items
        )
        self.type = types.AvroArray(items_type)

    def children(self) -> tuple[Expression, ...]:
        return self.items

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        return {
            "new": [item.to_json(seen_names) for item in self.items],
            "type": self.type.to_json(seen_names),
        }


class MapLit(Expression):
    """A new map built from string keys and expressions.

    :param entries: Ordered mapping from key to value expression
    :type entries: Mapping[str, custom_types.ExpressionLike]
    :param values_type: Declared value type
    :type values_type: custom_types.TypeLike
    """

    def __init__(self, entries: Mapping[str, Any], values_type: Any):
        self.entries: tuple[tuple[str, Expression], ...] = tuple(
            (str(key), _require_value(as_expression(value), "a map value"))
            for key, value in entries.items()
        )
        self.type = types.AvroMap(values_type)

    def children(self) -> tuple[Expression, ...]:
        return tuple(value for _, value in self.entries)

    def to_json(self, seen_names: Optional[set[str]] = None) -> Any:
        return {
            "new": {key: value.to_json(seen_names) for key, value in self.entries},
            "type": self.type.to_json(seen_names),
        }


# Combinators
def string(value: str) -> Literal:
    """Build a string literal."""
    return Literal(types.STRING, value)


def double(value: "custom_types.Float") -> Literal:
    """Build a double literal."""
    return Literal(types.DOUBLE, float(value))


def call(function_name: str, *args: Any) -> Call:
    """Build a call from positional arguments. See :py:class:`Call`."""
    return Call(function_name, args)


def input_field(field_name: str) -> Attr:
    """Extract a field of the document's input record."""
    return Attr(VarRef("input"), [field_name])


def sum_of(terms: Sequence[Any]) -> Expression:
    """Left fold of ``+`` over the terms; a single term is returned unchanged.

    :raises ExpressionShapeError: If there are no terms
    """
    if len(terms) == 0:
        raise ExpressionShapeError("Cannot sum an empty sequence of terms")
    total = as_expression(terms[0])
    for term in terms[1:]:
        total = Call("+", [total, term])
    return total


def weighted_sum(
    terms: Sequence[Any],
    weights: Sequence["custom_types.Float"],
    offset: Optional["custom_types.Float"] = None,
) -> Expression:
    """Build ``offset + weights[0] * terms[0] + weights[1] * terms[1] + ...``.

    :param terms: Term expressions
    :type terms: Sequence[custom_types.ExpressionLike]
    :param weights: Weights aligned with the terms
    :type weights: Sequence[custom_types.Float]
    :param offset: Optional additive offset. Defaults to None.
    :type offset: Optional[custom_types.Float]

    :returns: The weighted-sum expression
    :rtype: Expression

    :raises ExpressionShapeError: If terms and weights differ in length
    """
    if len(terms) != len(weights):
        raise ExpressionShapeError(
            f"Got {len(terms)} terms but {len(weights)} weights for a weighted sum"
        )
    products = [
        Call("*", [double(weight), term]) for term, weight in zip(terms, weights)
    ]
    if offset is not None:
        products.insert(0, double(offset))
    return sum_of(products)


def logistic(expr: Any) -> Call:
    """Inverse of the log-odds transform, ``1 / (1 + exp(-expr))``."""
    return Call("m.link.logit", [expr])


def softmax(expr: Any) -> Call:
    """Soft-max of an array (or map) of scores."""
    return Call("m.link.softmax", [expr])


def split_test(
    feature: Any,
    threshold: "custom_types.Float",
    left: Any,
    right: Any,
    operator: str = "<",
) -> If:
    """One node of a tree dispatch: ``if (feature <op> threshold) left else right``.

    :param feature: Expression producing the tested feature value
    :type feature: custom_types.ExpressionLike
    :param threshold: Split threshold
    :type threshold: custom_types.Float
    :param left: Subtree taken when the test holds
    :type left: custom_types.ExpressionLike
    :param right: Subtree taken otherwise
    :type right: custom_types.ExpressionLike
    :param operator: Comparison, ``"<"`` or ``"<="``. Defaults to "<".
    :type operator: str

    :returns: The conditional node
    :rtype: If

    :raises ExpressionShapeError: If the operator is not a split comparison
    """
    if operator not in ("<", "<="):
        raise ExpressionShapeError(f"Unsupported split operator '{operator}'")
    return If(Call(operator, [feature, double(threshold)]), left, right)


# Reading
def _json_name(value: Any, form: str) -> str:
    if not isinstance(value, str):
        raise ExpressionShapeError(f"A {form} name must be a string, got {value!r}")
    return value


def _json_path(data: dict[str, Any], form: str) -> list:
    if not isinstance(data["path"], list):
        raise ExpressionShapeError(f"The '{form}' path must be a JSON array")
    return data["path"]


def expression_from_json(
    data: Any, names: Optional[dict[str, Any]] = None
) -> Expression:
    """Read a canonical PFA expression encoding into an expression tree.

    :param data: JSON-native expression
    :type data: Any
    :param names: Registry of named Avro types defined so far in the document,
        updated in place. Defaults to None.
    :type names: Optional[dict[str, types.AvroType]]

    :returns: The expression
    :rtype: Expression

    :raises ExpressionShapeError: If the encoding is not a supported expression
    :raises UnknownFunctionError: If a call names an unregistered function
    :raises TypeDefinitionError: If an embedded type is malformed
    """
    names = {} if names is None else names

    # Bare JSON scalars and references
    if data is None or isinstance(data, (bool, int, float)):
        return as_expression(data)
    if isinstance(data, str):
        head, *path = data.split(".")
        return VarRef(head) if not path else Attr(VarRef(head), path)
    if isinstance(data, list):
        if len(data) == 1 and isinstance(data[0], str):
            return string(data[0])
        raise ExpressionShapeError(f"A JSON array is not an expression: {data!r}")
    if not isinstance(data, dict) or len(data) == 0:
        raise ExpressionShapeError(f"Cannot read an expression from {data!r}")

    def read(el: Any) -> Expression:
        return expression_from_json(el, names)

    def read_block(el: Any) -> list[Expression]:
        return [read(x) for x in el] if isinstance(el, list) else [read(el)]

    keys = set(data)
    if len(data) == 1:
        ((key, arg),) = data.items()
        if key in ("int", "long", "float", "double", "string"):
            return Literal(key, arg)
        if key == "let":
            if not isinstance(arg, dict):
                raise ExpressionShapeError("A let requires an object of bindings")
            return Let([(name, read(value)) for name, value in arg.items()])
        if key == "cell":
            return CellRef(_json_name(arg, "cell"))
        if key not in SPECIAL_FORM_KEYS:
            args = arg if isinstance(arg, list) else [arg]
            return Call(key, [read(el) for el in args])
    if keys == {"type", "value"}:
        return Literal(types.avro_type_from_json(data["type"], names), data["value"])
    if keys in ({"if", "then"}, {"if", "then", "else"}):
        return If(
            read(data["if"]),
            read_block(data["then"]),
            read_block(data["else"]) if "else" in data else None,
        )
    if keys in ({"cond"}, {"cond", "else"}):
        if not isinstance(data["cond"], list):
            raise ExpressionShapeError("A cond requires a list of clauses")
        clauses = []
        for clause in data["cond"]:
            if not isinstance(clause, dict) or set(clause) != {"if", "then"}:
                raise ExpressionShapeError(f"Malformed cond clause {clause!r}")
            clauses.append((read(clause["if"]), read_block(clause["then"])))
        return Cond(clauses, read_block(data["else"]) if "else" in data else None)
    if keys in ({"foreach", "in", "do"}, {"foreach", "in", "do", "seq"}):
        return ForEach(
            _json_name(data["foreach"], "foreach"),
            read(data["in"]),
            read_block(data["do"]),
            seq=bool(data.get("seq", False)),
        )
    if keys == {"new", "type"}:
        new_type = types.avro_type_from_json(data["type"], names)
        if isinstance(data["new"], list) and isinstance(new_type, types.AvroArray):
            return ArrayLit([read(el) for el in data["new"]], new_type.items)
        if isinstance(data["new"], dict) and isinstance(new_type, types.AvroMap):
            return MapLit(
                {key: read(value) for key, value in data["new"].items()},
                new_type.values,
            )
        raise ExpressionShapeError(f"Unsupported constructor of type {data['type']!r}")
    if keys == {"attr", "path"}:
        return Attr(read(data["attr"]), [read(el) for el in _json_path(data, "attr")])
    if keys == {"cell", "path"}:
        return CellRef(
            _json_name(data["cell"], "cell"),
            [read(el) for el in _json_path(data, "cell")],
        )
    if keys == {"pool", "path"}:
        return PoolRef(
            _json_name(data["pool"], "pool"),
            [read(el) for el in _json_path(data, "pool")],
        )
    raise ExpressionShapeError(f"Unsupported expression form with keys {sorted(keys)}")


def expressions_from_json(
    data: Any, names: Optional[dict[str, Any]] = None
) -> list[Expression]:
    """Read a block (a single expression or a list of them).

    A JSON array is always read as a list of expressions.

    :raises TypeDefinitionError: If an embedded type is malformed
    """
    if isinstance(data, list):
        return [expression_from_json(el, names) for el in data]
    return [expression_from_json(data, names)]

