# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Fixed registry of PFA library functions available to generated documents.

Every function call built by :py:mod:`scipfa.pfa.expressions` is checked against
this registry. Each entry records the function's arity and a rule computing its
return type from the types of its arguments, which is what lets
:py:mod:`scipfa.pfa.inference` determine the type of an action without executing
it. The registry covers:

    - Arithmetic (``+``, ``-``, ``*``, ``/``, ``**``, ``%``, ``u-``)
    - Comparison (``==``, ``!=``, ``<``, ``<=``, ``>``, ``>=``) and logic (``&&``,
      ``||``, ``!``)
    - Scalar math (``m.exp``, ``m.ln``, ``m.sqrt``, ``m.abs``)
    - Inverse links and soft-max (``m.link.*``)
    - Array reductions (``a.sum``, ``a.mean``, ``a.argmax``, ``a.count``, ...)
    - Model combinators (``model.reg.linear`` weighted sums)

Unknown names raise :py:class:`~scipfa.exceptions.UnknownFunctionError`.
"""

from __future__ import annotations

from typing import Callable, Optional

from scipfa.exceptions import (
    DocumentConsistencyError,
    ExpressionShapeError,
    UnknownFunctionError,
)
from scipfa.pfa import types


class FunctionSignature:
    """Arity and return-type rule of one library function.

    :param name: PFA function name
    :type name: str
    :param min_args: Minimum number of arguments
    :type min_args: int
    :param max_args: Maximum number of arguments, or None for no limit
    :type max_args: Optional[int]
    :param return_rule: Function mapping the argument types to the return type.
        It raises :py:class:`~scipfa.exceptions.DocumentConsistencyError` if the
        argument types are not acceptable.
    :type return_rule: Callable[[str, list[types.AvroType]], types.AvroType]
    """

    def __init__(
        self,
        name: str,
        min_args: int,
        max_args: Optional[int],
        return_rule: Callable[[str, list[types.AvroType]], types.AvroType],
    ):
        self.name = name
        self.min_args = min_args
        self.max_args = max_args
        self.return_rule = return_rule

    def check_arity(self, n_args: int) -> None:
        """Raise :py:class:`~scipfa.exceptions.ExpressionShapeError` on a bad count."""
        if n_args < self.min_args or (
            self.max_args is not None and n_args > self.max_args
        ):
            expected = (
                f"{self.min_args}"
                if self.min_args == self.max_args
                else f"{self.min_args} to {self.max_args or 'any number of'}"
            )
            raise ExpressionShapeError(
                f"Function '{self.name}' takes {expected} argument(s), got {n_args}"
            )

    def return_type(self, arg_types: list[types.AvroType]) -> types.AvroType:
        """Compute the return type for the given argument types.

        :param arg_types: Inferred argument types, in order
        :type arg_types: list[types.AvroType]

        :returns: Return type of the call
        :rtype: types.AvroType

        :raises DocumentConsistencyError: If the arguments have unacceptable types
        """
        return self.return_rule(self.name, arg_types)


def _mismatch(name: str, arg_types: list[types.AvroType]) -> DocumentConsistencyError:
    """Build the error raised when a call has unacceptable argument types."""
    rendered = ", ".join(repr(t.to_json()) for t in arg_types)
    return DocumentConsistencyError(
        f"Function '{name}' cannot be applied to arguments of type ({rendered})"
    )


def _numeric_items(name: str, arg: types.AvroType) -> types.AvroType:
    """Return the item type of a numeric array, raising otherwise."""
    if not isinstance(arg, types.AvroArray) or not arg.items.is_numeric:
        raise _mismatch(name, [arg])
    return arg.items


def _promote(name: str, arg_types: list[types.AvroType]) -> types.AvroType:
    if (promoted := types.numeric_promotion(*arg_types)) is None:
        raise _mismatch(name, arg_types)
    return promoted


def _divide(name: str, arg_types: list[types.AvroType]) -> types.AvroType:
    _promote(name, arg_types)
    return types.DOUBLE


def _compare(name: str, arg_types: list[types.AvroType]) -> types.AvroType:
    first, second = arg_types
    if not (first == second or types.numeric_promotion(first, second) is not None):
        raise _mismatch(name, arg_types)
    return types.BOOLEAN


def _logical(name: str, arg_types: list[types.AvroType]) -> types.AvroType:
    if any(t != types.BOOLEAN for t in arg_types):
        raise _mismatch(name, arg_types)
    return types.BOOLEAN


def _to_double(name: str, arg_types: list[types.AvroType]) -> types.AvroType:
    _promote(name, arg_types)
    return types.DOUBLE


def _elementwise_double(name: str, arg_types: list[types.AvroType]) -> types.AvroType:
    """Scalars map to double; arrays and maps of numbers map to containers of double."""
    (arg,) = arg_types
    if arg.is_numeric:
        return types.DOUBLE
    if isinstance(arg, types.AvroArray) and arg.items.is_numeric:
        return types.AvroArray(types.DOUBLE)
    if isinstance(arg, types.AvroMap) and arg.values.is_numeric:
        return types.AvroMap(types.DOUBLE)
    raise _mismatch(name, arg_types)


def _softmax(name: str, arg_types: list[types.AvroType]) -> types.AvroType:
    if arg_types[0].is_numeric:
        raise _mismatch(name, arg_types)
    return _elementwise_double(name, arg_types)


def _reg_linear(name: str, arg_types: list[types.AvroType]) -> types.AvroType:
    """``model.reg.linear(datum, model)`` with a ``{coeff, const}`` model record."""
    datum, model = arg_types
    _numeric_items(name, datum)
    if not isinstance(model, types.AvroRecord):
        raise _mismatch(name, arg_types)
    coeff, const = model.field_type("coeff"), model.field_type("const")
    if coeff is None or const is None or not isinstance(coeff, types.AvroArray):
        raise _mismatch(name, arg_types)

    # Vector coefficients give a scalar, matrix coefficients a vector
    if coeff.items.is_numeric and const.is_numeric:
        return types.DOUBLE
    if (
        isinstance(coeff.items, types.AvroArray)
        and coeff.items.items.is_numeric
        and isinstance(const, types.AvroArray)
        and const.items.is_numeric
    ):
        return types.AvroArray(types.DOUBLE)
    raise _mismatch(name, arg_types)


def _array_items(name: str, arg_types: list[types.AvroType]) -> types.AvroType:
    return _numeric_items(name, arg_types[0])


def _array_double(name: str, arg_types: list[types.AvroType]) -> types.AvroType:
    _numeric_items(name, arg_types[0])
    return types.DOUBLE


def _array_index(name: str, arg_types: list[types.AvroType]) -> types.AvroType:
    _numeric_items(name, arg_types[0])
    return types.INT


def _array_len(name: str, arg_types: list[types.AvroType]) -> types.AvroType:
    if not isinstance(arg_types[0], types.AvroArray):
        raise _mismatch(name, arg_types)
    return types.INT


def _array_count(name: str, arg_types: list[types.AvroType]) -> types.AvroType:
    array, value = arg_types
    if not isinstance(array, types.AvroArray) or not (
        array.items.accepts(value) or value.accepts(array.items)
    ):
        raise _mismatch(name, arg_types)
    return types.INT


def _build_registry() -> dict[str, FunctionSignature]:
    """Assemble the fixed registry."""
    entries = [
        # Arithmetic
        ("+", 2, 2, _promote),
        ("-", 2, 2, _promote),
        ("*", 2, 2, _promote),
        ("/", 2, 2, _divide),
        ("**", 2, 2, _promote),
        ("%", 2, 2, _promote),
        ("u-", 1, 1, _promote),
        # Comparison and logic
        ("==", 2, 2, _compare),
        ("!=", 2, 2, _compare),
        ("<", 2, 2, _compare),
        ("<=", 2, 2, _compare),
        (">", 2, 2, _compare),
        (">=", 2, 2, _compare),
        ("&&", 2, 2, _logical),
        ("||", 2, 2, _logical),
        ("!", 1, 1, _logical),
        # Scalar math
        ("m.exp", 1, 1, _to_double),
        ("m.ln", 1, 1, _to_double),
        ("m.sqrt", 1, 1, _to_double),
        ("m.abs", 1, 1, _promote),
        ("cast.double", 1, 1, _to_double),
        # Inverse links
        ("m.link.logit", 1, 1, _elementwise_double),
        ("m.link.probit", 1, 1, _elementwise_double),
        ("m.link.cloglog", 1, 1, _elementwise_double),
        ("m.link.loglog", 1, 1, _elementwise_double),
        ("m.link.cauchit", 1, 1, _elementwise_double),
        ("m.link.softmax", 1, 1, _softmax),
        # Array reductions
        ("a.sum", 1, 1, _array_items),
        ("a.max", 1, 1, _array_items),
        ("a.min", 1, 1, _array_items),
        ("a.mean", 1, 1, _array_double),
        ("a.argmax", 1, 1, _array_index),
        ("a.argmin", 1, 1, _array_index),
        ("a.len", 1, 1, _array_len),
        ("a.count", 2, 2, _array_count),
        # Model combinators
        ("model.reg.linear", 2, 2, _reg_linear),
    ]
    return {
        name: FunctionSignature(name, min_args, max_args, rule)
        for name, min_args, max_args, rule in entries
    }


REGISTRY: dict[str, FunctionSignature] = _build_registry()
"""Mapping from PFA function name to its signature.

:type: dict[str, FunctionSignature]
"""


def lookup(name: str) -> FunctionSignature:
    """Get the signature of a registered function.

    :param name: PFA function name
    :type name: str

    :returns: The function's signature
    :rtype: FunctionSignature

    :raises UnknownFunctionError: If the function is not registered
    """
    try:
        return REGISTRY[name]
    except KeyError as e:
        raise UnknownFunctionError(f"Unknown PFA function '{name}'") from e
