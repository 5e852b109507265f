# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Static type inference over PFA action trees.

The document assembler uses this module to check, without executing anything, that
every variable, cell, and pool reference in an action resolves and that the type of
the action's final expression agrees with the declared output type. Inference
follows PFA's scoping rules: ``let`` bindings are visible to the expressions that
follow them in the same block, ``foreach`` binds its loop variable in its body, and
nested blocks (``then``, ``else``, ``do``) open new scopes.

All failures raise :py:class:`~scipfa.exceptions.DocumentConsistencyError` naming
the first offending reference or type, in left-to-right, depth-first order.
"""

from __future__ import annotations

from typing import Mapping, Optional, Sequence

from scipfa.exceptions import DocumentConsistencyError
from scipfa.pfa import expressions, types


class Scope:
    """Symbol table of variable types with a link to the enclosing scope.

    :param parent: Enclosing scope, or None for the top level. Defaults to None.
    :type parent: Optional[Scope]
    """

    def __init__(self, parent: Optional["Scope"] = None):
        self.parent = parent
        self.symbols: dict[str, types.AvroType] = {}

    def lookup(self, name: str) -> Optional[types.AvroType]:
        """Find the type of a variable in this or any enclosing scope."""
        if name in self.symbols:
            return self.symbols[name]
        return None if self.parent is None else self.parent.lookup(name)

    def define(self, name: str, avro_type: types.AvroType) -> None:
        """Declare a new variable.

        :raises DocumentConsistencyError: If the variable is already visible
        """
        if self.lookup(name) is not None:
            raise DocumentConsistencyError(f"Variable '{name}' is declared twice")
        self.symbols[name] = avro_type

    def child(self) -> "Scope":
        """Open a nested scope."""
        return Scope(self)


class TypeInferrer:
    """Infers expression types against a document's cells and pools.

    :param cells: Mapping from cell name to cell type
    :type cells: Mapping[str, types.AvroType]
    :param pools: Mapping from pool name to the type of the pool's values
    :type pools: Mapping[str, types.AvroType]
    """

    def __init__(
        self,
        cells: Mapping[str, types.AvroType],
        pools: Mapping[str, types.AvroType],
    ):
        self.cells = cells
        self.pools = pools

    def infer_block(
        self, block: Sequence[expressions.Expression], scope: Scope
    ) -> types.AvroType:
        """Infer the type of a block: the type of its last expression.

        :param block: Expressions evaluated in order
        :type block: Sequence[expressions.Expression]
        :param scope: Scope in which the block's declarations are made
        :type scope: Scope

        :returns: Type of the final expression
        :rtype: types.AvroType
        """
        result: types.AvroType = types.NULL
        for expr in block:
            result = self.infer(expr, scope)
        return result

    def infer(self, expr: expressions.Expression, scope: Scope) -> types.AvroType:
        """Infer the type of a single expression.

        :param expr: Expression to type
        :type expr: expressions.Expression
        :param scope: Scope providing variable types; ``let`` declarations are
            added to it
        :type scope: Scope

        :returns: Inferred type
        :rtype: types.AvroType

        :raises DocumentConsistencyError: On unresolved references or type mismatches
        """
        if isinstance(expr, expressions.Literal):
            return expr.type

        if isinstance(expr, expressions.VarRef):
            if (found := scope.lookup(expr.name)) is None:
                raise DocumentConsistencyError(f"Unresolved variable '{expr.name}'")
            return found

        if isinstance(expr, expressions.Attr):
            return self._extract(self.infer(expr.expr, scope), expr.path, scope)

        if isinstance(expr, expressions.PoolRef):
            if expr.name not in self.pools:
                raise DocumentConsistencyError(
                    f"Unresolved pool reference '{expr.name}'"
                )
            self._expect_key(expr.path[0], scope, f"pool '{expr.name}'")
            return self._extract(self.pools[expr.name], expr.path[1:], scope)

        if isinstance(expr, expressions.CellRef):
            if expr.name not in self.cells:
                raise DocumentConsistencyError(
                    f"Unresolved cell reference '{expr.name}'"
                )
            return self._extract(self.cells[expr.name], expr.path, scope)

        if isinstance(expr, expressions.Let):
            for name, value in expr.bindings:
                scope.define(name, self.infer(value, scope))
            return types.NULL

        if isinstance(expr, expressions.If):
            self._expect_condition(expr.cond, scope)
            then_type = self.infer_block(expr.then, scope.child())
            if expr.else_ is None:
                return types.NULL
            return types.unify(then_type, self.infer_block(expr.else_, scope.child()))

        if isinstance(expr, expressions.Cond):
            result: Optional[types.AvroType] = None
            for cond, then in expr.clauses:
                self._expect_condition(cond, scope)
                then_type = self.infer_block(then, scope.child())
                result = then_type if result is None else types.unify(result, then_type)
            if expr.else_ is None:
                return types.NULL
            return types.unify(result, self.infer_block(expr.else_, scope.child()))

        if isinstance(expr, expressions.Call):
            arg_types = [self.infer(arg, scope) for arg in expr.args]
            return expr.signature.return_type(arg_types)

        if isinstance(expr, expressions.ForEach):
            collection = self.infer(expr.collection, scope)
            if not isinstance(collection, types.AvroArray):
                raise DocumentConsistencyError(
                    f"foreach over '{expr.var}' requires an array, got"
                    f" {collection.to_json()!r}"
                )
            body_scope = scope.child()
            body_scope.define(expr.var, collection.items)
            self.infer_block(expr.body, body_scope)
            return types.NULL

        if isinstance(expr, (expressions.ArrayLit, expressions.MapLit)):
            element_type = (
                expr.type.items
                if isinstance(expr, expressions.ArrayLit)
                else expr.type.values
            )
            for child in expr.children():
                if not element_type.accepts(child_type := self.infer(child, scope)):
                    raise DocumentConsistencyError(
                        f"Element of type {child_type.to_json()!r} does not fit a"
                        f" container of {element_type.to_json()!r}"
                    )
            return expr.type

        raise DocumentConsistencyError(f"Cannot infer the type of {expr!r}")

    def _expect_condition(self, cond: expressions.Expression, scope: Scope) -> None:
        if (cond_type := self.infer(cond, scope)) != types.BOOLEAN:
            raise DocumentConsistencyError(
                f"Condition must be boolean, got {cond_type.to_json()!r}"
            )

    def _expect_key(
        self, key: expressions.Expression, scope: Scope, what: str
    ) -> None:
        if (key_type := self.infer(key, scope)) != types.STRING:
            raise DocumentConsistencyError(
                f"Key into {what} must be a string, got {key_type.to_json()!r}"
            )

    def _extract(
        self,
        base: types.AvroType,
        path: Sequence[expressions.Expression],
        scope: Scope,
    ) -> types.AvroType:
        """Follow an attribute path through records, arrays, and maps."""
        current = base
        for step in path:
            if isinstance(current, types.AvroRecord):
                if not (
                    isinstance(step, expressions.Literal) and step.type == types.STRING
                ):
                    raise DocumentConsistencyError(
                        f"Record '{current.name}' must be indexed by a field name"
                    )
                if (field_type := current.field_type(step.value)) is None:
                    raise DocumentConsistencyError(
                        f"Record '{current.name}' has no field '{step.value}'"
                    )
                current = field_type
            elif isinstance(current, types.AvroArray):
                if (step_type := self.infer(step, scope)).KIND not in ("int", "long"):
                    raise DocumentConsistencyError(
                        "Array index must be an int or long, got"
                        f" {step_type.to_json()!r}"
                    )
                current = current.items
            elif isinstance(current, types.AvroMap):
                self._expect_key(step, scope, "a map")
                current = current.values
            else:
                raise DocumentConsistencyError(
                    f"Cannot extract from a value of type {current.to_json()!r}"
                )
        return current


def infer_action_type(
    action: Sequence[expressions.Expression],
    input_type: types.AvroType,
    cells: Mapping[str, types.AvroType],
    pools: Mapping[str, types.AvroType],
) -> types.AvroType:
    """Infer the type of a document action.

    :param action: The action's expressions
    :type action: Sequence[expressions.Expression]
    :param input_type: Declared input type, bound to the variable ``input``
    :type input_type: types.AvroType
    :param cells: Mapping from cell name to cell type
    :type cells: Mapping[str, types.AvroType]
    :param pools: Mapping from pool name to pool value type
    :type pools: Mapping[str, types.AvroType]

    :returns: Type of the action's final expression
    :rtype: types.AvroType

    :raises DocumentConsistencyError: On unresolved references or type mismatches
    """
    scope = Scope()
    scope.define("input", input_type)
    return TypeInferrer(cells, pools).infer_block(action, scope)
