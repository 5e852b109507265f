# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Custom type definitions for SciPFA.

This module provides type aliases used throughout the SciPFA package for scalar
values, JSON payloads, fitted-model state, and compilation options.

All imports are conditional on TYPE_CHECKING to avoid circular imports while
maintaining proper type hints for development and documentation tools.
"""

from typing import Any, Literal, Mapping, TYPE_CHECKING, Union

# Everything in this file is only imported if TYPE_CHECKING is True.
if TYPE_CHECKING:

    import numpy as np

    from scipfa.pfa import expressions, types

# Scalar types
Integer = Union[int, "np.integer"]
"""Type alias for integer values.

Accepts both Python's built-in int and NumPy integer types.

:type: Union[int, np.integer]
"""

Float = Union[float, "np.floating"]
"""Type alias for floating-point values.

Accepts both Python's built-in float and NumPy floating-point types.

:type: Union[float, np.floating]
"""

# JSON payloads
JsonValue = Union[None, bool, int, float, str, list, dict]
"""Type alias for JSON-native Python values.

:type: Union[None, bool, int, float, str, list, dict]
"""

# Model state
ModelState = Union[Mapping[str, Any], Any]
"""Type alias for the opaque internal state of a fitted model.

Either a mapping of named arrays, scalars, and tables, or an object exposing the
same names as attributes.

:type: Union[Mapping[str, Any], Any]
"""

# Options
PredType = Literal["response", "link", "probability", "class"]
"""Type alias for recognized prediction types.

:type: Literal["response", "link", "probability", "class"]
"""

Cutoffs = Mapping[str, Union[int, float]]
"""Type alias for per-class cutoff mappings.

:type: Mapping[str, Union[int, float]]
"""

LambdaSpec = Union[float, int, str]
"""Type alias for an elastic-net regularization request: a value or ``"best"``.

:type: Union[float, int, str]
"""

# Document fragments
ExpressionLike = Union["expressions.Expression", int, float, str, bool, None]
"""Type alias for values accepted where an expression is expected.

Python scalars are wrapped as literals by the expression builder.

:type: Union[expressions.Expression, int, float, str, bool, None]
"""

TypeLike = Union["types.AvroType", str]
"""Type alias for values accepted where an Avro type is expected.

Primitive type names are converted to primitive types.

:type: Union[types.AvroType, str]
"""
