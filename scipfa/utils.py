# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Utility functions for the SciPFA package.

This module provides helper functions that support the core functionality of
SciPFA, including:

    - Lazy importing mechanisms for optional, expensive components
    - Conversion of NumPy and other array-like values to JSON-native Python values
    - Validation of PFA symbol and type names
    - Coercion of model state entries to NumPy arrays

Users will not typically need to interact with this module directly--it is designed
to be used internally by SciPFA.
"""

from __future__ import annotations

import importlib.util
import math
import re
import sys

from typing import Any, Mapping

import numpy as np
import numpy.typing as npt

from scipy import sparse

# Symbols are C-like identifiers; type names may be dotted with a namespace
SYMBOL_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
TYPE_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")


def lazy_import(name: str):
    """Import a module only when it is first needed.

    This function implements lazy module importing to improve package import
    performance by deferring module loading until actual use.

    :param name: The fully qualified module name to import
    :type name: str

    :returns: The imported module
    :rtype: module

    :raises ImportError: If the specified module cannot be found

    .. note::
        If the module is already imported, returns the cached version
        from sys.modules for efficiency.
    """
    # Check if the module is already imported
    if name in sys.modules:
        return sys.modules[name]

    # If not, import it lazily (modified from here:
    # https://docs.python.org/3/library/importlib.html#implementing-lazy-imports)
    spec = importlib.util.find_spec(name)

    # If the spec is None, raise an ImportError
    if spec is None:
        raise ImportError(f"Module '{name}' not found.")

    # Create the module with a lazy loader
    spec.loader = importlib.util.LazyLoader(spec.loader)
    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    spec.loader.exec_module(module)
    return module


def is_valid_symbol(name: Any) -> bool:
    """Check whether a value is a valid PFA symbol (variable, cell, or pool) name.

    :param name: Candidate name
    :type name: Any

    :returns: Whether the name is a string matching ``[A-Za-z_][A-Za-z0-9_]*``
    :rtype: bool
    """
    return isinstance(name, str) and SYMBOL_PATTERN.match(name) is not None


def is_valid_type_name(name: Any) -> bool:
    """Check whether a value is a valid Avro type name, optionally namespaced.

    :param name: Candidate name
    :type name: Any

    :returns: Whether the name is a dotted sequence of identifiers
    :rtype: bool
    """
    return isinstance(name, str) and TYPE_NAME_PATTERN.match(name) is not None


def to_json_value(value: Any) -> Any:
    """Recursively convert a value to JSON-native Python types.

    NumPy scalars become Python scalars, NumPy arrays and tuples become lists, and
    mappings become dictionaries with string keys. Key order is preserved.

    :param value: Value to convert
    :type value: Any

    :returns: Equivalent value built only from ``None``, ``bool``, ``int``, ``float``,
        ``str``, ``list``, and ``dict``
    :rtype: Any

    :raises TypeError: If the value contains an object with no JSON equivalent
    :raises ValueError: If the value contains NaN or an infinity

    Example:
        >>> to_json_value({"coeff": np.array([1.0, 2.0]), "const": np.float64(0.5)})
        {'coeff': [1.0, 2.0], 'const': 0.5}
    """
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        value = float(value)
        if not math.isfinite(value):
            raise ValueError(f"Non-finite value {value} cannot be written to JSON.")
        return value
    if isinstance(value, np.ndarray):
        return [to_json_value(el) for el in value.tolist()]
    if isinstance(value, (list, tuple)):
        return [to_json_value(el) for el in value]
    if isinstance(value, Mapping):
        return {str(key): to_json_value(val) for key, val in value.items()}
    raise TypeError(f"Cannot convert value of type {type(value)} to JSON.")


def as_float_array(value: Any, ndim: int = 1) -> npt.NDArray[np.floating]:
    """Coerce a model state entry to a float NumPy array of the given dimensionality.

    Sparse matrices are densified. Scalars and 1D inputs are promoted to the
    requested dimensionality by prepending axes.

    :param value: Array-like, sparse matrix, or scalar
    :type value: Any
    :param ndim: Required number of dimensions. Defaults to 1.
    :type ndim: int

    :returns: Dense float64 array with exactly ``ndim`` dimensions
    :rtype: npt.NDArray[np.floating]

    :raises ValueError: If the input has more dimensions than requested
    """
    if sparse.issparse(value):
        value = value.toarray()
    array = np.asarray(value, dtype=np.float64)
    if array.ndim > ndim:
        raise ValueError(
            f"Expected at most {ndim} dimension(s), got array of shape {array.shape}."
        )
    while array.ndim < ndim:
        array = array[np.newaxis, ...]
    return array
