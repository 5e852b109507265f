# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Uniform read access to the opaque internal state of a fitted model.

Fitting libraries hand over their post-fit state in different containers: plain
mappings of arrays, objects exposing the same names as attributes, or tabular
objects such as :py:class:`pandas.DataFrame` node tables. :py:class:`StateView`
hides those differences from the extractors, and turns every missing entry into an
:py:class:`~scipfa.exceptions.UnsupportedModelStateError` naming the entry.
"""

from __future__ import annotations

from typing import Any, Mapping

from scipfa.exceptions import UnsupportedModelStateError


class StateView:
    """Read-only view over a fitted model's state.

    :param state: A mapping, an object with ``keys`` and item access (such as a
        DataFrame), or an object exposing entries as attributes
    :type state: custom_types.ModelState
    :param label: Description of the state used in error messages. Defaults to
        "fitted model".
    :type label: str
    """

    def __init__(self, state: Any, label: str = "fitted model"):
        if isinstance(state, StateView):
            state = state.state
        self.state = state
        self.label = label
        self._keyed = isinstance(state, Mapping) or (
            hasattr(state, "keys") and hasattr(state, "__getitem__")
        )

    def has(self, key: str) -> bool:
        """Whether the state carries an entry, ignoring entries set to None."""
        if self._keyed:
            return key in self.state.keys() and self.state[key] is not None
        return getattr(self.state, key, None) is not None

    def get(self, key: str, default: Any = None) -> Any:
        """Get an entry, or ``default`` if it is absent."""
        if not self.has(key):
            return default
        return self.state[key] if self._keyed else getattr(self.state, key)

    def require(self, key: str) -> Any:
        """Get an entry that extraction cannot do without.

        :param key: Entry name
        :type key: str

        :returns: The entry
        :rtype: Any

        :raises UnsupportedModelStateError: If the entry is absent
        """
        if not self.has(key):
            raise UnsupportedModelStateError(
                f"The {self.label} has no '{key}' entry. Was its post-fit state"
                " stripped before compilation?"
            )
        return self.get(key)

    @property
    def model_class(self) -> str:
        """The family tag selecting the extractor and producer."""
        model_class = self.require("model_class")
        if not isinstance(model_class, str):
            raise UnsupportedModelStateError(
                f"'model_class' must be a string, got {type(model_class).__name__}"
            )
        return model_class
