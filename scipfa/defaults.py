# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Default configuration values for SciPFA package components.

This module centralizes default values used across the SciPFA package, including
compilation options, naming conventions for generated documents, serialization
settings, and validation thresholds.

The module is organized into logical groups covering:
    - Compilation option defaults
    - Naming conventions for generated types, cells, and pools
    - Serialization and reading settings
    - Validation bridge thresholds

Default values cannot be programmatically altered. Callers override them by passing
an explicit :py:class:`~scipfa.producers.options.CompileOptions` record.
"""

# Compilation defaults
PRED_TYPES: tuple[str, ...] = ("response", "link", "probability", "class")
"""Recognized prediction types.

``response`` applies the inverse link, ``link`` returns the linear predictor (or raw
ensemble score), ``probability`` returns class probabilities, and ``class`` returns
the predicted class label.

:type: tuple[str, ...]
"""

DEFAULT_PRED_TYPE: str = "response"
"""Default prediction type.

:type: str
"""

DEFAULT_BINARY_CUTOFF: float = 0.5
"""Default probability threshold for the positive class of a binary model.

:type: float
"""

DEFAULT_LAMBDA: str = "best"
"""Default regularization strength selector for elastic-net paths.

``"best"`` selects the cross-validated ``lambda_min`` when the fitted state carries
one and the least-regularized entry of the path otherwise.

:type: str
"""

LAMBDA_MATCH_RTOL: float = 1e-9
"""Relative tolerance under which a requested lambda matches a path entry exactly.

The tolerance is purely relative so that the tiny lambdas at the end of a path are
still told apart.

:type: float
"""

# Naming conventions
DEFAULT_INPUT_NAME: str = "Input"
"""Default name of the generated input record type.

:type: str
"""

DEFAULT_REGRESSION_RECORD_NAME: str = "Regression"
"""Name of the ``{coeff, const}`` record type consumed by ``model.reg.linear``.

:type: str
"""

DEFAULT_MODEL_CELL: str = "model"
"""Name of the cell holding single-response regression coefficients.

:type: str
"""

DEFAULT_MODEL_POOL: str = "models"
"""Name of the pool holding per-class or per-response regression coefficients.

:type: str
"""

DEFAULT_CLASSES_CELL: str = "classes"
"""Name of the cell holding ordered class labels.

:type: str
"""

DEFAULT_CUTOFFS_CELL: str = "cutoffs"
"""Name of the cell holding per-class cutoffs aligned with the class labels.

:type: str
"""

DEFAULT_METHOD: str = "map"
"""PFA execution method used for all generated documents.

:type: str
"""

INTERCEPT_NAMES: tuple[str, ...] = ("(Intercept)", "intercept")
"""Coefficient names recognized as the intercept term.

:type: tuple[str, ...]
"""

INTERACTION_SEPARATOR: str = ":"
"""Separator between the components of an interaction term name.

:type: str
"""

# Serialization defaults
DEFAULT_JSON_SEPARATORS: tuple[str, str] = (",", ":")
"""Item and key separators used when writing documents. No whitespace is emitted.

:type: tuple[str, str]
"""

DEFAULT_READ_TIMEOUT: float = 10.0
"""Timeout in seconds applied when reading a document from a network address.

:type: float
"""

URL_SCHEMES: tuple[str, ...] = ("http://", "https://", "file://")
"""Prefixes identifying a string document source as a URL.

:type: tuple[str, ...]
"""

# Validation defaults
DEFAULT_VALIDATION_RTOL: float = 1e-4
"""Default relative tolerance when comparing engine outputs with reference predictions.

:type: float
"""

DEFAULT_VALIDATION_ATOL: float = 1e-12
"""Absolute tolerance floor used so that exact zeros can be compared.

:type: float
"""

DEFAULT_ENGINE_TIMEOUT: float = 60.0
"""Timeout in seconds for one call of an out-of-process scoring engine.

:type: float
"""

DEFAULT_CANCEL_POLL_INTERVAL: float = 0.1
"""Interval in seconds at which a running engine process checks for cancellation.

:type: float
"""
