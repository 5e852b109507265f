# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""
SciPFA: Compile fitted statistical models into portable PFA scoring documents.

SciPFA turns the internal state of a fitted model into a Portable Format for
Analytics (PFA) document: a JSON-encoded computation graph with typed input and
output schemas, named constant storage, and an action that reproduces the model's
prediction function. Any conformant PFA engine can then score new data without the
library that fitted the model.

Key Features:
    - Linear, generalized-linear, and elastic-net models, including categorical
      predictors, interactions, and multiclass or multi-response fits
    - Gradient-boosted and random-forest tree ensembles
    - Response, link, probability, and class predictions with per-class cutoffs
    - Type-checked document assembly and whitespace-free serialization
    - Optional validation of compiled documents against an external engine

Global Variables:
    __version__: Package version string

Example:
    >>> import scipfa
    >>> state = {
    ...     "model_class": "linear",
    ...     "coefficients": {"(Intercept)": 3.0, "X1": -5.0},
    ... }
    >>> doc = scipfa.compile_model(state)
    >>> scipfa.to_text(doc)[:30]
    '{"method":"map","input":{"type'
"""

from typeguard import install_import_hook

# Define the version
__version__ = "0.1.0"

# Set up type checking
install_import_hook("scipfa")

# pylint: disable=wrong-import-position
from scipfa import utils
from scipfa.compiler import compile_model, from_text, to_text
from scipfa.pfa.serializer import minify, read, write
from scipfa.producers.options import CompileOptions

# The validation bridge starts external processes, so it is loaded on first use
validation = utils.lazy_import("scipfa.validation")
