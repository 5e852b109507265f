# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Building blocks of PFA documents: Avro types, expressions, and documents.

Submodules:
    - :py:mod:`~scipfa.pfa.types`: Avro type builder
    - :py:mod:`~scipfa.pfa.library`: registry of callable PFA functions
    - :py:mod:`~scipfa.pfa.expressions`: expression builder
    - :py:mod:`~scipfa.pfa.inference`: static type inference over actions
    - :py:mod:`~scipfa.pfa.document`: cells, pools, and document assembly
    - :py:mod:`~scipfa.pfa.serializer`: JSON reading and writing
"""
