# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.


"""Validation bridge comparing compiled documents against native predictions.

The compiler never executes documents itself. Validation hands a document and a
batch of inputs to an external :py:class:`ScoringEngine` and compares what the
engine returns with the native model's predictions, element by element, within a
relative tolerance.

Engines sit behind the narrow :py:meth:`ScoringEngine.evaluate_batch` interface.
:py:class:`SubprocessEngine` connects to any engine runnable as a command by
exchanging JSON lines over a process boundary:

    - The path of the document, written to a temporary file, is appended to the
      command's arguments.
    - Each input is written to the process's standard input as one line of JSON.
    - The process writes one line of JSON per output to its standard output and
      exits with status 0.

Validation is advisory and cancellable. Setting the ``cancel_event`` passed to
:py:func:`validate` stops a running engine process and raises
:py:class:`~scipfa.exceptions.ValidationCancelledError`.
"""

from __future__ import annotations

import json
import os.path
import subprocess
import threading
import time

from abc import ABC, abstractmethod
from tempfile import TemporaryDirectory
from typing import Any, Callable, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from tqdm import tqdm

from scipfa import utils
from scipfa.defaults import (
    DEFAULT_CANCEL_POLL_INTERVAL,
    DEFAULT_ENGINE_TIMEOUT,
    DEFAULT_VALIDATION_ATOL,
    DEFAULT_VALIDATION_RTOL,
)
from scipfa.exceptions import (
    ScoringEngineError,
    ValidationCancelledError,
    ValidationMismatchError,
)
from scipfa.pfa import serializer
from scipfa.pfa.document import PfaDocument


def _is_cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


class ScoringEngine(ABC):
    """Interface to an external engine that executes PFA documents."""

    @abstractmethod
    def evaluate_batch(
        self,
        document: PfaDocument,
        data: Sequence[Any],
        cancel_event: Optional[threading.Event] = None,
    ) -> list:
        """Score a batch of inputs with a document.

        :param document: Document to execute
        :type document: PfaDocument
        :param data: JSON-native inputs, one per scoring call
        :type data: Sequence[Any]
        :param cancel_event: Event that cancels scoring when set. Defaults to None.
        :type cancel_event: Optional[threading.Event]

        :returns: One JSON-native output per input, in order
        :rtype: list

        :raises ScoringEngineError: If the engine fails
        :raises ValidationCancelledError: If ``cancel_event`` is set while scoring
        """

    def evaluate(self, document: PfaDocument, datum: Any) -> Any:
        """Score a single input with a document."""
        return self.evaluate_batch(document, [datum])[0]


class SubprocessEngine(ScoringEngine):
    """A scoring engine run as an external command speaking JSON lines.

    :param command: Command and leading arguments launching the engine. The
        document path is appended as the last argument.
    :type command: Sequence[str]
    :param timeout: Seconds allowed for one batch. Defaults to 60.0.
    :type timeout: float
    :param poll_interval: Seconds between checks of the cancel event. Defaults
        to 0.1.
    :type poll_interval: float

    Example:
        >>> engine = SubprocessEngine(["java", "-jar", "hadrian-standalone.jar"])
        >>> outputs = engine.evaluate_batch(doc, [{"X1": 0.5}])
    """

    def __init__(
        self,
        command: Sequence[str],
        timeout: float = DEFAULT_ENGINE_TIMEOUT,
        poll_interval: float = DEFAULT_CANCEL_POLL_INTERVAL,
    ):
        if isinstance(command, str):
            command = [command]
        if len(command) == 0:
            raise ValueError("An engine command is required")
        if timeout <= 0 or poll_interval <= 0:
            raise ValueError("`timeout` and `poll_interval` must be positive")

        self.command = list(command)
        self.timeout = timeout
        self.poll_interval = poll_interval

    def evaluate_batch(
        self,
        document: PfaDocument,
        data: Sequence[Any],
        cancel_event: Optional[threading.Event] = None,
    ) -> list:
        payload = "".join(
            json.dumps(utils.to_json_value(datum), allow_nan=False) + "\n"
            for datum in data
        )
        with TemporaryDirectory() as tempdir:
            path = os.path.join(tempdir, "document.pfa.json")
            serializer.write_file(document, path)
            stdout = self._run([*self.command, path], payload, cancel_event)

        return self._parse_outputs(stdout, len(data))

    def _run(
        self,
        args: list[str],
        payload: str,
        cancel_event: Optional[threading.Event],
    ) -> str:
        """Run the engine process to completion, honoring cancellation and timeout."""
        try:
            process = subprocess.Popen(  # pylint: disable=consider-using-with
                args,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            raise ScoringEngineError(f"Could not start scoring engine: {e}") from e

        # Input is only sent on the first call to `communicate`
        deadline = time.monotonic() + self.timeout
        pending_input: Optional[str] = payload
        while True:
            try:
                stdout, stderr = process.communicate(
                    input=pending_input, timeout=self.poll_interval
                )
                break
            except subprocess.TimeoutExpired:
                pending_input = None
            if _is_cancelled(cancel_event):
                process.kill()
                process.communicate()
                raise ValidationCancelledError("Validation was cancelled")
            if time.monotonic() > deadline:
                process.kill()
                process.communicate()
                raise ScoringEngineError(
                    f"Scoring engine did not finish within {self.timeout} seconds"
                )

        if process.returncode != 0:
            raise ScoringEngineError(
                f"Scoring engine exited with status {process.returncode}:"
                f" {stderr.strip()}"
            )
        return stdout

    @staticmethod
    def _parse_outputs(stdout: str, n_expected: int) -> list:
        lines = [line for line in stdout.splitlines() if line.strip()]
        if len(lines) != n_expected:
            raise ScoringEngineError(
                f"Scoring engine returned {len(lines)} output(s) for {n_expected}"
                " input(s)"
            )
        try:
            return [json.loads(line) for line in lines]
        except json.JSONDecodeError as e:
            raise ScoringEngineError(f"Unreadable scoring engine output: {e}") from e


def _as_records(sample_inputs: Any) -> list:
    """Convert a DataFrame or sequence of inputs to JSON-native records."""
    if isinstance(sample_inputs, pd.DataFrame):
        sample_inputs = sample_inputs.to_dict(orient="records")
    return [utils.to_json_value(datum) for datum in sample_inputs]


def _compare(expected: Any, actual: Any, rtol: float) -> tuple[bool, float]:
    """Whether two outputs agree, and the largest relative deviation between them.

    Structures are compared recursively. Any structural difference (missing keys,
    differing lengths, or differing labels) is a mismatch with infinite deviation.
    """
    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping) or set(expected) != set(actual):
            return False, float("inf")
        results = [_compare(expected[key], actual[key], rtol) for key in expected]
    elif isinstance(expected, (list, tuple)):
        if not isinstance(actual, (list, tuple)) or len(expected) != len(actual):
            return False, float("inf")
        results = [_compare(e, a, rtol) for e, a in zip(expected, actual)]
    elif isinstance(expected, (str, bool)) or expected is None:
        return (True, 0.0) if expected == actual else (False, float("inf"))
    else:
        if isinstance(actual, (str, bool)) or not isinstance(actual, (int, float)):
            return False, float("inf")
        expected, actual = float(expected), float(actual)
        deviation = abs(actual - expected) / max(abs(expected), DEFAULT_VALIDATION_ATOL)
        close = np.isclose(actual, expected, rtol=rtol, atol=DEFAULT_VALIDATION_ATOL)
        return bool(close), float(deviation)

    if not results:
        return True, 0.0
    return all(ok for ok, _ in results), max(deviation for _, deviation in results)


def validate(
    document: PfaDocument,
    sample_inputs: Union[Sequence[Mapping[str, Any]], pd.DataFrame],
    reference_model: Union[Callable[[Any], Any], Sequence[Any]],
    engine: ScoringEngine,
    tolerance: float = DEFAULT_VALIDATION_RTOL,
    cancel_event: Optional[threading.Event] = None,
    progress: bool = False,
) -> bool:
    """Check a document's outputs against native predictions.

    :param document: Document to validate
    :type document: PfaDocument
    :param sample_inputs: Inputs to score, as records or a DataFrame with one row
        per input
    :type sample_inputs: Union[Sequence[Mapping[str, Any]], pd.DataFrame]
    :param reference_model: Native prediction for each input, or a callable
        returning the native prediction of one input
    :type reference_model: Union[Callable[[Any], Any], Sequence[Any]]
    :param engine: Engine executing the document
    :type engine: ScoringEngine
    :param tolerance: Relative tolerance of numeric comparisons. Defaults to 1e-4.
    :type tolerance: float
    :param cancel_event: Event that cancels validation when set. Defaults to None.
    :type cancel_event: Optional[threading.Event]
    :param progress: Whether to display a progress bar over the comparisons.
        Defaults to False.
    :type progress: bool

    :returns: True when every output matches
    :rtype: bool

    :raises ValidationMismatchError: If any output differs beyond tolerance. The
        error lists the input, expected value, actual value, and deviation of
        every offending input.
    :raises ValidationCancelledError: If ``cancel_event`` is set before
        validation completes
    :raises ScoringEngineError: If the engine fails
    :raises ValueError: If the number of reference predictions does not match the
        number of inputs
    """
    if tolerance < 0:
        raise ValueError(f"`tolerance` must be non-negative, got {tolerance}")
    inputs = _as_records(sample_inputs)
    if _is_cancelled(cancel_event):
        raise ValidationCancelledError("Validation was cancelled")

    # Native predictions
    if callable(reference_model):
        expected = [utils.to_json_value(reference_model(datum)) for datum in inputs]
    else:
        expected = [utils.to_json_value(value) for value in reference_model]
    if len(expected) != len(inputs):
        raise ValueError(
            f"Got {len(expected)} reference prediction(s) for {len(inputs)} input(s)"
        )

    # Engine predictions
    actual = engine.evaluate_batch(document, inputs, cancel_event=cancel_event)
    if len(actual) != len(inputs):
        raise ScoringEngineError(
            f"Scoring engine returned {len(actual)} output(s) for {len(inputs)}"
            " input(s)"
        )

    mismatches = []
    for datum, expected_value, actual_value in tqdm(
        zip(inputs, expected, actual),
        total=len(inputs),
        desc="Comparing predictions",
        disable=not progress,
    ):
        if _is_cancelled(cancel_event):
            raise ValidationCancelledError("Validation was cancelled")
        ok, deviation = _compare(expected_value, actual_value, tolerance)
        if not ok:
            mismatches.append(
                {
                    "input": datum,
                    "expected": expected_value,
                    "actual": actual_value,
                    "deviation": deviation,
                }
            )

    if mismatches:
        first = mismatches[0]
        raise ValidationMismatchError(
            f"{len(mismatches)} of {len(inputs)} output(s) differ from the reference"
            f" beyond relative tolerance {tolerance}. First mismatch: input"
            f" {first['input']!r}, expected {first['expected']!r}, got"
            f" {first['actual']!r} (deviation {first['deviation']:.3g})",
            mismatches,
            document,
        )
    return True
