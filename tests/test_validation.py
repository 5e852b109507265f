from __future__ import annotations

import json
import sys
import threading
from pathlib import Path

import pandas as pd
import pytest

import scipfa
from scipfa.exceptions import (
    ScoringEngineError,
    ValidationCancelledError,
    ValidationMismatchError,
)
from scipfa.validation import SubprocessEngine, validate

from reference_engine import ReferenceEngine

LINEAR_STATE = {
    "model_class": "linear",
    "coefficients": {"(Intercept)": 3.0, "X1": -5.0},
}


def _native(datum: dict) -> float:
    return 3.0 - 5.0 * datum["X1"]


def test_validate_accepts_matching_outputs() -> None:
    doc = scipfa.compile_model(LINEAR_STATE)
    inputs = [{"X1": x} for x in (-1.0, 0.0, 0.5, 2.0)]
    assert validate(doc, inputs, _native, ReferenceEngine(), progress=True)


def test_validate_accepts_dataframes_and_precomputed_predictions() -> None:
    doc = scipfa.compile_model(LINEAR_STATE)
    frame = pd.DataFrame({"X1": [0.1, 0.2, 0.3]})
    expected = [_native({"X1": x}) for x in frame["X1"]]
    assert validate(doc, frame, expected, ReferenceEngine())


def test_validate_reports_every_mismatch() -> None:
    doc = scipfa.compile_model(LINEAR_STATE)
    inputs = [{"X1": 0.0}, {"X1": 1.0}, {"X1": 2.0}]
    wrong = [3.0, -2.0 * 1.01, -7.0]

    with pytest.raises(ValidationMismatchError, match="1 of 3") as info:
        validate(doc, inputs, wrong, ReferenceEngine())
    (mismatch,) = info.value.mismatches
    assert mismatch["input"] == {"X1": 1.0}
    assert mismatch["expected"] == pytest.approx(-2.02)
    assert mismatch["actual"] == pytest.approx(-2.0)
    assert mismatch["deviation"] == pytest.approx(0.02 / 2.02)
    assert info.value.document is doc


def test_validate_tolerance_is_relative() -> None:
    doc = scipfa.compile_model(LINEAR_STATE)
    inputs = [{"X1": 0.0}]
    assert validate(doc, inputs, [3.0 * (1 + 5e-5)], ReferenceEngine())
    with pytest.raises(ValidationMismatchError):
        validate(doc, inputs, [3.0 * (1 + 5e-5)], ReferenceEngine(), tolerance=1e-6)


def test_validate_compares_class_labels_and_maps() -> None:
    state = {
        "model_class": "random_forest",
        "type": "classification",
        "trees": [
            {
                "split_feature": [0, -1, -1],
                "split_threshold": [0.5, 0.0, 0.0],
                "left_child": [1, -1, -1],
                "right_child": [2, -1, -1],
                "leaf_value": [0.0, 0.0, 1.0],
            }
        ],
        "feature_names": ["x"],
        "classes": ["low", "high"],
    }
    labels = scipfa.compile_model(state, scipfa.CompileOptions(pred_type="class"))
    inputs = [{"x": 0.0}, {"x": 1.0}]
    assert validate(labels, inputs, ["low", "high"], ReferenceEngine())
    with pytest.raises(ValidationMismatchError) as info:
        validate(labels, [{"x": 0.0}], ["high"], ReferenceEngine())
    assert info.value.mismatches[0]["deviation"] == float("inf")

    probs = scipfa.compile_model(state)
    with pytest.raises(ValidationMismatchError):
        validate(probs, [{"x": 0.0}], [{"low": 1.0}], ReferenceEngine())


def test_validate_cancelled_before_start() -> None:
    doc = scipfa.compile_model(LINEAR_STATE)
    event = threading.Event()
    event.set()
    engine = ReferenceEngine()
    with pytest.raises(ValidationCancelledError):
        validate(doc, [{"X1": 0.0}], _native, engine, cancel_event=event)
    assert engine.calls == 0


def test_compile_model_returns_document_when_validation_cancelled() -> None:
    event = threading.Event()
    with pytest.warns(UserWarning, match="cancelled"):
        doc = scipfa.compile_model(
            LINEAR_STATE,
            engine=ReferenceEngine(cancel_after=1),
            sample_inputs=[{"X1": 0.0}, {"X1": 1.0}],
            reference_model=_native,
            cancel_event=event,
        )
    assert event.is_set()
    assert scipfa.to_text(doc).startswith('{"method":"map"')


def test_compile_model_mismatch_carries_document() -> None:
    with pytest.raises(ValidationMismatchError) as info:
        scipfa.compile_model(
            LINEAR_STATE,
            engine=ReferenceEngine(),
            sample_inputs=[{"X1": 1.0}],
            reference_model=[100.0],
        )
    assert info.value.document is not None
    assert info.value.document.metadata["model_class"] == "linear"


def test_compile_model_forwards_validation_tolerance() -> None:
    close = dict(
        engine=ReferenceEngine(),
        sample_inputs=[{"X1": 0.0}],
        reference_model=[3.0 * (1 + 5e-5)],
    )
    doc = scipfa.compile_model(LINEAR_STATE, **close)
    assert doc.metadata["model_class"] == "linear"
    with pytest.raises(ValidationMismatchError):
        scipfa.compile_model(LINEAR_STATE, tolerance=1e-6, **close)


def test_compile_model_requires_validation_inputs() -> None:
    with pytest.raises(ValueError, match="sample_inputs"):
        scipfa.compile_model(LINEAR_STATE, engine=ReferenceEngine())


def _write_engine_script(tmp_path: Path, body: str) -> list[str]:
    script = tmp_path / "engine.py"
    script.write_text(body, encoding="utf-8")
    return [sys.executable, str(script)]


def test_subprocess_engine_exchanges_json_lines(tmp_path: Path) -> None:
    # Echo the document's input type name and each input's X1, doubled
    command = _write_engine_script(
        tmp_path,
        "import json, sys\n"
        "doc = json.load(open(sys.argv[-1]))\n"
        "for line in sys.stdin:\n"
        "    datum = json.loads(line)\n"
        "    print(json.dumps([doc['input']['name'], 2 * datum['X1']]))\n",
    )
    doc = scipfa.compile_model(LINEAR_STATE)
    outputs = SubprocessEngine(command).evaluate_batch(doc, [{"X1": 1.5}, {"X1": -1}])
    assert outputs == [["Input", 3.0], ["Input", -2]]


def test_subprocess_engine_failures(tmp_path: Path) -> None:
    doc = scipfa.compile_model(LINEAR_STATE)
    failing = _write_engine_script(tmp_path, "import sys\nsys.exit('no engine here')\n")
    with pytest.raises(ScoringEngineError, match="no engine here"):
        SubprocessEngine(failing).evaluate(doc, {"X1": 0.0})

    with pytest.raises(ScoringEngineError, match="Could not start"):
        SubprocessEngine([str(tmp_path / "missing-engine")]).evaluate(doc, {"X1": 0.0})

    short = _write_engine_script(tmp_path, "print(1)\n")
    with pytest.raises(ScoringEngineError, match="1 output"):
        SubprocessEngine(short).evaluate_batch(doc, [{"X1": 0.0}, {"X1": 1.0}])


def test_subprocess_engine_cancellation_and_timeout(tmp_path: Path) -> None:
    doc = scipfa.compile_model(LINEAR_STATE)
    sleeper = _write_engine_script(tmp_path, "import time\ntime.sleep(30)\n")

    event = threading.Event()
    timer = threading.Timer(0.2, event.set)
    timer.start()
    try:
        with pytest.raises(ValidationCancelledError):
            SubprocessEngine(sleeper, poll_interval=0.05).evaluate_batch(
                doc, [{"X1": 0.0}], cancel_event=event
            )
    finally:
        timer.cancel()

    with pytest.raises(ScoringEngineError, match="did not finish"):
        SubprocessEngine(sleeper, timeout=0.3, poll_interval=0.05).evaluate(
            doc, {"X1": 0.0}
        )


def test_subprocess_engine_validates_arguments() -> None:
    with pytest.raises(ValueError):
        SubprocessEngine([])
    with pytest.raises(ValueError):
        SubprocessEngine(["engine"], timeout=0)
    assert json.loads(json.dumps(SubprocessEngine("engine").command)) == ["engine"]
