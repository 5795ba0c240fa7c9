import math

import pytest

from delphinn.additive_share import FixedPoint
from delphinn.inference import (
    ValidationTally,
    activation_count,
    argmax,
    softmax,
)
from delphinn.networks import TEN_BIT_EXP_PARAMS


def fps(*values):
    return [FixedPoint.from_float(TEN_BIT_EXP_PARAMS, v) for v in values]


def test_softmax_sums_to_about_one():
    result = softmax(fps(0.5, -1.0, 2.0, 0.25))
    assert sum(float(v) for v in result) == pytest.approx(1.0, abs=0.05)


def test_softmax_preserves_order():
    inputs = fps(0.5, -1.0, 2.0, 0.25)
    result = softmax(inputs)
    assert argmax(result) == argmax(inputs)
    floats = [float(v) for v in result]
    assert floats[2] > floats[0] > floats[3] > floats[1]


def test_softmax_of_equal_values_is_uniform():
    result = softmax(fps(1.0, 1.0, 1.0, 1.0))
    for value in result:
        assert float(value) == pytest.approx(0.25, abs=0.01)


def test_softmax_matches_float_softmax():
    raw = [0.5, -1.0, 2.0]
    expected = [math.exp(v) for v in raw]
    total = sum(expected)
    result = softmax(fps(*raw))
    for got, want in zip(result, expected):
        assert float(got) == pytest.approx(want / total, abs=0.02)


def test_softmax_empty_raises():
    with pytest.raises(ValueError):
        softmax([])


def test_argmax_returns_first_maximum():
    assert argmax([1.0, 3.0, 2.0, 3.0]) == 1


def test_argmax_ignores_nan():
    assert argmax([float("nan"), 0.5, 0.25]) == 1


def test_argmax_all_nan_raises():
    with pytest.raises(ValueError):
        argmax([float("nan")])


def test_argmax_empty_raises():
    with pytest.raises(ValueError):
        argmax([])


def test_activation_count_values():
    assert activation_count(0) == sum([9216, 1024, 100])
    assert activation_count(1) == sum([65536, 65536, 16384, 16384, 4096, 4096, 1024])


def test_activation_count_rejects_unknown_model():
    with pytest.raises(ValueError):
        activation_count(2)


def test_tally_correct_prediction():
    tally = ValidationTally()
    outcome = tally.record(0, 2, 1, fps(0.1, -0.5, 1.5, 0.0))
    assert outcome.predicted == 2
    assert not outcome.differed
    assert (tally.correct, tally.correct_pt) == (1, 1)
    assert (tally.cat_failures, tally.non_cat_failures) == (0, 0)


def test_tally_differs_from_plaintext():
    tally = ValidationTally()
    outcome = tally.record(1, 3, 1, fps(0.1, -0.5, 1.5, 0.0))
    assert outcome.differed
    assert not outcome.catastrophic
    assert tally.correct == 0
    assert tally.non_cat_failures == 1


def test_tally_correct_where_plaintext_was_wrong():
    tally = ValidationTally()
    outcome = tally.record(2, 2, 0, fps(0.1, -0.5, 1.5, 0.0))
    assert outcome.differed
    assert tally.correct == 1
    assert tally.correct_pt == 0
    assert tally.non_cat_failures == 1


def test_tally_catastrophic_failure():
    tally = ValidationTally()
    outcome = tally.record(3, 1, 1, fps(3000.0, -3000.0, 10.0))
    assert outcome.catastrophic
    assert outcome.predicted == 0
    assert tally.cat_failures == 1
    assert tally.non_cat_failures == 0


def test_tally_summary_lines():
    tally = ValidationTally()
    tally.record(0, 2, 1, fps(0.1, -0.5, 1.5, 0.0))
    lines = str(tally).splitlines()
    assert lines[0] == "Overall Correct: 1"
    assert lines[1] == "Plaintext Correct: 1"
    assert lines[2] == "Catastrophic Failures: 0"
    assert lines[3] == "Non-Catastrophic Failures: 0"