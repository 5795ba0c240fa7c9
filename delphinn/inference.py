"""Scoring of private-inference outputs: softmax, prediction and accuracy tallies."""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from functools import reduce
from typing import Iterable, Sequence, Union

from delphinn.additive_share import FixedPoint

logger = logging.getLogger(__name__)

Number = Union[FixedPoint, float, int]

CATASTROPHIC_L1_THRESHOLD = 5000.0
"""An output vector whose L1 norm exceeds this is counted as a catastrophic failure."""

_MNIST_ACTIVATIONS = (9216, 1024, 100)
_MINIONN_ACTIVATIONS = (65536, 65536, 16384, 16384, 4096, 4096, 1024)


def softmax(values: Iterable[FixedPoint]) -> list[FixedPoint]:
    """Softmax of fixed-point values, computed at fixed-point precision."""
    values = list(values)
    if not values:
        raise ValueError("softmax needs at least one value")
    params = values[0].params
    if any(v.params != params for v in values):
        raise ValueError("all values must share the same fixed-point parameters")

    peak = values[0]
    for value in values:
        if peak < value:
            peak = value

    exps = [FixedPoint.from_float(params, math.exp(float(v - peak))) for v in values]
    total = reduce(lambda acc, v: acc + v, exps, FixedPoint.zero(params))
    inverse = FixedPoint.from_float(params, 1.0 / float(total))
    return [(e * inverse).signed_reduce() for e in exps]


def argmax(values: Sequence[Number]) -> int:
    """Index of the first largest value; NaNs are ignored."""
    floats = [float(v) for v in values]
    candidates = [f for f in floats if not math.isnan(f)]
    if not candidates:
        raise ValueError("argmax needs at least one non-NaN value")
    return floats.index(max(candidates))


def activation_count(model: int) -> int:
    """Number of ReLU activations for model 0 (MNIST) or 1 (MiniONN)."""
    if model == 0:
        return sum(_MNIST_ACTIVATIONS)
    if model == 1:
        return sum(_MINIONN_ACTIVATIONS)
    raise ValueError(f"model must be 0 (MNIST) or 1 (MiniONN), got {model}")


@dataclass(frozen=True)
class ValidationOutcome:
    """What was learnt from one image."""

    image: int
    predicted: int
    catastrophic: bool
    differed: bool


@dataclass
class ValidationTally:
    """Running counts over validated images; safe to update from several threads."""

    correct: int = 0
    correct_pt: int = 0
    cat_failures: int = 0
    non_cat_failures: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(
        self,
        index: int,
        expected_class: int,
        plaintext_label: int,
        outputs: Sequence[FixedPoint],
    ) -> ValidationOutcome:
        """Score one image's protocol output against its class and plaintext result.

        ``plaintext_label`` is 1 when the plaintext network classified the image
        correctly and 0 otherwise.
        """
        outputs = list(outputs)
        probabilities = softmax(outputs)
        predicted = argmax(probabilities)
        l1_norm = sum(abs(float(v)) for v in outputs)
        catastrophic = l1_norm > CATASTROPHIC_L1_THRESHOLD
        hit = predicted == expected_class
        differed = (hit and plaintext_label == 0) or (not hit and plaintext_label == 1)

        with self._lock:
            if catastrophic:
                self.cat_failures += 1
            if hit:
                self.correct += 1
                if plaintext_label == 1:
                    self.correct_pt += 1
            if differed and not catastrophic:
                self.non_cat_failures += 1

        if differed:
            logger.info(
                "differed on image %d - correct is %d, and plaintext is %d",
                index,
                expected_class,
                plaintext_label,
            )
            if not catastrophic:
                logger.info("protocol result: %s", [float(v) for v in outputs])
                logger.info("softmax: %s", [float(v) for v in probabilities])
                logger.info("out: %d", predicted)
        else:
            logger.info("image %d correct", index)

        return ValidationOutcome(
            image=index, predicted=predicted, catastrophic=catastrophic, differed=differed
        )

    def __str__(self) -> str:
        return "\n".join(
            [
                f"Overall Correct: {self.correct}",
                f"Plaintext Correct: {self.correct_pt}",
                f"Catastrophic Failures: {self.cat_failures}",
                f"Non-Catastrophic Failures: {self.non_cat_failures}",
            ]
        )