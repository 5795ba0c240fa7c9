"""Prime-field elements, fixed-point numbers over them, and additive shares."""

from __future__ import annotations

import math
import secrets
from dataclasses import dataclass
from typing import Any, Union

IntLike = Union[int, "FieldElement"]


@dataclass(frozen=True, eq=False)
class FieldElement:
    """An integer modulo the prime ``modulus``, always kept in ``[0, modulus)``."""

    value: int
    modulus: int

    def __post_init__(self) -> None:
        if self.modulus < 2:
            raise ValueError(f"modulus must be at least 2, got {self.modulus}")
        object.__setattr__(self, "value", self.value % self.modulus)

    @classmethod
    def uniform(cls, rng: Any, modulus: int) -> "FieldElement":
        """Sample an element uniformly at random using ``rng.randrange``."""
        return cls(rng.randrange(modulus), modulus)

    def _operand(self, other: object) -> int | None:
        if isinstance(other, FieldElement):
            if other.modulus != self.modulus:
                raise ValueError(
                    f"cannot combine elements of moduli {self.modulus} and {other.modulus}"
                )
            return other.value
        if isinstance(other, int) and not isinstance(other, bool):
            return other
        return None

    def to_signed(self) -> int:
        """Interpret the element as a signed integer in ``(-p/2, p/2]``."""
        if self.value > self.modulus // 2:
            return self.value - self.modulus
        return self.value

    def __add__(self, other: object) -> "FieldElement":
        operand = self._operand(other)
        if operand is None:
            return NotImplemented
        return FieldElement(self.value + operand, self.modulus)

    __radd__ = __add__

    def __sub__(self, other: object) -> "FieldElement":
        operand = self._operand(other)
        if operand is None:
            return NotImplemented
        return FieldElement(self.value - operand, self.modulus)

    def __rsub__(self, other: object) -> "FieldElement":
        operand = self._operand(other)
        if operand is None:
            return NotImplemented
        return FieldElement(operand - self.value, self.modulus)

    def __mul__(self, other: object) -> "FieldElement":
        operand = self._operand(other)
        if operand is None:
            return NotImplemented
        return FieldElement(self.value * operand, self.modulus)

    __rmul__ = __mul__

    def __neg__(self) -> "FieldElement":
        return FieldElement(-self.value, self.modulus)

    def __int__(self) -> int:
        return self.value

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FieldElement):
            return self.value == other.value and self.modulus == other.modulus
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.value, self.modulus))


@dataclass(frozen=True)
class FixedPointParameters:
    """Describes a fixed-point encoding: fractional bits and the underlying field."""

    mantissa_capacity: int
    exponent_capacity: int
    modulus: int

    def __post_init__(self) -> None:
        if self.modulus <= 2:
            raise ValueError(f"modulus must be an odd prime, got {self.modulus}")
        if self.exponent_capacity < 0 or self.mantissa_capacity < 0:
            raise ValueError("capacities must be non-negative")

    @property
    def scale(self) -> int:
        """The factor ``2 ** exponent_capacity`` applied to each encoded value."""
        return 1 << self.exponent_capacity


def _round_half_away(x: float) -> int:
    return int(math.copysign(math.floor(abs(x) + 0.5), x))


@dataclass(frozen=True, eq=False)
class FixedPoint:
    """A fixed-point number stored as a field element.

    ``num_muls`` counts the multiplications not yet truncated away: the value
    carries ``exponent_capacity * (num_muls + 1)`` fractional bits. Equality
    compares reduced values and tolerates one unit in the last place.
    """

    params: FixedPointParameters
    inner: FieldElement
    num_muls: int = 0

    def __post_init__(self) -> None:
        inner = self.inner
        if isinstance(inner, int) and not isinstance(inner, bool):
            inner = FieldElement(inner, self.params.modulus)
        elif not isinstance(inner, FieldElement):
            raise TypeError(f"inner must be an int or FieldElement, not {type(inner).__name__}")
        elif inner.modulus != self.params.modulus:
            raise ValueError("field element modulus does not match the parameters")
        if self.num_muls < 0:
            raise ValueError("num_muls must be non-negative")
        object.__setattr__(self, "inner", inner)

    @classmethod
    def from_float(cls, params: FixedPointParameters, value: float) -> "FixedPoint":
        """Encode ``value``, rounding to the nearest representable number."""
        return cls(params, _round_half_away(value * params.scale))

    @classmethod
    def truncate_float(cls, params: FixedPointParameters, value: float) -> float:
        """Round ``value`` to the precision the encoding can hold."""
        return _round_half_away(value * params.scale) / params.scale

    @classmethod
    def zero(cls, params: FixedPointParameters) -> "FixedPoint":
        """The encoding of zero."""
        return cls(params, 0)

    def to_float(self) -> float:
        """Decode to a float, honouring pending multiplications."""
        return self.inner.to_signed() / (self.params.scale ** (self.num_muls + 1))

    __float__ = to_float

    def is_zero(self) -> bool:
        """Whether the encoded value is exactly zero."""
        return self.inner.value == 0

    def double(self) -> "FixedPoint":
        """Twice this number, with the same number of pending multiplications."""
        return FixedPoint(self.params, self.inner * 2, self.num_muls)

    def signed_reduce(self) -> "FixedPoint":
        """Truncate away pending multiplications, treating the value as signed."""
        if self.num_muls == 0:
            return self
        divisor = self.params.scale**self.num_muls
        signed = self.inner.to_signed()
        quotient = abs(signed) // divisor
        if signed < 0:
            quotient = -quotient
        return FixedPoint(self.params, quotient, 0)

    def _check(self, other: "FixedPoint") -> None:
        if other.params != self.params:
            raise ValueError("cannot combine fixed-point numbers with different parameters")

    def _promoted(self, other: "FixedPoint") -> tuple[FieldElement, FieldElement, int]:
        self._check(other)
        num_muls = max(self.num_muls, other.num_muls)
        scale = self.params.scale
        a = self.inner * scale ** (num_muls - self.num_muls)
        b = other.inner * scale ** (num_muls - other.num_muls)
        return a, b, num_muls

    def __add__(self, other: object) -> "FixedPoint":
        if not isinstance(other, FixedPoint):
            return NotImplemented
        a, b, num_muls = self._promoted(other)
        return FixedPoint(self.params, a + b, num_muls)

    def __sub__(self, other: object) -> "FixedPoint":
        if not isinstance(other, FixedPoint):
            return NotImplemented
        a, b, num_muls = self._promoted(other)
        return FixedPoint(self.params, a - b, num_muls)

    def __neg__(self) -> "FixedPoint":
        return FixedPoint(self.params, -self.inner, self.num_muls)

    def __mul__(self, other: object) -> "FixedPoint":
        if not isinstance(other, FixedPoint):
            return NotImplemented
        self._check(other)
        return FixedPoint(
            self.params, self.inner * other.inner, self.num_muls + other.num_muls + 1
        )

    def _reduced_signed(self) -> int:
        return self.signed_reduce().inner.to_signed()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FixedPoint):
            return NotImplemented
        if other.params != self.params:
            return False
        diff = self.signed_reduce().inner - other.signed_reduce().inner
        return abs(diff.to_signed()) <= 1

    def __lt__(self, other: "FixedPoint") -> bool:
        if not isinstance(other, FixedPoint):
            return NotImplemented
        self._check(other)
        return self._reduced_signed() < other._reduced_signed()

    def __le__(self, other: "FixedPoint") -> bool:
        if not isinstance(other, FixedPoint):
            return NotImplemented
        self._check(other)
        return self._reduced_signed() <= other._reduced_signed()

    def __gt__(self, other: "FixedPoint") -> bool:
        if not isinstance(other, FixedPoint):
            return NotImplemented
        self._check(other)
        return self._reduced_signed() > other._reduced_signed()

    def __ge__(self, other: "FixedPoint") -> bool:
        if not isinstance(other, FixedPoint):
            return NotImplemented
        self._check(other)
        return self._reduced_signed() >= other._reduced_signed()

    def __str__(self) -> str:
        return str(self.to_float())


@dataclass(frozen=True, eq=False)
class AdditiveShare:
    """One party's additive share of a fixed-point value."""

    inner: FixedPoint

    def combine(self, other: "AdditiveShare") -> FixedPoint:
        """Add two shares together to recover the shared value."""
        return self.inner + other.inner

    def add_constant(self, constant: FixedPoint) -> "AdditiveShare":
        """Add a public constant to this share."""
        return AdditiveShare(self.inner + constant)

    def double(self) -> "AdditiveShare":
        """Double the share."""
        return AdditiveShare(self.inner.double())

    def __add__(self, other: object) -> "AdditiveShare":
        if not isinstance(other, AdditiveShare):
            return NotImplemented
        return AdditiveShare(self.inner + other.inner)

    def __sub__(self, other: object) -> "AdditiveShare":
        if not isinstance(other, AdditiveShare):
            return NotImplemented
        return AdditiveShare(self.inner - other.inner)

    def __neg__(self) -> "AdditiveShare":
        return AdditiveShare(-self.inner)

    def __mul__(self, constant: object) -> "AdditiveShare":
        if not isinstance(constant, FixedPoint):
            return NotImplemented
        return AdditiveShare(self.inner * constant)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AdditiveShare):
            return NotImplemented
        return self.inner == other.inner


def _as_field(value: FixedPoint, r: IntLike) -> FieldElement:
    if isinstance(r, FieldElement):
        if r.modulus != value.params.modulus:
            raise ValueError("randomness lies in a different field")
        return r
    return FieldElement(r, value.params.modulus)


def share_with_randomness(
    value: FixedPoint, r: IntLike
) -> tuple[AdditiveShare, AdditiveShare]:
    """Split ``value`` into two shares using the field element ``r``."""
    r = _as_field(value, r)
    first = FixedPoint(value.params, value.inner + r, value.num_muls)
    second = FixedPoint(value.params, -r)
    return AdditiveShare(first), AdditiveShare(second)


def share(value: FixedPoint, rng: Any = None) -> tuple[AdditiveShare, AdditiveShare]:
    """Split ``value`` into two shares using fresh randomness from ``rng``."""
    if rng is None:
        rng = secrets.SystemRandom()
    r = FieldElement.uniform(rng, value.params.modulus)
    return share_with_randomness(value, r)


def randomize_local_share(local_share: AdditiveShare, r: IntLike) -> AdditiveShare:
    """Add the field element ``r`` to a share's underlying field value."""
    inner = local_share.inner
    r = _as_field(inner, r)
    return AdditiveShare(FixedPoint(inner.params, inner.inner + r, inner.num_muls))