"""Boolean circuits over mod-2 wires and the ReLU circuit for shared field values."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import reduce
from typing import Iterable, Sequence

from delphinn.additive_share import FixedPointParameters

Wire = int

_U128 = 1 << 128
_U64_MASK = (1 << 64) - 1


class GateKind(Enum):
    """The operation a gate performs."""

    CONSTANT = "constant"
    GARBLER_INPUT = "garbler_input"
    EVALUATOR_INPUT = "evaluator_input"
    XOR = "xor"
    AND = "and"


@dataclass(frozen=True)
class Gate:
    """A gate whose output is the wire numbered by its position in the circuit."""

    kind: GateKind
    inputs: tuple[Wire, ...] = ()
    value: int = 0


def _check_bits(bits: Sequence[int], expected: int, who: str) -> None:
    if len(bits) != expected:
        raise ValueError(f"expected {expected} {who} inputs, got {len(bits)}")
    if any(bit not in (0, 1) for bit in bits):
        raise ValueError(f"{who} inputs must be bits (0 or 1)")


@dataclass(frozen=True)
class Circuit:
    """A finished circuit: gates in topological order plus its inputs and outputs."""

    gates: tuple[Gate, ...]
    garbler_input_wires: tuple[Wire, ...]
    evaluator_input_wires: tuple[Wire, ...]
    output_wires: tuple[Wire, ...]

    @property
    def num_garbler_inputs(self) -> int:
        """Number of inputs supplied by the garbler."""
        return len(self.garbler_input_wires)

    @property
    def num_evaluator_inputs(self) -> int:
        """Number of inputs supplied by the evaluator."""
        return len(self.evaluator_input_wires)

    @property
    def num_outputs(self) -> int:
        """Number of output wires."""
        return len(self.output_wires)

    @property
    def num_and_gates(self) -> int:
        """Number of AND gates, the costly gates when garbling."""
        return sum(1 for gate in self.gates if gate.kind is GateKind.AND)

    def eval_plain(
        self, garbler_inputs: Sequence[int], evaluator_inputs: Sequence[int]
    ) -> list[int]:
        """Evaluate the circuit in the clear and return its output bits."""
        garbler_inputs = list(garbler_inputs)
        evaluator_inputs = list(evaluator_inputs)
        _check_bits(garbler_inputs, self.num_garbler_inputs, "garbler")
        _check_bits(evaluator_inputs, self.num_evaluator_inputs, "evaluator")

        values: list[int] = []
        for gate in self.gates:
            if gate.kind is GateKind.CONSTANT:
                values.append(gate.value)
            elif gate.kind is GateKind.GARBLER_INPUT:
                values.append(garbler_inputs[gate.value])
            elif gate.kind is GateKind.EVALUATOR_INPUT:
                values.append(evaluator_inputs[gate.value])
            elif gate.kind is GateKind.XOR:
                a, b = gate.inputs
                values.append(values[a] ^ values[b])
            else:
                a, b = gate.inputs
                values.append(values[a] & values[b])
        return [values[wire] for wire in self.output_wires]


class CircuitBuilder:
    """Builds a circuit of XOR and AND gates over bits."""

    def __init__(self) -> None:
        self._gates: list[Gate] = []
        self._garbler: list[Wire] = []
        self._evaluator: list[Wire] = []
        self._outputs: list[Wire] = []
        self._constants: dict[int, Wire] = {}

    def _push(self, gate: Gate) -> Wire:
        self._gates.append(gate)
        return len(self._gates) - 1

    def _check(self, *wires: Wire) -> None:
        for wire in wires:
            if not isinstance(wire, int) or not 0 <= wire < len(self._gates):
                raise ValueError(f"unknown wire {wire!r}")

    def constant(self, value: int) -> Wire:
        """A wire that always carries ``value`` (0 or 1)."""
        if value not in (0, 1):
            raise ValueError(f"constant must be 0 or 1, got {value}")
        if value not in self._constants:
            self._constants[value] = self._push(Gate(GateKind.CONSTANT, value=value))
        return self._constants[value]

    def garbler_inputs(self, count: int) -> list[Wire]:
        """Allocate ``count`` new garbler input wires."""
        wires = []
        for _ in range(count):
            position = len(self._garbler)
            wire = self._push(Gate(GateKind.GARBLER_INPUT, value=position))
            self._garbler.append(wire)
            wires.append(wire)
        return wires

    def evaluator_inputs(self, count: int) -> list[Wire]:
        """Allocate ``count`` new evaluator input wires."""
        wires = []
        for _ in range(count):
            position = len(self._evaluator)
            wire = self._push(Gate(GateKind.EVALUATOR_INPUT, value=position))
            self._evaluator.append(wire)
            wires.append(wire)
        return wires

    def xor(self, a: Wire, b: Wire) -> Wire:
        """``a XOR b``, which is also addition modulo 2."""
        self._check(a, b)
        return self._push(Gate(GateKind.XOR, (a, b)))

    def and_(self, a: Wire, b: Wire) -> Wire:
        """``a AND b``, which is also multiplication modulo 2."""
        self._check(a, b)
        return self._push(Gate(GateKind.AND, (a, b)))

    def or_(self, a: Wire, b: Wire) -> Wire:
        """``a OR b``."""
        return self.xor(self.xor(a, b), self.and_(a, b))

    def and_many(self, wires: Iterable[Wire]) -> Wire:
        """AND of all ``wires``; at least one is required."""
        wires = list(wires)
        if not wires:
            raise ValueError("and_many needs at least one wire")
        return reduce(self.and_, wires)

    def or_many(self, wires: Iterable[Wire]) -> Wire:
        """OR of all ``wires``; at least one is required."""
        wires = list(wires)
        if not wires:
            raise ValueError("or_many needs at least one wire")
        return reduce(self.or_, wires)

    def output_bundle(self, wires: Iterable[Wire]) -> None:
        """Mark ``wires`` as outputs, in order."""
        wires = list(wires)
        self._check(*wires)
        self._outputs.extend(wires)

    def finish(self) -> Circuit:
        """Return the circuit built so far."""
        return Circuit(
            gates=tuple(self._gates),
            garbler_input_wires=tuple(self._garbler),
            evaluator_input_wires=tuple(self._evaluator),
            output_wires=tuple(self._outputs),
        )


def num_bits(p: int) -> int:
    """The number of bits needed to represent ``p``, plus one."""
    if p < 0:
        raise ValueError("p must be non-negative")
    return max(p - 1, 0).bit_length() + 1


def u128_to_bits(value: int, n: int) -> list[int]:
    """The lowest ``n`` bits of ``value``, least significant first."""
    if value < 0:
        raise ValueError("value must be non-negative")
    return [(value >> i) & 1 for i in range(n)]


def u128_from_bits(bits: Iterable[int]) -> int:
    """The integer whose bits, least significant first, are ``bits``."""
    total = 0
    for i, bit in enumerate(bits):
        if bit not in (0, 1):
            raise ValueError(f"bits must be 0 or 1, got {bit}")
        total |= bit << i
    return total


def _mux_bit(b: CircuitBuilder, sel: Wire, x: Wire, y: Wire) -> Wire:
    """``x`` if ``sel`` is 0, else ``y``."""
    return b.xor(x, b.and_(sel, b.xor(x, y)))


def _mux(b: CircuitBuilder, sel: Wire, xs: Sequence[Wire], ys: Sequence[Wire]) -> list[Wire]:
    return [_mux_bit(b, sel, x, y) for x, y in zip(xs, ys)]


def _full_adder(b: CircuitBuilder, x: Wire, y: Wire, carry: Wire) -> tuple[Wire, Wire]:
    z1 = b.xor(x, y)
    z2 = b.xor(z1, carry)
    z3 = b.xor(x, carry)
    z4 = b.and_(z1, z3)
    return z2, b.xor(z4, x)


def _check_pair(xs: Sequence[Wire], ys: Sequence[Wire]) -> None:
    if len(xs) != len(ys):
        raise ValueError(f"bundle lengths differ: {len(xs)} and {len(ys)}")
    if len(xs) < 2:
        raise ValueError("bundles must hold at least two wires")


def _bin_addition(
    b: CircuitBuilder, xs: Sequence[Wire], ys: Sequence[Wire]
) -> tuple[list[Wire], Wire]:
    """Add two bundles, returning the sum bits and the carry out."""
    _check_pair(xs, ys)
    z = b.xor(xs[0], ys[0])
    carry = b.and_(xs[0], ys[0])
    bits = [z]
    for x, y in zip(xs[1:], ys[1:]):
        z, carry = _full_adder(b, x, y, carry)
        bits.append(z)
    return bits, carry


def _bin_addition_no_carry(
    b: CircuitBuilder, xs: Sequence[Wire], ys: Sequence[Wire]
) -> list[Wire]:
    """Add two bundles, dropping the carry out of the top bit."""
    _check_pair(xs, ys)
    z = b.xor(xs[0], ys[0])
    carry = b.and_(xs[0], ys[0])
    bits = [z]
    for x, y in zip(xs[1:-1], ys[1:-1]):
        z, carry = _full_adder(b, x, y, carry)
        bits.append(z)
    bits.append(b.xor(b.xor(xs[-1], ys[-1]), carry))
    return bits


def _constant_bundle(b: CircuitBuilder, value: int, n: int) -> list[Wire]:
    return [b.constant(bit) for bit in u128_to_bits(value, n)]


def _mod_p(b: CircuitBuilder, neg_p: Sequence[Wire], bits: Sequence[Wire]) -> list[Wire]:
    """Reduce ``bits`` (less than ``2p``) modulo ``p``."""
    result, borrow = _bin_addition(b, bits, neg_p)
    return _mux(b, borrow, bits, result)


def _add_neg_p_over_2(
    b: CircuitBuilder,
    neg_p_over_2: int,
    neg_p_over_2_bits: Sequence[Wire],
    bits: Sequence[Wire],
) -> list[Wire]:
    """Add the constant ``-p/2``, skipping carries while its low bits are zero."""
    const_bits = iter(u128_to_bits(neg_p_over_2 & _U64_MASK, 64))
    seen_one = bool(next(const_bits))

    z = b.xor(bits[0], neg_p_over_2_bits[0])
    carry: Wire | None = b.and_(bits[0], neg_p_over_2_bits[0]) if seen_one else None
    out = [z]
    for x, y, bit in zip(bits[1:-1], neg_p_over_2_bits[1:], const_bits):
        seen_one = seen_one or bool(bit)
        if carry is not None:
            z, carry = _full_adder(b, x, y, carry)
        else:
            z = b.xor(x, y)
            carry = b.and_(x, y) if seen_one else None
        out.append(z)

    top = b.xor(bits[-1], neg_p_over_2_bits[-1])
    if carry is not None:
        top = b.xor(top, carry)
    out.append(top)
    return out


def relu(builder: CircuitBuilder, params: FixedPointParameters, n: int) -> None:
    """Add ``n`` ReLU6 gadgets over shares in the field of ``params``.

    Each gadget takes one evaluator share and two garbler bundles (a share and
    an output randomizer); it outputs ``min(max(x, 0), 6) + randomizer`` mod p.
    """
    p = params.modulus
    exponent_size = params.exponent_capacity
    width = num_bits(p)
    relu_6_size = exponent_size + 3
    if width < relu_6_size + 5:
        raise ValueError(
            f"the field needs at least {relu_6_size + 5} bits, it has {width}"
        )

    p_over_2 = p // 2
    neg_p_over_2 = (-p_over_2) % _U128
    neg_p = (-p) % _U128

    neg_p_bits = _constant_bundle(builder, neg_p, width)
    neg_p_over_2_bits = _constant_bundle(builder, neg_p_over_2, width)
    zero = builder.constant(0)
    one = builder.constant(1)

    for _ in range(n):
        s1 = builder.evaluator_inputs(width)
        s2 = builder.garbler_inputs(width)
        s2_next = builder.garbler_inputs(width)

        total = _bin_addition_no_carry(builder, s1, s2)
        layer_input = _mod_p(builder, neg_p_bits, total)

        # Values below p/2 are positive: the sign bit of (x - p/2) is then set.
        compared = _add_neg_p_over_2(builder, neg_p_over_2, neg_p_over_2_bits, layer_input)
        is_positive = compared[-1]

        relu_res = [
            builder.and_(is_positive, wire) for wire in layer_input[: relu_6_size + 5]
        ]
        is_seven = builder.and_many(relu_res[exponent_size + 1 : relu_6_size])
        higher_bit_set = builder.or_many(relu_res[relu_6_size:])
        should_be_six = builder.or_(higher_bit_set, is_seven)

        relu_res[relu_6_size:] = [zero] * (len(relu_res) - relu_6_size)
        relu_res[exponent_size] = _mux_bit(builder, should_be_six, relu_res[exponent_size], zero)
        relu_res[exponent_size + 1] = _mux_bit(
            builder, should_be_six, relu_res[exponent_size + 1], one
        )
        relu_res[exponent_size + 2] = _mux_bit(
            builder, should_be_six, relu_res[exponent_size + 2], one
        )
        relu_res[:exponent_size] = [
            _mux_bit(builder, should_be_six, wire, zero) for wire in relu_res[:exponent_size]
        ]
        relu_res.extend([zero] * (width - relu_6_size - 5))

        masked = _bin_addition_no_carry(builder, relu_res, s2_next)
        builder.output_bundle(_mod_p(builder, neg_p_bits, masked))


def make_relu(params: FixedPointParameters, n: int) -> Circuit:
    """Build a finished circuit holding ``n`` ReLU gadgets."""
    builder = CircuitBuilder()
    relu(builder, params, n)
    return builder.finish()