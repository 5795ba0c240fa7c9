import random

import pytest

from delphinn.additive_share import (
    FieldElement,
    FixedPoint,
    FixedPointParameters,
    share,
)
from delphinn.gc import (
    CircuitBuilder,
    make_relu,
    num_bits,
    relu,
    u128_from_bits,
    u128_to_bits,
)

P = 2**31 - 1
PARAMS = FixedPointParameters(mantissa_capacity=3, exponent_capacity=10, modulus=P)
WIDTH = num_bits(P)


@pytest.fixture(scope="module")
def relu_circuit():
    return make_relu(PARAMS, 1)


def generate_random_number(rng):
    is_neg = rng.random() < 0.5
    mul = -10.0 if is_neg else 10.0
    f = FixedPoint.truncate_float(PARAMS, rng.random() * mul)
    return f, FixedPoint.from_float(PARAMS, f)


def expected_relu(n):
    zero = FixedPoint.zero(PARAMS)
    six = FixedPoint.from_float(PARAMS, 6.0)
    if n <= zero:
        return zero
    if n > six:
        return six
    return n


def run_relu(circuit, n, rng, z):
    s1, s2 = share(n, rng)
    garbler = u128_to_bits(s1.inner.inner.value, WIDTH) + u128_to_bits(z, WIDTH)
    evaluator = u128_to_bits(s2.inner.inner.value, WIDTH)
    return u128_from_bits(circuit.eval_plain(garbler, evaluator))


def test_num_bits_values():
    assert num_bits(7) == 4
    assert num_bits(8) == 4
    assert num_bits(9) == 5
    assert num_bits(1) == 1
    assert num_bits(P) == 32


def test_bits_are_little_endian():
    assert u128_to_bits(5, 4) == [1, 0, 1, 0]
    assert u128_to_bits(6, 2) == [0, 1]
    assert u128_from_bits([0, 1, 1]) == 6


def test_bits_round_trip():
    for value in (0, 1, 12345, 2**100 + 7):
        assert u128_from_bits(u128_to_bits(value, 128)) == value


def test_bits_reject_bad_values():
    with pytest.raises(ValueError):
        u128_to_bits(-1, 4)
    with pytest.raises(ValueError):
        u128_from_bits([0, 2])


@pytest.mark.parametrize("a,b", [(0, 0), (0, 1), (1, 0), (1, 1)])
def test_basic_gates_truth_table(a, b):
    builder = CircuitBuilder()
    (x,) = builder.garbler_inputs(1)
    (y,) = builder.evaluator_inputs(1)
    builder.output_bundle([builder.xor(x, y), builder.and_(x, y), builder.or_(x, y)])
    circuit = builder.finish()
    assert circuit.eval_plain([a], [b]) == [a ^ b, a & b, a | b]


def test_many_gates():
    builder = CircuitBuilder()
    xs = builder.garbler_inputs(3)
    builder.output_bundle([builder.and_many(xs), builder.or_many(xs)])
    circuit = builder.finish()
    assert circuit.eval_plain([1, 1, 1], []) == [1, 1]
    assert circuit.eval_plain([1, 0, 1], []) == [0, 1]
    assert circuit.eval_plain([0, 0, 0], []) == [0, 0]


def test_many_gates_need_wires():
    builder = CircuitBuilder()
    with pytest.raises(ValueError):
        builder.and_many([])
    with pytest.raises(ValueError):
        builder.or_many([])


def test_constants():
    builder = CircuitBuilder()
    builder.output_bundle([builder.constant(1), builder.constant(0)])
    assert builder.finish().eval_plain([], []) == [1, 0]
    with pytest.raises(ValueError):
        builder.constant(2)


def test_eval_plain_checks_inputs():
    builder = CircuitBuilder()
    (x,) = builder.garbler_inputs(1)
    builder.output_bundle([x])
    circuit = builder.finish()
    with pytest.raises(ValueError):
        circuit.eval_plain([], [])
    with pytest.raises(ValueError):
        circuit.eval_plain([3], [])


def test_unknown_wire_rejected():
    builder = CircuitBuilder()
    with pytest.raises(ValueError):
        builder.xor(0, 1)


def test_relu_input_and_output_counts(relu_circuit):
    assert relu_circuit.num_garbler_inputs == 2 * WIDTH
    assert relu_circuit.num_evaluator_inputs == WIDTH
    assert relu_circuit.num_outputs == WIDTH


@pytest.mark.parametrize("num", [1, 10])
def test_make_relu_random_inputs_give_bits(num):
    rng = random.Random(num)
    circuit = make_relu(PARAMS, num)
    assert circuit.num_garbler_inputs == 2 * num * WIDTH
    assert circuit.num_evaluator_inputs == num * WIDTH
    garbler = [rng.randrange(2) for _ in range(circuit.num_garbler_inputs)]
    evaluator = [rng.randrange(2) for _ in range(circuit.num_evaluator_inputs)]
    outputs = circuit.eval_plain(garbler, evaluator)
    assert len(outputs) == num * WIDTH
    assert set(outputs) <= {0, 1}


@pytest.mark.parametrize(
    "value,expected",
    [(-3.5, 0.0), (0.0, 0.0), (2.25, 2.25), (5.5, 5.5), (6.5, 6.0), (9.75, 6.0), (100.0, 6.0)],
)
def test_relu_fixed_values(relu_circuit, value, expected):
    rng = random.Random(7)
    z = 123456
    out = run_relu(relu_circuit, FixedPoint.from_float(PARAMS, value), rng, z)
    want = FixedPoint.from_float(PARAMS, expected).inner.value
    assert out == (want + z) % P


def test_relu_random(relu_circuit):
    rng = random.Random(2024)
    for _ in range(300):
        _, n = generate_random_number(rng)
        want = expected_relu(n).inner.value
        z = FieldElement.uniform(rng, P).value
        out = run_relu(relu_circuit, n, rng, z)
        diff = (out - (want + z)) % P
        assert min(diff, P - diff) <= 1


def test_relu_multiple_gadgets():
    rng = random.Random(11)
    circuit = make_relu(PARAMS, 3)
    values = [FixedPoint.from_float(PARAMS, v) for v in (-1.0, 3.0, 8.0)]
    garbler, evaluator, masks = [], [], []
    for n in values:
        s1, s2 = share(n, rng)
        z = rng.randrange(P)
        masks.append(z)
        garbler += u128_to_bits(s1.inner.inner.value, WIDTH) + u128_to_bits(z, WIDTH)
        evaluator += u128_to_bits(s2.inner.inner.value, WIDTH)
    outputs = circuit.eval_plain(garbler, evaluator)
    results = [
        u128_from_bits(outputs[i * WIDTH : (i + 1) * WIDTH]) for i in range(3)
    ]
    expected = [0.0, 3.0, 6.0]
    assert results == [
        (FixedPoint.from_float(PARAMS, e).inner.value + z) % P
        for e, z in zip(expected, masks)
    ]


def test_relu_rejects_small_field():
    small = FixedPointParameters(mantissa_capacity=3, exponent_capacity=10, modulus=101)
    with pytest.raises(ValueError):
        relu(CircuitBuilder(), small, 1)