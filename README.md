# delphinn

Building blocks for two-party private inference on neural networks. Two
parties each hold an additive share of every value, so that neither party
learns the real value alone.

## What is in the package

### `delphinn.additive_share`

- `FieldElement(value, modulus)`: an integer modulo a prime, always kept in
  `[0, modulus)`. It supports `+`, `-`, `*` and negation with other elements
  or plain integers. `to_signed()` reads it as a signed integer.
  `FieldElement.uniform(rng, modulus)` draws one with `rng.randrange`.
- `FixedPointParameters(mantissa_capacity, exponent_capacity, modulus)` and
  `FixedPoint`: fixed-point numbers stored in the field, scaled by
  `2 ** exponent_capacity`.
  - `FixedPoint.from_float(params, value)` encodes a float, rounding to the
    nearest value. `FixedPoint.truncate_float(params, value)` rounds a float to
    the precision the parameters allow. `FixedPoint.zero(params)` gives zero.
  - `to_float()` (also `float(x)`), `double()`, `is_zero()` and
    `signed_reduce()` are available.
  - A product of two fixed-point numbers is not truncated until
    `signed_reduce()` is called. Addition and subtraction first bring both
    operands to the same number of pending multiplications.
  - Equality compares the reduced values and allows a difference of one unit
    in the last place.
- `AdditiveShare(inner)`: one party's share of a `FixedPoint`. Shares can be
  added, subtracted and negated, and multiplied by a public `FixedPoint`.
  `combine(other)` adds the two halves back together. `add_constant(constant)`
  and `double()` work on a single share.
- `share(value, rng=None)` splits a value into two shares with fresh
  randomness. It uses `secrets.SystemRandom` when no `rng` is given.
  `share_with_randomness(value, r)` splits with a given mask `r`, and
  `randomize_local_share(local_share, r)` adds `r` to the field value of one
  share.

```python
import random
from delphinn.additive_share import FixedPoint, FixedPointParameters, share

params = FixedPointParameters(mantissa_capacity=5, exponent_capacity=5, modulus=2061584302081)
x = FixedPoint.from_float(params, 1.5)
s1, s2 = share(x, random.Random(0))
assert s1.combine(s2) == x
assert (-s1).combine(-s2) == -x
```

### `delphinn.gc`

Boolean circuits over bits, and a circuit that computes a ReLU6 activation on
a value shared between a garbler and an evaluator.

- `CircuitBuilder` builds a circuit with `constant`, `garbler_inputs`,
  `evaluator_inputs`, `xor`, `and_`, `or_`, `and_many`, `or_many` and
  `output_bundle`. `finish()` returns a `Circuit`.
- `Circuit.eval_plain(garbler_inputs, evaluator_inputs)` evaluates the circuit
  on plain bits and returns the output bits. The properties
  `num_garbler_inputs`, `num_evaluator_inputs`, `num_outputs` and
  `num_and_gates` describe the circuit's size.
- `relu(builder, params, n)` adds `n` gadgets to a builder. Each gadget takes
  one evaluator bundle (a share) and two garbler bundles (a share and an
  output randomizer). It outputs `min(max(x, 0), 6) + randomizer` modulo the
  field's prime. `make_relu(params, n)` returns the finished circuit.
- `num_bits(p)`, `u128_to_bits(value, n)` and `u128_from_bits(bits)` convert
  between integers and bit lists, least significant bit first.

### `delphinn.networks`

Randomly sampled networks with the layer shapes used for benchmarks. Every
weight is drawn from (-1, 1) at the precision of `TEN_BIT_EXP_PARAMS`.

- `construct_mnist(batch_size, num_poly, rng)`, where `num_poly` is 0 to 3.
- `construct_minionn(batch_size, num_poly, rng)`, where `num_poly` is 0 to 3
  or 5 to 7.
- `construct_resnet_32(batch_size, num_poly, rng)`. For `num_poly` equal to
  6, 12, 14, …, 26 the choice of polynomial layers is fixed in advance.
  Otherwise the last `num_poly` of 32 activations are polynomial, with
  `num_poly` from 0 to 32.
- `construct_networks(batch_size, rng)` gives four single-convolution
  networks, each paired with its input shape.

`num_poly` sets how many activation layers use the polynomial
`0.2 + 0.5x + 0.2x²` instead of ReLU. An unsupported value raises
`ValueError`.

The networks are made of `Conv2dLayer`, `FullyConnectedLayer`,
`AvgPoolLayer`, `IdentityLayer`, `ReLULayer` and `PolyApproxLayer`. Each layer
carries a `LayerDims` and uses `Padding.SAME` or `Padding.VALID` where that
applies. The helpers `generate_random_number`, `sample_conv_layer`,
`sample_fc_layer`, `sample_iden_layer`, `sample_avg_pool_layer` and
`add_activation_layer` build single layers. `NeuralNetwork.validate()` returns
whether the network is non-empty and each layer's output shape matches the
next layer's input shape.

### `delphinn.inference`

- `softmax(values)` computes a softmax of `FixedPoint` values at fixed-point
  precision.
- `argmax(values)` returns the index of the first largest value. NaNs are
  ignored.
- `activation_count(model)` gives the number of ReLUs in the MNIST model
  (`0`) or the MiniONN model (`1`).
- `ValidationTally().record(index, expected_class, plaintext_label, outputs)`
  scores one image and returns a `ValidationOutcome`. The tally counts:
  - correct predictions;
  - predictions that are correct where the plaintext network was also
    correct;
  - catastrophic failures, where the L1 norm of the output is above 5000;
  - other disagreements with the plaintext result.

  The tally is safe to update from several threads, and `str(tally)` prints a
  summary. Each record is logged through the `delphinn.inference` logger.

## What the package does not do

- It multiplies a shared value only by a public constant. It has no protocol
  for multiplying two shared values together.
- Circuits are only evaluated in the clear. There is no garbling and no
  oblivious transfer.
- There is no networking, client, server or command-line program for running
  a two-party inference.
- The network builders only describe layer shapes and sample weights. They do
  not evaluate a network, and they cannot load trained weights.

## Running the tests

Install the package with its `test` extra, then run `pytest` from the project
root.