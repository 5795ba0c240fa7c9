"""Layer descriptions and randomly sampled benchmark networks."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence, Union

import numpy as np

from delphinn.additive_share import FixedPoint, FixedPointParameters

Dims = tuple[int, int, int, int]

TEN_BIT_EXP_PARAMS = FixedPointParameters(
    mantissa_capacity=3, exponent_capacity=8, modulus=2061584302081
)
"""Fixed-point parameters used by every benchmark network."""

ACTIVATION_POLY_COEFFICIENTS = (0.2, 0.5, 0.2)


class Padding(Enum):
    """Convolution padding mode."""

    SAME = "same"
    VALID = "valid"


@dataclass(frozen=True)
class LayerDims:
    """Input and output tensor shapes of a layer, as (batch, channels, height, width)."""

    input_dims: Dims
    output_dims: Dims


class _Layer:
    dims: LayerDims

    @property
    def input_dims(self) -> Dims:
        """Shape of the tensor the layer consumes."""
        return self.dims.input_dims

    @property
    def output_dims(self) -> Dims:
        """Shape of the tensor the layer produces."""
        return self.dims.output_dims


@dataclass(eq=False)
class Conv2dLayer(_Layer):
    """A 2D convolution; kernel is (out_channels, in_channels, height, width)."""

    dims: LayerDims
    kernel: np.ndarray
    bias: np.ndarray
    stride: int
    padding: Padding
    params: FixedPointParameters = TEN_BIT_EXP_PARAMS


@dataclass(eq=False)
class FullyConnectedLayer(_Layer):
    """A dense layer; weights are (out_channels, in_channels, height, width)."""

    dims: LayerDims
    weights: np.ndarray
    bias: np.ndarray
    params: FixedPointParameters = TEN_BIT_EXP_PARAMS


@dataclass(eq=False)
class AvgPoolLayer(_Layer):
    """Average pooling over ``pool_h`` x ``pool_w`` windows."""

    dims: LayerDims
    pool_h: int
    pool_w: int
    stride: int
    normalizer: FixedPoint


@dataclass(eq=False)
class IdentityLayer(_Layer):
    """A linear layer that passes its input through unchanged."""

    dims: LayerDims


@dataclass(eq=False)
class ReLULayer(_Layer):
    """A ReLU activation, evaluated with garbled circuits."""

    dims: LayerDims


@dataclass(eq=False)
class PolyApproxLayer(_Layer):
    """A polynomial approximation of an activation; coefficients lowest degree first."""

    dims: LayerDims
    coefficients: tuple[FixedPoint, ...]


LinearLayer = Union[Conv2dLayer, FullyConnectedLayer, AvgPoolLayer, IdentityLayer]
Layer = Union[LinearLayer, ReLULayer, PolyApproxLayer]


@dataclass(eq=False)
class NeuralNetwork:
    """An ordered list of layers."""

    layers: list[Layer] = field(default_factory=list)

    def validate(self) -> bool:
        """Whether the network is non-empty and each layer's output feeds the next."""
        if not self.layers:
            return False
        return all(
            prev.output_dims == nxt.input_dims
            for prev, nxt in zip(self.layers, self.layers[1:])
        )


def _sample_value(rng: Any) -> float:
    is_neg = bool(rng.getrandbits(1))
    value = rng.random()
    return FixedPoint.truncate_float(TEN_BIT_EXP_PARAMS, -value if is_neg else value)


def generate_random_number(rng: Any) -> tuple[float, FixedPoint]:
    """Sample a value in (-1, 1) at fixed-point precision, as a float and encoded."""
    value = _sample_value(rng)
    return value, FixedPoint.from_float(TEN_BIT_EXP_PARAMS, value)


def _sample_array(shape: Sequence[int], rng: Any) -> np.ndarray:
    count = int(np.prod(shape))
    values = np.fromiter((_sample_value(rng) for _ in range(count)), dtype=float, count=count)
    return values.reshape(tuple(shape))


def _conv_output_size(
    input_dims: Dims, kernel_dims: Dims, stride: int, padding: Padding
) -> Dims:
    batch, in_chn, in_h, in_w = input_dims
    out_chn, k_chn, k_h, k_w = kernel_dims
    if k_chn != in_chn:
        raise ValueError(f"kernel expects {k_chn} input channels, input has {in_chn}")
    if stride < 1:
        raise ValueError("stride must be positive")
    if padding is Padding.SAME:
        pad_h, pad_w = (k_h - 1) // 2, (k_w - 1) // 2
    else:
        pad_h = pad_w = 0
    out_h = (in_h - k_h + 2 * pad_h) // stride + 1
    out_w = (in_w - k_w + 2 * pad_w) // stride + 1
    if out_h < 1 or out_w < 1:
        raise ValueError("kernel is larger than the padded input")
    return batch, out_chn, out_h, out_w


def sample_conv_layer(
    input_dims: Dims, kernel_dims: Dims, stride: int, padding: Padding, rng: Any
) -> Conv2dLayer:
    """A convolution with randomly sampled kernel and bias."""
    kernel = _sample_array(kernel_dims, rng)
    bias = _sample_array((kernel_dims[0], 1, 1, 1), rng)
    output_dims = _conv_output_size(tuple(input_dims), tuple(kernel_dims), stride, padding)
    return Conv2dLayer(
        dims=LayerDims(tuple(input_dims), output_dims),
        kernel=kernel,
        bias=bias,
        stride=stride,
        padding=padding,
    )


def sample_fc_layer(input_dims: Dims, out_chn: int, rng: Any) -> FullyConnectedLayer:
    """A fully connected layer with randomly sampled weights and bias."""
    batch, in_chn, in_h, in_w = input_dims
    weights = _sample_array((out_chn, in_chn, in_h, in_w), rng)
    bias = _sample_array((out_chn, 1, 1, 1), rng)
    return FullyConnectedLayer(
        dims=LayerDims(tuple(input_dims), (batch, out_chn, 1, 1)),
        weights=weights,
        bias=bias,
    )


def sample_iden_layer(input_dims: Dims) -> IdentityLayer:
    """An identity layer for the given shape."""
    return IdentityLayer(LayerDims(tuple(input_dims), tuple(input_dims)))


def sample_avg_pool_layer(
    input_dims: Dims, pool_size: tuple[int, int], stride: int
) -> AvgPoolLayer:
    """An average-pooling layer whose normalizer is ``1 / (pool_h * pool_w)``."""
    pool_h, pool_w = pool_size
    if stride < 1:
        raise ValueError("stride must be positive")
    batch, chn, in_h, in_w = input_dims
    out_h = (in_h - pool_h) // stride + 1
    out_w = (in_w - pool_w) // stride + 1
    if out_h < 1 or out_w < 1:
        raise ValueError("pool window is larger than the input")
    normalizer = FixedPoint.from_float(TEN_BIT_EXP_PARAMS, 1.0 / (pool_h * pool_w))
    return AvgPoolLayer(
        dims=LayerDims(tuple(input_dims), (batch, chn, out_h, out_w)),
        pool_h=pool_h,
        pool_w=pool_w,
        stride=stride,
        normalizer=normalizer,
    )


def add_activation_layer(network: NeuralNetwork, relu_layers: Sequence[int]) -> None:
    """Append a ReLU if the new layer's index is in ``relu_layers``, else a polynomial."""
    if not network.layers:
        raise ValueError("an activation needs a preceding layer")
    dims_in = network.layers[-1].output_dims
    dims = LayerDims(dims_in, dims_in)
    if len(network.layers) in relu_layers:
        network.layers.append(ReLULayer(dims))
    else:
        coefficients = tuple(
            FixedPoint.from_float(TEN_BIT_EXP_PARAMS, c) for c in ACTIVATION_POLY_COEFFICIENTS
        )
        network.layers.append(PolyApproxLayer(dims, coefficients))


def _checked(network: NeuralNetwork) -> NeuralNetwork:
    if not network.validate():
        raise RuntimeError("constructed network has inconsistent layer dimensions")
    return network


def construct_networks(batch_size: int, rng: Any) -> list[tuple[Dims, NeuralNetwork]]:
    """Four single-convolution networks used for linear-layer throughput runs."""
    configs = [
        ((batch_size, 3, 32, 32), (16, 3, 3, 3)),
        ((batch_size, 16, 32, 32), (16, 16, 3, 3)),
        ((batch_size, 32, 16, 16), (32, 32, 3, 3)),
        ((batch_size, 64, 8, 8), (64, 64, 3, 3)),
    ]
    networks = []
    for input_dims, kernel_dims in configs:
        conv = sample_conv_layer(input_dims, kernel_dims, 1, Padding.SAME, rng)
        networks.append((input_dims, NeuralNetwork([conv])))
    return networks


def _last_dims(network: NeuralNetwork) -> Dims:
    return network.layers[-1].output_dims


_MINIONN_RELU_LAYERS = {
    0: [1, 3, 6, 8, 11, 13, 15],
    1: [1, 3, 6, 8, 11, 13],
    2: [1, 3, 6, 8, 11],
    3: [3, 11, 13, 15],
    5: [6, 11],
    6: [11],
    7: [],
}


def construct_minionn(batch_size: int, num_poly: int, rng: Any) -> NeuralNetwork:
    """The MiniONN CIFAR-10 network with ``num_poly`` polynomial activations."""
    if num_poly not in _MINIONN_RELU_LAYERS:
        raise ValueError(f"unsupported number of polynomial layers: {num_poly}")
    relu_layers = _MINIONN_RELU_LAYERS[num_poly]
    network = NeuralNetwork()

    def conv(kernel_dims: Dims, padding: Padding, input_dims: Dims | None = None) -> None:
        dims = input_dims if input_dims is not None else _last_dims(network)
        network.layers.append(sample_conv_layer(dims, kernel_dims, 1, padding, rng))
        add_activation_layer(network, relu_layers)

    def pool() -> None:
        network.layers.append(sample_avg_pool_layer(_last_dims(network), (2, 2), 2))

    conv((64, 3, 3, 3), Padding.SAME, (batch_size, 3, 32, 32))
    conv((64, 64, 3, 3), Padding.SAME)
    pool()
    conv((64, 64, 3, 3), Padding.SAME)
    conv((64, 64, 3, 3), Padding.SAME)
    pool()
    conv((64, 64, 3, 3), Padding.SAME)
    conv((64, 64, 1, 1), Padding.VALID)
    conv((16, 64, 1, 1), Padding.VALID)
    network.layers.append(sample_fc_layer(_last_dims(network), 10, rng))
    return _checked(network)


_MNIST_RELU_LAYERS = {0: [1, 4, 7], 1: [1, 4], 2: [1], 3: []}


def construct_mnist(batch_size: int, num_poly: int, rng: Any) -> NeuralNetwork:
    """The MNIST network with ``num_poly`` polynomial activations."""
    if num_poly not in _MNIST_RELU_LAYERS:
        raise ValueError(f"unsupported number of polynomial layers: {num_poly}")
    relu_layers = _MNIST_RELU_LAYERS[num_poly]
    network = NeuralNetwork()

    network.layers.append(
        sample_conv_layer((batch_size, 1, 28, 28), (16, 1, 5, 5), 1, Padding.VALID, rng)
    )
    add_activation_layer(network, relu_layers)
    network.layers.append(sample_avg_pool_layer(_last_dims(network), (2, 2), 2))
    network.layers.append(
        sample_conv_layer(_last_dims(network), (16, 16, 5, 5), 1, Padding.VALID, rng)
    )
    add_activation_layer(network, relu_layers)
    network.layers.append(sample_avg_pool_layer(_last_dims(network), (2, 2), 2))
    network.layers.append(sample_fc_layer(_last_dims(network), 100, rng))
    add_activation_layer(network, relu_layers)
    network.layers.append(sample_fc_layer(_last_dims(network), 10, rng))
    return _checked(network)


def _conv_block(
    network: NeuralNetwork,
    kernel_size: tuple[int, int],
    c_out: int,
    stride: int,
    relu_layers: Sequence[int],
    rng: Any,
) -> None:
    k_h, k_w = kernel_size
    dims = _last_dims(network)
    network.layers.append(
        sample_conv_layer(dims, (c_out, dims[1], k_h, k_w), stride, Padding.SAME, rng)
    )
    add_activation_layer(network, relu_layers)
    dims = _last_dims(network)
    network.layers.append(
        sample_conv_layer(dims, (dims[1], dims[1], k_h, k_w), 1, Padding.SAME, rng)
    )
    add_activation_layer(network, relu_layers)


def _iden_block(
    network: NeuralNetwork,
    kernel_size: tuple[int, int],
    relu_layers: Sequence[int],
    rng: Any,
) -> None:
    k_h, k_w = kernel_size
    dims = _last_dims(network)
    kernel_dims = (dims[1], dims[1], k_h, k_w)
    for _ in range(2):
        network.layers.append(sample_conv_layer(dims, kernel_dims, 1, Padding.SAME, rng))
        add_activation_layer(network, relu_layers)


_RESNET_POLY_LAYERS = {
    6: [3, 5, 18, 19, 26, 27],
    12: [1, 2, 7, 10, 11, 12, 14, 16, 20, 21, 24, 28],
    14: [1, 2, 4, 5, 8, 9, 14, 16, 19, 20, 21, 24, 26, 29],
    16: [1, 3, 5, 6, 7, 8, 11, 15, 16, 17, 18, 19, 23, 24, 26, 29],
    18: [1, 2, 4, 5, 8, 9, 10, 11, 14, 15, 17, 18, 20, 23, 24, 26, 27, 29],
    20: [1, 2, 3, 5, 6, 8, 9, 10, 11, 13, 14, 16, 17, 18, 19, 21, 23, 25, 27, 28],
    22: [1, 2, 3, 5, 6, 7, 8, 9, 10, 11, 12, 13, 14, 15, 16, 18, 19, 20, 23, 25, 27, 29],
    24: [
        1, 2, 3, 4, 5, 7, 8, 9, 10, 11, 12, 14, 15, 16, 17, 19, 21, 23, 24, 25, 26, 27, 28, 29,
    ],
    26: [
        1, 2, 3, 4, 5, 7, 8, 9, 10, 11, 12, 13, 14, 15, 17, 19, 20, 21, 22, 23, 24, 25, 26, 27,
        28, 29,
    ],
}


def construct_resnet_32(batch_size: int, num_poly: int, rng: Any) -> NeuralNetwork:
    """ResNet-32 for CIFAR-10 with ``num_poly`` polynomial activations."""
    if num_poly in _RESNET_POLY_LAYERS:
        poly_layers = set(_RESNET_POLY_LAYERS[num_poly])
    else:
        if not 0 <= num_poly <= 32:
            raise ValueError(f"unsupported number of polynomial layers: {num_poly}")
        poly_layers = set(range(32 - num_poly, 32))
    relu_layers = [2 * l + 1 for l in range(32) if l not in poly_layers]

    network = NeuralNetwork()
    network.layers.append(
        sample_conv_layer((batch_size, 3, 32, 32), (16, 3, 3, 3), 1, Padding.SAME, rng)
    )
    add_activation_layer(network, relu_layers)
    for c_out, stride in ((16, 1), (32, 2), (64, 2)):
        _conv_block(network, (3, 3), c_out, stride, relu_layers, rng)
        for _ in range(4):
            _iden_block(network, (3, 3), relu_layers, rng)
    network.layers.append(sample_avg_pool_layer(_last_dims(network), (2, 2), 2))
    network.layers.append(sample_fc_layer(_last_dims(network), 10, rng))
    return _checked(network)