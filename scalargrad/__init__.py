"""ScalarGrad: a scalar reverse-mode autodiff engine."""

from .engine import (
    Node, Op, leaf, leaves,
    add, sub, mul, div, neg, pow, exp, log2, tanh, relu, leaky_relu, softmax,
    evaluate, local_gradients, topological_sort, backward, output, grad, zero_grad,
)
from .nn import Module, Neuron, Layer, Network, mse_loss, SGD

__all__ = [
    "Node",
    "Op",
    "leaf",
    "leaves",
    "add",
    "sub",
    "mul",
    "div",
    "neg",
    "exp",
    "log2",
    "tanh",
    "relu",
    "leaky_relu",
    "softmax",
    "evaluate",
    "local_gradients",
    "topological_sort",
    "backward",
    "output",
    "grad",
    "zero_grad",
    "Module",
    "Neuron",
    "Layer",
    "Network",
    "mse_loss",
    "SGD",
]
