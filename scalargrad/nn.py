"""
Neural Network Module
=====================

Building blocks composed from the graph builder in ``engine``.

This module provides:
- Module: Base class with parameters() and zero_grad()
- Neuron: weighted sum of inputs plus a bias
- Layer: a row of neurons sharing the same input
- Network: two layers with an elementwise activation between them
- mse_loss: mean squared error over a vector of predictions
- SGD: plain gradient descent over a fixed list of leaves

Every forward call builds a fresh subgraph; nothing is cached between
calls. Parameter initialisation draws from a numpy Generator passed in by
the caller, so two networks built from equally seeded generators are
identical.
"""

from __future__ import annotations
import logging
import numpy as np
from typing import Callable, Dict, List, Optional, Sequence, Union
from .engine import Node, Numeric, add, div, leaky_relu, mul, pow, relu, sub, tanh


logger = logging.getLogger(__name__)

ACTIVATIONS: Dict[str, Callable[[Node], Node]] = {
    'relu': relu,
    'leaky_relu': leaky_relu,
    'tanh': tanh,
}


def _as_input(x: Union[Node, Numeric]) -> Node:
    return x if isinstance(x, Node) else Node(x)


class Module:
    """
    Base class for all network components.

    Subclasses implement ``forward`` and ``parameters``. Calling a module
    runs its forward pass.
    """

    def parameters(self) -> List[Node]:
        """
        Return all trainable leaves of this module, in a stable order.

        Returns:
            List of Node objects.
        """
        return []

    def zero_grad(self) -> None:
        """Reset gradients of all parameters to zero."""
        for p in self.parameters():
            p.zero_grad()

    def forward(self, x):
        raise NotImplementedError

    def __call__(self, x):
        return self.forward(x)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class Neuron(Module):
    """
    A single linear unit: output = sum(w_i * x_i) + b

    Weights and bias are trainable leaves drawn uniformly from
    [-scale, scale], with ``scale = sqrt(2 / nin)`` unless given.

    Attributes:
        w: List of weight Nodes
        b: Bias Node

    Example:
        >>> rng = np.random.default_rng(0)
        >>> n = Neuron(3, rng)
        >>> out = n([1.0, 2.0, 3.0])
    """

    def __init__(
        self,
        nin: int,
        rng: np.random.Generator,
        init_scale: Optional[float] = None
    ) -> None:
        """
        Initialize a neuron.

        Args:
            nin: Number of inputs to this neuron.
            rng: Seeded random generator used for the initial parameters.
            init_scale: Half-width of the uniform initialisation interval.

        Raises:
            ValueError: If nin is not a positive integer.
        """
        if nin < 1:
            raise ValueError(f"Neuron needs at least one input, got nin={nin}")

        scale = init_scale if init_scale is not None else (2.0 / nin) ** 0.5
        self.w: List[Node] = [
            Node(rng.uniform(-scale, scale), trainable=True, label=f'w{i}')
            for i in range(nin)
        ]
        self.b: Node = Node(rng.uniform(-scale, scale), trainable=True, label='b')

    def forward(self, x: Sequence[Union[Node, Numeric]]) -> Node:
        """
        Build sum(w_i * x_i) + b for one input vector.

        Args:
            x: Inputs (Nodes or numbers).

        Returns:
            The neuron's output node.

        Raises:
            ValueError: If input length doesn't match weight count.
        """
        if len(x) != len(self.w):
            raise ValueError(
                f"Expected {len(self.w)} inputs, got {len(x)}"
            )

        act = mul(self.w[0], _as_input(x[0]))
        for wi, xi in zip(self.w[1:], x[1:]):
            act = add(act, mul(wi, _as_input(xi)))
        return add(act, self.b)

    def parameters(self) -> List[Node]:
        """Return weights and bias."""
        return self.w + [self.b]

    def __repr__(self) -> str:
        return f"Neuron({len(self.w)})"


class Layer(Module):
    """
    A fully connected layer: ``nout`` neurons reading the same ``nin`` inputs.

    Example:
        >>> layer = Layer(3, 4, np.random.default_rng(0))
        >>> out = layer([1.0, 2.0, 3.0])  # list of 4 Nodes
    """

    def __init__(
        self,
        nin: int,
        nout: int,
        rng: np.random.Generator,
        init_scale: Optional[float] = None
    ) -> None:
        if nout < 1:
            raise ValueError(f"Layer needs at least one neuron, got nout={nout}")
        self.neurons: List[Neuron] = [
            Neuron(nin, rng, init_scale=init_scale)
            for _ in range(nout)
        ]

    def forward(self, x: Sequence[Union[Node, Numeric]]) -> List[Node]:
        """Return one output node per neuron."""
        return [n(x) for n in self.neurons]

    def parameters(self) -> List[Node]:
        """Return all parameters from all neurons."""
        return [p for n in self.neurons for p in n.parameters()]

    def __repr__(self) -> str:
        return f"Layer({len(self.neurons[0].w)} -> {len(self.neurons)})"


class Network(Module):
    """
    Two-layer feed-forward network.

    Architecture:
        Input -> Layer(nin, nhidden) -> activation -> Layer(nhidden, nout)

    The output layer is linear, which suits regression against raw
    targets; apply ``softmax`` to the outputs for classification.

    Example:
        >>> net = Network(4, 10, 3, np.random.default_rng(42))
        >>> out = net([1.0, 2.0, 3.0, 4.0])  # list of 3 Nodes
    """

    def __init__(
        self,
        nin: int,
        nhidden: int,
        nout: int,
        rng: np.random.Generator,
        activation: str = 'relu',
        init_scale: Optional[float] = None
    ) -> None:
        """
        Initialize a network.

        Args:
            nin: Number of input features.
            nhidden: Width of the hidden layer.
            nout: Number of outputs.
            rng: Seeded random generator shared by both layers.
            activation: 'relu', 'leaky_relu' or 'tanh'.
            init_scale: Optional fixed initialisation half-width.

        Raises:
            ValueError: If the activation name is unknown.
        """
        if activation not in ACTIVATIONS:
            raise ValueError(
                f"Unknown activation '{activation}', expected one of {sorted(ACTIVATIONS)}"
            )
        self.activation: str = activation
        self.l1 = Layer(nin, nhidden, rng, init_scale=init_scale)
        self.l2 = Layer(nhidden, nout, rng, init_scale=init_scale)

    def forward(self, x: Sequence[Union[Node, Numeric]]) -> List[Node]:
        act = ACTIVATIONS[self.activation]
        hidden = [act(h) for h in self.l1(x)]
        return self.l2(hidden)

    def parameters(self) -> List[Node]:
        """Return all parameters from both layers."""
        return self.l1.parameters() + self.l2.parameters()

    def __repr__(self) -> str:
        return f"Network([{self.l1}, {self.activation}, {self.l2}])"


# =============================================================================
# Loss Functions
# =============================================================================

def mse_loss(
    predictions: Sequence[Node],
    targets: Sequence[Union[Node, Numeric]]
) -> Node:
    """
    Mean Squared Error loss.

    MSE = (1/n) * sum((pred_i - target_i)^2)

    Args:
        predictions: Model outputs.
        targets: Ground truth (Nodes or numbers; numbers become
            non-trainable leaves).

    Returns:
        Scalar Node representing the loss.

    Raises:
        ValueError: If the sequences are empty or differ in length.
    """
    if len(predictions) != len(targets):
        raise ValueError(
            f"Got {len(predictions)} predictions for {len(targets)} targets"
        )
    if len(predictions) == 0:
        raise ValueError("mse_loss of an empty batch is undefined")

    total = None
    for pred, target in zip(predictions, targets):
        sq = pow(sub(pred, _as_input(target)), 2)
        total = sq if total is None else add(total, sq)
    return div(total, Node(len(predictions)))


# =============================================================================
# Optimizers
# =============================================================================

class SGD:
    """
    Gradient descent over a fixed list of leaves.

    Updates trainable parameters: p = p - (lr / batch_size) * p.grad

    Use ``batch_size`` when the loss is a sum over a batch rather than a
    mean. Non-trainable leaves in the list are held but never moved.

    Attributes:
        params: Parameters to optimize.
        lr: Learning rate.
        batch_size: Divisor applied to the learning rate.
    """

    def __init__(self, params: Sequence[Node], lr: float = 0.01, batch_size: int = 1) -> None:
        """
        Initialize SGD optimizer.

        Args:
            params: Parameters to optimize. Must be leaves.
            lr: Learning rate (step size).
            batch_size: Positive integer dividing the learning rate.

        Raises:
            TypeError: If a parameter is not a Node.
            ValueError: If the list is empty, holds a non-leaf, names the
                same leaf twice, or batch_size is not a positive integer.
        """
        params = list(params)
        if not params:
            raise ValueError("SGD got an empty parameter list")
        for i, p in enumerate(params):
            if not isinstance(p, Node):
                raise TypeError(
                    f"Parameter {i} must be a Node, got {type(p).__name__}"
                )
            if not p.is_leaf:
                raise ValueError(
                    f"Parameter {i} is a '{p.op.value}' node, only leaves can be optimized"
                )
        seen = set()
        for i, p in enumerate(params):
            if id(p) in seen:
                raise ValueError(f"Parameter {i} appears more than once")
            seen.add(id(p))
        if isinstance(batch_size, bool) or not isinstance(batch_size, (int, np.integer)) or batch_size < 1:
            raise ValueError(f"batch_size must be a positive integer, got {batch_size!r}")

        self.params: List[Node] = params
        self.lr = lr
        self.batch_size = int(batch_size)

    def step(self) -> None:
        """
        Perform one optimization step.

        Call this after backward() and before zero_grad().
        """
        rate = self.lr / self.batch_size
        for p in self.params:
            p.step(rate)
        logger.debug("SGD step over %d parameters (rate=%g)", len(self.params), rate)

    def zero_grad(self) -> None:
        """Reset all gradients to zero."""
        for p in self.params:
            p.zero_grad()
