#!/usr/bin/env python3
"""
ScalarGrad Demo: Gradient Descent on a Scalar Graph
===================================================

Two training runs driven entirely by the engine's procedural API:

1. Minimise (leaky_relu(a^2 + b^2) - 0)^2 by stepping the leaves a and b
   directly.
2. Fit a 4 -> 10 -> 3 network to a fixed target vector with a
   squared-error loss summed over a batch and SGD scaled by the batch size.

Each iteration follows the same sequence: build the forward graph, one
backward pass, one optimizer step, zero the gradients.

Run: python examples/demo.py
"""

import logging
import numpy as np
import matplotlib.pyplot as plt
from typing import List, Sequence, Tuple

from scalargrad import (
    Network, SGD, leaf, leaves, add, sub, pow, leaky_relu, backward,
)


logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


def descend_sum_of_squares(
    a0: float = 3.0,
    b0: float = 2.0,
    learning_rate: float = 0.01,
    iterations: int = 1000
) -> Tuple[float, float, List[float]]:
    """
    Drive a and b towards zero by gradient descent on single leaves.

    Args:
        a0: Initial value of a.
        b0: Initial value of b.
        learning_rate: Step size.
        iterations: Number of updates.

    Returns:
        Final a, final b and the loss per iteration.
    """
    a = leaf(a0, trainable=True)
    b = leaf(b0, trainable=True)
    target = leaf(0.0)

    losses = []
    for _ in range(iterations):
        e = add(pow(a, 2), pow(b, 2))
        loss = pow(sub(leaky_relu(e), target), 2)
        losses.append(loss.output())

        backward(loss)
        a.step(learning_rate)
        b.step(learning_rate)
        a.zero_grad()
        b.zero_grad()

    return a.output(), b.output(), losses


def batch_loss(net: Network, x: Sequence[float], y: Sequence[float], batch_size: int):
    """Squared error summed over outputs and over ``batch_size`` forward passes."""
    targets = leaves(y)
    total = leaf(0.0)
    for _ in range(batch_size):
        inputs = leaves(x)
        for out, t in zip(net(inputs), targets):
            total = add(total, pow(sub(out, t), 2))
    return total


def fit_network(
    x: Sequence[float] = (1.0, 2.0, 3.0, 4.0),
    y: Sequence[float] = (4.0, 1.3, 2.0),
    epochs: int = 200,
    batch_size: int = 8,
    learning_rate: float = 0.005,
    seed: int = 0
) -> Tuple[List[float], List[float]]:
    """
    Train a 4 -> 10 -> 3 relu network on one (x, y) pair.

    Args:
        x: Input vector.
        y: Target vector.
        epochs: Number of optimizer steps.
        batch_size: Forward passes accumulated into each loss.
        learning_rate: Step size.
        seed: Seed for parameter initialisation.

    Returns:
        Final predictions and the loss per epoch.
    """
    net = Network(len(x), 10, len(y), np.random.default_rng(seed))
    optimizer = SGD(net.parameters(), lr=learning_rate, batch_size=batch_size)
    logger.info("Network: %r (%d parameters)", net, len(net.parameters()))

    losses = []
    for epoch in range(epochs):
        loss = batch_loss(net, x, y, batch_size)
        losses.append(loss.output())

        backward(loss)
        optimizer.step()
        optimizer.zero_grad()

        if (epoch + 1) % 20 == 0:
            logger.info("Epoch %3d | Loss: %.6f", epoch + 1, loss.output())

    predictions = [o.output() for o in net(leaves(x))]
    return predictions, losses


def plot_loss_curve(losses: List[float], path: str = './loss_curve.png') -> None:
    """
    Plot the training loss over epochs.

    Args:
        losses: List of loss values.
        path: Output PNG file.
    """
    plt.figure(figsize=(10, 6))
    plt.plot(losses, 'b-', linewidth=2)
    plt.xlabel('Epoch')
    plt.ylabel('Loss')
    plt.yscale('log')
    plt.title('Training Loss Curve')
    plt.grid(True, alpha=0.3)
    plt.tight_layout()
    plt.savefig(path, dpi=150)
    plt.close()
    logger.info("Saved loss curve to: %s", path)


def main():
    """Run both demos."""
    logger.info("=" * 60)
    logger.info("DEMO 1: Gradient descent on a^2 + b^2")
    logger.info("=" * 60)
    a, b, losses = descend_sum_of_squares()
    logger.info("a = %.6f", a)
    logger.info("b = %.6f", b)
    logger.info("loss: %.6f -> %.6f", losses[0], losses[-1])

    logger.info("=" * 60)
    logger.info("DEMO 2: Training a two-layer network")
    logger.info("=" * 60)
    predictions, losses = fit_network()
    logger.info("y = %s", [round(p, 4) for p in predictions])
    plot_loss_curve(losses)


if __name__ == "__main__":
    main()
