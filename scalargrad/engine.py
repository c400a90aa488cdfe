"""
ScalarGrad Engine: Scalar Reverse-Mode Automatic Differentiation
=================================================================

Every arithmetic operation on a Node records a new Node that carries both
its forward result (computed immediately) and enough information to push a
gradient back to its operands: an operator kind, the operand nodes, and for
``pow`` the literal exponent.

There are no per-node closures. One generic function evaluates the forward
value of any operator kind and one generic function applies its local
gradient rule. The backward driver sorts the reachable graph once, then
visits every node exactly once, after all of its consumers have delivered
their share of the adjoint.

Numerics are IEEE float64. Division by zero, log2 of non-positive numbers
and exp overflow produce inf/NaN and propagate silently.
"""

from __future__ import annotations
import enum
import logging
import math
import numpy as np
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union


logger = logging.getLogger(__name__)

# Type alias for numeric inputs
Numeric = Union[int, float, np.integer, np.floating]

LN2 = math.log(2.0)
LEAKY_SLOPE = 0.01


class Op(enum.Enum):
    """Operator kind that produced a node. Determines its local-gradient rule."""

    LEAF = 'leaf'
    ADD = '+'
    SUB = '-'
    MUL = '*'
    DIV = '/'
    NEG = 'neg'
    POW = '**'
    EXP = 'exp'
    LOG2 = 'log2'
    TANH = 'tanh'
    RELU = 'relu'
    LEAKY_RELU = 'leaky_relu'


ARITY: Dict[Op, int] = {
    Op.LEAF: 0,
    Op.ADD: 2,
    Op.SUB: 2,
    Op.MUL: 2,
    Op.DIV: 2,
    Op.NEG: 1,
    Op.POW: 1,
    Op.EXP: 1,
    Op.LOG2: 1,
    Op.TANH: 1,
    Op.RELU: 1,
    Op.LEAKY_RELU: 1,
}


class Node:
    """
    A vertex of the computation graph holding one scalar.

    Leaves are built directly from a number. Every other node is built by
    one of the operation constructors in this module (or the operator
    sugar below) and keeps references to the nodes it was computed from.

    Attributes:
        value: Forward result. Fixed at construction for non-leaves; for
            leaves only mutated by ``step``.
        grad: Accumulated gradient. Starts at 0, summed into by every
            backward pass, reset only by ``zero_grad``.
        trainable: Whether gradient descent may update this leaf.
        op: Operator kind (``Op.LEAF`` for leaves).
        operands: Nodes this one was computed from (empty for leaves).
        exponent: Literal exponent for ``Op.POW`` nodes, otherwise None.
        label: Optional name for debugging.

    Example:
        >>> a = leaf(2.0, trainable=True)
        >>> b = leaf(3.0, trainable=True)
        >>> c = add(mul(a, b), a)
        >>> backward(c)
        >>> a.grad, b.grad
        (4.0, 2.0)
    """

    __slots__ = ('value', 'grad', 'trainable', 'op', 'operands', 'exponent', 'label')

    def __init__(self, value: Numeric, trainable: bool = False, label: str = '') -> None:
        """
        Create a leaf node.

        Args:
            value: The scalar to store.
            trainable: Whether the optimizer may update this leaf.
            label: Optional name for debugging.

        Raises:
            TypeError: If value is not a real number.
        """
        if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
            raise TypeError(
                f"Node value must be numeric, got {type(value).__name__}"
            )

        self.value: np.float64 = np.float64(value)
        self.grad: float = 0.0
        self.trainable: bool = bool(trainable)
        self.op: Op = Op.LEAF
        self.operands: Tuple[Node, ...] = ()
        self.exponent: Optional[float] = None
        self.label: str = label

    @classmethod
    def _from_op(cls, op: Op, operands: Tuple[Node, ...], exponent: Optional[float] = None) -> Node:
        """Build a non-leaf node, evaluating its forward value eagerly."""
        for operand in operands:
            if not isinstance(operand, Node):
                raise TypeError(
                    f"{op.name.lower()} expects Node operands, got {type(operand).__name__}"
                )
        node = cls.__new__(cls)
        node.value = evaluate(op, [o.value for o in operands], exponent)
        node.grad = 0.0
        node.trainable = False
        node.op = op
        node.operands = operands
        node.exponent = exponent
        node.label = ''
        return node

    @property
    def is_leaf(self) -> bool:
        return self.op is Op.LEAF

    def __repr__(self) -> str:
        if self.label:
            return f"Node({self.label}={self.value:.4f}, grad={self.grad:.4f})"
        return f"Node(value={self.value:.4f}, grad={self.grad:.4f})"

    # =========================================================================
    # Operator sugar
    # =========================================================================

    def __add__(self, other: Union[Node, Numeric]) -> Node:
        return add(self, _as_node(other))

    def __radd__(self, other: Numeric) -> Node:
        return add(_as_node(other), self)

    def __sub__(self, other: Union[Node, Numeric]) -> Node:
        return sub(self, _as_node(other))

    def __rsub__(self, other: Numeric) -> Node:
        return sub(_as_node(other), self)

    def __mul__(self, other: Union[Node, Numeric]) -> Node:
        return mul(self, _as_node(other))

    def __rmul__(self, other: Numeric) -> Node:
        return mul(_as_node(other), self)

    def __truediv__(self, other: Union[Node, Numeric]) -> Node:
        return div(self, _as_node(other))

    def __rtruediv__(self, other: Numeric) -> Node:
        return div(_as_node(other), self)

    def __neg__(self) -> Node:
        return neg(self)

    def __pow__(self, exponent: Numeric) -> Node:
        return pow(self, exponent)

    def exp(self) -> Node:
        return exp(self)

    def log2(self) -> Node:
        return log2(self)

    def tanh(self) -> Node:
        return tanh(self)

    def relu(self) -> Node:
        return relu(self)

    def leaky_relu(self) -> Node:
        return leaky_relu(self)

    # =========================================================================
    # Gradients and updates
    # =========================================================================

    def backward(self) -> None:
        """Run a full backward pass seeded with 1 at this node."""
        backward(self)

    def zero_grad(self) -> None:
        """Reset this node's gradient to zero."""
        self.grad = 0.0

    def output(self) -> float:
        """Return the forward value as a Python float."""
        return float(self.value)

    def step(self, learning_rate: float) -> None:
        """
        Gradient-descent update of a leaf: value -= learning_rate * grad.

        Non-trainable leaves are left untouched.

        Raises:
            ValueError: If called on a non-leaf node.
        """
        if not self.is_leaf:
            raise ValueError(
                f"Only leaves can be updated, got a '{self.op.value}' node"
            )
        if self.trainable:
            self.value = np.float64(self.value - learning_rate * self.grad)


def _as_node(x: Union[Node, Numeric]) -> Node:
    """Promote a plain number to a non-trainable leaf."""
    return x if isinstance(x, Node) else Node(x)


# =============================================================================
# Forward evaluation and local gradients
# =============================================================================

def evaluate(op: Op, values: Sequence[np.float64], exponent: Optional[float] = None) -> np.float64:
    """
    Compute the forward result of ``op`` applied to operand values.

    Args:
        op: Operator kind (not ``Op.LEAF``).
        values: Operand values, one per operand.
        exponent: Literal exponent, required for ``Op.POW``.

    Returns:
        The result as a float64 scalar. Non-finite results are returned
        as-is.
    """
    if op is Op.LEAF:
        raise ValueError("Leaves have no forward rule")
    if len(values) != ARITY[op]:
        raise ValueError(
            f"{op.name.lower()} takes {ARITY[op]} operand(s), got {len(values)}"
        )

    with np.errstate(all='ignore'):
        if op is Op.ADD:
            return np.float64(values[0] + values[1])
        if op is Op.SUB:
            return np.float64(values[0] - values[1])
        if op is Op.MUL:
            return np.float64(values[0] * values[1])
        if op is Op.DIV:
            return np.float64(values[0]) / np.float64(values[1])
        a = np.float64(values[0])
        if op is Op.NEG:
            return -a
        if op is Op.POW:
            return np.power(a, np.float64(exponent))
        if op is Op.EXP:
            return np.exp(a)
        if op is Op.LOG2:
            return np.log2(a)
        if op is Op.TANH:
            return np.tanh(a)
        if op is Op.RELU:
            return np.maximum(np.float64(0.0), a)
        if op is Op.LEAKY_RELU:
            return a if a > 0 else np.float64(LEAKY_SLOPE * a)
    raise ValueError(f"Unknown operator: {op!r}")


def local_gradients(node: Node, adjoint: float) -> Tuple[np.float64, ...]:
    """
    Apply the chain rule across one node.

    Args:
        node: A non-leaf node.
        adjoint: The node's fully summed incoming adjoint.

    Returns:
        One gradient contribution per operand, in operand order.
    """
    op = node.op
    g = np.float64(adjoint)

    with np.errstate(all='ignore'):
        if op is Op.ADD:
            return g, g
        if op is Op.SUB:
            return g, -g
        if op is Op.MUL:
            a, b = node.operands
            return g * b.value, g * a.value
        if op is Op.DIV:
            a, b = node.operands
            return g / b.value, -g * a.value / (b.value * b.value)

        a = node.operands[0].value
        if op is Op.NEG:
            return (-g,)
        if op is Op.POW:
            c = np.float64(node.exponent)
            if c == 0:
                # x**0 is constant
                return (np.float64(0.0),)
            return (g * c * np.power(a, c - 1),)
        if op is Op.EXP:
            # d/dx e^x is the node's own value
            return (g * node.value,)
        if op is Op.LOG2:
            return (g / (a * LN2),)
        if op is Op.TANH:
            return (g * (1.0 - node.value * node.value),)
        if op is Op.RELU:
            return (g * (1.0 if a > 0 else 0.0),)
        if op is Op.LEAKY_RELU:
            return (g * (1.0 if a > 0 else LEAKY_SLOPE),)
    raise ValueError(f"No gradient rule for {op!r}")


# =============================================================================
# Graph builder
# =============================================================================

def leaf(value: Numeric, trainable: bool = False, label: str = '') -> Node:
    """Create a leaf node holding ``value``."""
    return Node(value, trainable=trainable, label=label)


def leaves(values: Iterable[Numeric], trainable: bool = False) -> List[Node]:
    """Create one leaf per number, e.g. for an input or target vector."""
    return [Node(v, trainable=trainable) for v in values]


def add(a: Node, b: Node) -> Node:
    return Node._from_op(Op.ADD, (a, b))


def sub(a: Node, b: Node) -> Node:
    return Node._from_op(Op.SUB, (a, b))


def mul(a: Node, b: Node) -> Node:
    return Node._from_op(Op.MUL, (a, b))


def div(a: Node, b: Node) -> Node:
    return Node._from_op(Op.DIV, (a, b))


def neg(a: Node) -> Node:
    return Node._from_op(Op.NEG, (a,))


def pow(a: Node, exponent: Numeric) -> Node:
    """
    Raise a node to a literal power: out = a ** exponent.

    Raises:
        TypeError: If the exponent is a Node or not a number.
    """
    if isinstance(exponent, Node):
        raise TypeError("Exponent must be a literal number, not a Node")
    if isinstance(exponent, bool) or not isinstance(exponent, (int, float, np.integer, np.floating)):
        raise TypeError(
            f"Exponent must be numeric, got {type(exponent).__name__}"
        )
    return Node._from_op(Op.POW, (a,), float(exponent))


def exp(a: Node) -> Node:
    return Node._from_op(Op.EXP, (a,))


def log2(a: Node) -> Node:
    return Node._from_op(Op.LOG2, (a,))


def tanh(a: Node) -> Node:
    return Node._from_op(Op.TANH, (a,))


def relu(a: Node) -> Node:
    return Node._from_op(Op.RELU, (a,))


def leaky_relu(a: Node) -> Node:
    return Node._from_op(Op.LEAKY_RELU, (a,))


def softmax(nodes: Sequence[Node]) -> List[Node]:
    """
    Softmax over a vector of nodes: exp(v_i) / sum_j exp(v_j).

    Built from ``exp``, ``add`` and ``div``, so every exp node fans out to
    the shared denominator and to its own quotient. The maximum is not
    subtracted first: inputs with a large magnitude overflow to NaN.

    Raises:
        ValueError: If ``nodes`` is empty.
    """
    if len(nodes) == 0:
        raise ValueError("softmax of an empty sequence is undefined")

    exps = [exp(v) for v in nodes]
    total = exps[0]
    for e in exps[1:]:
        total = add(total, e)
    return [div(e, total) for e in exps]


# =============================================================================
# Backpropagation
# =============================================================================

def topological_sort(root: Node) -> List[Node]:
    """
    Order the subgraph reachable from ``root`` so operands precede consumers.

    Iterative depth-first post-order; the root is last. Each node appears
    once regardless of its fan-out.

    Raises:
        TypeError: If root is not a Node.
        ValueError: If the graph contains a cycle.
    """
    if not isinstance(root, Node):
        raise TypeError(f"Expected a Node, got {type(root).__name__}")

    topo: List[Node] = []
    done: set = set()
    on_path: set = set()
    stack: List[Tuple[Node, int]] = [(root, 0)]
    on_path.add(id(root))

    while stack:
        node, i = stack[-1]
        if i < len(node.operands):
            stack[-1] = (node, i + 1)
            child = node.operands[i]
            if id(child) in on_path:
                raise ValueError("Computation graph contains a cycle")
            if id(child) not in done:
                on_path.add(id(child))
                stack.append((child, 0))
        else:
            stack.pop()
            on_path.discard(id(node))
            done.add(id(node))
            topo.append(node)

    return topo


def backward(root: Node) -> None:
    """
    Compute d(root)/d(node) for every node reachable from ``root``.

    The pass works on an index arena built from the topological order:
    operand positions and a count of pending consumer edges per node.
    Walking positions from the root down, a node is handled only once all
    of its consumers have delivered, so its local rule runs exactly once
    with the complete adjoint. The adjoints of this pass are then added
    into each node's ``grad``; call ``zero_grad`` to start fresh.

    Example:
        >>> a = leaf(3.0, trainable=True)
        >>> backward(mul(a, a))
        >>> a.grad
        6.0

    Raises:
        TypeError: If root is not a Node.
    """
    order = topological_sort(root)
    position = {id(n): i for i, n in enumerate(order)}
    operand_pos = [tuple(position[id(o)] for o in n.operands) for n in order]

    pending = np.zeros(len(order), dtype=np.int64)
    for positions in operand_pos:
        for j in positions:
            pending[j] += 1

    adjoint = np.zeros(len(order), dtype=np.float64)
    adjoint[-1] = 1.0

    with np.errstate(all='ignore'):
        for i in range(len(order) - 1, -1, -1):
            if pending[i] != 0:
                raise RuntimeError(
                    f"Node at position {i} visited with {pending[i]} consumer(s) outstanding"
                )
            node = order[i]
            if node.is_leaf:
                continue
            for j, contribution in zip(operand_pos[i], local_gradients(node, adjoint[i])):
                adjoint[j] += contribution
                pending[j] -= 1

    for node, adj in zip(order, adjoint):
        node.grad += float(adj)

    logger.debug("backward: %d nodes, %d edges", len(order), sum(len(p) for p in operand_pos))


def output(node: Node) -> float:
    """Return the forward value of ``node``."""
    return node.output()


def grad(node: Node) -> float:
    """Return the accumulated gradient of ``node``."""
    return node.grad


def zero_grad(node: Node) -> None:
    """Reset the gradient of ``node`` to zero."""
    node.zero_grad()
