"""
Scalar autograd engine on decimals.

Each Value records the operation that produced it, the arguments it was built
from and a snapshot of their data. Gradients are propagated by a single
dispatch table keyed on the operation tag, walking a topological order that is
built with an explicit stack (no recursion limit on deep graphs).
"""

import itertools
import threading
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Callable, Optional

from scalargrad.errors import DivisionByZero
from scalargrad.utils import to_decimal

ZERO = Decimal(0)
ONE = Decimal(1)


class Operation(Enum):
    """Tag for the local gradient rule that produced a node."""

    NOOP = "noop"
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    POW = "**"
    RELU = "relu"

    def __str__(self) -> str:
        return self.value


class Kind(Enum):
    """What a node stands for. Presentation only."""

    UNKNOWN = "unknown"
    BIAS = "bias"
    WEIGHT = "weight"
    INPUT = "input"
    VALUE = "value"


@dataclass(frozen=True)
class Context:
    """Diagnostic tags for a node. Never affects arithmetic."""

    label: str = ""
    neuron: str = ""
    layer: int = -1
    network: str = ""

    def __str__(self) -> str:
        parts = []
        if self.label:
            parts.append(f"label={self.label}")
        if self.neuron:
            parts.append(f"neuron={self.neuron}")
        if self.layer >= 0:
            parts.append(f"layer={self.layer}")
        if self.network:
            parts.append(f"network={self.network}")
        return " ".join(parts)


def merge_contexts(a: Optional[Context], b: Optional[Context]) -> Optional[Context]:
    """Context for a node computed from a and b. Labels are not inherited."""
    if a is None and b is None:
        return None
    if a is None:
        return replace(b, label="")
    if b is None:
        return replace(a, label="")
    return Context(neuron=a.neuron, layer=max(a.layer, b.layer), network=a.network)


_ids = itertools.count(1)
_ids_lock = threading.Lock()


def _next_id() -> int:
    with _ids_lock:
        return next(_ids)


class Value:
    """
    Scalar node in a computation graph.

    Leaves are built with Value(data). Every operation returns a new node; the
    arguments are never modified except for their grad during backward().
    """

    __slots__ = (
        "id", "_data", "grad", "operation", "kind", "context",
        "exponent", "_args", "_arg_data", "_operands",
    )

    def __init__(self, data, kind: Kind = Kind.VALUE, label: str = "",
                 context: Optional[Context] = None):
        if label:
            context = replace(context, label=label) if context else Context(label=label)
        self.id = _next_id()
        self._data = to_decimal(data)
        self.grad = ZERO
        self.operation = Operation.NOOP
        self.kind = kind
        self.context = context
        self.exponent: Optional[Decimal] = None
        self._args: tuple["Value", ...] = ()
        self._arg_data: tuple[Decimal, ...] = ()
        self._operands: tuple["Value", ...] = ()

    @classmethod
    def _result(cls, data: Decimal, operation: Operation, args: tuple,
                context: Optional[Context], exponent: Optional[Decimal] = None) -> "Value":
        out = cls(data, Kind.VALUE, context=context)
        out.operation = operation
        out.exponent = exponent
        out._args = args
        out._arg_data = tuple(a._data for a in args)

        # Operands are deduplicated by identity; args keep every position.
        seen = set()
        operands = []
        for arg in args:
            if arg.id in seen:
                continue
            seen.add(arg.id)
            operands.append(arg)
        out._operands = tuple(operands)
        return out

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def data(self) -> Decimal:
        return self._data

    @data.setter
    def data(self, value) -> None:
        if self._operands:
            raise AttributeError("data of a computed node cannot be changed")
        self._data = to_decimal(value)

    @property
    def operands(self) -> tuple["Value", ...]:
        """Direct predecessors, each at most once."""
        return self._operands

    @property
    def args(self) -> tuple["Value", ...]:
        """Arguments exactly as passed to the operation (may repeat)."""
        return self._args

    @property
    def is_leaf(self) -> bool:
        return not self._operands

    @property
    def label(self) -> str:
        return self.context.label if self.context else ""

    @property
    def layer(self) -> int:
        return self.context.layer if self.context else -1

    def zero_grad(self) -> None:
        self.grad = ZERO

    def __float__(self) -> float:
        return float(self._data)

    def __repr__(self) -> str:
        return f"Value(data={self._data:.4f}, grad={self.grad:.4f}, op={self.operation})"

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def add(self, other) -> "Value":
        other = _wrap(other)
        return Value._result(
            self._data + other._data, Operation.ADD, (self, other),
            merge_contexts(self.context, other.context),
        )

    def sub(self, other) -> "Value":
        other = _wrap(other)
        return Value._result(
            self._data - other._data, Operation.SUB, (self, other),
            merge_contexts(self.context, other.context),
        )

    def mul(self, other) -> "Value":
        other = _wrap(other)
        return Value._result(
            self._data * other._data, Operation.MUL, (self, other),
            merge_contexts(self.context, other.context),
        )

    def div(self, other) -> "Value":
        """
        self / other, differentiated as self * other ** -1.

        The reciprocal is a real POW node over `other`, so gradient reaches
        `other` and everything it was computed from.
        """
        other = _wrap(other)
        if other._data == ZERO:
            raise DivisionByZero(f"division by zero: {self._data} / 0")
        reciprocal = other.pow(-1)
        return Value._result(
            self._data / other._data, Operation.DIV, (self, reciprocal),
            merge_contexts(self.context, other.context),
        )

    def pow(self, exponent) -> "Value":
        if isinstance(exponent, Value):
            raise TypeError("only constant int/float/Decimal powers supported")
        e = to_decimal(exponent)
        if self._data == ZERO and e < ZERO:
            raise DivisionByZero(f"cannot raise 0 to negative power {e}")
        try:
            data = self._data ** e
        except InvalidOperation as exc:
            raise ValueError(f"cannot raise {self._data} to {e}") from exc
        context = replace(self.context, label="") if self.context else None
        return Value._result(data, Operation.POW, (self,), context, exponent=e)

    def relu(self) -> "Value":
        context = replace(self.context, label="") if self.context else None
        data = self._data if self._data > ZERO else ZERO
        return Value._result(data, Operation.RELU, (self,), context)

    def __add__(self, other):
        return self.add(other)

    def __radd__(self, other):
        return _wrap(other).add(self)

    def __sub__(self, other):
        return self.sub(other)

    def __rsub__(self, other):
        return _wrap(other).sub(self)

    def __mul__(self, other):
        return self.mul(other)

    def __rmul__(self, other):
        return _wrap(other).mul(self)

    def __truediv__(self, other):
        return self.div(other)

    def __rtruediv__(self, other):
        return _wrap(other).div(self)

    def __pow__(self, exponent):
        return self.pow(exponent)

    def __neg__(self):
        return self.mul(-1)

    def backward(self) -> None:
        """Compute gradients of every reachable node w.r.t. this one."""
        backward(self)


def _wrap(other) -> Value:
    return other if isinstance(other, Value) else Value(other)


# ============================================================================
# BACKWARD RULES
# ============================================================================

def _add_rule(node: Value, dout: Decimal) -> None:
    for arg in node._args:
        arg.grad += dout


def _sub_rule(node: Value, dout: Decimal) -> None:
    a, b = node._args
    a.grad += dout
    b.grad -= dout


def _mul_rule(node: Value, dout: Decimal) -> None:
    a, b = node._args
    a_data, b_data = node._arg_data
    a.grad += b_data * dout
    b.grad += a_data * dout


def _pow_rule(node: Value, dout: Decimal) -> None:
    (a,) = node._args
    (a_data,) = node._arg_data
    e = node.exponent
    if e == ONE:
        local = ONE
    elif a_data == ZERO and e < ONE:
        raise DivisionByZero(f"derivative of 0 ** {e} is undefined")
    else:
        local = e * a_data ** (e - ONE)
    a.grad += local * dout


def _relu_rule(node: Value, dout: Decimal) -> None:
    (a,) = node._args
    a.grad += (ONE if node._data > ZERO else ZERO) * dout


# DIV nodes hold (numerator, reciprocal), so they share the product rule.
_RULES: dict[Operation, Callable[[Value, Decimal], None]] = {
    Operation.ADD: _add_rule,
    Operation.SUB: _sub_rule,
    Operation.MUL: _mul_rule,
    Operation.DIV: _mul_rule,
    Operation.POW: _pow_rule,
    Operation.RELU: _relu_rule,
}


def propagate(node: Value) -> None:
    """Push node.grad onto its arguments according to node.operation."""
    rule = _RULES.get(node.operation)
    if rule is None:
        return
    rule(node, node.grad)


# ============================================================================
# TRAVERSAL
# ============================================================================

def topological_order(root: Value) -> list[Value]:
    """
    Nodes reachable from root, every node after all of its operands.

    Iterative post-order DFS, deduplicated on node id.
    """
    order: list[Value] = []
    visited: set[int] = set()
    stack: list[tuple[Value, bool]] = [(root, False)]

    while stack:
        node, expanded = stack.pop()
        if expanded:
            order.append(node)
            continue
        if node.id in visited:
            continue
        visited.add(node.id)
        stack.append((node, True))
        # Reversed so operands are visited in their natural order.
        for operand in reversed(node._operands):
            if operand.id not in visited:
                stack.append((operand, False))

    return order


def backward(root: Value) -> list[Value]:
    """
    Reverse-mode pass from root.

    Seeds root.grad = 1 and runs every node's rule exactly once, consumers
    before producers. Gradients accumulate; callers zero leaves between passes.

    Returns:
        The topological order that was walked (inputs first).
    """
    order = topological_order(root)
    root.grad = ONE
    for node in reversed(order):
        propagate(node)
    return order
