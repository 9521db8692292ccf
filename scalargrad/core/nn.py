"""
Network composition: Neuron -> Layer -> MLP.

Every neuron is ReLU(b + sum(w_i * x_i)). Parameters are leaf Values owned by
their neuron and survive across steps; everything forward() builds is rebuilt
on each call.
"""

import random
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from scalargrad.core.autograd import Context, Kind, Value
from scalargrad.errors import DimensionMismatch


def _random_parameter(rng: random.Random, init_range: float, kind: Kind,
                      context: Optional[Context], label: str) -> Value:
    """Uniform in [-init_range, init_range]."""
    value = Decimal(repr(rng.uniform(-init_range, init_range)))
    ctx = Context(
        label=label,
        neuron=context.neuron if context else "",
        layer=context.layer if context else -1,
        network=context.network if context else "",
    )
    return Value(value, kind=kind, context=ctx)


def as_values(numbers: Iterable, kind: Kind = Kind.INPUT, label: str = "x") -> list[Value]:
    """Wrap plain numbers into labelled leaves (x_0, x_1, ...). Values pass through."""
    out = []
    for i, n in enumerate(numbers):
        if isinstance(n, Value):
            out.append(n)
        else:
            out.append(Value(n, kind=kind, label=f"{label}_{i}"))
    return out


class Neuron:
    """d weights and one bias, with a ReLU activation."""

    def __init__(self, n_inputs: int, context: Optional[Context] = None,
                 rng: Optional[random.Random] = None, init_range: float = 1.0):
        if n_inputs < 1:
            raise ValueError(f"a neuron needs at least one input, got {n_inputs}")
        rng = rng or random.Random()
        self.d = n_inputs
        self.context = context
        self.weights = [
            _random_parameter(rng, init_range, Kind.WEIGHT, context, f"w{i}")
            for i in range(n_inputs)
        ]
        self.bias = _random_parameter(rng, init_range, Kind.BIAS, context, "b")

    def forward(self, inputs: Sequence[Value]) -> Value:
        if len(inputs) != self.d:
            raise DimensionMismatch(len(inputs), self.d)

        # w * x + b
        total = self.bias
        for w, x in zip(self.weights, inputs):
            total = total + w * x
        return total.relu()

    __call__ = forward

    def parameters(self) -> list[Value]:
        return [*self.weights, self.bias]

    def __repr__(self) -> str:
        return f"Neuron(d={self.d})"


class Layer:
    """Neurons sharing the same input; one output per neuron."""

    def __init__(self, n_inputs: int, n_outputs: int, index: int = -1,
                 rng: Optional[random.Random] = None, init_range: float = 1.0,
                 network: str = ""):
        rng = rng or random.Random()
        self.index = index
        self.neurons = [
            Neuron(
                n_inputs,
                context=Context(neuron=str(i), layer=index, network=network),
                rng=rng,
                init_range=init_range,
            )
            for i in range(n_outputs)
        ]

    @property
    def n_inputs(self) -> int:
        return self.neurons[0].d

    @property
    def n_outputs(self) -> int:
        return len(self.neurons)

    def forward(self, inputs: Sequence[Value]) -> list[Value]:
        return [n.forward(inputs) for n in self.neurons]

    __call__ = forward

    def parameters(self) -> list[Value]:
        params = []
        for n in self.neurons:
            params.extend(n.parameters())
        return params

    def __repr__(self) -> str:
        return f"Layer({self.n_inputs} -> {self.n_outputs})"


class MLP:
    """Layers chained so that layer i's outputs feed layer i+1."""

    def __init__(self, n_inputs: int, sizes: Sequence[int],
                 rng: Optional[random.Random] = None, init_range: float = 1.0,
                 network: str = ""):
        if not sizes:
            raise ValueError("an MLP needs at least one layer")
        rng = rng or random.Random()
        dims = [n_inputs, *sizes]
        self.layers = [
            Layer(dims[i], dims[i + 1], index=i, rng=rng,
                  init_range=init_range, network=network)
            for i in range(len(sizes))
        ]

    @property
    def n_inputs(self) -> int:
        return self.layers[0].n_inputs

    @property
    def n_outputs(self) -> int:
        return self.layers[-1].n_outputs

    def forward(self, inputs: Sequence[Value]) -> list[Value]:
        out = list(inputs)
        for layer in self.layers:
            out = layer.forward(out)
        return out

    __call__ = forward

    def parameters(self) -> list[Value]:
        """Layer order, then neuron order, weights before bias."""
        params = []
        for layer in self.layers:
            params.extend(layer.parameters())
        return params

    def __repr__(self) -> str:
        return f"MLP([{', '.join(str(l.n_outputs) for l in self.layers)}])"
