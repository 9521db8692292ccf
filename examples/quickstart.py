"""
scalargrad quickstart: build a network, train it a few steps, inspect the graph.

Uses the in-memory grapher so it runs without the Graphviz binary. Swap in
grapher="graphviz" to get SVG output (see scalargrad/providers/graphviz.py).

    python examples/quickstart.py
"""

import json
import random

import scalargrad
from scalargrad.config import GradConfig
from scalargrad.core import Value, mean_squared_error
from scalargrad.lifecycle.train import run_train_job


# -- Step 1: Autograd on its own ---------------------------------------------

a = Value(2, label="a")
b = Value(-3, label="b")
c = a * b
d = c + c  # c is used twice, so c.grad ends up at 2
d.backward()
print(f"d = {d.data}, a.grad = {a.grad}, b.grad = {b.grad}, c.grad = {c.grad}")


# -- Step 2: Initialize a network --------------------------------------------

config = GradConfig(input_shape=2, shape=[4, 1], learning_rate=0.05, seed=7)
network = scalargrad.init(config, grapher="memory")
print(f"\nNetwork: {network} with {len(network.parameters())} parameters")


# -- Step 3: One step by hand ------------------------------------------------

loss = network.step([0.5, -0.25], [0.75])
print(f"First step loss: {loss.data:.6f} (phase back to {network.phase.value})")

nodes, edges = scalargrad.publish_graph(loss)
print(f"Published graph: {nodes} nodes, {edges} edges")
rendered = json.loads(scalargrad.get_grapher().render())
print(f"First rendered node: {rendered['nodes'][0]}")


# -- Step 4: Train on a tiny dataset -----------------------------------------

rng = random.Random(1)
samples = []
for _ in range(16):
    x1, x2 = rng.uniform(0, 1), rng.uniform(0, 1)
    samples.append(([x1, x2], [(x1 + x2) / 2]))

stats = run_train_job(network, samples, cancel_check=lambda: False, max_steps=100, rng=rng)
print(f"\nTraining: {stats['steps']} steps, loss {stats['initial_loss']:.6f} -> {stats['final_loss']:.6f}")


# -- Step 5: Stats and errors ------------------------------------------------

print(f"Stats: {scalargrad.get_stats().snapshot()['steps_total']} steps recorded")

try:
    mean_squared_error([], [])
except ValueError as exc:
    print(f"Empty output is rejected: {exc!r}")

print("\nDone!")
