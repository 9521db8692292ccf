"""
Tests for network composition, loss, optimizer and the training state machine.
"""

from decimal import Decimal

import pytest


def set_all(params, value):
    for p in params:
        p.data = value


class RecordingObserver:
    def __init__(self):
        self.transitions = []
        self.completed = []
        self.failed = []

    def on_phase_change(self, network, old, new):
        self.transitions.append((old.value, new.value))

    def on_step_complete(self, network, loss_value, elapsed):
        self.completed.append(loss_value.data)

    def on_step_failed(self, network, error):
        self.failed.append(error.stage)


class BrokenObserver:
    def on_phase_change(self, network, old, new):
        raise RuntimeError("observer bug")

    def on_step_complete(self, network, loss_value, elapsed):
        raise RuntimeError("observer bug")

    def on_step_failed(self, network, error):
        raise RuntimeError("observer bug")


@pytest.fixture
def network():
    """2 -> 3 -> 1 network with every parameter at 0.5 (all ReLUs active)."""
    from scalargrad.config import GradConfig
    from scalargrad.core.network import NeuralNetwork

    net = NeuralNetwork(GradConfig(input_shape=2, shape=[3, 1], learning_rate=0.01, seed=1))
    set_all(net.parameters(), "0.5")
    return net


# ============================================================================
# COMPOSITION
# ============================================================================

class TestComposition:
    def test_neuron_forward(self):
        from scalargrad.core.autograd import Value
        from scalargrad.core.nn import Neuron
        n = Neuron(2)
        n.weights[0].data = 2
        n.weights[1].data = -1
        n.bias.data = 1
        out = n.forward([Value(3), Value(4)])
        assert out.data == 3  # relu(1 + 6 - 4)

        n.bias.data = -10
        assert n([Value(3), Value(4)]).data == 0

    def test_neuron_dimension_mismatch(self):
        from scalargrad.core.autograd import Value
        from scalargrad.core.nn import Neuron
        from scalargrad.errors import DimensionMismatch
        n = Neuron(3)
        with pytest.raises(DimensionMismatch) as exc_info:
            n.forward([Value(1)])
        assert exc_info.value.got == 1
        assert exc_info.value.expected == 3
        assert isinstance(exc_info.value, ValueError)

    def test_layer_shape(self):
        from scalargrad.core.nn import Layer, as_values
        layer = Layer(3, 2)
        assert layer.n_inputs == 3
        assert layer.n_outputs == 2
        out = layer.forward(as_values([1, 2, 3]))
        assert len(out) == 2

    def test_mlp_shape_and_parameter_count(self):
        from scalargrad.core.nn import MLP, as_values
        mlp = MLP(3, [3, 3, 3])
        assert mlp.n_inputs == 3
        assert mlp.n_outputs == 3
        assert len(mlp.parameters()) == 3 * 3 * (3 + 1)
        assert len(mlp.forward(as_values([0.1, 0.2, 0.3]))) == 3

        mlp = MLP(4, [5, 2])
        assert len(mlp.parameters()) == 5 * (4 + 1) + 2 * (5 + 1)

    def test_parameter_order(self):
        from scalargrad.core.autograd import Kind
        from scalargrad.core.nn import MLP
        mlp = MLP(2, [2, 1])
        params = mlp.parameters()
        expected = []
        for layer in mlp.layers:
            for neuron in layer.neurons:
                expected.extend(neuron.weights)
                expected.append(neuron.bias)
        assert [p.id for p in params] == [p.id for p in expected]
        kinds = [p.kind for p in params[:3]]
        assert kinds == [Kind.WEIGHT, Kind.WEIGHT, Kind.BIAS]
        assert params[0].context.layer == 0
        assert params[-1].context.layer == 1
        assert params[-1].label == "b"

    def test_parameters_stable(self, network):
        first = network.parameters()
        second = network.parameters()
        assert len(first) == len(second)
        assert all(a is b for a, b in zip(first, second))

    def test_seeded_init_is_deterministic(self):
        from scalargrad.config import GradConfig
        from scalargrad.core.network import NeuralNetwork
        a = NeuralNetwork(GradConfig(seed=42))
        b = NeuralNetwork(GradConfig(seed=42))
        assert [p.data for p in a.parameters()] == [p.data for p in b.parameters()]
        assert all(-1 <= p.data <= 1 for p in a.parameters())

    def test_as_values(self):
        from scalargrad.core.autograd import Kind, Value
        from scalargrad.core.nn import as_values
        existing = Value(7)
        values = as_values([1, existing, 0.5])
        assert values[1] is existing
        assert values[0].label == "x_0"
        assert values[0].kind is Kind.INPUT
        assert values[2].data == Decimal("0.5")


# ============================================================================
# LOSS
# ============================================================================

class TestMeanSquaredError:
    def test_zero_loss(self):
        from scalargrad.core.autograd import Value
        from scalargrad.core.loss import mean_squared_error
        output = [Value(1), Value(2)]
        loss = mean_squared_error(output, [Value(1), Value(2)])
        assert loss.data == 0
        loss.backward()
        assert all(y.grad == 0 for y in output)

    def test_single_output(self):
        from scalargrad.core.autograd import Value
        from scalargrad.core.loss import mean_squared_error
        y = Value(3)
        loss = mean_squared_error([y], [Value(1)])
        assert loss.data == 4
        loss.backward()
        assert y.grad == 4  # 2 * (3 - 1) / 1

    def test_mean_over_outputs(self):
        from scalargrad.core.autograd import Value
        from scalargrad.core.loss import mean_squared_error
        loss = mean_squared_error([Value(3), Value(0)], [1, 2])
        assert loss.data == 4  # (4 + 4) / 2

    def test_empty_output(self):
        from scalargrad.core.loss import mean_squared_error
        from scalargrad.errors import EmptyOutput
        with pytest.raises(EmptyOutput):
            mean_squared_error([], [])

    def test_shape_mismatch(self):
        from scalargrad.core.autograd import Value
        from scalargrad.core.loss import mean_squared_error
        from scalargrad.errors import ShapeMismatch
        with pytest.raises(ShapeMismatch):
            mean_squared_error([Value(1), Value(2)], [Value(1)])


# ============================================================================
# OPTIMIZER
# ============================================================================

class TestSGD:
    def test_update(self):
        from scalargrad.core.autograd import Value
        from scalargrad.core.optimizer import SGD
        p = Value(5.0)
        p.grad = Decimal("2.0")
        SGD(0.01)([p])
        assert p.data == Decimal("4.98")

    def test_default_rate(self):
        from scalargrad.core.optimizer import DEFAULT_LEARNING_RATE, SGD
        assert SGD().learning_rate == DEFAULT_LEARNING_RATE

    def test_rejects_bad_rate(self):
        from scalargrad.core.optimizer import SGD
        with pytest.raises(ValueError):
            SGD(0)
        with pytest.raises(ValueError):
            SGD(-0.1)

    def test_validates_before_mutating(self):
        from scalargrad.core.autograd import Value
        from scalargrad.core.optimizer import SGD
        leaf = Value(1)
        leaf.grad = Decimal(1)
        computed = Value(1) + Value(2)
        with pytest.raises(ValueError):
            SGD(0.1)([leaf, computed])
        assert leaf.data == 1

    def test_rejects_non_finite_grad(self):
        from scalargrad.core.autograd import Value
        from scalargrad.core.optimizer import SGD
        p = Value(1)
        p.grad = Decimal("NaN")
        with pytest.raises(ArithmeticError):
            SGD(0.1)([p])
        assert p.data == 1


# ============================================================================
# PHASE CONTROLLER
# ============================================================================

class TestPhases:
    def test_starts_static(self, network):
        from scalargrad.core.network import Phase
        assert network.phase is Phase.STATIC
        assert network.output is None
        assert network.input_shape == 2
        assert network.output_shape == 1
        assert network.layers == 2
        assert network.shape == [3, 1]

    def test_backward_before_forward(self, network):
        from scalargrad.core.autograd import Value
        from scalargrad.core.network import Phase
        from scalargrad.errors import InvalidPhaseTransition
        with pytest.raises(InvalidPhaseTransition) as exc_info:
            network.backward(Value(1))
        assert network.phase is Phase.STATIC
        assert exc_info.value.current is Phase.STATIC
        assert exc_info.value.requested is Phase.BACKWARD

    def test_optimize_before_backward(self, network):
        from scalargrad.core.network import Phase
        from scalargrad.errors import InvalidPhaseTransition
        with pytest.raises(InvalidPhaseTransition):
            network.optimize()
        network.forward([1, 1])
        with pytest.raises(InvalidPhaseTransition):
            network.optimize()
        assert network.phase is Phase.FORWARD

    def test_forward_twice(self, network):
        from scalargrad.core.network import Phase
        from scalargrad.errors import InvalidPhaseTransition
        out = network.forward([1, 1])
        with pytest.raises(InvalidPhaseTransition):
            network.forward([2, 2])
        assert network.phase is Phase.FORWARD
        assert network.output is out

    def test_loss_needs_forward(self, network):
        from scalargrad.errors import InvalidPhaseTransition
        with pytest.raises(InvalidPhaseTransition):
            network.compute_loss([1])

    def test_stages_in_order(self, network):
        from scalargrad.core.network import Phase
        before = [p.data for p in network.parameters()]

        output = network.forward([1, 1])
        assert network.phase is Phase.FORWARD
        assert output[0].data == Decimal("2.75")  # hidden 1.5 each -> 0.5 + 3 * 0.75

        loss = network.compute_loss([2])
        assert network.phase is Phase.FORWARD
        assert loss.data == Decimal("0.5625")

        network.backward(loss)
        assert network.phase is Phase.BACKWARD
        assert any(p.grad != 0 for p in network.parameters())

        network.optimize()
        assert network.phase is Phase.STATIC
        assert network.output is None
        assert all(p.grad == 0 for p in network.parameters())
        after = [p.data for p in network.parameters()]
        assert after != before

    def test_reset(self, network):
        from scalargrad.core.network import Phase
        network.forward([1, 1])
        network.reset()
        assert network.phase is Phase.STATIC
        assert network.output is None
        network.forward([1, 1])

    def test_stages_rejected_while_step_runs(self, network):
        from scalargrad.core.autograd import Value
        from scalargrad.core.network import Phase
        from scalargrad.errors import InvalidPhaseTransition
        network._step_lock.acquire()
        try:
            with pytest.raises(InvalidPhaseTransition):
                network.forward([1, 1])
            with pytest.raises(InvalidPhaseTransition):
                network.compute_loss([2])
            with pytest.raises(InvalidPhaseTransition):
                network.backward(Value(1))
            with pytest.raises(InvalidPhaseTransition):
                network.optimize()
            with pytest.raises(InvalidPhaseTransition):
                network.reset()
        finally:
            network._step_lock.release()
        assert network.phase is Phase.STATIC
        assert network.output is None

    def test_stage_releases_lock_on_error(self, network):
        from scalargrad.errors import DimensionMismatch
        with pytest.raises(DimensionMismatch):
            network.forward([1])
        assert not network._step_lock.locked()
        network.forward([1, 1])

    def test_loss_must_return_value(self, network):
        network.loss = lambda output, expectation: Decimal(0)
        network.forward([1, 1])
        with pytest.raises(TypeError):
            network.compute_loss([2])


# ============================================================================
# STEP
# ============================================================================

class TestStep:
    def test_step(self, network):
        from scalargrad.core.network import Phase
        loss = network.step([1, 1], [2])
        assert loss.data == Decimal("0.5625")
        assert network.phase is Phase.STATIC
        assert network.steps == 1
        assert all(p.grad == 0 for p in network.parameters())

    def test_loss_decreases(self, network):
        losses = [network.step([1, 1], [2]).data for _ in range(10)]
        assert losses[-1] < losses[0]

    def test_forward_failure_leaves_parameters(self, network):
        from scalargrad.core.network import Phase
        from scalargrad.errors import DimensionMismatch, StepError
        before = [p.data for p in network.parameters()]
        with pytest.raises(StepError) as exc_info:
            network.step([1, 1, 1], [2])
        assert exc_info.value.stage == "forward"
        assert isinstance(exc_info.value.cause, DimensionMismatch)
        assert network.phase is Phase.STATIC
        assert [p.data for p in network.parameters()] == before

    def test_loss_failure_then_retry(self, network):
        from scalargrad.core.network import Phase
        from scalargrad.errors import ShapeMismatch, StepError
        before = [p.data for p in network.parameters()]
        with pytest.raises(StepError) as exc_info:
            network.step([1, 1], [2, 3])
        assert exc_info.value.stage == "loss"
        assert isinstance(exc_info.value.cause, ShapeMismatch)
        assert network.phase is Phase.FORWARD
        assert [p.data for p in network.parameters()] == before

        network.step([1, 1], [2])
        assert network.phase is Phase.STATIC
        assert network.steps == 1

    def test_optimizer_failure(self):
        from scalargrad.config import GradConfig
        from scalargrad.core.network import NeuralNetwork, Phase
        from scalargrad.errors import StepError

        def broken(parameters):
            raise ValueError("nope")

        net = NeuralNetwork(GradConfig(input_shape=1, shape=[1], seed=0), optimizer=broken)
        with pytest.raises(StepError) as exc_info:
            net.step([1], [1])
        assert exc_info.value.stage == "optimize"
        assert net.phase is Phase.OPTIMIZE

    def test_custom_loss(self, network):
        def total_error(output, expectation):
            return sum((y - t for y, t in zip(output, expectation)), start=output[0] * 0)

        network.loss = total_error
        loss = network.step([1, 1], [1])
        assert loss.data == Decimal("1.75")

    def test_non_value_loss_is_a_loss_failure(self, network):
        from scalargrad.core.network import Phase
        from scalargrad.errors import StepError
        recorder = RecordingObserver()
        network.add_observer(recorder)
        network.loss = lambda output, expectation: output[0].data
        with pytest.raises(StepError) as exc_info:
            network.step([1, 1], [2])
        assert exc_info.value.stage == "loss"
        assert isinstance(exc_info.value.cause, TypeError)
        assert recorder.failed == ["loss"]
        assert network.phase is Phase.FORWARD

        from scalargrad.core.loss import mean_squared_error
        network.loss = mean_squared_error
        network.step([1, 1], [2])
        assert network.phase is Phase.STATIC

    def test_concurrent_step_rejected(self, network):
        from scalargrad.core.network import Phase
        from scalargrad.errors import InvalidPhaseTransition
        network._step_lock.acquire()
        try:
            with pytest.raises(InvalidPhaseTransition):
                network.step([1, 1], [2])
        finally:
            network._step_lock.release()
        assert network.phase is Phase.STATIC
        network.step([1, 1], [2])


# ============================================================================
# OBSERVERS
# ============================================================================

class TestObservers:
    def test_phase_sequence(self, network):
        recorder = RecordingObserver()
        network.add_observer(recorder)
        network.step([1, 1], [2])
        assert recorder.transitions == [
            ("static", "forward"),
            ("forward", "backward"),
            ("backward", "optimize"),
            ("optimize", "static"),
        ]
        assert recorder.completed == [Decimal("0.5625")]

    def test_failures_reported(self, network):
        from scalargrad.errors import StepError
        recorder = RecordingObserver()
        network.add_observer(recorder)
        with pytest.raises(StepError):
            network.step([1], [2])
        assert recorder.failed == ["forward"]

    def test_broken_observer_does_not_break_step(self, network):
        from scalargrad.core.network import Phase
        network.add_observer(BrokenObserver())
        network.step([1, 1], [2])
        assert network.phase is Phase.STATIC

    def test_stats_observer(self, network):
        from scalargrad.core.observers import StatsObserver
        from scalargrad.errors import StepError
        stats = StatsObserver()
        network.add_observer(stats)
        network.step([1, 1], [2])
        with pytest.raises(StepError):
            network.step([1, 1], [])
        snap = stats.snapshot()
        assert snap["steps_total"] == 1
        assert snap["failures_total"] == 1
        assert snap["failures_by_stage"] == {"loss": 1}
        assert snap["last_loss"] == "0.5625"
        assert snap["phase"] == "forward"
        assert snap["mean_step_latency_ms"] is not None

    def test_logging_observer(self, network, caplog):
        import logging
        from scalargrad.core.observers import LoggingObserver
        network.add_observer(LoggingObserver())
        with caplog.at_level(logging.INFO, logger="scalargrad.observers"):
            network.step([1, 1], [2])
        assert any("Step 1" in r.message for r in caplog.records)
