import unittest
import numpy as np

from src.tapegrad.domain._errors import (
    GradientRuleError,
    ShapeMismatchError,
    TapeConsumedError,
    UnregisteredGradientError,
)
from src.tapegrad.domain._gradient_function import GradientFunction
from src.tapegrad.domain._op_type import OpType
from src.tapegrad.infrastructure.gradients import GradientRegistry, AddGrad, SqrtGrad
from src.tapegrad.infrastructure.ops import EagerContext
from src.tapegrad.infrastructure.ops import _math_ops as ops
from src.tapegrad.infrastructure.tape import Tape, RecordingContext
from src.tapegrad.infrastructure.tensor._tensor_handle import TensorHandle


def scalar_tensor(x: float) -> TensorHandle:
    return TensorHandle.scalar(x)


def tensor_from_np(arr) -> TensorHandle:
    return TensorHandle.from_numpy(np.asarray(arr, dtype=np.float32))


def as_np(t: TensorHandle) -> np.ndarray:
    return np.asarray(t.to_numpy(), dtype=np.float32)


class _RaisingGrad(GradientFunction):
    def compute(self, ctx, grad_outputs):
        raise ArithmeticError("rule exploded")


class _TooFewGrads(GradientFunction):
    def compute(self, ctx, grad_outputs):
        return []


class _WrongShapeGrad(GradientFunction):
    def compute(self, ctx, grad_outputs):
        return [TensorHandle.zeros((7,))]


class TestTapeRecording(unittest.TestCase):
    def setUp(self) -> None:
        self.ctx = EagerContext()

    def test_watch_is_idempotent(self):
        tape = Tape()
        x = scalar_tensor(1.0)
        tape.watch(x)
        tape.watch(x)
        self.assertTrue(tape.is_watched(x))
        self.assertEqual(tape.watched_ids, frozenset({x.id}))

    def test_watch_rejects_non_handles(self):
        with self.assertRaises(TypeError):
            Tape().watch(np.array(1.0))

    def test_records_in_execution_order(self):
        tape = Tape()
        rctx = RecordingContext(self.ctx, tape)
        x = scalar_tensor(2.0)
        y = ops.exp(rctx, x)
        z = ops.neg(rctx, y)

        self.assertEqual(len(tape), 2)
        first, second = tape.records
        self.assertIs(first.op_type, OpType.EXP)
        self.assertEqual(first.input_ids, (x.id,))
        self.assertEqual(first.output_ids, (y.id,))
        self.assertIs(second.op_type, OpType.NEG)
        self.assertEqual(second.input_ids, (y.id,))
        self.assertEqual(second.output_ids, (z.id,))
        self.assertIs(tape.producer_of(z), second)
        self.assertIsNone(tape.producer_of(x))

    def test_record_operation_resolves_string_op_type(self):
        tape = Tape()
        x, y = scalar_tensor(1.0), scalar_tensor(2.0)
        record = tape.record_operation("AddV2", [x, y], [scalar_tensor(3.0)])
        self.assertIs(record.op_type, OpType.ADD)

    def test_records_are_immutable(self):
        tape = Tape()
        x = scalar_tensor(1.0)
        record = tape.record_operation(OpType.NEG, [x], [scalar_tensor(-1.0)])
        with self.assertRaises(Exception):
            record.op_type = OpType.EXP  # type: ignore[misc]
        with self.assertRaises(TypeError):
            record.attrs["k"] = 1  # type: ignore[index]

    def test_stop_recording(self):
        tape = Tape()
        rctx = RecordingContext(self.ctx, tape)
        x = scalar_tensor(2.0)
        with tape.stop_recording():
            self.assertFalse(tape.is_recording)
            y = ops.exp(rctx, x)
        self.assertTrue(tape.is_recording)
        self.assertEqual(len(tape), 0)
        self.assertAlmostEqual(y.item(), float(np.exp(np.float32(2.0))), places=5)

    def test_recording_on_consumed_tape_fails(self):
        tape = Tape()
        rctx = RecordingContext(self.ctx, tape)
        x = scalar_tensor(2.0)
        tape.watch(x)
        y = ops.exp(rctx, x)
        tape.compute_gradient(self.ctx, [y], [x])

        self.assertTrue(tape.consumed)
        with self.assertRaises(TapeConsumedError):
            ops.neg(rctx, y)


class TestComputeGradient(unittest.TestCase):
    def setUp(self) -> None:
        self.ctx = EagerContext()

    def _record(self, tape):
        return RecordingContext(self.ctx, tape)

    def test_sqrt_end_to_end(self):
        x = scalar_tensor(2.0)
        tape = Tape()
        tape.watch(x)
        y = ops.sqrt(self._record(tape), x)

        self.assertAlmostEqual(y.item(), 1.4142135, places=5)
        (dx,) = tape.compute_gradient(self.ctx, targets=[y], sources=[x])
        self.assertEqual(dx.shape, ())
        self.assertAlmostEqual(dx.item(), 1.0 / (2.0 * 1.4142135), places=5)

    def test_non_persistent_tape_is_single_use(self):
        x = scalar_tensor(2.0)
        tape = Tape(persistent=False)
        tape.watch(x)
        y = ops.exp(self._record(tape), x)

        tape.compute_gradient(self.ctx, [y], [x])
        with self.assertRaises(TapeConsumedError) as ctx:
            tape.compute_gradient(self.ctx, [y], [x])
        self.assertEqual(ctx.exception.stage, "tape reuse")

    def test_persistent_tape_allows_repeated_calls(self):
        x = scalar_tensor(2.0)
        tape = Tape(persistent=True)
        tape.watch(x)
        y = ops.exp(self._record(tape), x)

        (g1,) = tape.compute_gradient(self.ctx, [y], [x])
        (g2,) = tape.compute_gradient(self.ctx, [y], [x])
        self.assertFalse(tape.consumed)
        np.testing.assert_array_equal(as_np(g1), as_np(g2))
        np.testing.assert_allclose(as_np(g1), np.exp(2.0), rtol=1e-6)

    def test_failed_call_still_consumes_tape(self):
        x = scalar_tensor(2.0)
        tape = Tape(registry=GradientRegistry())
        tape.watch(x)
        y = ops.exp(self._record(tape), x)

        with self.assertRaises(UnregisteredGradientError):
            tape.compute_gradient(self.ctx, [y], [x])
        with self.assertRaises(TapeConsumedError):
            tape.compute_gradient(self.ctx, [y], [x])

    def test_same_tensor_two_consumers_sums_contributions(self):
        x = scalar_tensor(2.0)
        tape = Tape()
        tape.watch(x)
        y = ops.add(self._record(tape), x, x)

        (dx,) = tape.compute_gradient(self.ctx, [y], [x])
        self.assertEqual(dx.item(), 2.0)

    def test_fan_out_through_different_ops(self):
        # f(x) = exp(x) * sqrt(x), f'(x) = exp(x) * sqrt(x) + exp(x) / (2 sqrt(x))
        x = scalar_tensor(2.0)
        tape = Tape()
        tape.watch(x)
        rctx = self._record(tape)
        y = ops.mul(rctx, ops.exp(rctx, x), ops.sqrt(rctx, x))

        (dx,) = tape.compute_gradient(self.ctx, [y], [x])
        expected = np.exp(2.0) * np.sqrt(2.0) + np.exp(2.0) / (2.0 * np.sqrt(2.0))
        np.testing.assert_allclose(as_np(dx), expected, rtol=1e-5)

    def test_watched_but_unused_source_gets_zeros(self):
        x = scalar_tensor(2.0)
        unused = tensor_from_np([[1.0, 2.0], [3.0, 4.0]])
        tape = Tape()
        tape.watch(x)
        tape.watch(unused)
        y = ops.exp(self._record(tape), x)

        dx, dunused = tape.compute_gradient(self.ctx, [y], [x, unused])
        self.assertEqual(dunused.shape, (2, 2))
        np.testing.assert_array_equal(as_np(dunused), np.zeros((2, 2)))
        self.assertGreater(dx.item(), 0.0)

    def test_unwatched_source_gets_zeros(self):
        x = scalar_tensor(2.0)
        tape = Tape()
        y = ops.exp(self._record(tape), x)

        (dx,) = tape.compute_gradient(self.ctx, [y], [x])
        self.assertEqual(dx.item(), 0.0)

    def test_results_follow_source_order(self):
        x, y = scalar_tensor(2.0), scalar_tensor(5.0)
        tape = Tape()
        tape.watch(x)
        tape.watch(y)
        z = ops.mul(self._record(tape), x, y)

        dy, dx = tape.compute_gradient(self.ctx, [z], [y, x])
        self.assertEqual(dy.item(), 2.0)
        self.assertEqual(dx.item(), 5.0)

    def test_unregistered_gradient_is_an_error(self):
        x = scalar_tensor(2.0)
        registry = GradientRegistry()
        registry.register("AddV2", AddGrad)
        tape = Tape(registry=registry)
        tape.watch(x)
        y = ops.mul(self._record(tape), x, x)

        with self.assertRaises(UnregisteredGradientError) as ctx:
            tape.compute_gradient(self.ctx, [y], [x])
        self.assertEqual(ctx.exception.op_type, "Mul")
        self.assertEqual(ctx.exception.stage, "registry lookup")

    def test_pruned_ops_are_never_looked_up(self):
        # Only Sqrt has a rule; the Exp branches are off the x -> y path.
        registry = GradientRegistry()
        registry.register("Sqrt", SqrtGrad)
        x, other = scalar_tensor(2.0), scalar_tensor(1.0)
        tape = Tape(registry=registry)
        tape.watch(x)
        tape.watch(other)
        rctx = self._record(tape)

        ops.exp(rctx, other)  # unreachable from x, does not reach y
        y = ops.sqrt(rctx, x)
        ops.exp(rctx, y)  # reachable from x, does not reach y

        (dx,) = tape.compute_gradient(self.ctx, [y], [x])
        self.assertAlmostEqual(dx.item(), 0.5 / np.sqrt(2.0), places=6)

    def test_custom_seed_scales_gradient(self):
        x = scalar_tensor(2.0)
        tape = Tape()
        tape.watch(x)
        y = ops.neg(self._record(tape), x)

        (dx,) = tape.compute_gradient(
            self.ctx, [y], [x], output_gradients=[scalar_tensor(3.0)]
        )
        self.assertEqual(dx.item(), -3.0)

    def test_seed_shape_mismatch(self):
        x = tensor_from_np([1.0, 2.0])
        tape = Tape()
        tape.watch(x)
        y = ops.neg(self._record(tape), x)

        with self.assertRaises(ShapeMismatchError):
            tape.compute_gradient(
                self.ctx, [y], [x], output_gradients=[tensor_from_np([1.0, 2.0, 3.0])]
            )

    def test_seed_count_mismatch(self):
        x = scalar_tensor(1.0)
        tape = Tape()
        tape.watch(x)
        y = ops.neg(self._record(tape), x)

        with self.assertRaises(ValueError):
            tape.compute_gradient(
                self.ctx, [y], [x], output_gradients=[scalar_tensor(1.0)] * 2
            )

    def test_multiple_targets_sum(self):
        x = scalar_tensor(2.0)
        tape = Tape()
        tape.watch(x)
        rctx = self._record(tape)
        a = ops.neg(rctx, x)
        b = ops.mul(rctx, x, x)

        (dx,) = tape.compute_gradient(
            self.ctx, [a, b], [x], output_gradients=[None, scalar_tensor(0.5)]
        )
        # d(-x)/dx * 1 + d(x^2)/dx * 0.5 = -1 + 2
        self.assertEqual(dx.item(), 1.0)

    def test_target_that_is_a_source(self):
        x = scalar_tensor(4.0)
        tape = Tape()
        tape.watch(x)
        (dx,) = tape.compute_gradient(self.ctx, [x], [x])
        self.assertEqual(dx.item(), 1.0)

    def test_broadcast_add_reduces_to_operand_shape(self):
        x = tensor_from_np(np.ones((2, 3)))
        b = tensor_from_np([1.0, 2.0, 3.0])
        tape = Tape()
        tape.watch(x)
        tape.watch(b)
        y = ops.add(self._record(tape), x, b)

        dx, db = tape.compute_gradient(self.ctx, [y], [x, b])
        np.testing.assert_array_equal(as_np(dx), np.ones((2, 3)))
        np.testing.assert_array_equal(as_np(db), [2.0, 2.0, 2.0])

    def test_scalar_times_vector(self):
        s = scalar_tensor(2.0)
        v = tensor_from_np([1.0, 2.0, 3.0])
        tape = Tape()
        tape.watch(s)
        tape.watch(v)
        y = ops.mul(self._record(tape), s, v)

        ds, dv = tape.compute_gradient(self.ctx, [y], [s, v])
        self.assertEqual(ds.shape, ())
        self.assertEqual(ds.item(), 6.0)
        np.testing.assert_array_equal(as_np(dv), [2.0, 2.0, 2.0])

    def test_vector_plus_scalar(self):
        v = tensor_from_np([1.0, 2.0, 3.0])
        s = scalar_tensor(5.0)
        tape = Tape()
        tape.watch(v)
        tape.watch(s)
        y = ops.add(self._record(tape), v, s)

        dv, ds = tape.compute_gradient(self.ctx, [y], [v, s])
        np.testing.assert_array_equal(as_np(dv), [1.0, 1.0, 1.0])
        self.assertEqual(ds.shape, ())
        self.assertEqual(ds.item(), 3.0)

    def test_vector_minus_scalar(self):
        v = tensor_from_np([[1.0, 2.0], [3.0, 4.0]])
        s = scalar_tensor(5.0)
        tape = Tape()
        tape.watch(v)
        tape.watch(s)
        y = ops.sub(self._record(tape), v, s)

        dv, ds = tape.compute_gradient(self.ctx, [y], [v, s])
        np.testing.assert_array_equal(as_np(dv), np.ones((2, 2)))
        self.assertEqual(ds.shape, ())
        self.assertEqual(ds.item(), -4.0)

    def test_vector_div_no_nan_scalar(self):
        v = tensor_from_np([1.0, 2.0, 3.0])
        s = scalar_tensor(2.0)
        tape = Tape()
        tape.watch(v)
        tape.watch(s)
        y = ops.div_no_nan(self._record(tape), v, s)

        dv, ds = tape.compute_gradient(self.ctx, [y], [v, s])
        np.testing.assert_allclose(as_np(dv), [0.5, 0.5, 0.5])
        self.assertEqual(ds.shape, ())
        # -sum(v) / s**2
        self.assertAlmostEqual(ds.item(), -1.5, places=6)

    def test_vector_div_no_nan_zero_scalar(self):
        v = tensor_from_np([1.0, 2.0, 3.0])
        s = scalar_tensor(0.0)
        tape = Tape()
        tape.watch(v)
        tape.watch(s)
        y = ops.div_no_nan(self._record(tape), v, s)

        dv, ds = tape.compute_gradient(self.ctx, [y], [v, s])
        np.testing.assert_array_equal(as_np(dv), [0.0, 0.0, 0.0])
        self.assertEqual(ds.shape, ())
        self.assertEqual(ds.item(), 0.0)

    def test_rule_exception_is_wrapped(self):
        registry = GradientRegistry()
        registry.register("Exp", _RaisingGrad)
        x = scalar_tensor(1.0)
        tape = Tape(registry=registry)
        tape.watch(x)
        y = ops.exp(self._record(tape), x)

        with self.assertRaises(GradientRuleError) as ctx:
            tape.compute_gradient(self.ctx, [y], [x])
        self.assertEqual(ctx.exception.stage, "rule execution")
        self.assertIsInstance(ctx.exception.__cause__, ArithmeticError)

    def test_rule_returning_wrong_count(self):
        registry = GradientRegistry()
        registry.register("Exp", _TooFewGrads)
        x = scalar_tensor(1.0)
        tape = Tape(registry=registry)
        tape.watch(x)
        y = ops.exp(self._record(tape), x)

        with self.assertRaises(GradientRuleError):
            tape.compute_gradient(self.ctx, [y], [x])

    def test_rule_returning_wrong_shape(self):
        registry = GradientRegistry()
        registry.register("Exp", _WrongShapeGrad)
        x = scalar_tensor(1.0)
        tape = Tape(registry=registry)
        tape.watch(x)
        y = ops.exp(self._record(tape), x)

        with self.assertRaises(ShapeMismatchError) as ctx:
            tape.compute_gradient(self.ctx, [y], [x])
        self.assertEqual(ctx.exception.op_type, "Exp")

    def test_rule_returning_none_stops_flow(self):
        registry = GradientRegistry.with_defaults()
        x = scalar_tensor(3.0)
        tape = Tape(registry=registry)
        tape.watch(x)
        rctx = self._record(tape)
        y = ops.zeros_like(rctx, x)  # rule returns None
        z = ops.add(rctx, y, x)

        (dx,) = tape.compute_gradient(self.ctx, [z], [x])
        self.assertEqual(dx.item(), 1.0)

    def test_second_order_gradient(self):
        # d2/dx2 exp(x) = exp(x)
        x = scalar_tensor(2.0)
        outer = Tape()
        outer.watch(x)
        outer_ctx = RecordingContext(self.ctx, outer)

        inner = Tape()
        inner.watch(x)
        y = ops.exp(RecordingContext(outer_ctx, inner), x)

        (dx,) = inner.compute_gradient(outer_ctx, [y], [x])
        (d2x,) = outer.compute_gradient(self.ctx, [dx], [x])

        np.testing.assert_allclose(as_np(dx), np.exp(2.0), rtol=1e-6)
        np.testing.assert_allclose(as_np(d2x), np.exp(2.0), rtol=1e-6)

    def test_second_order_through_mul(self):
        # f = x * x * x, f'' = 6x
        x = scalar_tensor(2.0)
        outer = Tape()
        outer.watch(x)
        outer_ctx = RecordingContext(self.ctx, outer)

        inner = Tape()
        inner.watch(x)
        ictx = RecordingContext(outer_ctx, inner)
        y = ops.mul(ictx, ops.mul(ictx, x, x), x)

        (dx,) = inner.compute_gradient(outer_ctx, [y], [x])
        (d2x,) = outer.compute_gradient(self.ctx, [dx], [x])
        self.assertAlmostEqual(dx.item(), 12.0, places=5)
        self.assertAlmostEqual(d2x.item(), 12.0, places=5)

    def test_second_order_through_sqrt(self):
        # f = sqrt(x), f' = 1 / (2 sqrt(x)), f'' = -1 / (4 x^1.5)
        x = scalar_tensor(4.0)
        outer = Tape()
        outer.watch(x)
        outer_ctx = RecordingContext(self.ctx, outer)

        inner = Tape()
        inner.watch(x)
        y = ops.sqrt(RecordingContext(outer_ctx, inner), x)

        (dx,) = inner.compute_gradient(outer_ctx, [y], [x])
        (d2x,) = outer.compute_gradient(self.ctx, [dx], [x])
        self.assertAlmostEqual(dx.item(), 0.25, places=6)
        self.assertAlmostEqual(d2x.item(), -0.03125, places=6)

    def test_second_order_through_broadcast(self):
        # f = sum(s * s * v), f' = 2 s sum(v), f'' = 2 sum(v)
        s = scalar_tensor(2.0)
        v = tensor_from_np([1.0, 2.0, 3.0])
        outer = Tape()
        outer.watch(s)
        outer_ctx = RecordingContext(self.ctx, outer)

        inner = Tape()
        inner.watch(s)
        ictx = RecordingContext(outer_ctx, inner)
        y = ops.mul(ictx, s, ops.mul(ictx, s, v))

        (ds,) = inner.compute_gradient(outer_ctx, [y], [s])
        (d2s,) = outer.compute_gradient(self.ctx, [ds], [s])
        self.assertEqual(ds.shape, ())
        self.assertAlmostEqual(ds.item(), 24.0, places=5)
        self.assertEqual(d2s.shape, ())
        self.assertAlmostEqual(d2s.item(), 12.0, places=5)

    def test_compute_gradient_does_not_record_on_its_own_tape(self):
        x = scalar_tensor(2.0)
        tape = Tape(persistent=True)
        tape.watch(x)
        y = ops.exp(self._record(tape), x)
        before = len(tape)
        tape.compute_gradient(self.ctx, [y], [x])
        self.assertEqual(len(tape), before)


if __name__ == "__main__":
    unittest.main()
