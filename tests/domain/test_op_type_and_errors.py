import unittest

from src.tapegrad.domain._op_type import OpType
from src.tapegrad.domain._errors import (
    GradientError,
    UnregisteredGradientError,
    TapeConsumedError,
    GradientRuleError,
    ShapeMismatchError,
    DuplicateRegistrationError,
    UnknownOpTypeError,
)


class TestOpType(unittest.TestCase):
    def test_stable_names(self):
        self.assertEqual(OpType.ADD.value, "AddV2")
        self.assertEqual(OpType.SUB.value, "Sub")
        self.assertEqual(OpType.MUL.value, "Mul")
        self.assertEqual(OpType.NEG.value, "Neg")
        self.assertEqual(OpType.EXP.value, "Exp")
        self.assertEqual(OpType.SQRT.value, "Sqrt")
        self.assertEqual(OpType.LOG1P.value, "Log1p")
        self.assertEqual(OpType.DIV_NO_NAN.value, "DivNoNan")

    def test_resolve_from_string_and_member(self):
        self.assertIs(OpType.resolve("Exp"), OpType.EXP)
        self.assertIs(OpType.resolve(OpType.EXP), OpType.EXP)

    def test_resolve_unknown_raises(self):
        with self.assertRaises(UnknownOpTypeError) as ctx:
            OpType.resolve("MatMul")
        self.assertIsInstance(ctx.exception, ValueError)
        self.assertIn("MatMul", str(ctx.exception))

    def test_str_is_value(self):
        self.assertEqual(str(OpType.DIV_NO_NAN), "DivNoNan")


class TestErrors(unittest.TestCase):
    def test_stages(self):
        self.assertEqual(UnregisteredGradientError("Exp").stage, "registry lookup")
        self.assertEqual(TapeConsumedError("compute gradients").stage, "tape reuse")
        self.assertEqual(GradientRuleError("boom").stage, "rule execution")
        self.assertEqual(DuplicateRegistrationError("Exp").stage, "registration")

    def test_messages_name_stage_and_op(self):
        e = UnregisteredGradientError(OpType.MUL)
        self.assertIn("[registry lookup]", str(e))
        self.assertIn("Mul", str(e))
        self.assertEqual(e.op_type, "Mul")

    def test_hierarchy(self):
        self.assertTrue(issubclass(UnregisteredGradientError, GradientError))
        self.assertTrue(issubclass(UnregisteredGradientError, LookupError))
        self.assertTrue(issubclass(ShapeMismatchError, GradientRuleError))
        self.assertTrue(issubclass(DuplicateRegistrationError, ValueError))
        self.assertTrue(issubclass(GradientError, RuntimeError))

    def test_shape_mismatch_fields(self):
        e = ShapeMismatchError((2, 3), (3,), what="output gradient")
        self.assertEqual(e.expected, (2, 3))
        self.assertEqual(e.got, (3,))
        self.assertIn("output gradient shape mismatch", str(e))


if __name__ == "__main__":
    unittest.main()
