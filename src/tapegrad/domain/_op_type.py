"""
Operation kinds understood by the execution and gradient layers.

`OpType` is the fixed enumeration of operation kinds the engine knows about.
Its string values are the stable names shared between forward operations and
their backward rules (e.g. "AddV2", "Exp"). Op-type strings are resolved into
`OpType` members once (at registration and record time) so that the backward
traversal dispatches on enum members instead of raw strings.
"""

from __future__ import annotations

from enum import Enum
from typing import Union

from ._errors import UnknownOpTypeError


class OpType(str, Enum):
    """
    Enumeration of supported operation kinds.

    Attributes
    ----------
    ADD : OpType
        Elementwise (broadcasting) addition, "AddV2".
    SUB : OpType
        Elementwise (broadcasting) subtraction, "Sub".
    MUL : OpType
        Elementwise (broadcasting) multiplication, "Mul".
    NEG : OpType
        Elementwise negation, "Neg".
    EXP : OpType
        Elementwise exponential, "Exp".
    SQRT : OpType
        Elementwise square root, "Sqrt".
    LOG1P : OpType
        Elementwise log(1 + x), "Log1p".
    DIV_NO_NAN : OpType
        Elementwise division returning 0 where the denominator is 0,
        "DivNoNan".

    Notes
    -----
    The remaining members are helper kinds used mostly by backward rules:
    "Identity", "OnesLike", "ZerosLike", "Reciprocal", "SqrtGrad" and
    "SumToShape".
    """

    ADD = "AddV2"
    SUB = "Sub"
    MUL = "Mul"
    NEG = "Neg"
    EXP = "Exp"
    SQRT = "Sqrt"
    LOG1P = "Log1p"
    DIV_NO_NAN = "DivNoNan"

    IDENTITY = "Identity"
    ONES_LIKE = "OnesLike"
    ZEROS_LIKE = "ZerosLike"
    RECIPROCAL = "Reciprocal"
    SQRT_GRAD = "SqrtGrad"
    SUM_TO_SHAPE = "SumToShape"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def resolve(cls, op_type: Union["OpType", str]) -> "OpType":
        """
        Resolve an op-type name (or member) into an `OpType` member.

        Parameters
        ----------
        op_type : OpType or str
            Either an `OpType` member or its stable string name.

        Returns
        -------
        OpType
            The matching enumeration member.

        Raises
        ------
        UnknownOpTypeError
            If `op_type` does not name a supported operation kind.
        """
        if isinstance(op_type, cls):
            return op_type
        try:
            return cls(op_type)
        except ValueError as e:
            raise UnknownOpTypeError(op_type) from e
