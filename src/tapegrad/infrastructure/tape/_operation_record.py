from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from ...domain._op_type import OpType


@dataclass(frozen=True)
class OperationRecord:
    """
    One operation recorded on a `Tape`.

    A record stores the information required to run the backward rule for an
    operation. Tensors are referenced by handle id into the owning tape's
    handle arena rather than by object reference.

    Attributes
    ----------
    op_type : OpType
        Operation kind, resolved at record time; used for registry lookup.
    input_ids : tuple[int, ...]
        Ids of the forward input handles, in call order.
    output_ids : tuple[int, ...]
        Ids of the forward output handles, in call order.
    attrs : Mapping[str, Any]
        Read-only forward attributes (e.g. target shapes).

    Notes
    -----
    Records are immutable once created. Their handle ids are only meaningful
    to the tape that created them.
    """

    op_type: OpType
    input_ids: tuple[int, ...]
    output_ids: tuple[int, ...]
    attrs: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
