"""
Gradient tape: operation recorder and reverse-mode traversal.

A `Tape` records forward operations (through a `RecordingContext`) as an
ordered list of `OperationRecord`s and later computes gradients of target
handles with respect to watched source handles by replaying those records
backward.

Traversal outline
-----------------
1. Prune the records to those lying on a directed path from a watched source
   to a target.
2. Seed the gradient accumulator with one gradient per target (ones by
   default).
3. Visit the pruned records in reverse recording order. Recording order is a
   forward topological order, so its reverse visits every consumer before the
   producer of its inputs.
4. For each record, look up the backward rule in the `GradientRegistry`, call
   it with the accumulated output gradients and add each returned input
   gradient into the accumulator (summation implements the multivariate chain
   rule when a tensor has several consumers).
5. Read off one gradient per requested source; a source that received nothing
   gets zeros of its own shape.

Design notes
------------
- Records reference handles by integer id into the tape's handle arena, which
  also keeps forward values alive for backward rules.
- All gradient math, including accumulation, runs through the execution
  context passed to `compute_gradient`.
- A non-persistent tape can compute gradients exactly once.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence, Union

from ...domain._context import IExecutionContext
from ...domain._errors import (
    GradientError,
    GradientRuleError,
    ShapeMismatchError,
    TapeConsumedError,
)
from ...domain._gradient_function import ForwardOperation
from ...domain._op_type import OpType
from ...domain._tensor import ITensorHandle
from ..gradients._registry import GradientRegistry
from ..ops import _math_ops as ops
from ._operation_record import OperationRecord

logger = logging.getLogger(__name__)


class Tape:
    """
    Records operations and computes gradients by reverse traversal.

    Parameters
    ----------
    persistent : bool, optional
        If True, `compute_gradient` may be called any number of times
        (sequentially). If False (default), the tape is consumed by its first
        `compute_gradient` call.
    registry : Optional[GradientRegistry], optional
        Registry used to resolve backward rules. Defaults to a registry
        holding every built-in rule.

    Notes
    -----
    The tape is not thread-safe. Recording and gradient computation are
    sequential phases driven by a single thread.
    """

    def __init__(
        self,
        persistent: bool = False,
        registry: Optional[GradientRegistry] = None,
    ) -> None:
        self._persistent: bool = bool(persistent)
        self._registry: GradientRegistry = (
            registry if registry is not None else GradientRegistry.with_defaults()
        )
        self._watched: set[int] = set()
        self._records: list[OperationRecord] = []
        self._handles: Dict[int, ITensorHandle] = {}
        self._producers: Dict[int, int] = {}
        self._consumed: bool = False
        self._recording: bool = True

    def __repr__(self) -> str:
        return (
            f"Tape(persistent={self._persistent}, records={len(self._records)}, "
            f"watched={len(self._watched)}, consumed={self._consumed})"
        )

    def __len__(self) -> int:
        return len(self._records)

    # ----------------------------
    # Read-only state
    # ----------------------------
    @property
    def persistent(self) -> bool:
        return self._persistent

    @property
    def consumed(self) -> bool:
        """True once a non-persistent tape has run `compute_gradient`."""
        return self._consumed

    @property
    def registry(self) -> GradientRegistry:
        return self._registry

    @property
    def records(self) -> tuple[OperationRecord, ...]:
        """Recorded operations, in recording order."""
        return tuple(self._records)

    @property
    def watched_ids(self) -> frozenset[int]:
        return frozenset(self._watched)

    @property
    def is_recording(self) -> bool:
        return self._recording

    def is_watched(self, handle: ITensorHandle) -> bool:
        return handle.id in self._watched

    def producer_of(self, handle: ITensorHandle) -> Optional[OperationRecord]:
        """
        Return the record that produced `handle`, or None for leaves and
        handles this tape never saw as an output.
        """
        idx = self._producers.get(handle.id)
        return None if idx is None else self._records[idx]

    # ----------------------------
    # Recording
    # ----------------------------
    def watch(self, handle: ITensorHandle) -> None:
        """
        Mark `handle` as a gradient source.

        Watching is idempotent.

        Raises
        ------
        TypeError
            If `handle` is not a tensor handle.
        """
        if not isinstance(handle, ITensorHandle):
            raise TypeError(f"watch expects a tensor handle, got {type(handle)!r}")
        self._handles.setdefault(handle.id, handle)
        self._watched.add(handle.id)

    @contextmanager
    def stop_recording(self) -> Iterator[None]:
        """
        Suspend recording for the duration of a `with` block.

        Operations executed through a `RecordingContext` bound to this tape
        still run, but are not recorded.
        """
        previous = self._recording
        self._recording = False
        try:
            yield
        finally:
            self._recording = previous

    def record_operation(
        self,
        op_type: Union[OpType, str],
        inputs: Sequence[ITensorHandle],
        outputs: Sequence[ITensorHandle],
        attrs: Optional[Mapping[str, Any]] = None,
    ) -> OperationRecord:
        """
        Append an operation to the tape.

        Intended to be called by `RecordingContext`, not by user code.

        Parameters
        ----------
        op_type : OpType or str
            Operation kind.
        inputs, outputs : Sequence[ITensorHandle]
            Forward input and output handles.
        attrs : Optional[Mapping[str, Any]]
            Forward attributes needed by the backward rule.

        Returns
        -------
        OperationRecord
            The appended record.

        Raises
        ------
        TapeConsumedError
            If this non-persistent tape was already consumed.
        UnknownOpTypeError
            If `op_type` is not a supported operation kind.
        """
        if self._consumed:
            raise TapeConsumedError("record an operation")

        op = OpType.resolve(op_type)
        for t in (*inputs, *outputs):
            self._handles.setdefault(t.id, t)

        record = OperationRecord(
            op_type=op,
            input_ids=tuple(t.id for t in inputs),
            output_ids=tuple(t.id for t in outputs),
            attrs=MappingProxyType(dict(attrs or {})),
        )
        index = len(self._records)
        self._records.append(record)
        for oid in record.output_ids:
            self._producers[oid] = index

        logger.debug(
            "record: #%d op=%s inputs=%s outputs=%s",
            index,
            op.value,
            record.input_ids,
            record.output_ids,
        )
        return record

    # ----------------------------
    # Backward traversal
    # ----------------------------
    def compute_gradient(
        self,
        ctx: IExecutionContext,
        targets: Sequence[ITensorHandle],
        sources: Sequence[ITensorHandle],
        output_gradients: Optional[Sequence[Optional[ITensorHandle]]] = None,
    ) -> list[ITensorHandle]:
        """
        Compute gradients of `targets` with respect to `sources`.

        Parameters
        ----------
        ctx : IExecutionContext
            Context used to run the gradient computation.
        targets : Sequence[ITensorHandle]
            Handles whose gradients are propagated backward.
        sources : Sequence[ITensorHandle]
            Handles for which gradients are requested.
        output_gradients : Optional[Sequence[Optional[ITensorHandle]]]
            Seed gradient per target. If None or empty, every target is seeded
            with ones of its shape; a None entry seeds that target with ones.

        Returns
        -------
        list[ITensorHandle]
            One gradient per source, in the order of `sources`. Sources that
            are not watched, or that do not influence any target, get zeros.

        Raises
        ------
        TapeConsumedError
            If this non-persistent tape was already consumed.
        UnregisteredGradientError
            If a recorded op on a source-to-target path has no backward rule.
        GradientRuleError
            If a backward rule fails or returns the wrong number of gradients.
        ShapeMismatchError
            If a gradient (or seed) does not match its tensor's shape.
        ValueError
            If `output_gradients` has a different length than `targets`.

        Notes
        -----
        A non-persistent tape is marked consumed on entry, so it cannot be
        reused even if this call fails.
        """
        if self._consumed:
            raise TapeConsumedError("compute gradients")
        if not self._persistent:
            self._consumed = True

        targets = tuple(targets)
        sources = tuple(sources)
        for t in (*targets, *sources):
            if not isinstance(t, ITensorHandle):
                raise TypeError(f"expected tensor handles, got {type(t)!r}")

        seeds = self._seed_gradients(ctx, targets, output_gradients)

        source_ids = {s.id for s in sources if s.id in self._watched}
        pruned = self._prune(source_ids, {t.id for t in targets})
        logger.debug(
            "compute_gradient: %d of %d record(s) on source->target paths",
            len(pruned),
            len(self._records),
        )

        grads: Dict[int, ITensorHandle] = {}
        for t, seed in zip(targets, seeds):
            self._accumulate(ctx, grads, t.id, seed)

        for record in reversed(pruned):
            self._backprop_record(ctx, record, grads)

        result: list[ITensorHandle] = []
        for s in sources:
            g = grads.get(s.id) if s.id in source_ids else None
            result.append(g if g is not None else ops.zeros_like(ctx, s))
        return result

    def _seed_gradients(
        self,
        ctx: IExecutionContext,
        targets: tuple[ITensorHandle, ...],
        output_gradients: Optional[Sequence[Optional[ITensorHandle]]],
    ) -> list[ITensorHandle]:
        if not output_gradients:
            return [ops.ones_like(ctx, t) for t in targets]

        output_gradients = tuple(output_gradients)
        if len(output_gradients) != len(targets):
            raise ValueError(
                f"output_gradients must have one entry per target: got "
                f"{len(output_gradients)} for {len(targets)} target(s)"
            )

        seeds: list[ITensorHandle] = []
        for t, g in zip(targets, output_gradients):
            if g is None:
                seeds.append(ops.ones_like(ctx, t))
                continue
            if tuple(g.shape) != tuple(t.shape):
                raise ShapeMismatchError(t.shape, g.shape, what="output gradient")
            seeds.append(g)
        return seeds

    def _prune(
        self, source_ids: set[int], target_ids: set[int]
    ) -> list[OperationRecord]:
        """
        Keep only records lying on a directed path from a source to a target.

        A forward sweep marks records reachable from the sources; a backward
        sweep over those keeps the ones whose outputs feed a target.
        """
        reachable = set(source_ids)
        forward_live: list[int] = []
        for idx, record in enumerate(self._records):
            if any(i in reachable for i in record.input_ids):
                reachable.update(record.output_ids)
                forward_live.append(idx)

        needed = set(target_ids)
        kept: list[OperationRecord] = []
        for idx in reversed(forward_live):
            record = self._records[idx]
            if any(o in needed for o in record.output_ids):
                needed.update(record.input_ids)
                kept.append(record)

        kept.reverse()
        return kept

    def _backprop_record(
        self,
        ctx: IExecutionContext,
        record: OperationRecord,
        grads: Dict[int, ITensorHandle],
    ) -> None:
        out_grads = [grads.get(oid) for oid in record.output_ids]
        if all(g is None for g in out_grads):
            # Nothing flowed into this op (e.g. an upstream rule returned None).
            return

        inputs = tuple(self._handles[i] for i in record.input_ids)
        outputs = tuple(self._handles[o] for o in record.output_ids)
        out_grads = [
            g if g is not None else ops.zeros_like(ctx, out)
            for g, out in zip(out_grads, outputs)
        ]

        factory = self._registry.lookup(record.op_type)
        forward_op = ForwardOperation(
            op_type=record.op_type,
            inputs=inputs,
            outputs=outputs,
            attrs=record.attrs,
        )

        try:
            in_grads = list(factory(forward_op).compute(ctx, out_grads))
        except GradientError:
            raise
        except Exception as e:
            raise GradientRuleError(
                f"backward rule for {record.op_type.value!r} failed: {e}",
                op_type=record.op_type,
            ) from e

        if len(in_grads) != len(inputs):
            raise GradientRuleError(
                f"backward rule for {record.op_type.value!r} must return one "
                f"gradient per input: got {len(in_grads)} for {len(inputs)} input(s)",
                op_type=record.op_type,
            )

        for inp, g in zip(inputs, in_grads):
            if g is None:
                continue
            if tuple(g.shape) != tuple(inp.shape):
                raise ShapeMismatchError(
                    inp.shape, g.shape, op_type=record.op_type
                )
            self._accumulate(ctx, grads, inp.id, g)

    @staticmethod
    def _accumulate(
        ctx: IExecutionContext,
        grads: Dict[int, ITensorHandle],
        handle_id: int,
        g: ITensorHandle,
    ) -> None:
        prev = grads.get(handle_id)
        grads[handle_id] = g if prev is None else ops.add(ctx, prev, g)
