"""
Concrete tensor handle implementation (NumPy backend).

This module provides `TensorHandle`, the concrete handle type satisfying the
domain-level `ITensorHandle` protocol. A handle pairs a process-unique integer
identity with a reference to a NumPy value.

Design notes
------------
- Values are shared by reference: several handles may point at the same
  ndarray, and the array is released when the last handle referencing it is
  garbage collected. No manual reference counting is involved.
- Stored arrays are marked read-only. A value recorded on a tape must remain
  exactly what the forward pass produced, since backward rules read it.
- Identity is an integer drawn from a global counter rather than `id(obj)`,
  so it is never reused while a tape still refers to it.
"""

from __future__ import annotations

import itertools
from typing import Any, Union

import numpy as np

from ...domain._tensor import ITensorHandle

Number = Union[int, float]

_HANDLE_IDS = itertools.count(1)


class TensorHandle(ITensorHandle):
    """
    Reference to a tensor value plus identity.

    Parameters
    ----------
    value : np.ndarray
        The tensor value. It is not copied. A writeable array is wrapped in a
        read-only view, leaving the caller's array writeable; an array that
        is already read-only is stored as is.

    Notes
    -----
    Construct handles through `from_numpy`, `scalar`, `zeros` or `ones`
    rather than calling the constructor with arbitrary objects.
    """

    __slots__ = ("_id", "_value")

    def __init__(self, value: np.ndarray) -> None:
        if not isinstance(value, np.ndarray):
            raise TypeError(f"TensorHandle expects np.ndarray, got {type(value)!r}")
        if value.flags.writeable:
            value = value.view()
            value.flags.writeable = False
        self._id: int = next(_HANDLE_IDS)
        self._value: np.ndarray = value

    def __repr__(self) -> str:
        return (
            f"TensorHandle(id={self._id}, shape={self.shape}, "
            f"dtype={self._value.dtype})"
        )

    @property
    def id(self) -> int:
        """
        Return the unique integer identity of this handle.

        Returns
        -------
        int
            Identity used as the key for records and gradient accumulation.
        """
        return self._id

    @property
    def shape(self) -> tuple[int, ...]:
        """
        Return the tensor shape.

        Returns
        -------
        tuple[int, ...]
            The tensor's shape.
        """
        return tuple(self._value.shape)

    @property
    def dtype(self) -> np.dtype:
        return self._value.dtype

    def numel(self) -> int:
        return int(self._value.size)

    def to_numpy(self) -> np.ndarray:
        """
        Return the underlying (read-only) NumPy value.

        Returns
        -------
        np.ndarray
            The referenced array. Callers must copy it before mutating.
        """
        return self._value

    def item(self) -> float:
        """
        Return the value of a single-element tensor as a Python float.

        Raises
        ------
        ValueError
            If the tensor has more than one element.
        """
        if self._value.size != 1:
            raise ValueError(
                f"item() requires a single-element tensor, got shape={self.shape}"
            )
        return float(self._value.reshape(()))

    def share(self) -> "TensorHandle":
        """
        Return a new handle referencing the same value.

        The new handle has its own identity; both handles keep the value alive.
        """
        return TensorHandle(self._value)

    # ----------------------------
    # Factories
    # ----------------------------
    @staticmethod
    def from_numpy(arr: Any, *, dtype: Any = np.float32) -> "TensorHandle":
        """
        Construct a handle from array-like data.

        Parameters
        ----------
        arr : array_like
            Source data. It is copied into a new array of `dtype`.
        dtype : np.dtype, optional
            Element dtype. Defaults to np.float32. Pass None to keep the
            source dtype.

        Returns
        -------
        TensorHandle
            A handle over a fresh, read-only copy of `arr`.
        """
        out = np.array(arr, dtype=dtype, copy=True)
        return TensorHandle(out)

    @staticmethod
    def scalar(x: Number, *, dtype: Any = np.float32) -> "TensorHandle":
        """Construct a rank-0 handle holding `x`."""
        return TensorHandle(np.array(x, dtype=dtype))

    @staticmethod
    def zeros(shape: tuple[int, ...], *, dtype: Any = np.float32) -> "TensorHandle":
        return TensorHandle(np.zeros(tuple(shape), dtype=dtype))

    @staticmethod
    def ones(shape: tuple[int, ...], *, dtype: Any = np.float32) -> "TensorHandle":
        return TensorHandle(np.ones(tuple(shape), dtype=dtype))
