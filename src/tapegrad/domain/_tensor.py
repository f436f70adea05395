"""
Tensor handle interface definitions.

This module defines the domain-level interface for tensor handles using
structural typing. A handle is an opaque reference to a computed tensor value
plus a stable identity; the tape and the gradient rules only rely on the
members declared here.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ITensorHandle(Protocol):
    """
    Tensor handle interface.

    An `ITensorHandle` identifies one tensor value produced (or consumed) by
    an operation. Several handles may refer to the same underlying value.

    Notes
    -----
    - `id` is the identity used by the tape to key records and gradient
      accumulation; two handles with equal ids are the same tensor.
    - The value is exposed read-only through `to_numpy()` so that forward
      values stay valid for backward rules.
    """

    @property
    def id(self) -> int:
        """
        Return the unique integer identity of this handle.

        Returns
        -------
        int
            Process-unique identifier.
        """
        ...

    @property
    def shape(self) -> tuple[int, ...]:
        """
        Return the shape of the referenced tensor.

        Returns
        -------
        tuple[int, ...]
            Tensor shape (empty tuple for scalars).
        """
        ...

    @property
    def dtype(self) -> Any:
        """
        Return the element dtype of the referenced tensor.
        """
        ...

    def to_numpy(self) -> Any:
        """
        Return the referenced value as a read-only array.
        """
        ...
