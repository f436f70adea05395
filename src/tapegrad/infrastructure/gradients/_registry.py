"""
Gradient function registry.

This module defines `GradientRegistry`, the mapping from operation kind to the
factory that builds the matching backward rule for a recorded operation.

Design
------
- Keys are `OpType` members. Op-type strings are resolved once, at
  registration, so lookups during the backward traversal are plain enum-keyed
  dict accesses.
- A factory is any callable taking a `ForwardOperation` and returning a
  `GradientFunction`; a `GradientFunction` subclass is itself a valid factory.
- Registries are instances: a caller may build an empty registry and register
  only the rules a model needs, or start from `GradientRegistry.with_defaults()`.
- Built-in rules are collected into a class-level table by the
  `register_gradient` decorator at import time of the rules module.

Usage example
-------------
Registering a rule for one registry:

    registry = GradientRegistry()
    registry.register("Exp", ExpGrad)

Declaring a built-in rule:

    @register_gradient(OpType.EXP)
    class ExpGrad(GradientFunction):
        ...

Notes
-----
Registration keys are unique: registering an op type twice raises
`DuplicateRegistrationError`.
"""

from __future__ import annotations

import logging
from typing import Callable, ClassVar, Dict, TypeVar, Union

from ...domain._errors import DuplicateRegistrationError, UnregisteredGradientError
from ...domain._gradient_function import GradientFunctionFactory
from ...domain._op_type import OpType

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=GradientFunctionFactory)


class GradientRegistry:
    """
    Registry mapping operation kinds to gradient function factories.

    Notes
    -----
    - `register` fails on duplicates; there is no silent overwrite.
    - `lookup` fails with `UnregisteredGradientError`; the tape surfaces that
      error from `compute_gradient` rather than treating the gradient as zero.
    """

    BUILTIN: ClassVar[Dict[OpType, GradientFunctionFactory]] = {}

    def __init__(self) -> None:
        self._factories: Dict[OpType, GradientFunctionFactory] = {}

    def __repr__(self) -> str:
        return f"GradientRegistry({list(self.available())})"

    def __contains__(self, op_type: Union[OpType, str]) -> bool:
        try:
            return OpType.resolve(op_type) in self._factories
        except ValueError:
            return False

    def __len__(self) -> int:
        return len(self._factories)

    def register(
        self, op_type: Union[OpType, str], factory: GradientFunctionFactory
    ) -> None:
        """
        Register `factory` as the gradient factory for `op_type`.

        Parameters
        ----------
        op_type : OpType or str
            Operation kind, or its stable string name (e.g. "AddV2").
        factory : GradientFunctionFactory
            Callable building a `GradientFunction` from a `ForwardOperation`.

        Raises
        ------
        UnknownOpTypeError
            If `op_type` is not a supported operation kind.
        DuplicateRegistrationError
            If `op_type` is already registered.
        TypeError
            If `factory` is not callable.
        """
        op = OpType.resolve(op_type)
        if not callable(factory):
            raise TypeError(f"Gradient factory must be callable, got {type(factory)!r}")
        if op in self._factories:
            raise DuplicateRegistrationError(op)
        self._factories[op] = factory
        logger.debug("register: op=%s factory=%r", op.value, factory)

    def lookup(self, op_type: Union[OpType, str]) -> GradientFunctionFactory:
        """
        Return the factory registered for `op_type`.

        Raises
        ------
        UnregisteredGradientError
            If no factory is registered for `op_type`.
        """
        op = OpType.resolve(op_type)
        try:
            return self._factories[op]
        except KeyError as e:
            raise UnregisteredGradientError(op) from e

    def available(self) -> tuple[str, ...]:
        """Return registered op-type names (sorted)."""
        return tuple(sorted(op.value for op in self._factories))

    # ----------------------------
    # Built-in rules
    # ----------------------------
    @classmethod
    def register_builtin(cls, op_type: Union[OpType, str]) -> Callable[[F], F]:
        """
        Decorator adding a factory to the built-in rule table.

        Raises
        ------
        DuplicateRegistrationError
            If a built-in rule already exists for `op_type`.
        """
        op = OpType.resolve(op_type)

        def decorator(factory: F) -> F:
            if op in cls.BUILTIN:
                raise DuplicateRegistrationError(op)
            cls.BUILTIN[op] = factory
            return factory

        return decorator

    @classmethod
    def with_defaults(cls) -> "GradientRegistry":
        """
        Build a registry containing every built-in gradient rule.

        Returns
        -------
        GradientRegistry
            A new registry; mutating it does not affect the built-in table.
        """
        from . import _math_grad  # noqa: F401  (registers built-in rules)

        registry = cls()
        for op, factory in cls.BUILTIN.items():
            registry.register(op, factory)
        return registry


register_gradient = GradientRegistry.register_builtin
