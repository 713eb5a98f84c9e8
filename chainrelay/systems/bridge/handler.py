"""
ChainRelay — Handler ABC and Registry

A Handler is the collaborator that gives an action its meaning. The bridge
never interprets payloads; it hands (selector, payload) to the handler
registered for the selector and records what the handler reports.

A handler knows:
  - Which function signature it implements (signature → selector)
  - How to apply a payload to endpoint state (handle)
  - Whether a follow-on action should be spawned (HandlerResult.chain)

The HandlerRegistry is the endpoint's allow-list of cross-chain callable
functions. It is populated at endpoint construction and frozen before the
endpoint serves any call, so lookup is a plain dict access and a selector
that was not registered up front can never become callable later.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import structlog

from chainrelay.primitives.common import RelayBaseModel, short_hex, to_hex
from chainrelay.systems.bridge.errors import UnknownSelector
from chainrelay.systems.bridge.hashing import selector_for
from chainrelay.systems.bridge.types import ActionRecord

logger = structlog.get_logger()


class HandlerResult(RelayBaseModel):
    """What a handler reports back to the executor."""

    success: bool
    error: str = ""
    next_selector: bytes = b""
    next_payload: bytes = b""

    @classmethod
    def ok(cls) -> HandlerResult:
        return cls(success=True)

    @classmethod
    def fail(cls, reason: str) -> HandlerResult:
        return cls(success=False, error=reason)

    @classmethod
    def chain(cls, target: str | bytes, payload: bytes) -> HandlerResult:
        """Succeed and request a follow-on action. target is a signature or a selector."""
        selector = selector_for(target) if isinstance(target, str) else target
        return cls(success=True, next_selector=selector, next_payload=payload)


@dataclass(frozen=True)
class HandlerContext:
    """
    Read-only view handed to a handler for one execution.

    storage is the endpoint's application state. Writes to it are part of the
    execution's rollback boundary and vanish if the handler fails.
    """

    action: ActionRecord
    chain_id: int
    endpoint: str
    timestamp: int
    storage: dict[str, Any]


class Handler(ABC):
    """
    Base class for cross-chain callable functions.

    Subclass, set `signature`, and pass an instance to the endpoint.
    """

    signature: str = ""         # e.g. "increment(bytes)"; hashed into the selector
    description: str = ""

    @property
    def selector(self) -> bytes:
        return selector_for(self.signature)

    @abstractmethod
    async def handle(self, payload: bytes, context: HandlerContext) -> HandlerResult:
        """
        Apply payload to endpoint state.

        Return HandlerResult.fail(...) or raise to abort; either way every
        write made through context.storage is discarded.
        """
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} signature={self.signature!r}>"


class HandlerRegistry:
    """Static selector → handler mapping, frozen after construction."""

    def __init__(self, handlers: list[Handler] | None = None) -> None:
        self._handlers: dict[bytes, Handler] = {}
        self._frozen = False
        self._logger = logger.bind(system="bridge.handlers")
        for handler in handlers or []:
            self.register(handler)

    def register(self, handler: Handler) -> None:
        """
        Register a handler under its selector.

        Raises ValueError on an empty signature, a duplicate selector, or once
        the registry has been frozen.
        """
        if self._frozen:
            raise ValueError("Handler registry is frozen; register handlers at construction")
        if not handler.signature:
            raise ValueError(f"Handler {handler!r} has no signature set")
        key = handler.selector
        if key in self._handlers:
            raise ValueError(
                f"Selector {to_hex(key)} already registered — "
                f"existing: {self._handlers[key]!r}, new: {handler!r}"
            )
        self._handlers[key] = handler
        self._logger.debug("handler_registered", signature=handler.signature, selector=to_hex(key))

    def freeze(self) -> None:
        self._frozen = True

    def get(self, selector: bytes) -> Handler | None:
        return self._handlers.get(selector)

    def require(self, selector: bytes) -> Handler:
        handler = self.get(selector)
        if handler is None:
            raise UnknownSelector(
                f"No handler registered for selector {short_hex(selector)}. "
                f"Available: {self.list_signatures()}"
            )
        return handler

    def is_registered(self, selector: bytes) -> bool:
        return selector in self._handlers

    def list_signatures(self) -> list[str]:
        return sorted(h.signature for h in self._handlers.values())

    def __contains__(self, selector: bytes) -> bool:
        return self.is_registered(selector)

    def __len__(self) -> int:
        return len(self._handlers)

    def __repr__(self) -> str:
        return f"<HandlerRegistry handlers={self.list_signatures()}>"
