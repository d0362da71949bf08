"""Feature contexts.

A context is the entity (kind + identifier) a feature value is scoped to.
Every storage backend keys its records by ``Context.key``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Union, runtime_checkable

from togglekit.core.errors import InvalidContextError

NULL_ID_SENTINEL = "__null__"
GUEST_KIND = "guest"
GUEST_IDENTIFIER = "__guest__"
KEY_SEPARATOR = "|"

ContextId = Union[str, int]


@runtime_checkable
class Identifiable(Protocol):
    """Anything exposing an explicit identifier."""

    def id(self) -> ContextId:
        ...


def is_identifiable(obj: Any) -> bool:
    # runtime_checkable only checks that the attribute exists; a plain `id`
    # field must not pass for the method.
    return isinstance(obj, Identifiable) and callable(getattr(obj, "id"))


@dataclass(frozen=True)
class Context:
    """Immutable (kind, id) pair with an optional opaque source object."""

    kind: str
    id: Optional[ContextId] = None
    source: Any = field(default=None, compare=False, hash=False, repr=False)

    def __post_init__(self):
        if not isinstance(self.kind, str) or not self.kind:
            raise InvalidContextError("Context kind must be a non-empty string")
        if KEY_SEPARATOR in self.kind:
            raise InvalidContextError(
                f"Context kind may not contain {KEY_SEPARATOR!r}: {self.kind!r}"
            )
        if self.id is not None and (isinstance(self.id, bool) or not isinstance(self.id, (str, int))):
            raise InvalidContextError(
                f"Context id must be a string or integer, got {type(self.id).__name__}"
            )

    @classmethod
    def simple(cls, kind: str, id: Optional[ContextId] = None) -> "Context":
        return cls(kind=kind, id=id)

    @classmethod
    def guest(cls) -> "Context":
        return cls(kind=GUEST_KIND, id=GUEST_IDENTIFIER)

    @classmethod
    def from_source(cls, obj: Identifiable, kind: Optional[str] = None) -> "Context":
        """Build a context from an identifiable object, keeping it as ``source``."""
        if not is_identifiable(obj):
            raise InvalidContextError(
                f"{type(obj).__name__} does not implement id()"
            )
        return cls(kind=kind or type(obj).__name__.lower(), id=obj.id(), source=obj)

    @classmethod
    def parse(cls, key: str) -> "Context":
        kind, sep, ident = key.partition(KEY_SEPARATOR)
        if not sep:
            raise InvalidContextError(f"Malformed context key: {key!r}")
        return cls(kind=kind, id=None if ident == NULL_ID_SENTINEL else ident)

    def serialize(self) -> str:
        ident = NULL_ID_SENTINEL if self.id is None else str(self.id)
        return f"{self.kind}{KEY_SEPARATOR}{ident}"

    @property
    def key(self) -> str:
        return self.serialize()

    def split_key(self) -> tuple:
        """Return ``(context_type, context_id)`` as stored by table backends."""
        kind, _, ident = self.serialize().partition(KEY_SEPARATOR)
        return kind, ident

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "id": self.id, "key": self.key}

    def __str__(self) -> str:
        return self.key


def resolve_context(value: Any) -> Context:
    """Coerce a caller-supplied value into a Context."""
    if isinstance(value, Context):
        return value
    if value is None:
        return Context.guest()
    if is_identifiable(value):
        return Context.from_source(value)
    raise InvalidContextError(
        f"Cannot build a feature context from {type(value).__name__}"
    )


@dataclass(frozen=True)
class ActorRef:
    """Who performed an audited action."""

    type: str
    id: ContextId

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "id": self.id}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["ActorRef"]:
        if not data:
            return None
        return cls(type=data["type"], id=data["id"])


def actor_ref(actor: Any) -> Optional[ActorRef]:
    if actor is None:
        return None
    if isinstance(actor, ActorRef):
        return actor
    if is_identifiable(actor):
        return ActorRef(type=type(actor).__name__, id=actor.id())
    raise InvalidContextError(
        f"Actor must implement id(), got {type(actor).__name__}"
    )
