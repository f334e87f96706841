"""
router.py - decide what an inbound event means for the room.

route() takes one parsed event from one registry entry, updates the entry's
codename when the event calls for it, and returns the event to broadcast
(or None when there is nothing to say). disconnect() does the same for the
end of a link. No I/O happens here; the server does the sending.
"""
import logging
from typing import Optional

from . import messages as m
from .registry import ConnectionRegistry, RegistryEntry

logger = logging.getLogger(__name__)

UNKNOWN_IDENTITY = "unknown"


def joined_text(identity: str) -> str:
    return f"{identity} has entered the channel."


def renamed_text(old: str, new: str) -> str:
    return f"{old} is now known as {new}"


def offline_text(identity: str) -> str:
    return f"{identity} is now OFFLINE"


class EventRouter:
    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry

    def route(self, entry: RegistryEntry, event: object) -> Optional[m.OutboundEvent]:
        """Map one inbound event to the outbound event everybody else should see."""
        if isinstance(event, m.Join):
            # Empty codenames never make it into the registry.
            if not event.identity:
                return None
            self.registry.set_identity(entry, event.identity)
            logger.info("codename acquired: %s", event.identity)
            return m.Presence(joined_text(event.identity))

        if isinstance(event, m.Rename):
            if not event.new_identity:
                return None
            previous = self.registry.set_identity(entry, event.new_identity)
            # Our own record beats whatever the client claims its old name was.
            old = previous or event.previous_identity or UNKNOWN_IDENTITY
            logger.info("codename changed: %s -> %s", old, event.new_identity)
            return m.Presence(renamed_text(old, event.new_identity))

        if isinstance(event, m.Message):
            return m.Relay(event.identity, event.body, event.obscured)

        return None

    def disconnect(self, entry: RegistryEntry) -> Optional[m.Presence]:
        """Remove the entry; announce it only if it ever had a codename."""
        identity = self.registry.unregister(entry)
        if identity is None:
            return None
        return m.Presence(offline_text(identity))
