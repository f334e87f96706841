"""
messages.py - the event types that travel over the wire.

What this module does:
- Names the wire "type" tags for both directions.
- Gives every event a small frozen dataclass with to_wire() -> dict.
- Parses decoded frames back into events. Anything that doesn't look exactly
  like a known event parses to None; callers drop it without a reply.

Wire shapes:
    client -> server   {"type": "join",    "codename": str}
                       {"type": "nick",    "oldName": str, "newName": str}
                       {"type": "message", "codename": str, "text": str, "encrypted": bool}
    server -> client   {"type": "system",  "text": str}
                       {"type": "message", "codename": str, "text": str, "encrypted": bool}
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

# -----------------------
# Public message type tags
# -----------------------
JOIN = "join"
NICK = "nick"
MESSAGE = "message"
SYSTEM = "system"

MAX_IDENTITY_LENGTH = 256


# --------------
# Inbound events
# --------------

@dataclass(frozen=True)
class Join:
    """A client announces the codename it wants to be shown as."""
    identity: str

    def to_wire(self) -> Dict[str, Any]:
        return {"type": JOIN, "codename": self.identity}


@dataclass(frozen=True)
class Rename:
    """
    A client switches codename. previous_identity is whatever the client
    thinks its old name was; the server trusts its own registry first.
    """
    previous_identity: str
    new_identity: str

    def to_wire(self) -> Dict[str, Any]:
        return {"type": NICK, "oldName": self.previous_identity, "newName": self.new_identity}


@dataclass(frozen=True)
class Message:
    """A chat line. body is already transformed when obscured is True."""
    identity: str
    body: str
    obscured: bool = False

    def to_wire(self) -> Dict[str, Any]:
        return {"type": MESSAGE, "codename": self.identity, "text": self.body, "encrypted": self.obscured}


InboundEvent = Union[Join, Rename, Message]


# ---------------
# Outbound events
# ---------------

@dataclass(frozen=True)
class Presence:
    """Server-made announcement: someone joined, renamed, or went offline."""
    text: str

    def to_wire(self) -> Dict[str, Any]:
        return {"type": SYSTEM, "text": self.text}


@dataclass(frozen=True)
class Relay:
    """A chat line forwarded untouched to everyone but its sender."""
    identity: str
    body: str
    obscured: bool = False

    def to_wire(self) -> Dict[str, Any]:
        return {"type": MESSAGE, "codename": self.identity, "text": self.body, "encrypted": self.obscured}


OutboundEvent = Union[Presence, Relay]


# -------
# Parsing
# -------

def _str_field(frame: Dict[str, Any], key: str) -> Optional[str]:
    value = frame.get(key)
    return value if isinstance(value, str) else None


def _name_field(frame: Dict[str, Any], key: str) -> Optional[str]:
    # Codenames end up inside presence lines; keep those well under the frame cap.
    value = _str_field(frame, key)
    if value is None or len(value) > MAX_IDENTITY_LENGTH:
        return None
    return value


def _bool_field(frame: Dict[str, Any], key: str) -> Optional[bool]:
    # bool is checked explicitly; 0/1 are not accepted as flags.
    value = frame.get(key)
    return value if isinstance(value, bool) else None


def parse_inbound(frame: Any) -> Optional[InboundEvent]:
    """
    Turn a decoded client frame into an inbound event.

    Returns None for anything that isn't a dict, has an unknown type, or is
    missing / mistyping a required field. Codenames longer than
    MAX_IDENTITY_LENGTH count as malformed.
    """
    if not isinstance(frame, dict):
        return None
    msg_type = frame.get("type")

    if msg_type == JOIN:
        codename = _name_field(frame, "codename")
        if codename is None:
            return None
        return Join(codename)

    if msg_type == NICK:
        old_name = _name_field(frame, "oldName")
        new_name = _name_field(frame, "newName")
        if old_name is None or new_name is None:
            return None
        return Rename(old_name, new_name)

    if msg_type == MESSAGE:
        codename = _str_field(frame, "codename")
        text = _str_field(frame, "text")
        encrypted = _bool_field(frame, "encrypted")
        if codename is None or text is None or encrypted is None:
            return None
        return Message(codename, text, encrypted)

    return None


def parse_outbound(frame: Any) -> Optional[OutboundEvent]:
    """Client-side counterpart of parse_inbound() for frames the server sends."""
    if not isinstance(frame, dict):
        return None
    msg_type = frame.get("type")

    if msg_type == SYSTEM:
        text = _str_field(frame, "text")
        return Presence(text) if text is not None else None

    if msg_type == MESSAGE:
        codename = _str_field(frame, "codename")
        text = _str_field(frame, "text")
        encrypted = _bool_field(frame, "encrypted")
        if codename is None or text is None or encrypted is None:
            return None
        return Relay(codename, text, encrypted)

    return None
