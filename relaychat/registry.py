"""
registry.py - who is connected right now, and what they are called.

The registry is the one place the server asks "who gets this broadcast?".
Entries go in when a WebSocket handshake finishes and come out when the
link closes or faults. Everything here is plain synchronous code so it can
never be interleaved with another connection's handling on the event loop.
"""
from typing import Any, Dict, Hashable, Iterator, List, Optional


class RegistryEntry:
    """One live link: the transport handle plus the codename it goes by."""
    def __init__(self, connection: Hashable) -> None:
        self.connection = connection
        self.identity: Optional[str] = None

    def __repr__(self) -> str:
        return f"RegistryEntry(identity={self.identity!r})"


class ConnectionRegistry:
    """In-memory map: connection handle -> RegistryEntry."""
    def __init__(self) -> None:
        self._entries: Dict[Hashable, RegistryEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, connection: Any) -> bool:
        return connection in self._entries

    def __iter__(self) -> Iterator[RegistryEntry]:
        return iter(list(self._entries.values()))

    def get(self, connection: Hashable) -> Optional[RegistryEntry]:
        return self._entries.get(connection)

    def register(self, connection: Hashable) -> RegistryEntry:
        """
        Add a freshly handshaken connection with no codename yet.

        The transport hands us each connection once, so a repeat is a bug in
        the caller; we return the existing entry rather than double it up.
        """
        entry = self._entries.get(connection)
        if entry is None:
            entry = RegistryEntry(connection)
            self._entries[connection] = entry
        return entry

    def set_identity(self, entry: RegistryEntry, name: str) -> Optional[str]:
        """Overwrite the entry's codename; return the one it had before (or None)."""
        if not name:
            raise ValueError("identity must be a non-empty string")
        previous = entry.identity
        entry.identity = name
        return previous

    def unregister(self, entry: RegistryEntry) -> Optional[str]:
        """
        Drop the entry and return its last codename (None if it never had one).
        A second call for the same entry finds nothing and returns None.
        """
        if self._entries.get(entry.connection) is not entry:
            return None
        del self._entries[entry.connection]
        return entry.identity

    def live_entries(self, exclude: Optional[RegistryEntry] = None) -> List[RegistryEntry]:
        """Snapshot of everyone registered right now, minus `exclude`."""
        return [e for e in self._entries.values() if e is not exclude]

    def live_identities(self) -> List[str]:
        """Codenames of every registered link that has announced one."""
        return [e.identity for e in self._entries.values() if e.identity]
