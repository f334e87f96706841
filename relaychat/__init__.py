"""
relaychat - a small real-time text relay over WebSockets.

One server keeps a registry of live links, tracks the codename each link
announces, and rebroadcasts every event to everybody else. Joins, renames
and disconnects turn into "system" lines so the room can follow along.

NOTES:
- Delivery is best-effort: whoever is connected at send time gets the frame.
  A peer that can't be written to is skipped and cleaned up by its own close.
- The optional "encryption" toggle in the client is a reversible Base64
  transform. It hides text from a casual glance, nothing more. The server
  never touches it.

Configure with PORT / HOST (server) and SERVER_URL (client).
"""
__all__ = ["client", "config", "framing", "messages", "node", "registry", "router", "run_node", "transform"]

__version__ = "1.0.0"
