"""
transform.py - the reversible text transform behind the client's /encrypt.

This is Base64 over UTF-8 and nothing else. It keeps a message from being
read at a glance on a shared screen; anyone who sees the frame can undo it.
The wire flag is called "encrypted" for compatibility with existing clients.
"""

import base64
import binascii


class TransformError(ValueError):
    """Raised when reveal() is handed text that obscure() could not have made."""


def obscure(text: str) -> str:
    """UTF-8 encode, then standard Base64 (with padding) as ASCII text."""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def reveal(text: str) -> str:
    """Inverse of obscure(). Strict: bad Base64 or bad UTF-8 raises."""
    try:
        raw = base64.b64decode(text.encode("ascii"), validate=True)
        return raw.decode("utf-8")
    except (UnicodeEncodeError, UnicodeDecodeError, binascii.Error) as exc:
        raise TransformError(f"Not an obscured payload: {exc}") from exc
