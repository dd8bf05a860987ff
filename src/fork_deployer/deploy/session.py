"""Session credential shape check."""

import base64
import binascii

DEFAULT_SESSION_PREFIX = "TKT-CYBER~"
MIN_DECODED_BYTES = 20


def is_valid_session(token: object, prefix: str = DEFAULT_SESSION_PREFIX) -> bool:
    """Return True when ``token`` looks like a session credential.

    Accepted forms are ``(PREFIX)<base64>`` and ``PREFIX<base64>``. The
    base64 part must decode strictly and yield more than 20 bytes. Never
    raises; anything malformed is simply invalid.
    """
    if not isinstance(token, str):
        return False

    for marker in (f"({prefix})", prefix):
        if token.startswith(marker):
            encoded = token[len(marker):]
            break
    else:
        return False

    try:
        decoded = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        return False
    return len(decoded) > MIN_DECODED_BYTES
