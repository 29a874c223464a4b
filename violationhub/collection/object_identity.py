"""
Object identity prefix
----------------------
Policies may prefix their violation messages with a JSON object describing
the offending object, e.g.

    {"service": "keystone", "support_group": "identity"} >> image tag is missing

The prefix is split off into a string map; the rest stays as the message.
The remainder must fit on one line, multi-line messages are kept whole.
"""
import json
import re
from typing import Dict, Optional, Tuple

OBJECT_IDENTITY_RX = re.compile(r"^(\{.*?\})\s*>>\s*(.*)\Z")


def parse_object_identity(message: str) -> Tuple[Optional[Dict[str, str]], str]:
    """
    Returns (identity, remaining message), or (None, message) if the message
    carries no well-formed prefix. Never raises.
    """
    match = OBJECT_IDENTITY_RX.match(message or "")
    if match is None:
        return None, message

    try:
        identity = json.loads(match.group(1))
    except ValueError:
        return None, message

    if not isinstance(identity, dict):
        return None, message
    if not all(isinstance(value, str) for value in identity.values()):
        return None, message

    return identity, match.group(2)
