"""
Module: json_helpers.py
Description: JSON framing for SQS message bodies.

Messages travel as a {"content": ..., "meta": {...}} envelope serialized
into the SQS MessageBody. Received bodies are parsed leniently so that
messages written by other producers never break a consumer.
"""

import json
from typing import Any, Dict, Optional


def dumps_envelope(content: Any, meta: Optional[Dict[str, Any]] = None) -> str:
    """
    Serialize content and meta into a message body.

    Args:
        content: Message content (any JSON serializable value)
        meta: Optional metadata dictionary, defaults to {}

    Returns:
        JSON string of the envelope

    Raises:
        TypeError: If content or meta is not JSON serializable

    Example:
        >>> dumps_envelope({"id": 1}, {"source": "api"})
        '{"content": {"id": 1}, "meta": {"source": "api"}}'
    """
    return json.dumps({
        "content": content,
        "meta": meta if meta is not None else {}
    })


def safe_json(body: Optional[str]) -> Any:
    """
    Parse a message body without raising.

    Args:
        body: Raw SQS message body

    Returns:
        The parsed JSON value, the body unchanged if it is not valid
        JSON, or None when there is no body.
    """
    if body is None:
        return None
    if not isinstance(body, (str, bytes, bytearray)):
        return body

    try:
        return json.loads(body)
    except ValueError:
        return body
