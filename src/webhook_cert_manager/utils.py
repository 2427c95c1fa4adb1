"""Utility helpers shared across the webhook cert manager package."""
from __future__ import annotations

import base64
from typing import Optional, Union


def b64decode_value(value: Optional[Union[str, bytes]]) -> bytes:
    """Decode a base64 field from a Kubernetes object, treating ``None`` as empty."""

    if not value:
        return b""
    return base64.b64decode(value)


def b64encode_value(value: bytes) -> str:
    """Encode raw bytes the way the Kubernetes API expects ``[]byte`` fields."""

    return base64.b64encode(value).decode("ascii")
