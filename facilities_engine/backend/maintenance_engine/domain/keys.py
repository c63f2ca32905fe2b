from __future__ import annotations

import hashlib
import json
from typing import Any

KEY_LENGTH = 40


def document_key(namespace: str, *parts: Any, length: int = KEY_LENGTH) -> str:
    """
    Deterministic document id for records that must be unique by content
    (e.g. one location mapping per spreadsheet label).

    The namespace keeps equal parts in different collections from sharing a key.
    """
    blob = json.dumps([namespace, *parts], default=str, ensure_ascii=False).encode("utf-8")
    return hashlib.sha256(blob).hexdigest()[:length]
