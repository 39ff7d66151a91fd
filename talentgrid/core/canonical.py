"""Deterministic canonicalization and checksum helpers for audit snapshots."""
import hashlib
import json
from typing import Any, Dict, Union

from pydantic import BaseModel


def canonical_json(payload: Union[Dict[str, Any], BaseModel]) -> str:
    """Serialize payload using deterministic JSON formatting."""
    if isinstance(payload, BaseModel):
        data = payload.model_dump(mode="json")
    else:
        data = payload
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def sha256_checksum(payload: Union[Dict[str, Any], BaseModel]) -> str:
    """Return SHA-256 over canonical JSON."""
    return sha256_text(canonical_json(payload))


def sha256_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
