# compsengine/domain/payload.py
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Iterable

from .parsing import get_nested


def fingerprint(data: Any) -> str:
    """Stable short hash of a decoded payload, for logs and fallback ids."""
    blob = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(blob.encode("utf-8", errors="ignore")).hexdigest()[:16]


@dataclass(frozen=True)
class RawProperty:
    """
    One upstream candidate, validated at the client boundary.

    The provider hands back untyped JSON. Only JSON objects make it into a
    RawProperty; everything past this point reads fields through `lookup`.
    """
    data: dict[str, Any]
    fingerprint: str = field(default="")

    @classmethod
    def from_obj(cls, obj: Any) -> "RawProperty | None":
        if not isinstance(obj, dict) or not obj:
            return None
        return cls(data=obj, fingerprint=fingerprint(obj))

    def lookup(self, path: str) -> Any:
        return get_nested(self.data, path)

    def section(self, key: str) -> dict[str, Any]:
        v = self.data.get(key)
        return v if isinstance(v, dict) else {}


def decode_candidates(items: Iterable[Any]) -> list[RawProperty]:
    out: list[RawProperty] = []
    for item in items:
        rp = RawProperty.from_obj(item)
        if rp is not None:
            out.append(rp)
    return out
