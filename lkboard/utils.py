from __future__ import annotations
import re
from typing import Mapping, Optional, Tuple

__all__ = [
    "normalize_content_type",
    "extract_charset",
    "is_json_content_type",
    "decode_text",
]

_JSON_RE = re.compile(r"json", re.IGNORECASE)


def normalize_content_type(hdrs: Mapping[str, str]) -> Optional[str]:
    ct = hdrs.get("Content-Type") or hdrs.get("content-type")
    return ct.split(";")[0].strip().lower() if ct else None


def extract_charset(hdrs: Mapping[str, str]) -> Optional[str]:
    ct = hdrs.get("Content-Type") or hdrs.get("content-type") or ""
    parts = ct.split(";")
    for p in parts[1:]:
        p = p.strip()
        if p.lower().startswith("charset="):
            return p.split("=", 1)[1].strip().strip('"')
    return None


def is_json_content_type(content_type: Optional[str]) -> bool:
    # LeanKit labels envelopes "application/json", some proxies rewrite to text/json
    return bool(content_type) and _JSON_RE.search(content_type) is not None


def decode_text(data: bytes, charset: Optional[str]) -> Tuple[str, Optional[str]]:
    tried = []
    if charset:
        try:
            return data.decode(charset), None
        except (LookupError, UnicodeDecodeError) as e:
            tried.append(f"{charset}({e})")
    try:
        return data.decode("utf-8"), None
    except UnicodeDecodeError as e:
        tried.append(f"utf-8({e})")
    return data.decode("utf-8", errors="replace"), f"fallback utf-8; tried={tried}"

