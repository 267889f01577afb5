"""
Wallet address normalization.

Policy:
  - Stored form is the address exactly as received, whitespace-stripped.
    TRON base58 is case-sensitive, so nothing is ever lowercased on write.
  - Comparison uses a lowercase key. Some legacy rows were lowercased by an
    old migration path and their original casing is unrecoverable; a
    case-insensitive match still finds them, and drift detection reports
    them as `ambiguous_case` so they can be rewritten from the chain.
"""
from __future__ import annotations

import json
import re
from typing import Any, Iterable, List, Optional

TRON_ADDRESS_RE = re.compile(r"^T[1-9A-HJ-NP-Za-km-z]{33}$")


def canonical_address(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    s = str(raw).strip()
    return s or None


def address_key(raw: Any) -> str:
    s = canonical_address(raw)
    return s.lower() if s else ""


def is_tron_address(raw: Any) -> bool:
    s = canonical_address(raw)
    return bool(s and TRON_ADDRESS_RE.match(s))


def parse_recipients(raw: Any) -> List[str]:
    """
    Normalize any historical recipients shape into an ordered, de-duplicated
    list of canonical address strings.

    Accepts a list (of strings or {"address": ...} objects), a JSON-encoded
    list, a JSON-encoded string, a bare address, or a comma separated string.
    """
    items = _flatten(raw)
    out: List[str] = []
    seen = set()
    for item in items:
        addr = canonical_address(item)
        if not addr:
            continue
        k = addr.lower()
        if k in seen:
            continue
        seen.add(k)
        out.append(addr)
    return out


def _flatten(raw: Any) -> List[Any]:
    if raw is None:
        return []
    if isinstance(raw, dict):
        return [raw.get("address")] if raw.get("address") else []
    if isinstance(raw, (list, tuple)):
        out: List[Any] = []
        for item in raw:
            out.extend(_flatten(item))
        return out

    s = str(raw).strip()
    if not s:
        return []
    if s[0] in "[{\"":
        try:
            decoded = json.loads(s)
        except ValueError:
            decoded = None
        if decoded is not None and decoded != s:
            return _flatten(decoded)
    return [part for part in (p.strip().strip('"') for p in s.split(",")) if part]


def contains_address(recipients: Iterable[str], wallet: Any) -> bool:
    k = address_key(wallet)
    return bool(k) and any(address_key(r) == k for r in recipients)


def contains_exact(recipients: Iterable[str], wallet: Any) -> bool:
    w = canonical_address(wallet)
    return bool(w) and any(canonical_address(r) == w for r in recipients)
