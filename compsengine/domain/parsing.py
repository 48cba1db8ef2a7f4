# compsengine/domain/parsing.py
from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any


def to_float(x: Any) -> float | None:
    """Finite float or None. Booleans are not numbers here."""
    if x is None or x == "" or isinstance(x, bool):
        return None
    if isinstance(x, str):
        x = x.replace(",", "").replace("$", "").strip()
    try:
        f = float(x)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(f):
        return None
    return f


def round_half_up(x: float) -> int:
    """Nearest integer with halves rounded up (2.5 -> 3), unlike banker's round()."""
    return int(math.floor(x + 0.5))


def to_date(x: Any) -> date | None:
    """
    Accepts date/datetime objects, ISO strings ('2024-03-01', '2024-03-01T00:00:00Z'),
    and US-style 'MM/DD/YYYY'. Anything else => None.
    """
    if x is None or x == "":
        return None
    if isinstance(x, datetime):
        return x.date()
    if isinstance(x, date):
        return x
    if not isinstance(x, str):
        return None

    s = x.strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(s).date()
    except ValueError:
        pass
    for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%Y/%m/%d"):
        try:
            return datetime.strptime(s[:10], fmt).date()
        except ValueError:
            continue
    return None


def get_nested(payload: Any, path: str) -> Any:
    """
    Tiny dot-path getter: 'address.street', 'sale.lastSale.price'.
    Integer segments index into lists: 'deedHistory.0.salePrice'.
    """
    cur: Any = payload
    for part in path.split("."):
        if isinstance(cur, dict):
            cur = cur.get(part)
        elif isinstance(cur, list) and part.isdigit():
            idx = int(part)
            cur = cur[idx] if idx < len(cur) else None
        else:
            return None
        if cur is None:
            return None
    return cur
