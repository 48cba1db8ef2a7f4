# compsengine/domain/address.py
from __future__ import annotations

import re

from .errors import MalformedCandidate
from .extraction import FIELD_RULES, resolve
from .payload import RawProperty

# Street suffixes collapsed to USPS short forms so "Main Street" == "Main St".
_SUFFIXES: dict[str, str] = {
    "STREET": "ST",
    "AVENUE": "AVE",
    "AV": "AVE",
    "ROAD": "RD",
    "DRIVE": "DR",
    "BOULEVARD": "BLVD",
    "LANE": "LN",
    "COURT": "CT",
    "PLACE": "PL",
    "TERRACE": "TER",
    "CIRCLE": "CIR",
    "PARKWAY": "PKWY",
    "HIGHWAY": "HWY",
    "TRAIL": "TRL",
    "WAY": "WAY",
}

_DIRECTIONS: dict[str, str] = {
    "NORTH": "N",
    "SOUTH": "S",
    "EAST": "E",
    "WEST": "W",
    "NORTHEAST": "NE",
    "NORTHWEST": "NW",
    "SOUTHEAST": "SE",
    "SOUTHWEST": "SW",
}

_UNIT_RE = re.compile(r"\s*(?:#|\b(?:APT|APARTMENT|UNIT|STE|SUITE)\b\.?)\s*[\w-]+\s*$", re.IGNORECASE)


def street_part(address: str | None) -> str:
    """'123 Main St, Springfield, IL 62701' -> '123 Main St'"""
    if not address:
        return ""
    return address.split(",", 1)[0].strip()


def address_key(address: str | None) -> str:
    """
    Comparison key for self-exclusion: street part only, upper-cased,
    punctuation stripped, suffixes and directions abbreviated.
    """
    s = street_part(address).upper()
    s = re.sub(r"[^\w\s#]", " ", s)
    tokens = []
    for tok in s.split():
        tok = _SUFFIXES.get(tok, tok)
        tok = _DIRECTIONS.get(tok, tok)
        tokens.append(tok)
    return " ".join(tokens)


def same_address(a: str | None, b: str | None) -> bool:
    ka = address_key(a)
    return bool(ka) and ka == address_key(b)


def clean_address(address: str | None) -> str:
    """
    Looser search query: drops unit designators and punctuation the provider
    tends to choke on. '123 Main St., Apt 4B' -> '123 Main St'
    """
    s = street_part(address)
    s = _UNIT_RE.sub("", s)
    s = re.sub(r"[^\w\s-]", " ", s)
    return " ".join(s.split())


def extract_address(payload: RawProperty) -> str:
    """Returns the street address or raises MalformedCandidate."""
    got = resolve(payload, "address", FIELD_RULES["address"])
    if got.defaulted or not got.value:
        hint = sorted(list(payload.data.keys()))[:25]
        raise MalformedCandidate(f"No usable address in candidate. keys={hint}", fingerprint=payload.fingerprint)
    return got.value
