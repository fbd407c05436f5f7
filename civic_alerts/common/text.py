"""Address and street-name normalisation."""

from __future__ import annotations

import re

_DOUBLE_QUOTES_RE = re.compile(r"[“”„«»″]")
_SINGLE_QUOTES_RE = re.compile(r"[‘’‚‹›`′]")
_ANY_QUOTE_RE = re.compile(r"[\"'`“”„«»″‘’‚‹›′]")
_WHITESPACE_RE = re.compile(r"\s+")
_NEWLINES_RE = re.compile(r"[\r\n]+")
_STREET_PREFIX_RE = re.compile(
    r"^(ул\.|бул\.|пл\.|площад|улица|булевард|str\.|st\.|blvd\.|street)\s*",
    re.IGNORECASE,
)
_INTERSECTION_RE = re.compile(r"\s*(?:&|∩)\s*")
_HOUSE_NUMBER_RE = re.compile(r"\d")


def collapse_whitespace(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value).strip()


def flatten_newlines(value: str) -> str:
    return collapse_whitespace(_NEWLINES_RE.sub(" ", value))


def normalise_address(address: str) -> str:
    cleaned = _DOUBLE_QUOTES_RE.sub('"', address)
    cleaned = _SINGLE_QUOTES_RE.sub("'", cleaned)
    cleaned = cleaned.replace("№", " ")
    return collapse_whitespace(cleaned)


def with_locality(address: str, locality: str, country: str) -> str:
    """Append the municipal locality and/or country when the address lacks them."""
    lowered = address.lower()
    has_locality = locality.lower() in lowered
    has_country = country.lower() in lowered
    if has_locality and has_country:
        return address
    if has_locality:
        return f"{address}, {country}"
    if has_country:
        return f"{address}, {locality}"
    return f"{address}, {locality}, {country}"


def normalise_street_name(name: str) -> str:
    cleaned = name.lower().strip()
    cleaned = _STREET_PREFIX_RE.sub("", cleaned)
    cleaned = _ANY_QUOTE_RE.sub("", cleaned)
    return collapse_whitespace(cleaned)


def split_intersection(address: str) -> tuple[str, str] | None:
    parts = [part.strip() for part in _INTERSECTION_RE.split(address)]
    if len(parts) != 2 or not all(parts):
        return None
    return parts[0], parts[1]


def has_house_number(address: str) -> bool:
    return bool(_HOUSE_NUMBER_RE.search(address))
