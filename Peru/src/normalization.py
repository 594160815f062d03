"""Name and text normalization helpers shared by the parser and the resolver."""

import re
import unicodedata
from typing import Optional, Tuple

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")
_WHITESPACE = re.compile(r"\s+")

# Particles kept lowercase when title-casing Spanish names
_LOWERCASE_PARTICLES = {"de", "del", "la", "las", "los", "y"}


def strip_accents(text: str) -> str:
    """Remove combining diacritical marks (NFD decomposition)."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_name(name: Optional[str]) -> str:
    """
    Normalize a person or party name for equality comparison.

    Lowercases, strips diacritics, drops anything that is not a letter,
    digit or whitespace, and collapses runs of whitespace.

    Args:
        name: Raw name, possibly None

    Returns:
        Normalized name, empty string for missing input
    """
    if not name:
        return ""
    text = strip_accents(name.lower())
    text = _NON_ALNUM.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def create_slug(name: Optional[str]) -> str:
    """Deterministic URL slug derived from the normalized name."""
    return _NON_ALNUM_RUN.sub("-", normalize_name(name)).strip("-")


def clean_text(value) -> str:
    """Collapse whitespace in a scalar value, returning '' for None."""
    if value is None:
        return ""
    return _WHITESPACE.sub(" ", str(value)).strip()


def title_case_name(name: Optional[str]) -> str:
    """Title-case a name, keeping Spanish particles lowercase."""
    words = clean_text(name).lower().split(" ")
    result = []
    for index, word in enumerate(words):
        if index > 0 and word in _LOWERCASE_PARTICLES:
            result.append(word)
        else:
            result.append(word[:1].upper() + word[1:])
    return " ".join(result).strip()


def split_full_name(full_name: Optional[str]) -> Tuple[str, str, str]:
    """
    Split a full name into (paternal surname, maternal surname, given name).

    Portal full names are written surnames first. With three or more tokens
    the first two are the surnames and the rest is the given name; with two
    tokens the first is the surname and the second the given name. Compound
    surnames ("de la Cruz") are not disambiguated.

    Args:
        full_name: Full name string

    Returns:
        Tuple of (paternal_surname, maternal_surname, given_name)
    """
    tokens = clean_text(full_name).split(" ") if clean_text(full_name) else []
    if len(tokens) >= 3:
        return tokens[0], tokens[1], " ".join(tokens[2:])
    if len(tokens) == 2:
        return tokens[0], "", tokens[1]
    if len(tokens) == 1:
        return "", "", tokens[0]
    return "", "", ""
