"""Japanese postal code and area code normalisation."""

from __future__ import annotations

import re

POSTAL_CODE_RE = re.compile(r"^[0-9]{7}$")
_SEPARATORS_RE = re.compile(r"[\s\-‐－ー〒]")
_FULLWIDTH_DIGITS = str.maketrans("０１２３４５６７８９", "0123456789")


def is_valid_postal_code(value: str) -> bool:
    return bool(POSTAL_CODE_RE.match(value))


def normalise_postal_code(raw: str | None) -> str | None:
    """``"335-0016"``, ``"〒３３５－００１６"`` and ``"3350016"`` all become ``"3350016"``."""
    if raw is None:
        return None
    cleaned = _SEPARATORS_RE.sub("", raw.strip().translate(_FULLWIDTH_DIGITS))
    if not is_valid_postal_code(cleaned):
        return None
    return cleaned


def format_postal_code(code: str) -> str:
    return f"{code[:3]}-{code[3:]}"


def normalise_area_code(raw: str | None) -> str | None:
    if raw is None:
        return None
    cleaned = re.sub(r"\s+", "", raw.strip().translate(_FULLWIDTH_DIGITS)).upper()
    return cleaned or None


def normalise_code(kind: str, raw: str | None) -> str | None:
    if kind == "postal":
        return normalise_postal_code(raw)
    if kind == "area":
        return normalise_area_code(raw)
    raise ValueError(f"Unsupported code kind: {kind}")
