"""Postal reference data from the zipped KEN_ALL_ROME address list."""

from __future__ import annotations

import csv
import io
import zipfile
from dataclasses import dataclass
from pathlib import Path

from storeroute.common.errors import StageError
from storeroute.common.postcode import format_postal_code, normalise_postal_code

SOURCE_ENCODING = "shift_jis"


@dataclass(frozen=True)
class PostalEntry:
    postal_code: str
    prefecture: str
    city: str
    address: str
    prefecture_rome: str = ""
    city_rome: str = ""
    address_rome: str = ""


def parse_postal_rows(rows) -> dict[str, list[PostalEntry]]:
    postal_data: dict[str, list[PostalEntry]] = {}
    for row in rows:
        if len(row) < 4:
            continue
        parts = [value.strip() for value in row[:7]]
        code = normalise_postal_code(parts[0])
        if code is None:
            continue
        parts += [""] * (7 - len(parts))
        postal_data.setdefault(code, []).append(PostalEntry(code, *parts[1:7]))
    return postal_data


def load_postal_data(zip_path: Path) -> dict[str, list[PostalEntry]]:
    if not zip_path.exists():
        raise StageError(f"Postal data archive not found: {zip_path}")
    try:
        with zipfile.ZipFile(zip_path) as archive:
            names = [name for name in archive.namelist() if not name.endswith("/")]
            if not names:
                raise StageError(f"No files in postal data archive: {zip_path}")
            raw = archive.read(names[0])
    except zipfile.BadZipFile as exc:
        raise StageError(f"Unreadable postal data archive: {zip_path}") from exc

    text = raw.decode(SOURCE_ENCODING, errors="replace")
    return parse_postal_rows(csv.reader(io.StringIO(text)))


def describe_postal_code(code: str, entries: list[PostalEntry] | None) -> str:
    if not entries:
        return f"Route for postal code {format_postal_code(code)}"
    info = entries[0]
    place = " ".join(part for part in (info.prefecture, info.city, info.address) if part)
    return f"Route for postal code {format_postal_code(code)} ({place})"


@dataclass(frozen=True)
class PostalMatch:
    entry: PostalEntry
    match_length: int

    @property
    def postal_code(self) -> str:
        return self.entry.postal_code

    def to_dict(self) -> dict:
        return {
            "postal_code": format_postal_code(self.entry.postal_code),
            "prefecture": self.entry.prefecture,
            "city": self.entry.city,
            "address": self.entry.address,
            "prefecture_rome": self.entry.prefecture_rome,
            "city_rome": self.entry.city_rome,
            "address_rome": self.entry.address_rome,
            "match_length": self.match_length,
        }


def postal_code_for_address(
    postal_data: dict[str, list[PostalEntry]], prefecture: str, city: str, address: str
) -> str | None:
    """First code whose entry has this exact prefecture and city and an address containing ``address``."""
    for code, entries in postal_data.items():
        for entry in entries:
            if entry.prefecture == prefecture and entry.city == city and address in entry.address:
                return code
    return None


def _clean_term(term: str | None) -> str:
    return "".join((term or "").split()).lower()


def _area_substrings(area: str) -> set[str]:
    if not area:
        return {""}
    return {area[start:end] for start in range(len(area)) for end in range(start + 2, len(area) + 1)}


def find_postal_codes(
    postal_data: dict[str, list[PostalEntry]],
    prefecture: str | None = None,
    city: str | None = None,
    area: str | None = None,
) -> list[PostalMatch]:
    """Rank postal codes by how much of ``area`` appears in their address.

    Prefecture and city terms filter by substring. Every substring of the area term of at
    least two characters is tried against each address; a code scores the longest one found.
    Ties go to the address whose length is closest to the matched length.
    """
    prefecture_term = _clean_term(prefecture)
    city_term = _clean_term(city)
    substrings = sorted(_area_substrings(_clean_term(area)), key=len, reverse=True)

    best: dict[str, PostalMatch] = {}
    for code, entries in postal_data.items():
        for entry in entries:
            if prefecture_term and prefecture_term not in entry.prefecture.lower():
                continue
            if city_term and city_term not in entry.city.lower():
                continue
            address = entry.address.lower()
            length = next((len(sub) for sub in substrings if sub in address), None)
            if length is None:
                continue
            current = best.get(code)
            if current is None or length > current.match_length:
                best[code] = PostalMatch(entry, length)

    return sorted(
        best.values(),
        key=lambda match: (-match.match_length, abs(match.match_length - len(match.entry.address))),
    )
