from __future__ import annotations

import csv
import unicodedata
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Final

from rapidfuzz import fuzz

from .config import get_settings

# Shown first in the country picker, in this order.
PRIORITY_COUNTRIES: Final[tuple[str, ...]] = (
    "US", "GB", "CA", "AU", "DE", "FR", "IT", "ES", "NL", "SE", "NO",
    "DK", "FI", "IE", "BE", "CH", "AT", "PT", "BR", "MX", "AR", "CL",
    "IN", "SG", "JP", "KR", "HK", "TW", "TH", "MY", "PH", "ID", "VN",
)  # fmt: skip

MIN_FUZZY_SCORE: Final[float] = 80.0


@dataclass(frozen=True)
class CountryEntry:
    code: str
    name: str

    def as_dict(self) -> dict[str, str]:
        return {"code": self.code, "name": self.name}


@dataclass(frozen=True)
class CountryCatalogue:
    # priority countries first, then the rest by name
    entries: tuple[CountryEntry, ...]
    by_code: dict[str, CountryEntry]


def _normalise(text: str) -> str:
    """Lowercase, strip accents, trim spaces."""
    text = text.strip().lower()
    text = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in text if not unicodedata.combining(ch))


def _build_catalogue(entries: list[CountryEntry]) -> CountryCatalogue:
    by_code = {e.code: e for e in entries}
    priority = [by_code[code] for code in PRIORITY_COUNTRIES if code in by_code]
    rest = sorted(
        (e for e in by_code.values() if e.code not in PRIORITY_COUNTRIES),
        key=lambda e: _normalise(e.name),
    )
    return CountryCatalogue(entries=(*priority, *rest), by_code=by_code)


@lru_cache
def get_country_catalogue() -> CountryCatalogue:
    settings = get_settings()
    csv_path = settings.countries_csv

    # If the file does not exist, return an empty catalogue.
    if not csv_path or not Path(csv_path).is_file():
        return _build_catalogue([])

    entries: list[CountryEntry] = []
    with Path(csv_path).open("r", encoding="utf-8", newline="") as f:
        for row in csv.DictReader(f):
            code = (row.get("code") or "").strip().upper()
            name = (row.get("name") or "").strip()
            if len(code) != 2 or not name:
                continue
            entries.append(CountryEntry(code=code, name=name))

    return _build_catalogue(entries)


def search_countries(term: str | None = None) -> list[CountryEntry]:
    """
    Filter the catalogue by name or ISO code, keeping catalogue order.

    Falls back to fuzzy name matching when nothing matches directly, so
    "Germny" still finds Germany. Fuzzy results are ordered by score.
    """
    catalogue = get_country_catalogue()
    needle = _normalise(term or "")
    if not needle:
        return list(catalogue.entries)

    direct = [
        e
        for e in catalogue.entries
        if needle in _normalise(e.name) or needle == e.code.lower()
    ]
    if direct:
        return direct

    scored: list[tuple[float, CountryEntry]] = []
    for entry in catalogue.entries:
        score = float(fuzz.partial_ratio(needle, _normalise(entry.name)))
        if score >= MIN_FUZZY_SCORE:
            scored.append((score, entry))
    # stable sort keeps catalogue order among equal scores
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [entry for _, entry in scored]


def country_name(code: str) -> str | None:
    entry = get_country_catalogue().by_code.get(code.strip().upper())
    return entry.name if entry else None
