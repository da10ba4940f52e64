from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass

_APOSTROPHES = re.compile(r"['’`]")
_NON_WORD = re.compile(r"[\W_]+", re.UNICODE)


def normalize_name(value: str) -> str:
    """Lowercase, strip diacritics and symbols, collapse whitespace.

    ``"Pokémon™: Let's Go!"`` becomes ``"pokemon lets go"``.
    """
    if not value:
        return ""
    # symbols first: NFKD would otherwise expand e.g. "™" into "TM"
    text = "".join(" " if unicodedata.category(ch).startswith("S") else ch for ch in value)
    text = unicodedata.normalize("NFKD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = _APOSTROPHES.sub("", text.lower())
    return " ".join(_NON_WORD.sub(" ", text).split())


@dataclass(frozen=True, slots=True)
class ItemRecord:
    id: int
    name: str
    normalized_name: str

    @property
    def searchable(self) -> bool:
        return bool(self.normalized_name)


def make_record(item_id: int, name: str) -> ItemRecord:
    name = name or ""
    return ItemRecord(id=int(item_id), name=name, normalized_name=normalize_name(name))
