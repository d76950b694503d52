from __future__ import annotations

"""Short stroke-name matching for finalized transcriptions."""

import unicodedata


def normalize_name(text: str) -> str:
    """Lowercase, drop whitespace and tone marks ("Héng zhé" -> "hengzhe")."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return "".join(stripped.lower().split())


def matches_expected(transcript: str, expected_name: str) -> bool:
    """True when the transcript contains the expected stroke name.

    Containment rather than equality, so "heng zhe gou" still matches "hengzhe".
    """
    expected = normalize_name(expected_name)
    if not expected:
        return False
    return expected in normalize_name(transcript)
