"""
Shared team name normalization for cross-provider identity resolution.

Single source of truth: team lookup by name, derived fixture keys and
head-to-head pairing all go through normalize_team_name.
"""

import re
import unicodedata
from typing import Optional


_SAFE_ORG_TOKENS = [
    r"\bfc\b", r"\bcf\b", r"\bsc\b", r"\bafc\b", r"\bssc\b",
    r"\bac\b", r"\bcd\b", r"\bud\b", r"\bsv\b", r"\bfk\b", r"\bsk\b",
]


def normalize_team_name(name: Optional[str]) -> str:
    """
    Normalize team name for exact-match identity resolution.

    Steps:
    1. Lowercase + trim
    2. Strip diacritics (NFKD, plus Nordic letters NFKD leaves alone)
    3. Replace punctuation/hyphens/slashes with space
    4. Remove juridical tokens only ("fc", "afc"...), never semantic ones
       like "real", "united" or "city" that tell clubs apart
    5. Collapse whitespace

    Examples:
        "Manchester United FC" -> "manchester united"
        "FC Barcelona"         -> "barcelona"
        "Bodø/Glimt"           -> "bodo glimt"
        "Paris Saint-Germain"  -> "paris saint germain"
    """
    if not name:
        return ""

    name = name.lower().strip()

    name = name.replace("ø", "o").replace("æ", "ae").replace("ð", "d")
    name = unicodedata.normalize("NFKD", name)
    name = "".join(c for c in name if not unicodedata.combining(c))

    name = re.sub(r"[^\w\s]", " ", name)
    unstripped = " ".join(name.split())

    for token in _SAFE_ORG_TOKENS:
        name = re.sub(token, "", name)

    name = " ".join(name.split())

    # A name made only of org tokens ("FC") keeps its lowered form
    return name or unstripped


def normalize_label(value: Optional[str]) -> str:
    """Lowercase/whitespace-collapse for league labels in derived keys."""
    if not value:
        return ""
    return " ".join(value.lower().split())


def team_pair(home: Optional[str], away: Optional[str]) -> frozenset[str]:
    """Unordered pair of normalized names (head-to-head matching)."""
    return frozenset((normalize_team_name(home), normalize_team_name(away)))
