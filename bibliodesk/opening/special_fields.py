"""
Special fields (ranking, priority, read status, ...) are mirrored into the
keywords field when a database is saved. After loading, the fields are
rebuilt from the keywords so both views agree.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Tuple

from .models import BibEntry

logger = logging.getLogger(__name__)

KEYWORDS_FIELD = "keywords"
KEYWORD_SEPARATOR = re.compile(r"[,;]")

SPECIAL_FIELDS: Dict[str, Tuple[str, ...]] = {
    "ranking": ("rank1", "rank2", "rank3", "rank4", "rank5"),
    "priority": ("prio1", "prio2", "prio3"),
    "relevance": ("relevant",),
    "qualityassured": ("qualityAssured",),
    "printed": ("printed",),
    "readstatus": ("read", "skimmed"),
}


def parse_keywords(raw: str) -> List[str]:
    return [word.strip() for word in KEYWORD_SEPARATOR.split(raw or "") if word.strip()]


def sync_special_fields_from_keywords(entry: BibEntry) -> bool:
    """
    Returns True if any field on the entry changed. Entries without a
    keywords field keep their special fields as stored.
    """
    raw = entry.get(KEYWORDS_FIELD)
    if raw is None:
        return False
    keywords = parse_keywords(raw)
    changed = False
    for field_name, values in SPECIAL_FIELDS.items():
        new_value = next((value for value in values if value in keywords), None)
        old_value = entry.get(field_name)
        if new_value == old_value:
            continue
        if new_value is None:
            entry.clear(field_name)
        else:
            entry.set(field_name, new_value)
        changed = True
    return changed


def sync_all(entries: Iterable[BibEntry]) -> int:
    changed = sum(1 for entry in entries if sync_special_fields_from_keywords(entry))
    logger.info("Synchronized special fields based on keywords (%s entries changed)", changed)
    return changed
