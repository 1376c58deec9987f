from __future__ import annotations

import logging
import re
from typing import IO, Dict, List, Optional, Tuple

from pybtex.database import BibliographyData
from pybtex.database.input.bibtex import Parser
from pybtex.exceptions import PybtexError

from .models import BibEntry, MetaData, ParserResult

logger = logging.getLogger(__name__)

META_COMMENT = re.compile(r"@comment\s*\{\s*jabref-meta:\s*([^:{}]+):(.*?)\}\s*$", re.IGNORECASE | re.DOTALL | re.MULTILINE)
GROUP_TREE_KEY = "groupstree"
ROOT_GROUP = "AllEntriesGroup"


class ParsingEngine:
    """
    Abstract parser collaborator. Implementations turn a character stream
    into a ParserResult and should be stateless and reusable across threads.
    """

    def parse(self, reader: IO[str]) -> ParserResult:
        raise NotImplementedError


def split_meta_value(raw: str) -> List[str]:
    """Split a `;`-separated meta value, honouring `\\;` escapes."""
    items: List[str] = []
    current: List[str] = []
    escaped = False
    for ch in raw:
        if escaped:
            current.append(ch)
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == ";":
            items.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    tail = "".join(current).strip()
    if tail:
        items.append(tail)
    return [item for item in items if item]


def group_tree_is_valid(raw: Optional[str]) -> bool:
    """
    A serialized group tree is a list of `<level> <GroupType>:<data>` items.
    It must start at the root group and never descend more than one level
    at a time.
    """
    if raw is None:
        return True
    items = split_meta_value(raw)
    if not items:
        return True
    previous_level = -1
    for index, item in enumerate(items):
        level_text, _, rest = item.partition(" ")
        if not level_text.isdigit() or ":" not in rest:
            return False
        level = int(level_text)
        if index == 0 and (level != 0 or not rest.startswith(ROOT_GROUP)):
            return False
        if index > 0 and (level == 0 or level > previous_level + 1):
            return False
        previous_level = level
    return True


def read_metadata(text: str) -> MetaData:
    values: Dict[str, str] = {}
    for match in META_COMMENT.finditer(text):
        name = match.group(1).strip()
        values[name] = match.group(2).strip()
    return MetaData(values=values, group_tree_valid=group_tree_is_valid(values.get(GROUP_TREE_KEY)))


class _TrackingParser(Parser):
    """
    pybtex's BibTeX parser, but repeated keys are collected instead of
    rejected so the duplicate-key action can deal with them later.
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.duplicate_keys: List[str] = []
        # Every entry in file order, repeated keys included.
        self.ordered: List[Tuple[str, object]] = []

    def process_entry(self, entry_type, key, fields):
        if key is not None and key in self.data.entries:
            self.duplicate_keys.append(key)
            main = self.data
            self.data = BibliographyData()
            try:
                super().process_entry(entry_type, key, fields)
                self.ordered.extend(self.data.entries.items())
            finally:
                self.data = main
            return
        super().process_entry(entry_type, key, fields)
        if key is not None and key in self.data.entries:
            self.ordered.append((key, self.data.entries[key]))


class PybtexParsingEngine(ParsingEngine):
    """
    BibTeX parser backed by pybtex. Person fields are flattened back into
    `and`-joined strings so every field is a plain string.
    """

    def parse(self, reader: IO[str]) -> ParserResult:
        text = reader.read()
        parser = _TrackingParser()
        try:
            parser.parse_string(text)
        except PybtexError as exc:
            logger.info("pybtex rejected input: %s", exc)
            return ParserResult.invalid(str(exc))

        result = ParserResult(metadata=read_metadata(text))
        for key, entry in parser.ordered:
            bib_entry = self._map_entry(key, entry)
            result.entries.append(bib_entry)
            result.entry_types.add(bib_entry.entry_type)
        for key in parser.duplicate_keys:
            if key not in result.duplicate_keys:
                result.duplicate_keys.append(key)
            result.add_warning(f"Duplicate BibTeX key: {key}")
        return result

    def _map_entry(self, key: str, entry) -> BibEntry:
        fields = {name.lower(): str(value) for name, value in entry.fields.items()}
        for role, persons in entry.persons.items():
            fields[role.lower()] = " and ".join(str(person) for person in persons)
        return BibEntry(key=key, entry_type=entry.type.lower(), fields=fields)
