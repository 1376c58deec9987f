"""
Detection of the character encoding a database file declares in its leading
comment block, e.g.

    % This file was created with JabRef 2.10.
    % Encoding: ISO8859_1

The header is plain ASCII, so it can be read under either an 8-bit or a
16-bit hypothesis before the real encoding is known. 8-bit is tried first.
"""

from __future__ import annotations

import codecs
import io
import logging
from pathlib import Path
from typing import IO, Iterable, Optional, Tuple, Union

from .errors import EncodingUnavailable

logger = logging.getLogger(__name__)

COMMENT_MARKER = "%"
SIGNATURE = "This file was created with JabRef"
ENCODING_PREFIX = "Encoding: "

# Order matters: the 8-bit hypothesis is far more common.
SNIFF_HYPOTHESES = ("utf-8-sig", "utf-16")


def sniff_declared_encoding(lines: Iterable[str]) -> Optional[str]:
    for raw in lines:
        line = raw.strip()
        if not line.startswith(COMMENT_MARKER):
            return None
        line = line[len(COMMENT_MARKER):].strip()
        if line.startswith(SIGNATURE):
            continue
        if line.startswith(ENCODING_PREFIX):
            return line[len(ENCODING_PREFIX):].strip()
        return None
    return None


def _open_binary(source: Union[Path, str, bytes]) -> IO[bytes]:
    if isinstance(source, bytes):
        return io.BytesIO(source)
    return open(source, "rb")


def _sniff_with(source: Union[Path, str, bytes], hypothesis: str) -> Optional[str]:
    # Every hypothesis gets a fresh reader; nothing shared is advanced.
    try:
        with io.TextIOWrapper(_open_binary(source), encoding=hypothesis, errors="replace") as reader:
            return sniff_declared_encoding(reader)
    except (OSError, UnicodeError, ValueError) as exc:
        logger.debug("Encoding sniff with %s failed: %s", hypothesis, exc)
        return None


def sniff_encoding(source: Union[Path, str, bytes]) -> Optional[str]:
    """
    Return the declared encoding name, or None if the file declares none.
    Never raises: unreadable input counts as "no declaration".
    """
    for hypothesis in SNIFF_HYPOTHESES:
        declared = _sniff_with(source, hypothesis)
        if declared:
            logger.debug("Declared encoding %s found under %s hypothesis", declared, hypothesis)
            return declared
    return None


def ensure_codec(name: str) -> str:
    try:
        codecs.lookup(name)
    except LookupError as exc:
        raise EncodingUnavailable(name) from exc
    return name


def decodes_as(path: Path, encoding: str) -> bool:
    try:
        with open(path, "r", encoding=encoding, newline="") as handle:
            while handle.read(64 * 1024):
                pass
    except UnicodeError:
        return False
    return True


def open_reader(path: Path, declared: Optional[str], fallback: str) -> Tuple[IO[str], str]:
    """
    Open `path` for reading with the declared encoding, or with `fallback` if
    there is no declaration or the declared one cannot be used. A declared
    encoding must decode the whole file; the fallback reader replaces
    undecodable bytes instead of failing. Returns the reader and the encoding
    name it was opened with.
    """
    if declared:
        try:
            encoding = ensure_codec(declared)
        except EncodingUnavailable as exc:
            logger.warning("%s; using fallback %s for %s", exc, fallback, path)
        else:
            if decodes_as(path, encoding):
                return open(path, "r", encoding=encoding, newline=""), encoding
            logger.warning("%s does not decode as declared %s; using fallback %s", path, encoding, fallback)
    encoding = ensure_codec(fallback)
    return open(path, "r", encoding=encoding, errors="replace", newline=""), encoding
