"""Decoding and text cleanup helpers for board-site documents.

The board sites serve mixed encodings (some pages only declare theirs in a
``<meta>`` tag) and occasionally mojibake'd Bangla names, so bytes are decoded
from declared charsets first and cell text is repaired before it lands in a
record.
"""

from __future__ import annotations

import codecs
import re
import unicodedata
from typing import Mapping, Optional

import ftfy
from bs4 import BeautifulSoup, FeatureNotFound
from charset_normalizer import from_bytes

__all__ = [
    "decode_bytes_auto",
    "minimal_text_fix",
    "clean_text",
    "load_soup",
]

_HEADER_CHARSET = re.compile(r"charset=[\"']?([\w.:-]+)", re.I)
_META_CHARSET = re.compile(rb"<meta[^>]+charset=[\"']?([\w.:-]+)", re.I)
_WS = re.compile(r"\s+")

# Zero-width marks and NUL/VT/FF are dropped; C1 controls become spaces.
_STRIP_TABLE = dict.fromkeys([0x00, 0x0B, 0x0C, 0x200B, 0x200C, 0x200D, 0x2060, 0xFEFF])
_STRIP_TABLE.update(dict.fromkeys(range(0x80, 0xA0), " "))


def _known_codec(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    try:
        return codecs.lookup(name.strip().lower()).name
    except LookupError:
        return None


def _declared_charset(body: bytes, headers: Optional[Mapping[str, str]]) -> Optional[str]:
    content_type = ""
    if headers:
        content_type = headers.get("Content-Type") or headers.get("content-type") or ""
    match = _HEADER_CHARSET.search(content_type)
    codec = _known_codec(match.group(1)) if match else None
    if codec:
        return codec
    sniff = _META_CHARSET.search(body[:2048])
    return _known_codec(sniff.group(1).decode("ascii", "ignore")) if sniff else None


def decode_bytes_auto(body: bytes, headers: Optional[Mapping[str, str]] = None) -> str:
    """Decode a response body: header charset, then ``<meta>`` charset, then detection."""

    if not body:
        return ""
    codec = _declared_charset(body, headers)
    if codec:
        return body.decode(codec, errors="replace")
    best = from_bytes(body).best()
    return str(best) if best is not None else body.decode("utf-8", errors="replace")


def minimal_text_fix(text: str) -> str:
    """Repair mojibake and drop invisible control noise; whitespace is left alone."""

    if not text:
        return ""
    repaired = ftfy.fix_text(text, normalization="NFC")
    return unicodedata.normalize("NFC", repaired).translate(_STRIP_TABLE)


def clean_text(text: Optional[str]) -> str:
    """Single-line, whitespace-collapsed text suitable for a record field."""

    return _WS.sub(" ", minimal_text_fix(text or "")).strip()


def load_soup(html: str) -> BeautifulSoup:
    """Parse markup with lxml, falling back to the stdlib parser."""

    payload = (html or "").replace("\x00", "")
    try:
        return BeautifulSoup(payload, "lxml")
    except FeatureNotFound:
        return BeautifulSoup(payload, "html.parser")
