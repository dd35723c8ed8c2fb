"""Normalize board-site HTML/JSON into a canonical ResultRecord.

The board sites ship unversioned markup, so every scalar field is read through
an ordered list of extraction rules (CSS selectors first, then label/value
table rows); the first non-empty match wins and a sentinel is used otherwise.
Genuine "no such result" pages are reported distinctly from pages we simply
could not read.
"""

from __future__ import annotations

import json
import logging
from functools import cached_property
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from bs4 import Tag

from .errors import ParseFailure, UpstreamFailure
from .html_normalize import clean_text, load_soup
from .records import (
    DEFAULT_STATUS,
    NOT_AVAILABLE,
    PLACEHOLDER_SUBJECTS,
    ResultQuery,
    ResultRecord,
    Subject,
)
from .result_config import (
    CAPTCHA_CHALLENGE_MESSAGE,
    CAPTCHA_KEYWORDS,
    ERROR_SELECTORS,
    FIELD_LABELS,
    FIELD_SELECTORS,
    JSON_FIELD_ALIASES,
    JSON_SUBJECT_ALIASES,
    NEGATIVE_PHRASES,
    NO_RESULT_MESSAGE,
    NOT_PUBLISHED_MESSAGE,
    RESULT_REGION_SELECTORS,
    SUBJECT_HEADER_TOKENS,
    UNREADABLE_MESSAGE,
)
from ..core.keys import K_MESSAGE, K_RESULT, K_SUBJECTS, K_SUCCESS

logger = logging.getLogger(__name__)

_SCALAR_FIELDS = (
    "student_name",
    "father_name",
    "mother_name",
    "roll",
    "registration",
    "institution",
    "group",
    "session",
    "gpa",
    "grade",
    "result",
)
_SEPARATORS = {":", "-", "="}


def _normalize_label(text: str) -> str:
    return clean_text(text).lower().rstrip(":").strip()


class _Page:
    """Parsed document plus lazily computed views shared by the rules."""

    def __init__(self, html: str) -> None:
        self.soup = load_soup(html)
        for tag in self.soup(["script", "style", "noscript"]):
            tag.decompose()

    @cached_property
    def text(self) -> str:
        return clean_text(self.soup.get_text(" "))

    @cached_property
    def subject_table(self) -> Optional[Tag]:
        # Innermost tables only so layout wrappers never masquerade as the grade sheet.
        for table in self.soup.find_all("table"):
            if table.find("table") is not None:
                continue
            rows = table.find_all("tr")
            if not rows:
                continue
            header = clean_text(rows[0].get_text(" ")).lower()
            if any(token in header for token in SUBJECT_HEADER_TOKENS):
                return table
        return None

    @cached_property
    def labels(self) -> Dict[str, str]:
        pairs: Dict[str, str] = {}
        subject_table = self.subject_table
        for table in self.soup.find_all("table"):
            if table is subject_table or table.find("table") is not None:
                continue
            for row in table.find_all("tr"):
                cells = [clean_text(c.get_text(" ")) for c in row.find_all(["td", "th"], recursive=False)]
                for idx, cell in enumerate(cells[:-1]):
                    label = _normalize_label(cell)
                    if not label or label in pairs:
                        continue
                    value = cells[idx + 1]
                    if value in _SEPARATORS and idx + 2 < len(cells):
                        value = cells[idx + 2]
                    if value and _normalize_label(value) != label:
                        pairs[label] = value
        return pairs


Rule = Callable[[_Page], str]


def _css(selector: str) -> Rule:
    def rule(page: _Page) -> str:
        node = page.soup.select_one(selector)
        return clean_text(node.get_text(" ")) if node is not None else ""

    return rule


def _labelled(labels: Sequence[str]) -> Rule:
    def rule(page: _Page) -> str:
        table = page.labels
        for label in labels:
            value = table.get(label)
            if value:
                return value
        return ""

    return rule


FIELD_RULES: Dict[str, Tuple[Rule, ...]] = {
    name: tuple(_css(sel) for sel in FIELD_SELECTORS.get(name, ()))
    + (_labelled(FIELD_LABELS.get(name, ())),)
    for name in _SCALAR_FIELDS
}


def _first_match(page: _Page, rules: Sequence[Rule]) -> str:
    for rule in rules:
        value = rule(page)
        if value:
            return value
    return ""


def _check_error_regions(page: _Page) -> None:
    for selector in ERROR_SELECTORS:
        for node in page.soup.select(selector):
            message = clean_text(node.get_text(" "))
            if message:
                raise UpstreamFailure(message)


def _check_negative_phrases(page: _Page) -> None:
    lowered = page.text.lower()
    for phrase in NEGATIVE_PHRASES:
        if phrase in lowered:
            logger.debug("negative phrase %r found in document", phrase)
            raise ParseFailure(NO_RESULT_MESSAGE)


def _check_captcha_challenge(page: _Page) -> None:
    lowered = page.text.lower()
    for keyword in CAPTCHA_KEYWORDS:
        pos = lowered.find(keyword)
        if pos >= 0:
            logger.warning("captcha challenge page: %r", page.text[max(0, pos - 60) : pos + 60])
            raise UpstreamFailure(CAPTCHA_CHALLENGE_MESSAGE)


def _has_result_region(page: _Page) -> bool:
    for selector in RESULT_REGION_SELECTORS:
        node = page.soup.select_one(selector)
        if node is not None and clean_text(node.get_text(" ")):
            return True
    return False


def _extract_subjects(page: _Page) -> Tuple[Subject, ...]:
    table = page.subject_table
    if table is None:
        return PLACEHOLDER_SUBJECTS
    subjects: List[Subject] = []
    for row in table.find_all("tr")[1:]:
        cells = [clean_text(c.get_text(" ")) for c in row.find_all(["td", "th"])]
        filled = [cell for cell in cells if cell]
        if len(filled) < 4:
            continue
        subjects.append(Subject(name=filled[0], marks=filled[1], grade=filled[2], gpa=filled[3]))
    return tuple(subjects) or PLACEHOLDER_SUBJECTS


def _build_record(fields: Mapping[str, str], subjects: Sequence[Subject], query: Optional[ResultQuery]) -> ResultRecord:
    values = {name: fields.get(name) or NOT_AVAILABLE for name in _SCALAR_FIELDS}
    if not fields.get("result"):
        values["result"] = DEFAULT_STATUS
    if query is not None:
        if not fields.get("roll"):
            values["roll"] = query.roll
        if not fields.get("registration"):
            values["registration"] = query.registration
    return ResultRecord(subjects=tuple(subjects), **values)


def parse_result_html(html: str, query: Optional[ResultQuery] = None) -> ResultRecord:
    """Parse a rendered result page.

    Raises ``UpstreamFailure`` when the page carries an explicit error region
    or is a captcha challenge, and ``ParseFailure`` when it declares that no
    result exists, when the result region is missing, or when none of
    name/roll/registration can be read.
    """

    page = _Page(html or "")
    _check_error_regions(page)
    _check_negative_phrases(page)
    # Captcha wording only counts on pages that yield no result.
    if not _has_result_region(page):
        _check_captcha_challenge(page)
        raise ParseFailure(NOT_PUBLISHED_MESSAGE)

    fields = {name: _first_match(page, FIELD_RULES[name]) for name in _SCALAR_FIELDS}
    subjects = _extract_subjects(page)

    if not _has_identity(fields):
        _check_captcha_challenge(page)
        raise ParseFailure(UNREADABLE_MESSAGE)
    return _build_record(fields, subjects, query)


def _has_identity(fields: Mapping[str, str]) -> bool:
    return bool(fields.get("student_name") or fields.get("roll") or fields.get("registration"))


def _first_value(data: Mapping[str, Any], aliases: Sequence[str]) -> str:
    for key in aliases:
        value = data.get(key)
        if value is None:
            continue
        text = clean_text(str(value))
        if text:
            return text
    return ""


def parse_result_json(payload: Any, query: Optional[ResultQuery] = None) -> ResultRecord:
    """Map a JSON envelope ``{"success": bool, "result": {...}}`` onto a record."""

    if not isinstance(payload, Mapping):
        raise ParseFailure(UNREADABLE_MESSAGE)
    result = payload.get(K_RESULT)
    if not payload.get(K_SUCCESS) or not result:
        message = clean_text(str(payload.get(K_MESSAGE) or "")) or "Result not found"
        raise UpstreamFailure(message)
    if not isinstance(result, Mapping):
        raise ParseFailure(UNREADABLE_MESSAGE)

    fields = {name: _first_value(result, JSON_FIELD_ALIASES[name]) for name in _SCALAR_FIELDS}
    if not _has_identity(fields):
        raise ParseFailure(UNREADABLE_MESSAGE)

    raw_subjects = result.get(K_SUBJECTS)
    if not isinstance(raw_subjects, (list, tuple)):
        raw_subjects = ()
    subjects: List[Subject] = []
    for item in raw_subjects:
        if not isinstance(item, Mapping):
            continue
        values = {key: _first_value(item, aliases) or NOT_AVAILABLE for key, aliases in JSON_SUBJECT_ALIASES.items()}
        subjects.append(Subject(**values))
    return _build_record(fields, subjects, query)


def parse_result_document(text: str, content_type: str, query: Optional[ResultQuery] = None) -> ResultRecord:
    """Dispatch on content type: JSON bodies go to the JSON mapper, the rest to HTML."""

    if "json" in (content_type or "").lower():
        try:
            payload = json.loads(text or "")
        except json.JSONDecodeError:
            raise ParseFailure(UNREADABLE_MESSAGE) from None
        return parse_result_json(payload, query)
    return parse_result_html(text, query)


__all__ = [
    "FIELD_RULES",
    "parse_result_html",
    "parse_result_json",
    "parse_result_document",
]
