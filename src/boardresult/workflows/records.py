"""Query and result record types shared by the parser, cache and retriever."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from ..core.keys import (
    K_FATHER_NAME,
    K_GPA,
    K_GRADE,
    K_GROUP,
    K_INSTITUTION,
    K_MARKS,
    K_MOTHER_NAME,
    K_NAME,
    K_REGISTRATION,
    K_RESULT,
    K_ROLL,
    K_SESSION,
    K_STUDENT_NAME,
    K_SUBJECTS,
)

NOT_AVAILABLE = "N/A"
DEFAULT_STATUS = "PASSED"

_ASCII_DIGITS = re.compile(r"[0-9]+")


class Board(str, Enum):
    DHAKA = "dhaka"
    CHITTAGONG = "chittagong"
    RAJSHAHI = "rajshahi"
    SYLHET = "sylhet"
    BARISAL = "barisal"
    DINAJPUR = "dinajpur"
    COMILLA = "comilla"
    JESSORE = "jessore"
    MYMENSINGH = "mymensingh"
    MADRASAH = "madrasah"
    TECHNICAL = "technical"


class Exam(str, Enum):
    SSC = "ssc"
    HSC = "hsc"
    JSC = "jsc"


def _coerce_enum(enum_cls, value: Union[str, Enum], label: str):
    if isinstance(value, enum_cls):
        return value
    raw = str(getattr(value, "value", value) or "").strip().lower()
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValueError(f"Unsupported {label}: {value!r} (expected one of: {allowed})") from None


def _require_digits(value: Optional[str], label: str) -> str:
    cleaned = (value or "").strip()
    if not _ASCII_DIGITS.fullmatch(cleaned):
        raise ValueError(f"{label} must be a non-empty string of digits")
    return cleaned


@dataclass(frozen=True)
class ResultQuery:
    """Identity of a single result lookup."""

    board: Board
    exam: Exam
    roll: str
    registration: str
    eiin: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "board", _coerce_enum(Board, self.board, "board"))
        object.__setattr__(self, "exam", _coerce_enum(Exam, self.exam, "exam"))
        object.__setattr__(self, "roll", _require_digits(self.roll, "roll"))
        object.__setattr__(self, "registration", _require_digits(self.registration, "registration"))
        eiin = (self.eiin or "").strip()
        object.__setattr__(self, "eiin", _require_digits(eiin, "eiin") if eiin else None)

    @property
    def cache_key(self) -> str:
        return "|".join(
            [self.board.value, self.exam.value, self.roll, self.registration, self.eiin or ""]
        )


@dataclass(frozen=True)
class Subject:
    name: str = NOT_AVAILABLE
    marks: str = NOT_AVAILABLE
    grade: str = NOT_AVAILABLE
    gpa: str = NOT_AVAILABLE

    def to_dict(self) -> Dict[str, str]:
        return {K_NAME: self.name, K_MARKS: self.marks, K_GRADE: self.grade, K_GPA: self.gpa}


PLACEHOLDER_SUBJECTS: Tuple[Subject, ...] = (
    Subject(name="Bangla"),
    Subject(name="English"),
    Subject(name="Mathematics"),
)


@dataclass(frozen=True)
class ResultRecord:
    """Canonical parsed result. Missing strings are ``N/A``, never absent."""

    student_name: str = NOT_AVAILABLE
    father_name: str = NOT_AVAILABLE
    mother_name: str = NOT_AVAILABLE
    roll: str = NOT_AVAILABLE
    registration: str = NOT_AVAILABLE
    institution: str = NOT_AVAILABLE
    group: str = NOT_AVAILABLE
    session: str = NOT_AVAILABLE
    gpa: str = NOT_AVAILABLE
    grade: str = NOT_AVAILABLE
    result: str = DEFAULT_STATUS
    subjects: Tuple[Subject, ...] = field(default=PLACEHOLDER_SUBJECTS)

    def __post_init__(self) -> None:
        subjects = tuple(self.subjects or ())
        object.__setattr__(self, "subjects", subjects or PLACEHOLDER_SUBJECTS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_STUDENT_NAME: self.student_name,
            K_FATHER_NAME: self.father_name,
            K_MOTHER_NAME: self.mother_name,
            K_ROLL: self.roll,
            K_REGISTRATION: self.registration,
            K_INSTITUTION: self.institution,
            K_GROUP: self.group,
            K_SESSION: self.session,
            K_GPA: self.gpa,
            K_GRADE: self.grade,
            K_RESULT: self.result,
            K_SUBJECTS: [subject.to_dict() for subject in self.subjects],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


def build_demo_record(query: ResultQuery) -> ResultRecord:
    """Canned record returned for the demo roll/registration pair."""

    return ResultRecord(
        student_name="MD. DEMO STUDENT",
        father_name="MD. DEMO FATHER",
        mother_name="MST. DEMO MOTHER",
        roll=query.roll,
        registration=query.registration,
        institution="DEMO HIGH SCHOOL",
        group="Science",
        session="2024",
        gpa="4.83",
        grade="A+",
        result=DEFAULT_STATUS,
        subjects=(
            Subject("Bangla", "82", "A+", "5.00"),
            Subject("English", "78", "A", "4.00"),
            Subject("Mathematics", "85", "A+", "5.00"),
            Subject("Physics", "80", "A+", "5.00"),
            Subject("Chemistry", "79", "A", "4.00"),
            Subject("Biology", "83", "A+", "5.00"),
            Subject("ICT", "88", "A+", "5.00"),
        ),
    )


__all__ = [
    "Board",
    "Exam",
    "ResultQuery",
    "Subject",
    "ResultRecord",
    "PLACEHOLDER_SUBJECTS",
    "NOT_AVAILABLE",
    "DEFAULT_STATUS",
    "build_demo_record",
]
