"""Shared record keys to avoid magic strings across boardresult modules."""

from __future__ import annotations

# Canonical record keys
K_STUDENT_NAME = "student_name"
K_FATHER_NAME = "father_name"
K_MOTHER_NAME = "mother_name"
K_ROLL = "roll"
K_REGISTRATION = "registration"
K_INSTITUTION = "institution"
K_GROUP = "group"
K_SESSION = "session"
K_GPA = "gpa"
K_GRADE = "grade"
K_RESULT = "result"
K_SUBJECTS = "subjects"

# Subject keys
K_NAME = "name"
K_MARKS = "marks"

# Upstream JSON envelope
K_SUCCESS = "success"
K_MESSAGE = "message"
