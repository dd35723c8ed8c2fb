"""Retrieval defaults (endpoints, vocabulary, selectors, phrases, timeouts).

Centralizes static defaults so the parser and strategies carry no embedded
magic strings. These are baseline constants used to construct a policy;
callers can inject their own RetrievalPolicy to override the tunable ones.
"""

from __future__ import annotations

# Endpoints
BASE_URL = "https://eboardresults.com/en"
FORM_PATH = "/ebr.app/home/"
ALTERNATE_PATH = "/v2/result"
TOKEN_FIELD = "_token"

FALLBACK_URL_TEMPLATES = (
    "https://eboardresults.com/v2/getres?board={board}&exam={exam}&roll={roll}&reg={reg}&eiin={eiin}",
    "https://www.educationboardresults.gov.bd/api/result?board={board}&exam={exam}&roll={roll}&reg={reg}",
)

# Request identity
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
ACCEPT_ANY = "application/json,text/html;q=0.9,*/*;q=0.8"
ACCEPT_LANGUAGE = "en-US,en;q=0.9"

# Timeouts (seconds)
FORM_TIMEOUT = 15.0
ALTERNATE_TIMEOUT = 20.0
SCRAPE_TIMEOUT = 25.0
TOKEN_TIMEOUT = 10.0
FALLBACK_TIMEOUT = 15.0

# Retry schedule
MAX_ATTEMPTS = 3
BACKOFF_DELAYS = (1.0, 2.0, 4.0)

# Cache
CACHE_TTL_SECONDS = 24 * 60 * 60
CACHE_MAX_ENTRIES = 1000

# Monitor
ALERT_THRESHOLD = 5
CAPTCHA_KEYWORDS = (
    "captcha",
    "security code",
    "verification",
    "robot",
    "automated",
    "please enter the code",
    "enter the number",
    "human verification",
)

# Demo identity used to exercise the form without the live board site
DEMO_ROLL = "123456"
DEMO_REGISTRATION = "1234567890"

# Upstream vocabulary: our enum values -> the board site's own labels
BOARD_LABELS = {
    "dhaka": "Dhaka",
    "chittagong": "Chittagong",
    "rajshahi": "Rajshahi",
    "sylhet": "Sylhet",
    "barisal": "Barisal",
    "dinajpur": "Dinajpur",
    "comilla": "Comilla",
    "jessore": "Jessore",
    "mymensingh": "Mymensingh",
    "madrasah": "Madrasah",
    "technical": "Technical",
}

EXAM_LABELS = {
    "ssc": "SSC/Dakhil/Equivalent",
    "hsc": "HSC/Alim/Equivalent",
    "jsc": "JSC/JDC",
}

# Parser: explicit upstream error regions
ERROR_SELECTORS = (
    ".alert-danger",
    ".error-message",
    ".alert-error",
    "#error",
    "#errMsg",
)

NEGATIVE_PHRASES = (
    "no record found",
    "result not found",
    "invalid information",
    "record is not available",
)

NO_RESULT_MESSAGE = (
    "No result found for the provided information. "
    "Please check your board, examination, roll and registration number."
)
NOT_PUBLISHED_MESSAGE = "Result is not published yet or the provided information is incorrect."
UNREADABLE_MESSAGE = "Could not read the result from the board's response."
CAPTCHA_CHALLENGE_MESSAGE = "The board site is asking for captcha verification. Please try again later."

# Parser: region that holds the rendered result
RESULT_REGION_SELECTORS = (
    "#result-container",
    ".result-container",
    "#result_display",
    ".result-display",
    "table",
)

# Parser: per-field selector candidates (tried in order) and row labels
FIELD_SELECTORS = {
    "student_name": ("#student-name", ".student-name", '[data-label="name"]'),
    "father_name": ("#father-name", ".father-name", '[data-label="father"]'),
    "mother_name": ("#mother-name", ".mother-name", '[data-label="mother"]'),
    "roll": ("#roll", ".roll", '[data-label="roll"]'),
    "registration": ("#registration", ".registration", '[data-label="reg"]'),
    "institution": ("#institution", ".institution", '[data-label="institute"]'),
    "group": ("#group", ".group", '[data-label="group"]'),
    "session": ("#session", ".session", '[data-label="session"]'),
    "gpa": ("#gpa", ".gpa", '[data-label="gpa"]'),
    "grade": ("#grade", ".grade", '[data-label="grade"]'),
    "result": ("#result", ".result", '[data-label="result"]'),
}

FIELD_LABELS = {
    "student_name": ("name", "name of student", "student name", "student's name"),
    "father_name": ("father's name", "father name", "fathers name"),
    "mother_name": ("mother's name", "mother name", "mothers name"),
    "roll": ("roll", "roll no", "roll no.", "roll number"),
    "registration": ("reg", "reg no", "reg no.", "registration", "registration no", "registration number"),
    "institution": ("institute", "institution", "name of institute", "school", "college"),
    "group": ("group",),
    "session": ("session",),
    "gpa": ("gpa",),
    "grade": ("letter grade", "grade"),
    "result": ("result", "status"),
}

SUBJECT_HEADER_TOKENS = ("subject", "code", "marks")

# JSON: alternate field spellings accepted from the alternate endpoint
JSON_FIELD_ALIASES = {
    "student_name": ("student_name", "studentName", "name"),
    "father_name": ("father_name", "fatherName", "father"),
    "mother_name": ("mother_name", "motherName", "mother"),
    "roll": ("roll", "roll_no", "rollNo"),
    "registration": ("registration", "reg", "reg_no", "regNo", "registration_no"),
    "institution": ("institution", "institute", "inst_name", "school"),
    "group": ("group", "group_name", "stud_group"),
    "session": ("session", "year"),
    "gpa": ("gpa", "GPA", "cgpa"),
    "grade": ("grade", "letter_grade", "lg"),
    "result": ("result", "status"),
}

JSON_SUBJECT_ALIASES = {
    "name": ("name", "subject", "sub_name", "subject_name"),
    "marks": ("marks", "mark", "total"),
    "grade": ("grade", "letter_grade", "lg"),
    "gpa": ("gpa", "grade_point", "point", "gp"),
}
