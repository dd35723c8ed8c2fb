import pytest

from boardresult.workflows.errors import ParseFailure, UpstreamFailure
from boardresult.workflows.records import PLACEHOLDER_SUBJECTS, ResultQuery
from boardresult.workflows.result_config import (
    CAPTCHA_CHALLENGE_MESSAGE,
    NO_RESULT_MESSAGE,
    NOT_PUBLISHED_MESSAGE,
    UNREADABLE_MESSAGE,
)
from boardresult.workflows.result_parser import (
    parse_result_document,
    parse_result_html,
    parse_result_json,
)


SUBJECT_ROWS = [
    ("Bangla", "81", "A+", "5.00"),
    ("English", "77", "A", "4.00"),
    ("Mathematics", "92", "A+", "5.00"),
    ("Physics", "84", "A+", "5.00"),
    ("Chemistry", "73", "A", "4.00"),
    ("Biology", "88", "A+", "5.00"),
    ("Information and Communication Technology", "95", "A+", "5.00"),
]


def _result_page(*, subjects=True, info_rows=None) -> str:
    info_rows = info_rows if info_rows is not None else [
        ("Roll No", "654321", "Name", "RAHIM UDDIN"),
        ("Board", "Dhaka", "Father's Name", "KARIM UDDIN"),
        ("Group", "Science", "Mother's Name", "AYESHA BEGUM"),
        ("Session", "2022-23", "Reg No", "9876543210"),
        ("Institute", "DHAKA HIGH SCHOOL", "GPA", "5.00"),
        ("Result", "PASSED", "Letter Grade", "A+"),
    ]
    info = "".join("<tr>" + "".join(f"<td>{cell}</td>" for cell in row) + "</tr>" for row in info_rows)
    sheet = ""
    if subjects:
        body = "".join(
            "<tr>" + "".join(f"<td>{cell}</td>" for cell in row) + "</tr>" for row in SUBJECT_ROWS
        )
        sheet = f"<table><tr><th>Subject</th><th>Marks</th><th>Grade</th><th>GPA</th></tr>{body}</table>"
    return f"""
    <html><head><title>Result</title><script>var x = "no record found";</script></head>
    <body><div id="result-container"><table>{info}</table>{sheet}</div></body></html>
    """


def _query(**overrides) -> ResultQuery:
    params = {"board": "dhaka", "exam": "ssc", "roll": "654321", "registration": "9876543210"}
    params.update(overrides)
    return ResultQuery(**params)


def test_parse_result_html_reads_label_tables_and_subjects() -> None:
    record = parse_result_html(_result_page(), _query())

    assert record.student_name == "RAHIM UDDIN"
    assert record.father_name == "KARIM UDDIN"
    assert record.mother_name == "AYESHA BEGUM"
    assert record.roll == "654321"
    assert record.registration == "9876543210"
    assert record.institution == "DHAKA HIGH SCHOOL"
    assert record.group == "Science"
    assert record.session == "2022-23"
    assert record.gpa == "5.00"
    assert record.grade == "A+"
    assert record.result == "PASSED"
    assert [(s.name, s.marks, s.grade, s.gpa) for s in record.subjects] == SUBJECT_ROWS


def test_css_selector_wins_over_label_row() -> None:
    html = _result_page().replace(
        '<div id="result-container">',
        '<div id="result-container"><span id="student-name">  MD.  RAHIM   UDDIN </span>',
    )

    record = parse_result_html(html)

    assert record.student_name == "MD. RAHIM UDDIN"


def test_missing_subject_table_yields_placeholder_subjects() -> None:
    record = parse_result_html(_result_page(subjects=False), _query())

    assert record.subjects == PLACEHOLDER_SUBJECTS
    assert [s.name for s in record.subjects] == ["Bangla", "English", "Mathematics"]
    assert all(s.marks == "N/A" and s.grade == "N/A" and s.gpa == "N/A" for s in record.subjects)


def test_subject_rows_with_too_few_cells_are_skipped() -> None:
    html = _result_page().replace("</table></div>", "<tr><td>Agriculture</td><td>70</td></tr></table></div>")

    record = parse_result_html(html)

    assert len(record.subjects) == 7
    assert "Agriculture" not in [s.name for s in record.subjects]


def test_missing_fields_default_and_roll_comes_from_query() -> None:
    page = _result_page(subjects=False, info_rows=[("Name", "SUMAIYA AKTER")])

    record = parse_result_html(page, _query(roll="111222", registration="3334445556"))

    assert record.student_name == "SUMAIYA AKTER"
    assert record.roll == "111222"
    assert record.registration == "3334445556"
    assert record.father_name == "N/A"
    assert record.gpa == "N/A"
    assert record.result == "PASSED"


def test_no_record_page_is_reported_as_no_result() -> None:
    html = "<html><body><div class='panel'><h3>No Record Found</h3></div></body></html>"

    with pytest.raises(ParseFailure) as excinfo:
        parse_result_html(html, _query())

    assert "No result found" in excinfo.value.message
    assert excinfo.value.message == NO_RESULT_MESSAGE


def test_negative_phrase_inside_script_is_ignored() -> None:
    # The fixture page embeds the phrase in a <script>; it must not be matched.
    record = parse_result_html(_result_page(), _query())

    assert record.student_name == "RAHIM UDDIN"


def test_error_region_raises_upstream_failure_with_its_text() -> None:
    html = "<html><body><div class='alert alert-danger'>  Invalid security code. </div><table><tr><td>x</td></tr></table></body></html>"

    with pytest.raises(UpstreamFailure) as excinfo:
        parse_result_html(html)

    assert excinfo.value.message == "Invalid security code."


def test_page_without_result_region_is_not_published() -> None:
    with pytest.raises(ParseFailure) as excinfo:
        parse_result_html("<html><body><p>Welcome to the result portal</p></body></html>")

    assert excinfo.value.message == NOT_PUBLISHED_MESSAGE


def test_region_without_identity_fields_is_unreadable() -> None:
    html = "<html><body><div id='result-container'><p>Maintenance in progress</p></div></body></html>"

    with pytest.raises(ParseFailure) as excinfo:
        parse_result_html(html, _query())

    assert excinfo.value.message == UNREADABLE_MESSAGE


def test_parse_result_json_maps_aliases_and_subjects() -> None:
    payload = {
        "success": True,
        "result": {
            "studentName": "NUSRAT JAHAN",
            "fatherName": "ABDUL HAI",
            "roll_no": 445566,
            "regNo": "7788990011",
            "institute": "RAJSHAHI COLLEGIATE SCHOOL",
            "GPA": "4.75",
            "lg": "A",
            "subjects": [
                {"subject": "Bangla", "marks": 80, "lg": "A+", "gp": "5.00"},
                {"sub_name": "English", "total": "68"},
                "ignored",
            ],
        },
    }

    record = parse_result_json(payload, _query(board="rajshahi"))

    assert record.student_name == "NUSRAT JAHAN"
    assert record.father_name == "ABDUL HAI"
    assert record.mother_name == "N/A"
    assert record.roll == "445566"
    assert record.registration == "7788990011"
    assert record.gpa == "4.75"
    assert record.grade == "A"
    assert record.result == "PASSED"
    assert [s.to_dict() for s in record.subjects] == [
        {"name": "Bangla", "marks": "80", "grade": "A+", "gpa": "5.00"},
        {"name": "English", "marks": "68", "grade": "N/A", "gpa": "N/A"},
    ]


def test_parse_result_json_unsuccessful_envelope() -> None:
    with pytest.raises(UpstreamFailure) as excinfo:
        parse_result_json({"success": False, "message": "Invalid roll number"})
    assert excinfo.value.message == "Invalid roll number"

    with pytest.raises(UpstreamFailure) as excinfo:
        parse_result_json({"success": True, "result": None})
    assert excinfo.value.message == "Result not found"


def test_parse_result_json_rejects_non_mapping() -> None:
    with pytest.raises(ParseFailure):
        parse_result_json(["not", "an", "object"])


def test_parse_result_document_dispatches_on_content_type() -> None:
    body = '{"success": true, "result": {"name": "TANVIR AHMED", "roll": "654321"}}'

    record = parse_result_document(body, "application/json", _query())
    assert record.student_name == "TANVIR AHMED"

    record = parse_result_document(_result_page(), "text/html", _query())
    assert record.student_name == "RAHIM UDDIN"

    with pytest.raises(ParseFailure):
        parse_result_document("<html>oops</html>", "application/json; charset=utf-8", _query())


def test_parse_result_json_ignores_non_list_subjects() -> None:
    for bad in (5, True, "Bangla", {"name": "Bangla"}):
        payload = {"success": True, "result": {"student_name": "FARHANA ISLAM", "subjects": bad}}

        record = parse_result_json(payload, _query())

        assert record.student_name == "FARHANA ISLAM"
        assert record.subjects == PLACEHOLDER_SUBJECTS


def test_parse_result_json_without_identity_fields_is_unreadable() -> None:
    with pytest.raises(ParseFailure) as excinfo:
        parse_result_json({"success": True, "result": {"foo": 1, "gpa": "5.00"}}, _query())

    assert excinfo.value.message == UNREADABLE_MESSAGE


def test_captcha_challenge_page_is_an_upstream_failure() -> None:
    html = """
    <html><body><form>
      <p>Please enter the code shown in the image</p>
      <img src="/captcha.png"><input name="captcha">
    </form></body></html>
    """

    with pytest.raises(UpstreamFailure) as excinfo:
        parse_result_html(html, _query())

    assert excinfo.value.message == CAPTCHA_CHALLENGE_MESSAGE
    assert "captcha" in excinfo.value.message.lower()


def test_captcha_wording_inside_empty_result_region_is_an_upstream_failure() -> None:
    html = "<html><body><div id='result-container'><p>Human verification required</p></div></body></html>"

    with pytest.raises(UpstreamFailure):
        parse_result_html(html, _query())


def test_captcha_wording_on_a_readable_result_page_is_ignored() -> None:
    html = _result_page().replace("</div></body>", "<p>Result verification is available online.</p></div></body>")

    record = parse_result_html(html, _query())

    assert record.student_name == "RAHIM UDDIN"
