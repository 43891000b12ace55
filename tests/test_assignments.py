import io
from datetime import date, timedelta
from pathlib import Path

import pytest

from app.lms.db import session_scope
from app.lms.modules.assignments.models import Submission


@pytest.fixture()
def course(make_user, make_course, enroll_user, auth_headers):
    teacher = make_user("teacher@example.com", "teacher")
    first = make_user("first@example.com")
    second = make_user("second@example.com", "intern")
    outsider = make_user("outsider@example.com")
    course_id = make_course(teacher_ids=(teacher,))
    enroll_user(first, course_id)
    enroll_user(second, course_id, status="pending")
    return {
        "id": course_id,
        "teacher": auth_headers(teacher),
        "first": first,
        "second": second,
        "outsider": outsider,
        "h": {"first": auth_headers(first), "second": auth_headers(second), "outsider": auth_headers(outsider)},
    }


def _create(client, course, **overrides):
    body = {
        "course_id": course["id"],
        "title": "Build a landing page",
        "description": "HTML and CSS only",
        "due_date": (date.today() + timedelta(days=7)).isoformat(),
        "total_marks": 50,
    }
    body.update(overrides)
    return client.post("/api/assignments/", json=body, headers=course["teacher"])


def test_create_for_all_snapshots_enrollments(client, course):
    r = _create(client, course)
    assert r.status_code == 201
    a = r.json["assignment"]
    assert a["assign_to"] == "all"
    assert a["total_marks"] == 50
    assert sorted(a["assigned_users"]) == sorted([course["first"], course["second"]])
    assert a["created_by"]["name"] == "Teacher"


def test_create_validation(client, course):
    assert _create(client, course, course_id=999).status_code == 404
    assert _create(client, course, title="").status_code == 400
    assert _create(client, course, due_date=None).status_code == 400
    assert _create(client, course, assign_to="some").status_code == 400

    r = client.post("/api/assignments/", json={"course_id": course["id"], "title": "x"}, headers=course["h"]["first"])
    assert r.status_code == 403


def test_submit_once(client, course):
    aid = _create(client, course).json["assignment"]["id"]

    r = client.post(f"/api/assignments/{aid}/submit", json={"notes": "done"}, headers=course["h"]["first"])
    assert r.status_code == 200

    r = client.post(f"/api/assignments/{aid}/submit", json={"notes": "again"}, headers=course["h"]["first"])
    assert r.status_code == 400
    assert r.json["message"] == "Already submitted"

    r = client.post(f"/api/assignments/{aid}/submit", json={}, headers=course["h"]["outsider"])
    assert r.status_code == 403

    assert client.post("/api/assignments/999/submit", json={}, headers=course["h"]["first"]).status_code == 404


def test_selected_assignment_is_restricted(client, course):
    aid = _create(client, course, assign_to="selected", assigned_users=[course["first"]]).json["assignment"]["id"]

    r = client.post(f"/api/assignments/{aid}/submit", json={}, headers=course["h"]["second"])
    assert r.status_code == 403
    assert r.json["message"] == "Not assigned to this assignment"

    r = client.get(f"/api/assignments/course/{course['id']}", headers=course["h"]["second"])
    assert r.json["assignments"] == []

    r = client.get(f"/api/assignments/course/{course['id']}", headers=course["h"]["first"])
    assert [a["id"] for a in r.json["assignments"]] == [aid]


def test_later_enrollee_can_submit_to_all_assignment(client, course, enroll_user):
    aid = _create(client, course).json["assignment"]["id"]
    enroll_user(course["outsider"], course["id"])
    r = client.post(f"/api/assignments/{aid}/submit", json={"notes": "late joiner"}, headers=course["h"]["outsider"])
    assert r.status_code == 200


def test_submit_with_file(app, client, course, tmp_path):
    aid = _create(client, course).json["assignment"]["id"]
    r = client.post(
        f"/api/assignments/{aid}/submit",
        data={"notes": "zip attached", "file": (io.BytesIO(b"PK\x03\x04"), "site.zip")},
        content_type="multipart/form-data",
        headers=course["h"]["first"],
    )
    assert r.status_code == 200

    key = f"assignments/{aid}/{course['first']}/site.zip"
    assert (Path(tmp_path) / "storage" / key).read_bytes() == b"PK\x03\x04"
    with session_scope(app) as s:
        sub = s.query(Submission).one()
        assert sub.file_key == key
        assert sub.notes == "zip attached"


def test_grade_within_total_marks(client, course):
    aid = _create(client, course).json["assignment"]["id"]
    client.post(f"/api/assignments/{aid}/submit", json={"notes": "done"}, headers=course["h"]["first"])
    teacher_view = client.get(f"/api/assignments/course/{course['id']}", headers=course["teacher"]).json["assignments"][0]
    sid = teacher_view["submissions"][0]["id"]

    r = client.put(f"/api/assignments/{aid}/grade/{sid}", json={"marks": 51}, headers=course["teacher"])
    assert r.status_code == 400

    r = client.put(f"/api/assignments/{aid}/grade/{sid}", json={"marks": 45, "feedback": "Nice"}, headers=course["teacher"])
    assert r.status_code == 200
    sub = r.json["assignment"]["submissions"][0]
    assert sub["marks"] == 45
    assert sub["feedback"] == "Nice"
    assert sub["graded_at"]

    r = client.put(f"/api/assignments/{aid}/grade/{sid}", json={"marks": 1}, headers=course["h"]["first"])
    assert r.status_code == 403

    assert client.put(f"/api/assignments/{aid}/grade/999", json={"marks": 1}, headers=course["teacher"]).status_code == 404


def test_learners_only_see_their_own_submission(client, course):
    aid = _create(client, course).json["assignment"]["id"]
    client.post(f"/api/assignments/{aid}/submit", json={"notes": "mine"}, headers=course["h"]["first"])
    client.post(f"/api/assignments/{aid}/submit", json={"notes": "theirs"}, headers=course["h"]["second"])

    r = client.get(f"/api/assignments/course/{course['id']}", headers=course["h"]["first"])
    subs = r.json["assignments"][0]["submissions"]
    assert [s["notes"] for s in subs] == ["mine"]

    r = client.get(f"/api/assignments/course/{course['id']}", headers=course["teacher"])
    assert len(r.json["assignments"][0]["submissions"]) == 2

    r = client.get("/api/assignments/my", headers=course["h"]["second"])
    assert r.status_code == 200
    assert [a["id"] for a in r.json["assignments"]] == [aid]
    assert [s["notes"] for s in r.json["assignments"][0]["submissions"]] == ["theirs"]

    assert client.get("/api/assignments/my", headers=course["h"]["outsider"]).json["assignments"] == []


def test_total_marks_defaults_only_when_missing(client, course):
    r = _create(client, course, total_marks=0)
    assert r.status_code == 400
    assert r.json["message"] == "total_marks must be greater than 0"

    r = _create(client, course, total_marks=None)
    assert r.status_code == 201
    assert r.json["assignment"]["total_marks"] == 100
