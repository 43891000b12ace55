from datetime import date

import pytest


@pytest.fixture()
def course(make_user, make_course, enroll_user, auth_headers):
    teacher = make_user("teacher@example.com", "teacher")
    student = make_user("student@example.com")
    intern = make_user("intern@example.com", "intern")
    course_id = make_course(teacher_ids=(teacher,))
    enroll_user(student, course_id)
    enroll_user(intern, course_id)
    return {
        "id": course_id,
        "teacher": auth_headers(teacher),
        "student": auth_headers(student),
        "intern": auth_headers(intern),
    }


def _submit(client, course, headers, **overrides):
    body = {"course_id": course["id"], "content": "Finished the flexbox exercises", "work_link": "https://example.com/pr/1"}
    body.update(overrides)
    return client.post("/api/daily-tasks/", json=body, headers=headers)


def test_submit_and_list(client, course):
    r = _submit(client, course, course["student"])
    assert r.status_code == 201
    task = r.json["data"]
    assert task["status"] == "submitted"
    assert task["date"] == date.today().isoformat()
    assert task["marks"] == 0

    _submit(client, course, course["intern"], content="Wrote unit tests")

    r = client.get(f"/api/daily-tasks/course/{course['id']}", headers=course["teacher"])
    assert r.status_code == 200
    assert r.json["count"] == 2

    r = client.get(f"/api/daily-tasks/my/{course['id']}", headers=course["student"])
    assert r.json["count"] == 1
    assert r.json["data"][0]["content"] == "Finished the flexbox exercises"

    assert client.get(f"/api/daily-tasks/course/{course['id']}", headers=course["student"]).status_code == 403
    assert _submit(client, course, course["teacher"]).status_code == 403


def test_submit_validation(client, course):
    assert _submit(client, course, course["student"], content="  ").status_code == 400
    assert _submit(client, course, course["student"], course_id=999).status_code == 404
    assert _submit(client, course, course["student"], task_id="abc").status_code == 400
    assert _submit(client, course, course["student"], task_id=999).status_code == 404


def test_grade_reject_and_resubmit(client, course):
    task_id = _submit(client, course, course["student"]).json["data"]["id"]

    r = client.put(f"/api/daily-tasks/{task_id}/grade", json={"status": "bogus"}, headers=course["teacher"])
    assert r.status_code == 400

    r = client.put(
        f"/api/daily-tasks/{task_id}/grade",
        json={"marks": 3, "feedback": "Missing screenshots", "status": "rejected"},
        headers=course["teacher"],
    )
    assert r.status_code == 200
    assert r.json["data"]["status"] == "rejected"
    assert r.json["data"]["feedback"] == "Missing screenshots"

    # someone else's task cannot be resubmitted
    r = _submit(client, course, course["intern"], task_id=task_id)
    assert r.status_code == 404

    r = _submit(client, course, course["student"], task_id=task_id, content="Added screenshots")
    assert r.status_code == 200
    task = r.json["data"]
    assert task["id"] == task_id
    assert task["status"] == "submitted"
    assert task["content"] == "Added screenshots"
    assert task["marks"] == 0
    assert task["feedback"] == ""

    r = _submit(client, course, course["student"], task_id=task_id)
    assert r.status_code == 400
    assert r.json["message"] == "Only rejected tasks can be resubmitted"


def test_grade_defaults_to_graded(client, course):
    task_id = _submit(client, course, course["student"]).json["data"]["id"]
    r = client.put(f"/api/daily-tasks/{task_id}/grade", json={"marks": 8}, headers=course["teacher"])
    assert r.status_code == 200
    assert r.json["data"]["status"] == "graded"
    assert r.json["data"]["marks"] == 8

    assert client.put("/api/daily-tasks/999/grade", json={}, headers=course["teacher"]).status_code == 404


def test_delete_rules(client, course):
    mine = _submit(client, course, course["student"]).json["data"]["id"]
    verified = _submit(client, course, course["student"], content="Verified work").json["data"]["id"]
    client.put(f"/api/daily-tasks/{verified}/grade", json={"status": "verified"}, headers=course["teacher"])

    r = client.delete(f"/api/daily-tasks/{mine}", headers=course["intern"])
    assert r.status_code == 403

    r = client.delete(f"/api/daily-tasks/{verified}", headers=course["student"])
    assert r.status_code == 400
    assert r.json["message"] == "Cannot delete a verified task"

    assert client.delete(f"/api/daily-tasks/{mine}", headers=course["student"]).status_code == 200
    assert client.delete(f"/api/daily-tasks/{verified}", headers=course["teacher"]).status_code == 200
    assert client.delete(f"/api/daily-tasks/{verified}", headers=course["teacher"]).status_code == 404


def test_grade_can_clear_feedback(client, course):
    task_id = _submit(client, course, course["student"]).json["data"]["id"]

    r = client.put(f"/api/daily-tasks/{task_id}/grade", json={"marks": 6, "feedback": "Add screenshots"}, headers=course["teacher"])
    assert r.json["data"]["feedback"] == "Add screenshots"

    r = client.put(f"/api/daily-tasks/{task_id}/grade", json={"marks": 9}, headers=course["teacher"])
    assert r.json["data"]["feedback"] == "Add screenshots"

    r = client.put(f"/api/daily-tasks/{task_id}/grade", json={"feedback": ""}, headers=course["teacher"])
    assert r.status_code == 200
    assert r.json["data"]["feedback"] == ""
    assert r.json["data"]["marks"] == 9
