import uuid
from datetime import date
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from school_eval.models.composition_session import CompositionSession
from school_eval.models.evaluation import Evaluation

from tests.helpers import (
    as_user,
    create_course,
    create_material,
    create_question,
    create_subject,
    create_user,
)

TEACHER = "teacher@local.test"


def _setup(db):
    teacher = create_user(db, TEACHER, "Profesora", "teacher")
    course = create_course(db)
    math = create_subject(db, course, "Matemática")
    history = create_subject(db, course, "Historia")
    create_material(db, course, math, title="Unidad 1", objectives=["OA1: Números", "OA2: Potencias"])
    create_material(db, course, None, title="Transversales", objectives=["OA2: Potencias", "OAT: Equipo"])
    create_material(db, course, history, title="Historia 1", objectives=["OA9: Independencia"])
    qm1 = create_question(db, math, text="Resuelve 3x = 12", difficulty="medium")
    qe = create_question(db, math, text="¿Cuánto es 2 + 2?", difficulty="easy", options=["3", "4"], correct=1)
    qm2 = create_question(db, math, text="Factoriza x² - 1", difficulty="medium")
    qh = create_question(db, history, text="¿Año de la independencia?", difficulty="hard")
    return SimpleNamespace(teacher=teacher, course=course, math=math, history=history,
                           qm1=qm1, qe=qe, qm2=qm2, qh=qh)


def _open(client, s, **body) -> dict:
    payload = {"initial_course_id": str(s.course.id), "initial_subject_id": str(s.math.id)}
    payload.update(body)
    r = client.post("/compositions", json=payload, headers=as_user(TEACHER))
    assert r.status_code == 201, r.text
    return r.json()


def _to_step_three(client, s, title="Control Unidad 1") -> dict:
    c = _open(client, s)
    cid = c["id"]
    r = client.patch(f"/compositions/{cid}/configuration", json={"title": title}, headers=as_user(TEACHER))
    assert r.status_code == 200, r.text
    assert client.post(f"/compositions/{cid}/advance", headers=as_user(TEACHER)).status_code == 200
    r = client.post(f"/compositions/{cid}/advance", headers=as_user(TEACHER))
    assert r.json()["step"] == 3
    return r.json()


def test_open_applies_defaults_and_presets(db_session, client: TestClient):
    s = _setup(db_session)
    c = _open(client, s, initial_category="sorpresa")

    assert c["step"] == 1
    assert c["step_name"] == "configuration"
    assert c["status"] == "open"
    assert c["date"] == str(date.today())
    assert c["type"] == "sumativa"
    assert c["category"] == "sorpresa"
    assert c["max_score"] == 7.0
    assert c["course_id"] == str(s.course.id)
    assert c["subject_id"] == str(s.math.id)
    assert c["difficulty"]["label"] == "Básica"


def test_open_rejects_subject_of_another_course(db_session, client: TestClient):
    s = _setup(db_session)
    other = create_course(db_session, "2° Medio B")

    r = client.post(
        "/compositions",
        json={"initial_course_id": str(other.id), "initial_subject_id": str(s.math.id)},
        headers=as_user(TEACHER),
    )
    assert r.status_code == 400
    assert r.json()["detail"]["errors"][0]["code"] == "course_mismatch"


def test_only_managers_open_and_sessions_are_private(db_session, client: TestClient):
    s = _setup(db_session)
    create_user(db_session, "student@local.test", "Estudiante", "student")
    create_user(db_session, "other@local.test", "Otro Profesor", "teacher")

    r = client.post("/compositions", json={}, headers=as_user("student@local.test"))
    assert r.status_code == 403

    c = _open(client, s)
    r = client.get(f"/compositions/{c['id']}", headers=as_user("other@local.test"))
    assert r.status_code == 404


def test_full_wizard_produces_a_draft_evaluation(db_session, client: TestClient):
    s = _setup(db_session)
    c = _open(client, s)
    cid = c["id"]

    # step 1 blocks until the configuration is complete
    r = client.post(f"/compositions/{cid}/advance", headers=as_user(TEACHER))
    assert r.status_code == 400
    assert [e["field"] for e in r.json()["detail"]["errors"]] == ["title"]

    r = client.patch(f"/compositions/{cid}/configuration", json={"title": "Control Unidad 1", "type": "formativa"},
                     headers=as_user(TEACHER))
    assert r.status_code == 200

    r = client.post(f"/compositions/{cid}/advance", headers=as_user(TEACHER))
    assert r.json()["step"] == 2

    # step 2: subject and course-wide objectives, deduplicated
    r = client.get(f"/compositions/{cid}/objectives", headers=as_user(TEACHER))
    assert [o["objective"] for o in r.json()] == ["OA1: Números", "OA2: Potencias", "OAT: Equipo"]

    r = client.post(f"/compositions/{cid}/objectives/toggle", json={"objective": "OA2: Potencias"},
                    headers=as_user(TEACHER))
    assert r.json()["objectives"] == ["OA2: Potencias"]

    r = client.post(f"/compositions/{cid}/objectives/toggle", json={"objective": "OA9: Independencia"},
                    headers=as_user(TEACHER))
    assert r.status_code == 400

    # questions are only toggled at step 3
    r = client.post(f"/compositions/{cid}/questions/{s.qm1.id}/toggle", headers=as_user(TEACHER))
    assert r.status_code == 409

    r = client.post(f"/compositions/{cid}/advance", headers=as_user(TEACHER))
    assert r.json()["step"] == 3

    r = client.get(f"/compositions/{cid}/questions", headers=as_user(TEACHER))
    listed = {q["id"] for q in r.json()}
    assert listed == {str(s.qm1.id), str(s.qe.id), str(s.qm2.id)}

    for q in (s.qm1, s.qe, s.qm2):
        r = client.post(f"/compositions/{cid}/questions/{q.id}/toggle", headers=as_user(TEACHER))
        assert r.status_code == 200

    r = client.get(f"/compositions/{cid}/difficulty", headers=as_user(TEACHER))
    assert r.json()["score"] == pytest.approx(5 / 3)
    assert r.json()["label"] == "Intermedia"

    r = client.get(f"/compositions/{cid}/validation", headers=as_user(TEACHER))
    assert r.json()["valid"] is True

    r = client.post(f"/compositions/{cid}/finalize", headers=as_user(TEACHER))
    assert r.status_code == 201, r.text
    ev = r.json()
    assert ev["status"] == "draft"
    assert ev["title"] == "Control Unidad 1"
    assert ev["type"] == "formativa"
    assert ev["category"] == "planificada"
    assert ev["objectives"] == ["OA2: Potencias"]
    assert ev["questions"] == [str(s.qm1.id), str(s.qe.id), str(s.qm2.id)]

    r = client.get(f"/compositions/{cid}", headers=as_user(TEACHER))
    assert r.json()["status"] == "finalized"
    assert r.json()["evaluation_id"] == ev["id"]


def test_finalize_is_idempotent(db_session, client: TestClient):
    s = _setup(db_session)
    c = _to_step_three(client, s)

    first = client.post(f"/compositions/{c['id']}/finalize", headers=as_user(TEACHER))
    second = client.post(f"/compositions/{c['id']}/finalize", headers=as_user(TEACHER))
    assert first.status_code == 201
    assert second.status_code == 201
    assert first.json()["id"] == second.json()["id"]
    assert db_session.query(Evaluation).count() == 1


def test_finalize_with_idempotency_key_replays(db_session, client: TestClient):
    s = _setup(db_session)
    c = _to_step_three(client, s)
    headers = as_user(TEACHER, key="finalize-1")

    first = client.post(f"/compositions/{c['id']}/finalize", headers=headers)
    second = client.post(f"/compositions/{c['id']}/finalize", headers=headers)
    assert first.json() == second.json()
    assert db_session.query(Evaluation).count() == 1


def test_zero_question_evaluation_is_allowed(db_session, client: TestClient):
    s = _setup(db_session)
    c = _to_step_three(client, s)

    r = client.get(f"/compositions/{c['id']}/validation", headers=as_user(TEACHER))
    assert r.json()["valid"] is True
    assert "No questions selected" in r.json()["warnings"]

    r = client.post(f"/compositions/{c['id']}/finalize", headers=as_user(TEACHER))
    assert r.status_code == 201
    assert r.json()["questions"] == []


def test_finalize_only_at_last_step(db_session, client: TestClient):
    s = _setup(db_session)
    c = _open(client, s)

    r = client.post(f"/compositions/{c['id']}/finalize", headers=as_user(TEACHER))
    assert r.status_code == 409
    assert db_session.query(Evaluation).count() == 0
    assert db_session.get(CompositionSession, uuid.UUID(c["id"])).status == "open"


def test_changing_subject_clears_selection(db_session, client: TestClient):
    s = _setup(db_session)
    c = _to_step_three(client, s)
    cid = c["id"]
    client.post(f"/compositions/{cid}/questions/{s.qe.id}/toggle", headers=as_user(TEACHER))

    client.post(f"/compositions/{cid}/back", headers=as_user(TEACHER))
    r = client.post(f"/compositions/{cid}/back", headers=as_user(TEACHER))
    assert r.json()["step"] == 1
    assert r.json()["question_ids"] == [str(s.qe.id)]

    r = client.patch(f"/compositions/{cid}/configuration", json={"subject_id": str(s.history.id)},
                     headers=as_user(TEACHER))
    assert r.status_code == 200
    assert r.json()["subject_id"] == str(s.history.id)
    assert r.json()["question_ids"] == []
    assert r.json()["objectives"] == []


def test_question_from_another_subject_cannot_be_selected(db_session, client: TestClient):
    s = _setup(db_session)
    c = _to_step_three(client, s)

    r = client.post(f"/compositions/{c['id']}/questions/{s.qh.id}/toggle", headers=as_user(TEACHER))
    assert r.status_code == 400


def test_bank_listing_filters(db_session, client: TestClient):
    s = _setup(db_session)
    c = _to_step_three(client, s)
    client.post(f"/compositions/{c['id']}/questions/{s.qe.id}/toggle", headers=as_user(TEACHER))

    r = client.get(f"/compositions/{c['id']}/questions?difficulty=medium", headers=as_user(TEACHER))
    assert {q["id"] for q in r.json()} == {str(s.qm1.id), str(s.qm2.id)}

    r = client.get(f"/compositions/{c['id']}/questions?search=2%20%2B%202", headers=as_user(TEACHER))
    assert [(q["id"], q["selected"]) for q in r.json()] == [(str(s.qe.id), True)]


def test_inline_question_is_added_and_selected(db_session, client: TestClient):
    s = _setup(db_session)
    c = _to_step_three(client, s)

    r = client.post(
        f"/compositions/{c['id']}/questions",
        json={"question_text": "¿Es 7 primo?", "type": "true_false", "difficulty": "easy"},
        headers=as_user(TEACHER),
    )
    assert r.status_code == 201, r.text
    new_id = r.json()["id"]
    assert r.json()["subject_id"] == str(s.math.id)

    r = client.get(f"/compositions/{c['id']}", headers=as_user(TEACHER))
    assert r.json()["question_ids"] == [new_id]

    r = client.post(
        f"/compositions/{c['id']}/questions",
        json={"question_text": "Elige", "type": "multiple_choice", "options": ["a", "b"]},
        headers=as_user(TEACHER),
    )
    assert r.status_code == 400


def test_stale_if_match_on_session(db_session, client: TestClient):
    s = _setup(db_session)
    r = client.post("/compositions", json={"initial_course_id": str(s.course.id)}, headers=as_user(TEACHER))
    cid, etag = r.json()["id"], r.headers["etag"]

    r = client.patch(f"/compositions/{cid}/configuration", json={"title": "Uno"},
                     headers={**as_user(TEACHER), "If-Match": etag})
    assert r.status_code == 200

    # the old tag is now stale
    r = client.patch(f"/compositions/{cid}/configuration", json={"title": "Dos"},
                     headers={**as_user(TEACHER), "If-Match": etag})
    assert r.status_code == 409
    assert client.get(f"/compositions/{cid}", headers=as_user(TEACHER)).json()["title"] == "Uno"


def test_close_discards_session(db_session, client: TestClient):
    s = _setup(db_session)
    c = _open(client, s)

    r = client.delete(f"/compositions/{c['id']}", headers=as_user(TEACHER))
    assert r.status_code == 204
    r = client.get(f"/compositions/{c['id']}", headers=as_user(TEACHER))
    assert r.status_code == 404


def test_null_type_in_configuration_keeps_the_current_type(db_session, client: TestClient):
    s = _setup(db_session)
    cid = _open(client, s)["id"]

    r = client.patch(f"/compositions/{cid}/configuration", json={"type": "formativa"}, headers=as_user(TEACHER))
    assert r.status_code == 200

    r = client.patch(f"/compositions/{cid}/configuration", json={"type": None, "title": "Control"},
                     headers=as_user(TEACHER))
    assert r.status_code == 200, r.text
    assert r.json()["type"] == "formativa"
    assert r.json()["title"] == "Control"
