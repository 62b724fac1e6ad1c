"""
Question bank: staff-only reads, answer shape validation, in-use protection.
"""

from fastapi.testclient import TestClient

from tests.helpers import create_course, create_evaluation, create_question, create_subject, create_user


def _setup(db):
    teacher = create_user(db, "teacher@local.test", "Profesora", "teacher")
    create_user(db, "student@local.test", "Estudiante", "student")
    course = create_course(db)
    subject = create_subject(db, course)
    return teacher, course, subject


def test_create_and_read_multiple_choice_question(db_session, client: TestClient):
    _, _, subject = _setup(db_session)
    headers = {"X-User-Email": "teacher@local.test"}

    r = client.post(
        "/questions",
        json={
            "question_text": "  ¿Cuánto es 3 x 3?  ",
            "subject_id": str(subject.id),
            "difficulty": "easy",
            "options": ["6", " 9 ", "12"],
            "correct_option": 1,
            "tags": ["tablas", "tablas", " multiplicar "],
        },
        headers=headers,
    )
    assert r.status_code == 201, r.text
    q = r.json()
    assert q["question_text"] == "¿Cuánto es 3 x 3?"
    assert q["tags"] == ["tablas", "multiplicar"]
    assert q["options"] == [
        {"text": "6", "is_correct": False},
        {"text": "9", "is_correct": True},
        {"text": "12", "is_correct": False},
    ]

    r = client.get(f"/questions/{q['id']}", headers=headers)
    assert r.status_code == 200
    assert r.json()["difficulty"] == "easy"


def test_answer_shape_is_validated(db_session, client: TestClient):
    _, _, subject = _setup(db_session)
    headers = {"X-User-Email": "teacher@local.test"}

    r = client.post(
        "/questions",
        json={"question_text": "Sin opciones", "subject_id": str(subject.id), "type": "multiple_choice"},
        headers=headers,
    )
    assert r.status_code == 400
    fields = {e["field"] for e in r.json()["detail"]["errors"]}
    assert fields == {"options", "correct_option"}

    r = client.post(
        "/questions",
        json={"question_text": "Fuera de rango", "subject_id": str(subject.id), "options": ["a", "b"], "correct_option": 2},
        headers=headers,
    )
    assert r.status_code == 400
    assert r.json()["detail"]["errors"][0]["code"] == "range"

    r = client.post(
        "/questions",
        json={"question_text": "Abierta", "subject_id": str(subject.id), "type": "open", "options": ["a"]},
        headers=headers,
    )
    assert r.status_code == 400
    assert r.json()["detail"]["errors"][0]["code"] == "not_allowed"


def test_bank_is_staff_only(db_session, client: TestClient):
    _, _, subject = _setup(db_session)
    q = create_question(db_session, subject)

    r = client.get("/questions", headers={"X-User-Email": "student@local.test"})
    assert r.status_code == 403
    r = client.get(f"/questions/{q.id}", headers={"X-User-Email": "student@local.test"})
    assert r.status_code == 403

    r = client.post(
        "/questions",
        json={"question_text": "x", "subject_id": str(subject.id), "type": "open"},
        headers={"X-User-Email": "student@local.test"},
    )
    assert r.status_code == 403


def test_list_filters(db_session, client: TestClient):
    _, course, subject = _setup(db_session)
    other = create_subject(db_session, course, "Lenguaje")
    create_question(db_session, subject, text="Suma de fracciones", difficulty="easy")
    create_question(db_session, subject, text="Ecuación cuadrática", difficulty="hard")
    create_question(db_session, other, text="Sujeto y predicado", difficulty="easy")
    headers = {"X-User-Email": "teacher@local.test"}

    r = client.get(f"/questions?subject_id={subject.id}", headers=headers)
    assert len(r.json()) == 2

    r = client.get("/questions?difficulty=easy", headers=headers)
    assert {q["question_text"] for q in r.json()} == {"Suma de fracciones", "Sujeto y predicado"}

    r = client.get("/questions?search=CUADR", headers=headers)
    assert [q["question_text"] for q in r.json()] == ["Ecuación cuadrática"]

    r = client.get("/questions?difficulty=impossible", headers=headers)
    assert r.status_code == 422


def test_update_switches_type(db_session, client: TestClient):
    _, _, subject = _setup(db_session)
    q = create_question(db_session, subject, options=["a", "b"], correct=0)
    headers = {"X-User-Email": "teacher@local.test"}

    # dropping to open clears options and the correct index
    r = client.put(f"/questions/{q.id}", json={"type": "open"}, headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["type"] == "open"
    assert r.json()["options"] == []

    r = client.put(f"/questions/{q.id}", json={"type": "multiple_choice"}, headers=headers)
    assert r.status_code == 400

    r = client.put(
        f"/questions/{q.id}",
        json={"type": "multiple_choice", "options": ["x", "y"], "correct_option": 1, "difficulty": "hard"},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json()["options"][1]["is_correct"] is True
    assert r.json()["difficulty"] == "hard"


def test_question_in_use_cannot_be_deleted(db_session, client: TestClient):
    teacher, course, subject = _setup(db_session)
    used = create_question(db_session, subject, text="Usada")
    free = create_question(db_session, subject, text="Libre")
    create_evaluation(db_session, owner=teacher, course=course, subject=subject, questions=[used])
    headers = {"X-User-Email": "teacher@local.test"}

    r = client.delete(f"/questions/{used.id}", headers=headers)
    assert r.status_code == 409

    r = client.delete(f"/questions/{free.id}", headers=headers)
    assert r.status_code == 204
    assert client.get(f"/questions/{free.id}", headers=headers).status_code == 404


def test_question_of_a_submitted_or_approved_evaluation_is_frozen(db_session, client: TestClient):
    """Editing a question must not change an evaluation already under review or approved"""
    teacher, course, subject = _setup(db_session)
    in_review = create_question(db_session, subject, text="En revisión", difficulty="easy")
    approved = create_question(db_session, subject, text="Aprobada", difficulty="easy")
    in_draft = create_question(db_session, subject, text="Borrador", difficulty="easy")
    create_evaluation(db_session, owner=teacher, course=course, subject=subject,
                      title="Enviada", status="submitted", questions=[in_review])
    ev = create_evaluation(db_session, owner=teacher, course=course, subject=subject,
                           title="Aprobada", status="approved", questions=[approved])
    create_evaluation(db_session, owner=teacher, course=course, subject=subject,
                      title="Borrador", questions=[in_draft])
    headers = {"X-User-Email": "teacher@local.test"}

    for q in (in_review, approved):
        r = client.put(f"/questions/{q.id}", json={"difficulty": "hard"}, headers=headers)
        assert r.status_code == 409

    r = client.get(f"/evaluations/{ev.id}/difficulty", headers=headers)
    assert r.json()["label"] == "Básica"

    # drafts are still being written, their questions stay editable
    r = client.put(f"/questions/{in_draft.id}", json={"difficulty": "hard"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["difficulty"] == "hard"


def test_blank_text_and_blank_options_are_rejected(db_session, client: TestClient):
    _, _, subject = _setup(db_session)
    q = create_question(db_session, subject, text="Original")
    headers = {"X-User-Email": "teacher@local.test"}

    r = client.post(
        "/questions",
        json={"question_text": "   ", "subject_id": str(subject.id), "type": "open"},
        headers=headers,
    )
    assert r.status_code == 422

    r = client.put(f"/questions/{q.id}", json={"question_text": "   "}, headers=headers)
    assert r.status_code == 422

    r = client.post(
        "/questions",
        json={"question_text": "Elige", "subject_id": str(subject.id), "options": ["", "  "], "correct_option": 0},
        headers=headers,
    )
    assert r.status_code == 400
    assert r.json()["detail"]["errors"][0]["code"] == "blank"

    r = client.get(f"/questions/{q.id}", headers=headers)
    assert r.json()["question_text"] == "Original"
