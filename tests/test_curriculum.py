from fastapi.testclient import TestClient

from tests.helpers import create_course, create_material, create_subject, create_user


def test_materials_by_course_and_subject(db_session, client: TestClient):
    create_user(db_session, "student@local.test", "Estudiante", "student")
    course = create_course(db_session)
    math = create_subject(db_session, course, "Matemática")
    language = create_subject(db_session, course, "Lenguaje")
    create_material(db_session, course, math, title="Unidad 1", objectives=["OA1", "OA2"])
    create_material(db_session, course, language, title="Unidad Lectura", objectives=["OA7"])
    create_material(db_session, course, None, title="Transversal", objectives=["OA2", "OAT"])
    headers = {"X-User-Email": "student@local.test"}

    r = client.get(f"/curriculum-materials?course_id={course.id}", headers=headers)
    assert r.status_code == 200
    assert len(r.json()) == 3

    # subject materials include the course-wide ones
    r = client.get(f"/curriculum-materials/subject/{math.id}", headers=headers)
    assert {m["title"] for m in r.json()} == {"Unidad 1", "Transversal"}

    r = client.get(f"/curriculum-materials/subject/{math.id}/objectives", headers=headers)
    assert r.json() == ["OA1", "OA2", "OAT"]


def test_create_material(db_session, client: TestClient):
    create_user(db_session, "teacher@local.test", "Profesora", "teacher")
    create_user(db_session, "director@local.test", "Dirección", "director")
    course = create_course(db_session)
    subject = create_subject(db_session, course)

    payload = {
        "course_id": str(course.id),
        "subject_id": {"id": str(subject.id)},
        "title": "Unidad 2",
        "objectives": [" OA3 ", "", "OA4"],
    }

    r = client.post("/curriculum-materials", json=payload, headers={"X-User-Email": "director@local.test"})
    assert r.status_code == 403

    r = client.post("/curriculum-materials", json=payload, headers={"X-User-Email": "teacher@local.test"})
    assert r.status_code == 201, r.text
    assert r.json()["objectives"] == ["OA3", "OA4"]
    assert r.json()["subject_id"] == str(subject.id)


def test_material_subject_must_belong_to_course(db_session, client: TestClient):
    create_user(db_session, "teacher@local.test", "Profesora", "teacher")
    a = create_course(db_session, "1° Medio A")
    b = create_course(db_session, "1° Medio B")
    subject_b = create_subject(db_session, b)

    r = client.post(
        "/curriculum-materials",
        json={"course_id": str(a.id), "subject_id": str(subject_b.id), "title": "Cruzado"},
        headers={"X-User-Email": "teacher@local.test"},
    )
    assert r.status_code == 400
    assert r.json()["detail"]["errors"][0]["code"] == "course_mismatch"

    r = client.get(
        "/curriculum-materials?course_id=00000000-0000-0000-0000-000000000000",
        headers={"X-User-Email": "teacher@local.test"},
    )
    assert r.status_code == 404
