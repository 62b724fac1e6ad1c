from fastapi.testclient import TestClient
from school_eval.main import app
from school_eval.models.notification import Notification
from tests.helpers import create_user


def test_me_requires_header(db_session):
    client = TestClient(app)
    r = client.get("/me")
    assert r.status_code == 401


def test_me_rejects_unknown_or_inactive_user(db_session):
    u = create_user(db_session, "gone@local.test", "Ex Docente", "teacher")
    u.is_active = False
    db_session.commit()

    client = TestClient(app)
    assert client.get("/me", headers={"X-User-Email": "nobody@local.test"}).status_code == 401
    assert client.get("/me", headers={"X-User-Email": "gone@local.test"}).status_code == 401


def test_me_returns_roles_and_capabilities(db_session):
    create_user(db_session, "teacher@local.test", "Profesora", "teacher")

    client = TestClient(app)
    # email lookup is case-insensitive
    r = client.get("/me", headers={"X-User-Email": "Teacher@Local.test"})
    assert r.status_code == 200
    body = r.json()
    assert body["email"] == "teacher@local.test"
    assert body["roles"] == ["teacher"]
    assert body["is_staff"] is True
    assert body["can_manage_evaluations"] is True
    assert body["can_review_evaluations"] is False


def test_student_capabilities(db_session):
    create_user(db_session, "student@local.test", "Estudiante", "student")

    client = TestClient(app)
    body = client.get("/me", headers={"X-User-Email": "student@local.test"}).json()
    assert body["is_staff"] is False
    assert body["can_manage_evaluations"] is False


def test_notifications_are_per_user_and_can_be_marked_read(db_session):
    """Test listing and acknowledging notifications"""
    teacher = create_user(db_session, "teacher@local.test", "Profesora", "teacher")
    other = create_user(db_session, "other@local.test", "Otro", "teacher")
    n = Notification(recipient_user_id=teacher.id, kind="EVALUATION_APPROVED", message="Aprobada")
    db_session.add_all([n, Notification(recipient_user_id=other.id, kind="EVALUATION_REJECTED", message="No")])
    db_session.commit()

    client = TestClient(app)
    headers = {"X-User-Email": "teacher@local.test"}

    r = client.get("/me/notifications", headers=headers)
    assert [x["kind"] for x in r.json()] == ["EVALUATION_APPROVED"]

    r = client.post(f"/me/notifications/{n.id}/read", headers=headers)
    assert r.status_code == 200
    assert r.json()["read_at"] is not None

    r = client.get("/me/notifications?unread_only=true", headers=headers)
    assert r.json() == []

    # someone else's notification looks missing
    r = client.post(f"/me/notifications/{n.id}/read", headers={"X-User-Email": "other@local.test"})
    assert r.status_code == 404
