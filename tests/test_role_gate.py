import uuid
from datetime import date, timedelta
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from school_eval.core import role_gate

TODAY = date(2026, 5, 20)
OWNER = uuid.uuid4()


def _ev(status="draft", category="planificada", on=TODAY, owner=OWNER):
    return SimpleNamespace(status=status, category=category, date=on, created_by_user_id=owner)


def test_staff_requires_a_staff_role_and_no_read_only_role():
    assert role_gate.is_staff({"teacher"})
    assert role_gate.is_staff({"psicologo"})
    assert not role_gate.is_staff({"student"})
    assert not role_gate.is_staff(set())
    # a read-only role always wins
    assert not role_gate.is_staff({"teacher", "apoderado"})


def test_manage_is_admin_or_teacher():
    assert role_gate.can_manage({"admin"})
    assert role_gate.can_manage({"teacher"})
    assert not role_gate.can_manage({"utp"})
    assert not role_gate.can_manage({"director"})
    assert not role_gate.can_manage({"student"})


def test_reviewers():
    for roles in ({"admin"}, {"director"}, {"utp"}):
        assert role_gate.is_reviewer(roles)
    assert not role_gate.is_reviewer({"teacher"})
    assert role_gate.can_review({"utp"}, _ev("submitted"))
    assert not role_gate.can_review({"utp"}, _ev("draft"))


def test_only_teachers_submit_from_draft_or_rejected():
    assert role_gate.can_submit({"teacher"}, _ev("draft"))
    assert role_gate.can_submit({"teacher"}, _ev("rejected"))
    assert not role_gate.can_submit({"teacher"}, _ev("submitted"))
    assert not role_gate.can_submit({"admin"}, _ev("draft"))


def test_edit_needs_owner_or_admin_and_an_editable_status():
    other = uuid.uuid4()
    assert role_gate.can_edit({"teacher"}, _ev("draft"), OWNER)
    assert not role_gate.can_edit({"teacher"}, _ev("draft"), other)
    assert role_gate.can_edit({"admin"}, _ev("rejected"), other)
    assert not role_gate.can_edit({"admin"}, _ev("approved"), other)
    assert not role_gate.can_edit({"teacher"}, _ev("submitted"), OWNER)


def test_surprise_evaluations_are_hidden_from_students_and_guardians():
    surprise = _ev(category="sorpresa", on=TODAY - timedelta(days=30))
    planned = _ev(category="planificada")

    assert role_gate.is_visible_to({"teacher"}, surprise, today=TODAY)
    assert not role_gate.is_visible_to({"student"}, surprise, today=TODAY)
    assert not role_gate.is_visible_to({"apoderado"}, surprise, today=TODAY)
    assert role_gate.is_visible_to({"student"}, planned, today=TODAY)

    assert role_gate.filter_visible({"student"}, [surprise, planned], today=TODAY) == [planned]


def test_surprise_reveal_after_date_is_opt_in():
    past = _ev(category="sorpresa", on=TODAY - timedelta(days=1))
    upcoming = _ev(category="sorpresa", on=TODAY + timedelta(days=1))
    assert role_gate.is_visible_to({"student"}, past, today=TODAY, reveal_after_date=True)
    assert not role_gate.is_visible_to({"student"}, upcoming, today=TODAY, reveal_after_date=True)


def test_allowed_actions():
    assert role_gate.allowed_actions({"teacher"}, _ev("draft"), OWNER) == ["edit", "delete", "submit"]
    assert role_gate.allowed_actions({"utp"}, _ev("submitted"), None) == ["approve", "reject"]
    assert role_gate.allowed_actions({"admin"}, _ev("submitted"), None) == ["delete", "approve", "reject"]
    assert role_gate.allowed_actions({"student"}, _ev("approved"), None) == []


def test_guards_raise_403():
    with pytest.raises(HTTPException) as exc:
        role_gate.assert_can_manage({"student"})
    assert exc.value.status_code == 403

    with pytest.raises(HTTPException) as exc:
        role_gate.assert_is_reviewer({"teacher"})
    assert exc.value.status_code == 403

    with pytest.raises(HTTPException) as exc:
        role_gate.assert_can_edit({"teacher"}, _ev("draft"), uuid.uuid4())
    assert exc.value.status_code == 403
