from school_eval.models.audit_event import AuditEvent
from school_eval.models.composition_session import CompositionSession
from school_eval.models.curriculum_material import CurriculumMaterial
from school_eval.models.directory import Course, Subject
from school_eval.models.evaluation import Evaluation, EvaluationQuestion
from school_eval.models.grade import Grade
from school_eval.models.idempotency import IdempotencyKey
from school_eval.models.notification import Notification
from school_eval.models.question import Question
from school_eval.models.rbac import Role, UserRole
from school_eval.models.user import User

__all__ = [ "AuditEvent", "CompositionSession", "CurriculumMaterial",
           "Course", "Subject", "Evaluation", "EvaluationQuestion", "Grade",
           "IdempotencyKey", "Notification", "Question", "Role", "UserRole", "User" ]
