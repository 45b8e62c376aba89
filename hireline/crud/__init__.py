"""
CRUD 操作模块
"""
from .person import person_crud
from .application import application_crud
from .assessment import assessment_crud
from .interview import interview_crud
from .decision import decision_crud
from .audit import audit_crud
from .user import user_crud
from .webhook_receipt import webhook_receipt_crud

__all__ = [
    "person_crud",
    "application_crud",
    "assessment_crud",
    "interview_crud",
    "decision_crud",
    "audit_crud",
    "user_crud",
    "webhook_receipt_crud",
]
