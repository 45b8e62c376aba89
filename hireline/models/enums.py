"""
招聘流程枚举
"""
from enum import Enum


class Stage(str, Enum):
    """申请所处阶段（按流程顺序排列）"""
    APPLICATION = "APPLICATION"
    GENERAL_COMPETENCIES = "GENERAL_COMPETENCIES"
    SPECIALIZED_COMPETENCIES = "SPECIALIZED_COMPETENCIES"
    INTERVIEW = "INTERVIEW"
    AGREEMENT = "AGREEMENT"
    SIGNED = "SIGNED"
    
    @property
    def order(self) -> int:
        return STAGE_ORDER.index(self)


STAGE_ORDER = list(Stage)


class Status(str, Enum):
    """申请状态"""
    ACTIVE = "ACTIVE"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


class AssessmentType(str, Enum):
    """测评类型"""
    GENERAL_COMPETENCIES = "GENERAL_COMPETENCIES"
    SPECIALIZED_COMPETENCIES = "SPECIALIZED_COMPETENCIES"


class InterviewOutcome(str, Enum):
    """面试结果"""
    PENDING = "PENDING"
    PASSED = "PASSED"
    FAILED = "FAILED"
    NO_SHOW = "NO_SHOW"


class DecisionType(str, Enum):
    """最终录用决定"""
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"


class ActionType(str, Enum):
    """审计日志动作类型"""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    VIEW = "VIEW"
    EMAIL_SENT = "EMAIL_SENT"
    STATUS_CHANGE = "STATUS_CHANGE"
    STAGE_CHANGE = "STAGE_CHANGE"
