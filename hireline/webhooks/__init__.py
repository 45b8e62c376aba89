"""
表单 Webhook 接入层

来源校验、入口守卫与字段提取
"""
from .field_maps import FieldRef, FormFieldMap, FieldMaps, load_field_maps, get_field_maps
from .extractor import (
    FieldExtractor,
    PersonData,
    ApplicationData,
    GCAssessmentData,
    SCAssessmentData,
    AgreementData,
    get_field_extractor,
)
from .verify import VerificationResult, compute_signature, verify_signature, verify_webhook
from .guard import VerifiedWebhook, parse_and_verify_webhook

__all__ = [
    "FieldRef",
    "FormFieldMap",
    "FieldMaps",
    "load_field_maps",
    "get_field_maps",
    "FieldExtractor",
    "PersonData",
    "ApplicationData",
    "GCAssessmentData",
    "SCAssessmentData",
    "AgreementData",
    "get_field_extractor",
    "VerificationResult",
    "compute_signature",
    "verify_signature",
    "verify_webhook",
    "VerifiedWebhook",
    "parse_and_verify_webhook",
]
