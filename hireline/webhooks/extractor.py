"""
表单字段提取器

把已通过校验的 Webhook 载荷转换为领域数据，不访问数据库。

字段定位策略：
1. 按 label 查找（不区分大小写的完全匹配）
2. 找不到时按 key 前缀查找，并记录警告，提示表单 label 可能已改名
"""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from hireline.core.exceptions import ExtractionError
from hireline.core.security import sanitize_for_log
from hireline.schemas.webhook import (
    TallyField,
    TallyWebhookPayload,
    FieldValue,
    EmptyValue,
    TextValue,
    NumberValue,
    BooleanValue,
    ChoiceValue,
    FileValue,
    classify_value,
)
from .field_maps import FieldMaps, FieldRef, FormFieldMap, get_field_maps


# ========== 提取结果 ==========

@dataclass(frozen=True)
class PersonData:
    email: str
    first_name: str
    last_name: str
    phone_number: Optional[str] = None
    country: Optional[str] = None
    portfolio_link: Optional[str] = None
    education_level: Optional[str] = None
    respondent_id: Optional[str] = None


@dataclass(frozen=True)
class ApplicationData:
    position: str
    submission_id: str
    response_id: Optional[str] = None
    form_id: Optional[str] = None
    resume_url: Optional[str] = None
    academic_background: Optional[str] = None
    previous_experience: Optional[str] = None
    video_link: Optional[str] = None
    other_file_url: Optional[str] = None
    has_resume: bool = False
    has_academic_bg: bool = False
    has_video_intro: bool = False
    has_previous_exp: bool = False
    has_other_file: bool = False


@dataclass(frozen=True)
class GCAssessmentData:
    person_id: str
    score: float
    submission_id: str
    culture_score: Optional[float] = None
    situational_score: Optional[float] = None
    digital_score: Optional[float] = None
    raw_data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SCAssessmentData:
    submission_id: str
    application_id: Optional[str] = None
    person_id: Optional[str] = None
    respondent_id: Optional[str] = None
    specialised_competency_id: Optional[str] = None
    score: Optional[float] = None
    submission_urls: List[Dict[str, Optional[str]]] = field(default_factory=list)
    raw_data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AgreementData:
    application_id: str
    submission_id: str
    legal_first_name: str
    legal_last_name: str
    legal_middle_name: Optional[str] = None
    preferred_first_name: Optional[str] = None
    preferred_last_name: Optional[str] = None
    profile_picture_url: Optional[str] = None
    biography: Optional[str] = None
    date_of_birth: Optional[str] = None
    country: Optional[str] = None
    privacy_policy_accepted: Optional[bool] = None
    signature_url: Optional[str] = None
    entity_represented: Optional[str] = None
    service_hours: Optional[str] = None


# ========== 字段查找 ==========

def find_field_by_label(fields: Sequence[TallyField], label: str) -> Optional[TallyField]:
    """按 label 查找（不区分大小写）"""
    lower = label.lower()
    for f in fields:
        if f.label is not None and f.label.lower() == lower:
            return f
    return None


def find_field_by_key(fields: Sequence[TallyField], key_prefix: str) -> Optional[TallyField]:
    """按 key 前缀查找（隐藏字段的 key 会被追加后缀）"""
    for f in fields:
        if f.key.startswith(key_prefix):
            return f
    return None


def find_field(fields: Sequence[TallyField], ref: FieldRef, context: str) -> Optional[TallyField]:
    """label 优先、key 兜底的字段查找"""
    by_label = find_field_by_label(fields, ref.label)
    if by_label is not None:
        return by_label
    
    by_key = find_field_by_key(fields, ref.key)
    if by_key is not None:
        logger.warning(
            "[字段映射] {}: 未按 label \"{}\" 找到字段，已回退到 key 前缀 \"{}\" "
            "(实际 key: \"{}\", label: {})，如表单 label 已修改请更新映射表",
            context, ref.label, ref.key,
            sanitize_for_log(by_key.key), sanitize_for_log(by_key.label),
        )
    return by_key


# ========== 取值函数 ==========

def _format_number(number: float) -> str:
    if number.is_integer():
        return str(int(number))
    return str(number)


def string_value(value: FieldValue) -> Optional[str]:
    """文本取值：去除首尾空白，空串视为缺失；数字转为字符串"""
    if isinstance(value, TextValue):
        return value.text.strip() or None
    if isinstance(value, NumberValue):
        return _format_number(value.number)
    return None


def number_value(value: FieldValue) -> Optional[float]:
    """
    数值取值
    
    Raises:
        ValueError: 字段有值但无法解析为有限数值
    """
    if isinstance(value, NumberValue):
        number = value.number
    elif isinstance(value, TextValue):
        text = value.text.strip()
        if not text:
            return None
        number = float(text)
    elif isinstance(value, EmptyValue):
        return None
    else:
        raise ValueError(f"unexpected {type(value).__name__}")
    
    if not math.isfinite(number):
        raise ValueError("not a finite number")
    return number


def file_url(value: FieldValue) -> Optional[str]:
    """第一个上传文件的 URL"""
    if isinstance(value, FileValue) and value.files:
        return value.files[0].url
    return None


def is_option_selected(value: FieldValue, option_id: str) -> bool:
    """
    多选题是否勾选了指定选项
    
    Raises:
        ValueError: 字段不是选择题结构
    """
    if isinstance(value, ChoiceValue):
        return any(opt.id == option_id for opt in value.selected)
    if isinstance(value, EmptyValue):
        return False
    raise ValueError(f"unexpected {type(value).__name__}")


def dropdown_value(value: FieldValue) -> Optional[str]:
    """下拉题选中项的文本"""
    if isinstance(value, ChoiceValue):
        for opt in value.selected:
            if opt.text:
                return opt.text
    return None


def extract_file_urls(fields: Sequence[TallyField]) -> List[Dict[str, Optional[str]]]:
    """收集载荷中全部上传文件"""
    urls = []
    for f in fields:
        value = classify_value(f)
        if not isinstance(value, FileValue):
            continue
        for upload in value.files:
            urls.append({
                "label": f.label or f.key,
                "url": upload.url,
                "type": upload.mime_type,
            })
    return urls


class _FormReader:
    """绑定一次提交的字段与一张表单映射"""
    
    def __init__(self, fields: Sequence[TallyField], form: FormFieldMap):
        self.fields = fields
        self.form = form
    
    def value(self, name: str) -> FieldValue:
        return classify_value(find_field(self.fields, self.form.ref(name), self.form.context))
    
    def string(self, name: str) -> Optional[str]:
        return string_value(self.value(name))
    
    def required_string(self, name: str, message: str) -> str:
        result = self.string(name)
        if not result:
            raise ExtractionError(message, field=name)
        return result
    
    def number(self, name: str, strict: bool = False) -> Optional[float]:
        try:
            return number_value(self.value(name))
        except ValueError:
            if strict:
                raise ExtractionError(
                    f"{self.form.context}: {name} must be a number", field=name
                ) from None
            return None
    
    def file_url(self, name: str) -> Optional[str]:
        return file_url(self.value(name))
    
    def choice_text(self, name: str) -> Optional[str]:
        value = self.value(name)
        return dropdown_value(value) or string_value(value)
    
    def selected(self, name: str, option_id: str) -> bool:
        try:
            return is_option_selected(self.value(name), option_id)
        except ValueError:
            raise ExtractionError(
                f"{self.form.context}: {name} must be a checkbox selection", field=name
            ) from None


def _raw_fields(payload: TallyWebhookPayload) -> List[Dict[str, Any]]:
    return [f.model_dump(mode="json", by_alias=True) for f in payload.data.fields]


# ========== 提取器 ==========

class FieldExtractor:
    """
    表单提取器
    
    纯函数式转换：载荷 -> 领域数据；必填字段缺失或类型错误时抛出 ExtractionError
    """
    
    def __init__(self, field_maps: FieldMaps):
        self.field_maps = field_maps
    
    def _reader(self, payload: TallyWebhookPayload, form: FormFieldMap) -> _FormReader:
        return _FormReader(payload.data.fields, form)
    
    def extract_person_data(self, payload: TallyWebhookPayload) -> PersonData:
        """从投递表单中提取候选人信息"""
        form = self._reader(payload, self.field_maps.application)
        
        email = form.required_string("email", "Email is required but missing from webhook payload")
        first_name = form.required_string(
            "firstName", "First name is required but missing from webhook payload"
        )
        last_name = form.required_string(
            "lastName", "Last name is required but missing from webhook payload"
        )
        
        return PersonData(
            email=email.lower(),
            first_name=first_name,
            last_name=last_name,
            phone_number=form.string("phoneNumber"),
            country=form.choice_text("country"),
            portfolio_link=form.string("portfolioLink"),
            education_level=form.choice_text("educationLevel"),
            respondent_id=payload.data.respondent_id,
        )
    
    def extract_application_data(self, payload: TallyWebhookPayload) -> ApplicationData:
        """从投递表单中提取申请信息"""
        form = self._reader(payload, self.field_maps.application)
        ids = self.field_maps.package_checkbox_ids
        
        position = form.required_string(
            "position", "Position is required but missing from webhook payload"
        )
        
        return ApplicationData(
            position=position,
            submission_id=payload.data.submission_id,
            response_id=payload.data.response_id,
            form_id=payload.data.form_id,
            resume_url=form.file_url("resumeFile"),
            academic_background=form.string("academicBackground"),
            previous_experience=form.string("previousExperience"),
            video_link=form.string("videoLink"),
            other_file_url=form.file_url("otherFile"),
            has_resume=form.selected("packageContents", ids["resume"]),
            has_academic_bg=form.selected("packageContents", ids["academicBg"]),
            has_video_intro=form.selected("packageContents", ids["videoIntro"]),
            has_previous_exp=form.selected("packageContents", ids["previousExp"]),
            has_other_file=form.selected("packageContents", ids["otherFile"]),
        )
    
    def extract_gc_assessment_data(self, payload: TallyWebhookPayload) -> GCAssessmentData:
        """从通用能力测评表单中提取成绩"""
        form = self._reader(payload, self.field_maps.general_competencies)
        
        person_id = form.required_string(
            "personId", "Person ID (who) is required but missing from GC assessment webhook"
        )
        score = form.number("score", strict=True)
        if score is None:
            raise ExtractionError(
                "Score is required but missing from GC assessment webhook", field="score"
            )
        
        subscores = {
            "cultureScore": form.number("cultureScore"),
            "situationalScore": form.number("situationalScore"),
            "digitalScore": form.number("digitalScore"),
        }
        
        return GCAssessmentData(
            person_id=person_id,
            score=score,
            submission_id=payload.data.submission_id,
            culture_score=subscores["cultureScore"],
            situational_score=subscores["situationalScore"],
            digital_score=subscores["digitalScore"],
            raw_data={"subscores": subscores, "fields": _raw_fields(payload)},
        )
    
    def extract_sc_assessment_data(self, payload: TallyWebhookPayload) -> SCAssessmentData:
        """
        从专业能力测评表单中提取成绩
        
        applicationId 与 score 均可缺省：前者由答题人ID反查，后者表示待人工审核
        """
        form = self._reader(payload, self.field_maps.specialized_competencies)
        submission_urls = extract_file_urls(payload.data.fields)
        
        return SCAssessmentData(
            submission_id=payload.data.submission_id,
            application_id=form.string("applicationId"),
            person_id=form.string("personId"),
            respondent_id=payload.data.respondent_id,
            specialised_competency_id=form.string("specialisedCompetencyId"),
            score=form.number("score", strict=True),
            submission_urls=submission_urls,
            raw_data={"fields": _raw_fields(payload), "submissionUrls": submission_urls},
        )
    
    def extract_agreement_data(self, payload: TallyWebhookPayload) -> AgreementData:
        """从协议签署表单中提取签署信息"""
        form = self._reader(payload, self.field_maps.agreement)
        
        application_id = form.required_string(
            "applicationId", "Application ID is required but missing from agreement webhook"
        )
        legal_first_name = form.required_string(
            "legalFirstName", "Legal first name is required but missing from agreement webhook"
        )
        legal_last_name = form.required_string(
            "legalLastName", "Legal last name is required but missing from agreement webhook"
        )
        
        privacy = form.value("privacyPolicy")
        privacy_policy_accepted = None
        if isinstance(privacy, BooleanValue):
            privacy_policy_accepted = privacy.flag
        elif isinstance(privacy, ChoiceValue) and privacy.selected:
            privacy_policy_accepted = True
        
        return AgreementData(
            application_id=application_id,
            submission_id=payload.data.submission_id,
            legal_first_name=legal_first_name,
            legal_last_name=legal_last_name,
            legal_middle_name=form.string("legalMiddleName"),
            preferred_first_name=form.string("preferredFirstName"),
            preferred_last_name=form.string("preferredLastName"),
            profile_picture_url=form.file_url("profilePicture"),
            biography=form.string("biography"),
            date_of_birth=form.string("dateOfBirth"),
            country=form.choice_text("country"),
            privacy_policy_accepted=privacy_policy_accepted,
            signature_url=form.file_url("signature"),
            entity_represented=form.string("entityRepresented"),
            service_hours=form.choice_text("serviceHours"),
        )


def get_field_extractor() -> FieldExtractor:
    """依赖注入：按配置加载映射表的提取器"""
    return FieldExtractor(get_field_maps())
