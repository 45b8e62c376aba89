"""
表单 Webhook 载荷 Schema

表单平台推送的字段数组是弱类型的：同一个 value 可能是字符串、数字、
布尔、文件数组或选项数组。这里先用 pydantic 校验外层结构，
再用 classify_value 把每个字段的 value 归类为下面的一种带标签取值，
提取器只针对标签做分支，不再猜测属性。
"""
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union
from sqlmodel import Field

from .base import SQLModelBase


# ========== 外层载荷 ==========

class TallyOption(SQLModelBase):
    """下拉 / 多选选项"""
    id: str
    text: Optional[str] = None


class TallyFileUpload(SQLModelBase):
    """文件上传项"""
    id: Optional[str] = None
    name: Optional[str] = None
    url: str
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    size: Optional[int] = None


class TallyField(SQLModelBase):
    """表单字段"""
    key: str
    label: Optional[str] = None
    type: str = ""
    value: Any = None
    options: Optional[List[TallyOption]] = None


class TallySubmission(SQLModelBase):
    """一次表单提交"""
    response_id: Optional[str] = Field(default=None, alias="responseId")
    submission_id: str = Field(alias="submissionId", min_length=1)
    respondent_id: Optional[str] = Field(default=None, alias="respondentId")
    form_id: Optional[str] = Field(default=None, alias="formId")
    form_name: Optional[str] = Field(default=None, alias="formName")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    fields: List[TallyField]


class TallyWebhookPayload(SQLModelBase):
    """Webhook 载荷"""
    event_id: Optional[str] = Field(default=None, alias="eventId")
    event_type: Optional[str] = Field(default=None, alias="eventType")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    data: TallySubmission


# ========== 字段取值（带标签联合类型） ==========

@dataclass(frozen=True)
class EmptyValue:
    """空值或无法识别的结构"""


@dataclass(frozen=True)
class TextValue:
    text: str


@dataclass(frozen=True)
class NumberValue:
    number: float


@dataclass(frozen=True)
class BooleanValue:
    flag: bool


@dataclass(frozen=True)
class ChoiceValue:
    """
    选择题取值
    
    selected 为已选项（含文本）；部分表单版本只回传选项 ID，
    此时文本需要从字段的 options 中查找
    """
    selected: Tuple[TallyOption, ...]


@dataclass(frozen=True)
class FileValue:
    files: Tuple[TallyFileUpload, ...]


FieldValue = Union[EmptyValue, TextValue, NumberValue, BooleanValue, ChoiceValue, FileValue]


def _classify_list(field: TallyField, items: list) -> FieldValue:
    if not items:
        return ChoiceValue(selected=())
    
    if all(isinstance(item, dict) and "url" in item for item in items):
        return FileValue(files=tuple(TallyFileUpload.model_validate(item) for item in items))
    
    if all(isinstance(item, dict) and "id" in item for item in items):
        return ChoiceValue(selected=tuple(TallyOption.model_validate(item) for item in items))
    
    if all(isinstance(item, str) for item in items):
        options = {opt.id: opt for opt in field.options or []}
        return ChoiceValue(
            selected=tuple(options.get(item) or TallyOption(id=item) for item in items)
        )
    
    return EmptyValue()


def classify_value(field: Optional[TallyField]) -> FieldValue:
    """把字段的原始 value 归类为带标签取值"""
    if field is None or field.value is None:
        return EmptyValue()
    
    value = field.value
    # bool 是 int 的子类，必须先判断
    if isinstance(value, bool):
        return BooleanValue(flag=value)
    if isinstance(value, (int, float)):
        return NumberValue(number=float(value))
    if isinstance(value, str):
        return TextValue(text=value)
    if isinstance(value, list):
        return _classify_list(field, value)
    return EmptyValue()
