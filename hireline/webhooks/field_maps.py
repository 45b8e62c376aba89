"""
表单字段映射表

从 YAML 加载为不可变对象后注入提取器，
不同表单版本可以传入不同的映射表
"""
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from hireline.core.config import settings
from hireline.core.loader import get_resource_loader, load_yaml_file

FORM_NAMES = ("application", "general_competencies", "specialized_competencies", "agreement")


@dataclass(frozen=True)
class FieldRef:
    """单个字段的定位信息：label 优先，key 前缀兜底"""
    key: str
    label: str


@dataclass(frozen=True)
class FormFieldMap:
    """一张表单的字段映射"""
    context: str
    fields: Mapping[str, FieldRef]
    
    def ref(self, name: str) -> FieldRef:
        try:
            return self.fields[name]
        except KeyError:
            raise KeyError(f"{self.context} 表单未定义字段: {name}") from None


@dataclass(frozen=True)
class FieldMaps:
    """全部表单的字段映射"""
    application: FormFieldMap
    general_competencies: FormFieldMap
    specialized_competencies: FormFieldMap
    agreement: FormFieldMap
    package_checkbox_ids: Mapping[str, str]
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldMaps":
        forms = {}
        for name in FORM_NAMES:
            section = data.get(name)
            if not isinstance(section, dict) or not isinstance(section.get("fields"), dict):
                raise ValueError(f"字段映射缺少表单配置: {name}")
            fields = {
                field_name: FieldRef(key=str(spec["key"]), label=str(spec["label"]))
                for field_name, spec in section["fields"].items()
            }
            forms[name] = FormFieldMap(
                context=str(section.get("context", name)),
                fields=MappingProxyType(fields),
            )
        
        checkbox_ids = {
            name: str(option_id)
            for name, option_id in (data.get("package_checkbox_ids") or {}).items()
        }
        return cls(package_checkbox_ids=MappingProxyType(checkbox_ids), **forms)


def load_field_maps(path: Optional[str] = None) -> FieldMaps:
    """加载字段映射；未指定路径时使用内置 field_maps.yaml"""
    if path:
        return FieldMaps.from_dict(load_yaml_file(path))
    return FieldMaps.from_dict(get_resource_loader().get_config("field_maps"))


@lru_cache
def get_field_maps() -> FieldMaps:
    """获取按配置加载的字段映射单例"""
    return load_field_maps(settings.field_map_path)
