# -*- coding: utf-8 -*-
"""
YAML 资源加载器模块。

提供 hireline/resources 下 YAML 配置（表单字段映射、邮件模板）的加载、
缓存和模板变量替换功能。
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yaml
from loguru import logger

RESOURCES_DIR = Path(__file__).resolve().parent.parent / "resources"


class ResourceLoader:
    """
    YAML 资源加载器。
    
    支持：
    - 按名称加载 YAML 文件
    - 模板变量替换（{variable} 语法）
    - 内置缓存机制
    """

    def __init__(self, base_path: Path | str | None = None):
        """
        初始化加载器。
        
        Args:
            base_path: YAML 文件所在目录，默认为 hireline/resources
        """
        self.base_path = Path(base_path) if base_path is not None else RESOURCES_DIR
        self._cache: Dict[str, Dict[str, Any]] = {}

    def load(self, name: str) -> Dict[str, Any]:
        """
        加载指定名称的 YAML 配置。
        
        Args:
            name: 配置文件名（不含 .yaml 后缀）
            
        Raises:
            FileNotFoundError: 配置文件不存在
            yaml.YAMLError: YAML 解析失败
        """
        if name in self._cache:
            return self._cache[name]

        data = load_yaml_file(self.base_path / f"{name}.yaml")
        self._cache[name] = data
        return data

    def get_config(self, name: str, key: str | None = None) -> Any:
        """
        获取配置值。
        
        Args:
            name: 配置文件名
            key: 配置键名（支持点号分隔的嵌套键），None 则返回整个配置
        """
        data = self.load(name)
        if key is None:
            return data

        value: Any = data
        for part in key.split("."):
            if not isinstance(value, dict):
                raise KeyError(f"无法在 {name} 中访问 '{key}'")
            if part not in value:
                raise KeyError(f"配置键不存在: {name}.{key}")
            value = value[part]
        return value

    def render(self, name: str, key: str, **kwargs) -> str:
        """
        获取字符串模板并进行变量替换。
        
        缺少变量时记录警告并返回未替换的原文。
        """
        value = self.get_config(name, key)
        if not isinstance(value, str):
            raise TypeError(f"期望字符串类型的模板，但 {name}.{key} 是 {type(value).__name__}")

        try:
            return value.format(**kwargs)
        except KeyError as e:
            logger.warning("模板变量缺失: {} in {}.{}", e, name, key)
            return value


def load_yaml_file(file_path: Path | str) -> Dict[str, Any]:
    """读取单个 YAML 文件"""
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"配置文件不存在: {file_path}")

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logger.error("解析 YAML 失败 {}: {}", file_path, e)
        raise


# ========== 全局单例 ==========

_loader: ResourceLoader | None = None


def get_resource_loader() -> ResourceLoader:
    """获取全局 ResourceLoader 单例。"""
    global _loader
    if _loader is None:
        _loader = ResourceLoader()
    return _loader
