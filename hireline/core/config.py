"""
应用配置模块

使用 pydantic-settings 管理环境变量和应用配置
"""
from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Optional
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from pydantic import field_validator
import json

# 项目根目录
BASE_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """应用配置类"""
    
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )
    
    # 应用基础配置
    app_name: str = "Hireline-API"
    app_env: str = "development"
    debug: bool = True
    
    # 数据库配置
    database_url: str = f"sqlite+aiosqlite:///{BASE_DIR / 'data' / 'hireline.db'}"
    
    # CORS 配置
    cors_origins: Annotated[List[str], NoDecode] = ["*"]
    
    # Webhook 安全配置
    webhook_secret: str = ""
    webhook_ip_allowlist: Annotated[List[str], NoDecode] = []
    webhook_rate_limit: int = 60
    webhook_rate_window_seconds: int = 60
    
    # 测评阈值（满分 assessment_scale）
    gc_threshold: float = 70
    sc_threshold: float = 75
    assessment_scale: int = 100
    
    # 员工会话令牌
    session_secret: str = "change-me"
    session_algorithm: str = "HS256"
    
    # 邮件配置
    mail_enabled: bool = False
    sendgrid_api_key: str = ""
    mail_from: str = "talent@example.org"
    mail_from_name: str = "Talent Team"
    gc_form_url: str = "https://tally.so/r/woqXNx"
    agreement_form_url: str = ""
    
    # 表单字段映射文件（为空则使用内置 field_maps.yaml）
    field_map_path: Optional[str] = None
    
    @field_validator("cors_origins", "webhook_ip_allowlist", mode="before")
    @classmethod
    def parse_list(cls, v):
        if isinstance(v, str):
            if not v.strip():
                return []
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [item.strip() for item in v.split(",") if item.strip()]
        return v
    
    @field_validator("database_url", mode="before")
    @classmethod
    def fix_database_path(cls, v):
        if isinstance(v, str) and "./data/" in v:
            return v.replace("./data/", str(BASE_DIR / "data") + "/")
        return v
    
    @property
    def is_development(self) -> bool:
        """是否为开发环境"""
        return self.app_env == "development"
    
    @property
    def is_production(self) -> bool:
        """是否为生产环境"""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """获取配置单例"""
    return Settings()


# 全局配置实例
settings = get_settings()
