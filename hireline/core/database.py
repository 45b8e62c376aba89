"""
数据库配置模块

使用 SQLAlchemy 2.0 异步模式。
SQLite 连接上打开外键约束，申请删除时由 ON DELETE CASCADE 级联删除测评、面试与决定
"""
from typing import AsyncGenerator
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from .config import settings


def enable_sqlite_foreign_keys(async_engine: AsyncEngine) -> None:
    """SQLite 默认不校验外键，在每个新连接上执行 PRAGMA foreign_keys=ON"""
    if async_engine.dialect.name != "sqlite":
        return
    
    @event.listens_for(async_engine.sync_engine, "connect")
    def _set_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(database_url: str, **kwargs) -> AsyncEngine:
    """创建异步引擎（SQLite 自动打开外键约束）"""
    async_engine = create_async_engine(database_url, **kwargs)
    enable_sqlite_foreign_keys(async_engine)
    return async_engine


# 全局引擎，开发环境打印 SQL
engine = build_engine(settings.database_url, echo=settings.debug, future=True)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """SQLAlchemy 模型基类"""
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    数据库会话依赖注入
    
    请求正常结束时提交，抛出异常时回滚。
    业务服务在发送邮件前会自行提交，这里的提交只收尾剩余的写入（如 VIEW 审计）
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db():
    """初始化数据库（创建所有表）"""
    # 导入模型以注册元数据
    from hireline import models  # noqa: F401
    
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """关闭数据库连接"""
    await engine.dispose()
