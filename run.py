#!/usr/bin/env python
"""
Hireline 后端启动脚本

用法:
    python run.py                    # 默认启动 (127.0.0.1:8000)
    python run.py -p 8080            # 指定端口
    python run.py --host 0.0.0.0     # 允许外网访问（接收表单 Webhook 时需要）
    python run.py --reload           # 开启热重载
"""
import argparse
import shutil
from pathlib import Path

import uvicorn
from loguru import logger

ROOT_DIR = Path(__file__).parent


def parse_args():
    """解析命令行参数"""
    parser = argparse.ArgumentParser(
        description="Hireline 后端启动脚本",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-p", "--port", type=int, default=8000, help="服务端口 (默认: 8000)")
    parser.add_argument("--host", type=str, default="127.0.0.1", help="服务地址 (默认: 127.0.0.1)")
    parser.add_argument("--reload", action="store_true", help="开启热重载 (开发模式)")
    parser.add_argument("--workers", type=int, default=1, help="工作进程数 (默认: 1)")
    return parser.parse_args()


def prepare_env():
    """首次启动时从 .env.example 生成 .env，并创建 SQLite 数据目录"""
    env_file = ROOT_DIR / ".env"
    env_example = ROOT_DIR / ".env.example"
    if not env_file.exists() and env_example.exists():
        shutil.copy(env_example, env_file)
        logger.info(".env 已从 .env.example 创建，请按需修改")

    data_dir = ROOT_DIR / "data"
    if not data_dir.exists():
        data_dir.mkdir(parents=True)
        logger.info(f"数据目录已创建: {data_dir}")


def main():
    args = parse_args()
    prepare_env()

    if args.workers > 1:
        # 频率限制计数保存在进程内，多进程时每个进程单独计数
        logger.warning(f"以 {args.workers} 个工作进程启动，Webhook 频率限制按进程分别计数")

    logger.info(f"启动服务: http://{args.host}:{args.port} (文档: /docs)")
    uvicorn.run(
        "hireline.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=args.workers if not args.reload else 1,
        log_level="info",
    )


if __name__ == "__main__":
    main()
