"""
环境变量加载与日志配置

提供两个工具函数:
    load_env()      — 从 .env 文件加载环境变量（微信凭据）
    setup_logging() — 配置全局日志格式，可选同时输出到目录
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv


def load_env(env_path: Optional[str] = None) -> bool:
    """
    加载 .env 文件到 os.environ，已存在的环境变量不会被覆盖。

    Args:
        env_path: .env 文件路径。未指定时默认使用当前目录下的 .env

    Returns:
        是否成功加载到文件
    """
    path = Path(env_path) if env_path else Path.cwd() / ".env"
    return load_dotenv(path)


def setup_logging(log_dir: Optional[str] = None, level: Union[int, str] = logging.INFO):
    """
    配置全局日志。

    日志始终输出到控制台，如果指定了 log_dir 则同时写入该目录下
    以启动时间命名的日志文件（格式: wechat_YYYYMMDD_HHMMSS.log）。
    aiohttp 的访问日志只保留 WARNING 及以上，避免每次推送都刷屏。

    Args:
        log_dir: 日志输出目录，None 表示仅控制台输出
        level:   日志级别，可传 logging 常量或 "DEBUG" / "INFO" 等名称
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    fmt = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_dir:
        dir_path = Path(log_dir)
        dir_path.mkdir(parents=True, exist_ok=True)
        log_file = dir_path / f"wechat_{datetime.now():%Y%m%d_%H%M%S}.log"
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(level=level, format=fmt, datefmt=datefmt, handlers=handlers, force=True)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
