"""
日志配置
控制台彩色输出 + 按天轮转的文件日志（错误另存一份）
"""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

from retailhub.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# 只保留警告以上的第三方日志器
NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "apscheduler", "httpx")


class ColoredFormatter(logging.Formatter):
    """控制台按级别着色"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record):
        # 复制记录，颜色码不能进文件日志
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{self.COLORS.get(record.levelname, self.RESET)}{record.levelname}{self.RESET}"
        return super().format(colored)


def _rotating_handler(path: Path, level: int) -> logging.Handler:
    handler = TimedRotatingFileHandler(
        path, when="midnight", backupCount=settings.LOG_BACKUP_DAYS, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    return handler


def setup_logging(log_level: str = "INFO", log_dir: Optional[str] = None) -> None:
    """
    配置根日志器，可重复调用（先清掉旧的处理器）

    Args:
        log_level: DEBUG / INFO / WARNING / ERROR / CRITICAL
        log_dir: 日志目录，默认取配置 LOG_DIR
    """
    log_path = Path(log_dir or settings.LOG_DIR)
    log_path.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(ColoredFormatter(LOG_FORMAT, DATE_FORMAT))
    root.addHandler(console)
    root.addHandler(_rotating_handler(log_path / "retailhub.log", logging.INFO))
    root.addHandler(_rotating_handler(log_path / "retailhub-error.log", logging.ERROR))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"📋 日志已初始化，级别 {log_level.upper()}，目录 {log_path}")


def get_logger(name: str) -> logging.Logger:
    """模块内用 get_logger(__name__) 取日志器"""
    return logging.getLogger(name)
