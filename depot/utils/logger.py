"""终端进度输出与日志配置

depot 的每个动作和结果以 INFO 级别输出一行。交互式终端用简洁文本格式，
CI 中设置 DEPOT_LOG_JSON=1 后每行输出一个 JSON 对象。

只配置 "depot" 包日志器，不改动根日志器。
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

PACKAGE_LOGGER = "depot"
TEXT_FORMAT = "%(levelname)-7s %(message)s"


class JSONFormatter(logging.Formatter):
    """单行 JSON 格式器

    输出示例:
        {"time": "2024-01-01T12:00:00+00:00", "level": "INFO",
         "logger": "depot.core.dep.fetcher", "message": "拉取 alpha 1.0.0 ..."}

    带异常的记录额外包含 "exception" 字段。
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(
                record.created, tz=timezone.utc,
            ).isoformat(timespec="seconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: str = "INFO", json_output: bool = False) -> logging.Logger:
    """给 depot 包日志器安装唯一的 stderr handler 并返回该日志器

    参数:
        level: DEBUG / INFO / WARNING / ERROR，无法识别时按 INFO
        json_output: True 时使用 JSONFormatter
    """
    reset_logging()
    log = logging.getLogger(PACKAGE_LOGGER)
    log.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        JSONFormatter() if json_output else logging.Formatter(TEXT_FORMAT),
    )
    log.addHandler(handler)
    return log


def reset_logging() -> None:
    """移除 depot 包日志器上的 handler，级别恢复为 NOTSET"""
    log = logging.getLogger(PACKAGE_LOGGER)
    for handler in log.handlers[:]:
        log.removeHandler(handler)
        handler.close()
    log.setLevel(logging.NOTSET)
