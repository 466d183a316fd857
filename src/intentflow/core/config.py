"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、会话标识、日志格式、变更推送队列等可配置项。
"""

import os
from pathlib import Path


def _get_base_dir() -> Path:
    """获取项目数据基础目录"""
    return Path(os.environ.get("INTENTFLOW_DATA_DIR", ".intentflow"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "INTENTFLOW_DB_PATH",
        str(_get_base_dir() / "intentflow.db"),
    )


def get_session_id() -> str:
    """获取当前会话标识（workspace_state 按会话隔离焦点）"""
    return os.environ.get("INTENTFLOW_SESSION_ID", "default") or "default"


def get_log_format() -> str:
    """获取日志渲染模式：dev / json"""
    return os.environ.get("INTENTFLOW_LOG_FORMAT", "dev")


def get_log_level() -> str:
    """获取日志级别"""
    return os.environ.get("INTENTFLOW_LOG_LEVEL", "INFO")


# 默认优先级（数值越小越紧急，4 = low）
DEFAULT_PRIORITY: int = 4

# 任务详情附带的最近事件条数
EVENTS_SUMMARY_LIMIT: int = 10

# 事件列表默认条数
DEFAULT_EVENT_LIST_LIMIT: int = 50

# 变更推送：每个订阅者的队列上限
WS_QUEUE_SIZE: int = int(os.environ.get("INTENTFLOW_WS_QUEUE_SIZE", "100"))

# SSE 心跳间隔（秒）
STREAM_HEARTBEAT_INTERVAL: int = int(
    os.environ.get("INTENTFLOW_STREAM_HEARTBEAT_INTERVAL", "15")
)


def get_gateway_host() -> str:
    """HTTP 网关监听地址"""
    return os.environ.get("INTENTFLOW_HOST", "127.0.0.1")


def get_gateway_port() -> int:
    """HTTP 网关监听端口"""
    return int(os.environ.get("INTENTFLOW_PORT", "11391"))
