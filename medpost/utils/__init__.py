# Utils module - 工具模块
# 包含发送节奏控制

from .pacing import Pacer

__all__ = [
    "Pacer",
]
