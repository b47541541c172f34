"""
Pushers module - 发布调度模块
"""

from .publish_scheduler import PublishScheduler, Publisher, TimeBand

__all__ = ['PublishScheduler', 'Publisher', 'TimeBand']
