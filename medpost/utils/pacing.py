"""
发送节奏控制模块
Pacing Module

在连续的外部发送（发布、审核推送）之间插入可取消的等待。
Cooperative delay between consecutive dispatches, cancellable from
another thread. Cancellation stops further dispatches; it does not roll
back the ones already sent.
"""

import logging
import threading

logger = logging.getLogger(__name__)


class Pacer:
    """
    发送节奏控制器
    Dispatch pacer

    Attributes:
        interval: 两次发送之间的等待时间（秒）

    Example:
        >>> pacer = Pacer(interval=30)
        >>> for post in posts:
        ...     if not first and not pacer.pause():
        ...         break
        ...     publisher.publish(post)
    """

    def __init__(self, interval: float = 0.0):
        self.interval = max(0.0, float(interval))
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def pause(self) -> bool:
        """
        等待一个间隔

        Returns:
            True 表示可以继续发送；已取消时返回 False
        """
        if self._cancelled.is_set():
            return False
        if self.interval > 0:
            # wait() 在取消时立即返回 True
            if self._cancelled.wait(self.interval):
                return False
        return True

    def cancel(self):
        """取消后续发送"""
        logger.info("Dispatch cancelled")
        self._cancelled.set()

    def reset(self):
        """清除取消标记，供下一次批处理使用"""
        self._cancelled.clear()
