"""
Bots module - Telegram 发布与审核
"""

from .telegram_bot import TelegramBot, TelegramModerationUI, TelegramPublisher, format_post
from .telegram_listener import TelegramUpdateListener

__all__ = [
    'TelegramBot',
    'TelegramModerationUI',
    'TelegramPublisher',
    'TelegramUpdateListener',
    'format_post',
]
