"""
Telegram 更新监听模块
Telegram Update Listener

通过 getUpdates 长轮询接收审核人的操作，并分发到审核界面：
- callback_query: 审核按钮，交给 handle_callback 后回应
- message: /status、/moderate 命令，或修订评论

每个收到的更新都会被确认（offset 前移），处理失败的更新不会重新投递。
"""

import logging
import re
import threading
from typing import Optional

from medpost.bots.telegram_bot import TelegramBot, TelegramModerationUI
from medpost.exceptions import TransientCollaboratorError
from medpost.models import BatchStats

logger = logging.getLogger(__name__)

# 审核消息正文中的帖子编号，见 TelegramModerationUI.render
_POST_REFERENCE = re.compile(r'Пост #(\d+)')

HELP_TEXT = (
    "Команды модератора:\n"
    "/moderate - отправить посты на модерацию\n"
    "/status - статус очереди модерации\n"
    "Комментарий для доработки отправьте обычным сообщением."
)


class TelegramUpdateListener:
    """
    Telegram 更新监听器
    Telegram update listener

    Attributes:
        bot: TelegramBot
        ui: 审核界面
        poll_timeout: 长轮询等待时间（秒）
        retry_delay: 轮询失败后的等待时间（秒）
        offset: 下一个待获取的更新ID

    Example:
        >>> listener = TelegramUpdateListener(bot, ui)
        >>> listener.start()   # 在后台线程中轮询
        >>> listener.stop()
    """

    def __init__(self, bot: TelegramBot, ui: TelegramModerationUI,
                 poll_timeout: int = 30, retry_delay: float = 5.0):
        self.bot = bot
        self.ui = ui
        self.poll_timeout = poll_timeout
        self.retry_delay = retry_delay
        self.offset: Optional[int] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def poll_once(self, timeout: Optional[int] = None) -> BatchStats:
        """
        获取并处理一批更新

        Args:
            timeout: 长轮询等待时间，默认 poll_timeout

        Returns:
            BatchStats：已处理 / 忽略 / 出错的更新数量

        Raises:
            TransientCollaboratorError: getUpdates 调用失败
        """
        stats = BatchStats(stage='listen')
        wait = self.poll_timeout if timeout is None else timeout
        updates = self.bot.get_updates(self.offset, wait)

        for update in updates:
            self.offset = update['update_id'] + 1
            try:
                if self.handle_update(update):
                    stats.processed += 1
                else:
                    stats.skipped += 1
            except TransientCollaboratorError as e:
                stats.errored += 1
                logger.error(f"Update {update['update_id']} failed: {e.message}")

        if updates:
            logger.info(f"Telegram updates - {stats.summary()}")
        return stats

    def handle_update(self, update: dict) -> bool:
        """
        分发单个更新

        Returns:
            是否处理了该更新
        """
        if 'callback_query' in update:
            self._handle_callback_query(update['callback_query'])
            return True

        message = update.get('message')
        if message and message.get('text'):
            return self._handle_message(message)

        logger.debug(f"Ignoring update {update.get('update_id')}")
        return False

    def _handle_callback_query(self, query: dict):
        moderator = (query.get('from') or {}).get('id')
        reply = self.ui.handle_callback(
            query.get('data', ''),
            moderator_id=str(moderator) if moderator is not None else None,
        )
        self.bot.answer_callback_query(query['id'], reply)

        chat_id = ((query.get('message') or {}).get('chat') or {}).get('id')
        if chat_id is not None:
            self.bot.send_message(str(chat_id), reply)

    def _handle_message(self, message: dict) -> bool:
        chat_id = str((message.get('chat') or {}).get('id', ''))
        if chat_id != str(self.ui.chat_id):
            logger.debug(f"Ignoring message from chat {chat_id}")
            return False

        text = message['text'].strip()
        if text.startswith('/'):
            reply = self.handle_command(text)
        else:
            reply = self.handle_comment(message, text)

        self.bot.send_message(chat_id, reply)
        return True

    def handle_command(self, text: str) -> str:
        """处理审核人命令"""
        # /status@bot_name 形式的命令去掉机器人名
        command = text.split()[0].split('@')[0].lower()

        if command == '/status':
            return self.ui.status_text()
        if command == '/moderate':
            stats = self.ui.service.deliver_pending(self.ui)
            if not stats.processed and not stats.errored:
                return '📭 Нет постов для модерации'
            return f"📤 Отправлено на модерацию: {stats.processed}, ошибок: {stats.errored}"
        return HELP_TEXT

    def resolve_comment_target(self, message: dict) -> Optional[int]:
        """
        确定评论对应的帖子

        回复审核消息时使用该消息中的帖子编号，否则使用最近一个等待评论的帖子。
        """
        replied = (message.get('reply_to_message') or {}).get('text') or ''
        match = _POST_REFERENCE.search(replied)
        if match:
            return int(match.group(1))

        waiting = self.ui.service.awaiting_comment()
        return waiting[-1].id if waiting else None

    def handle_comment(self, message: dict, text: str) -> str:
        """处理修订评论"""
        post_id = self.resolve_comment_target(message)
        if post_id is None:
            return 'ℹ️ Нет постов, ожидающих комментария'
        return self.ui.handle_comment(post_id, text)

    def listen(self):
        """持续轮询，直到 stop() 被调用"""
        logger.info("Telegram listener started")
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except TransientCollaboratorError as e:
                logger.warning(f"getUpdates failed: {e.message}")
                self._stop_event.wait(self.retry_delay)
            except Exception as e:
                logger.error(f"Telegram listener error: {e}", exc_info=True)
                self._stop_event.wait(self.retry_delay)
        logger.info("Telegram listener stopped")

    def start(self, threaded: bool = True):
        """
        启动监听

        Args:
            threaded: 是否在后台线程中运行（默认 True）
        """
        if self.is_running:
            if not self._stop_event.is_set():
                logger.warning("Telegram listener is already running")
                return
            # 已请求停止，等待上一次长轮询结束
            self._thread.join()

        self._stop_event.clear()
        if threaded:
            self._thread = threading.Thread(target=self.listen, name='telegram-listener', daemon=True)
            self._thread.start()
        else:
            self.listen()

    def stop(self):
        """停止监听；正在进行的长轮询结束后退出"""
        self._stop_event.set()
