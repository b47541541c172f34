"""
Telegram 机器人模块
Telegram Bot Module

通过 Telegram Bot API 发送消息：
- TelegramBot: sendMessage / answerCallbackQuery / getUpdates 的轻量封装
- TelegramPublisher: 按专科把帖子发布到对应频道
- TelegramModerationUI: 带 批准/拒绝/修订 按钮推送待审核帖子，并把回调路由到审核服务
"""

import logging
from typing import Any, Optional

import requests

from medpost.exceptions import InvalidTransition, TransientCollaboratorError, ValidationFailure
from medpost.models import ModerationAction, Post
from medpost.moderation.moderation_service import ModerationService, ModerationUI
from medpost.pushers.publish_scheduler import Publisher

logger = logging.getLogger(__name__)

CALLBACK_ACTIONS = {
    'approve': ModerationAction.APPROVE,
    'reject': ModerationAction.REJECT,
    'revision': ModerationAction.SEND_TO_REVISION,
}


class TelegramBot:
    """
    Telegram Bot API 客户端
    Telegram Bot API client

    Attributes:
        token: 机器人令牌
        api_base: API地址
        proxy: 代理URL（可选）
        timeout: 请求超时时间（秒）
    """

    def __init__(self, token: str, api_base: str = 'https://api.telegram.org',
                 proxy: Optional[str] = None, timeout: int = 30,
                 parse_mode: Optional[str] = 'Markdown'):
        """
        Raises:
            ValueError: 如果token为空
        """
        if not token or not token.strip():
            raise ValueError("bot token不能为空")

        self.token = token.strip()
        self.api_base = api_base.rstrip('/')
        self.proxy = proxy.strip() if proxy else None
        self.timeout = timeout
        self.parse_mode = parse_mode

        self._proxies = None
        if self.proxy:
            self._proxies = {
                'http': self.proxy,
                'https': self.proxy,
            }

    def _send_request(self, method: str, payload: dict, timeout: Optional[float] = None) -> Any:
        """
        调用 Bot API 方法

        Args:
            method: API 方法名
            payload: 请求参数
            timeout: 本次请求的超时时间，默认使用 self.timeout

        Returns:
            API 返回的 result 字段

        Raises:
            TransientCollaboratorError: HTTP错误、网络错误或 API 返回 ok=false
        """
        url = f"{self.api_base}/bot{self.token}/{method}"
        timeout = timeout or self.timeout
        try:
            response = requests.post(
                url,
                json=payload,
                proxies=self._proxies,
                timeout=timeout,
            )

            if response.status_code != 200:
                raise TransientCollaboratorError(
                    f"Telegram {method} failed: HTTP {response.status_code}",
                    {'response': response.text[:200]},
                )

            result = response.json()
            if not result.get('ok'):
                raise TransientCollaboratorError(
                    f"Telegram {method} error: {result.get('description', 'unknown error')}"
                )
            return result.get('result')

        except requests.exceptions.Timeout as e:
            raise TransientCollaboratorError(f"Telegram {method} timed out after {timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise TransientCollaboratorError(f"Telegram {method} request error: {e}") from e
        except ValueError as e:
            raise TransientCollaboratorError(f"Telegram {method} response parse error: {e}") from e

    def send_message(self, chat_id: str, text: str,
                     reply_markup: Optional[dict] = None) -> str:
        """
        发送文本消息

        Returns:
            消息ID
        """
        payload: dict[str, Any] = {
            'chat_id': chat_id,
            'text': text,
            'disable_web_page_preview': True,
        }
        if self.parse_mode:
            payload['parse_mode'] = self.parse_mode
        if reply_markup:
            payload['reply_markup'] = reply_markup

        result = self._send_request('sendMessage', payload) or {}
        return str(result.get('message_id', ''))

    def answer_callback_query(self, callback_query_id: str, text: str) -> None:
        """回应按钮回调"""
        self._send_request('answerCallbackQuery', {
            'callback_query_id': callback_query_id,
            'text': text[:200],
        })

    def get_updates(self, offset: Optional[int] = None, timeout: int = 30) -> list[dict]:
        """
        长轮询获取更新

        Args:
            offset: 第一个未确认更新的ID，之前的更新由服务器视为已确认
            timeout: 长轮询等待时间（秒）

        Returns:
            更新列表
        """
        payload: dict[str, Any] = {
            'timeout': timeout,
            'allowed_updates': ['message', 'callback_query'],
        }
        if offset is not None:
            payload['offset'] = offset
        # HTTP 超时必须长于服务器端的长轮询等待
        return self._send_request('getUpdates', payload, timeout=timeout + self.timeout) or []


def format_post(post: Post, specialization_emojis: dict[str, str] | None = None) -> str:
    """帖子正文加上专科表情和话题标签"""
    emoji = (specialization_emojis or {}).get(post.specialization, '🏥')
    if not post.hashtags:
        return post.content
    return f"{post.content}\n\n{emoji} {' '.join(post.hashtags)}"


class TelegramPublisher(Publisher):
    """
    Telegram 频道发布器
    Telegram channel publisher

    Args:
        bot: TelegramBot
        channels: 专科 -> 频道ID
        specialization_emojis: 专科 -> 表情
    """

    def __init__(self, bot: TelegramBot, channels: dict[str, str],
                 specialization_emojis: dict[str, str] | None = None):
        self.bot = bot
        self.channels = channels or {}
        self.specialization_emojis = specialization_emojis or {}

    def publish(self, post: Post) -> str:
        channel = self.channels.get(post.specialization)
        if not channel:
            raise TransientCollaboratorError(
                f"No channel configured for specialization '{post.specialization}'",
                {'post_id': post.id},
            )
        return self.bot.send_message(channel, format_post(post, self.specialization_emojis))


class TelegramModerationUI(ModerationUI):
    """
    Telegram 审核界面
    Telegram moderation UI

    审核状态只保存在仓库里；等待修订评论的帖子由审核服务根据持久化状态判断。
    """

    def __init__(self, bot: TelegramBot, chat_id: str, service: ModerationService,
                 specialization_emojis: dict[str, str] | None = None):
        self.bot = bot
        self.chat_id = chat_id
        self.service = service
        self.specialization_emojis = specialization_emojis or {}

    @staticmethod
    def build_keyboard(post_id: int) -> dict:
        """批准 / 拒绝 / 修订 按钮"""
        return {
            'inline_keyboard': [
                [
                    {'text': '✅ Да', 'callback_data': f"approve_{post_id}"},
                    {'text': '❌ Точно нет', 'callback_data': f"reject_{post_id}"},
                ],
                [
                    {'text': '🔧 На доработку', 'callback_data': f"revision_{post_id}"},
                ],
            ]
        }

    def render(self, post: Post) -> str:
        return (
            f"📝 Пост #{post.id} ({post.specialization}, {post.content_type}, "
            f"скоринг {post.score}/25)\n\n"
            f"{format_post(post, self.specialization_emojis)}"
        )

    def send_for_moderation(self, post: Post) -> None:
        self.bot.send_message(self.chat_id, self.render(post), self.build_keyboard(post.id))

    @staticmethod
    def parse_callback(data: str) -> tuple[ModerationAction, int]:
        """
        解析 callback_data

        Examples:
            >>> TelegramModerationUI.parse_callback('approve_12')
            (<ModerationAction.APPROVE: 'approve'>, 12)

        Raises:
            ValueError: 格式不正确
        """
        action_name, _, post_id = (data or '').partition('_')
        if action_name not in CALLBACK_ACTIONS or not post_id.isdigit():
            raise ValueError(f"Unknown callback data: {data!r}")
        return CALLBACK_ACTIONS[action_name], int(post_id)

    def handle_callback(self, data: str, moderator_id: str | None = None) -> str:
        """
        处理审核按钮回调

        Returns:
            回复给审核人的文本
        """
        try:
            action, post_id = self.parse_callback(data)
        except ValueError as e:
            logger.warning(str(e))
            return '❌ Неизвестная команда'

        try:
            self.service.decide(post_id, action, moderator_id=moderator_id)
        except InvalidTransition as e:
            logger.info(e.message)
            return '❌ Пост уже обработан или не найден'

        if action is ModerationAction.APPROVE:
            return '✅ Пост одобрен! Он будет опубликован по расписанию.'
        if action is ModerationAction.REJECT:
            return '❌ Пост отклонен.'
        return '📝 Укажите, что именно нужно доработать, ответным сообщением.'

    def handle_comment(self, post_id: int, text: str) -> str:
        """处理审核人的修订评论"""
        try:
            self.service.attach_revision_comment(post_id, text)
        except ValidationFailure:
            return '❌ Комментарий не может быть пустым'
        except InvalidTransition as e:
            logger.info(e.message)
            return '❌ Комментарий для этого поста уже сохранен или пост не на доработке'
        return '✅ Комментарий для доработки сохранен!'

    def status_text(self) -> str:
        """审核队列状态"""
        stats = self.service.stats()
        lines = ['📊 Статус очереди модерации:']
        lines.extend(f"- {status}: {count}" for status, count in stats.items())
        return '\n'.join(lines)
