"""
Telegram 机器人测试
Tests for the Telegram bot, publisher and moderation UI
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from medpost.bots import TelegramBot, TelegramModerationUI, TelegramPublisher, format_post
from medpost.exceptions import TransientCollaboratorError
from medpost.models import ModerationAction, Post, PostStatus
from medpost.moderation import ModerationService
from medpost.repository import ContentRepository


def ok_response(result=None):
    response = MagicMock()
    response.status_code = 200
    response.json.return_value = {'ok': True, 'result': result or {'message_id': 77}}
    return response


@pytest.fixture
def bot():
    return TelegramBot('123:abc', proxy='http://proxy:1080', timeout=5)


@pytest.fixture
def post():
    return Post(id=3, specialization='cardiology', content_type='research', score=18,
                content='Body of the post', hashtags=['#медицина', '#cardiology'])


class TestTelegramBot:
    """测试 Bot API 客户端"""

    def test_empty_token(self):
        with pytest.raises(ValueError):
            TelegramBot('  ')

    @patch('medpost.bots.telegram_bot.requests.post')
    def test_send_message(self, mock_post, bot):
        mock_post.return_value = ok_response()

        message_id = bot.send_message('@channel', 'Hello', {'inline_keyboard': []})

        assert message_id == '77'
        args, kwargs = mock_post.call_args
        assert args[0] == 'https://api.telegram.org/bot123:abc/sendMessage'
        assert kwargs['json']['chat_id'] == '@channel'
        assert kwargs['json']['parse_mode'] == 'Markdown'
        assert kwargs['json']['reply_markup'] == {'inline_keyboard': []}
        assert kwargs['proxies'] == {'http': 'http://proxy:1080', 'https': 'http://proxy:1080'}
        assert kwargs['timeout'] == 5

    @patch('medpost.bots.telegram_bot.requests.post')
    def test_http_error(self, mock_post, bot):
        response = MagicMock()
        response.status_code = 429
        response.text = 'Too Many Requests'
        mock_post.return_value = response

        with pytest.raises(TransientCollaboratorError) as exc_info:
            bot.send_message('@channel', 'Hello')

        assert 'HTTP 429' in exc_info.value.message

    @patch('medpost.bots.telegram_bot.requests.post')
    def test_api_error(self, mock_post, bot):
        response = MagicMock()
        response.status_code = 200
        response.json.return_value = {'ok': False, 'description': 'chat not found'}
        mock_post.return_value = response

        with pytest.raises(TransientCollaboratorError) as exc_info:
            bot.send_message('@channel', 'Hello')

        assert 'chat not found' in exc_info.value.message

    @patch('medpost.bots.telegram_bot.requests.post')
    def test_timeout(self, mock_post, bot):
        mock_post.side_effect = requests.exceptions.Timeout()

        with pytest.raises(TransientCollaboratorError):
            bot.send_message('@channel', 'Hello')

    @patch('medpost.bots.telegram_bot.requests.post')
    def test_get_updates_long_poll(self, mock_post, bot):
        """测试长轮询的 HTTP 超时长于服务器等待时间"""
        response = ok_response()
        response.json.return_value = {'ok': True, 'result': [{'update_id': 8}]}
        mock_post.return_value = response

        updates = bot.get_updates(offset=8, timeout=25)

        assert updates == [{'update_id': 8}]
        args, kwargs = mock_post.call_args
        assert args[0].endswith('/getUpdates')
        assert kwargs['json']['offset'] == 8
        assert kwargs['json']['timeout'] == 25
        assert kwargs['json']['allowed_updates'] == ['message', 'callback_query']
        assert kwargs['timeout'] == 30

    @patch('medpost.bots.telegram_bot.requests.post')
    def test_get_updates_without_offset(self, mock_post, bot):
        response = ok_response()
        response.json.return_value = {'ok': True, 'result': []}
        mock_post.return_value = response

        assert bot.get_updates() == []
        assert 'offset' not in mock_post.call_args.kwargs['json']


class TestTelegramPublisher:
    """测试频道发布"""

    def test_format_post(self, post):
        text = format_post(post, {'cardiology': '❤️'})

        assert text == 'Body of the post\n\n❤️ #медицина #cardiology'

    def test_publish_to_specialization_channel(self, post):
        bot = MagicMock()
        bot.send_message.return_value = '501'
        publisher = TelegramPublisher(bot, {'cardiology': '@cardio'})

        assert publisher.publish(post) == '501'
        assert bot.send_message.call_args.args[0] == '@cardio'

    def test_missing_channel(self, post):
        publisher = TelegramPublisher(MagicMock(), {'neurology': '@neuro'})

        with pytest.raises(TransientCollaboratorError):
            publisher.publish(post)


class TestTelegramModerationUI:
    """测试审核界面"""

    @pytest.fixture
    def repo(self):
        repository = ContentRepository(':memory:')
        repository.init_db()
        yield repository
        repository.close()

    @pytest.fixture
    def ui(self, repo):
        return TelegramModerationUI(MagicMock(), '-100', ModerationService(repo))

    def _add(self, repo) -> int:
        return repo.save_post(Post(article_id=1, content='Body. ' * 30))

    @pytest.mark.parametrize('data,expected', [
        ('approve_12', (ModerationAction.APPROVE, 12)),
        ('reject_1', (ModerationAction.REJECT, 1)),
        ('revision_7', (ModerationAction.SEND_TO_REVISION, 7)),
    ])
    def test_parse_callback(self, data, expected):
        assert TelegramModerationUI.parse_callback(data) == expected

    @pytest.mark.parametrize('data', ['', 'approve_', 'publish_3', 'approve_x'])
    def test_parse_callback_invalid(self, data):
        with pytest.raises(ValueError):
            TelegramModerationUI.parse_callback(data)

    def test_send_for_moderation(self, ui, post):
        ui.send_for_moderation(post)

        chat_id, text, keyboard = ui.bot.send_message.call_args.args
        assert chat_id == '-100'
        assert 'Пост #3' in text
        assert keyboard['inline_keyboard'][0][0]['callback_data'] == 'approve_3'
        assert keyboard['inline_keyboard'][1][0]['callback_data'] == 'revision_3'

    def test_approve_callback(self, repo, ui):
        post_id = self._add(repo)

        reply = ui.handle_callback(f'approve_{post_id}', moderator_id='9')

        assert reply.startswith('✅')
        assert repo.get_post(post_id).status is PostStatus.APPROVED

    def test_repeated_callback(self, repo, ui):
        """测试重复点击按钮只生效一次"""
        post_id = self._add(repo)
        ui.handle_callback(f'approve_{post_id}')

        reply = ui.handle_callback(f'reject_{post_id}')

        assert 'уже обработан' in reply
        assert repo.get_post(post_id).status is PostStatus.APPROVED

    def test_revision_then_comment(self, repo, ui):
        post_id = self._add(repo)

        ui.handle_callback(f'revision_{post_id}')
        assert ui.service.needs_comment(post_id) is True

        assert ui.handle_comment(post_id, 'Add references').startswith('✅')
        assert ui.handle_comment(post_id, 'Second comment').startswith('❌')
        assert repo.get_decision(post_id, 1).comment == 'Add references'

    def test_empty_comment(self, repo, ui):
        post_id = self._add(repo)
        ui.handle_callback(f'revision_{post_id}')

        assert 'пустым' in ui.handle_comment(post_id, '')

    def test_unknown_callback(self, ui):
        assert 'Неизвестная' in ui.handle_callback('garbage')

    def test_status_text(self, repo, ui):
        self._add(repo)

        text = ui.status_text()

        assert '- pending: 1' in text
