"""
调度器测试
Tests for the Scheduler and the end-to-end flow

端到端：采集 -> 处理 -> 评分 -> 生成 -> 审核 -> 发布。
"""

from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest
import requests
import schedule

from medpost.config import apply_defaults
from medpost.exceptions import FatalConfigurationError
from medpost.fetchers import BaseFetcher, FetchResult
from medpost.models import Document, ModerationAction, Post, PostStatus, QualityTier
from medpost.pushers import Publisher
from medpost.repository import ContentRepository
from medpost.scheduler import PIPELINE_STAGES, Scheduler

MORNING = datetime(2024, 3, 4, 8, 0)

E2E_CONTENT = (
    '<p>This randomized controlled trial study showed that the new insulin regimen '
    'lowered HbA1c in diabetes. Methods and statistical analysis used a sample size of 600. '
    'It is recommended that clinicians should adjust the dose specifically for each patient. '
    'The regimen is simple and affordable for clinical practice.</p>'
)


class StaticFetcher(BaseFetcher):
    def __init__(self, documents):
        self.documents = documents

    def fetch(self) -> FetchResult:
        return FetchResult(items=list(self.documents), source_name='static', source_type='rss')

    def is_enabled(self) -> bool:
        return True


class RecordingPublisher(Publisher):
    def __init__(self):
        self.published = []

    def publish(self, post: Post) -> str:
        self.published.append(post)
        return f'msg-{post.id}'


@pytest.fixture
def repo():
    repository = ContentRepository(':memory:')
    yield repository
    repository.close()


@pytest.fixture(autouse=True)
def clear_jobs():
    yield
    schedule.clear()


def make_config(tmp_path, **overrides) -> dict:
    config = {'moderation': {'revision_dir': str(tmp_path / 'revisions'), 'pause_seconds': 0},
              'publishing': {'pause_seconds': 0}}
    config.update(overrides)
    return apply_defaults(config)


class TestSchedulerSetup:
    """测试调度器组装"""

    def test_without_telegram_stages_are_skipped(self, repo, tmp_path):
        """测试未配置 Telegram 时发布和审核推送被跳过"""
        scheduler = Scheduler(make_config(tmp_path), repository=repo, fetchers=[])

        assert scheduler.publisher is None
        assert scheduler.moderation_ui is None
        assert scheduler.listener is None
        [publish] = scheduler.run_stage('publish')
        [moderate] = scheduler.run_stage('moderate')
        assert publish.stage == 'publish'
        assert publish.processed == 0
        assert moderate.stage == 'moderate'
        [listen] = scheduler.run_stage('listen')
        assert listen.stage == 'listen'
        assert listen.processed == 0

    def test_telegram_components_built_from_config(self, repo, tmp_path):
        config = make_config(tmp_path, telegram={
            'bot_token': '123:abc', 'moderator_chat_id': -100, 'channels': {'cardiology': '@c'},
        })

        scheduler = Scheduler(config, repository=repo, fetchers=[])

        assert scheduler.publisher.channels == {'cardiology': '@c'}
        assert scheduler.moderation_ui.chat_id == '-100'
        assert scheduler.publishing is not None
        assert scheduler.listener.poll_timeout == 30
        assert scheduler.listener.ui is scheduler.moderation_ui

    def test_default_repository_created_from_database_path(self, tmp_path):
        db_path = tmp_path / 'data' / 'medpost.db'
        scheduler = Scheduler(make_config(tmp_path, database={'path': str(db_path)}), fetchers=[])

        try:
            assert db_path.parent.exists()
            assert scheduler.status()['pending'] == 0
        finally:
            scheduler.close()

    def test_invalid_component_config(self, repo, tmp_path):
        config = make_config(tmp_path, deduplication={'title_similarity_threshold': 2})

        with pytest.raises(FatalConfigurationError):
            Scheduler(config, repository=repo, fetchers=[])


class TestRunStage:
    """测试阶段执行"""

    def test_unknown_stage(self, repo, tmp_path):
        scheduler = Scheduler(make_config(tmp_path), repository=repo, fetchers=[])

        with pytest.raises(ValueError):
            scheduler.run_stage('deploy')

    def test_pipeline_runs_four_stages(self, repo, tmp_path):
        scheduler = Scheduler(make_config(tmp_path), repository=repo, fetchers=[])

        results = scheduler.run_stage('pipeline')

        assert tuple(stats.stage for stats in results) == PIPELINE_STAGES

    def test_revision_stages(self, repo, tmp_path):
        scheduler = Scheduler(make_config(tmp_path), repository=repo, fetchers=[])

        [created] = scheduler.run_stage('revision-create')
        [processed] = scheduler.run_stage('revision-process')

        assert created.stage == 'revision-create'
        assert processed.stage == 'revision-process'
        assert (tmp_path / 'revisions').exists()


class TestJobs:
    """测试定时任务注册"""

    def test_register_jobs_from_config(self, repo, tmp_path):
        scheduler = Scheduler(make_config(tmp_path), repository=repo, fetchers=[])

        jobs = scheduler.register_jobs()

        # pipeline + moderate + 3 publish times + 2 revision days * 2 jobs
        assert len(jobs) == 9
        assert len(schedule.get_jobs()) == 9

    def test_register_jobs_is_repeatable(self, repo, tmp_path):
        scheduler = Scheduler(make_config(tmp_path), repository=repo, fetchers=[])
        scheduler.register_jobs()

        scheduler.register_jobs()

        assert len(schedule.get_jobs()) == 9

    def test_unknown_weekday(self, repo, tmp_path):
        config = make_config(tmp_path, schedule={'moderation_day': 'funday'})
        scheduler = Scheduler(config, repository=repo, fetchers=[])

        with pytest.raises(FatalConfigurationError):
            scheduler.register_jobs()

    def test_job_failure_is_logged_not_raised(self, repo, tmp_path):
        scheduler = Scheduler(make_config(tmp_path), repository=repo, fetchers=[])
        scheduler.processor = MagicMock()
        scheduler.processor.run.side_effect = RuntimeError('boom')

        scheduler._job('process')()

    def test_stop_cancels_dispatch(self, repo, tmp_path):
        scheduler = Scheduler(make_config(tmp_path), repository=repo, fetchers=[],
                              publisher=RecordingPublisher())
        scheduler.register_jobs()

        scheduler.stop()

        assert scheduler.moderation.pacer.cancelled is True
        assert scheduler.publishing.pacer.cancelled is True
        assert schedule.get_jobs() == []

    @patch('medpost.scheduler.schedule.run_pending', side_effect=KeyboardInterrupt)
    def test_restart_after_stop_publishes_again(self, mock_run_pending, repo, tmp_path):
        """测试 stop 之后重新 start 时发布不会被之前的取消挡住"""
        publisher = RecordingPublisher()
        scheduler = Scheduler(make_config(tmp_path), repository=repo, fetchers=[], publisher=publisher)
        post_id = repo.save_post(Post(article_id=1, content_type='research',
                                      content='Approved post body. ' * 8, status=PostStatus.APPROVED))
        scheduler.stop()

        scheduler.start(poll_seconds=0)

        assert scheduler.moderation.pacer.cancelled is False
        assert scheduler.publishing.run(MORNING).processed == 1
        assert [p.id for p in publisher.published] == [post_id]


class TestTelegramListening:
    """测试审核人操作经由 getUpdates 进入审核流程"""

    @staticmethod
    def telegram_config(tmp_path) -> dict:
        return make_config(tmp_path, telegram={
            'bot_token': '123:abc', 'moderator_chat_id': -100, 'poll_timeout': 0,
            'channels': {'therapy': '@therapy'},
        })

    @staticmethod
    def api(updates):
        def post(url, json=None, **kwargs):
            response = MagicMock()
            response.status_code = 200
            if url.endswith('/getUpdates'):
                batch, updates[:] = list(updates), []
                response.json.return_value = {'ok': True, 'result': batch}
            else:
                response.json.return_value = {'ok': True, 'result': {'message_id': 1}}
            return response
        return post

    def test_button_press_reaches_moderation(self, repo, tmp_path):
        scheduler = Scheduler(self.telegram_config(tmp_path), repository=repo, fetchers=[])
        post_id = repo.save_post(Post(article_id=1, content='Pending post body. ' * 8))
        updates = [{
            'update_id': 40,
            'callback_query': {'id': 'cb', 'from': {'id': 7}, 'data': f'approve_{post_id}',
                               'message': {'chat': {'id': -100}}},
        }]

        with patch('medpost.bots.telegram_bot.requests.post', side_effect=self.api(updates)) as mock_post:
            [listen] = scheduler.run_stage('listen')

        assert listen.processed == 1
        assert repo.get_post(post_id).status is PostStatus.APPROVED
        assert scheduler.listener.offset == 41
        methods = [c.args[0].rsplit('/', 1)[-1] for c in mock_post.call_args_list]
        assert methods == ['getUpdates', 'answerCallbackQuery', 'sendMessage']

    def test_unreachable_api_counts_errored(self, repo, tmp_path):
        scheduler = Scheduler(self.telegram_config(tmp_path), repository=repo, fetchers=[])

        with patch('medpost.bots.telegram_bot.requests.post',
                   side_effect=requests.exceptions.ConnectionError('refused')):
            [listen] = scheduler.run_stage('listen')

        assert listen.errored == 1
        assert scheduler.listener.offset is None

    def test_stop_stops_listener(self, repo, tmp_path):
        scheduler = Scheduler(self.telegram_config(tmp_path), repository=repo, fetchers=[])

        scheduler.stop()

        assert scheduler.listener._stop_event.is_set()


class TestEndToEnd:
    """端到端流程测试"""

    def test_document_to_published_post(self, repo, tmp_path):
        document = Document(
            url='https://nejm.org/e2e',
            title='Insulin regimen lowers HbA1c in type 2 diabetes',
            content=E2E_CONTENT,
            source_name='NEJM',
            published_date=datetime.now().isoformat(),
        )
        publisher = RecordingPublisher()
        moderation_ui = MagicMock()
        scheduler = Scheduler(make_config(tmp_path), repository=repo,
                              fetchers=[StaticFetcher([document])],
                              publisher=publisher, moderation_ui=moderation_ui)

        ingest, process, score, generate = scheduler.run_stage('pipeline')

        assert (ingest.processed, process.processed, score.processed, generate.processed) == (1, 1, 1, 1)
        [post] = repo.fetch_pending_posts()
        assert post.specialization == 'endocrinology'
        assert post.content_type == 'research'
        assert 100 <= len(post.content) <= 600
        article_score = repo.get_score(post.article_id)
        assert article_score.total == 20
        assert article_score.quality_tier is QualityTier.A
        assert post.score == 20

        [moderate] = scheduler.run_stage('moderate')
        assert moderate.processed == 1
        moderation_ui.send_for_moderation.assert_called_once()

        scheduler.moderation.decide(post.id, ModerationAction.APPROVE)
        stats = scheduler.publishing.run(MORNING)

        assert stats.processed == 1
        assert [p.id for p in publisher.published] == [post.id]
        published = repo.get_post(post.id)
        assert published.status is PostStatus.PUBLISHED
        assert published.external_message_ref == f'msg-{post.id}'

    def test_rerunning_pipeline_adds_nothing(self, repo, tmp_path):
        document = Document(url='https://nejm.org/e2e', title='Insulin regimen in diabetes',
                            content=E2E_CONTENT, source_name='NEJM')
        scheduler = Scheduler(make_config(tmp_path), repository=repo,
                              fetchers=[StaticFetcher([document])])
        scheduler.run_stage('pipeline')

        ingest, process, score, generate = scheduler.run_stage('pipeline')

        assert ingest.duplicates == 1
        assert (process.processed, score.processed, generate.processed) == (0, 0, 0)
