"""
发布调度器测试
Tests for the PublishScheduler

测试时段映射、兜底时段、从旧到新的发布顺序、失败重试和取消。
"""

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from medpost.config import get_publishing_config
from medpost.exceptions import FatalConfigurationError, TransientCollaboratorError
from medpost.models import Post, PostStatus
from medpost.pushers import PublishScheduler, Publisher
from medpost.repository import ContentRepository
from medpost.utils import Pacer

MORNING = datetime(2024, 3, 4, 8, 0)
AFTERNOON = datetime(2024, 3, 4, 14, 0)
NIGHT = datetime(2024, 3, 4, 23, 30)


class RecordingPublisher(Publisher):
    """记录发布顺序的发布器，可按帖子ID模拟失败"""

    def __init__(self, failing_ids=()):
        self.published = []
        self.failing_ids = set(failing_ids)

    def publish(self, post: Post) -> str:
        if post.id in self.failing_ids:
            raise TransientCollaboratorError('channel unavailable')
        self.published.append(post.id)
        return f'msg-{post.id}'


@pytest.fixture
def repo():
    repository = ContentRepository(':memory:')
    repository.init_db()
    yield repository
    repository.close()


def make_scheduler(repo, publisher, pacer=None) -> PublishScheduler:
    return PublishScheduler(repo, publisher, get_publishing_config({}), pacer or Pacer())


def add_approved(repo, article_id, content_type='research', generated_at='2024-03-01T08:00:00',
                 status=PostStatus.APPROVED) -> int:
    return repo.save_post(Post(
        article_id=article_id,
        content_type=content_type,
        content='Approved post body. ' * 8,
        generated_at=generated_at,
        status=status,
    ))


class TestTimeBands:
    """测试时段选择"""

    @pytest.mark.parametrize('now,band,types', [
        (MORNING, 'morning', ['research', 'guideline']),
        (AFTERNOON, 'afternoon', ['news']),
        (datetime(2024, 3, 4, 19, 0), 'evening', ['case']),
        (datetime(2024, 3, 4, 12, 0), 'afternoon', ['news']),
    ])
    def test_band_for(self, repo, now, band, types):
        scheduler = make_scheduler(repo, RecordingPublisher())

        assert scheduler.band_for(now).name == band
        assert scheduler.select_for_publish(now) == types

    def test_outside_all_bands_uses_fallback(self, repo):
        """测试不在任何时段内时使用兜底时段"""
        scheduler = make_scheduler(repo, RecordingPublisher())

        assert scheduler.band_for(NIGHT).name == 'morning'
        assert scheduler.band_for(datetime(2024, 3, 4, 3, 0)).name == 'morning'

    def test_no_bands(self, repo):
        with pytest.raises(FatalConfigurationError):
            PublishScheduler(repo, RecordingPublisher(), {'time_bands': []})

    def test_unknown_fallback_band(self, repo):
        config = get_publishing_config({'publishing': {'fallback_band': 'midnight'}})

        with pytest.raises(FatalConfigurationError) as exc_info:
            PublishScheduler(repo, RecordingPublisher(), config)

        assert exc_info.value.key == 'publishing.fallback_band'


class TestRun:
    """测试发布运行"""

    def test_publishes_band_types_oldest_first(self, repo):
        newer = add_approved(repo, 1, generated_at='2024-03-02T08:00:00')
        older = add_approved(repo, 2, content_type='guideline', generated_at='2024-03-01T08:00:00')
        news = add_approved(repo, 3, content_type='news')
        publisher = RecordingPublisher()

        stats = make_scheduler(repo, publisher).run(MORNING)

        assert stats.stage == 'publish'
        assert stats.processed == 2
        assert publisher.published == [older, newer]
        assert repo.get_post(news).status is PostStatus.APPROVED
        published = repo.get_post(older)
        assert published.status is PostStatus.PUBLISHED
        assert published.external_message_ref == f'msg-{older}'
        assert published.published_at is not None

    def test_unapproved_posts_are_not_published(self, repo):
        add_approved(repo, 1, status=PostStatus.PENDING)
        add_approved(repo, 2, status=PostStatus.REJECTED)
        publisher = RecordingPublisher()

        stats = make_scheduler(repo, publisher).run(MORNING)

        assert stats.processed == 0
        assert publisher.published == []

    def test_failure_marks_error_and_retries_next_run(self, repo):
        """测试发布失败：本次标记为error，下一次运行重试"""
        post_id = add_approved(repo, 1)
        failing = RecordingPublisher(failing_ids=[post_id])

        first = make_scheduler(repo, failing).run(MORNING)

        assert first.errored == 1
        failed = repo.get_post(post_id)
        assert failed.status is PostStatus.ERROR
        assert failed.publish_attempts == 1

        publisher = RecordingPublisher()
        second = make_scheduler(repo, publisher).run(MORNING)

        assert second.processed == 1
        assert publisher.published == [post_id]
        retried = repo.get_post(post_id)
        assert retried.status is PostStatus.PUBLISHED
        assert retried.publish_attempts == 2

    def test_failure_does_not_stop_batch(self, repo):
        first_id = add_approved(repo, 1, generated_at='2024-03-01T08:00:00')
        second_id = add_approved(repo, 2, generated_at='2024-03-02T08:00:00')
        publisher = RecordingPublisher(failing_ids=[first_id])

        stats = make_scheduler(repo, publisher).run(MORNING)

        assert stats.errored == 1
        assert stats.processed == 1
        assert publisher.published == [second_id]

    def test_published_post_not_republished(self, repo):
        add_approved(repo, 1)
        make_scheduler(repo, RecordingPublisher()).run(MORNING)
        publisher = RecordingPublisher()

        stats = make_scheduler(repo, publisher).run(MORNING)

        assert stats.processed == 0
        assert publisher.published == []

    def test_pacing_between_sends(self, repo):
        for i in range(3):
            add_approved(repo, i + 1)
        pacer = MagicMock()
        pacer.cancelled = False
        pacer.pause.return_value = True

        make_scheduler(repo, RecordingPublisher(), pacer).run(MORNING)

        assert pacer.pause.call_count == 2

    def test_cancellation_stops_further_dispatches(self, repo):
        """测试取消后不再发送，已发送的保持 published"""
        first_id = add_approved(repo, 1, generated_at='2024-03-01T08:00:00')
        second_id = add_approved(repo, 2, generated_at='2024-03-02T08:00:00')
        pacer = Pacer()
        publisher = RecordingPublisher()
        scheduler = make_scheduler(repo, publisher, pacer)
        original_publish = publisher.publish

        def publish_then_cancel(post):
            reference = original_publish(post)
            pacer.cancel()
            return reference

        publisher.publish = publish_then_cancel

        stats = scheduler.run(MORNING)

        assert stats.processed == 1
        assert repo.get_post(first_id).status is PostStatus.PUBLISHED
        assert repo.get_post(second_id).status is PostStatus.APPROVED

    def test_cancelled_before_start(self, repo):
        add_approved(repo, 1)
        pacer = Pacer()
        pacer.cancel()
        publisher = RecordingPublisher()

        stats = make_scheduler(repo, publisher, pacer).run(MORNING)

        assert stats.processed == 0
        assert publisher.published == []

    def test_status_changed_during_send_not_counted(self, repo):
        """测试发送期间帖子已被其他进程发布时不计为成功"""
        post_id = add_approved(repo, 1)
        publisher = RecordingPublisher()
        original_publish = publisher.publish

        def publish_elsewhere_first(post):
            repo.mark_published(post.id, 'other-run')
            return original_publish(post)

        publisher.publish = publish_elsewhere_first

        stats = make_scheduler(repo, publisher).run(MORNING)

        assert stats.processed == 0
        assert stats.skipped == 1
        assert repo.get_post(post_id).external_message_ref == 'other-run'

    def test_status_changed_before_error_recorded(self, repo):
        post_id = add_approved(repo, 1)
        publisher = RecordingPublisher(failing_ids=[post_id])
        original_publish = publisher.publish

        def publish_elsewhere_then_fail(post):
            repo.mark_published(post.id, 'other-run')
            return original_publish(post)

        publisher.publish = publish_elsewhere_then_fail

        stats = make_scheduler(repo, publisher).run(MORNING)

        assert stats.errored == 0
        assert stats.skipped == 1
        assert repo.get_post(post_id).status is PostStatus.PUBLISHED
