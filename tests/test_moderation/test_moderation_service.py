"""
审核服务测试
Tests for the ModerationService

测试审核决定、修订评论、修订内容重新提交以及待审核帖子的推送。
"""

from unittest.mock import MagicMock

import pytest

from medpost.exceptions import InvalidTransition, TransientCollaboratorError, ValidationFailure
from medpost.models import ModerationAction, Post, PostStatus
from medpost.moderation import ModerationService
from medpost.repository import ContentRepository
from medpost.utils import Pacer

BODY = 'Updated post body. ' * 10


@pytest.fixture
def repo():
    repository = ContentRepository(':memory:')
    repository.init_db()
    yield repository
    repository.close()


@pytest.fixture
def service(repo):
    return ModerationService(repo)


def add_post(repo, article_id=1, specialization='cardiology', generated_at='2024-03-01T08:00:00',
             **kwargs) -> int:
    return repo.save_post(Post(
        article_id=article_id,
        specialization=specialization,
        title=f'Post {article_id}',
        content=BODY,
        generated_at=generated_at,
        **kwargs,
    ))


class TestDecide:
    """测试审核决定"""

    def test_approve(self, repo, service):
        post_id = add_post(repo)

        post = service.decide(post_id, ModerationAction.APPROVE, moderator_id='42')

        assert post.status is PostStatus.APPROVED
        assert repo.get_post(post_id).status is PostStatus.APPROVED
        decision = repo.get_decision(post_id, 1)
        assert decision.action is ModerationAction.APPROVE
        assert decision.moderator_id == '42'

    def test_double_approve_is_rejected(self, repo, service):
        """测试重复批准：第二次抛出异常且不产生新的决定"""
        post_id = add_post(repo)
        service.decide(post_id, ModerationAction.APPROVE)

        with pytest.raises(InvalidTransition) as exc_info:
            service.decide(post_id, ModerationAction.APPROVE)

        assert exc_info.value.current_status == 'approved'
        assert len(repo.get_decisions(post_id)) == 1
        assert repo.get_post(post_id).status is PostStatus.APPROVED

    def test_reject_is_terminal(self, repo, service):
        post_id = add_post(repo)
        service.decide(post_id, ModerationAction.REJECT)

        with pytest.raises(InvalidTransition):
            service.decide(post_id, ModerationAction.SEND_TO_REVISION)

    def test_unknown_post(self, service):
        with pytest.raises(InvalidTransition) as exc_info:
            service.decide(999, ModerationAction.APPROVE)

        assert exc_info.value.post_id == 999

    def test_stale_read_loses_race(self, repo):
        """测试并发决定：持久化状态已改变时拒绝"""
        post_id = add_post(repo)
        stale = repo.get_post(post_id)
        repo_view = MagicMock(wraps=repo)
        repo_view.get_post.return_value = stale
        ModerationService(repo).decide(post_id, ModerationAction.REJECT)

        with pytest.raises(InvalidTransition):
            ModerationService(repo_view).decide(post_id, ModerationAction.APPROVE)

        assert repo.get_post(post_id).status is PostStatus.REJECTED
        assert len(repo.get_decisions(post_id)) == 1


class TestRevisionComment:
    """测试修订评论"""

    def test_comment_after_revision(self, repo, service):
        post_id = add_post(repo)
        service.decide(post_id, ModerationAction.SEND_TO_REVISION)

        assert service.needs_comment(post_id) is True
        service.attach_revision_comment(post_id, '  Add the trial size  ')

        assert service.needs_comment(post_id) is False
        assert repo.get_decision(post_id, 1).comment == 'Add the trial size'

    def test_only_one_comment_per_cycle(self, repo, service):
        post_id = add_post(repo)
        service.decide(post_id, ModerationAction.SEND_TO_REVISION, comment='First')

        with pytest.raises(InvalidTransition):
            service.attach_revision_comment(post_id, 'Second')

        assert repo.get_decision(post_id, 1).comment == 'First'

    def test_empty_comment(self, repo, service):
        post_id = add_post(repo)
        service.decide(post_id, ModerationAction.SEND_TO_REVISION)

        with pytest.raises(ValidationFailure):
            service.attach_revision_comment(post_id, '   ')

    def test_comment_on_pending_post(self, repo, service):
        post_id = add_post(repo)

        with pytest.raises(InvalidTransition):
            service.attach_revision_comment(post_id, 'Too early')

        assert service.needs_comment(post_id) is False

    def test_awaiting_comment_in_decision_order(self, repo, service):
        """测试等待评论的帖子按送修订的先后排序，已有评论的不在其中"""
        older = add_post(repo, 1)
        newer = add_post(repo, 2)
        commented = add_post(repo, 3)
        service.decide(older, ModerationAction.SEND_TO_REVISION)
        service.decide(newer, ModerationAction.SEND_TO_REVISION)
        service.decide(commented, ModerationAction.SEND_TO_REVISION, comment='Done')

        assert [post.id for post in service.awaiting_comment()] == [older, newer]


class TestSubmitRevision:
    """测试提交修订内容"""

    def _in_revision(self, repo, service, comment='Shorten the summary') -> int:
        post_id = add_post(repo)
        service.decide(post_id, ModerationAction.SEND_TO_REVISION, comment=comment)
        return post_id

    def test_resubmit_starts_new_cycle(self, repo, service):
        post_id = self._in_revision(repo, service)
        revised = 'Revised content of the post. ' * 5

        post = service.submit_revision(post_id, revised)

        assert post.status is PostStatus.PENDING
        assert post.moderation_cycle == 2
        assert post.content == revised.strip()
        # 旧周期的决定保留
        assert repo.get_decision(post_id, 1).action is ModerationAction.SEND_TO_REVISION

    def test_new_cycle_accepts_new_decision(self, repo, service):
        post_id = self._in_revision(repo, service)
        service.submit_revision(post_id, 'Revised content of the post. ' * 5)

        service.decide(post_id, ModerationAction.APPROVE)

        assert [d.cycle for d in repo.get_decisions(post_id)] == [1, 2]
        assert repo.get_post(post_id).status is PostStatus.APPROVED

    def test_resubmit_without_comment(self, repo, service):
        post_id = add_post(repo)
        service.decide(post_id, ModerationAction.SEND_TO_REVISION)

        with pytest.raises(InvalidTransition):
            service.submit_revision(post_id, 'Revised content of the post. ' * 5)

    def test_revised_content_must_pass_length_gate(self, repo, service):
        post_id = self._in_revision(repo, service)

        with pytest.raises(ValidationFailure):
            service.submit_revision(post_id, 'Too short')

        assert repo.get_post(post_id).status is PostStatus.REVISION

    def test_resubmit_outside_revision(self, repo, service):
        post_id = add_post(repo)

        with pytest.raises(InvalidTransition):
            service.submit_revision(post_id, 'Revised content of the post. ' * 5)


class TestDeliverPending:
    """测试待审核帖子推送"""

    def test_grouped_by_specialization_oldest_first(self, repo, service):
        add_post(repo, 1, 'neurology', '2024-03-01T10:00:00')
        add_post(repo, 2, 'cardiology', '2024-03-01T09:00:00')
        add_post(repo, 3, 'cardiology', '2024-03-01T08:00:00')

        queue = service.pending_queue()

        assert list(queue) == ['cardiology', 'neurology']
        assert [p.article_id for p in queue['cardiology']] == [3, 2]

    def test_pending_queue_filter(self, repo, service):
        add_post(repo, 1, 'neurology')
        add_post(repo, 2, 'cardiology')

        assert list(service.pending_queue('neurology')) == ['neurology']

    def test_deliver_all(self, repo):
        for i in range(3):
            add_post(repo, i + 1)
        ui = MagicMock()
        pacer = MagicMock()
        pacer.pause.return_value = True

        stats = ModerationService(repo, pacer).deliver_pending(ui)

        assert stats.stage == 'moderate'
        assert stats.processed == 3
        assert ui.send_for_moderation.call_count == 3
        # 第一个帖子之前不等待
        assert pacer.pause.call_count == 2

    def test_cancelled_delivery_stops(self, repo):
        for i in range(3):
            add_post(repo, i + 1)
        ui = MagicMock()
        pacer = Pacer()
        pacer.cancel()

        stats = ModerationService(repo, pacer).deliver_pending(ui)

        assert stats.processed == 1
        assert ui.send_for_moderation.call_count == 1

    def test_send_failure_counts_errored(self, repo):
        add_post(repo, 1)
        add_post(repo, 2)
        ui = MagicMock()
        ui.send_for_moderation.side_effect = [TransientCollaboratorError('timeout'), None]

        stats = ModerationService(repo).deliver_pending(ui)

        assert stats.errored == 1
        assert stats.processed == 1

    def test_stats(self, repo, service):
        approved = add_post(repo, 1)
        add_post(repo, 2)
        service.decide(approved, ModerationAction.APPROVE)

        stats = service.stats()

        assert stats['approved'] == 1
        assert stats['pending'] == 1
        assert stats['published'] == 0
