"""
审核状态机测试
Tests for the moderation state machine
"""

import pytest
from hypothesis import given, strategies as st

from medpost.exceptions import InvalidTransition
from medpost.models import ModerationAction, PostStatus
from medpost.moderation import allowed_actions, next_status, publish_status, resubmit_status


class TestNextStatus:
    """测试审核决定的状态转换"""

    @pytest.mark.parametrize('action,expected', [
        (ModerationAction.APPROVE, PostStatus.APPROVED),
        (ModerationAction.REJECT, PostStatus.REJECTED),
        (ModerationAction.SEND_TO_REVISION, PostStatus.REVISION),
    ])
    def test_pending_transitions(self, action, expected):
        assert next_status(PostStatus.PENDING, action) is expected

    def test_decision_on_approved_post_rejected(self):
        with pytest.raises(InvalidTransition) as exc_info:
            next_status(PostStatus.APPROVED, ModerationAction.APPROVE, post_id=5)

        assert exc_info.value.post_id == 5
        assert exc_info.value.current_status == 'approved'
        assert exc_info.value.action == 'approve'

    @given(st.sampled_from([s for s in PostStatus if s is not PostStatus.PENDING]),
           st.sampled_from(list(ModerationAction)))
    def test_only_pending_accepts_decisions(self, status, action):
        """属性：非 pending 状态不接受任何审核决定"""
        with pytest.raises(InvalidTransition):
            next_status(status, action)


class TestOtherTransitions:
    """测试修订重新提交和发布转换"""

    def test_resubmit_from_revision(self):
        assert resubmit_status(PostStatus.REVISION) is PostStatus.PENDING

    @pytest.mark.parametrize('status', [PostStatus.PENDING, PostStatus.APPROVED, PostStatus.PUBLISHED])
    def test_resubmit_outside_revision(self, status):
        with pytest.raises(InvalidTransition):
            resubmit_status(status)

    def test_publish_outcomes(self):
        assert publish_status(PostStatus.APPROVED, True) is PostStatus.PUBLISHED
        assert publish_status(PostStatus.APPROVED, False) is PostStatus.ERROR
        assert publish_status(PostStatus.ERROR, True) is PostStatus.PUBLISHED

    def test_publish_requires_approval(self):
        with pytest.raises(InvalidTransition):
            publish_status(PostStatus.PENDING, True)

    def test_allowed_actions(self):
        assert set(allowed_actions(PostStatus.PENDING)) == set(ModerationAction)
        assert allowed_actions(PostStatus.PUBLISHED) == []
