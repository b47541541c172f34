"""
审核服务
Moderation Service

把审核状态机和仓库组合起来：应用审核决定、附加修订评论、提交修订内容、
按专科分组把待审核帖子逐个推送给审核界面。

所有决定都在持久化状态上做乐观检查，重放同一个决定只会得到
InvalidTransition，不会重复产生副作用。
"""

import logging
from abc import ABC, abstractmethod
from collections import OrderedDict

from medpost.exceptions import InvalidTransition, TransientCollaboratorError, ValidationFailure
from medpost.generation.post_generator import validate_post
from medpost.models import BatchStats, ModerationAction, ModerationDecision, Post, PostStatus
from medpost.moderation.state_machine import RESUBMIT, next_status, resubmit_status
from medpost.processors.text_cleaner import count_words, reading_time
from medpost.utils.pacing import Pacer

logger = logging.getLogger(__name__)


class ModerationUI(ABC):
    """
    审核界面接口
    Moderation UI interface

    把帖子交给人工审核；审核结果通过 ModerationService.decide 异步返回。
    """

    @abstractmethod
    def send_for_moderation(self, post: Post) -> None:
        """
        推送一个待审核帖子

        Raises:
            TransientCollaboratorError: 发送失败
        """


class ModerationService:
    """
    审核服务
    Moderation Service

    Args:
        repository: 内容仓库
        pacer: 推送之间的节奏控制器
        min_post_length: 修订内容的最短长度
        max_post_length: 修订内容的最长长度
    """

    def __init__(self, repository, pacer: Pacer | None = None,
                 min_post_length: int = 100, max_post_length: int = 600):
        self.repository = repository
        self.pacer = pacer or Pacer()
        self.min_post_length = min_post_length
        self.max_post_length = max_post_length

    def _get_post(self, post_id: int, action: str) -> Post:
        post = self.repository.get_post(post_id)
        if post is None:
            raise InvalidTransition(post_id=post_id, current_status=None, action=action,
                                    message=f"Post {post_id} not found")
        return post

    def decide(self, post_id: int, action: ModerationAction, comment: str | None = None,
               moderator_id: str | None = None) -> Post:
        """
        应用审核决定
        Apply a moderation decision

        Args:
            post_id: 帖子ID
            action: 审核动作
            comment: 评论（送修订时可直接附带）
            moderator_id: 审核人标识

        Returns:
            更新后的帖子

        Raises:
            InvalidTransition: 帖子不存在或不处于 pending 状态
        """
        post = self._get_post(post_id, action.value)
        new_status = next_status(post.status, action, post_id)

        decision = ModerationDecision(
            post_id=post_id,
            action=action,
            cycle=post.moderation_cycle,
            comment=comment.strip() if comment and comment.strip() else None,
            moderator_id=moderator_id,
        )
        self.repository.apply_moderation_decision(post_id, decision, post.status, new_status)
        logger.info(
            f"Post {post_id} cycle {post.moderation_cycle}: "
            f"{post.status.value} -> {new_status.value}"
        )

        post.status = new_status
        return post

    def needs_comment(self, post_id: int) -> bool:
        """帖子是否处于修订状态且当前周期还没有评论"""
        post = self.repository.get_post(post_id)
        if post is None or post.status is not PostStatus.REVISION:
            return False
        decision = self.repository.get_decision(post_id, post.moderation_cycle)
        return decision is not None and not decision.comment

    def awaiting_comment(self) -> list[Post]:
        """
        送修订后仍在等待评论的帖子

        Returns:
            帖子列表，按修订决定时间从旧到新
        """
        waiting = []
        for post in self.repository.fetch_posts_in_revision():
            decision = self.repository.get_decision(post.id, post.moderation_cycle)
            if decision is not None and not decision.comment:
                waiting.append((decision.decided_at, post))
        waiting.sort(key=lambda item: item[0])
        return [post for _, post in waiting]

    def attach_revision_comment(self, post_id: int, comment: str) -> None:
        """
        为送修订的帖子附加唯一的一条评论

        Raises:
            ValidationFailure: 评论为空
            InvalidTransition: 帖子不在修订状态，或本周期已有评论
        """
        if not comment or not comment.strip():
            raise ValidationFailure("Revision comment is empty", {'post_id': post_id})

        post = self._get_post(post_id, 'comment')
        if post.status is not PostStatus.REVISION:
            raise InvalidTransition(post_id=post_id, current_status=post.status.value,
                                    action='comment')

        if not self.repository.attach_revision_comment(post_id, post.moderation_cycle,
                                                       comment.strip()):
            raise InvalidTransition(
                post_id=post_id,
                current_status=post.status.value,
                action='comment',
                message=f"Post {post_id} cycle {post.moderation_cycle} already has a revision comment",
            )
        logger.info(f"Revision comment attached to post {post_id}")

    def submit_revision(self, post_id: int, new_content: str) -> Post:
        """
        提交修订后的内容，帖子以新的审核周期回到 pending

        Raises:
            ValidationFailure: 新内容长度不合格
            InvalidTransition: 帖子不在修订状态，或修订评论尚未附加
        """
        post = self._get_post(post_id, RESUBMIT)
        resubmit_status(post.status, post_id)

        decision = self.repository.get_decision(post_id, post.moderation_cycle)
        if decision is None or not decision.comment:
            raise InvalidTransition(
                post_id=post_id,
                current_status=post.status.value,
                action=RESUBMIT,
                message=f"Post {post_id} has no revision comment for cycle {post.moderation_cycle}",
            )

        content = (new_content or '').strip()
        validate_post(content, self.min_post_length, self.max_post_length)

        if not self.repository.apply_revised_content(
            post_id, content, count_words(content), reading_time(content)
        ):
            current = self.repository.get_post(post_id)
            raise InvalidTransition(post_id=post_id,
                                    current_status=current.status.value if current else None,
                                    action=RESUBMIT)

        logger.info(f"Post {post_id} resubmitted for moderation (cycle {post.moderation_cycle + 1})")
        return self.repository.get_post(post_id)

    def pending_queue(self, specialization: str | None = None) -> OrderedDict:
        """
        待审核帖子按专科分组

        Returns:
            {专科: [帖子]}，组内按生成时间从旧到新
        """
        groups: OrderedDict[str, list[Post]] = OrderedDict()
        for post in self.repository.fetch_pending_posts(specialization):
            groups.setdefault(post.specialization, []).append(post)
        return groups

    def deliver_pending(self, ui: ModerationUI, specialization: str | None = None) -> BatchStats:
        """
        逐个推送待审核帖子

        两次推送之间等待 pacer 的间隔；被取消后停止推送。
        """
        stats = BatchStats(stage='moderate')
        first = True

        for group, posts in self.pending_queue(specialization).items():
            logger.info(f"Sending {len(posts)} {group} posts for moderation")
            for post in posts:
                if not first and not self.pacer.pause():
                    logger.info("Moderation delivery cancelled")
                    logger.info(f"Moderation delivery finished - {stats.summary()}")
                    return stats
                first = False
                try:
                    ui.send_for_moderation(post)
                    stats.processed += 1
                except TransientCollaboratorError as e:
                    stats.errored += 1
                    logger.error(f"Could not send post {post.id} for moderation: {e.message}")

        logger.info(f"Moderation delivery finished - {stats.summary()}")
        return stats

    def stats(self) -> dict[str, int]:
        """按状态统计帖子数量"""
        return self.repository.get_moderation_stats()
