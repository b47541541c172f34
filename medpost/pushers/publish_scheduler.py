"""
PublishScheduler - 发布调度器
PublishScheduler - Publish Scheduler

把当前时间映射到一个时段，每个时段预先授权若干内容类型；
取出这些类型中已批准、尚未发布的帖子，按生成时间从旧到新逐个发布。

Maps wall-clock time to a time band, fetches approved posts of the band's
content types and dispatches them oldest-first with pacing between sends.

每个帖子在一次运行中只发布一次：成功转为 published，失败转为 error，
error 的帖子只在下一次调度运行时重试。
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from medpost.exceptions import FatalConfigurationError, InvalidTransition, TransientCollaboratorError
from medpost.models import BatchStats, Post
from medpost.moderation.state_machine import publish_status
from medpost.utils.pacing import Pacer

logger = logging.getLogger(__name__)


class Publisher(ABC):
    """
    发布器接口
    Publisher interface
    """

    @abstractmethod
    def publish(self, post: Post) -> str:
        """
        发布帖子

        Returns:
            外部消息引用

        Raises:
            TransientCollaboratorError: 发送失败
        """


@dataclass
class TimeBand:
    """
    发布时段
    Time band

    Attributes:
        name: 时段名称
        start_hour: 开始小时（含）
        end_hour: 结束小时（不含）
        content_types: 该时段允许发布的内容类型
    """
    name: str
    start_hour: int
    end_hour: int
    content_types: list[str] = field(default_factory=list)

    def contains(self, hour: int) -> bool:
        return self.start_hour <= hour < self.end_hour


class PublishScheduler:
    """
    发布调度器
    Publish Scheduler

    Args:
        repository: 内容仓库
        publisher: 发布器
        config: publishing 配置段
        pacer: 发送节奏控制器（默认按配置间隔）
    """

    def __init__(self, repository, publisher: Publisher, config: dict,
                 pacer: Pacer | None = None):
        self.repository = repository
        self.publisher = publisher
        self.pacer = pacer or Pacer(config.get('pause_seconds', 30))

        bands = config.get('time_bands') or []
        if not bands:
            raise FatalConfigurationError("at least one time band is required",
                                          key='publishing.time_bands')
        self.bands = [
            TimeBand(
                name=band['name'],
                start_hour=band['start_hour'],
                end_hour=band['end_hour'],
                content_types=list(band.get('content_types', [])),
            )
            for band in bands
        ]

        fallback_name = config.get('fallback_band', self.bands[0].name)
        fallback = [band for band in self.bands if band.name == fallback_name]
        if not fallback:
            raise FatalConfigurationError(f"unknown fallback band '{fallback_name}'",
                                          key='publishing.fallback_band')
        self.fallback_band = fallback[0]

    def band_for(self, now: datetime) -> TimeBand:
        """当前时间所在的时段；不在任何时段内时使用兜底时段"""
        for band in self.bands:
            if band.contains(now.hour):
                return band
        return self.fallback_band

    def select_for_publish(self, now: datetime) -> list[str]:
        """
        当前时间允许发布的内容类型

        Examples:
            >>> scheduler.select_for_publish(datetime(2024, 1, 1, 8, 0))
            ['research', 'guideline']
        """
        return list(self.band_for(now).content_types)

    def get_approved_posts(self, content_types: list[str]) -> list[Post]:
        """已批准（或上次失败）且属于给定类型的帖子，按生成时间从旧到新"""
        return self.repository.fetch_approved_posts(content_types)

    def dispatch(self, post: Post) -> bool:
        """
        发布单个帖子并记录结果

        Returns:
            是否发布成功

        Raises:
            InvalidTransition: 发送期间帖子状态已被改变，结果未记录
        """
        try:
            reference = self.publisher.publish(post)
        except TransientCollaboratorError as e:
            logger.error(f"Post {post.id} publish failed: {e.message}")
            if not self.repository.mark_publish_error(post.id, e.message):
                raise InvalidTransition(post_id=post.id, current_status=None, action='publish',
                                        message=f"Post {post.id} changed status, publish error not recorded")
            return False

        if not self.repository.mark_published(post.id, str(reference)):
            raise InvalidTransition(
                post_id=post.id, current_status=None, action='publish',
                message=f"Post {post.id} changed status, message {reference} not recorded as published",
            )
        logger.info(f"Post {post.id} published ({reference})")
        return True

    def run(self, now: datetime | None = None) -> BatchStats:
        """
        执行一次发布

        Args:
            now: 评估时段用的时间，默认当前时间

        Returns:
            BatchStats
        """
        now = now or datetime.now()
        stats = BatchStats(stage='publish')
        band = self.band_for(now)
        posts = self.get_approved_posts(band.content_types)
        logger.info(
            f"Publish band '{band.name}' ({', '.join(band.content_types)}): {len(posts)} posts"
        )

        for index, post in enumerate(posts):
            if self.pacer.cancelled or (index > 0 and not self.pacer.pause()):
                logger.info("Publishing cancelled")
                break
            try:
                publish_status(post.status, True, post.id)
            except InvalidTransition as e:
                stats.skipped += 1
                logger.warning(e.message)
                continue

            try:
                if self.dispatch(post):
                    stats.processed += 1
                else:
                    stats.errored += 1
            except InvalidTransition as e:
                stats.skipped += 1
                logger.warning(e.message)
            except TransientCollaboratorError as e:
                stats.errored += 1
                logger.error(f"Could not record publish result for post {post.id}: {e.message}")

        logger.info(f"Publishing finished - {stats.summary()}")
        return stats
