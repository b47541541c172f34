"""
调度器模块
Scheduler Module

根据配置构建所有组件，并按节奏触发各个批处理阶段。
Builds every component from configuration and triggers each batch stage
on its cadence.

阶段之间不直接调用，只通过仓库中的持久化状态衔接：
- ingest / process / score / generate: 每 N 小时执行一次完整流水线
- moderate: 每周把待审核帖子推送给审核人
- publish: 每天在各发布时段执行
- revision-create / revision-process: 每周两次处理修订工作表
- listen: 审核人的按钮和评论；调度运行期间由后台线程持续轮询
"""

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

import schedule

from medpost.bots.telegram_bot import TelegramBot, TelegramModerationUI, TelegramPublisher
from medpost.bots.telegram_listener import TelegramUpdateListener
from medpost.config import (
    get_classification_config,
    get_config_value,
    get_dedup_config,
    get_generation_config,
    get_moderation_config,
    get_processing_config,
    get_publishing_config,
    get_rss_config,
    get_schedule_config,
    get_scoring_config,
    get_telegram_config,
)
from medpost.exceptions import FatalConfigurationError, TransientCollaboratorError
from medpost.fetchers import BaseFetcher, IngestionStage, RSSFetcher
from medpost.generation import GenerationStage, PostGenerator
from medpost.models import BatchStats
from medpost.moderation import ModerationService, ModerationUI, RevisionQueue
from medpost.processors import Classifier, ContentProcessor, Deduplicator
from medpost.pushers import Publisher, PublishScheduler
from medpost.repository import ContentRepository
from medpost.scoring import QualityScorer, ScoringStage
from medpost.utils import Pacer

logger = logging.getLogger(__name__)

PIPELINE_STAGES = ('ingest', 'process', 'score', 'generate')
STAGES = PIPELINE_STAGES + (
    'moderate', 'publish', 'revision-create', 'revision-process', 'listen', 'pipeline',
)


class Scheduler:
    """
    定时任务调度器
    Scheduled Task Scheduler

    Attributes:
        config: 完整配置字典（已应用默认值）
        repository: 内容仓库
        publisher: 发布器；未配置 Telegram 时为 None
        moderation_ui: 审核界面；未配置审核聊天时为 None
        listener: Telegram 更新监听器；审核界面不是 Telegram 时为 None
    """

    def __init__(self, config: dict, repository: ContentRepository | None = None,
                 fetchers: list[BaseFetcher] | None = None,
                 publisher: Publisher | None = None,
                 moderation_ui: ModerationUI | None = None):
        """
        Args:
            config: 完整配置字典
            repository: 仓库（默认按 database.path 创建）
            fetchers: 数据源列表（默认按 fetchers 配置创建）
            publisher: 发布器（默认按 telegram 配置创建）
            moderation_ui: 审核界面（默认按 telegram 配置创建）

        Raises:
            FatalConfigurationError: 任一组件配置不合法
        """
        self.config = config
        self.schedule_config = get_schedule_config(config)
        self._running = False

        if repository is None:
            db_path = get_config_value(config, 'database.path', 'data/medpost.db')
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            repository = ContentRepository(db_path)
        self.repository = repository
        self.repository.init_db()

        processing_config = get_processing_config(config)
        scoring_config = get_scoring_config(config)
        generation_config = get_generation_config(config)
        moderation_config = get_moderation_config(config)

        self.fetchers = fetchers if fetchers is not None else [RSSFetcher(get_rss_config(config))]
        self.ingestion = IngestionStage(self.repository, self.fetchers)
        self.processor = ContentProcessor(
            self.repository,
            Deduplicator(self.repository, get_dedup_config(config)),
            Classifier(get_classification_config(config)),
            processing_config,
        )
        self.scoring = ScoringStage(
            self.repository,
            QualityScorer(scoring_config),
            scoring_config.get('batch_size', 100),
        )
        self.generation = GenerationStage(
            self.repository,
            PostGenerator(generation_config),
            generation_config['threshold'],
            generation_config.get('max_posts_per_specialization', 5),
        )
        self.moderation = ModerationService(
            self.repository,
            Pacer(moderation_config.get('pause_seconds', 2)),
            generation_config.get('min_post_length', 100),
            generation_config.get('max_post_length', 600),
        )
        self.revisions = RevisionQueue(
            self.repository,
            self.moderation,
            moderation_config.get('revision_dir', 'data/revisions'),
            moderation_config.get('checklist'),
        )

        bot = self._create_bot()
        emojis = generation_config.get('specialization_emojis', {})
        telegram_config = get_telegram_config(config)
        if publisher is None and bot is not None:
            publisher = TelegramPublisher(bot, telegram_config.get('channels') or {}, emojis)
        if moderation_ui is None and bot is not None and telegram_config.get('moderator_chat_id'):
            moderation_ui = TelegramModerationUI(
                bot, str(telegram_config['moderator_chat_id']), self.moderation, emojis
            )
        self.publisher = publisher
        self.moderation_ui = moderation_ui

        self.listener = None
        if bot is not None and isinstance(moderation_ui, TelegramModerationUI):
            self.listener = TelegramUpdateListener(bot, moderation_ui,
                                                   telegram_config.get('poll_timeout', 30))

        self.publishing = None
        if self.publisher is not None:
            self.publishing = PublishScheduler(self.repository, self.publisher,
                                               get_publishing_config(config))

        logger.info(
            f"Scheduler initialized (publisher={'on' if self.publisher else 'off'}, "
            f"moderation_ui={'on' if self.moderation_ui else 'off'}, "
            f"timezone={self.schedule_config.get('timezone')})"
        )

    def _create_bot(self) -> TelegramBot | None:
        telegram_config = get_telegram_config(self.config)
        token = telegram_config.get('bot_token')
        if not token:
            logger.warning("Telegram bot_token not configured, publishing and moderation delivery disabled")
            return None
        return TelegramBot(
            token,
            api_base=telegram_config.get('api_base', 'https://api.telegram.org'),
            proxy=telegram_config.get('proxy'),
            timeout=telegram_config.get('timeout', 30),
            parse_mode=telegram_config.get('parse_mode', 'Markdown'),
        )

    def _stage_runners(self) -> dict[str, Callable[[], BatchStats]]:
        return {
            'ingest': self.ingestion.run,
            'process': self.processor.run,
            'score': self.scoring.run,
            'generate': self.generation.run,
            'moderate': self._run_moderation,
            'publish': self._run_publishing,
            'revision-create': self.revisions.create_files,
            'revision-process': self.revisions.process_files,
            'listen': self._run_listener,
        }

    def _run_moderation(self) -> BatchStats:
        if self.moderation_ui is None:
            logger.warning("Moderation UI not configured, skipping moderation delivery")
            return BatchStats(stage='moderate')
        return self.moderation.deliver_pending(self.moderation_ui)

    def _run_listener(self) -> BatchStats:
        if self.listener is None:
            logger.warning("Telegram moderation chat not configured, skipping update polling")
            return BatchStats(stage='listen')
        try:
            return self.listener.poll_once()
        except TransientCollaboratorError as e:
            logger.error(f"Could not fetch Telegram updates: {e.message}")
            return BatchStats(stage='listen', errored=1)

    def _run_publishing(self, now: datetime | None = None) -> BatchStats:
        if self.publishing is None:
            logger.warning("Publisher not configured, skipping publishing")
            return BatchStats(stage='publish')
        return self.publishing.run(now)

    def run_stage(self, name: str) -> list[BatchStats]:
        """
        执行一个阶段
        Run one stage

        Args:
            name: 阶段名称，'pipeline' 依次执行 ingest, process, score, generate

        Returns:
            每个已执行阶段的 BatchStats

        Raises:
            ValueError: 未知的阶段名称
        """
        if name not in STAGES:
            raise ValueError(f"Unknown stage '{name}', expected one of: {', '.join(STAGES)}")

        names = PIPELINE_STAGES if name == 'pipeline' else (name,)
        runners = self._stage_runners()
        started = datetime.now()
        logger.info(f"=== Stage '{name}' started ===")

        results = [runners[stage]() for stage in names]

        duration = (datetime.now() - started).total_seconds()
        logger.info(f"=== Stage '{name}' completed (duration: {duration:.2f}s) ===")
        return results

    def _job(self, name: str) -> Callable[[], None]:
        """包装定时任务：单次失败只记录日志，配置错误会终止调度"""
        def job():
            try:
                self.run_stage(name)
            except FatalConfigurationError:
                self._running = False
                raise
            except Exception as e:
                logger.error(f"Scheduled stage '{name}' failed: {e}", exc_info=True)
        return job

    def register_jobs(self) -> list[schedule.Job]:
        """
        按配置注册所有定时任务

        Returns:
            注册的 schedule.Job 列表
        """
        schedule.clear()
        config = self.schedule_config
        jobs = []

        jobs.append(schedule.every(config.get('pipeline_interval_hours', 6)).hours.do(self._job('pipeline')))

        moderation_day = config.get('moderation_day', 'sunday')
        jobs.append(self._every_weekday(moderation_day).at(config.get('moderation_time', '10:00'))
                    .do(self._job('moderate')))

        for publish_time in config.get('publish_times') or []:
            jobs.append(schedule.every().day.at(publish_time).do(self._job('publish')))

        revision_time = config.get('revision_time', '09:00')
        for day in config.get('revision_days') or []:
            jobs.append(self._every_weekday(day).at(revision_time).do(self._job('revision-process')))
            jobs.append(self._every_weekday(day).at(revision_time).do(self._job('revision-create')))

        logger.info(f"Registered {len(jobs)} scheduled jobs")
        return jobs

    @staticmethod
    def _every_weekday(day: str) -> schedule.Job:
        job = schedule.every()
        try:
            return getattr(job, day.lower())
        except AttributeError as e:
            raise FatalConfigurationError(f"unknown weekday '{day}'", key='schedule') from e

    def start(self, poll_seconds: int = 60):
        """
        启动定时调度
        Start scheduled execution
        """
        self.register_jobs()
        # 之前的 stop() 取消的发送节奏在重新启动时恢复
        self.moderation.pacer.reset()
        if self.publishing is not None:
            self.publishing.pacer.reset()
        if self.listener is not None:
            self.listener.start()
        self._running = True
        logger.info("Scheduler started, waiting for scheduled jobs...")

        try:
            while self._running:
                schedule.run_pending()
                time.sleep(poll_seconds)
        except KeyboardInterrupt:
            logger.info("Scheduler stopped by user")
        finally:
            self._running = False
            if self.listener is not None:
                self.listener.stop()

    def stop(self):
        """
        停止调度器
        Stop the scheduler
        """
        logger.info("Stopping scheduler...")
        self._running = False
        self.moderation.pacer.cancel()
        if self.publishing is not None:
            self.publishing.pacer.cancel()
        if self.listener is not None:
            self.listener.stop()
        schedule.clear()

    def status(self) -> dict[str, Any]:
        """审核队列中各状态的帖子数量"""
        return self.repository.get_moderation_stats()

    def close(self):
        self.repository.close()
