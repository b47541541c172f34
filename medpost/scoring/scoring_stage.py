"""
评分阶段
Scoring Stage

为尚未评分的文章计算质量评分并写回仓库。重复运行会整体替换旧评分。
"""

import logging
from datetime import datetime

from medpost.exceptions import TransientCollaboratorError
from medpost.models import BatchStats
from medpost.scoring.quality_scorer import QualityScorer

logger = logging.getLogger(__name__)


class ScoringStage:
    """评分阶段"""

    def __init__(self, repository, scorer: QualityScorer, batch_size: int = 100):
        self.repository = repository
        self.scorer = scorer
        self.batch_size = batch_size

    def run(self, limit: int | None = None, now: datetime | None = None) -> BatchStats:
        """
        为一批文章评分

        Args:
            limit: 批大小，默认使用配置值
            now: 时效性参考时间

        Returns:
            BatchStats
        """
        stats = BatchStats(stage='score')
        articles = self.repository.fetch_unscored_articles(limit or self.batch_size)
        logger.info(f"Scoring {len(articles)} articles")

        for article in articles:
            try:
                score = self.scorer.score(article, now)
                self.repository.save_score(article.id, score)
                stats.processed += 1
                logger.debug(
                    f"Article {article.id}: {score.scientific_basis}/{score.relevance}/"
                    f"{score.practicality} -> {score.total} ({score.quality_tier.value})"
                )
            except TransientCollaboratorError as e:
                stats.errored += 1
                logger.error(f"Could not save score for article {article.id}: {e.message}")
            except Exception as e:
                stats.errored += 1
                logger.exception(f"Unexpected error scoring article {article.id}: {e}")

        logger.info(f"Scoring finished - {stats.summary()}")
        return stats
