"""
采集阶段
Ingestion Stage

运行所有启用的 Fetcher，把获取到的原始文档写入仓库。
已存在的URL不会重复入库；失败的数据源计入 errored 并继续处理其他数据源。
"""

import logging

from medpost.exceptions import TransientCollaboratorError
from medpost.fetchers.base import BaseFetcher
from medpost.models import BatchStats

logger = logging.getLogger(__name__)


class IngestionStage:
    """采集阶段"""

    def __init__(self, repository, fetchers: list[BaseFetcher]):
        self.repository = repository
        self.fetchers = fetchers

    def run(self) -> BatchStats:
        """
        执行一次采集

        Returns:
            BatchStats: processed 为新入库文档数，skipped 为已存在的URL数
        """
        stats = BatchStats(stage='ingest')

        for fetcher in self.fetchers:
            if not fetcher.is_enabled():
                logger.debug(f"{type(fetcher).__name__} disabled, skipping")
                continue

            result = fetcher.fetch()
            stats.errored += len(result.failed_sources)
            if result.error:
                stats.errored += 1
                logger.error(f"{result.source_name} fetch failed: {result.error}")

            for document in result.items:
                try:
                    document_id = self.repository.save_document(document)
                except TransientCollaboratorError as e:
                    stats.errored += 1
                    logger.error(f"Could not save document {document.url}: {e.message}")
                    continue

                if document_id is None:
                    stats.skipped += 1
                    stats.duplicates += 1
                else:
                    document.id = document_id
                    stats.processed += 1

        logger.info(f"Ingestion finished - {stats.summary()}")
        return stats
