"""
ContentProcessor - 内容处理阶段
Content Processing Stage

把未处理的原始文档转换为文章：去重、清洗、校验、分类、提取关键词和摘要。
Turns unprocessed Documents into Articles: dedup gate, cleaning, validation,
classification, keyword and summary extraction.

单个文档的失败不会中断批处理，每批返回 processed/skipped/errored 统计。
"""

import logging
from datetime import datetime

from medpost.exceptions import DuplicateFound, TransientCollaboratorError, ValidationFailure
from medpost.models import Article, BatchStats, Document
from medpost.processors.classifier import Classifier
from medpost.processors.deduplicator import Deduplicator
from medpost.processors.text_cleaner import (
    build_summary,
    clean_text,
    clean_title,
    content_fingerprint,
    count_words,
    extract_keywords,
    reading_time,
)

logger = logging.getLogger(__name__)

OUTCOME_ARTICLE = 'article'
OUTCOME_DUPLICATE = 'duplicate'
OUTCOME_INVALID = 'invalid'


def validate_content(text: str, min_length: int = 100, max_length: int = 50000,
                     min_words: int = 20) -> None:
    """
    校验清洗后的正文

    Raises:
        ValidationFailure: 长度不在 [min_length, max_length] 内或单词数不足
    """
    if not text:
        raise ValidationFailure("Content is empty")

    length = len(text)
    if length < min_length or length > max_length:
        raise ValidationFailure(
            f"Content length {length} outside [{min_length}, {max_length}]",
            {'length': length},
        )

    words = count_words(text)
    if words < min_words:
        raise ValidationFailure(f"Content has {words} words, need {min_words}",
                                {'words': words})


class ContentProcessor:
    """
    内容处理器
    Content Processor

    Args:
        repository: 内容仓库
        deduplicator: 去重器
        classifier: 分类器
        config: processing 配置段
    """

    def __init__(self, repository, deduplicator: Deduplicator, classifier: Classifier,
                 config: dict):
        self.repository = repository
        self.deduplicator = deduplicator
        self.classifier = classifier
        self.batch_size = config.get('batch_size', 50)
        self.min_content_length = config.get('min_content_length', 100)
        self.max_content_length = config.get('max_content_length', 50000)
        self.min_words = config.get('min_words', 20)
        self.max_keywords = config.get('max_keywords', 10)
        self.min_keyword_length = config.get('min_keyword_length', 4)
        self.summary_sentences = config.get('summary_sentences', 3)
        self.words_per_minute = config.get('words_per_minute', 200)

    def process_document(self, document: Document) -> Article:
        """
        处理单个文档

        Returns:
            已保存的文章（带ID）

        Raises:
            DuplicateFound: 文档重复
            ValidationFailure: 内容未通过校验
        """
        reason = self.deduplicator.find_duplicate_reason(document)
        if reason:
            raise DuplicateFound(f"Duplicate document {document.url}", reason=reason)

        text = clean_text(document.content)
        validate_content(text, self.min_content_length, self.max_content_length, self.min_words)

        classification = self.classifier.classify(document, text)
        article = Article(
            document_id=document.id,
            url=document.url,
            title=clean_title(document.title),
            content=text,
            summary=build_summary(text, self.summary_sentences),
            content_hash=content_fingerprint(document.content),
            language=classification.language,
            content_type=classification.content_type,
            specialization=classification.specialization,
            keywords=extract_keywords(text, self.max_keywords, self.min_keyword_length),
            authors=list(document.authors),
            source_name=document.source_name,
            source_tier=document.source_tier,
            published_date=document.published_date,
            processed_at=datetime.now().isoformat(),
            word_count=count_words(text),
            reading_time=reading_time(text, self.words_per_minute),
        )
        article.id = self.repository.save_article(article)
        return article

    def run(self, limit: int | None = None) -> BatchStats:
        """
        处理一批未处理的文档

        Args:
            limit: 批大小，默认使用配置值

        Returns:
            BatchStats
        """
        stats = BatchStats(stage='process')
        documents = self.repository.fetch_unprocessed_documents(limit or self.batch_size)
        logger.info(f"Processing {len(documents)} documents")

        for document in documents:
            try:
                article = self.process_document(document)
                self.repository.mark_document_processed(document.id, OUTCOME_ARTICLE)
                stats.processed += 1
                logger.debug(
                    f"Article {article.id} created: {article.content_type}/{article.specialization}"
                )
            except DuplicateFound as e:
                stats.skipped += 1
                stats.duplicates += 1
                logger.info(f"Document {document.id} skipped as duplicate ({e.reason})")
                self._mark(document, OUTCOME_DUPLICATE, stats)
            except ValidationFailure as e:
                stats.skipped += 1
                logger.info(f"Document {document.id} skipped: {e.message}")
                self._mark(document, OUTCOME_INVALID, stats)
            except TransientCollaboratorError as e:
                stats.errored += 1
                logger.error(f"Document {document.id} failed: {e.message}")
            except Exception as e:
                stats.errored += 1
                logger.exception(f"Unexpected error processing document {document.id}: {e}")

        logger.info(f"Processing finished - {stats.summary()}")
        return stats

    def _mark(self, document: Document, outcome: str, stats: BatchStats):
        try:
            self.repository.mark_document_processed(document.id, outcome)
        except TransientCollaboratorError as e:
            stats.errored += 1
            logger.error(f"Could not mark document {document.id} as {outcome}: {e.message}")
