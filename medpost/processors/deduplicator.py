"""
去重模块
Deduplicator Module

按顺序检查三条规则，命中第一条即停止：
1. URL 已存在于已入库文章中
2. 内容指纹（规范化正文的哈希）已存在
3. 标题与最近入库的 N 个标题的 Jaccard 相似度超过阈值

Checks, in order and short-circuiting: known URL, known content
fingerprint, near-duplicate title among the most recent titles.
"""

import logging

from medpost.exceptions import FatalConfigurationError
from medpost.models import Document
from medpost.processors.text_cleaner import content_fingerprint

logger = logging.getLogger(__name__)


def title_tokens(title: str) -> set[str]:
    """大小写折叠后按空白切分的词集合"""
    return set((title or '').casefold().split())


def jaccard_similarity(first: str, second: str) -> float:
    """
    计算两个标题的 Jaccard 相似度
    Jaccard similarity of two titles' word sets

    Examples:
        >>> jaccard_similarity('Heart failure update', 'heart FAILURE update')
        1.0
        >>> jaccard_similarity('a b', 'c d')
        0.0
    """
    first_set = title_tokens(first)
    second_set = title_tokens(second)
    union = first_set | second_set
    if not union:
        return 0.0
    return len(first_set & second_set) / len(union)


class Deduplicator:
    """
    去重器
    Deduplicator

    Attributes:
        repository: 提供 is_known_by_url / is_known_by_hash / recent_titles 的仓库
        threshold: 标题相似度阈值，严格大于才算重复
        window: 参与比较的最近标题数量
    """

    def __init__(self, repository, config: dict):
        self.repository = repository
        self.threshold = config.get('title_similarity_threshold')
        self.window = config.get('title_window')

        if not isinstance(self.threshold, (int, float)) or not 0 < self.threshold <= 1:
            raise FatalConfigurationError(
                "title similarity threshold must be in (0, 1]",
                key='deduplication.title_similarity_threshold',
            )
        if not isinstance(self.window, int) or self.window < 0:
            raise FatalConfigurationError(
                "title window must be a non-negative integer",
                key='deduplication.title_window',
            )

    def find_duplicate_reason(self, document: Document) -> str | None:
        """
        返回命中的去重规则

        Returns:
            'url' / 'fingerprint' / 'title'；不重复时返回None
        """
        if self.repository.is_known_by_url(document.url):
            return 'url'

        if self.repository.is_known_by_hash(content_fingerprint(document.content)):
            return 'fingerprint'

        if self.window:
            for existing in self.repository.recent_titles(self.window):
                similarity = jaccard_similarity(document.title, existing)
                if similarity > self.threshold:
                    logger.debug(
                        f"Title '{document.title}' matches '{existing}' ({similarity:.2f})"
                    )
                    return 'title'

        return None

    def is_duplicate(self, document: Document) -> bool:
        """文档是否重复"""
        reason = self.find_duplicate_reason(document)
        if reason:
            logger.info(f"Duplicate document {document.url} ({reason})")
            return True
        return False
