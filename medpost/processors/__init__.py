# Processors module - 内容处理模块
# 包含去重、分类、文本清洗和内容处理阶段

from .classifier import Classification, Classifier, detect_language
from .content_processor import ContentProcessor, validate_content
from .deduplicator import Deduplicator, jaccard_similarity

__all__ = [
    "Classification",
    "Classifier",
    "ContentProcessor",
    "Deduplicator",
    "detect_language",
    "jaccard_similarity",
    "validate_content",
]
