"""
分类模块
Classifier Module

基于关键词启发式为文档确定语言、内容类型和专科。
Assigns language, content type and specialization with keyword heuristics.

匹配均为大小写不敏感的子串匹配；专科按配置的优先级顺序逐一检查，
第一个命中的专科生效，结果可复现。
"""

import logging
import re
from dataclasses import dataclass

from medpost.exceptions import FatalConfigurationError
from medpost.models import ContentType, Document

logger = logging.getLogger(__name__)

_CYRILLIC = re.compile(r'[\u0400-\u04FF]')
_LATIN = re.compile(r'[A-Za-z]')


@dataclass
class Classification:
    """分类结果"""
    language: str
    content_type: str
    specialization: str


def detect_language(text: str) -> str:
    """
    按西里尔字母与拉丁字母的数量判断语言

    Examples:
        >>> detect_language('Сахарный диабет')
        'ru'
        >>> detect_language('Heart failure')
        'en'
        >>> detect_language('12345')
        'unknown'
    """
    cyrillic = len(_CYRILLIC.findall(text or ''))
    latin = len(_LATIN.findall(text or ''))
    if cyrillic > latin:
        return 'ru'
    if latin > cyrillic:
        return 'en'
    return 'unknown'


def contains_any(text: str, keywords: list[str]) -> bool:
    """text 是否包含任意一个关键词（text 须已小写）"""
    return any(keyword.lower() in text for keyword in keywords)


class Classifier:
    """
    分类器
    Classifier

    Args:
        config: classification 配置段，包含关键词词典和优先级列表
    """

    def __init__(self, config: dict):
        self.content_type_priority = config.get('content_type_priority') or []
        self.content_type_keywords = config.get('content_type_keywords') or {}
        self.specialization_priority = config.get('specialization_priority') or []
        self.specialization_keywords = config.get('specialization_keywords') or {}
        self.default_specialization = config.get('default_specialization')
        self.generic_specializations = {
            name.lower() for name in config.get('generic_specializations') or []
        }

        if not self.content_type_priority or not self.content_type_keywords:
            raise FatalConfigurationError("content type keywords are required",
                                          key='classification.content_type_keywords')
        if not self.specialization_priority or not self.specialization_keywords:
            raise FatalConfigurationError("specialization keywords are required",
                                          key='classification.specialization_keywords')
        if not self.default_specialization:
            raise FatalConfigurationError("default specialization is required",
                                          key='classification.default_specialization')
        for name in self.specialization_priority:
            if name not in self.specialization_keywords:
                raise FatalConfigurationError(f"no keywords for specialization '{name}'",
                                              key='classification.specialization_keywords')

    def detect_content_type(self, text: str) -> str:
        """按优先级匹配内容类型，无匹配时返回 general"""
        lowered = (text or '').lower()
        for content_type in self.content_type_priority:
            if contains_any(lowered, self.content_type_keywords.get(content_type, [])):
                return content_type
        return ContentType.GENERAL.value

    def is_generic(self, specialization: str | None) -> bool:
        """声明的专科是否为空或泛化值"""
        if not specialization or not specialization.strip():
            return True
        return specialization.strip().lower() in self.generic_specializations

    def detect_specialization(self, title: str, text: str, declared: str | None = None) -> str:
        """
        确定专科

        声明了非泛化专科时直接使用；否则按优先级在标题和正文中查找关键词，
        都不命中时返回默认专科（therapy）。
        """
        if not self.is_generic(declared):
            return declared.strip().lower()

        lowered = f"{title or ''} {text or ''}".lower()
        for specialization in self.specialization_priority:
            if contains_any(lowered, self.specialization_keywords[specialization]):
                return specialization
        return self.default_specialization

    def classify(self, document: Document, text: str | None = None) -> Classification:
        """
        对文档分类

        Args:
            document: 文档
            text: 已清洗的正文（可选，默认使用文档原文）

        Returns:
            Classification(language, content_type, specialization)
        """
        body = text if text is not None else document.content
        return Classification(
            language=detect_language(body),
            content_type=self.detect_content_type(body),
            specialization=self.detect_specialization(
                document.title, body, document.specialization
            ),
        )
