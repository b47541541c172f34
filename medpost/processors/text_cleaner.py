"""
文本清洗模块
Text Cleaning Module

提供纯函数：HTML清洗、标点规范化、分句、关键词提取和内容指纹。
Pure helpers for HTML stripping, punctuation normalization, sentence
splitting, keyword extraction and content fingerprints.
"""

import hashlib
import math
import re
from collections import Counter

from bs4 import BeautifulSoup

# 允许保留的字符之外的符号替换为空格
_SPECIAL_CHARS = re.compile(r"[^\w\s.,!?;:()\-]")
_SPACE_BEFORE_PUNCT = re.compile(r"\s+([.,!?;:])")
_SPACE_AFTER_PUNCT = re.compile(r"([.,!?;:])\s+")
_WHITESPACE = re.compile(r"\s+")
_SENTENCE_DELIMITERS = re.compile(r"[.!?]+")
_KEYWORD_STRIP = re.compile(r"[^\w\s]")


def strip_html(content: str) -> str:
    """去除HTML标签，返回纯文本"""
    if not content:
        return ""
    return BeautifulSoup(content, 'html.parser').get_text(separator=' ')


def normalize_whitespace(text: str) -> str:
    """合并连续空白"""
    return _WHITESPACE.sub(' ', text).strip()


def clean_text(content: str) -> str:
    """
    清洗正文
    Clean body text

    去除HTML、合并空白、去除特殊符号并规范化标点两侧的空格。

    Args:
        content: 原始正文（可能包含HTML）

    Returns:
        清洗后的文本

    Examples:
        >>> clean_text('<p>Hello ,  <b>world</b> !</p>')
        'Hello, world!'
    """
    text = normalize_whitespace(strip_html(content))
    text = _SPECIAL_CHARS.sub(' ', text)
    text = normalize_whitespace(text)
    text = _SPACE_BEFORE_PUNCT.sub(r'\1', text)
    text = _SPACE_AFTER_PUNCT.sub(r'\1 ', text)
    return text.strip()


def clean_title(title: str) -> str:
    """清洗标题：去除HTML并合并空白"""
    return normalize_whitespace(strip_html(title))


def content_fingerprint(text: str) -> str:
    """
    计算内容指纹
    Compute the content fingerprint

    对规范化后的文本（大小写折叠）计算SHA-256，格式上的细微差异不影响结果。

    Examples:
        >>> content_fingerprint('<p>Some  text</p>') == content_fingerprint('some text')
        True
    """
    normalized = clean_text(text).casefold()
    return hashlib.sha256(normalized.encode('utf-8')).hexdigest()


def split_sentences(text: str, min_length: int = 10) -> list[str]:
    """
    按 . ! ? 分句，丢弃短于 min_length 的片段

    Returns:
        去除首尾空白的句子列表（不含结束标点）
    """
    sentences = []
    for fragment in _SENTENCE_DELIMITERS.split(text or ''):
        fragment = fragment.strip()
        if len(fragment) >= min_length:
            sentences.append(fragment)
    return sentences


def count_words(text: str) -> int:
    """统计单词数"""
    return len((text or '').split())


def reading_time(text: str, words_per_minute: int = 200) -> int:
    """估算阅读时间（分钟），向上取整"""
    return math.ceil(count_words(text) / words_per_minute)


def extract_keywords(text: str, max_keywords: int = 10, min_length: int = 4) -> list[str]:
    """
    按词频提取关键词
    Extract keywords by frequency

    Args:
        text: 文本
        max_keywords: 返回的最大数量
        min_length: 最短词长

    Returns:
        关键词列表，词频高的在前；词频相同时按首次出现顺序
    """
    words = _KEYWORD_STRIP.sub(' ', (text or '').lower()).split()
    counter = Counter(word for word in words if len(word) >= min_length)
    return [word for word, _ in counter.most_common(max_keywords)]


def build_summary(text: str, max_sentences: int = 3, min_length: int = 10) -> str:
    """
    取前几句作为摘要
    Build a summary from the leading sentences

    没有合格句子时截取前200个字符。
    """
    sentences = split_sentences(text, min_length)
    if not sentences:
        return (text or '')[:200].strip() + '...'
    return '. '.join(sentences[:max_sentences]) + '.'
