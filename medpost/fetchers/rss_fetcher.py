"""
RSSFetcher - RSS订阅源获取器
RSSFetcher - RSS Feed Fetcher

从配置的医学订阅源并发获取文章，转换为原始文档。
Fetches entries from the configured medical feeds concurrently and turns
them into Documents.

每个订阅源在配置中声明名称、URL、专科和来源等级提示；
单个订阅源失败时记录错误并继续处理其他订阅源。
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from time import struct_time
from typing import Any

import feedparser
import requests

from medpost.exceptions import TransientCollaboratorError
from medpost.fetchers.base import BaseFetcher, FetchResult
from medpost.models import Document

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "medpost/1.0 (+https://github.com/medpost)"


class RSSFetcher(BaseFetcher):
    """
    RSS订阅源获取器
    RSS Feed Fetcher

    Attributes:
        feeds: 订阅源配置列表，每项包含 name, url, specialization, source_tier
        proxy: 代理URL（可选）
        max_workers: 并发获取的最大线程数
        timeout: 请求超时时间（秒）
        max_entries: 每个订阅源最多取的条目数
    """

    def __init__(self, config: dict[str, Any]):
        """
        Args:
            config: fetchers.rss 配置段

        Examples:
            >>> fetcher = RSSFetcher({
            ...     'feeds': [{'name': 'NEJM', 'url': 'https://www.nejm.org/rss',
            ...                'specialization': None, 'source_tier': 'A'}],
            ... })
        """
        self.enabled: bool = config.get('enabled', True)
        self.feeds: list[dict[str, Any]] = [feed for feed in config.get('feeds') or [] if feed.get('url')]
        self.proxy: str | None = config.get('proxy')
        self.max_workers: int = config.get('max_workers', 5)
        self.timeout: int = config.get('timeout', 30)
        self.max_entries: int = config.get('max_entries', 50)
        self.user_agent: str = config.get('user_agent', DEFAULT_USER_AGENT)

    def is_enabled(self) -> bool:
        return self.enabled and bool(self.feeds)

    def _download(self, url: str) -> bytes:
        proxies = {'http': self.proxy, 'https': self.proxy} if self.proxy else None
        try:
            response = requests.get(
                url,
                timeout=self.timeout,
                proxies=proxies,
                headers={'User-Agent': self.user_agent},
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise TransientCollaboratorError(f"Feed request failed: {e}", {'url': url}) from e
        return response.content

    def fetch_feed(self, feed: dict[str, Any]) -> list[Document]:
        """
        获取单个订阅源的文档

        Raises:
            TransientCollaboratorError: 下载失败或无法解析
        """
        url = feed['url']
        parsed = feedparser.parse(self._download(url))

        if parsed.bozo and not parsed.entries:
            raise TransientCollaboratorError(
                f"Feed could not be parsed: {parsed.get('bozo_exception')}", {'url': url}
            )

        source_name = feed.get('name') or parsed.feed.get('title', url)
        documents = []
        for entry in parsed.entries[:self.max_entries]:
            document = self._entry_to_document(entry, feed, source_name)
            if document:
                documents.append(document)

        logger.info(f"从订阅源 '{source_name}' 获取了 {len(documents)} 篇文章")
        return documents

    def _entry_to_document(self, entry: Any, feed: dict[str, Any],
                           source_name: str) -> Document | None:
        """
        将feedparser条目转换为文档

        缺少标题或链接时返回None。
        """
        title = (entry.get('title') or '').strip()
        url = (entry.get('link') or '').strip()
        if not title or not url:
            return None

        content = ''
        if entry.get('content'):
            content = entry['content'][0].get('value', '')
        if not content:
            content = entry.get('summary', '')

        authors = [author.get('name', '') for author in entry.get('authors', []) if author.get('name')]

        return Document(
            url=url,
            title=title,
            content=content,
            specialization=feed.get('specialization'),
            published_date=self._parse_published_date(entry),
            source_name=source_name,
            source_tier=feed.get('source_tier'),
            source_type='rss',
            authors=authors,
            fetched_at=datetime.now().isoformat(),
        )

    def _parse_published_date(self, entry: Any) -> str:
        """
        解析条目的发布日期

        依次尝试 published_parsed, updated_parsed，返回UTC的ISO格式字符串。
        """
        time_struct: struct_time | None = None

        if entry.get('published_parsed'):
            time_struct = entry['published_parsed']
        elif entry.get('updated_parsed'):
            time_struct = entry['updated_parsed']

        if time_struct:
            try:
                return datetime(*time_struct[:6], tzinfo=timezone.utc).isoformat()
            except (ValueError, TypeError):
                pass

        return ""

    def fetch(self) -> FetchResult:
        """
        并发获取所有订阅源

        失败的订阅源记录在 failed_sources 中，不影响其他订阅源。
        """
        result = FetchResult(source_name='RSS', source_type='rss')
        if not self.is_enabled():
            return result

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_feed = {
                executor.submit(self.fetch_feed, feed): feed
                for feed in self.feeds
            }

            for future in as_completed(future_to_feed):
                feed = future_to_feed[future]
                try:
                    result.items.extend(future.result())
                except TransientCollaboratorError as e:
                    logger.error(f"获取订阅源 {feed['url']} 失败: {e.message}")
                    result.failed_sources.append(feed['url'])

        logger.info(f"从 {len(self.feeds)} 个订阅源共获取 {len(result.items)} 篇文章")
        return result
