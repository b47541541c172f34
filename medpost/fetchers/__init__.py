"""
Fetchers module - 数据源获取器
"""

from .base import BaseFetcher, FetchResult
from .ingestion import IngestionStage
from .rss_fetcher import RSSFetcher

__all__ = ['BaseFetcher', 'FetchResult', 'IngestionStage', 'RSSFetcher']
