"""
BaseFetcher - Fetcher 基类和 FetchResult 数据类
BaseFetcher - Base Fetcher Class and FetchResult Data Class

定义所有数据源 Fetcher 的统一接口和获取结果的数据结构。
Defines the unified interface for all data source Fetchers and the data
structure for fetch results.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from medpost.models import Document


@dataclass
class FetchResult:
    """
    获取结果数据类
    Fetch Result Data Class

    Attributes:
        items: 获取的文档列表
        source_name: 数据源名称
        source_type: 数据源类型，如 'rss'
        failed_sources: 获取失败的子来源（如单个订阅源URL）
        error: 整体错误信息（如有）

    Examples:
        >>> result = FetchResult(items=[], source_name='RSS', source_type='rss')
        >>> result.is_success()
        True
    """
    items: list[Document] = field(default_factory=list)
    source_name: str = ""
    source_type: str = ""
    failed_sources: list[str] = field(default_factory=list)
    error: str | None = None

    def is_success(self) -> bool:
        """没有任何错误时返回True"""
        return self.error is None and not self.failed_sources

    def __len__(self) -> int:
        return len(self.items)


class BaseFetcher(ABC):
    """
    Fetcher 抽象基类
    Abstract Base Class for Fetchers

    fetch() 不抛出异常，错误通过 FetchResult.error / failed_sources 传递。
    """

    @abstractmethod
    def fetch(self) -> FetchResult:
        """
        获取数据
        Fetch documents from the data source
        """

    @abstractmethod
    def is_enabled(self) -> bool:
        """检查 Fetcher 是否启用"""
