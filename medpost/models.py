"""
数据模型模块
Data Models Module

定义流水线中使用的数据模型类：Document、Article、Score、Post、ModerationDecision。
Defines the data models that flow through the pipeline.
"""

from dataclasses import dataclass, field, asdict, fields
from datetime import datetime
from enum import Enum
from typing import Any


class ContentType(Enum):
    """内容类型"""
    RESEARCH = "research"
    GUIDELINE = "guideline"
    NEWS = "news"
    CASE = "case"
    GENERAL = "general"


class QualityTier(Enum):
    """质量等级 A-D"""
    A = "A"
    B = "B"
    C = "C"
    D = "D"


class PostStatus(Enum):
    """
    帖子状态
    Post Status

    pending/approved/rejected/revision 为审核状态，
    published/error 为发布调度器写入的终态。
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION = "revision"
    PUBLISHED = "published"
    ERROR = "error"


class ModerationAction(Enum):
    """审核动作"""
    APPROVE = "approve"
    REJECT = "reject"
    SEND_TO_REVISION = "revision"


def _filter_fields(cls, data: dict[str, Any]) -> dict[str, Any]:
    """只保留数据类定义的字段，忽略额外字段"""
    valid_fields = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid_fields}


@dataclass
class Document:
    """
    原始文档
    Raw ingested document

    Attributes:
        id: 数据库ID，新文档为None
        url: 来源范围内的唯一标识
        title: 标题
        content: 正文（可能包含HTML）
        specialization: 来源声明的专科（可选）
        published_date: 发布日期（ISO格式字符串）
        source_name: 来源名称
        source_tier: 来源质量等级提示 A/B/C（可选）
        source_type: 来源类型，如 rss
        authors: 作者列表
        fetched_at: 抓取时间
    """
    id: int | None = None
    url: str = ""
    title: str = ""
    content: str = ""
    specialization: str | None = None
    published_date: str = ""
    source_name: str = ""
    source_tier: str | None = None
    source_type: str = "rss"
    authors: list[str] = field(default_factory=list)
    fetched_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Document":
        return cls(**_filter_fields(cls, data))


@dataclass
class Score:
    """
    质量评分
    Quality Score

    三个子分数、组成明细、归一化总分（0-25）和质量等级。
    Score 一旦计算便不可修改，重新计算时整体替换。

    Attributes:
        scientific_basis: 科学依据 0-10
        relevance: 相关性 0-8
        practicality: 实用性 0-7
        total: 归一化总分 0-25
        quality_tier: 质量等级 A-D
        breakdown: 各组成部分得分
        article_id: 所属文章ID
        scored_at: 评分时间
    """
    scientific_basis: int = 0
    relevance: int = 0
    practicality: int = 0
    total: int = 0
    quality_tier: QualityTier = QualityTier.D
    breakdown: dict[str, int] = field(default_factory=dict)
    article_id: int | None = None
    scored_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data['quality_tier'] = self.quality_tier.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Score":
        filtered = _filter_fields(cls, data)
        if 'quality_tier' in filtered and not isinstance(filtered['quality_tier'], QualityTier):
            filtered['quality_tier'] = QualityTier(filtered['quality_tier'])
        return cls(**filtered)


@dataclass
class Article:
    """
    文章：清洗、分类并附加评分后的文档
    Article: a Document after cleaning, classification and scoring
    """
    id: int | None = None
    document_id: int | None = None
    url: str = ""
    title: str = ""
    content: str = ""
    summary: str = ""
    content_hash: str = ""
    language: str = "unknown"
    content_type: str = ContentType.GENERAL.value
    specialization: str = "therapy"
    keywords: list[str] = field(default_factory=list)
    authors: list[str] = field(default_factory=list)
    source_name: str = ""
    source_tier: str | None = None
    published_date: str = ""
    processed_at: str = ""
    word_count: int = 0
    reading_time: int = 0
    score: Score | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data['score'] = self.score.to_dict() if self.score else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Article":
        filtered = _filter_fields(cls, data)
        score = filtered.get('score')
        if isinstance(score, dict):
            filtered['score'] = Score.from_dict(score)
        return cls(**filtered)


@dataclass
class Post:
    """
    生成的帖子
    Generated post

    由生成器创建，只通过审核/发布状态转换修改，从不删除。

    Attributes:
        moderation_cycle: 当前审核周期编号，每次修订后重新提交时加一
        external_message_ref: 发布后外部渠道返回的消息引用
        publish_attempts: 发布尝试次数
    """
    id: int | None = None
    article_id: int | None = None
    specialization: str = "therapy"
    content_type: str = ContentType.RESEARCH.value
    title: str = ""
    content: str = ""
    summary: str = ""
    key_points: list[str] = field(default_factory=list)
    practical_application: str = ""
    hashtags: list[str] = field(default_factory=list)
    source_name: str = ""
    source_url: str = ""
    score: int = 0
    word_count: int = 0
    reading_time: int = 0
    status: PostStatus = PostStatus.PENDING
    moderation_cycle: int = 1
    generated_at: str = ""
    published_at: str | None = None
    external_message_ref: str | None = None
    publish_attempts: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data['status'] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Post":
        filtered = _filter_fields(cls, data)
        if 'status' in filtered and not isinstance(filtered['status'], PostStatus):
            filtered['status'] = PostStatus(filtered['status'])
        return cls(**filtered)


@dataclass
class ModerationDecision:
    """
    审核决定事件
    Moderation decision event

    与帖子当前审核周期一一对应；修订后重新提交会开启新周期，旧决定保留用于审计。
    """
    post_id: int
    action: ModerationAction
    cycle: int = 1
    comment: str | None = None
    moderator_id: str | None = None
    decided_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data['action'] = self.action.value
        return data


@dataclass
class BatchStats:
    """
    批处理统计
    Batch statistics

    duplicates 是 skipped 的子集。
    """
    stage: str = ""
    processed: int = 0
    skipped: int = 0
    errored: int = 0
    duplicates: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def summary(self) -> str:
        text = (
            f"{self.stage}: processed={self.processed}, "
            f"skipped={self.skipped}, errored={self.errored}"
        )
        if self.duplicates:
            text += f" (duplicates={self.duplicates})"
        return text
