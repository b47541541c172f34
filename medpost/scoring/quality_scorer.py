"""
QualityScorer - 文章质量评分器
QualityScorer - Article Quality Scorer

基于三个加权子分数计算 0-25 的确定性质量总分和质量等级。
Computes a deterministic 0-25 quality score from three weighted sub-scores.

- 科学依据 Scientific basis (0-10): 来源等级 + 证据级别 + 同行评审 + 方法学
- 相关性 Relevance (0-8): 时效性 + 热点话题 + 临床意义
- 实用性 Practicality (0-7): 临床适用性 + 建议明确性 + 实践可及性

总分 = 加权和 / 理论加权最大值 * 25，四舍五入（0.5 向上）。
评分从不失败，缺失的信号计为0分。
"""

import logging
import math
from datetime import datetime
from email.utils import parsedate_to_datetime

from medpost.exceptions import FatalConfigurationError
from medpost.models import Article, QualityTier, Score

logger = logging.getLogger(__name__)

SUBSCORES = ('scientific_basis', 'relevance', 'practicality')


def round_half_up(value: float) -> int:
    """
    四舍五入到整数，0.5 总是向上

    Examples:
        >>> round_half_up(19.15)
        19
        >>> round_half_up(12.5)
        13
    """
    return int(math.floor(value + 0.5))


def parse_date(value: str | None) -> datetime | None:
    """解析 ISO 8601 或 RFC 2822 日期，失败返回None"""
    if not value:
        return None
    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(text)
    except (TypeError, ValueError):
        return None


def count_families(text: str, families: list[list[str]], cap: int) -> int:
    """每个命中的关键词族计1分，最多 cap 分"""
    hits = sum(1 for family in families if any(keyword in text for keyword in family))
    return min(hits, cap)


def count_keywords(text: str, keywords: list[str], cap: int) -> int:
    """每个命中的关键词计1分，最多 cap 分"""
    return min(sum(1 for keyword in keywords if keyword in text), cap)


class QualityScorer:
    """
    文章质量评分器
    Article Quality Scorer

    纯函数式：结果只取决于文章字段、配置和参考时间。

    Args:
        config: scoring 配置段（关键词词典、来源等级、权重、阈值）
    """

    REQUIRED = ('source_tiers', 'tier_points', 'evidence_rules', 'freshness_bands',
                'weights', 'max_subscores', 'tier_thresholds')

    def __init__(self, config: dict):
        for key in self.REQUIRED:
            if not config.get(key):
                raise FatalConfigurationError("required scoring setting is missing",
                                              key=f"scoring.{key}")

        self.source_tiers: dict[str, list[str]] = config['source_tiers']
        self.tier_points: dict[str, int] = config['tier_points']
        self.default_source_points = config.get('default_source_points', 1)

        self.evidence_rules: list[dict] = config['evidence_rules']
        self.evidence_cap = config.get('evidence_cap', 2)
        self.peer_reviewed_sources = config.get('peer_reviewed_sources', [])
        self.peer_review_keywords = config.get('peer_review_keywords', [])
        self.methodology_families = config.get('methodology_families', [])
        self.methodology_cap = config.get('methodology_cap', 3)

        self.freshness_bands = sorted(config['freshness_bands'], key=lambda band: band['max_days'])
        self.hot_topics = config.get('hot_topics', [])
        self.keyword_bonus_threshold = config.get('keyword_bonus_threshold', 5)
        self.topical_cap = config.get('topical_cap', 3)
        self.clinical_keywords = config.get('clinical_keywords', [])
        self.clinical_cap = config.get('clinical_cap', 2)

        self.applicability_families = config.get('applicability_families', [])
        self.applicability_cap = config.get('applicability_cap', 3)
        self.clarity_families = config.get('clarity_families', [])
        self.clarity_cap = config.get('clarity_cap', 2)
        self.accessibility_families = config.get('accessibility_families', [])
        self.accessibility_cap = config.get('accessibility_cap', 2)

        self.weights: dict[str, float] = config['weights']
        self.max_subscores: dict[str, int] = config['max_subscores']
        self.total_scale = config.get('total_scale', 25)
        self.tier_thresholds: dict[str, int] = config['tier_thresholds']

        for name in SUBSCORES:
            if name not in self.weights or name not in self.max_subscores:
                raise FatalConfigurationError(f"weight table has no entry for '{name}'",
                                              key='scoring.weights')

        self.weighted_max = sum(self.max_subscores[name] * self.weights[name] for name in SUBSCORES)
        if self.weighted_max <= 0:
            raise FatalConfigurationError("weighted maximum must be positive",
                                          key='scoring.max_subscores')

    # ------------------------------------------------------------------
    # 科学依据
    # Scientific basis
    # ------------------------------------------------------------------

    def source_quality(self, source_name: str, source_tier: str | None = None) -> int:
        """
        来源质量：先按来源名匹配 A/B/C 列表，再使用来源自带的等级提示，否则默认1分
        """
        name = (source_name or '').lower()
        for tier in ('A', 'B', 'C'):
            if any(source in name for source in self.source_tiers.get(tier, [])):
                return self.tier_points.get(tier, self.default_source_points)

        if source_tier and source_tier.upper() in self.tier_points:
            return self.tier_points[source_tier.upper()]

        return self.default_source_points

    def evidence_level(self, content_type: str, text: str) -> int:
        """证据级别：按规则顺序匹配，第一条命中的规则生效"""
        for rule in self.evidence_rules:
            if content_type in rule.get('content_types', []) or \
                    any(keyword in text for keyword in rule.get('keywords', [])):
                return min(rule['points'], self.evidence_cap)
        return 0

    def peer_review(self, source_name: str, text: str) -> int:
        """同行评审：可信来源2分，正文提及评审1分"""
        name = (source_name or '').lower()
        if any(source in name for source in self.peer_reviewed_sources):
            return 2
        if any(keyword in text for keyword in self.peer_review_keywords):
            return 1
        return 0

    def methodology(self, text: str) -> int:
        return count_families(text, self.methodology_families, self.methodology_cap)

    def score_scientific_basis(self, article: Article, text: str) -> tuple[int, dict[str, int]]:
        breakdown = {
            'source_quality': self.source_quality(article.source_name, article.source_tier),
            'evidence_level': self.evidence_level(article.content_type, text),
            'peer_review': self.peer_review(article.source_name, text),
            'methodology': self.methodology(text),
        }
        return min(sum(breakdown.values()), self.max_subscores['scientific_basis']), breakdown

    # ------------------------------------------------------------------
    # 相关性
    # Relevance
    # ------------------------------------------------------------------

    def freshness(self, published_date: str | None, now: datetime) -> int:
        """
        时效性：按发布至今的天数落入的区间计分

        无法解析的日期计0分。
        """
        published = parse_date(published_date)
        if published is None:
            return 0

        if published.tzinfo is not None and now.tzinfo is None:
            published = published.astimezone().replace(tzinfo=None)
        elif published.tzinfo is None and now.tzinfo is not None:
            published = published.replace(tzinfo=now.tzinfo)

        age_days = (now - published).days
        for band in self.freshness_bands:
            if age_days <= band['max_days']:
                return band['points']
        return 0

    def topical_relevance(self, text: str, keywords: list[str]) -> int:
        """热点话题每个命中1分，关键词数量超过阈值再加1分"""
        hits = sum(1 for topic in self.hot_topics if topic in text)
        if keywords and len(keywords) > self.keyword_bonus_threshold:
            hits += 1
        return min(hits, self.topical_cap)

    def clinical_significance(self, text: str) -> int:
        return count_keywords(text, self.clinical_keywords, self.clinical_cap)

    def score_relevance(self, article: Article, text: str, now: datetime) -> tuple[int, dict[str, int]]:
        breakdown = {
            'freshness': self.freshness(article.published_date, now),
            'topical_relevance': self.topical_relevance(text, article.keywords),
            'clinical_significance': self.clinical_significance(text),
        }
        return min(sum(breakdown.values()), self.max_subscores['relevance']), breakdown

    # ------------------------------------------------------------------
    # 实用性
    # Practicality
    # ------------------------------------------------------------------

    def score_practicality(self, text: str) -> tuple[int, dict[str, int]]:
        breakdown = {
            'clinical_applicability': count_families(
                text, self.applicability_families, self.applicability_cap),
            'recommendation_clarity': count_families(
                text, self.clarity_families, self.clarity_cap),
            'practice_accessibility': count_families(
                text, self.accessibility_families, self.accessibility_cap),
        }
        return min(sum(breakdown.values()), self.max_subscores['practicality']), breakdown

    # ------------------------------------------------------------------
    # 总分
    # Total
    # ------------------------------------------------------------------

    def total_score(self, scientific_basis: int, relevance: int, practicality: int) -> int:
        """
        计算归一化总分

        Examples:
            >>> scorer.total_score(8, 6, 5)  # 6.55 / 8.55 * 25 = 19.15
            19
        """
        weighted = (
            scientific_basis * self.weights['scientific_basis']
            + relevance * self.weights['relevance']
            + practicality * self.weights['practicality']
        )
        total = round_half_up(weighted / self.weighted_max * self.total_scale)
        return max(0, min(total, self.total_scale))

    def quality_tier(self, total: int) -> QualityTier:
        """总分 >= A阈值为A，>= B阈值为B，>= C阈值为C，否则D"""
        for tier in (QualityTier.A, QualityTier.B, QualityTier.C):
            threshold = self.tier_thresholds.get(tier.value)
            if threshold is not None and total >= threshold:
                return tier
        return QualityTier.D

    def score(self, article: Article, now: datetime | None = None) -> Score:
        """
        为文章评分
        Score an article

        Args:
            article: 文章
            now: 计算时效性的参考时间，默认当前时间

        Returns:
            Score
        """
        now = now or datetime.now()
        text = (article.content or '').lower()

        scientific, scientific_parts = self.score_scientific_basis(article, text)
        relevance, relevance_parts = self.score_relevance(article, text, now)
        practicality, practicality_parts = self.score_practicality(text)
        total = self.total_score(scientific, relevance, practicality)

        return Score(
            scientific_basis=scientific,
            relevance=relevance,
            practicality=practicality,
            total=total,
            quality_tier=self.quality_tier(total),
            breakdown={**scientific_parts, **relevance_parts, **practicality_parts},
            article_id=article.id,
            scored_at=now.isoformat(),
        )
