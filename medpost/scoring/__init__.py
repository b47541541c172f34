"""
Scoring module for article quality scoring.
评分模块，用于文章质量评分。
"""

from .quality_scorer import QualityScorer, round_half_up
from .scoring_stage import ScoringStage

__all__ = ['QualityScorer', 'ScoringStage', 'round_half_up']
