"""
Generation module for channel posts.
帖子生成模块。
"""

from .post_generator import GenerationStage, PostGenerator, validate_post
from .templates import TemplateRenderer, adapt_title, build_hashtags

__all__ = [
    'GenerationStage',
    'PostGenerator',
    'TemplateRenderer',
    'adapt_title',
    'build_hashtags',
    'validate_post',
]
