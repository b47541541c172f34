"""
PostGenerator - 帖子生成器
PostGenerator - Post Generator

把达到生成阈值的文章按内容类型模板生成待审核的帖子。
Generates pending Posts from articles that pass the generation threshold.

生成后的正文长度必须在 [min_post_length, max_post_length] 之间，
否则丢弃（计为跳过）。
"""

import logging
from collections import OrderedDict
from datetime import datetime

from medpost.exceptions import FatalConfigurationError, TransientCollaboratorError, ValidationFailure
from medpost.generation.templates import TemplateRenderer, adapt_title, build_hashtags
from medpost.models import Article, BatchStats, Post, PostStatus
from medpost.processors.text_cleaner import count_words, reading_time

logger = logging.getLogger(__name__)


def validate_post(content: str, min_length: int = 100, max_length: int = 600) -> None:
    """
    校验帖子正文长度

    Raises:
        ValidationFailure: 长度不在 [min_length, max_length] 内
    """
    length = len(content or '')
    if length < min_length or length > max_length:
        raise ValidationFailure(
            f"Post length {length} outside [{min_length}, {max_length}]",
            {'length': length},
        )


class PostGenerator:
    """
    帖子生成器
    Post Generator

    Args:
        config: generation 配置段
    """

    def __init__(self, config: dict):
        if not config.get('templates'):
            raise FatalConfigurationError("post templates are required", key='generation.templates')

        self.default_content_type = config.get('default_content_type', 'research')
        if self.default_content_type not in config['templates']:
            raise FatalConfigurationError(
                f"no template for default content type '{self.default_content_type}'",
                key='generation.templates',
            )

        self.renderer = TemplateRenderer(config)
        self.min_post_length = config.get('min_post_length', 100)
        self.max_post_length = config.get('max_post_length', 600)
        self.max_title_length = config.get('max_title_length', 80)
        self.words_per_minute = config.get('words_per_minute', 200)
        self.base_hashtags = config.get('base_hashtags', [])
        self.type_hashtags = config.get('type_hashtags', {})

    def select_content_type(self, article: Article) -> str:
        """有对应模板时使用文章的内容类型，否则使用默认类型"""
        if article.content_type in self.renderer.templates:
            return article.content_type
        return self.default_content_type

    def build_post(self, article: Article) -> Post:
        """
        构建帖子

        Raises:
            ValidationFailure: 正文长度不合格
        """
        content_type = self.select_content_type(article)
        title = adapt_title(article.title, self.max_title_length)
        body, sections = self.renderer.render(
            content_type, title, article.content, article.source_name, article.url
        )
        validate_post(body, self.min_post_length, self.max_post_length)

        post = Post(
            article_id=article.id,
            specialization=article.specialization,
            content_type=content_type,
            title=title,
            content=body,
            hashtags=build_hashtags(
                article.specialization, content_type, self.base_hashtags, self.type_hashtags
            ),
            source_name=article.source_name,
            source_url=article.url,
            score=article.score.total if article.score else 0,
            word_count=count_words(body),
            reading_time=reading_time(body, self.words_per_minute),
            status=PostStatus.PENDING,
            generated_at=datetime.now().isoformat(),
        )

        for section in sections:
            if section.target_field == 'summary' and not post.summary:
                post.summary = section.text
            elif section.target_field == 'key_points' and not post.key_points:
                post.key_points = list(section.items)
            elif section.target_field == 'practical_application' and not post.practical_application:
                post.practical_application = section.text

        return post

    def generate(self, article: Article) -> Post | None:
        """
        生成帖子
        Generate a post

        Returns:
            帖子；正文未通过长度校验时返回None
        """
        try:
            return self.build_post(article)
        except ValidationFailure as e:
            logger.info(f"Article {article.id} rejected by post validation: {e.message}")
            return None


class GenerationStage:
    """
    生成阶段
    Generation Stage

    取出达到阈值且尚无帖子的文章，按专科分组，每组每次最多生成
    max_posts_per_specialization 个帖子。
    正文未通过长度校验的文章记为 invalid，之后不再重试。
    """

    def __init__(self, repository, generator: PostGenerator, threshold: int,
                 max_posts_per_specialization: int = 5):
        self.repository = repository
        self.generator = generator
        self.threshold = threshold
        self.max_posts_per_specialization = max_posts_per_specialization

    def run(self) -> BatchStats:
        stats = BatchStats(stage='generate')
        articles = self.repository.fetch_articles_above_threshold(self.threshold)
        logger.info(f"Found {len(articles)} articles with score >= {self.threshold}")

        groups: OrderedDict[str, list[Article]] = OrderedDict()
        for article in articles:
            groups.setdefault(article.specialization, []).append(article)

        for specialization, group in groups.items():
            generated = 0
            for article in group:
                if generated >= self.max_posts_per_specialization:
                    break
                try:
                    post = self.generator.generate(article)
                    if post is None:
                        self.repository.mark_article_generation(article.id, 'invalid')
                        stats.skipped += 1
                        continue
                    post.id = self.repository.save_post(post)
                    generated += 1
                    stats.processed += 1
                except TransientCollaboratorError as e:
                    stats.errored += 1
                    logger.error(f"Could not save post for article {article.id}: {e.message}")
                except Exception as e:
                    stats.skipped += 1
                    logger.exception(f"Generation failed for article {article.id}: {e}")

            logger.info(f"{specialization}: {generated} posts generated")

        logger.info(f"Generation finished - {stats.summary()}")
        return stats
