"""
内容仓库模块
Content Repository Module

提供流水线的持久化操作：原始文档、文章、评分、帖子和审核决定。
使用SQLite作为存储引擎。各阶段之间只通过这里持久化的状态耦合。

所有写操作都是幂等的，阶段在崩溃后可以直接重跑：
- 文档按URL去重（INSERT OR IGNORE）
- 评分按文章整体替换（INSERT OR REPLACE）
- 帖子每篇文章最多一条（INSERT OR IGNORE）
- 审核决定使用乐观检查：只有持久化状态仍与预期一致时才生效
"""

import functools
import json
import logging
import sqlite3
import time
from datetime import datetime
from typing import Any, Callable, TypeVar

from medpost.exceptions import DuplicateFound, InvalidTransition, TransientCollaboratorError
from medpost.models import (
    Article,
    Document,
    ModerationAction,
    ModerationDecision,
    Post,
    PostStatus,
    QualityTier,
    Score,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

# 可以被发布调度器取出的状态：error 的帖子在下一次运行时重试
PUBLISHABLE_STATUSES = (PostStatus.APPROVED.value, PostStatus.ERROR.value)


def retry_on_locked(max_retries: int = 5, base_delay: float = 0.1):
    """
    装饰器：在数据库锁定时自动重试

    使用指数退避策略重试数据库操作，重试耗尽后抛出 TransientCollaboratorError。

    Args:
        max_retries: 最大重试次数
        base_delay: 基础延迟时间（秒）
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            last_exception = None
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except sqlite3.OperationalError as e:
                    if "database is locked" in str(e):
                        last_exception = e
                        if attempt < max_retries:
                            delay = base_delay * (2 ** attempt)
                            logger.warning(
                                f"Database locked, retrying in {delay:.2f}s "
                                f"(attempt {attempt + 1}/{max_retries})"
                            )
                            time.sleep(delay)
                        continue
                    raise
            raise TransientCollaboratorError(
                f"Database still locked after {max_retries} retries",
                {'operation': func.__name__},
            ) from last_exception
        return wrapper
    return decorator


class ContentRepository:
    """
    内容仓库：数据库操作

    Attributes:
        db_path: SQLite数据库文件路径
    """

    def __init__(self, db_path: str, timeout: float = 30.0):
        """
        初始化仓库

        Args:
            db_path: SQLite数据库文件路径，使用':memory:'创建内存数据库
            timeout: 数据库锁等待超时时间（秒），默认30秒
        """
        self.db_path = db_path
        self.timeout = timeout
        self._connection: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """
        获取数据库连接

        使用WAL模式提高并发性能，设置超时时间避免锁定错误。
        """
        if self._connection is None:
            self._connection = sqlite3.connect(
                self.db_path,
                timeout=self.timeout,
                check_same_thread=False
            )
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA journal_mode=WAL")
            self._connection.execute(f"PRAGMA busy_timeout={int(self.timeout * 1000)}")
        return self._connection

    def close(self):
        """关闭数据库连接"""
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    @retry_on_locked(max_retries=5, base_delay=0.1)
    def init_db(self):
        """
        初始化数据库表结构

        如果表已存在则不会重复创建。
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                url TEXT UNIQUE NOT NULL,
                title TEXT NOT NULL,
                content TEXT,
                specialization TEXT,
                published_date TEXT,
                source_name TEXT,
                source_tier TEXT,
                source_type TEXT,
                authors TEXT,
                fetched_at TEXT NOT NULL,
                processed INTEGER DEFAULT 0,
                outcome TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS articles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                document_id INTEGER REFERENCES documents(id),
                url TEXT UNIQUE NOT NULL,
                title TEXT NOT NULL,
                content TEXT,
                summary TEXT,
                content_hash TEXT UNIQUE NOT NULL,
                language TEXT,
                content_type TEXT,
                specialization TEXT,
                keywords TEXT,
                authors TEXT,
                source_name TEXT,
                source_tier TEXT,
                published_date TEXT,
                processed_at TEXT,
                word_count INTEGER DEFAULT 0,
                reading_time INTEGER DEFAULT 0,
                generation_outcome TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS scores (
                article_id INTEGER PRIMARY KEY REFERENCES articles(id),
                scientific_basis INTEGER NOT NULL,
                relevance INTEGER NOT NULL,
                practicality INTEGER NOT NULL,
                total INTEGER NOT NULL,
                quality_tier TEXT NOT NULL,
                breakdown TEXT,
                scored_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS posts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                article_id INTEGER UNIQUE NOT NULL REFERENCES articles(id),
                specialization TEXT NOT NULL,
                content_type TEXT NOT NULL,
                title TEXT,
                content TEXT NOT NULL,
                summary TEXT,
                key_points TEXT,
                practical_application TEXT,
                hashtags TEXT,
                source_name TEXT,
                source_url TEXT,
                score INTEGER DEFAULT 0,
                word_count INTEGER DEFAULT 0,
                reading_time INTEGER DEFAULT 0,
                status TEXT NOT NULL DEFAULT 'pending',
                moderation_cycle INTEGER NOT NULL DEFAULT 1,
                generated_at TEXT NOT NULL,
                published_at TEXT,
                external_message_ref TEXT,
                publish_attempts INTEGER DEFAULT 0,
                last_error TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS moderation_decisions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                post_id INTEGER NOT NULL REFERENCES posts(id),
                cycle INTEGER NOT NULL,
                action TEXT NOT NULL,
                comment TEXT,
                moderator_id TEXT,
                decided_at TEXT NOT NULL,
                UNIQUE (post_id, cycle)
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_documents_processed ON documents(processed)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_articles_hash ON articles(content_hash)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_posts_status ON posts(status)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_posts_generated ON posts(generated_at)")

        conn.commit()

    # ------------------------------------------------------------------
    # 文档
    # Documents
    # ------------------------------------------------------------------

    @retry_on_locked(max_retries=5, base_delay=0.1)
    def save_document(self, document: Document) -> int | None:
        """
        保存原始文档

        URL已存在时不插入。

        Returns:
            新文档的ID；URL已存在时返回None
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            INSERT OR IGNORE INTO documents (
                url, title, content, specialization, published_date,
                source_name, source_tier, source_type, authors, fetched_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            document.url,
            document.title,
            document.content,
            document.specialization,
            document.published_date,
            document.source_name,
            document.source_tier,
            document.source_type,
            json.dumps(document.authors, ensure_ascii=False),
            document.fetched_at or datetime.now().isoformat(),
        ))
        conn.commit()

        if cursor.rowcount == 0:
            return None
        return cursor.lastrowid

    def fetch_unprocessed_documents(self, limit: int = 50) -> list[Document]:
        """获取未处理的文档，按入库顺序"""
        cursor = self._get_connection().cursor()
        cursor.execute(
            "SELECT * FROM documents WHERE processed = 0 ORDER BY id LIMIT ?",
            (limit,)
        )
        return [self._row_to_document(row) for row in cursor.fetchall()]

    @retry_on_locked(max_retries=5, base_delay=0.1)
    def mark_document_processed(self, document_id: int, outcome: str):
        """
        标记文档已处理

        Args:
            document_id: 文档ID
            outcome: 处理结果 article / duplicate / invalid
        """
        conn = self._get_connection()
        conn.execute(
            "UPDATE documents SET processed = 1, outcome = ? WHERE id = ?",
            (outcome, document_id)
        )
        conn.commit()

    # ------------------------------------------------------------------
    # 文章
    # Articles
    # ------------------------------------------------------------------

    def is_known_by_url(self, url: str) -> bool:
        """检查URL是否已存在于文章中"""
        cursor = self._get_connection().cursor()
        cursor.execute("SELECT 1 FROM articles WHERE url = ? LIMIT 1", (url,))
        return cursor.fetchone() is not None

    def is_known_by_hash(self, content_hash: str) -> bool:
        """检查内容指纹是否已存在"""
        cursor = self._get_connection().cursor()
        cursor.execute("SELECT 1 FROM articles WHERE content_hash = ? LIMIT 1", (content_hash,))
        return cursor.fetchone() is not None

    def recent_titles(self, window: int) -> list[str]:
        """
        获取最近入库的文章标题

        Args:
            window: 最多返回的标题数量

        Returns:
            标题列表，最新的在前
        """
        cursor = self._get_connection().cursor()
        cursor.execute("SELECT title FROM articles ORDER BY id DESC LIMIT ?", (window,))
        return [row['title'] for row in cursor.fetchall()]

    @retry_on_locked(max_retries=5, base_delay=0.1)
    def save_article(self, article: Article) -> int:
        """
        保存文章

        Returns:
            新插入文章的ID

        Raises:
            DuplicateFound: URL或内容指纹已存在
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO articles (
                    document_id, url, title, content, summary, content_hash,
                    language, content_type, specialization, keywords, authors,
                    source_name, source_tier, published_date, processed_at,
                    word_count, reading_time
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                article.document_id,
                article.url,
                article.title,
                article.content,
                article.summary,
                article.content_hash,
                article.language,
                article.content_type,
                article.specialization,
                json.dumps(article.keywords, ensure_ascii=False),
                json.dumps(article.authors, ensure_ascii=False),
                article.source_name,
                article.source_tier,
                article.published_date,
                article.processed_at or datetime.now().isoformat(),
                article.word_count,
                article.reading_time,
            ))
        except sqlite3.IntegrityError as e:
            conn.rollback()
            raise DuplicateFound(
                f"Article already stored: {article.url}",
                reason='integrity',
                context={'url': article.url, 'error': str(e)},
            ) from e

        conn.commit()
        return cursor.lastrowid

    def get_article(self, article_id: int) -> Article | None:
        """根据ID获取文章（附带评分）"""
        cursor = self._get_connection().cursor()
        cursor.execute("SELECT * FROM articles WHERE id = ?", (article_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        article = self._row_to_article(row)
        article.score = self.get_score(article_id)
        return article

    def fetch_unscored_articles(self, limit: int = 100) -> list[Article]:
        """获取尚未评分的文章"""
        cursor = self._get_connection().cursor()
        cursor.execute("""
            SELECT a.* FROM articles a
            LEFT JOIN scores s ON s.article_id = a.id
            WHERE s.article_id IS NULL
            ORDER BY a.id
            LIMIT ?
        """, (limit,))
        return [self._row_to_article(row) for row in cursor.fetchall()]

    # ------------------------------------------------------------------
    # 评分
    # Scores
    # ------------------------------------------------------------------

    @retry_on_locked(max_retries=5, base_delay=0.1)
    def save_score(self, article_id: int, score: Score):
        """
        保存评分

        同一文章的旧评分会被整体替换。
        """
        conn = self._get_connection()
        conn.execute("""
            INSERT OR REPLACE INTO scores (
                article_id, scientific_basis, relevance, practicality,
                total, quality_tier, breakdown, scored_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            article_id,
            score.scientific_basis,
            score.relevance,
            score.practicality,
            score.total,
            score.quality_tier.value,
            json.dumps(score.breakdown),
            score.scored_at or datetime.now().isoformat(),
        ))
        conn.commit()

    def get_score(self, article_id: int) -> Score | None:
        """获取文章的评分"""
        cursor = self._get_connection().cursor()
        cursor.execute("SELECT * FROM scores WHERE article_id = ?", (article_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_score(row)

    @retry_on_locked(max_retries=5, base_delay=0.1)
    def mark_article_generation(self, article_id: int, outcome: str):
        """
        记录文章的生成结果，已记录的文章不再进入生成阶段

        Args:
            article_id: 文章ID
            outcome: 生成结果，如 invalid
        """
        conn = self._get_connection()
        conn.execute(
            "UPDATE articles SET generation_outcome = ? WHERE id = ?",
            (outcome, article_id)
        )
        conn.commit()

    def fetch_articles_above_threshold(self, threshold: int, limit: int | None = None) -> list[Article]:
        """
        获取总分达到阈值、尚未生成帖子且未被生成阶段丢弃的文章

        Args:
            threshold: 最低总分（含）
            limit: 最多返回数量

        Returns:
            附带评分的文章列表，按总分从高到低
        """
        cursor = self._get_connection().cursor()
        query = """
            SELECT a.* FROM articles a
            JOIN scores s ON s.article_id = a.id
            WHERE s.total >= ?
              AND a.generation_outcome IS NULL
              AND NOT EXISTS (SELECT 1 FROM posts p WHERE p.article_id = a.id)
            ORDER BY s.total DESC, a.id
        """
        params: list[Any] = [threshold]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        cursor.execute(query, params)

        articles = []
        for row in cursor.fetchall():
            article = self._row_to_article(row)
            article.score = self.get_score(article.id)
            articles.append(article)
        return articles

    # ------------------------------------------------------------------
    # 帖子
    # Posts
    # ------------------------------------------------------------------

    @retry_on_locked(max_retries=5, base_delay=0.1)
    def save_post(self, post: Post) -> int:
        """
        保存生成的帖子

        每篇文章最多一个帖子；重复保存返回已有帖子的ID。

        Returns:
            帖子ID
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            INSERT OR IGNORE INTO posts (
                article_id, specialization, content_type, title, content,
                summary, key_points, practical_application, hashtags,
                source_name, source_url, score, word_count, reading_time,
                status, moderation_cycle, generated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            post.article_id,
            post.specialization,
            post.content_type,
            post.title,
            post.content,
            post.summary,
            json.dumps(post.key_points, ensure_ascii=False),
            post.practical_application,
            json.dumps(post.hashtags, ensure_ascii=False),
            post.source_name,
            post.source_url,
            post.score,
            post.word_count,
            post.reading_time,
            post.status.value,
            post.moderation_cycle,
            post.generated_at or datetime.now().isoformat(),
        ))
        conn.commit()

        if cursor.rowcount == 0:
            cursor.execute("SELECT id FROM posts WHERE article_id = ?", (post.article_id,))
            existing_id = cursor.fetchone()['id']
            logger.debug(f"Post for article {post.article_id} already exists (id={existing_id})")
            return existing_id
        return cursor.lastrowid

    def get_post(self, post_id: int) -> Post | None:
        """根据ID获取帖子"""
        cursor = self._get_connection().cursor()
        cursor.execute("SELECT * FROM posts WHERE id = ?", (post_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_post(row)

    def fetch_pending_posts(self, specialization: str | None = None) -> list[Post]:
        """
        获取待审核的帖子

        Args:
            specialization: 只返回该专科的帖子（可选）

        Returns:
            帖子列表，按生成时间从旧到新
        """
        cursor = self._get_connection().cursor()
        query = "SELECT * FROM posts WHERE status = ?"
        params: list[Any] = [PostStatus.PENDING.value]
        if specialization:
            query += " AND specialization = ?"
            params.append(specialization)
        query += " ORDER BY generated_at, id"
        cursor.execute(query, params)
        return [self._row_to_post(row) for row in cursor.fetchall()]

    @retry_on_locked(max_retries=5, base_delay=0.1)
    def apply_moderation_decision(
        self,
        post_id: int,
        decision: ModerationDecision,
        expected_status: PostStatus,
        new_status: PostStatus,
    ):
        """
        应用审核决定

        只有当帖子的持久化状态和审核周期仍与决定计算时一致时才生效，
        状态更新和决定记录在同一事务中写入。

        Raises:
            InvalidTransition: 帖子不存在，或状态/周期已改变
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE posts SET status = ?
                WHERE id = ? AND status = ? AND moderation_cycle = ?
            """, (new_status.value, post_id, expected_status.value, decision.cycle))

            if cursor.rowcount == 0:
                conn.rollback()
                current = self.get_post(post_id)
                raise InvalidTransition(
                    post_id=post_id,
                    current_status=current.status.value if current else None,
                    action=decision.action.value,
                )

            cursor.execute("""
                INSERT INTO moderation_decisions (
                    post_id, cycle, action, comment, moderator_id, decided_at
                ) VALUES (?, ?, ?, ?, ?, ?)
            """, (
                post_id,
                decision.cycle,
                decision.action.value,
                decision.comment,
                decision.moderator_id,
                decision.decided_at,
            ))
        except sqlite3.IntegrityError as e:
            conn.rollback()
            raise InvalidTransition(
                post_id=post_id,
                current_status=expected_status.value,
                action=decision.action.value,
                message=f"Decision for post {post_id} cycle {decision.cycle} already recorded",
            ) from e

        conn.commit()

    @retry_on_locked(max_retries=5, base_delay=0.1)
    def attach_revision_comment(self, post_id: int, cycle: int, comment: str) -> bool:
        """
        为修订决定附加评论

        每个周期只接受一条评论。

        Returns:
            是否成功附加（已有评论或无修订决定时返回False）
        """
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            UPDATE moderation_decisions SET comment = ?
            WHERE post_id = ? AND cycle = ? AND action = ?
              AND (comment IS NULL OR comment = '')
        """, (comment, post_id, cycle, ModerationAction.SEND_TO_REVISION.value))
        conn.commit()
        return cursor.rowcount > 0

    def get_decisions(self, post_id: int) -> list[ModerationDecision]:
        """获取帖子的全部审核决定，按周期排序"""
        cursor = self._get_connection().cursor()
        cursor.execute(
            "SELECT * FROM moderation_decisions WHERE post_id = ? ORDER BY cycle",
            (post_id,)
        )
        return [self._row_to_decision(row) for row in cursor.fetchall()]

    def get_decision(self, post_id: int, cycle: int) -> ModerationDecision | None:
        """获取指定周期的审核决定"""
        cursor = self._get_connection().cursor()
        cursor.execute(
            "SELECT * FROM moderation_decisions WHERE post_id = ? AND cycle = ?",
            (post_id, cycle)
        )
        row = cursor.fetchone()
        return self._row_to_decision(row) if row else None

    def fetch_posts_in_revision(self) -> list[Post]:
        """获取处于修订状态的帖子"""
        cursor = self._get_connection().cursor()
        cursor.execute(
            "SELECT * FROM posts WHERE status = ? ORDER BY generated_at, id",
            (PostStatus.REVISION.value,)
        )
        return [self._row_to_post(row) for row in cursor.fetchall()]

    @retry_on_locked(max_retries=5, base_delay=0.1)
    def apply_revised_content(
        self,
        post_id: int,
        new_content: str,
        word_count: int | None = None,
        reading_time: int | None = None,
    ) -> bool:
        """
        写入修订后的内容并重新进入待审核状态

        审核周期加一，之前的审核决定保留。

        Returns:
            是否成功（帖子不在修订状态时返回False）
        """
        conn = self._get_connection()
        cursor = conn.cursor()
        cursor.execute("""
            UPDATE posts
            SET content = ?,
                status = ?,
                moderation_cycle = moderation_cycle + 1,
                word_count = COALESCE(?, word_count),
                reading_time = COALESCE(?, reading_time)
            WHERE id = ? AND status = ?
        """, (
            new_content,
            PostStatus.PENDING.value,
            word_count,
            reading_time,
            post_id,
            PostStatus.REVISION.value,
        ))
        conn.commit()
        return cursor.rowcount > 0

    def fetch_approved_posts(self, content_types: list[str]) -> list[Post]:
        """
        获取待发布的帖子

        返回已批准或上次发布失败的帖子，限定内容类型，按生成时间从旧到新。
        """
        if not content_types:
            return []

        cursor = self._get_connection().cursor()
        status_marks = ','.join('?' * len(PUBLISHABLE_STATUSES))
        type_marks = ','.join('?' * len(content_types))
        cursor.execute(f"""
            SELECT * FROM posts
            WHERE status IN ({status_marks}) AND content_type IN ({type_marks})
            ORDER BY generated_at, id
        """, list(PUBLISHABLE_STATUSES) + list(content_types))
        return [self._row_to_post(row) for row in cursor.fetchall()]

    @retry_on_locked(max_retries=5, base_delay=0.1)
    def mark_published(self, post_id: int, external_message_ref: str) -> bool:
        """
        标记帖子已发布

        Returns:
            是否成功（帖子不处于可发布状态时返回False）
        """
        conn = self._get_connection()
        cursor = conn.cursor()
        status_marks = ','.join('?' * len(PUBLISHABLE_STATUSES))
        cursor.execute(f"""
            UPDATE posts
            SET status = ?, published_at = ?, external_message_ref = ?,
                publish_attempts = publish_attempts + 1, last_error = NULL
            WHERE id = ? AND status IN ({status_marks})
        """, [
            PostStatus.PUBLISHED.value,
            datetime.now().isoformat(),
            external_message_ref,
            post_id,
        ] + list(PUBLISHABLE_STATUSES))
        conn.commit()
        return cursor.rowcount > 0

    @retry_on_locked(max_retries=5, base_delay=0.1)
    def mark_publish_error(self, post_id: int, error: str | None = None) -> bool:
        """标记帖子发布失败，下一次调度运行时重试"""
        conn = self._get_connection()
        cursor = conn.cursor()
        status_marks = ','.join('?' * len(PUBLISHABLE_STATUSES))
        cursor.execute(f"""
            UPDATE posts
            SET status = ?, publish_attempts = publish_attempts + 1, last_error = ?
            WHERE id = ? AND status IN ({status_marks})
        """, [PostStatus.ERROR.value, error, post_id] + list(PUBLISHABLE_STATUSES))
        conn.commit()
        return cursor.rowcount > 0

    def get_moderation_stats(self) -> dict[str, int]:
        """按状态统计帖子数量"""
        cursor = self._get_connection().cursor()
        cursor.execute("SELECT status, COUNT(*) AS total FROM posts GROUP BY status")
        stats = {status.value: 0 for status in PostStatus}
        for row in cursor.fetchall():
            stats[row['status']] = row['total']
        return stats

    # ------------------------------------------------------------------
    # 行转换
    # Row conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _loads(value: str | None) -> list:
        return json.loads(value) if value else []

    def _row_to_document(self, row: sqlite3.Row) -> Document:
        return Document(
            id=row['id'],
            url=row['url'],
            title=row['title'],
            content=row['content'] or '',
            specialization=row['specialization'],
            published_date=row['published_date'] or '',
            source_name=row['source_name'] or '',
            source_tier=row['source_tier'],
            source_type=row['source_type'] or '',
            authors=self._loads(row['authors']),
            fetched_at=row['fetched_at'],
        )

    def _row_to_article(self, row: sqlite3.Row) -> Article:
        return Article(
            id=row['id'],
            document_id=row['document_id'],
            url=row['url'],
            title=row['title'],
            content=row['content'] or '',
            summary=row['summary'] or '',
            content_hash=row['content_hash'],
            language=row['language'],
            content_type=row['content_type'],
            specialization=row['specialization'],
            keywords=self._loads(row['keywords']),
            authors=self._loads(row['authors']),
            source_name=row['source_name'] or '',
            source_tier=row['source_tier'],
            published_date=row['published_date'] or '',
            processed_at=row['processed_at'] or '',
            word_count=row['word_count'],
            reading_time=row['reading_time'],
        )

    def _row_to_score(self, row: sqlite3.Row) -> Score:
        return Score(
            scientific_basis=row['scientific_basis'],
            relevance=row['relevance'],
            practicality=row['practicality'],
            total=row['total'],
            quality_tier=QualityTier(row['quality_tier']),
            breakdown=json.loads(row['breakdown']) if row['breakdown'] else {},
            article_id=row['article_id'],
            scored_at=row['scored_at'],
        )

    def _row_to_post(self, row: sqlite3.Row) -> Post:
        return Post(
            id=row['id'],
            article_id=row['article_id'],
            specialization=row['specialization'],
            content_type=row['content_type'],
            title=row['title'] or '',
            content=row['content'],
            summary=row['summary'] or '',
            key_points=self._loads(row['key_points']),
            practical_application=row['practical_application'] or '',
            hashtags=self._loads(row['hashtags']),
            source_name=row['source_name'] or '',
            source_url=row['source_url'] or '',
            score=row['score'],
            word_count=row['word_count'],
            reading_time=row['reading_time'],
            status=PostStatus(row['status']),
            moderation_cycle=row['moderation_cycle'],
            generated_at=row['generated_at'],
            published_at=row['published_at'],
            external_message_ref=row['external_message_ref'],
            publish_attempts=row['publish_attempts'],
        )

    def _row_to_decision(self, row: sqlite3.Row) -> ModerationDecision:
        return ModerationDecision(
            post_id=row['post_id'],
            action=ModerationAction(row['action']),
            cycle=row['cycle'],
            comment=row['comment'],
            moderator_id=row['moderator_id'],
            decided_at=row['decided_at'],
        )
