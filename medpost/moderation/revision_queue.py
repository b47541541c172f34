"""
修订队列
Revision Queue

为处于修订状态的帖子生成 Markdown 工作表，编辑填写修订内容后再读回，
通过 ModerationService.submit_revision 以新的审核周期重新进入 pending。

Writes one Markdown worksheet per post in revision, reads the edited
worksheets back and resubmits the revised content.
"""

import logging
import re
import shutil
from datetime import datetime
from pathlib import Path

from medpost.exceptions import InvalidTransition, TransientCollaboratorError, ValidationFailure
from medpost.models import BatchStats, Post
from medpost.moderation.moderation_service import ModerationService

logger = logging.getLogger(__name__)

REVISED_MARKER = '## ✏️ Revised content'
CHECKLIST_MARKER = '## ✅ Review checklist'
PLACEHOLDER = '<!-- Write the revised post here -->'
INDEX_FILE = 'README.md'
ARCHIVE_DIR = 'archive'

_WORKSHEET_NAME = re.compile(r'^post_(\d+)_.*\.md$')


def worksheet_name(post: Post) -> str:
    return f"post_{post.id}_c{post.moderation_cycle}_{post.specialization}.md"


def extract_revised_content(text: str) -> str | None:
    """
    提取两个标记之间的修订内容

    Returns:
        修订内容；标记缺失或内容为空时返回None
    """
    start = text.find(REVISED_MARKER)
    end = text.find(CHECKLIST_MARKER)
    if start == -1 or end == -1 or end < start:
        return None
    revised = text[start + len(REVISED_MARKER):end].replace(PLACEHOLDER, '').strip()
    return revised or None


class RevisionQueue:
    """
    修订队列
    Revision Queue

    Args:
        repository: 内容仓库
        service: 审核服务
        revision_dir: 工作表目录
        checklist: 工作表中的检查清单条目
    """

    def __init__(self, repository, service: ModerationService, revision_dir: str,
                 checklist: list[str] | None = None):
        self.repository = repository
        self.service = service
        self.revision_dir = Path(revision_dir)
        self.checklist = checklist or []

    def render_worksheet(self, post: Post, comment: str) -> str:
        """生成单个帖子的工作表"""
        checklist = '\n'.join(f"- [ ] {item}" for item in self.checklist)
        return (
            f"# Revision of post {post.id}\n\n"
            f"## 📋 Post details\n\n"
            f"- **ID:** {post.id}\n"
            f"- **Title:** {post.title}\n"
            f"- **Specialization:** {post.specialization}\n"
            f"- **Type:** {post.content_type}\n"
            f"- **Score:** {post.score}/25\n"
            f"- **Source:** {post.source_name}\n"
            f"- **URL:** {post.source_url}\n"
            f"- **Moderation cycle:** {post.moderation_cycle}\n"
            f"- **Generated at:** {post.generated_at}\n\n"
            f"## 📝 Current content\n\n"
            f"{post.content}\n\n"
            f"## 💬 Moderator comment\n\n"
            f"{comment}\n\n"
            f"{REVISED_MARKER}\n\n"
            f"{PLACEHOLDER}\n\n"
            f"{CHECKLIST_MARKER}\n\n"
            f"{checklist}\n\n"
            f"---\n"
            f"*Created {datetime.now().strftime('%Y-%m-%d %H:%M')}*\n"
        )

    def render_index(self, posts: list[Post]) -> str:
        """生成索引文件"""
        lines = [
            "# Revision queue",
            "",
            f"- **Posts waiting for revision:** {len(posts)}",
            f"- **Updated:** {datetime.now().strftime('%Y-%m-%d %H:%M')}",
            "",
        ]
        for post in posts:
            name = worksheet_name(post)
            lines.append(f"- [{post.specialization} - {post.title}](./{name}) (score {post.score}/25)")
        lines.append("")
        lines.append(f"Fill in the \"{REVISED_MARKER.lstrip('# ')}\" section and run the "
                     f"revision-process stage.")
        return '\n'.join(lines) + '\n'

    def create_files(self) -> BatchStats:
        """
        为修订中的帖子生成工作表

        已存在的工作表不会被覆盖；尚无修订评论的帖子跳过。
        """
        stats = BatchStats(stage='revision-create')
        self.revision_dir.mkdir(parents=True, exist_ok=True)

        posts = self.repository.fetch_posts_in_revision()
        logger.info(f"Found {len(posts)} posts in revision")

        listed = []
        for post in posts:
            decision = self.repository.get_decision(post.id, post.moderation_cycle)
            if decision is None or not decision.comment:
                stats.skipped += 1
                logger.info(f"Post {post.id} is waiting for a revision comment")
                continue

            listed.append(post)
            path = self.revision_dir / worksheet_name(post)
            if path.exists():
                stats.skipped += 1
                continue
            path.write_text(self.render_worksheet(post, decision.comment), encoding='utf-8')
            stats.processed += 1
            logger.info(f"Created revision worksheet {path.name}")

        (self.revision_dir / INDEX_FILE).write_text(self.render_index(listed), encoding='utf-8')
        logger.info(f"Revision worksheets - {stats.summary()}")
        return stats

    def process_files(self) -> BatchStats:
        """
        读取已填写的工作表并重新提交审核

        成功的工作表移入 archive/，没有修订内容的工作表保留原处。
        """
        stats = BatchStats(stage='revision-process')
        if not self.revision_dir.exists():
            return stats

        archive = self.revision_dir / ARCHIVE_DIR
        for path in sorted(self.revision_dir.glob('post_*.md')):
            match = _WORKSHEET_NAME.match(path.name)
            if not match:
                continue
            post_id = int(match.group(1))

            revised = extract_revised_content(path.read_text(encoding='utf-8'))
            if revised is None:
                stats.skipped += 1
                logger.warning(f"{path.name} has no revised content")
                continue

            try:
                self.service.submit_revision(post_id, revised)
            except (ValidationFailure, InvalidTransition) as e:
                stats.skipped += 1
                logger.warning(f"{path.name} not resubmitted: {e.message}")
                continue
            except TransientCollaboratorError as e:
                stats.errored += 1
                logger.error(f"{path.name} failed: {e.message}")
                continue

            archive.mkdir(parents=True, exist_ok=True)
            shutil.move(str(path), str(archive / path.name))
            stats.processed += 1
            logger.info(f"Post {post_id} resubmitted from {path.name}")

        logger.info(f"Revision processing - {stats.summary()}")
        return stats
