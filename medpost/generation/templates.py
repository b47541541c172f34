"""
帖子模板模块
Post Templates Module

按内容类型选择模板，从正文中按句子抽取各段内容并渲染帖子正文。
Selects a template per content type, extracts sentence-level fragments
from the article body and renders the post body.

模板结构（段落顺序、标题、关键词、兜底文本）全部来自配置。
"""

import re
from dataclasses import dataclass, field

from medpost.processors.text_cleaner import normalize_whitespace, split_sentences

_LEADING_NUMBER = re.compile(r'^\d+\.\s*')
_COLON = re.compile(r'\s*:\s*')

SECTION_SUMMARY = 'summary'
SECTION_LIST = 'list'
SECTION_SENTENCE = 'sentence'


def adapt_title(title: str, max_length: int = 80) -> str:
    """
    适配标题
    Adapt a title for a channel post

    去掉开头的编号、规范冒号和空白，超长时截断并加省略号。

    Examples:
        >>> adapt_title('3.  Новые данные :  инсулин')
        'Новые данные: инсулин'
        >>> len(adapt_title('x' * 120))
        80
    """
    adapted = _LEADING_NUMBER.sub('', (title or '').strip())
    adapted = _COLON.sub(': ', adapted, count=1)
    adapted = normalize_whitespace(adapted)
    if len(adapted) > max_length:
        adapted = adapted[:max_length - 3] + '...'
    return adapted


def build_hashtags(specialization: str, content_type: str, base_hashtags: list[str],
                   type_hashtags: dict[str, str]) -> list[str]:
    """
    生成话题标签：固定基础标签 + 专科 + 内容类型

    Examples:
        >>> build_hashtags('cardiology', 'news', ['#медицина'], {'news': '#новости'})
        ['#медицина', '#cardiology', '#новости']
    """
    hashtags = list(base_hashtags)
    hashtags.append(f"#{specialization}")
    type_tag = type_hashtags.get(content_type)
    if type_tag:
        hashtags.append(type_tag)
    return hashtags


def matching_sentences(sentences: list[str], keywords: list[str]) -> list[str]:
    """返回包含任意关键词的句子（大小写不敏感）"""
    lowered_keywords = [keyword.lower() for keyword in keywords]
    return [
        sentence for sentence in sentences
        if any(keyword in sentence.lower() for keyword in lowered_keywords)
    ]


@dataclass
class RenderedSection:
    """渲染后的段落"""
    name: str
    label: str
    text: str
    target_field: str | None = None
    items: list[str] = field(default_factory=list)


class TemplateRenderer:
    """
    模板渲染器
    Template Renderer

    Args:
        config: generation 配置段
    """

    def __init__(self, config: dict):
        self.templates: dict[str, dict] = config['templates']
        self.summary_sentences = config.get('summary_sentences', 2)
        self.max_items = config.get('max_items', 3)
        self.min_sentence_length = config.get('min_sentence_length', 10)
        self.list_fallback = config.get('list_fallback', '•')
        self.source_label = config.get('source_label', '')

    def render_section(self, section: dict, sentences: list[str], text: str) -> RenderedSection:
        """按段落类型抽取内容"""
        kind = section.get('kind', SECTION_SENTENCE)
        rendered = RenderedSection(
            name=section['name'],
            label=section.get('label', ''),
            text='',
            target_field=section.get('field'),
        )

        if kind == SECTION_SUMMARY:
            count = min(max(section.get('sentences', self.summary_sentences), 1), 3)
            if sentences:
                rendered.text = '. '.join(sentences[:count]) + '.'
            else:
                rendered.text = text[:150].strip() + '...'

        elif kind == SECTION_LIST:
            rendered.items = matching_sentences(sentences, section.get('keywords', []))[:self.max_items]
            if rendered.items:
                rendered.text = '\n'.join(f"• {item}" for item in rendered.items)
            else:
                rendered.text = section.get('fallback', self.list_fallback)

        else:
            matches = matching_sentences(sentences, section.get('keywords', []))
            rendered.text = matches[0] + '.' if matches else section.get('fallback', '')

        return rendered

    def render(self, content_type: str, title: str, text: str, source_name: str,
               source_url: str = '') -> tuple[str, list[RenderedSection]]:
        """
        渲染帖子正文

        Returns:
            (正文, 各段落)
        """
        template = self.templates[content_type]
        sentences = split_sentences(text, self.min_sentence_length)
        sections = [self.render_section(section, sentences, text) for section in template['sections']]

        parts = [f"{template.get('emoji', '')} **{title}**".strip()]
        for section in sections:
            parts.append(f"{section.label}\n{section.text}" if section.label else section.text)

        source_line = f"{self.source_label} {source_name}".strip()
        if source_url:
            source_line += f"\n🔗 {source_url}"
        parts.append(source_line)

        return '\n\n'.join(parts), sections
