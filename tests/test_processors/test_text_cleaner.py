"""
文本清洗测试
Tests for text cleaning helpers
"""

from hypothesis import given, settings, strategies as st

from medpost.processors.text_cleaner import (
    build_summary,
    clean_text,
    clean_title,
    content_fingerprint,
    count_words,
    extract_keywords,
    reading_time,
    split_sentences,
    strip_html,
)


class TestCleanText:
    """测试正文清洗"""

    def test_strips_html_and_fixes_punctuation(self):
        assert clean_text('<p>Hello ,  <b>world</b> !</p>') == 'Hello, world!'

    def test_removes_special_characters(self):
        assert clean_text('Dose: 5 mg/kg © 2024') == 'Dose: 5 mg kg 2024'

    def test_keeps_cyrillic_words(self):
        assert clean_text('<div>Сахарный   диабет</div>') == 'Сахарный диабет'

    def test_empty_content(self):
        assert clean_text('') == ''
        assert strip_html('') == ''

    def test_clean_title(self):
        assert clean_title('  <i>Heart</i>   failure ') == 'Heart failure'


class TestFingerprint:
    """测试内容指纹"""

    def test_formatting_differences_ignored(self):
        """测试HTML、空白和大小写差异不影响指纹"""
        assert content_fingerprint('<p>Some   TEXT</p>') == content_fingerprint('some text')

    def test_different_text_differs(self):
        assert content_fingerprint('first text') != content_fingerprint('second text')

    @given(st.text(max_size=200))
    @settings(max_examples=50)
    def test_fingerprint_is_deterministic_hex(self, text):
        """属性：指纹是确定性的64位十六进制字符串"""
        first = content_fingerprint(text)

        assert first == content_fingerprint(text)
        assert len(first) == 64


class TestSentencesAndSummary:
    """测试分句和摘要"""

    def test_split_sentences_drops_short_fragments(self):
        text = 'Short. This sentence is long enough! And this one too? Ok.'

        assert split_sentences(text) == ['This sentence is long enough', 'And this one too']

    def test_build_summary_joins_leading_sentences(self):
        text = 'First sentence here. Second sentence here. Third sentence here. Fourth one here.'

        assert build_summary(text, max_sentences=2) == 'First sentence here. Second sentence here.'

    def test_build_summary_falls_back_to_prefix(self):
        assert build_summary('tiny', max_sentences=3) == 'tiny...'


class TestCounting:
    """测试单词数、阅读时间和关键词"""

    def test_count_words(self):
        assert count_words('one two  three') == 3
        assert count_words('') == 0

    def test_reading_time_rounds_up(self):
        assert reading_time(' '.join(['w'] * 201)) == 2
        assert reading_time('') == 0

    def test_extract_keywords_by_frequency(self):
        text = 'insulin therapy insulin dose insulin therapy the and'

        assert extract_keywords(text, max_keywords=2) == ['insulin', 'therapy']

    def test_extract_keywords_min_length(self):
        assert extract_keywords('abc abcd abcd', min_length=4) == ['abcd']
