"""
配置加载模块
Config Loading Module

实现YAML配置文件加载、环境变量替换、默认值合并和配置校验。
Implements YAML config loading, environment variable substitution,
default merging and validation.

关键词词典、来源等级、权重和阈值全部是配置数据，组件在构造时接收。
Keyword dictionaries, source tiers, weights and thresholds are all
configuration data handed to components at construction.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from medpost.exceptions import FatalConfigurationError


def load_env_file(env_path: str | None = None) -> bool:
    """
    加载.env文件中的环境变量。
    Load environment variables from .env file.

    Args:
        env_path: .env文件路径，默认为None（自动查找）
                  Path to .env file, defaults to None (auto-discover)

    Returns:
        是否成功加载了.env文件
        Whether .env file was successfully loaded
    """
    if env_path:
        env_file = Path(env_path)
        if env_file.exists():
            load_dotenv(env_file)
            return True
        return False

    return load_dotenv()


def replace_env_vars(value: Any) -> Any:
    """
    递归替换配置值中的环境变量占位符。
    Recursively substitute environment variable placeholders in config values.

    支持 ${VAR_NAME} 和 ${VAR_NAME:default} 两种格式。
    Supports ${VAR_NAME} and ${VAR_NAME:default}.

    Examples:
        >>> os.environ['TEST_VAR'] = 'test_value'
        >>> replace_env_vars({'key': '${TEST_VAR}'})
        {'key': 'test_value'}
        >>> replace_env_vars('${NONEXISTENT_VAR:fallback}')
        'fallback'
    """
    if isinstance(value, str):
        pattern = r'\$\{([^}:]+)(?::([^}]*))?\}'

        def replacer(match: re.Match) -> str:
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else ''
            return os.environ.get(var_name, default_value)

        return re.sub(pattern, replacer, value)

    elif isinstance(value, dict):
        return {k: replace_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [replace_env_vars(item) for item in value]

    return value


def load_config(config_path: str = "config.yaml", env_path: str | None = None) -> dict:
    """
    加载YAML配置文件并替换环境变量。
    Load YAML config file and substitute environment variables.

    Raises:
        FileNotFoundError: 配置文件不存在
        yaml.YAMLError: YAML解析错误
    """
    load_env_file(env_path)

    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"配置文件不存在: {config_path}")

    with open(config_file, 'r', encoding='utf-8') as f:
        config = yaml.safe_load(f)

    if config is None:
        return {}

    return replace_env_vars(config)


def get_config_value(config: dict, key_path: str, default: Any = None) -> Any:
    """
    通过点分隔的路径获取配置值。
    Get config value by dot-separated path.

    Examples:
        >>> get_config_value({'scoring': {'weights': {'relevance': 0.35}}}, 'scoring.weights.relevance')
        0.35
    """
    keys = key_path.split('.')
    value = config

    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value


# 默认配置值
# Default Configuration Values
DEFAULT_CONFIG: dict[str, Any] = {
    'database': {
        'path': 'data/medpost.db',
    },
    # 数据源
    # Data sources
    'fetchers': {
        'rss': {
            'enabled': True,
            'timeout': 30,
            'max_entries': 50,
            'feeds': [],
        },
    },
    # 去重
    # Deduplication
    'deduplication': {
        'title_similarity_threshold': 0.85,
        'title_window': 500,
    },
    # 内容处理
    # Content processing
    'processing': {
        'batch_size': 50,
        'min_content_length': 100,
        'max_content_length': 50000,
        'min_words': 20,
        'max_keywords': 10,
        'min_keyword_length': 4,
        'summary_sentences': 3,
        'words_per_minute': 200,
    },
    # 分类
    # Classification
    'classification': {
        'content_type_priority': ['research', 'guideline', 'news', 'case'],
        'content_type_keywords': {
            'research': ['исследование', 'study', 'результаты', 'results'],
            'guideline': ['рекомендации', 'guidelines', 'протокол', 'protocol'],
            'news': ['новости', 'news', 'обновление', 'update'],
            'case': ['случай', 'case', 'клинический', 'clinical'],
        },
        'specialization_priority': [
            'cardiology', 'endocrinology', 'pediatrics',
            'gastroenterology', 'gynecology', 'neurology',
        ],
        'specialization_keywords': {
            'cardiology': ['сердце', 'heart', 'кардио', 'cardio', 'артерия', 'artery'],
            'endocrinology': ['диабет', 'diabetes', 'щитовидная', 'thyroid',
                              'гормон', 'hormone', 'инсулин', 'insulin'],
            'pediatrics': ['ребенок', 'child', 'педиатр', 'pediatric', 'детский', 'infant'],
            'gastroenterology': ['желудок', 'stomach', 'кишечник', 'intestine',
                                 'печень', 'liver', 'гастро', 'gastro'],
            'gynecology': ['женщина', 'woman', 'беременность', 'pregnancy',
                           'гинеколог', 'gynecology', 'матка', 'uterus'],
            'neurology': ['мозг', 'brain', 'нерв', 'nerve', 'невролог', 'neurology',
                          'эпилепсия', 'epilepsy'],
        },
        'default_specialization': 'therapy',
        'generic_specializations': ['general', 'medicine', 'all'],
    },
    # 质量评分
    # Quality scoring
    'scoring': {
        'batch_size': 100,
        'source_tiers': {
            'A': ['nejm', 'lancet', 'jama', 'bmj', 'nature', 'science',
                  'acc', 'aha', 'aap', 'aace', 'acog', 'aan', 'aga',
                  'endocrine society', 'american diabetes association',
                  'european society', 'american college'],
            'B': ['medscape', 'healio', 'cochrane', 'pubmed',
                  'mayo clinic', 'cleveland clinic', 'johns hopkins'],
            'C': ['telegram', 'rss', 'news', 'blog'],
        },
        'tier_points': {'A': 3, 'B': 2, 'C': 1},
        'default_source_points': 1,
        # 按顺序匹配，第一条命中的规则生效
        'evidence_rules': [
            {'points': 2, 'keywords': ['meta-analysis', 'систематический обзор',
                                       'cochrane', 'systematic review']},
            {'points': 2, 'keywords': ['randomized controlled trial', 'ркт',
                                       'rct', 'рандомизированное']},
            {'points': 1, 'keywords': ['cohort study', 'когортное исследование',
                                       'prospective study', 'проспективное']},
            {'points': 2, 'content_types': ['guideline'],
             'keywords': ['guideline', 'рекомендации', 'consensus']},
            {'points': 1, 'content_types': ['research'],
             'keywords': ['study', 'исследование']},
        ],
        'evidence_cap': 2,
        'peer_reviewed_sources': ['nejm', 'lancet', 'jama', 'bmj', 'nature', 'science',
                                  'acc', 'aha', 'aap', 'aace', 'acog', 'aan'],
        'peer_review_keywords': ['peer review', 'рецензирование', 'reviewed', 'рецензировано'],
        'methodology_families': [
            ['methodology', 'методология', 'methods', 'методы'],
            ['p-value', 'confidence interval', 'statistical', 'статистически'],
            ['sample size', 'размер выборки', 'n=', 'участников'],
        ],
        'methodology_cap': 3,
        'freshness_bands': [
            {'max_days': 7, 'points': 3},
            {'max_days': 30, 'points': 2},
            {'max_days': 90, 'points': 1},
        ],
        'hot_topics': ['covid', 'коронавирус', 'вакцина', 'vaccine',
                       'искусственный интеллект', 'ai', 'машинное обучение',
                       'персонализированная медицина', 'precision medicine',
                       'телемедицина', 'telemedicine', 'цифровое здоровье'],
        'keyword_bonus_threshold': 5,
        'topical_cap': 3,
        'clinical_keywords': ['клинически значимый', 'clinically significant',
                              'практическое применение', 'clinical practice',
                              'рекомендации', 'recommendations',
                              'протокол', 'protocol', 'алгоритм', 'algorithm'],
        'clinical_cap': 2,
        'applicability_families': [
            ['рекомендации', 'recommendations', 'протокол', 'protocol'],
            ['дозировка', 'dose', 'схема', 'regimen'],
            ['противопоказания', 'contraindications', 'побочные эффекты', 'side effects'],
        ],
        'applicability_cap': 3,
        'clarity_families': [
            ['рекомендуется', 'recommended', 'следует', 'should'],
            ['конкретно', 'specifically', 'точно', 'exactly'],
        ],
        'clarity_cap': 2,
        'accessibility_families': [
            ['просто', 'simple', 'легко', 'easy'],
            ['доступно', 'available', 'недорого', 'affordable'],
        ],
        'accessibility_cap': 2,
        'weights': {
            'scientific_basis': 0.4,
            'relevance': 0.35,
            'practicality': 0.25,
        },
        'max_subscores': {
            'scientific_basis': 10,
            'relevance': 8,
            'practicality': 7,
        },
        'total_scale': 25,
        'tier_thresholds': {'A': 20, 'B': 15, 'C': 10},
    },
    # 帖子生成
    # Post generation
    'generation': {
        'threshold': 15,
        'max_posts_per_specialization': 5,
        'min_post_length': 100,
        'max_post_length': 600,
        'max_title_length': 80,
        'summary_sentences': 2,
        'max_items': 3,
        'min_sentence_length': 10,
        'words_per_minute': 200,
        'default_content_type': 'research',
        'base_hashtags': ['#медицина', '#клиническаяпрактика'],
        'type_hashtags': {
            'research': '#исследование',
            'guideline': '#рекомендации',
            'news': '#новости',
            'case': '#клиническийслучай',
        },
        'specialization_emojis': {
            'cardiology': '❤️',
            'endocrinology': '🩺',
            'pediatrics': '👶',
            'gastroenterology': '🫀',
            'gynecology': '👩',
            'neurology': '🧠',
            'therapy': '🩹',
        },
        'source_label': '📚 **Источник:**',
        'list_fallback': '• Ключевые моменты будут дополнены',
        'templates': {
            'research': {
                'emoji': '🔬',
                'sections': [
                    {'name': 'summary', 'label': '📋 **Суть:**', 'kind': 'summary',
                     'field': 'summary'},
                    {'name': 'key_findings', 'label': '🔍 **Ключевые выводы:**', 'kind': 'list',
                     'field': 'key_points',
                     'keywords': ['результат', 'вывод', 'обнаружено', 'показано', 'установлено',
                                  'result', 'finding', 'showed', 'demonstrated', 'revealed']},
                    {'name': 'practical_application', 'label': '💡 **Практическое применение:**',
                     'kind': 'sentence', 'field': 'practical_application',
                     'keywords': ['рекомендуется', 'следует', 'необходимо', 'важно',
                                  'recommended', 'should', 'necessary', 'important'],
                     'fallback': 'Практические рекомендации будут дополнены.'},
                ],
            },
            'guideline': {
                'emoji': '📋',
                'sections': [
                    {'name': 'problem', 'label': '🎯 **Проблема:**', 'kind': 'summary',
                     'field': 'summary', 'sentences': 1},
                    {'name': 'solution', 'label': '✅ **Решение:**', 'kind': 'sentence',
                     'field': 'practical_application',
                     'keywords': ['рекомендуется', 'следует', 'необходимо',
                                  'recommended', 'should', 'recommend'],
                     'fallback': 'Решение будет дополнено.'},
                    {'name': 'algorithm', 'label': '📋 **Алгоритм действий:**', 'kind': 'list',
                     'field': 'key_points',
                     'keywords': ['шаг', 'этап', 'затем', 'первым', 'алгоритм',
                                  'step', 'then', 'first', 'algorithm', 'protocol']},
                ],
            },
            'news': {
                'emoji': '📰',
                'sections': [
                    {'name': 'news', 'label': '📰 **Новость:**', 'kind': 'summary',
                     'field': 'summary', 'sentences': 1},
                    {'name': 'context', 'label': '🔍 **Контекст:**', 'kind': 'sentence',
                     'keywords': ['ранее', 'согласно', 'по данным', 'previously',
                                  'according', 'background'],
                     'fallback': 'Контекст будет дополнен.'},
                    {'name': 'significance', 'label': '💡 **Значение:**', 'kind': 'sentence',
                     'field': 'practical_application',
                     'keywords': ['важно', 'значение', 'позволит', 'important',
                                  'significant', 'impact', 'will allow'],
                     'fallback': 'Значение будет дополнено.'},
                ],
            },
            'case': {
                'emoji': '📝',
                'sections': [
                    {'name': 'case', 'label': '📝 **Случай:**', 'kind': 'summary',
                     'field': 'summary', 'sentences': 1},
                    {'name': 'diagnosis', 'label': '🔍 **Диагноз:**', 'kind': 'sentence',
                     'keywords': ['диагноз', 'диагностирован', 'diagnosis', 'diagnosed'],
                     'fallback': 'Диагноз будет дополнен.'},
                    {'name': 'treatment', 'label': '💊 **Лечение:**', 'kind': 'sentence',
                     'keywords': ['лечение', 'терапия', 'назначен', 'treatment',
                                  'therapy', 'treated'],
                     'fallback': 'Лечение будет дополнено.'},
                    {'name': 'outcome', 'label': '✅ **Исход:**', 'kind': 'sentence',
                     'keywords': ['исход', 'выздоров', 'улучшение', 'outcome',
                                  'recovered', 'improvement'],
                     'fallback': 'Исход будет дополнен.'},
                    {'name': 'lessons', 'label': '🎓 **Уроки:**', 'kind': 'list',
                     'field': 'key_points',
                     'keywords': ['урок', 'следует', 'важно', 'lesson', 'should', 'important']},
                ],
            },
        },
    },
    # 审核
    # Moderation
    'moderation': {
        'pause_seconds': 2,
        'revision_dir': 'data/revisions',
        'checklist': [
            'Факты проверены по источнику',
            'Длина поста от 100 до 600 символов',
            'Хештеги соответствуют специализации',
        ],
    },
    # 发布
    # Publishing
    'publishing': {
        'pause_seconds': 30,
        'fallback_band': 'morning',
        'time_bands': [
            {'name': 'morning', 'start_hour': 7, 'end_hour': 12,
             'content_types': ['research', 'guideline']},
            {'name': 'afternoon', 'start_hour': 12, 'end_hour': 18,
             'content_types': ['news']},
            {'name': 'evening', 'start_hour': 18, 'end_hour': 22,
             'content_types': ['case']},
        ],
    },
    # Telegram
    'telegram': {
        'bot_token': '',
        'api_base': 'https://api.telegram.org',
        'timeout': 30,
        'parse_mode': 'Markdown',
        'moderator_chat_id': '',
        'channels': {},
        # getUpdates 长轮询等待时间（秒）
        'poll_timeout': 30,
    },
    # 定时任务
    # Scheduled jobs
    'schedule': {
        'pipeline_interval_hours': 6,
        'moderation_day': 'sunday',
        'moderation_time': '10:00',
        'publish_times': ['08:00', '14:00', '20:00'],
        'revision_days': ['tuesday', 'friday'],
        'revision_time': '09:00',
        'timezone': 'Europe/Moscow',
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    """
    深度合并两个字典，override中的值覆盖base中的值。
    Deep merge two dictionaries, values in override take precedence over base.

    Examples:
        >>> _deep_merge({'a': {'b': 1, 'c': 2}}, {'a': {'b': 10}})
        {'a': {'b': 10, 'c': 2}}
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def apply_defaults(config: dict) -> dict:
    """将默认配置应用到用户配置中，缺失的配置项使用默认值"""
    return _deep_merge(DEFAULT_CONFIG, config)


def _get_section(config: dict, section: str) -> dict:
    user_config = config.get(section) or {}
    default_config = DEFAULT_CONFIG.get(section, {})
    return _deep_merge(default_config, user_config)


def get_rss_config(config: dict) -> dict:
    """获取RSS数据源配置"""
    fetchers = _get_section(config, 'fetchers')
    return fetchers.get('rss') or {}


def get_dedup_config(config: dict) -> dict:
    """
    获取去重配置，自动应用默认值。
    Get deduplication configuration with defaults applied.

    Examples:
        >>> get_dedup_config({'deduplication': {'title_window': 100}})['title_similarity_threshold']
        0.85
    """
    return _get_section(config, 'deduplication')


def get_processing_config(config: dict) -> dict:
    """获取内容处理配置"""
    return _get_section(config, 'processing')


def get_classification_config(config: dict) -> dict:
    """获取分类配置"""
    return _get_section(config, 'classification')


def get_scoring_config(config: dict) -> dict:
    """
    获取质量评分配置，自动应用默认值。
    Get quality scoring configuration with defaults applied.

    Examples:
        >>> config = {'scoring': {'weights': {'relevance': 0.5}}}
        >>> get_scoring_config(config)['weights']['scientific_basis']
        0.4
    """
    return _get_section(config, 'scoring')


def get_generation_config(config: dict) -> dict:
    """获取帖子生成配置"""
    return _get_section(config, 'generation')


def get_moderation_config(config: dict) -> dict:
    """获取审核配置"""
    return _get_section(config, 'moderation')


def get_publishing_config(config: dict) -> dict:
    """获取发布配置"""
    return _get_section(config, 'publishing')


def get_telegram_config(config: dict) -> dict:
    """获取Telegram配置"""
    return _get_section(config, 'telegram')


def get_schedule_config(config: dict) -> dict:
    """获取定时任务配置"""
    return _get_section(config, 'schedule')


# 运行前必须存在且非空的配置项
# Keys that must be present and non-empty before a run starts
REQUIRED_KEYS: list[str] = [
    'classification.content_type_keywords',
    'classification.content_type_priority',
    'classification.specialization_keywords',
    'classification.specialization_priority',
    'classification.default_specialization',
    'scoring.source_tiers',
    'scoring.tier_points',
    'scoring.evidence_rules',
    'scoring.freshness_bands',
    'scoring.weights',
    'scoring.max_subscores',
    'scoring.tier_thresholds',
    'generation.threshold',
    'generation.templates',
    'publishing.time_bands',
]


def require_keys(section: dict, keys: list[str], prefix: str = '') -> None:
    """
    检查配置段中的必填项。
    Check that every key in a config section is present and non-empty.

    Raises:
        FatalConfigurationError: 缺少或为空的配置项
    """
    for key in keys:
        value = get_config_value(section, key)
        if value is None or (isinstance(value, (dict, list, str)) and not value):
            full_key = f"{prefix}.{key}" if prefix else key
            raise FatalConfigurationError("required setting is missing or empty", key=full_key)


def validate_config(config: dict) -> dict:
    """
    校验完整配置。
    Validate the full configuration.

    Args:
        config: 已应用默认值的配置字典

    Returns:
        原配置字典（便于链式调用）

    Raises:
        FatalConfigurationError: 缺少必需的词典、权重表或阈值，或权重/阈值不合法
    """
    require_keys(config, REQUIRED_KEYS)

    weights = get_config_value(config, 'scoring.weights')
    for name in ('scientific_basis', 'relevance', 'practicality'):
        if not isinstance(weights.get(name), (int, float)) or weights[name] < 0:
            raise FatalConfigurationError("weight must be a non-negative number",
                                          key=f"scoring.weights.{name}")

    max_subscores = get_config_value(config, 'scoring.max_subscores')
    weighted_max = sum(max_subscores.get(name, 0) * weights[name] for name in weights)
    if weighted_max <= 0:
        raise FatalConfigurationError("weighted maximum must be positive",
                                      key='scoring.max_subscores')

    templates = get_config_value(config, 'generation.templates')
    default_type = get_config_value(config, 'generation.default_content_type', 'research')
    if default_type not in templates:
        raise FatalConfigurationError(f"no template for default content type '{default_type}'",
                                      key='generation.templates')

    return config


def load_config_with_defaults(config_path: str = "config.yaml", env_path: str | None = None) -> dict:
    """
    加载配置文件、应用默认值并校验。
    Load configuration file, apply defaults and validate.

    Examples:
        >>> config = load_config_with_defaults("config.yaml")
        >>> config['scoring']['tier_thresholds']['A']
        20
    """
    config = load_config(config_path, env_path)
    return validate_config(apply_defaults(config))
