#!/usr/bin/env python3
"""
医学内容流水线 - 主程序入口
Medical Content Pipeline - Main Entry Point

支持三种运行模式：
1. 定时调度模式（默认）：按配置的节奏执行各个阶段
2. 单阶段模式（--stage）：立即执行一个阶段后退出
3. 状态模式（--status）：显示审核队列中各状态的帖子数量

使用方法 Usage:
    # 启动定时调度
    python main.py

    # 执行一次完整流水线（采集-处理-评分-生成）
    python main.py --stage pipeline

    # 立即发布当前时段的已批准帖子
    python main.py --stage publish

    # 使用自定义配置
    python main.py --config my_config.yaml --stage score
"""

import argparse
import logging
import sys
from pathlib import Path

from medpost.config import load_config_with_defaults
from medpost.exceptions import FatalConfigurationError
from medpost.scheduler import STAGES, Scheduler

# 配置日志格式
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(verbose: bool = False) -> None:
    """
    配置日志系统
    Setup logging system

    Args:
        verbose: 是否启用详细日志（DEBUG级别）
                 Whether to enable verbose logging (DEBUG level)
    """
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    # 降低第三方库的日志级别
    # Reduce log level for third-party libraries
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('schedule').setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    解析命令行参数
    Parse command line arguments
    """
    parser = argparse.ArgumentParser(
        description='医学内容流水线 - 去重、分类、评分、生成、审核与发布',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
运行模式 Modes:
  默认模式    启动定时调度
  --stage     立即执行一个阶段后退出
  --status    显示审核队列状态

阶段 Stages:
  ingest, process, score, generate, moderate, publish,
  revision-create, revision-process, listen, pipeline
        """
    )

    mode_group = parser.add_argument_group('运行模式 Mode Options')
    mode_group.add_argument(
        '--stage', '-s',
        choices=STAGES,
        default=None,
        help='执行一个阶段后退出 / Run one stage and exit'
    )
    mode_group.add_argument(
        '--status',
        action='store_true',
        help='显示审核队列状态 / Show moderation queue status'
    )

    config_group = parser.add_argument_group('配置选项 Config Options')
    config_group.add_argument(
        '--config', '-c',
        type=str,
        default='config.yaml',
        help='配置文件路径 (默认: config.yaml) / Config file path (default: config.yaml)'
    )
    config_group.add_argument(
        '--env',
        type=str,
        default=None,
        help='.env文件路径 (默认: 自动查找) / .env file path (default: auto-discover)'
    )

    general_group = parser.add_argument_group('通用选项 General Options')
    general_group.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='启用详细日志输出 / Enable verbose logging'
    )

    return parser.parse_args(argv)


def show_status(scheduler: Scheduler) -> int:
    """显示审核队列状态"""
    stats = scheduler.status()

    print(f"\n{'='*40}")
    print("审核队列状态 Moderation queue")
    print(f"{'='*40}")
    for status, count in stats.items():
        print(f"  {status:<10} {count}")
    print(f"{'='*40}\n")
    return 0


def run_stage_mode(scheduler: Scheduler, stage: str, logger: logging.Logger) -> int:
    """
    执行单个阶段

    Returns:
        退出码：有条目出错时返回1
    """
    results = scheduler.run_stage(stage)
    for stats in results:
        print(stats.summary())
    if any(stats.errored for stats in results):
        logger.warning(f"Stage '{stage}' finished with errors")
        return 1
    return 0


def run_scheduled_mode(scheduler: Scheduler, logger: logging.Logger) -> int:
    """运行定时调度模式"""
    logger.info("启动定时调度模式...")
    try:
        scheduler.start()
        return 0
    except KeyboardInterrupt:
        logger.info("用户中断，程序退出")
        return 0


def main(argv: list[str] | None = None) -> int:
    """
    主函数
    Main function

    Returns:
        退出码：0表示成功，非0表示失败
        Exit code: 0 for success, non-zero for failure
    """
    args = parse_args(argv)

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    config_path = Path(args.config)
    if not config_path.exists():
        logger.error(f"配置文件不存在: {args.config}")
        print(f"错误: 配置文件不存在: {args.config}", file=sys.stderr)
        return 1

    try:
        config = load_config_with_defaults(str(config_path), args.env)
        logger.info(f"已加载配置文件: {config_path}")
        scheduler = Scheduler(config)
    except FatalConfigurationError as e:
        logger.error(str(e))
        print(f"错误: {e}", file=sys.stderr)
        return 2

    try:
        if args.status:
            return show_status(scheduler)
        if args.stage:
            return run_stage_mode(scheduler, args.stage, logger)
        return run_scheduled_mode(scheduler, logger)
    except FatalConfigurationError as e:
        logger.error(str(e))
        return 2
    finally:
        scheduler.close()


if __name__ == '__main__':
    sys.exit(main())
