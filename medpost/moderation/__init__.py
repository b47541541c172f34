"""
Moderation module: state machine, moderation service and revision queue.
审核模块：状态机、审核服务和修订队列。
"""

from .moderation_service import ModerationService, ModerationUI
from .revision_queue import RevisionQueue, extract_revised_content
from .state_machine import TRANSITIONS, allowed_actions, next_status, publish_status, resubmit_status

__all__ = [
    'ModerationService',
    'ModerationUI',
    'RevisionQueue',
    'TRANSITIONS',
    'allowed_actions',
    'extract_revised_content',
    'next_status',
    'publish_status',
    'resubmit_status',
]
