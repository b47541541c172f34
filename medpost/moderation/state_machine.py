"""
审核状态机
Moderation State Machine

帖子状态只能通过下表中的转换改变，表外的组合一律拒绝：

    pending  --approve-->   approved
    pending  --reject-->    rejected
    pending  --revision-->  revision
    revision --resubmit-->  pending   (新的审核周期)
    approved/error --publish--> published / error
"""

from medpost.exceptions import InvalidTransition
from medpost.models import ModerationAction, PostStatus

TRANSITIONS: dict[tuple[PostStatus, ModerationAction], PostStatus] = {
    (PostStatus.PENDING, ModerationAction.APPROVE): PostStatus.APPROVED,
    (PostStatus.PENDING, ModerationAction.REJECT): PostStatus.REJECTED,
    (PostStatus.PENDING, ModerationAction.SEND_TO_REVISION): PostStatus.REVISION,
}

RESUBMIT = 'resubmit'
PUBLISH = 'publish'

PUBLISHABLE = (PostStatus.APPROVED, PostStatus.ERROR)


def next_status(current: PostStatus, action: ModerationAction, post_id: int | None = None) -> PostStatus:
    """
    计算审核决定之后的状态

    Raises:
        InvalidTransition: 当前状态不接受该决定
    """
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        raise InvalidTransition(post_id=post_id, current_status=current.value,
                                action=action.value) from None


def resubmit_status(current: PostStatus, post_id: int | None = None) -> PostStatus:
    """修订内容提交后的状态：revision -> pending"""
    if current is not PostStatus.REVISION:
        raise InvalidTransition(post_id=post_id, current_status=current.value, action=RESUBMIT)
    return PostStatus.PENDING


def publish_status(current: PostStatus, success: bool, post_id: int | None = None) -> PostStatus:
    """发布结果对应的状态：成功 published，失败 error"""
    if current not in PUBLISHABLE:
        raise InvalidTransition(post_id=post_id, current_status=current.value, action=PUBLISH)
    return PostStatus.PUBLISHED if success else PostStatus.ERROR


def allowed_actions(current: PostStatus) -> list[ModerationAction]:
    """当前状态下允许的审核动作"""
    return [action for (status, action) in TRANSITIONS if status is current]
