import logging

from apps.notifications.models import BranchNotification

logger = logging.getLogger(__name__)


def notify_branch(*, order, type, title, message, delivery=None):
    notification = BranchNotification.objects.create(
        branch_id=order.branch_id,
        order=order,
        delivery=delivery,
        type=type,
        title=title,
        message=message,
    )
    logger.info("Branch %s notified: %s for order %s", order.branch_id, type, order.order_number)
    return notification


def mark_notification_read(notification):
    if notification.read:
        return notification
    notification.read = True
    notification.save(update_fields=["read"])
    return notification


def mark_all_read(branch):
    return BranchNotification.objects.filter(branch=branch, read=False).update(read=True)


def unread_count(branch):
    return BranchNotification.objects.filter(branch=branch, read=False).count()
