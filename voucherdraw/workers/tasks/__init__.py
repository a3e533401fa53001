from voucherdraw.workers.tasks.draw_notifications import dispatch_draw_notification
from voucherdraw.workers.tasks.reward_inventory import run_reward_inventory_audit

__all__ = [
    "dispatch_draw_notification",
    "run_reward_inventory_audit",
]
