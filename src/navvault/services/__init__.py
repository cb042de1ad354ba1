"""Services built on the stores, one instance per process."""

from navvault.services.activities import ActivityService
from navvault.services.tasks import TaskService
from navvault.services.widget import WidgetBridge

__all__ = ["ActivityService", "TaskService", "WidgetBridge"]
