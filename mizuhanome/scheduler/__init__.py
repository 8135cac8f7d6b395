"""Background job scheduling."""

from mizuhanome.scheduler.manager import SchedulerManager

__all__ = ["SchedulerManager"]
