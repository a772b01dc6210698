"""Read-only query selectors returning DTOs."""

from letably_kernel.selectors.base import BaseSelector
from letably_kernel.selectors.schedule_selector import ScheduleSelector, parse_pagination

__all__ = ["BaseSelector", "ScheduleSelector", "parse_pagination"]
