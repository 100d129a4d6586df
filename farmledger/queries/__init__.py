"""Read-side queries: reminders, dashboard statistics and event history."""

from farmledger.queries.dashboard import DashboardAggregator, month_bounds
from farmledger.queries.events import EventQueries
from farmledger.queries.reminders import ReminderFilter

__all__ = ["DashboardAggregator", "EventQueries", "ReminderFilter", "month_bounds"]
