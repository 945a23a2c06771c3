"""
Scheduled full runs.

The cron trigger fires every few minutes. A run already in progress is
always continued; a new run starts only once the next scheduled time
(daily, weekly or monthly at HH:MM) has passed.
"""
import calendar
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from product_sync.constants.sync import ScheduleFrequency, StateKeys, SyncTrigger
from product_sync.core.clock import utcnow
from product_sync.schemas.sync_schemas import BatchStatus
from product_sync.services.batch_coordinator import BatchCoordinator
from product_sync.services.state_store import StateStore

logger = logging.getLogger(__name__)

# Long enough to survive a monthly schedule
NEXT_RUN_TTL = 40 * 24 * 3600


def parse_schedule_time(value: str) -> Tuple[int, int]:
    """'HH:MM' -> (hour, minute); invalid parts fall back to 0 and are clamped."""
    parts = (value or "").split(":")
    try:
        hour = int(parts[0])
    except (ValueError, IndexError):
        hour = 0
    try:
        minute = int(parts[1])
    except (ValueError, IndexError):
        minute = 0
    return max(0, min(23, hour)), max(0, min(59, minute))


def _add_month(value: datetime) -> datetime:
    year = value.year + value.month // 12
    month = value.month % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def calculate_next_run_time(frequency: str, hour: int, minute: int, now: datetime) -> Optional[datetime]:
    """
    Next time a full run is due.

    Today at HH:MM when that is still ahead, otherwise tomorrow (daily),
    in seven days (weekly) or one month later (monthly). ``None`` when
    scheduling is off.
    """
    if frequency == ScheduleFrequency.OFF:
        return None
    scheduled_today = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if now < scheduled_today:
        return scheduled_today
    if frequency == ScheduleFrequency.WEEKLY:
        return scheduled_today + timedelta(days=7)
    if frequency == ScheduleFrequency.MONTHLY:
        return _add_month(scheduled_today)
    return scheduled_today + timedelta(days=1)


class ScheduledRunner:
    """Decide what a cron tick does."""

    def __init__(
        self,
        coordinator: BatchCoordinator,
        state: StateStore,
        frequency: str,
        schedule_time: str,
        now: Callable[[], datetime] = utcnow,
    ):
        self.coordinator = coordinator
        self.state = state
        self.frequency = frequency
        self.hour, self.minute = parse_schedule_time(schedule_time)
        self.now = now

    def get_next_scheduled_run(self) -> Optional[datetime]:
        raw = self.state.get(StateKeys.NEXT_SCHEDULED_RUN)
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            return None

    def schedule_next(self) -> Optional[datetime]:
        next_run = calculate_next_run_time(self.frequency, self.hour, self.minute, self.now())
        if next_run is None:
            self.state.delete(StateKeys.NEXT_SCHEDULED_RUN)
        else:
            self.state.set(StateKeys.NEXT_SCHEDULED_RUN, next_run.isoformat(), NEXT_RUN_TTL)
            logger.info(f"Next scheduled sync at {next_run.isoformat()}")
        return next_run

    def run_cron_invocation(self) -> BatchStatus:
        if self.coordinator.has_active_run():
            return self.coordinator.run_one_invocation(SyncTrigger.CRON)

        if self.frequency == ScheduleFrequency.OFF:
            return BatchStatus(message="Scheduled sync is off")

        next_run = self.get_next_scheduled_run()
        if next_run is None:
            next_run = self.schedule_next()
        if self.now() < next_run:
            return BatchStatus(message=f"Next scheduled sync at {next_run.isoformat()}")

        logger.info("Starting scheduled sync")
        status = self.coordinator.run_one_invocation(SyncTrigger.CRON)
        if not status.already_running:
            self.schedule_next()
        return status
