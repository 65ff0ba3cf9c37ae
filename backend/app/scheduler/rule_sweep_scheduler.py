"""Rule Sweep Scheduler - Periodic evaluation of time-based workflow rules

Transition-time rule evaluation only sees a request when an event arrives.
Urgent-escalation and overdue rules must also fire for requests that sit in
one status, so this scheduler periodically sweeps open requests and
dispatches whatever time-based rules match.

Each (request, rule) pair fires at most once per cooldown window.
"""
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import Settings, settings as default_settings
from ..services.service_request_service import ServiceRequestService
from ..utils.time import Clock, utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class RuleSweepScheduler:
    """
    Scheduler using APScheduler to sweep open requests

    Responsibilities:
    - Evaluate time-based rules against every open request
    - Dispatch the actions of matching rules
    - Suppress repeat firings inside the cooldown window
    """

    def __init__(
        self,
        service: Optional[ServiceRequestService] = None,
        config: Optional[Settings] = None,
        interval_seconds: Optional[int] = None,
        clock: Clock = utc_now
    ):
        self.config = config or default_settings
        self.service = service or ServiceRequestService(clock=clock)
        self.interval_seconds = interval_seconds or self.config.rule_sweep_interval_seconds
        self.cooldown = timedelta(minutes=self.config.rule_sweep_cooldown_minutes)
        self.clock = clock
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._is_running = False
        self._last_fired: Dict[Tuple[str, str], datetime] = {}  # Last firing per request/rule

    def start(self) -> None:
        """Start the scheduler"""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler()

        self.scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="sweep_time_based_rules",
            name="Sweep time-based workflow rules",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )

        self.scheduler.start()
        self._is_running = True
        logger.info(
            "Rule sweep scheduler started",
            extra={
                "interval_seconds": self.interval_seconds,
                "cooldown_minutes": self.config.rule_sweep_cooldown_minutes
            }
        )

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown()
            self._is_running = False
            logger.info("Rule sweep scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running"""
        return self._is_running

    def should_fire(self, request_id: str, rule_name: str) -> bool:
        """
        Cooldown check for a (request, rule) pair

        Records the firing when allowed, so calling this is a claim.
        """
        now = self.clock()
        key = (request_id, rule_name)
        last = self._last_fired.get(key)

        if last is not None and now - last < self.cooldown:
            return False

        self._last_fired[key] = now
        return True

    def _prune(self) -> None:
        # Entries older than the cooldown can no longer suppress anything
        cutoff = self.clock() - self.cooldown
        self._last_fired = {
            key: fired_at for key, fired_at in self._last_fired.items()
            if fired_at > cutoff
        }

    async def run_once(self) -> int:
        """Run one sweep over open requests"""
        try:
            self._prune()
            return await self.service.sweep_open_requests(
                should_fire=self.should_fire,
                limit=self.config.rule_sweep_batch_size
            )
        except Exception as e:
            logger.error(f"Error in rule sweep job: {e}", exc_info=True)
            return 0


# Global scheduler instance
_scheduler: Optional[RuleSweepScheduler] = None


def get_scheduler(interval_seconds: Optional[int] = None) -> RuleSweepScheduler:
    """Get or create scheduler instance"""
    global _scheduler
    if _scheduler is None:
        _scheduler = RuleSweepScheduler(interval_seconds=interval_seconds)
    return _scheduler


def start_scheduler(interval_seconds: Optional[int] = None) -> RuleSweepScheduler:
    """Start the global scheduler"""
    scheduler = get_scheduler(interval_seconds)
    scheduler.start()
    return scheduler


def stop_scheduler() -> None:
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None
