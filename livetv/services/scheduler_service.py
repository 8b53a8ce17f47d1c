import logging
from datetime import datetime
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from livetv.services.catalog_service import CatalogService
from livetv.utils.timezone import utc_now


logger = logging.getLogger(__name__)

REFRESH_JOB_ID = 'cache_refresh'


class CacheRefreshScheduler:
    """Keeps the playlist and EPG caches warm on a cron schedule"""

    def __init__(
        self,
        catalog: CatalogService,
        cron: str,
        misfire_grace_sec: int = 300,
        warm_up_on_start: bool = True,
    ):
        self.catalog = catalog
        self.cron = cron
        self.misfire_grace_sec = misfire_grace_sec
        self.warm_up_on_start = warm_up_on_start
        self.scheduler: AsyncIOScheduler | None = None
        self.last_refresh_at: datetime | None = None
        self.last_error: str | None = None

    async def _refresh_job(self) -> None:
        """Refresh every missing or expired cache; failures are recorded, not raised"""
        logger.info("Scheduled cache refresh triggered")
        try:
            await self.catalog.refresh_all()
            self.last_error = None
        except Exception as e:
            self.last_error = f"{type(e).__name__}: {e}"
            logger.error(f"Exception in scheduled refresh: {e}", exc_info=True)
        finally:
            self.last_refresh_at = utc_now()

    def start(self) -> None:
        """Start the scheduler; the first refresh runs right away unless disabled"""
        if self.scheduler and self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        try:
            trigger = CronTrigger.from_crontab(self.cron, timezone='UTC')
        except (ValueError, KeyError) as exc:
            logger.error("Invalid cron expression '%s': %s", self.cron, exc)
            raise

        self.scheduler = AsyncIOScheduler(timezone='UTC')
        job_options = {
            'trigger': trigger,
            'id': REFRESH_JOB_ID,
            'max_instances': 1,
            'coalesce': True,
            'misfire_grace_time': self.misfire_grace_sec,
        }
        if self.warm_up_on_start:
            job_options['next_run_time'] = utc_now()
        self.scheduler.add_job(self._refresh_job, **job_options)

        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "Scheduler started (cron '%s'). Next refresh: %s",
            self.cron,
            next_time.isoformat() if next_time else "unknown"
        )

    def shutdown(self) -> None:
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self.scheduler = None

    @property
    def running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def get_next_run_time(self) -> datetime | None:
        """Next scheduled refresh, None while stopped"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(REFRESH_JOB_ID)
        return job.next_run_time if job else None
