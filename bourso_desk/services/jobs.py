"""Job board - DCA job list, due-job prompts, order placement and market data"""

import asyncio
import contextlib
import logging
from typing import Any, Dict, Iterable, List, Optional

from bourso_desk.domain.events import EventHub, NotificationRaised, SessionStateChanged
from bourso_desk.domain.exceptions import DomainException, SessionStateError, ValidationFailure
from bourso_desk.domain.jobs import (
    JobAnnotation,
    annotate,
    build_order,
    build_order_size,
    build_schedule,
    create_job,
)
from bourso_desk.domain.market import PERIOD_DAYS, PerformanceSummary, compute_performance, parse_price_history
from bourso_desk.domain.models import (
    AssetPriceHistory,
    Job,
    Notification,
    Order,
    OrderArgs,
    OrderSize,
    SessionState,
)
from bourso_desk.domain.ports import BrokerageAdapter, OrderHistory
from bourso_desk.infrastructure.observability.metrics import record_job_execution
from bourso_desk.services.session import SessionCoordinator
from bourso_desk.utils.date_utils import now_epoch_seconds, now_ms

logger = logging.getLogger(__name__)


class JobBoard:
    """Listed copy of the scheduled jobs plus the price data their costs depend on"""

    def __init__(
        self,
        adapter: BrokerageAdapter,
        session: SessionCoordinator,
        events: EventHub | None = None,
        order_history: OrderHistory | None = None,
        price_history_days: int = 30,
        saved_assets: Iterable[str] = (),
    ):
        self.adapter = adapter
        self.session = session
        self.events = events or session.events
        self.order_history = order_history
        self.price_history_days = price_history_days
        self.saved_assets = list(saved_assets)

        self.jobs: List[Job] = []
        self.histories: Dict[str, AssetPriceHistory] = {}
        self._loading: Optional[asyncio.Task] = None
        self._unsubscribe = self.events.subscribe(SessionStateChanged, self._on_session_changed)

    def _on_session_changed(self, event: SessionStateChanged) -> None:
        if event.current == SessionState.READY and (self._loading is None or self._loading.done()):
            self._loading = asyncio.create_task(self.load_dashboard())

    async def load_dashboard(self) -> None:
        """Jobs first, then the price data their costs depend on"""
        await self.load_jobs()
        await self.load_price_histories()

    async def wait_until_loaded(self) -> None:
        if self._loading is not None:
            await self._loading

    async def reset(self) -> None:
        task, self._loading = self._loading, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self.jobs = []

    def dispose(self) -> None:
        self._unsubscribe()

    def _notify(self, level: str, title: str, description: str = "") -> None:
        self.events.publish(NotificationRaised(Notification(level=level, title=title, description=description)))

    # -- job list --------------------------------------------------------

    async def load_jobs(self) -> List[Job]:
        try:
            self.jobs = await self.adapter.list_scheduled_jobs()
        except DomainException as e:
            logger.error(f"Error fetching scheduled jobs: {e}")
            self._notify("error", "Error fetching scheduled jobs", str(e))
        return self.jobs

    def find_job(self, job_id: str) -> Optional[Job]:
        return next((j for j in self.jobs if j.id == job_id), None)

    def _keep(self, job: Job) -> None:
        # Same id replaces the listed entry in place
        for index, listed in enumerate(self.jobs):
            if listed.id == job.id:
                self.jobs[index] = job
                return
        self.jobs.append(job)

    def annotations(self, now: Optional[int] = None) -> List[JobAnnotation]:
        """Per-job description, next run, cost and cash sufficiency"""
        at = now if now is not None else now_ms()
        return [annotate(job, self.session.accounts, self.histories, at) for job in self.jobs]

    async def add_job(
        self,
        account_id: str,
        symbol: str,
        value: Any,
        use_amount: bool,
        schedule_type: str,
        day: int = 1,
        side: str = "buy",
    ) -> Job:
        """
        Create a job from the DCA form and save it.

        The id is derived from the content: adding an identical job replaces
        the listed one rather than creating a duplicate.
        """
        size = build_order_size(value, use_amount)
        order = build_order(account_id, symbol, side, size)
        schedule = build_schedule(schedule_type, day)
        job = create_job(schedule, order, now_epoch_seconds())

        try:
            await self.adapter.add_scheduled_job(job)
        except DomainException as e:
            self._notify("error", "Error saving scheduled job", str(e))
            raise

        self._keep(job)
        self._notify("success", "DCA scheduled", f"Job {job.id} saved")
        if symbol not in self.histories:
            await self.load_price_histories([symbol])
        return job

    async def delete_job(self, job_id: str) -> None:
        try:
            await self.adapter.delete_scheduled_job(job_id)
        except DomainException as e:
            self._notify("error", "Error deleting scheduled job", str(e))
            raise
        self.jobs = [j for j in self.jobs if j.id != job_id]

    async def run_now(self, job: Job) -> Order:
        """Run a job once; on success its last run becomes now and it is saved"""
        try:
            order = await self.adapter.run_job_manually(job)
        except DomainException as e:
            record_job_execution("failed")
            logger.error(f"Job run failed: {e}", extra={"job_id": job.id})
            self._notify("error", "Error running job", str(e))
            raise

        job.last_run = now_epoch_seconds()
        try:
            await self.adapter.add_scheduled_job(job)
        except DomainException as e:
            logger.error(f"Could not save job after run: {e}", extra={"job_id": job.id})
            self._notify("error", "Error saving scheduled job", str(e))
        self._keep(job)

        self._record(order)
        record_job_execution("succeeded")
        self._notify("success", "Order placed", f"Order {order.id} at {order.price}")
        return order

    async def run_job(self, job_id: str) -> Order:
        """Run a due-job prompt (confirm) or a listed job by id"""
        due = self.session.take_due_job(job_id)
        if due is not None:
            try:
                return await self.run_now(due)
            except DomainException:
                # Prompt stays for a retry
                self.session.due_jobs.append(due)
                raise

        job = self.find_job(job_id)
        if job is None:
            raise SessionStateError(f"Unknown job: {job_id}")
        return await self.run_now(job)

    async def confirm_due_job(self, job_id: str) -> Order:
        if not any(j.id == job_id for j in self.session.due_jobs):
            raise SessionStateError(f"No due job prompt for {job_id}")
        return await self.run_job(job_id)

    def skip_due_job(self, job_id: str) -> None:
        """Dismiss a due-job prompt; the job keeps its schedule"""
        if self.session.take_due_job(job_id) is None:
            raise SessionStateError(f"No due job prompt for {job_id}")
        record_job_execution("skipped")

    # -- orders ----------------------------------------------------------

    async def place_order(self, side: str, symbol: str, account_id: str, size: OrderSize) -> Order:
        """Validate, place and record an order"""
        args: OrderArgs = build_order(account_id, symbol, side, size)
        if args.size.value <= 0:
            raise ValidationFailure("Order size must be positive", field="size")

        order = await self.adapter.place_order(args)
        self._record(order)
        return order

    def _record(self, order: Order) -> None:
        if self.order_history is not None:
            self.order_history.record(order)

    def orders(self) -> List[Order]:
        return self.order_history.list_orders() if self.order_history is not None else []

    # -- market data -----------------------------------------------------

    async def _fetch_histories(self, symbols: Iterable[str], days: int) -> Dict[str, AssetPriceHistory]:
        wanted = list(dict.fromkeys(symbols))
        results = await asyncio.gather(
            *(self.adapter.get_price_history(symbol, days) for symbol in wanted),
            return_exceptions=True,
        )

        fetched: Dict[str, AssetPriceHistory] = {}
        for symbol, result in zip(wanted, results):
            if isinstance(result, BaseException):
                if not isinstance(result, DomainException):
                    raise result
                logger.error(f"Error fetching price history: {result}", extra={"symbol": symbol})
                self._notify("error", "Error fetching price history", f"{symbol}: {result}")
                continue
            try:
                history = parse_price_history(result)
            except DomainException as e:
                self._notify("error", "Error fetching price history", f"{symbol}: {e}")
                continue
            fetched[symbol] = history
        return fetched

    async def load_price_histories(self, symbols: Iterable[str] | None = None) -> Dict[str, AssetPriceHistory]:
        """Load saved assets, listed job symbols and unknown position symbols"""
        if symbols is None:
            symbols = [
                *self.saved_assets,
                *(j.order.symbol for j in self.jobs),
                *(p.symbol for p in self.session.positions if p.symbol not in self.histories),
            ]
        self.histories.update(await self._fetch_histories(symbols, self.price_history_days))
        return self.histories

    async def performance(self, period: str) -> PerformanceSummary:
        if period not in PERIOD_DAYS:
            raise ValidationFailure(f"Unknown period: {period}", field="period")
        positions = self.session.positions
        histories = await self._fetch_histories([p.symbol for p in positions], PERIOD_DAYS[period])
        return compute_performance(positions, histories)
