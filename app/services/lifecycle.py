"""
Payment lifecycle for one buyer: plan -> STK push -> confirmation -> purchase record.

    idle -> plan_selected -> awaiting_phone_input -> submitting -> waiting_confirmation
         -> succeeded | failed | timed_out

Terminal states can go back to awaiting_phone_input with retry(); cancel() returns
to idle from anywhere without writing a record. Confirmation runs as an asyncio
task; every transition it applies is checked against the session and reference
it was started for, so a late answer for a cancelled attempt is dropped.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable

from app.core.config import Settings
from app.core.errors import (
    ConfirmationTimeout,
    GatewayRejected,
    GatewayUnavailable,
    InvalidTransition,
    PaymentInProgress,
    PersistenceError,
)
from app.integrations.payhero_client import GatewayStatus, PayHeroClient, StatusResult
from app.models.plan import Plan, PlanTier
from app.models.purchase import PaymentStatus, PurchaseRecord
from app.services import phone as phone_numbers
from app.services.currency import CurrencyConverter
from app.services.pricing import PricingCatalog
from app.services.purchase_store import PurchaseStore

logger = logging.getLogger(__name__)

INITIATION_FAILED = "initiation failed"
PAYMENT_FAILED = "Payment failed. Please try again."


class PaymentState(str, Enum):
    IDLE = "idle"
    PLAN_SELECTED = "plan_selected"
    AWAITING_PHONE_INPUT = "awaiting_phone_input"
    SUBMITTING = "submitting"
    WAITING_CONFIRMATION = "waiting_confirmation"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


TERMINAL_STATES = frozenset({PaymentState.SUCCEEDED, PaymentState.FAILED, PaymentState.TIMED_OUT})
BUSY_STATES = frozenset({PaymentState.SUBMITTING, PaymentState.WAITING_CONFIRMATION})
PLAN_SELECTABLE_STATES = frozenset({
    PaymentState.IDLE,
    PaymentState.PLAN_SELECTED,
    PaymentState.AWAITING_PHONE_INPUT,
}) | TERMINAL_STATES


@dataclass
class PaymentSession:
    plan: Plan
    local_amount: float | None = None
    local_amount_display: str | None = None
    payment_amount: int | None = None
    phone: str | None = None
    reference: str | None = None
    request_id: str | None = None
    reason: str | None = None
    # reference whose terminal record has been written
    resolved_reference: str | None = None


@dataclass(frozen=True)
class StateEvent:
    state: PaymentState
    message: str | None = None
    reason: str | None = None
    plan: str | None = None
    ksh_amount: str | None = None
    reference: str | None = None


Listener = Callable[[StateEvent], None]
Sleep = Callable[[float], Awaitable[None]]


class ReferenceGenerator:
    """<prefix>-<epoch ms>, strictly increasing even when two attempts share a millisecond."""

    def __init__(self, prefix: str, clock: Callable[[], float] = time.time):
        self.prefix = prefix
        self._clock = clock
        self._last = 0

    def __call__(self) -> str:
        ms = int(self._clock() * 1000)
        if ms <= self._last:
            ms = self._last + 1
        self._last = ms
        return f"{self.prefix}-{ms}"


class PaymentLifecycle:
    def __init__(
        self,
        catalog: PricingCatalog,
        converter: CurrencyConverter,
        gateway: PayHeroClient,
        store: PurchaseStore,
        settings: Settings,
        sleep: Sleep = asyncio.sleep,
        references: ReferenceGenerator | None = None,
    ):
        self.catalog = catalog
        self.converter = converter
        self.gateway = gateway
        self.store = store
        self.settings = settings
        self._sleep = sleep
        self._references = references or ReferenceGenerator(settings.reference_prefix)

        self.state = PaymentState.IDLE
        self.last_event: StateEvent | None = None
        self._session: PaymentSession | None = None
        self._task: asyncio.Task | None = None
        self._listeners: list[Listener] = []

        if settings.confirmation_strategy == "fixed_delay":
            logger.warning("Confirmation strategy fixed_delay reports success without asking the gateway; demo use only")
        if settings.initiation_failure_policy == "optimistic":
            logger.warning("Initiation failure policy is optimistic: unreachable gateway will not fail the payment")

    # ---------------------------
    # notifications
    # ---------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _enter(self, state: PaymentState, message: str | None = None, reason: str | None = None) -> None:
        previous = self.state
        self.state = state
        session = self._session
        event = StateEvent(
            state=state,
            message=message,
            reason=reason,
            plan=session.plan.tier.value if session else None,
            ksh_amount=session.local_amount_display if session else None,
            reference=session.reference if session else None,
        )
        self.last_event = event
        logger.info("Payment state %s -> %s%s", previous.value, state.value, f" ({reason})" if reason else "")
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("State listener failed for %s", state.value)

    # ---------------------------
    # queries
    # ---------------------------

    @property
    def session(self) -> PaymentSession | None:
        return self._session

    @property
    def is_busy(self) -> bool:
        return self.state in BUSY_STATES

    def _is_current(self, session: PaymentSession, reference: str | None) -> bool:
        return self._session is session and session.reference == reference

    def _require(self, allowed: frozenset[PaymentState] | PaymentState, action: str) -> None:
        if isinstance(allowed, PaymentState):
            allowed = frozenset({allowed})
        if self.state in allowed:
            return
        if self.state in BUSY_STATES:
            raise PaymentInProgress()
        raise InvalidTransition(f"Cannot {action} while {self.state.value}")

    # ---------------------------
    # user transitions
    # ---------------------------

    def select_plan(self, plan_id: "str | PlanTier") -> Plan:
        self._require(PLAN_SELECTABLE_STATES, "select a plan")
        plan = self.catalog.resolve(plan_id)
        self._session = PaymentSession(plan=plan)
        self._enter(PaymentState.PLAN_SELECTED, f"Account: {plan.name} • ${plan.price:.2f}")
        return plan

    def back_to_plan(self) -> Plan:
        self._require(PaymentState.AWAITING_PHONE_INPUT, "go back")
        self._enter(PaymentState.PLAN_SELECTED, f"Account: {self._session.plan.name} • ${self._session.plan.price:.2f}")
        return self._session.plan

    def proceed_to_payment(self) -> PaymentSession:
        self._require(PaymentState.PLAN_SELECTED, "proceed to payment")
        session = self._session
        price = session.plan.price
        session.local_amount = self.converter.to_local(price)
        session.local_amount_display = self.converter.to_local_display(price)
        session.payment_amount = self.converter.to_payment_amount(price)
        self._enter(
            PaymentState.AWAITING_PHONE_INPUT,
            f"{session.plan.name} • ${price:.2f} (Ksh {session.local_amount_display})",
        )
        return session

    async def submit_payment(self, raw_phone: str) -> PaymentState:
        """
        Send the STK push. Returns once the gateway answered the initiation;
        confirmation continues in the background (see wait()).
        """
        self._require(PaymentState.AWAITING_PHONE_INPUT, "submit a payment")
        normalized = phone_numbers.normalize(raw_phone)

        session = self._session
        reference = self._references()
        session.phone = normalized
        session.reference = reference
        session.request_id = None
        session.reason = None
        self._enter(PaymentState.SUBMITTING, "Sending M-Pesa prompt to your phone...")

        try:
            result = await self.gateway.initiate(normalized, session.payment_amount, reference)
        except GatewayUnavailable as e:
            if not self._is_current(session, reference):
                logger.warning("Payment %s was cancelled while the gateway was unreachable", reference)
                return self.state
            if self.settings.initiation_failure_policy == "optimistic":
                logger.warning("Initiation of %s failed (%s); waiting in case the prompt was delivered", reference, e)
                self._start_confirmation(session, reference)
                return self.state
            logger.error("Initiation of %s failed: %s", reference, e)
            self._resolve_failed(session, reference, INITIATION_FAILED)
            return self.state

        if not self._is_current(session, reference):
            # the prompt may still reach the phone; nothing is recorded for a cancelled attempt
            logger.warning("Discarding initiation answer for cancelled payment %s", reference)
            return self.state

        if not result.accepted:
            self._resolve_failed(session, reference, result.reason or GatewayRejected.default_message)
            return self.state

        session.request_id = result.request_id
        self._start_confirmation(session, reference)
        return self.state

    def retry(self) -> PaymentSession:
        """Back to phone input for the same plan and amount; the next submit gets a new reference."""
        self._require(TERMINAL_STATES, "retry")
        session = self._session
        session.phone = None
        session.reference = None
        session.request_id = None
        session.reason = None
        session.resolved_reference = None
        self._enter(
            PaymentState.AWAITING_PHONE_INPUT,
            f"{session.plan.name} • ${session.plan.price:.2f} (Ksh {session.local_amount_display})",
        )
        return session

    def cancel(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        if self.state == PaymentState.SUBMITTING:
            logger.warning("Payment %s cancelled while the STK push was in flight", self._session.reference)
        had_session = self._session is not None
        self._session = None
        self._enter(PaymentState.IDLE, "Payment cancelled." if had_session else None)

    async def wait(self) -> PaymentState:
        """Wait for the running confirmation (if any) to finish. Never raises on cancellation."""
        task = self._task
        if task is not None:
            await asyncio.wait({task})
        return self.state

    # ---------------------------
    # confirmation
    # ---------------------------

    def _start_confirmation(self, session: PaymentSession, reference: str) -> None:
        self._enter(
            PaymentState.WAITING_CONFIRMATION,
            "Check your phone and enter your M-Pesa PIN to complete the payment.",
        )
        task = asyncio.create_task(self._confirm(session, reference), name=f"confirm-{reference}")
        task.add_done_callback(self._log_task_failure)
        self._task = task

    @staticmethod
    def _log_task_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Payment confirmation task crashed", exc_info=exc)

    async def _confirm(self, session: PaymentSession, reference: str) -> None:
        strategy = self.settings.confirmation_strategy
        try:
            if strategy == "fixed_delay":
                outcome = await self._wait_fixed_delay(session, reference)
            elif strategy == "verify_reference":
                outcome = await self._verify_loop(session, reference)
            else:
                outcome = await self._poll_loop(session, reference)
        except ConfirmationTimeout as e:
            if self._is_current(session, reference):
                self._resolve_timed_out(session, reference, e.message)
            return

        if outcome is None or not self._is_current(session, reference):
            logger.info("Discarding confirmation for superseded payment %s", reference)
            return

        if outcome.status == GatewayStatus.SUCCESS:
            self._resolve_succeeded(session, reference)
        else:
            self._resolve_failed(session, reference, outcome.reason or PAYMENT_FAILED)

    async def _check(self, session: PaymentSession, reference: str) -> StatusResult:
        if session.request_id:
            return await self.gateway.poll_status(session.request_id)
        # no checkout id (optimistic initiation, or the gateway didn't send one)
        return await self.gateway.verify_by_reference(reference)

    async def _poll_loop(self, session: PaymentSession, reference: str) -> StatusResult | None:
        interval = self.settings.poll_interval_seconds
        max_attempts = self.settings.poll_max_attempts
        for attempt in range(1, max_attempts + 1):
            await self._sleep(interval)
            if not self._is_current(session, reference):
                return None
            try:
                result = await self._check(session, reference)
            except GatewayUnavailable as e:
                logger.warning("Status check %d/%d for %s failed: %s", attempt, max_attempts, reference, e)
                continue
            if not self._is_current(session, reference):
                return None
            logger.info("Status check %d/%d for %s: %s", attempt, max_attempts, reference, result.status.value)
            if result.status != GatewayStatus.PENDING:
                return result
        raise ConfirmationTimeout()

    async def _verify_loop(self, session: PaymentSession, reference: str) -> StatusResult | None:
        interval = self.settings.verify_interval_seconds
        max_attempts = self.settings.verify_max_attempts
        attempt = 0
        while max_attempts is None or attempt < max_attempts:
            attempt += 1
            await self._sleep(interval)
            if not self._is_current(session, reference):
                return None
            try:
                result = await self.gateway.verify_by_reference(reference)
            except GatewayUnavailable as e:
                if self.settings.verify_errors_as_success:
                    logger.warning("UNSAFE: verification of %s failed (%s), treating it as paid", reference, e)
                    return StatusResult(GatewayStatus.SUCCESS)
                logger.warning("Verification %d of %s failed: %s", attempt, reference, e)
                continue
            if not self._is_current(session, reference):
                return None
            logger.info("Verification %d of %s: %s", attempt, reference, result.status.value)
            if result.status != GatewayStatus.PENDING:
                return result
        raise ConfirmationTimeout()

    async def _wait_fixed_delay(self, session: PaymentSession, reference: str) -> StatusResult | None:
        await self._sleep(self.settings.fixed_delay_seconds)
        if not self._is_current(session, reference):
            return None
        logger.warning("UNSAFE: assuming payment %s succeeded after a fixed delay", reference)
        return StatusResult(GatewayStatus.SUCCESS)

    # ---------------------------
    # terminal resolution
    # ---------------------------

    def _build_record(self, session: PaymentSession, status: PaymentStatus, reason: str | None) -> PurchaseRecord:
        now = datetime.now(timezone.utc)
        return PurchaseRecord(
            plan=session.plan.tier.value,
            price=session.plan.price,
            ksh_amount=session.local_amount_display,
            payment_status=status,
            purchase_date=now,
            timestamp=int(now.timestamp() * 1000),
            reference=session.reference,
            checkout_request_id=session.request_id,
            reason=reason,
        )

    def _persist(self, session: PaymentSession, status: PaymentStatus, reason: str | None) -> None:
        record = self._build_record(session, status, reason)
        try:
            self.store.persist(record)
        except PersistenceError as e:
            # terminal state stands; access checks that read the store will deny until it is written
            logger.error("Purchase %s resolved as %s but could not be saved: %s", session.reference, status.value, e.message)
        session.resolved_reference = session.reference

    def _resolve_succeeded(self, session: PaymentSession, reference: str) -> None:
        if session.resolved_reference == reference and self.state == PaymentState.SUCCEEDED:
            return
        self._task = None
        self._persist(session, PaymentStatus.SUCCESS, None)
        logger.info(
            "PAYMENT SUCCESSFUL: plan=%s price=$%.2f paid=KES %s ref=%s",
            session.plan.name, session.plan.price, session.local_amount_display, reference,
        )
        self._enter(PaymentState.SUCCEEDED, f"Welcome to your {session.plan.name} Account!")

    def _resolve_failed(self, session: PaymentSession, reference: str, reason: str) -> None:
        self._task = None
        session.reason = reason
        self._persist(session, PaymentStatus.FAILED, reason)
        self._enter(PaymentState.FAILED, reason, reason=reason)

    def _resolve_timed_out(self, session: PaymentSession, reference: str, message: str) -> None:
        self._task = None
        session.reason = message
        # outcome unknown: pending, never success
        self._persist(session, PaymentStatus.PENDING, message)
        self._enter(PaymentState.TIMED_OUT, message, reason=message)

    # ---------------------------
    # reconciliation
    # ---------------------------

    async def reconcile(self) -> PurchaseRecord | None:
        """
        Ask the gateway about a record left pending by a timeout and store the final
        outcome once the gateway knows it.
        """
        if self.is_busy:
            raise PaymentInProgress()
        record = self.store.load()
        if record is None or record.payment_status != PaymentStatus.PENDING:
            return record

        try:
            result = await self.gateway.verify_by_reference(record.reference)
        except GatewayUnavailable as e:
            logger.warning("Could not reconcile pending purchase %s: %s", record.reference, e)
            return record
        if result.status == GatewayStatus.PENDING:
            return record

        # a newer attempt may have written its own record while we were waiting on the gateway
        current = self.store.load()
        if current is None or current.reference != record.reference or current.payment_status != PaymentStatus.PENDING:
            logger.info("Purchase record changed during reconciliation of %s, leaving it alone", record.reference)
            return current

        now = datetime.now(timezone.utc)
        if result.status == GatewayStatus.SUCCESS:
            update = {"payment_status": PaymentStatus.SUCCESS, "reason": None}
        else:
            update = {"payment_status": PaymentStatus.FAILED, "reason": result.reason or PAYMENT_FAILED}
        update.update(purchase_date=now, timestamp=int(now.timestamp() * 1000))
        reconciled = record.model_copy(update=update)
        try:
            self.store.persist(reconciled)
        except PersistenceError as e:
            logger.error("Reconciled purchase %s could not be saved: %s", record.reference, e.message)
            return record
        logger.info("Pending purchase %s reconciled as %s", record.reference, reconciled.payment_status.value)
        return reconciled
