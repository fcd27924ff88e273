from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from starlette.concurrency import run_in_threadpool

from waghl.core.logging import get_logger
from waghl.core.supabase_rest import CustomerStore
from waghl.entitlements.evaluator import Clock, days_until, isoformat_utc, utc_now
from waghl.entitlements.plans import SubscriptionStatus
from waghl.entitlements.snapshot import parse_utc_timestamp
from waghl.notifications.emailer import EmailNotConfiguredError, EmailSendError, send_email
from waghl.notifications.templates import trial_expired_email, trial_expiring_email
from waghl.worker.retry import sanitize_error

logger = get_logger("worker.trial_expiry")

TRIAL_EXPIRED_NOTIFICATION = "trial_expired"


def reminder_notification_type(days: int) -> str:
    return "trial_expiring_1day" if days == 1 else f"trial_expiring_{days}days"


class TrialExpiryProcessor:
    """Trial reminders and expiry bookkeeping, run on a fixed interval.

    Each tick walks the reminder windows from widest to narrowest, so a
    customer entering the 1-day window after getting the 3-day reminder still
    gets the second one. A notification row is written before the e-mail is
    sent; its existence is what keeps a window from firing twice.
    """

    def __init__(
        self,
        *,
        store: CustomerStore,
        upgrade_url: str,
        reminder_days: list[int],
        interval_seconds: int = 3600,
        clock: Clock = utc_now,
        sender: Callable[..., None] = send_email,
    ) -> None:
        self.store = store
        self.upgrade_url = upgrade_url
        self.reminder_days = sorted({days for days in reminder_days if days >= 1}, reverse=True)
        self.interval_seconds = max(60, interval_seconds)
        self.clock = clock
        self.sender = sender
        self._next_run_at: datetime | None = None

    def _is_due(self, now: datetime) -> bool:
        return self._next_run_at is None or now >= self._next_run_at

    async def process_if_due(self) -> dict[str, int]:
        now = self.clock()
        if not self._is_due(now):
            return {"reminders_sent": 0, "trials_expired": 0}
        try:
            return await self.run_once(now)
        finally:
            self._next_run_at = now + timedelta(seconds=self.interval_seconds)

    async def run_once(self, now: datetime) -> dict[str, int]:
        reminders_sent = 0
        for days in self.reminder_days:
            try:
                rows = await self.store.list_trials_ending_between(now, now + timedelta(days=days))
            except Exception as exc:  # pragma: no cover - defensive guard
                logger.error(
                    "trial_expiry.query_failed",
                    extra={
                        "component": "worker",
                        "window_days": days,
                        "error": sanitize_error(exc, default_message="trial query failed"),
                    },
                )
                continue
            for row in rows:
                if await self._remind(row, days, now):
                    reminders_sent += 1

        trials_expired = 0
        try:
            expired_rows = await self.store.list_expired_trials(now)
        except Exception as exc:  # pragma: no cover - defensive guard
            logger.error(
                "trial_expiry.query_failed",
                extra={
                    "component": "worker",
                    "error": sanitize_error(exc, default_message="expired trial query failed"),
                },
            )
            expired_rows = []
        for row in expired_rows:
            if await self._expire(row, now):
                trials_expired += 1

        logger.info(
            "trial_expiry.tick",
            extra={"component": "worker", "reminders_sent": reminders_sent, "trials_expired": trials_expired},
        )
        return {"reminders_sent": reminders_sent, "trials_expired": trials_expired}

    async def _remind(self, row: dict[str, Any], days: int, now: datetime) -> bool:
        customer_id = str(row.get("id") or "")
        trial_ends_at = parse_utc_timestamp(row.get("trial_ends_at"))
        if not customer_id or trial_ends_at is None:
            return False

        notification_type = reminder_notification_type(days)
        try:
            if await self.store.notification_exists(
                customer_id,
                notification_type,
                since=trial_ends_at - timedelta(days=days),
            ):
                return False
            message = trial_expiring_email(
                business_name=row.get("business_name"),
                days_left=max(1, days_until(trial_ends_at, now)),
                trial_ends_at=trial_ends_at,
                upgrade_url=self.upgrade_url,
            )
            return await self._deliver(row, notification_type, message, now)
        except Exception as exc:  # pragma: no cover - defensive guard
            logger.warning(
                "trial_expiry.reminder_failed",
                extra={
                    "component": "worker",
                    "customer_id": customer_id,
                    "error": sanitize_error(exc, default_message="trial reminder failed"),
                },
            )
            return False

    async def _expire(self, row: dict[str, Any], now: datetime) -> bool:
        customer_id = str(row.get("id") or "")
        trial_ends_at = parse_utc_timestamp(row.get("trial_ends_at"))
        if not customer_id or trial_ends_at is None:
            return False

        try:
            if not await self.store.notification_exists(
                customer_id,
                TRIAL_EXPIRED_NOTIFICATION,
                since=trial_ends_at,
            ):
                message = trial_expired_email(business_name=row.get("business_name"), upgrade_url=self.upgrade_url)
                await self._deliver(row, TRIAL_EXPIRED_NOTIFICATION, message, now)
            await self.store.update_customer(customer_id, {"status": SubscriptionStatus.EXPIRED.value})
        except Exception as exc:  # pragma: no cover - defensive guard
            logger.warning(
                "trial_expiry.expire_failed",
                extra={
                    "component": "worker",
                    "customer_id": customer_id,
                    "error": sanitize_error(exc, default_message="trial expiry failed"),
                },
            )
            return False

        logger.info("trial_expiry.expired", extra={"component": "worker", "customer_id": customer_id})
        return True

    async def _deliver(
        self,
        row: dict[str, Any],
        notification_type: str,
        message: dict[str, str],
        now: datetime,
    ) -> bool:
        customer_id = str(row.get("id"))
        notification = await self.store.insert_notification(customer_id, notification_type)
        email = row.get("email")
        try:
            if not isinstance(email, str) or not email.strip():
                raise EmailSendError("Customer has no e-mail address.")
            await run_in_threadpool(
                self.sender,
                to=email.strip(),
                subject=message["subject"],
                html=message["html"],
                text=message["text"],
                customer_id=customer_id,
            )
        except (EmailNotConfiguredError, EmailSendError) as exc:
            await self.store.update_notification(
                str(notification.get("id")),
                {"status": "failed", "error_message": sanitize_error(exc, default_message="email delivery failed")},
            )
            logger.warning(
                "trial_expiry.email_failed",
                extra={"component": "worker", "customer_id": customer_id, "type": notification_type},
            )
            return False

        await self.store.update_notification(
            str(notification.get("id")),
            {"status": "sent", "sent_at": isoformat_utc(now)},
        )
        return True
