from __future__ import annotations

import asyncio

import uvicorn

from waghl.core.logging import configure_logging, get_logger
from waghl.core.settings import Settings, get_settings
from waghl.core.supabase_rest import CustomerStore
from waghl.worker.retry import sanitize_error
from waghl.worker.trial_expiry import TrialExpiryProcessor

logger = get_logger("worker.supervisor")


def build_trial_processor(settings: Settings) -> TrialExpiryProcessor:
    return TrialExpiryProcessor(
        store=CustomerStore.from_settings(settings),
        upgrade_url=settings.upgrade_url,
        reminder_days=settings.trial_reminder_days,
        interval_seconds=settings.TRIAL_CHECK_INTERVAL_SECONDS,
    )


async def run_worker_tick(trial_processor: TrialExpiryProcessor) -> dict[str, object]:
    errors = 0
    metrics: dict[str, int] = {}
    try:
        metrics = await trial_processor.process_if_due()
    except Exception as exc:  # pragma: no cover - defensive guard
        errors += 1
        logger.error(
            "worker.tick_trial_expiry_error",
            extra={"component": "worker", "error": sanitize_error(exc, default_message="worker error")},
        )
    return {"mode": "worker", **metrics, "errors": errors}


async def run_worker_supervisor_loop() -> None:
    settings = get_settings()
    trial_processor = build_trial_processor(settings)
    logger.info(
        "worker.started",
        extra={"component": "worker", "reminder_days": settings.trial_reminder_days},
    )
    while True:
        await run_worker_tick(trial_processor)
        await asyncio.sleep(max(1, settings.WORKER_POLL_INTERVAL_SECONDS))


def main() -> None:
    configure_logging()
    settings = get_settings()
    mode = settings.WAGHL_MODE.strip().lower()

    if mode == "worker":
        asyncio.run(run_worker_supervisor_loop())
        return

    uvicorn.run("waghl.main:app", host=settings.API_HOST, port=settings.API_PORT)


if __name__ == "__main__":
    main()
