"""Deferred completion of campaign sends.

A send moves a campaign to ``sending`` inside the request; the dispatcher then
finishes it on the event loop after the configured delay. Each pending
completion is an asyncio task keyed by campaign id so pause and reset can
cancel it, and the completion itself re-reads the campaign and only acts when
it is still ``sending``.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
import random
from typing import Callable, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from crm.config import settings
from crm.db.base import SessionLocal
from crm.db.enums import CampaignStatusEnum
from crm.db.repositories.campaigns import CampaignsRepository
from crm.services.campaigns import completion_fields, failure_fields, mark_sending

logger = logging.getLogger(__name__)


class SendDispatcher:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        *,
        delay_seconds: Optional[float] = None,
        poll_seconds: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._session_factory = session_factory
        self.delay_seconds = settings.CAMPAIGN_SEND_DELAY_SECONDS if delay_seconds is None else delay_seconds
        self.poll_seconds = settings.SCHEDULER_POLL_SECONDS if poll_seconds is None else poll_seconds
        self._rng = rng
        self._tasks: dict[str, asyncio.Task] = {}
        self._scheduler_task: Optional[asyncio.Task] = None

    def pending(self) -> list[str]:
        return [campaign_id for campaign_id, task in self._tasks.items() if not task.done()]

    def complete_now(self, campaign_id: str) -> Optional[CampaignStatusEnum]:
        """Finish a send in a fresh session. Returns the resulting status, or None if skipped."""
        session = self._session_factory()
        try:
            repo = CampaignsRepository(session)
            campaign = repo.get_by_id(campaign_id)
            if campaign is None:
                logger.warning("Campaign vanished before send completion", extra={"campaign_id": campaign_id})
                return None
            if campaign.status != CampaignStatusEnum.sending:
                logger.info(
                    "Skipping send completion",
                    extra={"campaign_id": campaign_id, "status": campaign.status.value},
                )
                return None
            # The write is conditional so a pause or reset committed meanwhile wins.
            try:
                fields = completion_fields(campaign, rng=self._rng)
                applied = repo.update_if_status(campaign_id, CampaignStatusEnum.sending, **fields)
            except Exception as exc:
                logger.exception("Campaign send failed", extra={"campaign_id": campaign_id})
                session.rollback()
                fields = failure_fields(str(exc) or exc.__class__.__name__)
                applied = repo.update_if_status(campaign_id, CampaignStatusEnum.sending, **fields)
            if not applied:
                logger.info("Campaign left sending before completion", extra={"campaign_id": campaign_id})
                return None
            logger.info(
                "Campaign send finished",
                extra={"campaign_id": campaign_id, "status": fields["status"].value, "sent": fields.get("sent", 0)},
            )
            return fields["status"]
        finally:
            session.close()

    async def _complete_later(self, campaign_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        await asyncio.to_thread(self.complete_now, campaign_id)

    def _forget(self, campaign_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(campaign_id) is task:
            del self._tasks[campaign_id]
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Send completion task crashed",
                exc_info=task.exception(),
                extra={"campaign_id": campaign_id},
            )

    async def dispatch(self, campaign_id: str, delay: Optional[float] = None) -> None:
        delay = self.delay_seconds if delay is None else delay
        if delay <= 0:
            await asyncio.to_thread(self.complete_now, campaign_id)
            return

        existing = self._tasks.get(campaign_id)
        if existing is not None and not existing.done():
            logger.debug("Send completion already pending", extra={"campaign_id": campaign_id})
            return
        task = asyncio.create_task(self._complete_later(campaign_id, delay), name=f"campaign-send-{campaign_id}")
        self._tasks[campaign_id] = task
        task.add_done_callback(lambda done, cid=campaign_id: self._forget(cid, done))

    def cancel(self, campaign_id: str) -> bool:
        task = self._tasks.pop(campaign_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info("Pending send completion cancelled", extra={"campaign_id": campaign_id})
        return True

    def _start_due_sends(self, now: datetime) -> list[str]:
        session = self._session_factory()
        try:
            repo = CampaignsRepository(session)
            started: list[str] = []
            for campaign in repo.find_due_scheduled(now):
                mark_sending(campaign, now=now)
                started.append(campaign.id)
            session.commit()
            return started
        finally:
            session.close()

    async def dispatch_due(self, now: Optional[datetime] = None) -> list[str]:
        now = now or datetime.now(timezone.utc)
        started = await asyncio.to_thread(self._start_due_sends, now)
        for campaign_id in started:
            await self.dispatch(campaign_id)
        if started:
            logger.info("Scheduled campaigns dispatched", extra={"count": len(started)})
        return started

    async def run_scheduler(self) -> None:
        while True:
            try:
                await self.dispatch_due()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Scheduled campaign poll failed")
            await asyncio.sleep(self.poll_seconds)

    def start_scheduler(self) -> None:
        if self.poll_seconds <= 0 or self._scheduler_task is not None:
            return
        self._scheduler_task = asyncio.create_task(self.run_scheduler(), name="campaign-scheduler")

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        if self._scheduler_task is not None:
            tasks.append(self._scheduler_task)
            self._scheduler_task = None
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


def get_dispatcher(request: Request) -> SendDispatcher:
    return request.app.state.dispatcher
