import asyncio
from datetime import datetime, timedelta, timezone
import random

import pytest

from crm.db.enums import CampaignStatusEnum
from crm.db.models import Campaign
from crm.db.repositories.campaigns import CampaignsRepository
from crm.services.dispatcher import SendDispatcher


class ExplodingRandom(random.Random):
    def random(self):
        raise RuntimeError("metrics provider exploded")


@pytest.fixture()
def make_campaign(db_session, user):
    def _make(status=CampaignStatusEnum.sending, **fields) -> str:
        campaign = CampaignsRepository(db_session).create(
            user.id,
            name="Dispatch test",
            audience_segment_id="segment-1",
            message="Hello",
            subject="Hi",
            status=status,
            audience_size=500,
            **fields,
        )
        return campaign.id

    return _make


def _reload(db_session, campaign_id: str) -> Campaign:
    db_session.expire_all()
    return db_session.get(Campaign, campaign_id)


def test_immediate_dispatch_completes_inline(db_session, make_campaign):
    campaign_id = make_campaign()
    dispatcher = SendDispatcher(delay_seconds=0, poll_seconds=0, rng=random.Random(3))

    asyncio.run(dispatcher.dispatch(campaign_id))

    campaign = _reload(db_session, campaign_id)
    assert campaign.status == CampaignStatusEnum.completed
    assert campaign.sent == 500
    assert campaign.delivered + campaign.failed == 500


def test_delayed_dispatch_completes_after_delay(db_session, make_campaign):
    campaign_id = make_campaign()
    dispatcher = SendDispatcher(delay_seconds=0.05, poll_seconds=0)

    async def scenario():
        await dispatcher.dispatch(campaign_id)
        assert dispatcher.pending() == [campaign_id]
        assert _reload(db_session, campaign_id).status == CampaignStatusEnum.sending
        await asyncio.sleep(0.3)

    asyncio.run(scenario())

    assert _reload(db_session, campaign_id).status == CampaignStatusEnum.completed
    assert dispatcher.pending() == []


def test_cancel_prevents_completion(db_session, make_campaign):
    campaign_id = make_campaign()
    dispatcher = SendDispatcher(delay_seconds=0.05, poll_seconds=0)

    async def scenario():
        await dispatcher.dispatch(campaign_id)
        assert dispatcher.cancel(campaign_id) is True
        await asyncio.sleep(0.2)

    asyncio.run(scenario())

    campaign = _reload(db_session, campaign_id)
    assert campaign.status == CampaignStatusEnum.sending
    assert campaign.sent == 0


def test_pause_during_delay_is_not_overwritten(db_session, make_campaign):
    campaign_id = make_campaign()
    dispatcher = SendDispatcher(delay_seconds=0.05, poll_seconds=0)

    async def scenario():
        await dispatcher.dispatch(campaign_id)
        campaign = _reload(db_session, campaign_id)
        campaign.status = CampaignStatusEnum.paused
        db_session.commit()
        await asyncio.sleep(0.3)

    asyncio.run(scenario())

    campaign = _reload(db_session, campaign_id)
    assert campaign.status == CampaignStatusEnum.paused
    assert campaign.completed_at is None
    assert campaign.sent == 0


class PauseWhileComputing(random.Random):
    """Commits a pause from another session once the completion has read ``sending``."""

    def __init__(self, pause):
        super().__init__(5)
        self._pause = pause

    def random(self):
        if self._pause is not None:
            pause, self._pause = self._pause, None
            pause()
        return super().random()


def test_pause_committed_during_completion_wins(db_session, make_campaign):
    campaign_id = make_campaign()

    def pause():
        campaign = _reload(db_session, campaign_id)
        campaign.status = CampaignStatusEnum.paused
        db_session.commit()

    dispatcher = SendDispatcher(delay_seconds=0, poll_seconds=0, rng=PauseWhileComputing(pause))

    assert dispatcher.complete_now(campaign_id) is None

    campaign = _reload(db_session, campaign_id)
    assert campaign.status == CampaignStatusEnum.paused
    assert campaign.completed_at is None
    assert campaign.sent == 0


def test_conditional_update_only_matches_expected_status(db_session, make_campaign):
    campaign_id = make_campaign(status=CampaignStatusEnum.paused)
    repo = CampaignsRepository(db_session)

    assert repo.update_if_status(campaign_id, CampaignStatusEnum.sending, status=CampaignStatusEnum.completed) is False
    assert repo.update_if_status(campaign_id, CampaignStatusEnum.paused, status=CampaignStatusEnum.draft) is True
    assert _reload(db_session, campaign_id).status == CampaignStatusEnum.draft


def test_second_dispatch_keeps_running_task(db_session, make_campaign):
    campaign_id = make_campaign()
    dispatcher = SendDispatcher(delay_seconds=10, poll_seconds=0)

    async def scenario():
        await dispatcher.dispatch(campaign_id)
        first = dispatcher._tasks[campaign_id]
        await dispatcher.dispatch(campaign_id)
        assert dispatcher._tasks[campaign_id] is first
        await dispatcher.shutdown()
        assert first.cancelled()

    asyncio.run(scenario())

    assert _reload(db_session, campaign_id).status == CampaignStatusEnum.sending


def test_failed_completion_marks_campaign_failed(db_session, make_campaign):
    campaign_id = make_campaign()
    dispatcher = SendDispatcher(delay_seconds=0, poll_seconds=0, rng=ExplodingRandom())

    asyncio.run(dispatcher.dispatch(campaign_id))

    campaign = _reload(db_session, campaign_id)
    assert campaign.status == CampaignStatusEnum.failed
    assert campaign.error_message == "metrics provider exploded"


def test_completion_skips_campaigns_no_longer_sending(db_session, make_campaign):
    campaign_id = make_campaign(status=CampaignStatusEnum.draft)
    dispatcher = SendDispatcher(delay_seconds=0, poll_seconds=0)

    assert dispatcher.complete_now(campaign_id) is None
    assert dispatcher.complete_now("missing-campaign") is None
    assert _reload(db_session, campaign_id).status == CampaignStatusEnum.draft


def test_dispatch_due_sends_only_past_scheduled(db_session, make_campaign):
    now = datetime.now(timezone.utc)
    due_id = make_campaign(status=CampaignStatusEnum.scheduled, send_at=now - timedelta(minutes=5))
    future_id = make_campaign(status=CampaignStatusEnum.scheduled, send_at=now + timedelta(hours=2))
    dispatcher = SendDispatcher(delay_seconds=0, poll_seconds=0)

    started = asyncio.run(dispatcher.dispatch_due(now=now))

    assert started == [due_id]
    due = _reload(db_session, due_id)
    assert due.status == CampaignStatusEnum.completed
    assert due.sent_at is not None
    assert _reload(db_session, future_id).status == CampaignStatusEnum.scheduled


def test_scheduler_disabled_when_poll_is_zero():
    dispatcher = SendDispatcher(delay_seconds=0, poll_seconds=0)

    async def scenario():
        dispatcher.start_scheduler()
        assert dispatcher._scheduler_task is None
        await dispatcher.shutdown()

    asyncio.run(scenario())
