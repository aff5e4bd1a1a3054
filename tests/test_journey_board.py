"""Tests for pillar_journey.core.journey_board — local snapshot with two-phase commit."""

import asyncio
from unittest.mock import patch

import pytest

from pillar_journey.core.journey_board import JourneyBoard
from pillar_journey.core.journeys import JourneyNotFoundError, JourneyOutcome
from pillar_journey.core.pillars import PillarKey
from pillar_journey.data.models import JourneyStatus


async def _board_with_journeys(service, *pillars, mode="intensive"):
    service.set_mode("u1", mode)
    journeys = [(await service.start_journey("u1", p)).journey for p in pillars]
    board = JourneyBoard(service, "u1")
    board.refresh()
    return board, journeys


class TestViews:
    @pytest.mark.asyncio
    async def test_refresh_loads_snapshot(self, journey_service):
        board, journeys = await _board_with_journeys(journey_service, PillarKey.SELF_CARE, PillarKey.SKILLS)
        assert [j.id for j in board.active()] == [j.id for j in journeys]
        assert board.metrics().active == 2

    @pytest.mark.asyncio
    async def test_views_are_memoized_until_change(self, journey_service):
        board, journeys = await _board_with_journeys(journey_service, PillarKey.SELF_CARE)
        with patch("pillar_journey.core.journey_board.sort_for_display", wraps=lambda js: list(js)) as spy:
            board.active()
            board.active()
            assert spy.call_count == 1
            await board.pause(journeys[0].id)
            board.active()
            assert spy.call_count == 2

    @pytest.mark.asyncio
    async def test_unknown_journey(self, journey_service):
        board, _ = await _board_with_journeys(journey_service)
        with pytest.raises(JourneyNotFoundError):
            await board.pause("missing")


class TestTwoPhaseCommit:
    @pytest.mark.asyncio
    async def test_success_reconciles_with_service(self, journey_service):
        board, journeys = await _board_with_journeys(journey_service, PillarKey.SELF_CARE)
        outcome = await board.pause(journeys[0].id)
        assert outcome.success
        paused = board.get(journeys[0].id)
        assert paused.status is JourneyStatus.PAUSED
        assert paused.paused_at is not None
        assert [j.id for j in board.paused()] == [journeys[0].id]
        assert board.pending == {}

    @pytest.mark.asyncio
    async def test_pending_status_visible_while_in_flight(self, journey_service):
        board, journeys = await _board_with_journeys(journey_service, PillarKey.SELF_CARE)
        gate = asyncio.Event()
        seen = {}

        real_pause = journey_service.pause

        async def slow_pause(journey_id):
            seen["status"] = board.get(journey_id).status
            seen["pending"] = board.pending
            await gate.wait()
            return await real_pause(journey_id)

        with patch.object(journey_service, "pause", slow_pause):
            task = asyncio.create_task(board.pause(journeys[0].id))
            await asyncio.sleep(0)
            second = await board.pause(journeys[0].id)
            gate.set()
            await task

        assert seen["status"] is JourneyStatus.PAUSED
        assert seen["pending"] == {journeys[0].id: JourneyStatus.PAUSED}
        assert not second.success

    @pytest.mark.asyncio
    async def test_rejection_reconciles_to_authoritative_state(self, journey_service):
        board, journeys = await _board_with_journeys(journey_service, PillarKey.SELF_CARE, mode="guided")
        journey_id = journeys[0].id
        await journey_service.abandon(journey_id)   # changed elsewhere

        outcome = await board.pause(journey_id)
        assert not outcome.success
        assert board.get(journey_id).status is JourneyStatus.ABANDONED

    @pytest.mark.asyncio
    async def test_failed_outcome_without_journey_restores_snapshot(self, journey_service):
        board, journeys = await _board_with_journeys(journey_service, PillarKey.SELF_CARE)

        async def refuse(journey_id):
            return JourneyOutcome(success=False, reason="nope")

        with patch.object(journey_service, "complete", refuse):
            outcome = await board.complete(journeys[0].id)
        assert not outcome.success
        assert board.get(journeys[0].id).status is JourneyStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_exception_rolls_back_and_propagates(self, journey_service):
        board, journeys = await _board_with_journeys(journey_service, PillarKey.SELF_CARE)

        async def boom(journey_id):
            raise RuntimeError("store down")

        with patch.object(journey_service, "abandon", boom):
            with pytest.raises(RuntimeError):
                await board.abandon(journeys[0].id)
        assert board.get(journeys[0].id).status is JourneyStatus.ACTIVE
        assert board.pending == {}

    @pytest.mark.asyncio
    async def test_resume_and_complete(self, journey_service):
        board, journeys = await _board_with_journeys(journey_service, PillarKey.SELF_CARE)
        journey_id = journeys[0].id
        await board.pause(journey_id)
        await board.resume(journey_id)
        assert board.get(journey_id).status is JourneyStatus.ACTIVE
        await board.complete(journey_id)
        assert board.get(journey_id).progress == 100
        assert board.metrics().completed == 1
