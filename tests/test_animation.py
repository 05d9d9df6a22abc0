import asyncio
import random

import pytest

from startale_lotto.lottery.animation import DEFAULT_SEGMENTS, WheelAnimator, WheelGeometry
from startale_lotto.lottery.models import (
    BONUS_TICKET_PRIZE_TYPE,
    NO_WIN_PRIZE_TYPE,
    TICKET_PRIZE_TYPE,
    PendingOutcome,
)

from fakes import tx_hash

PRIZE_TYPES = sorted({segment.prize_type for segment in DEFAULT_SEGMENTS})


@pytest.mark.parametrize("prize_type", PRIZE_TYPES)
@pytest.mark.parametrize("pointer_offset", [0.0, 90.0, 217.5])
def test_angle_lands_on_matching_segment(prize_type: str, pointer_offset: float) -> None:
    geometry = WheelGeometry(pointer_offset=pointer_offset, rng=random.Random(7))
    for _ in range(20):
        angle = geometry.angle_for(prize_type)
        assert 0.0 <= angle < 360.0
        assert geometry.segment_at(angle).prize_type == prize_type


def test_unknown_prize_type_falls_back_to_random_angle() -> None:
    geometry = WheelGeometry(rng=random.Random(1))
    for _ in range(50):
        assert 0.0 <= geometry.angle_for("JACKPOT") < 360.0


def test_target_adds_whole_turns_and_keeps_segment_from_any_start() -> None:
    async def scenario() -> None:
        geometry = WheelGeometry(rng=random.Random(3))
        animator = WheelAnimator(geometry, duration=0.01)
        animator.state.current_rotation_degrees = 4000.0
        animator.begin_spin(tx_hash(1))

        target = animator.apply_outcome(PendingOutcome("$10", 10, tx_hash(1), is_win=True))

        assert 4000.0 + 3600.0 <= target < 4000.0 + 3960.0
        assert geometry.segment_at(target).prize_type == "$10"
        await asyncio.sleep(0.05)
        assert animator.state.is_animating is False
        assert animator.state.current_rotation_degrees == target

    asyncio.run(scenario())


def test_finish_callback_receives_outcome() -> None:
    async def scenario() -> None:
        finished = []
        animator = WheelAnimator(WheelGeometry(), duration=0.01)
        animator.begin_spin(tx_hash(2))
        outcome = PendingOutcome("LOSE", 0, tx_hash(2))
        animator.apply_outcome(outcome, on_finished=finished.append)
        await asyncio.sleep(0.05)
        assert finished == [outcome]

    asyncio.run(scenario())


def test_rollback_restores_start_rotation() -> None:
    async def scenario() -> None:
        changes = []
        animator = WheelAnimator(WheelGeometry(), duration=10, on_change=lambda s: changes.append(s.is_animating))
        animator.state.current_rotation_degrees = 123.0
        animator.begin_spin(tx_hash(3))
        animator.apply_outcome(PendingOutcome("$1", 1, tx_hash(3), is_win=True))

        animator.rollback()

        assert animator.state.current_rotation_degrees == 123.0
        assert animator.state.is_animating is False
        assert animator.state.target_hash is None
        assert changes[-1] is False
        await animator.close()

    asyncio.run(scenario())


@pytest.mark.parametrize("prize_type", ["$2", "$5", "$10", TICKET_PRIZE_TYPE, BONUS_TICKET_PRIZE_TYPE, NO_WIN_PRIZE_TYPE])
def test_every_contract_prize_tag_has_a_segment(prize_type: str) -> None:
    geometry = WheelGeometry(rng=random.Random(11))
    assert geometry.indices_for(prize_type)
    assert geometry.segment_at(geometry.angle_for(prize_type)).prize_type == prize_type


def test_default_wheel_alternates_losing_segments() -> None:
    assert len(DEFAULT_SEGMENTS) == 10
    assert [s.prize_type for s in DEFAULT_SEGMENTS[::2]] == [NO_WIN_PRIZE_TYPE] * 5
