"""Wheel geometry and the spin animation state.

The wheel is drawn with segment 0 starting at 12 o'clock and segments laid
out clockwise. Rotating the wheel clockwise by `r` degrees puts the wheel
angle `(pointer_offset - r) mod 360` under the fixed pointer.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from startale_lotto.lottery.models import (
    BONUS_TICKET_PRIZE_TYPE,
    NO_WIN_PRIZE_TYPE,
    TICKET_PRIZE_TYPE,
    PendingOutcome,
    WheelAnimationState,
)
from startale_lotto.utils.logger import get_logger

logger = get_logger(__name__)

WHOLE_TURN_DEGREES = 3600.0
ANIMATION_DURATION_SEC = 4.5


@dataclass(frozen=True)
class WheelSegment:
    label: str
    prize_type: str


DEFAULT_SEGMENTS: Sequence[WheelSegment] = (
    WheelSegment("\N{CRYING FACE}", NO_WIN_PRIZE_TYPE),
    WheelSegment("$2", "$2"),
    WheelSegment("\N{CRYING FACE}", NO_WIN_PRIZE_TYPE),
    WheelSegment("\N{ADMISSION TICKETS}\N{VARIATION SELECTOR-16}", TICKET_PRIZE_TYPE),
    WheelSegment("\N{CRYING FACE}", NO_WIN_PRIZE_TYPE),
    WheelSegment("$5", "$5"),
    WheelSegment("\N{CRYING FACE}", NO_WIN_PRIZE_TYPE),
    WheelSegment("\N{TICKET}", BONUS_TICKET_PRIZE_TYPE),
    WheelSegment("\N{CRYING FACE}", NO_WIN_PRIZE_TYPE),
    WheelSegment("$10", "$10"),
)


class WheelGeometry:
    """Maps prize types to rotations that stop on a matching segment."""

    def __init__(
        self,
        segments: Sequence[WheelSegment] = DEFAULT_SEGMENTS,
        pointer_offset: float = 0.0,
        rng: Optional[random.Random] = None,
    ) -> None:
        if not segments:
            raise ValueError("wheel needs at least one segment")
        self.segments = tuple(segments)
        self.pointer_offset = float(pointer_offset)
        self._rng = rng or random.Random()

    @property
    def segment_angle(self) -> float:
        return 360.0 / len(self.segments)

    def center_angle(self, index: int) -> float:
        return index * self.segment_angle + self.segment_angle / 2

    def indices_for(self, prize_type: str) -> List[int]:
        return [i for i, seg in enumerate(self.segments) if seg.prize_type == prize_type]

    def angle_for(self, prize_type: str) -> float:
        """Rotation in [0, 360) that leaves the pointer on a `prize_type` segment.

        Unknown prize types fall back to a uniformly random angle.
        """
        matches = self.indices_for(prize_type)
        if not matches:
            logger.warning("Unknown prize type %r; stopping wheel at a random angle", prize_type)
            return self._rng.uniform(0.0, 360.0) % 360.0
        index = self._rng.choice(matches)
        return (360.0 - self.center_angle(index) + self.pointer_offset) % 360.0

    def segment_at(self, rotation: float) -> WheelSegment:
        """Segment under the pointer after rotating the wheel by `rotation`."""
        wheel_angle = (self.pointer_offset - rotation) % 360.0
        index = int(wheel_angle // self.segment_angle) % len(self.segments)
        return self.segments[index]


class WheelAnimator:
    """Owns the WheelAnimationState and its only mutation points."""

    def __init__(
        self,
        geometry: WheelGeometry,
        *,
        whole_turns: float = WHOLE_TURN_DEGREES,
        duration: float = ANIMATION_DURATION_SEC,
        on_change: Optional[Callable[[WheelAnimationState], None]] = None,
    ) -> None:
        self.geometry = geometry
        self.whole_turns = float(whole_turns)
        self.duration = float(duration)
        self.state = WheelAnimationState()
        self._on_change = on_change
        self._finish_task: Optional[asyncio.Task] = None

    def _changed(self) -> None:
        if self._on_change:
            self._on_change(self.state)

    def begin_spin(self, tx_hash: Optional[str] = None) -> None:
        self._cancel_finish()
        self.state.start_rotation_degrees = self.state.current_rotation_degrees
        self.state.is_animating = True
        self.state.target_hash = tx_hash
        logger.debug("Wheel spin started at %.2f deg", self.state.start_rotation_degrees)
        self._changed()

    def apply_outcome(
        self,
        outcome: PendingOutcome,
        on_finished: Optional[Callable[[PendingOutcome], None]] = None,
    ) -> float:
        """Point the wheel at the outcome and finish after the animation duration."""
        start = self.state.start_rotation_degrees
        # measure the stop angle from the wheel's current resting position so
        # the absolute rotation, not just the delta, lands on the segment
        delta = (self.geometry.angle_for(outcome.prize_type) - start) % 360.0
        target = start + self.whole_turns + delta
        self.state.current_rotation_degrees = target
        logger.info("Wheel target %.2f deg for %s (%s)", target, outcome.source_hash, outcome.prize_type)
        self._changed()
        self._cancel_finish()
        self._finish_task = asyncio.get_running_loop().create_task(self._finish_later(outcome, on_finished))
        return target

    async def _finish_later(self, outcome: PendingOutcome, on_finished) -> None:
        await asyncio.sleep(self.duration)
        self.state.is_animating = False
        self._changed()
        if on_finished:
            on_finished(outcome)

    def rollback(self) -> None:
        self._cancel_finish()
        self.state.current_rotation_degrees = self.state.start_rotation_degrees
        self.state.is_animating = False
        self.state.target_hash = None
        logger.info("Wheel rolled back to %.2f deg", self.state.current_rotation_degrees)
        self._changed()

    def _cancel_finish(self) -> None:
        if self._finish_task and not self._finish_task.done():
            self._finish_task.cancel()
        self._finish_task = None

    async def close(self) -> None:
        task = self._finish_task
        self._cancel_finish()
        if task:
            try:
                await task
            except asyncio.CancelledError:
                pass
