"""
View-model of the weekly availability editor.

The grid has one time column followed by seven day columns (Sunday first).
Each 15-minute row is SLOT_HEIGHT_PX pixels high. A drag or resize gesture
moves a preview of one slot; on release the change is applied to the grid
optimistically and handed to the caller as a PendingChange to persist, then
either confirmed with save_succeeded() or rolled back with save_failed().
"""
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Tuple
import enum
import logging
import math

from app.core.exceptions import ValidationError
from app.services.timeslot_service import (
    GRID_END_MINUTES,
    GRID_START_MINUTES,
    MIN_SLOT_DURATION,
    SLOT_INCREMENT,
    intervals_overlap,
)

logger = logging.getLogger(__name__)

SLOT_HEIGHT_PX = 30
GRID_COLUMNS = 8  # time column + 7 days
DEFAULT_DAY_COLUMN_WIDTH = 100


class GridState(str, enum.Enum):
    IDLE = "IDLE"
    DRAGGING = "DRAGGING"
    RESIZING = "RESIZING"
    SAVING = "SAVING"


class ResizeEdge(str, enum.Enum):
    TOP = "top"
    BOTTOM = "bottom"


@dataclass(frozen=True)
class GridSlot:
    id: str
    day_of_week: int
    start_minutes: int
    end_minutes: int
    is_booked: bool = False

    @property
    def duration(self) -> int:
        return self.end_minutes - self.start_minutes


@dataclass(frozen=True)
class PendingChange:
    original: GridSlot
    updated: GridSlot


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def snap_to_grid(minutes: float) -> int:
    return _round_half_up(minutes / SLOT_INCREMENT) * SLOT_INCREMENT


class TimeslotGrid:
    """Finite-state editor for one teacher's weekly slots"""

    def __init__(self, slots: Iterable[GridSlot] = ()):
        self.slots: Dict[str, GridSlot] = {slot.id: slot for slot in slots}
        self.state = GridState.IDLE
        self.grid_width: Optional[float] = None
        self.hovered_cell: Optional[Tuple[int, int]] = None

        self.active_id: Optional[str] = None
        self.resize_edge: Optional[ResizeEdge] = None
        self.preview: Optional[GridSlot] = None
        self.pending: Optional[PendingChange] = None

    # Geometry

    @property
    def day_column_width(self) -> float:
        if not self.grid_width:
            return DEFAULT_DAY_COLUMN_WIDTH
        return self.grid_width / GRID_COLUMNS

    def time_to_y(self, minutes: int) -> float:
        return (minutes - GRID_START_MINUTES) / SLOT_INCREMENT * SLOT_HEIGHT_PX

    def y_to_time(self, y: float) -> int:
        return GRID_START_MINUTES + _round_half_up(y / SLOT_HEIGHT_PX) * SLOT_INCREMENT

    def day_to_x(self, day_of_week: int) -> float:
        return (day_of_week + 1) * self.day_column_width

    def x_to_day(self, x: float) -> int:
        width = self.day_column_width
        day = _round_half_up((x - width) / width)
        return max(0, min(6, day))

    def slot_height(self, slot: GridSlot) -> float:
        return max(slot.duration, MIN_SLOT_DURATION) / SLOT_INCREMENT * SLOT_HEIGHT_PX

    # Queries

    def would_overlap(self, candidate: GridSlot) -> bool:
        return any(
            other.id != candidate.id and intervals_overlap(
                candidate.day_of_week, candidate.start_minutes, candidate.end_minutes,
                other.day_of_week, other.start_minutes, other.end_minutes
            )
            for other in self.slots.values()
        )

    def slot_at(self, day_of_week: int, minutes: int) -> Optional[GridSlot]:
        for slot in self.slots.values():
            if slot.day_of_week == day_of_week and slot.start_minutes <= minutes < slot.end_minutes:
                return slot
        return None

    def ordered_slots(self) -> List[GridSlot]:
        return sorted(self.slots.values(), key=lambda s: (s.day_of_week, s.start_minutes))

    # Events

    def _require(self, *states: GridState) -> None:
        if self.state not in states:
            raise ValidationError(f"Grid is {self.state.value.lower()}")

    def grid_ready(self, width: float) -> None:
        if width > 0:
            self.grid_width = width

    def hover_cell(self, day_of_week: int, minutes: int) -> Optional[Tuple[int, int]]:
        """Track the free cell under the pointer; a click there creates a 15-minute slot"""
        if self.state != GridState.IDLE or self.slot_at(day_of_week, minutes):
            self.hovered_cell = None
        elif GRID_START_MINUTES <= minutes <= GRID_END_MINUTES - MIN_SLOT_DURATION:
            self.hovered_cell = (day_of_week, minutes)
        else:
            self.hovered_cell = None
        return self.hovered_cell

    def _begin(self, slot_id: str, state: GridState) -> None:
        self._require(GridState.IDLE)
        slot = self.slots.get(slot_id)
        if slot is None:
            raise ValidationError("Timeslot not found")
        if slot.is_booked:
            raise ValidationError("Cannot update booked timeslots")

        self.state = state
        self.active_id = slot_id
        self.preview = slot
        self.hovered_cell = None

    def begin_drag(self, slot_id: str) -> None:
        self._begin(slot_id, GridState.DRAGGING)

    def begin_resize(self, slot_id: str, edge: ResizeEdge) -> None:
        self._begin(slot_id, GridState.RESIZING)
        self.resize_edge = ResizeEdge(edge)

    def pointer_move(self, x: Optional[float] = None, y: Optional[float] = None) -> GridSlot:
        """Update the preview from the slot's top-left position (drag) or the edge position (resize)"""
        self._require(GridState.DRAGGING, GridState.RESIZING)
        original = self.slots[self.active_id]

        if self.state == GridState.DRAGGING:
            day = self.preview.day_of_week
            if x is not None:
                day = self.x_to_day(max(x, self.day_column_width))

            start = self.preview.start_minutes
            if y is not None:
                start = snap_to_grid(self.y_to_time(y))
                start = max(GRID_START_MINUTES, min(GRID_END_MINUTES - MIN_SLOT_DURATION, start))
            end = min(GRID_END_MINUTES, start + original.duration)

            self.preview = replace(original, day_of_week=day, start_minutes=start, end_minutes=end)
        elif y is not None:
            edge_minutes = snap_to_grid(self.y_to_time(y))
            if self.resize_edge == ResizeEdge.TOP:
                self.preview = replace(self.preview, start_minutes=max(GRID_START_MINUTES, edge_minutes))
            else:
                self.preview = replace(self.preview, end_minutes=min(GRID_END_MINUTES, edge_minutes))

        return self.preview

    def release(self) -> Optional[PendingChange]:
        """End the gesture; returns the change to persist, or None when it was rejected"""
        self._require(GridState.DRAGGING, GridState.RESIZING)
        original = self.slots[self.active_id]
        candidate = self.preview
        self._reset_gesture()

        if candidate == original:
            return None

        if candidate.duration < MIN_SLOT_DURATION:
            logger.debug(f"Rejected change to {original.id}: shorter than {MIN_SLOT_DURATION} minutes")
            return None

        if self.would_overlap(candidate):
            logger.debug(f"Rejected change to {original.id}: overlaps another timeslot")
            return None

        self.slots[original.id] = candidate
        self.pending = PendingChange(original=original, updated=candidate)
        self.state = GridState.SAVING
        return self.pending

    def save_succeeded(self) -> GridSlot:
        self._require(GridState.SAVING)
        updated = self.pending.updated
        self.pending = None
        self.state = GridState.IDLE
        return updated

    def save_failed(self) -> GridSlot:
        """Revert the optimistic update"""
        self._require(GridState.SAVING)
        original = self.pending.original
        self.slots[original.id] = original
        self.pending = None
        self.state = GridState.IDLE
        return original

    def _reset_gesture(self) -> None:
        self.state = GridState.IDLE
        self.active_id = None
        self.resize_edge = None
        self.preview = None
