from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

POSITION_KEY = "dictation-widget-position"


@dataclass(frozen=True)
class Position:
    x: float
    y: float


@dataclass(frozen=True)
class Viewport:
    width: float
    height: float


@dataclass(frozen=True)
class ElementSize:
    width: float
    height: float


DICTATION_WIDGET = ElementSize(width=280, height=64)


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class JsonFileStore:
    """UI preferences kept as one JSON object on disk."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> str | None:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def _bound(value: float, low: float, high: float) -> float:
    # Lower bound wins when the viewport is smaller than the element.
    return max(low, min(value, high))


class DraggablePositionStore:
    def __init__(self, store: KeyValueStore, element: ElementSize, margin: float = 16) -> None:
        self._store = store
        self.element = element
        self.margin = margin

    def clamp(self, position: Position, viewport: Viewport) -> Position:
        return Position(
            x=_bound(position.x, self.margin, viewport.width - self.margin - self.element.width),
            y=_bound(position.y, self.margin, viewport.height - self.margin - self.element.height),
        )

    def default(self, viewport: Viewport) -> Position:
        return self.clamp(Position(self.margin, viewport.height - self.margin - self.element.height), viewport)

    def load(self, viewport: Viewport) -> Position:
        raw = self._store.get(POSITION_KEY)
        if raw is None:
            return self.default(viewport)
        try:
            data = json.loads(raw)
            position = Position(x=float(data["x"]), y=float(data["y"]))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            logger.info("ignoring unreadable widget position: %r", raw)
            return self.default(viewport)
        return self.clamp(position, viewport)

    def save(self, position: Position) -> None:
        self._store.set(POSITION_KEY, json.dumps({"x": position.x, "y": position.y}))


class DragSession:
    """Pointer-driven drag of the floating widget."""

    def __init__(self, positions: DraggablePositionStore, viewport: Viewport) -> None:
        self._positions = positions
        self.viewport = viewport
        self.position = positions.load(viewport)
        self.captured_pointer: int | None = None
        self._origin: tuple[float, float] = (0.0, 0.0)
        self._start = self.position

    @property
    def dragging(self) -> bool:
        return self.captured_pointer is not None

    def pointer_down(self, pointer_id: int, x: float, y: float) -> None:
        self.captured_pointer = pointer_id
        self._origin = (x, y)
        self._start = self.position

    def pointer_move(self, pointer_id: int, x: float, y: float) -> Position:
        if pointer_id != self.captured_pointer:
            return self.position
        moved = Position(self._start.x + x - self._origin[0], self._start.y + y - self._origin[1])
        self.position = self._positions.clamp(moved, self.viewport)
        return self.position

    def pointer_up(self, pointer_id: int) -> None:
        if pointer_id != self.captured_pointer:
            return
        self.captured_pointer = None
        self._positions.save(self.position)

    def resize(self, viewport: Viewport) -> Position:
        self.viewport = viewport
        self.position = self._positions.clamp(self.position, viewport)
        return self.position
