from __future__ import annotations

from pathlib import Path

import pytest

from kb_assistant.position import (
    POSITION_KEY,
    DraggablePositionStore,
    DragSession,
    ElementSize,
    JsonFileStore,
    Position,
    Viewport,
)

VIEWPORT = Viewport(width=1280, height=800)
WIDGET = ElementSize(width=56, height=56)
MARGIN = 16


class MemoryStore:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


@pytest.mark.parametrize(
    "position",
    [
        Position(-500, -500),
        Position(0, 0),
        Position(600, 400),
        Position(5000, 5000),
        Position(1280, -3),
        Position(-1e9, 1e9),
    ],
)
def test_clamp_keeps_widget_inside_margins(position: Position) -> None:
    store = DraggablePositionStore(MemoryStore(), WIDGET, margin=MARGIN)

    clamped = store.clamp(position, VIEWPORT)

    assert MARGIN <= clamped.x <= VIEWPORT.width - MARGIN - WIDGET.width
    assert MARGIN <= clamped.y <= VIEWPORT.height - MARGIN - WIDGET.height


def test_default_is_bottom_left() -> None:
    store = DraggablePositionStore(MemoryStore(), WIDGET, margin=MARGIN)

    assert store.load(VIEWPORT) == Position(MARGIN, VIEWPORT.height - MARGIN - WIDGET.height)


def test_load_clamps_persisted_position_to_smaller_viewport() -> None:
    memory = MemoryStore({POSITION_KEY: '{"x": 1200, "y": 700}'})
    store = DraggablePositionStore(memory, WIDGET, margin=MARGIN)

    assert store.load(Viewport(width=400, height=300)) == Position(400 - MARGIN - 56, 300 - MARGIN - 56)


def test_unreadable_position_falls_back_to_default() -> None:
    memory = MemoryStore({POSITION_KEY: "not json"})
    store = DraggablePositionStore(memory, WIDGET, margin=MARGIN)

    assert store.load(VIEWPORT) == store.default(VIEWPORT)


def test_drag_moves_by_delta_and_persists_on_release() -> None:
    memory = MemoryStore()
    store = DraggablePositionStore(memory, WIDGET, margin=MARGIN)
    drag = DragSession(store, VIEWPORT)
    start = drag.position

    drag.pointer_down(1, 100, 700)
    assert drag.dragging
    moved = drag.pointer_move(1, 150, 650)
    assert moved == Position(start.x + 50, start.y - 50)
    assert POSITION_KEY not in memory.data

    drag.pointer_up(1)
    assert not drag.dragging
    assert store.load(VIEWPORT) == moved


def test_drag_is_clamped_and_ignores_other_pointers() -> None:
    store = DraggablePositionStore(MemoryStore(), WIDGET, margin=MARGIN)
    drag = DragSession(store, VIEWPORT)
    start = drag.position

    drag.pointer_down(7, 0, 0)
    assert drag.pointer_move(8, 300, 300) == start
    far = drag.pointer_move(7, -10_000, 10_000)

    assert far == Position(MARGIN, VIEWPORT.height - MARGIN - WIDGET.height)


def test_json_file_store_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "state" / "ui_state.json"
    first = DraggablePositionStore(JsonFileStore(path), WIDGET, margin=MARGIN)
    first.save(Position(320, 240))

    second = DraggablePositionStore(JsonFileStore(path), WIDGET, margin=MARGIN)
    assert second.load(VIEWPORT) == Position(320, 240)


def test_json_file_store_tolerates_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "ui_state.json"
    path.write_text("{broken", encoding="utf-8")

    assert JsonFileStore(path).get(POSITION_KEY) is None
