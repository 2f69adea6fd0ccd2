from __future__ import annotations

TAIL_CHARS = 50


def _join(existing: str, remainder: str) -> str:
    remainder = remainder.strip()
    if not remainder:
        return existing
    return f"{existing} {remainder}"


def merge(existing: str, incoming: str) -> str:
    """Append a final dictation fragment without repeating overlapping words.

    Continuous recognizers re-deliver text across final boundaries, so the
    fragment is checked against the end of the buffer: first the trailing
    characters, then the last whole word (case-insensitive).
    """
    current = existing.strip()
    if not current:
        return incoming

    fragment = incoming.strip()
    tail = current[-TAIL_CHARS:]
    remainder = fragment[len(tail):]
    if fragment.startswith(tail) and (not remainder or remainder[0].isspace()):
        return _join(current, remainder)

    last_word = current.split()[-1].lower()
    lowered = fragment.lower()
    if lowered == last_word:
        return current
    if lowered.startswith(last_word + " "):
        return _join(current, fragment[len(last_word) + 1:])

    return _join(current, fragment)


class TranscriptBuffer:
    """Editable text owned by one editing surface (quick note, voice tab)."""

    def __init__(self, name: str, text: str = "") -> None:
        self.name = name
        self.text = text

    def apply_final(self, fragment: str) -> str:
        self.text = merge(self.text, fragment)
        return self.text

    def edit(self, text: str) -> None:
        self.text = text

    def clear(self) -> None:
        self.text = ""
