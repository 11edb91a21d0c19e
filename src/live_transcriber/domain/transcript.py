import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from time import time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranscriptFragment:
    text: str
    received_at: float = field(default_factory=time)


# Called with the appended fragment, or None after a clear.
TranscriptListener = Callable[[TranscriptFragment | None], None]


class TranscriptLog:
    def __init__(self) -> None:
        self._fragments: list[TranscriptFragment] = []
        self._listeners: list[TranscriptListener] = []

    @property
    def fragments(self) -> tuple[TranscriptFragment, ...]:
        return tuple(self._fragments)

    def __len__(self) -> int:
        return len(self._fragments)

    def text(self, separator: str = "\n") -> str:
        return separator.join(fragment.text for fragment in self._fragments)

    def subscribe(self, listener: TranscriptListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def append(self, text: str) -> TranscriptFragment:
        fragment = TranscriptFragment(text=text, received_at=time())
        self._fragments.append(fragment)
        logger.info("Transcript: %s", text)
        self._notify(fragment)
        return fragment

    def clear(self) -> None:
        if not self._fragments:
            return
        self._fragments.clear()
        self._notify(None)

    def _notify(self, fragment: TranscriptFragment | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(fragment)
            except Exception:
                logger.exception("Transcript listener failed")
