import sys
from datetime import datetime
from typing import TextIO

from live_transcriber.domain.transcript import TranscriptFragment, TranscriptLog

SEPARATOR = "-" * 40


class ConsoleTranscriptView:
    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout
        self._unsubscribe = None

    def attach(self, log: TranscriptLog) -> None:
        self.detach()
        self._unsubscribe = log.subscribe(self.render)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def render(self, fragment: TranscriptFragment | None) -> None:
        if fragment is None:
            self._stream.write(SEPARATOR + "\n")
        else:
            stamp = datetime.fromtimestamp(fragment.received_at).strftime("%H:%M:%S")
            self._stream.write(f"[{stamp}] {fragment.text}\n")
        self._stream.flush()
