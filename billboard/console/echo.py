"""Echo suppression for the firmware log stream."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from ..constants import CR, LF


def valid_length(frame: bytes) -> int:
    """Return the length of the NUL-terminated prefix of *frame*."""

    position = frame.find(b"\x00")
    return len(frame) if position < 0 else position


@dataclass(slots=True)
class EchoState:
    """Per-session echo state shared by the log and input activities."""

    suppressing: bool = False
    last_byte_was_cr: bool = False


class EchoDecoder:
    """Incremental filter that hides the firmware's echo of sent commands.

    After :meth:`begin_suppression` every byte is dropped up to and including
    the next ``\\r\\n`` pair. The CR flag is carried between :meth:`feed`
    calls, so a pair split over two log frames is still recognised.
    """

    def __init__(self, state: EchoState | None = None) -> None:
        self.state = state or EchoState()

    @property
    def suppressing(self) -> bool:
        return self.state.suppressing

    def begin_suppression(self) -> None:
        self.state.suppressing = True

    def feed(self, frame: bytes) -> Tuple[bytes, bool]:
        """Consume one log frame and return ``(visible_bytes, suppressing)``."""

        state = self.state
        visible = bytearray()
        for byte in frame[: valid_length(frame)]:
            if state.suppressing:
                if byte == LF and state.last_byte_was_cr:
                    state.suppressing = False
            else:
                visible.append(byte)
            state.last_byte_was_cr = byte == CR
        return bytes(visible), state.suppressing
