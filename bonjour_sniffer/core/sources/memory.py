from typing import Iterable, Union

from bonjour_sniffer.core.errors import EndOfStream
from bonjour_sniffer.core.frame import RawFrame
from bonjour_sniffer.core.sources.base import FrameSource


class MemoryFrameSource(FrameSource):
    """
    Serve frames already held in memory, then end.
    """

    def __init__(self, frames: Iterable[Union[RawFrame, bytes]]):
        self._frames = iter(frames)
        self._closed = False

    def next_frame(self) -> RawFrame:
        if self._closed:
            raise EndOfStream()
        try:
            frame = next(self._frames)
        except StopIteration:
            raise EndOfStream() from None
        if isinstance(frame, RawFrame):
            return frame
        return RawFrame.from_bytes(frame)

    def close(self) -> None:
        self._closed = True
