from abc import ABC, abstractmethod
from typing import Iterator

from bonjour_sniffer.core.errors import EndOfStream
from bonjour_sniffer.core.frame import RawFrame


class FrameSource(ABC):
    """
    Abstract capture source.
    Must be passive-only.
    """

    @abstractmethod
    def next_frame(self) -> RawFrame:
        """
        Return the next captured frame.
        Raises EndOfStream when exhausted, SourceReadError when capture fails.
        Must not send traffic.
        """
        raise NotImplementedError

    def close(self) -> None:
        """
        Release capture resources. Safe to call more than once.
        """

    def frames(self) -> Iterator[RawFrame]:
        while True:
            try:
                frame = self.next_frame()
            except EndOfStream:
                return
            yield frame

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
