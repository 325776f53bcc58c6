import logging
from pathlib import Path
from typing import Optional

from bonjour_sniffer.core.control import CancelToken
from bonjour_sniffer.core.errors import EndOfStream
from bonjour_sniffer.core.frame import RawFrame
from bonjour_sniffer.core.sources.base import FrameSource
from bonjour_sniffer.core.sources.pcap import PcapFileSource

logger = logging.getLogger(__name__)


class ReplayPcapSource(FrameSource):
    """
    Replay a PCAP file as a live frame stream.
    `limit` caps the frames served in total, across loops.
    """

    def __init__(
        self,
        pcap_path: str | Path,
        *,
        speed: float = 1.0,
        loop: bool = False,
        limit: Optional[int] = None,
        cancel_token: Optional[CancelToken] = None,
    ):
        if speed <= 0:
            raise ValueError(f"speed must be positive, got {speed}")
        self.pcap_path = Path(pcap_path)
        self.speed = speed
        self.loop = loop
        self.limit = limit
        self._total = 0
        self.cancel_token = cancel_token or CancelToken()
        self._file = PcapFileSource(self.pcap_path)
        self._prev_ts: Optional[float] = None
        self._served = 0

    def next_frame(self) -> RawFrame:
        if self.limit is not None and self._total >= self.limit:
            raise EndOfStream()
        while True:
            if self.cancel_token.is_cancelled():
                raise EndOfStream()
            try:
                frame = self._file.next_frame()
                break
            except EndOfStream:
                # an empty file would rewind forever
                if not self.loop or self._served == 0:
                    raise
                logger.debug("Rewinding %s", self.pcap_path)
                self._file.close()
                self._file = PcapFileSource(self.pcap_path)
                self._prev_ts = None
                self._served = 0

        if self._prev_ts is not None:
            delta = frame.info.timestamp - self._prev_ts
            if delta > 0 and self.cancel_token.wait(delta / self.speed):
                raise EndOfStream()

        self._prev_ts = frame.info.timestamp
        self._served += 1
        self._total += 1
        return frame

    def close(self) -> None:
        self.cancel_token.cancel()
        self._file.close()
