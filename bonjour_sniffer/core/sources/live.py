import logging
import time
from queue import Empty, Queue
from typing import Optional

from scapy.all import AsyncSniffer
from scapy.error import Scapy_Exception

from bonjour_sniffer.core.control import CancelToken
from bonjour_sniffer.core.errors import EndOfStream, SourceReadError
from bonjour_sniffer.core.frame import CaptureInfo, RawFrame
from bonjour_sniffer.core.sources.base import FrameSource

logger = logging.getLogger(__name__)


class LiveInterfaceSource(FrameSource):
    def __init__(
        self,
        interface: str,
        *,
        bpf_filter: Optional[str] = None,
        packet_limit: Optional[int] = None,
        timeout: Optional[int] = None,
        poll_interval: float = 0.25,
        stop_timeout: float = 2.0,
    ):
        self.interface = interface
        self.bpf_filter = bpf_filter
        self.packet_limit = packet_limit
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.stop_timeout = stop_timeout
        self._queue: Queue = Queue()
        self._stopped = CancelToken()
        self._sniffer: Optional[AsyncSniffer] = None

    def _start(self) -> None:
        """
        Passive streaming sniffing.
        - AsyncSniffer captures in its own thread.
        - Frames reach next_frame() through a queue.
        - Ends when the capture finishes (count/timeout) or on close().
        """
        logger.info("Starting capture on %s (filter=%r)", self.interface, self.bpf_filter)
        self._sniffer = AsyncSniffer(
            iface=self.interface,
            filter=self.bpf_filter,
            prn=self._on_packet,
            store=False,  # critical: don't buffer in memory
            count=self.packet_limit or 0,
            timeout=self.timeout,
        )
        self._sniffer.start()

    def _on_packet(self, pkt) -> None:
        data = bytes(pkt)
        self._queue.put(RawFrame(
            data,
            CaptureInfo(
                timestamp=float(pkt.time),
                capture_length=len(data),
                length=getattr(pkt, "wirelen", None) or len(data),
                interface=getattr(pkt, "sniffed_on", None) or self.interface,
            ),
        ))

    def _capture_finished(self) -> bool:
        thread = self._sniffer.thread if self._sniffer else None
        return thread is None or not thread.is_alive()

    def _end_of_capture(self) -> RawFrame:
        # frames queued just before the capture thread exited
        try:
            return self._queue.get_nowait()
        except Empty:
            pass

        self._stopped.cancel()
        exc = getattr(self._sniffer, "exception", None)
        if exc is not None:
            logger.error("Capture on %s failed: %s", self.interface, exc)
            raise SourceReadError(f"capture on {self.interface} failed: {exc}") from exc
        raise EndOfStream()

    def next_frame(self) -> RawFrame:
        if self._stopped.is_cancelled():
            raise EndOfStream()
        if self._sniffer is None:
            self._start()

        while True:
            try:
                return self._queue.get(timeout=self.poll_interval)
            except Empty:
                if self._stopped.is_cancelled():
                    raise EndOfStream() from None
                if self._capture_finished():
                    return self._end_of_capture()

    def close(self) -> None:
        """Stop the capture and wait for its thread to release the socket."""
        self._stopped.cancel()
        sniffer = self._sniffer
        if sniffer is None or sniffer.thread is None:
            return

        deadline = time.monotonic() + self.stop_timeout
        while sniffer.thread.is_alive() and time.monotonic() < deadline:
            if sniffer.running:
                try:
                    sniffer.stop(join=False)
                except Scapy_Exception:
                    # capture ended between the check and the stop
                    logger.debug("Capture on %s already stopped", self.interface)
            sniffer.thread.join(self.poll_interval)

        if sniffer.thread.is_alive():
            logger.warning("Capture thread on %s still running after close", self.interface)
