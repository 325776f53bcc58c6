"""
Lazy classified stream.

One worker thread pulls raw frames from a FrameSource, decodes them on
demand, classifies them and publishes matches through a bounded queue.
The consumer iterates the ClassifiedStream in capture order.

Once handed to a stream, the source belongs to it: the worker closes the
source when it stops, and close() on the stream closes it as well.
"""
from __future__ import annotations

import logging
import queue
import threading
import weakref
from typing import Callable, Optional

from bonjour_sniffer.core.control import CancelToken
from bonjour_sniffer.core.errors import EndOfStream, SourceReadError
from bonjour_sniffer.core.frame import DecodedFrame
from bonjour_sniffer.core.sources.base import FrameSource
from bonjour_sniffer.protocols.mdns import BonjourClassification, classify

logger = logging.getLogger(__name__)

DEFAULT_MAX_PENDING = 1024
DEFAULT_POLL_INTERVAL = 0.25

_END = object()

Classifier = Callable[[DecodedFrame], Optional[BonjourClassification]]


class _Producer:
    """
    Worker side of the stream. Holds no reference to the ClassifiedStream,
    so a consumer that drops the stream lets it be collected.
    """

    def __init__(
        self,
        source: FrameSource,
        classifier: Classifier,
        channel: queue.Queue,
        cancel_token: CancelToken,
        poll_interval: float,
    ):
        self.source = source
        self.classifier = classifier
        self.channel = channel
        self.cancel_token = cancel_token
        self.poll_interval = poll_interval
        self.done = threading.Event()
        self.error: Optional[SourceReadError] = None
        self.frames_read = 0
        self.frames_matched = 0

    def run(self) -> None:
        try:
            while not self.cancel_token.is_cancelled():
                try:
                    raw = self.source.next_frame()
                except EndOfStream:
                    logger.debug("Capture source exhausted after %d frames", self.frames_read)
                    break
                except Exception as exc:
                    if self.cancel_token.is_cancelled():
                        break
                    self.error = self._as_read_error(exc)
                    logger.error("Capture source failed: %s", self.error)
                    break

                self.frames_read += 1
                try:
                    result = self.classifier(DecodedFrame.from_raw(raw))
                except Exception:
                    logger.exception("Classifier failed on frame %d, skipping it", self.frames_read)
                    continue
                if result is None:
                    continue

                self.frames_matched += 1
                if not self._publish(result):
                    break
        finally:
            self.source.close()
            self.done.set()
            try:
                self.channel.put_nowait(_END)
            except queue.Full:
                # consumer notices `done` once it drains the queue
                pass

    def _publish(self, item) -> bool:
        while not self.cancel_token.is_cancelled():
            try:
                self.channel.put(item, timeout=self.poll_interval)
                return True
            except queue.Full:
                continue
        return False

    @staticmethod
    def _as_read_error(exc: Exception) -> SourceReadError:
        if isinstance(exc, SourceReadError):
            return exc
        error = SourceReadError(f"capture source failed: {exc}")
        error.__cause__ = exc
        return error

    def stop(self) -> None:
        self.cancel_token.cancel()
        self.source.close()


class ClassifiedStream:
    """
    Iterator over BonjourClassification records, in capture order.

    Iteration ends with StopIteration at end of source, or raises
    SourceReadError if the source failed. Not restartable.
    """

    def __init__(
        self,
        source: FrameSource,
        *,
        max_pending: int = DEFAULT_MAX_PENDING,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        cancel_token: Optional[CancelToken] = None,
        classifier: Classifier = classify,
    ):
        self.cancel_token = cancel_token or CancelToken()
        self._poll_interval = poll_interval
        self._channel: queue.Queue = queue.Queue(maxsize=max_pending)
        self._producer = _Producer(
            source,
            classifier,
            self._channel,
            self.cancel_token,
            poll_interval,
        )
        self._exhausted = False
        self._finalizer = weakref.finalize(self, self._producer.stop)

        self._worker = threading.Thread(
            target=self._producer.run,
            name="bonjour-classifier",
            daemon=True,
        )
        self._worker.start()

    @property
    def frames_read(self) -> int:
        return self._producer.frames_read

    @property
    def frames_matched(self) -> int:
        return self._producer.frames_matched

    def __iter__(self):
        return self

    def __next__(self) -> BonjourClassification:
        if self._exhausted:
            raise StopIteration

        while True:
            try:
                item = self._channel.get(timeout=self._poll_interval)
            except queue.Empty:
                if not self._producer.done.is_set():
                    continue
                item = _END

            if item is not _END:
                return item

            self._exhausted = True
            error, self._producer.error = self._producer.error, None
            if error is not None:
                raise error
            raise StopIteration

    def close(self, timeout: Optional[float] = None) -> None:
        """
        Stop the worker and close the source. Waits up to `timeout`
        seconds (default: two poll intervals) for the worker to exit.
        """
        self._exhausted = True
        self._finalizer()
        if threading.current_thread() is not self._worker:
            self._worker.join(self._poll_interval * 2 if timeout is None else timeout)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def produce_classified_stream(
    source: FrameSource,
    *,
    max_pending: int = DEFAULT_MAX_PENDING,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    cancel_token: Optional[CancelToken] = None,
) -> ClassifiedStream:
    """
    Start classifying `source` in the background and return the stream of
    mDNS matches.
    """
    return ClassifiedStream(
        source,
        max_pending=max_pending,
        poll_interval=poll_interval,
        cancel_token=cancel_token,
    )
