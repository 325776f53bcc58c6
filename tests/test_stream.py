import gc
import itertools
import logging

import pytest
from scapy.layers.inet import TCP

from bonjour_sniffer.core.control import CancelToken
from bonjour_sniffer.core.errors import EndOfStream, SourceReadError
from bonjour_sniffer.core.frame import DecodedFrame, RawFrame
from bonjour_sniffer.core.sources.base import FrameSource
from bonjour_sniffer.core.sources.memory import MemoryFrameSource
from bonjour_sniffer.core.stream import ClassifiedStream, produce_classified_stream
from bonjour_sniffer.protocols.mdns import BonjourClassification, classify

from conftest import SRC_MAC, VLAN_ID, build_frame, build_mdns_frame


class FailingSource(FrameSource):
    """Serves the given frames, then fails like a dead capture device."""

    def __init__(self, frames):
        self._frames = list(frames)

    def next_frame(self) -> RawFrame:
        if self._frames:
            return RawFrame.from_bytes(self._frames.pop(0))
        raise OSError("device went away")


class EndlessSource(FrameSource):
    def __init__(self, data: bytes):
        self.data = data
        self.served = 0
        self.closed = False

    def next_frame(self) -> RawFrame:
        if self.closed:
            raise EndOfStream()
        self.served += 1
        return RawFrame.from_bytes(self.data)

    def close(self) -> None:
        self.closed = True


def test_single_query_end_to_end(query_frame):
    source = MemoryFrameSource([query_frame])
    stream = produce_classified_stream(source, poll_interval=0.01)

    expected = BonjourClassification(
        frame=DecodedFrame(query_frame),
        vlan_identifier=VLAN_ID,
        source_mac=SRC_MAC,
        is_query=True,
    )
    assert next(stream) == expected
    with pytest.raises(StopIteration):
        next(stream)


def test_stream_keeps_capture_order():
    frames = [
        build_mdns_frame(),
        build_frame(transport=TCP(sport=5353, dport=5353)),
        build_mdns_frame(ipv6=True, query=False),
        build_mdns_frame(sport=1234),
        build_mdns_frame(vlan=None),
    ]
    with produce_classified_stream(MemoryFrameSource(frames), poll_interval=0.01) as stream:
        results = list(stream)

    assert [r.is_query for r in results] == [True, False, True]
    assert [r.vlan_identifier for r in results] == [VLAN_ID, VLAN_ID, None]
    assert stream.frames_read == 5
    assert stream.frames_matched == 3


def test_stream_order_survives_backpressure():
    frames = [build_mdns_frame(vlan=v) for v in range(50)]
    stream = produce_classified_stream(MemoryFrameSource(frames), max_pending=2, poll_interval=0.01)
    assert [r.vlan_identifier for r in stream] == list(range(50))


def test_stream_surfaces_source_error_after_matches(query_frame, answer_frame):
    stream = produce_classified_stream(FailingSource([query_frame, answer_frame]), poll_interval=0.01)

    assert next(stream).is_query is True
    assert next(stream).is_query is False
    with pytest.raises(SourceReadError) as excinfo:
        next(stream)
    assert isinstance(excinfo.value.__cause__, OSError)

    # not restartable
    with pytest.raises(StopIteration):
        next(stream)


def test_empty_source_closes_cleanly():
    assert list(produce_classified_stream(MemoryFrameSource([]), poll_interval=0.01)) == []


def test_close_stops_worker(query_frame):
    source = EndlessSource(query_frame)
    stream = produce_classified_stream(source, max_pending=2, poll_interval=0.01)
    assert next(stream).is_query is True

    stream.close(timeout=2.0)
    assert stream.cancel_token.is_cancelled()
    assert source.closed
    assert not stream._worker.is_alive()

    served = source.served
    assert list(itertools.islice(stream, 5)) == []
    assert source.served == served


def test_external_cancel_ends_stream(query_frame):
    token = CancelToken()
    stream = produce_classified_stream(
        EndlessSource(query_frame), max_pending=4, poll_interval=0.01, cancel_token=token
    )
    next(stream)
    token.cancel()
    # whatever was already queued drains, then iteration ends
    assert len(list(stream)) <= 4


def test_dropped_stream_cancels_producer(query_frame):
    token = CancelToken()
    source = EndlessSource(query_frame)
    stream = produce_classified_stream(source, max_pending=2, poll_interval=0.01, cancel_token=token)
    next(stream)

    del stream
    gc.collect()

    assert token.is_cancelled()
    assert source.closed


def test_classifier_failure_skips_only_that_frame(query_frame, answer_frame, caplog):
    calls = []

    def flaky(frame):
        calls.append(frame)
        if len(calls) == 2:
            raise RuntimeError("broken record")
        return classify(frame)

    source = MemoryFrameSource([query_frame, answer_frame, query_frame])
    with caplog.at_level(logging.ERROR, logger="bonjour_sniffer.core.stream"):
        with ClassifiedStream(source, poll_interval=0.01, classifier=flaky) as stream:
            results = list(stream)

    assert [r.is_query for r in results] == [True, True]
    assert stream.frames_read == 3
    assert stream.frames_matched == 2
    assert "Classifier failed on frame 2" in caplog.text
