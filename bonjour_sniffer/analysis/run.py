from __future__ import annotations

from typing import Callable, Optional

from bonjour_sniffer.core.control import CancelToken
from bonjour_sniffer.core.sources.base import FrameSource
from bonjour_sniffer.core.sources.pcap import PcapFileSource
from bonjour_sniffer.core.state import ObservationState
from bonjour_sniffer.core.stream import (
    DEFAULT_MAX_PENDING,
    DEFAULT_POLL_INTERVAL,
    produce_classified_stream,
)
from bonjour_sniffer.protocols.mdns import BonjourClassification


def watch_pcap(
    path: str,
    *,
    limit: Optional[int] = None,
    on_match: Optional[Callable[[BonjourClassification], None]] = None,
    progress_cb: Optional[Callable[[int], None]] = None,
    cancel_token: Optional[CancelToken] = None,
) -> ObservationState:
    source = PcapFileSource(path, limit=limit)
    return watch_source(
        source,
        on_match=on_match,
        progress_cb=progress_cb,
        cancel_token=cancel_token,
    )


def watch_source(
    source: FrameSource,
    *,
    on_match: Optional[Callable[[BonjourClassification], None]] = None,
    progress_cb: Optional[Callable[[int], None]] = None,
    progress_interval: int = 100,
    cancel_token: Optional[CancelToken] = None,
    max_pending: int = DEFAULT_MAX_PENDING,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> ObservationState:
    """
    Drain the classified stream of `source` into an ObservationState.
    SourceReadError propagates to the caller.
    """
    state = ObservationState()
    match_count = 0

    with produce_classified_stream(
        source,
        max_pending=max_pending,
        poll_interval=poll_interval,
        cancel_token=cancel_token,
    ) as stream:
        for classification in stream:
            state.register(classification)
            match_count += 1

            if on_match:
                on_match(classification)

            if progress_cb and match_count % progress_interval == 0:
                progress_cb(match_count)

    if progress_cb:
        progress_cb(match_count)

    return state
