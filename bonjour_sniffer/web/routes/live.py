import json
from typing import Iterator, Optional

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from bonjour_sniffer.core.config import DEFAULT_CONFIG
from bonjour_sniffer.core.errors import SourceReadError
from bonjour_sniffer.core.sources.live import LiveInterfaceSource
from bonjour_sniffer.core.stream import ClassifiedStream, produce_classified_stream

router = APIRouter()


def sse_event_stream(stream: ClassifiedStream) -> Iterator[str]:
    """
    One SSE `data:` event per classification. Closing the generator
    (client gone) closes the stream and stops the capture.
    """
    try:
        for classification in stream:
            yield f"data: {json.dumps(classification.to_dict())}\n\n"
    except SourceReadError as exc:
        yield f"event: error\ndata: {json.dumps({'error': str(exc)})}\n\n"
    finally:
        stream.close()


@router.get("/live")
def live(
    iface: str,
    bpf: Optional[str] = None,
    count: Optional[int] = None,
    timeout: Optional[int] = None,
):
    source = LiveInterfaceSource(
        iface,
        bpf_filter=bpf or DEFAULT_CONFIG["bpf_filter"],
        packet_limit=count,
        timeout=timeout,
    )
    stream = produce_classified_stream(source)
    return StreamingResponse(sse_event_stream(stream), media_type="text/event-stream")
