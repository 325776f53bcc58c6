import logging
from pathlib import Path
from typing import Optional

from scapy.data import DLT_EN10MB
from scapy.error import Scapy_Exception
from scapy.utils import RawPcapReader  # type: ignore

from bonjour_sniffer.core.errors import EndOfStream, SourceReadError
from bonjour_sniffer.core.frame import CaptureInfo, RawFrame
from bonjour_sniffer.core.sources.base import FrameSource

logger = logging.getLogger(__name__)


def capture_info_from_metadata(reader, data: bytes, meta) -> CaptureInfo:
    """
    Build CaptureInfo from RawPcapReader / RawPcapNgReader record metadata.
    """
    if hasattr(meta, "tsresol"):
        timestamp = ((meta.tshigh << 32) + meta.tslow) / meta.tsresol
    else:
        divisor = 1e9 if getattr(reader, "nano", False) else 1e6
        timestamp = meta.sec + meta.usec / divisor

    return CaptureInfo(
        timestamp=float(timestamp),
        capture_length=len(data),
        length=getattr(meta, "wirelen", None) or len(data),
        interface=getattr(meta, "ifname", None),
    )


class PcapFileSource(FrameSource):
    """
    Read raw frames from a .pcap/.pcapng file without dissecting them
    and without loading the file into memory.
    """

    def __init__(self, path: str | Path, *, limit: Optional[int] = None):
        self.path = Path(path)
        self.limit = limit
        self._reader = None
        self._count = 0
        self._closed = False

        if not self.path.exists():
            raise FileNotFoundError(self.path)

    def _open(self):
        try:
            reader = RawPcapReader(str(self.path))
        except (Scapy_Exception, OSError, EOFError) as exc:
            raise SourceReadError(f"cannot open capture {self.path}: {exc}") from exc

        linktype = getattr(reader, "linktype", None)
        if linktype not in (None, DLT_EN10MB):
            logger.warning("%s has link type %s, frames are read as Ethernet", self.path, linktype)
        return reader

    def next_frame(self) -> RawFrame:
        if self._closed:
            raise EndOfStream()
        if self.limit and self._count >= self.limit:
            raise EndOfStream()
        if self._reader is None:
            self._reader = self._open()

        try:
            data, meta = next(self._reader)
        except StopIteration:
            raise EndOfStream() from None
        except Exception as exc:  # truncated records, closed files, bad headers
            raise SourceReadError(f"failed reading {self.path}: {exc}") from exc

        self._count += 1
        return RawFrame(bytes(data), capture_info_from_metadata(self._reader, data, meta))

    def close(self) -> None:
        self._closed = True
        if self._reader is not None:
            self._reader.close()
            self._reader = None
