import logging
import os
import shutil
import tempfile

from fastapi import APIRouter, File, HTTPException, UploadFile

from bonjour_sniffer.analysis.run import watch_pcap
from bonjour_sniffer.core.errors import SourceReadError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/classify")
def classify_upload(file: UploadFile = File(...)):
    """
    Classify an uploaded capture. The upload is only kept on disk
    while it is being read.
    """
    fd, tmp_path = tempfile.mkstemp(prefix="bonjour_", suffix=".pcap")
    try:
        with os.fdopen(fd, "wb") as out:
            shutil.copyfileobj(file.file, out)

        matches = []
        state = watch_pcap(tmp_path, on_match=lambda c: matches.append(c.to_dict()))
    except SourceReadError as exc:
        logger.warning("Rejected upload %s: %s", file.filename, exc)
        raise HTTPException(status_code=400, detail=f"cannot read capture: {exc}")
    finally:
        os.unlink(tmp_path)

    return {
        "filename": file.filename,
        "classifications": matches,
        "summary": state.summary(),
        "senders": state.senders_as_list(),
    }
