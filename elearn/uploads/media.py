"""
Video metadata read with ffprobe through ffmpeg-python
"""

import logging
import os
import tempfile
from typing import Optional

import ffmpeg

logger = logging.getLogger(__name__)


def measure_duration(data: bytes, filename: str) -> Optional[int]:
    """
    Length of the video in whole seconds, or None when ffprobe cannot read it

    ffprobe needs a seekable file, so the upload is spooled to a temp file first.
    """
    suffix = os.path.splitext(filename or "")[1]
    with tempfile.NamedTemporaryFile(suffix=suffix) as handle:
        handle.write(data)
        handle.flush()
        try:
            metadata = ffmpeg.probe(handle.name)
        except ffmpeg.Error as e:
            logger.warning("ffprobe could not read %s: %s", filename, (e.stderr or b"").decode(errors="ignore").strip())
            return None
        except OSError as e:
            # ffprobe binary missing from the host
            logger.warning("ffprobe unavailable for %s: %s", filename, e)
            return None

    duration = (metadata.get("format") or {}).get("duration")
    if duration is None:
        return None
    return round(float(duration))
