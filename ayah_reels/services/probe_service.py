import json
import logging
import math
import subprocess
from pathlib import Path

from ayah_reels.core.config import settings
from ayah_reels.core.errors import UpstreamError

logger = logging.getLogger(__name__)


class DurationProber:
    def probe(self, audio_path: Path) -> float:
        cmd = [
            settings.ffprobe_binary,
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "json",
            str(audio_path),
        ]
        try:
            result = subprocess.run(cmd, check=True, capture_output=True, text=True, timeout=60)
            duration = float(json.loads(result.stdout)["format"]["duration"])
        except subprocess.CalledProcessError as exc:
            raise UpstreamError("ffprobe", (exc.stderr or "").strip() or f"exit status {exc.returncode}") from exc
        except (OSError, subprocess.TimeoutExpired, KeyError, TypeError, ValueError) as exc:
            raise UpstreamError("ffprobe", f"{audio_path.name}: {exc}") from exc

        if not math.isfinite(duration) or duration <= 0:
            raise UpstreamError("ffprobe", f"{audio_path.name}: invalid duration {duration}")
        logger.debug("Probed %s: %.3fs", audio_path.name, duration)
        return duration
