import re
from typing import Optional

# ffmpeg prints the input duration once per input and a `time=` stamp on every
# stats line. Stats lines end in `\r`, everything else in `\n`.
DURATION_RE = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
TIME_RE = re.compile(r"time=\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
LINE_SPLIT_RE = re.compile(r"[\r\n]")


def clock_to_seconds(hours: str, minutes: str, seconds: str) -> float:
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def compute_percent(position_seconds: float, duration_seconds: Optional[float]) -> float:
    """
    Position over duration as a percentage, two decimals, capped at 100.

    Returns 0 while the duration is unknown or zero.
    """
    if not duration_seconds or duration_seconds <= 0:
        return 0.0
    return min(100.0, round(position_seconds / duration_seconds * 100, 2))


class ProgressScanner:
    """
    Incremental scanner over ffmpeg's diagnostic (stderr) output.

    Text may arrive in arbitrary chunks; an unterminated trailing line is kept
    until the next chunk completes it. The reported percent is an
    approximation: it compares the output timestamp against the declared
    input duration, which is not the same thing as bytes copied for a remux.
    It never decreases.
    """

    def __init__(self) -> None:
        self.duration_seconds: Optional[float] = None
        self.position_seconds: float = 0.0
        self.percent: float = 0.0
        self._pending = ""

    @property
    def duration_known(self) -> bool:
        return self.duration_seconds is not None

    def feed(self, text: str) -> bool:
        """Consume a chunk of stderr text. Returns True when `percent` changed."""
        self._pending += text
        *lines, self._pending = LINE_SPLIT_RE.split(self._pending)
        changed = False
        for line in lines:
            changed = self._scan_line(line) or changed
        return changed

    def flush(self) -> bool:
        line, self._pending = self._pending, ""
        return self._scan_line(line) if line else False

    def _scan_line(self, line: str) -> bool:
        if not self.duration_known:
            match = DURATION_RE.search(line)
            if match:
                self.duration_seconds = clock_to_seconds(*match.groups())

        match = TIME_RE.search(line)
        if match:
            self.position_seconds = clock_to_seconds(*match.groups())

        percent = max(self.percent, compute_percent(self.position_seconds, self.duration_seconds))
        if percent != self.percent:
            self.percent = percent
            return True
        return False
