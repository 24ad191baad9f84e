import asyncio
import codecs
import logging
from collections import deque
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from episode_service.core.errors import ConversionProcessError
from episode_service.services.ffmpeg_progress import ProgressScanner

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, float, Optional[float]], None]

STDERR_CHUNK_SIZE = 4096
STDERR_TAIL_LINES = 20


class ConversionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ConversionJob:
    """
    One stream-to-mp4 remux, backed by exactly one ffmpeg process.

    Pending -> Running when the process is spawned, then Succeeded on exit
    code 0 or Failed otherwise. There is no retry, timeout or cancel path.
    On failure the partial output file is removed.
    """

    def __init__(
        self,
        job_id: str,
        source_url: str,
        output_path: Path,
        on_progress: Optional[ProgressCallback] = None,
        ffmpeg_binary: str = "ffmpeg",
    ) -> None:
        self.job_id = job_id
        self.source_url = source_url
        self.output_path = Path(output_path)
        self.ffmpeg_binary = ffmpeg_binary
        self.status = ConversionStatus.PENDING
        self.process: Optional[asyncio.subprocess.Process] = None
        self.returncode: Optional[int] = None
        self.error: Optional[ConversionProcessError] = None
        self.scanner = ProgressScanner()
        self._on_progress = on_progress
        self._stderr_tail: deque = deque(maxlen=STDERR_TAIL_LINES)

    def build_command(self) -> List[str]:
        # -c copy        → remux only, no re-encode
        # -bsf:a ...     → ADTS AAC from TS segments into MP4's AudioSpecificConfig
        return [
            self.ffmpeg_binary,
            "-y",
            "-nostdin",
            "-i", self.source_url,
            "-c", "copy",
            "-bsf:a", "aac_adtstoasc",
            str(self.output_path),
        ]

    @property
    def percent(self) -> float:
        return self.scanner.percent

    async def run(self) -> ConversionStatus:
        if self.status != ConversionStatus.PENDING:
            raise RuntimeError(f"Conversion {self.job_id} has already been started")

        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command()
        try:
            self.process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            self._fail(ConversionProcessError(f"Could not start {cmd[0]}: {exc}"))
            return self.status

        self.status = ConversionStatus.RUNNING
        logger.info("Conversion %s started (pid %s)", self.job_id, self.process.pid)

        await self._consume_stderr(self.process.stderr)
        self.returncode = await self.process.wait()

        if self.returncode == 0:
            self.status = ConversionStatus.SUCCEEDED
            logger.info("Conversion %s finished", self.job_id)
        else:
            tail = "\n".join(self._stderr_tail)
            self._fail(ConversionProcessError(
                f"ffmpeg exited with code {self.returncode}: {tail}".strip(),
                returncode=self.returncode,
            ))
        return self.status

    async def _consume_stderr(self, stream: asyncio.StreamReader) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        line = ""
        while True:
            chunk = await stream.read(STDERR_CHUNK_SIZE)
            if not chunk:
                break
            text = decoder.decode(chunk)
            line = self._remember(line + text)
            if self.scanner.feed(text):
                self._report()
        text = decoder.decode(b"", final=True)
        self._remember(line + text + "\n")
        if self.scanner.feed(text) | self.scanner.flush():
            self._report()

    def _remember(self, text: str) -> str:
        # Keep the last few complete lines for the failure message
        *lines, rest = text.replace("\r", "\n").split("\n")
        self._stderr_tail.extend(l for l in lines if l.strip())
        return rest

    def _report(self) -> None:
        if self._on_progress is not None:
            self._on_progress(self.job_id, self.scanner.percent, self.scanner.duration_seconds)

    def _fail(self, error: ConversionProcessError) -> None:
        self.status = ConversionStatus.FAILED
        self.error = error
        logger.warning("Conversion %s failed: %s", self.job_id, error)
        self.output_path.unlink(missing_ok=True)
