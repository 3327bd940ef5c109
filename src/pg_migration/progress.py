"""
진행 상황 모니터
pg_dump / pg_restore는 전체 작업량을 알려주지 않으므로 퍼센트 대신
덤프 파일 크기 증가 또는 verbose 로그의 마지막 줄을 주기적으로 표시한다.
"""

import logging
import subprocess
import threading
from pathlib import Path

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from .utils.formatting import format_size

logger = logging.getLogger(__name__)

console = Console()

DEFAULT_LINE_WIDTH = 70


def truncate_line(line: str, width: int = DEFAULT_LINE_WIDTH) -> str:
    """표시용으로 긴 줄 자르기"""
    if len(line) > width:
        return line[: width - 3] + "..."
    return line


class FileSizeSignal:
    """파일 크기 기반 진행 신호 (덤프 단계)"""

    def __init__(self, path: str | Path, label: str = "Dumping..."):
        self.path = Path(path)
        self.label = label
        self.last_size = 0

    def read(self) -> str | None:
        try:
            self.last_size = self.path.stat().st_size
        except FileNotFoundError:
            return None
        return f"{self.label} {format_size(self.last_size)} written"


class LogTailSignal:
    """로그 파일에 마지막으로 추가된 줄 (복원 단계)

    새 줄이 추가되었을 때만 표시 문자열이 갱신된다.
    """

    def __init__(self, path: str | Path, width: int = DEFAULT_LINE_WIDTH):
        self.path = Path(path)
        self.width = width
        self.line_count = 0
        self._offset = 0
        self._partial = b""
        self._last: str | None = None

    def read(self) -> str | None:
        try:
            with open(self.path, "rb") as f:
                f.seek(self._offset)
                chunk = f.read()
        except FileNotFoundError:
            return self._last

        if chunk:
            self._offset += len(chunk)
            lines = (self._partial + chunk).split(b"\n")
            self._partial = lines.pop()
            lines = [line for line in lines if line.strip()]
            if lines:
                self.line_count += len(lines)
                text = lines[-1].decode("utf-8", errors="replace").rstrip()
                self._last = truncate_line(text, self.width)
        return self._last


class ProgressMonitor:
    """자식 프로세스가 살아있는 동안 신호를 폴링해 한 줄 진행 표시

    자식 프로세스에는 관여하지 않으며, 종료가 감지되면 표시 줄을 지우고 끝난다.
    마지막으로 렌더링된 문자열은 latest에 남는다.
    """

    def __init__(
        self,
        signal,
        interval: float = 0.5,
        description: str = "",
        output: Console | None = None,
    ):
        self.signal = signal
        self.interval = interval
        self.latest = description
        self.console = output or console
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self, process: subprocess.Popen) -> None:
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._poll,
            args=(process,),
            name="progress-monitor",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _poll(self, process: subprocess.Popen) -> None:
        progress = Progress(
            SpinnerColumn(),
            TextColumn("{task.description}", markup=False),
            TimeElapsedColumn(),
            console=self.console,
            transient=True,
        )
        with progress:
            task = progress.add_task(self.latest, total=None)
            while process.poll() is None and not self._stop.is_set():
                try:
                    text = self.signal.read()
                except OSError as e:
                    logger.debug("진행 신호 읽기 실패: %s", e)
                    text = None
                if text and text != self.latest:
                    self.latest = text
                    progress.update(task, description=text)
                self._stop.wait(self.interval)
