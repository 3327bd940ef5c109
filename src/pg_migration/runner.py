"""
단계 실행기
pg_dump / pg_restore를 자식 프로세스로 실행하고 진행 모니터를 붙인 뒤
종료 코드와 진단 로그로 결과를 분류한다.
"""

import logging
import re
import shutil
import subprocess
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import IO, Literal

from rich.console import Console

from .config import AppSettings, Endpoint, MigrationPlan
from .exceptions import MissingToolError
from .progress import FileSizeSignal, LogTailSignal, ProgressMonitor
from .utils.formatting import format_size

logger = logging.getLogger(__name__)

StageStatus = Literal["ok", "ok_with_warnings", "failed"]

# pg_restore는 경고만 있어도 non-zero로 종료하므로 진단 로그의 오류 마커로 판정
FATAL_MARKER = re.compile(r"\b(ERROR|FATAL|PANIC):|^pg_restore: error:")

KILL_TIMEOUT = 5  # SIGTERM 후 SIGKILL까지 대기 시간
LAUNCH_FAILURE_CODE = 127
TAIL_LINES = 5


@dataclass
class StageOutcome:
    """단계 실행 결과"""
    stage: str  # extract, load
    status: StageStatus
    returncode: int
    duration: float
    log_path: Path | None = None
    detail: str = ""
    error_lines: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status != "failed"

    @property
    def has_warnings(self) -> bool:
        return self.status == "ok_with_warnings"


def read_log_lines(log_path: str | Path | None) -> list[str]:
    if log_path is None:
        return []
    try:
        with open(log_path, "r", encoding="utf-8", errors="replace") as f:
            return [line.rstrip("\n") for line in f]
    except FileNotFoundError:
        return []


def find_error_lines(log_path: str | Path | None) -> list[str]:
    """진단 로그에서 오류 마커가 있는 줄"""
    return [line for line in read_log_lines(log_path) if FATAL_MARKER.search(line)]


def classify_dump(returncode: int) -> StageStatus:
    """pg_dump: non-zero 종료는 항상 실패"""
    return "ok" if returncode == 0 else "failed"


def classify_restore(returncode: int, log_path: str | Path | None) -> tuple[StageStatus, list[str]]:
    """pg_restore 결과 분류

    0 → ok
    non-zero + 오류 마커 1줄 이상 → failed
    non-zero + 오류 마커 없음 → ok_with_warnings
    """
    if returncode == 0:
        return "ok", []
    error_lines = find_error_lines(log_path)
    if error_lines:
        return "failed", error_lines
    return "ok_with_warnings", []


def check_tools(app: AppSettings) -> str:
    """pg_dump / pg_restore 존재 확인 후 버전 문자열 반환"""
    missing = [tool for tool in (app.pg_dump_path, app.pg_restore_path) if shutil.which(tool) is None]
    if missing:
        raise MissingToolError(missing)

    result = subprocess.run(
        [app.pg_dump_path, "--version"],
        capture_output=True,
        text=True,
        check=False,
    )
    lines = result.stdout.strip().splitlines()
    return lines[0] if lines else "unknown"


def _terminate(process: subprocess.Popen) -> None:
    """자식 프로세스 종료 (SIGTERM → SIGKILL)"""
    if process.poll() is not None:
        return
    logger.warning("자식 프로세스 종료 요청 (pid=%s)", process.pid)
    process.terminate()
    try:
        process.wait(timeout=KILL_TIMEOUT)
    except subprocess.TimeoutExpired:
        process.kill()
        process.wait()


class StageRunner:
    """pg_dump / pg_restore 실행기"""

    def __init__(
        self,
        app: AppSettings,
        run_id: str | None = None,
        output: Console | None = None,
    ):
        self.app = app
        self.log_dir = Path(app.log_dir)
        self.run_id = run_id or datetime.now().strftime("%Y%m%d_%H%M%S")
        self.console = output

    def log_path(self, tool: str) -> Path:
        return self.log_dir / f"{tool}_{self.run_id}.log"

    def build_dump_command(self, source: Endpoint, plan: MigrationPlan) -> list[str]:
        command = [self.app.pg_dump_path, source.url, "-Fc", "--no-owner", "--no-privileges"]
        if plan.data_only:
            command += ["--data-only", "--disable-triggers"]
        return command

    def build_restore_command(
        self, target: Endpoint, plan: MigrationPlan, artifact: str | Path
    ) -> list[str]:
        command = [
            self.app.pg_restore_path,
            "-d", target.url,
            "--no-owner",
            "--no-privileges",
            "-j", str(plan.jobs),
        ]
        if plan.data_only:
            command += ["--data-only", "--disable-triggers"]
        if plan.restore_cleans:
            command += ["--clean", "--if-exists"]
        command += ["--verbose", str(artifact)]
        return command

    def run(
        self,
        command: list[str],
        *,
        stage: str,
        log_path: Path,
        monitor: ProgressMonitor,
        stdout: IO[bytes] | None = None,
    ) -> tuple[int, float]:
        """자식 프로세스 실행 후 종료 대기 (stderr는 log_path에 기록)

        Returns:
            (종료 코드, 소요 시간 초)
        """
        log_path.parent.mkdir(parents=True, exist_ok=True)
        start = time.monotonic()

        with open(log_path, "wb") as log_file:
            try:
                process = subprocess.Popen(
                    command,
                    stdin=subprocess.DEVNULL,
                    stdout=stdout if stdout is not None else log_file,
                    stderr=log_file,
                )
            except OSError as e:
                logger.error("%s 실행 실패: %s", stage, e)
                log_file.write(f"FATAL: could not launch {command[0]}: {e}\n".encode())
                return LAUNCH_FAILURE_CODE, time.monotonic() - start

            logger.debug("%s 시작 (pid=%s)", stage, process.pid)
            monitor.start(process)
            try:
                returncode = process.wait()
            except BaseException:
                _terminate(process)
                raise
            finally:
                monitor.stop()

        duration = time.monotonic() - start
        logger.info("%s 종료 (exit=%s, %.1fs, log=%s)", stage, returncode, duration, log_path)
        return returncode, duration

    def extract(self, source: Endpoint, plan: MigrationPlan, artifact: str | Path) -> StageOutcome:
        """소스 DB 덤프 (custom format) → artifact"""
        artifact = Path(artifact)
        log_path = self.log_path("pg_dump")
        monitor = ProgressMonitor(
            FileSizeSignal(artifact),
            interval=self.app.dump_poll_interval,
            description="Dumping...",
            output=self.console,
        )

        with open(artifact, "wb") as out:
            returncode, duration = self.run(
                self.build_dump_command(source, plan),
                stage="extract",
                log_path=log_path,
                monitor=monitor,
                stdout=out,
            )

        status = classify_dump(returncode)
        size = artifact.stat().st_size if artifact.exists() else 0
        error_lines = [] if status == "ok" else read_log_lines(log_path)[-TAIL_LINES:]
        return StageOutcome(
            stage="extract",
            status=status,
            returncode=returncode,
            duration=duration,
            log_path=log_path,
            detail=format_size(size),
            error_lines=error_lines,
        )

    def load(self, target: Endpoint, plan: MigrationPlan, artifact: str | Path) -> StageOutcome:
        """artifact → 타겟 DB 병렬 복원"""
        log_path = self.log_path("pg_restore")
        monitor = ProgressMonitor(
            LogTailSignal(log_path),
            interval=self.app.restore_poll_interval,
            description="Restoring...",
            output=self.console,
        )

        returncode, duration = self.run(
            self.build_restore_command(target, plan, artifact),
            stage="load",
            log_path=log_path,
            monitor=monitor,
        )

        status, error_lines = classify_restore(returncode, log_path)
        detail = f"{plan.jobs} jobs"
        if error_lines:
            detail += f", {len(error_lines)} error(s)"
        return StageOutcome(
            stage="load",
            status=status,
            returncode=returncode,
            duration=duration,
            log_path=log_path,
            detail=detail,
            error_lines=error_lines,
        )
