"""
PostgreSQL 마이그레이션 오케스트레이터
연결 확인 → 메타데이터 조회 → 덤프 → 타겟 준비 → 병렬 복원 → 시퀀스 재설정 → 요약
"""

import logging
import os
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator

from rich.console import Console
from rich.markup import escape

from .client import PostgresClient
from .config import AppSettings, Endpoint, MigrationPlan, settings
from .exceptions import (
    ExtractionError,
    LoadFatalError,
    LoadWarning,
    MetadataQueryError,
    MigrationAborted,
    MigrationError,
    QueryError,
)
from .inspector import (
    DatabaseSummary,
    MetadataInspector,
    TableCount,
    total_rows,
    verify_connection,
)
from .resequencer import SequenceRecord, SequenceResynchronizer
from .runner import StageOutcome, StageRunner
from .utils.formatting import format_duration, format_size

logger = logging.getLogger(__name__)

console = Console()


class MigrationState(str, Enum):
    IDLE = "idle"
    VERIFYING = "verifying"
    INSPECTING = "inspecting"
    EXTRACTING = "extracting"
    PREPARING_TARGET = "preparing_target"
    LOADING = "loading"
    RESEQUENCING = "resequencing"
    SUMMARIZING = "summarizing"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = {MigrationState.DONE, MigrationState.FAILED}


@dataclass
class TransientArtifact:
    """덤프 파일 (덤프 단계가 생성, 복원 단계가 소비)"""
    path: Path
    keep: bool = False
    retain: bool = False  # 복원 실패 시 재시도를 위해 강제 보존
    deleted: bool = False

    @property
    def retained(self) -> bool:
        return self.keep or self.retain

    @property
    def size(self) -> int:
        try:
            return self.path.stat().st_size
        except FileNotFoundError:
            return 0


@contextmanager
def transient_artifact(directory: str | Path | None, keep: bool = False) -> Iterator[TransientArtifact]:
    """빈 덤프 파일을 만들고, 어떤 경로로 빠져나가든 보존 여부에 따라 정리"""
    if directory is not None:
        Path(directory).mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(prefix="pgmigrate_", suffix=".dump", dir=directory)
    os.close(fd)

    artifact = TransientArtifact(path=Path(name), keep=keep)
    logger.debug("덤프 파일 생성: %s", artifact.path)
    try:
        yield artifact
    finally:
        if artifact.retained:
            logger.info("덤프 파일 보존: %s", artifact.path)
        else:
            artifact.path.unlink(missing_ok=True)
            artifact.deleted = True
            logger.debug("덤프 파일 삭제: %s", artifact.path)


@dataclass
class MigrationSummary:
    """마이그레이션 요약"""
    plan: MigrationPlan
    state: MigrationState = MigrationState.IDLE
    source: DatabaseSummary | None = None
    target: DatabaseSummary | None = None
    source_tables: list[TableCount] = field(default_factory=list)
    extract: StageOutcome | None = None
    load: StageOutcome | None = None
    truncated_tables: list[str] = field(default_factory=list)
    sequences: list[SequenceRecord] = field(default_factory=list)
    tables: list[TableCount] = field(default_factory=list)  # 복원 후 타겟 기준
    warnings: list[MigrationError] = field(default_factory=list)
    error: MigrationError | None = None
    dump_size: int = 0
    dump_path: Path | None = None  # 보존된 경우에만
    started_at: float = field(default_factory=time.monotonic)
    finished_at: float | None = None

    @property
    def succeeded(self) -> bool:
        return self.state == MigrationState.DONE

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    @property
    def table_count(self) -> int:
        return len(self.tables)

    @property
    def total_rows(self) -> int:
        return total_rows(self.tables)

    @property
    def source_total_rows(self) -> int:
        return total_rows(self.source_tables)

    @property
    def sequence_count(self) -> int:
        return len(self.sequences)

    @property
    def duration(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at


class MigrationOrchestrator:
    """pg_dump / pg_restore 기반 마이그레이션 오케스트레이터"""

    def __init__(
        self,
        source: Endpoint,
        target: Endpoint,
        plan: MigrationPlan,
        *,
        app: AppSettings | None = None,
        runner: StageRunner | None = None,
        client_factory: Callable[[Endpoint], PostgresClient] | None = None,
        confirm: Callable[[MigrationSummary], bool] | None = None,
        dump_dir: str | Path | None = None,
        output: Console | None = None,
    ):
        self.source = source
        self.target = target
        self.plan = plan
        self.app = app or settings.app
        self.console = output or console
        self.runner = runner or StageRunner(self.app, output=self.console)
        factory = client_factory or (lambda endpoint: PostgresClient(endpoint, self.app.connect_timeout))
        self.source_client = factory(source)
        self.target_client = factory(target)
        self.confirm = confirm  # None이면 확인 없이 진행
        self.dump_dir = dump_dir or self.app.dump_dir or (Path.cwd() if plan.keep_dump else None)
        self.schema = self.app.schema_name

        self.state = MigrationState.IDLE
        self.history: list[MigrationState] = [MigrationState.IDLE]
        self.summary = MigrationSummary(plan=plan)

    def _transition(self, state: MigrationState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"종료 상태에서 전이할 수 없습니다: {self.state.value} → {state.value}")
        logger.debug("상태 전이: %s → %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)
        self.summary.state = state

    def run(self) -> MigrationSummary:
        """마이그레이션 실행 (치명적 오류는 failed 상태로 요약에 기록)"""
        summary = self.summary
        summary.started_at = time.monotonic()
        logger.info(
            "마이그레이션 시작: %s → %s (mode=%s, jobs=%d, clean=%s, keep_dump=%s)",
            self.source.redacted(),
            self.target.redacted(),
            self.plan.mode,
            self.plan.jobs,
            self.plan.clean_target,
            self.plan.keep_dump,
        )

        try:
            self._verify()
            self._inspect()
            self._confirm()
            self._migrate()
            self._resequence()
            self._summarize()
            self._transition(MigrationState.DONE)
        except MigrationError as e:
            summary.error = e
            self._transition(MigrationState.FAILED)
            logger.error("마이그레이션 실패: %s", e.message)
            self.console.print(f"\n  [red]✗ {escape(e.message)}[/red]")
        except BaseException:
            if self.state not in TERMINAL_STATES:
                self._transition(MigrationState.FAILED)
            logger.warning("마이그레이션 중단됨")
            raise
        finally:
            summary.finished_at = time.monotonic()

        return summary

    # ------------------------------------------------------------
    # 사전 점검
    # ------------------------------------------------------------

    def _verify(self) -> None:
        self._transition(MigrationState.VERIFYING)
        self.console.print("\n[bold]연결 확인 중...[/bold]")
        for client in (self.source_client, self.target_client):
            verify_connection(client)
            self.console.print(f"  [green]✓[/green] {client.endpoint.label}: {client.endpoint.redacted()}")

    def _inspect(self) -> None:
        self._transition(MigrationState.INSPECTING)
        source_inspector = MetadataInspector(self.source_client, self.schema)
        target_inspector = MetadataInspector(self.target_client, self.schema)

        self.summary.source = source_inspector.summarize()
        self.summary.target = target_inspector.summarize()
        self.console.print(f"  [green]Source[/green]: [bold]{self.summary.source.describe()}[/bold]")
        self.console.print(f"  [yellow]Target[/yellow]: [bold]{self.summary.target.describe()}[/bold]")

        self.summary.source_tables = list(source_inspector.per_table_counts())
        self.summary.warnings.extend(source_inspector.errors)
        self.summary.warnings.extend(target_inspector.errors)

    def _confirm(self) -> None:
        if self.confirm is not None and not self.confirm(self.summary):
            raise MigrationAborted()

    # ------------------------------------------------------------
    # 덤프 / 준비 / 복원
    # ------------------------------------------------------------

    def _migrate(self) -> None:
        self.console.print("\n[bold]설정:[/bold]")
        self.console.print(f"  병렬 작업 수:  [bold]{self.plan.jobs}[/bold]")
        self.console.print(f"  모드:          [bold]{self.plan.describe_mode()}[/bold]")
        self.console.print(f"  타겟 정리:     [bold]{'yes' if self.plan.clean_target else 'no'}[/bold]")

        with transient_artifact(self.dump_dir, keep=self.plan.keep_dump) as artifact:
            try:
                self._extract(artifact)
                self._prepare_target()
                self._load(artifact)
            finally:
                self.summary.dump_path = artifact.path if artifact.retained else None

    def _extract(self, artifact: TransientArtifact) -> None:
        self._transition(MigrationState.EXTRACTING)
        self.console.print("\n[bold][1/4] 소스 DB 덤프 중...[/bold]")

        outcome = self.runner.extract(self.source, self.plan, artifact.path)
        self.summary.extract = outcome
        if not outcome.ok:
            for line in outcome.error_lines:
                self.console.print(f"  [dim red]└ {escape(line)}[/dim red]")
            raise ExtractionError(outcome.returncode, _log_str(outcome))

        self.summary.dump_size = artifact.size
        self.console.print(
            f"  [green]●[/green] 덤프 완료: {format_size(self.summary.dump_size)} "
            f"in {format_duration(outcome.duration)}"
        )

    def _prepare_target(self) -> None:
        self._transition(MigrationState.PREPARING_TARGET)
        self.console.print("\n[bold][2/4] 타겟 DB 준비 중...[/bold]")

        if not self.plan.truncates_target:
            self.console.print("  [green]●[/green] 타겟 준비 완료 (pg_restore가 정리 수행)")
            return

        self.console.print("  타겟 테이블 TRUNCATE 중...")
        try:
            self.summary.truncated_tables = self.target_client.truncate_tables(self.schema)
        except QueryError as e:
            # 실패 원인은 복원 단계에서 더 구체적으로 드러남
            logger.warning("타겟 TRUNCATE 실패: %s", e.reason)
            self.summary.warnings.append(MetadataQueryError("TRUNCATE", e.reason))
            self.console.print(f"  [yellow]⚠ 타겟 테이블 TRUNCATE 실패: {escape(e.reason)}[/yellow]")
            return
        self.console.print(
            f"  [green]●[/green] 타겟 테이블 {len(self.summary.truncated_tables)}개 TRUNCATE 완료"
        )

    def _load(self, artifact: TransientArtifact) -> None:
        self._transition(MigrationState.LOADING)
        self.console.print(f"\n[bold][3/4] 타겟 DB 복원 중 ({self.plan.jobs} parallel jobs)...[/bold]")

        outcome = self.runner.load(self.target, self.plan, artifact.path)
        self.summary.load = outcome

        if outcome.status == "failed":
            artifact.retain = True
            for line in outcome.error_lines[:5]:
                self.console.print(f"  [dim red]└ {escape(line)}[/dim red]")
            raise LoadFatalError(outcome.returncode, len(outcome.error_lines), _log_str(outcome))

        if outcome.has_warnings:
            warning = LoadWarning(outcome.returncode, _log_str(outcome))
            self.summary.warnings.append(warning)
            self.console.print(
                f"  [green]●[/green] 복원 완료 (비치명적 경고 포함) in {format_duration(outcome.duration)}"
            )
            self.console.print(f"  [dim]상세 로그: {outcome.log_path}[/dim]")
        else:
            self.console.print(f"  [green]●[/green] 복원 완료 in {format_duration(outcome.duration)}")

    # ------------------------------------------------------------
    # 후처리
    # ------------------------------------------------------------

    def _resequence(self) -> None:
        self._transition(MigrationState.RESEQUENCING)
        self.console.print("\n[bold][4/4] 시퀀스 재설정 중...[/bold]")

        resequencer = SequenceResynchronizer(self.target_client, self.schema)
        result = resequencer.resync(
            on_record=lambda r: self.console.print(f"  [green]↻[/green] {r.sequence} → {r.value}")
        )
        self.summary.sequences = result.records
        self.summary.warnings.extend(result.errors)
        for error in result.errors:
            self.console.print(f"  [yellow]⚠ {escape(error.message)}[/yellow]")
        self.console.print(f"  [green]●[/green] 시퀀스 {result.count}개 재설정")

    def _summarize(self) -> None:
        self._transition(MigrationState.SUMMARIZING)
        inspector = MetadataInspector(self.target_client, self.schema)
        self.summary.tables = list(inspector.per_table_counts())
        self.summary.warnings.extend(inspector.errors)


def _log_str(outcome: StageOutcome) -> str | None:
    return str(outcome.log_path) if outcome.log_path is not None else None
