"""
마이그레이션 예외 정의
- 치명적 오류: 상태 머신을 즉시 중단 (failed 전이)
- 비치명적 오류: 요약에 기록만 하고 진행
"""

from typing import Any


class MigrationError(Exception):
    """마이그레이션 기본 예외"""

    fatal: bool = True

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class ConnectivityError(MigrationError):
    """엔드포인트 접속 불가 (재시도 없음)"""

    def __init__(self, label: str, endpoint: str, reason: str = ""):
        super().__init__(f"{label} DB에 연결할 수 없습니다: {endpoint}", reason=reason)
        self.label = label
        self.endpoint = endpoint
        self.reason = reason


class ExtractionError(MigrationError):
    """pg_dump 비정상 종료"""

    def __init__(self, returncode: int, log_path: str | None = None):
        super().__init__(f"pg_dump 실패 (exit {returncode})", log_path=log_path)
        self.returncode = returncode
        self.log_path = log_path


class LoadFatalError(MigrationError):
    """pg_restore 비정상 종료 + 진단 로그에 오류 마커 존재"""

    def __init__(self, returncode: int, error_count: int, log_path: str | None = None):
        super().__init__(
            f"pg_restore 실패 (exit {returncode}, 오류 {error_count}건)",
            log_path=log_path,
        )
        self.returncode = returncode
        self.error_count = error_count
        self.log_path = log_path


class LoadWarning(MigrationError):
    """pg_restore 비정상 종료지만 오류 마커 없음 (경고만 존재)"""

    fatal = False

    def __init__(self, returncode: int, log_path: str | None = None):
        super().__init__(
            f"pg_restore가 경고와 함께 완료되었습니다 (exit {returncode})",
            log_path=log_path,
        )
        self.returncode = returncode
        self.log_path = log_path


class QueryError(MigrationError):
    """단일 쿼리 실행 실패"""

    def __init__(self, query: str, reason: str):
        super().__init__(f"쿼리 실행 실패: {reason}", query=query)
        self.query = query
        self.reason = reason


class MetadataQueryError(MigrationError):
    """조회/카운트/시퀀스 쿼리 실패 (항상 비치명적)"""

    fatal = False

    def __init__(self, subject: str, reason: str):
        super().__init__(f"{subject}: {reason}")
        self.subject = subject
        self.reason = reason


class MissingToolError(MigrationError):
    """필수 외부 도구 누락"""

    def __init__(self, tools: list[str]):
        super().__init__(f"필수 도구를 찾을 수 없습니다: {', '.join(tools)}")
        self.tools = tools


class MigrationAborted(MigrationError):
    """사용자가 파괴적 작업 확인을 거부"""

    def __init__(self):
        super().__init__("사용자가 마이그레이션을 취소했습니다")
