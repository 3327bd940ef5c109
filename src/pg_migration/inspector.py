"""
연결 확인 및 DB 메타데이터 조회
사전 점검(표시용) 전용이므로 개별 조회 실패는 '?'로 대체하고 진행한다.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator

from .client import PostgresClient
from .exceptions import ConnectivityError, MetadataQueryError, QueryError

logger = logging.getLogger(__name__)

UNKNOWN = "?"


@dataclass
class DatabaseSummary:
    """DB 요약 정보"""
    identifier: str
    table_count: int | None
    storage_size: str | None

    def describe(self) -> str:
        tables = UNKNOWN if self.table_count is None else self.table_count
        size = self.storage_size or UNKNOWN
        return f"{self.identifier} ({tables} tables, {size})"


@dataclass
class TableCount:
    """테이블별 row 수 (None이면 조회 실패)"""
    name: str
    rows: int | None

    @property
    def display_rows(self) -> str:
        return UNKNOWN if self.rows is None else f"{self.rows:,}"


def verify_connection(client: PostgresClient) -> None:
    """엔드포인트 접속 확인 (실패 시 ConnectivityError, 재시도 없음)"""
    endpoint = client.endpoint
    try:
        client.ping()
    except QueryError as e:
        logger.error("%s 연결 실패: %s (%s)", endpoint.label, endpoint.redacted(), e.reason)
        raise ConnectivityError(endpoint.label, endpoint.redacted(), e.reason) from e
    logger.debug("%s 연결 확인: %s", endpoint.label, endpoint.redacted())


def total_rows(counts: Iterable[TableCount]) -> int:
    """조회에 성공한 테이블의 row 합계"""
    return sum(c.rows for c in counts if c.rows is not None)


class MetadataInspector:
    """DB 메타데이터 조회 (best-effort)"""

    def __init__(self, client: PostgresClient, schema: str = "public"):
        self.client = client
        self.schema = schema
        self.errors: list[MetadataQueryError] = []

    def _record(self, subject: str, error: QueryError) -> None:
        logger.warning("메타데이터 조회 실패 (%s): %s", subject, error.reason)
        self.errors.append(MetadataQueryError(subject, error.reason))

    def summarize(self) -> DatabaseSummary:
        """DB명, 테이블 수, 저장 크기"""
        identifier = self.client.endpoint.database
        try:
            info = self.client.get_database_info(self.schema)
        except QueryError as e:
            self._record(f"{identifier} 요약", e)
            return DatabaseSummary(identifier=identifier, table_count=None, storage_size=None)

        table_count = info.get("table_count")
        return DatabaseSummary(
            identifier=identifier,
            table_count=int(table_count) if table_count is not None else None,
            storage_size=info.get("size"),
        )

    def per_table_counts(self) -> Iterator[TableCount]:
        """테이블 목록을 순회하며 테이블별 COUNT(*) (lazy)"""
        try:
            tables = self.client.list_tables(self.schema)
        except QueryError as e:
            self._record("테이블 목록", e)
            return

        for table in tables:
            try:
                rows = self.client.count_rows(table, self.schema)
            except QueryError as e:
                self._record(f"{table} row count", e)
                rows = None
            yield TableCount(name=table, rows=rows)
