"""
시퀀스 재동기화
pg_restore는 row 데이터만 복원하고 시퀀스 카운터를 맞추지 않으므로,
복원 후 각 serial/identity 컬럼의 시퀀스를 MAX(컬럼) + 1로 다시 설정한다.
"""

import logging
from dataclasses import dataclass, field

from .client import PostgresClient
from .exceptions import MetadataQueryError, QueryError

logger = logging.getLogger(__name__)


@dataclass
class SequenceRecord:
    """컬럼이 소유한 시퀀스와 재설정 값"""
    table: str
    column: str
    sequence: str
    value: int | None = None


@dataclass
class ResyncResult:
    """재동기화 결과"""
    records: list[SequenceRecord] = field(default_factory=list)
    errors: list[MetadataQueryError] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.records)


class SequenceResynchronizer:
    """타겟 DB 시퀀스 재동기화기"""

    def __init__(self, client: PostgresClient, schema: str = "public"):
        self.client = client
        self.schema = schema

    def discover(self) -> list[SequenceRecord]:
        """시퀀스를 소유한 컬럼 조회"""
        rows = self.client.get_serial_columns(self.schema)
        return [
            SequenceRecord(
                table=row["table_name"],
                column=row["column_name"],
                sequence=row["sequence_name"],
            )
            for row in rows
        ]

    def resync_one(self, record: SequenceRecord) -> SequenceRecord:
        """단일 컬럼 재동기화 (다음 nextval = MAX + 1, 빈 테이블이면 1)"""
        value = self.client.get_next_value(record.table, record.column, self.schema)
        self.client.set_sequence_value(record.sequence, value)
        record.value = value
        logger.debug("시퀀스 재설정: %s → %d", record.sequence, value)
        return record

    def resync(self, on_record=None) -> ResyncResult:
        """모든 시퀀스 재동기화 (컬럼별 실패는 기록 후 계속)

        Args:
            on_record: 재설정 성공 시마다 호출되는 콜백 (표시용)
        """
        result = ResyncResult()

        try:
            records = self.discover()
        except QueryError as e:
            logger.warning("시퀀스 목록 조회 실패: %s", e.reason)
            result.errors.append(MetadataQueryError("시퀀스 목록", e.reason))
            return result

        for record in records:
            try:
                self.resync_one(record)
            except QueryError as e:
                logger.warning("시퀀스 재설정 실패 (%s): %s", record.sequence, e.reason)
                result.errors.append(MetadataQueryError(record.sequence, e.reason))
                continue
            result.records.append(record)
            if on_record is not None:
                on_record(record)

        return result
