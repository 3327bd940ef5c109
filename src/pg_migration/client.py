"""PostgreSQL 연결 및 메타데이터/유지보수 쿼리 실행"""

import logging
from contextlib import contextmanager
from typing import Any

import psycopg2
import psycopg2.extras
from psycopg2 import sql

from .config import Endpoint
from .exceptions import QueryError

logger = logging.getLogger(__name__)

APPLICATION_NAME = "pg-migrate"


class PostgresClient:
    """PostgreSQL 클라이언트 (엔드포인트 1개당 1개)"""

    def __init__(self, endpoint: Endpoint, connect_timeout: int = 10):
        self.endpoint = endpoint
        self.connect_timeout = connect_timeout

    @contextmanager
    def get_connection(self):
        """컨텍스트 매니저로 연결 관리"""
        try:
            conn = psycopg2.connect(
                dsn=self.endpoint.url,
                connect_timeout=self.connect_timeout,
                application_name=APPLICATION_NAME,
            )
        except psycopg2.Error as e:
            raise QueryError("connect", str(e).strip()) from e
        try:
            yield conn
        finally:
            conn.close()

    def execute_query(
        self, query: Any, params: tuple | None = None
    ) -> list[dict[str, Any]]:
        """쿼리 실행 및 결과 반환 (결과가 없는 문장은 빈 리스트)"""
        with self.get_connection() as conn:
            try:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                    cursor.execute(query, params)
                    rows = [dict(row) for row in cursor.fetchall()] if cursor.description else []
                conn.commit()
                return rows
            except psycopg2.Error as e:
                conn.rollback()
                raise QueryError(_query_text(query, conn), str(e).strip()) from e

    def execute_scalar(self, query: Any, params: tuple | None = None) -> Any:
        """첫 행의 첫 컬럼 값 반환"""
        rows = self.execute_query(query, params)
        if not rows:
            return None
        return next(iter(rows[0].values()))

    def ping(self) -> None:
        """SELECT 1 왕복 (실패 시 QueryError)"""
        self.execute_query("SELECT 1 AS ok")

    def test_connection(self) -> bool:
        """연결 테스트"""
        try:
            self.ping()
            return True
        except QueryError:
            return False

    # ------------------------------------------------------------
    # 메타데이터
    # ------------------------------------------------------------

    def get_database_info(self, schema: str = "public") -> dict[str, Any]:
        """테이블 수와 DB 전체 크기 조회"""
        query = """
            SELECT
                (SELECT COUNT(*)
                   FROM information_schema.tables
                  WHERE table_schema = %s AND table_type = 'BASE TABLE') AS table_count,
                pg_size_pretty(pg_database_size(current_database())) AS size
        """
        rows = self.execute_query(query, (schema,))
        return rows[0] if rows else {"table_count": None, "size": None}

    def list_tables(self, schema: str = "public") -> list[str]:
        """스키마의 테이블 목록 (이름순)"""
        query = """
            SELECT tablename
            FROM pg_tables
            WHERE schemaname = %s
            ORDER BY tablename
        """
        return [r["tablename"] for r in self.execute_query(query, (schema,))]

    def count_rows(self, table: str, schema: str = "public") -> int:
        """테이블 row 수 조회"""
        query = sql.SQL("SELECT COUNT(*) AS cnt FROM {}").format(sql.Identifier(schema, table))
        return int(self.execute_scalar(query))

    # ------------------------------------------------------------
    # 시퀀스
    # ------------------------------------------------------------

    def get_serial_columns(self, schema: str = "public") -> list[dict[str, str]]:
        """시퀀스를 소유한 컬럼 목록 (serial / identity)"""
        query = """
            SELECT
                t.relname::text AS table_name,
                a.attname::text AS column_name,
                pg_get_serial_sequence(
                    quote_ident(n.nspname) || '.' || quote_ident(t.relname), a.attname
                ) AS sequence_name
            FROM pg_class t
            JOIN pg_attribute a ON a.attrelid = t.oid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            WHERE n.nspname = %s
              AND t.relkind IN ('r', 'p')
              AND a.attnum > 0
              AND NOT a.attisdropped
              AND pg_get_serial_sequence(
                    quote_ident(n.nspname) || '.' || quote_ident(t.relname), a.attname
                  ) IS NOT NULL
            ORDER BY t.relname, a.attname
        """
        return self.execute_query(query, (schema,))

    def get_next_value(self, table: str, column: str, schema: str = "public") -> int:
        """MAX(column) + 1 (빈 테이블이면 1)"""
        query = sql.SQL("SELECT COALESCE(MAX({col}), 0) + 1 AS next_value FROM {table}").format(
            col=sql.Identifier(column),
            table=sql.Identifier(schema, table),
        )
        return int(self.execute_scalar(query))

    def set_sequence_value(self, sequence: str, value: int) -> None:
        """다음 nextval()이 value를 반환하도록 시퀀스 설정"""
        self.execute_query("SELECT setval(%s::regclass, %s, false)", (sequence, value))

    # ------------------------------------------------------------
    # 타겟 준비
    # ------------------------------------------------------------

    def truncate_tables(self, schema: str = "public") -> list[str]:
        """스키마의 모든 테이블을 단일 트랜잭션에서 TRUNCATE ... CASCADE

        트리거(FK 포함)는 session_replication_role = 'replica'로 일시 중지한다.
        """
        with self.get_connection() as conn:
            try:
                with conn.cursor() as cursor:
                    cursor.execute("SET session_replication_role = 'replica'")
                    cursor.execute(
                        "SELECT tablename FROM pg_tables WHERE schemaname = %s ORDER BY tablename",
                        (schema,),
                    )
                    tables = [row[0] for row in cursor.fetchall()]
                    for table in tables:
                        cursor.execute(
                            sql.SQL("TRUNCATE TABLE {} CASCADE").format(sql.Identifier(schema, table))
                        )
                    cursor.execute("SET session_replication_role = 'origin'")
                conn.commit()
            except psycopg2.Error as e:
                conn.rollback()
                raise QueryError("TRUNCATE", str(e).strip()) from e

        logger.info("타겟 테이블 %d개 TRUNCATE 완료 (%s)", len(tables), self.endpoint.redacted())
        return tables


def _query_text(query: Any, conn) -> str:
    """로그/예외용 쿼리 문자열"""
    if isinstance(query, sql.Composable):
        try:
            return query.as_string(conn)
        except psycopg2.Error:
            return repr(query)
    return str(query)
