"""연결 확인 / 메타데이터 조회 테스트"""

import pytest

from pg_migration.exceptions import ConnectivityError
from pg_migration.inspector import (
    DatabaseSummary,
    MetadataInspector,
    TableCount,
    total_rows,
    verify_connection,
)

from .conftest import FakePostgresClient


@pytest.fixture
def client(source_endpoint):
    return FakePostgresClient(source_endpoint, tables={"users": [1, 2], "orders": [1]})


def test_verify_connection_redacts_password(source_endpoint):
    client = FakePostgresClient(source_endpoint, reachable=False)
    with pytest.raises(ConnectivityError) as exc_info:
        verify_connection(client)
    assert "secret" not in exc_info.value.message
    assert exc_info.value.label == "source"


def test_summarize(client):
    summary = MetadataInspector(client).summarize()
    assert summary == DatabaseSummary(identifier="shop", table_count=2, storage_size="8192 kB")
    assert summary.describe() == "shop (2 tables, 8192 kB)"


def test_summarize_failure_uses_unknown(client):
    client.failing = {"get_database_info"}
    inspector = MetadataInspector(client)
    summary = inspector.summarize()
    assert summary.describe() == "shop (? tables, ?)"
    assert len(inspector.errors) == 1


def test_per_table_counts_is_lazy(client):
    inspector = MetadataInspector(client)
    counts = inspector.per_table_counts()
    client.failing = {"list_tables"}
    # 순회를 시작해야 조회가 일어남
    assert list(counts) == []
    assert inspector.errors[0].subject == "테이블 목록"


def test_failed_count_is_unknown(client):
    client.failing = {("count_rows", "orders")}
    inspector = MetadataInspector(client)
    counts = list(inspector.per_table_counts())
    assert counts == [TableCount("orders", None), TableCount("users", 2)]
    assert counts[0].display_rows == "?"
    assert total_rows(counts) == 2
    assert inspector.errors[0].subject == "orders row count"


def test_display_rows_formats_thousands():
    assert TableCount("events", 1234567).display_rows == "1,234,567"
