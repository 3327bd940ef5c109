"""PostgresClient 테스트 (psycopg2.connect 모킹)"""

from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from pg_migration.client import PostgresClient
from pg_migration.exceptions import QueryError


@pytest.fixture
def mock_conn():
    conn = MagicMock()
    cursor = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    with patch("pg_migration.client.psycopg2.connect", return_value=conn) as connect:
        yield connect, conn, cursor


@pytest.fixture
def client(target_endpoint):
    return PostgresClient(target_endpoint, connect_timeout=3)


def test_connection_parameters(client, mock_conn, target_endpoint):
    connect, conn, cursor = mock_conn
    cursor.description = [("ok",)]
    cursor.fetchall.return_value = [{"ok": 1}]

    client.ping()

    connect.assert_called_once_with(
        dsn=target_endpoint.url, connect_timeout=3, application_name="pg-migrate"
    )
    conn.close.assert_called_once()


def test_connect_failure_is_query_error(client):
    with patch(
        "pg_migration.client.psycopg2.connect",
        side_effect=psycopg2.OperationalError("could not connect to server\n"),
    ):
        with pytest.raises(QueryError) as exc_info:
            client.ping()
        assert client.test_connection() is False
    assert exc_info.value.reason == "could not connect to server"


def test_query_failure_rolls_back(client, mock_conn):
    _, conn, cursor = mock_conn
    cursor.execute.side_effect = psycopg2.ProgrammingError("relation does not exist")

    with pytest.raises(QueryError):
        client.execute_query("SELECT * FROM missing")

    conn.rollback.assert_called_once()
    conn.commit.assert_not_called()
    conn.close.assert_called_once()


def test_statement_without_result(client, mock_conn):
    _, conn, cursor = mock_conn
    cursor.description = None

    assert client.execute_query("SELECT setval('s', 1, false)") == []
    cursor.fetchall.assert_not_called()
    conn.commit.assert_called_once()


def test_get_next_value(client, mock_conn):
    _, _, cursor = mock_conn
    cursor.description = [("next_value",)]
    cursor.fetchall.return_value = [{"next_value": 42}]

    assert client.get_next_value("users", "id") == 42


def test_set_sequence_value_keeps_is_called_false(client, mock_conn):
    _, _, cursor = mock_conn
    cursor.description = None

    client.set_sequence_value("public.users_id_seq", 4)

    cursor.execute.assert_called_once_with(
        "SELECT setval(%s::regclass, %s, false)", ("public.users_id_seq", 4)
    )


def test_truncate_tables_in_one_transaction(client, mock_conn):
    _, conn, cursor = mock_conn
    cursor.fetchall.return_value = [("orders",), ("users",)]

    assert client.truncate_tables() == ["orders", "users"]

    statements = [c.args[0] for c in cursor.execute.call_args_list]
    assert statements[0] == "SET session_replication_role = 'replica'"
    assert statements[-1] == "SET session_replication_role = 'origin'"
    # 설정 2회 + 목록 조회 1회 + 테이블별 TRUNCATE
    assert len(statements) == 5
    conn.commit.assert_called_once()


def test_truncate_failure_rolls_back(client, mock_conn):
    _, conn, cursor = mock_conn
    cursor.fetchall.return_value = [("users",)]
    cursor.execute.side_effect = [None, None, psycopg2.errors.InsufficientPrivilege("permission denied")]

    with pytest.raises(QueryError) as exc_info:
        client.truncate_tables()

    assert exc_info.value.query == "TRUNCATE"
    conn.rollback.assert_called_once()
    conn.commit.assert_not_called()
