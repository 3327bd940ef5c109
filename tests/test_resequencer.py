"""시퀀스 재동기화 테스트"""

import pytest

from pg_migration.resequencer import SequenceRecord, SequenceResynchronizer

from .conftest import FakePostgresClient


def make_client(endpoint, **kwargs):
    return FakePostgresClient(
        endpoint,
        tables={"users": [1, 2, 7], "orders": [], "logs": [3]},
        serial={"users": "id", "orders": "id"},
        **kwargs,
    )


def test_resync_sets_max_plus_one(target_endpoint):
    client = make_client(target_endpoint)
    result = SequenceResynchronizer(client).resync()

    assert result.count == 2
    assert result.errors == []
    assert client.sequences == {"public.users_id_seq": 8, "public.orders_id_seq": 1}


@pytest.mark.parametrize("values", [[3, 7, 2], [2, 3, 7], [7, 2, 3]])
def test_next_value_ignores_row_order(target_endpoint, values):
    client = FakePostgresClient(target_endpoint, tables={"t": values}, serial={"t": "id"})
    SequenceResynchronizer(client).resync()
    assert client.sequences == {"public.t_id_seq": 8}


def test_resync_is_idempotent(target_endpoint):
    client = make_client(target_endpoint)
    resequencer = SequenceResynchronizer(client)
    resequencer.resync()
    first = dict(client.sequences)
    resequencer.resync()
    assert client.sequences == first


def test_resync_continues_after_failure(target_endpoint):
    client = make_client(target_endpoint, failing={("set_sequence_value", "public.users_id_seq")})
    seen = []

    result = SequenceResynchronizer(client).resync(on_record=seen.append)

    assert [r.sequence for r in result.records] == ["public.orders_id_seq"]
    assert seen == result.records
    assert result.errors[0].subject == "public.users_id_seq"
    assert result.errors[0].fatal is False


def test_discover_failure_is_recorded(target_endpoint):
    client = make_client(target_endpoint, failing={"get_serial_columns"})
    result = SequenceResynchronizer(client).resync()
    assert result.count == 0
    assert len(result.errors) == 1


def test_resync_one(target_endpoint):
    client = make_client(target_endpoint)
    record = SequenceRecord("users", "id", "public.users_id_seq")
    assert SequenceResynchronizer(client).resync_one(record).value == 8
