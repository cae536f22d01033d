"""
Tests for statement and query result handles
"""

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from diagnostics.error_codes import ErrorCode, SqlServiceCode
from diagnostics.exceptions import ErrorKind, TxPilotError
from session.service import CounterType
from transaction.events import TransactionEventListener
from transaction.options import TransactionOption
from transaction.results import ResultCount, ResultStatus
from fakes import FakeRowStream, server_error


class EndRecorder(TransactionEventListener):
    """Counts execute_end notifications"""

    def __init__(self):
        self.ends = []

    def execute_end(self, transaction, execute_id, sql, parameters, result, error):
        self.ends.append((execute_id, error))


@pytest.fixture
def tx(session):
    transaction = session.create_transaction(TransactionOption.of_occ())
    yield transaction
    transaction.close()


class TestResultCount:
    """Test row counters"""

    def test_counters(self):
        count = ResultCount({CounterType.INSERTED_ROWS: 2, CounterType.UPDATED_ROWS: 3})

        assert count.is_available()
        assert count.inserted_count == 2
        assert count.updated_count == 3
        assert count.deleted_count == 0
        assert count.total == 5

    def test_not_available_is_not_zero(self):
        count = ResultCount(None)

        assert not count.is_available()
        assert count.total is None
        assert count.merged_count == 0


class TestStatementResult:
    """Test update statement results"""

    def test_update_count(self, tx, service):
        service.statement_results["update t set v = 1"] = {CounterType.UPDATED_ROWS: 4}

        with tx.execute_statement("update t set v = 1") as result:
            assert result.get_update_count() == 4
            assert result.status == ResultStatus.SUCCEEDED

        assert result.status == ResultStatus.CLOSED
        assert tx.child_count() == 0

    def test_count_not_available(self, tx, service):
        service.statement_results["create table t (id int)"] = None

        assert tx.execute_and_get_count("create table t (id int)") is None

    def test_server_error_surfaces_with_code(self, tx, service):
        service.statement_results["insert dup"] = server_error(SqlServiceCode.UNIQUE_CONSTRAINT_VIOLATION_EXCEPTION)
        result = tx.execute_statement("insert dup")

        with pytest.raises(TxPilotError) as exc_info:
            result.get_update_count()

        assert exc_info.value.code == SqlServiceCode.UNIQUE_CONSTRAINT_VIOLATION_EXCEPTION
        assert result.status == ResultStatus.FAILED
        # the failure is remembered
        with pytest.raises(TxPilotError):
            result.get_update_count()
        result.close()

    def test_timeout(self, tx, service):
        service.hanging.add("update slow")
        result = tx.execute_statement("update slow")
        result.set_connect_timeout(0.05)

        with pytest.raises(TxPilotError) as exc_info:
            result.get_update_count()

        assert exc_info.value.code == ErrorCode.RESULT_CONNECT_TIMEOUT
        result.close()

    def test_close_without_check_does_not_wait(self, tx, service):
        service.hanging.add("update slow")
        result = tx.execute_statement("update slow")
        result.check_result_on_close = False

        result.close()

        assert result.status == ResultStatus.CLOSED
        with pytest.raises(TxPilotError) as exc_info:
            result.get_update_count()
        assert exc_info.value.code == ErrorCode.RESULT_ALREADY_CLOSED

    def test_execute_end_fires_once(self, tx):
        recorder = EndRecorder()
        tx.add_listener(recorder)

        result = tx.execute_statement("insert into t values(1)")
        result.get_update_count()
        result.get_update_count()
        result.close()

        assert recorder.ends == [(1, None)]


class TestQueryResult:
    """Test query results"""

    def test_rows_as_dicts(self, tx, service):
        service.query_results["select id, name from t"] = FakeRowStream(["id", "name"], [(1, "a"), (2, "b")])

        rows = tx.execute_and_get_list("select id, name from t")

        assert rows == [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}]

    def test_mapping(self, tx, service):
        service.query_results["select id from t"] = FakeRowStream(["id"], [(1,), (2,)])

        ids = tx.execute_and_get_list("select id from t", mapping=lambda record: record["id"])

        assert ids == [1, 2]

    def test_find_record(self, tx, service):
        service.query_results["select id from t"] = FakeRowStream(["id"], [(7,), (8,)])

        assert tx.execute_and_find_record("select id from t") == {"id": 7}
        assert tx.execute_and_find_record("select id from empty") is None

    def test_columns_and_read_count(self, tx, service):
        stream = FakeRowStream(["id"], [(1,), (2,), (3,)])
        service.query_results["select id from t"] = stream

        with tx.execute_query("select id from t") as result:
            assert result.get_columns() == ["id"]
            for _ in result:
                pass
            assert result.read_count == 3

        assert stream.close_count == 1

    def test_server_error_while_reading(self, tx, service):
        stream = FakeRowStream(["id"], [(1,), (2,)], error_after=1,
                               error=server_error(SqlServiceCode.OCC_READ_EXCEPTION))
        service.query_results["select id from t"] = stream
        result = tx.execute_query("select id from t")
        seen = []

        with pytest.raises(TxPilotError) as exc_info:
            for record in result:
                seen.append(record)

        assert seen == [{"id": 1}]
        assert exc_info.value.kind == ErrorKind.SERVER_REPORTED
        assert exc_info.value.code == SqlServiceCode.OCC_READ_EXCEPTION
        assert result.status == ResultStatus.FAILED
        result.close()

    def test_query_timeout(self, tx, service):
        service.hanging.add("select slow")
        result = tx.execute_query("select slow")
        result.set_connect_timeout(0.05)

        with pytest.raises(TxPilotError) as exc_info:
            result.fetch_all()

        assert exc_info.value.code == ErrorCode.RS_CONNECT_TIMEOUT
        result.close()

    def test_unread_query_closed_by_transaction(self, tx, service):
        tx.execute_query("select id from t")

        assert tx.child_count() == 1
        tx.commit()
        assert tx.child_count() == 0
