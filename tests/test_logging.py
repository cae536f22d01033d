"""
Tests for logging configuration and the transaction log listener
"""

import logging

import pytest
import structlog
from structlog.testing import capture_logs
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from diagnostics.error_codes import SqlServiceCode
from diagnostics.exceptions import TxPilotError
from execution.settings import TmSetting
from execution.tx_logger import TxLogListener
from infrastructure.config import EngineSettings
from infrastructure.logging_config import configure_from_settings, configure_logging, resolve_level
from transaction.options import TransactionOption
from fakes import server_error


class TestConfigureLogging:
    """Test structlog/stdlib wiring"""

    def test_resolve_level(self):
        assert resolve_level("DEBUG") == logging.DEBUG
        assert resolve_level("warning") == logging.WARNING
        assert resolve_level("nonsense") == logging.INFO

    def test_configure_json(self, capsys):
        root = logging.getLogger()
        root_level, root_handlers = root.level, list(root.handlers)
        try:
            configure_logging(level="info", json_output=True)
            structlog.get_logger("txpilot.test").info("configured", answer=42)

            out = capsys.readouterr().out
            assert '"event": "configured"' in out
            assert '"answer": 42' in out
            assert root.level == logging.INFO
        finally:
            structlog.reset_defaults()
            root.handlers = root_handlers
            root.setLevel(root_level)

    def test_configure_from_settings(self):
        root = logging.getLogger()
        root_level, root_handlers = root.level, list(root.handlers)
        try:
            configure_from_settings(EngineSettings(log_level="debug", log_format="json"))

            assert root.level == logging.DEBUG
        finally:
            structlog.reset_defaults()
            root.handlers = root_handlers
            root.setLevel(root_level)


class TestTxLogListener:
    """Test structured events of managed executions"""

    def test_retry_then_success_logged(self, session, service):
        service.commit_errors = [server_error(SqlServiceCode.OCC_WRITE_EXCEPTION)]
        setting = TmSetting.of_always(TransactionOption.of_occ(), 3).add_listener(TxLogListener())
        tm = session.create_transaction_manager(setting)

        with capture_logs() as logs:
            tm.execute(lambda tx: tx.execute_and_get_count("insert into t values(1)"))

        events = [entry["event"] for entry in logs]
        assert "tm_execute_start" in events
        assert "tm_transaction_retry" in events
        assert "tx_commit_error" in events
        assert events.count("tx_commit_end") == 1

        end = [entry for entry in logs if entry["event"] == "tm_execute_end"]
        assert len(end) == 1
        assert end[0]["committed"] is True
        assert end[0]["attempt"] == 2

    def test_per_transaction_events_carry_context(self, session):
        tm = session.create_transaction_manager(TmSetting.of(TransactionOption.of_occ()).add_listener(TxLogListener()))

        with capture_logs() as logs:
            tm.execute(lambda tx: tx.execute_and_get_count("insert into t values(1)"))

        execute_end = [entry for entry in logs if entry["event"] == "tx_execute_end"]
        assert len(execute_end) == 1
        assert execute_end[0]["attempt"] == 1
        assert "tm_execute_id" in execute_end[0]
        assert execute_end[0]["elapsed_ms"] >= 0

    def test_failure_logged(self, session):
        tm = session.create_transaction_manager(TmSetting.of(TransactionOption.of_occ()).add_listener(TxLogListener()))

        def action(tx):
            raise ValueError("boom")

        with capture_logs() as logs:
            with pytest.raises(TxPilotError):
                tm.execute(action)

        fail = [entry for entry in logs if entry["event"] == "tm_execute_fail"]
        assert len(fail) == 1
        assert fail[0]["log_level"] == "error"
        assert "TXPILOT-" in fail[0]["error"]
        assert fail[0]["cause"] == "boom"
