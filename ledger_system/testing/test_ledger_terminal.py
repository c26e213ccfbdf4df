"""
Tests for the interactive ledger terminal, driven by scripted prompts
"""

import io
from unittest.mock import patch

import pytest
from rich.console import Console

from ledger_system.core import config as ledger_config
from ledger_system.core.error_handler import ErrorHandler
from ledger_system.core.ledger_terminal import LedgerTerminal, main
from ledger_system.core.providers import ReplicationAbortedError
from ledger_system.core.seed import build_default_registry

PROMPT = 'ledger_system.core.ledger_terminal.Prompt.ask'
RECORD_ANSWERS = ["7", "Bui Hai Duong", "private", "Recovered", "ZZ"]


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=200, color_system=None)


@pytest.fixture
def terminal(console):
    registry = build_default_registry(difficulty=b"\x00")
    return LedgerTerminal(registry, console=console, error_handler=ErrorHandler(console=console))


def output(console):
    return console.file.getvalue()


class TestMenu:

    def test_unknown_option_exits(self, terminal):
        with patch(PROMPT, side_effect=["9"]):
            assert terminal.main_menu() is False

    def test_run_loops_until_exit(self, terminal, console):
        with patch(PROMPT, side_effect=["4", "4", ""]):
            terminal.run()
        assert output(console).count("Chain Integrity") == 2


class TestShowChain:

    def test_shows_selected_provider(self, terminal, console):
        with patch(PROMPT, side_effect=["1", "2"]):
            assert terminal.main_menu() is True

        text = output(console)
        assert "Benh Vien Thong Nhat" in text
        assert "Tran The Chau" in text
        assert terminal.registry[1].chain[1].hash_hex[:32] in text

    def test_bad_choice(self, terminal, console):
        with patch(PROMPT, side_effect=["abc"]):
            assert terminal.choose_provider() is None
        assert "No such provider" in output(console)
        error = terminal.error_handler.recent_errors[0]
        assert error['category'] == "ui_input"
        assert error['operation'] == "choose_provider"
        assert terminal.error_handler.alert_queue == []


class TestAddRecord:

    def test_majority_appends_everywhere(self, terminal, console):
        with patch(PROMPT, side_effect=RECORD_ANSWERS + ["1", "1", "2"]):
            result = terminal.add_record()

        assert result.approved
        assert "Added" in output(console)
        for provider in terminal.registry:
            assert len(provider.chain) == 3
            assert provider.chain.last_block.record.ref_id == "7"
            assert provider.chain.last_block.record.access_policy == "private"

    def test_minority_cancels(self, terminal, console):
        with patch(PROMPT, side_effect=RECORD_ANSWERS + ["1", "2", "no"]):
            result = terminal.add_record()

        assert not result.approved
        assert "Canceled" in output(console)
        assert all(len(p.chain) == 2 for p in terminal.registry)

    def test_replication_failure_routed_to_handler(self, terminal):
        with patch(PROMPT, side_effect=RECORD_ANSWERS), \
                patch.object(terminal.gate, 'propose_record',
                             side_effect=ReplicationAbortedError("mining failed")):
            assert terminal.add_record() is None

        errors = terminal.error_handler.recent_errors
        assert len(errors) == 1
        assert errors[0]['category'] == "replication"
        assert errors[0]['operation'] == "add_record"
        assert len(terminal.error_handler.alert_queue) == 1


class TestQueryAndVerify:

    def test_query_patient(self, terminal, console):
        with patch(PROMPT, side_effect=["3", "Bui Hai Duong"]):
            terminal.main_menu()

        text = output(console)
        assert "Records for Bui Hai Duong" in text
        assert "Provider: Benh Vien Quoc Te" in text
        assert "No records" in text

    def test_query_returns_structured_results(self, terminal):
        with patch(PROMPT, side_effect=["Luong Gia Kiet"]):
            results = terminal.query_patient()

        assert [r.ref_id for r, _ in results["Benh Vien Sai Gon"]] == ["5", "6"]
        assert results["Benh Vien Quoc Te"] == []

    def test_verify_all_flags_tampering(self, terminal, console):
        terminal.registry[2].chain[1].nonce += 1

        reports = terminal.verify_all()

        assert not reports["Benh Vien Sai Gon"].valid
        assert reports["Benh Vien Quoc Te"].valid
        assert "broken at #1" in output(console)

        errors = terminal.error_handler.recent_errors
        assert [e['category'] for e in errors] == ["chain_validation"]
        assert errors[0]['context'] == "Benh Vien Sai Gon"
        assert "broken blocks #1" in errors[0]['message']


def test_main_runs_seeded_terminal(clean_ledger_logger):
    with patch(PROMPT, side_effect=["0"]):
        assert main(["--env", "test"]) == 0


class UnminableConfig(ledger_config.TestConfig):
    DIFFICULTY_HEX = "00000000"
    MAX_MINING_ATTEMPTS = 1


class BrokenConfig(ledger_config.TestConfig):
    MAX_WORKERS = 0
    LOG_LEVEL = "LOUD"


def test_main_reports_seed_mining_failure(clean_ledger_logger, capsys):
    with patch('ledger_system.core.ledger_terminal.get_config', return_value=UnminableConfig), \
            patch(PROMPT) as prompt:
        assert main([]) == 1

    prompt.assert_not_called()
    out = capsys.readouterr().out
    assert "During startup" in out
    assert "seed chains" in out
    assert "LEDGER_MAX_MINING_ATTEMPTS" in out


def test_main_reports_every_config_issue(clean_ledger_logger, capsys):
    with patch('ledger_system.core.ledger_terminal.get_config', return_value=BrokenConfig), \
            patch('ledger_system.core.ledger_terminal.build_default_registry') as build:
        assert main([]) == 1

    build.assert_not_called()
    out = capsys.readouterr().out
    assert "MAX_WORKERS" in out
    assert "LOG_LEVEL" in out
