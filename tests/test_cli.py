"""End-to-end tests for the command line interface."""

import pytest
from typer.testing import CliRunner

from splitme.cli import app, format_money

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point every command at a throwaway database."""
    monkeypatch.setenv("SPLITME_DATABASE_PATH", str(tmp_path / "cli.db"))
    monkeypatch.setenv("SPLITME_EXPORT_DIR", str(tmp_path / "exports"))


def invoke(*args: str):
    return runner.invoke(app, list(args))


@pytest.fixture
def lisbon():
    """A trip with three participants."""
    assert invoke("trip", "create", "Lisbon").exit_code == 0
    result = invoke("participant", "add", "lisbon", "Alice", "Bob", "Carol")
    assert result.exit_code == 0
    return "lisbon"


def test_format_money():
    assert format_money(85.02, use_color=False) == " $85.02 "
    assert format_money(-85.02, use_color=False) == "($85.02)"


def test_settle(lisbon):
    result = invoke(
        "expense", "add", lisbon, "30", "--paid-by", "alice", "-m", "Lunch"
    )
    assert result.exit_code == 0, result.output

    result = invoke("settle", lisbon, "--balances")

    assert result.exit_code == 0, result.output
    assert "Settlements" in result.output
    assert "$10.00" in result.output
    assert "Settlements clear every balance" in result.output


def test_settled_trip(lisbon):
    result = invoke("settle", lisbon)

    assert result.exit_code == 0
    assert "Everyone is settled up" in result.output


def test_unknown_trip():
    result = invoke("trip", "show", "nowhere")

    assert result.exit_code == 1
    assert "not found" in result.output


def test_locked_trip_rejects_expenses(lisbon):
    assert invoke("trip", "lock", lisbon).exit_code == 0

    result = invoke("expense", "add", lisbon, "5", "--paid-by", "bob")

    assert result.exit_code == 1
    assert "locked" in result.output


def test_import_and_export(lisbon, tmp_path):
    upload = tmp_path / "bank.csv"
    upload.write_text(
        "Date,Description,Amount\n2024-03-01,Dinner,60\n2024-03-02,,oops\n"
    )

    result = invoke("import", lisbon, str(upload), "--paid-by", "Bob", "--yes")

    assert result.exit_code == 0, result.output
    assert "Imported 1 expenses" in result.output

    result = invoke("export", lisbon, "--settlements")

    assert result.exit_code == 0, result.output
    [written] = list((tmp_path / "exports").glob("splitme-settlements-*.csv"))
    lines = written.read_text().splitlines()
    assert lines[0] == '"From","To","Amount"'
    assert lines[1:] == ['"Alice","Bob","20.00"', '"Carol","Bob","20.00"']


def test_import_unsupported_file(lisbon, tmp_path):
    upload = tmp_path / "bank.txt"
    upload.write_text("whatever")

    result = invoke("import", lisbon, str(upload), "--paid-by", "Bob", "--yes")

    assert result.exit_code == 1
    assert "Unsupported file type" in result.output
