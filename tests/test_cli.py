"""
Tests for the command-line interface.
"""

from typer.testing import CliRunner

from bookingengine import __version__
from bookingengine.adapters.fixtures import DEFAULT_FIXTURE
from bookingengine.cli.app import app

runner = CliRunner()


def _write_config(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        f"database_url: sqlite:///{tmp_path / 'cli.db'}\nlog_level: WARNING\n",
        encoding="utf-8"
    )
    return config_file


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_hours_with_mock_data():
    """Monday 2026-11-02 has a 10:00-11:00 meeting block."""
    result = runner.invoke(app, ["hours", "1", "2026-11-02", "--mock"])

    assert result.exit_code == 0
    assert "MOCK-MODUS" in result.stdout
    assert "09:00-10:00" in result.stdout
    assert "10:00-11:00" in result.stdout
    assert "13:00-17:00" in result.stdout


def test_hours_closed_day():
    result = runner.invoke(app, ["hours", "1", "2026-12-25", "--mock"])

    assert result.exit_code == 0
    assert "geschlossen" in result.stdout


def test_slots_in_the_past_are_empty():
    result = runner.invoke(
        app, ["slots", "1", "1", "--start", "2020-01-06", "--end", "2020-01-06", "--mock"]
    )

    assert result.exit_code == 0
    assert "Keine verfügbaren Slots" in result.stdout


def test_unknown_provider_fails():
    result = runner.invoke(app, ["slots", "42", "1", "--mock"])

    assert result.exit_code == 1
    assert "Fehler" in result.stdout
    assert "provider_not_found" in result.stdout


def test_book_rejects_malformed_time():
    result = runner.invoke(app, ["book", "1", "1", "2026-11-02", "25:00", "--mock"])

    assert result.exit_code == 1
    assert "invalid_time_format" in result.stdout


def test_cancel_with_mock_data():
    result = runner.invoke(app, ["cancel", "1", "--reason", "Client ill", "--mock"])

    assert result.exit_code == 0
    assert "storniert" in result.stdout


def test_cancel_already_cancelled():
    result = runner.invoke(app, ["cancel", "3", "--mock"])

    assert result.exit_code == 1
    assert "already_cancelled" in result.stdout


def test_init_db_and_seed(tmp_path):
    """A seeded database answers the same queries as the mock data."""
    config_file = _write_config(tmp_path)

    init = runner.invoke(app, ["init-db", "--seed", str(DEFAULT_FIXTURE), "--config", str(config_file)])
    hours = runner.invoke(app, ["hours", "1", "2026-11-02", "-c", str(config_file)])

    assert init.exit_code == 0
    assert (tmp_path / "cli.db").exists()
    assert hours.exit_code == 0
    assert "10:00-11:00" in hours.stdout


def test_missing_explicit_config(tmp_path):
    result = runner.invoke(app, ["hours", "1", "2026-11-02", "-c", str(tmp_path / "nope.yaml")])

    assert result.exit_code == 1
    assert "Fehler" in result.stdout


def test_reschedule_cancelled_booking_fails():
    result = runner.invoke(app, ["reschedule", "3", "2026-11-03", "14:00", "--mock"])

    assert result.exit_code == 1
    assert "already_cancelled" in result.stdout


def test_reschedule_unknown_booking():
    result = runner.invoke(app, ["reschedule", "99", "2026-11-03", "14:00", "--mock"])

    assert result.exit_code == 1
    assert "booking_not_found" in result.stdout
