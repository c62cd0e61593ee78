"""
Database connectivity and schema verification tests.

These tests confirm that:
  - The application can connect to its database.
  - Every table the API relies on is created from the models.
  - The ``db-check`` CLI command reports a healthy database.

Run from your project root with::

    pytest tests/test_services/test_db_connection.py -v
"""

from sqlalchemy import inspect

from app.cli import EXPECTED_TABLES
from app.extensions import db


class TestDatabaseConnectivity:
    """Verify that the app can talk to the database."""

    def test_basic_connection(self, db_session):
        """A simple SELECT 1 confirms the connection string works."""
        row = db_session.execute(db.text("SELECT 1 AS connected")).fetchone()
        assert row is not None
        assert row[0] == 1


class TestSchemaExists:
    """Verify that the models create every expected table."""

    def test_expected_tables_exist(self, db_session):  # pylint: disable=unused-argument
        existing = set(inspect(db.engine).get_table_names())
        missing = [name for name in EXPECTED_TABLES if name not in existing]
        assert missing == []

    def test_audit_log_has_json_snapshot_columns(self, db_session):  # pylint: disable=unused-argument
        columns = {col["name"] for col in inspect(db.engine).get_columns("audit_log")}
        assert {"previous_value", "new_value", "action_type", "entity_type"} <= columns


class TestDbCheckCommand:
    """The ``flask db-check`` command against the test database."""

    def test_db_check_reports_all_tables(self, app, db_session):  # pylint: disable=unused-argument
        runner = app.test_cli_runner()
        result = runner.invoke(args=["db-check"])
        assert result.exit_code == 0
        assert "Connected successfully" in result.output
        assert "All checks passed" in result.output
