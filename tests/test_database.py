"""Tests for the row-level security context on caller sessions"""

from unittest.mock import MagicMock, patch

from sqlalchemy.exc import OperationalError

from invoicy_billing import database
from invoicy_billing.database import clear_rls_context, set_rls_context


def postgres_session() -> MagicMock:
    session = MagicMock()
    session.get_bind.return_value.dialect.name = "postgresql"
    return session


def executed_sql(session: MagicMock) -> list:
    return [str(call.args[0]) for call in session.execute.call_args_list]


class TestRlsContext:
    def test_set_is_a_no_op_outside_postgres(self, db):
        set_rls_context(db, "merchant-1")
        clear_rls_context(db)

    def test_set_binds_the_caller_id(self):
        session = postgres_session()

        set_rls_context(session, "merchant-1")

        [sql] = executed_sql(session)
        assert "set_config('app.current_user_id', :user_id, false)" in sql
        assert session.execute.call_args.args[1] == {"user_id": "merchant-1"}

    def test_clear_resets_the_setting_in_a_committed_transaction(self):
        session = postgres_session()

        clear_rls_context(session)

        [sql] = executed_sql(session)
        assert "set_config('app.current_user_id', '', false)" in sql
        session.rollback.assert_called_once()
        session.commit.assert_called_once()
        session.invalidate.assert_not_called()

    def test_connection_that_cannot_be_cleared_is_discarded(self):
        session = postgres_session()
        session.execute.side_effect = OperationalError("SELECT", {}, Exception("gone"))

        clear_rls_context(session)

        session.invalidate.assert_called_once()
        session.commit.assert_not_called()


class TestGetDb:
    def test_caller_session_is_cleared_before_close(self):
        session = postgres_session()

        with patch.object(database, "SessionLocal", return_value=session):
            dependency = database.get_db()
            assert next(dependency) is session
            dependency.close()

        session.commit.assert_called_once()
        session.close.assert_called_once()
        [sql] = executed_sql(session)
        assert "''" in sql
