# Overview: Shared Flask extensions and SQLite engine hooks.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from sqlalchemy import event

db = SQLAlchemy()
migrate = Migrate()


def install_sqlite_transaction_hooks(engine) -> None:
    """
    Make SAVEPOINT nest inside the outer transaction on SQLite.

    pysqlite only emits BEGIN before DML, so a SAVEPOINT issued first would
    open (and on RELEASE, commit) the transaction by itself. Turning off the
    driver's implicit handling and emitting BEGIN from SQLAlchemy's "begin"
    event keeps session.begin_nested() a real nested scope.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")
