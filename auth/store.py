"""
auth/store.py -- SQLAlchemy Core persistence for identities, sessions and lockout state.

Pattern: Repository + Data Mapper. IdentityStore, SessionStore and
SqlLoginAttemptStore are the repositories; the _row_to_* functions are the
mappers. Services never touch SQL directly.

All three repositories share one Engine, created by create_auth_engine(),
which also creates the schema. The owner of the engine (AuthService) disposes
of it on shutdown.

Timestamps are stored as ISO 8601 UTC strings with fixed microsecond
precision, so lexicographic ORDER BY matches chronological order.

SQLite specifics:
  WAL journal mode is set per connection so readers do not block on writes.
  PRAGMA foreign_keys=ON is also per connection; without it SQLite ignores
  the sessions -> identities foreign key and its ON DELETE CASCADE.

Security:
  All queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Identity, LoginAttemptRecord, Session
from core.result import ErrorCode, Result, failure, success

logger = logging.getLogger("sessionguard.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_identities = Table(
    "identities",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("email", String(254), nullable=False, unique=True),  # normalized
    Column("name", String(255), nullable=False),
    Column("password_digest", Text, nullable=False),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(64), primary_key=True),
    Column(
        "identity_id",
        String(32),
        ForeignKey("identities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("access_token_digest", String(64), nullable=False),  # HMAC-SHA256 hex
    Column("access_expires_at", String(40), nullable=False),
    Column("reset_token_digest", String(64), nullable=False),
    Column("reset_expires_at", String(40), nullable=False),
    Column("created_at", String(40), nullable=False),
    Column("updated_at", String(40), nullable=False),
)

_login_attempts = Table(
    "login_attempts",
    _metadata,
    Column("identifier", String(254), primary_key=True),
    Column("failure_count", Integer, nullable=False, server_default="0"),
    Column("last_failure_at", String(40)),
    Column("locked_until", String(40)),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_auth_engine(db_url: str) -> Engine:
    """Create the shared Engine and make sure every table exists.

    Tests pass a named shared-memory URI
    (sqlite:///file:name?mode=memory&cache=shared&uri=true) so that every
    pooled connection sees the same in-memory database.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------


class IdentityStore:
    """Repository for Identity records. No business logic lives here."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_identity(self, identity: Identity, now: datetime) -> Identity:
        """Insert identity and return it with id and timestamps filled in.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        AccountService checks first and treats the error as the concurrent
        duplicate it is.
        """
        identity_id = identity.id or uuid.uuid4().hex
        with self.engine.connect() as conn:
            conn.execute(
                _identities.insert().values(
                    id=identity_id,
                    email=identity.email,
                    name=identity.name,
                    password_digest=identity.password_digest,
                    created_at=_iso(now),
                    updated_at=_iso(now),
                )
            )
            conn.commit()
        identity.id = identity_id
        identity.created_at = now
        identity.updated_at = now
        return identity

    def get_by_email(self, email: str) -> Identity | None:
        """Look up by normalized email. Callers normalize; the column stores lowercase."""
        with self.engine.connect() as conn:
            row = conn.execute(_identities.select().where(_identities.c.email == email)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def get_by_id(self, identity_id: str) -> Identity | None:
        with self.engine.connect() as conn:
            row = conn.execute(_identities.select().where(_identities.c.id == identity_id)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def update_password(self, identity_id: str, password_digest: str, now: datetime) -> bool:
        """Replace the password digest. Returns False if identity_id was not found."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _identities.update()
                .where(_identities.c.id == identity_id)
                .values(password_digest=password_digest, updated_at=_iso(now))
            )
            conn.commit()
        return result.rowcount > 0

    def delete_identity(self, identity_id: str) -> bool:
        """Delete an identity. Its sessions go with it (ON DELETE CASCADE)."""
        with self.engine.connect() as conn:
            result = conn.execute(_identities.delete().where(_identities.c.id == identity_id))
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """Cheap connectivity probe for the health endpoint."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for Session records, keyed by (identity_id, session_id)."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create(self, session: Session) -> Result[Session]:
        """Persist a new session.

        Returns Failure(IDENTITY_NOT_FOUND) if the owner does not exist and
        Failure(SESSION_DUPLICATE) if the id is already taken. The owner check
        and the insert run in one transaction; an IntegrityError from a race
        (owner deleted in between, or a concurrent insert of the same id) is
        classified by re-checking the owner.
        """
        try:
            with self.engine.begin() as conn:
                if not self._owner_exists(conn, session.identity_id):
                    return failure("Identity does not exist.", ErrorCode.IDENTITY_NOT_FOUND)
                self._insert(conn, session)
        except IntegrityError:
            return self._classify_insert_error(session)
        logger.info("Session created (identity=%s)", session.identity_id)
        return success(session)

    def rotate(self, identity_id: str, session_id: str, reset_token_digest: str, new: Session) -> Result[Session]:
        """Replace one session with another in a single transaction.

        The old row is deleted only if it still carries reset_token_digest.
        If another caller already claimed it, nothing is inserted and
        Failure(SESSION_NOT_FOUND) is returned, so a reset token can be
        redeemed once. A failed insert rolls the delete back and the old
        session stays usable. Insert failures are classified as in create().
        """
        try:
            with self.engine.begin() as conn:
                if not self._owner_exists(conn, new.identity_id):
                    return failure("Identity does not exist.", ErrorCode.IDENTITY_NOT_FOUND)
                claimed = conn.execute(
                    _sessions.delete().where(
                        (_sessions.c.identity_id == identity_id)
                        & (_sessions.c.id == session_id)
                        & (_sessions.c.reset_token_digest == reset_token_digest)
                    )
                )
                if claimed.rowcount != 1:
                    return failure("Session not found.", ErrorCode.SESSION_NOT_FOUND)
                self._insert(conn, new)
        except IntegrityError:
            return self._classify_insert_error(new)
        logger.info("Session rotated (identity=%s)", new.identity_id)
        return success(new)

    @staticmethod
    def _owner_exists(conn, identity_id: str) -> bool:
        row = conn.execute(select(_identities.c.id).where(_identities.c.id == identity_id)).fetchone()
        return row is not None

    @staticmethod
    def _insert(conn, session: Session) -> None:
        conn.execute(
            _sessions.insert().values(
                id=session.id,
                identity_id=session.identity_id,
                access_token_digest=session.access_token_digest,
                access_expires_at=_iso(session.access_expires_at),
                reset_token_digest=session.reset_token_digest,
                reset_expires_at=_iso(session.reset_expires_at),
                created_at=_iso(session.created_at),
                updated_at=_iso(session.updated_at),
            )
        )

    def _classify_insert_error(self, session: Session) -> Result[Session]:
        """An IntegrityError means the owner vanished mid-transaction or the id is taken."""
        with self.engine.connect() as conn:
            owner_exists = self._owner_exists(conn, session.identity_id)
        if not owner_exists:
            return failure("Identity does not exist.", ErrorCode.IDENTITY_NOT_FOUND)
        logger.warning("Session id collision for identity %s", session.identity_id)
        return failure("Session already exists.", ErrorCode.SESSION_DUPLICATE)

    def find_first(self, identity_id: str, session_id: str) -> Session | None:
        """Return the session matching both ids, freshest access expiry first."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _sessions.select()
                .where((_sessions.c.identity_id == identity_id) & (_sessions.c.id == session_id))
                .order_by(_sessions.c.access_expires_at.desc())
                .limit(1)
            ).fetchone()
        return _row_to_session(row) if row is not None else None

    def list_for_identity(self, identity_id: str) -> list[Session]:
        """All sessions of one identity, newest access expiry first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _sessions.select()
                .where(_sessions.c.identity_id == identity_id)
                .order_by(_sessions.c.access_expires_at.desc())
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def delete(self, identity_id: str, session_id: str) -> bool:
        """Delete one session. identity_id is part of the match so one user cannot end another's."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.delete().where((_sessions.c.identity_id == identity_id) & (_sessions.c.id == session_id))
            )
            conn.commit()
        return result.rowcount > 0

    def delete_for_identity(self, identity_id: str) -> int:
        """Revoke every session of an identity. Returns the number removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.identity_id == identity_id))
            conn.commit()
        return result.rowcount

    def purge_expired(self, now: datetime) -> int:
        """Delete sessions whose reset token has expired (nothing can revive them)."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.reset_expires_at <= _iso(now)))
            conn.commit()
        return result.rowcount


# ---------------------------------------------------------------------------
# Lockout state
# ---------------------------------------------------------------------------


class SqlLoginAttemptStore:
    """LoginAttemptStore backed by the login_attempts table.

    Lock state survives a restart, so bouncing the server does not hand an
    attacker a fresh set of guesses. Read-modify-write atomicity comes from
    LoginAttemptService's per-key lock, which covers a single process.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get(self, identifier: str) -> LoginAttemptRecord | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _login_attempts.select().where(_login_attempts.c.identifier == identifier)
            ).fetchone()
        return _row_to_attempt(row) if row is not None else None

    def save(self, record: LoginAttemptRecord) -> None:
        values = {
            "failure_count": record.failure_count,
            "last_failure_at": _iso(record.last_failure_at) if record.last_failure_at else None,
            "locked_until": _iso(record.locked_until) if record.locked_until else None,
        }
        with self.engine.begin() as conn:
            result = conn.execute(
                _login_attempts.update().where(_login_attempts.c.identifier == record.identifier).values(**values)
            )
            if result.rowcount == 0:
                conn.execute(_login_attempts.insert().values(identifier=record.identifier, **values))

    def delete(self, identifier: str) -> None:
        with self.engine.connect() as conn:
            conn.execute(_login_attempts.delete().where(_login_attempts.c.identifier == identifier))
            conn.commit()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(row) -> Identity:
    return Identity(
        id=row.id,
        email=row.email,
        name=row.name,
        password_digest=row.password_digest,
        created_at=_parse(row.created_at),
        updated_at=_parse(row.updated_at),
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        identity_id=row.identity_id,
        access_token_digest=row.access_token_digest,
        access_expires_at=_parse(row.access_expires_at),
        reset_token_digest=row.reset_token_digest,
        reset_expires_at=_parse(row.reset_expires_at),
        created_at=_parse(row.created_at),
        updated_at=_parse(row.updated_at),
    )


def _row_to_attempt(row) -> LoginAttemptRecord:
    return LoginAttemptRecord(
        identifier=row.identifier,
        failure_count=row.failure_count,
        last_failure_at=_parse(row.last_failure_at),
        locked_until=_parse(row.locked_until),
    )
