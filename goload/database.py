"""Relational storage for accounts and token public keys."""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, Tuple, Union

from sqlalchemy import (
    BigInteger,
    Column,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    create_engine,
    insert,
    select,
)
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from goload.configs import Database as DatabaseConfig
from goload.status import Code, StatusError

TAB_NAME_ACCOUNTS = "accounts"
COL_NAME_ACCOUNTS_ID = "id"
COL_NAME_ACCOUNTS_ACCOUNT_NAME = "account_name"

TAB_NAME_TOKEN_PUBLIC_KEYS = "token_public_keys"
COL_NAME_TOKEN_PUBLIC_KEYS_ID = "id"
COL_NAME_TOKEN_PUBLIC_KEYS_PUBLIC_KEY = "public_key"

_ID_TYPE = BigInteger().with_variant(Integer(), "sqlite")

METADATA = MetaData()

ACCOUNTS = Table(
    TAB_NAME_ACCOUNTS,
    METADATA,
    Column(COL_NAME_ACCOUNTS_ID, _ID_TYPE, primary_key=True, autoincrement=True),
    Column(COL_NAME_ACCOUNTS_ACCOUNT_NAME, String(256), nullable=False, unique=True),
)

TOKEN_PUBLIC_KEYS = Table(
    TAB_NAME_TOKEN_PUBLIC_KEYS,
    METADATA,
    Column(COL_NAME_TOKEN_PUBLIC_KEYS_ID, _ID_TYPE, primary_key=True, autoincrement=True),
    Column(COL_NAME_TOKEN_PUBLIC_KEYS_PUBLIC_KEY, LargeBinary, nullable=False),
)

DatabaseHandle = Union[Engine, Connection]

_DEFAULT_LOGGER = logging.getLogger("goload")


def connection_url(db_config: DatabaseConfig) -> URL:
    """Build the MySQL connection URL described by the database configuration."""
    return URL.create(
        "mysql+pymysql",
        username=db_config.username or None,
        password=db_config.password or None,
        host=db_config.host or None,
        port=db_config.port or None,
        database=db_config.database or None,
    )


def initialize_db(db_config: DatabaseConfig) -> Tuple[Engine, Callable[[], None]]:
    """Create a database engine and a callback that releases its connections."""
    try:
        engine = create_engine(connection_url(db_config))
    except (SQLAlchemyError, ImportError) as exc:
        _DEFAULT_LOGGER.error(
            "error connecting to the database", extra={"fields": {"error": exc}}
        )
        raise
    return engine, engine.dispose


@contextmanager
def _connection(database: DatabaseHandle) -> Iterator[Connection]:
    if isinstance(database, Connection):
        yield database
    else:
        with database.begin() as conn:
            yield conn


@dataclass
class Account:
    id: int = 0
    account_name: str = ""


@dataclass
class TokenPublicKey:
    id: int = 0
    public_key: bytes = b""


class AccountDataAccessor:
    """Reads and writes rows of the accounts table."""

    def __init__(self, database: DatabaseHandle, logger: Optional[logging.Logger] = None) -> None:
        self._database = database
        self._logger = logger or _DEFAULT_LOGGER

    def _log_error(self, message: str, **fields: Any) -> None:
        self._logger.error(message, extra={"fields": fields})

    def create_account(self, account: Account) -> int:
        """Insert an account and return its new identifier."""
        statement = insert(ACCOUNTS).values(
            {COL_NAME_ACCOUNTS_ACCOUNT_NAME: account.account_name}
        )
        try:
            with _connection(self._database) as conn:
                result = conn.execute(statement)
        except SQLAlchemyError as exc:
            self._log_error("failed to create account", error=exc)
            raise StatusError(Code.INTERNAL, f"failed to create account: {exc}") from exc
        key = result.inserted_primary_key
        if not key or key[0] is None:
            self._log_error("failed to get last inserted id")
            raise StatusError(Code.INTERNAL, "failed to get account id: no id returned")
        return int(key[0])

    def _find_one(self, condition: Any, what: str) -> Account:
        statement = select(
            ACCOUNTS.c[COL_NAME_ACCOUNTS_ID], ACCOUNTS.c[COL_NAME_ACCOUNTS_ACCOUNT_NAME]
        ).where(condition)
        try:
            with _connection(self._database) as conn:
                row = conn.execute(statement).first()
        except SQLAlchemyError as exc:
            self._log_error(f"fail to get account by {what}", error=exc)
            raise StatusError(Code.INTERNAL, f"failed to get account by {what}: {exc}") from exc
        if row is None:
            self._logger.warning(f"cannot find account with account {what}")
            raise StatusError(Code.INTERNAL, f"failed to get account by {what}: account not found")
        return Account(id=int(row[0]), account_name=row[1])

    def get_account_by_id(self, account_id: int) -> Account:
        """Return the account with the given identifier."""
        return self._find_one(ACCOUNTS.c[COL_NAME_ACCOUNTS_ID] == account_id, "id")

    def get_account_by_account_name(self, account_name: str) -> Account:
        """Return the account with the given name."""
        return self._find_one(ACCOUNTS.c[COL_NAME_ACCOUNTS_ACCOUNT_NAME] == account_name, "name")

    def with_database(self, database: DatabaseHandle) -> "AccountDataAccessor":
        """Return an accessor working on another database handle, such as a transaction."""
        return AccountDataAccessor(database, self._logger)


class TokenPublicKeyDataAccessor:
    """Reads and writes rows of the token public keys table."""

    def __init__(self, database: DatabaseHandle, logger: Optional[logging.Logger] = None) -> None:
        self._database = database
        self._logger = logger or _DEFAULT_LOGGER

    def create_public_key(self, token_public_key: TokenPublicKey) -> int:
        """Store a public key and return its new identifier."""
        statement = insert(TOKEN_PUBLIC_KEYS).values(
            {COL_NAME_TOKEN_PUBLIC_KEYS_PUBLIC_KEY: bytes(token_public_key.public_key)}
        )
        try:
            with _connection(self._database) as conn:
                result = conn.execute(statement)
        except SQLAlchemyError as exc:
            self._logger.error("fail to create public key", extra={"fields": {"error": exc}})
            raise StatusError(Code.INTERNAL, f"failed to create public key: {exc}") from exc
        key = result.inserted_primary_key
        if not key or key[0] is None:
            self._logger.error("failed to get inserted id")
            raise StatusError(Code.INTERNAL, "failed to get public key id: no id returned")
        return int(key[0])

    def get_public_key(self, key_id: int) -> TokenPublicKey:
        """Return the stored public key with the given identifier."""
        statement = select(
            TOKEN_PUBLIC_KEYS.c[COL_NAME_TOKEN_PUBLIC_KEYS_ID],
            TOKEN_PUBLIC_KEYS.c[COL_NAME_TOKEN_PUBLIC_KEYS_PUBLIC_KEY],
        ).where(TOKEN_PUBLIC_KEYS.c[COL_NAME_TOKEN_PUBLIC_KEYS_ID] == key_id)
        try:
            with _connection(self._database) as conn:
                row = conn.execute(statement).first()
        except SQLAlchemyError as exc:
            self._logger.error(
                "failed to get public key", extra={"fields": {"id": key_id, "error": exc}}
            )
            raise StatusError(Code.INTERNAL, f"failed to get public key: {exc}") from exc
        if row is None:
            self._logger.warning("public key not found", extra={"fields": {"id": key_id}})
            raise StatusError(Code.INTERNAL, "cannot find public key: public key not found")
        return TokenPublicKey(id=int(row[0]), public_key=bytes(row[1]))

    def with_database(self, database: DatabaseHandle) -> "TokenPublicKeyDataAccessor":
        """Return an accessor working on another database handle, such as a transaction."""
        return TokenPublicKeyDataAccessor(database, self._logger)