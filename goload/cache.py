"""Redis-backed cache access: a thin client plus typed views over it."""

import logging
from datetime import timedelta
from typing import Any, Optional, Tuple, Union

import redis

from goload.configs import Cache
from goload.status import Code, StatusError

_DEFAULT_HOST = "localhost"
_DEFAULT_PORT = 6379

SET_KEY_NAME_TAKEN_ACCOUNT_NAME = "taken_account_name_set"

_DEFAULT_LOGGER = logging.getLogger("goload")


class CacheMiss(Exception):
    """Raised when a key is not present in the cache."""

    def __init__(self, message: str = "cache miss") -> None:
        super().__init__(message)


def _split_address(address: str) -> Tuple[str, int]:
    if not address:
        return _DEFAULT_HOST, _DEFAULT_PORT
    host, sep, port = address.rpartition(":")
    if not sep:
        return address, _DEFAULT_PORT
    host = host.strip("[]") or _DEFAULT_HOST
    if not port:
        return host, _DEFAULT_PORT
    try:
        return host, int(port)
    except ValueError as exc:
        raise ValueError(f"invalid cache address {address!r}") from exc


def _expiry_milliseconds(ttl: Union[timedelta, float, int, None]) -> Optional[int]:
    if ttl is None:
        return None
    seconds = ttl.total_seconds() if isinstance(ttl, timedelta) else float(ttl)
    if seconds <= 0:
        return None
    return max(1, int(seconds * 1000))


class CacheClient:
    """Key/value and set operations on a Redis server."""

    def __init__(self, redis_client: Any, logger: Optional[logging.Logger] = None) -> None:
        self._redis = redis_client
        self._logger = logger or _DEFAULT_LOGGER

    @classmethod
    def from_config(cls, cache_config: Cache, logger: Optional[logging.Logger]) -> "CacheClient":
        """Create a client for the server described by the cache configuration."""
        host, port = _split_address(cache_config.address)
        redis_client = redis.Redis(
            host=host,
            port=port,
            username=cache_config.username or None,
            password=cache_config.password or None,
        )
        return cls(redis_client, logger)

    def _log_error(self, message: str, **fields: Any) -> None:
        self._logger.error(message, extra={"fields": fields})

    def set(self, key: str, data: Any, ttl: Union[timedelta, float, int, None] = None) -> None:
        """Store a value; a missing or non-positive ttl means it never expires."""
        try:
            self._redis.set(key, data, px=_expiry_milliseconds(ttl))
        except redis.RedisError as exc:
            self._log_error("failed to set data into cache", key=key, data=data, ttl=ttl, error=exc)
            raise StatusError(Code.INTERNAL, f"failed to set data into cache: {exc}") from exc

    def get(self, key: str) -> Any:
        """Return the stored value, raising CacheMiss if there is none."""
        try:
            data = self._redis.get(key)
        except redis.RedisError as exc:
            self._log_error("failed to get data from cache", key=key, error=exc)
            raise StatusError(Code.INTERNAL, f"failed to get data from cache: {exc}") from exc
        if data is None:
            raise CacheMiss()
        return data

    def add_to_set(self, key: str, *args: Any) -> None:
        """Add every given value to the set stored under key."""
        try:
            self._redis.sadd(key, *args)
        except redis.RedisError as exc:
            self._log_error("failed to set data into set inside cache", key=key, data=list(args), error=exc)
            raise StatusError(
                Code.INTERNAL, f"failed to set data into set inside cache: {exc}"
            ) from exc

    def is_data_in_set(self, key: str, data: Any) -> bool:
        """Tell whether data is a member of the set stored under key."""
        try:
            result = self._redis.sismember(key, data)
        except redis.RedisError as exc:
            self._log_error(
                "failed to check if data is member of set inside cache", key=key, data=data, error=exc
            )
            raise StatusError(
                Code.INTERNAL,
                f"failed to check if data is member of set inside cache: {exc}",
            ) from exc
        return bool(result)


class TakenAccountName:
    """The set of account names already in use."""

    def __init__(self, client: CacheClient, logger: Optional[logging.Logger] = None) -> None:
        self._client = client
        self._logger = logger or _DEFAULT_LOGGER

    def add(self, account_name: str) -> None:
        """Mark an account name as taken."""
        try:
            self._client.add_to_set(SET_KEY_NAME_TAKEN_ACCOUNT_NAME, account_name)
        except StatusError as exc:
            self._logger.error(
                "failed to add account name to set in cache",
                extra={"fields": {"account_name": account_name, "error": exc}},
            )
            raise

    def has(self, account_name: str) -> bool:
        """Tell whether an account name is marked as taken."""
        try:
            return self._client.is_data_in_set(SET_KEY_NAME_TAKEN_ACCOUNT_NAME, account_name)
        except StatusError as exc:
            self._logger.error(
                "failed to fetch account name in redis",
                extra={"fields": {"account_name": account_name, "error": exc}},
            )
            raise


class TokenPublicKeyCache:
    """Cached PEM-encoded token public keys, keyed by their identifier."""

    def __init__(self, client: CacheClient, logger: Optional[logging.Logger] = None) -> None:
        self._client = client
        self._logger = logger or _DEFAULT_LOGGER

    @staticmethod
    def _cache_key(key_id: int) -> str:
        return f"token_public_key:{key_id}"

    def get(self, key_id: int) -> Optional[bytes]:
        """Return the cached key bytes, or None if the entry is not bytes.

        Raises CacheMiss when nothing is cached for the identifier.
        """
        try:
            entry = self._client.get(self._cache_key(key_id))
        except (CacheMiss, StatusError) as exc:
            self._logger.error(
                "failed to get token public key cache",
                extra={"fields": {"id": key_id, "error": exc}},
            )
            raise
        if entry is None:
            raise CacheMiss()
        if isinstance(entry, bytearray):
            return bytes(entry)
        if not isinstance(entry, bytes):
            self._logger.error("cache entry is not of type bytes", extra={"fields": {"id": key_id}})
            return None
        return entry

    def set(self, key_id: int, data: bytes) -> None:
        """Cache key bytes for the identifier without expiry."""
        try:
            self._client.set(self._cache_key(key_id), data, None)
        except StatusError as exc:
            self._logger.error(
                "failed to insert token public key into cache",
                extra={"fields": {"id": key_id, "error": exc}},
            )
            raise