"""Issuing and verifying RS512-signed access tokens."""

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Tuple

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from goload.cache import CacheMiss
from goload.configs import Auth
from goload.database import TokenPublicKey
from goload.status import Code, StatusError

RS512_KEY_PAIR_BIT_COUNT = 2048

_RSA_ALGORITHMS = ("RS256", "RS384", "RS512")

ERR_UNEXPECTED_SIGNING_METHOD = "unexpected signing method"
ERR_CANNOT_GET_TOKENS_CLAIMS = "cannot get token's claims"
ERR_CANNOT_GET_TOKENS_KID_CLAIM = "cannot get token's kid claim"
ERR_CANNOT_GET_TOKENS_SUB_CLAIM = "cannot get token's sub claim"
ERR_CANNOT_GET_TOKENS_EXP_CLAIM = "cannot get token's exp claim"
ERR_INVALID_TOKEN = "invalid token"
ERR_FAILED_TO_SIGN_TOKEN = "failed to sign token"

_DEFAULT_LOGGER = logging.getLogger("goload")

_DECODE_OPTIONS = {"verify_aud": False, "verify_sub": False, "verify_jti": False}


def generate_rsa_key_pair(bits: int) -> rsa.RSAPrivateKey:
    """Generate a fresh RSA private key of the given size."""
    return rsa.generate_private_key(public_exponent=65537, key_size=bits)


def pem_encode_public_key(public_key: rsa.RSAPublicKey) -> bytes:
    """Encode a public key as a PEM "PUBLIC KEY" block."""
    return public_key.public_bytes(
        serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
    )


def _parse_rsa_public_key_from_pem(data: bytes) -> rsa.RSAPublicKey:
    try:
        key = serialization.load_pem_public_key(bytes(data))
    except ValueError as exc:
        raise ValueError("Invalid Key: Key must be PEM encoded PKCS1 or PKCS8 key") from exc
    if not isinstance(key, rsa.RSAPublicKey):
        raise ValueError("Key is not a valid RSA public key")
    return key


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _unauthenticated(message: str) -> StatusError:
    return StatusError(Code.UNAUTHENTICATED, message)


class TokenService:
    """Signs tokens with a per-process key whose public half is stored for verification."""

    def __init__(
        self,
        account_data_accessor: Any,
        token_public_key_data_accessor: Any,
        auth_config: Auth,
        logger: Optional[logging.Logger],
        token_public_key_cache: Any,
        private_key: Optional[rsa.RSAPrivateKey] = None,
    ) -> None:
        self._logger = logger or _DEFAULT_LOGGER
        self._account_data_accessor = account_data_accessor
        self._token_public_key_data_accessor = token_public_key_data_accessor
        self._token_public_key_cache = token_public_key_cache
        self._auth_config = auth_config

        try:
            self._expires_in = auth_config.token.expires_in_duration()
        except ValueError as exc:
            self._log_error("failed to parse expires_in", error=exc)
            raise

        self._private_key = private_key or generate_rsa_key_pair(RS512_KEY_PAIR_BIT_COUNT)
        public_key_bytes = pem_encode_public_key(self._private_key.public_key())

        try:
            self._token_public_key_id = token_public_key_data_accessor.create_public_key(
                TokenPublicKey(public_key=public_key_bytes)
            )
        except StatusError as exc:
            self._log_error("failed to create public key entry in database", error=exc)
            raise

    def _log_error(self, message: str, **fields: Any) -> None:
        self._logger.error(message, extra={"fields": fields})

    def _log_warning(self, message: str, **fields: Any) -> None:
        self._logger.warning(message, extra={"fields": fields})

    def _get_jwt_public_key(self, key_id: int) -> rsa.RSAPublicKey:
        cache_error: Optional[Exception] = None
        try:
            cached = self._token_public_key_cache.get(key_id)
        except (CacheMiss, StatusError) as exc:
            cached = None
            cache_error = exc
        if cached is not None:
            return _parse_rsa_public_key_from_pem(cached)

        self._log_warning(
            "failed to get cached public key bytes, will fall back to database",
            id=key_id,
            error=cache_error,
        )

        try:
            record = self._token_public_key_data_accessor.get_public_key(key_id)
        except StatusError as exc:
            self._log_error("cannot get token's public key from database", id=key_id, error=exc)
            raise

        try:
            self._token_public_key_cache.set(key_id, record.public_key)
        except StatusError as exc:
            self._log_warning("failed to set public key bytes into cache", id=key_id, error=exc)

        return _parse_rsa_public_key_from_pem(record.public_key)

    def _verified_claims(self, encoded: str) -> dict:
        header = jwt.get_unverified_header(encoded)
        if header.get("alg") not in _RSA_ALGORITHMS:
            self._log_error(ERR_UNEXPECTED_SIGNING_METHOD)
            raise _unauthenticated(ERR_UNEXPECTED_SIGNING_METHOD)

        unverified = jwt.decode(encoded, options={"verify_signature": False})
        if not isinstance(unverified, dict):
            self._log_error(ERR_CANNOT_GET_TOKENS_CLAIMS)
            raise _unauthenticated(ERR_CANNOT_GET_TOKENS_CLAIMS)

        kid = unverified.get("kid")
        if not _is_number(kid):
            self._log_error(ERR_CANNOT_GET_TOKENS_KID_CLAIM)
            raise _unauthenticated(ERR_CANNOT_GET_TOKENS_KID_CLAIM)

        public_key = self._get_jwt_public_key(int(kid))
        return jwt.decode(
            encoded,
            public_key,
            algorithms=list(_RSA_ALGORITHMS),
            options=_DECODE_OPTIONS,
        )

    def get_account_id_and_expire_time(self, token: str) -> Tuple[int, datetime]:
        """Verify a token and return the account id and expiry time it carries."""
        try:
            claims = self._verified_claims(token)
        except (jwt.PyJWTError, StatusError, ValueError) as exc:
            self._log_error("failed to parse token", error=exc)
            raise

        if not isinstance(claims, dict):
            self._log_error(ERR_CANNOT_GET_TOKENS_CLAIMS)
            raise _unauthenticated(ERR_CANNOT_GET_TOKENS_CLAIMS)

        account_id = claims.get("sub")
        if not _is_number(account_id):
            self._log_error(ERR_CANNOT_GET_TOKENS_SUB_CLAIM)
            raise _unauthenticated(ERR_CANNOT_GET_TOKENS_SUB_CLAIM)

        expire_time_unix = claims.get("exp")
        if not _is_number(expire_time_unix):
            self._log_error(ERR_CANNOT_GET_TOKENS_EXP_CLAIM)
            raise _unauthenticated(ERR_CANNOT_GET_TOKENS_EXP_CLAIM)

        expire_time = datetime.fromtimestamp(int(expire_time_unix), timezone.utc)
        return int(account_id), expire_time

    def get_token(self, account_id: int) -> Tuple[str, datetime]:
        """Issue a signed token for the account and return it with its expiry time."""
        expire_time = datetime.now(timezone.utc) + self._expires_in
        claims = {
            "sub": account_id,
            "exp": int(expire_time.timestamp()),
            "kid": self._token_public_key_id,
        }
        try:
            encoded = jwt.encode(claims, self._private_key, algorithm="RS512")
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            self._log_error(ERR_FAILED_TO_SIGN_TOKEN, error=exc)
            raise StatusError(Code.INTERNAL, ERR_FAILED_TO_SIGN_TOKEN) from exc
        return encoded, expire_time

    def with_database(self, database: Any) -> "TokenService":
        """Return a copy whose account accessor works on another database handle."""
        clone = copy.copy(self)
        clone._account_data_accessor = self._account_data_accessor.with_database(database)
        return clone