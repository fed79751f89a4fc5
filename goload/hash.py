"""Password hashing with bcrypt."""

import bcrypt

from goload.configs import Auth
from goload.status import Code, StatusError

MIN_COST = 4
MAX_COST = 31
DEFAULT_COST = 10
MAX_PASSWORD_BYTES = 72


class Hasher:
    """Hashes secrets and checks them against stored bcrypt hashes."""

    def __init__(self, auth_config: Auth) -> None:
        self._auth_config = auth_config

    def _cost(self) -> int:
        cost = self._auth_config.hash.cost
        if cost < MIN_COST:
            return DEFAULT_COST
        if cost > MAX_COST:
            raise StatusError(
                Code.INTERNAL,
                "failed to hash data: crypto/bcrypt: cost "
                f"{cost} is outside allowed range ({MIN_COST},{MAX_COST})",
            )
        return cost

    def hash(self, data: str) -> str:
        """Return the bcrypt hash of data using the configured cost."""
        raw = data.encode("utf-8")
        if len(raw) > MAX_PASSWORD_BYTES:
            raise StatusError(
                Code.INTERNAL, "failed to hash data: bcrypt: password length exceeds 72 bytes"
            )
        salt = bcrypt.gensalt(rounds=self._cost(), prefix=b"2a")
        try:
            hashed = bcrypt.hashpw(raw, salt)
        except ValueError as exc:
            raise StatusError(Code.INTERNAL, f"failed to hash data: {exc}") from exc
        return hashed.decode("ascii")

    def is_hash_equal(self, data: str, hashed: str) -> bool:
        """Tell whether data matches the given bcrypt hash."""
        raw = data.encode("utf-8")[:MAX_PASSWORD_BYTES]
        try:
            return bcrypt.checkpw(raw, hashed.encode("utf-8"))
        except ValueError as exc:
            raise StatusError(
                Code.INTERNAL, f"failed to check if data equal hash: {exc}"
            ) from exc