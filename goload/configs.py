"""Service configuration loaded from YAML."""

import os
import re
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import timedelta
from fractions import Fraction
from typing import Any, Optional, Union

import yaml

_UNITS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_COMPONENT = re.compile(r"(\d*)(?:\.(\d*))?([^\d.]*)")
_MAX_NANOSECONDS = 2**63 - 1


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "300ms", "-1.5h" or "2h45m"."""
    original = text
    rest = text
    negative = False
    if rest and rest[0] in "+-":
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ValueError(f'time: invalid duration "{original}"')

    total = Fraction(0)
    position = 0
    while position < len(rest):
        match = _COMPONENT.match(rest, position)
        whole, fraction, unit = match.groups()
        if not whole and not fraction:
            raise ValueError(f'time: invalid duration "{original}"')
        if not unit:
            raise ValueError(f'time: missing unit in duration "{original}"')
        scale = _UNITS.get(unit)
        if scale is None:
            raise ValueError(f'time: unknown unit "{unit}" in duration "{original}"')
        value = Fraction(int(whole or "0"))
        if fraction:
            value += Fraction(int(fraction), 10 ** len(fraction))
        total += value * scale
        position = match.end()

    nanoseconds = int(total)
    limit = _MAX_NANOSECONDS + 1 if negative else _MAX_NANOSECONDS
    if nanoseconds > limit:
        raise ValueError(f'time: invalid duration "{original}"')
    microseconds = nanoseconds // 1_000
    return timedelta(microseconds=-microseconds if negative else microseconds)


@dataclass
class Hash:
    cost: int = 0


@dataclass
class Token:
    expires_in: str = ""
    regenerate_token_before_expiry: str = ""

    def expires_in_duration(self) -> timedelta:
        """How long an issued token stays valid."""
        return parse_duration(self.expires_in)

    def regenerate_token_before_expiry_duration(self) -> timedelta:
        """How long before expiry a token should be renewed."""
        return parse_duration(self.regenerate_token_before_expiry)


@dataclass
class Auth:
    hash: Hash = field(default_factory=Hash)
    token: Token = field(default_factory=Token)


@dataclass
class Account:
    hash_cost: int = 0


@dataclass
class Cache:
    address: str = ""
    username: str = ""
    password: str = ""


@dataclass
class Database:
    host: str = ""
    port: int = 0
    username: str = ""
    password: str = ""
    database: str = ""


@dataclass
class GRPC:
    address: str = ""


@dataclass
class HTTP:
    address: str = ""


@dataclass
class Log:
    level: str = ""


@dataclass
class Config:
    grpc: GRPC = field(default_factory=GRPC)
    http: HTTP = field(default_factory=HTTP)
    log: Log = field(default_factory=Log)
    auth: Auth = field(default_factory=Auth)
    database: Database = field(default_factory=Database)
    cache: Cache = field(default_factory=Cache)


def _decode_section(cls: type, node: Any, where: str) -> Any:
    if node is None:
        return cls()
    if not isinstance(node, dict):
        raise ValueError(f"cannot unmarshal {type(node).__name__} into {where or 'config'}")
    values = {}
    for item in fields(cls):
        if item.name not in node:
            continue
        path = f"{where}.{item.name}" if where else item.name
        values[item.name] = _decode_value(item.type, node[item.name], path)
    return cls(**values)


def _decode_value(kind: type, raw: Any, where: str) -> Any:
    if is_dataclass(kind):
        return _decode_section(kind, raw, where)
    if raw is None:
        return kind()
    if kind is int:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValueError(f"cannot unmarshal {raw!r} into integer field {where}")
        return raw
    if isinstance(raw, (dict, list)):
        raise ValueError(f"cannot unmarshal {type(raw).__name__} into string field {where}")
    if isinstance(raw, bool):
        return "true" if raw else "false"
    return str(raw)


def new_config(file_path: Optional[Union[str, "os.PathLike[str]"]]) -> Config:
    """Load the configuration from a YAML file; an empty path gives the defaults."""
    if not file_path:
        return Config()
    try:
        with open(file_path, "rb") as handle:
            content = handle.read()
    except OSError as exc:
        raise OSError(f"failed to read YAML file: {exc}") from exc
    try:
        document = yaml.safe_load(content)
        return _decode_section(Config, document, "")
    except (yaml.YAMLError, ValueError) as exc:
        raise ValueError(f"failed to unmarshal YAML: {exc}") from exc