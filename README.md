# goload

Building blocks for the backend of a download manager service:
configuration loading, JSON logging, a Redis-backed cache, SQL data access
for accounts and token public keys, bcrypt password hashing, and
RS512-signed access tokens.

## Modules

- `goload.status`: `StatusError`, an exception carrying a `Code` (such as
  `Code.INTERNAL` or `Code.UNAUTHENTICATED`) and a message. Its text reads
  `rpc error: code = Internal desc = ...`.
- `goload.configs`: dataclasses `Config`, `GRPC`, `HTTP`, `Log`, `Auth`,
  `Hash`, `Token`, `Database`, `Cache` and `Account`; `new_config` loads a
  `Config` from a YAML file; `parse_duration` reads duration strings such as
  `"300ms"`, `"-1.5h"` or `"2h45m"` into a `timedelta`.
- `goload.logutil`: `get_logger_level` maps `debug`, `info`, `warn`,
  `error` and `panic` to `logging` levels (anything else gives `INFO`);
  `initialize_logger` sets up the `goload` logger to write one JSON object
  per line to stderr and returns it with a flush callback;
  `block_until_signal(*signals)` waits for one of the given signals and
  returns it.
- `goload.cache`: `CacheClient` (built from a `Cache` config with
  `CacheClient.from_config`, or around any Redis client) with `set`, `get`,
  `add_to_set` and `is_data_in_set`. `get` raises `CacheMiss` for an absent
  key; Redis failures raise `StatusError` with `Code.INTERNAL`.
  `TakenAccountName` keeps the set of taken account names;
  `TokenPublicKeyCache` stores PEM-encoded public keys under
  `token_public_key:<id>` without expiry.
- `goload.database`: `connection_url` and `initialize_db` for MySQL, the
  `accounts` and `token_public_keys` tables, the `Account` and
  `TokenPublicKey` records, and `AccountDataAccessor` and
  `TokenPublicKeyDataAccessor`. Accessors take a SQLAlchemy engine or
  connection; `with_database` returns one bound to another handle, such as
  a connection inside a transaction.
- `goload.hash`: `Hasher`, bcrypt hashing with the configured cost. A cost
  below 4 uses 10, a cost above 31 is an error, and secrets longer than
  72 bytes are refused.
- `goload.token`: `TokenService` generates a 2048-bit RSA key when created,
  stores its public half through a `TokenPublicKeyDataAccessor`, and issues
  RS512 tokens carrying the account id (`sub`), expiry (`exp`) and public
  key id (`kid`). `get_account_id_and_expire_time` verifies a token, looking
  the public key up in the cache first and in the database after.
  `generate_rsa_key_pair` and `pem_encode_public_key` are available on
  their own.

## Configuration

```yaml
grpc:
  address: 0.0.0.0:8080
http:
  address: 0.0.0.0:8081
log:
  level: info
auth:
  hash:
    cost: 10
  token:
    expires_in: 24h
    regenerate_token_before_expiry: 1h
database:
  host: localhost
  port: 3306
  username: user
  password: password
  database: goload
cache:
  address: localhost:6379
  username: ""
  password: ""
```

```python
from goload.configs import new_config

config = new_config("config.yaml")
print(config.database.host)
print(config.auth.token.expires_in_duration())
```

An empty path gives a `Config` with empty defaults. A file that cannot be
read raises `OSError`; one that cannot be decoded raises `ValueError`.

`initialize_db` builds a `mysql+pymysql` engine, so the PyMySQL driver has
to be installed to connect to MySQL. The accessors themselves work with any
SQLAlchemy engine, for instance SQLite, after creating the tables from
`goload.database.METADATA`.

## What this package does not do

It has no command to run and starts no gRPC or HTTP server; the `grpc` and
`http` sections of the configuration are only read. It does not create or
migrate database tables on a MySQL server, and it has no account sign-up or
login flow and no download task handling: those would be built on top of
the accessors, `Hasher` and `TokenService`.