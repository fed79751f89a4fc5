from datetime import datetime, timedelta, timezone

import jwt
import pytest
from cryptography.hazmat.primitives import serialization

from goload.cache import CacheMiss
from goload.configs import Auth, Token
from goload.database import TokenPublicKey
from goload.status import Code, StatusError
from goload.token import TokenService, generate_rsa_key_pair, pem_encode_public_key


class FakeKeyStore:
    def __init__(self, first_id=1):
        self.records = {}
        self.next_id = first_id
        self.get_calls = 0

    def create_public_key(self, token_public_key):
        key_id = self.next_id
        self.next_id += 1
        self.records[key_id] = token_public_key.public_key
        return key_id

    def get_public_key(self, key_id):
        self.get_calls += 1
        if key_id not in self.records:
            raise StatusError(Code.INTERNAL, "cannot find public key: public key not found")
        return TokenPublicKey(id=key_id, public_key=self.records[key_id])


class FakeKeyCache:
    def __init__(self):
        self.entries = {}

    def get(self, key_id):
        if key_id not in self.entries:
            raise CacheMiss()
        return self.entries[key_id]

    def set(self, key_id, data):
        self.entries[key_id] = data


class FakeAccounts:
    def __init__(self, database=None):
        self.database = database

    def with_database(self, database):
        return FakeAccounts(database)


@pytest.fixture(scope="module")
def private_key():
    return generate_rsa_key_pair(2048)


@pytest.fixture(scope="module")
def other_key():
    return generate_rsa_key_pair(2048)


def make_service(private_key, expires_in="1h", store=None, cache=None, accounts=None):
    return TokenService(
        accounts or FakeAccounts(),
        store if store is not None else FakeKeyStore(),
        Auth(token=Token(expires_in=expires_in)),
        None,
        cache if cache is not None else FakeKeyCache(),
        private_key=private_key,
    )


def future_exp():
    return int((datetime.now(timezone.utc) + timedelta(hours=1)).timestamp())


def test_generate_rsa_key_pair_size():
    key = generate_rsa_key_pair(1024)
    assert key.key_size == 1024


def test_pem_encode_public_key_round_trip(private_key):
    public_key = private_key.public_key()
    pem = pem_encode_public_key(public_key)
    assert pem.startswith(b"-----BEGIN PUBLIC KEY-----\n")
    assert pem.endswith(b"-----END PUBLIC KEY-----\n")
    loaded = serialization.load_pem_public_key(pem)
    assert loaded.public_numbers() == public_key.public_numbers()


def test_service_stores_public_key(private_key):
    store = FakeKeyStore(first_id=7)
    make_service(private_key, store=store)
    assert store.records == {7: pem_encode_public_key(private_key.public_key())}


def test_invalid_expires_in_raises(private_key):
    with pytest.raises(ValueError):
        make_service(private_key, expires_in="soon")


def test_token_round_trip(private_key):
    service = make_service(private_key)
    before = datetime.now(timezone.utc)
    issued, expire_time = service.get_token(42)
    account_id, parsed_expire = service.get_account_id_and_expire_time(issued)
    assert account_id == 42
    assert parsed_expire == expire_time.replace(microsecond=0)
    assert timedelta(minutes=59) < expire_time - before <= timedelta(hours=1, seconds=1)


def test_token_header_and_claims(private_key):
    store = FakeKeyStore(first_id=7)
    service = make_service(private_key, store=store)
    issued, _ = service.get_token(42)
    assert jwt.get_unverified_header(issued)["alg"] == "RS512"
    claims = jwt.decode(issued, options={"verify_signature": False})
    assert claims["sub"] == 42
    assert claims["kid"] == 7


def test_public_key_fetched_from_database_then_cached(private_key):
    store = FakeKeyStore()
    cache = FakeKeyCache()
    service = make_service(private_key, store=store, cache=cache)
    issued, _ = service.get_token(5)
    service.get_account_id_and_expire_time(issued)
    assert store.get_calls == 1
    assert cache.entries == {1: pem_encode_public_key(private_key.public_key())}
    service.get_account_id_and_expire_time(issued)
    assert store.get_calls == 1


def test_unknown_key_id_propagates_database_error(private_key):
    store = FakeKeyStore()
    service = make_service(private_key, store=store)
    encoded = jwt.encode(
        {"sub": 1, "exp": future_exp(), "kid": 99}, private_key, algorithm="RS512"
    )
    with pytest.raises(StatusError) as info:
        service.get_account_id_and_expire_time(encoded)
    assert info.value.code == Code.INTERNAL


def test_expired_token(private_key):
    service = make_service(private_key, expires_in="-1h")
    issued, _ = service.get_token(1)
    with pytest.raises(jwt.ExpiredSignatureError):
        service.get_account_id_and_expire_time(issued)


def test_hmac_token_is_rejected(private_key):
    service = make_service(private_key)
    hmac_key = "secret"
    encoded = jwt.encode({"sub": 1, "exp": future_exp(), "kid": 1}, hmac_key, algorithm="HS256")
    with pytest.raises(StatusError) as info:
        service.get_account_id_and_expire_time(encoded)
    assert info.value.code == Code.UNAUTHENTICATED
    assert info.value.message == "unexpected signing method"


@pytest.mark.parametrize("kid", [None, "1"])
def test_missing_or_bad_kid(private_key, kid):
    service = make_service(private_key)
    claims = {"sub": 1, "exp": future_exp()}
    if kid is not None:
        claims["kid"] = kid
    encoded = jwt.encode(claims, private_key, algorithm="RS512")
    with pytest.raises(StatusError) as info:
        service.get_account_id_and_expire_time(encoded)
    assert info.value.code == Code.UNAUTHENTICATED
    assert info.value.message == "cannot get token's kid claim"


def test_missing_sub(private_key):
    service = make_service(private_key)
    encoded = jwt.encode({"exp": future_exp(), "kid": 1}, private_key, algorithm="RS512")
    with pytest.raises(StatusError) as info:
        service.get_account_id_and_expire_time(encoded)
    assert info.value.message == "cannot get token's sub claim"


def test_missing_exp(private_key):
    service = make_service(private_key)
    encoded = jwt.encode({"sub": 3, "kid": 1}, private_key, algorithm="RS512")
    with pytest.raises(StatusError) as info:
        service.get_account_id_and_expire_time(encoded)
    assert info.value.message == "cannot get token's exp claim"


def test_signature_from_other_key_is_rejected(private_key, other_key):
    service = make_service(private_key)
    encoded = jwt.encode({"sub": 1, "exp": future_exp(), "kid": 1}, other_key, algorithm="RS512")
    with pytest.raises(jwt.InvalidSignatureError):
        service.get_account_id_and_expire_time(encoded)


def test_malformed_token(private_key):
    service = make_service(private_key)
    with pytest.raises(jwt.DecodeError):
        service.get_account_id_and_expire_time("token")


def test_with_database_switches_account_accessor(private_key):
    accounts = FakeAccounts("primary")
    service = make_service(private_key, accounts=accounts)
    switched = service.with_database("transaction")
    assert switched._account_data_accessor.database == "transaction"
    assert service._account_data_accessor.database == "primary"
    issued, _ = switched.get_token(8)
    assert service.get_account_id_and_expire_time(issued)[0] == 8