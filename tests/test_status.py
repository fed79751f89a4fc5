import pickle

import pytest

from goload.status import Code, StatusError


def test_error_text_follows_rpc_format():
    error = StatusError(Code.UNAUTHENTICATED, "invalid token")
    assert str(error) == "rpc error: code = Unauthenticated desc = invalid token"


def test_code_labels_in_error_text():
    exists = StatusError(Code.ALREADY_EXISTS, "taken")
    internal = StatusError(Code.INTERNAL, "boom")
    assert str(exists) == "rpc error: code = AlreadyExists desc = taken"
    assert str(internal) == "rpc error: code = Internal desc = boom"


def test_numeric_code_maps_to_unauthenticated():
    error = StatusError(16, "invalid token")
    assert error.code is Code.UNAUTHENTICATED


def test_attributes_round_trip():
    error = StatusError(Code.INTERNAL, "failed to sign token")
    assert error.code is Code.INTERNAL
    assert error.message == "failed to sign token"


def test_int_code_is_normalised():
    error = StatusError(int(Code.NOT_FOUND), "missing")
    assert error.code is Code.NOT_FOUND


def test_error_is_an_exception_with_its_text():
    error = StatusError(Code.ALREADY_EXISTS, "account name is already taken")
    assert str(error) == (
        "rpc error: code = AlreadyExists desc = account name is already taken"
    )
    with pytest.raises(StatusError) as info:
        raise error
    assert info.value.code is Code.ALREADY_EXISTS


def test_pickle_round_trip():
    error = StatusError(Code.UNAUTHENTICATED, "incorrect password")
    restored = pickle.loads(pickle.dumps(error))
    assert restored.code is error.code
    assert str(restored) == str(error)


@pytest.mark.parametrize("code", list(Code))
def test_every_code_has_label_in_error_text(code):
    text = str(StatusError(code, "m"))
    prefix = "rpc error: code = "
    suffix = " desc = m"
    assert text.startswith(prefix)
    assert text.endswith(suffix)
    label = text[len(prefix):-len(suffix)]
    assert label
    assert label != code.name or code is Code.OK