"""Tests for the error taxonomy and its HTTP mapping."""
import pytest

from manga_reader.core import errors
from manga_reader.core.errors import AppError, ErrorKind, STATUS_BY_KIND


def test_every_kind_has_a_status():
    for kind in ErrorKind:
        assert kind in STATUS_BY_KIND
        assert errors.status_for(kind) == STATUS_BY_KIND[kind]


@pytest.mark.parametrize("kind,status", [
    (ErrorKind.MANGA_NOT_FOUND, 404),
    (ErrorKind.USER_EXISTS, 409),
    (ErrorKind.VALIDATION, 400),
    (ErrorKind.INVALID_CREDENTIALS, 401),
    (ErrorKind.JWT_EXPIRED, 401),
    (ErrorKind.FORBIDDEN, 403),
    (ErrorKind.DATABASE, 500),
])
def test_status_mapping(kind, status):
    assert AppError(kind, "x").status_code == status


def test_codes_are_stable_strings():
    assert ErrorKind.INTERNAL.value == "INTERNAL_ERROR"
    assert ErrorKind.USER_EXISTS.value == "USER_ALREADY_EXISTS"
    assert errors.validation_error("bad").code == "VALIDATION_ERROR"


def test_to_dict_omits_empty_details():
    assert errors.manga_not_found(5).to_dict() == {
        "code": "MANGA_NOT_FOUND",
        "message": "Manga with ID 5 not found",
    }
    body = errors.validation_error("Invalid period", details={"allowed": ["daily"]}).to_dict()
    assert body["details"] == {"allowed": ["daily"]}


def test_cause_is_kept_but_not_rendered():
    cause = RuntimeError("connection reset")
    err = errors.database_error(cause)
    assert err.cause is cause
    assert "connection reset" not in str(err.to_dict())
    assert "connection reset" in str(err)


def test_kind_groups():
    assert errors.chapter_not_found(1).is_not_found
    assert errors.user_not_found("bob").is_not_found
    assert not errors.conflict("dup").is_not_found
    assert errors.user_exists("bob").is_conflict
    assert errors.conflict("dup").is_conflict


def test_jwt_invalid_reason_in_details():
    assert errors.jwt_invalid("bad_signature").details == {"reason": "bad_signature"}
    assert errors.jwt_invalid().details is None
