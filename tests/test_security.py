"""
Tests for caller resolution (Firebase ID tokens and mock-mode headers).
"""

from unittest.mock import patch

import pytest
from fastapi import HTTPException

from ecowatch.core.errors import PermissionDenied
from ecowatch.utils import security
from tests.conftest import COUNCIL_ID


async def test_bearer_token_resolves_roles(user_service):
    claims = {"uid": COUNCIL_ID, "email": "council@example.com"}
    with patch.object(security, "verify_id_token", return_value=claims) as verify:
        user = await security.get_current_user(
            authorization="Bearer abc.def.ghi", x_user_id=None, user_service=user_service
        )

    verify.assert_called_once_with("abc.def.ghi")
    assert user.uid == COUNCIL_ID
    assert user.is_council


async def test_invalid_token_is_401(user_service):
    with patch.object(security.auth, "verify_id_token", side_effect=ValueError("bad token")), \
            patch.object(security, "initialize_firebase_app"):
        with pytest.raises(HTTPException) as exc_info:
            await security.get_current_user(authorization="Bearer nope", x_user_id=None, user_service=user_service)

    assert exc_info.value.status_code == 401


async def test_disabled_user_is_401(user_service):
    error = security.auth.UserDisabledError("The user record is disabled")
    with patch.object(security.auth, "verify_id_token", side_effect=error), \
            patch.object(security, "initialize_firebase_app"):
        with pytest.raises(HTTPException) as exc_info:
            await security.get_current_user(authorization="Bearer disabled", x_user_id=None, user_service=user_service)

    assert exc_info.value.status_code == 401


async def test_certificate_fetch_failure_is_503(user_service):
    error = security.auth.CertificateFetchError("certs unreachable", cause=None)
    with patch.object(security.auth, "verify_id_token", side_effect=error), \
            patch.object(security, "initialize_firebase_app"):
        with pytest.raises(HTTPException) as exc_info:
            await security.get_current_user(authorization="Bearer abc", x_user_id=None, user_service=user_service)

    assert exc_info.value.status_code == 503


async def test_mock_header_accepted_in_mock_mode(user_service):
    user = await security.get_current_user(authorization=None, x_user_id="someone", user_service=user_service)
    assert user.uid == "someone"
    assert not user.is_council


async def test_missing_credentials_is_401(user_service):
    with pytest.raises(HTTPException) as exc_info:
        await security.get_current_user(authorization=None, x_user_id=None, user_service=user_service)
    assert exc_info.value.status_code == 401


async def test_require_council(user_service, citizen, council):
    assert await security.require_council(council) is council
    with pytest.raises(PermissionDenied):
        await security.require_council(citizen)
