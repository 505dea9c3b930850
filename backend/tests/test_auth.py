"""
Tests for API caller authentication.

Tests: bearer parsing, access token issue/decode, require_user_id dependency.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import time

import jwt
import pytest
from fastapi import HTTPException

from config import settings


class TestBearerParsing:

    @pytest.mark.unit
    @pytest.mark.parametrize("header,expected", [
        ("Bearer abc", "abc"),
        ("bearer abc", "abc"),
        ("Bearer   abc  ", "abc"),
        ("Token abc", None),
        ("Bearer", None),
        ("Bearer  ", None),
        (None, None),
    ])
    def test_parse(self, header, expected):
        from middleware.auth import _parse_bearer_token
        assert _parse_bearer_token(header) == expected


class TestAccessTokens:

    @pytest.mark.unit
    def test_round_trip(self):
        from middleware.auth import decode_access_token, issue_access_token
        claims = decode_access_token(issue_access_token(user_id=7, email="buyer@example.com"))
        assert claims["sub"] == "7"
        assert claims["email"] == "buyer@example.com"
        assert claims["iss"] == settings.jwt_issuer

    @pytest.mark.unit
    def test_expired_token(self):
        from middleware.auth import decode_access_token
        now = int(time.time())
        token = jwt.encode(
            {"iss": settings.jwt_issuer, "sub": "7", "iat": now - 7200, "exp": now - 3600},
            settings.jwt_secret,
            algorithm="HS256",
        )
        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(token)
        assert exc_info.value.status_code == 401
        assert "expired" in exc_info.value.detail.lower()

    @pytest.mark.unit
    def test_wrong_secret(self):
        from middleware.auth import decode_access_token
        now = int(time.time())
        token = jwt.encode(
            {"iss": settings.jwt_issuer, "sub": "7", "iat": now, "exp": now + 60},
            "some-other-secret-entirely",
            algorithm="HS256",
        )
        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(token)
        assert exc_info.value.status_code == 401

    @pytest.mark.unit
    def test_missing_secret_is_configuration_error(self, monkeypatch):
        from middleware.auth import issue_access_token
        monkeypatch.setattr(settings, "jwt_secret", "")
        with pytest.raises(HTTPException) as exc_info:
            issue_access_token(user_id=1)
        assert exc_info.value.status_code == 500


class TestRequireUserId:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_valid_token(self):
        from middleware.auth import issue_access_token, require_user_id
        token = issue_access_token(user_id=42)
        assert await require_user_id(authorization=f"Bearer {token}") == 42

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_header_raises_401(self):
        from middleware.auth import require_user_id
        with pytest.raises(HTTPException) as exc_info:
            await require_user_id(authorization=None)
        assert exc_info.value.status_code == 401
        assert "Authentication required" in exc_info.value.detail

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_non_numeric_subject(self):
        from middleware.auth import require_user_id
        now = int(time.time())
        token = jwt.encode(
            {"iss": settings.jwt_issuer, "sub": "alice", "iat": now, "exp": now + 60},
            settings.jwt_secret,
            algorithm="HS256",
        )
        with pytest.raises(HTTPException) as exc_info:
            await require_user_id(authorization=f"Bearer {token}")
        assert exc_info.value.status_code == 401
