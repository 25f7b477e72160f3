# tests/core/test_security.py
from datetime import timedelta
import pytest
from fastapi import HTTPException

from app.api.deps import get_current_user_id
from app.core.security import create_access_token, verify_backend_token

@pytest.mark.asyncio
async def test_backend_token_round_trip():
    token = create_access_token({"sub": "player-42"})
    payload = await verify_backend_token(token)
    assert payload["sub"] == "player-42"
    assert "exp" in payload

@pytest.mark.asyncio
async def test_expired_token_is_rejected():
    token = create_access_token({"sub": "player-42"}, expires_delta=timedelta(minutes=-1))
    with pytest.raises(HTTPException) as exc_info:
        await verify_backend_token(token)
    assert exc_info.value.status_code == 401

@pytest.mark.asyncio
async def test_garbage_token_is_rejected():
    with pytest.raises(HTTPException) as exc_info:
        await verify_backend_token("definitely.not.a.jwt")
    assert exc_info.value.status_code == 401
    assert "Could not validate backend token" in exc_info.value.detail

@pytest.mark.asyncio
async def test_current_user_id_comes_from_sub():
    assert await get_current_user_id(token=create_access_token({"sub": "abc"})) == "abc"

@pytest.mark.asyncio
async def test_token_without_sub_is_rejected():
    with pytest.raises(HTTPException) as exc_info:
        await get_current_user_id(token=create_access_token({"role": "player"}))
    assert exc_info.value.status_code == 401

@pytest.mark.asyncio
async def test_token_from_another_issuer_is_rejected():
    from jose import jwt
    from app.core.config import settings

    foreign = jwt.encode({"sub": "abc", "iss": "someone-else"}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    with pytest.raises(HTTPException) as exc_info:
        await verify_backend_token(foreign)
    assert exc_info.value.status_code == 401

@pytest.mark.asyncio
async def test_player_token_carries_the_user_id():
    from app.core.security import create_player_token

    payload = await verify_backend_token(create_player_token("p7"))
    assert payload["sub"] == "p7"
    assert payload["iss"] == "cipher-chat-auth"
