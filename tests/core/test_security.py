from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from cryptography.fernet import Fernet

from oauth_broker.core.encryption import TokenCipher
from oauth_broker.core.redis import RedisClient
from oauth_broker.core.security import create_access_token, decode_token


def test_access_token_round_trip():
    token = create_access_token("user-1")

    payload = decode_token(token)

    assert payload is not None
    assert payload.sub == "user-1"
    assert payload.type == "access"


def test_expired_or_garbage_token_is_rejected():
    assert decode_token(create_access_token("user-1", expires_delta=timedelta(seconds=-5))) is None
    assert decode_token("not-a-jwt") is None


def test_cipher_accepts_fernet_key_and_passphrase():
    fernet_key = Fernet.generate_key().decode()

    for key in (fernet_key, "a passphrase"):
        cipher = TokenCipher(key)
        ciphertext = cipher.encrypt("provider-token")
        assert ciphertext != "provider-token"
        assert cipher.decrypt(ciphertext) == "provider-token"


def test_cipher_rejects_foreign_ciphertext():
    ciphertext = TokenCipher("first key").encrypt("provider-token")

    with pytest.raises(ValueError):
        TokenCipher("second key").decrypt(ciphertext)


@pytest.mark.asyncio
async def test_redis_take_runs_get_and_delete_in_one_transaction():
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=["payload", 1])
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=None)
    client = MagicMock()
    client.pipeline.return_value = pipe

    with patch.object(RedisClient, "_client", client):
        assert await RedisClient.take("oauth_flow:s:google") == "payload"

    client.pipeline.assert_called_once_with(transaction=True)
    pipe.get.assert_called_once_with("oauth_flow:s:google")
    pipe.delete.assert_called_once_with("oauth_flow:s:google")


@pytest.mark.asyncio
async def test_redis_helpers_without_client():
    with patch.object(RedisClient, "_client", None):
        assert await RedisClient.set("k", "v") is False
        assert await RedisClient.take("k") is None
