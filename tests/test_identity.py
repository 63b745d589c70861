import pytest

from app.security.tokens import create_session_token, hash_password, verify_password
from app.tickets.errors import AuthenticationError, InvalidInputError


def test_password_hashing_roundtrip():
    hashed = hash_password("hunter22")
    assert hashed != "hunter22"
    assert verify_password("hunter22", hashed)
    assert not verify_password("hunter23", hashed)


@pytest.mark.asyncio
async def test_register_authenticate_and_resolve(identity):
    principal = await identity.register(email="kim@example.com", password="secret1", display_name="Kim")

    token = await identity.authenticate(email="KIM@example.com", password="secret1")
    resolved = await identity.resolve_token(token)

    assert resolved == principal


@pytest.mark.asyncio
async def test_wrong_password_is_rejected(identity):
    await identity.register(email="kim@example.com", password="secret1", display_name="Kim")

    with pytest.raises(AuthenticationError):
        await identity.authenticate(email="kim@example.com", password="nope-nope")


@pytest.mark.asyncio
async def test_short_password_is_invalid(identity, accounts):
    with pytest.raises(InvalidInputError):
        await identity.register(email="kim@example.com", password="12345", display_name="Kim")
    assert accounts.accounts == {}


@pytest.mark.asyncio
async def test_duplicate_email_is_invalid(identity):
    await identity.register(email="kim@example.com", password="secret1", display_name="Kim")
    with pytest.raises(InvalidInputError):
        await identity.register(email="kim@example.com", password="secret2", display_name="Kim Two")


@pytest.mark.asyncio
async def test_foreign_or_expired_tokens_are_rejected(identity):
    principal = await identity.register(email="kim@example.com", password="secret1", display_name="Kim")

    forged = create_session_token(subject=principal.user_id, secret="other-secret")
    expired = create_session_token(subject=principal.user_id, secret="test-secret", expires_minutes=-1)

    for token in (forged, expired, "garbage"):
        with pytest.raises(AuthenticationError):
            await identity.resolve_token(token)


@pytest.mark.asyncio
async def test_update_user_changes_password(identity):
    principal = await identity.register(email="kim@example.com", password="secret1", display_name="Kim")

    await identity.update_user(principal, password="secret2")

    await identity.authenticate(email="kim@example.com", password="secret2")
    with pytest.raises(InvalidInputError):
        await identity.update_user(principal, password="123")


@pytest.mark.asyncio
async def test_overlong_email_is_invalid(identity, accounts):
    with pytest.raises(InvalidInputError):
        await identity.register(email="a" * 250 + "@example.com", password="secret1", display_name="Long")
    assert accounts.accounts == {}
