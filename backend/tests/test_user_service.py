import uuid
from urllib.parse import parse_qs, urlsplit

import pytest

from garagebuddy.constants import ADMINISTRATOR_ROLE_NAME, ERROR_GENERAL, SUCCESS_PASSWORD_RESET
from garagebuddy.errors import InvalidArgumentError
from garagebuddy.identity import UserManager
from garagebuddy.result import SignInResult
from garagebuddy.services import UserService
from garagebuddy.utils.encoders import base64url_decode

ORIGIN = "https://garagebuddy.test"
ROUTE = "Identity/Account/ResetPassword"


@pytest.mark.asyncio
async def test_first_registered_user_becomes_administrator(session, seeded_roles):
    service = UserService(session)
    first = await service.register_with_email("owner@example.com", "secret123")
    assert first.succeeded
    assert service.sign_in_manager.is_signed_in

    second = await service.register_with_email("mechanic@example.com", "secret123")
    assert second.succeeded

    owner = await service.user_manager.find_by_email("owner@example.com")
    mechanic = await service.user_manager.find_by_email("mechanic@example.com")
    assert await service.user_manager.is_in_role(owner, ADMINISTRATOR_ROLE_NAME)
    assert not await service.user_manager.is_in_role(mechanic, ADMINISTRATOR_ROLE_NAME)


@pytest.mark.asyncio
async def test_failed_registration_is_returned_and_not_signed_in(session, seeded_roles):
    service = UserService(session)
    result = await service.register_with_email("owner@example.com", "123")
    assert not result.succeeded
    assert result.errors
    assert not service.sign_in_manager.is_signed_in
    assert await service.user_manager.users_count() == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("email,password,field", [
    ("", "secret123", "Email"),
    ("   ", "secret123", "Email"),
    ("owner@example.com", " ", "Password"),
])
async def test_blank_registration_input_raises(session, email, password, field):
    service = UserService(session)
    with pytest.raises(InvalidArgumentError) as exc:
        await service.register_with_email(email, password)
    assert exc.value.argument == field


@pytest.mark.asyncio
async def test_login_with_username_and_email(session, seeded_roles):
    service = UserService(session)
    await service.register_with_email("owner@example.com", "secret123")
    await service.logout()
    assert not service.sign_in_manager.is_signed_in

    assert await service.login_with_username("owner@example.com", "secret123") == SignInResult.SUCCEEDED
    assert await service.login_with_email("OWNER@example.com", "secret123") == SignInResult.SUCCEEDED
    assert await service.login_with_email("owner@example.com", "bad-password") == SignInResult.FAILED
    assert await service.login_with_username("nobody", "secret123") == SignInResult.FAILED

    with pytest.raises(InvalidArgumentError):
        await service.login_with_username("  ", "secret123")
    with pytest.raises(InvalidArgumentError):
        await service.login_with_email("owner@example.com", "")


@pytest.mark.asyncio
async def test_login_lockout_is_reported_verbatim(session, make_settings):
    manager = UserManager(session, settings=make_settings(LOCKOUT_MAX_FAILED_ATTEMPTS=3))
    service = UserService(session, user_manager=manager)
    await service.register_with_email("owner@example.com", "secret123")

    outcomes = [await service.login_with_email("owner@example.com", "wrong", lockout_on_failure=True) for _ in range(3)]
    assert outcomes == [SignInResult.FAILED, SignInResult.FAILED, SignInResult.LOCKED_OUT]


@pytest.mark.asyncio
async def test_exists(session):
    service = UserService(session)
    await service.register_with_email("owner@example.com", "secret123")
    user = await service.user_manager.find_by_email("owner@example.com")
    assert await service.exists(user.id)
    assert await service.exists(str(user.id))
    assert not await service.exists(uuid.uuid4())


@pytest.mark.asyncio
async def test_reset_token_failures_are_indistinguishable(session, make_settings):
    manager = UserManager(session, settings=make_settings(REQUIRE_CONFIRMED_EMAIL="true"))
    service = UserService(session, user_manager=manager)
    await service.register_with_email("unconfirmed@example.com", "secret123")

    missing = await service.generate_password_reset_token("nobody@example.com")
    unconfirmed = await service.generate_password_reset_token("unconfirmed@example.com")
    assert not missing.succeeded and not unconfirmed.succeeded
    assert missing.messages == unconfirmed.messages == [ERROR_GENERAL]

    user = await manager.find_by_email("unconfirmed@example.com")
    await manager.confirm_email(user)
    confirmed = await service.generate_password_reset_token("unconfirmed@example.com")
    assert confirmed.succeeded
    assert manager.verify_password_reset_token(user, confirmed.data)


@pytest.mark.asyncio
async def test_email_reset_uri_embeds_encoded_token(session):
    service = UserService(session)
    await service.register_with_email("owner@example.com", "secret123")

    result = await service.generate_email_reset_uri("owner@example.com", ORIGIN, ROUTE, "code")
    assert result.succeeded
    parts = urlsplit(result.data)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == f"{ORIGIN}/{ROUTE}"
    code = parse_qs(parts.query)["code"][0]
    assert "=" not in code

    user = await service.user_manager.find_by_email("owner@example.com")
    assert service.user_manager.verify_password_reset_token(user, base64url_decode(code))


@pytest.mark.asyncio
@pytest.mark.parametrize("origin,route,key", [
    ("", ROUTE, "code"),
    (ORIGIN, "  ", "code"),
    (ORIGIN, ROUTE, None),
])
async def test_email_reset_uri_blank_parts_fail_generically(session, origin, route, key):
    service = UserService(session)
    await service.register_with_email("owner@example.com", "secret123")
    result = await service.generate_email_reset_uri("owner@example.com", origin, route, key)
    assert not result.succeeded
    assert result.messages == [ERROR_GENERAL]


@pytest.mark.asyncio
async def test_email_reset_uri_for_unknown_email_fails_generically(session):
    service = UserService(session)
    result = await service.generate_email_reset_uri("nobody@example.com", ORIGIN, ROUTE, "code")
    assert result.messages == [ERROR_GENERAL]
    assert result.data is None


@pytest.mark.asyncio
async def test_reset_password_with_link_token(session):
    service = UserService(session)
    await service.register_with_email("owner@example.com", "secret123")
    link = await service.generate_email_reset_uri("owner@example.com", ORIGIN, ROUTE, "code")
    code = parse_qs(urlsplit(link.data).query)["code"][0]

    reset = await service.reset_password("owner@example.com", code, "brand-new-1")
    assert reset.succeeded
    assert reset.messages == [SUCCESS_PASSWORD_RESET]
    assert await service.login_with_email("owner@example.com", "brand-new-1") == SignInResult.SUCCEEDED

    reused = await service.reset_password("owner@example.com", code, "brand-new-2")
    assert not reused.succeeded
    assert (await service.reset_password("nobody@example.com", code, "brand-new-2")).messages == [ERROR_GENERAL]
    assert (await service.reset_password("owner@example.com", "%%%", "brand-new-2")).messages == [ERROR_GENERAL]
