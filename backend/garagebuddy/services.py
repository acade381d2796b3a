"""Business logic services used by the application layer.

This module holds small service classes that coordinate repositories and
the identity collaborator. Services are intentionally thin: they validate
input, delegate to repositories or the identity managers, and report
outcomes as `Result` objects (or the identity outcome verbatim).

Every service works on the `AsyncSession` it was built with; repositories
created from the same session share one unit of work.
"""

import logging
import uuid
from typing import List, Optional, Union

from pydantic import ValidationError
from sqlmodel.ext.asyncio.session import AsyncSession

from .constants import (
    ADMINISTRATOR_ROLE_NAME,
    ERROR_CANNOT_BE_NULL_OR_WHITESPACE,
    ERROR_GARAGE_NOT_FOUND,
    ERROR_GENERAL,
    SUCCESS_GARAGE_CREATED,
    SUCCESS_GARAGE_EDITED,
    SUCCESS_PASSWORD_RESET,
)
from .errors import NotFoundError, ensure_not_blank
from .identity import SignInManager, UserManager
from .models import ApplicationUser, Brand, Garage, GearboxType
from .repositories import SQLModelRepository
from .result import IdentityResult, Result, SignInResult
from .schemas import (
    BrandSelectServiceModel,
    GarageServiceModel,
    GearboxTypeSelectServiceModel,
    GearboxTypeServiceModel,
)
from .utils.encoders import add_query_string, base64url_decode, base64url_encode, join_url

logger = logging.getLogger(__name__)


class UserService:
    """Sign-in, registration and password reset on top of the identity managers."""

    def __init__(
        self,
        session: AsyncSession,
        user_manager: Optional[UserManager] = None,
        sign_in_manager: Optional[SignInManager] = None,
    ):
        self.session = session
        self.user_manager = user_manager or UserManager(session)
        self.sign_in_manager = sign_in_manager or SignInManager(self.user_manager)

    async def login_with_username(
        self, username: str, password: str, is_persistent: bool = False, lockout_on_failure: bool = False
    ) -> SignInResult:
        ensure_not_blank(username, "Username")
        ensure_not_blank(password, "Password")
        user = await self.user_manager.find_by_name(username)
        return await self.sign_in_manager.password_sign_in(user, password, is_persistent, lockout_on_failure)

    async def login_with_email(
        self, email: str, password: str, is_persistent: bool = False, lockout_on_failure: bool = False
    ) -> SignInResult:
        ensure_not_blank(email, "Email")
        ensure_not_blank(password, "Password")
        user = await self.user_manager.find_by_email(email)
        return await self.sign_in_manager.password_sign_in(user, password, is_persistent, lockout_on_failure)

    async def register_with_email(self, email: str, password: str) -> IdentityResult:
        """Create an account named after `email` and sign it in.

        The very first account of the system is added to the
        administrator role. Later registrations never are.
        """
        ensure_not_blank(email, "Email")
        ensure_not_blank(password, "Password")

        user = ApplicationUser(user_name=email, email=email)
        result = await self.user_manager.create(user, password)
        if not result.succeeded:
            return result

        self.sign_in_manager.sign_in(user, is_persistent=False)
        await self._bootstrap_administrator(user)
        return result

    async def logout(self) -> None:
        self.sign_in_manager.sign_out()

    async def exists(self, user_id: Union[str, uuid.UUID]) -> bool:
        return await self.user_manager.find_by_id(user_id) is not None

    async def generate_password_reset_token(self, email: str) -> Result[str]:
        user = await self.user_manager.find_by_email(email)
        if user is None:
            # same message as every other failure: no hint whether the email is registered
            return Result[str].fail(ERROR_GENERAL)

        if self.user_manager.require_confirmed_email and not self.user_manager.is_email_confirmed(user):
            return Result[str].fail(ERROR_GENERAL)

        token = self.user_manager.generate_password_reset_token(user)
        return Result[str].success(data=token)

    async def generate_email_reset_uri(
        self, email: str, origin: str, route: str, token_query_key: str
    ) -> Result[str]:
        """Build the password reset link mailed to `email`.

        The link is `origin/route?token_query_key=<token>` with the token
        base64url-encoded. Blank link parts are logged and reported with
        the generic error.
        """
        token_result = await self.generate_password_reset_token(email)
        if not token_result.succeeded:
            return Result[str].fail(token_result.messages)

        for name, value in (("origin", origin), ("route", route), ("token_query_key", token_query_key)):
            if value is None or not value.strip():
                logger.error(ERROR_CANNOT_BE_NULL_OR_WHITESPACE.format(name))
                return Result[str].fail(ERROR_GENERAL)

        endpoint = join_url(origin, route)
        token = base64url_encode(token_result.data)
        return Result[str].success(data=add_query_string(endpoint, token_query_key, token))

    async def reset_password(self, email: str, encoded_token: str, new_password: str) -> Result:
        """Reset the password using the token exactly as it appears in the reset link."""
        ensure_not_blank(email, "Email")
        ensure_not_blank(encoded_token, "Token")
        ensure_not_blank(new_password, "Password")

        user = await self.user_manager.find_by_email(email)
        if user is None:
            return Result.fail(ERROR_GENERAL)
        try:
            token = base64url_decode(encoded_token)
        except ValueError:
            return Result.fail(ERROR_GENERAL)

        result = await self.user_manager.reset_password(user, token, new_password)
        if not result.succeeded:
            return Result.fail(result.errors)
        return Result.success(message=SUCCESS_PASSWORD_RESET)

    async def _bootstrap_administrator(self, user: ApplicationUser) -> None:
        if await self.user_manager.users_count() != 1:
            return
        role_result = await self.user_manager.add_to_role(user, ADMINISTRATOR_ROLE_NAME)
        if not role_result.succeeded:
            logger.error("could not grant %s to first user %s: %s", ADMINISTRATOR_ROLE_NAME, user.id, role_result.errors)


class GarageService:
    """Create, read and edit garages."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.garages = SQLModelRepository[Garage, uuid.UUID](session, Garage)

    async def exists(self, garage_id: uuid.UUID) -> bool:
        return await self.garages.any(Garage.id == garage_id)

    async def get_all(self) -> List[GarageServiceModel]:
        garages = await self.garages.all(readonly=True, order_by=Garage.name)
        return [GarageServiceModel.model_validate(g) for g in garages]

    async def get(self, garage_id: uuid.UUID) -> Result[GarageServiceModel]:
        try:
            garage = await self.garages.find(garage_id, readonly=True)
        except NotFoundError:
            return Result[GarageServiceModel].fail(ERROR_GARAGE_NOT_FOUND)
        return Result[GarageServiceModel].success(data=GarageServiceModel.model_validate(garage))

    async def create(self, model: Union[GarageServiceModel, dict]) -> Result[uuid.UUID]:
        model, errors = self._validate(model)
        if errors:
            return Result[uuid.UUID].fail(errors)

        garage = Garage(**model.model_dump(exclude={"id"}))
        self.garages.add(garage)
        await self.garages.save_changes()
        logger.info("created garage %s", garage.id)
        return Result[uuid.UUID].success(data=garage.id, message=SUCCESS_GARAGE_CREATED)

    async def edit(self, garage_id: uuid.UUID, model: Union[GarageServiceModel, dict]) -> Result:
        model, errors = self._validate(model)
        if errors:
            return Result.fail(errors)
        try:
            garage = await self.garages.find(garage_id)
        except NotFoundError:
            return Result.fail(ERROR_GARAGE_NOT_FOUND)

        for field, value in model.model_dump(exclude={"id"}).items():
            setattr(garage, field, value)
        self.garages.update(garage)
        await self.garages.save_changes()
        return Result.success(message=SUCCESS_GARAGE_EDITED)

    async def at_least_one_active_garage_exists(self) -> bool:
        return await self.garages.any(Garage.is_active == True)  # noqa: E712

    @staticmethod
    def _validate(model):
        if isinstance(model, GarageServiceModel):
            return model, []
        try:
            return GarageServiceModel.model_validate(model), []
        except ValidationError as exc:
            errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]
            return None, errors


class GearboxTypeService:
    """Read-only access to gearbox types."""

    def __init__(self, session: AsyncSession):
        self.gearbox_types = SQLModelRepository[GearboxType, int](session, GearboxType)

    async def get_all(self) -> List[GearboxTypeServiceModel]:
        rows = await self._sorted()
        return [GearboxTypeServiceModel.model_validate(r) for r in rows]

    async def get_all_select(self) -> List[GearboxTypeSelectServiceModel]:
        rows = await self._sorted()
        return [GearboxTypeSelectServiceModel.model_validate(r) for r in rows]

    async def _sorted(self) -> List[GearboxType]:
        return await self.gearbox_types.all(readonly=True, order_by=GearboxType.gearbox_type_name)


class BrandService:
    """Read-only access to vehicle brands."""

    def __init__(self, session: AsyncSession):
        self.brands = SQLModelRepository[Brand, int](session, Brand)

    async def get_all_select(self) -> List[BrandSelectServiceModel]:
        rows = await self.brands.all(readonly=True, order_by=Brand.brand_name)
        return [BrandSelectServiceModel.model_validate(r) for r in rows]
