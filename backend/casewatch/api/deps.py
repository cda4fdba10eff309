from collections.abc import Callable
from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError
from sqlmodel.ext.asyncio.session import AsyncSession

from casewatch.core import tiers as tier_rules
from casewatch.core.config import settings
from casewatch.core.errors import AuthenticationError, ForbiddenError, InsufficientTierError
from casewatch.core.messages import AuthMessages, ErrorCodes
from casewatch.core.rate_limit import get_real_client_ip, get_user_agent
from casewatch.core.security import decode_access_token
from casewatch.db.session import get_session
from casewatch.models.user import Tier, User

SessionDep = Annotated[AsyncSession, Depends(get_session)]

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_PREFIX}/auth/token", auto_error=False)


async def _user_from_token(session: AsyncSession, token: str) -> User:
    try:
        token_data = decode_access_token(token)
    except ExpiredSignatureError as exc:
        raise AuthenticationError(AuthMessages.TOKEN_EXPIRED, code=ErrorCodes.TOKEN_EXPIRED) from exc
    except (JWTError, ValueError) as exc:
        raise AuthenticationError(AuthMessages.INVALID_TOKEN, code=ErrorCodes.INVALID_TOKEN) from exc

    try:
        user = await session.get(User, token_data.user_id)
    except ValueError as exc:
        raise AuthenticationError(AuthMessages.INVALID_TOKEN, code=ErrorCodes.INVALID_TOKEN) from exc
    if user is None:
        raise AuthenticationError(AuthMessages.USER_NOT_FOUND, code=ErrorCodes.USER_NOT_FOUND)
    if not user.is_active:
        raise AuthenticationError(AuthMessages.ACCOUNT_DEACTIVATED, code=ErrorCodes.ACCOUNT_DEACTIVATED)
    return user


async def get_current_user(
    token: Annotated[Optional[str], Depends(oauth2_scheme)],
    session: SessionDep,
) -> User:
    if not token:
        raise AuthenticationError(AuthMessages.MISSING_TOKEN, code=ErrorCodes.MISSING_TOKEN)
    return await _user_from_token(session, token)


async def get_optional_user(
    token: Annotated[Optional[str], Depends(oauth2_scheme)],
    session: SessionDep,
) -> Optional[User]:
    """The caller when a valid token is present; anonymous otherwise."""
    if not token:
        return None
    try:
        return await _user_from_token(session, token)
    except AuthenticationError:
        return None


CurrentUser = Annotated[User, Depends(get_current_user)]
OptionalUser = Annotated[Optional[User], Depends(get_optional_user)]


async def require_admin(current_user: CurrentUser) -> User:
    if not current_user.is_admin:
        raise ForbiddenError(AuthMessages.ADMIN_REQUIRED)
    return current_user


AdminUser = Annotated[User, Depends(require_admin)]


def insufficient_tier(user: User, tiers: list[Tier]) -> InsufficientTierError:
    lowest = tier_rules.lowest_tier(tiers)
    current = Tier(user.tier)
    return InsufficientTierError(
        f"This feature requires {lowest.value} or higher. Your current tier: {current.value}",
        details={
            "current_tier": current.value,
            "required_tiers": [tier.value for tier in tiers],
            "upgrade_info": tier_rules.upgrade_info(current, lowest),
        },
    )


def require_tiers(*tiers: Tier) -> Callable:
    allowed = list(tiers)

    async def dependency(current_user: Annotated[Optional[User], Depends(get_optional_user)]) -> User:
        if current_user is None:
            raise AuthenticationError(AuthMessages.AUTH_REQUIRED, code=ErrorCodes.AUTH_REQUIRED)
        if Tier(current_user.tier) not in allowed:
            raise insufficient_tier(current_user, allowed)
        return current_user

    return dependency


def require_feature(feature: str) -> Callable:
    return require_tiers(*tier_rules.tiers_for_feature(feature))


def require_min_tier(minimum: Tier) -> Callable:
    return require_tiers(*tier_rules.tiers_at_or_above(minimum))


Tier2User = Annotated[User, Depends(require_min_tier(Tier.tier_2))]
Tier3User = Annotated[User, Depends(require_min_tier(Tier.tier_3))]
HashingUser = Annotated[User, Depends(require_feature("document_hashing"))]
RegistrationUser = Annotated[User, Depends(require_feature("blockchain_registration"))]


class ClientInfo:
    """Caller IP and user agent, recorded on audit rows."""

    def __init__(self, request: Request) -> None:
        self.ip_address = get_real_client_ip(request)
        self.user_agent = get_user_agent(request)


ClientInfoDep = Annotated[ClientInfo, Depends(ClientInfo)]
