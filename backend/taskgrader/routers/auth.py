from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from fastapi.security.utils import get_authorization_scheme_param
from jose import JWTError, jwt
from pydantic import BaseModel
import logging

from ..settings import settings

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)
# Tokens are issued by the identity provider; this service only verifies them
bearer_scheme = HTTPBearer(auto_error=False)


class User(BaseModel):
	id: str
	email: Optional[str] = None


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	now = datetime.now(timezone.utc)
	try:
		return now + (expires_delta or timedelta(hours=1))
	except OverflowError:
		# Cap at far future but within datetime bounds
		return datetime.max.replace(tzinfo=timezone.utc)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	"""Mint a token the way the identity provider does (used by tests and local tooling)."""
	to_encode = data.copy()
	to_encode.update({"exp": _resolve_expiry(expires_delta)})
	if settings.jwt_audience and "aud" not in to_encode:
		to_encode["aud"] = settings.jwt_audience
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _credentials_exception() -> HTTPException:
	return HTTPException(
		status_code=401,
		detail="User not authenticated",
		headers={"WWW-Authenticate": "Bearer"},
	)


def user_from_token(token: str) -> User:
	try:
		payload = jwt.decode(
			token,
			settings.jwt_secret_key,
			algorithms=[settings.jwt_algorithm],
			audience=settings.jwt_audience,
			options={"verify_aud": settings.jwt_audience is not None},
		)
	except JWTError as e:
		logger.info("Rejected bearer token: %s", e)
		raise _credentials_exception()
	user_id = payload.get("sub")
	if not user_id:
		raise _credentials_exception()
	return User(id=str(user_id), email=payload.get("email"))


def user_from_authorization(authorization: Optional[str]) -> User:
	"""Authenticate a raw Authorization header value."""
	scheme, token = get_authorization_scheme_param(authorization)
	if not token or scheme.lower() != "bearer":
		raise _credentials_exception()
	return user_from_token(token)


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> User:
	if credentials is None or credentials.scheme.lower() != "bearer":
		raise _credentials_exception()
	return user_from_token(credentials.credentials)


@router.get("/me", response_model=User)
async def me(user: User = Depends(get_current_user)):
	return user
