"""
Authentication and authorization seams.

Tokens are issued by the auth service; this module only verifies them
and turns the payload into a Caller. Authorization is a yes/no question
asked of an Authorizer, so deployments can plug in their own policy.
"""

from typing import Optional, Protocol

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import ADMIN_ROLE, JWT_ALGORITHM, JWT_SECRET
from app.schemas import Caller, ExamRecord
from app.logging_config import get_logger, log_with_context

logger = get_logger("http")

bearer_scheme = HTTPBearer(auto_error=False)


class Authorizer(Protocol):
    def is_authorized(self, caller: Caller, exam: ExamRecord) -> bool:
        ...


class OwnerOrAdminAuthorizer:
    """Exam authors may act on their own exams; admins may act on any."""

    def __init__(self, admin_role: str = ADMIN_ROLE):
        self.admin_role = admin_role

    def is_authorized(self, caller: Caller, exam: ExamRecord) -> bool:
        return caller.role == self.admin_role or caller.id == exam.created_by


def decode_token(token: str, secret: str = JWT_SECRET, algorithm: str = JWT_ALGORITHM) -> Caller:
    """
    Verify a bearer token and build the Caller it identifies.

    Raises:
        jwt.InvalidTokenError: signature, expiry or payload is invalid
    """
    payload = jwt.decode(token, secret, algorithms=[algorithm])
    caller_id = payload.get("id") or payload.get("sub")
    if not caller_id:
        raise jwt.InvalidTokenError("Token carries no caller id")
    return Caller(
        id=str(caller_id),
        role=payload.get("role", "teacher"),
        name=payload.get("name"),
        email=payload.get("email")
    )


def issue_token(caller: Caller, secret: str = JWT_SECRET, algorithm: str = JWT_ALGORITHM) -> str:
    """Mint a token for a caller (seeding script and tests)."""
    payload = {"id": caller.id, "role": caller.role}
    if caller.name:
        payload["name"] = caller.name
    if caller.email:
        payload["email"] = caller.email
    return jwt.encode(payload, secret, algorithm=algorithm)


def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Caller:
    """FastAPI dependency: 401 unless a valid bearer token is presented."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Unauthorized",
                            headers={"WWW-Authenticate": "Bearer"})
    try:
        return decode_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        log_with_context(logger, "WARNING", "Rejected bearer token: {}".format(e))
        raise HTTPException(status_code=401, detail="Invalid token",
                            headers={"WWW-Authenticate": "Bearer"})
