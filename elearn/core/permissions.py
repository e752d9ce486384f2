from enum import Enum
from typing import Optional

from fastapi import Depends, Header, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase

from elearn.core.database import get_db
from elearn.core.security import decode_access_token


class AccountRole(str, Enum):
    """Role codes stored on the accounts collection"""
    ADMIN = "0"
    TUTOR = "1"
    STAFF = "2"


class Role(str, Enum):
    STUDENT = "student"
    ADMIN = "admin"
    TUTOR = "tutor"
    STAFF = "staff"


ACCOUNT_ROLE_NAMES = {
    AccountRole.ADMIN.value: Role.ADMIN,
    AccountRole.TUTOR.value: Role.TUTOR,
    AccountRole.STAFF.value: Role.STAFF,
}


class ActorContext:
    """
    Authenticated principal behind a request
    """
    def __init__(self, kind: str, profile: dict):
        self.kind = kind
        self.profile = profile
        self.email = profile.get("email")
        self.first_name = profile.get("first_name", "")
        self.last_name = profile.get("last_name", "")

        if kind == "student":
            self.actor_id = profile["student_id"]
            self.role = Role.STUDENT
        else:
            self.actor_id = profile["account_id"]
            self.role = ACCOUNT_ROLE_NAMES.get(profile.get("role"), Role.STAFF)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip()
    return None


async def resolve_actor(db: AsyncIOMotorDatabase, token: str) -> ActorContext:
    """Decode a token and load the matching active student or account"""
    claims = decode_access_token(token)
    subject = claims.get("sub")
    kind = claims.get("kind")

    if not subject or kind not in ("student", "account"):
        raise HTTPException(status_code=401, detail="Invalid token payload")

    if kind == "student":
        profile = await db.students.find_one({"student_id": subject})
    else:
        profile = await db.accounts.find_one({"account_id": subject})

    if not profile or not profile.get("is_active", False):
        raise HTTPException(status_code=401, detail="Account not found or inactive")

    return ActorContext(kind, profile)


async def get_current_actor(
    authorization: Optional[str] = Header(None),
    db: AsyncIOMotorDatabase = Depends(get_db)
) -> ActorContext:
    """
    Dependency: resolves the bearer token to a student or account

    Raises:
        401: Missing, invalid or expired token, or unknown / inactive actor
    """
    token = extract_bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Authorization token required")

    return await resolve_actor(db, token)


def require_roles(*roles: Role):
    """
    Dependency factory: only lets the listed roles through

    Usage:
        admin: ActorContext = Depends(require_roles(Role.ADMIN))

    Raises:
        403: Authenticated actor has a different role
    """
    allowed = set(roles)

    async def checker(actor: ActorContext = Depends(get_current_actor)) -> ActorContext:
        if actor.role not in allowed:
            names = ", ".join(sorted(role.value for role in allowed))
            raise HTTPException(
                status_code=403,
                detail=f"Access denied. Requires role: {names}"
            )
        return actor

    return checker


get_current_student = require_roles(Role.STUDENT)
get_current_tutor = require_roles(Role.TUTOR)
get_current_admin = require_roles(Role.ADMIN)
