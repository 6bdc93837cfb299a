import os
from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from pydantic import BaseModel

import shopsphere.config  # noqa: F401  loads .env


class CurrentUser(BaseModel):
    id: str
    email: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_current_user(authorization: str = Header(...)) -> CurrentUser:
    if not os.getenv("JWT_SECRET"):
        raise HTTPException(status_code=500, detail="JWT_SECRET not configured")
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("unsupported scheme")
        claims = jwt.decode(token, os.environ["JWT_SECRET"], algorithms=["HS256"])
        return CurrentUser(
            id=claims["sub"],
            email=claims["email"],
            role=claims.get("role", "user"),
        )
    except (ValueError, KeyError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
