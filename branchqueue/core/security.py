import uuid
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from pydantic import BaseModel
from branchqueue.core.config import settings

http_bearer = HTTPBearer(auto_error=False)

class Principal(BaseModel):
    user_id: uuid.UUID
    branch_id: uuid.UUID | None = None
    roles: list[str] = []
    scopes: list[str] = []

    @property
    def is_admin(self) -> bool:
        return "admin" in self.roles

    @property
    def label(self) -> str:
        role = self.roles[0] if self.roles else "user"
        return f"{role}:{self.user_id}"

def _decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG], audience=settings.REQUIRED_AUDIENCE)
        return payload
    except JWTError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}")

async def get_principal(creds: HTTPAuthorizationCredentials | None = Depends(http_bearer)) -> Principal:
    # In local/dev, allow missing token and act as an admin
    if creds is None and settings.ENV in ("local", "test"):
        return Principal(user_id=uuid.uuid4(), roles=["admin"], scopes=["*"])
    if creds is None:
        raise HTTPException(status_code=401, detail="Missing token")

    data = _decode_token(creds.credentials)
    user_id = uuid.UUID(str(data.get("sub") or data.get("user_id")))
    branch_id = data.get("branch_id")
    roles = data.get("roles", [])
    scopes = data.get("scopes", [])
    return Principal(user_id=user_id, branch_id=uuid.UUID(str(branch_id)) if branch_id else None, roles=roles, scopes=scopes)

def require_scopes(*needed: str):
    def dep(principal: Principal = Depends(get_principal)) -> Principal:
        if "*" in principal.scopes:
            return principal
        if not set(needed).issubset(set(principal.scopes)):
            raise HTTPException(status_code=403, detail="Insufficient scopes")
        return principal
    return dep
