"""HTTP Basic gate for the admin surface"""
import secrets

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from config import settings

REALM = "RangerWatch Admin"

security = HTTPBasic(realm=REALM)


def credentials_match(username: str, password: str) -> bool:
    # Unset credentials lock the admin surface entirely
    if not settings.ADMIN_USERNAME or not settings.ADMIN_PASSWORD:
        return False
    user_ok = secrets.compare_digest(username.encode(), settings.ADMIN_USERNAME.encode())
    pass_ok = secrets.compare_digest(password.encode(), settings.ADMIN_PASSWORD.encode())
    return user_ok and pass_ok


def require_admin(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    if not credentials_match(credentials.username, credentials.password):
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": f'Basic realm="{REALM}"'},
        )
    return credentials.username
