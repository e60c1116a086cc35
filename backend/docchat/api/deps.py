from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from docchat.core.container import Services
from docchat.core.errors import InvalidToken, PersistenceError
from docchat.db.records import UserRecord
from docchat.services.identity import Principal


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_principal(authorization: Optional[str] = Header(None), services: Services = Depends(get_services)) -> Principal:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No token provided", headers={"WWW-Authenticate": "Bearer"})
    token = authorization[len("Bearer "):].strip()
    try:
        return services.identity.verify(token)
    except InvalidToken:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token", headers={"WWW-Authenticate": "Bearer"})


async def get_current_user(principal: Principal = Depends(get_principal), services: Services = Depends(get_services)) -> UserRecord:
    repo = services.repository
    user = await repo.get_user_by_subject(principal.subject_id)
    if user:
        return user
    try:
        return await repo.create_user(principal.subject_id, principal.email, principal.display_name)
    except PersistenceError:
        # concurrent first request for the same subject
        user = await repo.get_user_by_subject(principal.subject_id)
        if not user:
            raise
        return user
