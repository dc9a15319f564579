from fastapi import APIRouter, Depends

from postshelf.core.auth import Principal
from postshelf.core.security import get_current_user
from postshelf.schemas.auth import CurrentUserOut

router = APIRouter()


@router.get("/user", response_model=CurrentUserOut)
async def current_user(principal: Principal = Depends(get_current_user)) -> CurrentUserOut:
    return CurrentUserOut(id=principal.subject, email=principal.email, role=principal.role)
