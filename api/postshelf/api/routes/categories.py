import logging

from fastapi import APIRouter, Depends, HTTPException, status

from postshelf.core.auth import Principal
from postshelf.core.security import get_current_user
from postshelf.services.repository import RepositoryUnavailableError, get_repository

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=list[str])
async def list_categories(repository=Depends(get_repository)) -> list[str]:
    try:
        return await repository.list_categories()
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


@router.delete("/{category}", response_model=list[str])
async def delete_category(
    category: str,
    principal: Principal = Depends(get_current_user),
    repository=Depends(get_repository),
) -> list[str]:
    if not category.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Category parameter is required")

    try:
        remaining = await repository.delete_category(category)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    logger.info("category deleted name=%s actor=%s", category, principal.subject)
    return remaining
