import logging

from fastapi import APIRouter, Depends, HTTPException, status

from postshelf.core.auth import Principal
from postshelf.core.config import Settings, get_settings
from postshelf.core.security import get_current_user
from postshelf.core.urls import is_linkedin_url
from postshelf.schemas.posts import (
    AuthorReextractOut,
    ManualContentRequest,
    PostDeletedOut,
    PostOut,
    UpdateCategoriesRequest,
)
from postshelf.services.extractor import ExtractionError
from postshelf.services.linkedin import PLACEHOLDER_AUTHOR
from postshelf.services.pipeline import get_pipeline
from postshelf.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=list[PostOut])
async def list_posts(repository=Depends(get_repository)) -> list[PostOut]:
    try:
        rows = await repository.list_posts()
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [PostOut(**row) for row in rows]


@router.get("/category/{category}", response_model=list[PostOut])
async def list_posts_by_category(category: str, repository=Depends(get_repository)) -> list[PostOut]:
    try:
        rows = await repository.list_posts_by_category(category)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [PostOut(**row) for row in rows]


@router.get("/{post_id}", response_model=PostOut)
async def get_post(post_id: int, repository=Depends(get_repository)) -> PostOut:
    try:
        row = await repository.get_post(post_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return PostOut(**row)


@router.post("/{post_id}/update-categories", response_model=PostOut)
async def update_post_categories(
    post_id: int,
    payload: UpdateCategoriesRequest,
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> PostOut:
    new_names = _unique(name.strip() for name in payload.new_categories if name.strip())
    selected = _unique([*(name for name in payload.categories if name), *new_names])
    if not selected:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one category is required")

    limit = settings.max_categories_per_post
    if len(selected) > limit:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Maximum of {limit} categories per post allowed (received {len(selected)})",
        )

    try:
        await repository.get_post(post_id)
        for name in new_names:
            await repository.add_category(name)
        row = await repository.update_post(post_id, {"categories": selected})
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    logger.info("post categories updated post_id=%s categories=%s", post_id, selected)
    return PostOut(**row)


@router.post("/{post_id}/manual-content", response_model=PostOut)
async def submit_manual_content(
    post_id: int,
    payload: ManualContentRequest,
    pipeline=Depends(get_pipeline),
) -> PostOut:
    try:
        row = await pipeline.apply_manual_content(post_id, payload.content, payload.author_name)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    logger.info("manual content stored post_id=%s status=%s", post_id, row["processing_status"])
    return PostOut(**row)


@router.post("/{post_id}/reextract-author", response_model=AuthorReextractOut)
async def reextract_author(
    post_id: int,
    repository=Depends(get_repository),
    pipeline=Depends(get_pipeline),
) -> AuthorReextractOut:
    try:
        post = await repository.get_post(post_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    if not is_linkedin_url(post["url"]):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only LinkedIn posts are supported for author re-extraction",
        )

    try:
        author_name, author_image = await pipeline.extractor.reextract_author(post["url"])
    except ExtractionError as exc:
        logger.warning("author re-extraction failed post_id=%s failure=%s", post_id, exc.failure.value)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to re-extract author: {exc.message}",
        ) from exc

    if not author_name or author_name == PLACEHOLDER_AUTHOR:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Could not extract valid author name")

    try:
        row = await repository.update_post(
            post_id,
            {"author_name": author_name, "author_image": author_image or post["author_image"]},
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return AuthorReextractOut(message="Author information updated successfully", post=PostOut(**row))


@router.delete("/{post_id}", response_model=PostDeletedOut)
async def delete_post(
    post_id: int,
    principal: Principal = Depends(get_current_user),
    repository=Depends(get_repository),
) -> PostDeletedOut:
    try:
        deleted = await repository.delete_post(post_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    logger.info("post deleted post_id=%s actor=%s", post_id, principal.subject)
    return PostDeletedOut(success=True, message="Post deleted successfully")


def _unique(names) -> list[str]:
    seen: list[str] = []
    for name in names:
        if name not in seen:
            seen.append(name)
    return seen
