import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response, status

from postshelf.core.urls import UrlValidationError, normalize_url
from postshelf.schemas.posts import AnalyzeAccepted, AnalyzeRequest, PostOut
from postshelf.services.dedupe import find_existing_post
from postshelf.services.pipeline import get_pipeline
from postshelf.services.repository import RepositoryUnavailableError, get_repository

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/analyze", response_model=AnalyzeAccepted, status_code=status.HTTP_201_CREATED)
async def analyze_url(
    payload: AnalyzeRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    repository=Depends(get_repository),
    pipeline=Depends(get_pipeline),
) -> AnalyzeAccepted:
    try:
        normalized = normalize_url(payload.url)
    except UrlValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    try:
        existing = find_existing_post(payload.url, normalized, await repository.list_posts())
        if existing is not None:
            logger.info("url already stored url=%s post_id=%s", payload.url, existing["id"])
            response.status_code = status.HTTP_200_OK
            return AnalyzeAccepted(
                message="Content already exists",
                post_id=existing["id"],
                post=PostOut(**existing),
                exists=True,
            )
        row = await repository.create_post(url=payload.url)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    # Runs after the response is sent.
    background_tasks.add_task(pipeline.run, row["id"], payload.url)
    logger.info("post queued for processing post_id=%s url=%s", row["id"], payload.url)
    return AnalyzeAccepted(
        message="Content is being processed",
        post_id=row["id"],
        post=PostOut(**row),
        exists=False,
    )
