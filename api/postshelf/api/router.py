from fastapi import APIRouter

from postshelf.api.routes import analyze, auth, categories, health, posts

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(analyze.router, prefix="/api", tags=["posts"])
api_router.include_router(posts.router, prefix="/api/posts", tags=["posts"])
api_router.include_router(categories.router, prefix="/api/categories", tags=["categories"])
api_router.include_router(auth.router, prefix="/api/auth", tags=["auth"])
