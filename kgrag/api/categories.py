"""Document category listing."""

from fastapi import APIRouter, Depends

from kgrag.api.dependencies import get_repositories
from kgrag.db.repositories import Repositories

router = APIRouter()


@router.get(
    "",
    response_model=list[str],
    summary="List categories",
    description="Distinct non-empty document categories, sorted.",
)
async def list_categories(repos: Repositories = Depends(get_repositories)) -> list[str]:
    return await repos.documents.list_categories()
