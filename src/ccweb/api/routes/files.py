"""File routes: directory tree, path validation, file reads."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from ccweb.api.deps import Services
from ccweb.api.errors import ApiError, unwrap
from ccweb.models.files import DirectoryTree, FileReadResponse, PathValidation

router = APIRouter(prefix="/api/files", tags=["files"])


class ValidatePathRequest(BaseModel):
    path: str = ""


@router.get("/tree", response_model_exclude_none=True)
async def get_tree(
    services: Services, path: str | None = None, depth: int | None = None
) -> DirectoryTree:
    absolute_path, tree = unwrap(await services.file_service.get_tree(path, depth))
    return DirectoryTree(path=absolute_path, tree=tree)


@router.post("/validate", response_model_exclude_none=True)
def validate_path(request: ValidatePathRequest, services: Services) -> PathValidation:
    if not request.path:
        raise ApiError(400, "Path is required")
    return services.file_service.validate(request.path)


@router.get("/read")
async def read_file(services: Services, path: str = "") -> FileReadResponse:
    if not path:
        raise ApiError(400, "Path is required")
    return unwrap(await services.file_service.read_file(path))
