"""影片接口。

读取需要 movies:read，写入需要 movies:write；修改走乐观并发控制，
客户端需提交读取时的版本号（请求体 version 或 X-Expected-Version 请求头）。
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Path, Request, Response, status
from sqlalchemy import delete
from sqlalchemy.orm import Session

from greenlight_api.core.errors import NotFoundError, ValidationFailedError
from greenlight_api.db.session import get_db, storage_errors
from greenlight_api.dependencies import requires_permission
from greenlight_api.models.movie import Movie
from greenlight_api.schemas.common import ErrorResponse, SuccessResponse
from greenlight_api.schemas.movie import MovieCreateRequest, MovieUpdateRequest
from greenlight_api.schemas.responses import DeletedData, MovieData
from greenlight_api.services.permissions import PermissionCode
from greenlight_api.services.versioning import check_and_apply
from greenlight_api.utils.response import success

logger = logging.getLogger("greenlight_api.movies")

router = APIRouter(prefix="/movies", tags=["movies"])

_READ_ERRORS = {401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}


def _movie_data(movie: Movie) -> dict:
    return {
        "id": movie.id,
        "created_at": movie.created_at,
        "title": movie.title,
        "year": movie.year,
        "runtime": movie.runtime,
        "genres": list(movie.genres),
        "version": movie.version,
    }


def _get_movie_or_404(db: Session, movie_id: UUID) -> Movie:
    with storage_errors():
        movie = db.get(Movie, movie_id)
    if movie is None:
        raise NotFoundError()
    return movie


def _presented_version(body_version: int | None, header_value: str | None, current: int) -> int:
    """确定客户端提交的版本号。

    1. 请求体与请求头都未提供时，以本次读取到的版本为准。
    2. 两者都提供时必须一致。
    """
    header_version: int | None = None
    if header_value is not None:
        try:
            header_version = int(header_value.strip())
        except ValueError:
            raise ValidationFailedError(
                details={"errors": [{"field": "X-Expected-Version", "message": "must be an integer"}]}
            ) from None
    if body_version is not None and header_version is not None and body_version != header_version:
        raise ValidationFailedError(
            details={"errors": [{"field": "version", "message": "does not match X-Expected-Version"}]}
        )
    if body_version is not None:
        return body_version
    if header_version is not None:
        return header_version
    return current


@router.post(
    "",
    summary="创建影片",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessResponse[MovieData],
    responses={**_READ_ERRORS, 422: {"model": ErrorResponse}},
)
def create_movie(
    payload: MovieCreateRequest,
    request: Request,
    response: Response,
    _=Depends(requires_permission(PermissionCode.MOVIES_WRITE)),
    db: Session = Depends(get_db),
):
    """创建影片，初始版本号为 1。"""
    movie = Movie(
        title=payload.title,
        year=payload.year,
        runtime=payload.runtime,
        genres=payload.genres,
        version=1,
    )
    with storage_errors():
        db.add(movie)
        db.commit()
        db.refresh(movie)

    response.headers["Location"] = f"{request.url.path.rstrip('/')}/{movie.id}"
    return success(request, _movie_data(movie))


@router.get(
    "/{movie_id}",
    summary="查询影片",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[MovieData],
    responses=_READ_ERRORS,
)
def get_movie(
    request: Request,
    movie_id: UUID = Path(..., description="影片 ID。"),
    _=Depends(requires_permission(PermissionCode.MOVIES_READ)),
    db: Session = Depends(get_db),
):
    """查询影片详情。"""
    return success(request, _movie_data(_get_movie_or_404(db, movie_id)))


@router.patch(
    "/{movie_id}",
    summary="修改影片",
    description="按提交的版本号做条件更新；版本已过期时返回 409，需重新读取后再试。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[MovieData],
    responses={**_READ_ERRORS, 409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def update_movie(
    payload: MovieUpdateRequest,
    request: Request,
    movie_id: UUID = Path(..., description="影片 ID。"),
    expected_version: str | None = Header(default=None, alias="X-Expected-Version"),
    _=Depends(requires_permission(PermissionCode.MOVIES_WRITE)),
    db: Session = Depends(get_db),
):
    """局部更新影片。"""
    movie = _get_movie_or_404(db, movie_id)
    presented = _presented_version(payload.version, expected_version, movie.version)
    values = payload.model_dump(exclude_unset=True, exclude={"version"})
    # 显式传入 null 的字段视为未提供。
    values = {key: value for key, value in values.items() if value is not None}

    new_version = check_and_apply(
        db,
        Movie,
        resource_id=movie_id,
        presented_version=presented,
        values=values,
    )
    with storage_errors():
        db.commit()
        db.refresh(movie)

    logger.info("movie updated movie_id=%s version=%s", movie_id, new_version)
    return success(request, _movie_data(movie))


@router.delete(
    "/{movie_id}",
    summary="删除影片",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[DeletedData],
    responses=_READ_ERRORS,
)
def delete_movie(
    request: Request,
    movie_id: UUID = Path(..., description="影片 ID。"),
    _=Depends(requires_permission(PermissionCode.MOVIES_WRITE)),
    db: Session = Depends(get_db),
):
    """删除影片。"""
    with storage_errors():
        result = db.execute(delete(Movie).where(Movie.id == movie_id))
        if not result.rowcount:
            raise NotFoundError()
        db.commit()

    logger.info("movie deleted movie_id=%s", movie_id)
    return success(request, {"id": movie_id, "deleted": True})
