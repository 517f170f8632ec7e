"""
Generic REST endpoints for one entity, backed by a `Mediator`.

| verb   | path            | operation                  |
|--------|-----------------|----------------------------|
| POST   | /{path}         | create_one                 |
| PATCH  | /{path}         | batch_create_update_delete |
| GET    | /{path}         | get_all                    |
| GET    | /{path}/{id}    | get_one                    |
| PUT    | /{path}/{id}    | update_one                 |
| PUT    | /{path}         | update_many                |
| DELETE | /{path}/{id}    | delete_one                 |
| DELETE | /{path}         | delete_all                 |

Path parameters are merged into bodies and query filters, so nested paths
such as `users/{user_id}/tasks` scope every operation to the parent.
"""

from __future__ import annotations

import json
from typing import Any, Sequence

from fastapi import APIRouter, Depends, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response

from core import errors

from .mediator import Mediator
from .provider import Include

JSON_MEDIA_TYPE = "application/json"


async def require_json(request: Request) -> None:
    content_type = request.headers.get("content-type", "")
    if not content_type.startswith(JSON_MEDIA_TYPE):
        raise errors.unsupported_media_type_error()


async def reject_body(request: Request) -> None:
    body = await request.body()
    if not body.strip():
        return None
    try:
        payload = json.loads(body)
    except ValueError:
        payload = body
    if payload:
        raise errors.body_not_allowed_error()


async def _json_object(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise errors.bad_input_error() from exc
    if not isinstance(payload, dict):
        raise errors.bad_input_error("The body must be a JSON object.")
    return payload


def _query_and_params(request: Request) -> dict[str, Any]:
    merged: dict[str, Any] = dict(request.query_params)
    merged.update(request.path_params)
    return merged


def _success(results: Any, status_code: int = status.HTTP_200_OK) -> Response:
    if results is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(results))


def build_router(
    mediator: Mediator,
    route_path: str,
    include: Sequence[Include] | None = None,
) -> APIRouter:
    router = APIRouter()
    collection = "/" + route_path.strip("/")
    single = collection + "/{id}"

    @router.post(collection, dependencies=[Depends(require_json)])
    async def create_one(request: Request) -> Response:
        item = await _json_object(request)
        item.update(request.path_params)
        result = await mediator.create_one(item)
        return _success(result.unwrap(), status.HTTP_201_CREATED)

    @router.patch(collection, dependencies=[Depends(require_json)])
    async def batch(request: Request) -> Response:
        items = await _json_object(request)
        result = await mediator.batch_create_update_delete(items, dict(request.path_params))
        return _success(result.unwrap())

    @router.get(collection)
    async def get_all(request: Request) -> Response:
        result = await mediator.get_all(_query_and_params(request), include)
        return _success(result.unwrap())

    @router.get(single)
    async def get_one(request: Request) -> Response:
        result = await mediator.get_one(_query_and_params(request), include)
        return _success(result.unwrap())

    @router.put(single, dependencies=[Depends(require_json)])
    async def update_one(request: Request) -> Response:
        item = await _json_object(request)
        item.update(request.path_params)
        result = await mediator.update_one(item, dict(request.path_params))
        return _success(result.unwrap())

    @router.put(collection, dependencies=[Depends(require_json)])
    async def update_many(request: Request) -> Response:
        item = await _json_object(request)
        item.update(request.path_params)
        result = await mediator.update_many(item, _query_and_params(request))
        return _success(result.unwrap())

    @router.delete(single, dependencies=[Depends(reject_body)])
    async def delete_one(request: Request) -> Response:
        result = await mediator.delete_one(_query_and_params(request))
        return _success(result.unwrap())

    @router.delete(collection, dependencies=[Depends(reject_body)])
    async def delete_all(request: Request) -> Response:
        result = await mediator.delete_all(_query_and_params(request))
        result.unwrap()
        return _success(None)

    return router
