"""
Advisory lock API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from . import schemas, service

router = APIRouter()


@router.post("/locks", status_code=status.HTTP_201_CREATED)
async def acquire_lock(
    request: schemas.AcquireLockRequest,
    locks: service.LockRegistry = Depends(service.registry),
) -> schemas.LockResponse:
    lock = locks.acquire(request.entity, request.item_id, request.owner)
    return schemas.LockResponse(**lock.to_dict())


@router.get("/locks/{entity}/{item_id}")
async def get_lock(
    entity: str,
    item_id: str,
    locks: service.LockRegistry = Depends(service.registry),
) -> schemas.LockStatusResponse:
    lock = locks.get(entity, item_id)
    if lock is None:
        return schemas.LockStatusResponse(entity=entity, item_id=item_id, locked=False)
    return schemas.LockStatusResponse(
        entity=entity,
        item_id=item_id,
        locked=True,
        owner=lock.owner,
        expires_at=lock.expires_at,
    )


@router.delete("/locks/owners/{owner}")
async def release_owner_locks(
    owner: str,
    locks: service.LockRegistry = Depends(service.registry),
) -> dict:
    return {"owner": owner, "released": locks.release_owner(owner)}


@router.delete("/locks/{token}")
async def release_lock(
    token: str,
    locks: service.LockRegistry = Depends(service.registry),
) -> schemas.LockResponse:
    lock = locks.release(token)
    return schemas.LockResponse(**lock.to_dict())
