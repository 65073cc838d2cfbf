from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from maintrack import crud
from maintrack.deps import get_db, require_capability
from maintrack.models import Asset
from maintrack.scheduling import asset_type_bucket
from maintrack.schemas import AssetIn, AssetOut
from maintrack.session_context import AuthContext

router = APIRouter(prefix="/assets", tags=["assets"])


def _asset_out(a: Asset) -> AssetOut:
  return AssetOut(
    id=a.id,
    name=a.name,
    type=a.type,
    type_bucket=asset_type_bucket(a.type),
    description=a.description,
    purchasedate=a.purchasedate,
    created_at=a.created_at,
    updated_at=a.updated_at,
  )


@router.get("", response_model=list[AssetOut])
async def list_assets(
  _: AuthContext = Depends(require_capability("assets.view")),
  db: AsyncSession = Depends(get_db),
) -> list[AssetOut]:
  return [_asset_out(a) for a in await crud.assets.list(db)]


@router.get("/{asset_id}", response_model=AssetOut)
async def get_asset(
  asset_id: str,
  _: AuthContext = Depends(require_capability("assets.view")),
  db: AsyncSession = Depends(get_db),
) -> AssetOut:
  return _asset_out(await crud.assets.get(db, asset_id))


@router.post("", response_model=AssetOut)
async def create_asset(
  payload: AssetIn,
  actor: AuthContext = Depends(require_capability("assets.manage")),
  db: AsyncSession = Depends(get_db),
) -> AssetOut:
  a = await crud.assets.create(db, payload.model_dump(), actor_id=actor.identity_id)
  return _asset_out(a)


@router.patch("/{asset_id}", response_model=AssetOut)
async def update_asset(
  asset_id: str,
  payload: AssetIn,
  actor: AuthContext = Depends(require_capability("assets.manage")),
  db: AsyncSession = Depends(get_db),
) -> AssetOut:
  a = await crud.assets.update(db, asset_id, payload.model_dump(exclude_unset=True), actor_id=actor.identity_id)
  return _asset_out(a)


@router.delete("/{asset_id}")
async def delete_asset(
  asset_id: str,
  actor: AuthContext = Depends(require_capability("assets.manage")),
  db: AsyncSession = Depends(get_db),
) -> dict:
  await crud.assets.delete(db, asset_id, actor_id=actor.identity_id)
  return {"ok": True}
