"""Per-owner demo data."""

from fastapi import APIRouter, Depends

from curabot.api.deps import get_scope
from curabot.patients.seed import seed_demo_data
from curabot.storage.scoped import OwnerScope

router = APIRouter(tags=["userdata"])


@router.post("/userdata/seed")
async def seed(scope: OwnerScope = Depends(get_scope)):
    return await seed_demo_data(scope)
