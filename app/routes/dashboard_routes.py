from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.db.client import get_db
from app.services import dashboard_service

router = APIRouter()


@router.get("/requester/{uid}")
async def requester_dashboard_route(uid: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    data = await dashboard_service.requester_dashboard(db, uid)
    return {"success": True, "data": data}


@router.get("/owner/{uid}")
async def owner_dashboard_route(uid: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    data = await dashboard_service.owner_dashboard(db, uid)
    return {"success": True, "data": data}


@router.get("/requests/pending-owner/{uid}")
async def pending_owner_requests_route(uid: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    requests = await dashboard_service.owner_requests_in(db, uid, "ownersPending")
    return {"success": True, "requests": requests}


@router.get("/requests/approved-owner/{uid}")
async def approved_owner_requests_route(uid: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    requests = await dashboard_service.owner_requests_in(db, uid, "ownersAccepted")
    return {"success": True, "requests": requests}
