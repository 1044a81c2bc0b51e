from fastapi import APIRouter
from branchqueue.modules.catalog.router import router as catalog_router
from branchqueue.modules.availability.router import router as availability_router
from branchqueue.modules.appointments.router import router as appointments_router
from branchqueue.modules.queue.router import router as queue_router
from branchqueue.modules.audit.router import router as audit_router

api_router = APIRouter()
api_router.include_router(catalog_router, tags=["catalog"])
api_router.include_router(availability_router, tags=["availability"])
api_router.include_router(appointments_router, tags=["appointments"])
api_router.include_router(queue_router, tags=["queue"])
api_router.include_router(audit_router, tags=["audit"])

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
