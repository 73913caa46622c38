from fastapi import APIRouter
from .auth_events import router as auth_events_router
from .fingerprinting_admin import router as fingerprinting_admin_router


router = APIRouter()

router.include_router(auth_events_router)
router.include_router(fingerprinting_admin_router)
