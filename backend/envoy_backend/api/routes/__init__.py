from fastapi import APIRouter
from .threads import router as threads_router
from .selection import router as selection_router
from .chat import router as chat_router
from .backend import router as backend_router
from .presentation import router as presentation_router

router = APIRouter()

router.include_router(threads_router, prefix="/threads", tags=["threads"])
router.include_router(selection_router, prefix="/selection", tags=["selection"])
router.include_router(chat_router, prefix="/chat", tags=["chat"])
router.include_router(backend_router, prefix="/backend", tags=["backend"])
router.include_router(presentation_router, prefix="/presentation", tags=["presentation"])
