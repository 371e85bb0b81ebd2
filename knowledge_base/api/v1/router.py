from fastapi import APIRouter
from knowledge_base.api.v1.endpoints import documents

# ============================================================
# Main API v1 Router
# ============================================================

api_router = APIRouter()

# Include document routes at /documents
api_router.include_router(
    documents.router,
    prefix="/documents"
)
