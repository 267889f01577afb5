from fastapi import APIRouter

from blockserved.api.v1.health import router as health_router
from blockserved.api.v1.notices import router as notices_router
from blockserved.api.v1.access import router as access_router
from blockserved.api.v1.views import router as views_router
from blockserved.api.v1.process_servers import router as process_servers_router
from blockserved.api.v1.metadata import router as metadata_router
from blockserved.api.v1.admin.auth import router as admin_auth_router
from blockserved.api.v1.admin.audit import router as admin_audit_router


v1_router = APIRouter()

# ------------------------------------------------------------------
# SYSTEM
# ------------------------------------------------------------------
v1_router.include_router(health_router, tags=["health"])

# ------------------------------------------------------------------
# NOTICE RECORDS / ACCESS
# ------------------------------------------------------------------
v1_router.include_router(notices_router)
v1_router.include_router(access_router)
v1_router.include_router(views_router)
v1_router.include_router(metadata_router)

# ------------------------------------------------------------------
# SERVERS / ADMIN
# ------------------------------------------------------------------
v1_router.include_router(process_servers_router)
v1_router.include_router(admin_auth_router)
v1_router.include_router(admin_audit_router)
