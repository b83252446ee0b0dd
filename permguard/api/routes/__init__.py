"""
API routes aggregation.
"""

from fastapi import APIRouter

from .assignments import router as assignments_router
from .permissions import router as permissions_router
from .roles import router as roles_router
from .user_roles import router as user_roles_router
from .templates import router as templates_router
from .rules import router as rules_router
from .logs import router as logs_router

router = APIRouter()

# Registered first: /permissions/batch-assign and /permissions/check must
# not be shadowed by /permissions/{permission_id}
router.include_router(assignments_router, tags=["assignments"])
router.include_router(permissions_router, prefix="/permissions", tags=["permissions"])
router.include_router(roles_router, prefix="/roles", tags=["roles"])
router.include_router(user_roles_router, tags=["user-roles"])
router.include_router(templates_router, prefix="/permission-templates", tags=["templates"])
router.include_router(rules_router, prefix="/data-scope-rules", tags=["data-scope-rules"])
router.include_router(logs_router, prefix="/permission-logs", tags=["permission-logs"])
