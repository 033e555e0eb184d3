"""
Secured router.

Endpoints that require a valid bearer token, one of them restricted to the
"Admin" role.
"""
from fastapi import APIRouter, Depends

from authgate.auth.middleware import Principal, RBACMiddleware, get_current_principal
from authgate.auth.store import ADMIN_ROLE

router = APIRouter(tags=["secured"])


@router.get("")
async def secured(principal: Principal = Depends(get_current_principal)):
    """Available to any authenticated caller."""
    return {"message": "This is a secured endpoint", "user": principal.name}


@router.get("/admin")
async def admin_only(principal: Principal = Depends(RBACMiddleware.has_role(ADMIN_ROLE))):
    """Available only to callers holding the Admin role."""
    return {"message": "This is an admin-only endpoint"}
