import logging

from fastapi import APIRouter, Depends

from ..auth import AuthContext, get_auth_context
from ..roles import ROLE_LABELS, VIEW_PRECEDENCE, has_role, primary_view

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Users"])


@router.get("/me")
async def get_me(ctx: AuthContext = Depends(get_auth_context)):
    """Profile of the caller with the roles resolved for this request"""
    user = ctx.user
    return {
        "id": user.id,
        "phone_number": user.phone_number,
        "full_name": user.full_name,
        "roles": [role for role in VIEW_PRECEDENCE if role in ctx.roles],
        "role_labels": {role: ROLE_LABELS[role] for role in ctx.roles if role in ROLE_LABELS},
        "primary_view": primary_view(ctx.roles),
        "is_impersonating": ctx.is_impersonating,
        "impersonator_id": ctx.impersonator_id,
    }


@router.get("/roles/check/{role}")
async def check_role(role: str, ctx: AuthContext = Depends(get_auth_context)):
    return {"role": role, "has_role": has_role(ctx.roles, role)}
