# marketplace/app/api/endpoints/admin.py
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.app.api import deps
from marketplace.app.db.base import get_db
from marketplace.app.models.user import User
from marketplace.app.schemas.common import ApiResponse
from marketplace.app.services.cleanup import run_cleanup

router = APIRouter()


class CleanupData(BaseModel):
    sessions_removed: int
    login_attempts_removed: int


@router.post("/maintenance/cleanup", response_model=ApiResponse[CleanupData])
async def trigger_cleanup(
        db: AsyncSession = Depends(get_db),
        admin: User = Depends(deps.require_admin),
):
    """Run the expired-session / old-login-attempt sweep right now."""
    result = await run_cleanup(db)
    return ApiResponse(
        message="Cleanup finished.",
        data=CleanupData(
            sessions_removed=result.sessions_removed,
            login_attempts_removed=result.login_attempts_removed,
        ),
    )
