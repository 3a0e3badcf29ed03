"""
Account Routes

Self-service account deletion.
"""

import logging

from fastapi import APIRouter, Depends

from app.api.dependencies import get_account_service, get_current_user_id
from app.infrastructure.services.account_service import AccountDeletionResult, AccountService


logger = logging.getLogger(__name__)

router = APIRouter()


@router.delete("/account", response_model=AccountDeletionResult)
async def delete_account(
    user_id: str = Depends(get_current_user_id),
    service: AccountService = Depends(get_account_service),
):
    """
    Delete the current user's account data.

    Active billing subscriptions are canceled and the billing customer is
    deleted on a best-effort basis; usage, subscriptions and the profile
    are then removed.
    """
    return await service.delete_account(user_id)
