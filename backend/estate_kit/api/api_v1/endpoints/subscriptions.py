"""
Subscription endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, status

from estate_kit.api.deps import CurrentSession, get_current_session, get_subscription_service
from estate_kit.services.subscription_service import SubscriptionService

router = APIRouter()

@router.get("/me")
def my_subscription(
    current: CurrentSession = Depends(get_current_session),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Latest subscription of the caller"""
    subscription = service.get_subscription(current.user_id)
    if subscription is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    return subscription
