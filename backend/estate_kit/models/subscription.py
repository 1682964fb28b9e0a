"""
Subscription model mirroring the Shopify billing state of an account
"""

from sqlalchemy import Column, String, DateTime, Enum as SQLEnum
from enum import Enum

from estate_kit.models.base import BaseModel

class SubscriptionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    PAST_DUE = "past_due"

class Subscription(BaseModel):
    __tablename__ = "subscriptions"

    user_id = Column(String(255), nullable=False, index=True)

    shopify_subscription_id = Column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        comment="Identifier of the Shopify order backing this subscription"
    )

    plan = Column(String(100), nullable=False, default="basic")

    status = Column(
        SQLEnum(SubscriptionStatus),
        default=SubscriptionStatus.PENDING,
        nullable=False,
        index=True
    )

    last_billing_date = Column(DateTime(timezone=True), nullable=True)

    end_date = Column(DateTime(timezone=True), nullable=True)
