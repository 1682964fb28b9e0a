"""
Pydantic schemas for identities and authenticated sessions
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

class TokenClaims(BaseModel):
    """Verified claims returned by the identity provider"""

    subject: str = Field(..., description="Identity provider subject (user id)")
    expires_at: Optional[datetime] = Field(None, description="Credential expiry")

class UserProfile(BaseModel):
    """Canonical user profile as exposed by the identity provider"""

    user_id: str = Field(..., description="Identity provider subject")
    email: Optional[str] = None
    name: Optional[str] = None
    email_verified: bool = False
    roles: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

class SessionRecord(BaseModel):
    """Server-held session as persisted in the session store"""

    session_id: str
    user_id: str
    user: UserProfile
    device_fingerprint: str
    ip_address: str
    user_agent: str = ""
    created_at: datetime
    last_accessed_at: datetime
    expires_at: datetime

class SessionSummary(BaseModel):
    """Session listing entry; carries a truncated identifier only"""

    session_hint: str
    ip_address: str
    user_agent: str
    created_at: datetime
    last_accessed_at: datetime
    expires_at: datetime

    @classmethod
    def from_record(cls, record: SessionRecord) -> "SessionSummary":
        return cls(
            session_hint=record.session_id[:8],
            ip_address=record.ip_address,
            user_agent=record.user_agent,
            created_at=record.created_at,
            last_accessed_at=record.last_accessed_at,
            expires_at=record.expires_at,
        )

class AuthResult(BaseModel):
    """Outcome of a successful authentication"""

    user: UserProfile
    session_id: str
    expires_in: int = Field(..., description="Session lifetime in seconds")

class SecurityContext(BaseModel):
    """Match flags reported for every existing session, valid or not"""

    device_match: bool
    ip_match: bool
    concurrent: int = Field(..., description="Active sessions currently held by the user")

class SessionValidationResult(BaseModel):
    is_valid: bool
    user: Optional[UserProfile] = None
    security_context: Optional[SecurityContext] = None
