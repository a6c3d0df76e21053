from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class AuthenticatedUser(BaseModel):
    """Subscriber context passed through authentication dependencies"""

    model_config = ConfigDict(from_attributes=True)

    # `sub` claim; the subscriber id
    user_id: str
    email: Optional[str] = None
    claims: Dict[str, Any] = Field(default_factory=dict)
