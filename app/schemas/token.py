# app/schemas/token.py
from pydantic import BaseModel, Field
from typing import List, Optional


class TokenPayload(BaseModel):
    sub: str  # user id
    org_id: Optional[str] = Field(default=None, alias="orgId")
    role: Optional[str] = None
    permissions: List[str] = []
    exp: int

    model_config = {
        "populate_by_name": True,
        "from_attributes": True,
    }

    @property
    def is_coordinator(self) -> bool:
        return self.role in ("coordinator", "admin") or "workshops:manage" in self.permissions
