from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class CredentialStatusResponse(BaseModel):
    site_code: str
    interactive_present: bool = False
    interactive_expired: bool = True
    interactive_expires_at: Optional[datetime] = None
    batch_present: bool = False
    batch_valid: bool = False
    batch_expires_at: Optional[datetime] = None


class CredentialDeleteResult(BaseModel):
    site_code: str
    interactive_deleted: bool
    batch_deleted: int
