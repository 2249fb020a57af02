from typing import Optional

from pydantic import BaseModel


class SessionContext(BaseModel):
    """Authenticated staff session handed to the reconciler at construction."""

    hostel_id: int
    access_token: str
    base_url: str
    user_id: Optional[int] = None
    role: Optional[str] = None

    @property
    def auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.access_token}"}
