from pydantic import Field
from pydantic_settings import BaseSettings


class ClientSettings(BaseSettings):
    """Reconciler-side configuration. Independent of the server settings so a client needs no database URL."""

    api_base_url: str = Field("http://localhost:8000/api", alias="API_BASE_URL")
    # Matches the mobile client's request timeout; no retry on expiry
    client_timeout_seconds: float = Field(30.0, alias="CLIENT_TIMEOUT_SECONDS")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


client_settings = ClientSettings()
