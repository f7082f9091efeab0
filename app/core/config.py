from typing import Any, List
from pydantic import field_validator
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

class Settings(BaseSettings):
    # API settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "GitHub Secrets & Variables Manager"

    # CORS settings
    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    # GitHub settings
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_API_VERSION: str = "2022-11-28"
    GITHUB_TIMEOUT_SECONDS: float = 10.0

    # Fetch the environment public key once per run instead of once per secret
    CACHE_PUBLIC_KEY: bool = False

    LOG_LEVEL: str = "INFO"

    # Validation
    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    def assemble_cors_origins(cls, v: Any) -> List[str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

settings = Settings()
