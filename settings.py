import os
from typing import List

from pydantic import BaseModel, Field


class Settings(BaseModel):
    database_url: str = "mongodb://127.0.0.1:27017"
    database_name: str = "kleEcom"
    database_timeout_ms: int = Field(5000, gt=0)
    jwt_secret: str = "dev-secret-change"
    jwt_algorithm: str = "HS256"
    token_expire_days: int = Field(365, gt=0)
    bcrypt_rounds: int = Field(10, ge=4, le=31)
    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"
    port: int = 8080

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            database_url=os.getenv("DATABASE_URL", "mongodb://127.0.0.1:27017"),
            database_name=os.getenv("DATABASE_NAME", "kleEcom"),
            database_timeout_ms=int(os.getenv("DATABASE_TIMEOUT_MS", 5000)),
            jwt_secret=os.getenv("JWT_SECRET", "dev-secret-change"),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            token_expire_days=int(os.getenv("TOKEN_EXPIRE_DAYS", 365)),
            bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", 10)),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            port=int(os.getenv("PORT", 8080)),
        )
