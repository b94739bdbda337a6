import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass
class Settings:
    database_url: str = "sqlite:///./workshop.db"
    jwt_secret: Optional[str] = None
    token_enc_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    jwt_expires_hours: int = 8
    api_base_url: str = "http://localhost:4000"
    web_origin: str = "http://localhost:3000"
    public_dir: str = "./public"
    environment: str = "development"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            jwt_secret=os.getenv("JWT_SECRET") or None,
            token_enc_secret=os.getenv("TOKEN_ENC_SECRET") or None,
            jwt_algorithm=os.getenv("JWT_ALGORITHM", cls.jwt_algorithm),
            jwt_expires_hours=int(os.getenv("JWT_EXPIRES_HOURS", cls.jwt_expires_hours)),
            api_base_url=os.getenv("API_BASE_URL", cls.api_base_url),
            web_origin=os.getenv("WEB_ORIGIN", cls.web_origin),
            public_dir=os.getenv("PUBLIC_DIR", cls.public_dir),
            environment=os.getenv("ENVIRONMENT", cls.environment),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
        )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def token_secret(self) -> Optional[str]:
        # cookie encryption key, falls back to the JWT secret
        return self.token_enc_secret or self.jwt_secret
