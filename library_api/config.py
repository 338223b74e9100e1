import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError


load_dotenv()


# settings field -> environment variable
ENV_VARS = {
    "token_secret": "TOKEN_SECRET",
    "token_ttl_seconds": "TOKEN_TTL_SECONDS",
    "admin_firstname": "ADMIN_FIRSTNAME",
    "admin_lastname": "ADMIN_LASTNAME",
    "admin_email": "ADMIN_EMAIL",
    "admin_password": "ADMIN_PASSWORD",
    "max_book_per_loan": "MAX_BOOK_PER_LOAN",
    "smtp_host": "SMTP_HOST",
    "smtp_port": "SMTP_PORT",
    "smtp_username": "SMTP_USERNAME",
    "smtp_password": "SMTP_PASSWORD",
    "mail_from": "MAIL_FROM",
    "log_level": "LOG_LEVEL",
}


class Settings(BaseModel):
    # JWT settings
    token_secret: str = Field(..., min_length=1)
    token_algorithm: str = "HS256"
    token_ttl_seconds: int = Field(3600, gt=0)

    # bootstrap admin account
    admin_firstname: str = Field(..., min_length=1)
    admin_lastname: str = Field(..., min_length=1)
    admin_email: str = Field(..., min_length=3)
    admin_password: str = Field(..., min_length=1)

    max_book_per_loan: int = Field(3, ge=1)

    # mail delivery is disabled when no SMTP host is configured
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    mail_from: str = "support@stone.com"

    log_level: str = "INFO"


def load_settings(environ=None) -> Settings:
    """
    Build the settings from the environment.

    Empty variables count as unset. A missing or malformed required value is
    a fatal configuration error and is reported with the variable names.
    """
    environ = os.environ if environ is None else environ
    values = {}
    for field, var in ENV_VARS.items():
        raw = environ.get(var)
        if raw is not None and raw.strip() != "":
            values[field] = raw.strip()
    try:
        return Settings(**values)
    except ValidationError as exc:
        names = sorted({ENV_VARS.get(str(err["loc"][0]), str(err["loc"][0])) for err in exc.errors()})
        raise RuntimeError(
            f"Missing or invalid configuration values: {', '.join(names)}"
        ) from exc


@lru_cache
def get_settings() -> Settings:
    return load_settings()
