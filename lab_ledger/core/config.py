from typing import List, Optional

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DB_HOST: str = "localhost"
    DB_PORT: str = "5432"
    DB_NAME: str = "lab_ledger"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    # Full SQLAlchemy URL, takes precedence over the DB_* parts
    DATABASE_URL: Optional[str] = None
    DB_TIMEOUT_SECONDS: float = 10.0

    API_PREFIX: str = "/api"
    CORS_ORIGINS: List[str] = ["*"]
    LOG_LEVEL: str = "INFO"

    # Invoice numbering
    INVOICE_ID_PREFIX: str = "INV"
    INVOICE_ID_DIGITS: int = 6
    INVOICE_SEQUENCE_NAME: str = "invoice"
    SEQUENCE_MAX_RETRIES: int = 5

    expense_payment_modes: List[str] = ["Cash", "UPI", "Bank Transfer", "Card", "Cheque"]
    expense_statuses: List[str] = ["Paid", "Pending"]
    invoice_payment_modes: List[str] = ["Cash", "UPI", "Card"]

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    class Config:
        env_file = ".env"

settings = Settings()
