from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = Field(default="POS Billing", alias="APP_NAME")
    app_env: str = Field(default="dev", alias="APP_ENV")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Servicio de catálogo (productos / clientes / stock)
    catalog_api_url: str = Field(default="http://localhost:5000", alias="CATALOG_API_URL")
    catalog_timeout: float = Field(default=10.0, alias="CATALOG_TIMEOUT")
    catalog_db_url: str = Field(default="sqlite:///./catalog.db", alias="CATALOG_DB_URL")

    # Factura
    currency: str = Field(default="INR", alias="CURRENCY")
    company_title: str = Field(default="BILLING SYSTEM", alias="COMPANY_TITLE")
    low_stock_threshold: int = Field(default=5, alias="LOW_STOCK_THRESHOLD")
    invoice_dir: str = Field(default="data/invoices", alias="INVOICE_DIR")
    journal_file: str = Field(default="data/sales_journal.jsonl", alias="JOURNAL_FILE")

    class Config:
        env_file = ".env"


settings = Settings()
