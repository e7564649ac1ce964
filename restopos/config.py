from pydantic_settings import BaseSettings, SettingsConfigDict
class Settings(BaseSettings):
    APP_ENV: str = "dev"
    APP_SECRET: str
    DB_URL: str
    JWT_ISS: str = "restopos"
    SESSION_TTL_MIN: int = 12*60
    IT_SIGNUP_SECRET: str = ""
    LOG_LEVEL: str = "INFO"
    # ZATCA invoice fields
    VAT_RATE: float = 0.15
    CURRENCY: str = "SAR"
    SELLER_NAME: str = "RestoPOS"
    SELLER_VAT_NUMBER: str = ""
    INVOICE_RENDER_URL: str | None = None
    LOW_STOCK_THRESHOLD: float = 10
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
settings = Settings()
