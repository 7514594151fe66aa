from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central settings object.
    Env vars win; locally you can use backend/.env.
    List values are read from env as JSON, e.g. VENDOR_DOMAINS='["hallmark.com"]'.
    """
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Vision backend
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = ""

    # Image search backends (Custom Search preferred when both are set)
    GOOGLE_CSE_API_KEY: str = ""
    GOOGLE_CSE_ENGINE_ID: str = ""
    SERPAPI_API_KEY: str = ""

    # Vendor domain set: the first entry is the primary vendor
    VENDOR_DOMAINS: List[str] = [
        "hallmark.com",
        "hookedonhallmark.com",
        "www.ornamentmall.com",
    ]
    VENDOR_DEFAULT_BRAND: str = "Hallmark"
    VENDOR_URL_TEMPLATES: List[str] = [
        "https://www.hallmark.com/products/{sku}",
        "https://www.hallmark.com/ornaments/{sku}",
        "https://www.hallmark.com/gifts/{sku}",
    ]
    # Probe synthesized product URLs with HEAD before using them
    VERIFY_GUESSED_URLS: bool = False

    SEARCH_RESULT_LIMIT: int = 6
    HTTP_TIMEOUT_SECONDS: float = 30.0
    VISION_TIMEOUT_SECONDS: float = 60.0

    LOG_LEVEL: str = "INFO"

    # Versioning
    APP_VERSION: str = "0.1.0"
    BUILD_ID: str = "dev"


# other modules import this
settings = Settings()
