'''
Holds all the configurations
'''
from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """
    Manages application configuration using environment variables.
    """
    # Application Metadata
    APP_NAME: str = "Tutor Billing Engine"
    APP_VERSION: str = "0.1.0"
    APP_DESCRIPTION: str = "Rate calculation, prepaid accounting and monthly billing reports for tutors."
    TEST_MODE: bool = False
    LOG_LEVEL: str = "INFO"

    # Database URL. Only the SQL prepaid store needs it.
    DATABASE_URL: Optional[str] = None
    DATABASE_URL_TEST: Optional[str] = None
    @property
    def database_url(self) -> Optional[str]:
        """
        Dynamically returns the correct database URL based on the test_mode flag.
        """
        if self.TEST_MODE:
            return self.DATABASE_URL_TEST
        return self.DATABASE_URL

    BACKEND_CORS_ORIGINS: list[str] = []

    # Rate defaults for tutors with no saved settings
    DEFAULT_RATE: Decimal = Decimal("45")
    DEFAULT_BASE_DURATION: int = 60  # minutes
    COMBINED_SESSION_RATE: Decimal = Decimal("40")

    # A lesson alone in its session is billed at the flat combined rate when True
    SOLO_SESSION_IS_COMBINED: bool = True

    CURRENCY_SYMBOL: str = "$"

    class Config:
        env_file = ".env" # automatically loads the .env
        extra = "ignore"

# Create a single, importable instance of the settings
settings = Settings()
