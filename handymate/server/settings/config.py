from pydantic import BaseModel
from dotenv import load_dotenv
import os

load_dotenv()

class Settings(BaseModel):
    app_name: str = "Handymate – offert- och fakturamotor"
    environment: str = os.getenv("ENVIRONMENT", "dev")
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./handymate.db")
    debug: bool = os.getenv("DEBUG", "0") == "1"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # Nyckel för företagets API-anrop (inloggning sköts utanför motorn)
    api_key: str = os.getenv("HANDYMATE_API_KEY", "handymate-dev-key")

    # Bas-URL för publika signeringslänkar: {public_app_url}/quote/{token}
    public_app_url: str = os.getenv("PUBLIC_APP_URL", "https://app.handymate.se")

    business_config_path: str = os.getenv("BUSINESS_CONFIG_PATH", "")

settings = Settings()
