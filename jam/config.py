import os

class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgresql://localhost/jam")
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_SERVICE_ROLE_KEY: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    READ_TIMEOUT_SECONDS: float = float(os.getenv("READ_TIMEOUT_SECONDS", "5"))
    IDENTITY_TIMEOUT_SECONDS: float = float(os.getenv("IDENTITY_TIMEOUT_SECONDS", "5"))
    DEFAULT_AVATAR_URL: str = os.getenv(
        "DEFAULT_AVATAR_URL",
        "https://api.dicebear.com/7.x/avataaars/svg?seed={username}",
    )
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    APP_NAME: str = "Jam Social API"

settings = Settings()
