from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ADMIN_TOKEN = "relay-admin"

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # Unset values degrade to "" so a missing variable never blocks startup.
    STRAVA_CLIENT_ID: str = ""
    STRAVA_CLIENT_SECRET: str = ""
    STRAVA_VERIFY_TOKEN: str = ""
    STRAVA_REDIRECT_URI: str = "http://localhost:3000/api/auth/strava/callback"

    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_KEY: str = ""

    HTTP_TIMEOUT: float = 30.0
    ACTIVITIES_LIMIT: int = 50
    RATE_LIMIT_WAIT_S: float = 60.0

    ADMIN_TOKEN: str = DEFAULT_ADMIN_TOKEN

    def misconfigurations(self) -> list[str]:
        problems = []
        if not self.STRAVA_VERIFY_TOKEN:
            problems.append("STRAVA_VERIFY_TOKEN is empty; only an empty hub.verify_token will be accepted")
        if not self.SUPABASE_URL:
            problems.append("SUPABASE_URL is empty; activity reads and writes will fail")
        if not self.SUPABASE_SERVICE_KEY:
            problems.append("SUPABASE_SERVICE_KEY is empty; datastore calls are unauthenticated")
        if not self.ADMIN_TOKEN or self.ADMIN_TOKEN == DEFAULT_ADMIN_TOKEN:
            problems.append("ADMIN_TOKEN is unset or the built-in default; anyone who knows it can start a backfill")
        return problems

settings = Settings()
