from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# Auth configuration (tokens are issued elsewhere; we only verify them)
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	# Checked only when set (Supabase-style tokens carry aud="authenticated")
	jwt_audience: str | None = Field(default=None, validation_alias="JWT_AUDIENCE")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# Sandbox for code submissions
	sandbox_timeout_seconds: float = Field(default=5.0, validation_alias="SANDBOX_TIMEOUT_SECONDS")
	sandbox_memory_limit_mb: int = Field(default=256, validation_alias="SANDBOX_MEMORY_LIMIT_MB")
	sandbox_node_executable: str = Field(default="node", validation_alias="SANDBOX_NODE_EXECUTABLE")
	# Submissions get no network; the run fails when the isolation command is unavailable
	sandbox_isolate_network: bool = Field(default=True, validation_alias="SANDBOX_ISOLATE_NETWORK")
	sandbox_network_command: str = Field(default="unshare -rn", validation_alias="SANDBOX_NETWORK_COMMAND")
	sandbox_default_entrypoint: str = Field(default="solution", validation_alias="SANDBOX_DEFAULT_ENTRYPOINT")

	# Comma separated list, "*" allows any origin
	cors_origins: str = Field(default="*", validation_alias="CORS_ORIGINS")
	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
