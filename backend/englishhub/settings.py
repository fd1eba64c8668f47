from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# Database
	database_url: str = Field(default="sqlite:///./englishhub.db", validation_alias="DATABASE_URL")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
	# Comma separated list; "*" allows any origin
	cors_origins: str = Field(default="*", validation_alias="CORS_ORIGINS")

	# Cloudflare R2 (S3 compatible) object storage
	r2_account_id: str | None = Field(default=None, validation_alias="R2_ACCOUNT_ID")
	r2_access_key_id: str | None = Field(default=None, validation_alias="R2_ACCESS_KEY_ID")
	r2_secret_access_key: str | None = Field(default=None, validation_alias="R2_SECRET_ACCESS_KEY")
	r2_bucket_name: str = Field(default="english-hub-storage", validation_alias="R2_BUCKET_NAME")
	r2_public_url: str = Field(default="", validation_alias="R2_PUBLIC_URL")
	# Optional: explicit endpoint, otherwise derived from the account id
	r2_endpoint: str | None = Field(default=None, validation_alias="R2_ENDPOINT")

	manifest_path: str = Field(default="storage/manifest/_manifest.json", validation_alias="MANIFEST_PATH")
	max_upload_bytes: int = Field(default=50 * 1024 * 1024, validation_alias="MAX_UPLOAD_BYTES")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	@property
	def r2_endpoint_url(self) -> str | None:
		if self.r2_endpoint:
			return self.r2_endpoint
		if self.r2_account_id:
			return f"https://{self.r2_account_id}.r2.cloudflarestorage.com"
		return None

	@property
	def cors_origin_list(self) -> list[str]:
		return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

settings = Settings()
