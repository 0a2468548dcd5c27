from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SYNAPSE_", env_file=".env", extra="ignore")

    app_name: str = "protoc-gen-synapse"
    default_backend: str = "seaorm"
    log_level: str = "WARNING"

    default_page_size: int = 20
    max_page_size: int = 100
    storage_max_page_size: int = 1000
    relation_loader_limit: int = 1000

    dump_dir: str | None = None

settings = Settings()
