from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    pulumi_project: str = "eks-quickstart"
    pulumi_stack: str = "dev"
    pulumi_work_dir: str = "."
    pulumi_backend_url: str = ""
    pulumi_access_token: str = ""
    pulumi_config_passphrase: str = ""

    aws_profile: str = ""

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
