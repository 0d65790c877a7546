from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "extra": "ignore"}

    app_name: str = "user-api"
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8080

    # Overrides the db_* connection fields when set.
    database_url: str = ""
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "postgres"
    db_password: str = "password"
    db_name: str = "userapi"
    db_sslmode: str = "disable"

    # Pool: idle connections are kept, the rest up to max_open are overflow.
    db_max_idle_conns: int = 10
    db_max_open_conns: int = 100
    db_conn_max_lifetime: int = 3600
    db_pool_timeout: int = 30
    db_auto_migrate: bool = False

    log_level: str = "info"
    log_format: str = "json"

    bcrypt_rounds: int = 12

    rate_limit_per_second: float = 20
    # 0 means "same as the rate"
    rate_limit_burst: int = 0

    # Not read by any endpoint yet.
    jwt_secret: str = "change-me-to-a-random-secret-key"
    jwt_expire_hours: int = 24

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


settings = Settings()
