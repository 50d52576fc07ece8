from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"
    log_file: str = ""
    database_url: str = "sqlite+aiosqlite:///./buildpipe.db"
    job_store_backend: str = "sql"  # "sql" | "memory"

    # job store
    max_log_lines: int = 1500
    default_project_name: str = "BuildpipeApp"
    default_bundle_id: str = "com.buildpipe.app"

    # auto-fix chain policy (the fixer itself lives outside this service)
    auto_fix_max_attempts: int = 5
    auto_fix_webhook_url: str = ""

    # runner
    server_url: str = "http://localhost:8000"
    runner_id: str = ""
    runner_poll_interval: float = 1.5
    runner_error_backoff: float = 2.0
    log_flush_interval: float = 1.0
    max_compiler_errors: int = 50
    build_timeout_seconds: float = 1800
    xcodebuild_path: str = ""
    simulator_destination: str = "generic/platform=iOS Simulator"

    # poll client
    poll_interval: float = 3.0
    poll_ceiling: float = 600.0


settings = Settings()
