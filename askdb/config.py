"""Application configuration"""
from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # LLM
    llm_provider: Literal["google", "openai"] = "google"
    llm_model: str = "gemini-2.0-flash"
    google_api_key: str = ""
    openai_api_key: str = ""
    llm_temperature: float = 0.2
    llm_max_output_tokens: int = 2048
    llm_top_p: float = 0.95
    llm_top_k: int = 40
    llm_force_json_output: bool = True
    llm_retry_attempts: int = 3
    llm_retry_initial_delay_seconds: float = 1.0

    # Agent
    agent_max_turns: int = 6
    tool_result_row_limit: int = 50

    # Static assets
    worldview_map_path: str = "data/worldview_map.json"
    detailed_schema_path: str = "data/detailed_schema.json"

    # Query Database
    query_db_host: str = "localhost"
    query_db_port: int = 5432
    query_db_name: str = "postgres"
    query_db_user: str = "postgres"
    query_db_password: str = ""
    query_db_ssl: str = "disable"
    query_db_pool_min_size: int = 1
    query_db_pool_max_size: int = 5

    # Security & Limits
    sql_timeout_seconds: int = 30
    sql_max_rows: int = 10000
    sql_parser_guard_enabled: bool = True

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Startup
    startup_sanity_checks_enabled: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
