"""
Configuration settings for the CV Flow Engine service
"""
from typing import Optional, List
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support"""
    
    # Application settings
    app_name: str = "CV Flow Engine"
    app_version: str = "1.0.0"
    debug: bool = False
    
    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    
    # CORS settings
    cors_origins: list = ["*"]  # Configure appropriately for production
    cors_methods: list = ["GET", "POST", "DELETE"]
    cors_headers: list = ["*"]
    
    # Logging settings
    log_level: str = "INFO"
    
    # Routing behaviour
    strict_routing: bool = False  # Unresolvable condition aborts instead of completing early
    require_default_output: bool = False
    
    # Question handling
    allow_skip: bool = True
    skip_phrases: List[str] = ["skip", "skip this", "skip question"]
    skipped_placeholder: str = "[Skipped]"
    skip_required_message: str = "I understand you want to skip this question. Let me move to the next one."
    skip_optional_message: str = "No problem! Let's move to the next question."
    default_question_text: str = "Please provide your answer."
    default_end_message: Optional[str] = "Flow completed!"
    
    # Sessions
    max_sessions: int = 1000
    session_ttl_minutes: int = 30
    max_trace_entries: int = 5000
    
    class Config:
        env_file = ".env"
        env_prefix = "CVFLOW_"
        case_sensitive = False
        extra = "ignore"  # Allow extra environment variables


# Global settings instance
settings = Settings()
