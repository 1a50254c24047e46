"""
Travellite Service Configuration
Loads settings from environment variables
"""

import os
from typing import List
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_bool(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings loaded from environment"""

    # API Configuration
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8787"))
    API_ENV: str = os.getenv("API_ENV", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # CORS Configuration
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:8787")

    # OpenAI Configuration (any OpenAI-compatible endpoint)
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")

    # Ollama Configuration (local chat + embeddings)
    OLLAMA_BASE_URL: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    OLLAMA_CHAT_MODEL: str = os.getenv("OLLAMA_CHAT_MODEL", "llama3.1:8b")
    OLLAMA_EMBEDDING_MODEL: str = os.getenv("OLLAMA_EMBEDDING_MODEL", "mxbai-embed-large")
    OLLAMA_EMBEDDING_DIM: int = int(os.getenv("OLLAMA_EMBEDDING_DIM", "1024"))

    LLM_MAX_TOKENS: int = int(os.getenv("LLM_MAX_TOKENS", "1024"))
    ROUTER_MAX_TOKENS: int = int(os.getenv("ROUTER_MAX_TOKENS", "200"))
    LLM_TIMEOUT: float = float(os.getenv("LLM_TIMEOUT", "60"))

    # Redis Configuration
    USE_REDIS: bool = _env_bool("USE_REDIS", "true")
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_PASSWORD: str = os.getenv("REDIS_PASSWORD", "")
    STATE_TTL_HOURS: int = int(os.getenv("STATE_TTL_HOURS", "0"))  # 0 = no expiry

    # Kafka Configuration (realtime relay)
    RELAY_ENABLED: bool = _env_bool("RELAY_ENABLED", "true")
    KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
    REALTIME_TOPIC: str = os.getenv("REALTIME_TOPIC", "realtime.agent_responses")

    # External travel API (Amadeus self-service sandbox)
    TRAVEL_API_PROVIDER: str = os.getenv("TRAVEL_API_PROVIDER", "amadeus")
    TRAVEL_API_BASE_URL: str = os.getenv("TRAVEL_API_BASE_URL", "https://test.api.amadeus.com")
    TRAVEL_API_KEY: str = os.getenv("TRAVEL_API_KEY", os.getenv("AMADEUS_API_KEY", ""))
    TRAVEL_API_SECRET: str = os.getenv("TRAVEL_API_SECRET", os.getenv("AMADEUS_API_SECRET", ""))
    TRAVEL_API_TIMEOUT: float = float(os.getenv("TRAVEL_API_TIMEOUT", "20"))

    # Pipeline tuning
    RETRIEVAL_TOP_K: int = int(os.getenv("RETRIEVAL_TOP_K", "5"))
    HISTORY_WINDOW: int = int(os.getenv("HISTORY_WINDOW", "5"))
    INGEST_MAX_ITEMS: int = int(os.getenv("INGEST_MAX_ITEMS", "5"))
    MIN_SUMMARY_LENGTH: int = int(os.getenv("MIN_SUMMARY_LENGTH", "20"))

    # Base knowledge documents (.txt) seeded at startup when set
    RAG_FILES_DIR: str = os.getenv("RAG_FILES_DIR", "")

    # Lexical fallback defaults
    DEFAULT_ORIGIN: str = os.getenv("DEFAULT_ORIGIN", "NYC")
    DEFAULT_ACTIVITY_LAT: float = float(os.getenv("DEFAULT_ACTIVITY_LAT", "48.8566"))
    DEFAULT_ACTIVITY_LON: float = float(os.getenv("DEFAULT_ACTIVITY_LON", "2.3522"))

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def redis_url(self) -> str:
        """Get Redis connection URL"""
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    @property
    def use_openai(self) -> bool:
        """OpenAI is used when a real key is configured, Ollama otherwise"""
        return bool(self.OPENAI_API_KEY) and not self.OPENAI_API_KEY.startswith("sk-your")


# Global settings instance
settings = Settings()
