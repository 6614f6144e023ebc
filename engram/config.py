"""
Configuration for Engram.

Supports loading from:
1. Environment variables (highest priority)
2. YAML config file
3. Default values (fallback)
"""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    """LLM provider configuration."""

    provider: str = "ollama"  # ollama, openai
    model: str = "llama3.1:8b"
    base_url: str | None = None  # None = local Ollama default
    api_key: str | None = None
    temperature: float = 0.0
    max_tokens: int = 2000
    timeout: float = 120.0


class EmbedderConfig(BaseModel):
    """Embedder configuration."""

    provider: str = "ollama"  # ollama, openai
    model: str = "nomic-embed-text"
    base_url: str | None = None  # None = local Ollama default
    api_key: str | None = None
    timeout: float = 120.0
    # Optional: embedding dimension (fallback to auto-detect)
    dimension: int | None = None


class RerankerConfig(BaseModel):
    """Reranker configuration."""

    enabled: bool = False
    provider: str = "llm"  # llm, none
    # Candidates are scored in batches to keep prompts small
    batch_size: int = 10


class OCRConfig(BaseModel):
    """Image text recognition configuration."""

    provider: str | None = None  # openai, ollama, None (disabled)
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    api_key: str | None = None
    timeout: float = 120.0


class TranscriptionConfig(BaseModel):
    """Audio/video transcription configuration."""

    provider: str | None = None  # openai, None (disabled)
    model: str = "whisper-1"
    base_url: str | None = None
    api_key: str | None = None
    timeout: float = 300.0


class TokenizerConfig(BaseModel):
    """Token counting configuration."""

    provider: str = "approximate"  # approximate, tiktoken
    model: str = "cl100k_base"
    chars_per_token: float = 4.0


class ProcessingConfig(BaseModel):
    """Document processing pipeline configuration."""

    max_chunk_tokens: int = 512
    chunk_overlap: int = 50
    max_concurrency: int = 4
    rows_per_chunk: int = 20
    extract_memories: bool = True


class RetryConfig(BaseModel):
    """Retry policy for provider calls."""

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: float = 0.1
    retryable_kinds: list[str] = Field(default_factory=lambda: ["provider_transient"])


class ExtractionConfig(BaseModel):
    """Memory extraction configuration."""

    min_words: int = 3
    min_confidence: float = 0.3
    dedup_threshold: float = 0.92
    default_importance: float = 0.5


class ConsistencyConfig(BaseModel):
    """Contradiction and relationship detection configuration."""

    contradiction_threshold: float = 0.75
    candidate_limit: int = 5
    min_relationship_confidence: float = 0.7
    use_llm: bool = True
    include_derived_in_contradiction: bool = False


class InferenceConfig(BaseModel):
    """Derived memory inference configuration."""

    enabled: bool = True
    max_depth: int = 2
    max_fanout: int = 5
    max_cluster_size: int = 8
    min_confidence: float = 0.7


class TemporalConfig(BaseModel):
    """Temporal ranking configuration."""

    episode_decay_days: float = 30.0
    episode_decay_factor: float = 0.9
    recency_bonus: float = 0.05
    year_proximity_window: int = 5


class ForgettingConfig(BaseModel):
    """Forgetting lifecycle configuration."""

    importance_threshold: float = 0.3
    ttl_days: int = 90
    interval_hours: float = 24.0


class SearchConfig(BaseModel):
    """Search defaults."""

    top_k: int = 20
    limit: int = 10
    similarity_threshold: float = 0.0
    relevance_floor: float = 0.0
    track_access: bool = True
    # Optional LLM query rewriting, cached per query text
    rewrite_query: bool = False
    rewrite_cache_size: int = 256
    rewrite_timeout: float = 5.0


class StorageConfig(BaseModel):
    """Repository configuration."""

    backend: str = "sqlite"
    sqlite_path: str = "./data/engram.db"
    vector_backend: str = "sqlite"  # sqlite (brute force), qdrant


class QdrantConfig(BaseModel):
    """Optimized Qdrant configuration."""

    url: str = "http://localhost:6333"
    collection_name: str = "memories"
    use_grpc: bool = True
    hnsw_m: int = 16
    hnsw_ef_construct: int = 100
    on_disk: bool = False
    timeout: int = 30


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    log_to_file: bool = True
    log_dir: str = "logs"
    file_rotation: str = "10 MB"
    file_retention: str = "7 days"
    compression: str = "zip"
    serialize: bool = True


class Config(BaseModel):
    """Main configuration."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    embedder: EmbedderConfig = Field(default_factory=EmbedderConfig)
    reranker: RerankerConfig = Field(default_factory=RerankerConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    transcription: TranscriptionConfig = Field(default_factory=TranscriptionConfig)
    tokenizer: TokenizerConfig = Field(default_factory=TokenizerConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    consistency: ConsistencyConfig = Field(default_factory=ConsistencyConfig)
    inference: InferenceConfig = Field(default_factory=InferenceConfig)
    temporal: TemporalConfig = Field(default_factory=TemporalConfig)
    forgetting: ForgettingConfig = Field(default_factory=ForgettingConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    qdrant: QdrantConfig = Field(default_factory=QdrantConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "Config":
        """
        Load configuration from environment variables.

        Priority: .env file -> system environment variables -> defaults

        Args:
            env_file: Optional path to .env file (default: .env in project root)

        Returns:
            Config instance

        Environment variables:
            ENGRAM_LLM_PROVIDER: LLM provider (ollama, openai)
            ENGRAM_LLM_MODEL: LLM model name
            ENGRAM_LLM_BASE_URL: LLM base URL
            ENGRAM_LLM_API_KEY: LLM API key (for OpenAI)
            ENGRAM_EMBEDDER_PROVIDER: Embedder provider
            ENGRAM_EMBEDDER_MODEL: Embedder model name
            ENGRAM_EMBEDDER_API_KEY: Embedder API key (for OpenAI)
            ENGRAM_EMBEDDER_DIMENSION: Embedding dimension (optional)
            ENGRAM_RERANKER_ENABLED: Enable LLM reranking
            ENGRAM_OCR_PROVIDER: OCR provider (openai, ollama)
            ENGRAM_TRANSCRIPTION_PROVIDER: Transcription provider (openai)
            ENGRAM_MAX_CHUNK_TOKENS: Chunk token budget
            ENGRAM_CHUNK_OVERLAP: Overlap between chunks in tokens
            ENGRAM_MAX_CONCURRENCY: Parallel chunk embeddings
            ENGRAM_RETRY_MAX_ATTEMPTS: Provider call attempts
            ENGRAM_FORGET_IMPORTANCE_THRESHOLD: Importance below which memories may be forgotten
            ENGRAM_FORGET_TTL_DAYS: Days without access before a memory expires
            ENGRAM_SEARCH_REWRITE_QUERY: Rewrite search queries with the LLM
            ENGRAM_SQLITE_PATH: SQLite database path
            ENGRAM_VECTOR_BACKEND: sqlite or qdrant
            ENGRAM_QDRANT_URL: Qdrant URL
            ENGRAM_QDRANT_COLLECTION: Qdrant collection name
        """
        # Load .env file if provided or exists
        if env_file:
            load_dotenv(env_file)
        elif Path(".env").exists():
            load_dotenv()

        def get_env(key: str, default: Any = None) -> Any:
            """Get environment variable with type conversion."""
            value = os.getenv(key)
            if value is None:
                return default
            # If value is empty string, return default
            if value == "":
                return default
            # Convert boolean strings
            if isinstance(default, bool):
                return str(value).lower() in ("true", "1", "yes")
            # Convert numeric strings
            if isinstance(default, int):
                return int(value)
            if isinstance(default, float):
                return float(value)
            return value

        dimension = get_env("ENGRAM_EMBEDDER_DIMENSION")

        return cls(
            llm=LLMConfig(
                provider=get_env("ENGRAM_LLM_PROVIDER", "ollama"),
                model=get_env("ENGRAM_LLM_MODEL", "llama3.1:8b"),
                base_url=get_env("ENGRAM_LLM_BASE_URL"),
                api_key=get_env("ENGRAM_LLM_API_KEY"),
                temperature=get_env("ENGRAM_LLM_TEMPERATURE", 0.0),
                max_tokens=get_env("ENGRAM_LLM_MAX_TOKENS", 2000),
                timeout=get_env("ENGRAM_LLM_TIMEOUT", 120.0),
            ),
            embedder=EmbedderConfig(
                provider=get_env("ENGRAM_EMBEDDER_PROVIDER", "ollama"),
                model=get_env("ENGRAM_EMBEDDER_MODEL", "nomic-embed-text"),
                base_url=get_env("ENGRAM_EMBEDDER_BASE_URL"),
                api_key=get_env("ENGRAM_EMBEDDER_API_KEY"),
                timeout=get_env("ENGRAM_EMBEDDER_TIMEOUT", 120.0),
                dimension=int(dimension) if dimension else None,
            ),
            reranker=RerankerConfig(
                enabled=get_env("ENGRAM_RERANKER_ENABLED", False),
                provider=get_env("ENGRAM_RERANKER_PROVIDER", "llm"),
                batch_size=get_env("ENGRAM_RERANKER_BATCH_SIZE", 10),
            ),
            ocr=OCRConfig(
                provider=get_env("ENGRAM_OCR_PROVIDER"),
                model=get_env("ENGRAM_OCR_MODEL", "gpt-4o-mini"),
                base_url=get_env("ENGRAM_OCR_BASE_URL"),
                api_key=get_env("ENGRAM_OCR_API_KEY"),
            ),
            transcription=TranscriptionConfig(
                provider=get_env("ENGRAM_TRANSCRIPTION_PROVIDER"),
                model=get_env("ENGRAM_TRANSCRIPTION_MODEL", "whisper-1"),
                base_url=get_env("ENGRAM_TRANSCRIPTION_BASE_URL"),
                api_key=get_env("ENGRAM_TRANSCRIPTION_API_KEY"),
            ),
            tokenizer=TokenizerConfig(
                provider=get_env("ENGRAM_TOKENIZER_PROVIDER", "approximate"),
                model=get_env("ENGRAM_TOKENIZER_MODEL", "cl100k_base"),
                chars_per_token=get_env("ENGRAM_TOKENIZER_CHARS_PER_TOKEN", 4.0),
            ),
            processing=ProcessingConfig(
                max_chunk_tokens=get_env("ENGRAM_MAX_CHUNK_TOKENS", 512),
                chunk_overlap=get_env("ENGRAM_CHUNK_OVERLAP", 50),
                max_concurrency=get_env("ENGRAM_MAX_CONCURRENCY", 4),
                rows_per_chunk=get_env("ENGRAM_ROWS_PER_CHUNK", 20),
                extract_memories=get_env("ENGRAM_EXTRACT_MEMORIES", True),
            ),
            retry=RetryConfig(
                max_attempts=get_env("ENGRAM_RETRY_MAX_ATTEMPTS", 3),
                base_delay=get_env("ENGRAM_RETRY_BASE_DELAY", 0.5),
                max_delay=get_env("ENGRAM_RETRY_MAX_DELAY", 30.0),
            ),
            forgetting=ForgettingConfig(
                importance_threshold=get_env("ENGRAM_FORGET_IMPORTANCE_THRESHOLD", 0.3),
                ttl_days=get_env("ENGRAM_FORGET_TTL_DAYS", 90),
                interval_hours=get_env("ENGRAM_FORGET_INTERVAL_HOURS", 24.0),
            ),
            search=SearchConfig(
                top_k=get_env("ENGRAM_SEARCH_TOP_K", 20),
                limit=get_env("ENGRAM_SEARCH_LIMIT", 10),
                rewrite_query=get_env("ENGRAM_SEARCH_REWRITE_QUERY", False),
                rewrite_cache_size=get_env("ENGRAM_SEARCH_REWRITE_CACHE_SIZE", 256),
                rewrite_timeout=get_env("ENGRAM_SEARCH_REWRITE_TIMEOUT", 5.0),
            ),
            storage=StorageConfig(
                backend=get_env("ENGRAM_STORAGE_BACKEND", "sqlite"),
                sqlite_path=get_env("ENGRAM_SQLITE_PATH", "./data/engram.db"),
                vector_backend=get_env("ENGRAM_VECTOR_BACKEND", "sqlite"),
            ),
            qdrant=QdrantConfig(
                url=get_env("ENGRAM_QDRANT_URL", "http://localhost:6333"),
                collection_name=get_env("ENGRAM_QDRANT_COLLECTION", "memories"),
                use_grpc=get_env("ENGRAM_QDRANT_USE_GRPC", True),
                hnsw_m=get_env("ENGRAM_QDRANT_HNSW_M", 16),
                hnsw_ef_construct=get_env("ENGRAM_QDRANT_HNSW_EF_CONSTRUCT", 100),
                on_disk=get_env("ENGRAM_QDRANT_ON_DISK", False),
            ),
            logging=LoggingConfig(
                level=get_env("ENGRAM_LOG_LEVEL", "INFO"),
                log_to_file=get_env("ENGRAM_LOG_TO_FILE", True),
                log_dir=get_env("ENGRAM_LOG_DIR", "logs"),
                file_rotation=get_env("ENGRAM_LOG_FILE_ROTATION", "10 MB"),
                file_retention=get_env("ENGRAM_LOG_FILE_RETENTION", "7 days"),
                compression=get_env("ENGRAM_LOG_COMPRESSION", "zip"),
                serialize=get_env("ENGRAM_LOG_SERIALIZE", True),
            ),
        )

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> "Config":
        """
        Load configuration from YAML file.

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            yaml.YAMLError: If YAML is invalid
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def from_env_or_yaml(
        cls, yaml_path: str | Path | None = None, env_file: str | Path | None = None
    ) -> "Config":
        """
        Load configuration with priority: env vars > YAML > defaults.

        Only sections whose env-derived value differs from the defaults
        override the YAML.

        Args:
            yaml_path: Optional path to YAML config
            env_file: Optional path to .env file

        Returns:
            Config instance
        """
        config_dict: dict[str, Any] = {}
        if yaml_path and Path(yaml_path).exists():
            with open(yaml_path) as f:
                config_dict = yaml.safe_load(f) or {}

        env_config = cls.from_env(env_file)
        default = cls()

        final_dict = {**config_dict}
        for section in cls.model_fields:
            env_value = getattr(env_config, section)
            if env_value != getattr(default, section):
                final_dict[section] = env_value.model_dump()

        return cls(**final_dict) if final_dict else env_config


# Default config instance
default_config = Config()
