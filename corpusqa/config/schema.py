"""Configuration schema using Pydantic.

Single data model and defaults for the pipeline, persisted to ~/.corpusqa/config.json.
Environment variables override file values: CORPUSQA_<SECTION>__<FIELD>.
"""

from typing import Literal

from pydantic import BaseModel, Field, ConfigDict
from pydantic_settings import BaseSettings


class EmbeddingConfig(BaseModel):
    """Embedding provider (reached through LiteLLM)."""
    provider: str = "huggingface"  # LiteLLM provider prefix: huggingface | openai | ...
    model: str = "sentence-transformers/all-mpnet-base-v2"
    api_key: str = ""
    api_base: str | None = None
    dimension: int = 768  # Must match the vector index collections
    batch_size: int = 96  # Texts per provider request
    timeout: float = 60.0


class GenerationConfig(BaseModel):
    """Answer-generation model (reached through LiteLLM)."""
    model: str = "openrouter/openai/gpt-4o-mini"
    api_key: str = ""
    api_base: str | None = None
    temperature: float = 0.3
    max_tokens: int = 2000
    timeout: float = 120.0
    extra_headers: dict[str, str] | None = None  # e.g. HTTP-Referer / X-Title for OpenRouter


class VectorIndexConfig(BaseModel):
    """Chroma-backed similarity index."""
    backend: Literal["persistent", "http", "ephemeral"] = "persistent"
    path: str = ""  # persistent backend only; empty means ~/.corpusqa/index
    host: str = "localhost"  # http backend only
    port: int = 8000
    ssl: bool = False
    headers: dict[str, str] = Field(default_factory=dict)  # e.g. auth token for a hosted server
    index_name: str = "corpusqa"
    namespace: str = "default"  # One logical corpus
    upsert_batch_size: int = 80


class ChunkingConfig(BaseModel):
    """Fixed-window chunking."""
    chunk_size: int = 1200
    chunk_overlap: int = 200


class RetrievalConfig(BaseModel):
    """Query-time retrieval."""
    top_k: int = 4


class LoggingConfig(BaseModel):
    """CLI log sinks (the library never configures loguru sinks itself)."""
    level: str = "INFO"
    file_enabled: bool = True


class EnvConfig(BaseModel):
    """Env vars applied to os.environ with setdefault (e.g. HUGGINGFACE_API_KEY, OPENROUTER_API_KEY)."""
    vars: dict[str, str] | None = None


class Config(BaseSettings):
    """Root configuration for corpusqa."""
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    vector_index: VectorIndexConfig = Field(default_factory=VectorIndexConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    env: EnvConfig | None = None

    model_config = ConfigDict(
        env_prefix="CORPUSQA_",
        env_nested_delimiter="__"
    )

    @classmethod
    def settings_customise_sources(
        cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings
    ):
        # CORPUSQA_* environment variables win over values loaded from config.json
        return env_settings, init_settings, dotenv_settings, file_secret_settings
