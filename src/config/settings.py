"""Application settings loaded from environment variables via pydantic-settings.

Values are read from two sources, environment variables first and then a
``.env`` file in the working directory.  Field ``openai_api_key`` maps to
env var ``OPENAI_API_KEY`` and so on.  Defaults apply when neither source
sets a field.

The ``.env`` file is not committed; copy ``.env.example`` when present.
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Document pipeline settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === OpenAI ===
    # Empty string = "not configured"; the factories in main.py refuse to
    # build the remote providers without a key.
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoint override
    openai_text_model: str = ""  # Defaults to gpt-4.1-mini when empty
    openai_embedding_model: str = ""  # Defaults to text-embedding-3-small when empty

    # === Chunk stores ===
    # "chromadb" persists both sinks on disk; "memory" is for local runs.
    chunk_store_backend: Literal["chromadb", "memory"] = "chromadb"
    chromadb_persist_dir: str = "./data/chromadb"
    report_collection: str = "report_chunks"
    chat_collection: str = "chat_chunks"

    # === Blob storage ===
    blob_backend: Literal["local", "s3"] = "local"
    blob_local_root: str = "uploads"
    blob_signing_secret: str = ""
    blob_public_base_url: str = ""  # Prefix for locally signed URLs
    s3_bucket: str = ""
    s3_region: str = ""

    # === Ingestion ===
    chunk_size: int = 500
    ocr_dpi: int = 200
    ocr_min_text_chars: int = 10
    ocr_work_dir: str = ""  # Empty = system temp directory
    tesseract_lang: str = "eng"
    embed_concurrency: int = 1
    external_call_timeout: float = 60.0

    # === Retrieval / generation ===
    retrieval_top_k: int = 10
    answer_context_max_chars: int = 12000
    report_context_max_chars: int = 60000

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"
