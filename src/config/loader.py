"""Merges ``config/config.yaml`` with the environment-backed :class:`Settings`.

The YAML file holds prompt texts, the category label list and static
defaults.  Tunables that also exist on ``Settings`` (chunk size, OCR
resolution, retrieval limits, log level) are written over the YAML values,
so ``.env`` and real environment variables always win.
"""

from pathlib import Path

import yaml

from src.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Return the YAML document at *path* with ``Settings`` values merged in.

    A missing file is treated as an empty document.  *settings* defaults to
    a freshly read ``Settings()``.
    """
    yaml_config: dict = {}
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}

    s = settings or Settings()
    _deep_merge(yaml_config, _settings_sections(s))
    return yaml_config


def _settings_sections(s: Settings) -> dict:
    return {
        "app": {"env": s.app_env},
        "ingestion": {
            "chunk_size": s.chunk_size,
            "embed_concurrency": s.embed_concurrency,
            "external_call_timeout": s.external_call_timeout,
        },
        "ocr": {"dpi": s.ocr_dpi, "min_text_chars": s.ocr_min_text_chars},
        "retrieval": {
            "top_k": s.retrieval_top_k,
            "answer_context_max_chars": s.answer_context_max_chars,
            "report_context_max_chars": s.report_context_max_chars,
        },
        "logging": {"level": s.log_level},
    }


def _deep_merge(base: dict, overrides: dict) -> None:
    """Merge *overrides* into *base* in place; nested dicts merge key by key."""
    for key, value in overrides.items():
        if isinstance(base.get(key), dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
