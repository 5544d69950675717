"""Configuration package for the topic-tree grading engine."""
from .registry import (
    RESPONSE_ANALYSIS_KEY,
    TOPIC_EXTRACTION_KEY,
    TURN_SCORING_KEY,
    bind_model,
    get_model,
    unbind_model,
)
from .routes import AppConfig, LlmRoute, load_app_registry, load_config, resolve_registry
from .settings import Settings, settings

__all__ = [
    "AppConfig",
    "LlmRoute",
    "load_app_registry",
    "load_config",
    "resolve_registry",
    "RESPONSE_ANALYSIS_KEY",
    "TOPIC_EXTRACTION_KEY",
    "TURN_SCORING_KEY",
    "bind_model",
    "get_model",
    "unbind_model",
    "Settings",
    "settings",
]
