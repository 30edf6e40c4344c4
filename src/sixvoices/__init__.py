"""SixVoices - meetings between six versions of yourself."""

from .config import ServiceConfig, load_config
from .service import DialogueResult, DialogueService, build_service

__version__ = "0.1.0"

__all__ = [
    "DialogueResult",
    "DialogueService",
    "ServiceConfig",
    "build_service",
    "load_config",
]
