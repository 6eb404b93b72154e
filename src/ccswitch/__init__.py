# ccswitch - Provider switcher and MCP sync for Claude Code, Codex and Gemini CLI
# ABOUTME: Version information
__version__ = "0.1.0"

# ABOUTME: Export core data models and errors
from ccswitch.errors import (
    CcSwitchError,
    ConfigCorruptedError,
    FormatError,
    IoFailureError,
    LiveFileUnavailableError,
    NotFoundError,
    ValidationFailedError,
)
from ccswitch.models import (
    APP_TYPES,
    AppConfig,
    HttpTransport,
    McpServer,
    MultiAppConfig,
    PlatformAdapter,
    PromptPreset,
    Provider,
    SseTransport,
    StdioTransport,
    UsageScript,
)

# ABOUTME: Export store loading and the merge engine
from ccswitch.config import ensure_config_dir, get_config_path, load_config
from ccswitch.merge import REMOVE, Replace, merge
from ccswitch.store import AppState

__all__ = [
    "__version__",
    "APP_TYPES",
    "AppConfig",
    "AppState",
    "CcSwitchError",
    "ConfigCorruptedError",
    "FormatError",
    "HttpTransport",
    "IoFailureError",
    "LiveFileUnavailableError",
    "McpServer",
    "MultiAppConfig",
    "NotFoundError",
    "PlatformAdapter",
    "PromptPreset",
    "Provider",
    "REMOVE",
    "Replace",
    "SseTransport",
    "StdioTransport",
    "UsageScript",
    "ValidationFailedError",
    "ensure_config_dir",
    "get_config_path",
    "load_config",
    "merge",
]
