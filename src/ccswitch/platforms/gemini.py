# Gemini CLI platform adapter
import copy
from pathlib import Path
from typing import Any, Literal

from ccswitch.errors import ValidationFailedError
from ccswitch.merge import drop_stale_keys, merge, removal_patch, restrict_to, strip_common_values
from ccswitch.models import (
    AppType,
    Document,
    McpServer,
    PlatformAdapter,
    Provider,
    SseTransport,
    StdioTransport,
    Transport,
)
from ccswitch.platforms.base import (
    apply_mcp_patch,
    classify_transport,
    mcp_map_patch,
    ms_from_seconds,
    parse_json_snippet,
    parse_native_servers,
    read_json_document,
    remote_transport,
    render_changed_entries,
    seconds_from_ms,
    stdio_from_entry,
    stdio_to_entry,
    string_map,
    write_json_document,
)
from ccswitch.utils.atomic import LiveTransaction
from ccswitch.utils.codec import decode_env, encode_env

GeminiAuthType = Literal["oauth-personal", "gemini-api-key"]

# ABOUTME: meta key marking the official Google provider
GOOGLE_OFFICIAL_PARTNER_KEY = "google-official"

# ABOUTME: Default endpoint used when a provider does not set GOOGLE_GEMINI_BASE_URL
DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"

# ABOUTME: .env keys owned by whichever provider is active
MANAGED_ENV_KEYS = (
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "GOOGLE_GEMINI_BASE_URL",
    "GEMINI_MODEL",
)


def detect_auth_type(provider: Provider) -> GeminiAuthType:
    """Pick the Gemini CLI auth mode for a provider.

    ABOUTME: The official Google provider uses OAuth, everything else an API key
    ABOUTME: Official means meta partner_promotion_key "google-official", or a name
    ABOUTME: that is "Google" or starts with "Google " (case-insensitive)

    Examples:
        >>> detect_auth_type(Provider(id="g", name="Google Official"))
        'oauth-personal'
    """
    partner_key = str(provider.meta.get("partner_promotion_key") or "")
    if partner_key.lower() == GOOGLE_OFFICIAL_PARTNER_KEY:
        return "oauth-personal"
    name = provider.name.strip().lower()
    if name == "google" or name.startswith("google "):
        return "oauth-personal"
    return "gemini-api-key"


def _drop_selected_type(document: Document) -> Document:
    """Remove security.auth.selectedType and prune the tables it leaves empty."""
    result = copy.deepcopy(document)
    security = result.get("security")
    if not isinstance(security, dict):
        return result
    auth = security.get("auth")
    if isinstance(auth, dict):
        auth.pop("selectedType", None)
        if not auth:
            security.pop("auth")
    if not security:
        result.pop("security")
    return result


class GeminiAdapter(PlatformAdapter):
    """Adapter for Gemini CLI (~/.gemini/.env, ~/.gemini/settings.json).

    ABOUTME: settings_config is {"env": {...}, "config": {...}?}
    ABOUTME: MCP servers live in settings.json; httpUrl means HTTP, url means SSE
    ABOUTME: Native timeout is a single millisecond "timeout" field
    """

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize adapter with optional custom config directory.

        ABOUTME: Defaults to ~/.gemini if not provided
        """
        self._config_dir = config_dir if config_dir else Path.home() / ".gemini"

    @property
    def app(self) -> AppType:
        return "gemini"

    @property
    def name(self) -> str:
        """Human-readable platform name."""
        return "Gemini CLI"

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    @property
    def env_path(self) -> Path:
        return self._config_dir / ".env"

    @property
    def settings_path(self) -> Path:
        return self._config_dir / "settings.json"

    @property
    def mcp_path(self) -> Path:
        return self.settings_path

    @property
    def prompt_path(self) -> Path:
        return self._config_dir / "GEMINI.md"

    def is_initialized(self) -> bool:
        return self._config_dir.is_dir()

    def validate_settings(self, settings_config: Document) -> list[str]:
        if not isinstance(settings_config, dict):
            return ["settings_config must be an object"]
        problems: list[str] = []
        env = settings_config.get("env")
        if env is not None and not isinstance(env, dict):
            problems.append("settings_config.env must be an object")
        config = settings_config.get("config")
        if config is not None and not isinstance(config, dict):
            problems.append("settings_config.config must be an object or null")
        return problems

    def validate_common_snippet(self, snippet: str) -> list[str]:
        try:
            parse_json_snippet(snippet)
        except ValidationFailedError as e:
            return [str(e)]
        return []

    def normalize_settings(self, settings_config: Document) -> Document:
        return settings_config

    def write_provider(
        self,
        tx: LiveTransaction,
        provider: Provider,
        common_snippet: str | None,
        outgoing: Provider | None = None,
    ) -> None:
        """Stage .env and settings.json for provider.

        ABOUTME: Managed .env keys and the env keys outgoing supplied are replaced,
        ABOUTME: unrelated .env keys are kept
        ABOUTME: A null or empty config leaves settings.json alone apart from the auth mode
        ABOUTME: and the config keys outgoing supplied
        ABOUTME: OAuth providers get an .env without managed keys, and no .env is created
        ABOUTME: when there is nothing to put in it
        """
        problems = self.validate_settings(provider.settings_config)
        if problems:
            raise ValidationFailedError(f"Provider '{provider.id}': {problems[0]}")

        content = merge(provider.settings_config, parse_json_snippet(common_snippet))
        auth_type = detect_auth_type(provider)
        new_env = (content.get("env") or {}) if auth_type == "gemini-api-key" else {}
        new_config = content.get("config") or {}

        env_bytes = tx.read_bytes(self.env_path)
        env = merge(decode_env(env_bytes) or {}, removal_patch(MANAGED_ENV_KEYS))
        if outgoing is not None:
            old_env = outgoing.settings_config.get("env") or {}
            env = merge(env, removal_patch([k for k in old_env if k not in new_env]))
        env = merge(env, {k: str(v) for k, v in new_env.items()})
        if env_bytes is not None or env:
            tx.stage(self.env_path, encode_env(env))

        existing = read_json_document(tx, self.settings_path)
        settings = existing if existing is not None else {}
        if outgoing is not None:
            old_config = outgoing.settings_config.get("config") or {}
            settings = drop_stale_keys(settings, old_config, new_config)
        if new_config:
            settings = merge(settings, new_config)
        settings = merge(settings, {"security": {"auth": {"selectedType": auth_type}}})
        if settings != existing:
            write_json_document(tx, self.settings_path, settings)

    def capture_provider(
        self, tx: LiveTransaction, common_snippet: str | None, owner: Provider | None = None
    ) -> Document | None:
        """Read .env and settings.json back into a provider snapshot.

        ABOUTME: Returns None if neither file exists
        ABOUTME: Drops mcpServers and the derived auth mode from the captured config
        ABOUTME: With owner, keeps only owner's env and config keys plus managed env keys
        """
        env = decode_env(tx.read_bytes(self.env_path))
        settings = read_json_document(tx, self.settings_path)
        if env is None and settings is None:
            return None

        config = _drop_selected_type(settings or {})
        config.pop("mcpServers", None)
        env = env or {}
        if owner is not None:
            owner_env = owner.settings_config.get("env") or {}
            owned_env = merge(dict.fromkeys(MANAGED_ENV_KEYS), owner_env)
            env = restrict_to(env, owned_env)
            config = restrict_to(config, owner.settings_config.get("config") or {})
        captured: Document = {"env": env, "config": config}
        return strip_common_values(captured, parse_json_snippet(common_snippet))

    def extract_common_snippet(self, tx: LiveTransaction) -> str | None:
        return None

    def read_mcp(self, tx: LiveTransaction) -> tuple[dict[str, McpServer], list[str]]:
        """Load MCP servers from the mcpServers key of settings.json.

        ABOUTME: A record with only "url" is treated as SSE, "httpUrl" as HTTP
        """
        document = read_json_document(tx, self.settings_path) or {}
        return parse_native_servers("gemini", document.get("mcpServers"), self._parse_entry)

    def write_mcp(
        self, tx: LiveTransaction, servers: dict[str, McpServer], removed: set[str]
    ) -> list[str]:
        """Stage settings.json with servers rendered under mcpServers.

        ABOUTME: Entries that already describe their server are left as written
        """
        if not servers and not removed:
            return []
        existing = read_json_document(tx, self.settings_path) or {}
        entries = render_changed_entries(
            servers, existing.get("mcpServers"), self._parse_entry, self._render_entry
        )
        if not entries and not removed:
            return []
        patch = mcp_map_patch("mcpServers", entries, removed)
        write_json_document(tx, self.settings_path, apply_mcp_patch(existing, "mcpServers", patch))
        return []

    def extract_credentials(self, settings_config: Document) -> tuple[str | None, str | None]:
        env = settings_config.get("env") if isinstance(settings_config, dict) else None
        if not isinstance(env, dict):
            return None, DEFAULT_GEMINI_BASE_URL
        api_key = env.get("GEMINI_API_KEY") or None
        return api_key, env.get("GOOGLE_GEMINI_BASE_URL") or DEFAULT_GEMINI_BASE_URL

    @staticmethod
    def _parse_entry(entry: dict[str, Any]) -> Transport:
        kind = classify_transport(entry, url_default="sse")
        if kind == "stdio":
            return stdio_from_entry(entry)

        timeout = entry.get("timeout")
        if kind == "http":
            url = entry.get("httpUrl") or entry.get("url")
        else:
            url = entry.get("url")
        return remote_transport(
            kind,
            url,
            string_map(entry.get("headers"), "headers"),
            tool_timeout_sec=seconds_from_ms(timeout) if timeout is not None else None,
        )

    @staticmethod
    def _render_entry(transport: Transport) -> dict[str, Any]:
        if isinstance(transport, StdioTransport):
            return stdio_to_entry(transport)
        url_key = "url" if isinstance(transport, SseTransport) else "httpUrl"
        result: dict[str, Any] = {url_key: transport.url}
        if transport.headers:
            result["headers"] = dict(transport.headers)
        timeout = transport.tool_timeout_sec
        if timeout is None:
            timeout = transport.startup_timeout_sec
        if timeout is not None:
            result["timeout"] = ms_from_seconds(timeout)
        return result
