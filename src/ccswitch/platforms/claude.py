# Claude Code platform adapter
import copy
from pathlib import Path
from typing import Any

from ccswitch.errors import ValidationFailedError
from ccswitch.merge import (
    REMOVE,
    drop_stale_keys,
    merge,
    removal_patch,
    restrict_to,
    strip_common_values,
)
from ccswitch.models import (
    AppType,
    Document,
    McpServer,
    PlatformAdapter,
    Provider,
    StdioTransport,
    Transport,
)
from ccswitch.platforms.base import (
    apply_mcp_patch,
    classify_transport,
    mcp_map_patch,
    parse_json_snippet,
    parse_native_servers,
    read_json_document,
    remote_transport,
    render_changed_entries,
    stdio_from_entry,
    stdio_to_entry,
    string_map,
    write_json_document,
)
from ccswitch.utils.atomic import LiveTransaction

# ABOUTME: env keys owned by whichever provider is active
# ABOUTME: Cleared before the next provider is merged in so none leak across a switch
MANAGED_ENV_KEYS = (
    "ANTHROPIC_AUTH_TOKEN",
    "ANTHROPIC_API_KEY",
    "ANTHROPIC_BASE_URL",
    "ANTHROPIC_MODEL",
    "ANTHROPIC_DEFAULT_HAIKU_MODEL",
    "ANTHROPIC_DEFAULT_SONNET_MODEL",
    "ANTHROPIC_DEFAULT_OPUS_MODEL",
    "ANTHROPIC_SMALL_FAST_MODEL",
)

# ABOUTME: Deprecated single "fast model" key folded into the per-tier keys
LEGACY_FAST_MODEL_KEY = "ANTHROPIC_SMALL_FAST_MODEL"


def normalize_model_keys(settings_config: Document) -> Document:
    """Migrate ANTHROPIC_SMALL_FAST_MODEL into the ANTHROPIC_DEFAULT_*_MODEL keys.

    ABOUTME: Haiku prefers the fast model, Sonnet and Opus prefer ANTHROPIC_MODEL
    ABOUTME: Existing per-tier keys are never overwritten

    Examples:
        >>> settings = normalize_model_keys({"env": {"ANTHROPIC_SMALL_FAST_MODEL": "h"}})
        >>> settings["env"]["ANTHROPIC_DEFAULT_HAIKU_MODEL"]
        'h'
    """
    result = copy.deepcopy(settings_config)
    env = result.get("env")
    if not isinstance(env, dict):
        return result

    model = env.get("ANTHROPIC_MODEL")
    fast = env.get(LEGACY_FAST_MODEL_KEY)
    targets = {
        "ANTHROPIC_DEFAULT_HAIKU_MODEL": fast or model,
        "ANTHROPIC_DEFAULT_SONNET_MODEL": model or fast,
        "ANTHROPIC_DEFAULT_OPUS_MODEL": model or fast,
    }
    for key, value in targets.items():
        if key not in env and value:
            env[key] = value
    env.pop(LEGACY_FAST_MODEL_KEY, None)
    return result


class ClaudeAdapter(PlatformAdapter):
    """Adapter for Claude Code (~/.claude/settings.json, ~/.claude.json).

    ABOUTME: Provider settings live in settings.json, MCP servers in ~/.claude.json
    ABOUTME: Newly rendered MCP entries carry an explicit "type" tag
    """

    def __init__(self, config_dir: Path | None = None, mcp_path: Path | None = None) -> None:
        """Initialize adapter with optional custom paths.

        ABOUTME: Defaults to ~/.claude and ~/.claude.json
        ABOUTME: mcp_path defaults to .claude.json next to config_dir
        """
        self._config_dir = config_dir if config_dir else Path.home() / ".claude"
        self._mcp_path = mcp_path if mcp_path else self._config_dir.parent / ".claude.json"

    @property
    def app(self) -> AppType:
        return "claude"

    @property
    def name(self) -> str:
        """Human-readable platform name."""
        return "Claude Code"

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    @property
    def settings_path(self) -> Path:
        return self._config_dir / "settings.json"

    @property
    def mcp_path(self) -> Path:
        return self._mcp_path

    @property
    def prompt_path(self) -> Path:
        return self._config_dir / "CLAUDE.md"

    def is_initialized(self) -> bool:
        return self._config_dir.is_dir()

    def validate_settings(self, settings_config: Document) -> list[str]:
        if not isinstance(settings_config, dict):
            return ["settings_config must be an object"]
        env = settings_config.get("env")
        if env is not None and not isinstance(env, dict):
            return ["settings_config.env must be an object"]
        return []

    def validate_common_snippet(self, snippet: str) -> list[str]:
        try:
            parse_json_snippet(snippet)
        except ValidationFailedError as e:
            return [str(e)]
        return []

    def normalize_settings(self, settings_config: Document) -> Document:
        return normalize_model_keys(settings_config)

    def _provider_settings(self, provider: Provider) -> Document:
        settings = self.normalize_settings(provider.settings_config)
        settings.pop("mcpServers", None)
        return settings

    def write_provider(
        self,
        tx: LiveTransaction,
        provider: Provider,
        common_snippet: str | None,
        outgoing: Provider | None = None,
    ) -> None:
        """Stage settings.json for provider.

        ABOUTME: Clears managed env keys and whatever outgoing supplied that provider
        ABOUTME: does not, merges the provider, then the common snippet
        ABOUTME: Every other key already in settings.json is preserved
        """
        common = parse_json_snippet(common_snippet)
        settings = self._provider_settings(provider)

        existing = read_json_document(tx, self.settings_path) or {}
        if isinstance(existing.get("env"), dict):
            existing = merge(existing, {"env": removal_patch(MANAGED_ENV_KEYS)})
        if outgoing is not None:
            existing = drop_stale_keys(existing, self._provider_settings(outgoing), settings)

        result = merge(merge(existing, settings), common)
        write_json_document(tx, self.settings_path, result)

    def capture_provider(
        self, tx: LiveTransaction, common_snippet: str | None, owner: Provider | None = None
    ) -> Document | None:
        """Read settings.json back into a provider snapshot.

        ABOUTME: Returns None if settings.json doesn't exist
        ABOUTME: Strips MCP servers and values equal to the common snippet
        ABOUTME: With owner, keeps only owner's keys plus the managed env keys
        """
        document = read_json_document(tx, self.settings_path)
        if document is None:
            return None
        document.pop("mcpServers", None)
        if owner is not None:
            shape = merge(self._provider_settings(owner), {"env": dict.fromkeys(MANAGED_ENV_KEYS)})
            document = restrict_to(document, shape)
        common = parse_json_snippet(common_snippet)
        return self.normalize_settings(strip_common_values(document, common))

    def extract_common_snippet(self, tx: LiveTransaction) -> str | None:
        return None

    def read_mcp(self, tx: LiveTransaction) -> tuple[dict[str, McpServer], list[str]]:
        """Load MCP servers from the mcpServers key of ~/.claude.json.

        ABOUTME: A record with only "url" is treated as HTTP
        """
        document = read_json_document(tx, self._mcp_path) or {}
        return parse_native_servers("claude", document.get("mcpServers"), self._parse_entry)

    def write_mcp(
        self, tx: LiveTransaction, servers: dict[str, McpServer], removed: set[str]
    ) -> list[str]:
        """Stage ~/.claude.json with servers rendered under mcpServers.

        ABOUTME: Only owned ids are touched; unmanaged entries and other keys stay
        ABOUTME: Nothing is staged when every entry already matches
        """
        if not servers and not removed:
            return []
        existing = read_json_document(tx, self._mcp_path) or {}
        entries = render_changed_entries(
            servers, existing.get("mcpServers"), self._parse_entry, self._render_entry
        )
        if not entries and not removed:
            return []
        patch = mcp_map_patch("mcpServers", entries, removed)
        write_json_document(tx, self._mcp_path, apply_mcp_patch(existing, "mcpServers", patch))
        return []

    def stage_onboarding(self, tx: LiveTransaction, skip: bool) -> None:
        """Set or clear hasCompletedOnboarding in ~/.claude.json.

        ABOUTME: Leaves the file alone when it already has the wanted value
        """
        existing = read_json_document(tx, self._mcp_path)
        current = (existing or {}).get("hasCompletedOnboarding")
        if skip and current is True:
            return
        if not skip and (existing is None or "hasCompletedOnboarding" not in existing):
            return
        patch = {"hasCompletedOnboarding": True if skip else REMOVE}
        write_json_document(tx, self._mcp_path, merge(existing or {}, patch))

    def extract_credentials(self, settings_config: Document) -> tuple[str | None, str | None]:
        env = settings_config.get("env") if isinstance(settings_config, dict) else None
        if not isinstance(env, dict):
            return None, None
        api_key = env.get("ANTHROPIC_AUTH_TOKEN") or env.get("ANTHROPIC_API_KEY")
        return api_key or None, env.get("ANTHROPIC_BASE_URL") or None

    @staticmethod
    def _parse_entry(entry: dict[str, Any]) -> Transport:
        kind = classify_transport(entry, url_default="http")
        if kind == "stdio":
            return stdio_from_entry(entry)
        return remote_transport(kind, entry.get("url"), string_map(entry.get("headers"), "headers"))

    @staticmethod
    def _render_entry(transport: Transport) -> dict[str, Any]:
        if isinstance(transport, StdioTransport):
            return {"type": "stdio", **stdio_to_entry(transport)}
        result: dict[str, Any] = {"type": transport.kind, "url": transport.url}
        if transport.headers:
            result["headers"] = dict(transport.headers)
        return result
