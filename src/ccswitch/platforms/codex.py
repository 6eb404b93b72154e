# Codex CLI platform adapter
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from ccswitch.errors import ValidationFailedError
from ccswitch.merge import REMOVE, Replace, strip_common_values
from ccswitch.models import (
    AppType,
    Document,
    HttpTransport,
    McpServer,
    PlatformAdapter,
    Provider,
    SseTransport,
    StdioTransport,
    Transport,
)
from ccswitch.platforms.base import (
    classify_transport,
    mcp_map_patch,
    parse_native_servers,
    parse_toml_snippet,
    patch_toml_document,
    read_json_document,
    read_toml_document,
    remote_transport,
    render_changed_entries,
    seconds_from_ms,
    stdio_from_entry,
    stdio_to_entry,
    string_map,
    write_json_document,
)
from ccswitch.utils.atomic import LiveTransaction
from ccswitch.utils.codec import encode_toml

# ABOUTME: Provider fields that belong in [model_providers.<id>], not at the root
PROVIDER_TABLE_KEYS = ("base_url", "wire_api", "env_key", "requires_openai_auth")

# ABOUTME: Root keys owned by the active provider, excluded from the common snippet
PROVIDER_ROOT_KEYS = ("model", "model_provider", "model_providers", *PROVIDER_TABLE_KEYS)

# ABOUTME: Snippet keys that are not copied to the root of config.toml as-is
NON_ROOT_SNIPPET_KEYS = ("name", "model_provider", "model_providers", *PROVIDER_TABLE_KEYS)

# ABOUTME: Hosts whose providers default to the Responses API and OpenAI login
OFFICIAL_HOSTS = ("api.openai.com",)


def provider_key(name: str, fallback: str = "custom") -> str:
    """Build the model_provider id from a provider's display name.

    Examples:
        >>> provider_key("My Relay #2")
        'myrelay2'
    """
    key = "".join(ch for ch in name if ch.isalnum()).lower()
    return key or fallback


def is_official_endpoint(base_url: str) -> bool:
    """True for a blank base_url (built-in OpenAI) or an api.openai.com URL."""
    if not base_url.strip():
        return True
    return urlparse(base_url).hostname in OFFICIAL_HOSTS


def snippet_from_live(live: Document) -> Document:
    """Extract the provider-specific fields from a live config.toml document.

    ABOUTME: Prefers model_providers.<model_provider>, falls back to legacy root keys
    ABOUTME: Never invents a model; only fields present in the file are returned
    """
    provider_id = live.get("model_provider")
    tables = live.get("model_providers")
    table: Document = {}
    if isinstance(tables, dict) and isinstance(provider_id, str):
        candidate = tables.get(provider_id)
        if isinstance(candidate, dict):
            table = candidate

    def lookup(key: str) -> Any:
        return table[key] if key in table else live.get(key)

    snippet: Document = {}
    base_url = lookup("base_url")
    if isinstance(base_url, str) and base_url.strip():
        snippet["base_url"] = base_url.strip()
    if isinstance(live.get("model"), str):
        snippet["model"] = live["model"]
    wire_api = lookup("wire_api")
    if isinstance(wire_api, str) and wire_api.strip():
        snippet["wire_api"] = wire_api.strip()

    requires_openai_auth = lookup("requires_openai_auth")
    env_key = lookup("env_key")
    env_key = env_key.strip() if isinstance(env_key, str) else ""
    if requires_openai_auth is True:
        snippet["requires_openai_auth"] = True
    elif env_key:
        # Pin the mode so a later render does not infer OpenAI login
        snippet["env_key"] = env_key
        snippet["requires_openai_auth"] = False
    elif requires_openai_auth is False:
        snippet["requires_openai_auth"] = False
    return snippet


class CodexAdapter(PlatformAdapter):
    """Adapter for Codex CLI (~/.codex/auth.json, ~/.codex/config.toml).

    ABOUTME: settings_config is {"auth": {...}?, "config": "<toml snippet>"}
    ABOUTME: Uses snake_case mcp_servers key (not mcpServers)
    ABOUTME: Codex has no SSE transport; SSE servers are skipped with a warning
    """

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize adapter with optional custom config directory.

        ABOUTME: Defaults to ~/.codex if not provided
        """
        self._config_dir = config_dir if config_dir else Path.home() / ".codex"

    @property
    def app(self) -> AppType:
        return "codex"

    @property
    def name(self) -> str:
        """Human-readable platform name."""
        return "Codex CLI"

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    @property
    def settings_path(self) -> Path:
        return self._config_dir / "config.toml"

    @property
    def auth_path(self) -> Path:
        return self._config_dir / "auth.json"

    @property
    def mcp_path(self) -> Path:
        return self.settings_path

    @property
    def prompt_path(self) -> Path:
        return self._config_dir / "AGENTS.md"

    def is_initialized(self) -> bool:
        return self._config_dir.is_dir()

    def validate_settings(self, settings_config: Document) -> list[str]:
        if not isinstance(settings_config, dict):
            return ["settings_config must be an object"]
        problems: list[str] = []
        auth = settings_config.get("auth")
        if auth is not None and not isinstance(auth, dict):
            problems.append("settings_config.auth must be an object")
        config_text = settings_config.get("config")
        if config_text is not None:
            if not isinstance(config_text, str):
                problems.append("settings_config.config must be TOML text")
            else:
                try:
                    parse_toml_snippet(config_text)
                except ValidationFailedError as e:
                    problems.append(str(e))
        return problems

    def validate_common_snippet(self, snippet: str) -> list[str]:
        try:
            parse_toml_snippet(snippet)
        except ValidationFailedError as e:
            return [str(e)]
        return []

    def normalize_settings(self, settings_config: Document) -> Document:
        return settings_config

    def _stored_snippet(self, provider: Provider) -> Document:
        return parse_toml_snippet(provider.settings_config.get("config"))

    def _root_fields(self, stored: Document) -> Document:
        """Stored snippet keys that are written at the root of config.toml."""
        return {name: value for name, value in stored.items() if name not in NON_ROOT_SNIPPET_KEYS}

    def _table_key(self, provider: Provider) -> str:
        return provider_key(provider.name, fallback=provider_key(provider.id))

    def write_provider(
        self,
        tx: LiveTransaction,
        provider: Provider,
        common_snippet: str | None,
        outgoing: Provider | None = None,
    ) -> None:
        """Stage config.toml (and auth.json when the provider carries auth).

        ABOUTME: Writes model_provider, model and [model_providers.<id>]
        ABOUTME: Root keys and the provider table outgoing wrote are removed first
        ABOUTME: Never writes an env_key the provider did not configure
        ABOUTME: auth.json is only written for non-empty auth; otherwise left untouched
        """
        settings = provider.settings_config
        problems = self.validate_settings(settings)
        if problems:
            raise ValidationFailedError(f"Provider '{provider.id}': {problems[0]}")

        auth = settings.get("auth")
        has_auth = isinstance(auth, dict) and bool(auth)
        stored = self._stored_snippet(provider)
        common = parse_toml_snippet(common_snippet)

        base_url = str(stored.get("base_url", "") or "").strip()
        official = is_official_endpoint(base_url)
        wire_api = stored.get("wire_api") or ("responses" if official else "chat")
        env_key = str(stored.get("env_key", "") or "").strip()
        inferred_openai_auth = (env_key == "OPENAI_API_KEY" and has_auth) or (
            official and not env_key
        )
        requires_openai_auth = stored.get("requires_openai_auth", inferred_openai_auth)

        key = self._table_key(provider)
        table: Document = {"name": key}
        if base_url:
            table["base_url"] = base_url
        table["wire_api"] = wire_api
        if requires_openai_auth:
            table["requires_openai_auth"] = True
        elif env_key:
            table["env_key"] = env_key

        root = self._root_fields(stored)
        patch: Document = {name: REMOVE for name in PROVIDER_TABLE_KEYS}
        tables: Document = {}
        if outgoing is not None:
            for name in self._root_fields(self._stored_snippet(outgoing)):
                if name not in root:
                    patch[name] = REMOVE
            outgoing_key = self._table_key(outgoing)
            if outgoing_key != key:
                tables[outgoing_key] = REMOVE
        patch["model_provider"] = key
        patch.update(root)
        tables[key] = Replace(table)
        patch["model_providers"] = tables

        patch_toml_document(tx, self.settings_path, patch, common)

        if has_auth:
            write_json_document(tx, self.auth_path, auth)

    def capture_provider(
        self, tx: LiveTransaction, common_snippet: str | None, owner: Provider | None = None
    ) -> Document | None:
        """Read config.toml and auth.json back into a provider snapshot.

        ABOUTME: Returns None if config.toml doesn't exist
        ABOUTME: auth is only captured when auth.json exists and is non-empty
        ABOUTME: With owner, root keys (model included) are captured only if owner set them
        """
        live = read_toml_document(tx, self.settings_path)
        if live is None:
            return None
        snippet = snippet_from_live(live)
        if owner is not None:
            owned = self._root_fields(self._stored_snippet(owner))
            if "model" not in owned:
                snippet.pop("model", None)
            for name in owned:
                if name in live and name not in snippet:
                    snippet[name] = live[name]
        snippet = strip_common_values(snippet, parse_toml_snippet(common_snippet))

        captured: Document = {}
        auth = read_json_document(tx, self.auth_path)
        if auth:
            captured["auth"] = auth
        captured["config"] = encode_toml(snippet).decode("utf-8")
        return captured

    def extract_common_snippet(self, tx: LiveTransaction) -> str | None:
        """Everything in config.toml that is neither provider-owned nor MCP.

        ABOUTME: Returns None when nothing shared is left
        """
        live = read_toml_document(tx, self.settings_path)
        if not live:
            return None
        shared = {
            key: value
            for key, value in live.items()
            if key not in PROVIDER_ROOT_KEYS and key != "mcp_servers"
        }
        if not shared:
            return None
        return encode_toml(shared).decode("utf-8")

    def read_mcp(self, tx: LiveTransaction) -> tuple[dict[str, McpServer], list[str]]:
        """Load MCP servers from the mcp_servers table of config.toml.

        ABOUTME: A record with only "url" is treated as streamable HTTP
        ABOUTME: Accepts startup_timeout_ms as an alias of startup_timeout_sec
        """
        document = read_toml_document(tx, self.settings_path) or {}
        return parse_native_servers("codex", document.get("mcp_servers"), self._parse_entry)

    def write_mcp(
        self, tx: LiveTransaction, servers: dict[str, McpServer], removed: set[str]
    ) -> list[str]:
        """Stage config.toml with servers rendered under mcp_servers.

        ABOUTME: SSE servers cannot be represented and are removed instead
        """
        warnings: list[str] = []
        supported: dict[str, McpServer] = {}
        dropped = set(removed)
        for sid, server in servers.items():
            if isinstance(server.transport, SseTransport):
                warnings.append(f"Codex does not support SSE transport; skipped MCP server '{sid}'")
                dropped.add(sid)
                continue
            supported[sid] = server

        if not supported and not dropped:
            return warnings
        existing = read_toml_document(tx, self.settings_path) or {}
        entries = render_changed_entries(
            supported, existing.get("mcp_servers"), self._parse_entry, self._render_entry
        )
        if not entries and not dropped:
            return warnings
        patch = mcp_map_patch("mcp_servers", entries, dropped)
        patch_toml_document(tx, self.settings_path, patch, prune="mcp_servers")
        return warnings

    def extract_credentials(self, settings_config: Document) -> tuple[str | None, str | None]:
        if not isinstance(settings_config, dict):
            return None, None
        auth = settings_config.get("auth")
        api_key = auth.get("OPENAI_API_KEY") if isinstance(auth, dict) else None
        try:
            stored = parse_toml_snippet(settings_config.get("config"))
        except ValidationFailedError:
            stored = {}
        base_url = stored.get("base_url")
        return api_key or None, base_url or None

    @staticmethod
    def _parse_entry(entry: dict[str, Any]) -> Transport:
        kind = classify_transport(entry, url_default="http")
        if kind == "stdio":
            return stdio_from_entry(entry)

        headers = entry.get("http_headers", entry.get("headers"))
        startup = entry.get("startup_timeout_sec")
        if startup is None and entry.get("startup_timeout_ms") is not None:
            startup = seconds_from_ms(entry["startup_timeout_ms"])
        return remote_transport(
            kind,
            entry.get("url"),
            string_map(headers, "http_headers"),
            startup_timeout_sec=startup,
            tool_timeout_sec=entry.get("tool_timeout_sec"),
        )

    @staticmethod
    def _render_entry(transport: Transport) -> dict[str, Any]:
        if isinstance(transport, StdioTransport):
            return stdio_to_entry(transport)
        if not isinstance(transport, HttpTransport):
            raise ValueError(f"Codex cannot render a {transport.kind} MCP server")
        result: dict[str, Any] = {"url": transport.url}
        if transport.headers:
            result["http_headers"] = dict(transport.headers)
        if transport.startup_timeout_sec is not None:
            result["startup_timeout_sec"] = transport.startup_timeout_sec
        if transport.tool_timeout_sec is not None:
            result["tool_timeout_sec"] = transport.tool_timeout_sec
        return result
