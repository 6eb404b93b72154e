# Core data models for ccswitch
import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar, Literal, Protocol, runtime_checkable

from ccswitch.errors import ValidationFailedError

if TYPE_CHECKING:
    from ccswitch.utils.atomic import LiveTransaction

# ABOUTME: The three managed command-line assistants
AppType = Literal["claude", "codex", "gemini"]
APP_TYPES: tuple[AppType, ...] = ("claude", "codex", "gemini")

# ABOUTME: Generic JSON/TOML-shaped tree used for opaque provider settings
Document = dict[str, Any]

# ABOUTME: Version written into config.json
CONFIG_VERSION = 2


def check_app(app: str) -> AppType:
    """Validate an application identifier.

    Raises:
        ValidationFailedError: If app is not one of APP_TYPES
    """
    if app not in APP_TYPES:
        raise ValidationFailedError(
            f"Unknown app '{app}'. Must be one of: {', '.join(APP_TYPES)}"
        )
    return app  # type: ignore[return-value]


@dataclass
class UsageScript:
    """Descriptor for querying a provider's usage or balance.

    ABOUTME: api_key and base_url may be blank and fall back to the provider settings
    ABOUTME: auto_query_interval is in minutes (0 disables, max 1440)
    """
    enabled: bool = False
    language: str = "javascript"
    code: str = ""
    timeout: int | None = None
    api_key: str | None = None
    base_url: str | None = None
    access_token: str | None = None
    user_id: str | None = None
    template_type: str | None = None
    auto_query_interval: int | None = None

    _KEYS: ClassVar[dict[str, str]] = {
        "enabled": "enabled",
        "language": "language",
        "code": "code",
        "timeout": "timeout",
        "api_key": "apiKey",
        "base_url": "baseUrl",
        "access_token": "accessToken",
        "user_id": "userId",
        "template_type": "templateType",
        "auto_query_interval": "autoQueryInterval",
    }

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for attr, key in self._KEYS.items():
            value = getattr(self, attr)
            if value is not None:
                result[key] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UsageScript":
        kwargs = {attr: data[key] for attr, key in cls._KEYS.items() if key in data}
        return cls(**kwargs)


@dataclass
class Provider:
    """One saved credential/endpoint profile for an application.

    ABOUTME: settings_config is an app-specific Document, deliberately untyped
    ABOUTME: sort_index orders providers, created_at (epoch ms) breaks ties
    """
    id: str
    name: str
    settings_config: Document = field(default_factory=dict)
    sort_index: int | None = None
    created_at: int | None = None
    website_url: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)
    usage_script: UsageScript | None = None
    in_failover_queue: bool = False

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "settingsConfig": self.settings_config,
        }
        if self.sort_index is not None:
            result["sortIndex"] = self.sort_index
        if self.created_at is not None:
            result["createdAt"] = self.created_at
        if self.website_url:
            result["websiteUrl"] = self.website_url
        if self.meta:
            result["meta"] = self.meta
        if self.usage_script is not None:
            result["usageScript"] = self.usage_script.to_dict()
        if self.in_failover_queue:
            result["inFailoverQueue"] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Provider":
        usage = data.get("usageScript")
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            settings_config=data.get("settingsConfig", {}),
            sort_index=data.get("sortIndex"),
            created_at=data.get("createdAt"),
            website_url=data.get("websiteUrl"),
            meta=data.get("meta", {}),
            usage_script=UsageScript.from_dict(usage) if usage else None,
            in_failover_queue=bool(data.get("inFailoverQueue", False)),
        )


@dataclass(frozen=True)
class StdioTransport:
    """Local MCP server launched as a subprocess.

    ABOUTME: Uses frozen dataclass so a transport is replaced, never edited in place
    """
    kind: ClassVar[str] = "stdio"
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    cwd: str | None = None


@dataclass(frozen=True)
class HttpTransport:
    """Remote MCP server reached over streamable HTTP.

    ABOUTME: Timeouts are stored in seconds (int when whole, float otherwise)
    """
    kind: ClassVar[str] = "http"
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    startup_timeout_sec: int | float | None = None
    tool_timeout_sec: int | float | None = None


@dataclass(frozen=True)
class SseTransport:
    """Remote MCP server reached over server-sent events."""
    kind: ClassVar[str] = "sse"
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    startup_timeout_sec: int | float | None = None
    tool_timeout_sec: int | float | None = None


Transport = StdioTransport | HttpTransport | SseTransport


def transport_to_dict(transport: Transport) -> dict[str, Any]:
    """Serialize a transport into its canonical tagged form.

    ABOUTME: Always writes the explicit "type" tag
    ABOUTME: Omits empty collections and unset timeouts
    """
    result: dict[str, Any] = {"type": transport.kind}
    if isinstance(transport, StdioTransport):
        result["command"] = transport.command
        if transport.args:
            result["args"] = list(transport.args)
        if transport.env:
            result["env"] = dict(transport.env)
        if transport.cwd:
            result["cwd"] = transport.cwd
    else:
        result["url"] = transport.url
        if transport.headers:
            result["headers"] = dict(transport.headers)
        if transport.startup_timeout_sec is not None:
            result["startup_timeout_sec"] = transport.startup_timeout_sec
        if transport.tool_timeout_sec is not None:
            result["tool_timeout_sec"] = transport.tool_timeout_sec
    return result


def transport_from_dict(data: dict[str, Any]) -> Transport:
    """Deserialize a canonical transport.

    Raises:
        ValidationFailedError: If the type tag or a required field is missing
    """
    kind = data.get("type")
    if kind == "stdio":
        if not data.get("command"):
            raise ValidationFailedError("stdio transport requires a 'command'")
        return StdioTransport(
            command=data["command"],
            args=list(data.get("args", [])),
            env=dict(data.get("env", {})),
            cwd=data.get("cwd"),
        )
    if kind in ("http", "sse"):
        if not data.get("url"):
            raise ValidationFailedError(f"{kind} transport requires a 'url'")
        cls = HttpTransport if kind == "http" else SseTransport
        return cls(
            url=data["url"],
            headers=dict(data.get("headers", {})),
            startup_timeout_sec=data.get("startup_timeout_sec"),
            tool_timeout_sec=data.get("tool_timeout_sec"),
        )
    raise ValidationFailedError(
        f"Invalid transport type '{kind}'. Must be 'stdio', 'http' or 'sse'."
    )


def empty_apps() -> dict[str, bool]:
    """Per-app enablement flags with every app disabled."""
    return {app: False for app in APP_TYPES}


@dataclass
class McpServer:
    """One tool-integration server definition shared across applications.

    ABOUTME: The id is global; apps holds an independent enable flag per application
    """
    id: str
    transport: Transport
    name: str = ""
    apps: dict[str, bool] = field(default_factory=empty_apps)
    description: str | None = None
    homepage: str | None = None
    tags: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.id
        self.apps = {app: bool(self.apps.get(app, False)) for app in APP_TYPES}

    def is_enabled_for(self, app: str) -> bool:
        return self.apps.get(app, False)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "server": transport_to_dict(self.transport),
            "apps": dict(self.apps),
        }
        if self.description:
            result["description"] = self.description
        if self.homepage:
            result["homepage"] = self.homepage
        if self.tags:
            result["tags"] = list(self.tags)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "McpServer":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            transport=transport_from_dict(data["server"]),
            apps=data.get("apps", {}),
            description=data.get("description"),
            homepage=data.get("homepage"),
            tags=list(data.get("tags", [])),
        )


@dataclass
class PromptPreset:
    """A named system-prompt body that can be activated for one application."""
    id: str
    name: str
    content: str
    description: str | None = None
    created_at: int | None = None
    updated_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id, "name": self.name, "content": self.content}
        if self.description:
            result["description"] = self.description
        if self.created_at is not None:
            result["createdAt"] = self.created_at
        if self.updated_at is not None:
            result["updatedAt"] = self.updated_at
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PromptPreset":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            content=data.get("content", ""),
            description=data.get("description"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


def provider_sort_key(provider: Provider) -> tuple[int, int, int]:
    """Sort key: providers with a sort_index first, then by index, then created_at."""
    if provider.sort_index is None:
        return (1, 0, provider.created_at or 0)
    return (0, provider.sort_index, provider.created_at or 0)


@dataclass
class AppConfig:
    """Canonical state for one application.

    ABOUTME: providers keeps insertion order; dicts preserve it through every copy
    ABOUTME: current must name an existing provider, or be empty with no providers
    """
    providers: dict[str, Provider] = field(default_factory=dict)
    current: str = ""
    prompts: dict[str, PromptPreset] = field(default_factory=dict)
    active_prompt_id: str | None = None
    common_config_snippet: str | None = None

    def sorted_providers(self) -> list[Provider]:
        """Providers in sort order; stable on insertion order for equal keys."""
        return sorted(self.providers.values(), key=provider_sort_key)

    def resolved_current(self) -> str:
        """Current provider id, falling back to the first provider in sort order.

        ABOUTME: Never returns a dangling id; empty only when there are no providers
        """
        if self.current in self.providers:
            return self.current
        ordered = self.sorted_providers()
        return ordered[0].id if ordered else ""

    def heal_current(self) -> bool:
        """Reset a dangling current pointer. Returns True if it changed."""
        healed = self.resolved_current()
        if healed != self.current:
            self.current = healed
            return True
        return False

    def next_sort_index(self) -> int:
        indexes = [p.sort_index for p in self.providers.values() if p.sort_index is not None]
        return max(indexes) + 1 if indexes else 0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "providers": {pid: p.to_dict() for pid, p in self.providers.items()},
            "current": self.current,
            "prompts": {pid: p.to_dict() for pid, p in self.prompts.items()},
        }
        if self.active_prompt_id:
            result["activePromptId"] = self.active_prompt_id
        if self.common_config_snippet is not None:
            result["commonConfigSnippet"] = self.common_config_snippet
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AppConfig":
        return cls(
            providers={
                pid: Provider.from_dict({"id": pid, **p})
                for pid, p in data.get("providers", {}).items()
            },
            current=data.get("current", ""),
            prompts={
                pid: PromptPreset.from_dict({"id": pid, **p})
                for pid, p in data.get("prompts", {}).items()
            },
            active_prompt_id=data.get("activePromptId"),
            common_config_snippet=data.get("commonConfigSnippet"),
        )


def default_apps() -> dict[str, AppConfig]:
    return {app: AppConfig() for app in APP_TYPES}


@dataclass
class MultiAppConfig:
    """The canonical store: one AppConfig per application plus global MCP servers.

    ABOUTME: MCP servers are global; the per-app view comes from their apps flags
    ABOUTME: Mutations work on copy() and are swapped in only after persisting
    """
    apps: dict[str, AppConfig] = field(default_factory=default_apps)
    mcp_servers: dict[str, McpServer] = field(default_factory=dict)
    version: int = CONFIG_VERSION

    def __post_init__(self) -> None:
        for app in APP_TYPES:
            self.apps.setdefault(app, AppConfig())

    def app(self, app: str) -> AppConfig:
        """Return the AppConfig for app. Never mutates, so it is safe under read()."""
        return self.apps[check_app(app)]

    def mcp_servers_for(self, app: str) -> dict[str, McpServer]:
        """MCP servers enabled for app, in canonical order."""
        return {sid: s for sid, s in self.mcp_servers.items() if s.is_enabled_for(app)}

    def copy(self) -> "MultiAppConfig":
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"version": self.version}
        for app in APP_TYPES:
            result[app] = self.app(app).to_dict()
        result["mcp"] = {"servers": {sid: s.to_dict() for sid, s in self.mcp_servers.items()}}
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MultiAppConfig":
        """Build a store from its serialized form.

        Raises:
            ValidationFailedError: If an entity is malformed
        """
        if not isinstance(data, dict):
            raise ValidationFailedError("Config root must be a JSON object")
        try:
            apps = {app: AppConfig.from_dict(data.get(app, {})) for app in APP_TYPES}
            servers = {
                sid: McpServer.from_dict({"id": sid, **s})
                for sid, s in data.get("mcp", {}).get("servers", {}).items()
            }
        except (KeyError, TypeError, AttributeError) as e:
            raise ValidationFailedError(f"Malformed config entry: {e}") from e
        return cls(apps=apps, mcp_servers=servers, version=data.get("version", CONFIG_VERSION))


@runtime_checkable
class PlatformAdapter(Protocol):
    """Protocol for application-specific live file adapters.

    ABOUTME: Every read and write goes through a LiveTransaction so that
    ABOUTME: several files can be staged, committed and rolled back together
    """

    @property
    def app(self) -> AppType:
        """Application identifier."""
        ...

    @property
    def config_dir(self) -> Path:
        """Application config directory (its existence means "initialized")."""
        ...

    @property
    def settings_path(self) -> Path:
        """Primary live file holding provider settings."""
        ...

    @property
    def mcp_path(self) -> Path:
        """Live file holding the native MCP server map."""
        ...

    @property
    def prompt_path(self) -> Path:
        """Live prompt file."""
        ...

    def is_initialized(self) -> bool:
        ...

    def validate_settings(self, settings_config: Document) -> list[str]:
        """Return problems with a provider's settings_config (empty if valid)."""
        ...

    def normalize_settings(self, settings_config: Document) -> Document:
        """Return settings_config with legacy keys migrated."""
        ...

    def validate_common_snippet(self, snippet: str) -> list[str]:
        """Return problems with a common config snippet (empty if valid)."""
        ...

    def write_provider(
        self,
        tx: "LiveTransaction",
        provider: Provider,
        common_snippet: str | None,
        outgoing: Provider | None = None,
    ) -> None:
        """Stage the provider's live projection merged over the existing files.

        ABOUTME: Keys outgoing supplied and provider does not are removed first
        """
        ...

    def capture_provider(
        self,
        tx: "LiveTransaction",
        common_snippet: str | None,
        owner: Provider | None = None,
    ) -> Document | None:
        """Read the live files back into a settings_config, or None if absent.

        ABOUTME: With owner, only the keys owner manages are captured
        """
        ...

    def extract_common_snippet(self, tx: "LiveTransaction") -> str | None:
        """Derive a common config snippet from the live files, if the app has one."""
        ...

    def read_mcp(self, tx: "LiveTransaction") -> tuple[dict[str, McpServer], list[str]]:
        """Parse the native MCP map. Returns (servers, per-entry errors)."""
        ...

    def write_mcp(
        self, tx: "LiveTransaction", servers: dict[str, McpServer], removed: set[str]
    ) -> list[str]:
        """Stage the native MCP map for servers, dropping removed ids.

        Returns warnings for servers the app cannot represent.
        """
        ...

    def extract_credentials(self, settings_config: Document) -> tuple[str | None, str | None]:
        """Return (api_key, base_url) from a provider's settings_config."""
        ...
