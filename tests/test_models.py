# Tests for core data models
import pytest

from ccswitch.errors import ValidationFailedError
from ccswitch.models import (
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
    check_app,
    transport_from_dict,
    transport_to_dict,
)


def test_check_app():
    assert check_app("codex") == "codex"
    with pytest.raises(ValidationFailedError):
        check_app("cursor")


class TestTransport:
    """Tests for transport serialization."""

    def test_stdio_to_dict_omits_empty(self):
        assert transport_to_dict(StdioTransport(command="npx")) == {
            "type": "stdio",
            "command": "npx",
        }

    def test_http_from_dict(self):
        transport = transport_from_dict(
            {"type": "http", "url": "https://x", "headers": {"A": "b"}, "tool_timeout_sec": 30}
        )
        assert transport == HttpTransport(url="https://x", headers={"A": "b"}, tool_timeout_sec=30)

    def test_sse_kind(self):
        assert transport_from_dict({"type": "sse", "url": "https://x"}).kind == "sse"

    def test_missing_command_rejected(self):
        with pytest.raises(ValidationFailedError):
            transport_from_dict({"type": "stdio"})

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationFailedError, match="Invalid transport type"):
            transport_from_dict({"type": "websocket", "url": "ws://x"})

    def test_transports_are_frozen(self):
        transport = StdioTransport(command="npx")
        with pytest.raises(AttributeError):
            transport.command = "node"  # type: ignore[misc]


class TestProvider:
    def test_serialized_keys(self):
        provider = Provider(
            id="relay",
            name="Relay",
            settings_config={"env": {}},
            sort_index=2,
            created_at=1700000000000,
            website_url="https://relay.example",
            usage_script=UsageScript(enabled=True, code="return 1", api_key="k"),
        )

        data = provider.to_dict()

        assert data["settingsConfig"] == {"env": {}}
        assert data["sortIndex"] == 2
        assert data["createdAt"] == 1700000000000
        assert data["websiteUrl"] == "https://relay.example"
        assert data["usageScript"]["apiKey"] == "k"
        assert "meta" not in data
        assert Provider.from_dict(data) == provider

    def test_name_defaults_to_id(self):
        assert Provider.from_dict({"id": "x"}).name == "x"


class TestMcpServer:
    def test_apps_always_has_every_app(self):
        server = McpServer(id="fs", transport=StdioTransport(command="npx"), apps={"claude": True})

        assert server.apps == {"claude": True, "codex": False, "gemini": False}
        assert server.name == "fs"
        assert server.is_enabled_for("claude")
        assert not server.is_enabled_for("gemini")

    def test_serialized_layout(self):
        server = McpServer(
            id="remote",
            transport=SseTransport(url="https://x/sse"),
            tags=["search"],
        )

        data = server.to_dict()

        assert data["server"] == {"type": "sse", "url": "https://x/sse"}
        assert data["tags"] == ["search"]
        assert McpServer.from_dict(data) == server


class TestAppConfig:
    """Tests for ordering and current-pointer healing."""

    def _config(self) -> AppConfig:
        config = AppConfig()
        config.providers["late"] = Provider(id="late", name="Late", created_at=1)
        config.providers["b"] = Provider(id="b", name="B", sort_index=1, created_at=5)
        config.providers["a"] = Provider(id="a", name="A", sort_index=1, created_at=2)
        config.providers["first"] = Provider(id="first", name="First", sort_index=0)
        return config

    def test_sorted_providers(self):
        ids = [p.id for p in self._config().sorted_providers()]
        assert ids == ["first", "a", "b", "late"]

    def test_resolved_current_falls_back(self):
        config = self._config()
        config.current = "ghost"

        assert config.resolved_current() == "first"
        assert config.heal_current() is True
        assert config.current == "first"
        assert config.heal_current() is False

    def test_empty_current_when_no_providers(self):
        assert AppConfig().resolved_current() == ""

    def test_next_sort_index(self):
        assert self._config().next_sort_index() == 2
        assert AppConfig().next_sort_index() == 0


class TestMultiAppConfig:
    def test_round_trip(self):
        config = MultiAppConfig()
        claude = config.app("claude")
        claude.providers["p"] = Provider(id="p", name="P", settings_config={"env": {"K": "v"}})
        claude.current = "p"
        claude.prompts["x"] = PromptPreset(id="x", name="X", content="be brief")
        claude.active_prompt_id = "x"
        config.app("codex").common_config_snippet = 'approval_policy = "never"\n'
        config.mcp_servers["fs"] = McpServer(
            id="fs", transport=StdioTransport(command="npx"), apps={"gemini": True}
        )

        data = config.to_dict()

        assert data["version"] == 2
        assert data["claude"]["activePromptId"] == "x"
        assert data["codex"]["commonConfigSnippet"] == 'approval_policy = "never"\n'
        assert "fs" in data["mcp"]["servers"]
        assert MultiAppConfig.from_dict(data) == config

    def test_mcp_servers_for(self):
        config = MultiAppConfig()
        config.mcp_servers["a"] = McpServer(
            id="a", transport=StdioTransport(command="x"), apps={"claude": True}
        )
        config.mcp_servers["b"] = McpServer(id="b", transport=StdioTransport(command="y"))

        assert list(config.mcp_servers_for("claude")) == ["a"]
        assert config.mcp_servers_for("codex") == {}

    def test_every_app_present_up_front(self):
        """app() only looks up, so it is safe under a shared read lock."""
        config = MultiAppConfig(apps={})

        assert set(config.apps) == {"claude", "codex", "gemini"}
        snapshot = dict(config.apps)
        assert config.app("gemini") is snapshot["gemini"]
        assert config.apps == snapshot
        with pytest.raises(ValidationFailedError):
            config.app("cursor")

    def test_copy_is_deep(self):
        config = MultiAppConfig()
        copied = config.copy()
        copied.app("claude").current = "changed"
        assert config.app("claude").current == ""

    def test_malformed_rejected(self):
        with pytest.raises(ValidationFailedError):
            MultiAppConfig.from_dict({"mcp": {"servers": {"x": {"server": {"type": "stdio"}}}}})
        with pytest.raises(ValidationFailedError):
            MultiAppConfig.from_dict([])


def test_adapters_satisfy_protocol(adapters):
    for adapter in adapters.values():
        assert isinstance(adapter, PlatformAdapter)
