# ABOUTME: Tests for provider operations and the switch orchestrator
# ABOUTME: Uses real adapters over tmp_path so every live file write is observable
import json
import threading

import pytest
import tomli

from ccswitch import mcp, providers
from ccswitch.config import load_config
from ccswitch.errors import (
    IoFailureError,
    LiveFileUnavailableError,
    NotFoundError,
    ValidationFailedError,
)
from ccswitch.models import McpServer, Provider, StdioTransport, UsageScript
from ccswitch.providers import SwitchState, switch_provider
from ccswitch.settings import Settings
from ccswitch.utils import atomic
from ccswitch.utils.codec import decode_env


def claude_provider(provider_id: str, token: str, **kwargs) -> Provider:
    return Provider(
        id=provider_id,
        name=provider_id.title(),
        settings_config={"env": {"ANTHROPIC_AUTH_TOKEN": token}},
        **kwargs,
    )


def read_json(path):
    return json.loads(path.read_text())


class TestSwitchProvider:
    """Tests for switch_provider and ProviderSwitch."""

    def test_switch_writes_live_and_updates_current(self, state):
        providers.add_provider(state, "claude", claude_provider("a", "token-a"))
        providers.add_provider(state, "claude", claude_provider("b", "token-b"))

        result = switch_provider(state, "claude", "b")

        assert result.state is SwitchState.COMMITTED
        assert result.previous_id == "a"
        assert result.live_synced
        assert state.config.app("claude").current == "b"
        settings = read_json(state.adapter("claude").settings_path)
        assert settings["env"]["ANTHROPIC_AUTH_TOKEN"] == "token-b"
        assert read_json(state.config_path)["claude"]["current"] == "b"

    def test_switch_preserves_unmanaged_keys(self, state):
        providers.add_provider(state, "claude", claude_provider("a", "token-a"))
        providers.add_provider(state, "claude", claude_provider("b", "token-b"))
        path = state.adapter("claude").settings_path
        live = read_json(path)
        live["permissions"] = {"deny": ["Read(.env)"]}
        path.write_text(json.dumps(live))

        switch_provider(state, "claude", "b")

        assert read_json(path)["permissions"] == {"deny": ["Read(.env)"]}

    def test_backfill_keeps_live_edits(self, state):
        """Edits made to the live file are saved into the outgoing provider."""
        providers.add_provider(state, "claude", claude_provider("a", "token-a"))
        providers.add_provider(state, "claude", claude_provider("b", "token-b"))
        path = state.adapter("claude").settings_path
        live = read_json(path)
        live["env"]["ANTHROPIC_MODEL"] = "edited-model"
        path.write_text(json.dumps(live))

        switch_provider(state, "claude", "b")

        backfilled = state.config.app("claude").providers["a"].settings_config
        assert backfilled["env"]["ANTHROPIC_MODEL"] == "edited-model"
        assert "ANTHROPIC_MODEL" not in read_json(path)["env"]

        switch_provider(state, "claude", "a")
        assert read_json(path)["env"]["ANTHROPIC_MODEL"] == "edited-model"

    def test_unknown_provider_has_no_side_effects(self, state):
        providers.add_provider(state, "claude", claude_provider("a", "token-a"))
        before = state.adapter("claude").settings_path.read_bytes()
        switch = providers.ProviderSwitch(state, "claude", "ghost")

        with pytest.raises(NotFoundError):
            switch.run()

        assert switch.status is SwitchState.REJECTED
        assert state.config.app("claude").current == "a"
        assert state.adapter("claude").settings_path.read_bytes() == before

    def test_uninitialized_app_still_switches(self, make_state, tmp_path):
        """A missing app directory means a warning and no live files, not a failure."""
        state = make_state(initialized=())
        providers.add_provider(state, "claude", claude_provider("a", "token-a"))
        providers.add_provider(state, "claude", claude_provider("b", "token-b"))

        result = switch_provider(state, "claude", "b")

        assert result.state is SwitchState.COMMITTED
        assert not result.live_synced
        assert any("not initialized" in w for w in result.report.warnings)
        assert state.config.app("claude").current == "b"
        assert not (tmp_path / ".claude").exists()
        assert not (tmp_path / ".claude.json").exists()

    def test_live_sync_always_creates_directory(self, make_state, tmp_path):
        state = make_state(initialized=(), settings=Settings(live_sync="always"))
        providers.add_provider(state, "claude", claude_provider("a", "token-a"))

        switch_provider(state, "claude", "a")

        assert (tmp_path / ".claude" / "settings.json").exists()

    def test_live_sync_never_touches_nothing(self, make_state, tmp_path):
        state = make_state(settings=Settings(live_sync="never"))
        providers.add_provider(state, "claude", claude_provider("a", "token-a"))

        result = switch_provider(state, "claude", "a")

        assert result.report.warnings == []
        assert not (tmp_path / ".claude" / "settings.json").exists()

    def test_persist_failure_rolls_back_live_files(self, state, monkeypatch):
        providers.add_provider(state, "claude", claude_provider("a", "token-a"))
        providers.add_provider(state, "claude", claude_provider("b", "token-b"))
        path = state.adapter("claude").settings_path
        before = path.read_bytes()

        def failing_commit(config):
            raise IoFailureError(state.config_path, "disk full")

        monkeypatch.setattr(state, "commit", failing_commit)
        switch = providers.ProviderSwitch(state, "claude", "b")

        with pytest.raises(IoFailureError):
            switch.run()

        assert switch.status is SwitchState.REJECTED
        assert path.read_bytes() == before
        assert state.config.app("claude").current == "a"

    def test_live_write_failure_rejects_and_keeps_store(self, state, monkeypatch):
        providers.add_provider(state, "claude", claude_provider("a", "token-a"))
        providers.add_provider(state, "claude", claude_provider("b", "token-b"))
        path = state.adapter("claude").settings_path
        live_before = path.read_bytes()
        store_before = state.config_path.read_bytes()
        real_write = atomic.atomic_write

        def failing_write(target, data):
            if target == path:
                raise IoFailureError(target, "read-only file system")
            real_write(target, data)

        monkeypatch.setattr(atomic, "atomic_write", failing_write)
        switch = providers.ProviderSwitch(state, "claude", "b")

        with pytest.raises(IoFailureError):
            switch.run()

        assert switch.status is SwitchState.REJECTED
        assert state.config.app("claude").current == "a"
        assert state.config_path.read_bytes() == store_before
        assert path.read_bytes() == live_before

    def test_concurrent_switch_and_mcp_upsert_both_land(self, state):
        providers.add_provider(state, "claude", claude_provider("a", "token-a"))
        providers.add_provider(state, "claude", claude_provider("b", "token-b"))
        server = McpServer(id="fs", transport=StdioTransport(command="npx"), apps={"claude": True})
        barrier = threading.Barrier(2)
        errors = []

        def run(operation):
            barrier.wait()
            try:
                operation()
            except Exception as e:
                errors.append(e)

        threads = [
            threading.Thread(target=run, args=(lambda: switch_provider(state, "claude", "b"),)),
            threading.Thread(target=run, args=(lambda: mcp.upsert_server(state, server),)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert errors == []
        for config in (state.config, load_config(state.config_path)):
            assert config.app("claude").current == "b"
            assert "fs" in config.mcp_servers
        live = read_json(state.adapter("claude").settings_path)
        assert live["env"]["ANTHROPIC_AUTH_TOKEN"] == "token-b"
        mcp_map = read_json(state.adapter("claude").mcp_path)["mcpServers"]
        assert mcp_map["fs"]["command"] == "npx"

    def test_gemini_switch_merges_config(self, state):
        """Switching keeps mcpServers and other keys next to the provider's config."""
        gemini = state.adapter("gemini")
        gemini.settings_path.write_text(
            json.dumps({"mcpServers": {"keep": {"command": "echo"}}, "other": 1})
        )
        providers.add_provider(state, "gemini", Provider(id="seed", name="Seed"))
        providers.add_provider(
            state,
            "gemini",
            Provider(
                id="relay",
                name="Relay",
                settings_config={
                    "env": {"GEMINI_API_KEY": "k"},
                    "config": {"security": {"folderTrust": {"enabled": True}}},
                },
            ),
        )

        switch_provider(state, "gemini", "relay")

        settings = read_json(gemini.settings_path)
        assert settings["mcpServers"] == {"keep": {"command": "echo"}}
        assert settings["other"] == 1
        assert settings["security"]["folderTrust"] == {"enabled": True}

    def test_codex_switch(self, state):
        providers.add_provider(
            state,
            "codex",
            Provider(
                id="official",
                name="OpenAI",
                settings_config={"auth": {"OPENAI_API_KEY": "sk"}, "config": ""},
            ),
        )
        providers.add_provider(
            state,
            "codex",
            Provider(
                id="relay",
                name="Relay",
                settings_config={"config": 'base_url = "https://relay/v1"\nmodel = "gpt-5"\n'},
            ),
        )

        switch_provider(state, "codex", "relay")

        config = tomli.loads(state.adapter("codex").settings_path.read_text())
        assert config["model_provider"] == "relay"
        assert config["model_providers"]["relay"]["base_url"] == "https://relay/v1"


class TestSwitchKeyOwnership:
    """Keys one provider wrote must not leak into the live files or the next provider."""

    def test_claude_round_trip(self, state):
        opus = claude_provider("a", "token-a")
        opus.settings_config["model"] = "opus"
        providers.add_provider(state, "claude", opus)
        providers.add_provider(state, "claude", claude_provider("b", "token-b"))
        path = state.adapter("claude").settings_path
        live = read_json(path)
        live["permissions"] = {"deny": ["Read(.env)"]}
        path.write_text(json.dumps(live))

        switch_provider(state, "claude", "b")

        live = read_json(path)
        assert "model" not in live
        assert live["permissions"] == {"deny": ["Read(.env)"]}

        switch_provider(state, "claude", "a")

        stored = state.config.app("claude").providers["b"].settings_config
        assert stored == {"env": {"ANTHROPIC_AUTH_TOKEN": "token-b"}}
        assert read_json(path)["model"] == "opus"

    def test_codex_round_trip(self, state):
        providers.add_provider(
            state,
            "codex",
            Provider(
                id="a",
                name="A",
                settings_config={"config": 'model = "gpt-5"\nbase_url = "https://a/v1"\n'},
            ),
        )
        providers.add_provider(
            state,
            "codex",
            Provider(id="b", name="B", settings_config={"config": 'base_url = "https://b/v1"\n'}),
        )
        path = state.adapter("codex").settings_path

        switch_provider(state, "codex", "b")

        config = tomli.loads(path.read_text())
        assert "model" not in config
        assert set(config["model_providers"]) == {"b"}

        switch_provider(state, "codex", "a")

        stored = state.config.app("codex").providers["b"].settings_config
        assert "model" not in tomli.loads(stored["config"])
        assert tomli.loads(path.read_text())["model"] == "gpt-5"

    def test_gemini_env_round_trip(self, state):
        providers.add_provider(
            state,
            "gemini",
            Provider(
                id="a",
                name="A",
                settings_config={"env": {"GEMINI_API_KEY": "ka", "GEMINI_CLI_FLAG": "x"}},
            ),
        )
        plain = Provider(id="b", name="B", settings_config={"env": {"GEMINI_API_KEY": "kb"}})
        providers.add_provider(state, "gemini", plain)
        env_path = state.adapter("gemini").env_path

        switch_provider(state, "gemini", "b")

        assert decode_env(env_path.read_bytes()) == {"GEMINI_API_KEY": "kb"}

        switch_provider(state, "gemini", "a")

        stored = state.config.app("gemini").providers["b"].settings_config
        assert stored["env"] == {"GEMINI_API_KEY": "kb"}


class TestProviderCrud:
    """Tests for add/update/delete/duplicate."""

    def test_first_provider_becomes_current(self, state):
        providers.add_provider(state, "claude", claude_provider("a", "token-a"))
        providers.add_provider(state, "claude", claude_provider("b", "token-b"))

        app_config = state.config.app("claude")
        assert app_config.current == "a"
        assert app_config.providers["a"].sort_index == 0
        assert app_config.providers["b"].sort_index == 1
        assert app_config.providers["a"].created_at == state.now_ms()
        assert providers.current_provider(state, "claude").id == "a"

    def test_duplicate_id_rejected(self, state):
        providers.add_provider(state, "claude", claude_provider("a", "token-a"))
        with pytest.raises(ValidationFailedError):
            providers.add_provider(state, "claude", claude_provider("a", "other"))

    def test_invalid_provider_rejected(self, state):
        with pytest.raises(ValidationFailedError):
            providers.add_provider(state, "claude", Provider(id="x", name=" "))
        with pytest.raises(ValidationFailedError):
            providers.add_provider(
                state,
                "claude",
                Provider(id="x", name="X", usage_script=UsageScript(auto_query_interval=2000)),
            )
        assert state.config.app("claude").providers == {}

    def test_update_current_rewrites_live(self, state):
        providers.add_provider(state, "claude", claude_provider("a", "token-a", meta={"k": "v"}))
        created = state.config.app("claude").providers["a"].created_at

        providers.update_provider(state, "claude", claude_provider("a", "rotated"))

        updated = state.config.app("claude").providers["a"]
        assert updated.created_at == created
        assert updated.meta == {"k": "v"}
        settings = read_json(state.adapter("claude").settings_path)
        assert settings["env"]["ANTHROPIC_AUTH_TOKEN"] == "rotated"

    def test_update_missing(self, state):
        with pytest.raises(NotFoundError):
            providers.update_provider(state, "claude", claude_provider("ghost", "x"))

    def test_upsert(self, state):
        providers.upsert_provider(state, "codex", Provider(id="p", name="P"))
        providers.upsert_provider(state, "codex", Provider(id="p", name="Renamed"))
        assert state.config.app("codex").providers["p"].name == "Renamed"

    def test_delete_current_self_heals(self, state):
        """Deleting the current provider moves current to the first by sort order."""
        providers.add_provider(state, "claude", claude_provider("a", "token-a"))
        providers.add_provider(state, "claude", claude_provider("b", "token-b"))
        providers.add_provider(state, "claude", claude_provider("c", "token-c"))
        providers.update_sort_order(state, "claude", {"c": -1})

        providers.delete_provider(state, "claude", "a")

        assert state.config.app("claude").current == "c"
        settings = read_json(state.adapter("claude").settings_path)
        assert settings["env"]["ANTHROPIC_AUTH_TOKEN"] == "token-c"

    def test_delete_last_provider_empties_current(self, state):
        providers.add_provider(state, "claude", claude_provider("a", "token-a"))

        providers.delete_provider(state, "claude", "a")

        assert state.config.app("claude").current == ""
        assert providers.current_provider(state, "claude") is None

    def test_current_always_valid(self, state):
        for name in ("a", "b", "c", "d"):
            providers.add_provider(state, "claude", claude_provider(name, name))
        for name in ("b", "a", "d"):
            providers.delete_provider(state, "claude", name)
            app_config = state.config.app("claude")
            assert app_config.current in app_config.providers

    def test_duplicate_provider(self, state):
        providers.add_provider(state, "claude", claude_provider("a", "token-a"))

        first = providers.duplicate_provider(state, "claude", "a")
        second = providers.duplicate_provider(state, "claude", "a")

        assert (first, second) == ("a-copy", "a-copy-2")
        copy = state.config.app("claude").providers["a-copy"]
        assert copy.name == "A (copy)"
        assert copy.settings_config == {"env": {"ANTHROPIC_AUTH_TOKEN": "token-a"}}
        assert state.config.app("claude").current == "a"

    def test_list_providers_sorted(self, state):
        providers.add_provider(state, "claude", claude_provider("a", "1"))
        providers.add_provider(state, "claude", claude_provider("b", "2"))
        providers.update_sort_order(state, "claude", {"a": 5})

        assert [p.id for p in providers.list_providers(state, "claude")] == ["b", "a"]

    def test_update_sort_order_unknown(self, state):
        with pytest.raises(NotFoundError):
            providers.update_sort_order(state, "claude", {"ghost": 1})


class TestCommonSnippet:
    def test_applied_to_current_provider(self, state):
        providers.add_provider(state, "claude", claude_provider("a", "token-a"))

        providers.set_common_config_snippet(state, "claude", '{"includeCoAuthoredBy": false}')

        assert state.config.app("claude").common_config_snippet == '{"includeCoAuthoredBy": false}'
        assert read_json(state.adapter("claude").settings_path)["includeCoAuthoredBy"] is False

    def test_invalid_snippet_rejected(self, state):
        with pytest.raises(ValidationFailedError):
            providers.set_common_config_snippet(state, "codex", "not = = toml")

    def test_blank_clears(self, state):
        providers.set_common_config_snippet(state, "gemini", "   ")
        assert state.config.app("gemini").common_config_snippet is None


class TestImportFromLive:
    def test_claude_import(self, state):
        path = state.adapter("claude").settings_path
        path.write_text(json.dumps({"env": {"ANTHROPIC_AUTH_TOKEN": "live"}}))

        assert providers.import_from_live(state, "claude") == 1

        app_config = state.config.app("claude")
        assert app_config.current == "default"
        assert app_config.providers["default"].settings_config == {
            "env": {"ANTHROPIC_AUTH_TOKEN": "live"}
        }
        assert providers.import_from_live(state, "claude") == 0

    def test_missing_live_file(self, state):
        with pytest.raises(LiveFileUnavailableError):
            providers.import_from_live(state, "gemini")

    def test_codex_import_extracts_common_snippet(self, state):
        state.adapter("codex").settings_path.write_text(
            'model = "o3"\napproval_policy = "never"\n'
        )

        providers.import_from_live(state, "codex")

        app_config = state.config.app("codex")
        assert tomli.loads(app_config.common_config_snippet) == {"approval_policy": "never"}
        captured = tomli.loads(app_config.providers["default"].settings_config["config"])
        assert captured == {"model": "o3"}

    def test_read_live_settings(self, state):
        path = state.adapter("claude").settings_path
        path.write_text('{"model": "opus"}')

        assert providers.read_live_settings(state, "claude") == {"model": "opus"}


def test_resolve_usage_credentials(state):
    provider = Provider(
        id="relay",
        name="Relay",
        settings_config={
            "env": {"ANTHROPIC_AUTH_TOKEN": "sk", "ANTHROPIC_BASE_URL": "https://relay"}
        },
        usage_script=UsageScript(enabled=True, base_url="https://usage.relay"),
    )
    providers.add_provider(state, "claude", provider)

    assert providers.resolve_usage_credentials(state, "claude", "relay") == (
        "sk",
        "https://usage.relay",
    )
