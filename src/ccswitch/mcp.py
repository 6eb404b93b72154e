# MCP server operations for ccswitch
import copy
import logging
from dataclasses import dataclass, field

from ccswitch.errors import NotFoundError, ValidationFailedError
from ccswitch.models import APP_TYPES, McpServer, MultiAppConfig, check_app
from ccswitch.store import AppState
from ccswitch.sync import SyncReport, commit_with_live, should_sync, stage_mcp
from ccswitch.utils.atomic import LiveTransaction
from ccswitch.utils.validation import validate_server

logger = logging.getLogger(__name__)


@dataclass
class McpImportReport:
    """Result of importing MCP servers from one app's live file.

    ABOUTME: One malformed native entry is reported in errors, the rest still import
    """
    imported: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.imported)


def list_servers(state: AppState, app: str | None = None) -> list[McpServer]:
    """All MCP servers, or only those enabled for app (copies)."""
    with state.read() as config:
        if app is None:
            servers = config.mcp_servers
        else:
            servers = config.mcp_servers_for(check_app(app))
        return copy.deepcopy(list(servers.values()))


def get_server(state: AppState, server_id: str) -> McpServer:
    """Return a copy of one MCP server.

    Raises:
        NotFoundError: If the server doesn't exist
    """
    with state.read() as config:
        server = config.mcp_servers.get(server_id)
        if server is None:
            raise NotFoundError("MCP server", server_id)
        return copy.deepcopy(server)


def validate_mcp_server(server: McpServer) -> None:
    """Reject servers with an empty id, missing command or missing url.

    Raises:
        ValidationFailedError: With every blocking problem joined
    """
    errors = [f.message for f in validate_server(server) if f.severity == "error"]
    if errors:
        raise ValidationFailedError(f"MCP server '{server.id}': {'; '.join(errors)}")


def _sync_and_commit(
    state: AppState,
    previous: MultiAppConfig,
    working: MultiAppConfig,
    apps: list[str],
) -> SyncReport:
    """Stage the MCP map of each app in apps, then commit live files and store."""
    tx = LiveTransaction()
    report = SyncReport()
    for app in apps:
        if should_sync(state, app, report):
            stage_mcp(state, tx, previous, working, app, report)
            report.add_app(app)
    commit_with_live(state, tx, working)
    return report


def _touched_apps(before: McpServer | None, after: McpServer | None) -> list[str]:
    """Apps where the server was or is enabled."""
    return [
        app
        for app in APP_TYPES
        if (before is not None and before.is_enabled_for(app))
        or (after is not None and after.is_enabled_for(app))
    ]


def upsert_server(state: AppState, server: McpServer) -> SyncReport:
    """Create or update an MCP server and sync every affected app.

    ABOUTME: Apps whose flag went from true to false get the entry removed
    ABOUTME: Native entries the store never managed are left alone

    Raises:
        ValidationFailedError: If the definition is invalid
    """
    validate_mcp_server(server)
    with state.write():
        previous = state.config
        working = previous.copy()
        before = previous.mcp_servers.get(server.id)
        working.mcp_servers[server.id] = copy.deepcopy(server)
        report = _sync_and_commit(state, previous, working, _touched_apps(before, server))
        logger.info(f"Saved MCP server '{server.id}'")
        return report


def delete_server(state: AppState, server_id: str) -> SyncReport:
    """Delete an MCP server and remove it from every app it was enabled for.

    Raises:
        NotFoundError: If the server doesn't exist
    """
    with state.write():
        previous = state.config
        before = previous.mcp_servers.get(server_id)
        if before is None:
            raise NotFoundError("MCP server", server_id)
        working = previous.copy()
        del working.mcp_servers[server_id]
        report = _sync_and_commit(state, previous, working, _touched_apps(before, None))
        logger.info(f"Deleted MCP server '{server_id}'")
        return report


def set_server_enabled(state: AppState, server_id: str, app: str, enabled: bool) -> SyncReport:
    """Toggle one app's enable flag for a server.

    Raises:
        NotFoundError: If the server doesn't exist
    """
    check_app(app)
    with state.write():
        server = state.config.mcp_servers.get(server_id)
        if server is None:
            raise NotFoundError("MCP server", server_id)
        updated = copy.deepcopy(server)
        updated.apps[app] = enabled
        return upsert_server(state, updated)


def import_from_live(state: AppState, app: str) -> McpImportReport:
    """Import MCP servers from app's native map into the store.

    ABOUTME: New ids are added enabled for app only
    ABOUTME: Known ids get app enabled; their canonical definition is kept
    ABOUTME: Per-entry parse failures are reported, not raised

    Raises:
        FormatError: If the live file itself cannot be parsed
    """
    check_app(app)
    with state.write():
        servers, errors = state.adapter(app).read_mcp(LiveTransaction())
        result = McpImportReport(errors=list(errors))
        for error in errors:
            logger.warning(f"Skipped {app} MCP entry {error}")
        if not servers:
            return result

        working = state.config.copy()
        for server_id, server in servers.items():
            existing = working.mcp_servers.get(server_id)
            if existing is None:
                working.mcp_servers[server_id] = server
            else:
                existing.apps[app] = True
            result.imported.append(server_id)
        state.commit(working)
        logger.info(f"Imported {result.count} MCP server(s) from {app}")
        return result


def sync_enabled(state: AppState, app: str | None = None) -> SyncReport:
    """Re-render the native MCP map of app (or every app) from the store."""
    apps = list(APP_TYPES) if app is None else [check_app(app)]
    with state.write():
        config = state.config
        tx = LiveTransaction()
        report = SyncReport()
        for target in apps:
            if should_sync(state, target, report):
                stage_mcp(state, tx, config, config, target, report)
                report.add_app(target)
        tx.commit()
        return report
