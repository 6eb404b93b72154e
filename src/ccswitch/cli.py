# CLI interface for ccswitch
import argparse
import logging
import sys
from collections.abc import Callable
from pathlib import Path

from ccswitch import __version__, mcp, prompts, providers, snapshots
from ccswitch.errors import (
    CcSwitchError,
    ConfigCorruptedError,
    IoFailureError,
    LiveFileUnavailableError,
)
from ccswitch.models import APP_TYPES
from ccswitch.store import AppState
from ccswitch.sync import SyncReport

logger = logging.getLogger(__name__)

# ABOUTME: Exit codes
# 0 = success, 1 = partial success, 2 = config error, 3 = fatal
EXIT_SUCCESS = 0
EXIT_PARTIAL = 1
EXIT_CONFIG_ERROR = 2
EXIT_FATAL = 3


def print_report(report: SyncReport) -> None:
    """Print the apps whose live files changed and any warnings."""
    if report.apps_synced:
        print(f"  live files updated: {', '.join(report.apps_synced)}")
    for warning in report.warnings:
        print(f"  Warning: {warning}")


def cmd_provider_list(state: AppState, args: argparse.Namespace) -> int:
    apps = [args.app] if args.app else list(APP_TYPES)
    for app in apps:
        current = providers.current_provider(state, app)
        current_id = current.id if current else ""
        items = providers.list_providers(state, app)
        print(f"{app}: {len(items)} provider(s)")
        for provider in items:
            marker = "*" if provider.id == current_id else " "
            print(f"  {marker} {provider.id}  {provider.name}")
    return EXIT_SUCCESS


def cmd_provider_current(state: AppState, args: argparse.Namespace) -> int:
    current = providers.current_provider(state, args.app)
    if current is None:
        print(f"{args.app}: no providers configured")
        return EXIT_CONFIG_ERROR
    print(f"{current.id}  {current.name}")
    return EXIT_SUCCESS


def cmd_provider_switch(state: AppState, args: argparse.Namespace) -> int:
    result = providers.switch_provider(state, args.app, args.id)
    print(f"Switched {args.app} to '{result.provider_id}' (was '{result.previous_id or '-'}')")
    print_report(result.report)
    return EXIT_SUCCESS


def cmd_provider_delete(state: AppState, args: argparse.Namespace) -> int:
    report = providers.delete_provider(state, args.app, args.id)
    print(f"Deleted {args.app} provider '{args.id}'")
    print_report(report)
    return EXIT_SUCCESS


def cmd_provider_duplicate(state: AppState, args: argparse.Namespace) -> int:
    new_id = providers.duplicate_provider(state, args.app, args.id)
    print(f"Duplicated '{args.id}' as '{new_id}'")
    return EXIT_SUCCESS


def cmd_provider_import(state: AppState, args: argparse.Namespace) -> int:
    count = providers.import_from_live(state, args.app)
    if count:
        print(f"Imported live {args.app} settings as provider '{providers.IMPORTED_PROVIDER_ID}'")
    else:
        print(f"{args.app} already has providers; nothing imported")
    return EXIT_SUCCESS


def cmd_mcp_list(state: AppState, args: argparse.Namespace) -> int:
    servers = mcp.list_servers(state, args.app)
    for server in servers:
        enabled = ", ".join(app for app in APP_TYPES if server.is_enabled_for(app)) or "-"
        print(f"  {server.id}  [{server.transport.kind}]  apps: {enabled}")
    print(f"Total: {len(servers)} server(s)")
    return EXIT_SUCCESS


def cmd_mcp_delete(state: AppState, args: argparse.Namespace) -> int:
    print_report(mcp.delete_server(state, args.id))
    print(f"Deleted MCP server '{args.id}'")
    return EXIT_SUCCESS


def cmd_mcp_toggle(state: AppState, args: argparse.Namespace) -> int:
    enabled = args.mcp_command == "enable"
    print_report(mcp.set_server_enabled(state, args.id, args.app, enabled))
    print(f"{'Enabled' if enabled else 'Disabled'} '{args.id}' for {args.app}")
    return EXIT_SUCCESS


def cmd_mcp_import(state: AppState, args: argparse.Namespace) -> int:
    result = mcp.import_from_live(state, args.app)
    print(f"Imported {result.count} MCP server(s) from {args.app}")
    for error in result.errors:
        print(f"  Error: {error}")
    return EXIT_PARTIAL if result.errors else EXIT_SUCCESS


def cmd_mcp_sync(state: AppState, args: argparse.Namespace) -> int:
    print_report(mcp.sync_enabled(state, args.app))
    return EXIT_SUCCESS


def cmd_prompt_list(state: AppState, args: argparse.Namespace) -> int:
    active = state.config.app(args.app).active_prompt_id
    for preset in prompts.list_prompts(state, args.app):
        marker = "*" if preset.id == active else " "
        print(f"  {marker} {preset.id}  {preset.name}")
    return EXIT_SUCCESS


def cmd_prompt_activate(state: AppState, args: argparse.Namespace) -> int:
    print_report(prompts.activate_prompt(state, args.app, args.id))
    print(f"Activated prompt '{args.id}' for {args.app}")
    return EXIT_SUCCESS


def cmd_prompt_deactivate(state: AppState, args: argparse.Namespace) -> int:
    print_report(prompts.deactivate_prompt(state, args.app))
    print(f"Deactivated {args.app} prompt")
    return EXIT_SUCCESS


def cmd_config_backup(state: AppState, args: argparse.Namespace) -> int:
    print(f"Created backup {snapshots.backup(state, args.name)}")
    return EXIT_SUCCESS


def cmd_config_backups(state: AppState, args: argparse.Namespace) -> int:
    backups = snapshots.list_backups(state)
    for info in backups:
        print(f"  {info.id}  {info.display_name}")
    print(f"Total: {len(backups)} backup(s)")
    return EXIT_SUCCESS


def cmd_config_restore(state: AppState, args: argparse.Namespace) -> int:
    print_report(snapshots.restore(state, args.backup))
    print(f"Restored {args.backup}")
    return EXIT_SUCCESS


def cmd_config_export(state: AppState, args: argparse.Namespace) -> int:
    print(f"Exported to {snapshots.export_snapshot(state, args.path)}")
    return EXIT_SUCCESS


def cmd_config_import(state: AppState, args: argparse.Namespace) -> int:
    print_report(snapshots.import_snapshot(state, args.path))
    print(f"Imported {args.path}")
    return EXIT_SUCCESS


def cmd_config_validate(state: AppState, args: argparse.Namespace) -> int:
    findings = snapshots.validate(state)
    errors = [f for f in findings if f.severity == "error"]
    for finding in findings:
        symbol = "✗" if finding.severity == "error" else "⚠"
        print(f"  {symbol} {finding.subject}: {finding.message}")
    print(f"Validation complete: {len(errors)} error(s), {len(findings) - len(errors)} warning(s)")
    return EXIT_CONFIG_ERROR if errors else EXIT_SUCCESS


# ABOUTME: Commands that still run when config.json cannot be parsed
RECOVERY_COMMANDS = (cmd_config_backups, cmd_config_restore, cmd_config_import)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    ABOUTME: Each leaf subcommand stores its handler in args.handler
    """
    parser = argparse.ArgumentParser(
        prog="ccswitch",
        description="Switch providers and sync MCP servers for Claude Code, Codex and Gemini CLI",
    )
    parser.add_argument("--version", action="version", version=f"ccswitch {__version__}")
    parser.add_argument("--config-dir", type=Path, help="Override ~/.cc-switch")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    groups = parser.add_subparsers(dest="group", required=True)

    def leaf(
        sub: argparse._SubParsersAction,
        name: str,
        handler: Callable[[AppState, argparse.Namespace], int],
        help_text: str,
    ) -> argparse.ArgumentParser:
        command = sub.add_parser(name, help=help_text)
        command.set_defaults(handler=handler)
        return command

    provider = groups.add_parser("provider", help="Manage providers").add_subparsers(
        dest="provider_command", required=True
    )
    command = leaf(provider, "list", cmd_provider_list, "List providers")
    command.add_argument("app", nargs="?", choices=APP_TYPES)
    leaf(provider, "current", cmd_provider_current, "Show the current provider").add_argument(
        "app", choices=APP_TYPES
    )
    for name, handler, help_text in (
        ("switch", cmd_provider_switch, "Switch the current provider"),
        ("delete", cmd_provider_delete, "Delete a provider"),
        ("duplicate", cmd_provider_duplicate, "Duplicate a provider"),
    ):
        command = leaf(provider, name, handler, help_text)
        command.add_argument("app", choices=APP_TYPES)
        command.add_argument("id")
    leaf(provider, "import", cmd_provider_import, "Import live settings").add_argument(
        "app", choices=APP_TYPES
    )

    server = groups.add_parser("mcp", help="Manage MCP servers").add_subparsers(
        dest="mcp_command", required=True
    )
    leaf(server, "list", cmd_mcp_list, "List MCP servers").add_argument(
        "--app", choices=APP_TYPES
    )
    leaf(server, "delete", cmd_mcp_delete, "Delete an MCP server").add_argument("id")
    for name in ("enable", "disable"):
        command = leaf(server, name, cmd_mcp_toggle, f"{name.capitalize()} a server for an app")
        command.add_argument("id")
        command.add_argument("app", choices=APP_TYPES)
    leaf(server, "import", cmd_mcp_import, "Import servers from live files").add_argument(
        "app", choices=APP_TYPES
    )
    leaf(server, "sync", cmd_mcp_sync, "Rewrite live MCP maps").add_argument(
        "--app", choices=APP_TYPES
    )

    prompt = groups.add_parser("prompt", help="Manage prompt presets").add_subparsers(
        dest="prompt_command", required=True
    )
    leaf(prompt, "list", cmd_prompt_list, "List prompt presets").add_argument(
        "app", choices=APP_TYPES
    )
    command = leaf(prompt, "activate", cmd_prompt_activate, "Activate a prompt preset")
    command.add_argument("app", choices=APP_TYPES)
    command.add_argument("id")
    leaf(prompt, "deactivate", cmd_prompt_deactivate, "Remove the live prompt").add_argument(
        "app", choices=APP_TYPES
    )

    config = groups.add_parser("config", help="Backups, snapshots, validation").add_subparsers(
        dest="config_command", required=True
    )
    leaf(config, "backup", cmd_config_backup, "Create a backup").add_argument("--name")
    leaf(config, "backups", cmd_config_backups, "List backups")
    leaf(config, "restore", cmd_config_restore, "Restore a backup").add_argument("backup")
    leaf(config, "export", cmd_config_export, "Export a snapshot").add_argument("path", type=Path)
    leaf(config, "import", cmd_config_import, "Import a snapshot").add_argument("path", type=Path)
    leaf(config, "validate", cmd_config_validate, "Validate the config")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    ABOUTME: Maps ccswitch errors to exit codes instead of tracebacks
    ABOUTME: A corrupted config.json only blocks commands outside RECOVERY_COMMANDS
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s - %(message)s",
    )

    try:
        state = AppState.load(args.config_dir)
    except ConfigCorruptedError as e:
        if args.handler not in RECOVERY_COMMANDS:
            print(f"Error: {e}")
            return EXIT_CONFIG_ERROR
        print(f"Warning: {e}")
        state = AppState.for_recovery(args.config_dir)

    try:
        return args.handler(state, args)
    except LiveFileUnavailableError as e:
        print(f"Error: {e}")
        return EXIT_CONFIG_ERROR
    except IoFailureError as e:
        print(f"Fatal error: {e}")
        return EXIT_FATAL
    except CcSwitchError as e:
        print(f"Error: {e}")
        return EXIT_CONFIG_ERROR
    except Exception as e:
        logger.debug("Unhandled error", exc_info=True)
        print(f"Fatal error: {e}")
        return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(main())
