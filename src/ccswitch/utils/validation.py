# ABOUTME: Validation findings for the canonical store
# ABOUTME: Checks MCP server definitions, provider settings and dangling pointers
import shutil
from dataclasses import dataclass
from urllib.parse import urlparse

from ccswitch.models import (
    APP_TYPES,
    HttpTransport,
    McpServer,
    MultiAppConfig,
    PlatformAdapter,
    SseTransport,
    StdioTransport,
)
from ccswitch.utils.env import find_env_references, find_unset_env_vars

# ABOUTME: Upper bound for UsageScript.auto_query_interval (one day, in minutes)
MAX_AUTO_QUERY_INTERVAL = 1440


@dataclass(frozen=True)
class Finding:
    """Represents a validation error or warning.

    ABOUTME: Uses frozen dataclass for immutability
    ABOUTME: Severity level distinguishes between blocking errors and warnings
    """
    subject: str
    message: str
    severity: str  # 'error' or 'warning'


def validate_command_exists(command: str) -> str | None:
    """Return a message if command cannot be found on PATH.

    ABOUTME: Uses shutil.which() for cross-platform command lookup
    """
    if shutil.which(command) is None:
        return f"Command not found: {command}"
    return None


def validate_url(url: str) -> str | None:
    """Return a message if url is not an absolute HTTP(S) URL."""
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return f"URL must use HTTP or HTTPS scheme: {url}"
    if not parsed.netloc:
        return f"URL missing host/domain: {url}"
    return None


def validate_server(server: McpServer, check_commands: bool = False) -> list[Finding]:
    """Validate an MCP server definition.

    ABOUTME: For stdio: requires a command, optionally checks it is on PATH
    ABOUTME: For http/sse: requires a well-formed URL
    ABOUTME: Warns about unset ${VAR} references

    Args:
        server: Server to check
        check_commands: Also resolve stdio commands with shutil.which()

    Returns:
        List of findings (empty if valid)
    """
    subject = f"mcp:{server.id}"
    findings: list[Finding] = []

    if not server.id.strip():
        findings.append(Finding(subject, "Server id must not be empty", "error"))

    transport = server.transport
    referenced: list[str] = []
    if isinstance(transport, StdioTransport):
        if not transport.command.strip():
            findings.append(Finding(subject, "stdio server requires a command", "error"))
        elif check_commands:
            message = validate_command_exists(transport.command)
            if message:
                findings.append(Finding(subject, message, "warning"))
        referenced = [transport.command, *transport.args, *transport.env.values()]
    elif isinstance(transport, (HttpTransport, SseTransport)):
        if not transport.url.strip():
            findings.append(Finding(subject, f"{transport.kind} server requires a url", "error"))
        else:
            message = validate_url(transport.url)
            if message and not find_env_references(transport.url):
                findings.append(Finding(subject, message, "error"))
        for timeout in (transport.startup_timeout_sec, transport.tool_timeout_sec):
            if timeout is not None and timeout < 0:
                findings.append(Finding(subject, "Timeouts must not be negative", "error"))
        referenced = [transport.url, *transport.headers.values()]

    for name in find_unset_env_vars(referenced):
        findings.append(Finding(subject, f"${{{name}}} not set", "warning"))

    return findings


def validate_config(
    config: MultiAppConfig,
    adapters: dict[str, PlatformAdapter],
    check_commands: bool = True,
) -> list[Finding]:
    """Validate the whole canonical store without modifying anything.

    ABOUTME: Reports dangling current/active pointers, bad provider settings,
    ABOUTME: bad usage scripts, invalid common snippets and MCP server problems

    Returns:
        List of findings, errors and warnings mixed, in store order
    """
    findings: list[Finding] = []

    for app in APP_TYPES:
        app_config = config.app(app)
        adapter = adapters[app]

        if app_config.current and app_config.current not in app_config.providers:
            findings.append(
                Finding(app, f"Current provider '{app_config.current}' does not exist", "warning")
            )
        elif not app_config.current and app_config.providers:
            findings.append(Finding(app, "No current provider selected", "warning"))

        for provider in app_config.providers.values():
            subject = f"{app}:{provider.id}"
            for problem in adapter.validate_settings(provider.settings_config):
                findings.append(Finding(subject, problem, "error"))
            script = provider.usage_script
            if script and script.auto_query_interval is not None and not (
                0 <= script.auto_query_interval <= MAX_AUTO_QUERY_INTERVAL
            ):
                findings.append(
                    Finding(
                        subject,
                        f"Usage auto query interval must be between 0 and "
                        f"{MAX_AUTO_QUERY_INTERVAL} minutes",
                        "error",
                    )
                )

        if app_config.common_config_snippet:
            for problem in adapter.validate_common_snippet(app_config.common_config_snippet):
                findings.append(Finding(f"{app}:common", problem, "error"))

        if app_config.active_prompt_id and app_config.active_prompt_id not in app_config.prompts:
            findings.append(
                Finding(
                    app,
                    f"Active prompt '{app_config.active_prompt_id}' does not exist",
                    "warning",
                )
            )

    for server in config.mcp_servers.values():
        findings.extend(validate_server(server, check_commands=check_commands))

    return findings
