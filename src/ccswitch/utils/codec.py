# ABOUTME: Encoders and decoders for the native live file syntaxes.
# ABOUTME: JSON via json, TOML via tomli/tomli_w, .env via python-dotenv.
# ABOUTME: Live TOML files are edited through tomlkit so comments and layout survive.
import io
import json
import re
from pathlib import Path
from typing import Any

import tomli
import tomli_w
import tomlkit
from tomlkit.exceptions import TOMLKitError
from dotenv import dotenv_values

from ccswitch.errors import FormatError
from ccswitch.models import Document

# ABOUTME: Values matching this pattern are written to .env without quotes
_BARE_ENV_VALUE = re.compile(r"^[A-Za-z0-9_./:@+,=-]*$")


def decode_json(data: bytes | str | None, path: Path | None = None) -> Document | None:
    """Decode a JSON object.

    ABOUTME: Returns None for absent content, {} for a blank file

    Raises:
        FormatError: If the content is not valid JSON or not a JSON object
    """
    if data is None:
        return None
    text = data.decode("utf-8") if isinstance(data, bytes) else data
    if not text.strip():
        return {}
    try:
        result = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise FormatError(path, f"Invalid JSON: {e}") from e
    if not isinstance(result, dict):
        raise FormatError(path, "Expected a JSON object at the top level")
    return result


def encode_json(document: Any) -> bytes:
    """Encode a document as 2-space indented JSON with a trailing newline."""
    return (json.dumps(document, indent=2, ensure_ascii=False) + "\n").encode("utf-8")


def decode_toml(data: bytes | str | None, path: Path | None = None) -> Document | None:
    """Decode a TOML document.

    Raises:
        FormatError: If the content is not valid TOML
    """
    if data is None:
        return None
    try:
        text = data.decode("utf-8") if isinstance(data, bytes) else data
        return tomli.loads(text)
    except (tomli.TOMLDecodeError, UnicodeDecodeError) as e:
        raise FormatError(path, f"Invalid TOML: {e}") from e


def encode_toml(document: Document) -> bytes:
    """Encode a document as TOML.

    ABOUTME: For provider snippets; live files go through decode_toml_document
    """
    return tomli_w.dumps(document).encode("utf-8")


def decode_toml_document(
    data: bytes | str | None, path: Path | None = None
) -> tomlkit.TOMLDocument:
    """Parse TOML into a format-preserving tomlkit document.

    ABOUTME: Absent content yields an empty document

    Raises:
        FormatError: If the content is not valid TOML
    """
    if data is None:
        return tomlkit.document()
    try:
        text = data.decode("utf-8") if isinstance(data, bytes) else data
        return tomlkit.parse(text)
    except (TOMLKitError, UnicodeDecodeError) as e:
        raise FormatError(path, f"Invalid TOML: {e}") from e


def encode_toml_document(document: tomlkit.TOMLDocument) -> bytes:
    return tomlkit.dumps(document).encode("utf-8")


def decode_env(data: bytes | str | None) -> dict[str, str] | None:
    """Decode a dotenv file into an ordered mapping.

    ABOUTME: Keys without a value decode to an empty string
    ABOUTME: ${VAR} references are kept as written, not interpolated
    """
    if data is None:
        return None
    text = data.decode("utf-8") if isinstance(data, bytes) else data
    values = dotenv_values(stream=io.StringIO(text), interpolate=False)
    return {key: value if value is not None else "" for key, value in values.items()}


def encode_env(env: dict[str, Any]) -> bytes:
    """Encode a mapping as KEY=value lines.

    ABOUTME: Quotes values containing spaces, quotes or other special characters
    """
    lines = []
    for key, value in env.items():
        text = "" if value is None else str(value)
        if not _BARE_ENV_VALUE.match(text):
            text = '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
        lines.append(f"{key}={text}")
    return ("\n".join(lines) + "\n" if lines else "").encode("utf-8")
