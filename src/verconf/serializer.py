from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigParseError
from .schema import SECTION_NAMES, ConfigDocument, PartialDocument, to_mapping

HEADER = (
    "# verconf configuration\n"
    "# Rewritten on every save: keep edits inside the documented keys.\n"
)

_RULE = "# " + "-" * 76

SECTION_COMMENTS: dict[str, tuple[str, ...]] = {
    "accounts": (
        "Accounts: isolated instances, each with separate auth and sessions.",
    ),
    "profiles": (
        "Profiles: API-based providers.",
        "Each profile points to a *.settings.json file holding its env vars.",
        "Edit the settings file directly to customize the profile.",
    ),
    "cliproxy": (
        "CLIProxy: OAuth-based providers and user-defined variants.",
        "A variant may reference a *.settings.json file for custom env vars.",
        "'providers' lists the built-in providers and is informational only.",
    ),
    "cliproxy_server": (
        "CLIProxy Server: proxy connection settings.",
        "",
        "remote: connect to a remote proxy instance",
        "fallback: use the local proxy if the remote one is unreachable",
        "local: local proxy port and auto-start",
    ),
    "preferences": (
        "Preferences: user settings.",
    ),
    "websearch": (
        "WebSearch: CLI-based web search for third-party profiles.",
        "Fallback chain: gemini -> opencode -> grok (first success wins).",
    ),
    "copilot": (
        "Copilot: GitHub Copilot API proxy. Disabled unless enabled here.",
        "Account types: individual, business, enterprise",
    ),
    "global_env": (
        "Global environment variables injected into third-party profiles.",
    ),
    "quota_management": (
        "Quota management: account selection for multi-account setups.",
        "Modes: auto, manual, hybrid",
    ),
    "thinking": (
        "Thinking: reasoning budget configuration.",
        "Modes: auto (use tier_defaults), off, manual (explicit budget)",
    ),
    "dashboard_auth": (
        "Dashboard auth: optional login protection for the dashboard.",
    ),
    "image_analysis": (
        "Image analysis: vision model used per provider for images and PDFs.",
        "timeout is in seconds.",
    ),
}


def _dump(data: dict[str, Any]) -> str:
    return yaml.safe_dump(
        data,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=4096,
    ).rstrip("\n")


def serialize(doc: ConfigDocument) -> str:
    """Render *doc* as commented YAML.

    The first line is always ``version: N``; sections follow in
    :data:`~verconf.schema.SECTION_NAMES` order with fields in declaration
    order so that diffs between saves stay small.
    """

    plain = to_mapping(doc)
    lines = [f"version: {doc.version}", HEADER.rstrip("\n")]
    if doc.setup_completed is not None:
        lines.append(_dump({"setup_completed": doc.setup_completed}))
    if doc.default is not None:
        lines.append("# Default profile used when none is given")
        lines.append(_dump({"default": doc.default}))
    lines.append("")
    for name in SECTION_NAMES:
        lines.append(_RULE)
        for comment in SECTION_COMMENTS.get(name, ()):
            lines.append(f"# {comment}".rstrip())
        lines.append(_RULE)
        lines.append(_dump({name: plain[name]}))
        lines.append("")
    return "\n".join(lines)


def deserialize(text: str, *, path: Path | None = None) -> PartialDocument | None:
    """Parse *text* into a :class:`PartialDocument`.

    Returns ``None`` for valid YAML that is not a versioned document and
    raises :class:`ConfigParseError` for invalid YAML.
    """

    try:
        data = yaml.safe_load(text)
    except yaml.MarkedYAMLError as exc:
        mark = exc.problem_mark or exc.context_mark
        raise ConfigParseError(
            exc.problem or "invalid syntax",
            path=path,
            line=mark.line + 1 if mark is not None else None,
            column=mark.column + 1 if mark is not None else None,
        ) from exc
    except yaml.YAMLError as exc:
        raise ConfigParseError(str(exc), path=path) from exc
    if not isinstance(data, dict):
        return None
    version = data.get("version")
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        return None
    return PartialDocument(version=version, data=data)


__all__ = ["serialize", "deserialize", "HEADER", "SECTION_COMMENTS"]
