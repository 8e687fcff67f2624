"""Typed model of the persisted configuration document.

Every field default lives on its dataclass field and nowhere else.  Both
:func:`create_default` and :func:`verconf.merge.merge_with_defaults` build
documents through the same merger.

:class:`PartialDocument` is the raw, possibly incomplete shape read from
disk.  Only the merger turns it into a :class:`ConfigDocument`.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from types import MappingProxyType
from typing import Any, Literal

# Version history:
#   2  YAML unified format
#   3  websearch provider models
#   4  copilot section
#   5  remote proxy server section
#   6  customizable proxy auth
#   7  quota management
#   8  thinking budget configuration
CURRENT_VERSION = 8

BUILTIN_PROVIDERS: tuple[str, ...] = ("gemini", "codex", "agy", "qwen", "iflow", "kiro", "ghcp")

DEFAULT_GLOBAL_ENV: Mapping[str, str] = MappingProxyType(
    {
        "DISABLE_BUG_COMMAND": "1",
        "DISABLE_ERROR_REPORTING": "1",
        "DISABLE_TELEMETRY": "1",
    }
)

DEFAULT_VISION_MODELS: Mapping[str, str] = MappingProxyType(
    {
        "agy": "gemini-2.5-flash",
        "gemini": "gemini-2.5-flash",
        "codex": "gpt-5.1-codex-mini",
        "kiro": "kiro-claude-haiku-4-5",
        "ghcp": "claude-haiku-4.5",
        "claude": "claude-haiku-4-5-20251001",
        "qwen": "vision-model",
        "iflow": "qwen3-vl-plus",
    }
)

# Fields carrying this metadata always take their default on merge.
READONLY = MappingProxyType({"readonly": True})


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

@dataclass
class AccountConfig:
    """An isolated account instance."""

    created: str = ""
    last_used: str | None = None


@dataclass
class ProfileConfig:
    """An API profile whose settings live in a separate per-entity file."""

    type: Literal["api"] = "api"
    settings: str = ""


@dataclass
class VariantConfig:
    provider: str = ""
    account: str | None = None
    settings: str | None = None
    port: int | None = None


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

@dataclass
class LoggingConfig:
    enabled: bool = False
    request_log: bool = False


@dataclass
class CliproxyConfig:
    backend: Literal["original", "plus"] = "plus"
    oauth_accounts: dict[str, str] = field(default_factory=dict)
    providers: list[str] = field(default_factory=lambda: list(BUILTIN_PROVIDERS), metadata=READONLY)
    variants: dict[str, VariantConfig] = field(default_factory=dict)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    auto_sync: bool = True


@dataclass
class ProxyRemoteConfig:
    enabled: bool = False
    host: str = ""
    # Unset means the protocol default.
    port: int | None = None
    protocol: Literal["http", "https"] = "http"
    auth_token: str = ""
    management_key: str | None = None


@dataclass
class ProxyFallbackConfig:
    enabled: bool = True
    auto_start: bool = False


@dataclass
class ProxyLocalConfig:
    port: int = 8317
    auto_start: bool = True


@dataclass
class ProxyServerConfig:
    remote: ProxyRemoteConfig = field(default_factory=ProxyRemoteConfig)
    fallback: ProxyFallbackConfig = field(default_factory=ProxyFallbackConfig)
    local: ProxyLocalConfig = field(default_factory=ProxyLocalConfig)


@dataclass
class PreferencesConfig:
    theme: Literal["light", "dark", "system"] = "system"
    telemetry: bool = False
    auto_update: bool = True


@dataclass
class GeminiSearchConfig:
    enabled: bool = True
    model: str = "gemini-2.5-flash"
    timeout: int = 55


@dataclass
class OpenCodeSearchConfig:
    enabled: bool = False
    model: str = "opencode/grok-code"
    timeout: int = 90


@dataclass
class GrokSearchConfig:
    enabled: bool = False
    timeout: int = 55


@dataclass
class WebSearchProviders:
    gemini: GeminiSearchConfig = field(default_factory=GeminiSearchConfig)
    opencode: OpenCodeSearchConfig = field(default_factory=OpenCodeSearchConfig)
    grok: GrokSearchConfig = field(default_factory=GrokSearchConfig)


@dataclass
class WebSearchConfig:
    enabled: bool = True
    providers: WebSearchProviders = field(default_factory=WebSearchProviders)


@dataclass
class CopilotConfig:
    enabled: bool = False
    auto_start: bool = False
    port: int = 4141
    account_type: Literal["individual", "business", "enterprise"] = "individual"
    rate_limit: int | None = None
    wait_on_limit: bool = True
    model: str = "gpt-4.1"


@dataclass
class GlobalEnvConfig:
    enabled: bool = True
    env: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_GLOBAL_ENV))


@dataclass
class AutoQuotaConfig:
    preflight_check: bool = True
    exhaustion_threshold: int = 5
    tier_priority: list[str] = field(default_factory=lambda: ["ultra", "pro", "free"])
    cooldown_minutes: int = 5


@dataclass
class ManualQuotaConfig:
    paused_accounts: list[str] = field(default_factory=list)
    forced_default: str | None = None
    tier_lock: str | None = None


@dataclass
class QuotaManagementConfig:
    mode: Literal["auto", "manual", "hybrid"] = "hybrid"
    auto: AutoQuotaConfig = field(default_factory=AutoQuotaConfig)
    manual: ManualQuotaConfig = field(default_factory=ManualQuotaConfig)


@dataclass
class ThinkingTierDefaults:
    opus: str = "high"
    sonnet: str = "medium"
    haiku: str = "low"


@dataclass
class ThinkingConfig:
    mode: Literal["auto", "off", "manual"] = "auto"
    override: str | int | None = None
    tier_defaults: ThinkingTierDefaults = field(default_factory=ThinkingTierDefaults)
    show_warnings: bool = True


@dataclass
class DashboardAuthConfig:
    enabled: bool = False
    username: str = ""
    password_hash: str = ""
    session_timeout_hours: int = 24


@dataclass
class ImageAnalysisConfig:
    enabled: bool = True
    timeout: int = 60
    provider_models: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_VISION_MODELS))


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------

@dataclass
class ConfigDocument:
    """The fully populated configuration document.

    Sections are replaced whole; callers read a document, change their copy
    and hand it back to :meth:`verconf.store.ConfigStore.save`.
    """

    version: int = CURRENT_VERSION
    setup_completed: bool | None = None
    default: str | None = None
    accounts: dict[str, AccountConfig] = field(default_factory=dict)
    profiles: dict[str, ProfileConfig] = field(default_factory=dict)
    cliproxy: CliproxyConfig = field(default_factory=CliproxyConfig)
    cliproxy_server: ProxyServerConfig = field(default_factory=ProxyServerConfig)
    preferences: PreferencesConfig = field(default_factory=PreferencesConfig)
    websearch: WebSearchConfig = field(default_factory=WebSearchConfig)
    copilot: CopilotConfig = field(default_factory=CopilotConfig)
    global_env: GlobalEnvConfig = field(default_factory=GlobalEnvConfig)
    quota_management: QuotaManagementConfig = field(default_factory=QuotaManagementConfig)
    thinking: ThinkingConfig = field(default_factory=ThinkingConfig)
    dashboard_auth: DashboardAuthConfig = field(default_factory=DashboardAuthConfig)
    image_analysis: ImageAnalysisConfig = field(default_factory=ImageAnalysisConfig)


SCALAR_FIELDS: tuple[str, ...] = ("setup_completed", "default")

# On-disk order of the sections.
SECTION_NAMES: tuple[str, ...] = (
    "accounts",
    "profiles",
    "cliproxy",
    "cliproxy_server",
    "preferences",
    "websearch",
    "copilot",
    "global_env",
    "quota_management",
    "thinking",
    "dashboard_auth",
    "image_analysis",
)


@dataclass(frozen=True)
class PartialDocument:
    """Raw document as parsed from disk, with any subset of sections."""

    version: int
    data: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "PartialDocument":
        return cls(version=CURRENT_VERSION, data={})

    @classmethod
    def from_document(cls, doc: ConfigDocument) -> "PartialDocument":
        return cls(version=doc.version, data=to_mapping(doc))

    def has(self, name: str) -> bool:
        return name in self.data


def to_mapping(obj: Any) -> dict[str, Any]:
    """Return plain dicts for *obj*, leaving out unset (``None``) fields."""
    return _strip_none(asdict(obj))


def _strip_none(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _strip_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_strip_none(v) for v in value]
    return value


def create_default() -> ConfigDocument:
    """Return a document with every section at its default."""
    from .merge import merge_with_defaults

    return merge_with_defaults(PartialDocument.empty())


__all__ = [
    "CURRENT_VERSION",
    "BUILTIN_PROVIDERS",
    "SECTION_NAMES",
    "SCALAR_FIELDS",
    "AccountConfig",
    "ProfileConfig",
    "VariantConfig",
    "ConfigDocument",
    "PartialDocument",
    "create_default",
    "to_mapping",
]
