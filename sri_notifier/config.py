"""
SRI Notifier -- Configuration Module

Centralizes all configuration for the notification pipeline.
Loads defaults from dataclasses, overlays any overrides from config.yaml,
then overlays the environment variables the deployed functions receive.

Usage:
    from sri_notifier.config import get_config
    cfg = get_config()                         # config.yaml + env vars
    cfg = get_config("path/to/custom.yaml")    # a specific file
    print(cfg.sender.email)
    print(cfg.storage.bucket_for(Environment.PRODUCTION))
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

import yaml

from .errors import ConfigError
from .models import Environment

# ---------------------------------------------------------------------------
# Path constants -- everything relative to the project root
# ---------------------------------------------------------------------------
_THIS_DIR = Path(__file__).resolve().parent          # sri_notifier/
PROJECT_ROOT = _THIS_DIR.parent                       # repository root
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config.yaml"
CONFIG_PATH_ENV_VAR = "SRI_NOTIFIER_CONFIG"


# ===================================================================
# 1. Sender
# ===================================================================

@dataclass
class SenderSettings:
    """FROM identity for outgoing notifications (must be verified in SES)."""
    email: str = ""
    name: str = ""

    @property
    def from_header(self) -> str:
        if self.name:
            return f"{self.name} <{self.email}>"
        return self.email


# ===================================================================
# 2. Document storage
# ===================================================================

@dataclass
class StorageSettings:
    """Where authorized documents live, one bucket per environment."""
    test_bucket: str = ""
    production_bucket: str = ""
    key_template: str = "{entity_id}/authorized/{access_key}.xml"

    def bucket_for(self, environment: Environment) -> str:
        if environment is Environment.PRODUCTION:
            return self.production_bucket
        return self.test_bucket

    def location_key(self, entity_id: str, access_key: str) -> str:
        return self.key_template.format(entity_id=entity_id, access_key=access_key)


# ===================================================================
# 3. AWS
# ===================================================================

@dataclass
class AWSSettings:
    """Region shared by the S3, SES and SNS clients.

    Empty region lets boto3 resolve it from its own environment chain.
    """
    region: str = ""
    endpoint_url: str = ""       # local stacks only


# ===================================================================
# 4. Downstream topic
# ===================================================================

@dataclass
class TopicSettings:
    """Topic that receives authorized-status notifications."""
    topic_arn: str = ""
    event_type: str = "STATUS_CHANGE"


# ===================================================================
# 5. Summary rendering
# ===================================================================

@dataclass
class RenderSettings:
    """Layout constants for the PDF summary."""
    detail_width: int = 96
    annex_width: int = 106
    max_detail_items: int = 10
    attach_summary: bool = True
    title: str = "Authorized Electronic Invoice"


# ===================================================================
# 6. Environment routing for stream records
# ===================================================================

@dataclass
class EnvironmentRouting:
    """How a stream record's source maps onto an environment.

    ``source_environments`` is consulted first (exact table name).  Names
    not listed fall back to substring inference: a name containing
    ``test_marker`` is test, anything else production.
    """
    source_environments: dict[str, str] = field(default_factory=dict)
    test_marker: str = "test"


# ===================================================================
# 7. Dispatch
# ===================================================================

@dataclass
class DispatchSettings:
    """Batch processing knobs for the send stage."""
    max_workers: int = 1         # 1 = process items sequentially


# ===================================================================
# 8. Output (dry runs)
# ===================================================================

@dataclass
class OutputSettings:
    """Where dry runs drop .eml files instead of sending."""
    eml_dir: str = "output/eml"

    @property
    def resolved_eml_dir(self) -> Path:
        p = Path(self.eml_dir)
        if not p.is_absolute():
            p = PROJECT_ROOT / p
        return p


# ===================================================================
# 9. Logging
# ===================================================================

@dataclass
class LoggingSettings:
    level: str = "INFO"
    format: str = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
    datefmt: str = "%H:%M:%S"


# ===================================================================
# Master Config
# ===================================================================

@dataclass
class NotifierConfig:
    """Top-level configuration container for the SRI Notifier."""
    sender: SenderSettings = field(default_factory=SenderSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    aws: AWSSettings = field(default_factory=AWSSettings)
    topic: TopicSettings = field(default_factory=TopicSettings)
    render: RenderSettings = field(default_factory=RenderSettings)
    routing: EnvironmentRouting = field(default_factory=EnvironmentRouting)
    dispatch: DispatchSettings = field(default_factory=DispatchSettings)
    output: OutputSettings = field(default_factory=OutputSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def require_sender_settings(self) -> None:
        """Raise ConfigError unless the send stage can run."""
        missing = []
        if not self.sender.email:
            missing.append("SENDER_EMAIL")
        if not self.storage.test_bucket:
            missing.append("TEST_BUCKET")
        if not self.storage.production_bucket:
            missing.append("PRODUCTION_BUCKET")
        if missing:
            raise ConfigError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

    def require_topic_settings(self) -> None:
        """Raise ConfigError unless the stream stage can publish."""
        if not self.topic.topic_arn:
            raise ConfigError("Missing required environment variables: TOPIC_ARN")


# ===================================================================
# YAML Loading
# ===================================================================

def _apply_yaml_to_config(cfg: NotifierConfig, data: dict) -> None:
    """Apply a parsed YAML dict onto a NotifierConfig instance."""
    _section_map = {
        "sender": cfg.sender,
        "storage": cfg.storage,
        "aws": cfg.aws,
        "topic": cfg.topic,
        "render": cfg.render,
        "routing": cfg.routing,
        "dispatch": cfg.dispatch,
        "output": cfg.output,
        "logging": cfg.logging,
    }

    for section_key, section_obj in _section_map.items():
        if section_key in data and isinstance(data[section_key], dict):
            for attr, val in data[section_key].items():
                if hasattr(section_obj, attr):
                    setattr(section_obj, attr, val)


def parse_source_environments(raw: str) -> dict[str, str]:
    """Parse 'table-a=production,table-b=test' into a dict.

    Blank entries are ignored; entries without '=' raise ConfigError.
    """
    mapping: dict[str, str] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "=" not in entry:
            raise ConfigError(f"Invalid SOURCE_ENVIRONMENTS entry: '{entry}'")
        name, env = entry.split("=", 1)
        mapping[name.strip()] = env.strip()
    return mapping


def _apply_env_to_config(cfg: NotifierConfig, env: Mapping[str, str]) -> None:
    """Overlay the deployment environment variables."""
    if env.get("SENDER_EMAIL"):
        cfg.sender.email = env["SENDER_EMAIL"]
    if env.get("SENDER_NAME"):
        cfg.sender.name = env["SENDER_NAME"]
    if env.get("TEST_BUCKET"):
        cfg.storage.test_bucket = env["TEST_BUCKET"]
    if env.get("PRODUCTION_BUCKET"):
        cfg.storage.production_bucket = env["PRODUCTION_BUCKET"]
    if env.get("TOPIC_ARN"):
        cfg.topic.topic_arn = env["TOPIC_ARN"]
    if env.get("AWS_REGION"):
        cfg.aws.region = env["AWS_REGION"]
    if env.get("LOG_LEVEL"):
        cfg.logging.level = env["LOG_LEVEL"]
    if env.get("SOURCE_ENVIRONMENTS"):
        cfg.routing.source_environments.update(
            parse_source_environments(env["SOURCE_ENVIRONMENTS"])
        )


def get_config(
    yaml_path: Optional[str | Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> NotifierConfig:
    """Build a NotifierConfig from defaults, YAML and environment.

    Args:
        yaml_path: Path to a config.yaml file.  If None, uses
                   $SRI_NOTIFIER_CONFIG or the project-root config.yaml.
                   A missing default file means pure defaults; a missing
                   explicit file raises ConfigError.
        env:       Environment mapping (defaults to os.environ).

    Returns:
        Fully populated NotifierConfig instance.
    """
    cfg = NotifierConfig()
    env = os.environ if env is None else env

    explicit = yaml_path or env.get(CONFIG_PATH_ENV_VAR)
    path = Path(explicit) if explicit else DEFAULT_CONFIG_PATH
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        _apply_yaml_to_config(cfg, data)
    elif explicit:
        raise ConfigError(f"Config file not found: {path}")

    _apply_env_to_config(cfg, env)
    return cfg
