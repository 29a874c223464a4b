import os
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from violationhub.rules.engine import RuleEngine
from violationhub.rules.rule import Rule

load_dotenv()


class ConfigurationError(Exception):
    """Raised once at startup; carries every problem found."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


def _env_bool(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


# =========================================================
# API settings (environment)
# =========================================================
def debug_enabled() -> bool:
    return _env_bool("VIOLATIONHUB_DEBUG")


def object_identity_keys_from_env() -> List[str]:
    """Object identity keys that become labels on the violation metrics."""
    return os.getenv("VIOLATIONHUB_OBJECT_IDENTITY_LABELS", "").split()


@dataclass(frozen=True)
class ApiSettings:
    connection_string: str
    container_name: str

    @classmethod
    def from_env(cls) -> "ApiSettings":
        connection_string = os.getenv("VIOLATIONHUB_STORAGE_CONNECTION_STRING", "")
        container_name = os.getenv("VIOLATIONHUB_CONTAINER", "")

        errors = []
        if not connection_string:
            errors.append("missing required environment variable: VIOLATIONHUB_STORAGE_CONNECTION_STRING")
        if not container_name:
            errors.append("missing required environment variable: VIOLATIONHUB_CONTAINER")
        if errors:
            raise ConfigurationError(errors)

        return cls(
            connection_string=connection_string,
            container_name=container_name,
        )


# =========================================================
# Analyzer configuration (YAML file)
# =========================================================
class ReplaceSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    source: str = ""
    pattern: str = ""
    target: Dict[str, str] = Field(default_factory=dict)


class RuleSpec(BaseModel):
    """
    One entry of `processing_rules` or `merging_rules`, before compilation.
    """
    model_config = ConfigDict(extra="forbid")

    description: str = ""
    match: Dict[str, str] = Field(default_factory=dict)
    replace: ReplaceSpec = Field(default_factory=ReplaceSpec)

    def validate_at(self, path: str) -> List[str]:
        errors = []
        for key, pattern in self.match.items():
            if pattern == "":
                errors.append(
                    f"empty regex in {path}.match[{key!r}] (rule {self.description!r}) will probably "
                    "not do what you think (if you actually want to match empty strings only, "
                    "write `^$` to confirm your intention)"
                )
            else:
                errors.extend(_check_regex(pattern, f"{path}.match[{key!r}]"))
        if not self.replace.source:
            errors.append(
                f"missing required configuration value: {path}.replace.source (rule {self.description!r})"
            )
        if self.replace.pattern == "":
            errors.append(
                f"empty regex in {path}.replace.pattern (rule {self.description!r}) will probably "
                "not do what you think (if you actually want to match empty strings only, "
                "write `^$` to confirm your intention)"
            )
        else:
            errors.extend(_check_regex(self.replace.pattern, f"{path}.replace.pattern"))
        if not self.replace.target:
            errors.append(
                f"missing required configuration value: {path}.replace.target "
                f"(rule {self.description!r}) needs at least one entry"
            )
        return errors

    def compile(self) -> Rule:
        return Rule.compile(
            match=self.match,
            source=self.replace.source,
            pattern=self.replace.pattern,
            target=self.replace.target,
            description=self.description,
        )


def _check_regex(pattern: str, path: str) -> List[str]:
    try:
        re.compile(pattern)
    except re.error as e:
        return [f"invalid regex in {path}: {e}"]
    return []


class PolicySourceSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    directory: str = ""


class StorageSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    connection_string: str = ""
    container_name: str = ""
    object_name: str = ""

    def resolved_connection_string(self) -> str:
        return self.connection_string or os.getenv("VIOLATIONHUB_STORAGE_CONNECTION_STRING", "")


class AnalyzerConfiguration(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cluster_identity: Dict[str, str]
    policy_source: PolicySourceSpec = Field(default_factory=PolicySourceSpec)
    storage: StorageSpec = Field(default_factory=StorageSpec)
    interval_seconds: int = Field(default=300, gt=0)
    processing_rules: List[RuleSpec] = Field(default_factory=list)
    merging_rules: List[RuleSpec] = Field(default_factory=list)

    @field_validator("cluster_identity")
    @classmethod
    def _require_cluster_identity(cls, value: Dict[str, str]) -> Dict[str, str]:
        if not value:
            raise ValueError("missing required configuration value: cluster_identity")
        return value

    def validate_rules(self) -> List[str]:
        errors = []
        for idx, rule in enumerate(self.processing_rules):
            errors.extend(rule.validate_at(f"processing_rules[{idx}]"))
        for idx, rule in enumerate(self.merging_rules):
            errors.extend(rule.validate_at(f"merging_rules[{idx}]"))
        return errors

    def validate_storage(self) -> List[str]:
        errors = []
        if not self.storage.resolved_connection_string():
            errors.append("missing required configuration value: storage.connection_string")
        if not self.storage.container_name:
            errors.append("missing required configuration value: storage.container_name")
        if not self.storage.object_name:
            errors.append("missing required configuration value: storage.object_name")
        return errors

    def processing_engine(self) -> RuleEngine:
        return RuleEngine([rule.compile() for rule in self.processing_rules])

    def merging_engine(self) -> RuleEngine:
        return RuleEngine([rule.compile() for rule in self.merging_rules])


def parse_configuration(document: Optional[dict], source: str = "<config>") -> AnalyzerConfiguration:
    try:
        cfg = AnalyzerConfiguration.model_validate(document or {})
    except ValidationError as e:
        raise ConfigurationError([
            f"while parsing {source}: {'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]) from e

    errors = cfg.validate_rules()
    if errors:
        raise ConfigurationError(errors)
    return cfg


def load_configuration(path: str) -> AnalyzerConfiguration:
    """
    Reads and validates the analyzer config file. All rule problems are
    reported at once, before any rule ever runs.
    """
    with open(path, "r", encoding="utf-8") as f:
        document = yaml.safe_load(f)

    if document is not None and not isinstance(document, dict):
        raise ConfigurationError([f"while parsing {path}: expected a mapping at the top level"])
    return parse_configuration(document, source=path)
