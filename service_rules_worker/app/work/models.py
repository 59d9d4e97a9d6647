"""
Data models for compiled work and rule state.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class ResourceLink(BaseModel):
    """Link to another resource in the store."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(alias="_id")
    rev: Optional[int] = Field(default=None, alias="_rev")

    @property
    def path(self) -> str:
        return "/" + self.id.lstrip("/")


class CompiledWork(BaseModel):
    """A rule materialized into something this service can run."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    rule: ResourceLink
    action: str
    path: str
    item_schema: Dict[str, Any] = Field(default_factory=dict, alias="schema")
    options: Dict[str, Any] = Field(default_factory=dict)

    @property
    def rule_id(self) -> str:
        return self.rule.id


class Rule(BaseModel):
    """Configured rule; only the enable flag matters here."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    enabled: Any = None
    rev: Optional[int] = Field(default=None, alias="_rev")


@dataclass(frozen=True)
class RuleState:
    """Enable flag of a rule and the revision it was observed at."""
    enabled: Optional[bool]
    version: Optional[int] = None

    @classmethod
    def from_change(cls, body: Mapping[str, Any]) -> "RuleState":
        """State carried by a (partial) rule change; ``enabled`` may be absent."""
        enabled = body.get("enabled")
        return cls(
            enabled=enabled if isinstance(enabled, bool) else None,
            version=_version(body.get("_rev"))
        )

    @classmethod
    def from_rule(cls, rule: Rule) -> "RuleState":
        """Authoritative state of a full rule: enabled unless explicitly false."""
        return cls(enabled=rule.enabled is not False, version=rule.rev)


def _version(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value
