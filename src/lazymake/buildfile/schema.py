from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RuleModel(BaseModel):
    # Long form of a rule entry in lazymake.yaml
    model_config = ConfigDict(extra="forbid")

    target: str
    prereqs: List[str] = Field(default_factory=list)
    depfile: Optional[str] = None
    raw_depfile: Optional[str] = None
    action: Optional[str] = None
    phony: bool = False

    @field_validator("target")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("rule target must not be empty")
        return v.strip()

    @field_validator("prereqs", mode="before")
    @classmethod
    def _split_string(cls, v: Any) -> Any:
        # "a.c b.c" is accepted as shorthand for [a.c, b.c]
        if isinstance(v, str):
            return v.split()
        return v


class OptionsModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    profile: Optional[str] = None
    jobs: Optional[int] = Field(default=None, ge=1)
    keep_going: Optional[bool] = None
    delete_on_error: Optional[bool] = None
    track_commands: Optional[bool] = None
    dep_suffix: Optional[str] = None
    state_dir: Optional[str] = None


class BuildfileModel(BaseModel):
    # Schema for lazymake.yaml
    model_config = ConfigDict(extra="forbid")

    default_goal: Optional[str] = None
    options: OptionsModel = Field(default_factory=OptionsModel)
    phony: List[str] = Field(default_factory=list)
    intermediate: Dict[str, bool] = Field(default_factory=dict)
    rules: List[Union[str, RuleModel]] = Field(default_factory=list)


class BuildEvent(BaseModel):
    # Schema for one line of .lazymake/provenance.jsonl
    time: str
    event: str
    target: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None
