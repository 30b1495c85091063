"""
Relay wire objects — flags and segments as ld-relay reads them from <env>-data.json.

Field declaration order is the order the relay itself writes them in.
Fields listed in `_omit_when_empty` are dropped from the JSON when unset,
every other field is always written (arrays as [], optionals as null).
"""

from typing import Any, ClassVar, Dict, Iterable, List, Optional, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializationInfo,
    SerializerFunctionWrapHandler,
    model_serializer,
)


class WireModel(BaseModel):
    """Base for relay JSON objects: camelCase aliases, unknown fields kept."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    _omit_when_empty: ClassVar[Tuple[str, ...]] = ()

    @model_serializer(mode="wrap")
    def _drop_empty_optionals(
        self, handler: SerializerFunctionWrapHandler, info: SerializationInfo
    ) -> Dict[str, Any]:
        data = handler(self)
        fields = type(self).model_fields
        for name in self._omit_when_empty:
            key = (fields[name].alias or name) if info.by_alias else name
            if key not in data:
                continue
            value = data[key]
            # 0 is a valid variation index, so no truthiness test here
            if value is None or value is False or value == "":
                del data[key]
        return data

    def content_equal(self, other: "WireModel", ignore: Iterable[str] = ("version",)) -> bool:
        """Deep structural equality, skipping the named fields."""
        if type(self) is not type(other):
            return False
        exclude = set(ignore)
        return self.model_dump(exclude=exclude) == other.model_dump(exclude=exclude)


class ClientSideAvailability(WireModel):
    using_mobile_key: bool = Field(default=False, alias="usingMobileKey")
    using_environment_id: bool = Field(default=False, alias="usingEnvironmentId")


class WeightedVariation(WireModel):
    variation: int
    weight: int
    untracked: bool = False

    _omit_when_empty: ClassVar[Tuple[str, ...]] = ("untracked",)


class Rollout(WireModel):
    kind: Optional[str] = None                      # "rollout" | "experiment"
    context_kind: Optional[str] = Field(default=None, alias="contextKind")
    variations: List[WeightedVariation] = []
    seed: Optional[int] = None
    bucket_by: Optional[str] = Field(default=None, alias="bucketBy")

    _omit_when_empty: ClassVar[Tuple[str, ...]] = (
        "kind", "context_kind", "seed", "bucket_by",
    )


class VariationOrRollout(WireModel):
    """Either a fixed variation index or a weighted rollout."""

    variation: Optional[int] = None
    rollout: Optional[Rollout] = None

    _omit_when_empty: ClassVar[Tuple[str, ...]] = ("variation", "rollout")


class Prerequisite(WireModel):
    key: str
    variation: int


class Target(WireModel):
    context_kind: Optional[str] = Field(default=None, alias="contextKind")
    variation: int
    values: List[str] = []

    _omit_when_empty: ClassVar[Tuple[str, ...]] = ("context_kind",)


class Clause(WireModel):
    context_kind: Optional[str] = Field(default=None, alias="contextKind")
    attribute: str = ""
    op: str
    values: List[Any] = []
    negate: bool = False

    _omit_when_empty: ClassVar[Tuple[str, ...]] = ("context_kind",)


class FlagRule(WireModel):
    variation: Optional[int] = None
    rollout: Optional[Rollout] = None
    id: Optional[str] = None
    clauses: List[Clause] = []
    track_events: bool = Field(default=False, alias="trackEvents")

    _omit_when_empty: ClassVar[Tuple[str, ...]] = ("variation", "rollout", "id")


class FeatureFlag(WireModel):
    """One flag, fully realized for a single environment."""

    key: str
    on: bool = False
    prerequisites: List[Prerequisite] = []
    targets: List[Target] = []
    context_targets: List[Target] = Field(default=[], alias="contextTargets")
    rules: List[FlagRule] = []
    fallthrough: VariationOrRollout = Field(default_factory=VariationOrRollout)
    off_variation: Optional[int] = Field(default=None, alias="offVariation")
    variations: List[Any] = []
    client_side_availability: Optional[ClientSideAvailability] = Field(
        default=None, alias="clientSideAvailability"
    )
    client_side: bool = Field(default=False, alias="clientSide")
    salt: str = ""
    track_events: bool = Field(default=False, alias="trackEvents")
    track_events_fallthrough: bool = Field(default=False, alias="trackEventsFallthrough")
    debug_events_until_date: Optional[int] = Field(default=None, alias="debugEventsUntilDate")
    version: int = 0
    deleted: bool = False
    migration: Optional[Dict[str, Any]] = None
    sampling_ratio: Optional[int] = Field(default=None, alias="samplingRatio")
    exclude_from_summaries: bool = Field(default=False, alias="excludeFromSummaries")

    _omit_when_empty: ClassVar[Tuple[str, ...]] = (
        "client_side_availability",
        "migration",
        "sampling_ratio",
        "exclude_from_summaries",
    )

    def tombstone(self) -> "FeatureFlag":
        """A deleted copy of this flag, one version ahead."""
        return self.model_copy(
            update={"version": self.version + 1, "deleted": True}, deep=True
        )


class Segment(WireModel):
    """User segment. Carried through reconciliation untouched."""

    key: str
    included: List[str] = []
    excluded: List[str] = []
    included_contexts: List[Dict[str, Any]] = Field(default=[], alias="includedContexts")
    excluded_contexts: List[Dict[str, Any]] = Field(default=[], alias="excludedContexts")
    salt: str = ""
    rules: List[Dict[str, Any]] = []
    unbounded: bool = False
    unbounded_context_kind: Optional[str] = Field(default=None, alias="unboundedContextKind")
    version: int = 0
    generation: Optional[int] = None
    deleted: bool = False

    _omit_when_empty: ClassVar[Tuple[str, ...]] = ("unbounded", "unbounded_context_kind")
