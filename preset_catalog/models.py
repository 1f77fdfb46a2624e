"""
Data Models for the Preset Catalog

Index documents, catalog entries, audio references and preset descriptors as
they arrive over the wire.  JSON keys are camelCase; attributes are snake_case
and both spellings are accepted when constructing a model.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    """Base for models parsed from catalog JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _FrozenWireModel(_WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


PresetCategory = Literal["synth", "sampler", "effect", "composite"]


# ---------------------------------------------------------------------------
# Index documents
# ---------------------------------------------------------------------------

class SubIndexEntry(_FrozenWireModel):
    """Pointer to a nested index document (a library or a group inside one)."""

    type: Literal["index"] = "index"
    name: str = Field(..., description="Display name of the sub-index")
    path: str = Field(..., description="Path of the index document, relative to the parent index")
    description: Optional[str] = None
    preset_count: Optional[int] = Field(None, ge=0, description="Number of presets below this index")
    instrument_count: Optional[int] = Field(None, ge=0, description="Number of instruments below this index")


class PresetEntry(_FrozenWireModel):
    """Leaf catalog record pointing at a fetchable preset document."""

    type: Literal["preset"] = "preset"
    name: str = Field(..., description="Preset display name")
    path: str = Field(..., description="Path of the preset document, relative to its index")
    category: PresetCategory = Field(..., description="synth, sampler, effect or composite")
    tags: List[str] = Field(default_factory=list, description="Free-form search tags")
    gm_program: Optional[int] = Field(None, ge=0, description="General MIDI program number")
    zone_count: Optional[int] = Field(None, ge=0, description="Number of sample zones (samplers)")


IndexEntry = Annotated[Union[SubIndexEntry, PresetEntry], Field(discriminator="type")]


class CatalogIndex(_FrozenWireModel):
    """One index document: the root, a library, or a sub-index."""

    name: str
    description: Optional[str] = None
    entries: List[IndexEntry] = Field(default_factory=list)

    def sub_indexes(self) -> List[SubIndexEntry]:
        return [e for e in self.entries if isinstance(e, SubIndexEntry)]

    def presets(self) -> List[PresetEntry]:
        return [e for e in self.entries if isinstance(e, PresetEntry)]

    def has_sub_indexes(self) -> bool:
        return any(isinstance(e, SubIndexEntry) for e in self.entries)


class LoadedLibrary(BaseModel):
    """A materialized index plus the URL its relative paths resolve against."""

    model_config = ConfigDict(frozen=True)

    index: CatalogIndex
    base_url: str


class LibraryInfo(BaseModel):
    """A loadable library as listed by the root index."""

    name: str
    path: str
    description: Optional[str] = None
    preset_count: Optional[int] = None
    loaded: bool = False
    enabled: bool = False


class SearchOptions(BaseModel):
    """Exact-match filters for ``search``; unset filters match everything."""

    library: Optional[str] = Field(None, description="Owning library name, case-insensitive")
    category: Optional[PresetCategory] = None
    gm_program: Optional[int] = Field(None, ge=0)
    tags: Optional[List[str]] = Field(None, description="Match entries sharing at least one tag")
    name: Optional[str] = Field(None, description="Case-insensitive name substring")


# ---------------------------------------------------------------------------
# Audio references
# ---------------------------------------------------------------------------

class ExternalAudio(_FrozenWireModel):
    """Sample file stored next to the preset (or anywhere by URL)."""

    type: Literal["external"] = "external"
    path: Optional[str] = None
    url: Optional[str] = None
    sha256: Optional[str] = None
    codec: Optional[str] = None


class ContentAddressedAudio(_FrozenWireModel):
    """Sample stored under ``samples/<sha256>.<codec>`` at the catalog root."""

    type: Literal["contentAddressed"] = "contentAddressed"
    sha256: str
    codec: str


class InlineFileAudio(_FrozenWireModel):
    """Complete encoded audio file embedded as base64."""

    type: Literal["inlineFile"] = "inlineFile"
    data: str
    codec: Optional[str] = None


class InlinePcmAudio(_FrozenWireModel):
    """Raw little-endian float32 mono samples embedded as base64."""

    type: Literal["inlinePcm"] = "inlinePcm"
    data: str
    sample_rate: int = Field(..., gt=0)


AudioReference = Annotated[
    Union[ExternalAudio, ContentAddressedAudio, InlineFileAudio, InlinePcmAudio],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Preset descriptors
# ---------------------------------------------------------------------------

class KeyRange(_WireModel):
    low: int = Field(0, ge=0, le=127)
    high: int = Field(127, ge=0, le=127)


class VelocityRange(_WireModel):
    low: int = Field(0, ge=0, le=127)
    high: int = Field(127, ge=0, le=127)


class ZonePitch(_WireModel):
    root_note: int = Field(60, ge=0, le=127)
    fine_tune_cents: float = 0.0


class LoopPoints(_WireModel):
    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)


class SampleZone(_WireModel):
    """One key/velocity region of a sampled instrument."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    key_range: Optional[KeyRange] = None
    velocity_range: Optional[VelocityRange] = None
    pitch: Optional[ZonePitch] = None
    sample_rate: Optional[int] = None
    loop: Optional[LoopPoints] = None
    audio: AudioReference


class SamplerConfig(_WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    zones: List[SampleZone] = Field(default_factory=list)


class PresetNode(_WireModel):
    """Top-level node of a preset; a sampler's ``config`` is parsed into ``SamplerConfig``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    type: str
    config: Optional[Any] = None

    @field_validator("config")
    @classmethod
    def _parse_sampler_config(cls, v: Any, info: ValidationInfo) -> Any:
        if info.data.get("type") == "sampler" and isinstance(v, dict):
            return SamplerConfig.model_validate(v)
        return v


class PresetDescriptor(_WireModel):
    """A fully fetched preset document."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    name: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    node: Optional[PresetNode] = None

    @property
    def is_sampler(self) -> bool:
        return self.node is not None and self.node.type == "sampler" and self.node.config is not None


class LoadedPreset(BaseModel):
    """A descriptor plus what is needed to resolve its relative audio paths."""

    preset: PresetDescriptor
    preset_url: str
    entry: PresetEntry
    library_name: Optional[str] = None


class PreloadResult(BaseModel):
    """Per-name outcome of ``preload_all``."""

    loaded: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict, description="name -> error message")

    @property
    def ok(self) -> bool:
        return not self.failed
