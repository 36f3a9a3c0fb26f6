"""
Domain models (Pydantic).

These types are the record contract shared by every layer:
- the common `Resource` shape (name, rating, location, address, contact, flags),
- one subclass per resource kind carrying its kind-specific fields,
- helpers to translate between wire (camelCase) and Python (snake_case) names.

Field names are snake_case in Python and camelCase on the wire; input accepts
either spelling.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar, Iterable, Literal, Mapping, get_args, get_origin

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ConsulateType = Literal["Embassy", "Consulate General", "Consulate", "Honorary Consulate"]
ShelterType = Literal["Emergency", "Transitional", "Family", "Youth", "Women", "Veterans", "Refugee", "General"]
IceResourceType = Literal["Detention Center", "Check-in Location", "Legal Resource", "Hotline", "Online Service"]

# Assigned by the store; never taken from caller input.
SYSTEM_FIELDS = frozenset({"id", "created_at", "updated_at"})


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class GeoLocation(_WireModel):
    """GeoJSON-style point; `coordinates` is `[longitude, latitude]`."""

    type: Literal["Point"] = "Point"
    coordinates: tuple[float, float] = (0.0, 0.0)

    @field_validator("coordinates")
    @classmethod
    def _check_ranges(cls, value: tuple[float, float]) -> tuple[float, float]:
        lon, lat = value
        if not -180 <= lon <= 180:
            raise ValueError("longitude must be within [-180, 180]")
        if not -90 <= lat <= 90:
            raise ValueError("latitude must be within [-90, 90]")
        return value

    @property
    def lon(self) -> float:
        return self.coordinates[0]

    @property
    def lat(self) -> float:
        return self.coordinates[1]

    @property
    def is_unset(self) -> bool:
        return self.coordinates == (0.0, 0.0)


class Address(_WireModel):
    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    country: str = "USA"

    def one_line(self) -> str:
        parts = [self.street, self.city, self.state, self.zip_code, self.country]
        return ", ".join(p for p in parts if p)


class Contact(_WireModel):
    phone: str | None = None
    email: str | None = None
    website: str | None = None


class Resource(_WireModel):
    """Attributes shared by every directory entry."""

    kind: ClassVar[str] = "resource"

    id: str | None = None
    name: str
    description: str
    details: str | None = None
    rating: float = Field(0, ge=0, le=5)
    price_info: str | None = None
    location: GeoLocation = Field(default_factory=GeoLocation)
    address: Address = Field(default_factory=Address)
    contact: Contact = Field(default_factory=Contact)
    hours: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be empty")
        return value

    def to_public(self) -> dict[str, Any]:
        """JSON-ready wire representation (camelCase keys)."""
        return self.model_dump(mode="json", by_alias=True)


class Consulate(Resource):
    kind: ClassVar[str] = "consulate"

    country: str
    consulate_type: ConsulateType = "Consulate"
    services: list[str] = Field(default_factory=list)


class Lawyer(Resource):
    kind: ClassVar[str] = "lawyer"

    firm_name: str | None = None
    specializations: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)
    is_pro_bono: bool = False
    consultation_fee: str | None = None
    years_experience: float | None = Field(default=None, ge=0)


class CivilSurgeon(Resource):
    kind: ClassVar[str] = "surgeon"

    is_uscis_approved: bool = Field(default=True, alias="isUSCISApproved")
    exam_types: list[str] = Field(default_factory=list)
    accepts_insurance: bool = False
    insurance_accepted: list[str] = Field(default_factory=list)
    exam_fee: str | None = None
    same_day_results: bool = False


class Shelter(Resource):
    kind: ClassVar[str] = "shelter"

    shelter_type: ShelterType = "General"
    capacity: int | None = Field(default=None, ge=0)
    is_24_hour: bool = Field(default=False, alias="is24Hour")
    is_free: bool = True
    services: list[str] = Field(default_factory=list)
    eligibility: str | None = None
    is_pet_friendly: bool = False


class IceResource(Resource):
    kind: ClassVar[str] = "ice-resource"

    resource_type: IceResourceType
    is_24_hour: bool = Field(default=False, alias="is24Hour")
    services: list[str] = Field(default_factory=list)
    is_anonymous: bool = False


def wire_name(model: type[BaseModel], field_name: str) -> str:
    field = model.model_fields[field_name]
    return field.alias or field_name


def resolve_field(model: type[BaseModel], name: str) -> str | None:
    """Map a Python or wire field name onto the model's Python field name."""
    if name in model.model_fields:
        return name
    for field_name, field in model.model_fields.items():
        if field.alias == name:
            return field_name
    return None


def canonical_fields(model: type[BaseModel], data: Mapping[str, Any]) -> dict[str, Any]:
    """Rename wire keys to Python field names, recursing into nested models.

    Unknown keys are passed through untouched (validation ignores them).
    """
    out: dict[str, Any] = {}
    for key, value in data.items():
        name = resolve_field(model, key) or key
        field = model.model_fields.get(name)
        nested = field.annotation if field is not None else None
        if isinstance(nested, type) and issubclass(nested, BaseModel) and isinstance(value, Mapping):
            value = canonical_fields(nested, value)
        out[name] = value
    return out


def wire_path(model: type[BaseModel] | None, loc: Iterable[Any]) -> str:
    """Render a pydantic error location with wire names, e.g. `address.zipCode`.

    List indexes are dropped; segments the model does not know are kept as given.
    """
    parts: list[str] = []
    for segment in loc:
        if isinstance(segment, int):
            continue
        segment = str(segment)
        name = resolve_field(model, segment) if model is not None else None
        if name is None:
            parts.append(segment)
            model = None
            continue
        parts.append(wire_name(model, name))
        nested = model.model_fields[name].annotation
        model = nested if isinstance(nested, type) and issubclass(nested, BaseModel) else None
    return ".".join(parts)


def enum_choices(model: type[BaseModel]) -> dict[str, tuple[str, ...]]:
    """Wire name -> allowed values, for every Literal-typed field of `model`."""
    out: dict[str, tuple[str, ...]] = {}
    for name, field in model.model_fields.items():
        if get_origin(field.annotation) is Literal:
            out[wire_name(model, name)] = tuple(get_args(field.annotation))
    return out
