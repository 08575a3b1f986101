"""Shared types for tool inputs/outputs. Tools return outcome values instead of raising."""

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, model_validator


@dataclass(frozen=True)
class Location:
    """Geocoding match: identity of a place."""
    name: str
    id: str
    lat: float
    lon: float
    adm1: str
    adm2: str
    country: str


@dataclass(frozen=True)
class Conditions:
    """Current conditions snapshot. Numeric fields are parsed from the API's strings."""
    temp: float
    feels_like: float
    text: str
    wind_dir: str
    wind_scale: str
    wind_speed: float
    humidity: float
    precip: float
    pressure: float
    vis: float
    obs_time: str
    fx_link: str


@dataclass(frozen=True)
class WeatherRecord:
    """Point-in-time weather read for one location."""
    location: Location
    now: Conditions


@dataclass(frozen=True)
class NotFound:
    """Lookup resolved nothing for the query."""
    query: str


@dataclass(frozen=True)
class TransientError:
    """Network, status or body failure inside a tool."""
    reason: str


@dataclass(frozen=True)
class Invalid:
    """Model output could not be parsed or validated."""
    reason: str


class Address(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    city: Optional[StrictStr] = None
    district: Optional[StrictStr] = None
    street: Optional[StrictStr] = None


class ExtractedUser(BaseModel):
    """
    Person record extracted from free text. Fields missing from the text stay None;
    present fields must have the right type (no coercion of "25" to 25).
    """
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: Optional[StrictStr] = None
    age: Optional[StrictInt] = Field(default=None, ge=0, le=150)
    email: Optional[StrictStr] = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: Optional[StrictStr] = None
    address: Optional[Address] = None
    occupation: Optional[StrictStr] = None
    hobbies: Optional[list[StrictStr]] = None

    @model_validator(mode="after")
    def _not_empty(self) -> "ExtractedUser":
        if not self.model_dump(exclude_none=True):
            raise ValueError("no user information extracted")
        return self
