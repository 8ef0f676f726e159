"""Location records referenced by the booking core."""

from pydantic import BaseModel, ConfigDict, Field


class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class Location(BaseModel):
    """A valet bay site. Inactive locations never accept bookings."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str
    address: str = ""
    coordinates: Coordinates = Field(default_factory=lambda: Coordinates(latitude=0, longitude=0))
    is_active: bool = True
