"""Vehicle position model."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from busfeed._normalize import safe_float, safe_str


class PositionRecord(BaseModel):
    """One observation of one vehicle at one moment.

    Accepts the location API's item keys (``gpslati``, ``gpslong``,
    ``vehicleno``, ``nodenm``, ``nodeid``) as well as the field names.

    Parameters
    ----------
    latitude : float
        Latitude in degrees.
    longitude : float
        Longitude in degrees.
    vehicle_no : str
        Vehicle identifier (licence plate number).
    node_name : str
        Name of the current or next stop.
    node_id : str
        Identifier of the current or next stop.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    latitude: float = Field(validation_alias=AliasChoices("latitude", "gpslati"))
    longitude: float = Field(validation_alias=AliasChoices("longitude", "gpslong"))
    vehicle_no: str = Field(validation_alias=AliasChoices("vehicle_no", "vehicleno"))
    node_name: str = Field(default="", validation_alias=AliasChoices("node_name", "nodenm"))
    node_id: str = Field(default="", validation_alias=AliasChoices("node_id", "nodeid"))

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> Any:
        parsed = safe_float(value)
        # Let pydantic report the original value when it is not numeric.
        return value if parsed is None else parsed

    @field_validator("vehicle_no", mode="before")
    @classmethod
    def _coerce_vehicle_no(cls, value: Any) -> Any:
        parsed = safe_str(value)
        return value if parsed is None else parsed

    @field_validator("node_name", "node_id", mode="before")
    @classmethod
    def _coerce_node_fields(cls, value: Any) -> str:
        return safe_str(value) or ""
