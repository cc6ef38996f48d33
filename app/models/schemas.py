from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum


class Gender(str, Enum):
    male = "Male"
    female = "Female"
    other = "Other"


# Census profile (completed questionnaire)
class CensusProfile(BaseModel):
    """Submitted questionnaire. Immutable once handed to the dashboard."""
    full_name: str = Field(alias="fullName")
    hkid: str = ""
    gender: Gender = Gender.other
    age: str
    ethnicity: str = ""
    education: str = ""
    industry: str = ""
    occupation: str = ""
    migration_status: str = Field("", alias="migrationStatus")
    marital_status: str = Field("", alias="maritalStatus")
    mortality_in_household: bool = Field(False, alias="mortalityInHousehold")
    housing_type: str = Field("", alias="housingType")
    district: str = ""

    model_config = {
        "populate_by_name": True,
        "serialize_by_alias": True,
        "frozen": True,
    }

    @classmethod
    def attribute_keys(cls) -> list[str]:
        """Public (camelCase) attribute keys, in declaration order."""
        return [field.alias or name for name, field in cls.model_fields.items()]

    @classmethod
    def field_name_for(cls, key: str) -> Optional[str]:
        for name, field in cls.model_fields.items():
            if key in (name, field.alias):
                return name
        return None

    def value_for(self, key: str) -> str:
        """Display value of an attribute, addressed by its public key."""
        name = self.field_name_for(key)
        if name is None:
            raise KeyError(key)
        value = getattr(self, name)
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, bool):
            return "Yes" if value else "No"
        return str(value)


class MapMetric(BaseModel):
    """Which profile attribute the map is colouring by."""
    key: str
    label: str

    model_config = {"frozen": True}

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        name = CensusProfile.field_name_for(v)
        if name is None:
            raise ValueError(f"Unknown profile attribute: {v}")
        return CensusProfile.model_fields[name].alias or name


class DistrictAnalysis(BaseModel):
    """Similarity density for one district (0-100, not a probability)."""
    id: str
    density: float = Field(ge=0, le=100)
    analysis: Optional[str] = None


# Map state models
class ViewState(BaseModel):
    k: float = 1.0
    x: float = 0.0
    y: float = 0.0


class ViewAction(str, Enum):
    zoom = "zoom"
    pan = "pan"
    reset = "reset"


class ViewGestureRequest(BaseModel):
    action: ViewAction
    factor: float = Field(default=1.0, gt=0)
    center_x: Optional[float] = Field(None, alias="centerX")
    center_y: Optional[float] = Field(None, alias="centerY")
    dx: float = 0.0
    dy: float = 0.0

    model_config = {"populate_by_name": True}


class Insight(BaseModel):
    user_value: str = Field(alias="userValue")
    region_id: str = Field(alias="regionId")
    region_name: str = Field(alias="regionName")
    sentence: str

    model_config = {
        "populate_by_name": True,
        "serialize_by_alias": True,
    }


class SubRegionDensity(BaseModel):
    id: str
    district_id: Optional[str] = Field(None, alias="districtId")
    name: str
    density: float
    color: str

    model_config = {
        "populate_by_name": True,
        "serialize_by_alias": True,
    }


class FetchStatus(str, Enum):
    idle = "idle"
    loading = "loading"
    ready = "ready"
    failed = "failed"


# API request/response models
class DensityRequest(BaseModel):
    profile: CensusProfile
    attribute: str

    @field_validator("attribute")
    @classmethod
    def validate_attribute(cls, v: str) -> str:
        if CensusProfile.field_name_for(v) is None:
            raise ValueError(f"Unknown profile attribute: {v}")
        return v


class DensityResponse(BaseModel):
    attribute: str
    districts: list[DistrictAnalysis]
    source: str


class MetricSelectRequest(BaseModel):
    key: str


class SessionCreateRequest(BaseModel):
    profile: CensusProfile
    metric: Optional[str] = None


class MapStateResponse(BaseModel):
    session_id: str = Field(alias="sessionId")
    metric: MapMetric
    status: FetchStatus
    loading: bool
    districts: list[DistrictAnalysis] = []
    sub_regions: list[SubRegionDensity] = Field(default=[], alias="subRegions")
    insight: Insight
    view: ViewState
    labels_visible: bool = Field(alias="labelsVisible")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    model_config = {
        "populate_by_name": True,
        "serialize_by_alias": True,
    }


class FeatureStyle(BaseModel):
    fill_color: str = Field(alias="fillColor")
    weight: float
    opacity: float = 1.0
    color: str
    fill_opacity: float = Field(alias="fillOpacity")

    model_config = {
        "populate_by_name": True,
        "serialize_by_alias": True,
    }


class FeatureInteractionResponse(BaseModel):
    feature_id: str = Field(alias="featureId")
    density: float
    style: FeatureStyle
    popup_open: bool = Field(alias="popupOpen")
    popup_html: str = Field(alias="popupHtml")

    model_config = {
        "populate_by_name": True,
        "serialize_by_alias": True,
    }


class BoundaryStatusResponse(BaseModel):
    status: FetchStatus
    feature_count: int = Field(0, alias="featureCount")
    error: Optional[str] = None

    model_config = {
        "populate_by_name": True,
        "serialize_by_alias": True,
    }
