"""Booking form domain schemas - FlowNode tree, form fields and API payloads"""

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ...shared.validators import validate_hex_color

NodeType = Literal["start", "group", "service"]
Theme = Literal["light", "dark"]

DEFAULT_PRIMARY_COLOR = "#3B82F6"
DEFAULT_THEME = "light"
ROOT_NODE_ID = "root"


# ============================================================================
# FORM FIELDS
# ============================================================================


class ValidationMessages(BaseModel):
    model_config = ConfigDict(frozen=True)

    required: Optional[str] = None
    minLength: Optional[str] = None
    maxLength: Optional[str] = None
    pattern: Optional[str] = None
    email: Optional[str] = None


class ValidationRules(BaseModel):
    model_config = ConfigDict(frozen=True)

    minLength: Optional[int] = None
    maxLength: Optional[int] = None
    pattern: Optional[str] = None
    message: Optional[str] = None
    email: Optional[bool] = None
    messages: Optional[ValidationMessages] = None


class BaseFieldConfig(BaseModel):
    """Fields shared by every question type"""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str
    name: str = ""
    label: Optional[str] = None
    validationRules: Optional[ValidationRules] = None

    @property
    def is_required(self) -> bool:
        return bool(getattr(self, "isRequired", False))


class SimpleFieldConfig(BaseFieldConfig):
    type: Literal["short-text", "long-text", "date", "file-upload", "required-checkbox"]
    isRequired: bool = False


class YesNoFieldConfig(BaseFieldConfig):
    type: Literal["yes-no"]
    isRequired: bool = False


class ChoiceOption(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    label: str = ""
    value: str = ""


class ChoiceFieldConfig(BaseFieldConfig):
    type: Literal["dropdown", "multiple-choice"]
    isRequired: bool = False
    options: Optional[list[ChoiceOption]] = None


class ContactInfoSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    firstNameRequired: bool = True
    lastNameRequired: bool = True
    emailRequired: bool = True
    phoneRequired: bool = True
    companyRequired: bool = False


class ContactInfoFieldConfig(BaseFieldConfig):
    type: Literal["contact-info"]
    fieldConfig: ContactInfoSettings = Field(default_factory=ContactInfoSettings)

    @property
    def is_required(self) -> bool:
        # Company is optional context; it never makes the whole block required
        settings = self.fieldConfig
        return (
            settings.firstNameRequired
            or settings.lastNameRequired
            or settings.emailRequired
            or settings.phoneRequired
        )


class AddressSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    streetRequired: bool = True
    street2Required: bool = False
    cityRequired: bool = True
    stateRequired: bool = True
    zipRequired: bool = True


class AddressFieldConfig(BaseFieldConfig):
    type: Literal["address"]
    fieldConfig: AddressSettings = Field(default_factory=AddressSettings)

    @property
    def is_required(self) -> bool:
        settings = self.fieldConfig
        return (
            settings.streetRequired
            or settings.cityRequired
            or settings.stateRequired
            or settings.zipRequired
        )


FormFieldConfig = Annotated[
    Union[
        SimpleFieldConfig,
        YesNoFieldConfig,
        ChoiceFieldConfig,
        ContactInfoFieldConfig,
        AddressFieldConfig,
    ],
    Field(discriminator="type"),
]


# ============================================================================
# SERVICE TREE
# ============================================================================


class TimeRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: str
    end: str


class AvailabilityRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    days: list[int] = Field(default_factory=list)  # 0 = Sunday
    timeRanges: list[TimeRange] = Field(default_factory=list)


class BlockedTime(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    date: Any = None
    timeRanges: list[TimeRange] = Field(default_factory=list)


class FlowNode(BaseModel):
    """
    A node of the booking service tree.

    `start` is the single root, `group` nodes organise services, and `service`
    nodes are the bookable leaves carrying scheduling settings. Instances are
    frozen; tree operations build new nodes and reuse unchanged subtrees.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str
    type: NodeType
    label: str = ""
    children: Optional[list["FlowNode"]] = None

    # Service configuration
    description: Optional[str] = None
    price: Optional[Union[float, str]] = None
    duration: Optional[int] = None  # minutes
    bufferTime: Optional[int] = None  # minutes
    interval: Optional[int] = None  # minutes between slot starts
    bookingInterval: Optional[int] = None
    minimumNotice: Optional[float] = None
    minimumNoticeUnit: Optional[Literal["hours", "days"]] = None
    dateRangeType: Optional[Literal["rolling", "fixed", "indefinite"]] = None
    rollingDays: Optional[int] = None
    rollingUnit: Optional[Literal["calendar-days", "week-days"]] = None
    fixedStartDate: Optional[str] = None
    fixedEndDate: Optional[str] = None
    availabilityRules: Optional[list[AvailabilityRule]] = None
    blockedTimes: Optional[list[BlockedTime]] = None
    unavailableDates: Optional[list[Any]] = None
    additionalQuestions: Optional[list[FormFieldConfig]] = None
    assignedEmployeeIds: Optional[list[str]] = None

    @model_validator(mode="before")
    @classmethod
    def default_children(cls, data):
        # Containers always carry a children list
        if isinstance(data, dict) and data.get("type") in ("start", "group", "split"):
            if data.get("children") is None:
                data = {**data, "children": []}
        return data

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        # Older forms stored groups as "split"
        if v == "split":
            return "group"
        return v

    @property
    def is_container(self) -> bool:
        return self.type in ("start", "group")

    def child_list(self) -> list["FlowNode"]:
        return list(self.children or [])

    def shallow_fields(self) -> dict[str, Any]:
        """Field values without re-serializing children, so subtrees keep their identity"""
        values = {name: getattr(self, name) for name in self.model_fields_set}
        values["id"] = self.id
        values["type"] = self.type
        if self.model_extra:
            values.update(self.model_extra)
        return values

    def to_json(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class BookingFlowData(BaseModel):
    """The serializable editor document stored in BookingForm.form_config"""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: Optional[str] = None
    internalName: str = ""
    slug: Optional[str] = None
    serviceTree: FlowNode
    baseQuestions: list[FormFieldConfig] = Field(default_factory=list)
    theme: Theme = DEFAULT_THEME
    primaryColor: str = DEFAULT_PRIMARY_COLOR

    def to_json(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


def create_default_service_tree() -> FlowNode:
    return FlowNode(id=ROOT_NODE_ID, type="start", label="Book your service", children=[])


def create_default_base_questions() -> list:
    return [
        ContactInfoFieldConfig(
            id="contact-info-field",
            name="contact_info",
            label="Contact Information",
            type="contact-info",
        )
    ]


def create_default_form_data(
    form_id: Optional[str] = None, name: str = "", slug: Optional[str] = None
) -> BookingFlowData:
    """Document a new form starts with: a lone start root and a contact-info question"""
    return BookingFlowData(
        id=form_id,
        internalName=name,
        slug=slug,
        serviceTree=create_default_service_tree(),
        baseQuestions=create_default_base_questions(),
        theme=DEFAULT_THEME,
        primaryColor=DEFAULT_PRIMARY_COLOR,
    )


def booking_flow_from_config(
    form_config: Optional[dict], form_id: Optional[str] = None, name: str = "", slug: Optional[str] = None
) -> BookingFlowData:
    """Load a stored form_config, filling identity fields from the form row"""
    if not form_config:
        return create_default_form_data(form_id, name, slug)
    payload = dict(form_config)
    payload.setdefault("serviceTree", create_default_service_tree().to_json())
    payload["id"] = form_id or payload.get("id")
    payload.setdefault("internalName", name)
    payload.setdefault("slug", slug)
    return BookingFlowData.model_validate(payload)


# ============================================================================
# API PAYLOADS
# ============================================================================


class FormCreate(BaseModel):
    """Schema for creating a new booking form"""

    name: str = "Untitled Form"
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        v = (v or "").strip()
        if not v:
            raise ValueError("Form name is required")
        return v


class FormUpdate(BaseModel):
    """Schema for the autosave PATCH; every field is optional"""

    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    formConfig: Optional[dict] = None
    theme: Optional[Theme] = None
    primaryColor: Optional[str] = None
    isActive: Optional[bool] = None

    @field_validator("primaryColor")
    @classmethod
    def validate_color(cls, v):
        return validate_hex_color(v)


class FormResponse(BaseModel):
    id: str
    organizationId: str
    name: str
    slug: str
    description: Optional[str] = None
    formConfig: Optional[dict] = None
    theme: str
    primaryColor: str
    isActive: bool
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    deletedAt: Optional[datetime] = None

    @classmethod
    def from_model(cls, form) -> "FormResponse":
        return cls(
            id=form.id,
            organizationId=form.organization_id,
            name=form.name,
            slug=form.slug,
            description=form.description,
            formConfig=form.form_config,
            theme=form.theme,
            primaryColor=form.primary_color,
            isActive=form.is_active,
            createdAt=form.created_at,
            updatedAt=form.updated_at,
            deletedAt=form.deleted_at,
        )


class FormDetailResponse(FormResponse):
    bookingFlow: dict


class Pagination(BaseModel):
    limit: int
    offset: int
    total: int
    hasMore: bool


class FormListResponse(BaseModel):
    forms: list[FormResponse]
    pagination: Pagination


class PublicFormResponse(BaseModel):
    id: str
    name: str
    slug: str
    organizationId: str
    organizationName: str
    organizationSlug: str
    bookingFlow: dict
