"""
Validation for booking form documents

Used as the autosave gate in the editor and by PATCH /forms/{id} before a
formConfig is persisted. Errors block saving; warnings are advisory.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from ...shared.validators import validate_time_of_day
from .schemas import (
    AddressFieldConfig,
    BookingFlowData,
    ChoiceFieldConfig,
    ContactInfoFieldConfig,
    FlowNode,
)

CONTACT_SUBFIELDS = ("firstName", "lastName", "email", "phone", "company")
ADDRESS_SUBFIELDS = ("street", "street2", "city", "state", "zip")


@dataclass
class ValidationIssue:
    code: str
    message: str
    path: Optional[str] = None
    field: Optional[str] = None

    def to_dict(self) -> dict:
        issue = {"code": self.code, "message": self.message}
        if self.path:
            issue["path"] = self.path
        if self.field:
            issue["field"] = self.field
        return issue


@dataclass
class ValidationResult:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def messages(self) -> list[str]:
        return [issue.message for issue in self.errors]

    def extend(self, other: "ValidationResult") -> "ValidationResult":
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        return self

    def to_dict(self) -> dict:
        return {
            "isValid": self.is_valid,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
        }


def _parse_price(price: Any) -> Optional[float]:
    if isinstance(price, (int, float)):
        return float(price)
    try:
        return float(str(price).replace("$", "").replace(",", "").strip())
    except ValueError:
        return None


def validate_tree(tree: FlowNode, base_path: str = "") -> ValidationResult:
    result = ValidationResult()
    seen_ids: set[str] = set()

    if tree.type != "start":
        result.errors.append(
            ValidationIssue("INVALID_ROOT", "The root node must be a start node", tree.label or tree.id)
        )

    def visit(node: FlowNode, parent_path: str, is_root: bool):
        label = node.label or node.id
        path = f"{parent_path} > {label}" if parent_path else label

        if not node.id:
            result.errors.append(ValidationIssue("MISSING_ID", "Node is missing required ID", path))
        if not node.label or not node.label.strip():
            result.errors.append(ValidationIssue("MISSING_LABEL", "Node is missing required label", path))

        if node.id and node.id in seen_ids:
            result.errors.append(ValidationIssue("DUPLICATE_ID", f"Duplicate node ID: {node.id}", path))
        elif node.id:
            seen_ids.add(node.id)

        if node.type == "start" and not is_root:
            result.errors.append(
                ValidationIssue("NESTED_START", "Only the root node can be a start node", path)
            )

        if node.type == "service":
            if node.children:
                result.errors.append(
                    ValidationIssue("SERVICE_HAS_CHILDREN", "Service nodes cannot contain other nodes", path)
                )
            if not node.description:
                result.warnings.append(
                    ValidationIssue(
                        "MISSING_DESCRIPTION",
                        "Service node should have a description for better user experience",
                        path,
                    )
                )
            if node.price is None or node.price == "":
                result.warnings.append(
                    ValidationIssue("MISSING_PRICE", "Service node should have pricing information", path)
                )
            else:
                price = _parse_price(node.price)
                if price is None or price < 0:
                    result.errors.append(
                        ValidationIssue(
                            "INVALID_PRICE",
                            f"Invalid price value: {node.price}. Price must be a positive number.",
                            path,
                        )
                    )
            for name in ("duration", "interval"):
                value = getattr(node, name)
                if value is not None and value <= 0:
                    result.errors.append(
                        ValidationIssue("INVALID_SCHEDULING", f"{name} must be greater than zero", path, name)
                    )
            if node.bufferTime is not None and node.bufferTime < 0:
                result.errors.append(
                    ValidationIssue("INVALID_SCHEDULING", "bufferTime cannot be negative", path, "bufferTime")
                )

            ranges = [r for rule in node.availabilityRules or [] for r in rule.timeRanges]
            ranges += [r for blocked in node.blockedTimes or [] for r in blocked.timeRanges]
            for time_range in ranges:
                _validate_time_range(time_range, path, result)

        if node.type == "group" and not node.children:
            result.warnings.append(
                ValidationIssue(
                    "EMPTY_GROUP", "Group node has no children - consider removing or adding services", path
                )
            )

        if node.additionalQuestions:
            result.extend(validate_questions(node.additionalQuestions, f"{path} Questions"))

        for child in node.children or []:
            visit(child, path, False)

    visit(tree, base_path, True)
    return result


def _validate_time_range(time_range, path: str, result: ValidationResult):
    try:
        start = validate_time_of_day(time_range.start)
        end = validate_time_of_day(time_range.end)
    except ValueError as e:
        result.errors.append(ValidationIssue("INVALID_TIME_RANGE", str(e), path, "timeRanges"))
        return
    # Zero-padded HH:MM compares correctly as text
    if start >= end:
        result.errors.append(
            ValidationIssue("INVALID_TIME_RANGE", f"Time range {start}-{end} must end after it starts", path, "timeRanges")
        )


def validate_questions(questions: list, path: str = "Questions") -> ValidationResult:
    result = ValidationResult()
    seen_ids: set[str] = set()
    seen_names: set[str] = set()

    for index, question in enumerate(questions):
        question_path = f"{path}[{index}] - {question.label or question.id}"

        if not question.id:
            result.errors.append(
                ValidationIssue("MISSING_QUESTION_ID", "Question is missing required ID", question_path, "id")
            )
        if not question.name:
            result.errors.append(
                ValidationIssue("MISSING_QUESTION_NAME", "Question is missing required name", question_path, "name")
            )
        if not question.label or not question.label.strip():
            result.errors.append(
                ValidationIssue(
                    "MISSING_QUESTION_LABEL", "Question is missing required label", question_path, "label"
                )
            )

        if question.id and question.id in seen_ids:
            result.errors.append(
                ValidationIssue(
                    "DUPLICATE_QUESTION_ID", f"Duplicate question ID: {question.id}", question_path, "id"
                )
            )
        elif question.id:
            seen_ids.add(question.id)

        if question.name and question.name in seen_names:
            result.errors.append(
                ValidationIssue(
                    "DUPLICATE_QUESTION_NAME", f"Duplicate question name: {question.name}", question_path, "name"
                )
            )
        elif question.name:
            seen_names.add(question.name)

        _validate_question_type(question, question_path, result)

    return result


def _validate_question_type(question, path: str, result: ValidationResult):
    if isinstance(question, ChoiceFieldConfig):
        if question.options is None:
            result.errors.append(
                ValidationIssue("MISSING_OPTIONS", f"{question.type} field must have options array", path, "options")
            )
            return
        if not question.options:
            result.warnings.append(
                ValidationIssue(
                    "EMPTY_OPTIONS",
                    f"{question.type} field has no options - users won't be able to select anything",
                    path,
                    "options",
                )
            )
            return
        for index, option in enumerate(question.options):
            if not option.value:
                result.errors.append(
                    ValidationIssue(
                        "MISSING_OPTION_VALUE", f"Option {index + 1} is missing value", f"{path} Option[{index}]", "value"
                    )
                )
            if not option.label:
                result.errors.append(
                    ValidationIssue(
                        "MISSING_OPTION_LABEL", f"Option {index + 1} is missing label", f"{path} Option[{index}]", "label"
                    )
                )
        values = [option.value for option in question.options if option.value]
        duplicates = sorted({value for value in values if values.count(value) > 1})
        if duplicates:
            result.errors.append(
                ValidationIssue(
                    "DUPLICATE_OPTION_VALUES",
                    f"Duplicate option values found: {', '.join(duplicates)}",
                    path,
                    "options",
                )
            )
    elif isinstance(question, ContactInfoFieldConfig):
        if not question.is_required and not question.fieldConfig.companyRequired:
            result.warnings.append(
                ValidationIssue(
                    "NO_REQUIRED_CONTACT_FIELDS",
                    "Contact information has no required subfields - bookings may arrive without a way to reach the customer",
                    path,
                    "fieldConfig",
                )
            )
    elif isinstance(question, AddressFieldConfig):
        if not question.is_required:
            result.warnings.append(
                ValidationIssue(
                    "NO_REQUIRED_ADDRESS_FIELDS", "Address has no required subfields", path, "fieldConfig"
                )
            )

    rules = question.validationRules
    if rules and rules.minLength is not None and rules.maxLength is not None:
        if rules.minLength > rules.maxLength:
            result.errors.append(
                ValidationIssue(
                    "INVALID_LENGTH_RULES", "minLength cannot be greater than maxLength", path, "validationRules"
                )
            )


def validate_booking_flow(data: BookingFlowData) -> ValidationResult:
    """Full document check used as the autosave gate"""
    result = ValidationResult()
    if not data.internalName or not data.internalName.strip():
        result.errors.append(ValidationIssue("MISSING_NAME", "Form name is required", field="internalName"))
    if not (len(data.primaryColor) == 7 and data.primaryColor.startswith("#")):
        result.errors.append(
            ValidationIssue("INVALID_COLOR", f"Invalid primary color: {data.primaryColor}", field="primaryColor")
        )
    result.extend(validate_tree(data.serviceTree))
    result.extend(validate_questions(list(data.baseQuestions), "Base Questions"))
    return result


def validate_form_config(form_config: dict) -> ValidationResult:
    """Validate a raw JSON formConfig, turning schema errors into issues"""
    try:
        data = BookingFlowData.model_validate(form_config)
    except PydanticValidationError as e:
        result = ValidationResult()
        for error in e.errors():
            location = ".".join(str(part) for part in error.get("loc", ()))
            result.errors.append(ValidationIssue("INVALID_SCHEMA", error.get("msg", "Invalid value"), location))
        return result

    result = validate_tree(data.serviceTree)
    result.extend(validate_questions(list(data.baseQuestions), "Base Questions"))
    return result
