"""Built-in field validators for CRUDlex.

Available validators:
- required: Value must not be empty
- integer, float, boolean: Value must parse as the type
- date, datetime: Value must be an ISO date / date and time
- url: Value must be an absolute http(s) or ftp URL
- inSet: Value must be one of the allowed items
- min, max: Numeric bounds
- reference: Referenced entity must exist
- many: All many-to-many targets must exist
- unique: No other entity holds the same value
"""

from datetime import date, datetime
from typing import Any
from urllib.parse import urlparse

from crudlex.persistence.filters import FilterCondition, unwrap_id
from crudlex.validation.registry import ValidatorRegistry


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


# =============================================================================
# Presence and type validators
# =============================================================================


class RequiredValidator:
    """Validates that a value is present."""

    def is_valid(self, value: Any, parameters: list[Any]) -> bool:
        if isinstance(value, dict):
            return not _is_empty(value.get("id"))
        return not _is_empty(value)

    def get_invalid_details(self) -> str:
        return "required"


class IntegerValidator:
    def is_valid(self, value: Any, parameters: list[Any]) -> bool:
        if _is_empty(value):
            return True
        if isinstance(value, bool):
            return False
        if isinstance(value, int):
            return True
        text = str(value).strip()
        if text[:1] in ("-", "+"):
            text = text[1:]
        return text.isdigit()

    def get_invalid_details(self) -> str:
        return "integer"


class FloatValidator:
    def is_valid(self, value: Any, parameters: list[Any]) -> bool:
        if _is_empty(value):
            return True
        if isinstance(value, bool):
            return False
        try:
            float(value)
        except (TypeError, ValueError):
            return False
        return True

    def get_invalid_details(self) -> str:
        return "float"


class BooleanValidator:
    _ACCEPTED = ("0", "1", "true", "false", "on", "off", "yes", "no")

    def is_valid(self, value: Any, parameters: list[Any]) -> bool:
        if _is_empty(value) or isinstance(value, bool):
            return True
        if isinstance(value, int):
            return value in (0, 1)
        return str(value).lower() in self._ACCEPTED

    def get_invalid_details(self) -> str:
        return "boolean"


class DateValidator:
    """Validates an ISO date such as 2024-01-31."""

    def is_valid(self, value: Any, parameters: list[Any]) -> bool:
        if _is_empty(value) or isinstance(value, date):
            return True
        try:
            date.fromisoformat(str(value))
        except ValueError:
            return False
        return True

    def get_invalid_details(self) -> str:
        return "date"


class DateTimeValidator:
    """Validates an ISO date and time such as 2024-01-31 13:45 or 2024-01-31T13:45:00."""

    def is_valid(self, value: Any, parameters: list[Any]) -> bool:
        if _is_empty(value) or isinstance(value, datetime):
            return True
        text = str(value)
        # A bare date is not a datetime
        if len(text) <= 10:
            return False
        try:
            datetime.fromisoformat(text)
        except ValueError:
            return False
        return True

    def get_invalid_details(self) -> str:
        return "datetime"


class UrlValidator:
    def is_valid(self, value: Any, parameters: list[Any]) -> bool:
        if _is_empty(value):
            return True
        parsed = urlparse(str(value))
        return parsed.scheme in ("http", "https", "ftp") and bool(parsed.netloc)

    def get_invalid_details(self) -> str:
        return "url"


# =============================================================================
# Parameterized validators
# =============================================================================


class InSetValidator:
    """Params: the allowed items."""

    def is_valid(self, value: Any, parameters: list[Any]) -> bool:
        if _is_empty(value):
            return True
        return str(value) in [str(item) for item in parameters]

    def get_invalid_details(self) -> str:
        return "inSet"


class MinValidator:
    """Params: [minimum]."""

    def is_valid(self, value: Any, parameters: list[Any]) -> bool:
        if _is_empty(value):
            return True
        try:
            return float(value) >= float(parameters[0])
        except (TypeError, ValueError):
            return False

    def get_invalid_details(self) -> str:
        return "min"


class MaxValidator:
    """Params: [maximum]."""

    def is_valid(self, value: Any, parameters: list[Any]) -> bool:
        if _is_empty(value):
            return True
        try:
            return float(value) <= float(parameters[0])
        except (TypeError, ValueError):
            return False

    def get_invalid_details(self) -> str:
        return "max"


# =============================================================================
# Data backed validators
# =============================================================================


class ReferenceValidator:
    """Validates that a referenced entity exists.

    Params: [data, field]
    """

    def is_valid(self, value: Any, parameters: list[Any]) -> bool:
        ref_id = unwrap_id(value)
        if _is_empty(ref_id):
            return True

        data, field = parameters[0], parameters[1]
        target = data.get_definition().get_reference_entity(field)
        target_table = data.get_related_data(target).get_definition().get_table()
        return data.count_by(target_table, [FilterCondition.equals("id", ref_id)], True) > 0

    def get_invalid_details(self) -> str:
        return "reference"


class ManyValidator:
    """Validates the targets of a many-to-many field.

    Params: [data, field]

    The candidate ids must all exist and appear in the order of the valid
    ids: the valid ids restricted to the candidates must equal the candidate
    list, so unknown or duplicated ids fail.
    """

    def is_valid(self, value: Any, parameters: list[Any]) -> bool:
        if value is None or value == "":
            return True

        data, field = parameters[0], parameters[1]
        many_entity = data.get_definition().get_many_entity(field)
        valid_ids = list(data.get_id_to_name_map(many_entity, None).keys())
        candidate_ids = [str(unwrap_id(item)) for item in value]

        candidates = set(candidate_ids)
        intersection = [str(valid_id) for valid_id in valid_ids if str(valid_id) in candidates]
        return intersection == candidate_ids

    def get_invalid_details(self) -> str:
        return "many"


class UniqueValidator:
    """Validates that no other entity holds the same value.

    Params: [data, entity, field]
    """

    def is_valid(self, value: Any, parameters: list[Any]) -> bool:
        if _is_empty(value):
            return True

        data, entity, field = parameters[0], parameters[1], parameters[2]
        if data.get_definition().get_type(field) == "many":
            target_ids = [unwrap_id(item) for item in value]
            return not data.has_many_set(field, target_ids, entity.id)

        matches = data.list_entries([FilterCondition.equals(field, unwrap_id(value))], amount=2)
        return all(str(match.id) == str(entity.id) for match in matches)

    def get_invalid_details(self) -> str:
        return "unique"


def register_builtin_validators() -> None:
    """Register all built-in validators with the ValidatorRegistry."""
    ValidatorRegistry.register("required", RequiredValidator)
    ValidatorRegistry.register("integer", IntegerValidator)
    ValidatorRegistry.register("float", FloatValidator)
    ValidatorRegistry.register("boolean", BooleanValidator)
    ValidatorRegistry.register("date", DateValidator)
    ValidatorRegistry.register("datetime", DateTimeValidator)
    ValidatorRegistry.register("url", UrlValidator)
    ValidatorRegistry.register("inSet", InSetValidator)
    ValidatorRegistry.register("min", MinValidator)
    ValidatorRegistry.register("max", MaxValidator)
    ValidatorRegistry.register("reference", ReferenceValidator)
    ValidatorRegistry.register("many", ManyValidator)
    ValidatorRegistry.register("unique", UniqueValidator)
