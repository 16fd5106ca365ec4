"""Emergency alert message templates.

Each template carries separate call (spoken) and SMS wording. Templates
are customised in a fixed order: vehicle descriptor, location, contact,
then an urgency banner.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable


class TemplateCategory(str, Enum):
    GENERAL = "general"
    BLOCKING = "blocking"
    MEDICAL = "medical"
    SECURITY = "security"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


URGENCY_PREFIXES: dict[Severity, str] = {
    Severity.LOW: "Please note: ",
    Severity.MEDIUM: "Important: ",
    Severity.HIGH: "URGENT: ",
    Severity.CRITICAL: "CRITICAL EMERGENCY: ",
}


@dataclass(frozen=True)
class AlertTemplate:
    id: str
    name: str
    description: str
    call_message: str
    sms_message: str
    category: TemplateCategory
    severity: Severity
    is_default: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "call_message": self.call_message,
            "sms_message": self.sms_message,
            "category": self.category.value,
            "severity": self.severity.value,
            "is_default": self.is_default,
        }


@dataclass(frozen=True)
class AlertCustomizations:
    """Optional details merged into a template."""

    vehicle_info: str | None = None
    location: str | None = None
    contact_info: str | None = None
    urgency_level: Severity | str | None = None

    @property
    def urgency(self) -> Severity | None:
        if self.urgency_level is None:
            return None
        try:
            return Severity(self.urgency_level)
        except ValueError:
            return None


@dataclass(frozen=True)
class AlertMessages:
    call_message: str
    sms_message: str


def customize_message(
    template: AlertTemplate,
    customizations: AlertCustomizations | None = None,
) -> AlertMessages:
    """Apply customisations to a template's call and SMS wording.

    An unknown urgency level adds no banner.
    """
    call = template.call_message
    sms = template.sms_message

    if customizations is None:
        return AlertMessages(call, sms)

    if customizations.vehicle_info:
        call = call.replace("your vehicle", f"your {customizations.vehicle_info}", 1)
        sms = sms.replace("your vehicle", f"your {customizations.vehicle_info}", 1)

    if customizations.location:
        call += f" The vehicle is located at {customizations.location}."
        sms += f" Location: {customizations.location}."

    if customizations.contact_info:
        call += f" For more information, {customizations.contact_info}."
        sms += f" Contact: {customizations.contact_info}."

    urgency = customizations.urgency
    if urgency is not None:
        prefix = URGENCY_PREFIXES[urgency]
        call = prefix + call
        sms = prefix + sms

    return AlertMessages(call, sms)


DEFAULT_TEMPLATES: tuple[AlertTemplate, ...] = (
    AlertTemplate(
        id="default_parking",
        name="Default Parking Alert",
        description="General purpose parking alert for non-urgent situations",
        call_message=(
            "This is an emergency alert regarding your vehicle. Someone needs to contact "
            "you urgently about your parked vehicle. Please check your vehicle immediately."
        ),
        sms_message=(
            "EMERGENCY ALERT: Someone needs to contact you urgently about your parked "
            "vehicle. Please check your vehicle location immediately."
        ),
        category=TemplateCategory.GENERAL,
        severity=Severity.MEDIUM,
        is_default=True,
    ),
    AlertTemplate(
        id="blocking_emergency",
        name="Blocking Emergency Access",
        description="Vehicle is blocking emergency services or critical access",
        call_message=(
            "URGENT: Your vehicle is blocking emergency access. Emergency services need "
            "immediate access. Please move your vehicle immediately to allow emergency "
            "responders through."
        ),
        sms_message=(
            "CRITICAL: Your vehicle is blocking emergency access. Move IMMEDIATELY to "
            "allow emergency services through. Lives may depend on it."
        ),
        category=TemplateCategory.BLOCKING,
        severity=Severity.CRITICAL,
    ),
    AlertTemplate(
        id="medical_emergency",
        name="Medical Emergency",
        description="Medical emergency requiring immediate vehicle access or movement",
        call_message=(
            "MEDICAL EMERGENCY: Your vehicle location is needed for a medical emergency "
            "response. Please respond immediately or move your vehicle if it is blocking "
            "access to emergency services."
        ),
        sms_message=(
            "MEDICAL EMERGENCY: Your vehicle is needed for emergency response. Please "
            "respond immediately or move if blocking access."
        ),
        category=TemplateCategory.MEDICAL,
        severity=Severity.CRITICAL,
    ),
    AlertTemplate(
        id="fire_emergency",
        name="Fire Emergency",
        description="Fire emergency requiring immediate evacuation or access",
        call_message=(
            "FIRE EMERGENCY: Your vehicle may be in danger or blocking fire department "
            "access. Please move your vehicle immediately for safety and emergency access."
        ),
        sms_message=(
            "FIRE EMERGENCY: Move your vehicle immediately. Fire department needs access "
            "or your vehicle may be in danger."
        ),
        category=TemplateCategory.SECURITY,
        severity=Severity.CRITICAL,
    ),
    AlertTemplate(
        id="blocking_driveway",
        name="Blocking Driveway",
        description="Vehicle is blocking someone's driveway or private access",
        call_message=(
            "Your vehicle is blocking a driveway or private access. The property owner "
            "needs to access their property. Please move your vehicle as soon as possible."
        ),
        sms_message=(
            "Your vehicle is blocking a driveway. Please move it to allow property "
            "access. Thank you."
        ),
        category=TemplateCategory.BLOCKING,
        severity=Severity.MEDIUM,
    ),
    AlertTemplate(
        id="double_parked",
        name="Double Parked",
        description="Vehicle is double parked and blocking traffic",
        call_message=(
            "Your vehicle is double parked and blocking traffic flow. Please move your "
            "vehicle immediately to avoid traffic disruption and potential towing."
        ),
        sms_message=(
            "Your vehicle is double parked and blocking traffic. Please move immediately "
            "to avoid towing."
        ),
        category=TemplateCategory.BLOCKING,
        severity=Severity.HIGH,
    ),
    AlertTemplate(
        id="handicap_violation",
        name="Handicap Parking Violation",
        description="Vehicle is illegally parked in handicap space",
        call_message=(
            "Your vehicle is parked in a handicap space without proper authorization. "
            "This space is reserved for people with disabilities. Please move your "
            "vehicle immediately."
        ),
        sms_message=(
            "Your vehicle is in a handicap space illegally. Please move immediately. "
            "This space is reserved for people with disabilities."
        ),
        category=TemplateCategory.GENERAL,
        severity=Severity.HIGH,
    ),
    AlertTemplate(
        id="security_concern",
        name="Security Concern",
        description="Vehicle-related security or safety concern",
        call_message=(
            "There is a security concern related to your vehicle location. Please check "
            "on your vehicle or contact the person trying to reach you about this matter."
        ),
        sms_message=(
            "Security concern regarding your vehicle. Please check your vehicle or "
            "respond to this alert."
        ),
        category=TemplateCategory.SECURITY,
        severity=Severity.HIGH,
    ),
)


class TemplateCatalog:
    """Lookup over a fixed set of alert templates."""

    def __init__(self, templates: Iterable[AlertTemplate] = DEFAULT_TEMPLATES) -> None:
        self._templates = tuple(templates)

    def __len__(self) -> int:
        return len(self._templates)

    def all(self) -> list[AlertTemplate]:
        return list(self._templates)

    @property
    def default(self) -> AlertTemplate | None:
        return next((t for t in self._templates if t.is_default), None)

    def get(self, template_id: str | None = None) -> AlertTemplate:
        """Template by id, else the default, else the first template.

        Raises:
            LookupError: If the catalog is empty.
        """
        if template_id:
            for template in self._templates:
                if template.id == template_id:
                    return template

        default = self.default
        if default is not None:
            return default
        if self._templates:
            return self._templates[0]
        raise LookupError("No message templates available")

    def by_category(self, category: TemplateCategory | str) -> list[AlertTemplate]:
        category = TemplateCategory(category)
        return [t for t in self._templates if t.category is category]

    def by_severity(self, severity: Severity | str) -> list[AlertTemplate]:
        severity = Severity(severity)
        return [t for t in self._templates if t.severity is severity]

    def stats(self) -> dict[str, Any]:
        default = self.default
        return {
            "total_templates": len(self._templates),
            "templates_by_category": dict(Counter(t.category.value for t in self._templates)),
            "templates_by_severity": dict(Counter(t.severity.value for t in self._templates)),
            "default_template": default.id if default else None,
        }
