"""Tests for alert templates and customisation."""

import pytest

from vehicle_relay.services.alert_templates import (
    DEFAULT_TEMPLATES,
    AlertCustomizations,
    AlertTemplate,
    Severity,
    TemplateCatalog,
    TemplateCategory,
    customize_message,
)


@pytest.fixture
def catalog():
    return TemplateCatalog()


@pytest.fixture
def template():
    return AlertTemplate(
        id="t1",
        name="Test",
        description="Test template",
        call_message="Please move your vehicle now.",
        sms_message="Move your vehicle now.",
        category=TemplateCategory.BLOCKING,
        severity=Severity.MEDIUM,
    )


class TestTemplateCatalog:
    def test_get_by_id(self, catalog):
        assert catalog.get("fire_emergency").name == "Fire Emergency"

    def test_unknown_id_returns_default(self, catalog):
        assert catalog.get("does_not_exist").id == "default_parking"
        assert catalog.get(None).id == "default_parking"

    def test_first_template_when_no_default(self, template):
        catalog = TemplateCatalog([template])
        assert catalog.default is None
        assert catalog.get("missing") is template

    def test_empty_catalog_raises(self):
        with pytest.raises(LookupError):
            TemplateCatalog([]).get("anything")

    def test_by_category(self, catalog):
        blocking = catalog.by_category("blocking")
        assert {t.id for t in blocking} == {"blocking_emergency", "blocking_driveway", "double_parked"}

    def test_by_severity(self, catalog):
        critical = catalog.by_severity(Severity.CRITICAL)
        assert {t.id for t in critical} == {"blocking_emergency", "medical_emergency", "fire_emergency"}

    def test_invalid_category(self, catalog):
        with pytest.raises(ValueError):
            catalog.by_category("parking")

    def test_stats(self, catalog):
        stats = catalog.stats()
        assert stats["total_templates"] == len(DEFAULT_TEMPLATES) == 8
        assert stats["templates_by_category"]["blocking"] == 3
        assert stats["templates_by_severity"]["high"] == 3
        assert stats["default_template"] == "default_parking"

    def test_exactly_one_default(self):
        assert sum(t.is_default for t in DEFAULT_TEMPLATES) == 1


class TestCustomizeMessage:
    """Test customisation order and wording."""

    def test_no_customizations(self, template):
        messages = customize_message(template)
        assert messages.call_message == template.call_message
        assert messages.sms_message == template.sms_message

    def test_vehicle_info_replaces_first_occurrence(self, template):
        messages = customize_message(template, AlertCustomizations(vehicle_info="red Swift"))
        assert messages.call_message == "Please move your red Swift now."
        assert messages.sms_message == "Move your red Swift now."

    def test_location_and_contact(self, template):
        messages = customize_message(
            template,
            AlertCustomizations(location="Lot B", contact_info="call the front desk"),
        )
        assert messages.call_message == (
            "Please move your vehicle now. The vehicle is located at Lot B."
            " For more information, call the front desk."
        )
        assert messages.sms_message == "Move your vehicle now. Location: Lot B. Contact: call the front desk."

    @pytest.mark.parametrize(
        "level,prefix",
        [
            ("low", "Please note: "),
            ("medium", "Important: "),
            (Severity.HIGH, "URGENT: "),
            ("critical", "CRITICAL EMERGENCY: "),
        ],
    )
    def test_urgency_prefix(self, template, level, prefix):
        messages = customize_message(template, AlertCustomizations(urgency_level=level))
        assert messages.call_message == prefix + template.call_message
        assert messages.sms_message == prefix + template.sms_message

    def test_unknown_urgency_adds_nothing(self, template):
        messages = customize_message(template, AlertCustomizations(urgency_level="apocalyptic"))
        assert messages.sms_message == template.sms_message

    def test_urgency_applied_last(self, template):
        messages = customize_message(
            template,
            AlertCustomizations(vehicle_info="bike", location="Gate 1", urgency_level="high"),
        )
        assert messages.sms_message == "URGENT: Move your bike now. Location: Gate 1."
