"""Unit tests for the link/association manager.

Tests cover:
- Idempotent linking and unlinking (identity returned on no-op)
- Bulk linking without duplicates
- Malformed references discarded when reading links
- Lab-integration enable/disable leaving no stale extensions
- Input resources never being modified
"""

import copy

import pytest

from medrecords.domain.constants import NomenclatureExtension
from medrecords.domain.models import LabIntegration
from medrecords.domain.ports import InvalidReferenceError
from medrecords.domain.services.link_manager import (
    bulk_link_components,
    bulk_link_samples,
    clear_all_links,
    configure_lab_integration,
    get_lab_integration,
    get_linked_components,
    get_linked_samples,
    get_medical_configuration,
    is_lab_integration_enabled,
    link_component,
    link_sample,
    unlink_component,
    unlink_sample,
)


@pytest.fixture
def service():
    return {
        "resourceType": "ActivityDefinition",
        "id": "svc-1",
        "status": "active",
        "title": "CBC",
        "extension": [{"url": "http://example.org/color-code", "valueString": "red"}],
    }


def _lab_extensions(resource):
    return [
        ext for ext in resource.get("extension", [])
        if ext["url"] in (NomenclatureExtension.LAB_INTEGRATION, NomenclatureExtension.LAB_PROVIDER)
    ]


class TestSampleLinks:
    """Test suite for specimen-definition links."""

    def test_link_appends_reference(self, service):
        """Test that linking appends a reference element."""
        linked = link_sample(service, "specimen-1")

        assert linked["specimenRequirement"] == [{"reference": "SpecimenDefinition/specimen-1"}]
        assert get_linked_samples(linked) == ["specimen-1"]

    def test_link_twice_returns_same_object(self, service):
        """Test that linking an already linked id is a no-op returning the input."""
        once = link_sample(service, "specimen-1")
        twice = link_sample(once, "specimen-1")

        assert twice is once
        assert len(twice["specimenRequirement"]) == 1

    def test_link_does_not_modify_input(self, service):
        """Test that the input resource is left untouched."""
        original = copy.deepcopy(service)
        link_sample(service, "specimen-1")

        assert service == original

    def test_link_invalid_id_raises(self, service):
        """Test that an invalid id is rejected."""
        with pytest.raises(InvalidReferenceError):
            link_sample(service, "bad id")

    def test_unlink_removes_reference(self, service):
        """Test that unlinking the last id removes the list entirely."""
        linked = link_sample(service, "specimen-1")
        unlinked = unlink_sample(linked, "specimen-1")

        assert "specimenRequirement" not in unlinked
        assert get_linked_samples(unlinked) == []

    def test_unlink_absent_returns_same_object(self, service):
        """Test that unlinking an id that is not linked returns the input."""
        linked = link_sample(service, "specimen-1")

        assert unlink_sample(linked, "specimen-2") is linked
        assert unlink_sample(service, "specimen-1") is service

    def test_bulk_link_skips_present_and_repeated_ids(self, service):
        """Test that bulk linking adds each missing id once, in order."""
        linked = link_sample(service, "specimen-2")
        bulk = bulk_link_samples(linked, ["specimen-1", "specimen-2", "specimen-3", "specimen-1"])

        assert get_linked_samples(bulk) == ["specimen-2", "specimen-1", "specimen-3"]

    def test_bulk_link_nothing_new_returns_same_object(self, service):
        """Test that bulk linking only present ids is a no-op."""
        linked = bulk_link_samples(service, ["specimen-1", "specimen-2"])

        assert bulk_link_samples(linked, ["specimen-2", "specimen-1"]) is linked
        assert bulk_link_samples(service, []) is service

    def test_get_linked_discards_malformed_entries(self, service):
        """Test that malformed and foreign-type references are skipped."""
        service["specimenRequirement"] = [
            {"reference": "SpecimenDefinition/specimen-1"},
            {"reference": "SpecimenDefinition/"},
            {"reference": "ObservationDefinition/obs-1"},
            {"display": "no reference"},
            "not a dict",
            {"reference": "SpecimenDefinition/specimen-2"},
        ]

        assert get_linked_samples(service) == ["specimen-1", "specimen-2"]


class TestComponentLinks:
    """Test suite for observation-definition links."""

    def test_link_and_unlink(self, service):
        """Test the component link lifecycle."""
        linked = link_component(service, "obs-1")
        assert linked["observationRequirement"] == [{"reference": "ObservationDefinition/obs-1"}]
        assert link_component(linked, "obs-1") is linked

        unlinked = unlink_component(linked, "obs-1")
        assert "observationRequirement" not in unlinked

    def test_bulk_link(self, service):
        """Test that bulk component linking preserves order."""
        linked = bulk_link_components(service, ["obs-2", "obs-1"])
        assert get_linked_components(linked) == ["obs-2", "obs-1"]

    def test_samples_and_components_are_independent(self, service):
        """Test that unlinking a component id does not touch sample links."""
        linked = link_component(link_sample(service, "x-1"), "x-1")
        unlinked = unlink_component(linked, "x-1")

        assert get_linked_samples(unlinked) == ["x-1"]
        assert get_linked_components(unlinked) == []


class TestClearAllLinks:
    """Test suite for clear_all_links."""

    def test_clears_both_lists(self, service):
        """Test that both relationship lists are removed."""
        linked = link_component(link_sample(service, "specimen-1"), "obs-1")
        cleared = clear_all_links(linked)

        assert "specimenRequirement" not in cleared
        assert "observationRequirement" not in cleared
        assert cleared["title"] == "CBC"

    def test_no_links_returns_same_object(self, service):
        """Test that clearing a resource without links is a no-op."""
        assert clear_all_links(service) is service


class TestLabIntegration:
    """Test suite for lab-integration configuration."""

    def test_enable_with_provider(self, service):
        """Test that enabling writes the flag and provider."""
        configured = configure_lab_integration(service, True, "LabCorp")

        assert get_lab_integration(configured) == LabIntegration(enabled=True, provider="LabCorp")
        assert is_lab_integration_enabled(configured)

    def test_enable_without_provider(self, service):
        """Test that enabling without a provider writes only the flag."""
        configured = configure_lab_integration(service, True)

        assert len(_lab_extensions(configured)) == 1
        assert get_lab_integration(configured) == LabIntegration(enabled=True)

    def test_enable_then_disable_leaves_nothing(self, service):
        """Test that disabling removes both lab extensions."""
        enabled = configure_lab_integration(service, True, "Provider")
        disabled = configure_lab_integration(enabled, False)

        assert _lab_extensions(disabled) == []
        assert not is_lab_integration_enabled(disabled)
        assert disabled["extension"] == service["extension"]

    def test_disable_ignores_provider(self, service):
        """Test that a provider passed while disabling is not written."""
        configured = configure_lab_integration(service, False, "LabCorp")
        assert _lab_extensions(configured) == []

    def test_reconfigure_drops_previous_provider(self, service):
        """Test that enabling again without a provider drops the old one."""
        first = configure_lab_integration(service, True, "LabCorp")
        second = configure_lab_integration(first, True)

        assert get_lab_integration(second).provider is None

    def test_disable_only_extension_removes_list(self):
        """Test that no empty extension list is left behind."""
        service = {"resourceType": "ActivityDefinition", "title": "X"}
        disabled = configure_lab_integration(configure_lab_integration(service, True, "P"), False)

        assert "extension" not in disabled


class TestMedicalConfiguration:
    """Test suite for get_medical_configuration."""

    def test_combined_view(self, service):
        """Test that samples, components and lab setup are read together."""
        configured = configure_lab_integration(
            link_component(link_sample(service, "specimen-1"), "obs-1"), True, "LabCorp"
        )
        config = get_medical_configuration(configured)

        assert config.samples == ("specimen-1",)
        assert config.components == ("obs-1",)
        assert config.lab_integration.provider == "LabCorp"
