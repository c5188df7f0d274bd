# tests/test_schema_registry.py
"""Tests for the YAML-backed document schema registry."""

from __future__ import annotations

import pytest
from pydantic import ValidationError


class TestBuiltInSchemas:
    def test_all_document_types_registered(self):
        from medimind.schemas.registry import list_schemas

        names = [s.name for s in list_schemas()]
        assert names == sorted(names)
        for expected in ("chat", "medical_report", "medicine_by_disease", "medicine_search", "prescription"):
            assert expected in names

    def test_get_schema_normalizes_key(self):
        from medimind.schemas.registry import get_schema

        assert get_schema("Medical-Report").name == "medical_report"
        assert get_schema("  prescription ").name == "prescription"

    def test_unknown_type_raises(self):
        from medimind.errors import UnknownDocumentType
        from medimind.schemas.registry import get_schema

        with pytest.raises(UnknownDocumentType) as exc_info:
            get_schema("x_ray_film")
        assert exc_info.value.document_type == "x_ray_film"
        assert "prescription" in exc_info.value.available
        assert "x_ray_film" in str(exc_info.value)

    def test_unknown_type_is_key_error(self):
        from medimind.schemas.registry import get_schema

        with pytest.raises(KeyError):
            get_schema("nope")

    def test_prescription_shape(self):
        from medimind.schemas.registry import get_schema

        schema = get_schema("prescription")
        meds = schema.field("medications")
        assert meds.kind == "array-of-record"
        assert meds.identity_field.name == "name"
        assert schema.primary_record_field is meds
        assert schema.outcome == "records"

    def test_evidence_sources_pick_wording(self):
        from medimind.schemas.registry import DEFAULT_WORDING, get_schema

        meds = get_schema("prescription").field("medications")
        by_name = {f.name: f for f in meds.fields}
        assert by_name["purpose"].source == "knowledge"
        assert by_name["purpose"].default.value == DEFAULT_WORDING["not_determined"]
        assert by_name["dosage"].default.value == DEFAULT_WORDING["not_on_document"]
        assert by_name["name"].default.kind == "drop"
        assert by_name["storage"].default.kind == "computed"
        assert by_name["storage"].default.rule == "generic_when_identified"

    def test_report_aggregates_use_assessment_wording(self):
        from medimind.schemas.registry import get_schema

        schema = get_schema("medical_report")
        assert schema.field("overall_risk_assessment").default.value == "Assessment not determined"
        assert schema.field("risk_level").default.value == "undetermined"

    def test_every_computed_rule_is_known(self):
        from medimind.pipelines.normalizer import COMPUTED_RULES
        from medimind.schemas.registry import list_schemas

        def walk(fields):
            for spec in fields:
                yield spec
                yield from walk(spec.fields)

        for schema in list_schemas():
            for spec in walk(schema.fields):
                if spec.default.kind == "computed":
                    assert spec.default.rule in COMPUTED_RULES, (schema.name, spec.name)

    def test_schemas_are_frozen(self):
        from medimind.schemas.registry import get_schema

        schema = get_schema("prescription")
        with pytest.raises(ValidationError):
            schema.name = "other"


class TestFieldSpecValidation:
    def test_record_needs_exactly_one_identity(self):
        from medimind.schemas.registry import FieldSpec

        with pytest.raises(ValidationError, match="identity"):
            FieldSpec(
                name="items",
                kind="array-of-record",
                fields=[{"name": "a"}, {"name": "b"}],
            )

    def test_identity_must_be_required(self):
        from medimind.schemas.registry import FieldSpec

        with pytest.raises(ValidationError, match="required scalar"):
            FieldSpec(
                name="items",
                kind="array-of-record",
                fields=[{"name": "a", "identity": True}],
            )

    def test_enum_needs_default(self):
        from medimind.schemas.registry import FieldSpec

        with pytest.raises(ValidationError, match="default"):
            FieldSpec(name="level", kind="enum", enum_values=["a", "b"])

    def test_enum_default_must_be_member(self):
        from medimind.schemas.registry import FieldSpec

        with pytest.raises(ValidationError, match="enum values"):
            FieldSpec(name="level", kind="enum", enum_values=["a", "b"], default="c")

    def test_scalar_shorthand_default(self):
        from medimind.schemas.registry import FieldSpec

        spec = FieldSpec(name="note", default="Nothing noted.")
        assert spec.default.kind == "literal"
        assert spec.default.value == "Nothing noted."

    def test_array_defaults_to_empty_list(self):
        from medimind.schemas.registry import FieldSpec

        spec = FieldSpec(name="tags", kind="array-of-scalar", source="knowledge")
        assert spec.default.value == []

    def test_unknown_wording_rejected(self):
        from medimind.schemas.registry import FieldSpec

        with pytest.raises(ValidationError, match="wording"):
            FieldSpec(name="note", wording="whatever")

    def test_accepts(self):
        from medimind.schemas.registry import FieldSpec

        spec = FieldSpec(name="note")
        assert spec.accepts("text")
        assert not spec.accepts("  ")
        assert not spec.accepts(None)
        assert not spec.accepts(3)


class TestDocumentSchemaValidation:
    def test_top_level_identity_rejected(self):
        from medimind.schemas.registry import DocumentSchema

        with pytest.raises(ValidationError, match="inside a record"):
            DocumentSchema(name="bad", fields=[{"name": "x", "identity": True, "required": True}])

    def test_signal_fields_must_exist(self):
        from medimind.schemas.registry import DocumentSchema

        with pytest.raises(ValidationError, match="signal"):
            DocumentSchema(name="bad", signal_fields=["missing"], fields=[{"name": "x"}])

    def test_validate_result_lists_problems(self):
        from medimind.schemas.registry import get_schema

        schema = get_schema("medicine_search")
        problems = schema.validate_result({"name": "Aspirin"})
        assert any("description" in p for p in problems)
        assert schema.validate_result([]) == ["result is list, expected dict"]


class TestRegistration:
    def test_register_new_type(self, monkeypatch):
        import medimind.schemas.registry as registry

        monkeypatch.setattr(registry, "_cache", None)
        schema = registry.DocumentSchema(name="discharge_letter", fields=[{"name": "summary"}])
        registry.register_schema(schema)
        assert registry.get_schema("discharge_letter") is schema

    def test_register_existing_type_rejected(self, monkeypatch):
        import medimind.schemas.registry as registry

        monkeypatch.setattr(registry, "_cache", None)
        schema = registry.DocumentSchema(name="prescription", fields=[{"name": "summary"}])
        with pytest.raises(ValueError, match="already registered"):
            registry.register_schema(schema)

    def test_load_schema_file(self, tmp_path):
        from medimind.schemas.registry import load_schema_file

        path = tmp_path / "referral.yaml"
        path.write_text(
            "title: Referral\n"
            "fields:\n"
            "  - name: reason\n"
            "    source: document\n",
            encoding="utf-8",
        )
        schema = load_schema_file(path)
        assert schema.name == "referral"
        assert schema.field("reason").default.value == "Not specified on document"


class TestDisclaimers:
    def test_schema_disclaimer(self):
        from medimind.schemas.disclaimers import get_disclaimer

        text = get_disclaimer("prescription")
        assert "not a substitute" in text
        assert "\n" not in text

    def test_general_fallback(self, monkeypatch):
        import medimind.schemas.registry as registry
        from medimind.schemas.disclaimers import GENERAL_DISCLAIMER, get_disclaimer

        monkeypatch.setattr(registry, "_cache", None)
        registry.register_schema(
            registry.DocumentSchema(name="plain_note", fields=[{"name": "summary"}])
        )
        assert get_disclaimer("plain_note") == GENERAL_DISCLAIMER
