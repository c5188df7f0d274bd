# tests/test_extraction_pipeline.py
"""End-to-end tests of run_extraction with a fake generation backend."""

from __future__ import annotations

import json

import pytest


class _FakeBackend:
    def __init__(self, answer=None, error=None):
        self.answer = answer
        self.error = error
        self.prompts = []

    def __call__(self, prompt, schema):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.answer


def _invoker(answer=None, error=None):
    from medimind.pipelines.generation import GenerationInvoker

    backend = _FakeBackend(answer, error)
    return GenerationInvoker(backend), backend


RX_URI = "data:image/jpeg;base64,/9j/4AAQSkZJRg=="


class TestRunExtraction:
    def test_python_literal_answer_with_sets(self):
        from medimind.models import ResponseStatus
        from medimind.pipelines.extraction import run_extraction

        invoker, _ = _invoker("{'medications': [{'name': 'Amoxicillin', 'dosage': {'amount': {250, 500}}}]}")
        response = run_extraction("prescription", RX_URI, invoker=invoker)

        assert response.status is ResponseStatus.SUCCESS
        assert response.data["medications"][0]["dosage"] == '{"amount": [250, 500]}'

    def test_amoxicillin_defaulting(self):
        from medimind.models import ResponseStatus
        from medimind.pipelines.extraction import run_extraction

        invoker, backend = _invoker(json.dumps({"medications": [{"name": "Amoxicillin"}]}))
        response = run_extraction("prescription", RX_URI, invoker=invoker)

        assert response.status is ResponseStatus.SUCCESS
        med = response.data["medications"][0]
        assert med["purpose"] == "Not determined"
        assert med["dosage"] == "Not specified on document"
        assert response.disclaimer
        assert backend.prompts[0].has_media

    def test_nameless_medication_dropped(self):
        from medimind.models import ResponseStatus
        from medimind.pipelines.extraction import run_extraction

        invoker, _ = _invoker(
            json.dumps({"medications": [{"purpose": "Pain"}, {"name": "Naproxen", "purpose": "Pain"}]})
        )
        response = run_extraction("prescription", RX_URI, invoker=invoker)
        assert response.status is ResponseStatus.SUCCESS
        assert [m["name"] for m in response.data["medications"]] == ["Naproxen"]
        assert response.meta["normalization"]["dropped_records"] == 1

    def test_backend_unavailable_becomes_failure(self):
        from medimind.models import ResponseStatus
        from medimind.pipelines.extraction import run_extraction

        invoker, _ = _invoker(error=RuntimeError("503 The model is overloaded."))
        response = run_extraction("prescription", RX_URI, invoker=invoker)
        assert response.status is ResponseStatus.FAILURE
        assert response.message == "The AI model is currently overloaded. Please try again in a few moments."
        assert response.retryable is True
        assert response.data is None
        assert response.meta["normalization"] is None

    def test_malformed_becomes_failure(self):
        from medimind.models import ResponseStatus
        from medimind.pipelines.extraction import run_extraction

        invoker, _ = _invoker("Sorry, I cannot help with that.")
        response = run_extraction("prescription", RX_URI, invoker=invoker)
        assert response.status is ResponseStatus.FAILURE
        assert response.message == "AI analysis returned an invalid response. Please try again."

    def test_empty_answer_is_success_empty(self):
        from medimind.models import ResponseStatus
        from medimind.pipelines.extraction import run_extraction

        invoker, _ = _invoker("")
        response = run_extraction("prescription", RX_URI, invoker=invoker)
        assert response.status is ResponseStatus.SUCCESS_EMPTY
        assert response.data == {"medications": []}

    def test_unknown_type_raises(self):
        from medimind.errors import UnknownDocumentType
        from medimind.pipelines.extraction import run_extraction

        invoker, backend = _invoker("{}")
        with pytest.raises(UnknownDocumentType):
            run_extraction("x_ray", RX_URI, invoker=invoker)
        assert backend.prompts == []

    def test_missing_payload_raises_before_backend_call(self):
        from medimind.errors import CompositionError
        from medimind.pipelines.extraction import run_extraction

        invoker, backend = _invoker("{}")
        with pytest.raises(CompositionError):
            run_extraction("medical_report", None, {"age": "54"}, invoker=invoker)
        assert backend.prompts == []

    def test_invalid_data_uri_raises(self):
        from medimind.errors import CompositionError
        from medimind.pipelines.extraction import run_extraction

        invoker, _ = _invoker("{}")
        with pytest.raises(CompositionError):
            run_extraction("prescription", "data:image/png,notbase64", invoker=invoker)

    def test_plain_text_payload(self):
        from medimind.pipelines.extraction import run_extraction

        invoker, backend = _invoker('{"medications": ["Metformin"]}')
        response = run_extraction("prescription", "Metformin 500mg twice daily", invoker=invoker)
        assert response.data["medications"][0]["name"] == "Metformin"
        assert "Metformin 500mg twice daily" in backend.prompts[0].render()

    def test_medical_report_with_context(self):
        from medimind.models import ResponseStatus
        from medimind.pipelines.extraction import run_extraction

        answer = {
            "concise_summary": "Complete blood count.",
            "key_findings_summary": "Mild anemia.",
            "overall_risk_assessment": "Watch: hemoglobin slightly low.",
            "risk_level": "Watch",
            "detailed_test_results": [
                {"test_name": "Hemoglobin", "patient_value": "11.2 g/dL", "status": "low"},
                {"test_name": "WBC", "patient_value": "6.1", "status": "normal"},
            ],
        }
        invoker, backend = _invoker(json.dumps(answer))
        response = run_extraction(
            "medical_report",
            RX_URI,
            {"age": 54, "gender": "unspecified", "patient_information": None},
            invoker=invoker,
        )
        assert response.status is ResponseStatus.SUCCESS
        assert response.data["risk_level"] == "watch"
        rows = response.data["detailed_test_results"]
        assert rows[0]["interpretation"] == "Not determined"
        assert rows[1]["interpretation"] == "No further interpretation needed."
        assert dict(backend.prompts[0].context) == {"age": "54"}

    def test_medicine_by_disease_list_context(self):
        from medimind.models import ResponseStatus
        from medimind.pipelines.extraction import run_extraction

        invoker, backend = _invoker('[{"name": "Salbutamol", "reason": "Bronchodilator"}]')
        response = run_extraction(
            "medicine_by_disease", None, {"diseases": ["Asthma", "COPD"]}, invoker=invoker
        )
        assert response.status is ResponseStatus.SUCCESS
        assert response.data["suggestions"] == [{"name": "Salbutamol", "reason": "Bronchodilator"}]
        assert "Disclaimer" in response.disclaimer

    def test_chat_with_history(self):
        from medimind.models import ResponseStatus
        from medimind.pipelines.extraction import run_extraction

        invoker, backend = _invoker('{"response": "Yes, with food is fine. I am an AI, ask your doctor."}')
        response = run_extraction(
            "chat",
            None,
            {"message": "Can I take ibuprofen with food?"},
            history=[{"role": "user", "text": "Hi"}, {"role": "model", "text": "Hello!"}],
            invoker=invoker,
        )
        assert response.status is ResponseStatus.SUCCESS
        assert len(backend.prompts[0].history) == 2

    def test_chat_without_answer_is_empty(self):
        from medimind.models import ResponseStatus
        from medimind.pipelines.extraction import run_extraction

        invoker, _ = _invoker('{"response": null}')
        response = run_extraction("chat", None, {"message": "hello"}, invoker=invoker)
        assert response.status is ResponseStatus.SUCCESS_EMPTY
        assert response.data["response"].startswith("I'm sorry")

    def test_envelope_meta(self):
        from medimind.pipelines.extraction import run_extraction

        invoker, _ = _invoker('{"medications": []}')
        response = run_extraction("prescription", RX_URI, invoker=invoker)
        meta = response.meta
        assert meta["document_type"] == "prescription"
        assert meta["schema_version"] == "5"
        assert [s["name"] for s in meta["steps"]] == ["Compose", "Invoke", "Normalize", "Assemble"]
        assert meta["document"] == {"mime_type": "image/jpeg", "source": None}
        assert meta["duration_s"] >= 0
