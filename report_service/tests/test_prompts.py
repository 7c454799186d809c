"""Tests for the lab report prompt template."""
from report_service.prompts import LAB_CATEGORIES, build_analysis_prompt


class TestBuildAnalysisPrompt:

    def test_includes_report_text(self):
        prompt = build_analysis_prompt("Hemoglobin 10.2 g/dL (Low)")
        assert prompt.rstrip().endswith("Hemoglobin 10.2 g/dL (Low)")

    def test_lists_every_category(self):
        prompt = build_analysis_prompt("x")
        for category in LAB_CATEGORIES:
            assert category in prompt

    def test_requests_bare_json(self):
        prompt = build_analysis_prompt("x")
        assert '"tests": [' in prompt
        assert '"status": "High|Low|Normal"' in prompt
        assert "No markdown" in prompt

    def test_braces_in_report_text_are_kept(self):
        prompt = build_analysis_prompt("Ratio {A/G} 1.2")
        assert "Ratio {A/G} 1.2" in prompt

    def test_deterministic(self):
        assert build_analysis_prompt("WBC 11.2") == build_analysis_prompt("WBC 11.2")
