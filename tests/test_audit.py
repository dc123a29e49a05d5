"""Tests for audit composition."""

import json
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from seo_intelligence.audit import (
    COMPONENT_WEIGHTS,
    AuditComposer,
    AuditOptions,
    AuditResult,
    InternalError,
    grade_for,
    prioritize,
    run_audit,
    validate_weights,
    weighted_overall,
)
from seo_intelligence.document import ParseError, parse_document
from seo_intelligence.models import (
    CompletionResult,
    Component,
    Issue,
    SectionScore,
    Severity,
    TaskType,
)


def _scores(values: dict, issues: dict = None) -> dict:
    issues = issues or {}
    return {
        c: SectionScore(component=c, score=values.get(c, 100), issues=tuple(issues.get(c, ())))
        for c in Component
    }


class TestWeights:
    """Tests for the weight table."""

    def test_default_weights_sum_to_one(self):
        """Test the policy weights sum to exactly 1."""
        assert sum(COMPONENT_WEIGHTS.values()) == Decimal("1")
        validate_weights(COMPONENT_WEIGHTS)

    def test_rejects_weights_not_summing_to_one(self):
        """Test validation of a bad weight table."""
        weights = dict(COMPONENT_WEIGHTS)
        weights[Component.METADATA] = Decimal("0.30")
        with pytest.raises(ValueError):
            validate_weights(weights)

    def test_rejects_missing_component(self):
        """Test validation of an incomplete weight table."""
        weights = dict(COMPONENT_WEIGHTS)
        del weights[Component.SECURITY]
        with pytest.raises(ValueError):
            AuditComposer(weights=weights)

    def test_float_weights_are_converted_exactly(self):
        """Test float weights are read through their decimal string form."""
        weights = {c: float(w) for c, w in COMPONENT_WEIGHTS.items()}
        composer = AuditComposer(weights=weights)
        assert composer.weights[Component.CONTENT] == Decimal("0.2")


class TestWeightedOverall:
    """Tests for weighted_overall."""

    def test_weighted_sum(self):
        """Test overall = round(sum(weight * score))."""
        scores = _scores({
            Component.METADATA: 80,
            Component.CONTENT: 60,
            Component.TECHNICAL: 40,
            Component.MOBILE: 100,
            Component.PERFORMANCE: 50,
            Component.SECURITY: 0,
            Component.ACCESSIBILITY: 70,
        })
        # 16 + 12 + 6 + 15 + 5 + 0 + 7 = 61
        assert weighted_overall(scores) == 61

    def test_rounds_half_up(self):
        """Test exact halves round up."""
        scores = _scores({c: 0 for c in Component} | {Component.PERFORMANCE: 5})
        # 0.10 * 5 = 0.5
        assert weighted_overall(scores) == 1

    def test_bounds(self):
        """Test all-zero and all-hundred inputs."""
        assert weighted_overall(_scores({c: 0 for c in Component})) == 0
        assert weighted_overall(_scores({})) == 100


class TestGradeFor:
    """Tests for grade_for."""

    @pytest.mark.parametrize("score,grade", [
        (100, "A+"), (90, "A+"), (89, "A"), (80, "A"), (79, "B"), (70, "B"),
        (69, "C"), (60, "C"), (59, "D"), (50, "D"), (49, "F"), (0, "F"),
    ])
    def test_grade_table(self, score, grade):
        """Test each grade boundary."""
        assert grade_for(score) == grade


class TestPrioritize:
    """Tests for recommendation ordering."""

    def test_orders_by_severity_then_component(self):
        """Test severity rank first, then declaration order, then scorer order."""
        issues = {
            Component.ACCESSIBILITY: [Issue("a11y critical", Severity.CRITICAL)],
            Component.METADATA: [
                Issue("meta low", Severity.LOW),
                Issue("meta high 1", Severity.HIGH),
                Issue("meta high 2", Severity.HIGH),
            ],
            Component.MOBILE: [Issue("mobile critical", Severity.CRITICAL)],
            Component.CONTENT: [Issue("content info", Severity.INFO)],
        }
        recommendations = prioritize(_scores({}, issues))

        assert [r.message for r in recommendations] == [
            "mobile critical",
            "a11y critical",
            "meta high 1",
            "meta high 2",
            "meta low",
            "content info",
        ]


class TestAuditResult:
    """Tests for AuditResult invariants."""

    def test_rejects_wrong_overall(self, fixed_clock):
        """Test construction fails when overall is not the weighted sum."""
        scores = _scores({})
        with pytest.raises(InternalError):
            AuditResult(
                overall=90, grade="A+", scores=scores,
                recommendations=(), timestamp=fixed_clock(),
            )

    def test_rejects_missing_recommendation(self, fixed_clock):
        """Test construction fails when an issue is missing from recommendations."""
        scores = _scores({Component.METADATA: 75}, {
            Component.METADATA: [Issue("Missing page title", Severity.CRITICAL)],
        })
        with pytest.raises(InternalError):
            AuditResult(
                overall=weighted_overall(scores), grade="A+", scores=scores,
                recommendations=(), timestamp=fixed_clock(),
            )

    def test_scores_are_read_only(self, good_html, fixed_clock):
        """Test the score mapping cannot be mutated."""
        result = AuditComposer(clock=fixed_clock).run(good_html)
        with pytest.raises(TypeError):
            result.scores[Component.METADATA] = None


class TestAuditComposer:
    """Tests for AuditComposer.run."""

    def test_good_page(self, good_html, fixed_clock):
        """Test a well-optimized HTTPS page gets full marks."""
        result = AuditComposer(clock=fixed_clock).run(
            good_html, AuditOptions(url="https://example.com/test-page")
        )

        assert result.overall == 100
        assert result.grade == "A+"
        assert result.recommendations == ()
        assert result.url == "https://example.com/test-page"
        assert result.timestamp == fixed_clock()

    def test_poor_page(self, poor_html, fixed_clock):
        """Test a poor page gets a failing grade with prioritized issues."""
        result = AuditComposer(clock=fixed_clock).run(poor_html)

        assert result.overall == 17
        assert result.grade == "F"
        assert result.recommendations[0].severity in (Severity.CRITICAL, Severity.HIGH)
        ranks = [r.severity.rank for r in result.recommendations]
        assert ranks == sorted(ranks)

    def test_overall_matches_weighted_sum(self, poor_html, untitled_html, good_html):
        """Test overall equals the rounded weighted sum for several pages."""
        composer = AuditComposer()
        for html in (poor_html, untitled_html, good_html, "plain words only"):
            result = composer.run(html)
            expected = sum(
                COMPONENT_WEIGHTS[c] * result.scores[c].score for c in Component
            )
            assert 0 <= result.overall <= 100
            assert result.overall == int(expected.quantize(Decimal("1"), rounding="ROUND_HALF_UP"))

    def test_scores_in_declaration_order(self, poor_html):
        """Test score mapping keeps component declaration order."""
        result = AuditComposer().run(poor_html)
        assert list(result.scores) == list(Component)

    def test_runs_are_byte_identical(self, poor_html, fixed_clock):
        """Test two audits of the same document serialize identically."""
        composer = AuditComposer(clock=fixed_clock)
        first = json.dumps(composer.run(poor_html).to_dict())
        second = json.dumps(composer.run(poor_html).to_dict())
        assert first == second

    def test_concurrent_and_sequential_agree(self, good_html, poor_html):
        """Test thread-pool scoring gives the same result as sequential."""
        composer = AuditComposer()
        for html in (good_html, poor_html):
            doc = parse_document(html)
            assert composer.score(doc, concurrent=True) == composer.score(doc, concurrent=False)

    def test_accepts_parsed_document(self, good_html):
        """Test a pre-parsed Document is used directly, URL filled from options."""
        doc = parse_document(good_html)
        result = AuditComposer().run(doc, AuditOptions(url="https://example.com/"))

        assert result.url == "https://example.com/"
        assert result.scores[Component.SECURITY].score == 100

    def test_scenario_missing_title(self, untitled_html):
        """Test missing title: low metadata, penalized content, urgent title issue."""
        result = run_audit(untitled_html)

        assert result.scores[Component.METADATA].score < 50
        assert "title_context" in {i.check for i in result.scores[Component.CONTENT].issues}
        assert any(
            r.severity in (Severity.CRITICAL, Severity.HIGH) and "title" in r.message.lower()
            for r in result.recommendations
        )

    def test_parse_error_propagates(self):
        """Test unparseable input fails with ParseError."""
        with pytest.raises(ParseError):
            run_audit("")

    def test_scorer_failure_is_internal_error(self, good_html, monkeypatch):
        """Test an exception inside a scorer surfaces as InternalError."""
        from seo_intelligence import audit as audit_module

        def broken(document):
            raise RuntimeError("boom")

        monkeypatch.setitem(audit_module.SCORERS, Component.MOBILE, broken)
        with pytest.raises(InternalError, match="mobile"):
            run_audit(good_html)

    def test_to_dict_without_timestamp(self, poor_html):
        """Test timestamp can be left out of the serialized form."""
        data = AuditComposer().run(poor_html).to_dict(include_timestamp=False)

        assert "timestamp" not in data
        assert list(data["scores"]) == [c.value for c in Component]


class TestAuditSuggestions:
    """Tests for variant suggestions attached to audits."""

    def test_suggests_for_metadata_issues(self, untitled_html):
        """Test title and description suggestions are requested for missing tags."""
        generator = MagicMock()
        generator.generate_variants.return_value = CompletionResult(
            candidates=("Brewing Better Coffee at Home: The Complete Guide",),
            provider="template",
        )
        composer = AuditComposer(variant_generator=generator)

        result = composer.run(
            untitled_html, AuditOptions(suggest_variants=True, keywords=("coffee",))
        )

        tasks = [call.args[0] for call in generator.generate_variants.call_args_list]
        assert tasks == [TaskType.TITLE_VARIANTS, TaskType.DESCRIPTION_VARIANTS]
        assert set(result.suggestions) == {"title", "description"}
        payload = generator.generate_variants.call_args_list[0].args[1]
        assert payload["keywords"] == ["coffee"]

    def test_no_suggestions_by_default(self, untitled_html):
        """Test suggestions are opt-in."""
        generator = MagicMock()
        result = AuditComposer(variant_generator=generator).run(untitled_html)

        generator.generate_variants.assert_not_called()
        assert dict(result.suggestions) == {}
