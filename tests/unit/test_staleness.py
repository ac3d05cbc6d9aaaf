"""Unit tests for staleness and draft integrity detection."""

from datetime import datetime, timedelta

import pytest

from case_drafting.exceptions import StaleDataError
from case_drafting.models.draft import DraftVersion
from case_drafting.models.enums import PipelineStage, StageStatus
from case_drafting.models.pipeline import StageRecord
from case_drafting.staleness import DraftIntegrityChecker, StalenessDetector, UpstreamState


T0 = datetime(2024, 6, 1, 10, 0, 0)


def _draft(draft_id, minutes, content="Texto da petição"):
    return DraftVersion(
        id=draft_id,
        case_id="c1",
        content=content,
        generated_at=T0 + timedelta(minutes=minutes),
    )


def _record(output=None, status=StageStatus.COMPLETED, analyzed_minutes=0):
    return StageRecord(
        case_id="c1",
        stage=PipelineStage.CRITIC_ANALYSIS,
        run_id="run-1",
        status=status,
        analyzed_at=T0 + timedelta(minutes=analyzed_minutes),
        output_draft_id=output.id if output else None,
        output_generated_at=output.generated_at if output else None,
    )


class TestDraftIntegrity:
    """Tests for content checks that invalidate a draft."""

    @pytest.mark.parametrize("content", [
        "Autora: [AUTOR_NOME]",
        "Autora: {{ nome }}",
        "CPF XXX.XXX.XXX-XX",
        "Valor: R$ NaN",
        "Nome: undefined",
        "Dados: [object Object]",
        "",
        "   ",
    ])
    def test_invalid_content(self, content):
        assert not DraftIntegrityChecker().is_valid(content)

    def test_valid_content(self):
        checker = DraftIntegrityChecker()
        assert checker.is_valid("Maria Silva, CPF 123.456.789-00, valor R$ 5.648,00")
        assert checker.find_problems("Texto [nota de rodapé]") == []

    def test_problems_are_described(self):
        problems = DraftIntegrityChecker().find_problems("[AUTOR_CPF] e undefined")
        assert "Unresolved placeholder [AUTOR_CPF]" in problems
        assert "Invalid literal 'undefined'" in problems

    def test_custom_literals(self):
        checker = DraftIntegrityChecker(placeholder_patterns=[], invalid_literals=["TODO"])
        assert checker.is_valid("[AUTOR_NOME]")
        assert not checker.is_valid("TODO fill in")


class TestStageStaleness:
    """Tests for stage record staleness."""

    def test_current_when_output_is_latest(self):
        draft = _draft("v1", 1)
        upstream = UpstreamState(latest_draft=draft, case_updated_at=T0 - timedelta(hours=1))
        assert not StalenessDetector().is_stale(_record(draft), upstream)

    def test_stale_when_not_completed(self):
        draft = _draft("v1", 1)
        record = _record(draft, status=StageStatus.FAILED)
        assert StalenessDetector().is_stale(record, UpstreamState(latest_draft=draft))

    def test_stale_when_case_changed_after_analysis(self):
        draft = _draft("v1", 1)
        upstream = UpstreamState(latest_draft=draft, case_updated_at=T0 + timedelta(minutes=5))
        assert StalenessDetector().is_stale(_record(draft), upstream)

    def test_stale_when_newer_draft_exists(self):
        """Test a newer draft not produced by this run invalidates the stage."""
        old = _draft("v1", 1)
        newer = _draft("v2", 2)
        assert StalenessDetector().is_stale(_record(old), UpstreamState(latest_draft=newer))

    def test_chained_drafts_do_not_invalidate(self):
        """Test drafts written by later stages of the same run are expected."""
        old = _draft("v1", 1)
        newer = _draft("v2", 2)
        upstream = UpstreamState(latest_draft=newer, chained_draft_ids=frozenset({"v2"}))
        assert not StalenessDetector().is_stale(_record(old), upstream)

    def test_stage_without_output_and_without_drafts(self):
        assert not StalenessDetector().is_stale(_record(None), UpstreamState())

    def test_output_draft_vanished(self):
        assert StalenessDetector().is_stale(_record(_draft("v1", 1)), UpstreamState())


class TestLatestDraftStaleness:
    """Tests for the staleness verdict on a stored draft."""

    def test_fresh_draft(self):
        draft = _draft("v1", 10)
        assert not StalenessDetector().is_draft_stale(draft, T0)

    def test_case_modified_after_draft(self):
        draft = _draft("v1", 10)
        problems = StalenessDetector().draft_problems(draft, T0 + timedelta(minutes=20))
        assert problems == ["Case data changed after the draft was generated"]

    def test_integrity_failure_regardless_of_time(self):
        draft = _draft("v1", 10, content="Valor R$ NaN")
        assert StalenessDetector().is_draft_stale(draft, None)

    def test_later_edit_of_outdated_text(self):
        """Test an appended edit does not make text built from old data current."""
        edited = _draft("v2", 30)
        detector = StalenessDetector()

        assert not detector.draft_problems(edited, T0 + timedelta(minutes=20))
        problems = detector.draft_problems(
            edited, T0 + timedelta(minutes=20), derived_at=T0 + timedelta(minutes=10)
        )
        assert problems == ["Case data changed after the draft was generated"]

    def test_check_draft_raises_stale_data_error(self):
        draft = _draft("v1", 10, content="Valor: undefined")

        with pytest.raises(StaleDataError) as exc_info:
            StalenessDetector().check_draft(draft, T0 + timedelta(minutes=20))

        assert exc_info.value.case_id == "c1"
        assert exc_info.value.stage == PipelineStage.DRAFT_GENERATION.value
        assert exc_info.value.details["problems"] == [
            "Invalid literal 'undefined'",
            "Case data changed after the draft was generated",
        ]

    def test_check_draft_accepts_current_draft(self):
        StalenessDetector().check_draft(_draft("v1", 10), T0)
