"""Unit tests for the Extraction Consolidator."""

import random
from datetime import datetime, timedelta

import pytest

from case_drafting.consolidation import ExtractionConsolidator, is_empty, parse_date
from case_drafting.models.extraction import ExtractionRecord


def _extraction(entities=None, minutes=0, **kwargs):
    return ExtractionRecord(
        case_id="case-1",
        entities=entities if entities is not None else {},
        extracted_at=datetime(2024, 1, 1, 9, 0) + timedelta(minutes=minutes),
        **kwargs,
    )


def _without_timestamp(record):
    data = record.to_dict()
    data.pop("consolidated_at")
    return data


class TestScalarMerge:
    """Tests for first-write-wins scalar resolution."""

    def test_merge_scenario(self):
        """Test a null in a later extraction never erases an earlier value."""
        first = _extraction({
            "motherName": "Maria Silva",
            "ruralPeriods": [{"start": "2020-01-01", "end": "2020-06-01"}],
        })
        second = _extraction({
            "motherName": None,
            "ruralPeriods": [
                {"start": "2020-01-01", "end": "2020-06-01"},
                {"start": "2021-01-01", "end": None},
            ],
        }, minutes=5)

        record = ExtractionConsolidator().consolidate([first, second])

        assert record.author_name == "Maria Silva"
        assert len(record.rural_periods) == 2
        assert [p["start"] for p in record.rural_periods] == ["2020-01-01", "2021-01-01"]

    def test_earliest_extraction_wins_and_conflict_is_recorded(self):
        """Test the earlier value is kept and the disagreement logged."""
        late = _extraction({"motherCpf": "999.999.999-99"}, minutes=10)
        early = _extraction({"motherCpf": "123.456.789-00"})

        record = ExtractionConsolidator().consolidate([late, early])

        assert record.author_cpf == "123.456.789-00"
        assert len(record.conflicts) == 1
        conflict = record.conflicts[0]
        assert conflict.field == "author_cpf"
        assert conflict.kept_value == "123.456.789-00"
        assert conflict.discarded_value == "999.999.999-99"
        assert conflict.kept_source == early.id
        assert conflict.discarded_source == late.id

    def test_alias_precedence_within_one_extraction(self):
        """Test the first alias in the table takes precedence."""
        record = ExtractionConsolidator().consolidate([
            _extraction({"authorName": "Second Choice", "motherName": "First Choice"})
        ])
        assert record.author_name == "First Choice"

    def test_blank_values_are_skipped(self):
        """Test blank strings fall through to the next alias."""
        record = ExtractionConsolidator().consolidate([
            _extraction({"motherName": "   ", "authorName": "Ana Souza"})
        ])
        assert record.author_name == "Ana Souza"

    def test_equal_values_do_not_conflict(self):
        """Test repeating the same value is not a conflict."""
        record = ExtractionConsolidator().consolidate([
            _extraction({"childName": "Pedro"}),
            _extraction({"childName": "Pedro"}, minutes=1),
        ])
        assert record.conflicts == []

    def test_extra_aliases(self):
        """Test configured aliases are tried after the built-in ones."""
        consolidator = ExtractionConsolidator(extra_aliases={"author_name": ["nomeDaAutora"]})
        record = consolidator.consolidate([_extraction({"nomeDaAutora": "Joana"})])
        assert record.author_name == "Joana"
        assert consolidator.scalar_aliases["author_name"][-1] == "nomeDaAutora"

    def test_extra_aliases_for_unknown_field_are_ignored(self):
        """Test aliases for a field the record does not have are dropped."""
        consolidator = ExtractionConsolidator(extra_aliases={"favourite_colour": ["cor"]})
        assert "favourite_colour" not in consolidator.scalar_aliases


class TestListMerge:
    """Tests for list union, deduplication and ordering."""

    def test_dedicated_and_entity_sources_are_deduplicated(self):
        """Test the same period from two sources appears once."""
        period = {"startDate": "2019-02-01", "endDate": "2019-12-01"}
        record = ExtractionConsolidator().consolidate([
            _extraction({"ruralPeriods": [period]}, rural_periods=[dict(period)]),
        ])
        assert record.rural_periods == [period]

    def test_first_occurrence_kept(self):
        """Test duplicates keep the entry seen first."""
        record = ExtractionConsolidator().consolidate([
            _extraction({"familyMembers": [{"cpf": "111", "name": "Ana", "relation": "mae"}]}),
            _extraction({"familyMembers": [{"cpf": "111", "name": "Ana Maria"}]}, minutes=1),
        ])
        assert record.family_members == [{"cpf": "111", "name": "Ana", "relation": "mae"}]

    def test_auto_filled_fields_contribute(self):
        """Test list values from auto-filled fields are merged too."""
        extraction = _extraction({"schoolHistory": [{"instituicao": "EE Rural", "periodo_inicio": "2001"}]})
        extraction.auto_filled_fields = {
            "school_history": [{"instituicao": "EM Centro", "periodo_inicio": "2005"}]
        }
        record = ExtractionConsolidator().consolidate([extraction])
        assert [s["instituicao"] for s in record.school_history] == ["EE Rural", "EM Centro"]

    def test_periods_sorted_with_undated_first(self):
        """Test period lists are sorted ascending by start date."""
        record = ExtractionConsolidator().consolidate([
            _extraction({"urbanPeriods": [
                {"startDate": "15/03/2018"},
                {"startDate": "2010-01-01"},
                {"description": "no date"},
            ]}),
        ])
        assert record.urban_periods == [
            {"description": "no date"},
            {"startDate": "2010-01-01"},
            {"startDate": "15/03/2018"},
        ]

    def test_health_declaration_last_write_wins(self):
        """Test later health declarations override earlier keys."""
        record = ExtractionConsolidator().consolidate([
            _extraction({"healthDeclarationUbs": {"ubs": "UBS Norte", "since": "2015"}}),
            _extraction({"healthDeclarationUbs": {"ubs": "UBS Sul"}}, minutes=1),
        ])
        assert record.health_declaration == {"ubs": "UBS Sul", "since": "2015"}


class TestConsolidationProperties:
    """Tests for idempotence, determinism and robustness."""

    def _extractions(self):
        return [
            _extraction({"motherName": "Maria", "ruralPeriods": [{"start": "2020-01-01"}]}),
            _extraction({"motherName": "Mariana", "childName": "Lia"}, minutes=3),
            _extraction({"manualBenefits": [{"nb": "123"}, {"nb": "123"}]}, minutes=7),
        ]

    def test_idempotent(self):
        """Test consolidating the same input twice gives the same record."""
        consolidator = ExtractionConsolidator()
        extractions = self._extractions()
        first = consolidator.consolidate(extractions)
        second = consolidator.consolidate(extractions)
        assert _without_timestamp(first) == _without_timestamp(second)

    def test_input_order_does_not_matter(self):
        """Test the result depends on extraction time, not list order."""
        consolidator = ExtractionConsolidator()
        extractions = self._extractions()
        expected = _without_timestamp(consolidator.consolidate(extractions))

        shuffled = list(extractions)
        random.Random(7).shuffle(shuffled)
        assert _without_timestamp(consolidator.consolidate(shuffled)) == expected

    def test_malformed_input_is_skipped(self):
        """Test malformed values are skipped without raising."""
        broken = ExtractionRecord(
            case_id="case-1",
            entities="not a mapping",
            auto_filled_fields={"ruralPeriods": "2020"},
            rural_periods=["oops", {"start": "2022-01-01"}],
            extracted_at=datetime(2024, 1, 1),
        )
        record = ExtractionConsolidator().consolidate([broken])
        assert record.rural_periods == [{"start": "2022-01-01"}]
        assert record.author_name is None

    def test_empty_input(self):
        """Test an empty extraction list yields an empty record."""
        record = ExtractionConsolidator().consolidate([], case_id="case-9")
        assert record.case_id == "case-9"
        assert record.rural_periods == []
        assert record.consolidated_at is not None


class TestHelpers:
    """Tests for emptiness and date parsing helpers."""

    @pytest.mark.parametrize("value", [None, "", "  ", [], {}, ()])
    def test_is_empty(self, value):
        assert is_empty(value)

    @pytest.mark.parametrize("value", [0, False, "x", [None]])
    def test_is_not_empty(self, value):
        assert not is_empty(value)

    def test_parse_date_formats(self):
        """Test the date formats produced by extractors."""
        assert parse_date("2020-05-04").isoformat() == "2020-05-04"
        assert parse_date("04/05/2020").isoformat() == "2020-05-04"
        assert parse_date("2020-05-04T10:00:00Z").isoformat() == "2020-05-04"
        assert parse_date("soon") is None
        assert parse_date(None) is None
