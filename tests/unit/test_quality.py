"""Unit tests for quality reports, auto-fixes and jurisdiction resolution."""

import pytest

from case_drafting.models.enums import QualityStatus
from case_drafting.models.extraction import CaseRecord
from case_drafting.quality import (
    AutoFixer,
    JurisdictionResolver,
    QualityChecker,
    federal_region_for,
    format_brl,
    minimum_wage_for_year,
    value_of_claim,
)
from case_drafting.quality.placeholders import fill_placeholders, find_placeholder_tokens

from conftest import GOOD_DRAFT


@pytest.fixture
def record():
    return CaseRecord(
        case_id="c1",
        author_name="Maria Silva",
        author_cpf="123.456.789-00",
        child_name="João Silva",
        child_birth_date="2024-03-10",
        land_municipality="Campinas/SP",
    )


class TestMinimumWage:
    """Tests for the value of claim computation."""

    def test_value_of_claim(self):
        assert value_of_claim("2024-03-10") == 5648.0
        assert value_of_claim("10/03/2020") == 4180.0

    def test_unknown_year_uses_default(self):
        assert minimum_wage_for_year(1990) == minimum_wage_for_year(2024)

    def test_unusable_date(self):
        assert value_of_claim(None) is None
        assert value_of_claim("sometime") is None

    @pytest.mark.parametrize("value,expected", [
        (5648.0, "R$ 5.648,00"),
        (998.5, "R$ 998,50"),
        (1234567.891, "R$ 1.234.567,89"),
    ])
    def test_format_brl(self, value, expected):
        assert format_brl(value) == expected


class TestJurisdiction:
    """Tests for jurisdiction resolution."""

    @pytest.mark.parametrize("state,region", [
        ("SP", "TRF3"),
        ("mg", "TRF6"),
        ("RS", "TRF4"),
        ("PE", "TRF5"),
        ("RJ", "TRF2"),
        ("BA", "TRF1"),
        ("XX", "TRF1"),
        (None, "TRF1"),
    ])
    def test_federal_region(self, state, region):
        assert federal_region_for(state) == region

    def test_from_land_municipality(self, record):
        jurisdiction = JurisdictionResolver().resolve(record)
        assert (jurisdiction.city, jurisdiction.state, jurisdiction.federal_region) == (
            "Campinas", "SP", "TRF3"
        )

    def test_from_birth_city_and_state(self):
        record = CaseRecord(case_id="c1", birth_city="Uberaba", birth_state="mg")
        jurisdiction = JurisdictionResolver().resolve(record)
        assert jurisdiction.city == "Uberaba"
        assert jurisdiction.state == "MG"
        assert jurisdiction.federal_region == "TRF6"

    def test_state_from_address(self):
        record = CaseRecord(
            case_id="c1",
            land_municipality="Chapecó",
            author_address="Linha São Roque, s/n, Chapecó - SC, 89800-000",
        )
        jurisdiction = JurisdictionResolver().resolve(record)
        assert jurisdiction.state == "SC"
        assert jurisdiction.federal_region == "TRF4"

    def test_unresolved(self):
        resolver = JurisdictionResolver()
        jurisdiction = resolver.resolve(CaseRecord(case_id="c1"))
        assert jurisdiction.federal_region == "TRF1"
        assert not resolver.is_valid(jurisdiction)


class TestQualityChecker:
    """Tests for the quality verdict."""

    def test_approved(self, record):
        report = QualityChecker().evaluate(record, GOOD_DRAFT)
        assert report.status == QualityStatus.APPROVED
        assert report.addressing_ok and report.data_complete
        assert report.value_of_claim_validated and report.jurisdiction_ok
        assert report.value_of_claim == 5648.0
        assert report.issues == []

    def test_only_value_of_claim_wrong(self, record):
        """Test a wrong value of claim alone is a warning."""
        draft = GOOD_DRAFT.replace("R$ 5.648,00", "R$ 4.000,00")
        report = QualityChecker().evaluate(record, draft)
        assert report.status == QualityStatus.APPROVED_WITH_WARNINGS
        assert not report.value_of_claim_validated

    def test_wrong_city_needs_review(self, record):
        draft = GOOD_DRAFT.replace("CAMPINAS/SP", "SOROCABA/SP")
        report = QualityChecker().evaluate(record, draft)
        assert report.status == QualityStatus.NEEDS_REVIEW
        assert not report.addressing_ok

    def test_missing_fields_and_placeholders(self, record):
        record.author_cpf = None
        report = QualityChecker().evaluate(record, GOOD_DRAFT + "\nNIT: [NIT]")
        assert report.status == QualityStatus.NEEDS_REVIEW
        assert not report.data_complete
        assert report.missing_fields == ["author_cpf", "NIT"]

    def test_configured_required_fields(self, record):
        checker = QualityChecker(required_fields=["author_name", "nit"])
        report = checker.evaluate(record, GOOD_DRAFT)
        assert report.missing_fields == ["nit"]


class TestAutoFixer:
    """Tests for deterministic corrections."""

    def test_fixes_addressing_and_value(self, record):
        """Test a draft without header and with a wrong value is repaired."""
        draft = "Petição inicial.\n\nDá-se à causa o valor de R$ 1.000,00.\n"
        checker = QualityChecker()
        report = checker.evaluate(record, draft)
        assert report.status == QualityStatus.NEEDS_REVIEW

        result = AutoFixer().fix(record, draft, report)

        assert result.changed
        assert result.content.startswith("EXCELENTÍSSIMO SENHOR DOUTOR JUIZ FEDERAL")
        assert "R$ 5.648,00" in result.content
        assert "R$ 1.000,00" not in result.content
        assert {c.module for c in result.corrections} == {"addressing", "value_of_claim"}
        assert checker.evaluate(record, result.content).status == QualityStatus.APPROVED

    def test_fills_placeholders(self, record):
        draft = GOOD_DRAFT + "\nAutora: [AUTOR_NOME], pai [PAI_NOME]"
        report = QualityChecker().evaluate(record, draft)
        result = AutoFixer().fix(record, draft, report)

        assert "Autora: Maria Silva" in result.content
        assert "[PAI_NOME]" in result.content
        fill = next(c for c in result.corrections if c.module == "data_complete")
        assert fill.summary == {"filled": ["AUTOR_NOME"], "unresolved": ["PAI_NOME"]}

    def test_unresolved_jurisdiction_is_not_applied(self):
        record = CaseRecord(case_id="c1", child_birth_date="2024-01-01")
        draft = "Texto"
        report = QualityChecker().evaluate(record, draft)
        result = AutoFixer().fix(record, draft, report)
        jurisdiction = next(c for c in result.corrections if c.module == "jurisdiction")
        assert not jurisdiction.auto_applied
        assert not result.content.startswith("EXCELENTÍSSIMO")


class TestPlaceholders:
    """Tests for placeholder detection and filling."""

    def test_tokens(self):
        assert find_placeholder_tokens("[AUTOR_NOME] {{ cpf }} [AUTOR_NOME]") == ["AUTOR_NOME", "CPF"]

    def test_fill(self, record):
        text, filled, unresolved = fill_placeholders("{{cpf}} / [FILHO_NOME] / [ZZZ]", record)
        assert text == "123.456.789-00 / João Silva / [ZZZ]"
        assert filled == ["CPF", "FILHO_NOME"]
        assert unresolved == ["ZZZ"]
