"""Correction pipeline for case drafts.

This module provides the orchestration logic that takes a consolidated
case record through quality analysis, generation, critique, correction,
regional and appellate adaptation up to a final version, persisting
every step so an interrupted run can resume where it stopped.
"""

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from .audit.audit_logger import AuditLogger
from .config.models import PipelineSettings
from .exceptions import (
    DraftingError,
    FindingNotFoundError,
    LeaseUnavailableError,
    PersistenceError,
    StaleDataError,
    ValidationError,
)
from .interfaces.audit import AuditEventType, IAuditLogger
from .interfaces.provider import ICorrectionProvider
from .models.correction import (
    BatchApplication,
    CorrectionHistoryEntry,
    CritiqueState,
    Finding,
    FindingApplication,
)
from .models.draft import DraftFlags, DraftVersion, LatestDraft
from .models.enums import (
    CaseStatus,
    CorrectionType,
    PipelineStage,
    PipelineStatus,
    StageStatus,
)
from .models.extraction import CaseRecord
from .models.pipeline import PipelineResult, PipelineStageState, StageRecord
from .models.quality import Jurisdiction, QualityReport
from .persistence.case_store import CaseStore
from .persistence.database import DatabaseManager
from .persistence.lease import CaseLeaseManager
from .persistence.version_store import VersionStore
from .providers.parsing import validate_critique, validate_text
from .quality.auto_fixer import AutoFixer
from .quality.jurisdiction import JurisdictionResolver
from .quality.quality_checker import QualityChecker
from .staleness import DraftIntegrityChecker, StalenessDetector, UpstreamState
from .utils import utcnow


logger = logging.getLogger(__name__)

PipelineEvent = Union[PipelineStageState, PipelineResult]


@dataclass
class PipelineContext:
    """Working state of one pipeline run."""
    case_id: str
    run_id: str
    record: CaseRecord
    jurisdiction: Jurisdiction
    holder: Optional[str] = None
    case_updated_at: Optional[datetime] = None
    derived_at: Optional[datetime] = None
    draft: Optional[DraftVersion] = None
    report: Optional[QualityReport] = None
    critique: Optional[CritiqueState] = None
    corrections: int = 0


@dataclass
class StageOutcome:
    """What a stage handler hands back to the run loop."""
    message: str
    payload: Dict[str, Any] = field(default_factory=dict)


class CorrectionPipeline:
    """
    Sequential drafting and correction workflow.

    Stages run strictly in order. Each completed stage is recorded so a
    later run reuses results that are still current and re-executes from
    the first stale stage. Every run and every correction request holds
    the per-case lease and renews it before each stage, batch and draft
    version; an operation whose lease was taken over stops writing.
    """

    def __init__(
        self,
        provider: ICorrectionProvider,
        db_manager: DatabaseManager,
        settings: Optional[PipelineSettings] = None,
        case_store: Optional[CaseStore] = None,
        version_store: Optional[VersionStore] = None,
        audit_logger: Optional[IAuditLogger] = None,
        lease_manager: Optional[CaseLeaseManager] = None,
        staleness_detector: Optional[StalenessDetector] = None,
        quality_checker: Optional[QualityChecker] = None,
        auto_fixer: Optional[AutoFixer] = None,
    ):
        """
        Initialize the correction pipeline.

        Args:
            provider: Text generation service.
            db_manager: Database holding every case table.
            settings: Pipeline settings (defaults if not provided).
            case_store: Optional case store (created if not provided).
            version_store: Optional version store (created if not provided).
            audit_logger: Optional audit logger (created if not provided).
            lease_manager: Optional lease manager (created if not provided).
            staleness_detector: Optional staleness detector (created if not provided).
            quality_checker: Optional quality checker (created if not provided).
            auto_fixer: Optional auto-fixer (created if not provided).
        """
        self.settings = settings or PipelineSettings()
        self._provider = provider
        self._db_manager = db_manager
        self._cases = case_store or CaseStore(db_manager)
        self._versions = version_store or VersionStore(db_manager)
        self._audit_logger = audit_logger or AuditLogger(db_manager=db_manager)
        self._lease = lease_manager or CaseLeaseManager(
            db_manager,
            ttl=self.settings.lease_ttl,
            acquire_timeout=self.settings.lease_acquire_timeout,
        )
        self._staleness = staleness_detector or StalenessDetector(
            DraftIntegrityChecker(
                placeholder_patterns=self.settings.placeholder_patterns,
                invalid_literals=self.settings.invalid_literals,
            )
        )
        self._resolver = JurisdictionResolver()
        self._checker = quality_checker or QualityChecker(
            resolver=self._resolver,
            required_fields=self.settings.required_fields,
        )
        self._fixer = auto_fixer or AutoFixer(resolver=self._resolver)

        self._handlers: Dict[PipelineStage, Callable[[PipelineContext], StageOutcome]] = {
            PipelineStage.QUALITY_ANALYSIS: self._quality_analysis,
            PipelineStage.AUTO_FIX: self._auto_fix,
            PipelineStage.DRAFT_GENERATION: self._draft_generation,
            PipelineStage.CRITIC_ANALYSIS: self._critic_analysis,
            PipelineStage.CORRECTION_APPLICATION: self._correction_application,
            PipelineStage.REGIONAL_ADAPTATION: self._regional_adaptation,
            PipelineStage.APPELLATE_ANALYSIS: self._appellate_analysis,
            PipelineStage.FINALIZATION: self._finalization,
        }

    # =========================================================================
    # Runs
    # =========================================================================

    def run(self, case_id: str) -> Iterator[PipelineEvent]:
        """
        Run the pipeline for a case.

        Yields a snapshot of each stage state as it changes and finally a
        PipelineResult. The case lease is held until the generator is
        exhausted or closed.

        Raises:
            LeaseUnavailableError: On the first iteration, if another
                operation holds the case.
        """
        with self._lease.hold(case_id) as holder:
            yield from self._run_locked(case_id, holder)

    def run_to_completion(self, case_id: str) -> PipelineResult:
        """Run the pipeline and return only its terminal result."""
        result = None
        for event in self.run(case_id):
            if isinstance(event, PipelineResult):
                result = event
        return result

    def _run_locked(self, case_id: str, holder: str) -> Iterator[PipelineEvent]:
        record = self._cases.get_case_record(case_id)
        if record is None:
            logger.warning(f"Case {case_id} has no consolidated record; running with empty data")
            record = CaseRecord(case_id=case_id)
        case_updated_at = self._cases.get_case_updated_at(case_id)
        previous = self._cases.get_stage_records(case_id)
        latest = self._versions.get_latest(case_id)

        start_index, run_id = self._plan_reentry(case_id, previous, latest, case_updated_at)
        ctx = PipelineContext(
            case_id=case_id,
            run_id=run_id,
            record=record,
            jurisdiction=self._resolver.resolve(record),
            holder=holder,
            case_updated_at=case_updated_at,
            derived_at=self._versions.last_regenerated_at(case_id),
            draft=latest,
        )
        states =[PipelineStageState(name=stage) for stage in PipelineStage.ordered()]
        logger.info(
            f"Starting pipeline run {run_id} for case {case_id} "
            f"at stage {states[start_index].name.value if start_index < len(states) else 'none'}"
        )

        for index, state in enumerate(states):
            stage = state.name

            if index < start_index:
                self._restore_from(ctx, previous[stage])
                reused_at = previous[stage].completed_at or previous[stage].analyzed_at
                state.mark_completed(f"Reused result from {reused_at.isoformat()}")
                self._audit_logger.record(
                    AuditEventType.STAGE_REUSED, case_id=case_id, run_id=run_id, stage=stage.value
                )
                yield state.snapshot()
                continue

            state.mark_running()
            self._audit_logger.record(
                AuditEventType.STAGE_STARTED, case_id=case_id, run_id=run_id, stage=stage.value
            )
            yield state.snapshot()

            analyzed_at = utcnow()
            input_draft_id = ctx.draft.id if ctx.draft else None
            try:
                self._renew_lease(ctx)
                outcome = self._handlers[stage](ctx)
                self._renew_lease(ctx)
                self._save_stage(ctx, stage, StageStatus.COMPLETED, analyzed_at, input_draft_id,
                                 payload=outcome.payload, message=outcome.message)
            except DraftingError as e:
                logger.error(f"Stage {stage.value} failed for case {case_id}: {e}")
                yield from self._fail(ctx, states, state, analyzed_at, input_draft_id,
                                      e.message, type(e).__name__,
                                      save_record=not isinstance(e, LeaseUnavailableError))
                return
            except Exception as e:
                logger.exception(f"Unexpected error in stage {stage.value} for case {case_id}")
                yield from self._fail(ctx, states, state, analyzed_at, input_draft_id,
                                      str(e), type(e).__name__)
                return

            state.mark_completed(outcome.message)
            logger.info(f"Stage {stage.value} completed for case {case_id}: {outcome.message}")
            self._audit_logger.record(
                AuditEventType.STAGE_COMPLETED,
                case_id=case_id,
                run_id=run_id,
                stage=stage.value,
                message=outcome.message,
            )
            yield state.snapshot()

        self._audit_logger.record(
            AuditEventType.PIPELINE_COMPLETED,
            case_id=case_id,
            run_id=run_id,
            total_corrections=ctx.corrections,
        )
        logger.info(f"Pipeline run {run_id} completed for case {case_id}")
        yield PipelineResult(
            case_id=case_id,
            status=PipelineStatus.COMPLETED,
            run_id=run_id,
            stages=[s.snapshot() for s in states],
            total_corrections=ctx.corrections,
        )

    def _fail(
        self,
        ctx: PipelineContext,
        states: List[PipelineStageState],
        state: PipelineStageState,
        analyzed_at: datetime,
        input_draft_id: Optional[str],
        message: str,
        error_type: str,
        save_record: bool = True,
    ) -> Iterator[PipelineEvent]:
        """
        Record a failed stage and end the run.

        A run that lost its lease leaves the stage record to the new holder.
        """
        state.mark_failed(message)
        try:
            if save_record:
                self._save_stage(ctx, state.name, StageStatus.FAILED, analyzed_at,
                                 input_draft_id, message=message)
            self._audit_logger.record(
                AuditEventType.STAGE_FAILED,
                case_id=ctx.case_id,
                run_id=ctx.run_id,
                stage=state.name.value,
                error=message,
                error_type=error_type,
            )
            self._audit_logger.record(
                AuditEventType.PIPELINE_FAILED,
                case_id=ctx.case_id,
                run_id=ctx.run_id,
                failed_stage=state.name.value,
            )
        except PersistenceError as e:
            logger.error(f"Could not record failure of {state.name.value} for case {ctx.case_id}: {e}")

        yield state.snapshot()
        yield PipelineResult(
            case_id=ctx.case_id,
            status=PipelineStatus.FAILED,
            run_id=ctx.run_id,
            failed_stage=state.name,
            error=message,
            error_type=error_type,
            stages=[s.snapshot() for s in states],
            total_corrections=ctx.corrections,
        )

    # =========================================================================
    # Re-entry
    # =========================================================================

    def _plan_reentry(
        self,
        case_id: str,
        previous: Dict[PipelineStage, StageRecord],
        latest: Optional[DraftVersion],
        case_updated_at: Optional[datetime],
    ) -> Tuple[int, str]:
        """
        Find the first stage that must execute.

        Only the leading run of completed stages of the previous run can
        be reused. Returns the index of the first stage to execute and the
        run id to record.
        """
        order = PipelineStage.ordered()
        first = previous.get(order[0])
        if first is None or not first.is_completed:
            return 0, str(uuid.uuid4())

        prefix: List[StageRecord] = []
        for stage in order:
            record = previous.get(stage)
            if record is None or not record.is_completed or record.run_id != first.run_id:
                break
            prefix.append(record)

        start = len(prefix)
        for index, record in enumerate(prefix):
            chained = frozenset(r.output_draft_id for r in prefix[index + 1:] if r.output_draft_id)
            upstream = UpstreamState(
                latest_draft=latest,
                case_updated_at=case_updated_at,
                chained_draft_ids=chained,
            )
            if self._staleness.is_stale(record, upstream):
                start = index
                break

        if latest is not None and not self._staleness.integrity_checker.is_valid(latest.content):
            generation = order.index(PipelineStage.DRAFT_GENERATION)
            if start > generation:
                logger.info(f"Latest draft of case {case_id} fails integrity checks; regenerating")
                start = generation

        if start == 0:
            return 0, str(uuid.uuid4())
        logger.info(f"Case {case_id}: reusing {start} stage(s) of run {first.run_id}")
        return start, first.run_id

    def _restore_from(self, ctx: PipelineContext, record: StageRecord) -> None:
        """Rebuild run state from a reused stage record."""
        if record.stage == PipelineStage.QUALITY_ANALYSIS:
            ctx.report = self._cases.get_quality_report(ctx.case_id)
        elif record.stage == PipelineStage.CRITIC_ANALYSIS:
            ctx.critique = CritiqueState.from_dict(record.payload.get("critique"))

    # =========================================================================
    # Stages
    # =========================================================================

    def _quality_analysis(self, ctx: PipelineContext) -> StageOutcome:
        payload = {"jurisdiction": ctx.jurisdiction.to_dict()}
        if ctx.draft is None:
            ctx.report = None
            self._log_history(ctx, CorrectionType.QUALITY_ANALYSIS, module="quality_report",
                              auto_applied=False, changes_summary={"skipped": True})
            return StageOutcome("No draft to analyze yet", payload)

        ctx.report = self._evaluate(ctx)
        self._log_history(
            ctx,
            CorrectionType.QUALITY_ANALYSIS,
            module="quality_report",
            auto_applied=False,
            changes_summary=ctx.report.to_dict(),
        )
        return StageOutcome(f"Quality report: {ctx.report.status.value}", payload)

    def _auto_fix(self, ctx: PipelineContext) -> StageOutcome:
        if ctx.draft is None or ctx.report is None or ctx.report.is_approved:
            self._log_history(ctx, CorrectionType.QUALITY_REPORT, module="auto_fix",
                              auto_applied=False, changes_summary={"skipped": True})
            return StageOutcome("No corrections needed")

        result = self._fixer.fix(ctx.record, ctx.draft.content, ctx.report, ctx.jurisdiction)
        applied = 0
        for correction in result.corrections:
            self._log_history(
                ctx,
                CorrectionType.QUALITY_REPORT,
                module=correction.module,
                before=correction.before,
                after=correction.after,
                confidence=correction.confidence,
                auto_applied=correction.auto_applied,
                changes_summary={
                    "issue": correction.issue,
                    "action": correction.action,
                    **correction.summary,
                },
            )
            if correction.auto_applied:
                applied += 1

        if result.content != ctx.draft.content:
            self._append_version(ctx, result.content, description="Quality auto-fix")
        ctx.report = self._evaluate(ctx)
        ctx.corrections += applied
        return StageOutcome(
            f"Applied {applied} automatic correction(s); report {ctx.report.status.value}",
            {"applied": applied},
        )

    def _draft_generation(self, ctx: PipelineContext) -> StageOutcome:
        replaced: List[str] = []
        if ctx.draft is not None:
            try:
                self._staleness.check_draft(ctx.draft, ctx.case_updated_at, ctx.derived_at)
            except StaleDataError as e:
                logger.info(f"Regenerating draft of case {ctx.case_id}: {e.message}")
                replaced = e.details["problems"]
            else:
                self._log_history(ctx, CorrectionType.GENERATION, module="generation",
                                  auto_applied=False, changes_summary={"retained": ctx.draft.id})
                return StageOutcome("Existing draft retained")

        missing = ctx.record.missing_fields(self.settings.required_fields)
        if missing:
            raise ValidationError(
                f"Missing required case data: {', '.join(missing)}",
                case_id=ctx.case_id,
                missing_fields=missing,
            )

        before = ctx.draft.content if ctx.draft else None
        text = validate_text(
            self._provider.generate_draft(ctx.record, self._provider_context(ctx)),
            "Draft generation",
        )
        self._append_version(ctx, text, full_regeneration=True, description="Generated draft")
        ctx.derived_at = ctx.draft.generated_at
        self._log_history(
            ctx,
            CorrectionType.GENERATION,
            module="generation",
            before=before,
            after=text,
            changes_summary={"length": len(text), "replaced_because": replaced},
        )
        return StageOutcome(f"Draft generated ({len(text)} characters)")

    def _critic_analysis(self, ctx: PipelineContext) -> StageOutcome:
        ctx.critique = self._critique(ctx.case_id, ctx.draft, self._provider_context(ctx))
        self._log_history(
            ctx,
            CorrectionType.CRITIQUE,
            module="critic",
            auto_applied=False,
            changes_summary={
                "finding_count": len(ctx.critique.pending),
                "risk_score": ctx.critique.risk_score,
                "finding_ids": [f.id for f in ctx.critique.pending],
            },
        )
        return StageOutcome(
            f"{len(ctx.critique.pending)} finding(s), rejection risk {ctx.critique.risk_score}%",
            {"critique": ctx.critique.to_dict()},
        )

    def _correction_application(self, ctx: PipelineContext) -> StageOutcome:
        if ctx.critique is None or not ctx.critique.pending:
            self._log_history(ctx, CorrectionType.JUDGE, module="judge",
                              auto_applied=False, changes_summary={"skipped": True})
            return StageOutcome("No corrections needed")

        findings = list(ctx.critique.pending)
        self._apply_in_batches(ctx, findings)
        ctx.corrections += len(findings)
        risk_after = self._reduced_risk(ctx.critique.risk_score, findings, remaining=0)
        return StageOutcome(
            f"Applied {len(findings)} correction(s) in "
            f"{math.ceil(len(findings) / self.settings.batch_size)} batch(es)",
            {"applied": [f.id for f in findings], "risk_score": risk_after},
        )

    def _regional_adaptation(self, ctx: PipelineContext) -> StageOutcome:
        adaptation = self._provider.adapt_regional(ctx.draft.content, ctx.jurisdiction)
        validate_text(adaptation.adapted_draft, "Regional adaptation")
        payload = {
            "federal_region": ctx.jurisdiction.federal_region,
            "suggestions": list(adaptation.suggestions),
        }
        if not adaptation.suggestions:
            self._log_history(ctx, CorrectionType.REGIONAL, module="regional",
                              auto_applied=False, changes_summary=payload)
            return StageOutcome("No regional adaptations suggested", payload)

        before = ctx.draft.content
        self._append_version(
            ctx,
            adaptation.adapted_draft,
            set_flags=DraftFlags(regional_adaptations_applied=True),
            description=f"Regional adaptation ({ctx.jurisdiction.federal_region})",
        )
        self._log_history(ctx, CorrectionType.REGIONAL, module="regional", before=before,
                          after=adaptation.adapted_draft, confidence=85, changes_summary=payload)
        ctx.corrections += 1
        return StageOutcome(
            f"Applied {len(adaptation.suggestions)} regional adaptation(s) for "
            f"{ctx.jurisdiction.federal_region}",
            payload,
        )

    def _appellate_analysis(self, ctx: PipelineContext) -> StageOutcome:
        adaptation = self._provider.adapt_appellate(ctx.draft.content, self._provider_context(ctx))
        validate_text(adaptation.adapted_draft, "Appellate adaptation")
        payload = {
            "suggestions": list(adaptation.suggestions),
            "appeal_risk_estimate": adaptation.appeal_risk_estimate,
        }
        if not adaptation.suggestions:
            self._log_history(ctx, CorrectionType.APPELLATE, module="appellate",
                              auto_applied=False, changes_summary=payload)
            return StageOutcome("No appellate adaptations suggested", payload)

        before = ctx.draft.content
        self._append_version(
            ctx,
            adaptation.adapted_draft,
            set_flags=DraftFlags(appellate_adaptations_applied=True),
            description="Appellate adaptation",
        )
        self._log_history(ctx, CorrectionType.APPELLATE, module="appellate", before=before,
                          after=adaptation.adapted_draft, changes_summary=payload)
        ctx.corrections += 1
        return StageOutcome(
            f"Applied {len(adaptation.suggestions)} appellate adaptation(s)", payload
        )

    def _finalization(self, ctx: PipelineContext) -> StageOutcome:
        self._append_version(
            ctx,
            ctx.draft.content,
            set_flags=DraftFlags(final_version=True),
            description="Final version",
        )
        ctx.report = self._evaluate(ctx)
        self._cases.set_case_status(ctx.case_id, CaseStatus.DRAFTED)
        self._log_history(
            ctx,
            CorrectionType.FINALIZATION,
            module="finalization",
            auto_applied=False,
            changes_summary={
                "version_id": ctx.draft.id,
                "quality_status": ctx.report.status.value,
                "flags": ctx.draft.flags.to_dict(),
            },
        )
        return StageOutcome(
            f"Final version stored; quality {ctx.report.status.value}",
            {"version_id": ctx.draft.id},
        )

    # =========================================================================
    # Finding application
    # =========================================================================

    def apply_finding(self, case_id: str, finding_id: str) -> FindingApplication:
        """
        Resolve a single pending finding.

        The risk score drops by the finding's severity delta, floored at
        zero, and only that finding leaves the pending set. A critique that
        no longer matches the current draft is re-run first.

        Raises:
            FindingNotFoundError: If the id is not pending.
            LeaseUnavailableError: If the case is locked.
        """
        with self._lease.hold(case_id) as holder:
            ctx = self._correction_context(case_id, holder)
            finding = ctx.critique.find(finding_id)
            if finding is None:
                raise FindingNotFoundError(
                    f"Finding {finding_id} is not pending",
                    case_id=case_id,
                    finding_ids=[finding_id],
                )

            self._apply_in_batches(ctx, [finding])
            ctx.report = self._evaluate(ctx)
            self._audit_logger.record(
                AuditEventType.FINDING_APPLIED,
                case_id=case_id,
                run_id=ctx.run_id,
                finding_ids=[finding_id],
                risk_score=ctx.critique.risk_score,
            )
            return FindingApplication(
                updated_draft=ctx.draft.content,
                updated_risk_score=ctx.critique.risk_score,
                remaining_findings=list(ctx.critique.pending),
            )

    def apply_findings_batch(self, case_id: str, finding_ids: List[str]) -> BatchApplication:
        """
        Resolve a selection of pending findings in chained batches.

        Findings are applied in pending order. Each batch is stored as soon
        as it succeeds, so a failure in a later batch keeps earlier ones.

        Raises:
            FindingNotFoundError: If any id is not pending; nothing is applied.
            LeaseUnavailableError: If the case is locked.
        """
        with self._lease.hold(case_id) as holder:
            ctx = self._correction_context(case_id, holder)
            pending_ids = {f.id for f in ctx.critique.pending}
            unknown = [fid for fid in finding_ids if fid not in pending_ids]
            if unknown:
                raise FindingNotFoundError(
                    f"Findings not pending: {', '.join(unknown)}",
                    case_id=case_id,
                    finding_ids=unknown,
                )

            selected = set(finding_ids)
            findings = [f for f in ctx.critique.pending if f.id in selected]
            if findings:
                self._apply_in_batches(ctx, findings)
                ctx.report = self._evaluate(ctx)
            self._audit_logger.record(
                AuditEventType.FINDING_APPLIED,
                case_id=case_id,
                run_id=ctx.run_id,
                finding_ids=[f.id for f in findings],
                risk_score=ctx.critique.risk_score,
            )
            return BatchApplication(
                updated_draft=ctx.draft.content,
                updated_risk_score=ctx.critique.risk_score,
            )

    def _correction_context(self, case_id: str, holder: str) -> PipelineContext:
        """Context for correction requests, with a critique of the current draft."""
        latest = self._versions.get_latest(case_id)
        if latest is None:
            raise ValidationError("Case has no draft to correct", case_id=case_id)
        record = self._cases.get_case_record(case_id) or CaseRecord(case_id=case_id)
        case_updated_at = self._cases.get_case_updated_at(case_id)
        critic = self._cases.get_stage_record(case_id, PipelineStage.CRITIC_ANALYSIS)

        ctx = PipelineContext(
            case_id=case_id,
            run_id=critic.run_id if critic else str(uuid.uuid4()),
            record=record,
            jurisdiction=self._resolver.resolve(record),
            holder=holder,
            case_updated_at=case_updated_at,
            draft=latest,
        )
        state = CritiqueState.from_dict(critic.payload.get("critique")) if critic else None

        if (
            critic is None
            or not critic.is_completed
            or (case_updated_at and case_updated_at > critic.analyzed_at)
            or state.working_draft_id != latest.id
        ):
            logger.info(f"Critique of case {case_id} is stale; analyzing the current draft again")
            analyzed_at = utcnow()
            ctx.critique = self._critique(case_id, latest, self._provider_context(ctx))
            self._log_history(
                ctx,
                CorrectionType.CRITIQUE,
                module="critic",
                auto_applied=False,
                changes_summary={
                    "finding_count": len(ctx.critique.pending),
                    "risk_score": ctx.critique.risk_score,
                    "reanalysis": True,
                },
            )
            self._save_critique(ctx, analyzed_at=analyzed_at)
        else:
            ctx.critique = state
        return ctx

    def _apply_in_batches(self, ctx: PipelineContext, findings: List[Finding]) -> None:
        """
        Apply findings in chained batches of batch_size.

        Each batch reads the previous batch's output and is persisted
        before the next one starts. The critique state in ctx is updated
        after every batch.
        """
        size = self.settings.batch_size
        total = len(findings)
        for start in range(0, total, size):
            batch = findings[start:start + size]
            self._renew_lease(ctx)
            before = ctx.draft.content
            text = validate_text(
                self._provider.apply_corrections(before, batch), "Correction application"
            )
            self._append_version(
                ctx,
                text,
                set_flags=DraftFlags(corrected_by_judge=True),
                description=f"Judge corrections {start + 1}-{start + len(batch)} of {total}",
            )

            state = ctx.critique
            applied_ids = {f.id for f in batch}
            state.pending = [f for f in state.pending if f.id not in applied_ids]
            state.risk_score = self._reduced_risk(state.risk_score, batch, len(state.pending))
            state.working_draft_id = ctx.draft.id

            self._log_history(
                ctx,
                CorrectionType.JUDGE,
                module="judge",
                before=before,
                after=text,
                changes_summary={
                    "finding_ids": [f.id for f in batch],
                    "severities": [f.severity.value for f in batch],
                    "risk_score": state.risk_score,
                    "batch": start // size + 1,
                },
            )
            self._save_critique(ctx)
            logger.info(
                f"Applied batch {start // size + 1} ({len(batch)} finding(s)) to case "
                f"{ctx.case_id}; risk now {state.risk_score}%"
            )

    def _reduced_risk(self, risk: int, findings: List[Finding], remaining: int) -> int:
        if remaining == 0:
            return 0
        delta = sum(self.settings.severity_delta(f.severity) for f in findings)
        return max(0, risk - delta)

    # =========================================================================
    # Latest draft
    # =========================================================================

    def get_latest_draft(self, case_id: str) -> Optional[LatestDraft]:
        """Current draft with a staleness verdict, or None if there is none."""
        latest = self._versions.get_latest(case_id)
        if latest is None:
            return None
        problems = self._staleness.draft_problems(
            latest,
            self._cases.get_case_updated_at(case_id),
            derived_at=self._versions.last_regenerated_at(case_id),
        )
        return LatestDraft(
            content=latest.content,
            flags=latest.flags,
            is_stale=bool(problems),
            version_id=latest.id,
            generated_at=latest.generated_at,
            problems=problems,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _renew_lease(self, ctx: PipelineContext) -> None:
        """
        Extend the case lease before the next write.

        Raises:
            LeaseUnavailableError: If another operation took the lease over.
        """
        if ctx.holder is None:
            return
        if not self._lease.renew(ctx.case_id, ctx.holder):
            logger.error(f"Lease on case {ctx.case_id} was taken over; stopping")
            raise LeaseUnavailableError(
                "Lease was taken over by another operation",
                case_id=ctx.case_id,
                holder=ctx.holder,
            )

    def _critique(
        self, case_id: str, draft: DraftVersion, context: Dict[str, Any]
    ) -> CritiqueState:
        result = validate_critique(self._provider.critique(draft.content, context))
        logger.info(
            f"Critique of case {case_id}: {len(result.findings)} finding(s), "
            f"risk {result.risk_score}%"
        )
        return CritiqueState(
            pending=list(result.findings),
            risk_score=result.risk_score,
            strengths=list(result.strengths),
            weaknesses=list(result.weaknesses),
            working_draft_id=draft.id,
        )

    def _save_critique(self, ctx: PipelineContext, analyzed_at: Optional[datetime] = None) -> None:
        """Store the critique state in the CriticAnalysis record."""
        existing = self._cases.get_stage_record(ctx.case_id, PipelineStage.CRITIC_ANALYSIS)
        record = StageRecord(
            case_id=ctx.case_id,
            stage=PipelineStage.CRITIC_ANALYSIS,
            run_id=ctx.run_id,
            status=StageStatus.COMPLETED,
            analyzed_at=analyzed_at or (existing.analyzed_at if existing else utcnow()),
            completed_at=utcnow(),
            input_draft_id=existing.input_draft_id if existing and not analyzed_at else ctx.draft.id,
            output_draft_id=ctx.draft.id,
            output_generated_at=ctx.draft.generated_at,
            payload={"critique": ctx.critique.to_dict()},
            message=f"{len(ctx.critique.pending)} finding(s) pending",
        )
        self._cases.save_stage_record(record)

    def _save_stage(
        self,
        ctx: PipelineContext,
        stage: PipelineStage,
        status: StageStatus,
        analyzed_at: datetime,
        input_draft_id: Optional[str],
        payload: Optional[Dict[str, Any]] = None,
        message: Optional[str] = None,
    ) -> None:
        completed = status == StageStatus.COMPLETED
        self._cases.save_stage_record(StageRecord(
            case_id=ctx.case_id,
            stage=stage,
            run_id=ctx.run_id,
            status=status,
            analyzed_at=analyzed_at,
            completed_at=utcnow() if completed else None,
            input_draft_id=input_draft_id,
            output_draft_id=ctx.draft.id if completed and ctx.draft else None,
            output_generated_at=ctx.draft.generated_at if completed and ctx.draft else None,
            payload=payload or {},
            message=message,
        ))

    def _append_version(
        self,
        ctx: PipelineContext,
        content: str,
        set_flags: Optional[DraftFlags] = None,
        full_regeneration: bool = False,
        description: Optional[str] = None,
    ) -> DraftVersion:
        self._renew_lease(ctx)
        version = self._versions.append(
            ctx.case_id,
            content,
            set_flags=set_flags,
            full_regeneration=full_regeneration,
            description=description,
        )
        ctx.draft = version
        self._audit_logger.record(
            AuditEventType.DRAFT_VERSION_CREATED,
            case_id=ctx.case_id,
            run_id=ctx.run_id,
            version_id=version.id,
            description=description,
            full_regeneration=full_regeneration,
        )
        return version

    def _evaluate(self, ctx: PipelineContext) -> QualityReport:
        report = self._checker.evaluate(ctx.record, ctx.draft.content, ctx.jurisdiction)
        self._cases.save_quality_report(report)
        return report

    def _log_history(
        self,
        ctx: PipelineContext,
        correction_type: CorrectionType,
        module: str,
        before: Optional[str] = None,
        after: Optional[str] = None,
        confidence: Optional[int] = None,
        auto_applied: bool = True,
        changes_summary: Optional[Dict[str, Any]] = None,
    ) -> None:
        summary = dict(changes_summary or {})
        if before is not None and after is not None:
            diff = VersionStore.diff(before, after)
            summary.setdefault("added_chars", diff["added_chars"])
            summary.setdefault("removed_chars", diff["removed_chars"])
        summary.setdefault("run_id", ctx.run_id)
        self._audit_logger.log_correction(CorrectionHistoryEntry(
            case_id=ctx.case_id,
            correction_type=correction_type,
            module=module,
            before_content=before,
            after_content=after,
            confidence=confidence,
            auto_applied=auto_applied,
            changes_summary=summary,
            timestamp=utcnow(),
        ))

    def _provider_context(self, ctx: PipelineContext) -> Dict[str, Any]:
        """Structured context sent along with every provider call."""
        return {
            "caseId": ctx.case_id,
            "jurisdiction": ctx.jurisdiction.to_dict(),
            "hasRa": ctx.record.has_ra,
            "caseRecord": ctx.record.to_dict(),
            "qualityReport": ctx.report.to_dict() if ctx.report else None,
        }
