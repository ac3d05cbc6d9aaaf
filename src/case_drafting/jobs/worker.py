"""Concurrent pipeline runs over several cases."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING, Dict, Iterable

from ..exceptions import DraftingError
from ..models.enums import PipelineStatus
from ..models.pipeline import PipelineResult

if TYPE_CHECKING:
    from ..pipeline import CorrectionPipeline


logger = logging.getLogger(__name__)


class CaseWorker:
    """
    Runs the pipeline for many cases with bounded parallelism.

    Each case is leased independently by the pipeline; a case that is
    locked elsewhere yields a failed result instead of blocking the batch.
    """

    def __init__(self, pipeline: "CorrectionPipeline", max_concurrent: int = 5):
        self._pipeline = pipeline
        self._max_concurrent = max_concurrent

    def _run_one(self, case_id: str) -> PipelineResult:
        try:
            return self._pipeline.run_to_completion(case_id)
        except DraftingError as e:
            logger.warning(f"Pipeline for case {case_id} did not start: {e}")
            return PipelineResult(
                case_id=case_id,
                status=PipelineStatus.FAILED,
                error=e.message,
                error_type=type(e).__name__,
            )

    def process(self, case_ids: Iterable[str]) -> Dict[str, PipelineResult]:
        """
        Run the pipeline for each case.

        Args:
            case_ids: Cases to process; duplicates are run once.

        Returns:
            Mapping of case id to its terminal result.
        """
        unique = list(dict.fromkeys(case_ids))
        results: Dict[str, PipelineResult] = {}
        if not unique:
            return results

        logger.info(f"Processing {len(unique)} case(s) with up to {self._max_concurrent} worker(s)")
        with ThreadPoolExecutor(max_workers=self._max_concurrent) as executor:
            futures = {executor.submit(self._run_one, case_id): case_id for case_id in unique}
            for future in as_completed(futures):
                case_id = futures[future]
                results[case_id] = future.result()

        failed = sum(1 for r in results.values() if not r.success)
        logger.info(f"Processed {len(results)} case(s), {failed} failed")
        return results
