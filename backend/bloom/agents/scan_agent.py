"""Scan agent: runs one skin scan from raw image to normalized metrics."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Sequence

from bloom.schemas.scan import Metric, OverallHealth, ScanResult
from bloom.services.metrics import MetricNormalizer, ModernSchema, classify_payload
from bloom.services.overall_health import map_overall_health
from bloom.services.pipeline import UploadPipeline
from bloom.services.poller import ResultPoller

logger = logging.getLogger(__name__)


class ScanAgent:
    """Orchestrates the scan: upload pipeline, result polling, normalization.

    Every step runs strictly after the previous one. Errors propagate
    unchanged so the caller gets either a complete result or one error.
    """

    def __init__(
        self,
        pipeline: UploadPipeline,
        poller: ResultPoller,
        normalizer: MetricNormalizer,
    ) -> None:
        self.pipeline = pipeline
        self.poller = poller
        self.normalizer = normalizer

    async def scan(
        self,
        encoded_image: str,
        subject_name: str | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> ScanResult:
        ids = await self.pipeline.run(encoded_image, subject_name)

        logger.info("Step 5: Waiting for results of batch %s.", ids.batch_id)
        raw = await self.poller.wait_for_results(ids.batch_id, cancel_event=cancel_event)

        logger.info("Step 6: Normalizing metrics.")
        metrics, overall = await self.summarise(raw)

        logger.info(
            "Scan complete for subject %s, batch %s: %d metrics.",
            ids.subject_id, ids.batch_id, len(metrics),
        )
        return ScanResult(ids=ids, raw_results=raw, metrics=metrics, overall_health=overall)

    async def summarise(
        self,
        raw_results: Sequence[Mapping[str, Any]] | Mapping[str, Any],
    ) -> tuple[list[Metric], OverallHealth | None]:
        """Metrics plus the overall-health summary for a completed payload."""
        metrics = await self.normalizer.normalize(raw_results)
        schema = classify_payload(raw_results)
        overall = map_overall_health(schema.block) if isinstance(schema, ModernSchema) else None
        return metrics, overall
