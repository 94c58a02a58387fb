"""In-memory threat feed with lifecycle management for simulated incidents."""
from __future__ import annotations

import asyncio
import copy
import logging
import random
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from .recommendations import RecommendationEngine
from .registry import KeyedRegistry
from .simulator import (
    STATUS_BLOCKED,
    STATUS_ESCALATED,
    STATUS_RESOLVED,
    EvidenceSynthesizer,
    SimulatedThreatRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_ACTOR = "System"
DEFAULT_ESCALATION_TARGET = "Security Team"
DEFAULT_ESCALATION_REASON = "High severity threat requiring attention"


class ThreatFeed:
    """Active registry plus append-only history of simulated threats.

    Lifecycle operations on an unknown or already retired threat id return
    ``None``. Blocking and resolving move a record out of the active
    registry; it stays reachable through :meth:`history_lookup`.
    """

    def __init__(
        self,
        synthesizer: Optional[EvidenceSynthesizer] = None,
        *,
        recommender: Optional[RecommendationEngine] = None,
        auto_block_threshold: float = 30,
        warning_threshold: float = 60,
        interval: float = 15.0,
        simulation_probability: float = 0.3,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._synthesizer = synthesizer or EvidenceSynthesizer()
        self._recommender = recommender or RecommendationEngine()
        self._auto_block_threshold = auto_block_threshold
        self._warning_threshold = warning_threshold
        self._interval = interval
        self._simulation_probability = max(0.0, min(1.0, simulation_probability))
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(tz=timezone.utc))
        self._active: KeyedRegistry[SimulatedThreatRecord] = KeyedRegistry()
        self._history_lock = threading.Lock()
        self._history: List[SimulatedThreatRecord] = []
        self._history_index: Dict[str, SimulatedThreatRecord] = {}

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "ThreatFeed":
        return cls(
            auto_block_threshold=settings.auto_block_threshold,
            warning_threshold=settings.warning_threshold,
            interval=settings.simulation_interval,
            simulation_probability=settings.simulation_probability,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------
    def generate(self, threat_type: Optional[str] = None) -> SimulatedThreatRecord:
        record = self._synthesizer.generate(threat_type)
        record.recommendations = (self._recommender.recommend(record.risk_level),)
        self._active.insert(record.threat_id, record)
        with self._history_lock:
            self._history.append(record)
            self._history_index[record.threat_id] = record
        logger.info("Simulated %s threat %s (score %d)", record.type, record.threat_id, record.threat_score)
        if record.threat_score >= self._warning_threshold:
            logger.warning("Threat %s scored %d, at or above the warning threshold", record.threat_id, record.threat_score)

        if record.threat_score <= self._auto_block_threshold:
            self._auto_block(record.threat_id)
        return self.history_lookup(record.threat_id) or record

    def tick(self) -> Optional[SimulatedThreatRecord]:
        """Generate a record with the configured probability."""

        if self._rng.random() < self._simulation_probability:
            return self.generate()
        return None

    async def run(
        self,
        interval: Optional[float] = None,
        *,
        stop_event: Optional[asyncio.Event] = None,
        iterations: Optional[int] = None,
    ) -> None:
        """Call :meth:`tick` every ``interval`` seconds until stopped.

        ``interval`` defaults to the feed's configured simulation interval.
        """

        interval = self._interval if interval is None else interval
        stop_event = stop_event or asyncio.Event()
        completed = 0
        while not stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Threat feed tick failed")
            completed += 1
            if iterations is not None and completed >= iterations:
                break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def active(self) -> List[SimulatedThreatRecord]:
        records = self._active.snapshot(copy.deepcopy)
        return sorted(records, key=lambda record: record.threat_score, reverse=True)

    def get(self, threat_id: str) -> Optional[SimulatedThreatRecord]:
        try:
            return self._active.read(threat_id, copy.deepcopy)
        except KeyError:
            return None

    def history_lookup(self, threat_id: str) -> Optional[SimulatedThreatRecord]:
        current = self.get(threat_id)
        if current is not None:
            return current
        with self._history_lock:
            record = self._history_index.get(threat_id)
        return copy.deepcopy(record) if record is not None else None

    def history(self) -> List[SimulatedThreatRecord]:
        with self._history_lock:
            threat_ids = [record.threat_id for record in self._history]
        records = (self.history_lookup(threat_id) for threat_id in threat_ids)
        return [record for record in records if record is not None]

    def summary(self) -> Dict[str, int]:
        rows = self._active.snapshot(lambda record: (record.severity, record.threat_score))
        severities = [severity for severity, _ in rows]
        return {
            "total": len(rows),
            "critical": severities.count("critical"),
            "high": severities.count("high"),
            "medium": severities.count("medium"),
            "above_warning": sum(1 for _, score in rows if score >= self._warning_threshold),
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def investigate(self, threat_id: str, investigator: str = DEFAULT_ACTOR) -> Optional[SimulatedThreatRecord]:
        def _start(record: SimulatedThreatRecord) -> SimulatedThreatRecord:
            record.investigation = {
                "started_at": self._clock().isoformat(),
                "investigator": investigator,
                "status": "in_progress",
                "notes": [],
            }
            return copy.deepcopy(record)

        return self._mutate(threat_id, _start, "investigation started")

    def escalate(
        self,
        threat_id: str,
        escalated_to: str = DEFAULT_ESCALATION_TARGET,
        reason: str = DEFAULT_ESCALATION_REASON,
    ) -> Optional[SimulatedThreatRecord]:
        def _escalate(record: SimulatedThreatRecord) -> SimulatedThreatRecord:
            record.escalated_at = self._clock()
            record.escalated_to = escalated_to
            record.escalation_reason = reason
            record.status = STATUS_ESCALATED
            return copy.deepcopy(record)

        return self._mutate(threat_id, _escalate, f"escalated to {escalated_to}")

    def block(self, threat_id: str, blocked_by: str = DEFAULT_ACTOR) -> Optional[SimulatedThreatRecord]:
        def _block(record: SimulatedThreatRecord) -> None:
            record.blocked_at = self._clock()
            record.blocked_by = blocked_by
            record.status = STATUS_BLOCKED
            self._close(record, "blocked", blocked_by)

        return self._retire(threat_id, _block, "blocked")

    def resolve(
        self,
        threat_id: str,
        reason: str = "resolved",
        resolved_by: str = DEFAULT_ACTOR,
    ) -> Optional[SimulatedThreatRecord]:
        return self._retire(threat_id, lambda record: self._close(record, reason, resolved_by), "resolved")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _auto_block(self, threat_id: str) -> None:
        def _auto(record: SimulatedThreatRecord) -> None:
            record.auto_blocked = True
            record.blocked_at = self._clock()
            record.blocked_by = DEFAULT_ACTOR
            record.status = STATUS_BLOCKED
            self._close(record, "auto_blocked", DEFAULT_ACTOR)

        self._retire(threat_id, _auto, "auto-blocked")

    def _close(self, record: SimulatedThreatRecord, reason: str, resolved_by: str) -> None:
        record.resolved_at = self._clock()
        record.resolution = reason
        record.resolved_by = resolved_by
        if record.status != STATUS_BLOCKED:
            record.status = STATUS_RESOLVED

    def _mutate(self, threat_id: str, mutator, description: str) -> Optional[SimulatedThreatRecord]:
        try:
            result = self._active.update(threat_id, mutator)
        except KeyError:
            logger.debug("Threat %s is not active; ignoring request", threat_id)
            return None
        logger.info("Threat %s %s", threat_id, description)
        return result

    def _retire(self, threat_id: str, mutator, description: str) -> Optional[SimulatedThreatRecord]:
        try:
            record = self._active.pop(threat_id, mutator)
        except KeyError:
            logger.debug("Threat %s is not active; ignoring request", threat_id)
            return None
        logger.info("Threat %s %s", threat_id, description)
        return copy.deepcopy(record)


__all__ = ["ThreatFeed"]
