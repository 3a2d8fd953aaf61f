"""LLM variant assignment per (student, subject).

``decide_assignment`` is a pure function of the existing record, the
subject's A/B configuration, the current time and usage counts, so the
sticky and priority rules can be tested without any storage. The
``AssignmentEngine`` gathers those inputs from the stores and persists
the decision.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Collection, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from src.assignment.store import StudentRecordStore
from src.assignment.variants import ABTestConfig, VariantSpec
from src.quiz.errors import ConfigurationError, DuplicateAssignmentError
from src.quiz.models import StudentSubjectAssignment

logger = logging.getLogger(__name__)


class ReportCounter(Protocol):
    def count_reports(self, subject: str, model_name: str) -> int:
        """Questions generated by ``model_name`` that students reported."""
        ...


@dataclass(frozen=True, slots=True)
class AssignmentUsage:
    """Usage counts for one subject, excluding the student being assigned."""

    students_per_model: Mapping[str, int] = field(default_factory=dict)
    reports_per_model: Mapping[str, int] = field(default_factory=dict)
    students_per_prompt: Mapping[str, int] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class AssignmentDecision:
    assigned_model: str
    abc_testing_active: bool
    changed: bool
    reason: str
    prompt_template: Optional[str] = None
    prompt_hash: Optional[str] = None


def prompt_hash(template: str) -> str:
    """Stable identifier of a prompt variant."""
    return hashlib.md5(template.encode("utf-8")).hexdigest()


def _select_variant(config: ABTestConfig, usage: AssignmentUsage) -> tuple[str, str]:
    if len(config.prompts) > 1 and len(config.variants) > 1:
        logger.warning(
            "Subject %s compares prompts and models at once; using %s only",
            config.subject_key,
            config.variants[0].model_name,
        )
        return config.variants[0].model_name, "prompt study uses the first variant"

    def load(variant: VariantSpec) -> float:
        return usage.students_per_model.get(variant.model_name, 0) / variant.weight

    indexed = list(enumerate(config.variants))
    if config.cost_priority:
        _, chosen = min(indexed, key=lambda p: (p[1].cost, load(p[1]), p[0]))
        return chosen.model_name, "lowest cost"
    if config.fewer_reported_priority:
        _, chosen = min(
            indexed,
            key=lambda p: (usage.reports_per_model.get(p[1].model_name, 0), load(p[1]), p[0]),
        )
        return chosen.model_name, "fewest reported questions"
    _, chosen = min(indexed, key=lambda p: (load(p[1]), p[0]))
    return chosen.model_name, "equitable distribution"


def _select_prompt(
    config: ABTestConfig,
    existing: Optional[StudentSubjectAssignment],
    usage: AssignmentUsage,
) -> tuple[Optional[str], Optional[str]]:
    if not config.prompts:
        return None, None
    by_hash = {prompt_hash(p): p for p in config.prompts}
    if existing is not None and existing.prompt_hash in by_hash:
        return by_hash[existing.prompt_hash], existing.prompt_hash

    indexed = list(enumerate(by_hash.items()))
    _, (chosen_hash, chosen) = min(
        indexed, key=lambda p: (usage.students_per_prompt.get(p[1][0], 0), p[0])
    )
    return chosen, chosen_hash


def decide_assignment(
    existing: Optional[StudentSubjectAssignment],
    config: Optional[ABTestConfig],
    now: datetime,
    default_model: str,
    usage: AssignmentUsage,
    known_models: Collection[str],
) -> AssignmentDecision:
    """Decide which model a student uses in a subject.

    Rules, in order:
    - the A/B test is active when a configuration exists and today lies
      within its inclusive date window, recomputed on every call;
    - a model that left the catalog (or, during an active test, is not one
      of the variants) is always replaced;
    - a new pair gets a variant by priority (lowest cost, fewest reported
      questions, then fewest students per weight) when the test is active,
      the default model otherwise;
    - an existing pair keeps its model when ``keep_model`` is set; without
      it the priorities are re-evaluated;
    - with no configuration at all an existing model is kept.
    """
    active = config is not None and config.is_active(now.date())

    def pick() -> tuple[str, str]:
        if active and config is not None:
            return _select_variant(config, usage)
        return default_model, "no active A/B test"

    if existing is None:
        model, reason = pick()
    elif existing.assigned_model not in known_models:
        model, reason = pick()
        reason = f"previous model unavailable; {reason}"
    elif active and config is not None and existing.assigned_model not in config.model_names:
        model, reason = pick()
        reason = f"previous model not under test; {reason}"
    elif config is None or config.keep_model:
        model, reason = existing.assigned_model, "sticky assignment"
    elif active:
        model, reason = pick()
    else:
        model, reason = default_model, "A/B test window closed"

    template: Optional[str] = None
    template_hash: Optional[str] = None
    if active and config is not None:
        template, template_hash = _select_prompt(config, existing, usage)

    changed = (
        existing is None
        or existing.assigned_model != model
        or existing.abc_testing_active != active
        or existing.prompt_hash != template_hash
    )
    return AssignmentDecision(
        assigned_model=model,
        abc_testing_active=active,
        changed=changed,
        reason=reason,
        prompt_template=template,
        prompt_hash=template_hash,
    )


class AssignmentEngine:
    """Loads, decides and persists per-student model assignments.

    Concurrent first requests for the same pair are resolved by the
    store's unique create: the loser re-reads the winner's record and
    continues as an existing assignment.
    """

    MAX_ATTEMPTS = 3

    def __init__(
        self,
        store: StudentRecordStore,
        configs: Mapping[str, ABTestConfig],
        known_models: Collection[str],
        default_model: str,
        reports: Optional[ReportCounter] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if default_model not in known_models:
            raise ConfigurationError(f"Default model {default_model!r} is not in the catalog")
        self._store = store
        self._configs = dict(configs)
        self._known_models = known_models
        self._default_model = default_model
        self._reports = reports
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def config_for(self, subject_name: str) -> Optional[ABTestConfig]:
        return self._configs.get(subject_name)

    def assign(
        self, student_email: str, subject_name: str, now: Optional[datetime] = None
    ) -> AssignmentDecision:
        now = now or self._clock()
        config = self._configs.get(subject_name)
        if config is None:
            logger.info("No A/B configuration for %s, using default model", subject_name)

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            existing = self._store.get(student_email, subject_name)
            usage = self._usage(student_email, subject_name, config)
            decision = decide_assignment(
                existing, config, now, self._default_model, usage, self._known_models
            )
            record = StudentSubjectAssignment(
                student_email=student_email,
                subject_name=subject_name,
                assigned_model=decision.assigned_model,
                abc_testing_active=decision.abc_testing_active,
                prompt_hash=decision.prompt_hash,
                prompt_text=(
                    existing.prompt_text
                    if existing is not None and existing.prompt_hash == decision.prompt_hash
                    else None
                ),
            )

            if existing is None:
                try:
                    self._store.create(record)
                except DuplicateAssignmentError:
                    logger.info(
                        "Concurrent assignment for %s in %s (attempt %d), re-reading",
                        student_email,
                        subject_name,
                        attempt,
                    )
                    continue
            elif decision.changed:
                self._store.update(record)

            logger.info(
                "Assigned %s to %s in %s (%s, A/B active=%s)",
                decision.assigned_model,
                student_email,
                subject_name,
                decision.reason,
                decision.abc_testing_active,
            )
            return decision

        raise DuplicateAssignmentError(student_email, subject_name)

    def record_prompt(self, student_email: str, subject_name: str, prompt_text: str) -> None:
        """Remember the last rendered prompt for the student's variant."""
        existing = self._store.get(student_email, subject_name)
        if existing is None:
            return
        self._store.update(
            replace(
                existing,
                prompt_text=prompt_text,
                updated_at=self._clock().isoformat(),
            )
        )

    def _usage(
        self, student_email: str, subject_name: str, config: Optional[ABTestConfig]
    ) -> AssignmentUsage:
        if config is None:
            return AssignmentUsage()
        reports: dict[str, int] = {}
        if config.fewer_reported_priority and self._reports is not None:
            reports = {
                name: self._reports.count_reports(subject_name, name)
                for name in config.model_names
            }
        return AssignmentUsage(
            students_per_model=self._store.count_by_model(subject_name, exclude_email=student_email),
            reports_per_model=reports,
            students_per_prompt=self._store.count_by_prompt_hash(
                subject_name, exclude_email=student_email
            ),
        )
