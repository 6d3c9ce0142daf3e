"""Inspection checklist, compliance scoring and certification eligibility.

The checklist is a fixed set of five yes/no compliance questions.  Answers
are tri-state: ``True``, ``False`` or ``None`` (unanswered).  Unanswered
items never count toward the score denominator.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from agricert.services.errors import InvalidChecklist

ELIGIBILITY_THRESHOLD = 80


class ChecklistKey(StrEnum):
	synthetic_inputs = "synthetic_inputs"
	buffer_zones = "buffer_zones"
	organic_seed = "organic_seed"
	compost_management = "compost_management"
	record_keeping = "record_keeping"


CHECKLIST_QUESTIONS: dict[ChecklistKey, str] = {
	ChecklistKey.synthetic_inputs: "Any synthetic inputs in the last 36 months?",
	ChecklistKey.buffer_zones: "Adequate buffer zones?",
	ChecklistKey.organic_seed: "Organic seed or permitted exceptions?",
	ChecklistKey.compost_management: "Compost/soil fertility managed organically?",
	ChecklistKey.record_keeping: "Recordkeeping/logs available?",
}


@dataclass(frozen=True, slots=True)
class ChecklistItem:
	key: ChecklistKey
	question: str
	answer: bool | None = None


def default_checklist() -> dict[str, bool | None]:
	"""All five questions, unanswered — the stored shape of a fresh checklist."""
	return {key.value: None for key in ChecklistKey}


def parse_answers(raw: Mapping[str, Any]) -> dict[str, bool | None]:
	"""Validate a partial answer map; reject unknown keys and non tri-state values."""
	errors: list[str] = []
	parsed: dict[str, bool | None] = {}
	for key, answer in raw.items():
		try:
			checklist_key = ChecklistKey(key)
		except ValueError:
			errors.append(f"Unknown checklist key '{key}'")
			continue
		if answer is not None and not isinstance(answer, bool):
			errors.append(f"Invalid answer for {key}. Must be true, false, or null.")
			continue
		parsed[checklist_key.value] = answer
	if errors:
		raise InvalidChecklist(errors)
	return parsed


def checklist_items(stored: Mapping[str, bool | None] | None) -> list[ChecklistItem]:
	"""Expand a stored answer map into the full, ordered item list."""
	answers = parse_answers(stored or {})
	return [
		ChecklistItem(key=key, question=question, answer=answers.get(key.value))
		for key, question in CHECKLIST_QUESTIONS.items()
	]


def missing_answers(items: Iterable[ChecklistItem]) -> list[str]:
	return [item.key.value for item in items if item.answer is None]


def compute_score(items: Iterable[ChecklistItem]) -> int:
	"""Percentage of answered items marked compliant, rounded half-up.

	An empty or fully unanswered checklist scores 0.
	"""
	answered = [item for item in items if item.answer is not None]
	if not answered:
		return 0
	compliant = sum(1 for item in answered if item.answer is True)
	# floor(100 * c / n + 1/2) in exact integer arithmetic
	return (200 * compliant + len(answered)) // (2 * len(answered))


def is_eligible(score: int) -> bool:
	return score >= ELIGIBILITY_THRESHOLD
