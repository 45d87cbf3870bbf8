"""
Waterfall Objective Progression.

A question may be tagged with objective indices that exist in several of the
modules a practice test covers. Only one objective advances per answered
question: the earliest (in course order) that is not yet mastered. When every
candidate is already mastered the first one is updated anyway, so the answer
is still counted somewhere.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence

from loguru import logger

from src.core.mastery import MasteryStatus, ObjectiveRef


def order_modules(selected_module_ids: Iterable[str], course_module_ids: Sequence[str]) -> list[str]:
    """
    Sort selected modules by their position in the course.

    Modules that are not part of the course get position -1 and therefore
    come first, keeping their relative order.
    """
    position = {module_id: idx for idx, module_id in enumerate(course_module_ids)}
    return sorted(selected_module_ids, key=lambda module_id: position.get(module_id, -1))


def build_candidate_objectives(
    selected_module_ids: Iterable[str],
    course_module_ids: Sequence[str],
    objectives_by_module: Mapping[str, Sequence[str]],
    objective_indices: Iterable[int],
) -> list[ObjectiveRef]:
    """
    List the objectives a question could count towards, in waterfall order.

    Args:
        selected_module_ids: Modules the practice test was generated from
        course_module_ids: All module IDs of the course, in course order
        objectives_by_module: Objective texts per module ID
        objective_indices: 0-based objective indices tagged on the question

    Returns:
        Candidates ordered by module position, then by tag order
    """
    indices = list(objective_indices)
    candidates: list[ObjectiveRef] = []

    for module_id in order_modules(selected_module_ids, course_module_ids):
        objectives = objectives_by_module.get(module_id)
        if objectives is None:
            continue
        for index in indices:
            if 0 <= index < len(objectives):
                candidates.append(ObjectiveRef(module_id, index, objectives[index]))

    return candidates


def select_waterfall_target(
    candidates: Sequence[ObjectiveRef],
    status_of: Callable[[ObjectiveRef], MasteryStatus | str | None],
) -> ObjectiveRef | None:
    """
    Pick the single objective to update for one answered question.

    Args:
        candidates: Output of build_candidate_objectives
        status_of: Stored status lookup; None when never attempted

    Returns:
        First non-mastered candidate, the first candidate when all are
        mastered, or None when there are no candidates
    """
    if not candidates:
        return None

    for candidate in candidates:
        status = status_of(candidate)
        if status is None or MasteryStatus(status) is not MasteryStatus.MASTERED:
            return candidate

    logger.debug(f"All {len(candidates)} candidate objectives mastered - updating first")
    return candidates[0]
