"""
Authoring-time checks for prerequisite chains.

Modules and topics each carry at most one prerequisite, so a chain is a
linked list and a cycle is any walk that revisits a node.
"""

from typing import List, Mapping, Optional

from .errors import ConfigurationError, ErrorKind
from .types import CourseOutline


def walk_chain(edges: Mapping[str, Optional[str]], start: str) -> List[str]:
    """Follow prerequisite links from ``start``; raise CONFIG_CYCLE on a revisit."""
    seen = []
    current = start
    while current is not None:
        if current in seen:
            cycle = seen[seen.index(current):] + [current]
            raise ConfigurationError(ErrorKind.CONFIG_CYCLE,
                                     "prerequisite chain contains a cycle",
                                     {"cycle": cycle})
        seen.append(current)
        current = edges.get(current)
    return seen


def check_acyclic(edges: Mapping[str, Optional[str]], item_id: str,
                  prerequisite_id: Optional[str]) -> None:
    """Would pointing ``item_id`` at ``prerequisite_id`` close a loop?"""
    if prerequisite_id is None:
        return
    proposed = dict(edges)
    proposed[item_id] = prerequisite_id
    walk_chain(proposed, item_id)


def module_ancestors(outline: CourseOutline, module_id: str) -> List[str]:
    edges = {m.id: m.prerequisite_id for m in outline.modules}
    return walk_chain(edges, module_id)[1:]


def validate_module_prerequisite(outline: CourseOutline, module_id: str,
                                 prerequisite_id: Optional[str]) -> None:
    if prerequisite_id is None:
        return
    if outline.module(prerequisite_id) is None:
        raise ConfigurationError(ErrorKind.CONFIG_INVALID_PREREQUISITE,
                                 "prerequisite module must belong to the same course",
                                 {"module_id": module_id, "prerequisite_id": prerequisite_id})
    edges = {m.id: m.prerequisite_id for m in outline.modules}
    check_acyclic(edges, module_id, prerequisite_id)


def validate_topic_prerequisite(outline: CourseOutline, topic_id: str,
                                prerequisite_id: Optional[str]) -> None:
    if prerequisite_id is None:
        return
    topic = outline.topic(topic_id)
    prereq = outline.topic(prerequisite_id)
    if topic is None or prereq is None:
        raise ConfigurationError(ErrorKind.CONFIG_INVALID_PREREQUISITE,
                                 "prerequisite topic must belong to the same course",
                                 {"topic_id": topic_id, "prerequisite_id": prerequisite_id})
    if prereq.module_id != topic.module_id and \
            prereq.module_id not in module_ancestors(outline, topic.module_id):
        raise ConfigurationError(
            ErrorKind.CONFIG_INVALID_PREREQUISITE,
            "prerequisite topic must sit in the same module or in a prerequisite module",
            {"topic_id": topic_id, "prerequisite_id": prerequisite_id},
        )
    edges = {t.id: t.prerequisite_id for t in outline.topics}
    check_acyclic(edges, topic_id, prerequisite_id)


def validate_outline(outline: CourseOutline) -> None:
    module_edges = {m.id: m.prerequisite_id for m in outline.modules}
    for m in outline.modules:
        walk_chain(module_edges, m.id)
    topic_edges = {t.id: t.prerequisite_id for t in outline.topics}
    for t in outline.topics:
        walk_chain(topic_edges, t.id)


def check_publishable(outline: CourseOutline) -> None:
    """A course can go live only when every module has at least one topic."""
    if not outline.modules:
        raise ConfigurationError(ErrorKind.COURSE_NOT_PUBLISHABLE,
                                 "course has no modules",
                                 {"course_id": outline.course.id})
    empty = [m.id for m in outline.modules if not outline.topics_in(m.id)]
    if empty:
        raise ConfigurationError(ErrorKind.COURSE_NOT_PUBLISHABLE,
                                 "every module needs at least one topic",
                                 {"empty_modules": empty})
    validate_outline(outline)
