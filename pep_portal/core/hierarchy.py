"""
Flat directory records -> name-sorted reporting forest.

Records are mappings with at least `id`, `name` and `reports_to`; any other
HierarchyNode field (job_title, department, email, evaluation_status,
submitted_at, pdf_url) is carried through when present.
"""
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from pep_portal.core.status import (
    DRAFT,
    NOT_STARTED,
    READ_ONLY_STATUSES,
    REOPENED,
)
from pep_portal.schemas.directory import HierarchyNode, HierarchyStats

_NODE_FIELDS = ("job_title", "department", "email", "submitted_at", "pdf_url")


def _key(value) -> str | None:
    return None if value is None else str(value)


def build_hierarchy_tree(
    records: Iterable[Mapping[str, Any]],
    root_id: str | None = None,
) -> list[HierarchyNode]:
    rows: dict[str, Mapping[str, Any]] = {}
    for rec in records:
        rows[_key(rec["id"])] = rec

    root_key = _key(root_id)
    children: dict[str, list[str]] = {node_id: [] for node_id in rows}
    roots: list[str] = []

    for node_id, rec in rows.items():
        parent = _key(rec.get("reports_to"))
        if parent is not None and parent != node_id and parent in rows:
            children[parent].append(node_id)
        elif parent == root_key:
            roots.append(node_id)
        elif root_key is None and parent == node_id:
            roots.append(node_id)
        # anything else is an orphan

    def materialize(node_id: str) -> HierarchyNode:
        rec = rows[node_id]
        kids = sorted(children[node_id], key=lambda k: rows[k]["name"])
        return HierarchyNode(
            id=node_id,
            name=rec["name"],
            evaluation_status=rec.get("evaluation_status") or NOT_STARTED,
            children=[materialize(k) for k in kids],
            **{f: rec.get(f) for f in _NODE_FIELDS},
        )

    return [materialize(k) for k in sorted(roots, key=lambda k: rows[k]["name"])]


def iter_nodes(tree: Iterable[HierarchyNode]) -> Iterator[HierarchyNode]:
    """Depth-first, pre-order."""
    for node in tree:
        yield node
        yield from iter_nodes(node.children)


def count_by_status(tree: Iterable[HierarchyNode]) -> HierarchyStats:
    stats = HierarchyStats()
    for node in iter_nodes(tree):
        stats.total += 1
        if node.evaluation_status in READ_ONLY_STATUSES:
            stats.submitted += 1
        elif node.evaluation_status in (DRAFT, REOPENED):
            stats.in_progress += 1
        else:
            stats.not_started += 1
    return stats


def collect_pending_emails(tree: Iterable[HierarchyNode]) -> list[str]:
    emails: list[str] = []
    for node in iter_nodes(tree):
        if node.evaluation_status in READ_ONLY_STATUSES or not node.email:
            continue
        if node.email not in emails:
            emails.append(node.email)
    return emails


def find_subordinate_ids(records: Iterable[Mapping[str, Any]], manager_id) -> set[str]:
    """Every record below manager_id, at any depth. The manager itself is excluded."""
    by_manager: dict[str, list[str]] = {}
    for rec in records:
        node_id = _key(rec["id"])
        parent = _key(rec.get("reports_to"))
        if parent is None or parent == node_id:
            continue
        by_manager.setdefault(parent, []).append(node_id)

    manager = _key(manager_id)
    found: set[str] = set()
    pending = list(by_manager.get(manager, []))
    while pending:
        node_id = pending.pop()
        if node_id in found or node_id == manager:
            continue
        found.add(node_id)
        pending.extend(by_manager.get(node_id, []))
    return found


def is_direct_manager(reviewer_id, subject) -> bool:
    """
    One-level check against the subject's reports_to. `subject` is anything
    with `id` and `reports_to` (ORM row or directory record). A record that
    reports to itself has no manager.
    """
    if reviewer_id is None or subject is None or subject.reports_to is None:
        return False
    reviewer = str(reviewer_id)
    if reviewer == str(subject.id):
        return False
    return reviewer == str(subject.reports_to)
