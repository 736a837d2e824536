"""Canonical field mappers.

Pure functions translating each provider's status / priority vocabulary and
rich-text formats into the local ``TaskStatus`` / ``TaskPriority`` enums and
plain text, plus the inverse tables used when pushing a task back out.

Nothing in here raises on unknown input: every mapper falls back to a
documented default.
"""

import html
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from app.models.task import TaskPriority, TaskStatus

# --------------------------------------------------------------------------- #
# Shared heuristics
# --------------------------------------------------------------------------- #

# Ordered: first match wins.
_STATUS_NAME_RULES = (
    (("done", "closed", "resolved"), TaskStatus.DONE),
    (("review",), TaskStatus.REVIEW),
    (("progress",), TaskStatus.IN_PROGRESS),
    (("backlog",), TaskStatus.BACKLOG),
)

_PRIORITY_NAME_RULES = (
    (("highest", "blocker", "urgent"), TaskPriority.URGENT),
    (("high",), TaskPriority.HIGH),
    (("low", "lowest"), TaskPriority.LOW),
)

_PRIORITY_WORDS = {"highest", "blocker", "urgent", "high", "medium", "low", "lowest"}


def status_from_name(name: Optional[str]) -> Optional[TaskStatus]:
    """Case-insensitive substring heuristic over a free-text status name."""
    if not name:
        return None
    lowered = str(name).lower()
    for tokens, status in _STATUS_NAME_RULES:
        if any(token in lowered for token in tokens):
            return status
    return None


def map_priority_name(name: Optional[str]) -> TaskPriority:
    if not name:
        return TaskPriority.MEDIUM
    lowered = str(name).lower()
    for tokens, priority in _PRIORITY_NAME_RULES:
        if any(token in lowered for token in tokens):
            return priority
    return TaskPriority.MEDIUM


def parse_due_date(value: Any) -> Optional[date]:
    """Accept ``YYYY-MM-DD`` or an ISO-8601 timestamp; anything else is None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def _label_names(labels: Optional[Iterable[Any]]) -> List[str]:
    names = []
    for label in labels or []:
        if isinstance(label, dict):
            label = label.get("name")
        if label:
            names.append(str(label))
    return names


# --------------------------------------------------------------------------- #
# Jira
# --------------------------------------------------------------------------- #

_JIRA_CATEGORY_STATUS = {
    "new": TaskStatus.TODO,
    "indeterminate": TaskStatus.IN_PROGRESS,
    "done": TaskStatus.DONE,
}

_JIRA_PRIORITY_NAMES = {
    TaskPriority.URGENT: "Highest",
    TaskPriority.HIGH: "High",
    TaskPriority.MEDIUM: "Medium",
    TaskPriority.LOW: "Low",
}

# Substrings looked for in a transition's name (or its target status name).
_JIRA_TRANSITION_TOKENS = {
    TaskStatus.DONE: ("done", "closed", "resolved"),
    TaskStatus.IN_PROGRESS: ("progress", "start"),
    TaskStatus.REVIEW: ("progress", "start"),
    TaskStatus.TODO: ("to do", "open", "reopen"),
    TaskStatus.BACKLOG: ("to do", "open", "reopen"),
}

_ADF_BLOCK_NODES = {"paragraph", "heading", "bulletList", "orderedList", "blockquote", "codeBlock"}


def map_jira_status(name: Optional[str] = None, category_key: Optional[str] = None) -> TaskStatus:
    """Status category wins over the workspace-configurable status name."""
    if category_key:
        mapped = _JIRA_CATEGORY_STATUS.get(str(category_key).lower())
        if mapped is not None:
            return mapped
    return status_from_name(name) or TaskStatus.TODO


def map_jira_status_field(status: Any) -> TaskStatus:
    """Map a Jira ``fields.status`` object (or a bare status name)."""
    if isinstance(status, dict):
        category = status.get("statusCategory") or {}
        return map_jira_status(status.get("name"), category.get("key") if isinstance(category, dict) else None)
    return map_jira_status(status if isinstance(status, str) else None)


def map_jira_priority(priority: Any) -> TaskPriority:
    if isinstance(priority, dict):
        priority = priority.get("name")
    return map_priority_name(priority)


def extract_plain_text(doc: Any) -> str:
    """Flatten an Atlassian Document Format tree to plain text.

    Block nodes are followed by a newline, list children get ``• `` or
    ``N. `` prefixes, ``hardBreak`` becomes a newline and text nodes are
    copied verbatim. A plain string is returned unchanged.
    """
    if doc is None:
        return ""
    if isinstance(doc, str):
        return doc
    parts: List[str] = []
    _walk_adf(doc, parts)
    return "".join(parts).strip()


def _walk_adf(node: Any, parts: List[str]) -> None:
    if isinstance(node, list):
        for child in node:
            _walk_adf(child, parts)
        return
    if not isinstance(node, dict):
        return

    node_type = node.get("type")
    if node_type == "text":
        parts.append(str(node.get("text") or ""))
        return
    if node_type == "hardBreak":
        parts.append("\n")
        return

    children = node.get("content") or []
    if not isinstance(children, list):
        children = []

    if node_type in ("bulletList", "orderedList"):
        attrs = node.get("attrs") or {}
        start = attrs.get("order", 1) if isinstance(attrs, dict) else 1
        if not isinstance(start, int):
            start = 1
        for index, child in enumerate(children):
            parts.append("• " if node_type == "bulletList" else f"{start + index}. ")
            _walk_adf(child, parts)
    else:
        for child in children:
            _walk_adf(child, parts)

    if node_type in _ADF_BLOCK_NODES:
        parts.append("\n")


def plain_text_to_adf(text: Optional[str]) -> Dict[str, Any]:
    """Wrap plain text in a minimal ADF document (one paragraph per line)."""
    paragraphs = []
    for line in (text or "").split("\n"):
        content = [{"type": "text", "text": line}] if line else []
        paragraphs.append({"type": "paragraph", "content": content})
    return {"type": "doc", "version": 1, "content": paragraphs}


def jira_priority_for(priority: TaskPriority) -> str:
    return _JIRA_PRIORITY_NAMES[TaskPriority(priority)]


def pick_jira_transition(transitions: Iterable[Dict[str, Any]], status: TaskStatus) -> Optional[Dict[str, Any]]:
    """Choose the transition that moves an issue towards ``status``.

    Matches the transition name, or the name of the status it leads to,
    against the tokens for ``status``. Returns None if nothing fits.
    """
    tokens = _JIRA_TRANSITION_TOKENS[TaskStatus(status)]
    for transition in transitions or []:
        if not isinstance(transition, dict):
            continue
        target = transition.get("to") or {}
        names = [str(transition.get("name") or "").lower()]
        if isinstance(target, dict):
            names.append(str(target.get("name") or "").lower())
        if any(token in name for name in names for token in tokens):
            return transition
    return None


# --------------------------------------------------------------------------- #
# GitHub
# --------------------------------------------------------------------------- #

_GITHUB_PRIORITY_LABELS = {
    TaskPriority.URGENT: "priority: urgent",
    TaskPriority.HIGH: "priority: high",
    TaskPriority.MEDIUM: "priority: medium",
    TaskPriority.LOW: "priority: low",
}


def is_priority_label(name: Optional[str]) -> bool:
    """A bare priority word (``high``) or anything starting with ``priority``."""
    if not name:
        return False
    lowered = str(name).strip().lower()
    return lowered in _PRIORITY_WORDS or lowered.startswith("priority")


def is_status_label(name: Optional[str]) -> bool:
    if not name or is_priority_label(name):
        return False
    return status_from_name(name) is not None


def map_github_status(state: Optional[str], labels: Optional[Iterable[Any]] = None) -> TaskStatus:
    """Closed issues are done; open issues consult their labels, else todo."""
    if str(state or "").lower() == "closed":
        return TaskStatus.DONE
    for name in _label_names(labels):
        if not is_status_label(name):
            continue
        mapped = status_from_name(name)
        # an open issue is never done, whatever its labels say
        if mapped is not None and mapped != TaskStatus.DONE:
            return mapped
    return TaskStatus.TODO


def map_github_priority(labels: Optional[Iterable[Any]]) -> TaskPriority:
    for name in _label_names(labels):
        if is_priority_label(name):
            return map_priority_name(name)
    return TaskPriority.MEDIUM


def github_state_for(status: TaskStatus) -> str:
    return "closed" if TaskStatus(status) == TaskStatus.DONE else "open"


def github_labels_for(priority: TaskPriority, current: Optional[Iterable[Any]] = None) -> List[str]:
    """Replace any priority labels in ``current`` with the one for ``priority``."""
    kept = [name for name in _label_names(current) if not is_priority_label(name)]
    return kept + [_GITHUB_PRIORITY_LABELS[TaskPriority(priority)]]


# --------------------------------------------------------------------------- #
# Azure DevOps
# --------------------------------------------------------------------------- #

_AZURE_STATE_STATUS = {
    "new": TaskStatus.TODO,
    "proposed": TaskStatus.TODO,
    "to do": TaskStatus.TODO,
    "active": TaskStatus.IN_PROGRESS,
    "committed": TaskStatus.IN_PROGRESS,
    "in progress": TaskStatus.IN_PROGRESS,
    "doing": TaskStatus.IN_PROGRESS,
    "resolved": TaskStatus.REVIEW,
    "review": TaskStatus.REVIEW,
    "in review": TaskStatus.REVIEW,
    "closed": TaskStatus.DONE,
    "done": TaskStatus.DONE,
    "completed": TaskStatus.DONE,
    "removed": TaskStatus.DONE,
}

_AZURE_PRIORITY = {
    1: TaskPriority.URGENT,
    2: TaskPriority.HIGH,
    3: TaskPriority.MEDIUM,
    4: TaskPriority.LOW,
}

_AZURE_STATE_NAMES = {
    TaskStatus.BACKLOG: "New",
    TaskStatus.TODO: "New",
    TaskStatus.IN_PROGRESS: "Active",
    TaskStatus.REVIEW: "Resolved",
    TaskStatus.DONE: "Closed",
}

_HTML_BREAK_RE = re.compile(r"<\s*(br|/p|/div|/li|/h[1-6])\s*/?\s*>", re.IGNORECASE)
_HTML_TAG_RE = re.compile(r"<[^>]+>")


def map_azure_state(state: Optional[str]) -> TaskStatus:
    if not state:
        return TaskStatus.TODO
    mapped = _AZURE_STATE_STATUS.get(str(state).strip().lower())
    if mapped is not None:
        return mapped
    return status_from_name(state) or TaskStatus.TODO


def map_azure_priority(priority: Any) -> TaskPriority:
    try:
        return _AZURE_PRIORITY.get(int(priority), TaskPriority.MEDIUM)
    except (TypeError, ValueError):
        return TaskPriority.MEDIUM


def html_to_plain_text(value: Optional[str]) -> str:
    """Azure DevOps stores descriptions as HTML."""
    if not value:
        return ""
    text = _HTML_BREAK_RE.sub("\n", str(value))
    text = _HTML_TAG_RE.sub("", text)
    text = html.unescape(text)
    lines = [line.rstrip() for line in text.split("\n")]
    return "\n".join(lines).strip()


def plain_text_to_html(text: Optional[str]) -> str:
    if not text:
        return ""
    return "<br>".join(html.escape(line) for line in text.split("\n"))


def azure_state_for(status: TaskStatus) -> str:
    return _AZURE_STATE_NAMES[TaskStatus(status)]


def azure_priority_for(priority: TaskPriority) -> int:
    for value, mapped in _AZURE_PRIORITY.items():
        if mapped == TaskPriority(priority):
            return value
    return 3
