"""Keyword-based automatic classification of issues.

Priority and labels are derived from the lowercased concatenation of the
issue title and body. Both functions are pure; the state machine applies
their results to the record it owns.
"""

from typing import List, Optional

from src.issueflow.lifecycle.models import (
    COMPONENT_LABEL_KEYWORDS,
    DEFAULT_PRIORITY,
    PRIORITY_KEYWORDS,
    PRIORITY_LABEL_PREFIX,
    STATE_LABEL_PREFIX,
    TYPE_LABEL_KEYWORDS,
    IssuePriority,
    IssueState,
)


def classify_priority(text: str) -> IssuePriority:
    """Pick a priority from keyword tiers.

    Tiers are checked critical, high, low; the first tier with any
    matching keyword wins. Text matching no tier gets the default
    priority (medium).

    Args:
        text: Lowercased issue text.

    Returns:
        IssuePriority: The assigned priority.

    Example:
        >>> classify_priority("critical production bug")
        <IssuePriority.CRITICAL: 'critical'>
        >>> classify_priority("minor documentation update")
        <IssuePriority.LOW: 'low'>
    """
    for priority, keywords in PRIORITY_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return priority
    return DEFAULT_PRIORITY


def derive_labels(
    text: str,
    state: IssueState,
    priority: Optional[IssuePriority] = None,
) -> List[str]:
    """Derive automatic labels for an issue.

    The result holds, in order: the ``priority:<level>`` label (when a
    priority is set), type labels, component labels, and the
    ``state:<state>`` label.

    Args:
        text: Lowercased issue text.
        state: Current lifecycle state.
        priority: Assigned priority, if any.

    Returns:
        List of label names, without duplicates.
    """
    labels: List[str] = []

    if priority is not None:
        labels.append(f"{PRIORITY_LABEL_PREFIX}{priority.value}")

    for label, keywords in TYPE_LABEL_KEYWORDS + COMPONENT_LABEL_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            labels.append(label)

    labels.append(f"{STATE_LABEL_PREFIX}{state.value}")
    return labels
