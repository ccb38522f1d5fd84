"""Version selection over graded compatibility passes.

Catalogs return releases newest first and :func:`select_version` trusts that
order: ``latest`` means "position zero of the first pass that has anything",
never "largest after sorting".  Pinned labels are matched exactly against the
strict pass first and then against each fallback pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .compatibility import CandidatePass
from .errors import NoCompatibleVersion, VersionNotFound
from .models import LATEST, CatalogVersionEntry

__all__ = ["Selection", "select_version"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Selection:
    """Chosen entry with the platform key it matched and its grade."""

    entry: CatalogVersionEntry
    platform: Optional[str]
    exact: bool


def _is_latest(constraint: Optional[str]) -> bool:
    label = (constraint or "").strip()
    return not label or label.lower() == LATEST


def select_version(
    passes: Iterable[CandidatePass],
    constraint: Optional[str],
    *,
    identifier: str = "",
    target_platform: Optional[str] = None,
    allow_fallback: bool = True,
) -> Selection:
    """Pick one entry from ``passes`` honouring ``constraint``.

    Args:
        passes: Strict pass first, then fallback passes, as produced by
            :func:`~MCPluginKit.PluginDownload.compatibility.resolve_passes`.
        constraint: ``"latest"``, empty, or an exact version label.
        identifier: Catalog identifier used in errors and log records.
        target_platform: Server platform, for messages only.
        allow_fallback: When ``False`` only the exact pass is considered.

    Raises:
        NoCompatibleVersion: When every considered pass is empty.
        VersionNotFound: When candidates exist but none carries the label.
    """

    considered: List[CandidatePass] = [
        candidate for candidate in passes if candidate.exact or allow_fallback
    ]
    if not any(candidate.entries for candidate in considered):
        raise NoCompatibleVersion(identifier, target_platform)

    if _is_latest(constraint):
        for candidate in considered:
            if candidate.entries:
                selection = Selection(candidate.entries[0], candidate.platform, candidate.exact)
                break
    else:
        label = (constraint or "").strip()
        selection = None
        for candidate in considered:
            for entry in candidate.entries:
                if entry.label == label:
                    selection = Selection(entry, candidate.platform, candidate.exact)
                    break
            if selection is not None:
                break
        if selection is None:
            raise VersionNotFound(identifier, label)

    if not selection.exact:
        LOGGER.warning(
            "using version published for a fallback platform",
            extra={
                "stage": "select",
                "identifier": identifier,
                "version": selection.entry.label,
                "target_platform": target_platform,
                "platform": selection.platform,
            },
        )
    return selection
