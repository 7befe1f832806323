"""
Ownership markers for objects the reconciler creates.

Ownership is recorded on the objects themselves, never in a side index:
a later pass recognises its own objects purely from labels, which keeps
mark-and-sweep stateless across passes.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Optional

from monitorcore.constants import (
    CLONED_SERVICEMONITOR_LABEL_KEY,
    CLONED_SERVICEMONITOR_LABEL_VALUE,
    OWNER_LABEL_KEY,
    SOURCE_NAME_ANNOTATION,
    SOURCE_NAMESPACE_ANNOTATION,
)


def clone_name(source_namespace: str, source_name: str) -> str:
    """Name of the clone of ``source_namespace/source_name``."""
    return f"{source_namespace}-{source_name}"


def owner_labels(installation_uid: str) -> Dict[str, str]:
    return {OWNER_LABEL_KEY: installation_uid}


def clone_labels(installation_uid: str) -> Dict[str, str]:
    """Markers carried by every mirrored ServiceMonitor."""
    return {
        CLONED_SERVICEMONITOR_LABEL_KEY: CLONED_SERVICEMONITOR_LABEL_VALUE,
        OWNER_LABEL_KEY: installation_uid,
    }


def clone_selector() -> Dict[str, str]:
    """Label selector matching every clone, regardless of owner."""
    return {CLONED_SERVICEMONITOR_LABEL_KEY: CLONED_SERVICEMONITOR_LABEL_VALUE}


def stamp(
    manifest: Dict[str, Any],
    labels: Dict[str, str],
    annotations: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Return a copy of ``manifest`` with ``labels``/``annotations`` merged in."""
    stamped = copy.deepcopy(manifest)
    metadata = stamped.setdefault("metadata", {})
    metadata["labels"] = {**(metadata.get("labels") or {}), **labels}
    if annotations:
        metadata["annotations"] = {**(metadata.get("annotations") or {}), **annotations}
    return stamped


def source_annotations(source_namespace: str, source_name: str) -> Dict[str, str]:
    return {
        SOURCE_NAMESPACE_ANNOTATION: source_namespace,
        SOURCE_NAME_ANNOTATION: source_name,
    }


def labels_of(manifest: Dict[str, Any]) -> Dict[str, str]:
    return (manifest.get("metadata") or {}).get("labels") or {}


def annotations_of(manifest: Dict[str, Any]) -> Dict[str, str]:
    return (manifest.get("metadata") or {}).get("annotations") or {}


def is_clone(manifest: Dict[str, Any]) -> bool:
    return labels_of(manifest).get(CLONED_SERVICEMONITOR_LABEL_KEY) == CLONED_SERVICEMONITOR_LABEL_VALUE


def is_owned_by(manifest: Dict[str, Any], installation_uid: str) -> bool:
    return bool(installation_uid) and labels_of(manifest).get(OWNER_LABEL_KEY) == installation_uid


def source_namespace_of(manifest: Dict[str, Any]) -> Optional[str]:
    """Namespace the clone was mirrored from, if recorded."""
    return annotations_of(manifest).get(SOURCE_NAMESPACE_ANNOTATION)
