"""Server-side patch application for the in-memory executor."""

import copy
import json
from typing import Any

import jsonpatch

from kubeclient.options import PatchType


class PatchError(ValueError):
    """The patch body cannot be parsed or applied."""


class UnsupportedPatch(PatchError):
    """The patch type is not accepted for this kind."""


def merge_patch(target: Any, patch: Any) -> Any:
    """JSON merge patch (RFC 7386): ``null`` removes, objects merge, the rest replaces."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result


def apply_patch(document: dict[str, Any], patch_type: PatchType, body: bytes) -> dict[str, Any]:
    """Apply ``body`` to ``document`` and return the patched copy."""
    patch_type = PatchType(patch_type)
    if patch_type in (PatchType.STRATEGIC_MERGE, PatchType.APPLY):
        raise UnsupportedPatch(f"patch type {patch_type.value} is not supported for custom resources")
    if not body or not body.strip():
        raise PatchError("empty patch body")
    try:
        patch = json.loads(body)
    except ValueError as e:
        raise PatchError(f"malformed patch body: {e}") from e

    if patch_type == PatchType.MERGE:
        if not isinstance(patch, dict):
            raise PatchError("merge patch must be a JSON object")
        return merge_patch(document, patch)

    if not isinstance(patch, list):
        raise PatchError("JSON patch must be a list of operations")
    try:
        return jsonpatch.JsonPatch(patch).apply(document)
    except (jsonpatch.JsonPatchException, jsonpatch.JsonPointerException, TypeError, KeyError) as e:
        raise PatchError(f"cannot apply JSON patch: {e}") from e
