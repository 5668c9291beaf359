"""
Version constraint validation (pure).

Checks a toolchain's reported version against a build dependency's
declared version. No I/O, no subprocess.
"""

from __future__ import annotations

import re

_VERSION_RE = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")


def parse_tool_version(output: str) -> str | None:
    """Pull the first ``X.Y[.Z]`` out of a ``<tool> version`` banner.

    ``go version go1.23.4 linux/amd64`` gives ``"1.23.4"``.
    """
    m = _VERSION_RE.search(output or "")
    return m.group(0) if m else None


def _parse_semver(v: str) -> tuple[int, ...]:
    return tuple(int(x) for x in v.lstrip("v").split(".")[:3])


def check_version_constraint(
    selected_version: str,
    constraint: dict,
) -> dict:
    """Validate a version against a constraint rule.

    Constraint types:
        - ``minor``: same major.minor as the reference (``go@1.23.4``
          accepts any ``1.23.x``)
        - ``gte``: >= a minimum version
        - ``exact``: must match exactly
        - ``semver_compat``: ~= compatibility (same major, >= minor)

    Args:
        selected_version: The version found, e.g. ``"1.23.1"``.
        constraint: Dict with ``type`` and ``reference``::

                {"type": "minor", "reference": "1.23.4"}
                {"type": "gte", "reference": "1.21"}

    Returns:
        ``{"valid": True}`` or ``{"valid": False, "message": "..."}``.
        Unparseable versions come back valid with ``parse_error`` set.
    """
    ctype = constraint.get("type", "gte")
    ref = constraint.get("reference", "")

    if not ref:
        return {"valid": True}

    try:
        sel_parts = _parse_semver(selected_version)
        ref_parts = _parse_semver(ref)
    except (ValueError, IndexError):
        return {"valid": True, "parse_error": True}

    if ctype == "minor":
        if sel_parts[:2] == ref_parts[:2]:
            return {"valid": True}
        return {
            "valid": False,
            "message": (
                f"Version {selected_version} is not {ref_parts[0]}.{ref_parts[1]}.x "
                f"(declared {ref})."
            ),
        }

    elif ctype == "gte":
        if sel_parts >= ref_parts:
            return {"valid": True}
        return {
            "valid": False,
            "message": f"Version {selected_version} < {ref}. Minimum required: {ref}.",
        }

    elif ctype == "exact":
        if sel_parts == ref_parts:
            return {"valid": True}
        return {
            "valid": False,
            "message": f"Version {selected_version} != {ref}. Exact match required.",
        }

    elif ctype == "semver_compat":
        if sel_parts[0] != ref_parts[0]:
            return {
                "valid": False,
                "message": f"Major version mismatch: {selected_version} vs {ref}.",
            }
        if sel_parts[1:] >= ref_parts[1:]:
            return {"valid": True}
        return {
            "valid": False,
            "message": f"Version {selected_version} not compatible with ~={ref}.",
        }

    return {"valid": True}
