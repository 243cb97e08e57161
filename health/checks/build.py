# ============================================================================
# BUILD INFO READER
# ============================================================================
# STATUS: Infrastructure - Build provenance
# PURPOSE: `build` section from the `.info` artifact
# ============================================================================
"""
Build Info Reader

Deployments drop a JSON artifact at `<app_root>/.info`:

    {"commit": "4f9c2d1e8b...", "version": "2.14.0"}

Best-effort: problems come back as descriptive strings in place of the
value, never as collector entries, and never change the summary status.
The file is re-read on every call.
"""

import json
import os
from typing import Any, Dict

from health.core import (
    HealthEvaluation,
    HealthProbe,
    ProbeContext,
    SECTION_BUILD,
    sort_fields,
)

BUILD_INFO_FILENAME = ".info"
EMPTY_VALUE = "(empty)"
ERROR_PREFIX = "Error:"
SHORT_COMMIT_LENGTH = 7


def is_blank(value: Any) -> bool:
    """Missing, empty, zero or false values all count as blank."""
    if isinstance(value, str):
        return value in ("", "0")
    return not value


class BuildInfoReader(HealthProbe):
    section = SECTION_BUILD

    def __init__(self, app_root: str):
        self.path = os.path.join(app_root, BUILD_INFO_FILENAME)

    def read(self, key: str) -> str:
        """Value of `key`, or a descriptive error string."""
        if not os.path.isfile(self.path):
            return f"{ERROR_PREFIX} '{self.path}' doesn't exist"

        try:
            with open(self.path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            return f"{ERROR_PREFIX} can't parse '{self.path}'; {e}"

        if not isinstance(data, dict):
            return f"{ERROR_PREFIX} can't parse '{self.path}'; expected a JSON object"

        value = data.get(key)
        if is_blank(value):
            return EMPTY_VALUE
        return str(value)

    def run(self, evaluation: HealthEvaluation, context: ProbeContext) -> Dict[str, Any]:
        commit = self.read("commit")
        if ERROR_PREFIX not in commit:
            commit = commit[:SHORT_COMMIT_LENGTH]

        return sort_fields({
            "commit": commit,
            "version": self.read("version"),
        })


__all__ = ["BuildInfoReader", "BUILD_INFO_FILENAME", "EMPTY_VALUE", "is_blank"]
