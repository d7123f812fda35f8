"""Runtime settings, read from the environment and overridden by CLI flags."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .quick_add import QUICK_ADD_MODES


@dataclass
class Settings:
    api_url: str = ""
    token: str | None = None
    quick_add_mode: str = "disabled"
    timeout: float = 30.0

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        return cls(
            api_url=env.get("TASKBOARD_API_URL", ""),
            token=env.get("TASKBOARD_TOKEN") or None,
            quick_add_mode=env.get("TASKBOARD_QUICK_ADD_MODE", "disabled"),
            timeout=float(env.get("TASKBOARD_TIMEOUT", "30")),
        )

    def validate(self) -> list[str]:
        """Return a list of problems; empty when the settings are usable."""
        problems = []
        if not self.api_url:
            problems.append("No API URL. Use --api-url or set TASKBOARD_API_URL")
        if self.quick_add_mode not in QUICK_ADD_MODES:
            problems.append(
                f"Unknown quick-add mode '{self.quick_add_mode}' "
                f"(expected one of {', '.join(QUICK_ADD_MODES)})"
            )
        return problems
