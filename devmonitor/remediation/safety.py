"""Safety policy: decides whether a fix may run at all."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Optional

from devmonitor.remediation.strategies import FixStrategy, StrategyKind

# Pure removals, import additions, extension fixes and the linter's own fixer
ALLOWED_IN_SAFE_MODE = frozenset({
    StrategyKind.REMOVE_DEBUG_STATEMENT,
    StrategyKind.REMOVE_UNUSED_SYMBOL,
    StrategyKind.ADD_IMPORT,
    StrategyKind.FIX_IMPORT_EXTENSION,
    StrategyKind.LINT_AUTOFIX,
})

DENIED_IN_SAFE_MODE = frozenset({
    StrategyKind.INSTALL_DEPENDENCY,
    StrategyKind.FIX_CONFIG_FILE,
    StrategyKind.FIX_API_ROUTE,
    StrategyKind.FIX_IMAGE_OPTIMIZATION,
    StrategyKind.FIX_HOOK_DEPENDENCIES,
})


class RiskLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SafetyPolicy:
    """Conservative-mode allow/deny lists plus a file-size ceiling.

    The size ceiling applies whether or not conservative mode is on.
    """

    def __init__(self, safe_mode: bool = True, max_file_size: int = 50 * 1024) -> None:
        self.safe_mode = safe_mode
        self.max_file_size = max_file_size

    @staticmethod
    def assess_risk(strategy: FixStrategy) -> RiskLevel:
        if strategy.kind in DENIED_IN_SAFE_MODE:
            return RiskLevel.HIGH
        if strategy.kind in ALLOWED_IN_SAFE_MODE:
            return RiskLevel.LOW
        return RiskLevel.MEDIUM

    def allows(self, strategy: FixStrategy) -> bool:
        if not self.safe_mode:
            return True
        if strategy.kind in DENIED_IN_SAFE_MODE:
            return False
        return strategy.kind in ALLOWED_IN_SAFE_MODE

    def check(self, strategy: FixStrategy, path: Optional[Path] = None) -> Optional[str]:
        """Return the reason a fix is blocked, or None if it may proceed."""
        if self.safe_mode and strategy.kind in DENIED_IN_SAFE_MODE:
            return f"Fix '{strategy.kind}' is blocked in safe mode ({self.assess_risk(strategy)} risk)"
        if not self.allows(strategy):
            return f"Fix '{strategy.kind}' is not on the safe mode allow-list"
        if path is not None and path.is_file():
            size = path.stat().st_size
            if size > self.max_file_size:
                return f"File too large for automatic fixes: {size} bytes (limit {self.max_file_size})"
        return None
