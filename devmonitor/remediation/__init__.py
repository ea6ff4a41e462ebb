"""Remediation: strategy resolution, text transforms, backups and the fix engine."""

from devmonitor.remediation.backups import BackupStore
from devmonitor.remediation.engine import FixPreview, RemediationEngine
from devmonitor.remediation.safety import RiskLevel, SafetyPolicy
from devmonitor.remediation.strategies import FixStrategy, StrategyKind, resolve_strategy

__all__ = [
    "BackupStore",
    "FixPreview",
    "FixStrategy",
    "RemediationEngine",
    "RiskLevel",
    "SafetyPolicy",
    "StrategyKind",
    "resolve_strategy",
]
