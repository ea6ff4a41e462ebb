"""Remediation Engine: safety check, backup, apply, validate, commit or rollback.

One attempt runs start to finish synchronously. Callers serialize attempts per
file; the engine does not lock.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from devmonitor.config import Settings
from devmonitor.logging_config import get_logger
from devmonitor.models import (
    BackupRecord,
    Diagnostic,
    DiagnosticCategory,
    FixChange,
    FixResult,
    RankedDiagnostic,
)
from devmonitor.remediation.backups import BackupError, BackupStore
from devmonitor.remediation.lint import LintError, LintRunner, LintUnavailableError
from devmonitor.remediation.safety import RiskLevel, SafetyPolicy
from devmonitor.remediation.strategies import FixStrategy, StrategyKind, resolve_strategy
from devmonitor.remediation.transforms import (
    TRANSFORMS,
    LineNotFoundError,
    TextEdit,
    fix_module_specifier,
)
from devmonitor.remediation.validation import FixValidator

logger = get_logger(__name__)

CODE_SUFFIXES = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".mts", ".cts")

# Strategies handled by the engine itself rather than a text transform
ENGINE_STRATEGIES = frozenset({
    StrategyKind.LINT_AUTOFIX,
    StrategyKind.FIX_MODULE_RESOLUTION,
    StrategyKind.INSTALL_DEPENDENCY,
    StrategyKind.FIX_CONFIG_FILE,
})

_UNHANDLED = set(StrategyKind) - set(TRANSFORMS) - ENGINE_STRATEGIES
if _UNHANDLED:
    raise RuntimeError(f"Strategies without a handler: {sorted(_UNHANDLED)}")

CATEGORY_SUGGESTIONS: dict[DiagnosticCategory, tuple[str, ...]] = {
    DiagnosticCategory.TYPESCRIPT: (
        "Check TypeScript documentation for this error code",
        "Run `npx tsc --noEmit` to see the full type error context",
    ),
    DiagnosticCategory.ESLINT: (
        "Run `npx eslint --fix` on the file",
        "Adjust the rule in the ESLint config if the warning is intentional",
    ),
    DiagnosticCategory.IMPORT: (
        "Check that the import path exists and matches the file name casing",
        "Install the missing package with npm install",
    ),
    DiagnosticCategory.BUILD: (
        "Read the dev server output just above this error for the failing file",
        "Restart the dev server after changing configuration files",
    ),
    DiagnosticCategory.RUNTIME: (
        "Inspect the stack trace in the browser console",
        "Guard against null or undefined values before property access",
    ),
    DiagnosticCategory.SYNTAX: (
        "Check for unbalanced brackets or quotes near the reported line",
        "Run the file through Prettier to locate the syntax error",
    ),
    DiagnosticCategory.UNKNOWN: (
        "Search the full dev server output for the surrounding context",
        "Restart the dev server to rule out a stale build cache",
    ),
}


@dataclass
class FixPreview:
    can_proceed: bool
    preview: str
    strategy: Optional[FixStrategy] = None
    risk: Optional[RiskLevel] = None
    reason: Optional[str] = None


class RemediationEngine:
    """Resolves a fix strategy for a diagnostic and applies it with backup and rollback."""

    def __init__(
        self,
        settings: Settings,
        lint: Optional[LintRunner] = None,
        backups: Optional[BackupStore] = None,
    ) -> None:
        self._settings = settings
        self._root = Path(settings.project_path)
        self.policy = SafetyPolicy(settings.safe_mode, settings.max_fix_file_size)
        self.lint = lint or LintRunner(settings.lint_command, self._root, settings.lint_timeout)
        self.backups = backups or BackupStore(settings.backup_dir)
        self.validator = FixValidator(self.lint, settings.max_file_size_after_fix)

    @property
    def safe_mode(self) -> bool:
        return self.policy.safe_mode

    # ── Queries ──────────────────────────────────────────────────────

    def resolve(self, diagnostic: Diagnostic) -> Optional[FixStrategy]:
        return resolve_strategy(diagnostic)

    def target_path(self, diagnostic: Diagnostic) -> Optional[Path]:
        if not diagnostic.location.is_known:
            return None
        path = Path(diagnostic.location.file)
        return path if path.is_absolute() else self._root / path

    def can_fix(self, diagnostic: Diagnostic) -> bool:
        """True when a strategy exists, is not advisory, and passes the safety policy."""
        strategy = self.resolve(diagnostic)
        if strategy is None or strategy.kind in (StrategyKind.INSTALL_DEPENDENCY, StrategyKind.FIX_CONFIG_FILE):
            return False
        return self.policy.check(strategy, self._existing_file(diagnostic, strategy)) is None

    def preview(self, diagnostic: Diagnostic) -> FixPreview:
        """Describe what ``apply_fix`` would do without touching the file."""
        location = f"{diagnostic.location.file}:{diagnostic.location.line}"
        strategy = self.resolve(diagnostic)
        if strategy is None:
            return FixPreview(False, f"No automatic fix for {location}", reason="No automatic fix available")

        risk = self.policy.assess_risk(strategy)
        text = f"{strategy.description} in {location} ({risk} risk)"
        reason = self.policy.check(strategy, self._existing_file(diagnostic, strategy)) or self._advisory_reason(strategy)
        return FixPreview(reason is None, text, strategy=strategy, risk=risk, reason=reason)

    def safe_mode_alternatives(self, diagnostic: Diagnostic) -> list[str]:
        alternatives: list[str] = []
        if isinstance(diagnostic, RankedDiagnostic) and diagnostic.suggested_fix:
            alternatives.append(diagnostic.suggested_fix)
        strategy = self.resolve(diagnostic)
        if strategy is not None:
            alternatives.append(f"Apply manually: {strategy.description}")
        alternatives.append("Review the diagnostic in the dev server output and edit the file by hand")
        alternatives.append("Use force_apply_fix() to override safe mode restrictions")
        return alternatives

    def fix_suggestions(self, diagnostic: Diagnostic) -> list[str]:
        suggestions: list[str] = []
        if isinstance(diagnostic, RankedDiagnostic) and diagnostic.suggested_fix:
            suggestions.append(diagnostic.suggested_fix)
        if diagnostic.code:
            suggestions.append(f"Look up {diagnostic.code} for known causes")
        if diagnostic.rule:
            suggestions.append(f"Read the documentation for the {diagnostic.rule} rule")
        suggestions.extend(CATEGORY_SUGGESTIONS.get(diagnostic.category, CATEGORY_SUGGESTIONS[DiagnosticCategory.UNKNOWN]))
        return suggestions

    # ── Fix attempts ─────────────────────────────────────────────────

    def force_apply_fix(self, diagnostic: Diagnostic) -> FixResult:
        """Apply with safe mode off for exactly this attempt."""
        previous = self.policy.safe_mode
        self.policy.safe_mode = False
        try:
            return self.apply_fix(diagnostic)
        finally:
            self.policy.safe_mode = previous

    def apply_fix(self, diagnostic: Diagnostic) -> FixResult:
        file = diagnostic.location.file
        strategy = self.resolve(diagnostic)
        if strategy is None:
            return FixResult.failed("No automatic fix available for this diagnostic", file=file)

        path = self._existing_file(diagnostic, strategy)
        blocked = self.policy.check(strategy, path)
        if blocked:
            logger.info("fix_blocked", diagnostic_id=diagnostic.id, strategy=str(strategy.kind), reason=blocked)
            recommendation = "Use force_apply_fix() to override safe mode restrictions" if self.safe_mode else None
            return FixResult.failed(blocked, file=file, recommendation=recommendation)

        advisory = self._advisory_reason(strategy)
        if advisory:
            return FixResult.failed(advisory, file=file, recommendation=self._advisory_recommendation(strategy))

        if path is None:
            return FixResult.failed(f"No automatic fix available: cannot locate source file for {file}", file=file)

        try:
            original = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            return FixResult.failed(f"Cannot read {path}: {exc}", file=str(path))

        try:
            edit = self._compute_edit(diagnostic, strategy, path, original)
        except LineNotFoundError as exc:
            return FixResult.failed(str(exc), file=str(path))
        except LintUnavailableError as exc:
            return FixResult.failed(str(exc), file=str(path), recommendation="Install ESLint in the project")
        except LintError as exc:
            return FixResult.failed(str(exc), file=str(path))
        except Exception as exc:
            logger.error("fix_transform_failed", file=str(path), strategy=str(strategy.kind), error=str(exc))
            return FixResult.failed(f"Fix failed: {exc}", file=str(path))
        if isinstance(edit, FixResult):
            return edit

        return self._commit(path, original, edit, strategy, diagnostic)

    def _compute_edit(
        self,
        diagnostic: Diagnostic,
        strategy: FixStrategy,
        path: Path,
        original: str,
    ) -> TextEdit | FixResult:
        if strategy.kind == StrategyKind.LINT_AUTOFIX:
            output = self.lint.fix(path)
            if output is None or output == original:
                return FixResult.failed("No auto-fixes available from ESLint", file=str(path))
            return TextEdit(output, "lint_autofix", {"rule": diagnostic.rule})

        if strategy.kind == StrategyKind.FIX_MODULE_RESOLUTION:
            edit = fix_module_specifier(original, strategy.symbol or "", self._sibling_modules(path, strategy.symbol or ""))
        else:
            edit = TRANSFORMS[strategy.kind](original, diagnostic.location.line, strategy)

        if edit is None:
            if strategy.kind == StrategyKind.ADD_MISSING_PROPERTY:
                return FixResult.failed(
                    f"Adding property '{strategy.symbol}' requires manual intervention: no object literal near line {diagnostic.location.line}",
                    file=str(path),
                )
            return FixResult.failed(f"Nothing to fix: {strategy.description} did not match {path.name}", file=str(path))
        return edit

    def _commit(
        self,
        path: Path,
        original: str,
        edit: TextEdit,
        strategy: FixStrategy,
        diagnostic: Diagnostic,
    ) -> FixResult:
        record: Optional[BackupRecord] = None
        if self._settings.backup_enabled:
            try:
                record = self.backups.create(path, fix_type=str(strategy.kind), description=strategy.description)
            except BackupError as exc:
                logger.error("fix_backup_failed", file=str(path), error=str(exc))
                return FixResult.failed(f"Backup failed, fix aborted: {exc}", file=str(path))

        backup_id = record.id if record else None
        try:
            path.write_text(edit.content, encoding="utf-8")
        except Exception as exc:
            note = self._rollback(path, original, record)
            logger.error("fix_apply_failed", file=str(path), error=str(exc))
            return FixResult.failed(f"Fix failed: {exc}{note}", file=str(path))

        if self._settings.validate_fixes:
            validation = self.validator.validate(path, baseline=original)
            if not validation.is_valid:
                note = self._rollback(path, original, record)
                logger.warning("fix_validation_failed", file=str(path), error=validation.error)
                return FixResult.failed(f"Fix validation failed: {validation.error}{note}", file=str(path))

        logger.info(
            "fix_applied",
            diagnostic_id=diagnostic.id,
            file=str(path),
            strategy=str(strategy.kind),
            backup_id=backup_id,
        )
        return FixResult(
            success=True,
            applied=True,
            file=str(path),
            change=FixChange(edit.change_type, {"strategy": str(strategy.kind), **edit.details}),
            backup_id=backup_id,
        )

    def _rollback(self, path: Path, original: str, record: Optional[BackupRecord]) -> str:
        """Put the pre-fix content back. Returns a note for the result message when the backup could not be used."""
        if record is not None:
            try:
                self.backups.restore(record.id)
            except (BackupError, OSError) as exc:
                logger.error("fix_rollback_backup_failed", file=str(path), backup_id=record.id, error=str(exc))
            else:
                logger.info("fix_rolled_back", file=str(path), backup_id=record.id)
                return ""
        try:
            path.write_text(original, encoding="utf-8")
        except OSError as exc:
            logger.error("fix_rollback_failed", file=str(path), error=str(exc))
            return f" (rollback failed: {exc})"
        logger.info("fix_rolled_back", file=str(path), backup_id=None)
        return "" if record is None else " (backup unusable; original content rewritten)"

    # ── Helpers ──────────────────────────────────────────────────────

    def _existing_file(self, diagnostic: Diagnostic, strategy: FixStrategy) -> Optional[Path]:
        """The file a fix would rewrite, after following a directory to its importer."""
        path = self._resolve_target(diagnostic, strategy)
        return path if path is not None and path.is_file() else None

    @staticmethod
    def _advisory_reason(strategy: FixStrategy) -> Optional[str]:
        if strategy.kind == StrategyKind.INSTALL_DEPENDENCY:
            return f"Installing '{strategy.symbol}' requires user confirmation"
        if strategy.kind == StrategyKind.FIX_CONFIG_FILE:
            return f"Changes to {strategy.symbol} require manual intervention"
        return None

    @staticmethod
    def _advisory_recommendation(strategy: FixStrategy) -> Optional[str]:
        if strategy.kind == StrategyKind.INSTALL_DEPENDENCY:
            return f"Run: npm install {strategy.symbol}"
        if strategy.kind == StrategyKind.FIX_CONFIG_FILE:
            return f"Review {strategy.symbol} and restart the dev server"
        return None

    def _resolve_target(self, diagnostic: Diagnostic, strategy: FixStrategy) -> Optional[Path]:
        path = self.target_path(diagnostic)
        if path is None:
            return None
        if path.is_dir() and strategy.symbol:
            # module-not-found errors are reported against the importing directory
            return self._find_importer(path, strategy.symbol)
        return path

    @staticmethod
    def _find_importer(directory: Path, specifier: str) -> Optional[Path]:
        needles = (f"'{specifier}'", f'"{specifier}"')
        for entry in sorted(directory.iterdir()):
            if not entry.is_file() or entry.suffix not in CODE_SUFFIXES:
                continue
            try:
                text = entry.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue
            if any(needle in text for needle in needles):
                return entry
        return None

    @staticmethod
    def _sibling_modules(importer: Path, specifier: str) -> list[str]:
        """Import specifiers that exist next to where ``specifier`` points."""
        prefix = specifier.rpartition("/")[0]
        base = (importer.parent / prefix) if prefix else importer.parent
        if not base.is_dir():
            return []
        available: list[str] = []
        for entry in sorted(base.iterdir()):
            if entry.is_file() and entry.suffix in CODE_SUFFIXES:
                name = entry.stem
            elif entry.is_dir() and any((entry / f"index{suffix}").exists() for suffix in CODE_SUFFIXES):
                name = entry.name
            else:
                continue
            available.append(f"{prefix}/{name}" if prefix else name)
        return available

    # ── Backup maintenance ───────────────────────────────────────────

    def list_backups(self, file_path: Optional[Path] = None) -> list[BackupRecord]:
        return self.backups.list(file_path)

    def validate_backup(self, backup_id: str) -> bool:
        return self.backups.validate(backup_id)

    def restore_backup(self, backup_id: str) -> BackupRecord:
        return self.backups.restore(backup_id)

    def prune_backups(self) -> list[str]:
        return self.backups.prune(self._settings.backup_retention_days)
