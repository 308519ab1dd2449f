"""Pipeline orchestration for build/check/clean flows."""

from __future__ import annotations

import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from .config import BuildConfig, ConfigError, load_config
from .generator.protoc import GeneratorInvoker, InvocationError, group_by_source_root
from .logging import get_logger
from .models import BuildUnit, ResolvedArtifact
from .postproc.header import HeaderWriter
from .postproc.imports import ImportRewriter, RewriteError
from .postproc.packages import AssemblyError, PackageAssembler
from .resolver import check_disjoint_outputs, resolve
from .verification.checkers import CommandChecker
from .verification.structure import VerificationError, Verifier

_STAGE_ERRORS = (InvocationError, RewriteError, AssemblyError, VerificationError)

UnitPlan = Tuple[BuildUnit, List[ResolvedArtifact]]


@dataclass
class UnitOutcome:
    """Result of one unit's pipeline."""

    name: str
    output_root: Path
    ok: bool = True
    stage: Optional[str] = None
    error: Optional[str] = None
    artifacts: int = 0
    rewritten: int = 0
    markers: int = 0
    headers: int = 0


@dataclass
class BuildReport:
    """Per-unit outcomes of a build or check run."""

    outcomes: List[UnitOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(outcome.ok for outcome in self.outcomes)

    @property
    def failures(self) -> List[UnitOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]


class Orchestrator:
    """Coordinates resolution, generation, post-processing and verification per unit."""

    def __init__(
        self,
        invoker: GeneratorInvoker | None = None,
        assembler: PackageAssembler | None = None,
        verifier: Verifier | None = None,
        header_writer: HeaderWriter | None = None,
        checker_factory: Callable[[Sequence[Sequence[str]]], CommandChecker] | None = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self.invoker = invoker or GeneratorInvoker()
        self.assembler = assembler or PackageAssembler()
        self.verifier = verifier or Verifier()
        self.header_writer = header_writer or HeaderWriter()
        self._checker_factory = checker_factory or CommandChecker
        self.max_workers = max_workers
        self.logger = get_logger("orchestrator")

    def plan(self, config: BuildConfig) -> List[UnitPlan]:
        """Resolve every unit up front; any ConfigError aborts before work starts."""
        check_disjoint_outputs(config.units)
        plans: List[UnitPlan] = []
        for unit in config.units:
            artifacts = resolve(unit)
            self.logger.info(
                "Unit %s: %d artifacts -> %s", unit.name, len(artifacts), unit.output_root
            )
            plans.append((unit, artifacts))
        return plans

    def run_build(
        self,
        config_path: str | Path,
        *,
        skip_verify: bool = False,
        postprocess_only: bool = False,
    ) -> BuildReport:
        """Generate, rewrite, assemble and verify every configured unit."""
        config = load_config(Path(config_path))
        self.logger.info("Starting build from %s", config.source)
        plans = self.plan(config)
        if postprocess_only:
            for unit, _ in plans:
                if not unit.output_root.is_dir():
                    raise ConfigError(
                        f"--postprocess-only: output directory does not exist: {unit.output_root}"
                    )
            self.logger.info("postprocess-only mode: skipping generation")

        workers = self._workers(config)

        def _task(plan: UnitPlan) -> UnitOutcome:
            unit, artifacts = plan
            return self._run_unit(
                config,
                unit,
                artifacts,
                skip_verify=skip_verify,
                generate=not postprocess_only,
                workers=workers,
            )

        return self._run_units(plans, _task, workers)

    def run_check(self, config_path: str | Path) -> BuildReport:
        """Verify existing output trees without generating."""
        config = load_config(Path(config_path))
        plans = self.plan(config)
        workers = self._workers(config)

        def _task(plan: UnitPlan) -> UnitOutcome:
            unit, artifacts = plan
            outcome = UnitOutcome(name=unit.name, output_root=unit.output_root, artifacts=len(artifacts))
            try:
                self._verify(config, unit, artifacts)
            except VerificationError as exc:
                return self._fail(outcome, exc.stage, exc)
            return outcome

        return self._run_units(plans, _task, workers)

    def run_clean(self, config_path: str | Path, *, yes: bool = False) -> List[Path]:
        """Remove every unit's output root; refuses without ``yes``."""
        config = load_config(Path(config_path))
        existing = [unit.output_root for unit in config.units if unit.output_root.exists()]
        if existing and not yes:
            paths = ", ".join(str(path) for path in existing)
            raise RuntimeError(f"refusing to remove {paths} without --yes")
        for path in existing:
            self.logger.info("Removing %s", path)
            shutil.rmtree(path)
        return existing

    # ------------------------------------------------------------------
    # Internal helpers

    def _run_units(
        self,
        plans: Sequence[UnitPlan],
        task: Callable[[UnitPlan], UnitOutcome],
        workers: Optional[int],
    ) -> BuildReport:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            outcomes = list(executor.map(task, plans))
        report = BuildReport(outcomes=outcomes)
        for outcome in report.outcomes:
            if outcome.ok:
                self.logger.info(
                    "Unit %s ok: %d artifacts, %d imports rewritten, %d markers created",
                    outcome.name,
                    outcome.artifacts,
                    outcome.rewritten,
                    outcome.markers,
                )
        return report

    def _run_unit(
        self,
        config: BuildConfig,
        unit: BuildUnit,
        artifacts: List[ResolvedArtifact],
        *,
        skip_verify: bool,
        generate: bool,
        workers: Optional[int],
    ) -> UnitOutcome:
        outcome = UnitOutcome(name=unit.name, output_root=unit.output_root, artifacts=len(artifacts))
        stage = "generate"
        try:
            if generate:
                for source_root, group in group_by_source_root(artifacts).items():
                    self.invoker.run(unit, source_root, group)

            stage = "rewrite"
            rewriter = ImportRewriter(unit.external_packages)
            outcome.rewritten = rewriter.rewrite_all(unit.output_root, artifacts, max_workers=workers)

            if unit.emit_header_comment:
                outcome.headers = self.header_writer.apply(unit.output_root, artifacts)

            stage = "assemble"
            created = self.assembler.assemble(unit.output_root, artifacts, unit.package_mode)
            outcome.markers = len(created)

            stage = "verify"
            if skip_verify:
                self.logger.info("Unit %s: verification skipped", unit.name)
            else:
                self._verify(config, unit, artifacts)
        except _STAGE_ERRORS as exc:
            return self._fail(outcome, exc.stage, exc)
        except OSError as exc:
            return self._fail(outcome, stage, exc)
        return outcome

    def _verify(self, config: BuildConfig, unit: BuildUnit, artifacts: Sequence[ResolvedArtifact]) -> None:
        self.verifier.verify(unit.output_root, artifacts)
        if config.verify is not None:
            checker = self._checker_factory(config.verify.commands())
            checker.check(unit.output_root, cwd=config.root)

    def _fail(self, outcome: UnitOutcome, stage: str, exc: BaseException) -> UnitOutcome:
        outcome.ok = False
        outcome.stage = stage
        outcome.error = str(exc)
        self.logger.error("Unit %s failed during %s: %s", outcome.name, stage, exc)
        return outcome

    def _workers(self, config: BuildConfig) -> Optional[int]:
        return config.max_workers or self.max_workers


__all__ = ["BuildReport", "Orchestrator", "UnitOutcome"]
