"""
Build pipeline for a Flutter iOS project.

The pipeline is a fixed, ordered list of steps. Each step reads the
BuildConfig from the shared BuildContext, mutates the project on disk and
either returns normally or raises a BuildError. Critical steps stop the
pipeline on the first error; non-critical ones downgrade errors to warnings.

Stages only move forward:

    Init -> Validated -> Cleaned -> ConfigGenerated -> DependenciesResolved
         -> IdentityRewritten -> Built -> Packaged -> Done

with Failed reachable from any step.
"""

import logging
import os
import shutil
import time
from dataclasses import dataclass, field
from enum import Enum

from . import artifacts, build, cleanup, icons, identity, podfile, signing
from .config import with_derived_values
from .errors import BuildError, MissingConfig, MissingDependency, VerificationMismatch
from .pods import DependencyResolver
from .tools import DEFAULT_TIMEOUT, ToolRunner, find_missing_tools, run_checked

logger = logging.getLogger('ios-workflow')

REQUIRED_PROJECT_FILES = (
    'pubspec.yaml',
    os.path.join('lib', 'main.dart'),
    os.path.join('ios', 'Runner', 'Info.plist'),
    os.path.join('ios', 'Runner.xcodeproj', 'project.pbxproj'),
)

ADVANCED_CLEANUP_SCRIPT = 'lib/scripts/ios-workflow/cleanup_ios.sh'
PUSH_SETUP_SCRIPT = 'lib/scripts/ios-workflow/setup_push_notifications_complete.sh'


class Stage(Enum):
    INIT = 'Init'
    VALIDATED = 'Validated'
    CLEANED = 'Cleaned'
    CONFIG_GENERATED = 'ConfigGenerated'
    DEPENDENCIES_RESOLVED = 'DependenciesResolved'
    IDENTITY_REWRITTEN = 'IdentityRewritten'
    BUILT = 'Built'
    PACKAGED = 'Packaged'
    DONE = 'Done'
    FAILED = 'Failed'


STAGE_ORDER = [stage for stage in Stage if stage is not Stage.FAILED]


@dataclass
class PipelineOptions:
    apply_icon_fix: bool = True
    # None follows PUSH_NOTIFY from the build config
    apply_push_setup: bool = None
    strict_verification: bool = False
    required_helpers: tuple = ()
    timeout: int = DEFAULT_TIMEOUT
    derived_data_dir: str = cleanup.DEFAULT_DERIVED_DATA
    profiles_dir: str = signing.DEFAULT_PROFILES_DIR
    advanced_cleanup_script: str = ADVANCED_CLEANUP_SCRIPT
    push_setup_script: str = PUSH_SETUP_SCRIPT


@dataclass
class BuildContext:
    project_dir: str
    config: object
    options: PipelineOptions = field(default_factory=PipelineOptions)
    runner: object = None
    which: object = shutil.which
    profile: object = None
    export_options_path: str = None
    artifact_path: str = None
    warnings: list = field(default_factory=list)
    logs: list = field(default_factory=list)

    def __post_init__(self):
        if self.runner is None:
            self.runner = ToolRunner(timeout=self.options.timeout)

    @property
    def ios_dir(self):
        return os.path.join(self.project_dir, 'ios')

    @property
    def logs_dir(self):
        return os.path.join(self.project_dir, 'build', 'logs')

    def warn(self, message):
        logger.warning(f"⚠ {message}")
        self.warnings.append(message)


@dataclass
class Step:
    name: str
    action: object
    critical: bool = True
    reaches: Stage = None


@dataclass
class StepResult:
    name: str
    success: bool
    duration_seconds: float = 0.0
    error: BuildError = None


class Pipeline:
    def __init__(self, context):
        self.context = context
        self.stage = Stage.INIT
        self.results = []
        self.resolver = None

    def steps(self):
        ctx = self.context
        steps = [
            Step('validate', self.validate, reaches=Stage.VALIDATED),
            Step('clean', self.clean, reaches=Stage.CLEANED),
            Step('advanced cleanup', self.advanced_cleanup, critical=False),
            Step('generate config', self.generate_config, reaches=Stage.CONFIG_GENERATED),
            Step('resolve dependencies', self.resolve_dependencies),
            Step('verify dependencies', self.verify_dependencies, reaches=Stage.DEPENDENCIES_RESOLVED),
            Step('rewrite identity', self.rewrite_identity, reaches=Stage.IDENTITY_REWRITTEN),
        ]
        if ctx.options.apply_icon_fix:
            steps.append(Step('fix icons', self.fix_icons))
        push = ctx.options.apply_push_setup
        if push or (push is None and ctx.config.push_notify):
            steps.append(Step('push setup', self.push_setup))
        steps.extend([
            Step('build', self.build, reaches=Stage.BUILT),
            Step('package', self.package, reaches=Stage.PACKAGED),
        ])
        return steps

    def advance(self, stage):
        if STAGE_ORDER.index(stage) <= STAGE_ORDER.index(self.stage):
            raise RuntimeError(f"Illegal stage transition {self.stage.value} -> {stage.value}")
        logger.debug(f"Stage: {self.stage.value} -> {stage.value}")
        self.stage = stage

    def run(self):
        """Run every step in order. Raises the BuildError of the first critical failure.

        Unexpected exceptions from a step are wrapped in a BuildError so the
        pipeline still ends in Failed with a recorded StepResult.
        """
        if self.stage is not Stage.INIT:
            raise RuntimeError(f"Pipeline already ran (stage: {self.stage.value})")

        steps = self.steps()
        for index, step in enumerate(steps, start=1):
            logger.info(f"=== Step {index}/{len(steps)}: {step.name} ===")
            started = time.monotonic()
            try:
                step.action()
            except Exception as e:
                duration = time.monotonic() - started
                error = e if isinstance(e, BuildError) else BuildError(str(e))
                self.results.append(StepResult(step.name, False, duration, error))
                if step.critical:
                    logger.error(f"✗ [{error.label}] {step.name} failed: {e}")
                    self.stage = Stage.FAILED
                    if error is e:
                        raise
                    raise error from e
                self.context.warn(f"{step.name} failed, continuing: {e}")
                continue

            self.results.append(StepResult(step.name, True, time.monotonic() - started))
            if step.reaches:
                self.advance(step.reaches)

        self.advance(Stage.DONE)
        logger.info("🎉 iOS build process completed successfully!")
        return self.results

    # -- steps ---------------------------------------------------------------

    def validate(self):
        ctx = self.context
        missing_files = []
        for helper in ctx.options.required_helpers:
            if not os.path.isfile(os.path.join(ctx.project_dir, helper)):
                logger.error(f"✗ Required script not found: {helper}")
                missing_files.append(helper)
        for rel_path in REQUIRED_PROJECT_FILES:
            if not os.path.isfile(os.path.join(ctx.project_dir, rel_path)):
                logger.error(f"✗ Required project file not found: {rel_path}")
                missing_files.append(rel_path)

        missing_tools = find_missing_tools(which=ctx.which)
        for tool in missing_tools:
            logger.error(f"✗ Required tool not on PATH: {tool}")

        missing_keys = ctx.config.missing_required()
        for key in missing_keys:
            logger.error(f"✗ {key}: MISSING (critical for iOS build)")

        if missing_keys:
            raise MissingConfig(
                f"Missing required configuration: {', '.join(missing_keys)}",
                items=missing_keys + missing_files + missing_tools,
            )
        if missing_files or missing_tools:
            raise MissingDependency(
                f"Missing required dependencies: {', '.join(missing_files + missing_tools)}",
                items=missing_files + missing_tools,
            )

        ctx.config = with_derived_values(ctx.config, ctx.project_dir)
        for line in ctx.config.describe():
            logger.info(line)
        logger.info("✓ All required scripts, tools and variables are present")

    def clean(self):
        cleanup.clean_project(self.context.project_dir, self.context.options.derived_data_dir)

    def advanced_cleanup(self):
        ctx = self.context
        script = os.path.join(ctx.project_dir, ctx.options.advanced_cleanup_script)
        if not os.path.isfile(script):
            logger.info("Advanced cleanup script not found, using basic cleanup only")
            return
        run_checked(
            ctx.runner, ['bash', script],
            cwd=ctx.project_dir,
            log_path=os.path.join(ctx.logs_dir, 'advanced_cleanup.log'),
        )

    def generate_config(self):
        ctx = self.context
        config = ctx.config

        ctx.profile = signing.install_provisioning_profile(
            config, os.path.join(ctx.project_dir, 'build', 'signing'), ctx.options.profiles_dir
        )

        podfile_path = podfile.write_podfile(ctx.project_dir, config)
        with open(podfile_path, 'r') as f:
            for problem in podfile.check_podfile(f.read(), config.min_ios_version):
                ctx.warn(f"Podfile check: {problem}")

        signing.write_release_xcconfig(ctx.project_dir, config, ctx.profile.uuid)
        ctx.export_options_path = signing.create_export_options_plist(
            os.path.join(ctx.ios_dir, 'ExportOptions.plist'),
            config.apple_team_id, config.bundle_id, ctx.profile.uuid,
        )

    def resolve_dependencies(self):
        ctx = self.context
        build.flutter_pub_get(ctx.runner, ctx.project_dir, ctx.logs_dir, ctx.options.timeout)
        self.resolver = DependencyResolver(ctx.runner, ctx.ios_dir, ctx.logs_dir, ctx.options.timeout)
        self.resolver.install()

    def verify_dependencies(self):
        ctx = self.context
        remaining = self.resolver.verify(ctx.config.min_ios_version)
        if not remaining:
            return

        count = sum(len(markers) for markers in remaining.values())
        message = f"{count} disallowed signing/platform marker(s) remain in {len(remaining)} Pods project file(s)"
        if ctx.options.strict_verification:
            raise VerificationMismatch(message, items=sorted(remaining))
        # TODO: make strict verification the default once the product owner confirms zero tolerance
        ctx.warn(message)

    def rewrite_identity(self):
        ctx = self.context
        identity.rewrite_identity(ctx.project_dir, ctx.config)
        actual_id, _ = identity.read_bundle_identity(ctx.project_dir)
        if actual_id != ctx.config.bundle_id:
            raise BuildError(f"Bundle ID mismatch after rewrite: expected {ctx.config.bundle_id}, got {actual_id}")

    def fix_icons(self):
        icons.fix_app_icons(self.context.project_dir)

    def push_setup(self):
        ctx = self.context
        script = os.path.join(ctx.project_dir, ctx.options.push_setup_script)
        if not os.path.isfile(script):
            ctx.warn("Push notification setup script not found, skipping")
            return
        run_checked(
            ctx.runner, ['bash', script],
            cwd=ctx.project_dir,
            log_path=os.path.join(ctx.logs_dir, 'push_setup.log'),
        )

    def build(self):
        ctx = self.context
        timeout = ctx.options.timeout
        results = [build.flutter_debug_build(ctx.runner, ctx.project_dir, ctx.logs_dir, timeout)]
        build.ensure_generated_xcconfig(ctx.project_dir, ctx.config, ctx.which)
        results.append(build.flutter_release_build(ctx.runner, ctx.project_dir, ctx.config, ctx.logs_dir, timeout))
        results.append(build.archive(ctx.runner, ctx.project_dir, ctx.config, ctx.profile.uuid, ctx.logs_dir, timeout))
        results.append(build.export_ipa(ctx.runner, ctx.project_dir, ctx.export_options_path, ctx.logs_dir, timeout))
        ctx.logs.extend(result.log_path for result in results if result.log_path)

    def package(self):
        ctx = self.context
        ctx.artifact_path = artifacts.locate_artifact(ctx.project_dir)
        artifacts.publish_artifact(ctx.project_dir, ctx.artifact_path, ctx.config, ctx.logs)
