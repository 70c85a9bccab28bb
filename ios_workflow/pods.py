import glob
import logging
import os
import re

from .errors import ExternalToolFailure
from .tools import run_checked

logger = logging.getLogger('ios-workflow')

# A manual profile assignment that survived the post_install hook, e.g.
#   PROVISIONING_PROFILE_SPECIFIER = "match AppStore com.acme.app";
# Empty assignments ("" or nothing) are what the hook writes and are allowed.
STALE_PROFILE_PATTERN = re.compile(
    r'^\s*"?PROVISIONING_PROFILE(?:_SPECIFIER|_UUID)?(?:\[[^\]]*\])?"?\s*=\s*(?!\s)(?!"";)(?!;)[^;\n]+;',
    re.MULTILINE,
)

DEPLOYMENT_TARGET_PATTERN = re.compile(r'IPHONEOS_DEPLOYMENT_TARGET\s*=\s*"?([\d.]+)"?;')

# Lines dropped from the Pods project by the signing scrub
POD_SIGNING_LINE_PATTERNS = (
    re.compile(r'^\s*PROVISIONING_PROFILE_SPECIFIER = ".*";\s*$'),
    re.compile(r'^\s*CODE_SIGN_STYLE = Manual;\s*$'),
    re.compile(r'^\s*DEVELOPMENT_TEAM = ".*";\s*$'),
    re.compile(r'^\s*CODE_SIGN_IDENTITY = ".*";\s*$'),
)


def version_tuple(version):
    return tuple(int(part) for part in version.split('.') if part.isdigit())


def find_markers(content, min_ios_version):
    """Return the disallowed markers found in pbxproj text.

    Each entry is a (kind, text) pair where kind is 'signing' for a stale
    provisioning-profile assignment or 'platform' for a deployment target
    below min_ios_version.
    """
    markers = []
    for match in STALE_PROFILE_PATTERN.finditer(content):
        markers.append(('signing', match.group(0).strip()))

    minimum = version_tuple(min_ios_version)
    for match in DEPLOYMENT_TARGET_PATTERN.finditer(content):
        if version_tuple(match.group(1)) < minimum:
            markers.append(('platform', match.group(0).strip()))
    return markers


def pods_project_files(ios_dir):
    return sorted(glob.glob(os.path.join(ios_dir, 'Pods', '**', '*.pbxproj'), recursive=True))


def scan_pods(ios_dir, min_ios_version):
    """Map each Pods project file to the markers it still contains."""
    findings = {}
    for path in pods_project_files(ios_dir):
        with open(path, 'r', errors='replace') as f:
            markers = find_markers(f.read(), min_ios_version)
        if markers:
            findings[path] = markers
    return findings


def strip_pod_signing(content):
    """Drop manual signing lines from a Pods project file."""
    kept = [
        line for line in content.splitlines(keepends=True)
        if not any(pattern.match(line) for pattern in POD_SIGNING_LINE_PATTERNS)
    ]
    return ''.join(kept)


def scrub_pods_project(ios_dir):
    """Remove manual signing lines from Pods.xcodeproj. Returns True when the file changed."""
    pods_project = os.path.join(ios_dir, 'Pods', 'Pods.xcodeproj', 'project.pbxproj')
    if not os.path.exists(pods_project):
        logger.warning(f"⚠ Pods project not found at {pods_project}, skipping signing scrub")
        return False

    with open(pods_project, 'r') as f:
        content = f.read()
    scrubbed = strip_pod_signing(content)
    if scrubbed == content:
        logger.info("✓ Pods project has no manual signing settings")
        return False

    with open(pods_project, 'w') as f:
        f.write(scrubbed)
    logger.info("✓ Removed manual signing settings from Pod targets")
    return True


class DependencyResolver:
    """Runs `pod install` against the generated Podfile with a single retry budget.

    The retry re-applies the Podfile post_install hook with
    `pod install --no-repo-update`. It is spent either on an install failure
    or, later, on markers found by verify().
    """

    def __init__(self, runner, ios_dir, logs_dir, timeout=None):
        self.runner = runner
        self.ios_dir = ios_dir
        self.logs_dir = logs_dir
        self.timeout = timeout
        self.retry_used = False

    def install(self):
        try:
            return run_checked(
                self.runner, ['pod', 'install', '--repo-update'],
                cwd=self.ios_dir,
                log_path=os.path.join(self.logs_dir, 'pod_install.log'),
                timeout=self.timeout,
            )
        except ExternalToolFailure as e:
            logger.warning(f"⚠ pod install failed ({e}), re-applying post_install hook once")
            return self.reapply_hook()

    def reapply_hook(self):
        self.retry_used = True
        return run_checked(
            self.runner, ['pod', 'install', '--no-repo-update'],
            cwd=self.ios_dir,
            log_path=os.path.join(self.logs_dir, 'pod_install_retry.log'),
            timeout=self.timeout,
        )

    def verify(self, min_ios_version):
        """Scan the Pods projects, fixing what can be fixed.

        Returns the findings that are still present afterwards.
        """
        if not os.path.isdir(os.path.join(self.ios_dir, 'Pods')):
            logger.warning("⚠ Pods directory was not created by pod install")
            return {}

        findings = scan_pods(self.ios_dir, min_ios_version)
        if not findings:
            logger.info("✓ No stale provisioning profiles or old deployment targets in Pods")
            return {}

        log_findings(findings)
        if not self.retry_used:
            logger.info("Forcing post_install hook to run again...")
            try:
                self.reapply_hook()
            except ExternalToolFailure as e:
                logger.warning(f"⚠ post_install re-run failed: {e}")

        try:
            scrub_pods_project(self.ios_dir)
        except OSError as e:
            logger.warning(f"⚠ Pod code signing scrub failed, continuing: {e}")

        return scan_pods(self.ios_dir, min_ios_version)


def log_findings(findings):
    for path, markers in findings.items():
        for kind, text in markers:
            logger.warning(f"⚠ {os.path.basename(os.path.dirname(path))}: {kind} marker: {text}")
