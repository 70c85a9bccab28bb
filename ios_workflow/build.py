import logging
import os
import shutil

from .tools import run_checked

logger = logging.getLogger('ios-workflow')

FLUTTER_BUILT_MARKER = r'Built .*Runner\.app'
ARCHIVE_MARKER = r'\*\* ARCHIVE SUCCEEDED \*\*'
EXPORT_MARKER = r'\*\* EXPORT SUCCEEDED \*\*'

ARCHIVE_PATH = os.path.join('build', 'ios', 'archive', 'Runner.xcarchive')
EXPORT_DIR = os.path.join('build', 'ios', 'output')

GENERATED_XCCONFIG_TEMPLATE = """\
FLUTTER_ROOT={flutter_root}
FLUTTER_APPLICATION_PATH={project_dir}
FLUTTER_TARGET=lib/main.dart
FLUTTER_BUILD_DIR=build
FLUTTER_BUILD_NAME={version_name}
FLUTTER_BUILD_NUMBER={version_code}
EXCLUDED_ARCHS[sdk=iphonesimulator*]=i386
EXCLUDED_ARCHS[sdk=iphoneos*]=armv7
DART_OBFUSCATION=false
TRACK_WIDGET_CREATION=true
TREE_SHAKE_ICONS=false
PACKAGE_CONFIG=.dart_tool/package_config.json
"""


def version_args(config):
    args = []
    if config.version_name:
        args.append(f"--build-name={config.version_name}")
    if config.version_code:
        args.append(f"--build-number={config.version_code}")
    return args


def flutter_root(which=shutil.which):
    """FLUTTER_ROOT is two levels above the flutter executable."""
    flutter = which('flutter')
    if not flutter:
        return ''
    return os.path.dirname(os.path.dirname(os.path.realpath(flutter)))


def ensure_generated_xcconfig(project_dir, config, which=shutil.which):
    """Write ios/Flutter/Generated.xcconfig when the debug build did not produce it."""
    path = os.path.join(project_dir, 'ios', 'Flutter', 'Generated.xcconfig')
    if os.path.exists(path):
        return False

    logger.warning("⚠ Generated.xcconfig not found, creating it manually...")
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w', newline='\n') as f:
        f.write(GENERATED_XCCONFIG_TEMPLATE.format(
            flutter_root=flutter_root(which),
            project_dir=os.path.abspath(project_dir),
            version_name=config.version_name or '1.0.0',
            version_code=config.version_code or '1',
        ))
    return True


def flutter_pub_get(runner, project_dir, logs_dir, timeout=None):
    return run_checked(
        runner, ['flutter', 'pub', 'get'],
        cwd=project_dir,
        log_path=os.path.join(logs_dir, 'flutter_pub_get.log'),
        timeout=timeout,
    )


def flutter_debug_build(runner, project_dir, logs_dir, timeout=None):
    return run_checked(
        runner, ['flutter', 'build', 'ios', '--no-codesign', '--debug'],
        cwd=project_dir,
        log_path=os.path.join(logs_dir, 'flutter_build_debug.log'),
        success_marker=FLUTTER_BUILT_MARKER,
        timeout=timeout,
    )


def flutter_release_build(runner, project_dir, config, logs_dir, timeout=None):
    return run_checked(
        runner, ['flutter', 'build', 'ios', '--release', '--no-codesign'] + version_args(config) + ['--verbose'],
        cwd=project_dir,
        log_path=os.path.join(logs_dir, 'flutter_build.log'),
        success_marker=FLUTTER_BUILT_MARKER,
        timeout=timeout,
    )


def archive(runner, project_dir, config, profile_uuid, logs_dir, timeout=None):
    os.makedirs(os.path.join(project_dir, os.path.dirname(ARCHIVE_PATH)), exist_ok=True)
    command = [
        'xcodebuild',
        '-workspace', os.path.join('ios', 'Runner.xcworkspace'),
        '-scheme', 'Runner',
        '-configuration', 'Release',
        '-archivePath', ARCHIVE_PATH,
        '-destination', 'generic/platform=iOS',
        'archive',
        f"DEVELOPMENT_TEAM={config.apple_team_id}",
        'CODE_SIGN_STYLE=Manual',
        'CODE_SIGN_IDENTITY=iPhone Distribution',
        f"PROVISIONING_PROFILE_SPECIFIER={profile_uuid}",
        f"PRODUCT_BUNDLE_IDENTIFIER={config.bundle_id}",
    ]
    return run_checked(
        runner, command,
        cwd=project_dir,
        log_path=os.path.join(logs_dir, 'xcodebuild_archive.log'),
        success_marker=ARCHIVE_MARKER,
        timeout=timeout,
    )


def export_ipa(runner, project_dir, export_options_path, logs_dir, timeout=None):
    os.makedirs(os.path.join(project_dir, EXPORT_DIR), exist_ok=True)
    command = [
        'xcodebuild', '-exportArchive',
        '-archivePath', ARCHIVE_PATH,
        '-exportPath', EXPORT_DIR,
        '-exportOptionsPlist', os.path.relpath(export_options_path, project_dir),
    ]
    return run_checked(
        runner, command,
        cwd=project_dir,
        log_path=os.path.join(logs_dir, 'xcodebuild_export.log'),
        success_marker=EXPORT_MARKER,
        timeout=timeout,
    )
