import glob
import logging
import os
import shutil

logger = logging.getLogger('ios-workflow')

# Relative to the Flutter project root
STALE_PATHS = (
    '.dart_tool',
    'build',
    'ios/Pods',
    'ios/Podfile.lock',
    'ios/.symlinks',
    'ios/build',
    'ios/Pods.xcodeproj',
)

STALE_GLOBS = (
    'ios/*.xcworkspace',
)

DEFAULT_DERIVED_DATA = os.path.expanduser('~/Library/Developer/Xcode/DerivedData')


def remove_path(path):
    """Delete a file, symlink or directory tree. Returns False when nothing was there."""
    if os.path.islink(path) or os.path.isfile(path):
        os.remove(path)
        return True
    if os.path.isdir(path):
        shutil.rmtree(path)
        return True
    return False


def clean_project(project_dir, derived_data_dir=DEFAULT_DERIVED_DATA):
    """Remove cached dependency, lock and derived-build state unconditionally.

    Returns the list of paths that actually existed and were removed.
    """
    targets = [os.path.join(project_dir, rel) for rel in STALE_PATHS]
    for pattern in STALE_GLOBS:
        targets.extend(sorted(glob.glob(os.path.join(project_dir, pattern))))

    if derived_data_dir and os.path.isdir(derived_data_dir):
        targets.extend(sorted(os.path.join(derived_data_dir, entry) for entry in os.listdir(derived_data_dir)))

    removed = []
    for target in targets:
        if remove_path(target):
            removed.append(target)
            logger.info(f"Removed {target}")

    logger.info(f"✓ Cleanup removed {len(removed)} path(s)")
    return removed
