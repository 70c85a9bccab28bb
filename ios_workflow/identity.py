import logging
import os
import plistlib
import re

logger = logging.getLogger('ios-workflow')

IDENTITY_FILE_NAMES = ('project.pbxproj', 'Info.plist')
IDENTITY_FILE_SUFFIXES = ('.entitlements',)

# Generated or vendored trees under ios/ that are never rewritten
SKIPPED_DIRS = ('Pods', '.symlinks', 'build')

PRODUCT_BUNDLE_IDENTIFIER_PATTERN = re.compile(r'PRODUCT_BUNDLE_IDENTIFIER = ([^;]+);')


def replace_identifier(content, old_ids, new_id):
    """Replace every whole occurrence of any old id with new_id.

    Longer ids win over their prefixes, so com.example.quikappflutter is not
    split by com.example.quikapp. Ids embedded in dotted or dashed names are
    replaced too: group.com.example.app, com.example.app.RunnerTests and
    com.example.app-dev keep their prefix and suffix. An id glued to a
    letter or digit (com.example.application) is left alone. The
    replacement text is never rescanned.
    """
    candidates = sorted({old_id for old_id in old_ids if old_id and old_id != new_id}, key=len, reverse=True)
    if not candidates:
        return content

    pattern = re.compile(
        r'(?<!\w)(' + '|'.join(re.escape(old_id) for old_id in candidates) + r')(?!\w)'
    )
    return pattern.sub(lambda match: new_id, content)


def find_identity_files(ios_dir):
    matches = []
    for root, dirs, files in os.walk(ios_dir):
        dirs[:] = sorted(d for d in dirs if d not in SKIPPED_DIRS)
        for name in sorted(files):
            if name in IDENTITY_FILE_NAMES or name.endswith(IDENTITY_FILE_SUFFIXES):
                matches.append(os.path.join(root, name))
    return matches


def set_product_bundle_identifier(content, bundle_id):
    """Point PRODUCT_BUNDLE_IDENTIFIER at bundle_id, leaving bundle_id.* suffixed targets alone."""
    def replace(match):
        value = match.group(1).strip().strip('"')
        if value == bundle_id or value.startswith(bundle_id + '.'):
            return match.group(0)
        return f'PRODUCT_BUNDLE_IDENTIFIER = {bundle_id};'

    return PRODUCT_BUNDLE_IDENTIFIER_PATTERN.sub(replace, content)


def update_info_plist(plist_path, bundle_id, display_name=None):
    with open(plist_path, 'rb') as f:
        info = plistlib.load(f)

    before = dict(info)
    info['CFBundleIdentifier'] = bundle_id
    if display_name:
        info['CFBundleDisplayName'] = display_name

    if info == before:
        return False

    with open(plist_path, 'wb') as f:
        plistlib.dump(info, f)
    return True


def rewrite_file(path, transform):
    with open(path, 'r') as f:
        content = f.read()
    updated = transform(content)
    if updated == content:
        return False
    with open(path, 'w') as f:
        f.write(updated)
    return True


def rewrite_identity(project_dir, config):
    """Rewrite bundle id and display name across the iOS project.

    Returns the sorted list of files that changed.
    """
    ios_dir = os.path.join(project_dir, 'ios')
    bundle_id = config.bundle_id
    legacy_ids = config.legacy_bundle_ids()
    changed = set()

    logger.info(f"Updating bundle identifier to: {bundle_id}")
    logger.info(f"Legacy identifiers to replace: {', '.join(legacy_ids) or 'none'}")

    for path in find_identity_files(ios_dir):
        if rewrite_file(path, lambda content: replace_identifier(content, legacy_ids, bundle_id)):
            logger.info(f"Replaced legacy bundle ids in {os.path.relpath(path, project_dir)}")
            changed.add(path)

    pbxproj_path = os.path.join(ios_dir, 'Runner.xcodeproj', 'project.pbxproj')
    if os.path.exists(pbxproj_path):
        if rewrite_file(pbxproj_path, lambda content: set_product_bundle_identifier(content, bundle_id)):
            changed.add(pbxproj_path)
        logger.info("✓ Updated PRODUCT_BUNDLE_IDENTIFIER in project.pbxproj")

    info_plist = os.path.join(ios_dir, 'Runner', 'Info.plist')
    if update_info_plist(info_plist, bundle_id, config.app_name):
        changed.add(info_plist)
    if config.app_name:
        logger.info(f"✓ Updated app display name to: {config.app_name}")

    logger.info(f"✓ Bundle Identifier updated to {bundle_id} ({len(changed)} file(s) changed)")
    return sorted(changed)


def read_bundle_identity(project_dir):
    """Return (CFBundleIdentifier, CFBundleDisplayName) from Runner/Info.plist."""
    with open(os.path.join(project_dir, 'ios', 'Runner', 'Info.plist'), 'rb') as f:
        info = plistlib.load(f)
    return info.get('CFBundleIdentifier'), info.get('CFBundleDisplayName')
