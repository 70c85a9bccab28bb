import json
import logging
import os
import plistlib

from .errors import MissingDependency

logger = logging.getLogger('ios-workflow')

APP_ICON_SET = os.path.join('ios', 'Runner', 'Assets.xcassets', 'AppIcon.appiconset')

# (filename, idiom, scale, size)
ICON_ENTRIES = (
    ('Icon-App-20x20@1x.png', 'iphone', '1x', '20x20'),
    ('Icon-App-20x20@2x.png', 'iphone', '2x', '20x20'),
    ('Icon-App-20x20@3x.png', 'iphone', '3x', '20x20'),
    ('Icon-App-29x29@1x.png', 'iphone', '1x', '29x29'),
    ('Icon-App-29x29@2x.png', 'iphone', '2x', '29x29'),
    ('Icon-App-29x29@3x.png', 'iphone', '3x', '29x29'),
    ('Icon-App-40x40@1x.png', 'iphone', '1x', '40x40'),
    ('Icon-App-40x40@2x.png', 'iphone', '2x', '40x40'),
    ('Icon-App-40x40@3x.png', 'iphone', '3x', '40x40'),
    ('Icon-App-60x60@2x.png', 'iphone', '2x', '60x60'),
    ('Icon-App-60x60@3x.png', 'iphone', '3x', '60x60'),
    ('Icon-App-20x20@1x.png', 'ipad', '1x', '20x20'),
    ('Icon-App-20x20@2x.png', 'ipad', '2x', '20x20'),
    ('Icon-App-29x29@1x.png', 'ipad', '1x', '29x29'),
    ('Icon-App-29x29@2x.png', 'ipad', '2x', '29x29'),
    ('Icon-App-40x40@1x.png', 'ipad', '1x', '40x40'),
    ('Icon-App-40x40@2x.png', 'ipad', '2x', '40x40'),
    ('Icon-App-76x76@1x.png', 'ipad', '1x', '76x76'),
    ('Icon-App-76x76@2x.png', 'ipad', '2x', '76x76'),
    ('Icon-App-83.5x83.5@2x.png', 'ipad', '2x', '83.5x83.5'),
    ('Icon-App-1024x1024@1x.png', 'ios-marketing', '1x', '1024x1024'),
)

REQUIRED_ICONS = tuple(dict.fromkeys(entry[0] for entry in ICON_ENTRIES))


def contents_json():
    manifest = {
        'images': [
            {'filename': filename, 'idiom': idiom, 'scale': scale, 'size': size}
            for filename, idiom, scale, size in ICON_ENTRIES
        ],
        'info': {'author': 'xcode', 'version': 1},
    }
    return json.dumps(manifest, indent=2) + '\n'


def write_contents_json(icon_dir):
    """Overwrite Contents.json with the fixed icon manifest."""
    os.makedirs(icon_dir, exist_ok=True)
    path = os.path.join(icon_dir, 'Contents.json')
    with open(path, 'w', newline='\n') as f:
        f.write(contents_json())
    logger.info(f"✓ Created clean Contents.json with {len(ICON_ENTRIES)} entries")
    return path


def ensure_icon_plist_keys(plist_path):
    """Add CFBundleIconName and CFBundleIcons to Info.plist when missing."""
    with open(plist_path, 'rb') as f:
        info = plistlib.load(f)

    changed = False
    if 'CFBundleIconName' not in info:
        info['CFBundleIconName'] = 'AppIcon'
        logger.info("✓ Added CFBundleIconName to Info.plist")
        changed = True

    if 'CFBundleIcons' not in info:
        info['CFBundleIcons'] = {
            'CFBundlePrimaryIcon': {
                'CFBundleIconName': 'AppIcon',
                'CFBundleIconFiles': ['AppIcon'],
            }
        }
        logger.info("✓ Added icon configuration to Info.plist")
        changed = True

    if changed:
        with open(plist_path, 'wb') as f:
            plistlib.dump(info, f)
    return changed


def find_missing_icons(icon_dir):
    return [name for name in REQUIRED_ICONS if not os.path.isfile(os.path.join(icon_dir, name))]


def fix_app_icons(project_dir):
    """Rewrite the icon manifest, fix Info.plist and fail if any required icon is missing."""
    icon_dir = os.path.join(project_dir, APP_ICON_SET)
    if not os.path.isdir(icon_dir):
        raise MissingDependency(f"App icon directory not found: {icon_dir}", items=[icon_dir])

    write_contents_json(icon_dir)
    ensure_icon_plist_keys(os.path.join(project_dir, 'ios', 'Runner', 'Info.plist'))

    missing = find_missing_icons(icon_dir)
    if missing:
        logger.error(f"✗ Missing required icons: {' '.join(missing)}")
        raise MissingDependency(f"{len(missing)} required app icon(s) missing", items=missing)

    logger.info(f"✓ All {len(REQUIRED_ICONS)} required icons are present")
    return icon_dir
