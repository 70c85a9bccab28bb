import logging
import os
import plistlib
import shutil
from dataclasses import dataclass
from xml.parsers.expat import ExpatError

import requests

from .errors import MissingConfig, MissingDependency

logger = logging.getLogger('ios-workflow')

DEFAULT_PROFILES_DIR = os.path.expanduser('~/Library/MobileDevice/Provisioning Profiles')

CODE_SIGN_IDENTITY = 'iPhone Distribution'

# Keys owned by the signing block of Release.xcconfig
SIGNING_KEYS = (
    'CODE_SIGN_STYLE',
    'DEVELOPMENT_TEAM',
    'PROVISIONING_PROFILE_SPECIFIER',
    'CODE_SIGN_IDENTITY',
    'PRODUCT_BUNDLE_IDENTIFIER',
)

RELEASE_XCCONFIG_TEMPLATE = """\
#include? "Pods/Target Support Files/Pods-Runner/Pods-Runner.release.xcconfig"
#include "Generated.xcconfig"
CODE_SIGN_STYLE = Manual
DEVELOPMENT_TEAM = {team_id}
PROVISIONING_PROFILE_SPECIFIER = {profile_uuid}
CODE_SIGN_IDENTITY = {identity}
PRODUCT_BUNDLE_IDENTIFIER = {bundle_id}
"""


@dataclass(frozen=True)
class ProvisioningProfile:
    uuid: str
    name: str
    team_id: str = ''
    bundle_id: str = ''
    path: str = None


def fetch_profile(profile_url, dest_path, timeout=60):
    """Download PROFILE_URL, or copy it when it is a local path."""
    os.makedirs(os.path.dirname(dest_path), exist_ok=True)

    if profile_url.startswith('http://') or profile_url.startswith('https://'):
        response = requests.get(profile_url, timeout=timeout)
        if response.status_code != 200:
            raise MissingDependency(
                f"Failed to download provisioning profile: {profile_url} with status code: {response.status_code}",
                items=[profile_url],
            )
        with open(dest_path, 'wb') as f:
            f.write(response.content)
        logger.info(f"Downloaded provisioning profile: {profile_url} to {dest_path}")
    else:
        if not os.path.exists(profile_url):
            raise MissingDependency(f"Provisioning profile not found: {profile_url}", items=[profile_url])
        shutil.copyfile(profile_url, dest_path)
        logger.info(f"Copied provisioning profile from {profile_url} to {dest_path}")

    return dest_path


def parse_profile(content):
    """Extract the embedded plist of a signed .mobileprovision and read its identity fields."""
    start = content.find(b'<?xml')
    end = content.find(b'</plist>')
    if start == -1 or end == -1:
        raise MissingConfig('Provisioning profile does not contain a property list')

    try:
        profile_info = plistlib.loads(content[start:end + len(b'</plist>')])
    except (ValueError, ExpatError) as e:
        raise MissingConfig(f'Provisioning profile plist is malformed: {e}') from e
    if not isinstance(profile_info, dict):
        raise MissingConfig('Provisioning profile plist is not a dictionary')

    uuid = profile_info.get('UUID', '')
    if not uuid:
        raise MissingConfig('Provisioning profile has no UUID')

    team_ids = profile_info.get('TeamIdentifier') or ['']
    app_identifier = profile_info.get('Entitlements', {}).get('application-identifier', '')
    # application-identifier is "<TEAMID>.<bundle id>"
    bundle_id = app_identifier.split('.', 1)[1] if '.' in app_identifier else ''

    return ProvisioningProfile(
        uuid=uuid,
        name=profile_info.get('Name', 'Unknown'),
        team_id=team_ids[0],
        bundle_id=bundle_id,
    )


def install_provisioning_profile(config, work_dir, profiles_dir=DEFAULT_PROFILES_DIR):
    """Fetch, parse and install the profile named by PROFILE_URL under its UUID."""
    download_path = fetch_profile(config.profile_url, os.path.join(work_dir, 'app_store.mobileprovision'))

    with open(download_path, 'rb') as f:
        profile = parse_profile(f.read())

    os.makedirs(profiles_dir, exist_ok=True)
    dest_path = os.path.join(profiles_dir, f"{profile.uuid}.mobileprovision")
    shutil.copy2(download_path, dest_path)

    logger.info(f"Installed provisioning profile: {profile.name} ({profile.uuid})")

    if profile.bundle_id and profile.bundle_id not in (config.bundle_id, '*'):
        logger.warning(f"⚠ Profile is for {profile.bundle_id}, building {config.bundle_id}")
    if profile.team_id and profile.team_id != config.apple_team_id:
        logger.warning(f"⚠ Profile team {profile.team_id} differs from APPLE_TEAM_ID {config.apple_team_id}")

    return ProvisioningProfile(
        uuid=profile.uuid,
        name=profile.name,
        team_id=profile.team_id,
        bundle_id=profile.bundle_id,
        path=dest_path,
    )


def render_release_xcconfig(config, profile_uuid):
    return RELEASE_XCCONFIG_TEMPLATE.format(
        team_id=config.apple_team_id,
        profile_uuid=profile_uuid,
        identity=CODE_SIGN_IDENTITY,
        bundle_id=config.bundle_id,
    )


def write_release_xcconfig(project_dir, config, profile_uuid):
    """Rewrite ios/Flutter/Release.xcconfig with the manual signing block."""
    flutter_dir = os.path.join(project_dir, 'ios', 'Flutter')
    os.makedirs(flutter_dir, exist_ok=True)

    xcconfig_path = os.path.join(flutter_dir, 'Release.xcconfig')
    # older Flutter templates used a lower-case name
    legacy_path = os.path.join(flutter_dir, 'release.xcconfig')
    if os.path.exists(legacy_path):
        os.remove(legacy_path)

    with open(xcconfig_path, 'w', newline='\n') as f:
        f.write(render_release_xcconfig(config, profile_uuid))

    logger.info(f"✓ Release.xcconfig written: team={config.apple_team_id}, profile={profile_uuid}")
    return xcconfig_path


def create_export_options_plist(output_path, team_id, bundle_id, profile_uuid, method='app-store'):
    """Create ExportOptions.plist for iOS archive export."""
    export_options = {
        'method': method,
        'teamID': team_id,
        'signingStyle': 'manual',
        'provisioningProfiles': {
            bundle_id: profile_uuid
        },
        'stripSwiftSymbols': True,
        'uploadBitcode': False,
        'uploadSymbols': True,
        'compileBitcode': False,
        'thinning': '<none>',
    }

    with open(output_path, 'wb') as f:
        plistlib.dump(export_options, f)

    logger.info(f"Created ExportOptions.plist at {output_path}")
    return output_path
