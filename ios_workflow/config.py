import configparser
import dataclasses
import logging
import os
import re

logger = logging.getLogger('ios-workflow')

REQUIRED_KEYS = ('BUNDLE_ID', 'APPLE_TEAM_ID', 'PROFILE_URL', 'CERT_PASSWORD')

OPTIONAL_KEYS = (
    'CERT_P12_URL',
    'CERT_CER_URL',
    'CERT_KEY_URL',
    'APP_NAME',
    'VERSION_NAME',
    'VERSION_CODE',
    'PUSH_NOTIFY',
    'DEFAULT_BUNDLE_IDS',
)

# Flutter template identifiers that show up in freshly created projects
DEFAULT_LEGACY_BUNDLE_IDS = (
    'com.example.flutter',
    'com.example.app',
    'com.example.quikapp',
    'com.example.quikappflutter',
)

DEFAULT_MIN_IOS_VERSION = '13.0'

SECRET_KEYS = ('CERT_PASSWORD',)


@dataclasses.dataclass(frozen=True)
class BuildConfig:
    bundle_id: str = ''
    apple_team_id: str = ''
    profile_url: str = ''
    cert_password: str = ''
    cert_p12_url: str = ''
    cert_cer_url: str = ''
    cert_key_url: str = ''
    app_name: str = ''
    version_name: str = ''
    version_code: str = ''
    push_notify: bool = False
    default_bundle_ids: tuple = DEFAULT_LEGACY_BUNDLE_IDS
    min_ios_version: str = DEFAULT_MIN_IOS_VERSION

    @classmethod
    def from_mapping(cls, values, min_ios_version=DEFAULT_MIN_IOS_VERSION):
        """Build a config from an environment-like mapping.

        Unknown keys are ignored. Blank values count as unset.
        """
        def get(key):
            return (values.get(key) or '').strip()

        legacy_ids = parse_bundle_id_list(get('DEFAULT_BUNDLE_IDS'))

        return cls(
            bundle_id=get('BUNDLE_ID'),
            apple_team_id=get('APPLE_TEAM_ID'),
            profile_url=get('PROFILE_URL'),
            cert_password=get('CERT_PASSWORD'),
            cert_p12_url=get('CERT_P12_URL'),
            cert_cer_url=get('CERT_CER_URL'),
            cert_key_url=get('CERT_KEY_URL'),
            app_name=get('APP_NAME'),
            version_name=get('VERSION_NAME'),
            version_code=get('VERSION_CODE'),
            push_notify=get('PUSH_NOTIFY').lower() == 'true',
            default_bundle_ids=legacy_ids or DEFAULT_LEGACY_BUNDLE_IDS,
            min_ios_version=min_ios_version,
        )

    def missing_required(self):
        return [key for key in REQUIRED_KEYS if not getattr(self, key.lower())]

    def legacy_bundle_ids(self):
        """Placeholder ids that should be rewritten, excluding the target id itself."""
        return [old_id for old_id in self.default_bundle_ids if old_id != self.bundle_id]

    def describe(self):
        lines = []
        for key in REQUIRED_KEYS + OPTIONAL_KEYS:
            attr = key.lower()
            if key == 'DEFAULT_BUNDLE_IDS':
                value = ' '.join(self.default_bundle_ids)
            else:
                value = getattr(self, attr)
            if key in SECRET_KEYS and value:
                value = '********'
            lines.append(f"{key}: {value if value not in ('', None) else 'NOT SET'}")
        return lines


def parse_bundle_id_list(raw):
    if not raw:
        return ()
    return tuple(part for part in re.split(r'[\s,]+', raw) if part)


def read_conffile(path):
    """Read KEY=value overrides from the DEFAULT section of a properties file."""
    config = configparser.ConfigParser(interpolation=None)
    config.optionxform = str
    read_files = config.read(path)
    if not read_files:
        raise FileNotFoundError(f"Config file not found: {path}")

    overrides = {}
    for key, value in config['DEFAULT'].items():
        overrides[key.upper()] = value
    logger.info(f"Loaded {len(overrides)} value(s) from {path}")
    return overrides


def load_build_config(environ=None, conffile=None, min_ios_version=DEFAULT_MIN_IOS_VERSION):
    values = dict(os.environ if environ is None else environ)
    if conffile:
        values.update(read_conffile(conffile))
    return BuildConfig.from_mapping(values, min_ios_version=min_ios_version)


def read_pubspec(project_dir):
    """Return (name, version) from pubspec.yaml, or empty strings when absent."""
    pubspec_path = os.path.join(project_dir, 'pubspec.yaml')
    if not os.path.exists(pubspec_path):
        return '', ''

    with open(pubspec_path, 'r') as f:
        content = f.read()

    name_match = re.search(r'^name:\s*(\S+)', content, re.MULTILINE)
    version_match = re.search(r'^version:\s*(\S+)', content, re.MULTILINE)
    name = name_match.group(1).strip('"\'') if name_match else ''
    version = version_match.group(1).strip('"\'') if version_match else ''
    return name, version


def with_derived_values(config, project_dir):
    """Fill APP_NAME, VERSION_NAME and VERSION_CODE from pubspec.yaml when unset."""
    if config.app_name and config.version_name and config.version_code:
        return config

    name, version = read_pubspec(project_dir)
    version_name, _, build_number = version.partition('+')

    changes = {}
    if not config.app_name and name:
        changes['app_name'] = name.replace('_', ' ').title()
    if not config.version_name and version_name:
        changes['version_name'] = version_name
    if not config.version_code and build_number:
        changes['version_code'] = build_number

    for field_name, value in changes.items():
        logger.info(f"{field_name.upper()} not set, using value from pubspec.yaml: {value}")

    return dataclasses.replace(config, **changes)
