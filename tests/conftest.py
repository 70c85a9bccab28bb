"""Pytest fixtures: a throwaway Flutter project and a scripted tool runner."""

import os
import plistlib

import pytest

from ios_workflow.config import BuildConfig
from ios_workflow.icons import APP_ICON_SET, REQUIRED_ICONS
from ios_workflow.pipeline import BuildContext, PipelineOptions
from ios_workflow.tools import ToolResult, write_log

PBXPROJ = """\
// !$*UTF8*$!
{
	objects = {
		97C147061CF9000F007C117D /* Debug */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				PRODUCT_BUNDLE_IDENTIFIER = com.example.quikappflutter;
				PRODUCT_NAME = "$(TARGET_NAME)";
			};
		};
		97C147071CF9000F007C117D /* Release */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				PRODUCT_BUNDLE_IDENTIFIER = com.example.quikappflutter;
				PRODUCT_NAME = "$(TARGET_NAME)";
			};
		};
		331C8088294A63A400263BE5 /* Debug */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				PRODUCT_BUNDLE_IDENTIFIER = com.example.quikappflutter.RunnerTests;
			};
		};
	};
}
"""

ENTITLEMENTS = """\
<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
	<key>com.apple.security.application-groups</key>
	<array>
		<string>group.com.example.app</string>
	</array>
	<key>keychain-access-groups</key>
	<array>
		<string>$(AppIdentifierPrefix)com.example.app</string>
	</array>
</dict>
</plist>
"""

CLEAN_PODS_PBXPROJ = """\
		buildSettings = {
			CODE_SIGN_STYLE = Automatic;
			IPHONEOS_DEPLOYMENT_TARGET = 13.0;
			PROVISIONING_PROFILE_SPECIFIER = "";
		};
"""

PROFILE_UUID = '6f1d2c3b-aaaa-bbbb-cccc-1234567890ab'


def make_profile_bytes(uuid=PROFILE_UUID, app_id='ABCDE12345.com.acme.app', team='ABCDE12345'):
    plist = plistlib.dumps({
        'UUID': uuid,
        'Name': 'Acme App Store',
        'TeamIdentifier': [team],
        'Entitlements': {'application-identifier': app_id},
    })
    # signed profiles wrap the plist in a CMS envelope
    return b'0\x82\x1f\x00CMS-HEADER' + plist + b'\x00\x00CMS-TRAILER'


@pytest.fixture
def flutter_project(tmp_path):
    project = tmp_path / 'app'
    (project / 'lib').mkdir(parents=True)
    (project / 'lib' / 'main.dart').write_text('void main() {}\n')
    (project / 'pubspec.yaml').write_text('name: acme_app\nversion: 2.4.1+42\n')

    runner_dir = project / 'ios' / 'Runner'
    runner_dir.mkdir(parents=True)
    with open(runner_dir / 'Info.plist', 'wb') as f:
        plistlib.dump({
            'CFBundleIdentifier': 'com.example.quikappflutter',
            'CFBundleDisplayName': 'Quikappflutter',
            'CFBundleName': 'quikappflutter',
        }, f)
    (runner_dir / 'Runner.entitlements').write_text(ENTITLEMENTS)

    xcodeproj = project / 'ios' / 'Runner.xcodeproj'
    xcodeproj.mkdir()
    (xcodeproj / 'project.pbxproj').write_text(PBXPROJ)

    icon_dir = project / APP_ICON_SET
    icon_dir.mkdir(parents=True)
    (icon_dir / 'Contents.json').write_text('{"images": [ {"filename": "broken"')
    for name in REQUIRED_ICONS:
        (icon_dir / name).write_bytes(b'\x89PNG\r\n')

    # stale state from a previous run
    (project / 'ios' / 'Podfile').write_text("platform :ios, '9.0'\n")
    (project / 'ios' / 'Podfile.lock').write_text('PODFILE CHECKSUM: stale\n')
    (project / 'ios' / 'Pods' / 'Target Support Files').mkdir(parents=True)
    (project / '.dart_tool').mkdir()

    profile = tmp_path / 'profile.mobileprovision'
    profile.write_bytes(make_profile_bytes())
    return project


@pytest.fixture
def build_config(tmp_path):
    return BuildConfig.from_mapping({
        'BUNDLE_ID': 'com.acme.app',
        'APPLE_TEAM_ID': 'ABCDE12345',
        'PROFILE_URL': str(tmp_path / 'profile.mobileprovision'),
        'CERT_PASSWORD': 'secret',
        'APP_NAME': 'Acme',
    })


class FakeRunner:
    """Stands in for ToolRunner. Replies are looked up by command prefix."""

    def __init__(self):
        self.calls = []
        self.replies = {}

    def reply(self, prefix, *outcomes):
        """Queue outcomes for commands starting with prefix.

        An outcome is (returncode, output) or a callable(command, cwd)
        returning one. The last outcome repeats.
        """
        self.replies[tuple(prefix)] = list(outcomes)

    def commands(self, prefix=()):
        prefix = list(prefix)
        return [command for command, _ in self.calls if command[:len(prefix)] == prefix]

    def run(self, command, cwd=None, log_path=None, timeout=None):
        self.calls.append((list(command), cwd))
        outcome = self._outcome(command)
        if callable(outcome):
            outcome = outcome(command, cwd)
        returncode, output = outcome
        write_log(log_path, output)
        return ToolResult(command=list(command), returncode=returncode, output=output, log_path=log_path)

    def _outcome(self, command):
        best = None
        for prefix in self.replies:
            if list(command[:len(prefix)]) == list(prefix):
                if best is None or len(prefix) > len(best):
                    best = prefix
        if best is not None:
            queue = self.replies[best]
            return queue.pop(0) if len(queue) > 1 else queue[0]
        return default_outcome(command, cwd=None)


def pods_install(pbxproj_text=CLEAN_PODS_PBXPROJ):
    def outcome(command, cwd):
        pods_project = os.path.join(cwd, 'Pods', 'Pods.xcodeproj')
        os.makedirs(pods_project, exist_ok=True)
        with open(os.path.join(pods_project, 'project.pbxproj'), 'w') as f:
            f.write(pbxproj_text)
        return 0, 'Pod installation complete! There are 3 dependencies from the Podfile.'
    return outcome


def export_ipa(content=b'PK\x03\x04ipa'):
    def outcome(command, cwd):
        export_dir = os.path.join(cwd, command[command.index('-exportPath') + 1])
        os.makedirs(export_dir, exist_ok=True)
        with open(os.path.join(export_dir, 'Runner.ipa'), 'wb') as f:
            f.write(content)
        return 0, '** EXPORT SUCCEEDED **'
    return outcome


def default_outcome(command, cwd):
    if command[:2] == ['flutter', 'build']:
        return 0, 'Building com.acme.app for device (ios)...\n✓ Built build/ios/iphoneos/Runner.app'
    if 'archive' in command:
        return 0, '** ARCHIVE SUCCEEDED **'
    return 0, ''


@pytest.fixture
def fake_runner():
    runner = FakeRunner()
    runner.reply(['pod', 'install'], pods_install())
    runner.reply(['xcodebuild', '-exportArchive'], export_ipa())
    return runner


@pytest.fixture
def make_context(flutter_project, build_config, fake_runner, tmp_path):
    def factory(config=None, **option_overrides):
        options = PipelineOptions(
            derived_data_dir=str(tmp_path / 'DerivedData'),
            profiles_dir=str(tmp_path / 'Provisioning Profiles'),
            **option_overrides
        )
        return BuildContext(
            project_dir=str(flutter_project),
            config=config or build_config,
            options=options,
            runner=fake_runner,
            which=lambda tool: f'/opt/tools/{tool}',
        )
    return factory
