import logging
import os
import re

logger = logging.getLogger('ios-workflow')

PODFILE_TEMPLATE = """\
# Generated by ios-workflow. Do not edit: this file is rewritten on every build.
# Bundle identifier: {bundle_id}
platform :ios, '{min_ios_version}'

ENV['COCOAPODS_DISABLE_STATS'] = 'true'

project 'Runner', {{
  'Debug' => :debug,
  'Profile' => :release,
  'Release' => :release,
}}

def flutter_root
  generated_xcode_build_settings_path = File.expand_path(File.join('..', 'Flutter', 'Generated.xcconfig'), __FILE__)
  unless File.exist?(generated_xcode_build_settings_path)
    raise "#{{generated_xcode_build_settings_path}} must exist. Run flutter pub get first"
  end

  File.foreach(generated_xcode_build_settings_path) do |line|
    matches = line.match(/FLUTTER_ROOT\\=(.*)/)
    return matches[1].strip if matches
  end
  raise "FLUTTER_ROOT not found in #{{generated_xcode_build_settings_path}}"
end

require File.expand_path(File.join('packages', 'flutter_tools', 'bin', 'podhelper'), flutter_root)

flutter_ios_podfile_setup

target 'Runner' do
  use_frameworks!
  use_modular_headers!

  flutter_install_all_ios_pods File.dirname(File.realpath(__FILE__))
end

pre_install do |installer|
  puts "ios-workflow: installing pods for {bundle_id} (iOS {min_ios_version}+)"
end

post_install do |installer|
  installer.pods_project.targets.each do |target|
    flutter_additional_ios_build_settings(target)

    target.build_configurations.each do |config|
{build_settings}
    end
  end
end
"""

# Signing overrides forced onto every pod target, one pair per SDK variant
POD_SIGNING_OVERRIDES = (
    ('CODE_SIGNING_ALLOWED', 'NO'),
    ('CODE_SIGNING_ALLOWED[sdk=iphoneos*]', 'NO'),
    ('CODE_SIGNING_ALLOWED[sdk=iphonesimulator*]', 'NO'),
    ('CODE_SIGNING_REQUIRED', 'NO'),
    ('CODE_SIGNING_REQUIRED[sdk=iphoneos*]', 'NO'),
    ('CODE_SIGNING_REQUIRED[sdk=iphonesimulator*]', 'NO'),
    ('CODE_SIGN_STYLE', 'Automatic'),
    ('CODE_SIGNING_STYLE', 'Automatic'),
    ('PROVISIONING_PROFILE', ''),
    ('PROVISIONING_PROFILE_SPECIFIER', ''),
    ('PROVISIONING_PROFILE_SPECIFIER[sdk=iphoneos*]', ''),
    ('PROVISIONING_PROFILE_UUID', ''),
    ('DEVELOPMENT_TEAM', ''),
    ('CODE_SIGN_IDENTITY', ''),
    ('CODE_SIGN_IDENTITY[sdk=iphoneos*]', ''),
    ('CODE_SIGN_IDENTITY[sdk=iphonesimulator*]', ''),
    ('EXPANDED_CODE_SIGN_IDENTITY', ''),
)


def render_podfile(config):
    """Render the Podfile for a BuildConfig. Output depends only on the config."""
    settings = [('IPHONEOS_DEPLOYMENT_TARGET', config.min_ios_version)] + list(POD_SIGNING_OVERRIDES)
    build_settings = '\n'.join(
        f"      config.build_settings['{key}'] = '{value}'" for key, value in settings
    )
    return PODFILE_TEMPLATE.format(
        bundle_id=config.bundle_id,
        min_ios_version=config.min_ios_version,
        build_settings=build_settings,
    )


def write_podfile(project_dir, config):
    """Delete and rewrite ios/Podfile. Never patches the previous file."""
    podfile_path = os.path.join(project_dir, 'ios', 'Podfile')
    os.makedirs(os.path.dirname(podfile_path), exist_ok=True)

    if os.path.exists(podfile_path):
        os.remove(podfile_path)

    with open(podfile_path, 'w', newline='\n') as f:
        f.write(render_podfile(config))

    logger.info(f"✓ Podfile generated at {podfile_path}")
    return podfile_path


def check_podfile(content, min_ios_version):
    """Return a list of problems found in Podfile text; empty when it looks right."""
    problems = []
    if "target 'Runner'" not in content:
        problems.append("missing target 'Runner'")
    if not re.search(r"CODE_SIGN(ING)?_STYLE'\]\s*=\s*'Automatic'", content):
        problems.append('pod targets are not forced to automatic signing')
    if not re.search(rf"IPHONEOS_DEPLOYMENT_TARGET'\]\s*=\s*'{re.escape(min_ios_version)}'", content):
        problems.append(f'deployment target is not forced to {min_ios_version}')
    if 'post_install do' not in content:
        problems.append('missing post_install hook')
    return problems
