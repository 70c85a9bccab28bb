import plistlib

from ios_workflow.identity import (
    find_identity_files,
    read_bundle_identity,
    replace_identifier,
    rewrite_identity,
    set_product_bundle_identifier,
)

LEGACY = ['com.example.flutter', 'com.example.app', 'com.example.quikapp', 'com.example.quikappflutter']


def test_longest_identifier_wins():
    content = 'PRODUCT_BUNDLE_IDENTIFIER = com.example.quikappflutter;'

    assert replace_identifier(content, LEGACY, 'com.acme.app') == 'PRODUCT_BUNDLE_IDENTIFIER = com.acme.app;'


def test_suffix_is_kept():
    content = 'PRODUCT_BUNDLE_IDENTIFIER = com.example.app.RunnerTests;'

    assert replace_identifier(content, LEGACY, 'com.acme.app') == 'PRODUCT_BUNDLE_IDENTIFIER = com.acme.app.RunnerTests;'


def test_no_partial_word_match():
    content = 'com.example.application and xcom.example.app and com.example.app2'

    assert replace_identifier(content, LEGACY, 'com.acme.app') == content


def test_dotted_and_dashed_neighbours_are_replaced():
    content = '<string>group.com.example.app</string>\n<string>com.example.app-dev</string>'

    assert replace_identifier(content, LEGACY, 'com.acme.app') == (
        '<string>group.com.acme.app</string>\n<string>com.acme.app-dev</string>'
    )


def test_replacement_is_not_rescanned():
    # new id contains an old one; a naive loop would replace twice
    result = replace_identifier('id = com.example.app;', ['com.example.app'], 'com.example.app.pro')

    assert result == 'id = com.example.app.pro;'


def test_old_equal_to_new_is_skipped():
    content = 'id = com.acme.app;'

    assert replace_identifier(content, ['com.acme.app'], 'com.acme.app') == content


def test_set_product_bundle_identifier_keeps_suffixed_targets():
    content = (
        'PRODUCT_BUNDLE_IDENTIFIER = "com.other.thing";\n'
        'PRODUCT_BUNDLE_IDENTIFIER = com.acme.app.RunnerTests;\n'
    )

    result = set_product_bundle_identifier(content, 'com.acme.app')

    assert result == (
        'PRODUCT_BUNDLE_IDENTIFIER = com.acme.app;\n'
        'PRODUCT_BUNDLE_IDENTIFIER = com.acme.app.RunnerTests;\n'
    )


def test_find_identity_files_skips_pods(flutter_project):
    pods_plist = flutter_project / 'ios' / 'Pods' / 'Target Support Files' / 'Info.plist'
    pods_plist.write_text('com.example.app')

    found = find_identity_files(str(flutter_project / 'ios'))

    assert str(pods_plist) not in found
    assert str(flutter_project / 'ios' / 'Runner' / 'Info.plist') in found
    assert str(flutter_project / 'ios' / 'Runner' / 'Runner.entitlements') in found


def test_rewrite_identity(flutter_project, build_config):
    changed = rewrite_identity(str(flutter_project), build_config)

    pbxproj = (flutter_project / 'ios' / 'Runner.xcodeproj' / 'project.pbxproj').read_text()
    entitlements = (flutter_project / 'ios' / 'Runner' / 'Runner.entitlements').read_text()
    with open(flutter_project / 'ios' / 'Runner' / 'Info.plist', 'rb') as f:
        info = plistlib.load(f)

    for legacy_id in LEGACY:
        assert f'= {legacy_id};' not in pbxproj
    assert pbxproj.count('PRODUCT_BUNDLE_IDENTIFIER = com.acme.app;') == 2
    assert 'PRODUCT_BUNDLE_IDENTIFIER = com.acme.app.RunnerTests;' in pbxproj
    assert '$(AppIdentifierPrefix)com.acme.app' in entitlements
    assert 'group.com.acme.app' in entitlements
    assert 'com.example' not in entitlements
    assert info['CFBundleIdentifier'] == 'com.acme.app'
    assert info['CFBundleDisplayName'] == 'Acme'
    assert read_bundle_identity(str(flutter_project)) == ('com.acme.app', 'Acme')
    assert len(changed) == 3


def test_rewrite_identity_is_idempotent(flutter_project, build_config):
    rewrite_identity(str(flutter_project), build_config)

    assert rewrite_identity(str(flutter_project), build_config) == []
