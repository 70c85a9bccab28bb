import runpy
import sys

import pytest

from ios_workflow import make
from ios_workflow.config import REQUIRED_KEYS


class StubPipeline:
    instances = []

    def __init__(self, context):
        self.context = context
        StubPipeline.instances.append(self)

    def run(self):
        self.context.artifact_path = 'build/ios/output/Runner.ipa'
        return []


def test_cli_defaults():
    args = make.read_cli_arguments([])

    assert args.project_dir == '.'
    assert args.min_ios_version == '13.0'
    assert args.no_icon_fix is False
    assert args.strict_verification is False
    assert args.require_helper == []


def test_missing_required_variables_exit_nonzero(monkeypatch, flutter_project):
    for key in REQUIRED_KEYS:
        monkeypatch.delenv(key, raising=False)

    assert make.main(['--project-dir', str(flutter_project)]) == 1
    assert (flutter_project / 'ios' / 'Pods').exists()


def test_missing_conffile_exit_nonzero(tmp_path):
    assert make.main(['--conffile', str(tmp_path / 'absent.properties')]) == 1


def test_success_passes_options_to_pipeline(monkeypatch, tmp_path):
    conffile = tmp_path / 'build.properties'
    conffile.write_text('[DEFAULT]\nBUNDLE_ID = com.acme.app\n')
    monkeypatch.setattr(make, 'Pipeline', StubPipeline)
    StubPipeline.instances.clear()

    status = make.main([
        '--project-dir', str(tmp_path),
        '--conffile', str(conffile),
        '--no-icon-fix',
        '--strict-verification',
        '--min-ios-version', '14.0',
        '--timeout', '900',
        '--require-helper', 'lib/scripts/ios-workflow/main_workflow.sh',
    ])

    context = StubPipeline.instances[0].context
    assert status == 0
    assert context.project_dir == str(tmp_path)
    assert context.config.bundle_id == 'com.acme.app'
    assert context.config.min_ios_version == '14.0'
    assert context.options.apply_icon_fix is False
    assert context.options.strict_verification is True
    assert context.options.timeout == 900
    assert context.options.required_helpers == ('lib/scripts/ios-workflow/main_workflow.sh',)


def test_unreadable_conffile_exit_nonzero(tmp_path):
    conffile = tmp_path / 'build.properties'
    conffile.write_text('BUNDLE_ID = com.acme.app\n')

    assert make.main(['--conffile', str(conffile)]) == 1


def test_package_runs_as_module(monkeypatch):
    monkeypatch.setattr(make, 'main', lambda: 0)
    monkeypatch.delitem(sys.modules, 'ios_workflow.__main__', raising=False)

    with pytest.raises(SystemExit) as excinfo:
        runpy.run_module('ios_workflow', run_name='__main__')

    assert excinfo.value.code == 0
