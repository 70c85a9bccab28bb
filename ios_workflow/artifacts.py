import datetime
import glob
import logging
import os
import shutil

from .errors import ArtifactNotFound

logger = logging.getLogger('ios-workflow')

# Searched in this order, relative to the project root
CANDIDATE_DIRS = ('build/ios/output', 'build/ios', 'output/ios', '.')

OUTPUT_DIR = os.path.join('output', 'ios')


def locate_artifact(project_dir, pattern='*.ipa', candidate_dirs=CANDIDATE_DIRS):
    """Return the first file matching pattern in the prioritized candidate dirs.

    Raises ArtifactNotFound when nothing matches or the match is empty.
    """
    for candidate in candidate_dirs:
        search_dir = os.path.normpath(os.path.join(project_dir, candidate))
        if not os.path.isdir(search_dir):
            continue
        # the project root is only searched at the top level
        recursive = candidate != '.'
        search = os.path.join(search_dir, '**', pattern) if recursive else os.path.join(search_dir, pattern)
        found = sorted(path for path in glob.glob(search, recursive=recursive) if os.path.isfile(path))
        if not found:
            continue

        artifact = found[0]
        size = os.path.getsize(artifact)
        if size == 0:
            raise ArtifactNotFound(f"Artifact is empty: {artifact}", items=[artifact])
        logger.info(f"✓ Found artifact at: {artifact} ({size} bytes)")
        return artifact

    searched = ', '.join(candidate_dirs)
    raise ArtifactNotFound(f"No {pattern} file found after build (searched: {searched})", items=list(candidate_dirs))


def publish_artifact(project_dir, artifact_path, config, logs=()):
    """Copy the artifact into output/ios and write ARTIFACTS_SUMMARY.txt next to it."""
    output_dir = os.path.join(project_dir, OUTPUT_DIR)
    os.makedirs(output_dir, exist_ok=True)

    published = os.path.join(output_dir, os.path.basename(artifact_path))
    if os.path.abspath(published) != os.path.abspath(artifact_path):
        shutil.copy2(artifact_path, published)

    size = os.path.getsize(published)
    summary_path = os.path.join(output_dir, 'ARTIFACTS_SUMMARY.txt')
    with open(summary_path, 'w') as f:
        f.write("iOS Build Artifacts Summary\n")
        f.write("===========================\n\n")
        f.write("Build Information:\n")
        f.write(f"- App Name: {config.app_name or 'Unknown'}\n")
        f.write(f"- Bundle ID: {config.bundle_id or 'Unknown'}\n")
        f.write(f"- Version: {config.version_name or 'Unknown'}\n")
        f.write(f"- Build Number: {config.version_code or 'Unknown'}\n")
        f.write(f"- Team ID: {config.apple_team_id or 'Unknown'}\n\n")
        f.write("Generated Files:\n")
        f.write(f"- IPA File: {os.path.relpath(published, project_dir)}\n")
        f.write(f"- IPA Size: {size} bytes\n")
        if logs:
            f.write("\nBuild Logs:\n")
            for log_path in logs:
                f.write(f"- {os.path.relpath(log_path, project_dir)}\n")
        f.write(f"\nBuild Date: {datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")

    logger.info(f"✓ Artifacts summary created: {summary_path}")
    return published, summary_path
