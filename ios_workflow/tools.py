import logging
import os
import re
import shutil
import subprocess
from dataclasses import dataclass

from .errors import ExternalToolFailure, MissingDependency

logger = logging.getLogger('ios-workflow')

DEFAULT_TIMEOUT = 3600

REQUIRED_TOOLS = ('flutter', 'pod', 'xcodebuild')


@dataclass
class ToolResult:
    command: list
    returncode: int
    output: str
    log_path: str = None

    @property
    def ok(self):
        return self.returncode == 0


class ToolRunner:
    """Runs external build tools synchronously and keeps their combined output."""

    def __init__(self, timeout=DEFAULT_TIMEOUT, env=None):
        self.timeout = timeout
        self.env = env

    def run(self, command, cwd=None, log_path=None, timeout=None):
        timeout = timeout or self.timeout
        logger.info(f"Running: {' '.join(command)}" + (f" (in {cwd})" if cwd else ''))
        try:
            result = subprocess.run(
                command,
                cwd=cwd,
                env=self.env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=timeout,
            )
            returncode, output = result.returncode, result.stdout or ''
        except subprocess.TimeoutExpired as e:
            partial = e.stdout or ''
            if isinstance(partial, bytes):
                partial = partial.decode(errors='replace')
            write_log(log_path, partial)
            raise ExternalToolFailure(
                f"{command[0]} timed out after {timeout} seconds",
                command=command, log_path=log_path,
            )
        except FileNotFoundError:
            raise MissingDependency(f"Executable not found: {command[0]}", items=[command[0]])

        write_log(log_path, output)
        return ToolResult(command=list(command), returncode=returncode, output=output, log_path=log_path)


def write_log(log_path, output):
    if not log_path:
        return
    log_dir = os.path.dirname(log_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    with open(log_path, 'w') as f:
        f.write(output)


def run_checked(runner, command, cwd=None, log_path=None, success_marker=None, timeout=None):
    """Run a tool and fail unless it exits 0 and, when given, its output matches success_marker.

    success_marker is a regular expression searched in the combined stdout/stderr.
    A missing marker is treated as a failure even when the exit code is 0.
    """
    result = runner.run(command, cwd=cwd, log_path=log_path, timeout=timeout)
    tool = os.path.basename(command[0])

    if not result.ok:
        logger.error(f"✗ {tool} exited with code {result.returncode}")
        log_tail(result.output)
        raise ExternalToolFailure(
            f"{tool} failed with exit code {result.returncode}",
            command=command, returncode=result.returncode, log_path=log_path,
        )

    if success_marker and not re.search(success_marker, result.output):
        logger.error(f"✗ {tool} exited 0 but its output has no success marker ({success_marker})")
        log_tail(result.output)
        raise ExternalToolFailure(
            f"{tool} did not report success (marker '{success_marker}' not found)",
            command=command, returncode=result.returncode, log_path=log_path,
        )

    logger.info(f"✓ {tool} completed")
    return result


def log_tail(output, lines=20):
    tail = output.strip().splitlines()[-lines:]
    if tail:
        logger.error("Last lines of output:\n" + '\n'.join(tail))


def find_missing_tools(tools=REQUIRED_TOOLS, which=shutil.which):
    return [tool for tool in tools if which(tool) is None]
