class BuildError(Exception):
    """Base class for every failure raised by a workflow step."""

    label = 'BUILD_ERROR'

    def __init__(self, message, items=None):
        super().__init__(message)
        self.items = list(items or [])


class MissingDependency(BuildError):
    label = 'MISSING_DEPENDENCY'


class MissingConfig(BuildError):
    label = 'MISSING_CONFIG'


class ExternalToolFailure(BuildError):
    label = 'EXTERNAL_TOOL_FAILURE'

    def __init__(self, message, command=None, returncode=None, log_path=None):
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.log_path = log_path


class VerificationMismatch(BuildError):
    label = 'VERIFICATION_MISMATCH'


class ArtifactNotFound(BuildError):
    label = 'ARTIFACT_NOT_FOUND'
