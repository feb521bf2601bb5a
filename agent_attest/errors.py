"""Exception classes for agent-attest."""

from __future__ import annotations


class AttestError(Exception):
    """Base exception for attribution errors."""

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self):
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class PathDecodeError(AttestError):
    """A path printed by git could not be turned into a canonical UTF-8 path."""

    def __init__(self, raw: bytes, details: str | None = None):
        super().__init__(f"cannot decode git path {raw!r}", details)
        self.raw = raw


class InconsistencyError(AttestError):
    """Attested line totals disagree with git's own added-line count."""

    def __init__(self, commit: str, attested: int, git_added: int):
        super().__init__(
            f"commit {commit[:12]}: {attested} attested lines "
            f"but git reports {git_added} added lines"
        )
        self.commit = commit
        self.attested = attested
        self.git_added = git_added


class BlameGapError(AttestError):
    """A blamed line has no attestation record in its origin commit."""

    def __init__(self, path: str, line_no: int, commit: str):
        super().__init__(f"{path}:{line_no} has no attestation in {commit[:12]}")
        self.path = path
        self.line_no = line_no
        self.commit = commit


class VcsError(AttestError):
    """A git invocation failed."""

    def __init__(self, args: list[str], returncode: int | None, stderr: str = ""):
        super().__init__(f"git {' '.join(args)} failed", stderr.strip() or None)
        self.git_args = args
        self.returncode = returncode


class InvalidRecordError(AttestError):
    """An attestation record failed validation on append."""

    pass


class DuplicateCommitError(AttestError):
    """A commit's authorship log was appended twice."""

    pass


class UnreconciledCommitError(AttestError):
    """Stats were requested for a commit with no authorship log."""

    pass
