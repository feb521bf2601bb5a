"""agent-attest: line-level AI/human attribution for git repositories."""

__version__ = "0.1.0"
