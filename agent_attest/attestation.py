"""
Attestation data model.

An ``AuthorshipLog`` is what a commit leaves behind after reconciliation:
one ``FileAttestation`` per file with added lines, each holding range
records that together cover every added line exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

AI = "ai"
HUMAN = "human"
UNATTRIBUTED = "unattributed"

AUTHORS = (AI, HUMAN)

LOG_VERSION = "1.0"


@dataclass(frozen=True)
class AttestationRecord:
    commit: str
    file_path: str
    start_line: int
    end_line: int
    author: str
    accepted: bool = False

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    def covers(self, line_no: int) -> bool:
        return self.start_line <= line_no <= self.end_line

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_line": self.start_line,
            "end_line": self.end_line,
            "author": self.author,
            "accepted": self.accepted,
        }


@dataclass
class FileAttestation:
    file_path: str
    records: list[AttestationRecord] = field(default_factory=list)

    @property
    def line_count(self) -> int:
        return sum(r.line_count for r in self.records)

    def record_for_line(self, line_no: int) -> AttestationRecord | None:
        for r in self.records:
            if r.covers(line_no):
                return r
        return None


@dataclass
class AuthorshipLog:
    commit: str
    parent: str | None = None
    created_at: str | None = None
    attestations: list[FileAttestation] = field(default_factory=list)

    def records(self) -> list[AttestationRecord]:
        return [r for fa in self.attestations for r in fa.records]

    def for_path(self, file_path: str) -> FileAttestation | None:
        for fa in self.attestations:
            if fa.file_path == file_path:
                return fa
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": LOG_VERSION,
            "commit_sha": self.commit,
            "parent_sha": self.parent,
            "created_at": self.created_at,
            "attestations": [
                {
                    "file_path": fa.file_path,
                    "lines": [r.to_dict() for r in fa.records],
                }
                for fa in self.attestations
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthorshipLog:
        commit = data["commit_sha"]
        attestations: list[FileAttestation] = []
        for entry in data.get("attestations", []):
            file_path = entry["file_path"]
            records = [
                AttestationRecord(
                    commit=commit,
                    file_path=file_path,
                    start_line=int(r["start_line"]),
                    end_line=int(r["end_line"]),
                    author=r["author"],
                    accepted=bool(r.get("accepted", False)),
                )
                for r in entry.get("lines", [])
            ]
            attestations.append(FileAttestation(file_path=file_path, records=records))
        return cls(
            commit=commit,
            parent=data.get("parent_sha"),
            created_at=data.get("created_at"),
            attestations=attestations,
        )


def group_by_file(records: list[AttestationRecord]) -> list[FileAttestation]:
    """Group records into file attestations, keeping first-appearance order."""
    by_file: dict[str, FileAttestation] = {}
    for r in records:
        fa = by_file.get(r.file_path)
        if fa is None:
            fa = by_file[r.file_path] = FileAttestation(file_path=r.file_path)
        fa.records.append(r)
    return list(by_file.values())
