"""
Artifacts Repository.

Responsibilities:
- CRUD operations for artifacts and their version history.

Non-Responsibilities:
- No update/rewrite classification.
- No metrics.

Invariant:
Version history rows are append-only.
"""
from typing import List

from devmonitor.database import Artifact, ArtifactVersion
from .base import Repository


class ArtifactRepository(Repository[Artifact]):
    model = Artifact

    def list_for_session(self, session_id: str) -> List[Artifact]:
        """Artifacts of a session, most recently updated first."""
        return (
            self.db.query(Artifact)
            .filter(Artifact.session_id == session_id)
            .order_by(Artifact.updated_at.desc())
            .all()
        )

    def add_version(self, artifact: Artifact, decision_type: str, decision_id: str = "") -> ArtifactVersion:
        """Snapshot the artifact's current content as a history entry."""
        entry = ArtifactVersion(
            artifact_id=artifact.id,
            version=artifact.version,
            content=artifact.content,
            line_count=artifact.line_count,
            char_count=artifact.char_count,
            decision_type=decision_type,
            decision_id=decision_id,
            timestamp=artifact.updated_at,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def versions(self, artifact_id: str) -> List[ArtifactVersion]:
        return (
            self.db.query(ArtifactVersion)
            .filter(ArtifactVersion.artifact_id == artifact_id)
            .order_by(ArtifactVersion.version.asc())
            .all()
        )

    def delete(self, record_id: str) -> bool:
        artifact = self.get(record_id)
        if artifact is None:
            return False
        self.db.query(ArtifactVersion).filter(ArtifactVersion.artifact_id == record_id).delete()
        self.db.delete(artifact)
        self.db.flush()
        return True
