"""Persistence: JSON checkpoints, PDF artifacts, and the MongoDB mirror.

Outputs:
- data/checkpoints/ - timestamped run checkpoints (sameep-datos-*.json)
- data/pdfs/ - invoice PDFs per account plus a content-hash manifest
"""

from chaco_facturas.store.artifacts import ArtifactStore, MongoRepository, StoredArtifact, content_hash
from chaco_facturas.store.checkpoint import (
    checkpoint_filename,
    latest_checkpoint,
    load_checkpoint,
    save_checkpoint,
    save_json,
)

__all__ = [
    "ArtifactStore",
    "MongoRepository",
    "StoredArtifact",
    "checkpoint_filename",
    "content_hash",
    "latest_checkpoint",
    "load_checkpoint",
    "save_checkpoint",
    "save_json",
]
