"""FAISS vector collection keyed by document key.

Handles:
- Idempotent collection provisioning (create or load)
- Key-addressed insert and delete over an IndexIDMap2
- Cosine top-K search with the stored text payload
- Metadata persistence next to the index file
"""
import json
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Dict, Any, Sequence, Tuple
import numpy as np
import faiss
import structlog

from app import config
from app.errors import InvalidInput, NotReady

logger = structlog.get_logger()

INDEX_TYPE = "IndexIDMap2(IndexFlatIP)"
METRIC = "cosine"


@dataclass
class SimilarityResult:
    """One search hit."""

    key: str
    text: str
    score: float


class FAISSVectorStore:
    """A named FAISS collection holding (key, text, vector) entries.

    Vectors are L2-normalized on the way in, so inner-product search returns
    cosine similarity. Each entry gets an int64 FAISS id; the id -> key/text
    mapping is kept in a JSON sidecar.
    """

    def __init__(self, index_dir: Path = None):
        """Initialize the store (no collection is loaded yet).

        Args:
            index_dir: Directory for index and metadata files (default from config)
        """
        self.index_dir = Path(index_dir or config.VECTOR_INDEX_DIR)

        self.collection_name: Optional[str] = None
        self.index: Optional[faiss.Index] = None
        self.dimension: Optional[int] = None
        self.entries: Dict[int, Dict[str, str]] = {}
        self.next_id = 0

    @property
    def ready(self) -> bool:
        return self.index is not None

    def _paths(self, name: str):
        return self.index_dir / f"{name}.index", self.index_dir / f"{name}.json"

    @property
    def index_path(self) -> Path:
        return self._paths(self.collection_name)[0]

    @property
    def metadata_path(self) -> Path:
        return self._paths(self.collection_name)[1]

    def _require_index(self) -> faiss.Index:
        if self.index is None:
            raise NotReady("No collection loaded. Call ensure_collection() first.")
        return self.index

    async def ensure_collection(self, name: str, dimension: int) -> None:
        """Load collection `name`, creating it first if it doesn't exist.

        Args:
            name: Collection name
            dimension: Embedding dimension for a new collection

        Raises:
            ValueError: If the stored collection has a different dimension
            RuntimeError: If creating or loading the collection fails
        """
        if not name:
            raise InvalidInput("Collection name cannot be empty")
        if not dimension or dimension <= 0:
            raise InvalidInput(f"Invalid collection dimension: {dimension}")

        if self.collection_name == name and self.index is not None:
            if self.dimension != dimension:
                raise ValueError(
                    f"Collection {name} is loaded with dim={self.dimension}, "
                    f"requested dim={dimension}. Rebuild the collection."
                )
            return

        index_path, metadata_path = self._paths(name)

        if index_path.exists() and metadata_path.exists():
            logger.info("collection_exists", collection=name, path=str(index_path))
            await self.load_index(name, dimension)
            return

        try:
            self._init_new_index(name, dimension)
            await self.save_index()
        except Exception as e:
            self.index = None
            logger.error("collection_create_failed", collection=name, error=str(e))
            raise RuntimeError(f"Failed to create collection {name}: {e}") from e

        logger.info("collection_created", collection=name, dimension=dimension, metric=METRIC)

    def _init_new_index(self, name: str, dimension: int) -> None:
        self.collection_name = name
        self.dimension = dimension
        self.index = faiss.IndexIDMap2(faiss.IndexFlatIP(dimension))
        self.entries = {}
        self.next_id = 0

    async def load_index(self, name: str, dimension: int) -> None:
        """Load a collection from disk and check its dimension.

        Raises:
            ValueError: If the stored dimension differs from `dimension`
            RuntimeError: If the files can't be read
        """
        index_path, metadata_path = self._paths(name)

        try:
            with open(metadata_path, "r") as f:
                metadata = json.load(f)
        except Exception as e:
            raise RuntimeError(f"Failed to load metadata for {name}: {e}") from e

        stored_dim = metadata.get("embedding_dimension")
        if stored_dim != dimension:
            raise ValueError(
                f"Dimension mismatch: collection {name} was built with dim={stored_dim}, "
                f"but the embedding model produces dim={dimension}. Please rebuild the index."
            )

        try:
            index = faiss.read_index(str(index_path))
        except Exception as e:
            raise RuntimeError(f"Failed to load FAISS index for {name}: {e}") from e

        self.collection_name = name
        self.dimension = stored_dim
        self.index = index
        self.entries = {int(k): v for k, v in metadata.get("entries", {}).items()}
        self.next_id = int(metadata.get("next_id", len(self.entries)))

        logger.info(
            "collection_loaded",
            collection=name,
            dimension=self.dimension,
            vector_count=self.index.ntotal,
        )

    async def save_index(self) -> None:
        """Write the FAISS index and its metadata to disk.

        Raises:
            RuntimeError: If save fails
        """
        index = self._require_index()
        self.index_dir.mkdir(parents=True, exist_ok=True)

        metadata = {
            "collection": self.collection_name,
            "embedding_dimension": self.dimension,
            "metric": METRIC,
            "index_type": INDEX_TYPE,
            "next_id": self.next_id,
            "vector_count": index.ntotal,
            "entries": {str(k): v for k, v in self.entries.items()},
        }

        try:
            faiss.write_index(index, str(self.index_path))
        except Exception as e:
            raise RuntimeError(f"Failed to save FAISS index: {e}") from e

        try:
            with open(self.metadata_path, "w") as f:
                json.dump(metadata, f, indent=2)
        except Exception as e:
            raise RuntimeError(f"Failed to save metadata: {e}") from e

        logger.debug("collection_saved", collection=self.collection_name, vector_count=index.ntotal)

    def _as_unit_row(self, vector: Sequence[float], what: str) -> np.ndarray:
        row = np.asarray(vector, dtype=np.float32).reshape(1, -1)
        if row.shape[1] != self.dimension:
            raise InvalidInput(
                f"{what} dimension mismatch: expected {self.dimension}, got {row.shape[1]}"
            )
        norm = np.linalg.norm(row)
        if not np.isfinite(norm) or norm == 0:
            raise InvalidInput(f"{what} must be a finite non-zero vector")
        return row / norm

    def _ids_for_key(self, key: str) -> List[int]:
        return [vid for vid, entry in self.entries.items() if entry["key"] == key]

    def _snapshot(self, ids: List[int]) -> List[Tuple[int, Dict[str, str], np.ndarray]]:
        return [(vid, self.entries[vid], self.index.reconstruct(vid)) for vid in ids]

    def _restore(self, snapshot: List[Tuple[int, Dict[str, str], np.ndarray]]) -> None:
        for vid, entry, row in snapshot:
            self.index.add_with_ids(row.reshape(1, -1), np.array([vid], dtype=np.int64))
            self.entries[vid] = entry

    def _remove_ids(self, ids: List[int]) -> int:
        if not ids:
            return 0
        removed = self.index.remove_ids(np.array(ids, dtype=np.int64))
        for vid in ids:
            self.entries.pop(vid, None)
        return int(removed)

    async def upsert(self, key: str, text: Optional[str], vector: Sequence[float]) -> None:
        """Store `vector` and `text` under `key`, replacing any entry for that key.

        Raises:
            InvalidInput: Blank key, wrong dimension or zero vector (index unchanged)
            NotReady: If no collection is loaded
        """
        index = self._require_index()

        if key is None or not str(key).strip():
            raise InvalidInput("Key cannot be null or empty")
        key = str(key).strip()

        if vector is None:
            raise InvalidInput("Vector cannot be null")
        row = self._as_unit_row(vector, "Embedding")

        # No await between remove and add: the swap is atomic for other coroutines
        previous = self._snapshot(self._ids_for_key(key))
        replaced = self._remove_ids([vid for vid, _, _ in previous])
        vid = self.next_id
        self.next_id += 1
        index.add_with_ids(row, np.array([vid], dtype=np.int64))
        self.entries[vid] = {"key": key, "text": text or ""}

        try:
            await self.save_index()
        except Exception:
            # Memory must match what is on disk
            self._remove_ids([vid])
            self._restore(previous)
            raise

        logger.info(
            "vector_upserted",
            key=key,
            replaced=replaced,
            total_vectors=index.ntotal,
        )

    async def delete_by_key(self, key: str) -> int:
        """Remove every entry stored under `key`.

        Unknown or blank keys are a no-op.

        Returns:
            Number of entries removed
        """
        self._require_index()

        if key is None or not str(key).strip():
            logger.warning("delete_skipped_empty_key")
            return 0
        key = str(key).strip()

        previous = self._snapshot(self._ids_for_key(key))
        removed = self._remove_ids([vid for vid, _, _ in previous])
        if removed:
            try:
                await self.save_index()
            except Exception:
                self._restore(previous)
                raise
            logger.info("vector_deleted", key=key, removed=removed)
        else:
            logger.debug("vector_delete_noop", key=key)
        return removed

    async def search(self, vector: Sequence[float], top_k: int) -> List[SimilarityResult]:
        """Return up to `top_k` entries ordered by descending cosine similarity.

        Raises:
            InvalidInput: If top_k <= 0 or the vector has the wrong dimension
            NotReady: If no collection is loaded
        """
        index = self._require_index()

        if top_k is None or top_k <= 0:
            raise InvalidInput("top_k must be greater than 0")

        if vector is None:
            raise InvalidInput("Query vector cannot be null")
        row = self._as_unit_row(vector, "Query")

        k = min(top_k, index.ntotal)
        if k == 0:
            logger.debug("vector_search_empty_collection", collection=self.collection_name)
            return []

        scores, ids = index.search(row, k)

        results = []
        for score, vid in zip(scores[0].tolist(), ids[0].tolist()):
            entry = self.entries.get(int(vid))
            if vid < 0 or entry is None:
                continue
            results.append(SimilarityResult(key=entry["key"], text=entry["text"], score=float(score)))

        logger.info("vector_search_completed", top_k=top_k, results_found=len(results))
        return results

    def count(self) -> int:
        return self.index.ntotal if self.index is not None else 0

    def keys(self) -> List[str]:
        return [entry["key"] for entry in self.entries.values()]

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the collection."""
        if self.index is None:
            return {
                "initialized": False,
                "vector_count": 0,
                "dimension": None,
            }

        return {
            "initialized": True,
            "collection": self.collection_name,
            "vector_count": self.index.ntotal,
            "dimension": self.dimension,
            "metric": METRIC,
            "index_type": INDEX_TYPE,
            "index_exists_on_disk": self.index_path.exists(),
        }

    async def drop_collection(self, name: str = None) -> None:
        """Delete a collection's files; the next ensure_collection() recreates it.

        Works whether or not the collection is loaded, so a collection built
        with another dimension can be dropped before reprovisioning.

        Args:
            name: Collection name (default: the loaded collection)
        """
        name = name or self.collection_name
        if not name:
            raise InvalidInput("No collection name given and no collection loaded")
        logger.warning("dropping_collection", collection=name)

        for path in self._paths(name):
            if path.exists():
                path.unlink()
                logger.info("deleted_collection_file", path=str(path))

        if name == self.collection_name:
            self.collection_name = None
            self.index = None
            self.dimension = None
            self.entries = {}
            self.next_id = 0
