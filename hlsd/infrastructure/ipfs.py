import json
import logging
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Dict, List, Optional
import httpx
from hlsd.config.models import IPFSConfig
from hlsd.domain.errors import IngestFailure

class IPFSStore:
    """Content-addressable store backed by an IPFS node's HTTP RPC API."""

    def __init__(self, config: Optional[IPFSConfig] = None, transport: Optional[httpx.BaseTransport] = None):
        self.config = config or IPFSConfig()
        self.logger = logging.getLogger(__name__)
        self._client = httpx.Client(
            base_url=self.config.host,
            timeout=self.config.timeout_seconds,
            transport=transport,
        )

    def close(self):
        self._client.close()

    def add_directory(self, path: Path) -> str:
        """Adds every file under path as one directory; returns the directory's CID."""
        path = Path(path)
        if not path.is_dir():
            raise IngestFailure(f"{path} is not a directory")

        files = sorted(p for p in path.rglob("*") if p.is_file())
        if not files:
            raise IngestFailure(f"{path} contains no files to add")

        with ExitStack() as stack:
            form = [
                ("file", (f"{path.name}/{f.relative_to(path).as_posix()}", stack.enter_context(open(f, "rb"))))
                for f in files
            ]
            entries = self._add(form)

        for entry in entries:
            if entry.get("Name") == path.name and entry.get("Hash"):
                self.logger.info(f"Added directory {path} to IPFS: {entry['Hash']}")
                return entry["Hash"]
        raise IngestFailure(f"IPFS response did not include directory {path.name}")

    def add_file(self, path: Path) -> str:
        """Adds a single file; returns its CID."""
        path = Path(path)
        if not path.is_file():
            raise IngestFailure(f"{path} is not a file")

        with open(path, "rb") as f:
            entries = self._add([("file", (path.name, f))])

        if not entries or not entries[-1].get("Hash"):
            raise IngestFailure(f"IPFS response did not include a hash for {path.name}")
        self.logger.info(f"Added file {path} to IPFS: {entries[-1]['Hash']}")
        return entries[-1]["Hash"]

    def _add(self, form: List[Any]) -> List[Dict[str, Any]]:
        """POSTs a multipart form to /api/v0/add and returns the decoded NDJSON entries."""
        params = {"pin": str(self.config.pin).lower()}
        try:
            response = self._client.post("/api/v0/add", params=params, files=form)
        except httpx.HTTPError as e:
            raise IngestFailure(f"IPFS request failed: {e}") from e

        if response.status_code >= 400:
            raise IngestFailure(f"IPFS add failed ({response.status_code}): {response.text.strip()}")

        try:
            return [json.loads(line) for line in response.text.splitlines() if line.strip()]
        except json.JSONDecodeError as e:
            raise IngestFailure(f"Unreadable IPFS response: {e}") from e
