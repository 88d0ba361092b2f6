# Storage Module - Snapshot Backends
#
# LocalBackend  - JSON file on disk, atomic replace
# RemoteBackend - JSON file in a hosted repository via the contents API

from types import MappingProxyType
from typing import Mapping

from ..core.config import VaultConfig
from ..vault.models import BackendTarget
from .backend import StorageBackend
from .contents_client import CommitIdentity, ContentsClient, RemoteFile
from .local_backend import LocalBackend
from .remote_backend import RemoteBackend


def build_backends(config: VaultConfig) -> Mapping[BackendTarget, StorageBackend]:
    """Build the immutable set of enabled backends described by ``config``."""
    backends = {}

    if config.local.enabled:
        backends[BackendTarget.LOCAL] = LocalBackend(config.local.data_path)

    remote = config.remote
    if remote is not None and remote.enabled:
        identity = None
        if remote.author_name and remote.author_email:
            identity = CommitIdentity(remote.author_name, remote.author_email)
        client = ContentsClient(
            owner=remote.owner,
            repo=remote.repo,
            token=remote.token,
            branch=remote.branch,
            base_url=remote.base_url,
            timeout=remote.timeout_seconds,
            max_retries=remote.max_retries,
            identity=identity,
        )
        backends[BackendTarget.REMOTE] = RemoteBackend(client, remote.file_path)

    return MappingProxyType(backends)


__all__ = [
    "StorageBackend",
    "LocalBackend",
    "RemoteBackend",
    "ContentsClient",
    "CommitIdentity",
    "RemoteFile",
    "build_backends",
]
