"""Per-process view of the cluster.

Every process (primary or worker) owns exactly one ``ClusterView``. Workers
overwrite their cached snapshot wholesale whenever the supervisor broadcasts a
fresh one, so the view is advisory data that can lag the primary by up to one
broadcast interval. Nothing here blocks on IPC.
"""

import os
from collections.abc import Callable

from nutribyte.contracts import ClusterSnapshot

PRIMARY_WORKER_ID = "primary"
SINGLE_PROCESS_WORKER_ID = "1"


class ClusterView:
    """Read-mostly holder of this process's worker ID and cached snapshot."""

    def __init__(
        self,
        *,
        worker_id: str | None = None,
        clustering_enabled: bool = False,
        snapshot: ClusterSnapshot | None = None,
        snapshot_source: Callable[[], ClusterSnapshot] | None = None,
    ) -> None:
        self.worker_id = worker_id or f"w{os.getpid()}"
        self.clustering_enabled = clustering_enabled
        self._snapshot = snapshot or ClusterSnapshot(total_cpus=os.cpu_count() or 1)
        self._snapshot_source = snapshot_source

    @classmethod
    def single_process(cls) -> "ClusterView":
        """View for a process serving requests without a supervisor."""
        return cls(worker_id=SINGLE_PROCESS_WORKER_ID, clustering_enabled=False)

    def assign_worker_id(self, logical_id: int) -> None:
        self.worker_id = str(logical_id)

    def replace_snapshot(self, snapshot: ClusterSnapshot) -> None:
        """Overwrite the cached snapshot. Snapshots are never merged."""
        self._snapshot = snapshot

    def get_cluster_info(self) -> ClusterSnapshot:
        """Return the snapshot currently known to this process."""
        if self._snapshot_source is not None:
            return self._snapshot_source()
        return self._snapshot


_current_view: ClusterView | None = None


def get_cluster_view() -> ClusterView | None:
    """Get the view registered for this process, if any."""
    return _current_view


def set_cluster_view(view: ClusterView | None) -> None:
    """Register the view used by logging filters and the status route."""
    global _current_view
    _current_view = view


def current_worker_id() -> str:
    view = _current_view
    if view is None:
        return PRIMARY_WORKER_ID
    return view.worker_id
