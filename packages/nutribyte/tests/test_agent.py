from __future__ import annotations

import asyncio
import multiprocessing
import os

import pytest

from nutribyte.cluster import ClusterView, WorkerAgent
from nutribyte.contracts import (
    ClusterInfoMessage,
    ClusterSnapshot,
    GetClusterInfoMessage,
    IncrementRequestsMessage,
    WorkerIdMessage,
    WorkerRecord,
    decode_message,
    encode_message,
)


def _snapshot(*ids: int) -> ClusterSnapshot:
    return ClusterSnapshot(
        total_cpus=4,
        configured_workers=2,
        active_workers=len(ids),
        workers=[WorkerRecord(id=i, pid=100 + i) for i in ids],
    )


@pytest.fixture
def channel():
    primary_end, worker_end = multiprocessing.Pipe(duplex=True)
    try:
        yield primary_end, worker_end
    finally:
        primary_end.close()
        worker_end.close()


def test_view_has_provisional_id_until_assigned(channel) -> None:
    primary_end, worker_end = channel
    view = ClusterView(clustering_enabled=True)
    agent = WorkerAgent(worker_end, view)
    assert view.worker_id == f"w{os.getpid()}"

    primary_end.send_bytes(encode_message(WorkerIdMessage(id=3)))
    assert agent.drain(timeout=1.0) == 1

    assert view.worker_id == "3"


def test_latest_cluster_info_replaces_the_snapshot(channel) -> None:
    primary_end, worker_end = channel
    view = ClusterView(clustering_enabled=True)
    agent = WorkerAgent(worker_end, view)

    primary_end.send_bytes(encode_message(ClusterInfoMessage(data=_snapshot(1, 2))))
    primary_end.send_bytes(encode_message(ClusterInfoMessage(data=_snapshot(1, 3))))
    agent.drain(timeout=1.0)

    assert [w.id for w in view.get_cluster_info().workers] == [1, 3]


def test_malformed_message_is_dropped(channel) -> None:
    primary_end, worker_end = channel
    view = ClusterView(clustering_enabled=True)
    agent = WorkerAgent(worker_end, view)

    primary_end.send_bytes(b'{"type": "REBOOT"}')
    primary_end.send_bytes(encode_message(WorkerIdMessage(id=2)))

    assert agent.drain(timeout=1.0) == 1
    assert view.worker_id == "2"
    assert agent.channel_open


def test_closed_channel_stops_outbound_traffic(channel) -> None:
    primary_end, worker_end = channel
    agent = WorkerAgent(worker_end, ClusterView(clustering_enabled=True))

    primary_end.close()
    agent.drain(timeout=1.0)

    assert not agent.channel_open
    agent.report_request()
    agent.request_cluster_info()


def test_report_request_sends_increment(channel) -> None:
    primary_end, worker_end = channel
    agent = WorkerAgent(worker_end, ClusterView(clustering_enabled=True))

    agent.report_request()
    agent.report_request()

    assert primary_end.poll(1.0)
    assert decode_message(primary_end.recv_bytes()) == IncrementRequestsMessage()
    assert decode_message(primary_end.recv_bytes()) == IncrementRequestsMessage()


def test_send_failure_is_not_raised(channel) -> None:
    _, worker_end = channel
    agent = WorkerAgent(worker_end, ClusterView(clustering_enabled=True))
    worker_end.close()

    agent.report_request()


@pytest.mark.asyncio
async def test_started_agent_applies_broadcasts_and_polls(channel) -> None:
    primary_end, worker_end = channel
    view = ClusterView(clustering_enabled=True)
    agent = WorkerAgent(worker_end, view, poll_interval=0.01)

    await agent.start()
    try:
        primary_end.send_bytes(encode_message(ClusterInfoMessage(data=_snapshot(5))))
        for _ in range(100):
            if view.get_cluster_info().workers:
                break
            await asyncio.sleep(0.01)
        assert [w.id for w in view.get_cluster_info().workers] == [5]

        assert primary_end.poll(1.0)
        assert decode_message(primary_end.recv_bytes()) == GetClusterInfoMessage()
    finally:
        await agent.stop()


@pytest.mark.asyncio
async def test_start_asks_for_a_snapshot_without_waiting_for_the_poll(channel) -> None:
    primary_end, worker_end = channel
    agent = WorkerAgent(worker_end, ClusterView(clustering_enabled=True), poll_interval=60)

    await agent.start()
    try:
        assert primary_end.poll(0.5)
        assert decode_message(primary_end.recv_bytes()) == GetClusterInfoMessage()
        assert not primary_end.poll(0.05)
    finally:
        await agent.stop()


@pytest.mark.asyncio
async def test_primary_exit_detaches_the_reader(channel) -> None:
    primary_end, worker_end = channel
    agent = WorkerAgent(worker_end, ClusterView(clustering_enabled=True), poll_interval=60)

    await agent.start()
    try:
        primary_end.close()
        for _ in range(100):
            if not agent.channel_open:
                break
            await asyncio.sleep(0.01)
        assert not agent.channel_open
    finally:
        await agent.stop()
