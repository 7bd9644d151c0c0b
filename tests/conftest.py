"""Shared pytest fixtures.

Each client built by ``make_client`` is an independent simulated process:
its own session, instance id and components, all sharing one registry
file under ``tmp_path``.
"""

import dataclasses

import pytest

from helpers import FakeClock, make_config
from roster.client import RegistryClient
from roster.registry import RegistryStore
from roster.snapshot import InstanceIdentity, SnapshotBuilder


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(tmp_path):
    return make_config(tmp_path)


@pytest.fixture
def store(config):
    return RegistryStore(config.registry_file)


@pytest.fixture
def make_client(config, clock):
    clients = []

    def _make(workspace=None, pid=None, **overrides):
        cfg = dataclasses.replace(config, **overrides)
        snapshot = SnapshotBuilder(
            InstanceIdentity.generate(process_id=pid, clock=clock),
            workspace_path=workspace,
            collaborators={},
            memory=lambda: 42.0,
        )
        client = RegistryClient(cfg, snapshot=snapshot, clock=clock)
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.cleanup()
