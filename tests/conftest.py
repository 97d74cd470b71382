"""Shared fixtures for the rbnvfd test suite."""

import pytest

from rbnvfd.radio import RadioController
from rbnvfd.rbn_client import ConnectionState


class FakeClient:
    """Stands in for RbnClient: records commands, replays queued events."""

    def __init__(self):
        self.events = []
        self.commands = []
        self.state = ConnectionState.IDLE
        self.started = False

    @property
    def is_connected(self):
        return self.state == ConnectionState.STREAMING

    def start(self):
        self.started = True

    async def stop(self):
        self.started = False

    async def connect(self, callsign):
        self.commands.append(("connect", callsign))

    async def disconnect(self):
        self.commands.append(("disconnect",))

    def try_recv(self):
        return self.events.pop(0) if self.events else None


class RecordingRadio(RadioController):
    """Radio controller that accepts every tune and remembers it."""

    def __init__(self):
        self.connected = False
        self.tuned = []

    @property
    def is_connected(self):
        return self.connected

    @property
    def backend_name(self):
        return "recording"

    async def connect(self):
        self.connected = True
        return True

    async def disconnect(self):
        self.connected = False

    async def tune(self, frequency_khz, mode):
        self.tuned.append((frequency_khz, mode))
        return True


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def recording_radio():
    return RecordingRadio()
