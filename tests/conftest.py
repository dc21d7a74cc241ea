"""
Shared fixtures for HomeSync tests.
"""

import asyncio
import copy
from typing import Any, Dict, Tuple

import pytest

from homesync.models import RemoteDevice, RemoteError
from homesync.registry.host import AccessoryHandle, JsonHostRegistry
from homesync.registry.records import AccessoryRecord


class FakeClient:
    """
    Stand-in for RemoteAPIClient.

    Responses are keyed by (method, path); anything not configured answers
    with a 404 sentinel, like the real client does.
    """

    display_name = "Test API"

    def __init__(self, responses: Dict[Tuple[str, str], Any] = None):
        self.responses = responses or {}
        self.calls = []

    def set_directory(self, devices):
        self.responses[("GET", "")] = devices

    async def call(self, method, path="", body=None):
        self.calls.append((method, str(path), body))
        result = self.responses.get((method, str(path)))
        if result is None:
            return RemoteError("404")
        if isinstance(result, RemoteError):
            return result
        return copy.deepcopy(result)


def light(uuid="light-1", id=1, name="Desk Lamp", **characteristics):
    return {
        "id": id,
        "uuid": uuid,
        "name": name,
        "type": "Lightbulb",
        "characteristics": characteristics or {"on": True},
    }


def door(uuid="door-1", id=2, name="Garage", **characteristics):
    return {
        "id": id,
        "uuid": uuid,
        "name": name,
        "type": "Garage Door Opener",
        "characteristics": characteristics or {"stateTarget": 1, "stateActual": 1, "obstruction": False},
    }


def make_record(data: dict) -> AccessoryRecord:
    device = RemoteDevice.from_dict(data)
    return AccessoryRecord.from_device(device, AccessoryHandle(uuid=device.uuid, display_name=device.name))


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def host(tmp_path):
    return JsonHostRegistry(tmp_path / "accessories.json")


class GatedClient(FakeClient):
    """FakeClient whose calls for a given method wait until released."""

    def __init__(self, responses: Dict[Tuple[str, str], Any] = None, gated=("GET",)):
        super().__init__(responses)
        self.gated = set(gated)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def call(self, method, path="", body=None):
        if method in self.gated:
            self.entered.set()
            await self.release.wait()
        return await super().call(method, path, body)
