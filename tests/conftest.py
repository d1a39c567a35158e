from __future__ import annotations

import pytest

from devicelink.adapters.db.credentials import CredentialStore
from devicelink.services.envelope.models import DeviceCredential

SECRET = "8358a7b6add3b33daf060be8345f0af4"
PREVIOUS_SECRET = "00112233445566778899aabbccddeeff"
RENEWED_SECRET = "ffeeddccbbaa99887766554433221100"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def credential_store(tmp_path):
    store = CredentialStore(tmp_path / "devices.sqlite")
    store.save_credential(
        DeviceCredential(device_id="dev-1", current_secret=SECRET, previous_secret=PREVIOUS_SECRET),
        description="pump station",
    )
    store.save_credential(DeviceCredential(device_id="dev-solo", current_secret=SECRET))
    return store
