from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterable

import pytest

from scripts.deploy.deploy_errors import ProvisioningError
from scripts.deploy.provisioning import StorageAccount
from scripts.deploy.resolver import RegistryCredentials


def pytest_configure() -> None:
    # Allow tests to import `scripts.*` as a package.
    repo_root = Path(__file__).parents[2]
    sys.path.append(str(repo_root))


class ScriptedPrompts:
    """PromptSource double that replays canned answers and records labels."""

    def __init__(self, *, answers: Iterable[str] = (), secrets: Iterable[str] = (), confirm: bool = True):
        self._answers = list(answers)
        self._secrets = list(secrets)
        self._confirm = confirm
        self.asked: list[str] = []
        self.asked_secret: list[str] = []
        self.confirmed: list[str] = []

    def ask(self, label: str, default: str | None = None) -> str:
        self.asked.append(label)
        return self._answers.pop(0) if self._answers else (default or "")

    def ask_secret(self, label: str) -> str:
        self.asked_secret.append(label)
        return self._secrets.pop(0) if self._secrets else ""

    def confirm(self, label: str) -> bool:
        self.confirmed.append(label)
        return self._confirm


class FakeProvisioningClient:
    """Records every call instead of talking to Azure."""

    def __init__(self, *, acr_credentials: tuple[str, str] | None = None, fail_on: str | None = None):
        self.calls: list[tuple[str, dict]] = []
        self.acr_lookups: list[str] = []
        self._acr_credentials = acr_credentials
        self._fail_on = fail_on

    def _record(self, _op: str, /, **kwargs) -> None:
        if _op == self._fail_on:
            raise ProvisioningError(operation=_op, message="boom")
        self.calls.append((_op, kwargs))

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def current_subscription(self) -> str:
        self._record("current_subscription")
        return "00000000-0000-0000-0000-000000000000"

    def ensure_providers(self, namespaces) -> list[str]:
        self._record("ensure_providers", namespaces=list(namespaces))
        return []

    def create_resource_group(self, *, name: str, location: str) -> None:
        self._record("create_resource_group", name=name, location=location)

    def create_storage_account(self, *, name: str, resource_group: str, location: str) -> StorageAccount:
        self._record("create_storage_account", name=name, resource_group=resource_group, location=location)
        return StorageAccount(name=name, key="storage-key")

    def create_file_share(self, *, name: str, storage: StorageAccount) -> None:
        self._record("create_file_share", name=name, storage=storage)

    def create_app_service_plan(self, *, name: str, resource_group: str, location: str) -> None:
        self._record("create_app_service_plan", name=name, resource_group=resource_group, location=location)

    def registry_credentials(self, registry_name: str) -> tuple[str, str] | None:
        self.acr_lookups.append(registry_name)
        return self._acr_credentials

    def create_webapp(self, *, name: str, resource_group: str, plan: str, credentials: RegistryCredentials) -> None:
        self._record("create_webapp", name=name, resource_group=resource_group, plan=plan, credentials=credentials)

    def set_app_settings(self, *, name: str, resource_group: str, settings: dict[str, str]) -> None:
        self._record("set_app_settings", name=name, resource_group=resource_group, settings=dict(settings))

    def mount_file_share(self, *, name: str, resource_group: str, storage: StorageAccount, share_name: str, mount_path: str) -> None:
        self._record(
            "mount_file_share",
            name=name,
            resource_group=resource_group,
            storage=storage,
            share_name=share_name,
            mount_path=mount_path,
        )

    def webapp_hostname(self, *, name: str, resource_group: str) -> str:
        self._record("webapp_hostname", name=name, resource_group=resource_group)
        return f"{name}.azurewebsites.net"


@pytest.fixture
def fake_client() -> FakeProvisioningClient:
    return FakeProvisioningClient()


@pytest.fixture
def scripted_prompts():
    return ScriptedPrompts


@pytest.fixture
def fake_client_factory():
    return FakeProvisioningClient
