"""Provisioning of the shared storage, App Service plan and the two Web Apps.

`ProvisioningClient` is the seam between the deploy pipeline and Azure. The
Azure CLI implementation below mirrors the `az` calls one-for-one; tests
substitute a recording fake.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Callable, Iterable, Protocol, runtime_checkable

from scripts.deploy.azure_utils import run_az_command
from scripts.deploy.deploy_errors import ProvisioningError
from scripts.deploy.resolver import (
    INSTANCES,
    RegistryCredentials,
    ResolvedConfig,
    build_app_settings,
)

logger = logging.getLogger("deploy.provisioning")

REQUIRED_PROVIDERS = ("Microsoft.Storage", "Microsoft.Web", "Microsoft.ContainerRegistry")

STORAGE_SKU = "Standard_LRS"
STORAGE_KIND = "StorageV2"
FILE_SHARE_QUOTA_GB = 5
APP_SERVICE_SKU = "B1"
STORAGE_MOUNT_ID = "shared-storage"


@dataclass(frozen=True)
class StorageAccount:
    name: str
    key: str


@dataclass(frozen=True)
class WebAppDeployment:
    instance: str
    name: str
    hostname: str

    @property
    def url(self) -> str:
        return f"https://{self.hostname}"


@dataclass(frozen=True)
class DeploymentResult:
    storage: StorageAccount
    webapps: tuple[WebAppDeployment, ...]

    def webapp(self, instance: str) -> WebAppDeployment:
        for app in self.webapps:
            if app.instance == instance:
                return app
        raise KeyError(instance)


@runtime_checkable
class ProvisioningClient(Protocol):
    def current_subscription(self) -> str: ...
    def ensure_providers(self, namespaces: Iterable[str]) -> list[str]: ...
    def create_resource_group(self, *, name: str, location: str) -> None: ...
    def create_storage_account(self, *, name: str, resource_group: str, location: str) -> StorageAccount: ...
    def create_file_share(self, *, name: str, storage: StorageAccount) -> None: ...
    def create_app_service_plan(self, *, name: str, resource_group: str, location: str) -> None: ...
    def registry_credentials(self, registry_name: str) -> tuple[str, str] | None: ...
    def create_webapp(self, *, name: str, resource_group: str, plan: str, credentials: RegistryCredentials) -> None: ...
    def set_app_settings(self, *, name: str, resource_group: str, settings: dict[str, str]) -> None: ...
    def mount_file_share(
        self, *, name: str, resource_group: str, storage: StorageAccount, share_name: str, mount_path: str
    ) -> None: ...
    def webapp_hostname(self, *, name: str, resource_group: str) -> str: ...


class AzCliProvisioningClient:
    """`ProvisioningClient` backed by the Azure CLI."""

    def __init__(self, *, verbose: bool = True):
        self._verbose = verbose

    def _az(self, operation: str, args: list[str], *, capture_output: bool = True) -> dict | list | str | None:
        try:
            return run_az_command(args, capture_output=capture_output, verbose=self._verbose)
        except subprocess.CalledProcessError as e:
            raise ProvisioningError(
                operation=operation,
                message=f"az exited with code {e.returncode}",
                stderr=getattr(e, "stderr", None),
            ) from e
        except RuntimeError as e:
            raise ProvisioningError(operation=operation, message=str(e)) from e

    def _tsv(self, operation: str, args: list[str]) -> str:
        return str(self._az(operation, args + ["-o", "tsv"]) or "").strip()

    def current_subscription(self) -> str:
        subscription_id = self._tsv("subscription lookup", ["account", "show", "--query", "id"])
        if not subscription_id:
            raise ProvisioningError(operation="subscription lookup", message="no active subscription")
        self._az("subscription select", ["account", "set", "--subscription", subscription_id], capture_output=False)
        return subscription_id

    def ensure_providers(self, namespaces: Iterable[str]) -> list[str]:
        registered: list[str] = []
        for namespace in namespaces:
            state = run_az_command(
                ["provider", "show", "--namespace", namespace, "--query", "registrationState", "-o", "tsv"],
                ignore_errors=True,
                verbose=False,
            )
            if str(state or "NotRegistered").strip() == "Registered":
                continue
            print(f"   Registering {namespace}...")
            self._az(
                f"provider registration ({namespace})",
                ["provider", "register", "--namespace", namespace, "--wait"],
                capture_output=False,
            )
            registered.append(namespace)
        return registered

    def create_resource_group(self, *, name: str, location: str) -> None:
        # Existing groups (possibly in another location) are reused as-is.
        run_az_command(
            ["group", "create", "--name", name, "--location", location, "--output", "none"],
            capture_output=False,
            ignore_errors=True,
            verbose=self._verbose,
        )

    def create_storage_account(self, *, name: str, resource_group: str, location: str) -> StorageAccount:
        self._az(
            "storage account creation",
            [
                "storage", "account", "create",
                "--name", name,
                "--resource-group", resource_group,
                "--location", location,
                "--sku", STORAGE_SKU,
                "--kind", STORAGE_KIND,
                "--output", "none",
            ],
            capture_output=False,
        )
        key = self._tsv(
            "storage key lookup",
            ["storage", "account", "keys", "list", "--resource-group", resource_group, "--account-name", name, "--query", "[0].value"],
        )
        if not key:
            raise ProvisioningError(operation="storage key lookup", message=f"no access key returned for '{name}'")
        return StorageAccount(name=name, key=key)

    def create_file_share(self, *, name: str, storage: StorageAccount) -> None:
        self._az(
            "file share creation",
            [
                "storage", "share", "create",
                "--name", name,
                "--account-name", storage.name,
                "--account-key", storage.key,
                "--quota", str(FILE_SHARE_QUOTA_GB),
                "--output", "none",
            ],
            capture_output=False,
        )

    def create_app_service_plan(self, *, name: str, resource_group: str, location: str) -> None:
        self._az(
            "App Service plan creation",
            [
                "appservice", "plan", "create",
                "--name", name,
                "--resource-group", resource_group,
                "--location", location,
                "--is-linux",
                "--sku", APP_SERVICE_SKU,
                "--output", "none",
            ],
            capture_output=False,
        )

    def registry_credentials(self, registry_name: str) -> tuple[str, str] | None:
        res = run_az_command(
            ["acr", "credential", "show", "--name", registry_name, "--output", "json"],
            ignore_errors=True,
            verbose=False,
        )
        if not isinstance(res, dict):
            return None
        username = str(res.get("username") or "").strip()
        passwords = res.get("passwords") or []
        password = ""
        if isinstance(passwords, list) and passwords and isinstance(passwords[0], dict):
            password = str(passwords[0].get("value") or "").strip()
        if not username or not password:
            return None
        return username, password

    def create_webapp(self, *, name: str, resource_group: str, plan: str, credentials: RegistryCredentials) -> None:
        self._az(
            f"Web App creation ({name})",
            [
                "webapp", "create",
                "--name", name,
                "--resource-group", resource_group,
                "--plan", plan,
                "--container-image-name", credentials.image_path,
                "--container-registry-url", credentials.registry_url,
                "--container-registry-user", credentials.username,
                "--container-registry-password", credentials.password,
                "--output", "none",
            ],
            capture_output=False,
        )

    def set_app_settings(self, *, name: str, resource_group: str, settings: dict[str, str]) -> None:
        self._az(
            f"app settings ({name})",
            [
                "webapp", "config", "appsettings", "set",
                "--name", name,
                "--resource-group", resource_group,
                "--settings", *[f"{k}={v}" for k, v in settings.items()],
                "--output", "none",
            ],
            capture_output=False,
        )

    def mount_file_share(
        self, *, name: str, resource_group: str, storage: StorageAccount, share_name: str, mount_path: str
    ) -> None:
        self._az(
            f"file share mount ({name})",
            [
                "webapp", "config", "storage-account", "add",
                "--name", name,
                "--resource-group", resource_group,
                "--custom-id", STORAGE_MOUNT_ID,
                "--storage-type", "AzureFiles",
                "--share-name", share_name,
                "--account-name", storage.name,
                "--access-key", storage.key,
                "--mount-path", mount_path,
                "--output", "none",
            ],
            capture_output=False,
        )

    def webapp_hostname(self, *, name: str, resource_group: str) -> str:
        return self._tsv(
            f"Web App lookup ({name})",
            ["webapp", "show", "--name", name, "--resource-group", resource_group, "--query", "defaultHostName"],
        )


def provision_dual_webapps(
    client: ProvisioningClient,
    config: ResolvedConfig,
    credentials: RegistryCredentials,
    *,
    log: Callable[[str], None] = print,
) -> DeploymentResult:
    """Create the shared resources, then the private and public Web Apps.

    Straight-line and fail-fast: the first failing call raises `ProvisioningError`
    and nothing already created is rolled back.
    """
    log("")
    log("📦 Creating Resource Group...")
    client.create_resource_group(name=config.resource_group, location=config.location)
    log(f"✅ Resource Group: {config.resource_group}")

    log("")
    log("💾 Creating Storage Account...")
    storage = client.create_storage_account(
        name=config.storage_account_name,
        resource_group=config.resource_group,
        location=config.location,
    )
    log(f"✅ Storage Account: {storage.name}")

    log("")
    log("📁 Creating File Share...")
    client.create_file_share(name=config.file_share_name, storage=storage)
    log(f"✅ File Share: {config.file_share_name}")

    log("")
    log("📋 Creating App Service Plan...")
    client.create_app_service_plan(
        name=config.app_service_plan_name,
        resource_group=config.resource_group,
        location=config.location,
    )
    log(f"✅ App Service Plan: {config.app_service_plan_name}")

    webapps: list[WebAppDeployment] = []
    for instance in INSTANCES:
        name = config.webapp_name(instance)
        log("")
        log(f"🚀 Creating Web App {instance.capitalize()}: {name}...")
        client.create_webapp(
            name=name,
            resource_group=config.resource_group,
            plan=config.app_service_plan_name,
            credentials=credentials,
        )
        client.set_app_settings(
            name=name,
            resource_group=config.resource_group,
            settings=build_app_settings(config, instance),
        )
        client.mount_file_share(
            name=name,
            resource_group=config.resource_group,
            storage=storage,
            share_name=config.file_share_name,
            mount_path=config.mount_path,
        )
        hostname = client.webapp_hostname(name=name, resource_group=config.resource_group)
        app = WebAppDeployment(instance=instance, name=name, hostname=hostname)
        logger.debug("web app %s ready at %s", name, hostname)
        log(f"✅ Web App {instance.capitalize()}: {app.url}")
        webapps.append(app)

    return DeploymentResult(storage=storage, webapps=tuple(webapps))
