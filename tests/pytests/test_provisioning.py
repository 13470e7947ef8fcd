from __future__ import annotations

import subprocess
from unittest.mock import patch

import pytest

from scripts.deploy.deploy_errors import ProvisioningError
from scripts.deploy.provisioning import (
    AzCliProvisioningClient,
    ProvisioningClient,
    StorageAccount,
    provision_dual_webapps,
)
from scripts.deploy.resolver import RegistryCredentials, resolve_config

CREDS = RegistryCredentials(
    server="revolvregistry.azurecr.io",
    image_path="ari-zks:latest",
    registry_short_name="revolvregistry",
    username="acr-user",
    password="acr-pass",
)


def _quiet(_msg: str) -> None:
    pass


def _config():
    return resolve_config({"ENCRYPTION_KEY": "enc", "REVOLV_SHARED_SECRET": "shared"}, app_name="ari-rks-deadbeef")


def test_fake_client_satisfies_protocol(fake_client) -> None:
    assert isinstance(fake_client, ProvisioningClient)
    assert isinstance(AzCliProvisioningClient(verbose=False), ProvisioningClient)


def test_provision_dual_webapps_call_order(fake_client) -> None:
    config = _config()
    result = provision_dual_webapps(fake_client, config, CREDS, log=_quiet)

    assert fake_client.call_names() == [
        "create_resource_group",
        "create_storage_account",
        "create_file_share",
        "create_app_service_plan",
        "create_webapp",
        "set_app_settings",
        "mount_file_share",
        "webapp_hostname",
        "create_webapp",
        "set_app_settings",
        "mount_file_share",
        "webapp_hostname",
    ]
    created = [kw["name"] for name, kw in fake_client.calls if name == "create_webapp"]
    assert created == ["private-ari-rks-deadbeef", "public-ari-rks-deadbeef"]

    assert result.storage == StorageAccount(name="arirksdeadbeefstorage", key="storage-key")
    assert result.webapp("private").url == "https://private-ari-rks-deadbeef.azurewebsites.net"
    assert result.webapp("public").url == "https://public-ari-rks-deadbeef.azurewebsites.net"


def test_provision_dual_webapps_settings_and_mounts(fake_client) -> None:
    provision_dual_webapps(fake_client, _config(), CREDS, log=_quiet)

    settings = [kw["settings"] for name, kw in fake_client.calls if name == "set_app_settings"]
    assert [s["INSTANCE_ID"] for s in settings] == ["private", "public"]
    assert [s["ALLOW_PRIVATE_ACCESS"] for s in settings] == ["true", "false"]
    assert {s["ENCRYPTION_KEY"] for s in settings} == {"enc"}
    assert {s["REVOLV_SHARED_SECRET"] for s in settings} == {"shared"}

    mounts = [kw for name, kw in fake_client.calls if name == "mount_file_share"]
    assert {(m["share_name"], m["mount_path"]) for m in mounts} == {("shared-data", "/app/data")}
    assert {m["storage"].name for m in mounts} == {"arirksdeadbeefstorage"}


def test_provision_dual_webapps_stops_at_first_failure(fake_client_factory) -> None:
    client = fake_client_factory(fail_on="create_app_service_plan")
    with pytest.raises(ProvisioningError) as excinfo:
        provision_dual_webapps(client, _config(), CREDS, log=_quiet)

    assert excinfo.value.operation == "create_app_service_plan"
    assert "create_webapp" not in client.call_names()


def test_az_client_wraps_cli_failures() -> None:
    client = AzCliProvisioningClient(verbose=False)
    err = subprocess.CalledProcessError(1, ["az"], stderr="QuotaExceeded: B1")
    with patch("scripts.deploy.provisioning.run_az_command", side_effect=err):
        with pytest.raises(ProvisioningError) as excinfo:
            client.create_app_service_plan(name="plan", resource_group="rg", location="westeurope")

    assert excinfo.value.operation == "App Service plan creation"
    assert "QuotaExceeded: B1" in excinfo.value.format()


def test_az_client_wraps_missing_cli() -> None:
    client = AzCliProvisioningClient(verbose=False)
    with patch("scripts.deploy.provisioning.run_az_command", side_effect=RuntimeError("Azure CLI (az) not found")):
        with pytest.raises(ProvisioningError, match="not found"):
            client.create_file_share(name="shared-data", storage=StorageAccount(name="s", key="k"))


def test_az_client_create_storage_account_returns_key() -> None:
    client = AzCliProvisioningClient(verbose=False)
    with patch("scripts.deploy.provisioning.run_az_command", side_effect=[None, "the-key\n"]) as mock_az:
        storage = client.create_storage_account(name="arirksstorage", resource_group="rg", location="westeurope")

    assert storage == StorageAccount(name="arirksstorage", key="the-key")
    create_args = mock_az.call_args_list[0][0][0]
    assert create_args[:3] == ["storage", "account", "create"]
    assert "Standard_LRS" in create_args
    assert "StorageV2" in create_args
    keys_args = mock_az.call_args_list[1][0][0]
    assert keys_args[:4] == ["storage", "account", "keys", "list"]


def test_az_client_create_storage_account_without_key_fails() -> None:
    client = AzCliProvisioningClient(verbose=False)
    with patch("scripts.deploy.provisioning.run_az_command", side_effect=[None, ""]):
        with pytest.raises(ProvisioningError):
            client.create_storage_account(name="arirksstorage", resource_group="rg", location="westeurope")


def test_az_client_create_webapp_passes_registry() -> None:
    client = AzCliProvisioningClient(verbose=False)
    with patch("scripts.deploy.provisioning.run_az_command") as mock_az:
        client.create_webapp(name="private-x", resource_group="rg", plan="x-plan", credentials=CREDS)

    args = mock_az.call_args[0][0]
    assert args[:2] == ["webapp", "create"]
    assert args[args.index("--container-image-name") + 1] == "ari-zks:latest"
    assert args[args.index("--container-registry-url") + 1] == "https://revolvregistry.azurecr.io"
    assert args[args.index("--container-registry-user") + 1] == "acr-user"
    assert args[args.index("--container-registry-password") + 1] == "acr-pass"


def test_az_client_set_app_settings_and_mount() -> None:
    client = AzCliProvisioningClient(verbose=False)
    storage = StorageAccount(name="stg", key="k")
    with patch("scripts.deploy.provisioning.run_az_command") as mock_az:
        client.set_app_settings(name="public-x", resource_group="rg", settings={"ENV": "azure", "INSTANCE_ID": "public"})
        client.mount_file_share(
            name="public-x", resource_group="rg", storage=storage, share_name="shared-data", mount_path="/app/data"
        )

    settings_args = mock_az.call_args_list[0][0][0]
    assert "ENV=azure" in settings_args
    assert "INSTANCE_ID=public" in settings_args

    mount_args = mock_az.call_args_list[1][0][0]
    assert mount_args[:4] == ["webapp", "config", "storage-account", "add"]
    assert mount_args[mount_args.index("--storage-type") + 1] == "AzureFiles"
    assert mount_args[mount_args.index("--mount-path") + 1] == "/app/data"
    assert mount_args[mount_args.index("--access-key") + 1] == "k"


def test_az_client_resource_group_errors_are_ignored() -> None:
    client = AzCliProvisioningClient(verbose=False)
    with patch("scripts.deploy.provisioning.run_az_command", return_value=None) as mock_az:
        client.create_resource_group(name="rg", location="westeurope")
    assert mock_az.call_args.kwargs["ignore_errors"] is True


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"username": "u", "passwords": [{"name": "password", "value": "p"}]}, ("u", "p")),
        ({"username": "u", "passwords": []}, None),
        ({"username": "", "passwords": [{"value": "p"}]}, None),
        (None, None),
        ("not json", None),
    ],
)
def test_az_client_registry_credentials(payload, expected) -> None:
    client = AzCliProvisioningClient(verbose=False)
    with patch("scripts.deploy.provisioning.run_az_command", return_value=payload) as mock_az:
        assert client.registry_credentials("revolvregistry") == expected
    args = mock_az.call_args[0][0]
    assert args[:4] == ["acr", "credential", "show", "--name"]
    assert args[4] == "revolvregistry"


def test_az_client_current_subscription() -> None:
    client = AzCliProvisioningClient(verbose=False)
    with patch("scripts.deploy.provisioning.run_az_command", side_effect=["sub-123\n", None]) as mock_az:
        assert client.current_subscription() == "sub-123"
    assert mock_az.call_args_list[1][0][0] == ["account", "set", "--subscription", "sub-123"]


def test_az_client_current_subscription_missing() -> None:
    client = AzCliProvisioningClient(verbose=False)
    with patch("scripts.deploy.provisioning.run_az_command", return_value=""):
        with pytest.raises(ProvisioningError):
            client.current_subscription()


def test_az_client_ensure_providers_registers_only_missing(capsys) -> None:
    client = AzCliProvisioningClient(verbose=False)
    responses = {
        "Microsoft.Storage": "Registered",
        "Microsoft.Web": "NotRegistered",
    }

    def fake_az(args, **kwargs):
        if args[:2] == ["provider", "show"]:
            return responses.get(args[3])
        return None

    with patch("scripts.deploy.provisioning.run_az_command", side_effect=fake_az) as mock_az:
        registered = client.ensure_providers(["Microsoft.Storage", "Microsoft.Web", "Microsoft.ContainerRegistry"])

    assert registered == ["Microsoft.Web", "Microsoft.ContainerRegistry"]
    register_calls = [c[0][0] for c in mock_az.call_args_list if c[0][0][:2] == ["provider", "register"]]
    assert [c[3] for c in register_calls] == ["Microsoft.Web", "Microsoft.ContainerRegistry"]
    assert all("--wait" in c for c in register_calls)
    assert "Registering Microsoft.Web" in capsys.readouterr().out
