from __future__ import annotations

from typing import Any

import yaml

from scripts.deploy.env_schema import AppSettingsEnum
from scripts.deploy.provisioning import (
    APP_SERVICE_SKU,
    FILE_SHARE_QUOTA_GB,
    STORAGE_KIND,
    STORAGE_MOUNT_ID,
    STORAGE_SKU,
)
from scripts.deploy.resolver import (
    INSTANCES,
    RegistryCredentials,
    RegistryReference,
    ResolvedConfig,
    build_app_settings,
)

MASK = "***"
_SECRET_SETTINGS = {AppSettingsEnum.ENCRYPTION_KEY.value, AppSettingsEnum.REVOLV_SHARED_SECRET.value}


def build_deploy_plan(
    *,
    config: ResolvedConfig,
    registry: RegistryReference,
    credentials: RegistryCredentials | None = None,
    show_secrets: bool = False,
) -> dict[str, Any]:
    """Describe every resource a deploy run would create, in creation order."""

    def settings_for(instance: str) -> dict[str, str]:
        settings = build_app_settings(config, instance)
        if not show_secrets:
            settings = {k: (MASK if k in _SECRET_SETTINGS else v) for k, v in settings.items()}
        return settings

    registry_block: dict[str, Any] = {
        "server": registry.server,
        "url": f"https://{registry.server}",
        "image": registry.image_path,
    }
    if credentials is not None:
        registry_block["username"] = credentials.username
        registry_block["password"] = credentials.password if show_secrets else MASK
    else:
        registry_block["credentials"] = "resolved at deploy time"

    return {
        "appName": config.app_name,
        "resourceGroup": {"name": config.resource_group, "location": config.location},
        "storageAccount": {
            "name": config.storage_account_name,
            "sku": STORAGE_SKU,
            "kind": STORAGE_KIND,
            "fileShare": {"name": config.file_share_name, "quotaGB": FILE_SHARE_QUOTA_GB},
        },
        "appServicePlan": {"name": config.app_service_plan_name, "sku": APP_SERVICE_SKU, "linux": True},
        "registry": registry_block,
        "webApps": [
            {
                "instance": instance,
                "name": config.webapp_name(instance),
                "appSettings": settings_for(instance),
                "mount": {
                    "id": STORAGE_MOUNT_ID,
                    "type": "AzureFiles",
                    "share": config.file_share_name,
                    "path": config.mount_path,
                },
            }
            for instance in INSTANCES
        ],
    }


def render_deploy_plan_yaml(plan: dict[str, Any]) -> str:
    return yaml.safe_dump(plan, sort_keys=False, default_flow_style=False)
