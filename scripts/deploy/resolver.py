"""Deployment parameter resolution for the dual Web App deploy.

Everything the provisioning calls need is derived here, up front, from the
container image reference, optional registry credentials and environment
overrides:

- resource names (Web Apps, App Service plan, storage account, file share)
- the two shared secrets injected into both Web Apps
- registry server/image split and credentials

Nothing in this module talks to Azure directly; the automatic ACR lookup is
passed in as a callable.
"""

from __future__ import annotations

import base64
import logging
import re
import secrets
import uuid
from dataclasses import dataclass, field
from typing import Callable, Mapping

from scripts.deploy.deploy_errors import CredentialsMissingError, InvalidArgumentError
from scripts.deploy.env_schema import DEPLOY_SCHEMA, AppSettingsEnum, SecretsEnum, VarsEnum, get_spec
from scripts.deploy.prompts import PromptSource

logger = logging.getLogger("deploy.resolver")

APP_NAME_PREFIX = "ari-rks-"
FILE_SHARE_NAME = "shared-data"
MOUNT_PATH = "/app/data"
WEBSITES_PORT = "8000"
MANAGED_REGISTRY_SUFFIX = ".azurecr.io"

STORAGE_ACCOUNT_MIN_LENGTH = 3
STORAGE_ACCOUNT_MAX_LENGTH = 24

INSTANCE_PRIVATE = "private"
INSTANCE_PUBLIC = "public"
INSTANCES = (INSTANCE_PRIVATE, INSTANCE_PUBLIC)

IMAGE_FORMAT = "<registry>/<image-name>[:tag]"
IMAGE_EXAMPLES = (
    "revolv-registry.azurecr.io/ari-zks:latest",
    "revolv-registry.azurecr.io/ari-zks",
    "myregistry.io/myapp:v1.0.0",
)

# One lookup per run: returns (username, password) or None.
RegistryLookup = Callable[[str], tuple[str, str] | None]


@dataclass(frozen=True)
class DeploymentRequest:
    container_image: str
    registry_username: str | None = None
    registry_password: str | None = None


@dataclass(frozen=True)
class RegistryReference:
    server: str
    image_path: str
    short_name: str


@dataclass(frozen=True)
class RegistryCredentials:
    server: str
    image_path: str
    registry_short_name: str
    username: str
    password: str = field(repr=False)

    @property
    def registry_url(self) -> str:
        return f"https://{self.server}"


@dataclass(frozen=True)
class ResolvedConfig:
    app_name: str
    resource_group: str
    location: str
    webapp_private_name: str
    webapp_public_name: str
    app_service_plan_name: str
    storage_account_name: str
    file_share_name: str
    mount_path: str
    encryption_key: str = field(repr=False)
    shared_secret: str = field(repr=False)

    def webapp_name(self, instance: str) -> str:
        if instance == INSTANCE_PRIVATE:
            return self.webapp_private_name
        if instance == INSTANCE_PUBLIC:
            return self.webapp_public_name
        raise ValueError(f"Unknown instance: {instance!r}")


def validate_image_reference(image: str) -> None:
    """Require `<host>/<path>`: a `/` with a non-empty segment on both sides."""
    value = (image or "").strip()
    if not value:
        raise InvalidArgumentError(
            "Missing container image.",
            hints=[f"Expected format: {IMAGE_FORMAT}", "", "Examples:"] + [f"   {e}" for e in IMAGE_EXAMPLES],
        )

    head, sep, tail = value.partition("/")
    if not sep or not head or not tail or tail.startswith("/"):
        raise InvalidArgumentError(
            f"Invalid image format: {value} (the image name after the registry is missing)",
            hints=[
                f"Expected format: {IMAGE_FORMAT}",
                "",
                "Valid examples:",
                *[f"   {e}" for e in IMAGE_EXAMPLES],
                "",
                f"You provided: {value}",
            ],
        )


def derive_app_name(user_input: str | None) -> str:
    name = (user_input or "").strip()
    if name:
        return name
    # Display name, not a secret.
    return f"{APP_NAME_PREFIX}{uuid.uuid4().hex[:8]}"


def sanitize_storage_account_name(name: str) -> str:
    """Lowercase, keep [a-z0-9] only, cap at 24 chars. May return < 3 chars."""
    cleaned = re.sub(r"[^a-z0-9]", "", (name or "").lower())
    return cleaned[:STORAGE_ACCOUNT_MAX_LENGTH]


def validate_storage_account_name(name: str) -> None:
    if len(name) < STORAGE_ACCOUNT_MIN_LENGTH:
        raise InvalidArgumentError(
            f"Storage account name '{name}' is too short after sanitizing "
            f"(Azure requires {STORAGE_ACCOUNT_MIN_LENGTH}-{STORAGE_ACCOUNT_MAX_LENGTH} lowercase letters/digits).",
            hints=["Set APP_NAME to a name containing more letters or digits."],
        )


def split_registry_reference(image: str) -> RegistryReference:
    value = (image or "").strip()
    server, _, image_path = value.partition("/")
    short_name = server.split(".", 1)[0]
    return RegistryReference(server=server, image_path=image_path, short_name=short_name)


def is_managed_registry(server: str) -> bool:
    return server.lower().endswith(MANAGED_REGISTRY_SUFFIX)


def resolve_credentials(
    server: str,
    explicit_user: str | None,
    explicit_pass: str | None,
    *,
    prompts: PromptSource | None,
    registry_lookup: RegistryLookup | None = None,
    image_path: str = "",
    log: Callable[[str], None] = print,
) -> RegistryCredentials:
    """Resolve registry credentials: explicit > ACR lookup > prompt.

    `prompts=None` disables the interactive tier (non-interactive runs).
    """
    short_name = server.split(".", 1)[0]

    def _creds(username: str, password: str) -> RegistryCredentials:
        return RegistryCredentials(
            server=server,
            image_path=image_path,
            registry_short_name=short_name,
            username=username,
            password=password,
        )

    user = (explicit_user or "").strip()
    # Password kept verbatim; blank means absent.
    if user and (explicit_pass or "").strip():
        log("✅ Using registry credentials passed as parameters")
        return _creds(user, explicit_pass)

    if is_managed_registry(server):
        found = registry_lookup(short_name) if registry_lookup is not None else None
        if found and found[0] and found[1]:
            log("✅ ACR credentials retrieved automatically")
            return _creds(found[0], found[1])
        logger.debug("ACR credential lookup for %s returned nothing", short_name)
        log("⚠️  External registry detected (Revolv registry)")
        log("   Please provide the Revolv registry credentials")
    else:
        log("⚠️  Non-Azure registry detected")
        log("   Please provide the registry credentials")

    if prompts is None:
        raise CredentialsMissingError(
            f"No credentials available for registry '{server}'.",
            hints=["Pass <registry-username> <registry-password>, or run interactively to be prompted."],
        )

    user = prompts.ask("Registry Username").strip()
    password = prompts.ask_secret("Registry Password").strip()
    if not user or not password:
        raise CredentialsMissingError(f"Registry username and password are required for '{server}'.")
    return _creds(user, password)


def generate_secrets(overrides: Mapping[str, str] | None = None) -> tuple[str, str]:
    """Return (encryption_key, shared_secret); overrides win over fresh values."""
    overrides = overrides or {}
    encryption_key = str(overrides.get(SecretsEnum.ENCRYPTION_KEY.value) or "").strip()
    if not encryption_key:
        encryption_key = base64.b64encode(secrets.token_bytes(32)).decode("ascii")
    shared_secret = str(overrides.get(SecretsEnum.REVOLV_SHARED_SECRET.value) or "").strip()
    if not shared_secret:
        shared_secret = secrets.token_hex(32)
    return encryption_key, shared_secret


def resolve_config(overrides: Mapping[str, str], *, app_name: str) -> ResolvedConfig:
    """Build the immutable per-run configuration.

    Args:
        overrides: Deploy env (see `env_schema.read_deploy_env`); defaults already applied.
        app_name: Result of `derive_app_name`.

    Raises:
        InvalidArgumentError: If the derived storage account name is unusable.
    """
    app_name = derive_app_name(app_name)
    storage_account_name = sanitize_storage_account_name(f"{app_name}storage")
    validate_storage_account_name(storage_account_name)

    encryption_key, shared_secret = generate_secrets(overrides)

    return ResolvedConfig(
        app_name=app_name,
        resource_group=str(overrides.get(VarsEnum.RESOURCE_GROUP.value) or get_spec(DEPLOY_SCHEMA, VarsEnum.RESOURCE_GROUP).default),
        location=str(overrides.get(VarsEnum.LOCATION.value) or get_spec(DEPLOY_SCHEMA, VarsEnum.LOCATION).default),
        webapp_private_name=f"{INSTANCE_PRIVATE}-{app_name}",
        webapp_public_name=f"{INSTANCE_PUBLIC}-{app_name}",
        app_service_plan_name=f"{app_name}-plan",
        storage_account_name=storage_account_name,
        file_share_name=FILE_SHARE_NAME,
        mount_path=MOUNT_PATH,
        encryption_key=encryption_key,
        shared_secret=shared_secret,
    )


def database_url(mount_path: str) -> str:
    return f"sqlite:////{mount_path.lstrip('/')}/data.db"


def build_app_settings(config: ResolvedConfig, instance: str) -> dict[str, str]:
    if instance not in INSTANCES:
        raise ValueError(f"Unknown instance: {instance!r}")
    return {
        AppSettingsEnum.WEBSITES_PORT.value: WEBSITES_PORT,
        AppSettingsEnum.ENV.value: "azure",
        AppSettingsEnum.INSTANCE_ID.value: instance,
        AppSettingsEnum.ALLOW_PRIVATE_ACCESS.value: "true" if instance == INSTANCE_PRIVATE else "false",
        AppSettingsEnum.ENCRYPTION_KEY.value: config.encryption_key,
        AppSettingsEnum.REVOLV_SHARED_SECRET.value: config.shared_secret,
        AppSettingsEnum.DATABASE_URL.value: database_url(config.mount_path),
    }


def resolve(
    request: DeploymentRequest,
    overrides: Mapping[str, str],
    *,
    app_name: str,
    prompts: PromptSource | None,
    registry_lookup: RegistryLookup | None = None,
    log: Callable[[str], None] = print,
) -> tuple[ResolvedConfig, RegistryCredentials]:
    """Validate `request` and derive everything provisioning needs.

    Raises:
        InvalidArgumentError: Malformed image reference or unusable names.
        CredentialsMissingError: No registry credentials from any tier.
    """
    validate_image_reference(request.container_image)
    config = resolve_config(overrides, app_name=app_name)

    ref = split_registry_reference(request.container_image)
    log(f"🐳 Registry detected: {ref.server} (ACR: {ref.short_name})")
    log(f"   Image: {ref.image_path}")

    credentials = resolve_credentials(
        ref.server,
        request.registry_username,
        request.registry_password,
        prompts=prompts,
        registry_lookup=registry_lookup,
        image_path=ref.image_path,
        log=log,
    )
    return config, credentials
