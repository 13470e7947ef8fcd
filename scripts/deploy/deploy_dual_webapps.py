#!/usr/bin/env python3
"""Deploy ARI-ZKS as two Azure Web Apps sharing one Azure Files volume.

Model:
- One App Service plan (Linux, B1) hosting two Web Apps from the same image:
  - private-<app>: INSTANCE_ID=private, ALLOW_PRIVATE_ACCESS=true
  - public-<app>:  INSTANCE_ID=public,  ALLOW_PRIVATE_ACCESS=false
- One storage account + file share mounted at /app/data in both apps
  (SQLite database lives there).
- ENCRYPTION_KEY / REVOLV_SHARED_SECRET are generated per run unless provided.

Usage:
  python -m scripts.deploy.deploy_dual_webapps <container-image> [registry-username] [registry-password]
  ari-zks-deploy <container-image> [registry-username] [registry-password]

Example:
  ari-zks-deploy revolvregistry.azurecr.io/ari-zks:latest
  ari-zks-deploy revolvregistry.azurecr.io/ari-zks:latest myuser mypassword

Notes:
- Environment overrides (or .env.deploy): APP_NAME, RESOURCE_GROUP, LOCATION,
  ENCRYPTION_KEY, REVOLV_SHARED_SECRET.
- Re-running with new secrets against an existing app makes its data unreadable;
  use --write-back-deploy-env to keep them.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Mapping

from scripts.deploy.azure_utils import az_installed, az_logged_in
from scripts.deploy.deploy_errors import DeployError, InvalidArgumentError, UserCancelledError
from scripts.deploy.deploy_plan_helpers import build_deploy_plan, render_deploy_plan_yaml
from scripts.deploy.env_schema import (
    DEPLOY_SCHEMA,
    EnvValidationError,
    SecretsEnum,
    VarsEnum,
    get_spec,
    read_deploy_env,
    write_dotenv_values,
)
from scripts.deploy.prompts import ConsolePrompts, PromptSource, is_interactive
from scripts.deploy.provisioning import (
    REQUIRED_PROVIDERS,
    AzCliProvisioningClient,
    DeploymentResult,
    ProvisioningClient,
    provision_dual_webapps,
)
from scripts.deploy.resolver import (
    APP_NAME_PREFIX,
    IMAGE_EXAMPLES,
    DeploymentRequest,
    RegistryCredentials,
    ResolvedConfig,
    derive_app_name,
    resolve,
    resolve_config,
    split_registry_reference,
    validate_image_reference,
)
from scripts.deploy.webapp_health import probe_webapp

logger = logging.getLogger("deploy")

BANNER = "\n".join(
    [
        "╔═══════════════════════════════════════════════════════════════════════╗",
        "║        ARI-ZKS - Dual Web Apps + Shared Volume Deployment             ║",
        "╚═══════════════════════════════════════════════════════════════════════╝",
    ]
)


def build_parser() -> argparse.ArgumentParser:
    default_rg = get_spec(DEPLOY_SCHEMA, VarsEnum.RESOURCE_GROUP).default
    default_location = get_spec(DEPLOY_SCHEMA, VarsEnum.LOCATION).default

    parser = argparse.ArgumentParser(
        description="Deploy two Linux container Web Apps (private + public) with a shared Azure Files volume",
        epilog=(
            f"Environment overrides: {VarsEnum.APP_NAME.value}, {VarsEnum.RESOURCE_GROUP.value} (default: {default_rg}), "
            f"{VarsEnum.LOCATION.value} (default: {default_location}), {SecretsEnum.ENCRYPTION_KEY.value}, "
            f"{SecretsEnum.REVOLV_SHARED_SECRET.value}"
        ),
    )
    parser.add_argument(
        "image",
        nargs="?",
        default=None,
        help=f"Container image, <registry>/<image-name>[:tag] (e.g. {IMAGE_EXAMPLES[0]}). Falls back to CONTAINER_IMAGE.",
    )
    parser.add_argument("username", nargs="?", default=None, help="Registry username (optional)")
    parser.add_argument("password", nargs="?", default=None, help="Registry password (optional)")

    parser.add_argument(
        "--env-file",
        default=None,
        help="Deploy env file with overrides (default: ./.env.deploy). Process environment takes precedence.",
    )
    parser.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation before creating resources")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the resolved deployment plan as YAML and exit without calling Azure",
    )
    parser.add_argument(
        "--show-secrets",
        action="store_true",
        help="Include secret values in --dry-run output",
    )
    parser.add_argument(
        "--health-check",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Send one HTTP request to each Web App after deploy and report the result (default: off)",
    )
    parser.add_argument(
        "--write-back-deploy-env",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Save APP_NAME, ENCRYPTION_KEY and REVOLV_SHARED_SECRET into the deploy env file (default: off)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Echo az commands and debug logging")
    return parser


def _usage_hints(prog: str) -> list[str]:
    return [
        f"Usage: {prog} <container-image> [registry-username] [registry-password]",
        "",
        "Example:",
        f"   {prog} revolvregistry.azurecr.io/ari-zks:latest",
        f"   {prog} revolvregistry.azurecr.io/ari-zks:latest myuser mypassword",
        "",
        "Note: the image must be available in the Revolv registry.",
        "      Contact Revolv to get access to the registry.",
    ]


def _resolve_app_name(deploy_env: Mapping[str, str], prompts: PromptSource | None) -> str:
    preset = str(deploy_env.get(VarsEnum.APP_NAME.value) or "").strip()
    if preset:
        return preset

    entered = ""
    if prompts is not None:
        entered = prompts.ask(f"Application name (Enter for {APP_NAME_PREFIX}{{uuid4short}})").strip()
    app_name = derive_app_name(entered)
    if not entered:
        print(f"   → Using default name: {app_name}")
    return app_name


def _check_az_prerequisites() -> None:
    if not az_installed():
        raise DeployError("Azure CLI is not installed.")
    if not az_logged_in():
        raise DeployError("You are not logged in to Azure. Run: az login")


def _print_configuration(image: str, config: ResolvedConfig) -> None:
    print("")
    print("📍 Configuration:")
    print(f"   Container Image: {image}")
    print(f"   Resource Group: {config.resource_group}")
    print(f"   Location: {config.location}")
    print(f"   Web App Private: {config.webapp_private_name}")
    print(f"   Web App Public: {config.webapp_public_name}")
    print(f"   Storage: {config.storage_account_name}")
    print("")


def _print_summary(config: ResolvedConfig, result: DeploymentResult, *, secrets_saved_to: Path | None) -> None:
    private_app = result.webapp("private")
    public_app = result.webapp("public")
    rg = config.resource_group

    print("")
    print("╔═══════════════════════════════════════════════════════════════════════╗")
    print("║                    🎉 Deployment complete!                            ║")
    print("╚═══════════════════════════════════════════════════════════════════════╝")
    print("")
    print("📍 Web Apps:")
    print(f"   Web App Private: {private_app.url}")
    print(f"   Web App Public: {public_app.url}")
    print("")
    print("💾 Shared volume:")
    print(f"   Storage: {result.storage.name}")
    print(f"   File Share: {config.file_share_name}")
    print(f"   Mount Path: {config.mount_path}")
    print("")
    print("🔑 Secrets:")
    if secrets_saved_to is not None:
        print(f"   Saved to {secrets_saved_to}")
    else:
        print(f"   {SecretsEnum.ENCRYPTION_KEY.value}={config.encryption_key}")
        print(f"   {SecretsEnum.REVOLV_SHARED_SECRET.value}={config.shared_secret}")
    print("")
    print("🔧 Useful commands:")
    print("   # Logs Web App Private:")
    print(f"   az webapp log tail --name {private_app.name} --resource-group {rg}")
    print("")
    print("   # Logs Web App Public:")
    print(f"   az webapp log tail --name {public_app.name} --resource-group {rg}")
    print("")
    print("   # Restart:")
    print(f"   az webapp restart --name {private_app.name} --resource-group {rg}")
    print(f"   az webapp restart --name {public_app.name} --resource-group {rg}")
    print("")


def _run(
    args: argparse.Namespace,
    *,
    env: Mapping[str, str],
    prompts: PromptSource | None,
    client: ProvisioningClient | None,
    prog: str,
) -> int:
    deploy_env_path = Path(args.env_file).expanduser() if args.env_file else Path.cwd() / ".env.deploy"
    deploy_env = read_deploy_env(env, deploy_env_path)

    image = (args.image or deploy_env.get(VarsEnum.CONTAINER_IMAGE.value) or "").strip()
    if not image:
        raise InvalidArgumentError("Missing container image.", hints=_usage_hints(prog))
    validate_image_reference(image)

    request = DeploymentRequest(
        container_image=image,
        registry_username=args.username or deploy_env.get(VarsEnum.REGISTRY_USERNAME.value),
        registry_password=args.password or deploy_env.get(SecretsEnum.REGISTRY_PASSWORD.value),
    )

    print(BANNER)
    print("")

    app_name = _resolve_app_name(deploy_env, prompts)

    if args.dry_run:
        config = resolve_config(deploy_env, app_name=app_name)
        ref = split_registry_reference(image)
        credentials = None
        if request.registry_username and request.registry_password:
            credentials = RegistryCredentials(
                server=ref.server,
                image_path=ref.image_path,
                registry_short_name=ref.short_name,
                username=request.registry_username,
                password=request.registry_password,
            )
        plan = build_deploy_plan(
            config=config,
            registry=ref,
            credentials=credentials,
            show_secrets=bool(args.show_secrets),
        )
        print(render_deploy_plan_yaml(plan))
        return 0

    print("📋 Checking prerequisites...")
    if client is None:
        _check_az_prerequisites()
        client = AzCliProvisioningClient(verbose=bool(args.verbose))

    subscription_id = client.current_subscription()
    print(f"✅ Azure CLI connected (Subscription: {subscription_id})")

    print("")
    print("📦 Checking resource providers...")
    client.ensure_providers(REQUIRED_PROVIDERS)
    print("✅ Resource providers OK")
    print("")

    config, credentials = resolve(
        request,
        deploy_env,
        app_name=app_name,
        prompts=prompts,
        registry_lookup=client.registry_credentials,
    )

    _print_configuration(image, config)

    if not args.yes:
        if prompts is None:
            raise UserCancelledError("Confirmation required; pass --yes for non-interactive runs.")
        if not prompts.confirm("Continue?"):
            raise UserCancelledError()

    # Saved before any Web App receives the secrets.
    secrets_saved_to: Path | None = None
    if args.write_back_deploy_env:
        write_dotenv_values(
            path=deploy_env_path,
            updates={
                VarsEnum.APP_NAME.value: config.app_name,
                SecretsEnum.ENCRYPTION_KEY.value: config.encryption_key,
                SecretsEnum.REVOLV_SHARED_SECRET.value: config.shared_secret,
            },
            create=True,
        )
        secrets_saved_to = deploy_env_path
        print(f"🔑 [env] Updated {deploy_env_path} with app name and secrets")

    result = provision_dual_webapps(client, config, credentials)

    if args.health_check:
        print("")
        print("🩺 Probing Web Apps...")
        for app in result.webapps:
            print(f"   {probe_webapp(app.url).describe()}")

    _print_summary(config, result, secrets_saved_to=secrets_saved_to)
    return 0


def main(
    argv: list[str] | None = None,
    *,
    prompts: PromptSource | None = None,
    client: ProvisioningClient | None = None,
    environ: Mapping[str, str] | None = None,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if prompts is None and is_interactive():
        prompts = ConsolePrompts()
    env = os.environ if environ is None else environ

    try:
        return _run(args, env=env, prompts=prompts, client=client, prog=parser.prog)
    except EnvValidationError as e:
        print(e.format(), file=sys.stderr)
        return 1
    except UserCancelledError as e:
        print(e.format())
        return 1
    except DeployError as e:
        logger.debug("deploy aborted", exc_info=True)
        print(e.format(), file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
