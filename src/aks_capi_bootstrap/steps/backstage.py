"""Backstage developer portal installation.

Scaffolds a Backstage app, merges the GitHub integration and the bundled
self-service cluster template into its configuration, registers the GitHub
backend modules and runs the development server.
"""

import contextlib
import json
import os
import re
import signal
import subprocess
import tempfile
import threading
import time
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any

import click
import requests
import yaml
from icecream import ic
from rich.markup import escape

from aks_capi_bootstrap import console, rendering, shell
from aks_capi_bootstrap.exceptions import BackstageError, CommandError
from aks_capi_bootstrap.models import Settings

APP_NAME = "backstage"
APP_CONFIG = "app-config.local.yaml"
BACKEND_DIR = Path("packages/backend")
BACKEND_ENTRYPOINT = BACKEND_DIR / "src" / "index.ts"

DEV_SERVER_URL = "http://localhost:3000"
DEV_SERVER_TIMEOUT = 180.0

TEMPLATE_DIR = Path("templates/cluster-templates")
# Backstage resolves file locations relative to packages/backend
TEMPLATE_LOCATION = "../../templates/cluster-templates/template.yaml"
TEMPLATE_REGIONS = ("eastus", "eastus2", "centralus", "westus2", "westeurope", "northeurope")

# GitHub backend module -> plugin it must be registered after
GITHUB_MODULES: dict[str, str] = {
    "@backstage/plugin-scaffolder-backend-module-github": "@backstage/plugin-scaffolder-backend",
    "@backstage/plugin-catalog-backend-module-github": "@backstage/plugin-catalog-backend",
}

_REGISTRATION = re.compile(r"""^(?P<indent>\s*)backend\.add\(\s*import\(\s*['"](?P<package>[^'"]+)['"]\s*\)\s*\)""")


def scaffold_app(backstage_dir: Path) -> None:
    """Create a new Backstage app non-interactively.

    Raises:
        BackstageError: If create-app fails.

    """
    console.action(f"Creating new Backstage app in {console.highlight(str(backstage_dir))}...")
    try:
        shell.run(
            ["npx", "--yes", "@backstage/create-app@latest", "--path", str(backstage_dir)],
            input_text=f"{APP_NAME}\n",
            capture=False,
        )
    except CommandError as e:
        raise BackstageError(f"Failed to create Backstage app: {e}") from e


def merge_app_config(config: dict[str, Any] | None, *, template_location: str) -> dict[str, Any]:
    """Merge the GitHub integration and template location into app config.

    Existing keys are preserved. The GitHub integration is keyed by host and
    the catalog location by target, so merging twice changes nothing.

    Args:
        config: Parsed app-config document (None for an empty file).
        template_location: Catalog location target of the cluster template.

    Returns:
        The merged document.

    """
    config = dict(config or {})

    integrations = dict(config.get("integrations") or {})
    github = [dict(entry) for entry in integrations.get("github") or []]
    for entry in github:
        if entry.get("host") == "github.com":
            entry["token"] = "${GITHUB_TOKEN}"
            break
    else:
        github.append({"host": "github.com", "token": "${GITHUB_TOKEN}"})
    integrations["github"] = github
    config["integrations"] = integrations

    catalog = dict(config.get("catalog") or {})
    locations = list(catalog.get("locations") or [])
    if not any(location.get("target") == template_location for location in locations):
        locations.append({"type": "file", "target": template_location, "rules": [{"allow": ["Template"]}]})
    catalog["locations"] = locations
    config["catalog"] = catalog

    return config


def write_app_config(backstage_dir: Path) -> Path:
    """Parse, merge and write app-config.local.yaml.

    Raises:
        BackstageError: If the existing file is not valid YAML.

    """
    path = backstage_dir / APP_CONFIG
    current: dict[str, Any] | None = None
    if path.exists():
        try:
            current = yaml.safe_load(path.read_text())
        except yaml.YAMLError as e:
            raise BackstageError(f"Cannot parse {path}: {e}") from e

    merged = merge_app_config(current, template_location=TEMPLATE_LOCATION)
    path.write_text(yaml.safe_dump(merged, sort_keys=False))
    console.step(f"GitHub integration and cluster template registered in {APP_CONFIG}")
    return path


def install_cluster_template(settings: Settings) -> Path:
    """Write the self-service cluster template and its skeleton into the app.

    Returns:
        Path of the rendered template.yaml.

    """
    target_dir = settings.backstage_dir / TEMPLATE_DIR
    rendering.copy_tree("cluster-templates", target_dir)

    template = target_dir / "template.yaml"
    template.write_text(
        rendering.render(
            "cluster-templates/template.yaml.j2",
            subscription_id=settings.subscription_id,
            location=settings.location,
            regions=sorted({settings.location, *TEMPLATE_REGIONS}),
            kubernetes_version=settings.kubernetes_version,
            github_org=settings.github_org,
            github_repo=settings.github_repo,
            identity_name="cluster-identity",
            identity_namespace="default",
        )
    )
    console.step(f"Cluster template written to {escape(str(template))}")
    return template


def install_dependencies(backstage_dir: Path) -> None:
    """Run yarn install in the app directory.

    Raises:
        BackstageError: If yarn install fails.

    """
    console.action("Installing Backstage dependencies...")
    try:
        shell.run(["yarn", "install"], cwd=backstage_dir, capture=False)
    except CommandError as e:
        raise BackstageError(f"Failed to install Backstage dependencies: {e}") from e


def install_backstage(settings: Settings) -> bool:
    """Scaffold and configure Backstage unless its directory already exists.

    Args:
        settings: Resolved settings naming the Backstage directory.

    Returns:
        True if the app was scaffolded by this call.

    Raises:
        BackstageError: If scaffolding or dependency installation fails.

    """
    backstage_dir = settings.backstage_dir
    if backstage_dir.is_dir():
        console.info(
            f"Backstage directory already exists at {escape(str(backstage_dir))}. Using existing installation."
        )
        return False

    scaffold_app(backstage_dir)
    write_app_config(backstage_dir)
    install_cluster_template(settings)
    install_dependencies(backstage_dir)
    console.success("Backstage setup complete.")
    return True


def add_backend_registrations(source: str, modules: Mapping[str, str]) -> str:
    """Register backend modules in the backend entrypoint source.

    Each missing module gets a `backend.add(import('...'))` line right after
    its parent plugin's registration, with the same indentation. Modules
    that are already registered are left alone.

    Args:
        source: Contents of packages/backend/src/index.ts.
        modules: Module package -> parent plugin package.

    Returns:
        The updated source.

    Raises:
        BackstageError: If a parent plugin is not registered.

    """
    lines = source.splitlines(keepends=True)

    def registrations() -> dict[str, tuple[int, str]]:
        found: dict[str, tuple[int, str]] = {}
        for index, line in enumerate(lines):
            match = _REGISTRATION.match(line)
            if match:
                found[match.group("package")] = (index, match.group("indent"))
        return found

    for module, parent in modules.items():
        registered = registrations()
        if module in registered:
            continue
        if parent not in registered:
            raise BackstageError(f"Cannot register {module}: {parent} is not registered in the backend")
        index, indent = registered[parent]
        if not lines[index].endswith("\n"):
            lines[index] += "\n"
        lines.insert(index + 1, f"{indent}backend.add(import('{module}'));\n")

    return "".join(lines)


def _write_atomically(path: Path, content: str) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


def _missing_backend_packages(backstage_dir: Path, packages: list[str]) -> list[str]:
    manifest = backstage_dir / BACKEND_DIR / "package.json"
    try:
        dependencies = json.loads(manifest.read_text()).get("dependencies", {})
    except (OSError, json.JSONDecodeError) as e:
        ic(e)
        return packages
    return [package for package in packages if package not in dependencies]


def configure_github_plugins(backstage_dir: Path) -> bool:
    """Install the GitHub backend modules and register them.

    Returns:
        True if the backend entrypoint was changed.

    Raises:
        BackstageError: If the app is missing, yarn fails or the entrypoint
            lacks the parent plugin registrations.

    """
    console.info("Configuring Backstage GitHub plugins...")
    if not backstage_dir.is_dir():
        raise BackstageError(f"Backstage directory not found at {backstage_dir}.")

    for package in _missing_backend_packages(backstage_dir, list(GITHUB_MODULES)):
        console.action(f"Installing {package}...")
        try:
            shell.run(["yarn", "--cwd", str(BACKEND_DIR), "add", package], cwd=backstage_dir, capture=False)
        except CommandError as e:
            raise BackstageError(f"Failed to install {package}: {e}") from e

    entrypoint = backstage_dir / BACKEND_ENTRYPOINT
    try:
        source = entrypoint.read_text()
    except OSError as e:
        raise BackstageError(f"Cannot read {entrypoint}: {e.strerror}") from e

    updated = add_backend_registrations(source, GITHUB_MODULES)
    if updated == source:
        console.info("GitHub plugins already configured.")
        return False

    _write_atomically(entrypoint, updated)
    console.success(f"Backend configuration updated in {BACKEND_ENTRYPOINT}")
    return True


class DevServer:
    """A `yarn dev` process with a readiness future and a stop handle.

    The process runs in its own session so it outlives the CLI unless
    stop() is called.

    Attributes:
        backstage_dir: App directory the server runs in.
        url: URL polled for readiness.
        log_path: File receiving the server's output.

    """

    def __init__(
        self,
        backstage_dir: Path,
        *,
        url: str = DEV_SERVER_URL,
        env: Mapping[str, str] | None = None,
        poll_interval: float = 2.0,
    ) -> None:
        self.backstage_dir: Path = backstage_dir
        self.url: str = url
        self.log_path: Path = backstage_dir / "backstage-dev.log"
        self._env: dict[str, str] = dict(env or {})
        self._poll_interval: float = poll_interval
        self._process: subprocess.Popen[bytes] | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._stopping = threading.Event()

    def __repr__(self) -> str:
        """Return a detailed string representation for debugging."""
        pid = self._process.pid if self._process else None
        return f"DevServer(backstage_dir={self.backstage_dir!r}, url={self.url!r}, pid={pid!r})"

    @property
    def running(self) -> bool:
        """True while the server process is alive."""
        return self._process is not None and self._process.poll() is None

    def start(self, *, timeout: float = DEV_SERVER_TIMEOUT) -> "Future[bool]":
        """Launch the server and start polling it.

        Args:
            timeout: Seconds to wait for the server to answer.

        Returns:
            A future resolving to True once the URL answers, or False if the
            wait window closes, the process exits or stop() is called.

        Raises:
            BackstageError: If the server is already started or yarn is missing.

        """
        if self._process is not None:
            raise BackstageError("Backstage dev server already started")

        console.action("Starting Backstage...")
        with self.log_path.open("ab") as log:
            try:
                self._process = subprocess.Popen(
                    ["yarn", "dev"],
                    cwd=self.backstage_dir,
                    env={**os.environ, **self._env},
                    stdin=subprocess.DEVNULL,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
            except FileNotFoundError as e:
                raise BackstageError("yarn not found on PATH") from e
        ic(self._process.pid)

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="backstage-ready")
        return self._executor.submit(self._wait_until_ready, timeout)

    def _responds(self) -> bool:
        try:
            requests.get(self.url, timeout=2)
        except requests.RequestException:
            return False
        return True

    def _wait_until_ready(self, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        while not self._stopping.is_set() and time.monotonic() < deadline:
            if not self.running:
                return False
            if self._responds():
                return True
            self._stopping.wait(self._poll_interval)
        return False

    def stop(self) -> None:
        """Cancel the readiness poll and terminate the server's process group."""
        self._stopping.set()
        process = self._process
        if process is not None and process.poll() is None:
            with contextlib.suppress(ProcessLookupError):
                os.killpg(process.pid, signal.SIGTERM)
            try:
                process.wait(timeout=10)
            except subprocess.TimeoutExpired:
                with contextlib.suppress(ProcessLookupError):
                    os.killpg(process.pid, signal.SIGKILL)
        if self._executor is not None:
            self._executor.shutdown(wait=False)


def stop_stray_dev_servers(backstage_dir: Path) -> None:
    """Best-effort kill of dev servers left running from an earlier run."""
    try:
        result = shell.run(["pkill", "-f", f"node .*{re.escape(str(backstage_dir))}"], check=False)
    except CommandError as e:
        console.warning(f"Could not stop running Backstage dev servers: {escape(str(e))}")
        return
    if result.returncode == 0:
        console.step("Stopped a running Backstage dev server")
        time.sleep(2)


def launch_dev_server(settings: Settings, *, timeout: float = DEV_SERVER_TIMEOUT) -> DevServer:
    """Start Backstage and wait for it to answer; a timeout only warns.

    Args:
        settings: Resolved settings with the app directory and GitHub token.
        timeout: Seconds to wait for readiness.

    Returns:
        The running server, left running for the user.

    """
    stop_stray_dev_servers(settings.backstage_dir)

    server = DevServer(settings.backstage_dir, env={"GITHUB_TOKEN": settings.github_token})
    ready = server.start(timeout=timeout)

    try:
        with console.spinner("Waiting for Backstage to start up (this may take a minute)..."):
            is_ready = ready.result()
    except BaseException:
        # KeyboardInterrupt included
        server.stop()
        raise

    if is_ready:
        console.success(f"Backstage is available at {console.highlight(server.url)}")
        with contextlib.suppress(Exception):
            click.launch(f"{server.url}/create")
    else:
        console.warning(
            f"Backstage may still be starting up. Please visit {server.url} in your browser "
            f"(server output: {escape(str(server.log_path))})."
        )
    return server
