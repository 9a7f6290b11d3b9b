"""Rendering of the bundled Jinja2 template assets.

Kubernetes manifests and the Backstage self-service template live as files
under the package's templates/ directory rather than as string literals.
"""

from importlib.resources import as_file, files
from pathlib import Path
from typing import Any

import yaml
from icecream import ic
from jinja2 import Environment, PackageLoader, StrictUndefined, UndefinedError

from aks_capi_bootstrap.exceptions import BootstrapError

_env = Environment(
    loader=PackageLoader("aks_capi_bootstrap", "templates"),
    auto_reload=False,
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


def render(name: str, **values: Any) -> str:
    """Render a bundled template.

    Args:
        name: Template path relative to the templates directory.
        **values: Template variables.

    Returns:
        The rendered text.

    Raises:
        BootstrapError: If the template references an undefined variable.

    """
    ic(_env.list_templates())
    try:
        return _env.get_template(name).render(**values)
    except UndefinedError as err:
        raise BootstrapError(f"Could not render {name}: {err}") from err


def render_manifest(name: str, **values: Any) -> dict[str, Any]:
    """Render a bundled YAML template and parse it into a manifest dict."""
    return yaml.safe_load(render(name, **values))


def copy_tree(name: str, destination: Path) -> list[Path]:
    """Copy a bundled asset directory, skipping .j2 templates.

    Existing files at the destination are overwritten.

    Returns:
        The files written.

    """
    written: list[Path] = []
    with as_file(files("aks_capi_bootstrap") / "templates" / name) as source:
        for path in sorted(Path(source).rglob("*")):
            if not path.is_file() or path.suffix == ".j2":
                continue
            target = destination / path.relative_to(source)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(path.read_bytes())
            written.append(target)
    return written
