"""
package.json patching for bump pull requests.

The manifest is edited in memory: the dependency's version spec is replaced
with the target version while keeping its range operator, and the document is
re-serialised with npm's default two-space indentation.
"""

import json
from typing import Any

import structlog

from .exceptions import ManifestError

logger = structlog.get_logger(__name__)

DEPENDENCY_SECTIONS = ("dependencies", "devDependencies")
RANGE_OPERATORS = ("^", "~")


def _range_operator(spec: str) -> str:
    for operator in RANGE_OPERATORS:
        if spec.startswith(operator):
            return operator
    return ""


def update_package_json_dependency(
    content: str, package_name: str, target_version: str, path: str = "package.json"
) -> str:
    """
    Replace the version spec of a direct dependency in a package.json document.

    Args:
        content: Current manifest content
        package_name: Dependency to bump
        target_version: Version to write
        path: Manifest path, used in error messages

    Returns:
        Updated manifest content

    Raises:
        ManifestError: If the manifest is not valid JSON or the package is not
            a direct dependency
    """
    try:
        pkg: Any = json.loads(content)
    except ValueError as e:
        raise ManifestError(f"Invalid {path}", path=path) from e

    if not isinstance(pkg, dict):
        raise ManifestError(f"Invalid {path}", path=path)

    for section in DEPENDENCY_SECTIONS:
        deps = pkg.get(section)
        if not isinstance(deps, dict) or package_name not in deps:
            continue

        current = str(deps[package_name])
        new_spec = _range_operator(current) + target_version.lstrip("^~")
        deps[package_name] = new_spec

        logger.debug(
            "Patched manifest dependency",
            path=path,
            section=section,
            package=package_name,
            old_spec=current,
            new_spec=new_spec,
        )

        updated = json.dumps(pkg, indent=2, ensure_ascii=False)
        if content.endswith("\n"):
            updated += "\n"
        return updated

    raise ManifestError(
        "This dependency is transitive; only direct dependencies can be bumped via PR.",
        path=path,
        context={"package": package_name},
    )
