# File: dbreverse/scaffold.py
"""
dbreverse - Project Scaffolding
=================================

Backend for the ``new`` command.  Creates a fresh project folder:

    my-project/
    ├── README.md
    ├── pyproject.toml
    ├── .gitignore
    ├── dbreverse.yaml          # connection + generation settings
    └── my_project/
        ├── __init__.py
        └── models/
            └── __init__.py     # replaced by ``dbreverse generate``

The folder name is the kebab-case form of the requested name and the
package the snake_case form.  An existing folder is never touched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from dbreverse.models import ConnectionDescriptor, DatabaseDialect
from dbreverse.utils import sanitize_identifier, to_kebab_case, to_snake_case, write_file

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("dbreverse.scaffold")

CONFIG_FILE_NAME: str = "dbreverse.yaml"

# DBAPI distribution installed for each engine's default driver.
_DRIVER_PACKAGES: Dict[DatabaseDialect, str] = {
    DatabaseDialect.POSTGRESQL: "psycopg2-binary>=2.9.9",
    DatabaseDialect.MYSQL: "pymysql>=1.1.0",
    DatabaseDialect.MARIADB: "pymysql>=1.1.0",
    DatabaseDialect.MSSQL: "pyodbc>=5.0.0",
    DatabaseDialect.ORACLE: "oracledb>=2.0.0",
}


@dataclass(slots=True)
class ScaffoldResult:
    """What ``create_project`` produced."""

    project_dir: Path
    package_name: str
    files: List[Path] = field(default_factory=list)


# ---------------------------------------------------------------------------
# File contents
# ---------------------------------------------------------------------------


def project_names(name: str) -> Tuple[str, str]:
    """
    ``(folder, package)`` names for a requested project name.

    Raises:
        ValueError: If *name* has no usable characters.
    """
    project_name: str = to_kebab_case(name.strip())
    if not project_name:
        raise ValueError(f"Invalid project name: {name!r}")
    return project_name, sanitize_identifier(to_snake_case(project_name))


def default_connection(package_name: str) -> ConnectionDescriptor:
    """Local PostgreSQL placeholder written when no connection is given."""
    return ConnectionDescriptor(
        engine=DatabaseDialect.POSTGRESQL,
        host="localhost",
        port=5432,
        username="postgres",
        password="",
        database=package_name,
    )


def _generate_config(package_name: str, connection: ConnectionDescriptor) -> str:
    data: Dict[str, Any] = {
        "connection": connection.model_dump(mode="json", exclude_none=True),
        "generation": {
            "output_dir": f"{package_name}/models",
            "entity_case": "pascal",
            "property_case": "snake",
            "file_case": "snake",
            "pluralize": True,
            "lazy_relations": False,
            "strict_relations": False,
        },
    }
    header: str = "# dbreverse settings; CLI flags override these values.\n"
    return header + yaml.safe_dump(data, sort_keys=False, default_flow_style=False)


def _generate_pyproject_toml(
    project_name: str, package_name: str, engine: DatabaseDialect
) -> str:
    """Generate a minimal pyproject.toml for the new project."""
    lines: List[str] = []
    lines.append("[build-system]")
    lines.append('requires = ["setuptools>=68.0", "wheel"]')
    lines.append('build-backend = "setuptools.build_meta"')
    lines.append("")
    lines.append("[project]")
    lines.append(f'name = "{project_name}"')
    lines.append('version = "0.1.0"')
    lines.append('requires-python = ">=3.10"')
    lines.append("dependencies = [")
    lines.append('    "sqlalchemy>=2.0.25",')
    lines.append('    "pydantic>=2.6.0",')
    driver: Optional[str] = _DRIVER_PACKAGES.get(engine)
    if driver is not None:
        lines.append(f'    "{driver}",')
    lines.append("]")
    lines.append("")
    lines.append("[project.optional-dependencies]")
    lines.append("dev = [")
    lines.append('    "dbreverse",')
    lines.append('    "pytest>=8.0.0",')
    lines.append("]")
    lines.append("")
    lines.append("[tool.setuptools.packages.find]")
    lines.append(f'include = ["{package_name}*"]')
    lines.append("")
    return "\n".join(lines)


def _generate_gitignore() -> str:
    """Generate .gitignore for a Python project."""
    lines: List[str] = []
    lines.append("# Byte-compiled files")
    lines.append("__pycache__/")
    lines.append("*.py[cod]")
    lines.append("")
    lines.append("# Virtual environments")
    lines.append("venv/")
    lines.append(".venv/")
    lines.append("")
    lines.append("# Distribution / packaging")
    lines.append("dist/")
    lines.append("build/")
    lines.append("*.egg-info/")
    lines.append("")
    lines.append("# Testing")
    lines.append(".pytest_cache/")
    lines.append("")
    return "\n".join(lines)


def _generate_readme(project_name: str, package_name: str) -> str:
    """Generate a project README.md."""
    lines: List[str] = []
    lines.append(f"# {project_name}")
    lines.append("")
    lines.append("## Quick Start")
    lines.append("")
    lines.append("```bash")
    lines.append("python -m venv venv")
    lines.append("source venv/bin/activate")
    lines.append("pip install -e '.[dev]'")
    lines.append("")
    lines.append(f"# Edit {CONFIG_FILE_NAME} with your database settings, then:")
    lines.append(f"dbreverse generate --config {CONFIG_FILE_NAME}")
    lines.append(f"dbreverse list-entities --module {package_name}.models")
    lines.append("```")
    lines.append("")
    lines.append("## Project Structure")
    lines.append("")
    lines.append("```")
    lines.append(f"{project_name}/")
    lines.append(f"├── {package_name}/")
    lines.append("│   ├── __init__.py")
    lines.append("│   └── models/            # generated entities and inputs")
    lines.append(f"├── {CONFIG_FILE_NAME}")
    lines.append("├── pyproject.toml")
    lines.append("└── README.md")
    lines.append("```")
    lines.append("")
    lines.append(
        "Code between `# <custom>` and `# </custom>` markers in generated "
        "files survives regeneration."
    )
    lines.append("")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def create_project(
    name: str,
    parent_dir: Path = Path("."),
    connection: Optional[ConnectionDescriptor] = None,
) -> ScaffoldResult:
    """
    Write a new project skeleton under *parent_dir*.

    Raises:
        ValueError: If *name* has no usable characters.
        FileExistsError: If the project folder already exists.
    """
    project_name, package_name = project_names(name)

    project_dir: Path = Path(parent_dir).resolve() / project_name
    if project_dir.exists():
        raise FileExistsError(f"Refusing to overwrite existing path: {project_dir}")

    connection = connection or default_connection(package_name)
    contents: Dict[str, str] = {
        "README.md": _generate_readme(project_name, package_name),
        "pyproject.toml": _generate_pyproject_toml(
            project_name, package_name, connection.engine
        ),
        ".gitignore": _generate_gitignore(),
        CONFIG_FILE_NAME: _generate_config(package_name, connection),
        f"{package_name}/__init__.py": f'"""{project_name} package."""\n',
        f"{package_name}/models/__init__.py": (
            '"""Generated models; run `dbreverse generate` to populate."""\n'
        ),
    }

    result: ScaffoldResult = ScaffoldResult(
        project_dir=project_dir, package_name=package_name
    )
    for rel_path, text in contents.items():
        target: Path = project_dir / rel_path
        write_file(target, text)
        result.files.append(target)

    logger.info("Created project %s (%d files).", project_dir, len(result.files))
    return result


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "CONFIG_FILE_NAME",
    "ScaffoldResult",
    "project_names",
    "default_connection",
    "create_project",
]

logger.debug("dbreverse.scaffold loaded.")
