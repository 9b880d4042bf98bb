import importlib
import inspect
import pkgutil

from fastapi import APIRouter, FastAPI
from loguru import logger


def discover_routers(
    package_name: str = "arena.api", recursive: bool = True
) -> list[tuple[APIRouter, str]]:
    """
    Discover all router instances in a package.

    Args:
        package_name: The package to scan for routers.
        recursive: Whether to recursively scan subpackages.

    Returns:
        A list of tuples containing the router instance and its subpath, e.g.
        ``arena.api.v2.battle`` is mounted under ``/v2``.
    """
    routers: list[tuple[APIRouter, str]] = []

    package = importlib.import_module(package_name)
    package_path = getattr(package, "__path__", None)
    if not package_path:
        logger.warning(f"Cannot scan {package_name} for routers as it's not a package")
        return routers

    # Subpackages below arena.api become path segments
    segments = package_name.split(".")[2:]
    subpath = "".join(f"/{segment}" for segment in segments)

    for module_info in sorted(pkgutil.iter_modules(package_path), key=lambda m: m.name):
        if module_info.name.startswith("_"):
            continue

        full_module_name = f"{package_name}.{module_info.name}"
        if module_info.ispkg:
            if recursive:
                routers.extend(discover_routers(full_module_name, recursive=recursive))
            continue

        module = importlib.import_module(full_module_name)
        for _, obj in inspect.getmembers(module, lambda member: isinstance(member, APIRouter)):
            routers.append((obj, subpath))
            logger.info(f"Discovered router in {full_module_name}")

    return routers


def register_routers(app: FastAPI, prefix: str = "/api") -> None:
    """
    Register all routers in the arena.api package with the FastAPI app.

    Args:
        app: The FastAPI app.
        prefix: The prefix to add to all routes.
    """
    for router, subpath in discover_routers():
        app.include_router(router, prefix=f"{prefix}{subpath}")
