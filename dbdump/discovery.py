"""
Builds a config.yaml from the database containers running on this Docker host.

Engines are recognized by image name and credentials are read from the
container's environment, using the variables of the official images:

  mysql / mariadb   MYSQL_USER, MYSQL_PASSWORD, MYSQL_DATABASE, MYSQL_ROOT_PASSWORD
                    (and the MARIADB_* equivalents)
  postgres          POSTGRES_USER, POSTGRES_PASSWORD, POSTGRES_DB
  mongo             MONGO_INITDB_ROOT_USERNAME, MONGO_INITDB_ROOT_PASSWORD, MONGO_INITDB_DATABASE
  redis             no credentials needed
"""
from typing import Dict, List, Optional

import docker
import yaml

from .logger import get_logger
from .models import ENTRY_MODELS, EngineKind

logger = get_logger(__name__)

IMAGE_ENGINES = (
    ("mariadb", EngineKind.MYSQL),
    ("mysql", EngineKind.MYSQL),
    ("postgis", EngineKind.POSTGRES),
    ("postgres", EngineKind.POSTGRES),
    ("mongo", EngineKind.MONGO),
    ("redis", EngineKind.REDIS),
)


def detect_engine(image_name: str) -> Optional[EngineKind]:
    # "docker.io/library/postgres:16-alpine" -> "postgres"
    repository = image_name.rsplit("/", 1)[-1].split(":", 1)[0].split("@", 1)[0].lower()
    for marker, kind in IMAGE_ENGINES:
        if marker in repository:
            return kind
    return None


def parse_env(env_list: Optional[List[str]]) -> Dict[str, str]:
    env = {}
    for item in env_list or []:
        key, sep, value = item.partition("=")
        if sep:
            env[key] = value
    return env


def _first(env: Dict[str, str], *keys: str) -> Optional[str]:
    for key in keys:
        if env.get(key):
            return env[key]
    return None


def entry_from_container(name: str, kind: EngineKind, env: Dict[str, str]) -> Optional[dict]:
    """Returns a config entry for the container, or None when credentials are missing."""
    entry = {"name": name, "host": name, "port": ENTRY_MODELS[kind].model_fields["port"].default}

    if kind == EngineKind.MYSQL:
        user = _first(env, "MYSQL_USER", "MARIADB_USER")
        password = _first(env, "MYSQL_PASSWORD", "MARIADB_PASSWORD")
        if not user or not password:
            user = "root"
            password = _first(env, "MYSQL_ROOT_PASSWORD", "MARIADB_ROOT_PASSWORD")
        dbname = _first(env, "MYSQL_DATABASE", "MARIADB_DATABASE")
        if not password or not dbname:
            return None
        entry.update(user=user, password=password, dbname=dbname)

    elif kind == EngineKind.POSTGRES:
        password = env.get("POSTGRES_PASSWORD")
        if not password:
            return None
        user = env.get("POSTGRES_USER") or "postgres"
        entry.update(user=user, password=password, dbname=env.get("POSTGRES_DB") or user)

    elif kind == EngineKind.MONGO:
        user = env.get("MONGO_INITDB_ROOT_USERNAME")
        password = env.get("MONGO_INITDB_ROOT_PASSWORD")
        if not user or not password:
            return None
        entry.update(user=user, password=password, dbname=env.get("MONGO_INITDB_DATABASE") or "admin",
                     authdb="admin")

    return entry


def discover_entries(client=None, network: Optional[str] = None) -> Dict[str, List[dict]]:
    """Scan running containers and group the recognized databases by engine section."""
    client = client or docker.from_env()
    sections = {kind.value: [] for kind in EngineKind}

    for container in client.containers.list():
        attrs = container.attrs or {}
        networks = attrs.get("NetworkSettings", {}).get("Networks") or {}
        if network and network not in networks:
            logger.debug(f"Skipping {container.name}: not attached to network {network}")
            continue

        image = attrs.get("Config", {}).get("Image") or ""
        kind = detect_engine(image)
        if kind is None:
            continue

        entry = entry_from_container(container.name, kind, parse_env(attrs.get("Config", {}).get("Env")))
        if entry is None:
            logger.warning(f"Container {container.name} looks like {kind.label} but has no usable credentials")
            continue

        logger.info(f"Found {kind.label} database: {container.name}")
        sections[kind.value].append(entry)

    return sections


def render_config(sections: Dict[str, List[dict]]) -> str:
    return yaml.safe_dump(sections, sort_keys=False, default_flow_style=False)
