"""Permission table — maps an access level to the permissions of its tier.

The table is built once when the app starts, from the ordered list of role
descriptors in the app config (or the YAML role file). Resolution picks
the tier with the greatest level that is <= the user's level. Tiers do not
inherit from each other: every tier lists all of its permissions.
"""

import bisect
import logging
from dataclasses import dataclass

import yaml

from spacegate.errors import ConfigError

logger = logging.getLogger(__name__)

PERMISSIONS = (
    "promote",          # promote users up to one's own level
    "wave",             # hand out invite waves
    "manage",           # reset passwords, delete users
    "spaces",           # create and manage own spaces
    "spaces_manage",    # manage spaces of others
    "services",         # create services for own spaces
    "services_manage",  # manage all services, create admin services
)


@dataclass(frozen=True)
class Role:
    name: str
    level: int
    permissions: frozenset

    def to_dict(self):
        return {
            "name": self.name,
            "level": self.level,
            "permissions": sorted(self.permissions),
        }


def _parse_permissions(name, raw):
    if raw is None:
        return frozenset()
    if isinstance(raw, dict):
        flags = [flag for flag, enabled in raw.items() if enabled]
    elif isinstance(raw, (list, tuple, set, frozenset)):
        flags = list(raw)
    else:
        raise ConfigError(f"Role '{name}': permissions must be a mapping or a list.")

    unknown = [flag for flag in flags if flag not in PERMISSIONS]
    if unknown:
        raise ConfigError(
            f"Role '{name}': unknown permission(s) {', '.join(map(str, unknown))}."
        )
    return frozenset(flags)


def parse_roles(entries):
    """Validate raw role descriptors and return them as Role objects."""
    if not entries:
        raise ConfigError("Role table is empty.")

    roles = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ConfigError(f"Role entry must be a mapping, got {entry!r}.")
        name = entry.get("name")
        level = entry.get("level")
        if not name or not isinstance(name, str):
            raise ConfigError(f"Role entry {entry!r} has no name.")
        if isinstance(level, bool) or not isinstance(level, int):
            raise ConfigError(f"Role '{name}' must have an integer level.")
        roles.append(Role(name, level, _parse_permissions(name, entry.get("permissions"))))

    levels = [role.level for role in roles]
    if len(set(levels)) != len(levels):
        raise ConfigError("Two roles share the same level.")
    if min(levels) > 0:
        raise ConfigError("Role table needs a tier at level 0 or below.")
    return roles


def load_roles_file(path):
    """Read the role list from a YAML config file.

    Accepts either a top-level `roles:` key or the full server config
    layout (`server.roles`).
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read role file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Role file {path} is not valid YAML: {e}") from e

    if isinstance(data, dict) and "server" in data:
        data = data["server"] or {}
    roles = data.get("roles") if isinstance(data, dict) else None
    if roles is None:
        raise ConfigError(f"Role file {path} has no `roles` list.")
    return roles


class PermissionTable:
    """Sorted role tiers with nearest-below lookup."""

    def __init__(self, entries=None):
        self._roles = []
        self._levels = []
        if entries is not None:
            self.load(entries)

    def init_app(self, app):
        entries = app.config.get("ROLES")
        if entries is None:
            entries = load_roles_file(app.config["ROLES_FILE"])
        self.load(entries)
        app.extensions["permission_table"] = self
        logger.info(
            "Loaded %d roles: %s",
            len(self._roles),
            ", ".join(f"{r.name}@{r.level}" for r in self._roles),
        )

    def load(self, entries):
        roles = sorted(parse_roles(entries), key=lambda r: r.level)
        self._roles = roles
        self._levels = [role.level for role in roles]

    @property
    def roles(self):
        return list(self._roles)

    @property
    def highest(self):
        if not self._roles:
            raise ConfigError("Role table is not loaded.")
        return self._roles[-1]

    @property
    def lowest(self):
        if not self._roles:
            raise ConfigError("Role table is not loaded.")
        return self._roles[0]

    def role_for(self, level):
        """Tier with the greatest level <= `level`."""
        idx = bisect.bisect_right(self._levels, level) - 1
        if idx < 0:
            raise ConfigError(f"No role covers access level {level}.")
        return self._roles[idx]

    def resolve(self, level):
        return self.role_for(level).permissions
