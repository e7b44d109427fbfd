# Models package — import all models here so Alembic can discover them.

from spacegate.models.user import User  # noqa: F401
from spacegate.models.invite import Invite  # noqa: F401
from spacegate.models.ssh_key import SSHKey  # noqa: F401
from spacegate.models.token import Token, ServiceToken  # noqa: F401
from spacegate.models.space import Space, SpaceAccount, SpaceItem  # noqa: F401
from spacegate.models.service_account import ServiceAccount  # noqa: F401
from spacegate.models.audit import SpaceLogEntry  # noqa: F401
