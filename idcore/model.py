"""Wire the stores of the engine together."""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy.engine import Engine

from .config import Config
from .store import util
from .store.email_addresses import EmailAddresses
from .store.groups import Groups
from .store.hosts import Hosts
from .store.permissions import Permissions
from .store.posix import PosixAccountCache
from .store.users import Users
from .store.util import Transaction

logger = logging.getLogger(__name__)


class Model:
    """
    The engine, bound to one database.

    Usage::

        model = Model(util.init_engine('postgresql://...'))
        with model.transaction() as tr:
            user_idx = model.users.authenticate(tr, 'alice', 'secret')

    """

    def __init__(self, engine: Engine,
                 config: Optional[Config] = None) -> None:
        self.engine = engine
        self.config = config or Config()
        self._session_factory = util.session_factory(engine)

        self.posix_accounts = PosixAccountCache(self.config)
        self.groups = Groups()
        self.users = Users(self.config, self.groups, self.posix_accounts)
        self.permissions = Permissions(self.users)
        self.hosts = Hosts(self.permissions)
        self.email_addresses = EmailAddresses(self.config)

    @contextmanager
    def transaction(self) -> Generator[Transaction, None, None]:
        """Open a transaction, committed when the block exits normally."""
        with util.transaction(self._session_factory) as tr:
            yield tr

    def create_all(self) -> None:
        util.create_all(self.engine)

    def drop_all(self) -> None:
        util.drop_all(self.engine)
