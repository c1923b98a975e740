"""Testing helpers."""

from contextlib import contextmanager
from typing import Generator, Optional

from ...config import Config
from ...model import Model
from .. import util

TEST_CONFIG = Config(
    base_dn='dc=example,dc=com',
    users_ou='users',
    home_directory_prefix='/home',
    user_group_gid=2000,
    min_uid=10,
    password_token_lifetime=86400,
    email_token_lifetime=86400,
    email_allowed_domains=('snu.ac.kr',),
)


@contextmanager
def temporary_db(database_url: str = 'sqlite:///:memory:',
                 config: Optional[Config] = None, create: bool = True,
                 drop: bool = True) -> Generator[Model, None, None]:
    """Provide a sqlite-backed :class:`.Model` for testing purposes."""
    engine = util.init_engine(database_url)
    model = Model(engine, config or TEST_CONFIG)
    if create:
        model.create_all()
    try:
        yield model
    finally:
        if drop:
            model.drop_all()
        engine.dispose()
