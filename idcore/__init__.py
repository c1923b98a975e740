"""Identity and authorization engine backing a POSIX account directory."""

from .model import Model
from .config import Config
