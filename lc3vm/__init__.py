from ._version import __version__
from .lc3 import (LC3, LC3Error, LoadError, BadOpcodeError, BadTrapError,
                  InputClosedError, sign_extend)
