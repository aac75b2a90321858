"""Allow ``python -m nativeauth``."""

import sys

from .cli import main


sys.exit(main())
