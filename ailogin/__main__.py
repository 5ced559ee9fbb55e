"""Allow ``python -m ailogin``."""

import sys

from .cli import main


sys.exit(main())
