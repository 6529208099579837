"""Allow running socialgate as ``python -m socialgate``."""

import sys

from .cli import main


sys.exit(main())
