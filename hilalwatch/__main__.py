"""Allow ``python -m hilalwatch``."""

import sys

from hilalwatch.cli import main

sys.exit(main())
