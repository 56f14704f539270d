"""Allow ``python -m db_provisioner``."""

import sys

from db_provisioner.cli import main

sys.exit(main())
