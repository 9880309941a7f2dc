import sys

from .localnet_cli import main

sys.exit(main())
