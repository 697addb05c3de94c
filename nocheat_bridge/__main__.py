"""python -m nocheat_bridge: same as the nocheat-bridge console script."""

import sys

from nocheat_bridge.cli import main

sys.exit(main())
