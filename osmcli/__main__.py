import sys

from osmcli.cli import main

sys.exit(main())
