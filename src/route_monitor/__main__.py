import sys

from route_monitor.cli.main import main

sys.exit(main())
