import sys

from grafana_dashboards.cli import main

sys.exit(main())
