import sys

from metaguard.cli import main

sys.exit(main())
