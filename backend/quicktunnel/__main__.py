import sys

from quicktunnel.cli import main

sys.exit(main())
