import sys

from pkgpatches.cli import main

sys.exit(main())
