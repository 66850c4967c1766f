import sys

from skylut.cli import main

sys.exit(main())
