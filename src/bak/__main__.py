import sys

from .bak import main

sys.exit(main())
