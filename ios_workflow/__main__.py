import sys

from .make import main

sys.exit(main())
