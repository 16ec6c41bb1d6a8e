import sys

from gridwatch.main import main

sys.exit(main())
