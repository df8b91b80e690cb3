import sys

from hag.main import main

sys.exit(main())
