import sys

from playlistgen.cli import main

sys.exit(main())
