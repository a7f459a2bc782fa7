import sys

from gcode_preheat.cli import main

sys.exit(main())
