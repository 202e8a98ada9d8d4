import sys

from whisper_provision.cli import main

sys.exit(main())
