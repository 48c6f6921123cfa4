import sys

from tlsrpt_ingest.cli import main

sys.exit(main())
